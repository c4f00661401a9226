"""
Domain value objects.

Plain dataclasses returned by the pricing engine and the zone / subscription
services.  They carry no persistence concerns; the API layer serialises them
with ``dataclasses.asdict``-compatible field names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass
class FareBreakdown:
    base_price: float = 0.0
    distance_price: float = 0.0
    time_price: float = 0.0
    surge_amount: float = 0.0
    service_fee: float = 0.0


@dataclass
class FareEstimate:
    estimated_price: float
    estimated_distance_km: float
    estimated_duration_min: float
    surge_multiplier: float = 1.0
    available_providers: int = 0
    currency: str = "GHS"
    breakdown: FareBreakdown = field(default_factory=FareBreakdown)


@dataclass
class MovingItem:
    name: str
    quantity: int = 1
    requires_disassembly: bool = False


@dataclass
class MovingQuote:
    total_price: float
    estimated_duration_hours: int
    crew_size: int
    truck_size: str
    distance_km: float
    labor_cost: float = 0.0
    transport_cost: float = 0.0
    packing_cost: float = 0.0
    disassembly_cost: float = 0.0
    storage_cost: float = 0.0
    weekend_surcharge: float = 0.0
    tax: float = 0.0
    subtotal: float = 0.0


@dataclass
class DayHireQuote:
    total_price: float
    hourly_rate: float
    hours: float
    base_amount: float
    time_multiplier: float = 1.0
    currency: str = "GHS"


@dataclass
class InterRegionalCheck:
    allowed: bool
    is_inter_regional: bool
    fee: float = 0.0
    requires_approval: bool = False
    reason: Optional[str] = None


@dataclass(frozen=True)
class SubscriptionPlan:
    id: str
    name: str
    price: float
    duration_days: int
    features: tuple[str, ...]
    max_active_bookings: int
    commission_discount: float
    priority_support: bool = False
