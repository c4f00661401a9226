"""
Dynamic Pricing Engine  (Strategy Pattern)
==========================================

Ride / taxi fare
----------------
Price = max(round((Base + km x Rate_KM + min x Rate_MIN) x Type_Multiplier x Surge), Minimum_Fare)

* **Duration** is derived from distance at the average city speed.
* **Surge** combines one time-of-day factor with a demand factor:

  - no available supply              -> fixed 1.1
  - time factor (only with >= 3 providers nearby):
    rush hour 07-09 / 17-19 = 1.2, late night 22-06 = 1.25,
    weekend = 1.1 when neither of the above applies
  - demand factor (only with >= 2 open requests nearby), by demand/supply:
    >= 4.0 -> 1.3, >= 2.5 -> 1.2, >= 1.5 -> 1.1
  - product capped at 1.5

Delivery fee
------------
Fee = max(round(2 x Type_Multiplier + km x 0.5), Minimum_Fare)

Moving quote
------------
Hourly labour by tier x estimated hours, plus transport, packing,
disassembly, storage, weekend surcharge and 7.5 % VAT.

Day hire
--------
Price = max(round(min(Driver_Rate, 20) x Hours x Time_Factor), Minimum_Fare)

* Drivers without their own rate hire out at 12 per hour.
* Weekend, rush hour and late night premiums compound, capped at 1.35.

Complexity: O(1) per calculation (O(items) for moving quotes).
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from .entities import DayHireQuote, FareBreakdown, FareEstimate, MovingItem, MovingQuote
from .enums import DeliveryType, RideType, ServiceTier

RIDE_TYPE_MULTIPLIERS: dict[RideType, float] = {
    RideType.ECONOMY: 1.0,
    RideType.COMFORT: 1.15,
    RideType.PREMIUM: 1.3,
    RideType.SUV: 1.2,
    RideType.SHARED: 0.8,
    RideType.TAXI: 1.1,
}

DELIVERY_TYPE_MULTIPLIERS: dict[DeliveryType, float] = {
    DeliveryType.PACKAGE: 1.0,
    DeliveryType.FOOD: 1.1,
    DeliveryType.GROCERY: 1.05,
    DeliveryType.PHARMACY: 1.15,
    DeliveryType.DOCUMENTS: 0.9,
}

MINIMUM_FARE = 5.0
BOOKING_COMMISSION_RATE = 0.18
DELIVERY_COMMISSION_RATE = 0.15
DAY_HIRE_COMMISSION_RATE = 0.15
DAY_HIRE_DEFAULT_RATE = 12.0
DAY_HIRE_MAX_RATE = 20.0


# ── Surge ─────────────────────────────────────────────────────────────


class SurgePolicy:
    RUSH_HOUR = 1.2
    LATE_NIGHT = 1.25
    WEEKEND = 1.1
    MAX_SURGE = 1.5
    MAX_DAY_HIRE = 1.35
    NO_SUPPLY_SURGE = 1.1
    MIN_SUPPLY_FOR_TIME_SURGE = 3
    MIN_DEMAND_FOR_SURGE = 2
    # (ratio threshold, factor), highest first
    DEMAND_STEPS = ((4.0, 1.3), (2.5, 1.2), (1.5, 1.1))

    @staticmethod
    def _is_rush_hour(hour: int) -> bool:
        return 7 <= hour <= 9 or 17 <= hour <= 19

    @staticmethod
    def _is_late_night(hour: int) -> bool:
        return hour >= 22 or hour <= 6

    def time_factor(self, at: datetime) -> float:
        if self._is_rush_hour(at.hour):
            return self.RUSH_HOUR
        if self._is_late_night(at.hour):
            return self.LATE_NIGHT
        if at.weekday() >= 5:
            return self.WEEKEND
        return 1.0

    def day_hire_factor(self, at: datetime) -> float:
        factor = 1.0
        if at.weekday() >= 5:
            factor *= self.WEEKEND
        if self._is_rush_hour(at.hour):
            factor *= self.RUSH_HOUR
        if self._is_late_night(at.hour):
            factor *= self.LATE_NIGHT
        return min(factor, self.MAX_DAY_HIRE)

    def demand_factor(self, demand: int, supply: int) -> float:
        if demand < self.MIN_DEMAND_FOR_SURGE:
            return 1.0
        ratio = demand / supply if supply > 0 else float("inf")
        for threshold, factor in self.DEMAND_STEPS:
            if ratio >= threshold:
                return factor
        return 1.0

    def compute(self, supply: int, demand: int, at: datetime) -> float:
        if supply <= 0:
            return self.NO_SUPPLY_SURGE

        multiplier = 1.0
        if supply >= self.MIN_SUPPLY_FOR_TIME_SURGE:
            multiplier = self.time_factor(at)
        multiplier *= self.demand_factor(demand, supply)
        return min(multiplier, self.MAX_SURGE)


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def calculate(self, distance_km: float, duration_min: float) -> float: ...


class RideFareStrategy(PricingStrategy):
    """Base + distance + time, scaled by ride type and surge."""

    def __init__(
        self,
        base_price: float = 3.0,
        price_per_km: float = 0.5,
        price_per_minute: float = 0.4,
        type_multiplier: float = 1.0,
        surge_multiplier: float = 1.0,
    ):
        self.base_price = base_price
        self.price_per_km = price_per_km
        self.price_per_minute = price_per_minute
        self.type_multiplier = type_multiplier
        self.surge_multiplier = surge_multiplier

    def subtotal(self, distance_km: float, duration_min: float) -> float:
        raw = (
            self.base_price
            + distance_km * self.price_per_km
            + duration_min * self.price_per_minute
        )
        return raw * self.type_multiplier

    def calculate(self, distance_km: float, duration_min: float) -> float:
        surged = self.subtotal(distance_km, duration_min) * self.surge_multiplier
        return max(float(round(surged)), MINIMUM_FARE)


class DeliveryFeeStrategy(PricingStrategy):
    BASE_FEE = 2.0
    PRICE_PER_KM = 0.5

    def __init__(self, delivery_type: DeliveryType = DeliveryType.PACKAGE):
        self.multiplier = DELIVERY_TYPE_MULTIPLIERS.get(delivery_type, 1.0)

    def calculate(self, distance_km: float, duration_min: float = 0.0) -> float:
        fee = self.BASE_FEE * self.multiplier + distance_km * self.PRICE_PER_KM
        return max(float(round(fee)), MINIMUM_FARE)


# ── Moving quotes ─────────────────────────────────────────────────────


HOURLY_LABOR: dict[ServiceTier, float] = {
    ServiceTier.BASIC: 150.0,
    ServiceTier.STANDARD: 250.0,
    ServiceTier.PREMIUM: 400.0,
}
TIER_EFFICIENCY: dict[ServiceTier, float] = {
    ServiceTier.BASIC: 1.2,
    ServiceTier.STANDARD: 1.0,
    ServiceTier.PREMIUM: 0.8,
}
BASE_CREW: dict[ServiceTier, int] = {
    ServiceTier.BASIC: 2,
    ServiceTier.STANDARD: 3,
    ServiceTier.PREMIUM: 4,
}


def moving_duration_hours(
    item_count: int,
    disassembly_items: int,
    distance_km: float,
    tier: ServiceTier,
    requires_packing: bool = False,
    requires_disassembly: bool = False,
) -> int:
    hours = 2 + math.ceil(item_count / 10) + max(0.5, distance_km / 30)
    hours *= TIER_EFFICIENCY.get(tier, 1.0)
    if requires_packing:
        hours += item_count * 0.1
    if requires_disassembly:
        hours += disassembly_items * 0.5
    return math.ceil(hours)


def crew_size(tier: ServiceTier, item_count: int) -> int:
    crew = BASE_CREW.get(tier, 2)
    if item_count > 50:
        crew += 1
    if item_count > 100:
        crew += 1
    return min(crew, 6)


def truck_size(estimated_volume: Optional[float], item_count: int) -> str:
    if estimated_volume:
        bands = ((10, "SMALL_VAN"), (25, "MEDIUM_TRUCK"), (50, "LARGE_TRUCK"))
        measure = estimated_volume
    elif item_count:
        bands = ((20, "SMALL_VAN"), (50, "MEDIUM_TRUCK"), (100, "LARGE_TRUCK"))
        measure = item_count
    else:
        return "MEDIUM_TRUCK"

    for limit, size in bands:
        if measure <= limit:
            return size
    return "EXTRA_LARGE_TRUCK"


# ── Engine facade ─────────────────────────────────────────────────────


class PricingEngine:
    """High-level API used by the booking, delivery and moving services."""

    def __init__(
        self,
        base_price: float = 3.0,
        price_per_km: float = 0.5,
        price_per_minute: float = 0.4,
        city_speed_kmh: float = 30.0,
        currency: str = "GHS",
        surge_policy: Optional[SurgePolicy] = None,
    ):
        self.base_price = base_price
        self.price_per_km = price_per_km
        self.price_per_minute = price_per_minute
        self.city_speed_kmh = city_speed_kmh
        self.currency = currency
        self.surge_policy = surge_policy or SurgePolicy()

    def duration_minutes(self, distance_km: float) -> float:
        return distance_km / self.city_speed_kmh * 60

    def estimate_ride(
        self,
        distance_km: float,
        ride_type: RideType = RideType.ECONOMY,
        supply: int = 0,
        demand: int = 0,
        at: Optional[datetime] = None,
    ) -> FareEstimate:
        at = at or datetime.now()
        duration = self.duration_minutes(distance_km)
        multiplier = RIDE_TYPE_MULTIPLIERS.get(ride_type, 1.0)
        surge = self.surge_policy.compute(supply, demand, at)

        strategy = RideFareStrategy(
            self.base_price,
            self.price_per_km,
            self.price_per_minute,
            type_multiplier=multiplier,
            surge_multiplier=surge,
        )
        subtotal = strategy.subtotal(distance_km, duration)
        return FareEstimate(
            estimated_price=strategy.calculate(distance_km, duration),
            estimated_distance_km=round(distance_km, 2),
            estimated_duration_min=round(duration, 1),
            surge_multiplier=round(surge, 2),
            available_providers=supply,
            currency=self.currency,
            breakdown=FareBreakdown(
                base_price=round(self.base_price * multiplier),
                distance_price=round(distance_km * self.price_per_km * multiplier),
                time_price=round(duration * self.price_per_minute * multiplier),
                surge_amount=round(subtotal * (surge - 1)),
            ),
        )

    def final_price(
        self,
        estimated_price: Optional[float],
        actual_distance_km: Optional[float] = None,
        surge_multiplier: Optional[float] = None,
        override: Optional[float] = None,
    ) -> float:
        """
        Price charged on completion.

        An explicit *override* wins.  Otherwise the fare is recomputed from
        the actual distance (surge re-applied when > 1); without a measured
        distance the booking keeps its estimate.
        """
        if override is not None:
            return float(override)
        if actual_distance_km is None:
            return float(estimated_price or 0.0)

        price = self.base_price + actual_distance_km * self.price_per_km
        if surge_multiplier and surge_multiplier > 1:
            price *= surge_multiplier
        return float(round(price))

    @staticmethod
    def split_commission(
        price: float, rate: float = BOOKING_COMMISSION_RATE, discount: float = 0.0
    ) -> tuple[float, float]:
        """Return ``(platform_commission, provider_earning)``."""
        effective = max(0.0, rate * (1 - discount))
        commission = round(price * effective, 2)
        return commission, round(price - commission, 2)

    @staticmethod
    def delivery_fee(
        distance_km: float, delivery_type: DeliveryType = DeliveryType.PACKAGE
    ) -> float:
        return DeliveryFeeStrategy(delivery_type).calculate(distance_km)

    @staticmethod
    def inter_regional_fee(
        origin_fee: float, destination_fee: float, distance_km: float
    ) -> float:
        return round(max(origin_fee, destination_fee) + distance_km * 2, 2)

    @staticmethod
    def moving_quote(
        distance_km: float,
        items: Iterable[MovingItem],
        tier: ServiceTier = ServiceTier.STANDARD,
        moving_date: Optional[datetime] = None,
        estimated_volume: Optional[float] = None,
        requires_packing: bool = False,
        requires_storage: bool = False,
        requires_disassembly: bool = False,
    ) -> MovingQuote:
        items = list(items)
        item_count = sum(max(1, i.quantity) for i in items)
        disassembly_items = sum(
            max(1, i.quantity) for i in items if i.requires_disassembly
        )

        hours = moving_duration_hours(
            item_count,
            disassembly_items,
            distance_km,
            tier,
            requires_packing=requires_packing,
            requires_disassembly=requires_disassembly,
        )
        labor = HOURLY_LABOR.get(tier, HOURLY_LABOR[ServiceTier.STANDARD]) * hours
        transport = max(50.0, distance_km * 5)
        packing = item_count * 5.0 if requires_packing else 0.0
        disassembly = disassembly_items * 20.0 if requires_disassembly else 0.0
        storage = 100.0 if requires_storage else 0.0
        weekend = labor * 0.2 if moving_date and moving_date.weekday() >= 5 else 0.0

        subtotal = labor + transport + packing + disassembly + storage + weekend
        tax = subtotal * 0.075
        return MovingQuote(
            total_price=float(round(subtotal + tax)),
            estimated_duration_hours=hours,
            crew_size=crew_size(tier, item_count),
            truck_size=truck_size(estimated_volume, item_count),
            distance_km=round(distance_km, 2),
            labor_cost=round(labor, 2),
            transport_cost=round(transport, 2),
            packing_cost=packing,
            disassembly_cost=disassembly,
            storage_cost=storage,
            weekend_surcharge=round(weekend, 2),
            tax=round(tax, 2),
            subtotal=round(subtotal, 2),
        )

    def day_hire_quote(
        self, hours: float, at: datetime, hourly_rate: Optional[float] = None
    ) -> DayHireQuote:
        rate = min(hourly_rate or DAY_HIRE_DEFAULT_RATE, DAY_HIRE_MAX_RATE)
        base = rate * hours
        factor = self.surge_policy.day_hire_factor(at)
        return DayHireQuote(
            total_price=float(max(round(base * factor), MINIMUM_FARE)),
            hourly_rate=rate,
            hours=hours,
            base_amount=round(base, 2),
            time_multiplier=round(factor, 3),
            currency=self.currency,
        )
