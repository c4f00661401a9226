"""Pydantic request / response schemas and the response envelope."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Iterable, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from src.domain.enums import (
    BookingKind,
    BookingStatus,
    BookingType,
    DeliveryStatus,
    DeliveryType,
    EmergencySeverity,
    NotificationType,
    OfferStatus,
    OrderStatus,
    PlaceStatus,
    Priority,
    RideType,
    ServiceTier,
    SubscriptionTier,
    UserRole,
    VerificationStatus,
    ZoneType,
)


# ── Envelope ──────────────────────────────────────────────────────────


def dump(schema: type[BaseModel], obj: Any) -> Any:
    """Serialise an ORM row (or a list of rows) through *schema*."""
    if obj is None:
        return None
    if isinstance(obj, (list, tuple)):
        return [schema.model_validate(o).model_dump(mode="json") for o in obj]
    return schema.model_validate(obj).model_dump(mode="json")


def ok(data: Any = None, message: str = "OK", pagination: Optional[dict] = None) -> dict:
    body = {"success": True, "message": message, "data": jsonable_encoder(data)}
    if pagination is not None:
        body["pagination"] = pagination
    return body


def paginated(
    rows: Iterable[Any],
    total: int,
    page: int,
    limit: int,
    schema: type[BaseModel],
    message: str = "OK",
) -> dict:
    return ok(
        dump(schema, list(rows)),
        message,
        {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if limit else 0,
        },
    )


# ── Requests ──────────────────────────────────────────────────────────


class LocationIn(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = Field(None, max_length=255)


class FareEstimateRequest(BaseModel):
    pickup: LocationIn
    dropoff: LocationIn
    ride_type: RideType = RideType.ECONOMY
    kind: BookingKind = BookingKind.RIDE


class BookingCreateRequest(BaseModel):
    kind: BookingKind = BookingKind.RIDE
    pickup: LocationIn
    dropoff: LocationIn
    ride_type: RideType = RideType.ECONOMY
    booking_type: BookingType = BookingType.IMMEDIATE
    scheduled_at: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)
    idempotency_key: Optional[str] = Field(
        None,
        max_length=64,
        description="Client-generated UUID to prevent double-booking on retries.",
    )


class ReasonRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class OnboardRequest(BaseModel):
    license_number: Optional[str] = Field(None, max_length=64)
    vehicle_make: Optional[str] = Field(None, max_length=64)
    vehicle_model: Optional[str] = Field(None, max_length=64)
    vehicle_plate: Optional[str] = Field(None, max_length=32)
    vehicle_color: Optional[str] = Field(None, max_length=32)
    vehicle_type: Optional[str] = Field(None, max_length=32)
    capabilities: dict[str, Any] = Field(default_factory=dict)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class ProfileUpdateRequest(BaseModel):
    first_name: Optional[str] = Field(None, max_length=80)
    last_name: Optional[str] = Field(None, max_length=80)
    phone: Optional[str] = Field(None, max_length=32)
    license_number: Optional[str] = Field(None, max_length=64)
    vehicle_make: Optional[str] = Field(None, max_length=64)
    vehicle_model: Optional[str] = Field(None, max_length=64)
    vehicle_plate: Optional[str] = Field(None, max_length=32)
    vehicle_color: Optional[str] = Field(None, max_length=32)
    vehicle_type: Optional[str] = Field(None, max_length=32)
    capabilities: Optional[dict[str, Any]] = None


class AvailabilityRequest(BaseModel):
    is_available: bool
    is_online: Optional[bool] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class LocationUpdateRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    heading: Optional[float] = Field(None, ge=0, lt=360)
    speed: Optional[float] = Field(None, ge=0)


class CompleteRequest(BaseModel):
    actual_distance_km: Optional[float] = Field(None, ge=0)
    final_price: Optional[float] = Field(None, ge=0)


class ServiceZonesRequest(BaseModel):
    zone_ids: list[int] = Field(..., min_length=1)
    can_accept_inter_regional: bool = False


class ZoneTransferRequest(BaseModel):
    from_zone_id: int
    to_zone_id: int
    reason: Optional[str] = Field(None, max_length=255)


class ZoneCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    zone_type: ZoneType = ZoneType.REGIONAL
    center_lat: float = Field(..., ge=-90, le=90)
    center_lng: float = Field(..., ge=-180, le=180)
    radius_km: Optional[float] = Field(None, gt=0)
    boundary: Optional[Any] = None
    priority: int = 0
    allow_inter_regional: bool = True
    inter_regional_fee: float = Field(0.0, ge=0)
    connected_zone_ids: list[int] = Field(default_factory=list)


class DeliveryEstimateRequest(BaseModel):
    pickup: LocationIn
    dropoff: LocationIn
    delivery_type: DeliveryType = DeliveryType.PACKAGE


class DeliveryCreateRequest(DeliveryEstimateRequest):
    recipient_name: Optional[str] = Field(None, max_length=120)
    recipient_phone: Optional[str] = Field(None, max_length=32)
    package_description: Optional[str] = Field(None, max_length=255)


class IssueReportRequest(BaseModel):
    issue_type: str = Field(..., min_length=1, max_length=64)
    description: str = Field(..., min_length=1, max_length=500)


class MovingItemIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    quantity: int = Field(1, ge=1, le=500)
    requires_disassembly: bool = False


class MovingQuoteRequest(BaseModel):
    pickup: LocationIn
    dropoff: LocationIn
    items: list[MovingItemIn] = Field(default_factory=list)
    service_tier: ServiceTier = ServiceTier.STANDARD
    moving_date: Optional[datetime] = None
    estimated_volume: Optional[float] = Field(None, gt=0)
    requires_packing: bool = False
    requires_storage: bool = False
    requires_disassembly: bool = False


class MovingBookingRequest(MovingQuoteRequest):
    moving_date: datetime
    notes: Optional[str] = Field(None, max_length=1000)
    idempotency_key: Optional[str] = Field(None, max_length=64)


class EmergencyCreateRequest(BaseModel):
    location: LocationIn
    emergency_type: str = Field(..., min_length=1, max_length=64)
    severity: EmergencySeverity = EmergencySeverity.HIGH
    description: Optional[str] = Field(None, max_length=1000)
    contact_phone: Optional[str] = Field(None, max_length=32)
    destination: Optional[LocationIn] = None


class OrderItemIn(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1, le=100)


class OrderCreateRequest(BaseModel):
    store_id: int
    items: list[OrderItemIn] = Field(..., min_length=1)
    delivery: LocationIn
    notes: Optional[str] = Field(None, max_length=1000)


class OrderStatusRequest(BaseModel):
    status: OrderStatus
    note: Optional[str] = Field(None, max_length=255)


class BusinessHoursIn(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6)
    open_time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    close_time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    is_closed: bool = False


class StoreCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=160)
    description: Optional[str] = None
    category: str = Field(..., min_length=1, max_length=64)
    address: str = Field(..., min_length=1, max_length=255)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    phone: Optional[str] = Field(None, max_length=32)
    business_hours: list[BusinessHoursIn] = Field(default_factory=list)


class StoreUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=160)
    description: Optional[str] = None
    category: Optional[str] = Field(None, min_length=1, max_length=64)
    address: Optional[str] = Field(None, max_length=255)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    phone: Optional[str] = Field(None, max_length=32)
    is_active: Optional[bool] = None


class BusinessHoursRequest(BaseModel):
    business_hours: list[BusinessHoursIn]


class ProductCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=160)
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=64)
    in_stock: bool = True
    stock_quantity: Optional[int] = Field(None, ge=0)


class ProductUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=160)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = Field(None, min_length=1, max_length=64)
    in_stock: Optional[bool] = None
    stock_quantity: Optional[int] = Field(None, ge=0)


class InventoryRequest(BaseModel):
    stock_quantity: int = Field(..., ge=0)
    operation: str = Field("set", pattern="^(set|add|subtract)$")


class ReviewCreateRequest(BaseModel):
    booking_id: Optional[int] = None
    store_id: Optional[int] = None
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)
    service_rating: Optional[int] = Field(None, ge=1, le=5)
    timeliness_rating: Optional[int] = Field(None, ge=1, le=5)
    cleanliness_rating: Optional[int] = Field(None, ge=1, le=5)
    communication_rating: Optional[int] = Field(None, ge=1, le=5)


class ReviewUpdateRequest(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)
    service_rating: Optional[int] = Field(None, ge=1, le=5)
    timeliness_rating: Optional[int] = Field(None, ge=1, le=5)
    cleanliness_rating: Optional[int] = Field(None, ge=1, le=5)
    communication_rating: Optional[int] = Field(None, ge=1, le=5)


class DayHireSetupRequest(BaseModel):
    is_available: bool = True
    hourly_rate: float = Field(..., gt=0)
    minimum_hours: int = Field(4, ge=1, le=24)
    maximum_hours: int = Field(12, ge=1, le=24)


class DayBookingRequest(BaseModel):
    driver_id: int
    scheduled_at: datetime
    duration_hours: float = Field(..., gt=0)
    service_area: str = Field(..., min_length=1, max_length=160)
    pickup: Optional[LocationIn] = None
    special_requirements: Optional[str] = Field(None, max_length=1000)
    contact_phone: Optional[str] = Field(None, max_length=32)


class PlaceCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=160)
    description: Optional[str] = None
    category_id: Optional[int] = None
    address: Optional[str] = Field(None, max_length=255)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    contact_phone: Optional[str] = Field(None, max_length=32)
    website: Optional[str] = Field(None, max_length=255)


class PlaceUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=160)
    description: Optional[str] = None
    category_id: Optional[int] = None
    address: Optional[str] = Field(None, max_length=255)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    contact_phone: Optional[str] = Field(None, max_length=32)
    website: Optional[str] = Field(None, max_length=255)


class VoteRequest(BaseModel):
    is_positive: bool
    suggested_category_id: Optional[int] = None
    comment: Optional[str] = Field(None, max_length=255)


class AnonymousVoteRequest(VoteRequest):
    session_id: str = Field(..., min_length=8, max_length=64)


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=255)


class CategoryCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=80)
    description: Optional[str] = Field(None, max_length=255)
    icon: Optional[str] = Field(None, max_length=64)
    sort_order: int = 0


class CategoryUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=80)
    description: Optional[str] = Field(None, max_length=255)
    icon: Optional[str] = Field(None, max_length=64)
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


class SubscribeRequest(BaseModel):
    plan_id: str = Field(..., min_length=1, max_length=32)


# ── Responses ─────────────────────────────────────────────────────────


class UserResponse(BaseModel):
    id: int
    email: str
    phone: Optional[str] = None
    first_name: str
    last_name: str
    role: UserRole
    is_active: bool
    subscription_tier: Optional[SubscriptionTier] = None
    subscription_expires_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ProviderProfileResponse(BaseModel):
    id: int
    user_id: int
    role: UserRole
    license_number: Optional[str] = None
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_plate: Optional[str] = None
    vehicle_color: Optional[str] = None
    vehicle_type: Optional[str] = None
    capabilities: Optional[dict[str, Any]] = None
    verification_status: VerificationStatus
    is_available: bool
    is_online: bool
    current_lat: Optional[float] = None
    current_lng: Optional[float] = None
    current_zone_id: Optional[int] = None
    last_location_at: Optional[datetime] = None
    rating: Optional[float] = None
    total_rides: int = 0
    total_earnings: float = 0.0
    monthly_commission_due: float = 0.0
    day_booking_enabled: bool = False
    day_booking_rate: Optional[float] = None
    day_booking_min_hours: int = 4
    day_booking_max_hours: int = 12
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ZoneResponse(BaseModel):
    id: int
    name: str
    zone_type: ZoneType
    center_lat: float
    center_lng: float
    radius_km: Optional[float] = None
    boundary: Optional[Any] = None
    priority: int
    is_active: bool
    allow_inter_regional: bool
    inter_regional_fee: float
    connected_zone_ids: Optional[list[int]] = None

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: int
    booking_number: str
    kind: BookingKind
    booking_type: BookingType
    status: BookingStatus
    customer_id: int
    provider_id: Optional[int] = None
    pickup_lat: float
    pickup_lng: float
    pickup_address: Optional[str] = None
    dropoff_lat: Optional[float] = None
    dropoff_lng: Optional[float] = None
    dropoff_address: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    ride_type: Optional[str] = None
    estimated_distance_km: Optional[float] = None
    estimated_duration_min: Optional[float] = None
    estimated_price: Optional[float] = None
    surge_multiplier: Optional[float] = None
    final_price: Optional[float] = None
    actual_distance_km: Optional[float] = None
    platform_commission: Optional[float] = None
    provider_earning: Optional[float] = None
    origin_zone_id: Optional[int] = None
    destination_zone_id: Optional[int] = None
    is_inter_regional: bool = False
    inter_regional_fee: Optional[float] = None
    requires_approval: bool = False
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    service_data: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    accepted_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OfferResponse(BaseModel):
    id: int
    booking_id: int
    provider_id: int
    status: OfferStatus
    attempt: int
    distance_km: Optional[float] = None
    decline_reason: Optional[str] = None
    sent_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TrackingResponse(BaseModel):
    id: int
    booking_id: Optional[int] = None
    delivery_id: Optional[int] = None
    status: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    message: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class EarningResponse(BaseModel):
    id: int
    booking_id: Optional[int] = None
    delivery_id: Optional[int] = None
    gross_amount: float
    commission: float
    net_amount: float
    month_year: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DeliveryResponse(BaseModel):
    id: int
    tracking_code: str
    order_id: Optional[int] = None
    customer_id: int
    rider_id: Optional[int] = None
    delivery_type: DeliveryType
    status: DeliveryStatus
    pickup_lat: float
    pickup_lng: float
    pickup_address: Optional[str] = None
    dropoff_lat: float
    dropoff_lng: float
    dropoff_address: Optional[str] = None
    recipient_name: Optional[str] = None
    recipient_phone: Optional[str] = None
    package_description: Optional[str] = None
    distance_km: Optional[float] = None
    delivery_fee: float
    platform_commission: Optional[float] = None
    rider_earning: Optional[float] = None
    issues: Optional[list[dict[str, Any]]] = None
    assigned_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class StoreResponse(BaseModel):
    id: int
    owner_id: int
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    address: Optional[str] = None
    latitude: float
    longitude: float
    phone: Optional[str] = None
    business_hours: Optional[list[dict[str, Any]]] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ProductResponse(BaseModel):
    id: int
    store_id: int
    name: str
    description: Optional[str] = None
    price: float
    category: Optional[str] = None
    in_stock: bool
    stock_quantity: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ReviewResponse(BaseModel):
    id: int
    reviewer_id: int
    receiver_id: Optional[int] = None
    booking_id: Optional[int] = None
    store_id: Optional[int] = None
    rating: int
    comment: Optional[str] = None
    service_rating: Optional[int] = None
    timeliness_rating: Optional[int] = None
    cleanliness_rating: Optional[int] = None
    communication_rating: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: int
    order_number: str
    customer_id: int
    store_id: int
    items: list[dict[str, Any]]
    subtotal: float
    delivery_fee: float
    total_amount: float
    status: OrderStatus
    delivery_address: Optional[str] = None
    delivery_lat: float
    delivery_lng: float
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PlaceResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    category_id: Optional[int] = None
    address: Optional[str] = None
    latitude: float
    longitude: float
    contact_phone: Optional[str] = None
    website: Optional[str] = None
    status: PlaceStatus
    created_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CategoryResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    sort_order: int
    is_active: bool

    model_config = {"from_attributes": True}


class VoteResponse(BaseModel):
    id: int
    place_id: int
    user_id: Optional[int] = None
    is_positive: bool
    suggested_category_id: Optional[int] = None
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class NotificationResponse(BaseModel):
    id: int
    type: NotificationType
    title: str
    body: str
    data: Optional[dict[str, Any]] = None
    priority: Priority
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"
    realtime_connections: int = 0
