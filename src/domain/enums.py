"""Domain enumerations shared by the ORM models, services and API."""

import enum


class UserRole(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    DRIVER = "DRIVER"
    TAXI_DRIVER = "TAXI_DRIVER"
    DISPATCHER = "DISPATCHER"
    HOUSE_MOVER = "HOUSE_MOVER"
    EMERGENCY_RESPONDER = "EMERGENCY_RESPONDER"
    STORE_OWNER = "STORE_OWNER"
    CITY_ADMIN = "CITY_ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


ADMIN_ROLES = frozenset({UserRole.CITY_ADMIN, UserRole.SUPER_ADMIN})


class BookingKind(str, enum.Enum):
    RIDE = "RIDE"
    TAXI = "TAXI"
    MOVING = "MOVING"
    EMERGENCY = "EMERGENCY"
    DAY = "DAY"


# Which provider role serves each booking kind
KIND_PROVIDER_ROLE: dict[BookingKind, UserRole] = {
    BookingKind.RIDE: UserRole.DRIVER,
    BookingKind.TAXI: UserRole.TAXI_DRIVER,
    BookingKind.MOVING: UserRole.HOUSE_MOVER,
    BookingKind.EMERGENCY: UserRole.EMERGENCY_RESPONDER,
    BookingKind.DAY: UserRole.DRIVER,
}


class BookingType(str, enum.Enum):
    IMMEDIATE = "IMMEDIATE"
    SCHEDULED = "SCHEDULED"


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    DRIVER_ARRIVED = "DRIVER_ARRIVED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_DRIVER_AVAILABLE = "NO_DRIVER_AVAILABLE"


class DeliveryStatus(str, enum.Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    PICKUP_IN_PROGRESS = "PICKUP_IN_PROGRESS"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class DeliveryType(str, enum.Enum):
    PACKAGE = "PACKAGE"
    FOOD = "FOOD"
    GROCERY = "GROCERY"
    PHARMACY = "PHARMACY"
    DOCUMENTS = "DOCUMENTS"


class OrderStatus(str, enum.Enum):
    ORDER_PROCESSING = "ORDER_PROCESSING"
    ORDER_CONFIRMED = "ORDER_CONFIRMED"
    WAITING_COURIER = "WAITING_COURIER"
    COURIER_PICKING_UP = "COURIER_PICKING_UP"
    COURIER_ON_WAY = "COURIER_ON_WAY"
    COURIER_ARRIVED = "COURIER_ARRIVED"
    PREPARING = "PREPARING"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    ORDER_REJECTED = "ORDER_REJECTED"
    CANCELLED = "CANCELLED"


class OfferStatus(str, enum.Enum):
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"


class VerificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PlaceStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ZoneType(str, enum.Enum):
    LOCAL = "LOCAL"
    REGIONAL = "REGIONAL"
    INTER_REGIONAL = "INTER_REGIONAL"
    NATIONAL = "NATIONAL"
    INTERNATIONAL = "INTERNATIONAL"


class SubscriptionTier(str, enum.Enum):
    BASIC = "BASIC"
    PREMIUM = "PREMIUM"
    ENTERPRISE = "ENTERPRISE"


class Priority(str, enum.Enum):
    LOW = "LOW"
    STANDARD = "STANDARD"
    HIGH = "HIGH"
    URGENT = "URGENT"
    CRITICAL = "CRITICAL"


class NotificationType(str, enum.Enum):
    BOOKING_REQUEST = "BOOKING_REQUEST"
    BOOKING_ACCEPTED = "BOOKING_ACCEPTED"
    BOOKING_UPDATE = "BOOKING_UPDATE"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    NO_DRIVER_AVAILABLE = "NO_DRIVER_AVAILABLE"
    TRIP_COMPLETED = "TRIP_COMPLETED"
    REVIEW_REQUEST = "REVIEW_REQUEST"
    DELIVERY_UPDATE = "DELIVERY_UPDATE"
    ORDER_STATUS_UPDATE = "ORDER_STATUS_UPDATE"
    EMERGENCY_DISPATCH = "EMERGENCY_DISPATCH"
    SYSTEM_ALERT = "SYSTEM_ALERT"
    SAFETY_ALERT = "SAFETY_ALERT"
    SUBSCRIPTION_ACTIVATED = "SUBSCRIPTION_ACTIVATED"
    SUBSCRIPTION_RENEWED = "SUBSCRIPTION_RENEWED"
    ZONE_TRANSFER_REQUESTED = "ZONE_TRANSFER_REQUESTED"
    INTER_REGIONAL_BOOKING_REQUEST = "INTER_REGIONAL_BOOKING_REQUEST"
    DAY_BOOKING_ASSIGNED = "DAY_BOOKING_ASSIGNED"
    NEW_REVIEW = "NEW_REVIEW"


class RideType(str, enum.Enum):
    ECONOMY = "ECONOMY"
    COMFORT = "COMFORT"
    PREMIUM = "PREMIUM"
    SUV = "SUV"
    SHARED = "SHARED"
    TAXI = "TAXI"


class ServiceTier(str, enum.Enum):
    BASIC = "BASIC"
    STANDARD = "STANDARD"
    PREMIUM = "PREMIUM"


class EmergencySeverity(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
