"""
Status lifecycles
=================

One transition table per trackable resource, plus a tiny ``StatusMachine``
wrapper that every provider role (driver, taxi driver, mover, responder,
dispatch rider) shares.

Bookings
--------
PENDING -> DRIVER_ASSIGNED -> [DRIVER_ARRIVED] -> IN_PROGRESS -> COMPLETED
with CANCELLED reachable before the trip starts and NO_DRIVER_AVAILABLE
set by the dispatcher when every attempt is exhausted.

Deliveries
----------
PENDING -> ASSIGNED -> PICKUP_IN_PROGRESS -> PICKED_UP -> IN_TRANSIT -> DELIVERED

Orders
------
Store owners may move an order to any status while it is not terminal.
"""

from __future__ import annotations

import enum
from typing import Generic, TypeVar

from .enums import BookingStatus, DeliveryStatus, OrderStatus, UserRole
from .errors import InvalidStateTransition

S = TypeVar("S", bound=enum.Enum)


BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingStatus.DRIVER_ASSIGNED,
        BookingStatus.CANCELLED,
        BookingStatus.NO_DRIVER_AVAILABLE,
    },
    BookingStatus.DRIVER_ASSIGNED: {
        BookingStatus.DRIVER_ARRIVED,
        BookingStatus.IN_PROGRESS,
        BookingStatus.CANCELLED,
    },
    BookingStatus.DRIVER_ARRIVED: {
        BookingStatus.IN_PROGRESS,
        BookingStatus.CANCELLED,
    },
    BookingStatus.IN_PROGRESS: {BookingStatus.COMPLETED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
    BookingStatus.NO_DRIVER_AVAILABLE: set(),
}

DELIVERY_TRANSITIONS: dict[DeliveryStatus, set[DeliveryStatus]] = {
    DeliveryStatus.PENDING: {DeliveryStatus.ASSIGNED, DeliveryStatus.CANCELLED},
    DeliveryStatus.ASSIGNED: {
        DeliveryStatus.PICKUP_IN_PROGRESS,
        DeliveryStatus.CANCELLED,
    },
    DeliveryStatus.PICKUP_IN_PROGRESS: {
        DeliveryStatus.PICKED_UP,
        DeliveryStatus.CANCELLED,
    },
    DeliveryStatus.PICKED_UP: {DeliveryStatus.IN_TRANSIT},
    DeliveryStatus.IN_TRANSIT: {DeliveryStatus.DELIVERED},
    DeliveryStatus.DELIVERED: set(),
    DeliveryStatus.CANCELLED: set(),
}

ORDER_TERMINAL = {
    OrderStatus.DELIVERED,
    OrderStatus.ORDER_REJECTED,
    OrderStatus.CANCELLED,
}

ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    status: (set() if status in ORDER_TERMINAL else set(OrderStatus) - {status})
    for status in OrderStatus
}

ACTIVE_BOOKING_STATUSES = (
    BookingStatus.DRIVER_ASSIGNED,
    BookingStatus.DRIVER_ARRIVED,
    BookingStatus.IN_PROGRESS,
)

ACTIVE_DELIVERY_STATUSES = (
    DeliveryStatus.ASSIGNED,
    DeliveryStatus.PICKUP_IN_PROGRESS,
    DeliveryStatus.PICKED_UP,
    DeliveryStatus.IN_TRANSIT,
)


class StatusMachine(Generic[S]):
    def __init__(self, name: str, transitions: dict[S, set[S]]):
        self.name = name
        self.transitions = transitions

    def allowed_from(self, current: S) -> set[S]:
        return set(self.transitions.get(current, set()))

    def can(self, current: S, target: S) -> bool:
        return target in self.transitions.get(current, set())

    def is_terminal(self, status: S) -> bool:
        return not self.transitions.get(status)

    def ensure(self, current: S, target: S) -> None:
        """Raise ``InvalidStateTransition`` unless *current -> target* is legal."""
        if not self.can(current, target):
            raise InvalidStateTransition(
                f"Cannot move {self.name} from {current.value} to {target.value}",
                error="INVALID_STATUS_TRANSITION",
            )


booking_machine: StatusMachine[BookingStatus] = StatusMachine(
    "booking", BOOKING_TRANSITIONS
)
delivery_machine: StatusMachine[DeliveryStatus] = StatusMachine(
    "delivery", DELIVERY_TRANSITIONS
)
order_machine: StatusMachine[OrderStatus] = StatusMachine("order", ORDER_TRANSITIONS)


# ── Socket event naming ───────────────────────────────────────────────

EVENT_PREFIXES: dict[UserRole, str] = {
    UserRole.DRIVER: "",
    UserRole.TAXI_DRIVER: "taxi_",
    UserRole.DISPATCHER: "dispatch_",
    UserRole.HOUSE_MOVER: "moving_",
    UserRole.EMERGENCY_RESPONDER: "emergency_",
}


def role_event(role: UserRole, base: str) -> str:
    """``role_event(TAXI_DRIVER, "trip_started") -> "taxi_trip_started"``."""
    return f"{EVENT_PREFIXES.get(role, '')}{base}"
