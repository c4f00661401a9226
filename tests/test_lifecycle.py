"""Unit tests for the booking / delivery / order status lifecycles."""

import pytest

from src.domain.enums import BookingStatus, DeliveryStatus, OrderStatus, UserRole
from src.domain.errors import Conflict, InvalidStateTransition
from src.domain.lifecycle import (
    ACTIVE_BOOKING_STATUSES,
    booking_machine,
    delivery_machine,
    order_machine,
    role_event,
)


class TestBookingLifecycle:
    # ── Valid transitions ─────────────────────────────────────────

    def test_pending_to_assigned(self):
        booking_machine.ensure(BookingStatus.PENDING, BookingStatus.DRIVER_ASSIGNED)

    def test_arrival_is_optional(self):
        assert booking_machine.can(BookingStatus.DRIVER_ASSIGNED, BookingStatus.IN_PROGRESS)
        assert booking_machine.can(BookingStatus.DRIVER_ASSIGNED, BookingStatus.DRIVER_ARRIVED)

    def test_cancel_before_trip_starts(self):
        for status in (
            BookingStatus.PENDING,
            BookingStatus.DRIVER_ASSIGNED,
            BookingStatus.DRIVER_ARRIVED,
        ):
            assert booking_machine.can(status, BookingStatus.CANCELLED)

    def test_in_progress_only_completes(self):
        assert booking_machine.allowed_from(BookingStatus.IN_PROGRESS) == {
            BookingStatus.COMPLETED
        }

    # ── Invalid transitions ───────────────────────────────────────

    def test_pending_to_completed_fails(self):
        with pytest.raises(InvalidStateTransition):
            booking_machine.ensure(BookingStatus.PENDING, BookingStatus.COMPLETED)

    def test_in_progress_to_cancelled_fails(self):
        """Once the trip has started it can only complete -- not cancel."""
        with pytest.raises(InvalidStateTransition):
            booking_machine.ensure(BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED)

    def test_terminal_statuses(self):
        for status in (
            BookingStatus.COMPLETED,
            BookingStatus.CANCELLED,
            BookingStatus.NO_DRIVER_AVAILABLE,
        ):
            assert booking_machine.is_terminal(status)
        assert not booking_machine.is_terminal(BookingStatus.PENDING)

    def test_error_is_a_conflict_with_code(self):
        with pytest.raises(Conflict) as info:
            booking_machine.ensure(BookingStatus.COMPLETED, BookingStatus.PENDING)
        assert info.value.status_code == 409
        assert info.value.error == "INVALID_STATUS_TRANSITION"
        assert "COMPLETED" in info.value.message

    def test_active_statuses_exclude_pending(self):
        assert BookingStatus.PENDING not in ACTIVE_BOOKING_STATUSES
        assert BookingStatus.IN_PROGRESS in ACTIVE_BOOKING_STATUSES


class TestDeliveryLifecycle:
    def test_happy_path(self):
        path = [
            DeliveryStatus.PENDING,
            DeliveryStatus.ASSIGNED,
            DeliveryStatus.PICKUP_IN_PROGRESS,
            DeliveryStatus.PICKED_UP,
            DeliveryStatus.IN_TRANSIT,
            DeliveryStatus.DELIVERED,
        ]
        for current, target in zip(path, path[1:]):
            delivery_machine.ensure(current, target)

    def test_cannot_skip_pickup(self):
        with pytest.raises(InvalidStateTransition):
            delivery_machine.ensure(DeliveryStatus.ASSIGNED, DeliveryStatus.IN_TRANSIT)

    def test_no_cancel_after_pickup(self):
        assert not delivery_machine.can(DeliveryStatus.PICKED_UP, DeliveryStatus.CANCELLED)


class TestOrderLifecycle:
    def test_any_status_while_open(self):
        assert order_machine.can(OrderStatus.ORDER_PROCESSING, OrderStatus.READY_FOR_PICKUP)
        assert order_machine.can(OrderStatus.READY_FOR_PICKUP, OrderStatus.ORDER_PROCESSING)

    def test_no_self_transition(self):
        assert not order_machine.can(OrderStatus.ORDER_PROCESSING, OrderStatus.ORDER_PROCESSING)

    def test_terminal_orders_are_frozen(self):
        with pytest.raises(InvalidStateTransition):
            order_machine.ensure(OrderStatus.DELIVERED, OrderStatus.ORDER_PROCESSING)


class TestRoleEvents:
    def test_driver_events_have_no_prefix(self):
        assert role_event(UserRole.DRIVER, "trip_started") == "trip_started"

    def test_role_prefixes(self):
        assert role_event(UserRole.TAXI_DRIVER, "trip_started") == "taxi_trip_started"
        assert role_event(UserRole.HOUSE_MOVER, "booking_accepted") == "moving_booking_accepted"
        assert role_event(UserRole.EMERGENCY_RESPONDER, "driver_arrived") == "emergency_driver_arrived"
        assert role_event(UserRole.DISPATCHER, "trip_completed") == "dispatch_trip_completed"
