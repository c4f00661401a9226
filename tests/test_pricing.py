"""Unit tests for the dynamic pricing engine."""

from datetime import datetime

import pytest

from src.domain.entities import MovingItem
from src.domain.enums import DeliveryType, RideType, ServiceTier
from src.domain.pricing import (
    DeliveryFeeStrategy,
    PricingEngine,
    RideFareStrategy,
    SurgePolicy,
    crew_size,
    truck_size,
)

MONDAY_NOON = datetime(2024, 1, 1, 12, 0)
MONDAY_RUSH = datetime(2024, 1, 1, 8, 0)
MONDAY_LATE = datetime(2024, 1, 1, 23, 0)
SATURDAY_NOON = datetime(2024, 1, 6, 12, 0)


class TestPricingStrategies:
    def test_ride_fare(self):
        strategy = RideFareStrategy()
        assert strategy.calculate(10.0, 20.0) == 16.0  # 3 + 10*0.5 + 20*0.4

    def test_ride_fare_type_and_surge(self):
        strategy = RideFareStrategy(type_multiplier=1.3, surge_multiplier=1.5)
        assert strategy.calculate(10.0, 20.0) == 31.0  # 16 * 1.3 * 1.5 = 31.2

    def test_minimum_fare(self):
        assert RideFareStrategy().calculate(0.5, 1.0) == 5.0

    def test_delivery_fee(self):
        assert DeliveryFeeStrategy().calculate(10.0) == 7.0  # 2 + 10*0.5

    def test_delivery_fee_type_multiplier(self):
        assert DeliveryFeeStrategy(DeliveryType.FOOD).calculate(20.0) == 12.0  # 2.2 + 10

    def test_delivery_minimum_fee(self):
        assert DeliveryFeeStrategy().calculate(1.0) == 5.0


class TestSurgePolicy:
    policy = SurgePolicy()

    def test_no_supply(self):
        assert self.policy.compute(0, 10, MONDAY_NOON) == 1.1

    def test_quiet_period(self):
        assert self.policy.compute(5, 0, MONDAY_NOON) == 1.0

    def test_rush_hour(self):
        assert self.policy.compute(5, 0, MONDAY_RUSH) == 1.2

    def test_late_night(self):
        assert self.policy.compute(5, 0, MONDAY_LATE) == 1.25

    def test_weekend(self):
        assert self.policy.compute(5, 0, SATURDAY_NOON) == 1.1

    def test_time_factor_needs_enough_supply(self):
        assert self.policy.compute(2, 0, MONDAY_RUSH) == 1.0

    def test_demand_factor(self):
        assert self.policy.compute(2, 10, MONDAY_NOON) == 1.3  # ratio 5
        assert self.policy.compute(4, 6, MONDAY_NOON) == 1.1  # ratio 1.5

    def test_single_request_is_not_demand(self):
        assert self.policy.compute(1, 1, MONDAY_NOON) == 1.0

    def test_capped(self):
        assert self.policy.compute(5, 25, MONDAY_RUSH) == 1.5  # 1.2 * 1.3 capped


class TestPricingEngine:
    engine = PricingEngine()

    def test_estimate_ride(self):
        estimate = self.engine.estimate_ride(
            10.0, RideType.ECONOMY, supply=1, demand=0, at=MONDAY_NOON
        )
        assert estimate.estimated_price == 16.0
        assert estimate.estimated_duration_min == 20.0
        assert estimate.surge_multiplier == 1.0
        assert estimate.available_providers == 1
        assert estimate.currency == "GHS"
        assert estimate.breakdown.distance_price == 5

    def test_estimate_ride_without_supply_surges(self):
        estimate = self.engine.estimate_ride(10.0, supply=0, at=MONDAY_NOON)
        assert estimate.surge_multiplier == 1.1
        assert estimate.estimated_price == 18.0  # 16 * 1.1 = 17.6

    def test_premium_costs_more(self):
        economy = self.engine.estimate_ride(10.0, RideType.ECONOMY, 1, 0, MONDAY_NOON)
        premium = self.engine.estimate_ride(10.0, RideType.PREMIUM, 1, 0, MONDAY_NOON)
        assert premium.estimated_price > economy.estimated_price

    def test_final_price_override_wins(self):
        assert self.engine.final_price(20.0, 5.0, 1.2, override=33) == 33.0

    def test_final_price_keeps_estimate_without_distance(self):
        assert self.engine.final_price(18.0) == 18.0

    def test_final_price_from_distance(self):
        assert self.engine.final_price(18.0, actual_distance_km=10.0) == 8.0
        assert self.engine.final_price(18.0, 10.0, surge_multiplier=1.5) == 12.0

    def test_split_commission(self):
        assert PricingEngine.split_commission(100.0, 0.18) == (18.0, 82.0)

    def test_split_commission_with_discount(self):
        commission, earning = PricingEngine.split_commission(100.0, 0.18, discount=0.15)
        assert commission == pytest.approx(15.3)
        assert earning == pytest.approx(84.7)

    def test_inter_regional_fee(self):
        assert PricingEngine.inter_regional_fee(50.0, 80.0, 100.0) == 280.0


class TestMovingQuote:
    items = [MovingItem("Sofa", 2), MovingItem("Bed", 1, requires_disassembly=True)]

    def test_weekday_quote(self):
        quote = PricingEngine.moving_quote(
            30.0, self.items, ServiceTier.STANDARD, moving_date=MONDAY_NOON
        )
        assert quote.estimated_duration_hours == 4
        assert quote.labor_cost == 1000.0
        assert quote.transport_cost == 150.0
        assert quote.weekend_surcharge == 0.0
        assert quote.total_price == 1236.0  # 1150 + 7.5 % VAT
        assert quote.crew_size == 3
        assert quote.truck_size == "SMALL_VAN"

    def test_weekend_surcharge(self):
        quote = PricingEngine.moving_quote(
            30.0, self.items, ServiceTier.STANDARD, moving_date=SATURDAY_NOON
        )
        assert quote.weekend_surcharge == 200.0
        assert quote.total_price == 1451.0

    def test_extras_are_itemised(self):
        quote = PricingEngine.moving_quote(
            30.0,
            self.items,
            ServiceTier.STANDARD,
            requires_packing=True,
            requires_storage=True,
            requires_disassembly=True,
        )
        assert quote.packing_cost == 15.0
        assert quote.disassembly_cost == 20.0
        assert quote.storage_cost == 100.0

    def test_crew_grows_with_items(self):
        assert crew_size(ServiceTier.BASIC, 60) == 3
        assert crew_size(ServiceTier.PREMIUM, 120) == 6

    def test_truck_size(self):
        assert truck_size(30.0, 0) == "LARGE_TRUCK"
        assert truck_size(None, 0) == "MEDIUM_TRUCK"
        assert truck_size(None, 150) == "EXTRA_LARGE_TRUCK"
