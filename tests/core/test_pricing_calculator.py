# tests/core/test_pricing_calculator.py
"""
Тесты для калькулятора стоимости и выбора зоны доставки.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from fulfillment.core.catalog.models import DeliveryZone
from fulfillment.core.pricing.calculator import (
    DefaultFeeSchedule,
    Point,
    PricingCalculator,
    delivery_fee,
    distance,
    estimate_duration_minutes,
    out_of_range,
)
from fulfillment.core.pricing.zones import ZoneResolver
from tests.fakes import DELIVERY_LAT, DELIVERY_LON, MERCHANT_LAT, MERCHANT_LON, InMemoryStorage


SCHEDULE = DefaultFeeSchedule(base_fee=10000, per_km_fee=2000)


def jakarta_zone(**overrides) -> DeliveryZone:
    data = {
        "id": 1,
        "city": "Jakarta",
        "min_distance": 0.0,
        "max_distance": 5.0,
        "base_fee": 8000,
        "per_km_fee": 1500,
    }
    data.update(overrides)
    return DeliveryZone(**data)


class TestDistance:
    """Тесты для формулы Haversine."""

    def test_same_point_is_zero(self) -> None:
        point = Point(MERCHANT_LAT, MERCHANT_LON)
        assert distance(point, point) == 0.0

    def test_known_distance(self) -> None:
        """0.02 градуса широты ≈ 2.224 км."""
        result = distance(Point(MERCHANT_LAT, MERCHANT_LON), Point(DELIVERY_LAT, DELIVERY_LON))
        assert result == pytest.approx(2.2239, abs=1e-3)

    def test_symmetric(self) -> None:
        a = Point(-6.2, 106.8)
        b = Point(-6.3, 106.9)
        assert distance(a, b) == pytest.approx(distance(b, a))


class TestDeliveryFee:
    """Тесты для стоимости доставки."""

    def test_partial_kilometre_rounds_up(self) -> None:
        assert delivery_fee(2.2239, SCHEDULE) == 16000

    def test_whole_kilometres(self) -> None:
        assert delivery_fee(3.0, SCHEDULE) == 16000
        assert delivery_fee(3.01, SCHEDULE) == 18000

    def test_zero_distance_is_base_fee(self) -> None:
        assert delivery_fee(0.0, SCHEDULE) == 10000

    def test_negative_distance_rejected(self) -> None:
        with pytest.raises(ValueError):
            delivery_fee(-1.0, SCHEDULE)

    def test_out_of_range_boundary(self) -> None:
        """Граница радиуса ещё входит в зону доставки."""
        assert out_of_range(10.0, 10.0) is False
        assert out_of_range(10.01, 10.0) is True

    def test_estimate_duration(self) -> None:
        assert estimate_duration_minutes(15.0, 30.0) == 30


class TestPricingCalculator:
    """Тесты для сводного расчёта заказа."""

    @pytest.fixture
    def calculator(self) -> PricingCalculator:
        return PricingCalculator(SCHEDULE, service_fee=1000, platform_fee_percent=1)

    def test_breakdown_totals(self, calculator: PricingCalculator) -> None:
        """total = subtotal + доставка + сборы - скидка."""
        fees = calculator.breakdown(subtotal=120000, delivery_fee=16000, discount=8000, commission_rate=15.0)

        assert fees.service_fee == 1000
        assert fees.platform_fee == 1200
        assert fees.total_amount == 120000 + 16000 + 1000 + 1200 - 8000
        assert fees.merchant_commission == 18000
        assert fees.driver_earnings == 16000
        assert fees.platform_earnings == 18000 + 1000 + 1200

    def test_platform_fee_rounds_down(self, calculator: PricingCalculator) -> None:
        assert calculator.platform_fee(12345) == 123

    def test_commission_rounds_down(self, calculator: PricingCalculator) -> None:
        fees = calculator.breakdown(subtotal=999, delivery_fee=0, discount=0, commission_rate=15.0)
        assert fees.merchant_commission == 149

    def test_driver_share(self) -> None:
        """Водитель получает долю доставки, остаток уходит платформе."""
        calculator = PricingCalculator(SCHEDULE, service_fee=0, platform_fee_percent=0, driver_delivery_share_percent=80)
        fees = calculator.breakdown(subtotal=100000, delivery_fee=16000, discount=0, commission_rate=10.0)

        assert fees.driver_earnings == 12800
        assert fees.platform_earnings == 10000 + 3200

    @pytest.mark.parametrize("discount", [-1, 138201])
    def test_discount_out_of_bounds(self, calculator: PricingCalculator, discount: int) -> None:
        with pytest.raises(ValueError):
            calculator.breakdown(subtotal=120000, delivery_fee=16000, discount=discount, commission_rate=15.0)

    def test_discount_can_cover_everything(self, calculator: PricingCalculator) -> None:
        fees = calculator.breakdown(subtotal=120000, delivery_fee=16000, discount=138200, commission_rate=15.0)
        assert fees.total_amount == 0

    def test_quote_uses_default_schedule(self, calculator: PricingCalculator) -> None:
        fees = calculator.quote(120000, 2.2239, None, 15.0)
        assert fees.delivery_fee == 16000
        assert fees.discount == 0
        assert fees.total_amount == 138200

    def test_quote_uses_zone(self, calculator: PricingCalculator) -> None:
        fees = calculator.quote(120000, 2.2239, jakarta_zone(), 15.0)
        assert fees.delivery_fee == 8000 + 3 * 1500

    def test_apply_discount(self, calculator: PricingCalculator) -> None:
        quote = calculator.quote(120000, 2.2239, None, 15.0)
        fees = calculator.apply_discount(quote, 8000)

        assert fees.discount == 8000
        assert fees.total_amount == 130200
        assert fees.driver_earnings == quote.driver_earnings
        assert fees.platform_earnings == quote.platform_earnings

    def test_apply_discount_rejects_excess(self, calculator: PricingCalculator) -> None:
        quote = calculator.quote(120000, 2.2239, None, 15.0)
        with pytest.raises(ValueError):
            calculator.apply_discount(quote, quote.total_amount + 1)

    def test_delivery_minutes(self, calculator: PricingCalculator) -> None:
        # 20 минут приготовления + ceil(2.2239 * 5)
        assert calculator.delivery_minutes(2.2239, 20) == 32

    def test_travel_minutes(self, calculator: PricingCalculator) -> None:
        assert calculator.travel_minutes(2.22) == 5
        slow = PricingCalculator(SCHEDULE, service_fee=0, platform_fee_percent=0, average_speed_kmh=20.0)
        assert slow.travel_minutes(2.22) == 7


class TestZoneResolver:
    """Тесты для выбора зоны доставки."""

    @pytest.mark.asyncio
    async def test_resolves_covering_zone(self) -> None:
        storage = InMemoryStorage()
        storage.state.zones = [jakarta_zone(), jakarta_zone(id=2, min_distance=5.0, max_distance=10.0, base_fee=20000)]

        async with storage.transaction() as uow:
            near = await ZoneResolver().resolve(uow, "Jakarta", 2.2)
            far = await ZoneResolver().resolve(uow, "Jakarta", 7.5)

        assert near.id == 1
        assert far.id == 2

    @pytest.mark.asyncio
    async def test_no_zone_returns_none(self) -> None:
        storage = InMemoryStorage()
        storage.state.zones = [jakarta_zone(), jakarta_zone(id=2, city="Bandung", max_distance=50.0)]

        async with storage.transaction() as uow:
            assert await ZoneResolver().resolve(uow, "Jakarta", 12.0) is None
            assert await ZoneResolver().resolve(uow, "Surabaya", 1.0) is None

    @pytest.mark.asyncio
    async def test_inactive_zone_ignored(self) -> None:
        storage = InMemoryStorage()
        storage.state.zones = [jakarta_zone(is_active=False)]

        async with storage.transaction() as uow:
            assert await ZoneResolver().resolve(uow, "Jakarta", 1.0) is None

    @pytest.mark.asyncio
    async def test_cache_miss_fills_cache(self, mock_redis: AsyncMock) -> None:
        storage = InMemoryStorage()
        storage.state.zones = [jakarta_zone()]
        resolver = ZoneResolver(mock_redis, ttl=60)

        async with storage.transaction() as uow:
            zone = await resolver.resolve(uow, "Jakarta", 1.0)

        assert zone.id == 1
        mock_redis.set_json.assert_awaited_once()
        key, payload = mock_redis.set_json.call_args.args
        assert key == "zones:jakarta"
        assert payload[0]["base_fee"] == 8000
        assert mock_redis.set_json.call_args.kwargs["ttl"] == 60

    @pytest.mark.asyncio
    async def test_cache_hit_skips_storage(self, mock_redis: AsyncMock) -> None:
        storage = InMemoryStorage()
        mock_redis.get_json = AsyncMock(return_value=[jakarta_zone(base_fee=5000).model_dump()])

        async with storage.transaction() as uow:
            zone = await ZoneResolver(mock_redis).resolve(uow, "Jakarta", 1.0)

        assert zone.base_fee == 5000
        mock_redis.set_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_failure_falls_back_to_storage(self, mock_redis: AsyncMock) -> None:
        storage = InMemoryStorage()
        storage.state.zones = [jakarta_zone()]
        mock_redis.get_json = AsyncMock(side_effect=ConnectionError("redis down"))
        mock_redis.set_json = AsyncMock(side_effect=ConnectionError("redis down"))

        async with storage.transaction() as uow:
            zone = await ZoneResolver(mock_redis).resolve(uow, "Jakarta", 1.0)

        assert zone.id == 1
