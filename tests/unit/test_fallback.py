"""Unit tests for the fallback chain."""

from unittest.mock import AsyncMock

import pytest

from phone_sync.fallback.service import FallbackService
from phone_sync.models.config import FallbackConfig
from phone_sync.models.data_models import EventType, FallbackSource
from phone_sync.models.phone import Phone, PhoneSpecifications, PriceSnapshot
from phone_sync.storage.cache import MemoryCache


def _phone(brand="Apple", model="iPhone 15", price=79900):
    return Phone(brand=brand, model=model, pricing={"mrp": price, "current_price": price})


@pytest.fixture
def cache(clock):
    return MemoryCache(now=clock.now)


@pytest.fixture
def fallback(monitor, cache, clock):
    return FallbackService(FallbackConfig(retry_delay_ms=100), monitor=monitor, cache=cache, sleeper=clock.sleep)


def _failing(message="upstream down"):
    return AsyncMock(side_effect=RuntimeError(message))


class TestPhoneFallback:

    @pytest.mark.asyncio
    async def test_primary_success_is_cached(self, fallback, cache):
        fetcher = AsyncMock(return_value=_phone())

        result = await fallback.get_phone_data_with_fallback("Apple", "iPhone 15", fetcher)

        assert result.success
        assert result.source is FallbackSource.ALTERNATIVE_API
        assert not result.from_cache
        assert result.data.model == "iPhone 15"
        assert await cache.get("fallback:phone:apple-iphone-15") is not None

    @pytest.mark.asyncio
    async def test_primary_retried_before_falling_back(self, fallback, clock):
        fetcher = AsyncMock(side_effect=[RuntimeError("flaky"), _phone().model_dump()])

        result = await fallback.get_phone_data_with_fallback("Apple", "iPhone 15", fetcher)

        assert result.success
        assert result.source is FallbackSource.ALTERNATIVE_API
        assert not result.from_cache
        assert fetcher.call_count == 2
        assert clock.sleeps == [0.1]

    @pytest.mark.asyncio
    async def test_cached_copy_served_when_primary_fails(self, fallback, monitor, clock):
        await fallback.get_phone_data_with_fallback("Samsung", "Galaxy A55", AsyncMock(return_value=_phone("Samsung", "Galaxy A55", 39999)))

        fetcher = _failing()
        result = await fallback.get_phone_data_with_fallback("Samsung", "Galaxy A55", fetcher)

        assert result.success
        assert result.source is FallbackSource.CACHE
        assert result.from_cache
        assert result.data.pricing.current_price == 39999
        assert fetcher.call_count == 3
        assert clock.sleeps == [0.1, 0.2]
        reasons = [e.metadata["reason"] for e in monitor.get_events(type=EventType.FALLBACK_ACTIVATED)]
        assert reasons[-1].startswith("Primary API failed")
        assert reasons[0] == "Primary API unavailable"

    @pytest.mark.asyncio
    async def test_static_table_used_for_known_phone(self, fallback):
        result = await fallback.get_phone_data_with_fallback("Apple", "iPhone 15", _failing())

        assert result.success
        assert result.source is FallbackSource.STATIC
        assert not result.from_cache
        assert result.data.pricing.current_price == 79900

    @pytest.mark.asyncio
    async def test_static_records_are_copied(self, fallback):
        result = await fallback.get_phone_data_with_fallback("apple", "iphone 15", _failing())
        result.data.pricing.current_price = 1

        assert fallback.static_phones["apple-iphone-15"].pricing.current_price == 79900

    @pytest.mark.asyncio
    async def test_total_failure_is_manual(self, fallback):
        result = await fallback.get_phone_data_with_fallback("Nokia", "3310", _failing())

        assert not result.success
        assert result.source is FallbackSource.MANUAL
        assert result.error == "All fallback mechanisms failed"
        assert result.data is None

    @pytest.mark.asyncio
    async def test_empty_primary_answer_skips_retries(self, fallback):
        fetcher = AsyncMock(return_value=None)

        result = await fallback.get_phone_data_with_fallback("Nokia", "3310", fetcher)

        assert fetcher.call_count == 1
        assert not result.success

    @pytest.mark.asyncio
    async def test_alternative_api_step_logs_and_passes(self, monitor, cache, clock):
        service = FallbackService(
            FallbackConfig(enable_alternative_apis=True, max_retries=1),
            monitor=monitor, cache=cache, sleeper=clock.sleep,
        )

        result = await service.get_phone_data_with_fallback("Nokia", "3310", _failing())

        assert not result.success
        reasons = [e.metadata["reason"] for e in monitor.get_events(type=EventType.FALLBACK_ACTIVATED)]
        assert "Alternative APIs not yet implemented" in reasons

    @pytest.mark.asyncio
    async def test_disabled_steps_are_skipped(self, monitor, cache, clock):
        service = FallbackService(
            FallbackConfig(enable_cache=False, enable_static_data=False, max_retries=1),
            monitor=monitor, cache=cache, sleeper=clock.sleep,
        )

        result = await service.get_phone_data_with_fallback("Apple", "iPhone 15", _failing())

        assert not result.success
        assert len(cache) == 0


class TestSpecificationsFallback:

    @pytest.mark.asyncio
    async def test_defaults_when_nothing_else(self, fallback):
        result = await fallback.get_specifications_with_fallback("nokia-3310", _failing())

        assert result.success
        assert result.source is FallbackSource.STATIC
        assert result.data.display.size == "Unknown"
        assert result.data.software.os == "Unknown"
        assert result.data.battery.capacity == 0

    @pytest.mark.asyncio
    async def test_cached_specs_preferred_over_defaults(self, fallback):
        specs = PhoneSpecifications.model_validate({"display": {"size": "6.1\""}})
        await fallback.get_specifications_with_fallback("apple-iphone-15", AsyncMock(return_value=specs))

        result = await fallback.get_specifications_with_fallback("apple-iphone-15", _failing())

        assert result.from_cache
        assert result.data.display.size == "6.1\""


class TestPriceFallback:

    @pytest.mark.asyncio
    async def test_positive_price_succeeds(self, fallback):
        result = await fallback.get_price_data_with_fallback(
            "apple-iphone-15", AsyncMock(return_value={"current_price": 75999, "mrp": 79900})
        )

        assert result.success
        assert result.data == PriceSnapshot(current_price=75999, mrp=79900)

    @pytest.mark.asyncio
    async def test_zero_price_does_not_count(self, fallback):
        result = await fallback.get_price_data_with_fallback(
            "apple-iphone-15", AsyncMock(return_value={"current_price": 0, "mrp": 0})
        )

        assert not result.success
        assert result.source is FallbackSource.MANUAL
        assert result.error == "No price data available"

    @pytest.mark.asyncio
    async def test_invalid_primary_payload_falls_back(self, fallback):
        result = await fallback.get_price_data_with_fallback(
            "apple-iphone-15", AsyncMock(return_value={"price": "n/a"})
        )

        assert not result.success

    @pytest.mark.asyncio
    async def test_cached_price_expires_within_a_day(self, fallback, clock):
        await fallback.get_price_data_with_fallback(
            "apple-iphone-15", AsyncMock(return_value={"current_price": 75999, "mrp": 79900})
        )

        clock.advance(23 * 3600)
        hit = await fallback.get_price_data_with_fallback("apple-iphone-15", _failing())
        clock.advance(2 * 3600)
        miss = await fallback.get_price_data_with_fallback("apple-iphone-15", _failing())

        assert hit.success and hit.from_cache
        assert not miss.success


class TestCacheProblems:

    @pytest.mark.asyncio
    async def test_cache_outage_is_a_miss(self, monitor, clock):
        broken = AsyncMock()
        broken.get.side_effect = ConnectionError("redis down")
        broken.set.side_effect = ConnectionError("redis down")
        service = FallbackService(FallbackConfig(max_retries=1), monitor=monitor, cache=broken, sleeper=clock.sleep)

        result = await service.get_phone_data_with_fallback("Apple", "iPhone 15", _failing())

        assert result.source is FallbackSource.STATIC
        assert service.get_fallback_stats()["cache_hit_rate"] == 0.0

    @pytest.mark.asyncio
    async def test_cache_write_failure_keeps_primary_result(self, monitor, clock):
        broken = AsyncMock()
        broken.set.side_effect = ConnectionError("redis down")
        service = FallbackService(monitor=monitor, cache=broken, sleeper=clock.sleep)

        result = await service.get_phone_data_with_fallback("Apple", "iPhone 15", AsyncMock(return_value=_phone()))

        assert result.success

    @pytest.mark.asyncio
    async def test_clear_cache(self, fallback, cache):
        await cache.set("unrelated", 1)
        await fallback.get_phone_data_with_fallback("Apple", "iPhone 15", AsyncMock(return_value=_phone()))

        assert await fallback.clear_cache() == 1
        assert await cache.get("unrelated") == 1

    @pytest.mark.asyncio
    async def test_clear_cache_with_cache_down(self, monitor):
        broken = AsyncMock()
        broken.delete_prefix.side_effect = ConnectionError("redis down")
        service = FallbackService(monitor=monitor, cache=broken)

        assert await service.clear_cache() == 0


class TestStats:

    @pytest.mark.asyncio
    async def test_stats(self, fallback):
        await fallback.get_phone_data_with_fallback("Apple", "iPhone 15", AsyncMock(return_value=_phone()))
        await fallback.get_phone_data_with_fallback("Apple", "iPhone 15", _failing())
        await fallback.get_phone_data_with_fallback("Nokia", "3310", _failing())

        stats = fallback.get_fallback_stats()

        assert stats["static_data_entries"] == 3
        assert stats["cache_hit_rate"] == 0.5
        assert stats["fallback_activations"] >= 2

    @pytest.mark.asyncio
    async def test_add_static_phone_data(self, fallback):
        fallback.add_static_phone_data("Nokia-3310", _phone("Nokia", "3310", 3500))

        result = await fallback.get_phone_data_with_fallback("Nokia", "3310", _failing())

        assert result.source is FallbackSource.STATIC
        assert fallback.get_fallback_stats()["static_data_entries"] == 4
