"""Unit tests for DataSyncService (catalog in memory, sources mocked)."""

from unittest.mock import AsyncMock

import pytest

from phone_sync.adapters.gsmarena import GSMArenaService
from phone_sync.adapters.price_tracking import PriceTrackingService
from phone_sync.errors import CatalogError, SourceAPIError
from phone_sync.models.config import DataSyncConfig, GSMArenaConfig, PriceTrackingConfig
from phone_sync.models.data_models import EventType, SyncSource, SyncStatus
from phone_sync.models.phone import Phone, PriceData
from phone_sync.models.upstream import GSMArenaPhone
from phone_sync.pipeline.orchestrator import MAX_RETAINED_JOBS, DataSyncService
from phone_sync.storage.cache import MemoryCache
from tests.fixtures.sample_data import gsmarena_phone, price_data, retailer_price


def _raw(brand="Apple", model="iPhone 15", **overrides):
    return GSMArenaPhone.model_validate(gsmarena_phone(brand, model, **overrides))


@pytest.fixture
def gsmarena(monitor):
    service = GSMArenaService(GSMArenaConfig(), monitor=monitor)
    service.get_phones_by_brand = AsyncMock(return_value=[])
    service.search_phones = AsyncMock(return_value=[])
    return service


@pytest.fixture
def prices(monitor):
    service = PriceTrackingService(PriceTrackingConfig(), monitor=monitor)
    service.get_phone_prices = AsyncMock(return_value=PriceData.model_validate(price_data()))
    return service


@pytest.fixture
def cache(clock):
    return MemoryCache(now=clock.now)


@pytest.fixture
def sync(catalog, gsmarena, prices, monitor, cache, clock):
    return DataSyncService(
        DataSyncConfig(batch_size=5, brand_delay=1.0, batch_delay=2.0),
        catalog=catalog,
        gsmarena=gsmarena,
        price_tracking=prices,
        monitor=monitor,
        cache=cache,
        sleeper=clock.sleep,
        now=clock.utcnow,
        clock=clock.now,
    )


def _seed_phones(catalog, count, brand_id="apple"):
    if brand_id not in catalog.brands:
        catalog.add_brand(brand_id.title(), brand_id)
    return [
        catalog.add_phone(brand_id, Phone(model=f"Phone {i}", pricing={"mrp": 50000, "current_price": 50000}))
        for i in range(count)
    ]


class TestSpecificationSync:

    @pytest.mark.asyncio
    async def test_creates_new_phones(self, sync, catalog, gsmarena):
        catalog.add_brand("Apple", "apple")
        gsmarena.get_phones_by_brand.return_value = [_raw(model="iPhone 15"), _raw(model="iPhone 15 Plus")]

        job = await sync.sync_phone_specifications()

        assert job.status is SyncStatus.COMPLETED
        assert job.source is SyncSource.GSMARENA
        assert (job.records_processed, job.records_created, job.records_updated) == (2, 2, 0)
        created = await catalog.find_phone("apple", "iPhone 15")
        assert created.specifications.battery.capacity == 3349
        gsmarena.get_phones_by_brand.assert_awaited_once_with("Apple")

    @pytest.mark.asyncio
    async def test_updates_existing_phone(self, sync, catalog, gsmarena):
        catalog.add_brand("Apple", "apple")
        existing = catalog.add_phone("apple", Phone(model="iPhone 15"))
        gsmarena.get_phones_by_brand.return_value = [_raw(model="iPhone 15"), _raw(model="iPhone 15 Plus")]

        job = await sync.sync_phone_specifications()

        assert job.records_updated == 1
        assert job.records_created == 1
        assert catalog.phones[existing.id].specifications is not None
        assert len(catalog.phones) == 2

    @pytest.mark.asyncio
    async def test_malformed_record_is_skipped(self, sync, catalog, gsmarena, monitor):
        catalog.add_brand("Apple", "apple")
        records = [_raw(model=f"Phone {i}") for i in range(9)]
        records.insert(4, _raw(model=""))
        gsmarena.get_phones_by_brand.return_value = records

        job = await sync.sync_phone_specifications()

        assert job.status is SyncStatus.COMPLETED
        assert job.records_processed == 10
        assert job.records_created == 9
        assert len(job.errors) == 1
        assert job.errors[0].startswith("Validation failed")
        assert len(monitor.get_events(type=EventType.DATA_VALIDATION_ERROR)) == 1

    @pytest.mark.asyncio
    async def test_brand_failure_recorded_and_next_brand_synced(self, sync, catalog, gsmarena, clock):
        catalog.add_brand("Apple", "apple")
        catalog.add_brand("Samsung", "samsung")
        gsmarena.get_phones_by_brand.side_effect = [
            SourceAPIError("gsmarena", "HTTP 500", status_code=500),
            [_raw("Samsung", "Galaxy S24")],
        ]

        job = await sync.sync_phone_specifications()

        assert job.status is SyncStatus.COMPLETED
        assert job.records_created == 1
        assert job.errors == ["Error syncing brand Apple: gsmarena: HTTP 500"]
        assert clock.sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_catalog_failure_fails_job(self, sync, catalog, monitor):
        catalog.list_active_brands = AsyncMock(side_effect=CatalogError("catalog unavailable"))

        job = await sync.sync_phone_specifications()

        assert job.status is SyncStatus.FAILED
        assert job.errors[-1] == "Sync failed: catalog unavailable"
        assert job.end_time is not None
        assert monitor.get_metrics().failed_syncs == 1

    @pytest.mark.asyncio
    async def test_inactive_brands_are_ignored(self, sync, catalog, gsmarena):
        catalog.add_brand("Nokia", "nokia", is_active=False)

        job = await sync.sync_phone_specifications()

        assert job.records_processed == 0
        gsmarena.get_phones_by_brand.assert_not_awaited()


class TestPriceSync:

    @pytest.mark.asyncio
    async def test_batches_with_delay_between(self, sync, catalog, prices, clock):
        phones = _seed_phones(catalog, 12)

        job = await sync.sync_price_data()

        assert job.status is SyncStatus.COMPLETED
        assert prices.get_phone_prices.await_count == 12
        assert job.records_processed == 12
        assert job.records_updated == 12
        assert clock.sleeps == [2.0, 2.0]
        # Lowest in-stock price among known Indian retailers
        assert all(catalog.phones[p.id].current_price == 75999 for p in phones)

    @pytest.mark.asyncio
    async def test_price_failure_recorded_per_phone(self, sync, catalog, prices):
        _seed_phones(catalog, 3)
        prices.get_phone_prices.side_effect = [
            PriceData.model_validate(price_data()),
            SourceAPIError("priceTracking", "HTTP 502", status_code=502),
            None,
        ]

        job = await sync.sync_price_data()

        assert job.status is SyncStatus.COMPLETED
        assert job.records_processed == 3
        assert job.records_updated == 1
        assert len(job.errors) == 1
        assert "HTTP 502" in job.errors[0]

    @pytest.mark.asyncio
    async def test_unknown_retailers_only_leaves_price_alone(self, sync, catalog, prices):
        (phone,) = _seed_phones(catalog, 1)
        prices.get_phone_prices.return_value = PriceData.model_validate(price_data(prices=[retailer_price("Gray Market Deals", 100)]))

        job = await sync.sync_price_data()

        assert job.records_updated == 0
        assert catalog.phones[phone.id].current_price == 50000


class TestFullSync:

    @pytest.mark.asyncio
    async def test_runs_sources_in_order_and_clears_cache(self, sync, catalog, cache):
        catalog.add_brand("Apple", "apple")
        await cache.set("fallback:phone:x", {"a": 1})

        jobs = await sync.start_full_sync()

        assert [job.source for job in jobs] == [SyncSource.GSMARENA, SyncSource.PRICE_TRACKING]
        assert all(job.status is SyncStatus.COMPLETED for job in jobs)
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_failed_source_does_not_stop_the_next(self, sync, catalog):
        catalog.list_active_brands = AsyncMock(side_effect=CatalogError("down"))
        _seed_phones(catalog, 2)

        jobs = await sync.start_full_sync()

        assert [job.status for job in jobs] == [SyncStatus.FAILED, SyncStatus.COMPLETED]

    @pytest.mark.asyncio
    async def test_only_enabled_sources(self, sync):
        sync.config = DataSyncConfig(enabled_sources=["priceTracking"])

        jobs = await sync.start_full_sync()

        assert [job.source for job in jobs] == [SyncSource.PRICE_TRACKING]

    @pytest.mark.asyncio
    async def test_sync_source(self, sync):
        job = await sync.sync_source(SyncSource.PRICE_TRACKING)
        assert job.source is SyncSource.PRICE_TRACKING

    @pytest.mark.asyncio
    async def test_plan_full_sync_calls_no_source(self, sync, catalog, gsmarena, prices):
        _seed_phones(catalog, 12)

        plan = await sync.plan_full_sync()

        assert plan == {"sources": ["gsmarena", "priceTracking"], "brands": 1, "phones": 12, "price_batches": 3}
        gsmarena.get_phones_by_brand.assert_not_awaited()
        prices.get_phone_prices.assert_not_awaited()


class TestSinglePhoneSync:

    @pytest.mark.asyncio
    async def test_unknown_phone(self, sync):
        assert await sync.sync_phone_data("missing") is False

    @pytest.mark.asyncio
    async def test_refreshes_specs_and_price(self, sync, catalog, gsmarena):
        catalog.add_brand("Apple", "apple")
        phone = catalog.add_phone("apple", Phone(model="iPhone 15"))
        gsmarena.search_phones.return_value = [_raw(model="iPhone 15 Pro"), _raw(model="iPhone 15")]

        assert await sync.sync_phone_data(phone.id) is True

        record = catalog.phones[phone.id]
        assert record.specifications is not None
        assert record.current_price == 75999
        gsmarena.search_phones.assert_awaited_once_with("Apple iPhone 15")

    @pytest.mark.asyncio
    async def test_source_failure_still_true(self, sync, catalog, gsmarena, prices):
        catalog.add_brand("Apple", "apple")
        phone = catalog.add_phone("apple", Phone(model="iPhone 15"))
        gsmarena.search_phones.side_effect = SourceAPIError("gsmarena", "HTTP 500")
        prices.get_phone_prices.side_effect = SourceAPIError("priceTracking", "HTTP 500")

        assert await sync.sync_phone_data(phone.id) is True

    @pytest.mark.asyncio
    async def test_catalog_error_is_false(self, sync, catalog):
        catalog.get_phone = AsyncMock(side_effect=CatalogError("down"))
        assert await sync.sync_phone_data("any") is False


class TestJobRegistry:

    @pytest.mark.asyncio
    async def test_lookup_and_active_jobs(self, sync):
        job = await sync.sync_price_data()

        assert sync.get_sync_job_status(job.id) is job
        assert sync.get_sync_job_status("nope") is None
        assert sync.get_active_sync_jobs() == []
        assert job.id.startswith("priceTracking-sync-")

    @pytest.mark.asyncio
    async def test_registry_is_capped(self, sync):
        first = await sync.sync_price_data()
        for _ in range(MAX_RETAINED_JOBS + 4):
            await sync.sync_price_data()

        assert len(sync.get_sync_jobs()) == MAX_RETAINED_JOBS
        assert sync.get_sync_job_status(first.id) is None
