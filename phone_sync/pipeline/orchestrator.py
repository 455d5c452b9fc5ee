"""Sync orchestrator: pulls from the sources and writes results into the catalog."""

import asyncio
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import uuid4

from phone_sync.adapters.gsmarena import GSMArenaService
from phone_sync.adapters.price_tracking import PriceTrackingService
from phone_sync.models.config import DataSyncConfig
from phone_sync.models.data_models import SyncJob, SyncSource, SyncStatus
from phone_sync.monitoring.logger import StructuredLogger
from phone_sync.monitoring.sync_monitoring import SyncMonitoringService
from phone_sync.processor.validator import validate_phone_data
from phone_sync.storage.cache import Cache
from phone_sync.storage.catalog import Brand, CatalogPhone, CatalogStore

MAX_RETAINED_JOBS = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DataSyncService:
    """
    Coordinates full, per-source and single-phone synchronization.

    Each source run is tracked as a SyncJob. Individual bad records and
    brands are recorded on the job and skipped; only a failure outside the
    per-record loop (e.g. the catalog cannot list brands) fails the job.
    A failed source never stops the next one.
    """

    def __init__(
        self,
        config: DataSyncConfig,
        catalog: CatalogStore,
        gsmarena: GSMArenaService,
        price_tracking: PriceTrackingService,
        monitor: SyncMonitoringService,
        cache: Optional[Cache] = None,
        logger: Optional[StructuredLogger] = None,
        sleeper: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = _utcnow,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """
        Initialize orchestrator.

        Args:
            config: Enabled sources, batch size and pacing delays
            catalog: Store that receives created and updated phones
            gsmarena: Specification source adapter
            price_tracking: Price source adapter
            monitor: Receives sync and validation events
            cache: Shared cache, cleared after a full sync
            logger: Structured logger for job transitions and record errors
            sleeper: Async sleep used between brands and price batches
            now: Wall clock for job timestamps
            clock: Monotonic clock in seconds for durations
        """
        self.config = config
        self.catalog = catalog
        self.gsmarena = gsmarena
        self.price_tracking = price_tracking
        self.monitor = monitor
        self.cache = cache
        self.logger = logger or StructuredLogger(name="phone_sync.sync")
        self._sleep = sleeper
        self._now = now
        self._clock = clock
        self._jobs: "OrderedDict[str, SyncJob]" = OrderedDict()

    # Job registry

    def _new_job(self, source: SyncSource) -> SyncJob:
        job = SyncJob(id=f"{source.value}-sync-{uuid4().hex[:12]}", source=source)
        self._jobs[job.id] = job
        while len(self._jobs) > MAX_RETAINED_JOBS:
            oldest_id, oldest = next(iter(self._jobs.items()))
            if not oldest.is_terminal:
                break
            del self._jobs[oldest_id]
        return job

    def get_sync_job_status(self, job_id: str) -> Optional[SyncJob]:
        return self._jobs.get(job_id)

    def get_sync_jobs(self) -> List[SyncJob]:
        """Every retained job, oldest first."""
        return list(self._jobs.values())

    def get_active_sync_jobs(self) -> List[SyncJob]:
        return [job for job in self._jobs.values() if not job.is_terminal]

    def _is_enabled(self, source: SyncSource) -> bool:
        return source.value in self.config.enabled_sources

    # Job lifecycle

    def _start(self, job: SyncJob) -> float:
        job.start(self._now())
        self.monitor.log_sync_start(job.source.value, {"jobId": job.id})
        self.logger.job_transition(job.id, job.source.value, job.status.value)
        return self._clock()

    def _finish(self, job: SyncJob, started: float, error: Optional[Exception] = None) -> None:
        duration_ms = round((self._clock() - started) * 1000, 2)
        counts = {
            "jobId": job.id,
            "recordsProcessed": job.records_processed,
            "recordsCreated": job.records_created,
            "recordsUpdated": job.records_updated,
            "errors": len(job.errors),
        }
        if error is None:
            job.complete(self._now())
            self.monitor.log_sync_complete(job.source.value, duration_ms, counts)
        else:
            job.fail(f"Sync failed: {error}", self._now())
            self.monitor.log_sync_failure(job.source.value, str(error), duration_ms, counts)
        self.logger.job_transition(job.id, job.source.value, job.status.value,
                                   elapsed_ms=duration_ms, **counts)

    def _record_error(self, job: SyncJob, message: str) -> None:
        job.errors.append(message)
        self.logger.record_error(job.id, job.source.value, message)

    # Full and per-source sync

    async def start_full_sync(self) -> List[SyncJob]:
        """
        Run every enabled source in turn, then clear the shared cache.

        Returns:
            One SyncJob per enabled source, in source order
        """
        self.logger.log("full_sync_start", sources=self.config.enabled_sources)
        jobs = []
        if self._is_enabled(SyncSource.GSMARENA):
            jobs.append(await self.sync_phone_specifications())
        if self._is_enabled(SyncSource.PRICE_TRACKING):
            jobs.append(await self.sync_price_data())

        if self.cache is not None:
            try:
                await self.cache.clear()
            except Exception as e:
                self.logger.warning("cache_clear_failed", error=str(e))

        failed = [job.id for job in jobs if job.status is SyncStatus.FAILED]
        if failed:
            self.logger.error("full_sync_complete", status="failed", failed_jobs=failed)
        else:
            self.logger.log("full_sync_complete", status="completed", jobs=len(jobs))
        return jobs

    async def sync_source(self, source: SyncSource) -> SyncJob:
        if source is SyncSource.GSMARENA:
            return await self.sync_phone_specifications()
        return await self.sync_price_data()

    async def sync_phone_specifications(self) -> SyncJob:
        """Create or update catalog phones for every active brand from the specification source."""
        job = self._new_job(SyncSource.GSMARENA)
        started = self._start(job)
        try:
            brands = await self.catalog.list_active_brands()
            for index, brand in enumerate(brands):
                await self._sync_brand(job, brand)
                if index < len(brands) - 1:
                    await self._sleep(self.config.brand_delay)
        except Exception as e:
            self._finish(job, started, e)
        else:
            self._finish(job, started)
        return job

    async def _sync_brand(self, job: SyncJob, brand: Brand) -> None:
        try:
            raw_phones = await self.gsmarena.get_phones_by_brand(brand.name)
        except Exception as e:
            self._record_error(job, f"Error syncing brand {brand.name}: {e}")
            return

        for raw in raw_phones:
            job.records_processed += 1
            label = raw.name or f"{raw.brand} {raw.model}".strip() or "unnamed phone"

            validation = validate_phone_data(raw)
            if not validation.is_valid:
                message = f"Validation failed for {label}: {', '.join(validation.errors)}"
                self._record_error(job, message)
                self.monitor.log_validation_error(job.source.value, message, validation.cleaned_data)
                continue
            for warning in validation.warnings:
                self.logger.warning("validation_warning", job_id=job.id, phone=label, reason=warning)

            try:
                phone = self.gsmarena.convert_to_phone(validation.cleaned_data)
                existing = await self.catalog.find_phone(brand.id, phone.model, phone.variant)
                if existing is not None:
                    await self.catalog.update_phone(existing.id, phone)
                    if phone.specifications is not None:
                        await self.catalog.upsert_specifications(existing.id, phone.specifications)
                    job.records_updated += 1
                else:
                    created = await self.catalog.create_phone(brand.id, phone)
                    if phone.specifications is not None:
                        await self.catalog.upsert_specifications(created.id, phone.specifications)
                    job.records_created += 1
            except Exception as e:
                self._record_error(job, f"Error processing phone {label}: {e}")

    async def sync_price_data(self) -> SyncJob:
        """
        Refresh current prices for every active catalog phone.

        Phones are processed in batches of ``batch_size``; requests within a
        batch run concurrently and ``batch_delay`` seconds separate batches.
        """
        job = self._new_job(SyncSource.PRICE_TRACKING)
        started = self._start(job)
        try:
            phones = await self.catalog.list_active_phones()
            batch_size = self.config.batch_size
            for batch_number, offset in enumerate(range(0, len(phones), batch_size), start=1):
                batch = phones[offset:offset + batch_size]
                batch_started = self._clock()
                await asyncio.gather(*(self._sync_price(job, phone) for phone in batch))
                self.logger.batch_processed(batch_number, len(batch),
                                            round((self._clock() - batch_started) * 1000, 2))
                if offset + batch_size < len(phones):
                    await self._sleep(self.config.batch_delay)
        except Exception as e:
            self._finish(job, started, e)
        else:
            self._finish(job, started)
        return job

    async def _refresh_price(self, phone: CatalogPhone) -> bool:
        """Apply the lowest in-stock Indian retailer price. False when there is none."""
        price_data = await self.price_tracking.get_phone_prices(phone.brand, phone.model, phone.variant)
        if price_data is None:
            return False
        filtered = self.price_tracking.filter_indian_retailers(price_data)
        if not filtered.prices or filtered.lowest_price <= 0:
            return False
        await self.catalog.update_price(phone.id, filtered.lowest_price)
        return True

    async def _sync_price(self, job: SyncJob, phone: CatalogPhone) -> None:
        job.records_processed += 1
        try:
            if await self._refresh_price(phone):
                job.records_updated += 1
        except Exception as e:
            self._record_error(job, f"Error updating price for {phone.brand} {phone.model}: {e}")

    # Targeted sync

    async def _refresh_specifications(self, phone: CatalogPhone) -> bool:
        candidates = await self.gsmarena.search_phones(f"{phone.brand} {phone.model}")
        match = next(
            (c for c in candidates
             if c.brand.lower() == phone.brand.lower() and c.model.lower() == phone.model.lower()),
            None,
        )
        if match is None:
            return False
        converted = self.gsmarena.convert_to_phone(match)
        await self.catalog.update_phone(phone.id, converted)
        if converted.specifications is not None:
            await self.catalog.upsert_specifications(phone.id, converted.specifications)
        return True

    async def sync_phone_data(self, phone_id: str) -> bool:
        """
        Refresh one catalog phone from every enabled source.

        Source failures are logged and do not change the answer; False only
        when the phone cannot be loaded.
        """
        try:
            phone = await self.catalog.get_phone(phone_id)
        except Exception as e:
            self.logger.error("phone_sync_failed", phone_id=phone_id, error=str(e))
            return False
        if phone is None:
            self.logger.warning("phone_sync_failed", phone_id=phone_id, reason="phone not found")
            return False

        results: Dict[str, Any] = {}
        if self._is_enabled(SyncSource.GSMARENA):
            try:
                results["specifications"] = await self._refresh_specifications(phone)
            except Exception as e:
                self.logger.warning("phone_sync_source_failed", phone_id=phone_id,
                                    source=SyncSource.GSMARENA.value, error=str(e))
        if self._is_enabled(SyncSource.PRICE_TRACKING):
            try:
                results["price"] = await self._refresh_price(phone)
            except Exception as e:
                self.logger.warning("phone_sync_source_failed", phone_id=phone_id,
                                    source=SyncSource.PRICE_TRACKING.value, error=str(e))

        self.logger.log("phone_sync_complete", phone_id=phone_id, **results)
        return True

    async def plan_full_sync(self) -> Dict[str, Any]:
        """What a full sync would touch, without calling any source."""
        brands = await self.catalog.list_active_brands()
        phones = await self.catalog.list_active_phones()
        batch_size = self.config.batch_size
        return {
            "sources": list(self.config.enabled_sources),
            "brands": len(brands),
            "phones": len(phones),
            "price_batches": -(-len(phones) // batch_size),
        }
