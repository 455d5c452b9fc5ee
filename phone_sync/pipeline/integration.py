"""Single entry point composing adapters, fallback, monitoring and the orchestrator."""

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from phone_sync.adapters.gsmarena import GSMArenaService
from phone_sync.adapters.price_tracking import PriceTrackingService
from phone_sync.fallback.service import FallbackService
from phone_sync.fallback.static_data import phone_key
from phone_sync.fetcher.http_client import AsyncHTTPClient
from phone_sync.models.config import ExternalDataConfig
from phone_sync.models.data_models import (
    EventType,
    FallbackResult,
    FallbackSource,
    MonitoringEvent,
    SyncJob,
    SyncMetrics,
    SyncSource,
    SyncStatus,
)
from phone_sync.models.phone import Phone, PriceSnapshot
from phone_sync.monitoring.logger import StructuredLogger
from phone_sync.monitoring.sync_monitoring import SyncMonitoringService
from phone_sync.pipeline.orchestrator import DataSyncService
from phone_sync.pipeline.output import JSONOutputFormatter
from phone_sync.storage.cache import Cache, create_cache
from phone_sync.storage.catalog import CatalogStore, InMemoryCatalogStore

SERVICE_SOURCE = "external_data_service"


class ExternalDataIntegrationService:
    """
    Facade over the external data pipeline.

    Owns the scheduler for automatic sync. ``stop_automatic_sync`` only
    prevents future ticks; a sync already running is left to finish.
    ``cleanup`` cancels the scheduler and closes network clients and is
    safe to call more than once.
    """

    def __init__(
        self,
        config: Optional[ExternalDataConfig] = None,
        catalog: Optional[CatalogStore] = None,
        cache: Optional[Cache] = None,
        monitor: Optional[SyncMonitoringService] = None,
        gsmarena: Optional[GSMArenaService] = None,
        price_tracking: Optional[PriceTrackingService] = None,
        logger: Optional[StructuredLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            config: Full configuration (defaults when omitted)
            catalog: Catalog store; an in-memory one (seeded from
                ``config.catalog_file`` if set) when omitted
            cache: Shared cache; built from ``config.cache`` when omitted
            monitor: Monitoring service; built from ``config.monitoring`` when omitted
            gsmarena: Specification adapter override
            price_tracking: Price adapter override
            logger: Structured logger
            transport: httpx transport for the adapters' clients (tests, mock servers)
        """
        self.config = config or ExternalDataConfig()
        self.logger = logger or StructuredLogger(level=self.config.log_level)
        self.monitor = monitor or SyncMonitoringService(self.config.monitoring, logger=self.logger)
        self.cache = cache if cache is not None else create_cache(self.config.cache)
        self.catalog = catalog if catalog is not None else self._default_catalog()

        self._owned_clients: List[AsyncHTTPClient] = []
        self.gsmarena = gsmarena or GSMArenaService(
            self.config.gsmarena,
            http_client=self._client_for(self.config.gsmarena.timeout, transport),
            monitor=self.monitor,
            logger=self.logger,
        )
        self.price_tracking = price_tracking or PriceTrackingService(
            self.config.price_tracking,
            http_client=self._client_for(self.config.price_tracking.timeout, transport),
            monitor=self.monitor,
            logger=self.logger,
        )
        self.fallback = FallbackService(self.config.fallback, self.monitor, self.cache, self.logger)
        self.data_sync = DataSyncService(
            self.config.data_sync,
            self.catalog,
            self.gsmarena,
            self.price_tracking,
            self.monitor,
            cache=self.cache,
            logger=self.logger,
        )
        self.formatter = JSONOutputFormatter()

        self._sync_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._closed = False

    def _default_catalog(self) -> InMemoryCatalogStore:
        if self.config.catalog_file:
            return InMemoryCatalogStore.from_yaml(Path(self.config.catalog_file))
        return InMemoryCatalogStore()

    def _client_for(self, timeout: float, transport: Optional[httpx.AsyncBaseTransport]) -> AsyncHTTPClient:
        client = AsyncHTTPClient(read_timeout=timeout, transport=transport)
        self._owned_clients.append(client)
        return client

    def _source_enabled(self, source: SyncSource) -> bool:
        return source.value in self.config.data_sync.enabled_sources

    # Lifecycle

    async def initialize(self, start_scheduler: bool = True) -> Dict[str, bool]:
        """
        Test connections, then arm automatic sync if an interval is configured.

        Raises:
            RuntimeError: If any configured, enabled source fails its connection test
        """
        try:
            results = await self.test_connections(configured_only=True)
            failed = [name for name, ok in results.items() if not ok]
            if failed:
                raise RuntimeError(f"Connection test failed for: {', '.join(failed)}")
            if start_scheduler and self.config.data_sync.sync_interval > 0:
                self.start_automatic_sync()
        except Exception as e:
            self.monitor.log_event(EventType.SYNC_FAILED, SERVICE_SOURCE,
                                   error=f"Initialization failed: {e}")
            raise

        self.monitor.log_event(EventType.SYNC_STARTED, SERVICE_SOURCE, {
            "message": "External data integration service initialized successfully",
        })
        return results

    async def test_connections(self, configured_only: bool = False) -> Dict[str, bool]:
        """
        Probe each enabled source once.

        Args:
            configured_only: Skip sources without an API key

        Returns:
            Source name -> whether the probe succeeded
        """
        probes = {}
        if self._source_enabled(SyncSource.GSMARENA) and (
                self.config.gsmarena.api_key or not configured_only):
            probes[SyncSource.GSMARENA.value] = self.gsmarena.get_brands()
        if self._source_enabled(SyncSource.PRICE_TRACKING) and (
                self.config.price_tracking.api_key or not configured_only):
            probes[SyncSource.PRICE_TRACKING.value] = self.price_tracking.get_phone_prices("Apple", "iPhone")

        outcomes = await asyncio.gather(*probes.values(), return_exceptions=True)
        results = {}
        for name, outcome in zip(probes, outcomes):
            ok = not isinstance(outcome, Exception)
            results[name] = ok
            if ok:
                self.logger.log("connection_test", source=name, status="ok")
            else:
                self.logger.error("connection_test", source=name, status="failed", error=str(outcome))
        return results

    # Sync

    async def perform_full_sync(self) -> List[SyncJob]:
        """Run a full sync and record it as one ``full_sync`` operation in monitoring."""
        started = asyncio.get_running_loop().time()
        self.monitor.log_sync_start("full_sync")
        try:
            jobs = await self.data_sync.start_full_sync()
        except Exception as e:
            duration_ms = (asyncio.get_running_loop().time() - started) * 1000
            self.monitor.log_sync_failure("full_sync", str(e), duration_ms)
            raise

        duration_ms = (asyncio.get_running_loop().time() - started) * 1000
        failed = [job for job in jobs if job.status is SyncStatus.FAILED]
        summary = {
            "totalJobs": len(jobs),
            "successfulJobs": len(jobs) - len(failed),
            "failedJobs": len(failed),
            "jobs": [self.formatter.format_job(job) for job in jobs],
        }
        if failed:
            self.monitor.log_sync_failure("full_sync", f"{len(failed)} sync jobs failed", duration_ms, summary)
        else:
            self.monitor.log_sync_complete("full_sync", duration_ms, summary)
        return jobs

    async def sync_source(self, source: SyncSource) -> SyncJob:
        return await self.data_sync.sync_source(source)

    async def sync_phone_data(self, phone_id: str) -> bool:
        started = asyncio.get_running_loop().time()
        self.monitor.log_sync_start("phone_sync", {"phoneId": phone_id})
        success = await self.data_sync.sync_phone_data(phone_id)
        duration_ms = (asyncio.get_running_loop().time() - started) * 1000
        if success:
            self.monitor.log_sync_complete("phone_sync", duration_ms, {"phoneId": phone_id})
        else:
            self.monitor.log_sync_failure("phone_sync", "Sync returned false", duration_ms, {"phoneId": phone_id})
        return success

    async def plan_full_sync(self) -> Dict[str, Any]:
        return await self.data_sync.plan_full_sync()

    def get_sync_jobs(self) -> List[SyncJob]:
        return self.data_sync.get_sync_jobs()

    # Lookups

    async def _without_fallback(self, fetch) -> FallbackResult:
        try:
            data = await fetch()
        except Exception as e:
            return FallbackResult(success=False, source=FallbackSource.MANUAL, error=str(e))
        if data is None:
            return FallbackResult(success=False, source=FallbackSource.MANUAL, error="No data available")
        return FallbackResult(success=True, source=FallbackSource.ALTERNATIVE_API, data=data)

    async def get_phone_data(self, brand: str, model: str) -> FallbackResult[Phone]:
        async def fetch() -> Optional[Phone]:
            candidates = await self.gsmarena.search_phones(f"{brand} {model}")
            for candidate in candidates:
                if candidate.brand.lower() == brand.lower() and candidate.model.lower() == model.lower():
                    return self.gsmarena.convert_to_phone(candidate)
            return None

        if not self.config.data_sync.fallback_enabled:
            return await self._without_fallback(fetch)
        return await self.fallback.get_phone_data_with_fallback(brand, model, fetch)

    async def get_price_data(
        self, brand: str, model: str, variant: Optional[str] = None
    ) -> FallbackResult[PriceSnapshot]:
        async def fetch() -> Optional[PriceSnapshot]:
            price_data = await self.price_tracking.get_phone_prices(brand, model, variant)
            if price_data is None:
                return None
            indian = self.price_tracking.filter_indian_retailers(price_data)
            return PriceSnapshot(current_price=indian.lowest_price, mrp=indian.average_price)

        if not self.config.data_sync.fallback_enabled:
            return await self._without_fallback(fetch)
        return await self.fallback.get_price_data_with_fallback(phone_key(brand, model), fetch)

    async def search_phones(self, query: str) -> List[Phone]:
        """Search the specification source; [] when it fails."""
        try:
            results = await self.gsmarena.search_phones(query)
        except Exception as e:
            self.logger.warning("search_failed", source=SyncSource.GSMARENA.value, error=str(e))
            return []
        return [self.gsmarena.convert_to_phone(raw) for raw in results]

    # Status

    def get_health_status(self) -> Dict[str, Any]:
        report = self.formatter.format_health(self.monitor.generate_health_report())
        return {
            **report,
            "fallback": self.fallback.get_fallback_stats(),
            "services": {
                source.value: {
                    "configured": bool(cfg.api_key),
                    "enabled": self._source_enabled(source),
                }
                for source, cfg in (
                    (SyncSource.GSMARENA, self.config.gsmarena),
                    (SyncSource.PRICE_TRACKING, self.config.price_tracking),
                )
            },
            "automatic_sync": {
                "enabled": self.automatic_sync_running,
                "interval": self.config.data_sync.sync_interval,
            },
        }

    def get_metrics(self) -> SyncMetrics:
        return self.monitor.get_metrics()

    def get_recent_events(self, hours: float = 24) -> List[MonitoringEvent]:
        return self.monitor.get_recent_events(hours)

    async def clear_cache(self) -> int:
        return await self.fallback.clear_cache()

    # Scheduler

    @property
    def automatic_sync_running(self) -> bool:
        return (self._sync_task is not None and not self._sync_task.done()
                and self._stop_event is not None and not self._stop_event.is_set())

    def start_automatic_sync(self, interval: Optional[float] = None) -> None:
        """Arm a recurring full sync every ``interval`` seconds (config value by default)."""
        interval = interval if interval is not None else self.config.data_sync.sync_interval
        if interval <= 0:
            raise ValueError(f"sync interval must be positive, got: {interval}")
        self.stop_automatic_sync()

        self._stop_event = asyncio.Event()
        self._sync_task = asyncio.get_running_loop().create_task(
            self._run_scheduler(interval, self._stop_event)
        )
        self.logger.log("automatic_sync_started", interval_s=interval)

    def stop_automatic_sync(self) -> None:
        if self._stop_event is not None and not self._stop_event.is_set():
            self._stop_event.set()
            self.logger.log("automatic_sync_stopped")

    async def _run_scheduler(self, interval: float, stop: asyncio.Event) -> None:
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if stop.is_set():
                break
            try:
                await self.perform_full_sync()
            except Exception as e:
                self.logger.error("automatic_sync_failed", error=str(e))

    async def cleanup(self) -> None:
        """Stop the scheduler, cancel it, and close clients. Idempotent."""
        self.stop_automatic_sync()
        task, self._sync_task = self._sync_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._closed:
            return
        self._closed = True
        for client in self._owned_clients:
            await client.aclose()
        await self.monitor.aclose()
        aclose = getattr(self.cache, "aclose", None)
        if aclose is not None:
            await aclose()
        self.logger.log("service_cleanup")
