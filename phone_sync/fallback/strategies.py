"""Fallback strategies tried, in order, after the primary fetch fails.

Each strategy answers ``attempt(key)`` with a successful FallbackResult or
None to pass to the next one. Strategies never raise.
"""

from typing import Callable, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from phone_sync.fallback.static_data import default_specifications
from phone_sync.models.data_models import FallbackResult, FallbackSource
from phone_sync.models.phone import PhoneSpecifications
from phone_sync.monitoring.logger import StructuredLogger
from phone_sync.monitoring.sync_monitoring import SyncMonitoringService
from phone_sync.storage.cache import Cache

M = TypeVar("M", bound=BaseModel)

FALLBACK_SOURCE = "fallback_service"
CACHE_NAMESPACE = "fallback:"


def cache_key(kind: str, key: str) -> str:
    return f"{CACHE_NAMESPACE}{kind}:{key}"


class FallbackStrategy(Generic[M]):
    """One link of a fallback chain."""

    source: FallbackSource

    async def attempt(self, key: str) -> Optional[FallbackResult[M]]:
        raise NotImplementedError


class CacheStrategy(FallbackStrategy[M]):
    """Serve the last good primary result from the shared cache."""

    source = FallbackSource.CACHE

    def __init__(
        self,
        cache: Cache,
        kind: str,
        model: type,
        monitor: SyncMonitoringService,
        logger: StructuredLogger,
        reason: str = "Primary API unavailable",
        on_lookup: Optional[Callable[[bool], None]] = None,
    ):
        self.cache = cache
        self.kind = kind
        self.model = model
        self.monitor = monitor
        self.logger = logger
        self.reason = reason
        self.on_lookup = on_lookup

    async def attempt(self, key: str) -> Optional[FallbackResult[M]]:
        full_key = cache_key(self.kind, key)
        try:
            cached = await self.cache.get(full_key)
            data = self.model.model_validate(cached) if cached is not None else None
        except ValidationError as e:
            self.logger.warning("fallback_cache_corrupt", key=full_key, error=str(e))
            data = None
        except Exception as e:
            # Cache outage is a miss, not a failure of the chain
            self.logger.warning("fallback_cache_read_failed", key=full_key, error=str(e))
            data = None

        if self.on_lookup:
            self.on_lookup(data is not None)
        if data is None:
            return None

        self.monitor.log_fallback_activation(FALLBACK_SOURCE, self.reason, self.source.value)
        return FallbackResult(success=True, source=self.source, data=data, from_cache=True)


class StaticStrategy(FallbackStrategy[M]):
    """Look the key up in a curated in-memory table."""

    source = FallbackSource.STATIC

    def __init__(self, table: Dict[str, M], monitor: SyncMonitoringService):
        self.table = table
        self.monitor = monitor

    async def attempt(self, key: str) -> Optional[FallbackResult[M]]:
        data = self.table.get(key)
        if data is None:
            return None
        self.monitor.log_fallback_activation(FALLBACK_SOURCE, "Using static data fallback", self.source.value)
        return FallbackResult(success=True, source=self.source, data=data.model_copy(deep=True))


class AlternativeApiStrategy(FallbackStrategy[M]):
    """Placeholder for secondary specification providers; never produces data."""

    source = FallbackSource.ALTERNATIVE_API

    def __init__(self, monitor: SyncMonitoringService):
        self.monitor = monitor

    async def attempt(self, key: str) -> Optional[FallbackResult[M]]:
        self.monitor.log_fallback_activation(
            FALLBACK_SOURCE, "Alternative APIs not yet implemented", self.source.value
        )
        return None


class DefaultSpecificationsStrategy(FallbackStrategy[PhoneSpecifications]):
    """Always succeeds with a fresh "Unknown" specification sheet."""

    source = FallbackSource.STATIC

    def __init__(self, factory: Callable[[], PhoneSpecifications] = default_specifications):
        self.factory = factory

    async def attempt(self, key: str) -> Optional[FallbackResult[PhoneSpecifications]]:
        return FallbackResult(success=True, source=self.source, data=self.factory())
