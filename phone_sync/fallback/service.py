"""Best-effort lookups: primary fetch with retry, then an ordered fallback chain."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, Union

from pydantic import BaseModel

from phone_sync.fallback.static_data import phone_key, seed_static_phones
from phone_sync.fallback.strategies import (
    CACHE_NAMESPACE,
    FALLBACK_SOURCE,
    AlternativeApiStrategy,
    CacheStrategy,
    DefaultSpecificationsStrategy,
    FallbackStrategy,
    StaticStrategy,
    cache_key,
)
from phone_sync.fetcher.retry_handler import RetryHandler
from phone_sync.models.config import FallbackConfig
from phone_sync.models.data_models import FallbackResult, FallbackSource
from phone_sync.models.phone import Phone, PhoneSpecifications, PriceSnapshot
from phone_sync.monitoring.logger import StructuredLogger
from phone_sync.monitoring.sync_monitoring import SyncMonitoringService
from phone_sync.storage.cache import Cache, MemoryCache

PRICE_CACHE_MAX_HOURS = 24

PrimaryFetcher = Callable[[], Awaitable[Union[BaseModel, Dict[str, Any], None]]]


class FallbackService:
    """
    Wraps a primary fetch with the chain cache -> static -> alternative API.

    None of the public lookups raise. Callers must check
    ``FallbackResult.success``; on success from the primary the result
    source is ``alternative_api`` and ``from_cache`` is False.
    """

    def __init__(
        self,
        config: Optional[FallbackConfig] = None,
        monitor: Optional[SyncMonitoringService] = None,
        cache: Optional[Cache] = None,
        logger: Optional[StructuredLogger] = None,
        sleeper: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            config: Chain toggles, cache lifetime and primary retry settings
            monitor: Receives fallback_activated events
            cache: Shared key-value cache
            logger: Structured logger for cache and retry problems
            sleeper: Async sleep used for primary retry backoff
        """
        self.config = config or FallbackConfig()
        self.monitor = monitor or SyncMonitoringService()
        self.cache = cache if cache is not None else MemoryCache()
        self.logger = logger or StructuredLogger(name="phone_sync.fallback")
        self._sleep = sleeper
        self.static_phones: Dict[str, Phone] = seed_static_phones()
        self._cache_lookups = 0
        self._cache_hits = 0

    # Building blocks

    def _count_lookup(self, hit: bool) -> None:
        self._cache_lookups += 1
        if hit:
            self._cache_hits += 1

    def _cache_strategy(self, kind: str, model: Type[BaseModel], reason: str) -> CacheStrategy:
        return CacheStrategy(self.cache, kind, model, self.monitor, self.logger,
                             reason=reason, on_lookup=self._count_lookup)

    def _phone_chain(self) -> List[FallbackStrategy]:
        chain: List[FallbackStrategy] = []
        if self.config.enable_cache:
            chain.append(self._cache_strategy("phone", Phone, "Primary API unavailable"))
        if self.config.enable_static_data:
            chain.append(StaticStrategy(self.static_phones, self.monitor))
        if self.config.enable_alternative_apis:
            chain.append(AlternativeApiStrategy(self.monitor))
        return chain

    def _specs_chain(self) -> List[FallbackStrategy]:
        chain: List[FallbackStrategy] = []
        if self.config.enable_cache:
            chain.append(self._cache_strategy("specs", PhoneSpecifications, "Primary specs API unavailable"))
        chain.append(DefaultSpecificationsStrategy())
        return chain

    def _price_chain(self) -> List[FallbackStrategy]:
        if not self.config.enable_cache:
            return []
        return [self._cache_strategy("price", PriceSnapshot, "Primary price API unavailable")]

    async def _fetch_primary(
        self, fetcher: PrimaryFetcher, model: Type[BaseModel], fallback_type: str, label: str
    ) -> Optional[BaseModel]:
        """Run the primary fetcher with retry; None on exhaustion or empty answer."""
        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            self.logger.request_retry(FALLBACK_SOURCE, label, attempt, str(error), delay)

        retry = RetryHandler(
            max_attempts=self.config.max_retries,
            base_delay=self.config.retry_delay_ms / 1000,
            is_retryable=lambda error: True,
            sleeper=self._sleep,
            on_retry=on_retry,
        )
        try:
            data = await retry.execute(fetcher)
        except Exception as e:
            self.monitor.log_fallback_activation(
                FALLBACK_SOURCE, f"Primary {label} failed: {e}", fallback_type
            )
            return None

        if data is None or isinstance(data, model):
            return data
        try:
            return model.model_validate(data)
        except ValueError as e:
            self.monitor.log_fallback_activation(
                FALLBACK_SOURCE, f"Primary {label} returned invalid data: {e}", fallback_type
            )
            return None

    async def _store(self, kind: str, key: str, data: BaseModel, ttl_hours: float) -> None:
        if not self.config.enable_cache:
            return
        try:
            await self.cache.set(cache_key(kind, key), data.model_dump(mode="json"),
                                 int(ttl_hours * 60 * 60 * 1000))
        except Exception as e:
            self.logger.warning("fallback_cache_write_failed", key=cache_key(kind, key), error=str(e))

    @staticmethod
    async def _run_chain(key: str, chain: List[FallbackStrategy]) -> Optional[FallbackResult]:
        for strategy in chain:
            result = await strategy.attempt(key)
            if result is not None and result.success:
                return result
        return None

    # Lookups

    async def get_phone_data_with_fallback(
        self, brand: str, model: str, primary_fetcher: PrimaryFetcher
    ) -> FallbackResult[Phone]:
        """
        Phone data for ``brand``/``model``.

        Returns the primary result when it succeeds within ``max_retries``
        attempts, otherwise the first hit of cache, static table and (if
        enabled) alternative APIs. Total failure is
        ``success=False, source=manual``.
        """
        key = phone_key(brand, model)
        data = await self._fetch_primary(primary_fetcher, Phone, "cache_or_static", "API")
        if data is not None:
            await self._store("phone", key, data, self.config.cache_expiry_hours)
            return FallbackResult(success=True, source=FallbackSource.ALTERNATIVE_API, data=data)

        result = await self._run_chain(key, self._phone_chain())
        if result is not None:
            return result
        return FallbackResult(success=False, source=FallbackSource.MANUAL,
                              error="All fallback mechanisms failed")

    async def get_specifications_with_fallback(
        self, phone_id: str, primary_fetcher: PrimaryFetcher
    ) -> FallbackResult[PhoneSpecifications]:
        """Specifications for ``phone_id``; always succeeds, with "Unknown" defaults last."""
        data = await self._fetch_primary(primary_fetcher, PhoneSpecifications, "cache_or_default", "specs API")
        if data is not None:
            await self._store("specs", phone_id, data, self.config.cache_expiry_hours)
            return FallbackResult(success=True, source=FallbackSource.ALTERNATIVE_API, data=data)

        result = await self._run_chain(phone_id, self._specs_chain())
        # The default strategy always answers
        return result

    async def get_price_data_with_fallback(
        self, phone_id: str, primary_fetcher: PrimaryFetcher
    ) -> FallbackResult[PriceSnapshot]:
        """
        Current price for ``phone_id``.

        A primary answer only counts when ``current_price`` is positive.
        Cached prices live at most 24 hours. With no price anywhere the
        result is ``success=False`` rather than a guess.
        """
        data = await self._fetch_primary(primary_fetcher, PriceSnapshot, "cache_or_estimate", "price API")
        if data is not None and data.current_price > 0:
            ttl_hours = min(self.config.cache_expiry_hours, PRICE_CACHE_MAX_HOURS)
            await self._store("price", phone_id, data, ttl_hours)
            return FallbackResult(success=True, source=FallbackSource.ALTERNATIVE_API, data=data)

        result = await self._run_chain(phone_id, self._price_chain())
        if result is not None:
            return result
        return FallbackResult(success=False, source=FallbackSource.MANUAL,
                              error="No price data available")

    # Maintenance

    def add_static_phone_data(self, key: str, phone: Phone) -> None:
        self.static_phones[key.lower()] = phone

    async def clear_cache(self) -> int:
        """Drop every fallback cache entry. Returns the number removed (0 if the cache is down)."""
        try:
            return await self.cache.delete_prefix(CACHE_NAMESPACE)
        except Exception as e:
            self.logger.error("fallback_cache_clear_failed", error=str(e))
            return 0

    def get_fallback_stats(self) -> Dict[str, Any]:
        hit_rate = self._cache_hits / self._cache_lookups if self._cache_lookups else 0.0
        return {
            "static_data_entries": len(self.static_phones),
            "cache_hit_rate": round(hit_rate, 4),
            "fallback_activations": self.monitor.get_metrics().fallback_activations,
        }
