"""Shared request path for the external source adapters."""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional
from urllib.parse import urlparse

import httpx

from phone_sync.errors import (
    InvalidResponseError,
    RateLimitError,
    SourceAPIError,
    SourceNotFoundError,
)
from phone_sync.fetcher.http_client import AsyncHTTPClient
from phone_sync.fetcher.rate_limiter import RateLimiter
from phone_sync.fetcher.retry_handler import RetryHandler
from phone_sync.models.config import SourceAPIConfig
from phone_sync.monitoring.logger import StructuredLogger
from phone_sync.monitoring.sync_monitoring import SyncMonitoringService

USER_AGENT = "phone-sync/1.0"


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class SourceAdapter:
    """
    Base class for one upstream JSON API.

    Every request goes through the same path:
    - per-host minimum interval (rate limiter), applied before each attempt
    - up to ``retry_attempts`` total attempts with ``attempt * retry_delay`` backoff
    - one ``api_request`` monitoring event per attempt, plus ``api_error``
      (and ``rate_limit_hit`` on 429) for failed attempts

    Subclasses set ``source`` and build endpoint-specific methods on
    ``_get_json``.
    """

    source: str = ""

    def __init__(
        self,
        config: SourceAPIConfig,
        http_client: Optional[AsyncHTTPClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
        monitor: Optional[SyncMonitoringService] = None,
        logger: Optional[StructuredLogger] = None,
        sleeper: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """
        Args:
            config: Base URL, credentials, timeout and retry settings
            http_client: Shared client (created from ``config`` when omitted)
            rate_limiter: Per-host spacing (created from ``config`` when omitted)
            monitor: Receives api_request/api_error/rate_limit_hit events
            logger: Structured logger for retry messages
            sleeper: Async sleep used for backoff and rate limiting
            clock: Monotonic clock in seconds used to time requests
        """
        self.config = config
        self.http_client = http_client or AsyncHTTPClient(
            read_timeout=config.timeout,
            headers=self.default_headers(),
        )
        self._owns_client = http_client is None
        self.rate_limiter = rate_limiter or RateLimiter(
            min_interval=config.min_request_interval,
            sleeper=sleeper,
        )
        self.monitor = monitor or SyncMonitoringService()
        self.logger = logger or StructuredLogger(name=f"phone_sync.{self.source}")
        self._sleep = sleeper
        self._clock = clock
        self.host = urlparse(config.base_url).netloc

    def default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    async def _get_json(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        GET ``endpoint`` with rate limiting and retries.

        Raises:
            SourceNotFoundError: Upstream answered 404 (not retried)
            InvalidResponseError: Body is not a JSON object (not retried)
            SourceAPIError: Any other failure, once attempts are exhausted
        """
        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            self.logger.request_retry(self.source, endpoint, attempt, str(error), delay)

        retry = RetryHandler(
            max_attempts=self.config.retry_attempts,
            base_delay=self.config.retry_delay,
            sleeper=self._sleep,
            on_retry=on_retry,
        )
        return await retry.execute(self._request_once, endpoint, params)

    def _elapsed_ms(self, started: float) -> float:
        return round((self._clock() - started) * 1000, 2)

    async def _request_once(self, endpoint: str, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        await self.rate_limiter.acquire(self.host)
        url = f"{self.config.base_url}{endpoint}"
        started = self._clock()

        try:
            response = await self.http_client.get(url, params=params, headers=self.default_headers())
        except httpx.HTTPError as e:
            self.monitor.log_api_request(self.source, endpoint, self._elapsed_ms(started))
            self.monitor.log_api_error(self.source, endpoint, str(e) or type(e).__name__)
            raise SourceAPIError(self.source, f"request to {endpoint} failed: {type(e).__name__}") from e

        elapsed_ms = self._elapsed_ms(started)
        status = response.status_code
        self.monitor.log_api_request(self.source, endpoint, elapsed_ms, status)

        if status == 404:
            raise SourceNotFoundError(self.source, f"{endpoint} not found")

        if status == 429:
            retry_after = _retry_after(response)
            self.monitor.log_rate_limit_hit(self.source, endpoint, retry_after)
            self.monitor.log_api_error(self.source, endpoint, "HTTP 429", status)
            raise RateLimitError(self.source, retry_after)

        if status >= 400:
            message = f"HTTP {status}: {response.reason_phrase}"
            self.monitor.log_api_error(self.source, endpoint, message, status)
            raise SourceAPIError(self.source, message, status_code=status)

        try:
            data = response.json()
        except ValueError as e:
            self.monitor.log_api_error(self.source, endpoint, "malformed JSON", status)
            raise InvalidResponseError(self.source, f"malformed JSON from {endpoint}") from e

        if not isinstance(data, dict):
            self.monitor.log_api_error(self.source, endpoint, "unexpected payload", status)
            raise InvalidResponseError(self.source, f"expected a JSON object from {endpoint}")

        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()
