"""HTTP plumbing shared by the source adapters."""

from .http_client import AsyncHTTPClient
from .rate_limiter import RateLimiter
from .retry_handler import RetryHandler, calculate_backoff_delay

__all__ = ["AsyncHTTPClient", "RateLimiter", "RetryHandler", "calculate_backoff_delay"]
