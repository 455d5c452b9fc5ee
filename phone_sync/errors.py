"""Exception types raised across the sync pipeline."""

from typing import Optional


class PhoneSyncError(Exception):
    """Base class for all phone_sync errors."""


class SourceAPIError(PhoneSyncError):
    """
    Failure talking to an external data source.

    Carries the source name so callers can tell which provider failed,
    plus the HTTP status (if any) and whether a retry may help.
    """

    def __init__(
        self,
        source: str,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = True,
    ):
        self.source = source
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(f"{source}: {message}")


class RateLimitError(SourceAPIError):
    """Upstream answered 429."""

    def __init__(self, source: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(source, "rate limit exceeded", status_code=429, retryable=True)


class SourceNotFoundError(SourceAPIError):
    """Upstream answered 404."""

    def __init__(self, source: str, message: str = "not found"):
        super().__init__(source, message, status_code=404, retryable=False)


class InvalidResponseError(SourceAPIError):
    """Upstream answered 2xx with a body we cannot use."""

    def __init__(self, source: str, message: str):
        super().__init__(source, message, status_code=None, retryable=False)


class JobStateError(PhoneSyncError):
    """Illegal SyncJob status transition."""


class CatalogError(PhoneSyncError):
    """Catalog store operation failed."""
