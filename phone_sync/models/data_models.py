"""Core operational records for the sync pipeline."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, Generic, List, Optional, TypeVar

from phone_sync.errors import JobStateError

T = TypeVar("T")


class SyncSource(Enum):
    """External data providers."""
    GSMARENA = "gsmarena"
    PRICE_TRACKING = "priceTracking"


class SyncStatus(Enum):
    """SyncJob lifecycle states."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class EventType(Enum):
    """Monitoring event kinds."""
    SYNC_STARTED = "sync_started"
    SYNC_COMPLETED = "sync_completed"
    SYNC_FAILED = "sync_failed"
    API_REQUEST = "api_request"
    API_ERROR = "api_error"
    RATE_LIMIT_HIT = "rate_limit_hit"
    DATA_VALIDATION_ERROR = "data_validation_error"
    FALLBACK_ACTIVATED = "fallback_activated"

    @property
    def is_error(self) -> bool:
        return self in (
            EventType.SYNC_FAILED,
            EventType.API_ERROR,
            EventType.DATA_VALIDATION_ERROR,
        )


class FallbackSource(Enum):
    """Where a fallback result came from."""
    CACHE = "cache"
    STATIC = "static"
    ALTERNATIVE_API = "alternative_api"
    MANUAL = "manual"


class HealthStatus(Enum):
    """Health verdicts, mildest first."""
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class SyncJob:
    """
    One execution of a sync task against one source.

    Status only moves forward: pending -> running -> completed | failed.
    Terminal jobs cannot be restarted.
    """
    id: str
    source: SyncSource
    status: SyncStatus = SyncStatus.PENDING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    errors: List[str] = field(default_factory=list)

    _TRANSITIONS: ClassVar[Dict[SyncStatus, FrozenSet[SyncStatus]]] = {
        SyncStatus.PENDING: frozenset({SyncStatus.RUNNING, SyncStatus.FAILED}),
        SyncStatus.RUNNING: frozenset({SyncStatus.COMPLETED, SyncStatus.FAILED}),
        SyncStatus.COMPLETED: frozenset(),
        SyncStatus.FAILED: frozenset(),
    }

    def _transition(self, target: SyncStatus) -> None:
        if target not in self._TRANSITIONS[self.status]:
            raise JobStateError(
                f"Job {self.id} cannot move from {self.status.value} to {target.value}"
            )
        self.status = target

    def start(self, now: datetime) -> None:
        self._transition(SyncStatus.RUNNING)
        self.start_time = now

    def complete(self, now: datetime) -> None:
        self._transition(SyncStatus.COMPLETED)
        self.end_time = now

    def fail(self, error: str, now: datetime) -> None:
        self._transition(SyncStatus.FAILED)
        self.errors.append(error)
        self.end_time = now

    @property
    def is_terminal(self) -> bool:
        return self.status in (SyncStatus.COMPLETED, SyncStatus.FAILED)

    @property
    def duration_ms(self) -> Optional[float]:
        if self.start_time is None or self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds() * 1000


@dataclass(frozen=True)
class MonitoringEvent:
    """Immutable monitoring record."""
    id: str
    type: EventType
    source: str
    timestamp: datetime
    duration: Optional[float] = None  # milliseconds
    error: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class SyncMetrics:
    """Counters derived from the monitoring event stream."""
    total_syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    average_duration: float = 0.0
    api_requests_count: int = 0
    api_errors_count: int = 0
    rate_limit_hits: int = 0
    fallback_activations: int = 0
    last_sync_time: Optional[datetime] = None


@dataclass
class FallbackResult(Generic[T]):
    """Outcome of a fallback-wrapped lookup. Check ``success`` before using ``data``."""
    success: bool
    source: FallbackSource
    data: Optional[T] = None
    error: Optional[str] = None
    from_cache: bool = False


@dataclass
class ValidationResult:
    """Result of validating one upstream phone record."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cleaned_data: Optional[Dict[str, Any]] = None


@dataclass
class ErrorSummary:
    """Windowed error aggregation."""
    total_errors: int
    errors_by_source: Dict[str, int]
    errors_by_type: Dict[str, int]
    recent_errors: List[MonitoringEvent]


@dataclass
class ApiPerformanceMetrics:
    """Windowed API request aggregation."""
    total_requests: int
    average_response_time: float  # milliseconds
    error_rate: float  # percent
    requests_by_source: Dict[str, int]
    slowest_requests: List[MonitoringEvent]


@dataclass
class HealthReport:
    """Health verdict with the rules that fired."""
    status: HealthStatus
    summary: str
    metrics: SyncMetrics
    issues: List[str]
    recommendations: List[str]
