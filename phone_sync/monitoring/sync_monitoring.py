"""Event log, derived metrics, health rules and alerting for the sync pipeline."""

import asyncio
import dataclasses
from collections import Counter, deque
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Union
from uuid import uuid4

import httpx

from phone_sync.fetcher.http_client import AsyncHTTPClient
from phone_sync.models.config import MonitoringConfig
from phone_sync.models.data_models import (
    ApiPerformanceMetrics,
    ErrorSummary,
    EventType,
    HealthReport,
    HealthStatus,
    MonitoringEvent,
    SyncMetrics,
)
from phone_sync.monitoring.logger import StructuredLogger

_SEVERITY = {HealthStatus.HEALTHY: 0, HealthStatus.WARNING: 1, HealthStatus.CRITICAL: 2}

_SUMMARIES = {
    HealthStatus.HEALTHY: "All systems operating normally",
    HealthStatus.WARNING: "Some issues detected, monitoring recommended",
    HealthStatus.CRITICAL: "Critical issues detected, immediate attention required",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _escalate(current: HealthStatus, candidate: HealthStatus) -> HealthStatus:
    return candidate if _SEVERITY[candidate] > _SEVERITY[current] else current


class SyncMonitoringService:
    """
    Single source of truth for operational health.

    Events go into a fixed-capacity ring buffer (oldest evicted first).
    Counters in ``SyncMetrics`` are updated in O(1) per event and only
    rebuilt from the buffer when old data is purged. Logging an event
    never raises; webhook alerts run as detached tasks whose failures are
    logged and dropped.
    """

    def __init__(
        self,
        config: Optional[MonitoringConfig] = None,
        logger: Optional[StructuredLogger] = None,
        http_client: Optional[AsyncHTTPClient] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            config: Alert thresholds, buffer capacity and health rule limits
            logger: Structured logger that mirrors every event
            http_client: Client used for webhook delivery (created lazily)
            now: Clock returning timezone-aware datetimes
        """
        self.config = config or MonitoringConfig()
        self.logger = logger or StructuredLogger(name="phone_sync.monitoring")
        self.http_client = http_client
        self._owns_client = http_client is None
        self._now = now

        self._events: Deque[MonitoringEvent] = deque(maxlen=self.config.max_events)
        self._metrics = SyncMetrics()
        self._duration_total = 0.0
        self._duration_samples = 0
        self._consecutive_failures: Dict[str, int] = {}
        self._alert_tasks: Set[asyncio.Task] = set()

    # Event intake

    def log_event(
        self,
        type: Union[EventType, str],
        source: str,
        metadata: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        duration: Optional[float] = None,
    ) -> MonitoringEvent:
        """Append an event, update counters, mirror it to the log and evaluate alert rules."""
        event = MonitoringEvent(
            id=uuid4().hex,
            type=EventType(type),
            source=source,
            timestamp=self._now(),
            duration=duration,
            error=error,
            metadata=metadata,
        )
        self._events.append(event)
        self._apply(event)
        self._log_to_console(event)

        try:
            self._check_alerts(event)
        except Exception as e:
            self.logger.error("alert_check_failed", source=source, error=str(e))

        return event

    def log_sync_start(self, source: str, metadata: Optional[Dict[str, Any]] = None) -> MonitoringEvent:
        return self.log_event(EventType.SYNC_STARTED, source, metadata)

    def log_sync_complete(
        self, source: str, duration: float, metadata: Optional[Dict[str, Any]] = None
    ) -> MonitoringEvent:
        return self.log_event(EventType.SYNC_COMPLETED, source, metadata, duration=duration)

    def log_sync_failure(
        self,
        source: str,
        error: str,
        duration: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> MonitoringEvent:
        return self.log_event(EventType.SYNC_FAILED, source, metadata, error=error, duration=duration)

    def log_api_request(
        self, source: str, endpoint: str, response_time: float, status_code: Optional[int] = None
    ) -> MonitoringEvent:
        return self.log_event(EventType.API_REQUEST, source, {
            "endpoint": endpoint,
            "responseTime": response_time,
            "statusCode": status_code,
        }, duration=response_time)

    def log_api_error(
        self, source: str, endpoint: str, error: str, status_code: Optional[int] = None
    ) -> MonitoringEvent:
        return self.log_event(EventType.API_ERROR, source, {
            "endpoint": endpoint,
            "statusCode": status_code,
        }, error=error)

    def log_validation_error(self, source: str, error: str, data: Any = None) -> MonitoringEvent:
        return self.log_event(EventType.DATA_VALIDATION_ERROR, source, {
            "dataType": type(data).__name__,
            "hasData": bool(data),
        }, error=error)

    def log_rate_limit_hit(
        self, source: str, endpoint: str, retry_after: Optional[float] = None
    ) -> MonitoringEvent:
        return self.log_event(EventType.RATE_LIMIT_HIT, source, {
            "endpoint": endpoint,
            "retryAfter": retry_after,
        })

    def log_fallback_activation(self, source: str, reason: str, fallback_type: str) -> MonitoringEvent:
        return self.log_event(EventType.FALLBACK_ACTIVATED, source, {
            "reason": reason,
            "fallbackType": fallback_type,
        })

    # Counters

    def _apply(self, event: MonitoringEvent) -> None:
        m = self._metrics
        if event.type is EventType.SYNC_STARTED:
            m.total_syncs += 1
        elif event.type is EventType.SYNC_COMPLETED:
            m.successful_syncs += 1
            m.last_sync_time = event.timestamp
            self._consecutive_failures[event.source] = 0
            if event.duration is not None:
                self._duration_total += event.duration
                self._duration_samples += 1
                m.average_duration = self._duration_total / self._duration_samples
        elif event.type is EventType.SYNC_FAILED:
            m.failed_syncs += 1
            self._consecutive_failures[event.source] = self._consecutive_failures.get(event.source, 0) + 1
        elif event.type is EventType.API_REQUEST:
            m.api_requests_count += 1
        elif event.type is EventType.API_ERROR:
            m.api_errors_count += 1
        elif event.type is EventType.RATE_LIMIT_HIT:
            m.rate_limit_hits += 1
        elif event.type is EventType.FALLBACK_ACTIVATED:
            m.fallback_activations += 1

    def _recalculate_metrics(self) -> None:
        self._metrics = SyncMetrics()
        self._duration_total = 0.0
        self._duration_samples = 0
        self._consecutive_failures = {}
        for event in self._events:
            self._apply(event)

    def get_metrics(self) -> SyncMetrics:
        """Snapshot of the current counters."""
        return dataclasses.replace(self._metrics)

    def consecutive_failures(self, source: Optional[str] = None) -> int:
        """Failures since the last success for ``source``, or the worst source if omitted."""
        if source is not None:
            return self._consecutive_failures.get(source, 0)
        return max(self._consecutive_failures.values(), default=0)

    # Queries

    def get_events(
        self,
        type: Optional[Union[EventType, str]] = None,
        source: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> List[MonitoringEvent]:
        """Filter the buffer; newest first."""
        event_type = EventType(type) if type is not None else None
        events = [
            e for e in reversed(self._events)
            if (event_type is None or e.type is event_type)
            and (source is None or e.source == source)
            and (start_time is None or e.timestamp >= start_time)
            and (end_time is None or e.timestamp <= end_time)
        ]
        return sorted(events, key=lambda e: e.timestamp, reverse=True)

    def _cutoff(self, hours: float) -> datetime:
        return self._now() - timedelta(hours=hours)

    def get_recent_events(self, hours: float = 24) -> List[MonitoringEvent]:
        return self.get_events(start_time=self._cutoff(hours))

    def get_error_summary(self, hours: float = 24) -> ErrorSummary:
        """Errors in the last ``hours``, counted by source and type, with the 10 most recent."""
        errors = [e for e in self.get_events(start_time=self._cutoff(hours)) if e.type.is_error]
        return ErrorSummary(
            total_errors=len(errors),
            errors_by_source=dict(Counter(e.source for e in errors)),
            errors_by_type=dict(Counter(e.type.value for e in errors)),
            recent_errors=errors[:10],
        )

    def get_api_performance_metrics(self, hours: float = 24) -> ApiPerformanceMetrics:
        """Request volume, latency, error rate and the 10 slowest requests in the last ``hours``."""
        cutoff = self._cutoff(hours)
        requests = self.get_events(EventType.API_REQUEST, start_time=cutoff)
        api_errors = self.get_events(EventType.API_ERROR, start_time=cutoff)

        timed = [e for e in requests if (e.metadata or {}).get("responseTime") is not None]
        total_time = sum(e.metadata["responseTime"] for e in timed)
        average = total_time / len(timed) if timed else 0.0
        error_rate = len(api_errors) / len(requests) * 100 if requests else 0.0

        slowest = sorted(timed, key=lambda e: e.metadata["responseTime"], reverse=True)[:10]

        return ApiPerformanceMetrics(
            total_requests=len(requests),
            average_response_time=round(average),
            error_rate=round(error_rate, 2),
            requests_by_source=dict(Counter(e.source for e in requests)),
            slowest_requests=slowest,
        )

    def generate_health_report(self) -> HealthReport:
        """
        Evaluate health rules in priority order.

        Critical only when some source has at least
        ``critical_failure_threshold`` consecutive sync failures. Recent
        failures below that, error volume, API error rate, slow responses
        and frequent rate limiting each raise a warning.
        """
        cfg = self.config
        status = HealthStatus.HEALTHY
        issues: List[str] = []
        recommendations: List[str] = []

        for source, failures in sorted(self._consecutive_failures.items()):
            if failures >= cfg.critical_failure_threshold:
                status = HealthStatus.CRITICAL
                issues.append(f"{failures} consecutive sync failures detected for {source}")
                recommendations.append(f"Check {source} API connectivity and credentials")
            elif failures >= 1:
                status = _escalate(status, HealthStatus.WARNING)
                issues.append(f"{failures} recent sync failures for {source}")

        error_summary = self.get_error_summary(cfg.health_window_hours)
        if error_summary.total_errors > cfg.error_count_threshold:
            status = _escalate(status, HealthStatus.WARNING)
            issues.append(
                f"High error rate: {error_summary.total_errors} errors in last "
                f"{cfg.health_window_hours:g} hours"
            )
            recommendations.append("Review error logs and consider implementing additional fallbacks")

        api_metrics = self.get_api_performance_metrics(cfg.health_window_hours)
        if api_metrics.error_rate > cfg.api_error_rate_threshold:
            status = _escalate(status, HealthStatus.WARNING)
            issues.append(f"High API error rate: {api_metrics.error_rate}%")
            recommendations.append("Check external API status and upstream error responses")

        if api_metrics.average_response_time > cfg.slow_response_ms:
            status = _escalate(status, HealthStatus.WARNING)
            issues.append(f"Slow API responses: {api_metrics.average_response_time}ms average")
            recommendations.append("Consider tighter request timeouts and longer cache lifetimes")

        if self._metrics.rate_limit_hits > cfg.rate_limit_warning_threshold:
            status = _escalate(status, HealthStatus.WARNING)
            issues.append(f"Frequent rate limiting: {self._metrics.rate_limit_hits} hits")
            recommendations.append("Increase the minimum interval between upstream requests")

        return HealthReport(
            status=status,
            summary=_SUMMARIES[status],
            metrics=self.get_metrics(),
            issues=issues,
            recommendations=recommendations,
        )

    def clear_old_data(self, older_than_hours: float = 168) -> int:
        """
        Drop events older than the cutoff and rebuild all counters from what remains.

        Returns:
            Number of events removed
        """
        cutoff = self._cutoff(older_than_hours)
        kept = [e for e in self._events if e.timestamp > cutoff]
        removed = len(self._events) - len(kept)
        self._events = deque(kept, maxlen=self.config.max_events)
        self._recalculate_metrics()
        return removed

    # Alerting

    def _check_alerts(self, event: MonitoringEvent) -> None:
        if not self.config.enabled:
            return

        message = None

        if event.type.is_error:
            recent_errors = self.get_error_summary(1).total_errors
            if recent_errors >= self.config.error_threshold:
                message = f"Error threshold exceeded: {recent_errors} errors in the last hour"

        if event.type is EventType.SYNC_FAILED:
            failures = self.consecutive_failures(event.source)
            if failures >= self.config.sync_failure_threshold:
                message = f"Sync failure threshold exceeded: {failures} consecutive failures"

        if (event.type is EventType.RATE_LIMIT_HIT
                and self._metrics.rate_limit_hits >= self.config.rate_limit_threshold):
            message = f"Rate limit threshold exceeded: {self._metrics.rate_limit_hits} hits"

        if message:
            self._send_alert(message, event)

    def _send_alert(self, message: str, event: MonitoringEvent) -> None:
        self.logger.alert(message, source=event.source, event_type=event.type.value,
                          webhook=self.config.webhook_url)
        if not self.config.webhook_url:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.warning("alert_webhook_skipped", reason="no running event loop")
            return

        task = loop.create_task(self._post_webhook(message, event))
        self._alert_tasks.add(task)
        task.add_done_callback(self._alert_tasks.discard)

    async def _post_webhook(self, message: str, event: MonitoringEvent) -> None:
        if self.http_client is None:
            self.http_client = AsyncHTTPClient(read_timeout=10.0)
        payload = {
            "message": message,
            "event": event_to_dict(event),
            "timestamp": self._now().isoformat(),
        }
        try:
            response = await self.http_client.post(self.config.webhook_url, json=payload)
            if response.status_code >= 400:
                self.logger.warning("alert_webhook_rejected", status=response.status_code)
        except httpx.HTTPError as e:
            self.logger.error("alert_webhook_failed", error=str(e))

    async def drain_alerts(self) -> None:
        """Wait for in-flight webhook deliveries."""
        if self._alert_tasks:
            await asyncio.gather(*list(self._alert_tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain_alerts()
        if self._owns_client and self.http_client is not None:
            await self.http_client.aclose()

    # Console mirror

    def _log_to_console(self, event: MonitoringEvent) -> None:
        fields: Dict[str, Any] = {"source": event.source, "event_id": event.id}
        if event.duration is not None:
            fields["elapsed_ms"] = event.duration
        if event.error:
            fields["error"] = event.error
        if event.metadata:
            fields["metadata"] = event.metadata

        if event.type in (EventType.SYNC_FAILED, EventType.API_ERROR):
            self.logger.error(event.type.value, **fields)
        elif event.type in (EventType.DATA_VALIDATION_ERROR, EventType.RATE_LIMIT_HIT,
                            EventType.FALLBACK_ACTIVATED):
            self.logger.warning(event.type.value, **fields)
        else:
            self.logger.log(event.type.value, **fields)


def event_to_dict(event: MonitoringEvent) -> Dict[str, Any]:
    """JSON-ready view of an event."""
    return {
        "id": event.id,
        "type": event.type.value,
        "source": event.source,
        "timestamp": event.timestamp.isoformat(),
        "duration": event.duration,
        "error": event.error,
        "metadata": event.metadata,
    }
