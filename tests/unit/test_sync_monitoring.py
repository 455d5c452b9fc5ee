"""Unit tests for the monitoring event log, metrics, health rules and alerts."""

import json

import httpx
import pytest

from phone_sync.fetcher.http_client import AsyncHTTPClient
from phone_sync.models.config import MonitoringConfig
from phone_sync.models.data_models import EventType, HealthStatus
from phone_sync.monitoring.sync_monitoring import SyncMonitoringService, event_to_dict


def _service(clock, logger, http_client=None, **config):
    config.setdefault("enabled", False)
    return SyncMonitoringService(MonitoringConfig(**config), logger=logger,
                                 http_client=http_client, now=clock.utcnow)


class TestEventLog:

    def test_metrics_follow_events(self, monitor):
        monitor.log_sync_start("gsmarena")
        monitor.log_sync_complete("gsmarena", 100.0)
        monitor.log_sync_start("gsmarena")
        monitor.log_sync_complete("gsmarena", 300.0)
        monitor.log_sync_failure("priceTracking", "boom")
        monitor.log_api_request("gsmarena", "/brands", 50.0, 200)
        monitor.log_api_error("gsmarena", "/brands", "HTTP 500", 500)
        monitor.log_rate_limit_hit("gsmarena", "/brands", 30)
        monitor.log_fallback_activation("fallback_service", "Primary API unavailable", "cache")

        metrics = monitor.get_metrics()
        assert metrics.total_syncs == 2
        assert metrics.successful_syncs == 2
        assert metrics.failed_syncs == 1
        assert metrics.average_duration == 200.0
        assert metrics.api_requests_count == 1
        assert metrics.api_errors_count == 1
        assert metrics.rate_limit_hits == 1
        assert metrics.fallback_activations == 1
        assert metrics.last_sync_time is not None

    def test_get_metrics_returns_snapshot(self, monitor):
        snapshot = monitor.get_metrics()
        monitor.log_sync_start("gsmarena")
        assert snapshot.total_syncs == 0

    def test_ring_buffer_evicts_oldest(self, clock, logger):
        monitor = _service(clock, logger, max_events=3)
        for i in range(5):
            monitor.log_api_request("gsmarena", f"/phones/{i}", 10.0, 200)
            clock.advance(1)

        events = monitor.get_events()
        assert [e.metadata["endpoint"] for e in events] == ["/phones/4", "/phones/3", "/phones/2"]

    def test_accepts_string_event_type(self, monitor):
        event = monitor.log_event("sync_started", "gsmarena")
        assert event.type is EventType.SYNC_STARTED

    def test_alert_check_failure_is_swallowed(self, monitor):
        monitor._check_alerts = lambda event: (_ for _ in ()).throw(RuntimeError("bad rule"))
        event = monitor.log_sync_failure("gsmarena", "boom")
        assert event.type is EventType.SYNC_FAILED

    @pytest.mark.parametrize("key", ["level", "event", "source", "metadata"])
    def test_metadata_keys_never_clash_with_log_fields(self, monitor, key):
        event = monitor.log_event(EventType.SYNC_STARTED, "gsmarena", {key: "nightly"})

        assert event.metadata == {key: "nightly"}
        assert monitor.get_events()[0].id == event.id

    def test_filtered_queries(self, clock, monitor):
        monitor.log_sync_start("gsmarena")
        clock.advance(60)
        monitor.log_sync_start("priceTracking")
        clock.advance(60)
        monitor.log_api_request("gsmarena", "/brands", 10.0, 200)

        assert len(monitor.get_events(type=EventType.SYNC_STARTED)) == 2
        assert [e.source for e in monitor.get_events(source="gsmarena")] == ["gsmarena", "gsmarena"]
        assert monitor.get_events()[0].type is EventType.API_REQUEST
        assert len(monitor.get_events(start_time=clock.start)) == 3
        assert len(monitor.get_recent_events(hours=1 / 60)) == 2

    def test_event_to_dict(self, monitor):
        event = monitor.log_api_error("gsmarena", "/search", "HTTP 502", 502)
        data = event_to_dict(event)

        assert data["type"] == "api_error"
        assert data["metadata"] == {"endpoint": "/search", "statusCode": 502}
        assert data["timestamp"] == "2024-06-01T00:00:00+00:00"
        json.dumps(data)


class TestAggregations:

    def test_error_summary_window(self, clock, monitor):
        monitor.log_api_error("gsmarena", "/brands", "HTTP 500", 500)
        clock.advance(3 * 3600)
        monitor.log_validation_error("gsmarena", "Brand is required")
        monitor.log_sync_failure("priceTracking", "boom")
        monitor.log_sync_start("gsmarena")

        summary = monitor.get_error_summary(hours=1)
        assert summary.total_errors == 2
        assert summary.errors_by_source == {"gsmarena": 1, "priceTracking": 1}
        assert summary.errors_by_type == {"data_validation_error": 1, "sync_failed": 1}

        assert monitor.get_error_summary(hours=24).total_errors == 3

    def test_api_performance(self, monitor):
        monitor.log_api_request("gsmarena", "/a", 100.0, 200)
        monitor.log_api_request("gsmarena", "/b", 300.0, 500)
        monitor.log_api_request("priceTracking", "/c", 200.0, 200)
        monitor.log_api_request("priceTracking", "/d", 400.0, 200)
        monitor.log_api_error("gsmarena", "/b", "HTTP 500", 500)

        perf = monitor.get_api_performance_metrics()
        assert perf.total_requests == 4
        assert perf.average_response_time == 250
        assert perf.error_rate == 25.0
        assert perf.requests_by_source == {"gsmarena": 2, "priceTracking": 2}
        assert [e.metadata["endpoint"] for e in perf.slowest_requests] == ["/d", "/b", "/c", "/a"]

    def test_untimed_requests_do_not_lower_average(self, monitor):
        monitor.log_api_request("gsmarena", "/a", 100.0, 200)
        monitor.log_api_request("gsmarena", "/b", 300.0, 200)
        monitor.log_event(EventType.API_REQUEST, "gsmarena", {"endpoint": "/c"})

        perf = monitor.get_api_performance_metrics()
        assert perf.total_requests == 3
        assert perf.average_response_time == 200

    def test_api_performance_empty(self, monitor):
        perf = monitor.get_api_performance_metrics()
        assert perf.total_requests == 0
        assert perf.error_rate == 0.0


class TestHealthReport:

    def test_healthy_by_default(self, monitor):
        report = monitor.generate_health_report()
        assert report.status is HealthStatus.HEALTHY
        assert report.issues == []
        assert report.summary == "All systems operating normally"

    def test_three_consecutive_failures_is_critical(self, monitor):
        for _ in range(3):
            monitor.log_sync_failure("gsmarena", "boom")

        report = monitor.generate_health_report()
        assert report.status is HealthStatus.CRITICAL
        assert "3 consecutive sync failures detected for gsmarena" in report.issues
        assert "Check gsmarena API connectivity and credentials" in report.recommendations

    def test_two_failures_is_only_a_warning(self, monitor):
        monitor.log_sync_failure("gsmarena", "boom")
        monitor.log_sync_failure("gsmarena", "boom")

        assert monitor.generate_health_report().status is HealthStatus.WARNING

    def test_success_resets_the_failure_streak(self, monitor):
        for _ in range(3):
            monitor.log_sync_failure("gsmarena", "boom")
        monitor.log_sync_complete("gsmarena", 10.0)

        assert monitor.consecutive_failures("gsmarena") == 0
        assert monitor.generate_health_report().status is HealthStatus.HEALTHY

    def test_failures_are_tracked_per_source(self, monitor):
        monitor.log_sync_failure("gsmarena", "boom")
        monitor.log_sync_failure("priceTracking", "boom")
        monitor.log_sync_failure("gsmarena", "boom")

        assert monitor.consecutive_failures() == 2
        assert monitor.generate_health_report().status is HealthStatus.WARNING

    def test_high_api_error_rate_warns(self, monitor):
        for _ in range(4):
            monitor.log_api_request("gsmarena", "/brands", 10.0, 200)
        monitor.log_api_error("gsmarena", "/brands", "HTTP 500", 500)

        report = monitor.generate_health_report()
        assert report.status is HealthStatus.WARNING
        assert "High API error rate: 25.0%" in report.issues

    def test_slow_responses_warn(self, monitor):
        monitor.log_api_request("gsmarena", "/brands", 6000.0, 200)

        report = monitor.generate_health_report()
        assert report.status is HealthStatus.WARNING
        assert report.issues == ["Slow API responses: 6000ms average"]

    def test_error_volume_warns(self, clock, logger):
        monitor = _service(clock, logger, error_count_threshold=2)
        for _ in range(3):
            monitor.log_validation_error("gsmarena", "Brand is required")

        report = monitor.generate_health_report()
        assert report.status is HealthStatus.WARNING
        assert report.issues[0].startswith("High error rate: 3 errors")

    def test_critical_is_not_downgraded_by_later_warnings(self, monitor):
        for _ in range(3):
            monitor.log_sync_failure("gsmarena", "boom")
        monitor.log_api_request("gsmarena", "/brands", 9000.0, 200)

        assert monitor.generate_health_report().status is HealthStatus.CRITICAL


class TestClearOldData:

    def test_purge_recomputes_metrics(self, clock, monitor):
        monitor.log_sync_start("gsmarena")
        monitor.log_sync_failure("gsmarena", "old")
        monitor.log_sync_failure("gsmarena", "old")
        monitor.log_sync_failure("gsmarena", "old")
        clock.advance(200 * 3600)
        monitor.log_api_request("gsmarena", "/brands", 10.0, 200)

        removed = monitor.clear_old_data(older_than_hours=168)

        assert removed == 4
        assert len(monitor.get_events()) == 1
        metrics = monitor.get_metrics()
        assert metrics.total_syncs == 0
        assert metrics.failed_syncs == 0
        assert metrics.api_requests_count == 1
        assert monitor.generate_health_report().status is HealthStatus.HEALTHY


class TestAlerts:

    @pytest.mark.asyncio
    async def test_webhook_receives_alert(self, clock, logger):
        received = []

        def handler(request):
            received.append(json.loads(request.content))
            return httpx.Response(200)

        client = AsyncHTTPClient(transport=httpx.MockTransport(handler))
        monitor = _service(clock, logger, http_client=client, enabled=True,
                           sync_failure_threshold=2, webhook_url="https://hooks.example.com/alert")

        monitor.log_sync_failure("gsmarena", "boom")
        monitor.log_sync_failure("gsmarena", "boom")
        await monitor.drain_alerts()

        assert len(received) == 1
        assert received[0]["message"] == "Sync failure threshold exceeded: 2 consecutive failures"
        assert received[0]["event"]["type"] == "sync_failed"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_webhook_failure_never_propagates(self, clock, logger):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = AsyncHTTPClient(transport=httpx.MockTransport(handler))
        monitor = _service(clock, logger, http_client=client, enabled=True,
                           error_threshold=1, webhook_url="https://hooks.example.com/alert")

        monitor.log_api_error("gsmarena", "/brands", "HTTP 500", 500)
        await monitor.drain_alerts()
        await monitor.aclose()

        assert monitor.get_metrics().api_errors_count == 1

    @pytest.mark.asyncio
    async def test_rate_limit_alert(self, clock, logger):
        monitor = _service(clock, logger, enabled=True, rate_limit_threshold=2)
        sent = []
        monitor._send_alert = lambda message, event: sent.append(message)

        monitor.log_rate_limit_hit("gsmarena", "/search")
        monitor.log_rate_limit_hit("gsmarena", "/search")

        assert sent == ["Rate limit threshold exceeded: 2 hits"]

    def test_alert_without_event_loop_is_skipped(self, clock, logger):
        monitor = _service(clock, logger, enabled=True, error_threshold=1,
                           webhook_url="https://hooks.example.com/alert")

        monitor.log_api_error("gsmarena", "/brands", "HTTP 500", 500)

        assert monitor._alert_tasks == set()

    def test_disabled_alerting_sends_nothing(self, monitor):
        sent = []
        monitor._send_alert = lambda message, event: sent.append(message)
        for _ in range(20):
            monitor.log_sync_failure("gsmarena", "boom")
        assert sent == []
