"""JSON output formatter for sync jobs, metrics, events and health.

Every view returned here is plain JSON-serializable data; the CLI, the
HTTP routes and the facade's health bundle all go through it so the field
names stay identical across surfaces.

Example job:
{
    "id": "gsmarena-sync-3f2a9c1d7e4b",
    "source": "gsmarena",
    "status": "completed",
    "start_time": "2024-01-01T00:00:00+00:00",
    "end_time": "2024-01-01T00:00:05+00:00",
    "duration_ms": 5000.0,
    "records_processed": 10,
    "records_created": 9,
    "records_updated": 0,
    "errors": ["Validation failed for ..."]
}
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from phone_sync.models.data_models import HealthReport, MonitoringEvent, SyncJob, SyncMetrics
from phone_sync.monitoring.sync_monitoring import event_to_dict


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class JSONOutputFormatter:
    """Formats pipeline records as JSON-ready dictionaries."""

    def format_job(self, job: SyncJob) -> Dict[str, Any]:
        return {
            "id": job.id,
            "source": job.source.value,
            "status": job.status.value,
            "start_time": _iso(job.start_time),
            "end_time": _iso(job.end_time),
            "duration_ms": job.duration_ms,
            "records_processed": job.records_processed,
            "records_created": job.records_created,
            "records_updated": job.records_updated,
            "errors": list(job.errors),
        }

    def format_jobs(self, jobs: Iterable[SyncJob]) -> List[Dict[str, Any]]:
        return [self.format_job(job) for job in jobs]

    def format_metrics(self, metrics: SyncMetrics) -> Dict[str, Any]:
        return {
            "total_syncs": metrics.total_syncs,
            "successful_syncs": metrics.successful_syncs,
            "failed_syncs": metrics.failed_syncs,
            "average_duration": round(metrics.average_duration, 2),
            "api_requests_count": metrics.api_requests_count,
            "api_errors_count": metrics.api_errors_count,
            "rate_limit_hits": metrics.rate_limit_hits,
            "fallback_activations": metrics.fallback_activations,
            "last_sync_time": _iso(metrics.last_sync_time),
        }

    def format_events(self, events: Iterable[MonitoringEvent]) -> List[Dict[str, Any]]:
        return [event_to_dict(event) for event in events]

    def format_health(self, report: HealthReport) -> Dict[str, Any]:
        return {
            "status": report.status.value,
            "summary": report.summary,
            "issues": list(report.issues),
            "recommendations": list(report.recommendations),
            "metrics": self.format_metrics(report.metrics),
        }

    def save(self, data: Any, path: str = "out/sync.json") -> None:
        """
        Save already-formatted data to a JSON file.

        Creates parent directories if they don't exist.
        """
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)
