"""Structured logging for sync pipeline monitoring."""

import json
import logging
from typing import Optional


class StructuredLogger:
    """Structured logger with uniform schema."""

    def __init__(self, name: str = "phone_sync", level: str = "INFO"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)

    def log(self, event: str, level: int = logging.INFO, **kwargs) -> None:
        """
        Log structured event.

        Standard keys: event, source, endpoint, status, attempt, elapsed_ms,
                      job_id, batch, reason
        """
        log_data = {"event": event, **kwargs}
        self.logger.log(level, json.dumps(log_data, default=str))

    def warning(self, event: str, **kwargs) -> None:
        self.log(event, level=logging.WARNING, **kwargs)

    def error(self, event: str, **kwargs) -> None:
        self.log(event, level=logging.ERROR, **kwargs)

    def request_retry(self, source: str, endpoint: str, attempt: int, error: str, delay: float) -> None:
        self.warning("request_retry", source=source, endpoint=endpoint,
                     attempt=attempt, error=error, delay_s=delay)

    def job_transition(self, job_id: str, source: str, status: str, **kwargs) -> None:
        self.log("sync_job", job_id=job_id, source=source, status=status, **kwargs)

    def record_error(self, job_id: str, source: str, error: str) -> None:
        self.warning("record_error", job_id=job_id, source=source, error=error)

    def batch_processed(self, batch: int, batch_size: int, elapsed_ms: float) -> None:
        self.log("batch_processed", batch=batch, batch_size=batch_size, elapsed_ms=elapsed_ms)

    def alert(self, message: str, source: str, event_type: str, webhook: Optional[str] = None) -> None:
        self.error("alert", message=message, source=source, trigger=event_type, webhook=webhook)
