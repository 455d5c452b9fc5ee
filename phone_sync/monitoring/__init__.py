"""Structured logging and sync monitoring."""

from .logger import StructuredLogger
from .sync_monitoring import SyncMonitoringService, event_to_dict

__all__ = ["StructuredLogger", "SyncMonitoringService", "event_to_dict"]
