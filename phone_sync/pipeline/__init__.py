"""Sync orchestration, the integration facade and the CLI."""

from .integration import ExternalDataIntegrationService
from .orchestrator import DataSyncService
from .output import JSONOutputFormatter

__all__ = ["DataSyncService", "ExternalDataIntegrationService", "JSONOutputFormatter"]
