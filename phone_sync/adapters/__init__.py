"""Adapters for the external phone data sources."""

from .base import SourceAdapter
from .gsmarena import GSMArenaService
from .price_tracking import PriceTrackingService

__all__ = ["GSMArenaService", "PriceTrackingService", "SourceAdapter"]
