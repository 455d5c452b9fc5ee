"""Fallback chain for best-effort phone, specification and price lookups."""

from .service import FallbackService
from .static_data import default_specifications, phone_key
from .strategies import (
    AlternativeApiStrategy,
    CacheStrategy,
    DefaultSpecificationsStrategy,
    FallbackStrategy,
    StaticStrategy,
)

__all__ = [
    "AlternativeApiStrategy",
    "CacheStrategy",
    "DefaultSpecificationsStrategy",
    "FallbackService",
    "FallbackStrategy",
    "StaticStrategy",
    "default_specifications",
    "phone_key",
]
