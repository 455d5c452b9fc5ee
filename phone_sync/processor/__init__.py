"""Pure transforms over upstream phone and price payloads."""

from .normalizer import (
    format_camera_spec,
    generate_slug,
    normalize_phone,
    normalize_specifications,
    parse_camera_spec,
)
from .pricing import INDIAN_RETAILERS, calculate_price_stats, filter_retailers
from .validator import clean_phone_data, validate_phone_data

__all__ = [
    "INDIAN_RETAILERS",
    "calculate_price_stats",
    "clean_phone_data",
    "filter_retailers",
    "format_camera_spec",
    "generate_slug",
    "normalize_phone",
    "normalize_specifications",
    "parse_camera_spec",
    "validate_phone_data",
]
