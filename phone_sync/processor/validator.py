"""Validation and cleaning of upstream phone records before they reach the catalog."""

import re
from typing import Any, Dict, Union

from phone_sync.models.data_models import ValidationResult
from phone_sync.models.upstream import GSMArenaPhone

_DISPLAY_SIZE_RE = re.compile(r'^\d+\.?\d*\s*(?:"|inch(?:es)?)?$', re.IGNORECASE)

MIN_BATTERY_MAH = 1000
PRICE_RANGE_INR = (1000, 500000)


def _as_dict(phone_data: Union[GSMArenaPhone, Dict[str, Any], None]) -> Dict[str, Any]:
    if isinstance(phone_data, GSMArenaPhone):
        return phone_data.model_dump()
    return dict(phone_data or {})


def _non_empty_strings(values: Any) -> list:
    if not isinstance(values, list):
        return []
    return [v.strip() for v in values if isinstance(v, str) and v.strip()]


def clean_phone_data(phone_data: Union[GSMArenaPhone, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Trim identifying strings and drop empty entries from list fields.

    Returns a new dict; the input is left untouched.
    """
    cleaned = _as_dict(phone_data)

    for key in ("brand", "model", "variant"):
        if isinstance(cleaned.get(key), str):
            cleaned[key] = cleaned[key].strip()

    if "images" in cleaned and cleaned["images"] is not None:
        cleaned["images"] = _non_empty_strings(cleaned["images"])

    specs = cleaned.get("specifications")
    if isinstance(specs, dict):
        specs = dict(specs)
        camera = specs.get("camera")
        if isinstance(camera, dict) and camera.get("features") is not None:
            specs["camera"] = {**camera, "features": _non_empty_strings(camera["features"])}
        connectivity = specs.get("connectivity")
        if isinstance(connectivity, dict) and connectivity.get("network") is not None:
            specs["connectivity"] = {**connectivity, "network": _non_empty_strings(connectivity["network"])}
        cleaned["specifications"] = specs

    return cleaned


def validate_phone_data(phone_data: Union[GSMArenaPhone, Dict[str, Any], None]) -> ValidationResult:
    """
    Validate an upstream phone record.

    Missing or empty brand/model are errors (the record must be skipped).
    Suspicious display size, battery capacity or price produce warnings only.

    Args:
        phone_data: Upstream record, parsed or raw

    Returns:
        ValidationResult with errors, warnings and the cleaned record
    """
    data = _as_dict(phone_data)
    result = ValidationResult(is_valid=True)

    brand = data.get("brand")
    if not isinstance(brand, str) or not brand.strip():
        result.errors.append("Brand is required and must be a string")

    model = data.get("model")
    if not isinstance(model, str) or not model.strip():
        result.errors.append("Model is required and must be a string")

    specs = data.get("specifications") or {}
    display = specs.get("display") or {}
    size = display.get("size")
    if size and not _DISPLAY_SIZE_RE.match(str(size).strip()):
        result.warnings.append("Display size format may be invalid")

    battery = specs.get("battery") or {}
    capacity = battery.get("capacity")
    if capacity and capacity < MIN_BATTERY_MAH:
        result.warnings.append("Battery capacity seems unusually low")

    price = (data.get("price") or {}).get("price")
    if price and not PRICE_RANGE_INR[0] <= price <= PRICE_RANGE_INR[1]:
        result.warnings.append("Price seems outside normal range for Indian market")

    result.is_valid = not result.errors
    result.cleaned_data = clean_phone_data(data)
    return result
