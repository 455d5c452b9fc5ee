"""Normalizer for converting GSMArena-style payloads to the internal phone schema.

Parsing is defensive: any missing group or field becomes an empty/zero
default, and malformed numeric text degrades to zero instead of raising.
"""

import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from phone_sync.models.phone import (
    BatterySpec,
    BuildSpec,
    CameraSpec,
    CameraSpecs,
    ConnectivitySpec,
    DisplaySpec,
    PerformanceSpec,
    Phone,
    PhoneSpecifications,
    Pricing,
    SoftwareSpec,
)
from phone_sync.models.upstream import (
    GSMArenaPhone,
    RawBattery,
    RawBuild,
    RawCamera,
    RawConnectivity,
    RawDisplay,
    RawPerformance,
    RawSoftware,
    RawSpecifications,
)

_MEGAPIXEL_RE = re.compile(r"(\d+(?:\.\d+)?)\s*-?\s*(?:MP|megapixels?)\b", re.IGNORECASE)
_APERTURE_RE = re.compile(r"f\s*/\s*(\d+(?:\.\d+)?)", re.IGNORECASE)

_LAUNCH_DATE_FORMATS = ("%Y-%m-%d", "%Y, %B %d", "%Y, %B", "%B %Y", "%Y-%m", "%Y")


def parse_camera_spec(camera_string: Optional[str]) -> CameraSpec:
    """
    Parse a compound camera description such as "48MP f/1.8".

    Args:
        camera_string: Free-form camera text from the upstream API

    Returns:
        CameraSpec with megapixels (0 when absent or unparseable) and aperture

    Examples:
        >>> parse_camera_spec("48 MP, f/1.78, 24mm (wide)")
        CameraSpec(megapixels=48.0, aperture='f/1.78', ...)

        >>> parse_camera_spec("dual camera")
        CameraSpec(megapixels=0, aperture=None, ...)
    """
    if not camera_string or not isinstance(camera_string, str):
        return CameraSpec()

    megapixels: float = 0
    mp_match = _MEGAPIXEL_RE.search(camera_string)
    if mp_match:
        try:
            megapixels = float(mp_match.group(1))
        except ValueError:
            megapixels = 0

    aperture_match = _APERTURE_RE.search(camera_string)
    aperture = f"f/{aperture_match.group(1)}" if aperture_match else None

    return CameraSpec(megapixels=megapixels, aperture=aperture)


def parse_camera_specs(camera_strings: Iterable[Optional[str]]) -> List[CameraSpec]:
    """Parse every non-empty camera string, preserving order."""
    return [parse_camera_spec(spec) for spec in camera_strings if spec]


def parse_launch_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a launch date in any of the common upstream formats.

    Returns None when the value is missing or unrecognized.
    """
    if not value or not isinstance(value, str):
        return None

    cleaned = value.strip()
    try:
        return date.fromisoformat(cleaned[:10])
    except ValueError:
        pass

    for fmt in _LAUNCH_DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    return None


def _text(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ""


def _strings(values: Optional[List[str]]) -> List[str]:
    return [v.strip() for v in values or [] if isinstance(v, str) and v.strip()]


def normalize_specifications(raw: Optional[RawSpecifications]) -> PhoneSpecifications:
    """Map raw specification groups onto PhoneSpecifications, filling gaps with defaults."""
    raw = raw or RawSpecifications()
    display = raw.display or RawDisplay()
    camera = raw.camera or RawCamera()
    performance = raw.performance or RawPerformance()
    battery = raw.battery or RawBattery()
    connectivity = raw.connectivity or RawConnectivity()
    build = raw.build or RawBuild()
    software = raw.software or RawSoftware()

    return PhoneSpecifications(
        display=DisplaySpec(
            size=_text(display.size),
            resolution=_text(display.resolution),
            type=_text(display.type),
            refresh_rate=display.refresh_rate,
            brightness=display.brightness,
        ),
        camera=CameraSpecs(
            rear=parse_camera_specs([camera.main, camera.ultrawide, camera.telephoto, camera.depth]),
            front=parse_camera_spec(camera.front),
            features=_strings(camera.features),
        ),
        performance=PerformanceSpec(
            processor=_text(performance.chipset),
            gpu=performance.gpu,
            ram=_strings(performance.ram),
            storage=_strings(performance.storage),
            expandable_storage=performance.card_slot,
        ),
        battery=BatterySpec(
            capacity=battery.capacity or 0,
            charging_speed=battery.charging,
            wireless_charging=battery.wireless,
        ),
        connectivity=ConnectivitySpec(
            network=_strings(connectivity.network),
            wifi=_text(connectivity.wifi),
            bluetooth=_text(connectivity.bluetooth),
            nfc=connectivity.nfc,
        ),
        build=BuildSpec(
            dimensions=_text(build.dimensions),
            weight=_text(build.weight),
            materials=_strings(build.materials),
            colors=_strings(build.colors),
            water_resistance=build.ip_rating,
        ),
        software=SoftwareSpec(
            os=_text(software.os),
            version=_text(software.version),
        ),
    )


def normalize_phone(raw: Union[GSMArenaPhone, Dict[str, Any]]) -> Phone:
    """
    Convert one upstream phone record into the internal Phone shape.

    Accepts an already-parsed GSMArenaPhone or the raw dict. Never raises
    for missing fields; an absent price becomes 0 and absent specification
    groups become empty defaults.

    Args:
        raw: Upstream phone record

    Returns:
        Partial Phone ready to merge into the catalog
    """
    if not isinstance(raw, GSMArenaPhone):
        raw = GSMArenaPhone.model_validate(raw or {})

    price = raw.price.price if raw.price and raw.price.price else 0

    return Phone(
        brand=_text(raw.brand),
        model=_text(raw.model),
        variant=_text(raw.variant) or None,
        launch_date=parse_launch_date(raw.launch_date),
        availability=raw.status or "available",
        pricing=Pricing(mrp=price, current_price=price, currency="INR"),
        specifications=normalize_specifications(raw.specifications),
        images=_strings(raw.images),
    )


def generate_slug(brand: str, model: str, variant: Optional[str] = None) -> str:
    """URL slug for a catalog phone: "brand-model[-variant]", lower-case, alphanumerics only."""
    slug = f"{brand}-{model}"
    if variant:
        slug += f"-{variant}"
    return re.sub(r"[^a-z0-9]+", "-", slug.lower()).strip("-")


def format_camera_spec(camera: CameraSpec) -> str:
    """Inverse of parse_camera_spec for catalog storage, e.g. "48MP f/1.8"."""
    if not camera.megapixels:
        return ""
    megapixels = int(camera.megapixels) if float(camera.megapixels).is_integer() else camera.megapixels
    spec = f"{megapixels}MP"
    if camera.aperture:
        spec += f" {camera.aperture}"
    return spec
