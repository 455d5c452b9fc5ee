"""Curated last-resort records for well-known phones."""

from typing import Dict

from phone_sync.models.phone import Phone, PhoneSpecifications
from phone_sync.processor.normalizer import generate_slug

UNKNOWN = "Unknown"


def phone_key(brand: str, model: str) -> str:
    """Lookup key shared by the phone cache and the static table, e.g. "apple-iphone-15"."""
    return generate_slug(brand, model)


def seed_static_phones() -> Dict[str, Phone]:
    phones = [
        Phone(brand="Apple", model="iPhone 15",
              pricing={"mrp": 79900, "current_price": 79900, "currency": "INR"}),
        Phone(brand="Samsung", model="Galaxy S24",
              pricing={"mrp": 74999, "current_price": 74999, "currency": "INR"}),
        Phone(brand="OnePlus", model="12",
              pricing={"mrp": 64999, "current_price": 64999, "currency": "INR"}),
    ]
    return {phone_key(p.brand, p.model): p for p in phones}


def default_specifications() -> PhoneSpecifications:
    """Fully populated placeholder sheet used when no source has specifications."""
    return PhoneSpecifications.model_validate({
        "display": {"size": UNKNOWN, "resolution": UNKNOWN, "type": UNKNOWN},
        "camera": {"rear": [], "front": {"megapixels": 0, "features": []}, "features": []},
        "performance": {"processor": UNKNOWN, "ram": [], "storage": []},
        "battery": {"capacity": 0},
        "connectivity": {"network": [], "wifi": UNKNOWN, "bluetooth": UNKNOWN},
        "build": {"dimensions": UNKNOWN, "weight": UNKNOWN, "materials": [], "colors": []},
        "software": {"os": UNKNOWN, "version": UNKNOWN},
    })
