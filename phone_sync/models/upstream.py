"""Raw payload schema of the GSMArena-like specification API.

Everything is optional: missing groups are filled with defaults during
normalization rather than rejected here. Brand/model emptiness is a
validation concern of the orchestrator.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class RawDisplay(_Payload):
    size: Optional[str] = None
    resolution: Optional[str] = None
    type: Optional[str] = None
    refresh_rate: Optional[int] = None
    brightness: Optional[int] = None


class RawCamera(_Payload):
    main: Optional[str] = None
    ultrawide: Optional[str] = None
    telephoto: Optional[str] = None
    depth: Optional[str] = None
    front: Optional[str] = None
    features: Optional[List[str]] = None


class RawPerformance(_Payload):
    chipset: Optional[str] = None
    cpu: Optional[str] = None
    gpu: Optional[str] = None
    ram: Optional[List[str]] = None
    storage: Optional[List[str]] = None
    card_slot: Optional[bool] = None


class RawBattery(_Payload):
    capacity: Optional[int] = None
    charging: Optional[float] = None
    wireless: Optional[bool] = None


class RawConnectivity(_Payload):
    network: Optional[List[str]] = None
    wifi: Optional[str] = None
    bluetooth: Optional[str] = None
    nfc: Optional[bool] = None


class RawBuild(_Payload):
    dimensions: Optional[str] = None
    weight: Optional[str] = None
    materials: Optional[List[str]] = None
    colors: Optional[List[str]] = None
    ip_rating: Optional[str] = None


class RawSoftware(_Payload):
    os: Optional[str] = None
    version: Optional[str] = None


class RawSpecifications(_Payload):
    display: Optional[RawDisplay] = None
    camera: Optional[RawCamera] = None
    performance: Optional[RawPerformance] = None
    battery: Optional[RawBattery] = None
    connectivity: Optional[RawConnectivity] = None
    build: Optional[RawBuild] = None
    software: Optional[RawSoftware] = None


class RawPrice(_Payload):
    currency: Optional[str] = None
    price: Optional[float] = None


class GSMArenaPhone(_Payload):
    id: str = ""
    name: str = ""
    brand: str = ""
    model: str = ""
    variant: Optional[str] = None
    launch_date: Optional[str] = None
    status: Optional[Literal["available", "discontinued", "upcoming"]] = None
    specifications: Optional[RawSpecifications] = None
    images: Optional[List[str]] = None
    price: Optional[RawPrice] = None
