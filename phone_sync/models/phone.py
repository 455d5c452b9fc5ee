"""Normalized phone and price shapes shared by adapters, fallback and catalog.

These cross the cache boundary as JSON, so they are pydantic models:
``model_dump(mode="json")`` on the way in, ``model_validate`` on the way out.
"""

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Availability = Literal["available", "discontinued", "upcoming"]
StockStatus = Literal["in_stock", "out_of_stock", "pre_order"]


class CameraSpec(BaseModel):
    megapixels: float = 0
    aperture: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    video_recording: Optional[str] = None


class DisplaySpec(BaseModel):
    size: str = ""
    resolution: str = ""
    type: str = ""
    refresh_rate: Optional[int] = None
    brightness: Optional[int] = None


class CameraSpecs(BaseModel):
    rear: List[CameraSpec] = Field(default_factory=list)
    front: CameraSpec = Field(default_factory=CameraSpec)
    features: List[str] = Field(default_factory=list)


class PerformanceSpec(BaseModel):
    processor: str = ""
    gpu: Optional[str] = None
    ram: List[str] = Field(default_factory=list)
    storage: List[str] = Field(default_factory=list)
    expandable_storage: Optional[bool] = None


class BatterySpec(BaseModel):
    capacity: int = 0
    charging_speed: Optional[float] = None
    wireless_charging: Optional[bool] = None


class ConnectivitySpec(BaseModel):
    network: List[str] = Field(default_factory=list)
    wifi: str = ""
    bluetooth: str = ""
    nfc: Optional[bool] = None


class BuildSpec(BaseModel):
    dimensions: str = ""
    weight: str = ""
    materials: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    water_resistance: Optional[str] = None


class SoftwareSpec(BaseModel):
    os: str = ""
    version: str = ""
    update_support: Optional[str] = None


class PhoneSpecifications(BaseModel):
    """Full specification sheet. Every group is always present."""
    display: DisplaySpec = Field(default_factory=DisplaySpec)
    camera: CameraSpecs = Field(default_factory=CameraSpecs)
    performance: PerformanceSpec = Field(default_factory=PerformanceSpec)
    battery: BatterySpec = Field(default_factory=BatterySpec)
    connectivity: ConnectivitySpec = Field(default_factory=ConnectivitySpec)
    build: BuildSpec = Field(default_factory=BuildSpec)
    software: SoftwareSpec = Field(default_factory=SoftwareSpec)


class Pricing(BaseModel):
    mrp: float = 0
    current_price: float = 0
    currency: str = "INR"


class Phone(BaseModel):
    """Partial phone record as produced by an external source."""
    brand: str = ""
    model: str = ""
    variant: Optional[str] = None
    launch_date: Optional[date] = None
    availability: Availability = "available"
    pricing: Pricing = Field(default_factory=Pricing)
    specifications: Optional[PhoneSpecifications] = None
    images: List[str] = Field(default_factory=list)


class _CamelModel(BaseModel):
    """Price tracking payloads arrive camelCased."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RetailerPrice(_CamelModel):
    retailer: str
    price: float
    currency: str = "INR"
    availability: StockStatus = "in_stock"
    url: str = ""
    last_updated: str = ""


class PriceHistoryEntry(_CamelModel):
    date: str
    price: float
    retailer: str


class PriceData(_CamelModel):
    phone_id: str
    brand: str
    model: str
    variant: Optional[str] = None
    prices: List[RetailerPrice] = Field(default_factory=list)
    average_price: float = 0
    lowest_price: float = 0
    highest_price: float = 0
    price_history: Optional[List[PriceHistoryEntry]] = None


class PriceStats(BaseModel):
    average_price: float = 0
    lowest_price: float = 0
    highest_price: float = 0
    price_range: float = 0
    best_deal: Optional[RetailerPrice] = None


class PriceSnapshot(BaseModel):
    """The two numbers the catalog cares about."""
    current_price: float
    mrp: float


class PriceAlert(_CamelModel):
    phone_id: str
    old_price: float
    new_price: float
    discount: float
