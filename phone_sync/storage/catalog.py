"""Catalog persistence interface and an in-memory implementation.

The sync pipeline never talks to a database directly: it is handed a
``CatalogStore`` at construction time. ``InMemoryCatalogStore`` backs the
CLI, the HTTP app and the tests, optionally seeded from a YAML file.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol
from uuid import uuid4

import yaml

from phone_sync.errors import CatalogError
from phone_sync.models.phone import Phone, PhoneSpecifications
from phone_sync.processor.normalizer import generate_slug


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Brand:
    id: str
    name: str
    is_active: bool = True


@dataclass
class CatalogPhone:
    """A phone as stored in the catalog."""
    id: str
    brand_id: str
    brand: str
    model: str
    slug: str
    variant: Optional[str] = None
    launch_date: Optional[date] = None
    availability: str = "available"
    mrp: float = 0
    current_price: float = 0
    images: List[str] = field(default_factory=list)
    specifications: Optional[PhoneSpecifications] = None
    is_active: bool = True
    updated_at: Optional[datetime] = None


class CatalogStore(Protocol):
    async def list_active_brands(self) -> List[Brand]: ...

    async def list_active_phones(self) -> List[CatalogPhone]: ...

    async def get_phone(self, phone_id: str) -> Optional[CatalogPhone]: ...

    async def find_phones(self, predicate: Callable[[CatalogPhone], bool]) -> List[CatalogPhone]: ...

    async def find_phone(
        self, brand_id: str, model: str, variant: Optional[str] = None
    ) -> Optional[CatalogPhone]: ...

    async def create_phone(self, brand_id: str, phone: Phone) -> CatalogPhone: ...

    async def update_phone(self, phone_id: str, phone: Phone) -> CatalogPhone: ...

    async def update_price(self, phone_id: str, current_price: float) -> CatalogPhone: ...

    async def upsert_specifications(self, phone_id: str, specifications: PhoneSpecifications) -> None: ...


class CatalogMetrics:
    """Operation counters for a catalog store."""

    def __init__(self, clock: Callable[[], float] = time.perf_counter):
        self._clock = clock
        self.total_operations = 0
        self.failed_operations = 0
        self._total_duration_ms = 0.0

    def record(self, duration_ms: float, success: bool = True) -> None:
        self.total_operations += 1
        self._total_duration_ms += duration_ms
        if not success:
            self.failed_operations += 1

    @contextmanager
    def track(self) -> Iterator[None]:
        """Time the wrapped operation; an exception counts it as failed and propagates."""
        started = self._clock()
        try:
            yield
        except Exception:
            self.record((self._clock() - started) * 1000, success=False)
            raise
        self.record((self._clock() - started) * 1000)

    @property
    def error_rate(self) -> float:
        if not self.total_operations:
            return 0.0
        return self.failed_operations / self.total_operations

    @property
    def average_query_time(self) -> float:
        if not self.total_operations:
            return 0.0
        return self._total_duration_ms / self.total_operations

    def reset(self) -> None:
        self.total_operations = 0
        self.failed_operations = 0
        self._total_duration_ms = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_operations": self.total_operations,
            "failed_operations": self.failed_operations,
            "error_rate": self.error_rate,
            "average_query_time": self.average_query_time,
        }


class InMemoryCatalogStore:
    """Dict-backed CatalogStore. Every operation is timed by ``metrics``."""

    def __init__(
        self,
        metrics: Optional[CatalogMetrics] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.metrics = metrics or CatalogMetrics()
        self._now = now
        self.brands: Dict[str, Brand] = {}
        self.phones: Dict[str, CatalogPhone] = {}

    # Seeding

    def add_brand(self, name: str, brand_id: Optional[str] = None, is_active: bool = True) -> Brand:
        brand = Brand(id=brand_id or generate_slug(name, ""), name=name, is_active=is_active)
        self.brands[brand.id] = brand
        return brand

    def add_phone(self, brand_id: str, phone: Phone, phone_id: Optional[str] = None,
                  is_active: bool = True) -> CatalogPhone:
        brand = self._brand(brand_id)
        record = CatalogPhone(
            id=phone_id or uuid4().hex,
            brand_id=brand.id,
            brand=brand.name,
            model=phone.model,
            variant=phone.variant,
            slug=generate_slug(brand.name, phone.model, phone.variant),
            launch_date=phone.launch_date,
            availability=phone.availability,
            mrp=phone.pricing.mrp,
            current_price=phone.pricing.current_price,
            images=list(phone.images),
            specifications=phone.specifications,
            is_active=is_active,
            updated_at=self._now(),
        )
        self.phones[record.id] = record
        return record

    def _brand(self, brand_id: str) -> Brand:
        brand = self.brands.get(brand_id)
        if brand is None:
            raise CatalogError(f"Brand {brand_id} not found")
        return brand

    def _phone(self, phone_id: str) -> CatalogPhone:
        phone = self.phones.get(phone_id)
        if phone is None:
            raise CatalogError(f"Phone {phone_id} not found")
        return phone

    # CatalogStore

    async def list_active_brands(self) -> List[Brand]:
        with self.metrics.track():
            return [b for b in self.brands.values() if b.is_active]

    async def list_active_phones(self) -> List[CatalogPhone]:
        with self.metrics.track():
            return [p for p in self.phones.values() if p.is_active]

    async def get_phone(self, phone_id: str) -> Optional[CatalogPhone]:
        with self.metrics.track():
            return self.phones.get(phone_id)

    async def find_phones(self, predicate: Callable[[CatalogPhone], bool]) -> List[CatalogPhone]:
        with self.metrics.track():
            return [p for p in self.phones.values() if predicate(p)]

    async def find_phone(
        self, brand_id: str, model: str, variant: Optional[str] = None
    ) -> Optional[CatalogPhone]:
        with self.metrics.track():
            for phone in self.phones.values():
                if phone.brand_id == brand_id and phone.model == model and phone.variant == variant:
                    return phone
            return None

    async def create_phone(self, brand_id: str, phone: Phone) -> CatalogPhone:
        with self.metrics.track():
            return self.add_phone(brand_id, phone)

    async def update_phone(self, phone_id: str, phone: Phone) -> CatalogPhone:
        """Overwrite the fields an external source owns; empty values keep what is stored."""
        with self.metrics.track():
            record = self._phone(phone_id)
            if phone.launch_date:
                record.launch_date = phone.launch_date
            record.availability = phone.availability
            if phone.pricing.mrp:
                record.mrp = phone.pricing.mrp
            if phone.pricing.current_price:
                record.current_price = phone.pricing.current_price
            if phone.images:
                record.images = list(phone.images)
            if phone.specifications is not None:
                record.specifications = phone.specifications
            record.updated_at = self._now()
            return record

    async def update_price(self, phone_id: str, current_price: float) -> CatalogPhone:
        with self.metrics.track():
            record = self._phone(phone_id)
            record.current_price = current_price
            record.updated_at = self._now()
            return record

    async def upsert_specifications(self, phone_id: str, specifications: PhoneSpecifications) -> None:
        with self.metrics.track():
            record = self._phone(phone_id)
            record.specifications = specifications
            record.updated_at = self._now()

    # YAML persistence

    @classmethod
    def from_yaml(cls, path: Path, **kwargs) -> "InMemoryCatalogStore":
        """
        Load a catalog seed file.

        Expected shape::

            brands:
              - name: Apple
                phones:
                  - model: iPhone 15
                    pricing: {mrp: 79900, current_price: 79900}
        """
        store = cls(**kwargs)
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        for entry in data.get("brands", []):
            brand = store.add_brand(entry["name"], entry.get("id"), entry.get("is_active", True))
            for phone_entry in entry.get("phones", []):
                phone_entry = dict(phone_entry)
                phone_id = phone_entry.pop("id", None)
                is_active = phone_entry.pop("is_active", True)
                phone = Phone.model_validate({**phone_entry, "brand": brand.name})
                store.add_phone(brand.id, phone, phone_id, is_active)
        return store

    def save_yaml(self, path: Path) -> None:
        brands = []
        for brand in self.brands.values():
            phones = []
            for record in self.phones.values():
                if record.brand_id != brand.id:
                    continue
                phone = Phone(
                    brand=record.brand,
                    model=record.model,
                    variant=record.variant,
                    launch_date=record.launch_date,
                    availability=record.availability,
                    pricing={"mrp": record.mrp, "current_price": record.current_price},
                    specifications=record.specifications,
                    images=record.images,
                )
                dumped = phone.model_dump(mode="json", exclude_none=True, exclude={"brand"})
                phones.append({"id": record.id, "is_active": record.is_active, **dumped})
            brands.append({"id": brand.id, "name": brand.name, "is_active": brand.is_active, "phones": phones})

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump({"brands": brands}, f, sort_keys=False, allow_unicode=True)
