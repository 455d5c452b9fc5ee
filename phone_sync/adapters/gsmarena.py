"""Adapter for the GSMArena-like phone specification API."""

from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

from pydantic import ValidationError

from phone_sync.adapters.base import SourceAdapter
from phone_sync.errors import InvalidResponseError, SourceNotFoundError
from phone_sync.models.config import GSMArenaConfig
from phone_sync.models.data_models import SyncSource
from phone_sync.models.phone import Phone
from phone_sync.models.upstream import GSMArenaPhone
from phone_sync.processor.normalizer import normalize_phone

MIN_QUERY_LENGTH = 2


class GSMArenaService(SourceAdapter):
    """Phone specifications by search, brand or id."""

    source = SyncSource.GSMARENA.value
    config: GSMArenaConfig

    def _parse_phone(self, payload: Any) -> GSMArenaPhone:
        try:
            return GSMArenaPhone.model_validate(payload)
        except ValidationError as e:
            raise InvalidResponseError(self.source, f"invalid phone record: {e.error_count()} errors") from e

    def _parse_phone_list(self, data: Dict[str, Any]) -> List[GSMArenaPhone]:
        phones = data.get("phones")
        if not isinstance(phones, list):
            raise InvalidResponseError(self.source, "response has no phones list")
        return [self._parse_phone(phone) for phone in phones]

    async def search_phones(self, query: str) -> List[GSMArenaPhone]:
        """
        Search upstream phones by free text.

        Queries shorter than two characters return [] without a request.
        """
        query = (query or "").strip()
        if len(query) < MIN_QUERY_LENGTH:
            return []
        data = await self._get_json("/search", params={"q": query})
        return self._parse_phone_list(data)

    async def get_phones_by_brand(self, brand: str) -> List[GSMArenaPhone]:
        data = await self._get_json(f"/brands/{quote(brand, safe='')}/phones")
        return self._parse_phone_list(data)

    async def get_phone_by_id(self, phone_id: str) -> Optional[GSMArenaPhone]:
        """Fetch one phone; None when upstream has no such id."""
        try:
            data = await self._get_json(f"/phones/{quote(phone_id, safe='')}")
        except SourceNotFoundError:
            return None
        if not data.get("phone"):
            return None
        return self._parse_phone(data["phone"])

    async def get_brands(self) -> List[str]:
        data = await self._get_json("/brands")
        brands = data.get("brands")
        if not isinstance(brands, list):
            raise InvalidResponseError(self.source, "response has no brands list")
        return [b["name"] for b in brands if isinstance(b, dict) and b.get("name")]

    @staticmethod
    def convert_to_phone(raw: Union[GSMArenaPhone, Dict[str, Any]]) -> Phone:
        return normalize_phone(raw)
