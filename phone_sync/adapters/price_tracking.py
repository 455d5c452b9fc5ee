"""Adapter for the price tracking API (Indian market)."""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from phone_sync.adapters.base import SourceAdapter
from phone_sync.errors import InvalidResponseError, SourceAPIError, SourceNotFoundError
from phone_sync.models.config import PriceTrackingConfig
from phone_sync.models.data_models import SyncSource
from phone_sync.models.phone import PriceAlert, PriceData, PriceHistoryEntry, PriceStats
from phone_sync.processor.pricing import allowed_retailers, calculate_price_stats, filter_retailers


def build_search_query(brand: str, model: str, variant: Optional[str] = None) -> str:
    query = f"{brand} {model}"
    if variant:
        query += f" {variant}"
    return query.strip()


class PriceTrackingService(SourceAdapter):
    """
    Retailer prices, history, deals and alerts.

    ``get_phone_prices`` propagates upstream failures so the caller can
    record them; history, deals and alerts are advisory and degrade to [].
    """

    source = SyncSource.PRICE_TRACKING.value
    config: PriceTrackingConfig

    def _parse_price_data(self, payload: Any) -> PriceData:
        try:
            return PriceData.model_validate(payload)
        except ValidationError as e:
            raise InvalidResponseError(self.source, f"invalid price data: {e.error_count()} errors") from e

    async def get_phone_prices(
        self, brand: str, model: str, variant: Optional[str] = None
    ) -> Optional[PriceData]:
        """Current retailer prices for a phone; None when upstream has none."""
        query = build_search_query(brand, model, variant)
        try:
            data = await self._get_json(
                "/prices/search", params={"q": query, "country": self.config.country}
            )
        except SourceNotFoundError:
            return None
        if not data.get("priceData"):
            return None
        return self._parse_price_data(data["priceData"])

    async def get_current_price(self, phone_id: str) -> Optional[PriceData]:
        try:
            data = await self._get_json(f"/prices/{phone_id}", params={"country": self.config.country})
        except SourceNotFoundError:
            return None
        if not data.get("priceData"):
            return None
        return self._parse_price_data(data["priceData"])

    async def get_price_history(self, phone_id: str, days: int = 30) -> List[PriceHistoryEntry]:
        try:
            data = await self._get_json(
                f"/prices/{phone_id}/history", params={"days": days, "country": self.config.country}
            )
            history = data.get("history")
            if not isinstance(history, list):
                return []
            return [PriceHistoryEntry.model_validate(entry) for entry in history]
        except (SourceAPIError, ValidationError) as e:
            self.logger.warning("price_history_failed", source=self.source, phone_id=phone_id, error=str(e))
            return []

    async def track_price_changes(self, phone_ids: Sequence[str]) -> Dict[str, PriceData]:
        """
        Fetch current prices for many phones.

        Works in batches of ``batch_size``: requests within a batch run
        concurrently, with ``min_request_interval`` seconds between batches.
        Phones that fail or have no price data are left out of the result.
        """
        results: Dict[str, PriceData] = {}
        batch_size = self.config.batch_size

        async def track(phone_id: str) -> None:
            try:
                price_data = await self.get_current_price(phone_id)
            except SourceAPIError as e:
                self.logger.warning("price_tracking_failed", source=self.source, phone_id=phone_id, error=str(e))
                return
            if price_data is not None:
                results[phone_id] = price_data

        for start in range(0, len(phone_ids), batch_size):
            batch = phone_ids[start:start + batch_size]
            await asyncio.gather(*(track(phone_id) for phone_id in batch))
            if start + batch_size < len(phone_ids):
                await self._sleep(self.config.min_request_interval)

        return results

    async def get_best_deals(self, max_price: float, category: Optional[str] = None) -> List[PriceData]:
        params: Dict[str, Any] = {"maxPrice": max_price, "country": self.config.country, "sortBy": "discount"}
        if category:
            params["category"] = category
        try:
            data = await self._get_json("/deals", params=params)
            deals = data.get("deals")
            if not isinstance(deals, list):
                return []
            return [self._parse_price_data(deal) for deal in deals]
        except SourceAPIError as e:
            self.logger.warning("best_deals_failed", source=self.source, error=str(e))
            return []

    async def get_price_alerts(self, threshold: float = 10) -> List[PriceAlert]:
        try:
            data = await self._get_json("/alerts", params={"threshold": threshold, "country": self.config.country})
            alerts = data.get("alerts")
            if not isinstance(alerts, list):
                return []
            return [PriceAlert.model_validate(alert) for alert in alerts]
        except (SourceAPIError, ValidationError) as e:
            self.logger.warning("price_alerts_failed", source=self.source, error=str(e))
            return []

    @staticmethod
    def calculate_price_stats(price_data: PriceData) -> PriceStats:
        return calculate_price_stats(price_data.prices)

    def filter_indian_retailers(self, price_data: PriceData) -> PriceData:
        """Keep prices from enabled Indian retailers only, with summary figures recomputed."""
        return filter_retailers(price_data, allowed_retailers(self.config.enabled_retailers))
