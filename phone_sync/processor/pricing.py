"""Price statistics and retailer allow-list filtering."""

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from phone_sync.models.phone import PriceData, PriceStats, RetailerPrice


@dataclass(frozen=True)
class Retailer:
    """A known Indian retailer."""
    name: str
    domain: str
    keyword: str
    is_active: bool = True


INDIAN_RETAILERS = (
    Retailer(name="Amazon India", domain="amazon.in", keyword="amazon"),
    Retailer(name="Flipkart", domain="flipkart.com", keyword="flipkart"),
    Retailer(name="Myntra", domain="myntra.com", keyword="myntra"),
    Retailer(name="Croma", domain="croma.com", keyword="croma"),
    Retailer(name="Reliance Digital", domain="reliancedigital.in", keyword="reliance"),
    Retailer(name="Vijay Sales", domain="vijaysales.com", keyword="vijay"),
    Retailer(name="Poorvika", domain="poorvika.com", keyword="poorvika"),
    Retailer(name="Sangeetha Mobiles", domain="sangeethamobiles.com", keyword="sangeetha"),
)


def calculate_price_stats(prices: Iterable[RetailerPrice]) -> PriceStats:
    """
    Summarize in-stock offers.

    Out-of-stock and pre-order offers are ignored. With no in-stock offers
    every figure is 0 and ``best_deal`` is None. The best deal is the first
    in-stock offer carrying the lowest price. The average is rounded to the
    nearest rupee, halves up.
    """
    in_stock = [p for p in prices if p.availability == "in_stock"]
    if not in_stock:
        return PriceStats()

    values = [p.price for p in in_stock]
    lowest = min(values)
    highest = max(values)
    best_deal = next(p for p in in_stock if p.price == lowest)

    return PriceStats(
        average_price=math.floor(sum(values) / len(values) + 0.5),
        lowest_price=lowest,
        highest_price=highest,
        price_range=highest - lowest,
        best_deal=best_deal,
    )


def allowed_retailers(enabled_keywords: Optional[Iterable[str]] = None) -> List[Retailer]:
    """Active retailers, narrowed to those matching ``enabled_keywords`` when given."""
    active = [r for r in INDIAN_RETAILERS if r.is_active]
    if enabled_keywords is None:
        return active
    keywords = {k.lower() for k in enabled_keywords}
    return [r for r in active if r.keyword in keywords]


def _host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def matches_retailer(price: RetailerPrice, retailer: Retailer) -> bool:
    """A price belongs to a retailer when its name carries the keyword or its URL is on the retailer's domain."""
    if retailer.keyword in price.retailer.lower():
        return True
    host = _host(price.url)
    return host == retailer.domain or host.endswith("." + retailer.domain)


def filter_retailers(price_data: PriceData, retailers: Iterable[Retailer]) -> PriceData:
    """
    Keep only offers from ``retailers`` and recompute the summary figures.

    Returns a new PriceData; the input is left untouched.
    """
    retailers = list(retailers)
    kept = [p for p in price_data.prices if any(matches_retailer(p, r) for r in retailers)]
    stats = calculate_price_stats(kept)
    return price_data.model_copy(update={
        "prices": kept,
        "average_price": stats.average_price,
        "lowest_price": stats.lowest_price,
        "highest_price": stats.highest_price,
    })
