"""FastAPI mock servers for the specification and price tracking APIs."""

import asyncio
import os
import random
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from phone_sync.processor.normalizer import generate_slug

DEFAULT_CATALOG = {
    "Apple": [("iPhone 15", 79900), ("iPhone 15 Pro", 134900)],
    "Samsung": [("Galaxy S24", 74999), ("Galaxy A55", 39999)],
    "OnePlus": [("12", 64999), ("Nord CE4", 24999)],
}

MOCK_RETAILERS = [
    ("Amazon India", "https://www.amazon.in/dp/"),
    ("Flipkart", "https://www.flipkart.com/p/"),
    ("Croma", "https://www.croma.com/p/"),
    ("Reliance Digital", "https://www.reliancedigital.in/p/"),
    ("Unknown Importer", "https://gadgets.example.com/p/"),
]


def sample_phone(brand: str, model: str, price: float) -> Dict[str, Any]:
    """One specification API record in the upstream shape."""
    phone_id = generate_slug(brand, model)
    return {
        "id": phone_id,
        "name": f"{brand} {model}",
        "brand": brand,
        "model": model,
        "launch_date": "2024-01-17",
        "status": "available",
        "specifications": {
            "display": {"size": "6.2\"", "resolution": "1080 x 2340", "type": "AMOLED", "refresh_rate": 120},
            "camera": {"main": "50 MP, f/1.8", "ultrawide": "12 MP, f/2.2", "front": "12 MP, f/2.2",
                       "features": ["HDR", "Night mode"]},
            "performance": {"chipset": "Octa-core", "ram": ["8GB"], "storage": ["128GB", "256GB"],
                            "card_slot": False},
            "battery": {"capacity": 4500, "charging": 45, "wireless": True},
            "connectivity": {"network": ["5G", "4G"], "wifi": "Wi-Fi 6", "bluetooth": "5.3", "nfc": True},
            "build": {"dimensions": "147 x 71 x 7.6 mm", "weight": "168 g", "colors": ["Black"],
                      "ip_rating": "IP68"},
            "software": {"os": "Android", "version": "14"},
        },
        "images": [f"https://img.example.com/{phone_id}.jpg"],
        "price": {"currency": "INR", "price": price},
    }


def sample_price_data(brand: str, model: str, price: float) -> Dict[str, Any]:
    """Price API record: one in-stock offer per mock retailer, cheapest first."""
    phone_id = generate_slug(brand, model)
    prices = []
    for offset, (retailer, url) in enumerate(MOCK_RETAILERS):
        prices.append({
            "retailer": retailer,
            "price": price + offset * 500,
            "currency": "INR",
            "availability": "in_stock",
            "url": f"{url}{phone_id}",
            "lastUpdated": "2024-06-01T00:00:00Z",
        })
    values = [p["price"] for p in prices]
    return {
        "phoneId": phone_id,
        "brand": brand,
        "model": model,
        "prices": prices,
        "averagePrice": sum(values) / len(values),
        "lowestPrice": min(values),
        "highestPrice": max(values),
    }


def _failure_middleware(app: FastAPI, rng: random.Random, error_rate: float, extra_latency_ms: int) -> None:
    @app.middleware("http")
    async def simulate(request: Request, call_next):
        if extra_latency_ms > 0:
            await asyncio.sleep(extra_latency_ms / 1000.0)
        if request.url.path != "/health" and rng.random() < error_rate:
            return JSONResponse(status_code=rng.choice([500, 502, 503]),
                                content={"detail": "Simulated error"})
        return await call_next(request)


def create_gsmarena_app(
    catalog: Optional[Dict[str, List[tuple]]] = None,
    random_seed: Optional[int] = None,
    error_rate: float = 0.0,
    extra_latency_ms: int = 0,
) -> FastAPI:
    """
    Mock specification API.

    Args:
        catalog: Brand -> [(model, price)] served by the API
        random_seed: Seed for deterministic error injection
        error_rate: Probability of returning 5xx errors (0.0-1.0)
        extra_latency_ms: Additional latency in milliseconds
    """
    catalog = catalog if catalog is not None else DEFAULT_CATALOG
    phones = [sample_phone(brand, model, price)
              for brand, models in catalog.items() for model, price in models]
    app = FastAPI(title="Mock API - gsmarena")
    _failure_middleware(app, random.Random(random_seed), error_rate, extra_latency_ms)

    @app.get("/search")
    async def search(q: str = ""):
        terms = q.lower().split()
        return {"phones": [p for p in phones if all(t in p["name"].lower() for t in terms)]}

    @app.get("/brands")
    async def brands():
        return {"brands": [{"name": name} for name in catalog]}

    @app.get("/brands/{brand}/phones")
    async def brand_phones(brand: str):
        if brand.lower() not in {name.lower() for name in catalog}:
            raise HTTPException(status_code=404, detail="Unknown brand")
        return {"phones": [p for p in phones if p["brand"].lower() == brand.lower()]}

    @app.get("/phones/{phone_id}")
    async def phone(phone_id: str):
        for p in phones:
            if p["id"] == phone_id:
                return {"phone": p}
        raise HTTPException(status_code=404, detail="Unknown phone")

    @app.get("/health")
    async def health():
        return {"status": "healthy", "server": "gsmarena"}

    return app


def create_price_app(
    catalog: Optional[Dict[str, List[tuple]]] = None,
    random_seed: Optional[int] = None,
    error_rate: float = 0.0,
    extra_latency_ms: int = 0,
) -> FastAPI:
    """Mock price tracking API over the same catalog as the specification mock."""
    catalog = catalog if catalog is not None else DEFAULT_CATALOG
    records = {}
    for brand, models in catalog.items():
        for model, price in models:
            data = sample_price_data(brand, model, price)
            records[data["phoneId"]] = data
    app = FastAPI(title="Mock API - priceTracking")
    _failure_middleware(app, random.Random(random_seed), error_rate, extra_latency_ms)

    def _lookup(phone_id: str) -> Dict[str, Any]:
        if phone_id not in records:
            raise HTTPException(status_code=404, detail="Unknown phone")
        return records[phone_id]

    @app.get("/prices/search")
    async def search(q: str = "", country: str = "IN"):
        terms = q.lower().split()
        for data in records.values():
            if all(t in f"{data['brand']} {data['model']}".lower() for t in terms):
                return {"priceData": data}
        return {"priceData": None}

    @app.get("/prices/{phone_id}/history")
    async def history(phone_id: str, days: int = 30):
        data = _lookup(phone_id)
        lowest = data["lowestPrice"]
        return {"history": [
            {"date": f"2024-05-{day:02d}", "price": lowest + (days - day) * 10, "retailer": "Amazon India"}
            for day in range(1, min(days, 28) + 1)
        ]}

    @app.get("/prices/{phone_id}")
    async def current(phone_id: str, country: str = "IN"):
        return {"priceData": _lookup(phone_id)}

    @app.get("/deals")
    async def deals(maxPrice: float, country: str = "IN", sortBy: str = "discount"):
        return {"deals": [d for d in records.values() if d["lowestPrice"] <= maxPrice]}

    @app.get("/alerts")
    async def alerts(threshold: float = 10, country: str = "IN"):
        return {"alerts": [
            {"phoneId": d["phoneId"], "oldPrice": d["highestPrice"], "newPrice": d["lowestPrice"],
             "discount": round((d["highestPrice"] - d["lowestPrice"]) / d["highestPrice"] * 100, 2)}
            for d in records.values()
            if (d["highestPrice"] - d["lowestPrice"]) / d["highestPrice"] * 100 >= threshold
        ]}

    @app.get("/health")
    async def health():
        return {"status": "healthy", "server": "priceTracking"}

    return app


def create_app() -> FastAPI:
    """
    Factory function for uvicorn --factory.

    Reads SERVER_NAME from environment to determine which server to create.
    Defaults to the specification API if not specified.
    """
    server_name = os.getenv("SERVER_NAME", "gsmarena")
    seed = os.getenv("RANDOM_SEED")
    options = {
        "random_seed": int(seed) if seed is not None else None,
        "error_rate": float(os.getenv("ERROR_RATE", 0.0)),
        "extra_latency_ms": int(os.getenv("EXTRA_LATENCY_MS", 0)),
    }
    if server_name == "priceTracking":
        return create_price_app(**options)
    return create_gsmarena_app(**options)
