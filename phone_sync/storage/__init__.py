"""Cache backends and the catalog store."""

from .cache import Cache, MemoryCache, RedisCache, create_cache
from .catalog import Brand, CatalogMetrics, CatalogPhone, CatalogStore, InMemoryCatalogStore

__all__ = [
    "Brand",
    "Cache",
    "CatalogMetrics",
    "CatalogPhone",
    "CatalogStore",
    "InMemoryCatalogStore",
    "MemoryCache",
    "RedisCache",
    "create_cache",
]
