"""Cache backends and the discovery snapshot cache."""

from .base import CacheEnvelope, CacheFactory, CacheStore
from .discovery_cache import DISCOVERY_CACHE_VERSION, DiscoveryCache
from .json_store import JsonCacheFactory, JsonCacheStore
from .memory import MemoryCacheFactory, MemoryCacheStore

__all__ = [
    "CacheEnvelope",
    "CacheFactory",
    "CacheStore",
    "DISCOVERY_CACHE_VERSION",
    "DiscoveryCache",
    "JsonCacheFactory",
    "JsonCacheStore",
    "MemoryCacheFactory",
    "MemoryCacheStore",
]
