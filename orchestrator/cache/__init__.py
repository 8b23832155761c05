"""Result caching layers."""

from .lru import LRUCache
from .result_cache import CacheConfig, CacheEntry, ResultCache

__all__ = ["LRUCache", "CacheConfig", "CacheEntry", "ResultCache"]
