from .write_through_cache import WriteThroughCache, CacheStats

__all__ = ["WriteThroughCache", "CacheStats"]
