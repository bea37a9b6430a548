"""
Caching Module
Redis client used to share search sessions across processes.
"""

from .redis_cache import RedisCache, RedisCacheError, get_redis_cache, reset_redis_cache

__all__ = [
    "RedisCache",
    "RedisCacheError",
    "get_redis_cache",
    "reset_redis_cache",
]
