"""
Redis Cache Client
Thread-safe Redis client with connection pooling, used for shared search sessions.
"""

import logging
import pickle
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

import redis
from redis.connection import ConnectionPool

from ..config import MLConfig, get_ml_config

logger = logging.getLogger(__name__)


class RedisCacheError(Exception):
    """Exception raised for Redis cache errors."""

    pass


class RedisCache:
    """
    Redis cache client with connection pooling.

    Values are pickled; keys are expired by Redis through SETEX TTLs.
    """

    def __init__(self, config: Optional[MLConfig] = None, client: Optional[redis.Redis] = None):
        """
        Initialize Redis cache client.

        Args:
            config: ML configuration
            client: Pre-built Redis client (skips pool creation)
        """
        self.config = config or get_ml_config()
        self.client = client
        self.pool = None

        if client is None:
            self.pool = ConnectionPool(
                host=self.config.storage.redis_host,
                port=self.config.storage.redis_port,
                db=self.config.storage.redis_db,
                password=self.config.storage.redis_password,
                decode_responses=False,  # pickled payloads
                max_connections=20,
                socket_timeout=5,
                socket_connect_timeout=5,
            )
            logger.info(
                f"Redis cache initialized: {self.config.storage.redis_host}:"
                f"{self.config.storage.redis_port} (db={self.config.storage.redis_db})"
            )

    def _get_client(self) -> redis.Redis:
        """
        Get Redis client (lazy initialization).

        Raises:
            RedisCacheError: If connection fails
        """
        if self.client is None:
            try:
                self.client = redis.Redis(connection_pool=self.pool)
                self.client.ping()
                logger.info("Redis connection established")
            except redis.ConnectionError as e:
                self.client = None
                raise RedisCacheError(f"Failed to connect to Redis: {e}")

        return self.client

    def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found

        Raises:
            RedisCacheError: If Redis is unreachable
        """
        try:
            data = self._get_client().get(key)
        except redis.RedisError as e:
            raise RedisCacheError(f"Redis GET error for key '{key}': {e}")

        return self._loads(key, data)

    @staticmethod
    def _loads(key: str, data: Optional[bytes]) -> Optional[Any]:
        if data is None:
            return None

        try:
            return pickle.loads(data)
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError) as e:
            logger.error(f"Error deserializing cached data for key '{key}': {e}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: Value to cache (will be pickled)
            ttl: Time-to-live in seconds (None = no expiration)

        Raises:
            RedisCacheError: If Redis is unreachable
        """
        data = pickle.dumps(value)
        try:
            client = self._get_client()
            if ttl is not None:
                client.setex(key, ttl, data)
            else:
                client.set(key, data)
        except redis.RedisError as e:
            raise RedisCacheError(f"Redis SET error for key '{key}': {e}")

    def update(
        self,
        key: str,
        fn: Callable[[Optional[Any]], Tuple[Optional[Any], Any]],
        ttl: Optional[int] = None,
        max_retries: int = 10,
    ) -> Any:
        """
        Read-modify-write a value atomically across clients (WATCH/MULTI/EXEC).

        fn receives the current value (None if missing) and returns
        (new_value, result). A new_value of None leaves the key untouched.
        fn runs again on a fresh read whenever another client changes the
        key before the write lands, so it must not have side effects.

        Args:
            key: Cache key
            fn: Update function
            ttl: Time-to-live in seconds for the written value
            max_retries: Attempts before giving up on a contended key

        Returns:
            The result returned by fn

        Raises:
            RedisCacheError: If Redis is unreachable or the key stays contended
        """
        try:
            client = self._get_client()
            for attempt in range(1, max_retries + 1):
                with client.pipeline() as pipe:
                    try:
                        pipe.watch(key)
                        new_value, result = fn(self._loads(key, pipe.get(key)))
                        if new_value is None:
                            pipe.unwatch()
                            return result

                        data = pickle.dumps(new_value)
                        pipe.multi()
                        if ttl is not None:
                            pipe.setex(key, ttl, data)
                        else:
                            pipe.set(key, data)
                        pipe.execute()
                        return result
                    except redis.WatchError:
                        logger.debug(f"Key '{key}' changed during update, retry {attempt}")
        except redis.RedisError as e:
            raise RedisCacheError(f"Redis update error for key '{key}': {e}")

        raise RedisCacheError(
            f"Redis update of key '{key}' still contended after {max_retries} tries"
        )

    def delete(self, key: str) -> bool:
        """Delete key from cache. Returns True if a key was deleted."""
        try:
            return self._get_client().delete(key) > 0
        except redis.RedisError as e:
            raise RedisCacheError(f"Redis DELETE error for key '{key}': {e}")

    def scan_keys(self, pattern: str) -> Iterator[str]:
        """Iterate over keys matching a pattern (SCAN, non-blocking)."""
        try:
            for key in self._get_client().scan_iter(match=pattern):
                yield key.decode() if isinstance(key, bytes) else key
        except redis.RedisError as e:
            raise RedisCacheError(f"Redis SCAN error for pattern '{pattern}': {e}")

    def get_ttl(self, key: str) -> Optional[int]:
        """
        Get remaining time-to-live for a key.

        Returns:
            TTL in seconds, -1 if no expiration, -2 if key doesn't exist, None on error
        """
        try:
            return self._get_client().ttl(key)
        except redis.RedisError as e:
            logger.error(f"Redis TTL error for key '{key}': {e}")
            return None

    def ping(self) -> bool:
        """Test Redis connection."""
        try:
            return bool(self._get_client().ping())
        except (redis.RedisError, RedisCacheError) as e:
            logger.error(f"Redis PING error: {e}")
            return False

    def get_info(self) -> Dict[str, Any]:
        """Get Redis server info."""
        try:
            return self._get_client().info()
        except redis.RedisError as e:
            logger.error(f"Redis INFO error: {e}")
            return {}


# Global instance accessor
_cache_instance: Optional[RedisCache] = None


def get_redis_cache(config: Optional[MLConfig] = None) -> RedisCache:
    """Get global Redis cache instance."""
    global _cache_instance
    if _cache_instance is None:
        _cache_instance = RedisCache(config=config)
    return _cache_instance


def reset_redis_cache() -> None:
    global _cache_instance
    _cache_instance = None
