import json
import logging
import redis
from typing import Optional, Any

from inventory_tracker.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Create Redis client. Short timeouts keep requests fast when Redis is down.
redis_client = redis.from_url(
    settings.REDIS_URL,
    decode_responses=True,
    socket_connect_timeout=1,
    socket_timeout=1,
)


class CacheService:
    """
    Redis read-through cache for single product lookups.

    Every operation degrades silently when Redis is unavailable, so the
    database stays the source of truth and the API keeps working.
    """

    def __init__(self, client: redis.Redis = None, ttl: int = None):
        self.client = client or redis_client
        self.ttl = ttl or settings.CACHE_TTL

    def _make_key(self, prefix: str, key: str) -> str:
        """Create a namespaced cache key."""
        return f"{prefix}:{key}"

    def get(self, prefix: str, key: str) -> Optional[Any]:
        """
        Get a value from cache.

        Args:
            prefix: Cache key prefix (e.g., 'product')
            key: Unique identifier

        Returns:
            Cached value or None if not found or Redis is unreachable
        """
        cache_key = self._make_key(prefix, key)
        try:
            value = self.client.get(cache_key)
            if value:
                return json.loads(value)
            return None
        except (redis.RedisError, json.JSONDecodeError) as e:
            logger.debug(f"Cache get failed for {cache_key}: {e}")
            return None

    def set(self, prefix: str, key: str, value: Any, ttl: int = None) -> bool:
        """Store a JSON-serializable value with a TTL (default from settings)."""
        cache_key = self._make_key(prefix, key)
        ttl = ttl or self.ttl
        try:
            serialized = json.dumps(value, default=str)
            self.client.setex(cache_key, ttl, serialized)
            return True
        except (redis.RedisError, TypeError) as e:
            logger.debug(f"Cache set failed for {cache_key}: {e}")
            return False

    def delete(self, prefix: str, key: str) -> bool:
        cache_key = self._make_key(prefix, key)
        try:
            self.client.delete(cache_key)
            return True
        except redis.RedisError as e:
            logger.debug(f"Cache delete failed for {cache_key}: {e}")
            return False

    def ping(self) -> bool:
        """Return True when Redis answers."""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


# Singleton cache service instance
cache_service = CacheService()
