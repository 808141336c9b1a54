import redis
import json
import logging
from typing import Any, Optional
from datetime import datetime, date

from configurations.config import settings

logger = logging.getLogger(__name__)


class CacheManager:
    """
    Redis cache for reservation day summaries

    Every failure is logged and treated as a cache miss, the caller then
    recomputes from the database.
    """

    def __init__(self, host=settings.REDIS_HOST, port=settings.REDIS_PORT, db=settings.REDIS_DB, password=settings.REDIS_PASSWORD):
        self.redis = redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            decode_responses=False
        )

    def get(self, key: str) -> Optional[Any]:
        try:
            value = self.redis.get(key)
            if value:
                return json.loads(value)
            return None
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Error retrieving from cache: {str(e)}")
            return None

    def set(self, key: str, value: Any, ttl: int = settings.SUMMARY_CACHE_TTL) -> bool:
        """
        Set a value in cache

        Args:
            key: Cache key
            value: JSON-serialisable value
            ttl: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        try:
            serialized = json.dumps(value, default=self._json_serial)
            self.redis.setex(key, ttl, serialized)
            return True
        except (redis.RedisError, TypeError) as e:
            logger.warning(f"Error setting cache: {str(e)}")
            return False

    def delete(self, key: str) -> bool:
        try:
            self.redis.delete(key)
            return True
        except redis.RedisError as e:
            logger.warning(f"Error deleting from cache: {str(e)}")
            return False

    def _json_serial(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return str(obj)


def summary_key(day: date) -> str:
    return f"reservations:summary:{day.isoformat()}"
