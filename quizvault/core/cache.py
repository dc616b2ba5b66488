import json
import logging
from typing import Any, Optional

import redis
from quizvault.core.config import settings

logger = logging.getLogger(__name__)

redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True, socket_timeout=2, socket_connect_timeout=2)

CATEGORIES_VERSION_KEY = "categories:version"

class RedisCache:
    """JSON cache over redis; an unreachable redis behaves like an empty cache."""

    def __init__(self, client: redis.Redis):
        self.redis = client

    def make_key(self, *args) -> str:
        return ":".join(str(a) for a in args)

    def get(self, key: str, default: Any = None) -> Any:
        try:
            value = self.redis.get(key)
        except redis.RedisError as e:
            logger.error(f"Cache get error: {e}")
            return default
        if value is None: return default
        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return value

    def set(self, key: str, value: Any, expire: Optional[int] = None) -> bool:
        if isinstance(value, (dict, list)): value = json.dumps(value, default=str)
        try:
            return bool(self.redis.set(key, value, ex=expire))
        except redis.RedisError as e:
            logger.error(f"Cache set error: {e}")
            return False

    def incr(self, key: str) -> Optional[int]:
        try:
            return int(self.redis.incr(key))
        except redis.RedisError as e:
            logger.error(f"Cache incr error: {e}")
            return None

    def delete(self, *keys: str) -> int:
        try:
            return int(self.redis.delete(*keys))
        except redis.RedisError as e:
            logger.error(f"Cache delete error: {e}")
            return 0

cache = RedisCache(redis_client)

def get_cache() -> RedisCache: return cache

def categories_version(c: RedisCache) -> int:
    return int(c.get(CATEGORIES_VERSION_KEY) or 0)

def invalidate_categories(c: RedisCache) -> None:
    c.incr(CATEGORIES_VERSION_KEY)
