import hashlib
import json
import logging
from typing import Any, Optional

import redis

logger = logging.getLogger(__name__)


def get_redis_client(redis_url: str) -> Optional[redis.Redis]:
    """Connect to Redis, or return None so the service runs without caching."""
    options = {
        "decode_responses": True,
        "socket_timeout": 5,
        "socket_connect_timeout": 5,
        "retry_on_timeout": True,
    }
    if redis_url.startswith("rediss://"):
        options.update(ssl_cert_reqs=None, health_check_interval=30)

    try:
        client = redis.from_url(redis_url, **options)
        client.ping()
    except redis.AuthenticationError as e:
        logger.warning(f"Redis authentication failed: {e} - check REDIS_URL")
        return None
    except redis.RedisError as e:
        logger.warning(f"Redis unavailable ({e}) - running without caching")
        return None

    host = redis_url.split("@")[1] if "@" in redis_url else redis_url
    logger.info(f"Redis connected: {host}")
    return client


def details_fingerprint(*parts: Any) -> str:
    """Stable hash of pydantic models / plain values for cache keys."""
    normalized = [
        part.model_dump(mode="json") if hasattr(part, "model_dump") else part
        for part in parts
    ]
    raw = json.dumps(normalized, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]


def safe_cache_set(redis_client, key: str, value: Any, expiry: int) -> bool:
    if not redis_client:
        return False
    try:
        redis_client.setex(key, expiry, json.dumps(value, default=str))
        return True
    except redis.RedisError as e:
        logger.warning(f"Cache write error for key {key}: {e}")
        return False


def safe_cache_get(redis_client, key: str) -> Optional[Any]:
    if not redis_client:
        return None
    try:
        cached = redis_client.get(key)
    except redis.RedisError as e:
        logger.warning(f"Cache read error for key {key}: {e}")
        return None
    if not cached:
        return None
    try:
        return json.loads(cached)
    except json.JSONDecodeError:
        logger.warning(f"Discarding corrupt cache entry {key}")
        return None
