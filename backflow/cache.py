"""
Redis caching utilities for dashboard-style aggregates
Every operation degrades to a cache miss when Redis is unavailable
"""
import json
import logging
from functools import wraps
from typing import Any, Callable, Optional

from .rate_limiter import get_redis_client

logger = logging.getLogger(__name__)


class Cache:
    """Redis cache wrapper with JSON serialization"""

    def __init__(self):
        self.redis_client = None

    def _get_client(self):
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client()
            except Exception as e:
                logger.warning(f"⚠️ Redis cache unavailable: {e}")
                return None
        return self.redis_client

    def get(self, key: str) -> Optional[Any]:
        client = self._get_client()
        if not client:
            return None

        try:
            value = client.get(key)
            if value:
                logger.debug(f"✅ Cache HIT: {key}")
                return json.loads(value)
            logger.debug(f"❌ Cache MISS: {key}")
            return None
        except Exception as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        client = self._get_client()
        if not client:
            return False

        try:
            client.setex(key, ttl, json.dumps(value, default=str))
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        client = self._get_client()
        if not client:
            return False

        try:
            client.delete(key)
            logger.debug(f"✅ Cache DELETE: {key}")
            return True
        except Exception as e:
            logger.error(f"❌ Cache delete error for {key}: {e}")
            return False


cache = Cache()


def cached(key_prefix: str, ttl: int = 300, key_builder: Optional[Callable] = None):
    """
    Decorator to cache function results

    Example:
        @cached(key_prefix="admin_metrics", ttl=300, key_builder=lambda db, company_id: f"admin_metrics:{company_id}")
        def build_metrics(db, company_id): ...
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if key_builder:
                cache_key = key_builder(*args, **kwargs)
            else:
                arg_str = str(args[0]) if args else "default"
                cache_key = f"{key_prefix}:{arg_str}"

            cached_value = cache.get(cache_key)
            if cached_value is not None:
                return cached_value

            result = func(*args, **kwargs)
            if result is not None:
                cache.set(cache_key, result, ttl)
            return result

        return wrapper

    return decorator


def metrics_cache_key(company_id: int) -> str:
    return f"admin_metrics:{company_id}"


def invalidate_company_metrics(company_id: int) -> bool:
    """Drop the cached dashboard metrics after writes that change them"""
    return cache.delete(metrics_cache_key(company_id))
