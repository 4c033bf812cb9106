"""
Redis cache for read-mostly pricing data.

Price-history pages are served from Redis and dropped whenever a rate sync
commits. Redis is optional: if it cannot be reached at startup, or a call
fails later, the cache reports a miss and the caller reads the database.

Keys look like ``{prefix}:{namespace}:{key}``. Values are JSON; Decimals
round-trip exactly and datetimes come back as ISO strings.
"""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional

import redis
from redis.exceptions import RedisError
from flask import Flask, current_app

logger = logging.getLogger(__name__)

DECIMAL_TAG = '__decimal__'


def _encode(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return {DECIMAL_TAG: str(obj)}
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise TypeError(f"{type(obj).__name__} is not cacheable")


def _decode(obj: dict) -> Any:
    if DECIMAL_TAG in obj:
        return Decimal(obj[DECIMAL_TAG])
    return obj


class CacheService:
    """Namespaced cache-aside over a single Redis connection pool."""

    def __init__(self, app: Optional[Flask] = None):
        self.client: Optional[redis.Redis] = None
        self.prefix = 'jewelbox'
        self.default_ttl = 60
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.prefix = app.config.get('CACHE_KEY_PREFIX', 'jewelbox')
        self.default_ttl = int(app.config.get('CACHE_DEFAULT_TTL', 60))

        if not app.config.get('CACHE_ENABLED', True):
            logger.info("[CACHE] Disabled by configuration")
            return

        redis_url = app.config.get('REDIS_URL', 'redis://localhost:6379/0')
        client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        try:
            client.ping()
        except RedisError as e:
            logger.warning(f"[CACHE] Redis unreachable at {redis_url} ({e}), running without cache")
            return

        self.client = client
        logger.info(f"[CACHE] Connected to {redis_url}")

    def is_available(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def key(self, namespace: str, key: str) -> str:
        return f"{self.prefix}:{namespace}:{key}"

    def get(self, namespace: str, key: str) -> Optional[Any]:
        """Cached value, or None on a miss or any Redis failure."""
        if self.client is None:
            return None
        try:
            raw = self.client.get(self.key(namespace, key))
        except RedisError as e:
            logger.warning(f"[CACHE] get {namespace}:{key} failed: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw, object_hook=_decode)
        except ValueError:
            logger.warning(f"[CACHE] Dropping undecodable entry {namespace}:{key}")
            return None

    def set(self, namespace: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if self.client is None:
            return False
        try:
            payload = json.dumps(value, default=_encode)
            self.client.setex(self.key(namespace, key), ttl or self.default_ttl, payload)
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] set {namespace}:{key} failed: {e}")
            return False

    def get_or_load(self, namespace: str, key: str, loader: Callable[[], Any],
                    ttl: Optional[int] = None) -> Any:
        """Return the cached value, or call loader() and cache what it returns."""
        cached = self.get(namespace, key)
        if cached is not None:
            return cached
        value = loader()
        self.set(namespace, key, value, ttl)
        return value

    def invalidate(self, namespace: str) -> int:
        """Drop every key in a namespace. Returns how many were removed."""
        if self.client is None:
            return 0
        removed = 0
        try:
            batch = []
            for redis_key in self.client.scan_iter(match=self.key(namespace, '*'), count=100):
                batch.append(redis_key)
                if len(batch) == 100:
                    removed += self.client.unlink(*batch)
                    batch = []
            if batch:
                removed += self.client.unlink(*batch)
        except RedisError as e:
            logger.warning(f"[CACHE] invalidate {namespace} failed: {e}")
            return removed
        if removed:
            logger.info(f"[CACHE] Invalidated {namespace} ({removed} keys)")
        return removed


def init_cache(app: Flask) -> CacheService:
    """Create the cache service and register it on the app."""
    cache = CacheService(app)
    app.extensions['cache'] = cache
    return cache


def get_cache() -> CacheService:
    """Cache service of the current app."""
    cache = current_app.extensions.get('cache')
    if cache is None:
        raise RuntimeError("Cache not initialized")
    return cache
