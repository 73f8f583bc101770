"""
Redis Cache Service for the note ledger read counters.
Provides namespaced caching with graceful degradation.
"""

import logging
import json
from typing import Any, Optional, Callable

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError, WatchError
from flask import Flask, current_app, has_app_context

logger = logging.getLogger(__name__)


class CacheService:
    """
    Redis-based caching service.

    Keys pattern: {prefix}:{module}:{key}
    Module generations: {prefix}:__gen__:{module}
    """

    def __init__(self, app: Optional[Flask] = None):
        """Initialize cache service."""
        self.client: Optional[redis.Redis] = None
        self._enabled: bool = False
        self._prefix: str = ""

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Initialize Redis client from Flask app config."""
        self._enabled = app.config.get('CACHE_ENABLED', True)
        self._prefix = app.config.get('CACHE_KEY_PREFIX', 'notes')
        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')

        if not self._enabled:
            logger.info("[CACHE] Cache is DISABLED via config")
            return

        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                socket_keepalive=True,
                max_connections=50,
                retry_on_timeout=True,
                health_check_interval=30
            )
            self.client.ping()
            logger.info(f"[CACHE] Redis connected: {redis_url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.warning(f"[CACHE] Redis connection failed: {e}. Cache DISABLED.")
            self._enabled = False
            self.client = None

    def is_available(self) -> bool:
        """Check if cache is available and healthy."""
        if not self._enabled or not self.client:
            return False
        try:
            self.client.ping()
            return True
        except (ConnectionError, RedisError):
            return False

    def _build_key(self, module: str, key: str) -> str:
        return f"{self._prefix}:{module}:{key}"

    def get(self, module: str, key: str) -> Optional[Any]:
        """Get value from cache."""
        if not self.is_available():
            return None
        try:
            value = self.client.get(self._build_key(module, key))
            if value is None:
                return None
            return json.loads(value)
        except (RedisError, json.JSONDecodeError) as e:
            logger.warning(f"[CACHE] Get error: {e}")
            return None

    def set(self, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set value in cache with TTL."""
        if not self.is_available():
            return False
        try:
            self.client.setex(self._build_key(module, key), self._ttl(ttl), json.dumps(value))
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Set error: {e}")
            return False

    def delete_pattern(self, module: str, pattern: str = "*") -> int:
        """Delete all keys matching a pattern within a module."""
        if not self.is_available():
            return 0
        try:
            full_pattern = self._build_key(module, pattern)
            deleted_count = 0
            cursor = 0
            while True:
                cursor, keys = self.client.scan(cursor, match=full_pattern, count=100)
                if keys:
                    pipeline = self.client.pipeline()
                    for key in keys:
                        pipeline.delete(key)
                    pipeline.execute()
                    deleted_count += len(keys)
                if cursor == 0:
                    break
            if deleted_count > 0:
                logger.info(f"[CACHE] INVALIDATE: {full_pattern} ({deleted_count} keys)")
            return deleted_count
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidate error: {e}")
            return 0

    def memoize(self, module: str, key: str, loader_fn: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """
        Cache-aside pattern: get from cache, or load and cache.

        The loaded value is only stored if the module was not invalidated
        while loading, so a write that commits mid-load never leaves a
        stale value behind.
        """
        cached = self.get(module, key)
        if cached is not None:
            return cached
        generation = self._generation(module)
        value = loader_fn()
        self._set_if_generation(module, key, value, ttl, generation)
        return value

    def invalidate_module(self, module: str) -> int:
        """Invalidate all cache for a module."""
        # Bump first: a load racing with this call either sees the new
        # generation or has its value removed by the delete below
        if self.is_available():
            try:
                self.client.incr(self._generation_key(module))
            except RedisError as e:
                logger.warning(f"[CACHE] Generation bump error: {e}")
        return self.delete_pattern(module, "*")

    def _generation_key(self, module: str) -> str:
        # Outside {prefix}:{module}:* so invalidation never deletes it
        return f"{self._prefix}:__gen__:{module}"

    def _generation(self, module: str) -> Optional[str]:
        if not self.is_available():
            return None
        try:
            return self.client.get(self._generation_key(module))
        except RedisError as e:
            logger.warning(f"[CACHE] Generation read error: {e}")
            return None

    def _set_if_generation(self, module: str, key: str, value: Any, ttl: Optional[int],
                           generation: Optional[str]) -> bool:
        """SETEX under WATCH of the module generation."""
        if not self.is_available():
            return False
        generation_key = self._generation_key(module)
        try:
            with self.client.pipeline() as pipe:
                pipe.watch(generation_key)
                if pipe.get(generation_key) != generation:
                    logger.debug(f"[CACHE] SKIP {module}:{key}, invalidated while loading")
                    return False
                pipe.multi()
                pipe.setex(self._build_key(module, key), self._ttl(ttl), json.dumps(value))
                pipe.execute()
            return True
        except WatchError:
            logger.debug(f"[CACHE] SKIP {module}:{key}, invalidated while storing")
            return False
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Set error: {e}")
            return False

    def _ttl(self, ttl: Optional[int]) -> int:
        if ttl is not None:
            return ttl
        return current_app.config.get('CACHE_DEFAULT_TTL', 60) if has_app_context() else 60


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    """Initialize cache service singleton."""
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service


def get_cache() -> CacheService:
    """Get cache service instance."""
    if _cache_service is None:
        raise RuntimeError("Cache not initialized.")
    return _cache_service
