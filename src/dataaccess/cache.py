"""
Caching for database metadata lookups.

Provides a single, simple caching system for strategy results such as
stored procedure parameter lists. Uses cachetools TTLCache for automatic
expiration.
"""
import functools
import logging
import threading
from typing import Any

import cachetools

logger = logging.getLogger(__name__)


class Cache:
    """Cache manager for the dataaccess package.

    Thread-safe singleton that manages all TTL caches.
    """

    _instance = None
    _caches: dict[str, cachetools.TTLCache] = {}
    _lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> 'Cache':
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def get_cache(self, name: str, maxsize: int = 100, ttl: int = 300) -> cachetools.TTLCache:
        """Get or create a TTL cache with the given name.

        Args:
            name: Name of the cache
            maxsize: Maximum cache size
            ttl: Time-to-live in seconds

        Returns
            TTLCache instance
        """
        if name not in self._caches:
            with self._lock:
                if name not in self._caches:
                    self._caches[name] = cachetools.TTLCache(maxsize=maxsize, ttl=ttl)
        return self._caches[name]

    def clear_all(self) -> None:
        """Clear all managed caches."""
        with self._lock:
            for cache in self._caches.values():
                cache.clear()

    def clear_for_object(self, object_name: str) -> None:
        """Clear all cache entries related to a database object.

        Args:
            object_name: Table or procedure name to clear cache entries for
        """
        object_lower = object_name.lower()
        with self._lock:
            for cache in self._caches.values():
                keys_to_clear = [
                    key for key in list(cache.keys())
                    if object_lower in str(key).lower()
                ]
                for key in keys_to_clear:
                    if key in cache:
                        del cache[key]
                        logger.debug(f'Cleared cache entry {key} for {object_name}')


def _connection_identity(cn: Any) -> str:
    """Identify the database a connection points to, without the password."""
    engine = getattr(cn, 'engine', None)
    url = getattr(engine, 'url', None)
    if url is None:
        return f'connection-{id(cn)}'
    return url.render_as_string(hide_password=True)


def _create_cache_key(cn: Any, object_name: str, method_args: tuple,
                      method_kwargs: dict) -> str:
    """Create a deterministic cache key from arguments."""
    args_str = ':'.join(repr(arg) for arg in method_args)
    kwargs_str = ':'.join(
        f'{k}={repr(v)}' for k, v in sorted(method_kwargs.items())
        if k != 'bypass_cache'
    )
    return f'{_connection_identity(cn)}:{object_name}:{args_str}:{kwargs_str}'.lower()


def cacheable_strategy(cache_name: str, ttl: int = 300, maxsize: int = 50):
    """Decorator for caching strategy method results.

    Caches results keyed by the connection's database, the object name and
    the method arguments. Respects bypass_cache parameter to skip cache lookup.

    Args:
        cache_name: Base name for the cache
        ttl: Time-to-live in seconds
        maxsize: Maximum cache size
    """
    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, cn, object_name, *args, bypass_cache=False, **kwargs):
            if bypass_cache:
                logger.debug(f'Bypassing cache for {method.__name__}({object_name})')
                return method(self, cn, object_name, *args, **kwargs)

            strategy_class = self.__class__.__name__
            specific_cache_name = f'{cache_name}_{strategy_class}_{method.__name__}'

            cache = Cache.get_instance().get_cache(specific_cache_name, ttl=ttl, maxsize=maxsize)
            cache_key = _create_cache_key(cn, object_name, args, kwargs)

            if cache_key in cache:
                logger.debug(f'Cache hit for {method.__name__}({object_name})')
                return cache[cache_key]

            logger.debug(f'Cache miss for {method.__name__}({object_name})')
            result = method(self, cn, object_name, *args, **kwargs)
            cache[cache_key] = result
            return result

        return wrapper
    return decorator
