"""
Caching for schema introspection.

Field descriptors looked up for ad-hoc statement building are kept in
cachetools TTLCaches keyed by `<connection scope>:<table>`. Registered models
pin their fields separately (see dbmodel.registry), so expiry here never
changes a registered model.
"""
import functools
import logging
import threading

import cachetools

logger = logging.getLogger(__name__)


def _create_cache_key(cn, table_name: str) -> str:
    """Key scoped to the connection and the table.

    In-memory SQLite databases share an engine but not their tables, so the
    scope is the connection rather than its engine. Connection wrappers carry
    a process-unique `cache_scope`; other objects fall back to their id. The
    table name keeps its case: MySQL table names can be case-sensitive.
    """
    scope = getattr(cn, 'cache_scope', None) or id(cn)
    return f'{scope}:{table_name}'


def _table_of(key: str) -> str:
    return str(key).rsplit(':', 1)[-1]


class Cache:
    """Process-wide registry of named TTL caches.

    Thread-safe singleton; use Cache.get_instance().
    """

    _instance = None
    _caches: dict[str, cachetools.TTLCache] = {}
    _lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> 'Cache':
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def get_cache(self, name: str, maxsize: int = 100, ttl: int = 300) -> cachetools.TTLCache:
        """Return the cache called `name`, creating it on first use.

        `maxsize` and `ttl` (seconds) only apply when the cache is created.
        """
        with self._lock:
            if name not in self._caches:
                self._caches[name] = cachetools.TTLCache(maxsize=maxsize, ttl=ttl)
            return self._caches[name]

    def clear_all(self) -> None:
        with self._lock:
            for cache in self._caches.values():
                cache.clear()

    def clear_cache(self, name: str) -> None:
        with self._lock:
            cache = self._caches.get(name)
            if cache is not None:
                cache.clear()

    def clear_for_table(self, table_name: str) -> None:
        """Drop the entries of one table (exact name) on every connection.

        Call after DDL so the next statement re-reads the table's fields.
        """
        with self._lock:
            for name, cache in self._caches.items():
                stale = [key for key in list(cache.keys()) if _table_of(key) == table_name]
                for key in stale:
                    cache.pop(key, None)
                if stale:
                    logger.debug(f'Cleared {len(stale)} {name} entries for table {table_name}')


def cacheable_strategy(cache_name: str, ttl: int = 300, maxsize: int = 50):
    """Cache a strategy introspection method per connection and table.

    The wrapped method takes `(cn, table)`; callers may pass
    `bypass_cache=True` to force a fresh lookup, which also replaces the
    cached entry. Empty results (missing tables) are never cached.
    """
    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, cn, table, *args, bypass_cache=False, **kwargs):
            name = f'{cache_name}_{type(self).__name__}_{method.__name__}'
            cache = Cache.get_instance().get_cache(name, ttl=ttl, maxsize=maxsize)
            key = _create_cache_key(cn, table)

            lock = Cache.get_instance()._lock
            if not bypass_cache:
                with lock:
                    cached = cache.get(key)
                if cached is not None:
                    logger.debug(f'Cache hit for {method.__name__}({table})')
                    return cached
            logger.debug(f'Reading {method.__name__}({table}) from the database')

            result = method(self, cn, table, *args, **kwargs)
            if result:
                with lock:
                    cache[key] = result
            return result

        return wrapper
    return decorator
