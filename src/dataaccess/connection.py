"""
Database connection handling with SQLAlchemy.

This module provides:
1. Engine creation and management through a thread-safe registry
2. The `check_connection` retry decorator used when opening connections
3. `DatabaseConnection`, a context-managed wrapper pairing a SQLAlchemy
   connection with its open/closed state
"""
import atexit
import logging
import threading
import time
from collections.abc import Callable
from functools import wraps
from typing import Any, Self, TypeVar

import sqlalchemy as sa
from dataaccess.exceptions import DbConnectionError, is_retryable_error
from dataaccess.options import DatabaseOptions
from dataaccess.strategy import get_dialect_name, get_strategy
from sqlalchemy.engine import Engine
from sqlalchemy.exc import ResourceClosedError
from sqlalchemy.pool import NullPool

__all__ = [
    'DatabaseConnection',
    'check_connection',
    'create_url_from_options',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')
_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def create_url_from_options(options: DatabaseOptions) -> sa.URL:
    """Convert DatabaseOptions to SQLAlchemy URL.
    """
    return get_strategy(options.drivername).build_connection_url(options)


def check_connection(func: Callable[..., T] | None = None, *, max_retries: int = 3,
                     retry_delay: float = 1, retry_errors: type | tuple[type, ...] | None = None,
                     retry_backoff: float = 1.5,
                     sleep_func: Callable[[float], None] = time.sleep) -> Callable[..., T]:
    """Connection retry decorator with backoff.

    Decorator that handles connection errors by automatically retrying the operation.
    It has configurable retry parameters and supports exponential backoff.

    Without explicit ``retry_errors`` only connection errors whose message
    marks them as transient (see ``is_retryable_error``) are retried.

    Supports both @check_connection and @check_connection() syntax.
    """
    def decorator(f: Callable[..., T]) -> Callable[..., T]:
        @wraps(f)
        def inner(*args: Any, **kwargs: Any) -> T:
            error_types = retry_errors if retry_errors is not None else DbConnectionError

            tries = 0
            delay = retry_delay
            while tries < max_retries:
                try:
                    return f(*args, **kwargs)
                except error_types as err:
                    if retry_errors is None and not is_retryable_error(err):
                        raise
                    tries += 1
                    if tries >= max_retries:
                        logger.error(f'Maximum retries ({max_retries}) exceeded: {err}')
                        raise
                    logger.warning(f'Connection error (attempt {tries}/{max_retries}): {err}')
                    sleep_func(delay)
                    delay *= retry_backoff

        return inner

    if func is None:
        return decorator
    return decorator(func)


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.

    Engines are shared between callers passing equal options. Pooling is
    disabled (NullPool) unless ``options.use_pool`` is set.
    """
    key = str(options)

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {options.drivername}')
            return _engine_registry[key]

        strategy = get_strategy(options.drivername)
        url = strategy.build_connection_url(options)

        engine_kwargs: dict[str, Any] = {'echo': False}
        engine_kwargs.update(strategy.get_engine_kwargs(options))

        if not options.use_pool:
            engine_kwargs['poolclass'] = NullPool
        else:
            engine_kwargs['pool_size'] = options.pool_max_connections
            engine_kwargs['pool_recycle'] = options.pool_max_idle_time
            engine_kwargs['pool_timeout'] = options.pool_wait_timeout
            engine_kwargs['max_overflow'] = 10
            engine_kwargs['pool_pre_ping'] = True
            engine_kwargs['pool_reset_on_return'] = 'rollback'

        engine_kwargs.update(kwargs)

        engine = engine_factory(url, **engine_kwargs)

        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options.drivername}')

        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in _engine_registry.values():
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


class DatabaseConnection:
    """Wraps a SQLAlchemy connection and reports whether it is open.

    Closing is idempotent; the wrapped handle is dropped once closed.
    """

    def __init__(self, connection: sa.Connection) -> None:
        if connection is None:
            raise TypeError('connection must not be None')
        self._connection = connection
        self._opened = time.time()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __repr__(self) -> str:
        state = 'open' if self.is_open else 'closed'
        return f'DatabaseConnection({self.dialect}, {state})'

    @property
    def connection(self) -> sa.Connection | None:
        """The wrapped SQLAlchemy connection, None once closed."""
        return self._connection

    @property
    def is_open(self) -> bool:
        return self._connection is not None and not self._connection.closed

    @property
    def dialect(self) -> str | None:
        if self._connection is None:
            return None
        return get_dialect_name(self._connection)

    def begin(self) -> sa.RootTransaction:
        """Begin a transaction on the wrapped connection."""
        if not self.is_open:
            raise ResourceClosedError('Connection is closed')
        return self._connection.begin()

    def close(self) -> None:
        """Close the wrapped connection. Uncommitted work is rolled back.
        """
        if self._connection is None:
            return
        if not self._connection.closed:
            self._connection.close()
            logger.debug(f'Connection closed after {time.time() - self._opened:.2f}s')
        self._connection = None
