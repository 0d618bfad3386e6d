"""
Database connection handling with SQLAlchemy.

This module provides:
1. The `connect()` function for creating new database connections
2. The `ConnectionWrapper` class that wraps a SQLAlchemy connection with
   statement shorthands
3. Engine creation and management through a thread-safe registry

The ConnectionWrapper is the primary database client, providing methods like:
- insert(table, data) - Build and run an INSERT, return the new identity
- update(table, data, where, bind) - Build and run an UPDATE, return row count
- delete(table, where, bind) - Run a DELETE, return row count
- run(sql, bind) - Run any statement, result shaped by statement kind
- row(sql, bind) - Run a query and return its first row

Statement failures never raise: they are recorded on the wrapper (`error`,
`sql`, `bind`), logged, passed to the error handler, and the call returns
False.
"""
import atexit
import itertools
import logging
import pprint
import threading
import time
from collections.abc import Callable, Mapping
from typing import Any, Self

import sqlalchemy as sa
from dbmodel.builder import build_delete, build_insert, build_update
from dbmodel.builder import interpolate, is_statement, normalize_bind
from dbmodel.builder import standardize_placeholders
from dbmodel.exceptions import ConnectionFailure, QueryError, ValidationError
from dbmodel.options import DatabaseOptions, ErrorHandler
from dbmodel.strategy import get_db_strategy, get_strategy
from dbmodel.types import Field, TypeConverter
from dbmodel.utils import caller_backtrace
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool, QueuePool

__all__ = [
    'ConnectionWrapper',
    'connect',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()
_cache_scopes = itertools.count(1)


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.
    """
    key = options.cache_key()

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
            engine_kwargs['poolclass'] = QueuePool
            engine_kwargs['pool_size'] = options.pool_max_connections
            engine_kwargs['pool_recycle'] = options.pool_max_idle_time
            engine_kwargs['pool_timeout'] = options.pool_wait_timeout
            engine_kwargs['max_overflow'] = 10
            engine_kwargs['pool_pre_ping'] = True

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


def _error_text(err: Exception) -> str:
    """Driver message for DBAPI errors, SQLAlchemy's own message otherwise.
    """
    if isinstance(err, sa.exc.DBAPIError) and err.orig is not None:
        return str(err.orig)
    return str(err)


class ConnectionWrapper:
    """Wraps a SQLAlchemy connection with statement shorthands.

    Tracks the last statement, its binds and its error, plus call counts and
    execution time. Supports the context manager protocol.
    """

    def __init__(self, sa_connection: sa.engine.Connection,
                 options: DatabaseOptions) -> None:
        self.sa_connection = sa_connection
        self.engine = sa_connection.engine
        self.options = options
        self.strategy = get_db_strategy(sa_connection)
        self.cache_scope = f'cn{next(_cache_scopes)}'
        self.error = ''
        self.sql = ''
        self.bind: dict[str, Any] | tuple[Any, ...] = {}
        self._error_handler: ErrorHandler | None = options.error_handler
        self.calls = 0
        self.time = 0.0

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def dialect(self) -> str:
        """Return the dialect name ('mysql' or 'sqlite')."""
        return self.strategy.dialect_name

    @property
    def closed(self) -> bool:
        return self.sa_connection.closed

    def close(self) -> None:
        """Close the SQLAlchemy connection.
        """
        if not self.sa_connection.closed:
            self.sa_connection.close()
            logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s '
                         f'(avg: {self.time/max(1, self.calls):.3f}s per query)')

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def on_error(self, handler: ErrorHandler | None) -> None:
        """Register the callable that receives a QueryError on statement failure.

        Replaces any previous handler; None removes it.
        """
        if handler is not None and not callable(handler):
            raise TypeError(f'Error handler must be callable, got {type(handler).__name__}')
        self._error_handler = handler

    @staticmethod
    def is_statement(sql: Any, kinds: str | tuple[str, ...] | list[str]) -> bool:
        """Check whether `sql` begins with one of the given statement keywords.
        """
        return is_statement(sql, kinds)

    def table_name(self, table: str) -> str:
        """Apply the configured table prefix.
        """
        return f'{self.options.prefix}{table}'

    def get_fields(self, table: str, bypass_cache: bool = False) -> Mapping[str, Field]:
        """Get field descriptors for a table (prefix applied).

        Errors from the introspection query propagate.
        """
        return self.strategy.get_fields(self, self.table_name(table), bypass_cache=bypass_cache)

    def insert(self, sql: str, data: Any = None) -> int | bool:
        """INSERT a row from a mapping of field -> value, or run an INSERT statement.

        Returns the new row's identity, or False on failure.
        """
        if self.is_statement(sql, 'insert'):
            return self.run(sql, data)

        def build():
            table = self.table_name(sql)
            return build_insert(table, data or {}, self.get_fields(sql),
                                self.strategy.quote_identifier, self.options.strict_fields)

        built = self._build(build)
        if built is None:
            return False
        return self.run(*built)

    def update(self, sql: str, data: Any = None, where: str = '', bind: Any = None) -> int | bool:
        """UPDATE rows from a mapping of field -> value, or run an UPDATE statement.

        `where` is appended verbatim; `bind` holds its parameters.
        Returns the number of affected rows, or False on failure.
        """
        if self.is_statement(sql, 'update'):
            return self.run(sql, data)

        def build():
            if not isinstance(data, Mapping):
                raise ValidationError('Invalid update parameters')
            table = self.table_name(sql)
            return build_update(table, data, self.get_fields(sql),
                                self.strategy.quote_identifier, where, bind,
                                self.options.strict_fields)

        built = self._build(build)
        if built is None:
            return False
        return self.run(*built)

    def delete(self, sql: str, where: Any = '', bind: Any = None) -> int | bool:
        """DELETE rows matching `where`, or run a DELETE statement.

        For a full statement the second argument holds the bind data.
        Returns the number of affected rows, or False on failure.
        """
        if self.is_statement(sql, 'delete'):
            return self.run(sql, where)

        built = self._build(lambda: build_delete(self.table_name(sql), where,
                                                 self.strategy.quote_identifier))
        if built is None:
            return False
        return self.run(built, bind)

    def run(self, sql: str, bind: Any = None, model: type | None = None) -> Any:
        """Run a statement and shape the result by statement kind.

        - UPDATE/DELETE: number of affected rows
        - INSERT: identity of the new row
        - anything else: rows, as `model` instances when given, otherwise as
          produced by the configured data loader (list of dicts by default)

        Returns False on failure.
        """
        result = self.stmt(sql, bind)
        if result is None:
            return False

        try:
            if self.is_statement(self.sql, ('delete', 'update')):
                return result.rowcount
            if self.is_statement(self.sql, 'insert'):
                return result.lastrowid
            if not result.returns_rows:
                return result.rowcount
            columns = list(result.keys())
            rows = [dict(row) for row in result.mappings()]
        except sa.exc.SQLAlchemyError as e:
            return self._fail(_error_text(e))
        finally:
            result.close()

        logger.debug(f'Query returned {len(rows)} rows')
        if model is not None:
            return [self._make(model, row) for row in rows]
        return self.options.data_loader(rows, columns)

    select = run

    def row(self, sql: str, bind: Any = None, model: type | None = None) -> Any:
        """Run a query and return its first row.

        Returns a dict (or `model` instance), None when there is no row, or
        False on failure.
        """
        result = self.stmt(sql, bind)
        if result is None:
            return False

        try:
            mapping = result.mappings().first()
        except sa.exc.SQLAlchemyError as e:
            return self._fail(_error_text(e))

        if mapping is None:
            return None
        if model is not None:
            return self._make(model, dict(mapping))
        return dict(mapping)

    def stmt(self, sql: str, bind: Any = None) -> sa.CursorResult | None:
        """Execute a statement and return the SQLAlchemy result, or None on failure.

        Named binds (a mapping) use `:name` placeholders; positional binds (a
        sequence or a scalar) use `?` placeholders.
        """
        self.sql = sql.strip() if isinstance(sql, str) else ''
        self.bind = normalize_bind(bind)
        self.error = ''

        start = time.time()
        try:
            params = TypeConverter.convert_params(self.bind)
            if isinstance(params, tuple):
                statement = standardize_placeholders(self.sql, self.strategy.paramstyle)
                result = self.sa_connection.exec_driver_sql(statement, params)
            else:
                result = self.sa_connection.execute(sa.text(self.sql), params)
        except sa.exc.SQLAlchemyError as e:
            self._fail(_error_text(e))
            return None
        except (TypeError, ValueError) as e:
            # driver-side bind errors, e.g. too few arguments for the placeholders
            self._fail(str(e))
            return None
        finally:
            self.addcall(time.time() - start)

        logger.debug(f'Executed statement with {len(self.bind)} parameters: {self.sql[:60]}')
        return result

    def get_info(self) -> dict[str, Any]:
        """Return the last statement and its binds.
        """
        info: dict[str, Any] = {}
        if self.sql:
            info['statement'] = self.sql
        if self.bind:
            info['bind'] = self.bind
        return info

    def get_query(self) -> str:
        """Return the last statement with its binds written in as literals.

        For diagnostics only.
        """
        return interpolate(self.sql, self.bind)

    def _make(self, model: type, row: dict[str, Any]) -> Any:
        if hasattr(model, 'from_row'):
            return model.from_row(row)
        return model(**row)

    def _build(self, build: Callable[[], Any]) -> Any:
        """Run a statement builder, recording usage and introspection errors.
        """
        try:
            return build()
        except ValidationError as e:
            self.sql = ''
            self.bind = {}
            self._fail(str(e))
        except sa.exc.SQLAlchemyError as e:
            self._fail(_error_text(e))
        return None

    def _fail(self, error: str) -> bool:
        """Record an error, log it and pass it to the error handler.
        """
        self.error = error
        logger.error(f'SQL error: {error}')
        if self._error_handler is not None:
            self._error_handler(QueryError(self._format_error()))
        return False

    def _format_error(self) -> str:
        """Compose the handler message: error, statement, binds and caller location.
        """
        sections = {'Error': self.error}
        if self.sql:
            sections['SQL Statement'] = self.sql
        if self.bind:
            sections['Bind Parameters'] = pprint.pformat(self.bind)
        backtrace = caller_backtrace()
        if backtrace:
            sections['Backtrace'] = '\n'.join(backtrace)

        msg = 'SQL Error\n' + '-' * 50
        for key, val in sections.items():
            msg += f'\n\n{key}:\n{val}'
        return msg


def connect(options: DatabaseOptions | dict[str, Any] | None = None,
            **kw: Any) -> ConnectionWrapper:
    """Connect to a database using SQLAlchemy for connection management

    Args:
        options: Can be:
                - DatabaseOptions object
                - Dictionary of options
                - None, with options given as keyword arguments or read
                  from DBMODEL_* environment variables
        **kw: Additional keyword arguments to override options

    Returns
        ConnectionWrapper object for connecting to the database

    Raises
        ConnectionFailure: If the database cannot be reached
    """
    if isinstance(options, DatabaseOptions):
        if kw:
            options = DatabaseOptions(**{**options.model_dump(), **kw})
    else:
        options = DatabaseOptions(**{**(options or {}), **kw})

    engine = get_engine_for_options(options)
    try:
        sa_connection = engine.connect()
    except sa.exc.SQLAlchemyError as e:
        raise ConnectionFailure(f'Could not connect to {options.drivername} database: {_error_text(e)}') from e

    sa_connection = sa_connection.execution_options(isolation_level='AUTOCOMMIT')
    get_db_strategy(sa_connection).configure_connection(sa_connection)

    return ConnectionWrapper(sa_connection, options)
