"""
Base strategy interface for dialect-specific operations.

Defines the abstract base class that all dialect strategies inherit from.
Each concrete strategy supplies the connection URL, identifier quoting,
placeholder style, column introspection and the native -> coarse type map,
while the rest of the package works against this interface.
"""
from abc import ABC, abstractmethod
from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbmodel.cache import cacheable_strategy
from dbmodel.types import Field, FieldType, map_native_type

if TYPE_CHECKING:
    from dbmodel.connection import ConnectionWrapper
    from dbmodel.options import DatabaseOptions

# Registry of dialect name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Usage:
        @register_strategy('mysql')
        class MySQLStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class DatabaseStrategy(ABC):
    """Base class for dialect-specific operations.
    """

    #: coarse type -> native type names (lower case, without parameters)
    type_map: dict[FieldType, set[str]] = {}

    def _select_raw(self, cn: 'ConnectionWrapper', sql: str,
                    params: dict[str, Any] | None = None) -> list[dict]:
        """Execute SQL on the wrapped SQLAlchemy connection and return rows as dicts.

        Errors propagate; the caller decides how to report them.
        """
        result = cn.sa_connection.execute(sa.text(sql), params or {})
        return [dict(row) for row in result.mappings()]

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier (e.g., 'mysql', 'sqlite')."""

    @property
    @abstractmethod
    def paramstyle(self) -> str:
        """Return the DBAPI paramstyle used for positional binds."""

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for this dialect.

        Args:
            options: DatabaseOptions containing connection parameters
        """

    @abstractmethod
    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for this dialect.

        Args:
            options: DatabaseOptions containing connection parameters
        """

    @abstractmethod
    def configure_connection(self, sa_connection: sa.engine.Connection) -> None:
        """Apply dialect-specific settings to a fresh connection.

        Args:
            sa_connection: SQLAlchemy connection to configure
        """

    @abstractmethod
    def quote_identifier(self, identifier: str) -> str:
        """Quote a table or column name.
        """

    @abstractmethod
    def get_columns_info(self, cn: 'ConnectionWrapper', table: str) -> list[dict]:
        """Introspect a table's columns.

        Args:
            cn: Database connection object
            table: Table name (prefix already applied)

        Returns
            list: dicts with `name`, `type` (native type name) and `pk` keys,
            in column order; empty when the table does not exist
        """

    @cacheable_strategy('table_fields', ttl=300, maxsize=100)
    def get_fields(self, cn: 'ConnectionWrapper', table: str) -> Mapping[str, Field]:
        """Get field descriptors for a table.

        Args:
            cn: Database connection object
            table: Table name (prefix already applied)
            bypass_cache: If True, bypass cache and query database directly

        Returns
            Mapping: read-only mapping of column name -> Field
        """
        fields = {}
        for column in self.get_columns_info(cn, table):
            fields[column['name']] = Field(
                name=column['name'],
                type=self.map_type(column['type']),
                primary=bool(column['pk']),
                )
        return MappingProxyType(fields)

    def map_type(self, native_type: str | None) -> FieldType:
        """Map a native column type name to its coarse type.
        """
        return map_native_type(native_type, self.type_map)

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for this dialect.
        """
        return []

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Validate that required options are present.

        Raises
            ValueError: If required options are missing
        """
        for field in cls.get_required_options():
            if not getattr(options, field, None):
                raise ValueError(f'{field} is required for {options.drivername}')
