"""
SQLite-specific strategy implementation.

This module implements the DatabaseStrategy interface for SQLite:
- File or in-memory databases addressed by path
- Column metadata through the `pragma_table_info` table-valued function
- Date/datetime converters so declared DATE/DATETIME columns come back typed
- Double-quoted identifiers and `?` placeholders
"""
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbmodel.strategy.base import DatabaseStrategy, register_strategy
from dbmodel.types import FieldType, convert_date, convert_datetime

if TYPE_CHECKING:
    from dbmodel.connection import ConnectionWrapper
    from dbmodel.options import DatabaseOptions

logger = logging.getLogger(__name__)


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific operations.
    """

    type_map = {
        FieldType.INT: {'integer'},
        FieldType.FLOAT: {'real'},
        FieldType.BOOL: {'boolean'},
        FieldType.DATETIME: {'datetime', 'timestamp'},
        FieldType.DATE: {'date'},
    }

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    @property
    def paramstyle(self) -> str:
        return 'qmark'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for SQLite."""
        return sa.URL.create(drivername='sqlite', database=options.database)

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite."""
        return {
            'connect_args': {
                'detect_types': sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES
            }
        }

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']

    def configure_connection(self, sa_connection: sa.engine.Connection) -> None:
        """Enable foreign keys and register date/datetime converters.
        """
        sqlite_conn = sa_connection.connection.dbapi_connection
        sqlite_conn.execute('PRAGMA foreign_keys = ON')
        sqlite3.register_converter('date', convert_date)
        sqlite3.register_converter('datetime', convert_datetime)

    def quote_identifier(self, identifier: str) -> str:
        """Quote an identifier with double quotes.
        """
        return '"' + identifier.replace('"', '""') + '"'

    def get_columns_info(self, cn: 'ConnectionWrapper', table: str) -> list[dict]:
        """Get column name, declared type and primary key flag.
        """
        sql = 'select name, type, pk from pragma_table_info(:table) order by cid'
        return self._select_raw(cn, sql, {'table': table})
