"""
MySQL-specific strategy implementation.

This module implements the DatabaseStrategy interface for MySQL/MariaDB over
the PyMySQL driver:
- host/port/schema connection URLs (`mysql+pymysql://`)
- Column metadata from `information_schema.columns` for the current schema
- Backtick-quoted identifiers and `%s` placeholders
- Spatial columns (POINT, POLYGON, ...) classified so their values are
  written as constructor expressions rather than bound
"""
import logging
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbmodel.strategy.base import DatabaseStrategy, register_strategy
from dbmodel.types import FieldType

if TYPE_CHECKING:
    from dbmodel.connection import ConnectionWrapper
    from dbmodel.options import DatabaseOptions

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3306


@register_strategy('mysql')
class MySQLStrategy(DatabaseStrategy):
    """MySQL-specific operations.
    """

    type_map = {
        FieldType.INT: {'smallint', 'mediumint', 'int', 'integer', 'bigint'},
        FieldType.BOOL: {'tinyint', 'bool', 'boolean'},
        FieldType.FLOAT: {'float', 'double', 'decimal', 'numeric'},
        FieldType.DATETIME: {'datetime', 'timestamp'},
        FieldType.DATE: {'date'},
        FieldType.SPATIAL: {'point', 'geometry', 'linestring', 'polygon', 'multipoint',
                            'multilinestring', 'multipolygon', 'geometrycollection'},
    }

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for MySQL."""
        return 'mysql'

    @property
    def paramstyle(self) -> str:
        return 'format'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for MySQL."""
        return sa.URL.create(
            drivername='mysql+pymysql',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port or DEFAULT_PORT,
            database=options.database,
            query={'charset': 'utf8mb4'},
        )

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for MySQL."""
        connect_args = {}
        if options.timeout:
            connect_args['connect_timeout'] = options.timeout
        return {'connect_args': connect_args}

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for MySQL connections."""
        return ['hostname', 'username', 'database']

    def configure_connection(self, sa_connection: sa.engine.Connection) -> None:
        """MySQL needs no per-connection settings beyond the URL.
        """
        logger.debug('Configured MySQL connection')

    def quote_identifier(self, identifier: str) -> str:
        """Quote an identifier with backticks.
        """
        return '`' + identifier.replace('`', '``') + '`'

    def get_columns_info(self, cn: 'ConnectionWrapper', table: str) -> list[dict]:
        """Get column name, data type and primary key flag for the current schema.
        """
        sql = """
select
    column_name as name,
    data_type as type,
    if(column_key = 'PRI', 1, 0) as pk
from
    information_schema.columns
where
    table_name = :table
    and table_schema = database()
order by
    ordinal_position
"""
        return self._select_raw(cn, sql, {'table': table})
