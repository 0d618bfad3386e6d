"""
Database convenience layer for MySQL and SQLite.

All statement operations can be called either as:
- Module functions: db.insert(cn, 'users', {'name': 'Ann'})
- ConnectionWrapper methods: cn.insert('users', {'name': 'Ann'})

Table rows can also be mapped onto registered Model subclasses (see
dbmodel.model and dbmodel.registry).
"""
__version__ = '0.1.0'

from collections.abc import Mapping
from typing import Any

from dbmodel.connection import ConnectionWrapper, connect
from dbmodel.exceptions import ConnectionFailure, DatabaseError, QueryError
from dbmodel.exceptions import TypeConversionError, UnknownFieldError
from dbmodel.exceptions import ValidationError
from dbmodel.model import Model
from dbmodel.options import DatabaseOptions, iterdict_data_loader
from dbmodel.options import pandas_data_loader
from dbmodel.registry import Registry, TableRegistration
from dbmodel.types import Field, FieldType, coerce_value


def insert(cn: ConnectionWrapper, table: str, data: Any = None) -> int | bool:
    """Insert a row (or run an INSERT statement) and return the new identity.
    """
    return cn.insert(table, data)


def update(cn: ConnectionWrapper, table: str, data: Any = None, where: str = '',
           bind: Any = None) -> int | bool:
    """Update rows (or run an UPDATE statement) and return the row count.
    """
    return cn.update(table, data, where, bind)


def delete(cn: ConnectionWrapper, table: str, where: Any = '', bind: Any = None) -> int | bool:
    """Delete rows (or run a DELETE statement) and return the row count.
    """
    return cn.delete(table, where, bind)


def run(cn: ConnectionWrapper, sql: str, bind: Any = None, model: type | None = None) -> Any:
    """Run any statement; the result is shaped by statement kind.
    """
    return cn.run(sql, bind, model)


select = run


def row(cn: ConnectionWrapper, sql: str, bind: Any = None, model: type | None = None) -> Any:
    """Run a query and return its first row, or None when there is none.
    """
    return cn.row(sql, bind, model)


def get_fields(cn: ConnectionWrapper, table: str, bypass_cache: bool = False) -> Mapping[str, Field]:
    """Get the field descriptors of a table.
    """
    return cn.get_fields(table, bypass_cache=bypass_cache)


__all__ = [
    'connect',
    'ConnectionWrapper',
    'DatabaseOptions',
    'iterdict_data_loader',
    'pandas_data_loader',
    'insert',
    'update',
    'delete',
    'run',
    'select',
    'row',
    'get_fields',
    'Model',
    'Registry',
    'TableRegistration',
    'Field',
    'FieldType',
    'coerce_value',
    'ConnectionFailure',
    'ValidationError',
    'UnknownFieldError',
    'DatabaseError',
    'QueryError',
    'TypeConversionError',
]
