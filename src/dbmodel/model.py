"""
Active-record style base class for table rows.

Subclass Model, register the subclass on a Registry, and rows of its table
come back as instances whose attributes are coerced to the columns' coarse
types:

    class User(Model):
        pass

    registry = Registry(cn)
    registry.register(User, 'users')

    ann = User.insert({'name': 'Ann', 'active': 1})
    ann.active          # True
    ann.update('name', 'Annie')
    ann.delete()        # soft delete when the table has an `active` column

Tables with an `active` column are treated as soft-deletable: lookups only
see active rows and delete() clears the flag (and stamps `deleted_at` when
that column exists) instead of removing the row.
"""
import datetime
import json
import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, Self

import dateutil.parser
from dbmodel.builder import build_filter
from dbmodel.exceptions import ValidationError
from dbmodel.types import Field, coerce_value

if TYPE_CHECKING:
    from dbmodel.connection import ConnectionWrapper
    from dbmodel.registry import Registry, TableRegistration

logger = logging.getLogger(__name__)

ACTIVE_FIELD = 'active'
DELETED_AT_FIELD = 'deleted_at'
DATETIME_FORMAT = '%Y-%m-%d %H:%M:%S'


class Model:
    """Base class for registered table models.

    Instances take their attributes from keyword arguments (a row); use
    from_row() to get registered fields coerced.
    """

    registry: 'Registry | None' = None

    def __init__(self, **attrs: Any) -> None:
        for name, value in attrs.items():
            setattr(self, name, value)

    def __repr__(self) -> str:
        attrs = ', '.join(f'{k}={v!r}' for k, v in self._attributes().items())
        return f'{type(self).__name__}({attrs})'

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._attributes() == other._attributes()

    __hash__ = None

    def _attributes(self) -> dict[str, Any]:
        return {k: v for k, v in vars(self).items() if not k.startswith('_')}

    # Registration

    @classmethod
    def _registration(cls) -> 'TableRegistration':
        if cls.registry is None:
            name = cls.__name__
            raise ValidationError(
                f"{name} must be registered with its table. Use registry.register({name}, table)")
        return cls.registry.lookup(cls)

    @classmethod
    def db(cls) -> 'ConnectionWrapper':
        """Connection of the registry this model is registered on.
        """
        cls._registration()
        return cls.registry.cn

    @classmethod
    def _table(cls) -> str:
        """Quoted, prefixed table name for hand-written SQL.
        """
        cn = cls.db()
        return cn.strategy.quote_identifier(cn.table_name(cls._registration().table))

    @classmethod
    def _pk(cls) -> str:
        pk = cls._registration().pk
        if pk is None:
            raise ValidationError(f'{cls.__name__} has no primary key')
        return pk

    @classmethod
    def get_field(cls, name: str) -> Field | None:
        """Field descriptor of a column, or None if the table has no such column.
        """
        return cls._registration().get_field(name)

    @classmethod
    def is_pk(cls, name: str) -> bool:
        field = cls.get_field(name)
        return field.primary if field else False

    @classmethod
    def coerce(cls, name: str, value: Any) -> Any:
        """Coerce a value to the coarse type of column `name`.

        Values of unknown columns are returned unchanged.
        """
        field = cls.get_field(name)
        if field is None:
            return value
        return coerce_value(field.type, value)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Self:
        """Build an instance from a fetched row, coercing registered fields.
        """
        return cls(**{name: cls.coerce(name, value) for name, value in row.items()})

    # Queries

    @classmethod
    def build_filter(cls, info: Any, prepend: str = '') -> tuple[str, dict[str, Any]]:
        """Build an AND-joined filter and its binds (see dbmodel.builder.build_filter).
        """
        return build_filter(info, prepend)

    @classmethod
    def _active_filter(cls) -> list[str]:
        if cls.get_field(ACTIVE_FIELD):
            return [f'{cls.db().strategy.quote_identifier(ACTIVE_FIELD)} = 1']
        return []

    @classmethod
    def query(cls, sql: str, bind: Any = None) -> list[Self] | bool:
        """Run a query and return the rows as instances, or False on failure.
        """
        return cls.db().run(sql, bind, model=cls)

    @classmethod
    def query_row(cls, sql: str, bind: Any = None) -> Self | None | bool:
        """Run a query and return the first row as an instance.

        None when there is no row, False on failure.
        """
        return cls.db().row(sql, bind, model=cls)

    @classmethod
    def find(cls, key: Any, value: Any = None) -> Self | None | bool:
        """Get a single active instance.

        - find(5): by primary key
        - find('email', 'ann@example.com'): by one field
        - find({'name': 'Ann', 'team_id': 2}): by a filter mapping
        """
        quote = cls.db().strategy.quote_identifier
        if value is not None:
            clause, binds = f'{quote(key)} = :value', {'value': value}
        elif isinstance(key, Mapping):
            clause, binds = build_filter(key)
        else:
            clause, binds = f'{quote(cls._pk())} = :value', {'value': key}

        where = ' AND '.join([*cls._active_filter(), clause])
        return cls.query_row(f'SELECT * FROM {cls._table()} WHERE {where}', binds)

    @classmethod
    def map(cls, field: str = 'id', filters: Any = None) -> list[Any]:
        """List the coerced values of one column.

        `filters` is either a filter for build_filter() (active rows only) or
        a list of instances to take the values from.
        """
        if not cls.get_field(field):
            raise ValidationError(f'{cls.__name__} has no field "{field}"')

        if filters and isinstance(filters, list) and all(isinstance(f, cls) for f in filters):
            return [cls.coerce(field, getattr(f, field, None)) for f in filters]

        clause, binds = build_filter(filters)
        conditions = [*cls._active_filter(), *([clause] if clause else [])]
        quoted_field = cls.db().strategy.quote_identifier(field)
        sql = f'SELECT {quoted_field} FROM {cls._table()}'
        if conditions:
            sql += f" WHERE {' AND '.join(conditions)}"

        rows = cls.db().run(sql, binds, model=dict)
        if not rows:
            return []
        return [cls.coerce(field, row[field]) for row in rows]

    @classmethod
    def insert(cls, data: Mapping[str, Any]) -> Self | None | bool:
        """Insert a row and return it as an instance, or False on failure.
        """
        new_id = cls.db().insert(cls._registration().table, data)
        return cls.find(new_id) if new_id else False

    # Instance operations

    def update(self, data: Any, value: Any = None) -> int | bool:
        """Update this row by primary key and refresh the instance.

        - update({'name': 'Bo', 'age': 3})
        - update('name', 'Bo')

        Returns the number of affected rows, or False on failure.
        """
        if not data:
            return False
        if isinstance(data, str):
            data = {data: value}

        cls = type(self)
        cn = cls.db()
        pk = cls._pk()
        where = f'{cn.strategy.quote_identifier(pk)} = :pk'
        binds = {'pk': getattr(self, pk)}

        updated = cn.update(cls._registration().table, data, where, binds)
        if updated:
            row = cn.row(f'SELECT * FROM {cls._table()} WHERE {where}', binds, model=dict)
            if row:
                for name, val in row.items():
                    setattr(self, name, cls.coerce(name, val))
        return updated

    def delete(self) -> int | bool:
        """Delete this row: soft delete when the table has an `active` column.

        Returns the number of affected rows, or False on failure.
        """
        cls = type(self)
        if cls.get_field(ACTIVE_FIELD):
            data: dict[str, Any] = {ACTIVE_FIELD: 0}
            if cls.get_field(DELETED_AT_FIELD):
                data[DELETED_AT_FIELD] = datetime.datetime.now().strftime(DATETIME_FORMAT)
            return self.update(data)

        cn = cls.db()
        pk = cls._pk()
        return cn.delete(cls._registration().table,
                         f'{cn.strategy.quote_identifier(pk)} = :pk',
                         {'pk': getattr(self, pk)})

    def to_dict(self, fields: Iterable[str] | None = None) -> dict[str, Any]:
        """Attributes as a dict, coerced to their column types.
        """
        wanted = set(fields) if fields else None
        return {
            name: type(self).coerce(name, value)
            for name, value in self._attributes().items()
            if wanted is None or name in wanted
        }

    def json(self, indent: int | None = 4) -> str:
        """JSON encoding of to_dict(); dates are written with str().
        """
        return json.dumps(self.to_dict(), indent=indent, default=str)

    @staticmethod
    def format_dates(fields: Iterable[str], data: Any, fmt: str = DATETIME_FORMAT) -> Any:
        """Normalise date values of `fields` in a dict or object to `fmt`.

        Strings are parsed with dateutil; empty values become None. Fields
        the data does not have are skipped. Returns `data`.
        """
        def format_value(value: Any) -> str | None:
            if not value:
                return None
            if isinstance(value, str):
                value = dateutil.parser.parse(value)
            return value.strftime(fmt)

        for field in fields:
            if isinstance(data, dict):
                if field in data:
                    data[field] = format_value(data[field])
            elif hasattr(data, field):
                setattr(data, field, format_value(getattr(data, field)))
        return data
