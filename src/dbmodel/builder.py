"""
Statement building from table names and field/value mappings.

Every builder is a pure function returning `(sql, bind)`: SQL text using
named `:placeholders` and the bind map for it. Field types come from the
table's field descriptors (see dbmodel.types.Field): SPATIAL values are written
into the statement as-is, everything else is bound.

Main entry points:
- `build_insert(table, data, fields, quote)` - INSERT INTO ... VALUES ...
- `build_update(table, data, fields, quote, where, bind)` - UPDATE ... SET ...
- `build_delete(table, where, quote)` - DELETE FROM ... WHERE ...
- `build_filter(info)` - `a = :a AND b = :b` fragments
- `is_statement(sql, kinds)` - statement keyword detection
"""
import datetime
import decimal
import logging
import re
from collections.abc import Callable, Mapping
from functools import lru_cache
from typing import Any

from dbmodel.exceptions import UnknownFieldError, ValidationError
from dbmodel.types import Field, FieldType

logger = logging.getLogger(__name__)

Bind = dict[str, Any] | tuple[Any, ...]

UPDATE_PREFIX = 'update_'

# String literals, quoted identifiers, and positional placeholders
_POSITIONAL = re.compile(r"""
    (?P<string>'(?:[^']|'')*'|"(?:[^"]|"")*"|`(?:[^`]|``)*`)
    |(?P<qmark>\?)
""", re.VERBOSE)


@lru_cache(maxsize=32)
def _statement_pattern(kinds: tuple[str, ...]) -> re.Pattern:
    return re.compile(r'^\s*(' + '|'.join(kinds) + r')\s+', re.IGNORECASE)


def is_statement(sql: Any, kinds: str | tuple[str, ...] | list[str]) -> bool:
    """Check whether `sql` starts with one of the given statement keywords.

    >>> is_statement('  insert into t values (1)', 'insert')
    True
    >>> is_statement('users', ('update', 'delete'))
    False
    """
    if not isinstance(sql, str):
        return False
    if isinstance(kinds, str):
        kinds = (kinds,)
    return bool(_statement_pattern(tuple(k.lower() for k in kinds)).match(sql))


def normalize_bind(bind: Any) -> Bind:
    """Normalize bind data to a dict (named) or a tuple (positional).

    Leading colons are stripped from named keys, so `{':id': 1}` and
    `{'id': 1}` are equivalent. A scalar becomes a one-item tuple.
    """
    if bind is None or (isinstance(bind, str) and not bind):
        return {}
    if isinstance(bind, Mapping):
        return {str(k).lstrip(':'): v for k, v in bind.items()}
    if isinstance(bind, list | tuple):
        return tuple(bind)
    return (bind,)


def _known_fields(table: str, data: Mapping[str, Any], fields: Mapping[str, Field],
                  strict: bool) -> list[str]:
    """Return the keys of `data` that are columns of `table`, in input order.
    """
    known = [name for name in data if name in fields]
    unknown = [name for name in data if name not in fields]
    if unknown:
        if strict:
            raise UnknownFieldError(table, unknown)
        for name in unknown:
            logger.debug(f'Removed field {name} not in {table}')
    if not known:
        raise ValidationError(f"No valid fields for table '{table}'")
    return known


def build_insert(table: str, data: Mapping[str, Any], fields: Mapping[str, Field],
                 quote: Callable[[str], str], strict: bool = False) -> tuple[str, dict[str, Any]]:
    """Build an INSERT statement for the known fields of `data`.

    >>> from dbmodel.types import Field, FieldType
    >>> fields = {'name': Field('name'), 'loc': Field('loc', FieldType.SPATIAL)}
    >>> build_insert('t', {'name': 'Ann', 'loc': 'POINT(1 2)', 'x': 1}, fields, str)
    ('INSERT INTO t (name, loc) VALUES (:name, POINT(1 2))', {'name': 'Ann'})
    """
    if not isinstance(data, Mapping):
        raise ValidationError('Invalid insert parameters')

    names = _known_fields(table, data, fields, strict)
    bind: dict[str, Any] = {}
    values = []
    for name in names:
        if fields[name].type is FieldType.SPATIAL:
            values.append(str(data[name]))
        else:
            bind[name] = data[name]
            values.append(f':{name}')

    columns = ', '.join(quote(name) for name in names)
    sql = f"INSERT INTO {quote(table)} ({columns}) VALUES ({', '.join(values)})"
    return sql, bind


def build_update(table: str, data: Mapping[str, Any], fields: Mapping[str, Field],
                 quote: Callable[[str], str], where: str = '', bind: Any = None,
                 strict: bool = False) -> tuple[str, dict[str, Any]]:
    """Build an UPDATE statement for the known fields of `data`.

    Generated placeholders are named `update_<field>` so they do not clash
    with the caller's WHERE parameters; a caller parameter with such a name
    is rejected.

    >>> from dbmodel.types import Field
    >>> build_update('t', {'name': 'Bo'}, {'name': Field('name')}, str, 'id = :id', {'id': 3})
    ('UPDATE t SET name = :update_name WHERE id = :id', {'id': 3, 'update_name': 'Bo'})
    """
    if not isinstance(data, Mapping):
        raise ValidationError('Invalid update parameters')

    params = normalize_bind(bind)
    if not isinstance(params, dict):
        raise ValidationError('Update WHERE parameters must be named')

    names = _known_fields(table, data, fields, strict)
    sets = []
    for name in names:
        if fields[name].type is FieldType.SPATIAL:
            sets.append(f'{quote(name)} = {data[name]}')
            continue
        key = f'{UPDATE_PREFIX}{name}'
        if key in params:
            raise ValidationError(f"Bind parameter '{key}' collides with a generated update parameter")
        sets.append(f'{quote(name)} = :{key}')
        params[key] = data[name]

    sql = f"UPDATE {quote(table)} SET {', '.join(sets)}"
    if where:
        sql += f' WHERE {where}'
    return sql, params


def build_delete(table: str, where: str, quote: Callable[[str], str]) -> str:
    """Build a DELETE statement. An empty filter is rejected.

    >>> build_delete('t', 'id = :id', str)
    'DELETE FROM t WHERE id = :id'
    """
    if not where or not str(where).strip():
        raise ValidationError('DELETE requires a WHERE clause')
    return f'DELETE FROM {quote(table)} WHERE {where}'


def build_filter(info: Any, prepend: str = '') -> tuple[str, dict[str, Any]]:
    """Build an AND-joined filter and its binds.

    `info` may be a raw SQL string, a sequence of raw SQL strings, or a
    mapping of field -> value. Dotted field names bind with underscores.

    >>> build_filter({'u.id': 1, 'name': 'Ann'})
    ('u.id = :u_id AND name = :name', {'u_id': 1, 'name': 'Ann'})
    >>> build_filter('active = 1', prepend='WHERE')
    ('WHERE active = 1', {})
    """
    if not info:
        return '', {}
    if isinstance(info, str):
        info = [info]

    filters = []
    binds: dict[str, Any] = {}
    if isinstance(info, Mapping):
        for field, value in info.items():
            bind_key = field.replace('.', '_')
            filters.append(f'{field} = :{bind_key}')
            binds[bind_key] = value
    else:
        filters.extend(str(item) for item in info)

    clause = ' AND '.join(filters)
    if prepend:
        clause = f'{prepend} {clause}'
    return clause, binds


def standardize_placeholders(sql: str, paramstyle: str) -> str:
    """Rewrite `?` positional placeholders for the driver's paramstyle.

    For `format` drivers every literal `%` is doubled and `?` outside of
    string literals and quoted identifiers becomes `%s`.

    >>> standardize_placeholders("SELECT * FROM t WHERE a = ? AND b LIKE 'x%'", 'format')
    "SELECT * FROM t WHERE a = %s AND b LIKE 'x%%'"
    """
    if paramstyle == 'qmark':
        return sql
    if paramstyle not in {'format', 'pyformat'}:
        raise ValueError(f'Unsupported paramstyle: {paramstyle}')

    def replace(match: re.Match) -> str:
        if match.group('qmark'):
            return '%s'
        return match.group(0)

    return _POSITIONAL.sub(replace, sql.replace('%', '%%'))


def quote_literal(value: Any) -> str:
    """Render a Python value as a SQL literal for diagnostics.

    >>> quote_literal("O'Brien")
    "'O''Brien'"
    >>> quote_literal(None)
    'NULL'
    """
    if value is None:
        return 'NULL'
    if isinstance(value, bool):
        return '1' if value else '0'
    if isinstance(value, int | float | decimal.Decimal):
        return str(value)
    if isinstance(value, datetime.date):
        value = value.isoformat(sep=' ') if isinstance(value, datetime.datetime) else value.isoformat()
    return "'" + str(value).replace("'", "''") + "'"


def interpolate(sql: str, bind: Bind) -> str:
    """Substitute bind values into `sql` as quoted literals.

    Only for logging and debugging; never execute the result.
    """
    if not bind:
        return sql
    if isinstance(bind, dict):
        for name in sorted(bind, key=len, reverse=True):
            sql = re.sub(rf':{re.escape(name)}\b', lambda _, v=bind[name]: quote_literal(v), sql)
        return sql

    values = iter(bind)

    def replace(match: re.Match) -> str:
        if match.group('qmark'):
            return quote_literal(next(values, None))
        return match.group(0)

    return _POSITIONAL.sub(replace, sql)
