"""
Type handling for dbmodel.

This module provides:
- FieldType: coarse column types used for bind and coercion decisions
- Field: per-column descriptor derived from schema introspection
- map_native_type: native column type name -> FieldType via a driver type map
- coerce_value: fetched value -> Python value of the field's coarse type
- TypeConverter: NumPy/pandas bind values -> plain Python values
- SQLite converters for date/datetime columns
"""
import datetime
import decimal
import enum
import logging
import math
import re
from dataclasses import dataclass
from typing import Any

import dateutil.parser
import numpy as np
import pandas as pd
from dbmodel.exceptions import TypeConversionError

logger = logging.getLogger(__name__)

TRUE_STRINGS: set[str] = {'1', 'true', 't', 'yes', 'y', 'on'}
FALSE_STRINGS: set[str] = {'0', 'false', 'f', 'no', 'n', 'off', ''}

_TYPE_PARAMS = re.compile(r'\(.*\)')


class FieldType(enum.Enum):
    """Coarse column type."""
    STRING = 'string'
    INT = 'int'
    BOOL = 'bool'
    FLOAT = 'float'
    DATETIME = 'datetime'
    DATE = 'date'
    SPATIAL = 'spatial'


@dataclass(frozen=True, slots=True)
class Field:
    """Field descriptor for one table column."""
    name: str
    type: FieldType = FieldType.STRING
    primary: bool = False


def map_native_type(native_type: str | None, type_map: dict[FieldType, set[str]]) -> FieldType:
    """Map a native column type name to its coarse type.

    The name is lower-cased and stripped of parameters, so `DECIMAL(10,2)`
    looks up `decimal`. Unmatched names map to STRING.

    >>> map_native_type('INTEGER', {FieldType.INT: {'integer'}})
    <FieldType.INT: 'int'>
    >>> map_native_type('varchar(255)', {FieldType.INT: {'integer'}})
    <FieldType.STRING: 'string'>
    """
    if not native_type:
        return FieldType.STRING
    if isinstance(native_type, bytes):
        native_type = native_type.decode()
    name = _TYPE_PARAMS.sub('', native_type).strip().lower()
    for field_type, native_names in type_map.items():
        if name in native_names:
            return field_type
    return FieldType.STRING


# Coercion - fetched value -> coarse type

def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, (float, decimal.Decimal)):
        if not math.isfinite(value) or value != int(value):
            raise ValueError(f'{value!r} is not integral')
        return int(value)
    if isinstance(value, bytes):
        value = value.decode()
    if isinstance(value, str):
        return int(value.strip())
    raise ValueError(f'unsupported type {type(value).__name__}')


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (float, decimal.Decimal)) and not math.isfinite(value):
        raise ValueError(f'{value!r} is not a boolean')
    if isinstance(value, (int, float, decimal.Decimal)):
        return bool(value)
    if isinstance(value, bytes):
        if len(value) == 1 and value in {b'\x00', b'\x01'}:
            return value == b'\x01'
        value = value.decode()
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
        raise ValueError(f'{value!r} is not a boolean literal')
    raise ValueError(f'unsupported type {type(value).__name__}')


def _to_float(value: Any) -> float:
    if isinstance(value, (bool, int, float, decimal.Decimal)):
        return float(value)
    if isinstance(value, bytes):
        value = value.decode()
    if isinstance(value, str):
        return float(value.strip())
    raise ValueError(f'unsupported type {type(value).__name__}')


def _to_str(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode()
    return str(value)


_COERCERS = {
    FieldType.STRING: _to_str,
    FieldType.INT: _to_int,
    FieldType.BOOL: _to_bool,
    FieldType.FLOAT: _to_float,
}


def coerce_value(field_type: FieldType, value: Any) -> Any:
    """Coerce a fetched value into the Python type of a coarse field type.

    NULL stays None. DATETIME, DATE and SPATIAL values pass through unchanged;
    parsing them is left to the caller.

    >>> coerce_value(FieldType.BOOL, 1)
    True
    >>> coerce_value(FieldType.INT, '42')
    42
    >>> coerce_value(FieldType.DATETIME, '2024-01-01 10:00:00')
    '2024-01-01 10:00:00'

    Raises TypeConversionError when the value cannot be coerced.
    """
    if value is None:
        return None
    coercer = _COERCERS.get(field_type)
    if coercer is None:
        return value
    try:
        return coercer(value)
    except (ValueError, TypeError, UnicodeDecodeError, decimal.InvalidOperation) as e:
        raise TypeConversionError(
            f'Cannot coerce {value!r} to {field_type.value}: {e}') from e


# Type Converter - Handles Python -> Database value conversion

def _convert_numpy_value(val: Any) -> float | int | bool | datetime.datetime | None:
    """Convert NumPy value to Python type."""
    if isinstance(val, np.floating) and np.isnan(val):
        return None

    if isinstance(val, np.datetime64):
        if np.isnat(val):
            return None
        return pd.Timestamp(val).to_pydatetime()

    return val.item()


class TypeConverter:
    """Conversion of bind values to driver-compatible Python values.

    Handles NumPy scalars, pandas missing values and timestamps.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single value to a database-compatible format."""
        if value is None:
            return None

        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None

        if isinstance(value, str):
            return value

        if isinstance(value, np.generic):
            return _convert_numpy_value(value)

        if isinstance(value, pd.Timestamp):
            return None if pd.isna(value) else value.to_pydatetime()

        if pd.api.types.is_scalar(value) and pd.isna(value):
            return None

        return value

    @staticmethod
    def convert_params(params: Any) -> Any:
        """Convert a collection of parameters for database operations."""
        if params is None:
            return None

        if isinstance(params, dict):
            return {k: TypeConverter.convert_value(v) for k, v in params.items()}

        if isinstance(params, list | tuple):
            return type(params)(TypeConverter.convert_value(v) for v in params)

        return TypeConverter.convert_value(params)


# SQLite Adapters - Database value converters

def convert_date(val: bytes) -> datetime.date | str:
    """Convert ISO 8601 date string to date object.

    Values that are not valid dates (e.g. `0000-00-00`) come back as the
    stored string.
    """
    text = val.decode()
    try:
        return dateutil.parser.isoparse(text).date()
    except (ValueError, OverflowError):
        logger.debug(f'Keeping unparsable date {text!r} as text')
        return text


def convert_datetime(val: bytes) -> datetime.datetime | str:
    """Convert ISO 8601 datetime string to datetime object.

    Values that are not valid datetimes come back as the stored string.
    """
    text = val.decode()
    try:
        return dateutil.parser.isoparse(text)
    except (ValueError, OverflowError):
        logger.debug(f'Keeping unparsable datetime {text!r} as text')
        return text
