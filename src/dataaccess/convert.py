"""
Null-safe, best-effort conversion of raw column values to primitive types.

The ``as_*`` helpers never raise: a null value, a value that does not parse,
or a value outside the target range yields the supplied default. ``coerce``
is the strict counterpart used when values are stored in typed columns.
"""
import datetime
import decimal
import logging
import math
import pickle
import re
import uuid
from collections.abc import Callable
from typing import Any

import dateutil.parser
import numpy as np
import pandas as pd
from dataaccess.exceptions import TypeConversionError
from dataaccess.types import DbType

from libb import is_null

logger = logging.getLogger(__name__)

_INTEGER_RE = re.compile(r'^\s*[+-]?\d+\s*$')
_FLOAT_RE = re.compile(
    r'^\s*[+-]?((\d+\.?\d*|\.\d+)([eE][+-]?\d+)?|inf(inity)?|nan)\s*$',
    re.IGNORECASE)
_DECIMAL_RE = re.compile(r'^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?\s*$')


def _isnull(value: Any) -> bool:
    if value is None or value is pd.NA or value is pd.NaT:
        return True
    if isinstance(value, str | bytes):
        return False
    if isinstance(value, float | np.floating) and math.isnan(value):
        return True
    try:
        return bool(is_null(value))
    except (TypeError, ValueError):
        return False


def _parse_integer(value: Any, db_type: DbType) -> int:
    text = value if isinstance(value, str) else str(value)
    if isinstance(value, bool) or not _INTEGER_RE.match(text):
        raise ValueError(f'{value!r} is not an integer')
    result = int(text)
    lo, hi = db_type.int_range
    if not lo <= result <= hi:
        raise ValueError(f'{result} outside {db_type.value} range [{lo}, {hi}]')
    return result


def _parse_boolean(value: Any) -> bool:
    text = str(value).strip().lower()
    if text == 'true':
        return True
    if text == 'false':
        return False
    raise ValueError(f'{value!r} is not a boolean')


def _parse_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f'{value!r} is not a number')
    text = str(value)
    if not _FLOAT_RE.match(text):
        raise ValueError(f'{value!r} is not a number')
    return float(text)


def _parse_single(value: Any) -> float:
    result = _parse_float(value)
    if abs(result) > 3.4028234663852886e38 and result not in {float('inf'), float('-inf')}:
        raise ValueError(f'{result} outside Single range')
    return result


def _parse_decimal(value: Any) -> decimal.Decimal:
    if isinstance(value, decimal.Decimal):
        if not value.is_finite():
            raise ValueError(f'{value!r} is not a finite decimal')
        return value
    text = str(value)
    if isinstance(value, bool) or not _DECIMAL_RE.match(text):
        raise ValueError(f'{value!r} is not a decimal')
    return decimal.Decimal(text.strip())


def _parse_datetime(value: Any) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time())
    try:
        return dateutil.parser.parse(str(value))
    except OverflowError as exc:
        raise ValueError(str(exc)) from exc


def _parse_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
        return value
    return _parse_datetime(value).date()


def _parse_time(value: Any) -> datetime.time:
    if isinstance(value, datetime.time):
        return value
    if isinstance(value, datetime.datetime):
        return value.time()
    return datetime.time.fromisoformat(str(value).strip())


def _parse_guid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, bytes) and len(value) == 16:
        return uuid.UUID(bytes=value)
    return uuid.UUID(str(value).strip())


def _parse_char(value: Any) -> str:
    text = str(value)
    if len(text) != 1:
        raise ValueError(f'{value!r} is not a single character')
    return text


def _parse_bytes(value: Any) -> bytes:
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value)
    return pickle.dumps(value)


def _parse_string(value: Any) -> str:
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value).decode()
    return str(value)


def _parse_object(value: Any) -> Any:
    return value


def _integer(db_type: DbType) -> Callable[[Any], int]:
    return lambda value: _parse_integer(value, db_type)


_PARSERS: dict[DbType, Callable[[Any], Any]] = {
    DbType.ANSI_STRING: _parse_string,
    DbType.ANSI_STRING_FIXED_LENGTH: _parse_string,
    DbType.BINARY: _parse_bytes,
    DbType.BOOLEAN: _parse_boolean,
    DbType.BYTE: _integer(DbType.BYTE),
    DbType.CURRENCY: _parse_decimal,
    DbType.DATE: _parse_date,
    DbType.DATETIME: _parse_datetime,
    DbType.DATETIME2: _parse_datetime,
    DbType.DATETIME_OFFSET: _parse_datetime,
    DbType.DECIMAL: _parse_decimal,
    DbType.DOUBLE: _parse_float,
    DbType.GUID: _parse_guid,
    DbType.INT16: _integer(DbType.INT16),
    DbType.INT32: _integer(DbType.INT32),
    DbType.INT64: _integer(DbType.INT64),
    DbType.OBJECT: _parse_object,
    DbType.SBYTE: _integer(DbType.SBYTE),
    DbType.SINGLE: _parse_single,
    DbType.STRING: _parse_string,
    DbType.STRING_FIXED_LENGTH: _parse_string,
    DbType.TIME: _parse_time,
    DbType.UINT16: _integer(DbType.UINT16),
    DbType.UINT32: _integer(DbType.UINT32),
    DbType.UINT64: _integer(DbType.UINT64),
    DbType.VAR_NUMERIC: _parse_decimal,
    DbType.XML: _parse_string,
}


def coerce(value: Any, db_type: DbType) -> Any:
    """Convert a value to the Python representation of ``db_type``.

    Returns None for null values. Integral floats (3.0, as pandas yields
    for integer columns holding NaN) are accepted for integer types.

    Raises
        TypeConversionError: If the value cannot be represented in ``db_type``
    """
    if _isnull(value):
        return None
    if db_type is DbType.BOOLEAN and isinstance(value, bool):
        return value
    if db_type.int_range is not None and isinstance(value, float | np.floating) \
            and math.isfinite(value) and float(value).is_integer():
        value = int(value)
    try:
        return _PARSERS[db_type](value)
    except (ValueError, TypeError, ArithmeticError) as exc:
        raise TypeConversionError(f'Cannot convert {value!r} to {db_type.value}: {exc}') from exc


def _as(value: Any, parser: Callable[[Any], Any], default: Any) -> Any:
    if _isnull(value):
        return default
    try:
        return parser(value)
    except (ValueError, TypeError, ArithmeticError):
        logger.debug(f'Falling back to default for unconvertible value {value!r}')
        return default


def as_boolean(value: Any, default: bool = False) -> bool:
    """Convert to bool; only 'true'/'false' (any case) parse."""
    if isinstance(value, bool):
        return value
    return _as(value, _parse_boolean, default)


def as_byte(value: Any, default: int = 0) -> int:
    return _as(value, _PARSERS[DbType.BYTE], default)


def as_bytes(value: Any, default: bytes | None = None) -> bytes | None:
    """Return bytes-like values as bytes and pickle anything else."""
    return _as(value, _parse_bytes, default)


def as_char(value: Any, default: str = '\x00') -> str:
    return _as(value, _parse_char, default)


def as_decimal(value: Any, default: decimal.Decimal = decimal.Decimal(0)) -> decimal.Decimal:
    return _as(value, _parse_decimal, default)


def as_datetime(value: Any,
                default: datetime.datetime = datetime.datetime.min) -> datetime.datetime:
    """Convert to datetime, parsing strings with dateutil."""
    return _as(value, _parse_datetime, default)


def as_guid(value: Any, default: uuid.UUID = uuid.UUID(int=0)) -> uuid.UUID:
    return _as(value, _parse_guid, default)


def as_int16(value: Any, default: int = 0) -> int:
    return _as(value, _PARSERS[DbType.INT16], default)


def as_int32(value: Any, default: int = 0) -> int:
    return _as(value, _PARSERS[DbType.INT32], default)


def as_int64(value: Any, default: int = 0) -> int:
    return _as(value, _PARSERS[DbType.INT64], default)


def as_sbyte(value: Any, default: int = 0) -> int:
    return _as(value, _PARSERS[DbType.SBYTE], default)


def as_single(value: Any, default: float = 0.0) -> float:
    return _as(value, _parse_single, default)


def as_double(value: Any, default: float = 0.0) -> float:
    return _as(value, _parse_float, default)


def as_string(value: Any, default: str | None = None) -> str | None:
    """Return ``str(value)`` unless the value is null."""
    if _isnull(value):
        return default
    return str(value)


def as_uint16(value: Any, default: int = 0) -> int:
    return _as(value, _PARSERS[DbType.UINT16], default)


def as_uint32(value: Any, default: int = 0) -> int:
    return _as(value, _PARSERS[DbType.UINT32], default)


def as_uint64(value: Any, default: int = 0) -> int:
    return _as(value, _PARSERS[DbType.UINT64], default)
