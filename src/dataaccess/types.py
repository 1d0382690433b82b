"""
Type definitions shared by commands, parameters and in-memory tables.

This module provides:
- CommandType, ParameterDirection, DataRowVersion, Rule enumerations
- DbType: provider-neutral column/parameter types with their Python and
  SQLAlchemy counterparts
- TypeConverter: Convert NumPy, pandas and PyArrow values to plain Python
  values before they are bound to a command
"""
import datetime
import decimal
import enum
import logging
import math
import uuid
from typing import Any

import numpy as np
import pandas as pd
import pyarrow as pa
import sqlalchemy as sa

logger = logging.getLogger(__name__)


class CommandType(enum.Enum):
    """How the command text is interpreted."""
    TEXT = 'text'
    STORED_PROCEDURE = 'stored_procedure'


class ParameterDirection(enum.Enum):
    """Direction of a command parameter relative to the database."""
    INPUT = 'input'
    OUTPUT = 'output'
    INPUT_OUTPUT = 'input_output'
    RETURN_VALUE = 'return_value'

    @property
    def is_input(self) -> bool:
        return self in {ParameterDirection.INPUT, ParameterDirection.INPUT_OUTPUT}

    @property
    def is_output(self) -> bool:
        return self is not ParameterDirection.INPUT


class DataRowVersion(enum.Enum):
    """Row version a parameter's source column is read from."""
    ORIGINAL = 'original'
    CURRENT = 'current'
    PROPOSED = 'proposed'
    DEFAULT = 'default'


class Rule(enum.Enum):
    """Action applied to child rows when a parent row is deleted."""
    NONE = 'none'
    CASCADE = 'cascade'
    SET_NULL = 'set_null'
    SET_DEFAULT = 'set_default'


class DbType(enum.Enum):
    """Provider-neutral data type of a parameter or column.
    """
    ANSI_STRING = 'AnsiString'
    ANSI_STRING_FIXED_LENGTH = 'AnsiStringFixedLength'
    BINARY = 'Binary'
    BOOLEAN = 'Boolean'
    BYTE = 'Byte'
    CURRENCY = 'Currency'
    DATE = 'Date'
    DATETIME = 'DateTime'
    DATETIME2 = 'DateTime2'
    DATETIME_OFFSET = 'DateTimeOffset'
    DECIMAL = 'Decimal'
    DOUBLE = 'Double'
    GUID = 'Guid'
    INT16 = 'Int16'
    INT32 = 'Int32'
    INT64 = 'Int64'
    OBJECT = 'Object'
    SBYTE = 'SByte'
    SINGLE = 'Single'
    STRING = 'String'
    STRING_FIXED_LENGTH = 'StringFixedLength'
    TIME = 'Time'
    UINT16 = 'UInt16'
    UINT32 = 'UInt32'
    UINT64 = 'UInt64'
    VAR_NUMERIC = 'VarNumeric'
    XML = 'Xml'

    @property
    def python_type(self) -> type:
        """Python type values of this DbType are represented as."""
        return _PYTHON_TYPES[self]

    @property
    def int_range(self) -> tuple[int, int] | None:
        """Inclusive (min, max) for integer types, None otherwise."""
        return _INT_RANGES.get(self)

    def sa_type(self, size: int = 0, precision: int = 0,
                scale: int = 0) -> sa.types.TypeEngine | None:
        """SQLAlchemy type used to bind a parameter of this type.

        Returns None for OBJECT so the driver infers the type from the value.
        """
        length = size or None
        match self:
            case DbType.ANSI_STRING:
                return sa.String(length)
            case DbType.ANSI_STRING_FIXED_LENGTH:
                return sa.CHAR(length)
            case DbType.STRING:
                return sa.Unicode(length)
            case DbType.STRING_FIXED_LENGTH:
                return sa.NCHAR(length)
            case DbType.XML:
                return sa.Text()
            case DbType.BINARY:
                return sa.LargeBinary(length)
            case DbType.BOOLEAN:
                return sa.Boolean()
            case DbType.BYTE | DbType.SBYTE | DbType.INT16:
                return sa.SmallInteger()
            case DbType.INT32 | DbType.UINT16:
                return sa.Integer()
            case DbType.INT64 | DbType.UINT32 | DbType.UINT64:
                return sa.BigInteger()
            case DbType.CURRENCY:
                return sa.Numeric(19, 4)
            case DbType.DECIMAL | DbType.VAR_NUMERIC:
                return sa.Numeric(precision or None, scale or None)
            case DbType.DOUBLE:
                return sa.Double()
            case DbType.SINGLE:
                return sa.REAL()
            case DbType.DATE:
                return sa.Date()
            case DbType.DATETIME | DbType.DATETIME2:
                return sa.DateTime()
            case DbType.DATETIME_OFFSET:
                return sa.DateTime(timezone=True)
            case DbType.TIME:
                return sa.Time()
            case DbType.GUID:
                return sa.Uuid()
        return None

    @classmethod
    def from_python_type(cls, python_type: type) -> 'DbType':
        """Infer the DbType for a Python type, OBJECT when unknown."""
        for candidate, db_type in _INFERENCE_ORDER:
            if issubclass(python_type, candidate):
                return db_type
        return cls.OBJECT

    @classmethod
    def from_value(cls, value: Any) -> 'DbType':
        """Infer the DbType for a value, OBJECT for None."""
        if value is None:
            return cls.OBJECT
        return cls.from_python_type(type(value))


_PYTHON_TYPES: dict[DbType, type] = {
    DbType.ANSI_STRING: str,
    DbType.ANSI_STRING_FIXED_LENGTH: str,
    DbType.BINARY: bytes,
    DbType.BOOLEAN: bool,
    DbType.BYTE: int,
    DbType.CURRENCY: decimal.Decimal,
    DbType.DATE: datetime.date,
    DbType.DATETIME: datetime.datetime,
    DbType.DATETIME2: datetime.datetime,
    DbType.DATETIME_OFFSET: datetime.datetime,
    DbType.DECIMAL: decimal.Decimal,
    DbType.DOUBLE: float,
    DbType.GUID: uuid.UUID,
    DbType.INT16: int,
    DbType.INT32: int,
    DbType.INT64: int,
    DbType.OBJECT: object,
    DbType.SBYTE: int,
    DbType.SINGLE: float,
    DbType.STRING: str,
    DbType.STRING_FIXED_LENGTH: str,
    DbType.TIME: datetime.time,
    DbType.UINT16: int,
    DbType.UINT32: int,
    DbType.UINT64: int,
    DbType.VAR_NUMERIC: decimal.Decimal,
    DbType.XML: str,
}

_INT_RANGES: dict[DbType, tuple[int, int]] = {
    DbType.BYTE: (0, 2**8 - 1),
    DbType.SBYTE: (-2**7, 2**7 - 1),
    DbType.INT16: (-2**15, 2**15 - 1),
    DbType.INT32: (-2**31, 2**31 - 1),
    DbType.INT64: (-2**63, 2**63 - 1),
    DbType.UINT16: (0, 2**16 - 1),
    DbType.UINT32: (0, 2**32 - 1),
    DbType.UINT64: (0, 2**64 - 1),
}

# bool before int and datetime before date: both are subclasses
_INFERENCE_ORDER: list[tuple[type, DbType]] = [
    (bool, DbType.BOOLEAN),
    (int, DbType.INT64),
    (float, DbType.DOUBLE),
    (decimal.Decimal, DbType.DECIMAL),
    (str, DbType.STRING),
    ((bytes, bytearray, memoryview), DbType.BINARY),
    (datetime.datetime, DbType.DATETIME),
    (datetime.date, DbType.DATE),
    (datetime.time, DbType.TIME),
    (uuid.UUID, DbType.GUID),
]


# Type Converter - Handles NumPy/pandas/PyArrow -> Python value conversion

def _convert_pyarrow_value(value: Any) -> Any:
    """Convert PyArrow value to Python type."""
    if isinstance(value, pa.Scalar):
        return value.as_py()
    if isinstance(value, pa.Array | pa.ChunkedArray):
        return value.to_pylist()
    return value


def _convert_numpy_value(val: Any) -> Any:
    """Convert NumPy value to Python type."""
    if isinstance(val, np.floating) and np.isnan(val):
        return None

    if isinstance(val, np.datetime64):
        if np.isnat(val):
            return None
        return pd.Timestamp(val).to_pydatetime()

    if isinstance(val, np.generic):
        return val.item()

    return val


class TypeConverter:
    """Universal type conversion for command parameters.

    Handles NumPy, pandas and PyArrow types.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single value to a database-compatible format."""
        if value is None:
            return None

        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None

        if value is pd.NaT or value is pd.NA:
            return None

        if isinstance(value, np.generic):
            return _convert_numpy_value(value)

        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()

        if isinstance(value, pa.Scalar | pa.Array | pa.ChunkedArray):
            return _convert_pyarrow_value(value)

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
