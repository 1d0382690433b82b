"""
Declarative schema definition for in-memory tables.

Subclasses describe a table's columns and constraints in ``build_columns``:

    class CustomerTable(DataTableBuilder):
        def build_columns(self):
            self.add_int32_auto_increment_column('Id')
            self.add_string_not_null_column('Name', max_length=50)
            self.add_primary_keys(self.table.columns['Id'])

    table = CustomerTable('Customer').build()
"""
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Self

from dataaccess.convert import coerce
from dataaccess.exceptions import InvalidOperationError
from dataaccess.table import DataColumn, DataTable, ForeignKeyConstraint
from dataaccess.table import UniqueConstraint
from dataaccess.types import DbType, Rule

logger = logging.getLogger(__name__)

_MISSING = object()


def _check_name(name: str) -> None:
    if not name:
        raise ValueError('Column name cannot be empty')


class DataTableBuilder(ABC):
    """Build a typed, constrained DataTable.

    Adding a column whose name already exists in the table is a no-op.
    """

    def __init__(self, table_name: str | None = None) -> None:
        if table_name is not None and not table_name:
            raise ValueError('table_name cannot be empty')
        self._table: DataTable | None = DataTable(table_name or '')
        self._built = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def table(self) -> DataTable:
        if self._table is None:
            raise InvalidOperationError('The builder has been closed')
        return self._table

    @abstractmethod
    def build_columns(self) -> None:
        """Add the table's columns and constraints."""

    def build(self) -> DataTable:
        """Run ``build_columns`` once and return the table."""
        table = self.table
        if not self._built:
            self.build_columns()
            self._built = True
            logger.debug(f'Built table {table.name!r} with columns {table.columns.names()}')
        return table

    def close(self) -> None:
        """Release the builder's table."""
        self._table = None

    def _check_columns_exist(self, columns: Sequence[DataColumn]) -> None:
        for column in columns:
            if column is None:
                raise TypeError('column must not be None')
            if not self.table.columns.contains(column.name):
                raise InvalidOperationError(f'Column {column.name} does not exist in the table')

    def _resolve(self, column: DataColumn) -> DataColumn:
        # columns are resolved by name so detached definitions can be passed
        return self.table.columns[column.name]

    # Constraints

    def add_primary_keys(self, columns: DataColumn | Sequence[DataColumn]) -> None:
        if columns is None:
            raise TypeError('columns must not be None')
        if isinstance(columns, DataColumn):
            columns = [columns]
        self._check_columns_exist(columns)
        self.table.primary_key = [self._resolve(column) for column in columns]

    def add_unique_constraint(self, columns: DataColumn | Sequence[DataColumn],
                              name: str | None = None) -> None:
        if name is not None and not name:
            raise ValueError('Constraint name cannot be empty')
        if columns is None:
            raise TypeError('columns must not be None')
        if isinstance(columns, DataColumn):
            columns = [columns]
        self._check_columns_exist(columns)
        constraint = UniqueConstraint([self._resolve(column) for column in columns], name=name)
        self.table.add_constraint(constraint)

    def add_foreign_key_constraint(self, name: str, parent_column: DataColumn,
                                   child_column: DataColumn) -> None:
        """Add a foreign key with a cascading delete rule."""
        if child_column is None:
            raise TypeError('child_column must not be None')
        self._check_columns_exist([child_column])
        constraint = ForeignKeyConstraint(name, parent_column, self._resolve(child_column),
                                          delete_rule=Rule.CASCADE)
        self.table.add_constraint(constraint)

    # Columns

    def create_column(self, name: str, db_type: DbType, default: Any = None,
                      allow_null: bool = True, auto_increment: bool = False,
                      seed: int = 0, step: int = 1, caption: str | None = None,
                      read_only: bool = False, unique: bool = False,
                      max_length: int | None = None) -> DataColumn:
        column = DataColumn(name, db_type)
        self.configure_column(column, default, allow_null, auto_increment, seed, step,
                              caption, read_only, unique, max_length)
        return column

    def configure_column(self, column: DataColumn, default: Any = None,
                         allow_null: bool = True, auto_increment: bool = False,
                         seed: int = 0, step: int = 1, caption: str | None = None,
                         read_only: bool = False, unique: bool = False,
                         max_length: int | None = None) -> None:
        column.allow_null = allow_null
        column.read_only = read_only
        column.unique = unique
        if auto_increment:
            if column.db_type.int_range is None:
                raise ValueError(f'Auto-increment column {column.name} must have an integer type')
            if step == 0:
                raise ValueError('step cannot be 0')
            column.auto_increment = True
            column.auto_increment_seed = seed
            column.auto_increment_step = step
            column._next_value = seed
        if caption:
            column.caption = caption
        if max_length is not None:
            column.max_length = max_length
        if default is not None:
            column.default = coerce(default, column.db_type)

    def add_column(self, name: str, db_type: DbType, default: Any = None,
                   allow_null: bool = True, auto_increment: bool = False,
                   seed: int = 0, step: int = 1, caption: str | None = None,
                   read_only: bool = False, unique: bool = False,
                   max_length: int | None = None) -> None:
        _check_name(name)
        column = self.create_column(name, db_type, default, allow_null, auto_increment,
                                    seed, step, caption, read_only, unique, max_length)
        self.add_data_column(column)

    def add_data_column(self, column: DataColumn) -> None:
        if column is None:
            raise TypeError('column must not be None')
        if self.table.columns.contains(column.name):
            return
        self.table.columns.add(column)

    def _add_integer_auto_increment(self, name: str, db_type: DbType, seed: int, step: int) -> None:
        _check_name(name)
        self.add_column(name, db_type, allow_null=False, auto_increment=True,
                        seed=seed, step=step, read_only=True, unique=True)

    def add_boolean_null_column(self, name: str, default: bool | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.BOOLEAN, default)

    def add_boolean_not_null_column(self, name: str, default: bool | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.BOOLEAN, default, allow_null=False)

    def add_byte_null_column(self, name: str, default: int | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.BYTE, default)

    def add_byte_not_null_column(self, name: str, default: int | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.BYTE, default, allow_null=False)

    def add_guid_null_column(self, name: str, default: Any = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.GUID, default)

    def add_guid_not_null_column(self, name: str, default: Any = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.GUID, default, allow_null=False)

    def add_string_null_column(self, name: str, default: str | None = None,
                               max_length: int | None = None) -> None:
        _check_name(name)
        if max_length is not None and max_length < 0:
            raise ValueError('max_length cannot be negative')
        self.add_column(name, DbType.STRING, default, max_length=max_length)

    def add_string_not_null_column(self, name: str, default: Any = _MISSING,
                                   max_length: int | None = None) -> None:
        """Add a non-null string column.

        Passing ``default=None`` explicitly is rejected; omit it instead.
        """
        _check_name(name)
        if default is None:
            raise TypeError('default must not be None for a not-null string column')
        if max_length is not None and max_length < 0:
            raise ValueError('max_length cannot be negative')
        default = None if default is _MISSING else default
        self.add_column(name, DbType.STRING, default, allow_null=False, max_length=max_length)

    def add_double_null_column(self, name: str, default: float | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.DOUBLE, default)

    def add_double_not_null_column(self, name: str, default: float | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.DOUBLE, default, allow_null=False)

    def add_single_null_column(self, name: str, default: float | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.SINGLE, default)

    def add_single_not_null_column(self, name: str, default: float | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.SINGLE, default, allow_null=False)

    def add_datetime_null_column(self, name: str, default: Any = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.DATETIME, default)

    def add_datetime_not_null_column(self, name: str, default: Any = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.DATETIME, default, allow_null=False)

    def add_int16_null_column(self, name: str, default: int | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.INT16, default)

    def add_int16_not_null_column(self, name: str, default: int | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.INT16, default, allow_null=False)

    def add_int16_column(self, name: str, default: int | None = None, allow_null: bool = True,
                         auto_increment: bool = False, seed: int = 0, step: int = 1,
                         read_only: bool = False, unique: bool = False) -> None:
        _check_name(name)
        self.add_column(name, DbType.INT16, default, allow_null, auto_increment, seed, step,
                        read_only=read_only, unique=unique)

    def add_int32_null_column(self, name: str, default: int | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.INT32, default)

    def add_int32_not_null_column(self, name: str, default: int | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.INT32, default, allow_null=False)

    def add_int32_auto_increment_column(self, name: str, seed: int = 1, step: int = 1) -> None:
        """Add a not-null, read-only, unique auto-increment column."""
        self._add_integer_auto_increment(name, DbType.INT32, seed, step)

    def add_int32_column(self, name: str, default: int | None = None, allow_null: bool = True,
                         auto_increment: bool = False, seed: int = 0, step: int = 1,
                         read_only: bool = False, unique: bool = False) -> None:
        _check_name(name)
        self.add_column(name, DbType.INT32, default, allow_null, auto_increment, seed, step,
                        read_only=read_only, unique=unique)

    def add_int64_null_column(self, name: str, default: int | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.INT64, default)

    def add_int64_not_null_column(self, name: str, default: int | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.INT64, default, allow_null=False)

    def add_int64_column(self, name: str, default: int | None = None, allow_null: bool = True,
                         auto_increment: bool = False, seed: int = 0, step: int = 1,
                         read_only: bool = False, unique: bool = False) -> None:
        _check_name(name)
        self.add_column(name, DbType.INT64, default, allow_null, auto_increment, seed, step,
                        read_only=read_only, unique=unique)

    def add_uint16_null_column(self, name: str, default: int | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.UINT16, default)

    def add_uint16_not_null_column(self, name: str, default: int | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.UINT16, default, allow_null=False)

    def add_uint16_column(self, name: str, default: int | None = None, allow_null: bool = True,
                          auto_increment: bool = False, seed: int = 0, step: int = 1,
                          read_only: bool = False, unique: bool = False) -> None:
        _check_name(name)
        self.add_column(name, DbType.UINT16, default, allow_null, auto_increment, seed, step,
                        read_only=read_only, unique=unique)

    def add_uint32_null_column(self, name: str, default: int | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.UINT32, default)

    def add_uint32_not_null_column(self, name: str, default: int | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.UINT32, default, allow_null=False)

    def add_uint32_auto_increment_column(self, name: str, seed: int = 1, step: int = 1) -> None:
        """Add a not-null, read-only, unique auto-increment column."""
        self._add_integer_auto_increment(name, DbType.UINT32, seed, step)

    def add_uint32_column(self, name: str, default: int | None = None, allow_null: bool = True,
                          auto_increment: bool = False, seed: int = 0, step: int = 1,
                          read_only: bool = False, unique: bool = False) -> None:
        _check_name(name)
        self.add_column(name, DbType.UINT32, default, allow_null, auto_increment, seed, step,
                        read_only=read_only, unique=unique)

    def add_uint64_null_column(self, name: str, default: int | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.UINT64, default)

    def add_uint64_not_null_column(self, name: str, default: int | None = None) -> None:
        _check_name(name)
        self.add_column(name, DbType.UINT64, default, allow_null=False)

    def add_uint64_column(self, name: str, default: int | None = None, allow_null: bool = True,
                          auto_increment: bool = False, seed: int = 0, step: int = 1,
                          read_only: bool = False, unique: bool = False) -> None:
        _check_name(name)
        self.add_column(name, DbType.UINT64, default, allow_null, auto_increment, seed, step,
                        read_only=read_only, unique=unique)
