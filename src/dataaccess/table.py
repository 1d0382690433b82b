"""
In-memory tabular structures.

This module provides:
- DataColumn: typed column definition (nullability, defaults, auto-increment,
  read-only, unique, maximum length)
- UniqueConstraint and ForeignKeyConstraint
- DataTable and DataRow: rows validated against the table's columns and
  constraints on every insert and update
- DataSet: ordered collection of tables produced by a query

Constraint rules:
- Null values never collide in a unique constraint or primary key
- A non-null foreign-key value must exist in the parent column
- Deleting a parent row applies the foreign key's delete rule to child rows
"""
import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any

from dataaccess.convert import coerce
from dataaccess.exceptions import ConstraintError, InvalidOperationError
from dataaccess.exceptions import ReadOnlyError, TypeConversionError
from dataaccess.options import pandas_numpy_data_loader
from dataaccess.types import DbType, Rule, TypeConverter

logger = logging.getLogger(__name__)

__all__ = [
    'DataColumn',
    'DataColumnCollection',
    'DataRow',
    'DataTable',
    'DataSet',
    'UniqueConstraint',
    'ForeignKeyConstraint',
]


class DataColumn:
    """Definition of a table column.

    ``max_length`` of -1 means unlimited. The default value is converted to
    the column type when the column is created.
    """

    def __init__(self, name: str, db_type: DbType = DbType.STRING, allow_null: bool = True,
                 default: Any = None, auto_increment: bool = False,
                 auto_increment_seed: int = 1, auto_increment_step: int = 1,
                 caption: str | None = None, read_only: bool = False,
                 unique: bool = False, max_length: int = -1) -> None:
        if not name:
            raise ValueError('Column name cannot be empty')
        if max_length < -1:
            raise ValueError('max_length must be -1 (unlimited) or non-negative')
        if auto_increment and db_type.int_range is None:
            raise ValueError(f'Auto-increment column {name} must have an integer type')
        if auto_increment and auto_increment_step == 0:
            raise ValueError('auto_increment_step cannot be 0')
        self.name = name
        self.db_type = db_type
        self.allow_null = allow_null
        self.default = coerce(default, db_type)
        self.auto_increment = auto_increment
        self.auto_increment_seed = auto_increment_seed
        self.auto_increment_step = auto_increment_step
        self._caption = caption
        self.read_only = read_only
        self.unique = unique
        self.max_length = max_length
        self.table: 'DataTable | None' = None
        self._next_value = auto_increment_seed

    def __repr__(self) -> str:
        return f'DataColumn({self.name!r}, {self.db_type.name})'

    @property
    def caption(self) -> str:
        return self._caption or self.name

    @caption.setter
    def caption(self, value: str | None) -> None:
        self._caption = value

    @property
    def ordinal(self) -> int:
        """Position in the owning table, -1 when detached."""
        if self.table is None:
            return -1
        return self.table.columns.index_of(self)

    def _peek_auto_value(self) -> int:
        return self._next_value

    def _advance_auto_value(self, used: int) -> None:
        step = self.auto_increment_step
        if (step > 0 and used >= self._next_value) or (step < 0 and used <= self._next_value):
            self._next_value = used + step


class DataColumnCollection:
    """Columns of a table, looked up by position or case-insensitive name."""

    def __init__(self, table: 'DataTable') -> None:
        self._table = table
        self._items: list[DataColumn] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[DataColumn]:
        return iter(self._items)

    def __contains__(self, name: object) -> bool:
        if isinstance(name, DataColumn):
            return name in self._items
        return isinstance(name, str) and self._find(name) is not None

    def __getitem__(self, key: int | str) -> DataColumn:
        if isinstance(key, int):
            return self._items[key]
        column = self._find(key)
        if column is None:
            raise KeyError(f'Column {key!r} does not belong to table {self._table.name!r}')
        return column

    def _find(self, name: str) -> DataColumn | None:
        for column in self._items:
            if column.name == name:
                return column
        lowered = name.lower()
        for column in self._items:
            if column.name.lower() == lowered:
                return column
        return None

    def contains(self, name: str) -> bool:
        return self._find(name) is not None

    def index_of(self, column: DataColumn | str) -> int:
        if isinstance(column, str):
            column = self._find(column)
        for i, item in enumerate(self._items):
            if item is column:
                return i
        return -1

    def names(self) -> list[str]:
        return [column.name for column in self._items]

    def add(self, column: DataColumn) -> DataColumn:
        if column.table is not None:
            raise InvalidOperationError(
                f'Column {column.name} already belongs to table {column.table.name!r}')
        if self._find(column.name) is not None:
            raise InvalidOperationError(
                f'Column {column.name} already exists in table {self._table.name!r}')
        if self._table.rows and not column.allow_null and column.default is None \
                and not column.auto_increment:
            raise ConstraintError(
                f'Cannot add non-null column {column.name} without a default to a table with rows')
        if len(self._table.rows) > 1 and column.unique and column.default is not None \
                and not column.auto_increment:
            raise ConstraintError(
                f'Cannot add unique column {column.name} with a default to a table with several rows')
        column.table = self._table
        self._items.append(column)
        for row in self._table.rows:
            if column.auto_increment:
                value = column._peek_auto_value()
                column._advance_auto_value(value)
            else:
                value = column.default
            row._values.append(value)
        logger.debug(f'Added column {column.name} ({column.db_type.name}) to {self._table.name!r}')
        return column


class UniqueConstraint:
    """Values of the constrained columns must be unique across rows.
    """

    def __init__(self, columns: DataColumn | Sequence[DataColumn], name: str | None = None,
                 is_primary_key: bool = False) -> None:
        if isinstance(columns, DataColumn):
            columns = [columns]
        columns = list(columns)
        if not columns:
            raise ValueError('A unique constraint needs at least one column')
        if name is not None and not name:
            raise ValueError('Constraint name cannot be empty')
        self.columns = columns
        self.name = name
        self.is_primary_key = is_primary_key
        self.table: 'DataTable | None' = None

    def __repr__(self) -> str:
        kind = 'PrimaryKey' if self.is_primary_key else 'Unique'
        return f'{kind}({self.name!r}, {[c.name for c in self.columns]})'

    def key(self, row: 'DataRow | Sequence[Any]') -> tuple | None:
        """Key of a row, None when any part is null."""
        values = row._values if isinstance(row, DataRow) else row
        key = tuple(values[self.table.columns.index_of(c)] for c in self.columns)
        if any(value is None for value in key):
            return None
        return key


class ForeignKeyConstraint:
    """Child column values must exist in the parent column.

    ``delete_rule`` decides what happens to child rows when their parent row
    is removed.
    """

    def __init__(self, name: str, parent_column: DataColumn, child_column: DataColumn,
                 delete_rule: Rule = Rule.CASCADE) -> None:
        if not name:
            raise ValueError('Constraint name cannot be empty')
        if parent_column is None or child_column is None:
            raise TypeError('parent_column and child_column must not be None')
        if parent_column.table is None or child_column.table is None:
            raise InvalidOperationError('Foreign key columns must belong to tables')
        self.name = name
        self.parent_column = parent_column
        self.child_column = child_column
        self.delete_rule = delete_rule
        self.table: 'DataTable | None' = None

    def __repr__(self) -> str:
        return (f'ForeignKey({self.name!r}, {self.parent_column.table.name}.{self.parent_column.name}'
                f' -> {self.child_column.table.name}.{self.child_column.name})')

    @property
    def parent_table(self) -> 'DataTable':
        return self.parent_column.table

    @property
    def child_table(self) -> 'DataTable':
        return self.child_column.table

    def parent_has(self, value: Any, exclude: 'DataRow | None' = None) -> bool:
        parent = self.parent_table
        ordinal = parent.columns.index_of(self.parent_column)
        return any(row._values[ordinal] == value for row in parent.rows if row is not exclude)

    def children_of(self, value: Any) -> list['DataRow']:
        if value is None:
            return []
        child = self.child_table
        ordinal = child.columns.index_of(self.child_column)
        return [row for row in child.rows if row._values[ordinal] == value]


class DataRow:
    """A row of a DataTable.

    Values are read and written by column name (case-insensitive), ordinal or
    DataColumn. Every assignment is validated by the table.
    """

    def __init__(self, table: 'DataTable', values: list[Any]) -> None:
        self.table: 'DataTable | None' = table
        self._values = values

    def __getitem__(self, key: int | str | DataColumn) -> Any:
        return self._values[self._ordinal(key)]

    def __setitem__(self, key: int | str | DataColumn, value: Any) -> None:
        if self.table is None:
            raise InvalidOperationError('Row has been removed from its table')
        column = self._column(key)
        self.table._update(self, column, value)

    def __contains__(self, name: object) -> bool:
        return self.table is not None and isinstance(name, str) and self.table.columns.contains(name)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f'DataRow({self.to_dict()})'

    def _column(self, key: int | str | DataColumn) -> DataColumn:
        if self.table is None:
            raise InvalidOperationError('Row has been removed from its table')
        if isinstance(key, DataColumn):
            if key.table is not self.table:
                raise KeyError(f'Column {key.name!r} does not belong to this table')
            return key
        return self.table.columns[key]

    def _ordinal(self, key: int | str | DataColumn) -> int:
        if isinstance(key, int):
            return key
        return self.table.columns.index_of(self._column(key))

    @property
    def is_detached(self) -> bool:
        return self.table is None

    def get(self, name: str, default: Any = None) -> Any:
        if name not in self:
            return default
        return self[name]

    def to_dict(self) -> dict[str, Any]:
        if self.table is None:
            return {}
        return dict(zip(self.table.columns.names(), self._values))

    def delete(self) -> None:
        """Remove this row from its table, applying foreign-key delete rules."""
        if self.table is None:
            raise InvalidOperationError('Row has already been removed')
        self.table.remove_row(self)


class DataTable:
    """Typed, constrained in-memory table.
    """

    def __init__(self, name: str = '') -> None:
        self.name = name
        self.columns = DataColumnCollection(self)
        self.constraints: list[UniqueConstraint | ForeignKeyConstraint] = []
        self.rows: list[DataRow] = []
        self.dataset: 'DataSet | None' = None
        self._child_keys: list[ForeignKeyConstraint] = []

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[DataRow]:
        return iter(self.rows)

    def __getitem__(self, index: int) -> DataRow:
        return self.rows[index]

    def __repr__(self) -> str:
        return f'DataTable({self.name!r}, columns={self.columns.names()}, rows={len(self.rows)})'

    @property
    def primary_key(self) -> list[DataColumn]:
        constraint = self._primary_key_constraint()
        return list(constraint.columns) if constraint else []

    @primary_key.setter
    def primary_key(self, columns: DataColumn | Sequence[DataColumn] | None) -> None:
        current = self._primary_key_constraint()
        if not columns:
            if current is not None:
                self.constraints.remove(current)
            return
        constraint = UniqueConstraint(columns, is_primary_key=True)
        for column in constraint.columns:
            if column.table is not self:
                raise InvalidOperationError(f'Primary key column {column.name} does not belong to {self.name!r}')
            if any(row[column] is None for row in self.rows):
                raise ConstraintError(f'Column {column.name} contains null values')
        constraint.name = constraint.name or f'PK_{self.name or "Table"}'
        if current is not None:
            self.constraints.remove(current)
        try:
            self.add_constraint(constraint)
        except (ConstraintError, InvalidOperationError):
            if current is not None:
                self.constraints.append(current)
            raise
        for column in constraint.columns:
            column.allow_null = False

    def _primary_key_constraint(self) -> UniqueConstraint | None:
        for constraint in self.constraints:
            if isinstance(constraint, UniqueConstraint) and constraint.is_primary_key:
                return constraint
        return None

    def _unique_constraints(self) -> list[UniqueConstraint]:
        constraints = [c for c in self.constraints if isinstance(c, UniqueConstraint)]
        covered = {c.columns[0].name for c in constraints if len(c.columns) == 1}
        for column in self.columns:
            if column.unique and column.name not in covered:
                constraint = UniqueConstraint([column], name=f'UQ_{column.name}')
                constraint.table = self
                constraints.append(constraint)
        return constraints

    def _foreign_keys(self) -> list[ForeignKeyConstraint]:
        return [c for c in self.constraints if isinstance(c, ForeignKeyConstraint)]

    def add_constraint(self, constraint: UniqueConstraint | ForeignKeyConstraint) -> None:
        """Add a constraint after checking the existing rows satisfy it."""
        if constraint.name is None:
            constraint.name = f'Constraint{len(self.constraints) + 1}'
        if any(c.name and c.name.lower() == constraint.name.lower() for c in self.constraints):
            raise InvalidOperationError(f'Constraint {constraint.name} already exists')
        constraint.table = self

        if isinstance(constraint, UniqueConstraint):
            for column in constraint.columns:
                if column.table is not self:
                    raise InvalidOperationError(f'Column {column.name} does not belong to {self.name!r}')
            seen = set()
            for row in self.rows:
                key = constraint.key(row)
                if key is not None and key in seen:
                    raise ConstraintError(f'Existing rows violate {constraint.name}: {key}')
                seen.add(key)
        else:
            if constraint.child_column.table is not self:
                raise InvalidOperationError(
                    f'Child column {constraint.child_column.name} does not belong to {self.name!r}')
            for row in self.rows:
                value = row[constraint.child_column]
                if value is not None and not constraint.parent_has(value):
                    raise ConstraintError(
                        f'Existing rows violate {constraint.name}: {value!r} not in parent')
            constraint.parent_table._child_keys.append(constraint)

        self.constraints.append(constraint)
        logger.debug(f'Added constraint {constraint!r} to {self.name!r}')

    def remove_constraint(self, constraint: UniqueConstraint | ForeignKeyConstraint) -> None:
        self.constraints.remove(constraint)
        if isinstance(constraint, ForeignKeyConstraint):
            constraint.parent_table._child_keys.remove(constraint)

    def _coerce(self, column: DataColumn, value: Any) -> Any:
        value = TypeConverter.convert_value(value)
        try:
            value = coerce(value, column.db_type)
        except TypeConversionError as exc:
            raise ConstraintError(f'Column {column.name}: {exc}') from exc
        if value is None:
            if not column.allow_null:
                raise ConstraintError(f'Column {column.name} does not allow nulls')
            return None
        if column.max_length >= 0 and isinstance(value, str) and len(value) > column.max_length:
            raise ConstraintError(
                f'Value for column {column.name} exceeds max length {column.max_length}')
        return value

    def _check_row(self, values: list[Any], row: DataRow | None = None) -> None:
        for constraint in self._unique_constraints():
            key = constraint.key(values)
            if key is None:
                continue
            for other in self.rows:
                if other is not row and constraint.key(other) == key:
                    raise ConstraintError(
                        f'Value {key} violates {constraint.name} on {self.name!r}')
        for constraint in self._foreign_keys():
            value = values[self.columns.index_of(constraint.child_column)]
            if value is not None and not constraint.parent_has(value):
                raise ConstraintError(
                    f'Value {value!r} of {constraint.child_column.name} violates {constraint.name}:'
                    ' no parent row')

    def new_row_values(self, values: Mapping[str, Any] | Sequence[Any] | None = None) -> list[Any]:
        """Full value list for a new row: supplied values, generated keys and defaults."""
        if values is None:
            values = {}
        if isinstance(values, Mapping):
            supplied = {}
            for key, value in values.items():
                supplied[self.columns.index_of(self.columns[key])] = value
        else:
            values = list(values)
            if len(values) > len(self.columns):
                raise InvalidOperationError(
                    f'Input array is longer than the number of columns in {self.name!r}')
            supplied = dict(enumerate(values))

        row_values = []
        for i, column in enumerate(self.columns):
            if column.auto_increment and supplied.get(i) is None:
                value = column._peek_auto_value()
            elif i in supplied:
                value = supplied[i]
            else:
                value = column.default
            row_values.append(self._coerce(column, value))
        return row_values

    def add_row(self, values: Mapping[str, Any] | Sequence[Any] | None = None) -> DataRow:
        """Validate and append a row.

        Raises
            ConstraintError: If the row violates a column rule or constraint
        """
        row_values = self.new_row_values(values)
        self._check_row(row_values)
        row = DataRow(self, row_values)
        self.rows.append(row)
        for column, value in zip(self.columns, row_values):
            if column.auto_increment and value is not None:
                column._advance_auto_value(value)
        return row

    def add_rows(self, rows: Iterable[Mapping[str, Any] | Sequence[Any]]) -> list[DataRow]:
        return [self.add_row(values) for values in rows]

    def _update(self, row: DataRow, column: DataColumn, value: Any,
                check_read_only: bool = True) -> None:
        if check_read_only and column.read_only:
            raise ReadOnlyError(f'Column {column.name} is read only')
        ordinal = self.columns.index_of(column)
        value = self._coerce(column, value)
        old_value = row._values[ordinal]
        if value == old_value:
            return
        for constraint in self._child_keys:
            if constraint.parent_column is column and constraint.children_of(old_value) \
                    and not constraint.parent_has(old_value, exclude=row):
                raise ConstraintError(
                    f'Cannot change {column.name}: child rows reference {old_value!r} ({constraint.name})')
        values = list(row._values)
        values[ordinal] = value
        self._check_row(values, row)
        row._values[ordinal] = value

    def _delete_plan(self, row: DataRow) -> list[tuple[ForeignKeyConstraint, list[DataRow]]]:
        plan = []
        for constraint in self._child_keys:
            value = row[constraint.parent_column]
            if constraint.parent_has(value, exclude=row):
                continue
            children = constraint.children_of(value)
            if not children:
                continue
            child_column = constraint.child_column
            match constraint.delete_rule:
                case Rule.NONE:
                    raise ConstraintError(
                        f'Cannot delete row: child rows reference it through {constraint.name}')
                case Rule.SET_NULL if not child_column.allow_null:
                    raise ConstraintError(
                        f'Cannot set {child_column.name} to null: column does not allow nulls')
                case Rule.SET_DEFAULT if child_column.default is None and not child_column.allow_null:
                    raise ConstraintError(
                        f'Cannot set {child_column.name} to its default: no default defined')
                case Rule.SET_DEFAULT if child_column.default is not None \
                        and not constraint.parent_has(child_column.default, exclude=row):
                    raise ConstraintError(
                        f'Default {child_column.default!r} of {child_column.name} has no parent row')
            plan.append((constraint, children))
        return plan

    def remove_row(self, row: DataRow) -> None:
        """Remove a row, applying delete rules of foreign keys referencing this table.

        Nothing changes when a rule anywhere down the cascade rejects the
        delete: every table the cascade can reach is restored before the
        error propagates.

        Raises
            ConstraintError: If a NONE delete rule has dependent child rows
        """
        if row.table is not self:
            raise InvalidOperationError('Row does not belong to this table')
        plan = self._delete_plan(row)
        if not plan:
            self.rows.remove(row)
            row.table = None
            return
        snapshot = [(table, list(table.rows), [(r, list(r._values)) for r in table.rows])
                    for table in self._cascade_tables()]
        try:
            self._apply_delete(row, plan)
        except (ConstraintError, ReadOnlyError, InvalidOperationError):
            for table, rows, values in snapshot:
                table.rows[:] = rows
                for saved_row, saved_values in values:
                    saved_row._values[:] = saved_values
                    saved_row.table = table
            logger.debug(f'Delete from {self.name!r} rejected, restored {len(snapshot)} tables')
            raise

    def _cascade_tables(self) -> list['DataTable']:
        """This table and every table its foreign keys reach, directly or not."""
        tables: list[DataTable] = []
        pending = [self]
        while pending:
            table = pending.pop()
            if any(seen is table for seen in tables):
                continue
            tables.append(table)
            pending.extend(constraint.child_table for constraint in table._child_keys)
        return tables

    def _apply_delete(self, row: DataRow, plan: list[tuple[ForeignKeyConstraint, list[DataRow]]]) -> None:
        self.rows.remove(row)
        row.table = None
        for constraint, children in plan:
            child_table = constraint.child_table
            for child in children:
                if child.table is None:
                    continue
                match constraint.delete_rule:
                    case Rule.CASCADE:
                        child_table.remove_row(child)
                    case Rule.SET_NULL:
                        child_table._update(child, constraint.child_column, None, check_read_only=False)
                    case Rule.SET_DEFAULT:
                        child_table._update(child, constraint.child_column,
                                            constraint.child_column.default, check_read_only=False)
            logger.debug(f'Applied {constraint.delete_rule.name} to {len(children)} rows of '
                         f'{child_table.name!r}')

    def clear(self) -> None:
        """Remove all rows, applying foreign-key delete rules."""
        for row in list(self.rows):
            if row.table is self:
                self.remove_row(row)

    def find(self, **criteria: Any) -> list[DataRow]:
        """Rows whose values equal the given column values."""
        return [row for row in self.rows
                if all(row[name] == value for name, value in criteria.items())]

    def to_records(self) -> list[dict[str, Any]]:
        return [row.to_dict() for row in self.rows]

    def to_dataframe(self, loader=None):
        """Load the rows through a data loader (pandas DataFrame by default)."""
        loader = loader or pandas_numpy_data_loader
        return loader(self.to_records(), list(self.columns), table_name=self.name)

    @classmethod
    def from_result(cls, fieldnames: Sequence[str], rows: Iterable[Sequence[Any]],
                    name: str = '') -> 'DataTable':
        """Build a table from query result rows.

        A column's type is inferred from its non-null values; columns whose
        values disagree, or that hold only nulls, become OBJECT.
        """
        rows = [[TypeConverter.convert_value(value) for value in row] for row in rows]
        table = cls(name)
        seen: set[str] = set()
        for i, fieldname in enumerate(fieldnames):
            column_name = fieldname or f'Column{i + 1}'
            base, n = column_name, 1
            while column_name.lower() in seen:
                column_name = f'{base}{n}'
                n += 1
            seen.add(column_name.lower())
            inferred = {DbType.from_value(row[i]) for row in rows if row[i] is not None}
            db_type = inferred.pop() if len(inferred) == 1 else DbType.OBJECT
            table.columns.add(DataColumn(column_name, db_type))
        for row in rows:
            table.add_row(row)
        return table


class DataSet:
    """Ordered collection of tables.
    """

    def __init__(self, name: str = 'NewDataSet') -> None:
        self.name = name
        self.tables: list[DataTable] = []

    def __len__(self) -> int:
        return len(self.tables)

    def __iter__(self) -> Iterator[DataTable]:
        return iter(self.tables)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._find(name) is not None

    def __getitem__(self, key: int | str) -> DataTable:
        if isinstance(key, int):
            return self.tables[key]
        table = self._find(key)
        if table is None:
            raise KeyError(f'Table {key!r} not in data set {self.name!r}')
        return table

    def __repr__(self) -> str:
        return f'DataSet({self.name!r}, tables={[t.name for t in self.tables]})'

    def _find(self, name: str) -> DataTable | None:
        lowered = name.lower()
        for table in self.tables:
            if table.name.lower() == lowered:
                return table
        return None

    def add_table(self, table: DataTable | str | None = None) -> DataTable:
        """Add a table (or a new one by name). Unnamed tables are named Table, Table1, ..."""
        if not isinstance(table, DataTable):
            table = DataTable(table or '')
        if table.dataset is not None:
            raise InvalidOperationError(f'Table {table.name!r} already belongs to a data set')
        if not table.name:
            table.name = 'Table' if not self.tables else f'Table{len(self.tables)}'
        if self._find(table.name) is not None:
            raise InvalidOperationError(f'Table {table.name!r} already exists in {self.name!r}')
        table.dataset = self
        self.tables.append(table)
        return table
