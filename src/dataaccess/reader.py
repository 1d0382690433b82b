"""
Forward-only reader over an executed command's result.
"""
import logging
from collections.abc import Iterator
from typing import Any, Self

import sqlalchemy as sa
from dataaccess.exceptions import InvalidOperationError

from libb import attrdict

logger = logging.getLogger(__name__)


class DataReader:
    """Read rows of a result one at a time.

    Usage:
        with db.execute_reader(command) as reader:
            while reader.read():
                print(reader['name'])

    Iterating the reader yields the remaining rows as attrdicts. When the
    reader owns its connection, closing the reader closes the connection.
    """

    def __init__(self, result: sa.CursorResult, connection: Any = None) -> None:
        self._result = result
        self._connection = connection
        self._row: tuple | None = None
        self._closed = False
        self.fieldnames: list[str] = list(result.keys()) if result.returns_rows else []

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __iter__(self) -> Iterator[attrdict]:
        while self.read():
            yield self._as_attrdict(self._row)

    def __getitem__(self, key: int | str) -> Any:
        if isinstance(key, int):
            return self.get_value(key)
        return self.get_value(self.get_ordinal(key))

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def field_count(self) -> int:
        return len(self.fieldnames)

    @property
    def rowcount(self) -> int:
        """Rows affected by the statement, -1 when not known."""
        return self._result.rowcount

    def get_ordinal(self, name: str) -> int:
        """Position of a column, case-insensitive."""
        for i, fieldname in enumerate(self.fieldnames):
            if fieldname == name:
                return i
        lowered = name.lower()
        for i, fieldname in enumerate(self.fieldnames):
            if fieldname.lower() == lowered:
                return i
        raise IndexError(f'Column {name!r} not in result')

    def read(self) -> bool:
        """Advance to the next row. Returns False when no rows remain."""
        if self._closed:
            raise InvalidOperationError('Reader is closed')
        if not self.fieldnames:
            return False
        row = self._result.fetchone()
        self._row = tuple(row) if row is not None else None
        return self._row is not None

    def get_value(self, ordinal: int) -> Any:
        if self._row is None:
            raise InvalidOperationError('No current row; call read() first')
        return self._row[ordinal]

    def get_values(self) -> tuple:
        if self._row is None:
            raise InvalidOperationError('No current row; call read() first')
        return self._row

    def fetchall(self) -> list[attrdict]:
        """Remaining rows as attrdicts."""
        return list(self)

    def _as_attrdict(self, row: tuple) -> attrdict:
        return attrdict(zip(self.fieldnames, row))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._result.close()
        if self._connection is not None:
            try:
                if self._connection.is_open:
                    self._connection.connection.commit()
            finally:
                self._connection.close()
                self._connection = None
            logger.debug('Reader committed and closed its connection')
