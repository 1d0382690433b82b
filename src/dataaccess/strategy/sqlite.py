"""
SQLite-specific strategy implementation.

SQLite has no stored procedures and no server-side statement timeout, so
routine lookup and procedure invocation raise QueryError and the command
timeout is only logged.
"""
import logging
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dataaccess.exceptions import QueryError
from dataaccess.strategy.base import DatabaseStrategy, register_strategy
from dataaccess.types import DbType

if TYPE_CHECKING:
    from dataaccess.command import Command
    from dataaccess.options import DatabaseOptions

logger = logging.getLogger(__name__)

sqlite_types: dict[str, DbType] = {
    'integer': DbType.INT64,
    'int': DbType.INT64,
    'real': DbType.DOUBLE,
    'text': DbType.STRING,
    'blob': DbType.BINARY,
    'numeric': DbType.DECIMAL,
    'boolean': DbType.BOOLEAN,
    'date': DbType.DATE,
    'datetime': DbType.DATETIME,
    'timestamp': DbType.DATETIME,
}


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for SQLite."""
        return sa.URL.create(drivername='sqlite', database=options.database)

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite."""
        if options.timeout:
            return {'connect_args': {'timeout': options.timeout}}
        return {}

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']

    def map_database_type(self, type_name: str | None) -> DbType:
        if not type_name:
            return DbType.OBJECT
        return sqlite_types.get(type_name.lower(), DbType.OBJECT)

    def apply_command_timeout(self, cn: sa.Connection, seconds: int) -> None:
        """SQLite has no statement timeout.
        """
        if seconds:
            logger.debug(f'Command timeout of {seconds}s not enforced on SQLite')

    def get_routine(self, cn: sa.Connection, name: str,
                    bypass_cache: bool = False) -> dict[str, Any]:
        raise QueryError(f'SQLite does not support stored procedures ({name})')

    def build_procedure_sql(self, cn: sa.Connection, command: 'Command') -> str:
        raise QueryError(f'SQLite does not support stored procedures ({command.command_text})')
