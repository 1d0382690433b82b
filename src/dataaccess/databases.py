"""
Concrete databases for the supported dialects and the `open_database` entry point.
"""
import logging
from dataclasses import fields
from typing import Any

from dataaccess.command import Command
from dataaccess.database import Database
from dataaccess.exceptions import InvalidOperationError
from dataaccess.options import DatabaseOptions

from libb import load_options

__all__ = ['PostgresDatabase', 'SQLiteDatabase', 'open_database']

logger = logging.getLogger(__name__)


class PostgresDatabase(Database):
    """PostgreSQL database.

    Stored procedures are invoked with CALL and functions with
    SELECT * FROM; parameters are discovered from information_schema.
    """

    def derive_parameters(self, discovery_command: Command) -> None:
        if not discovery_command.is_stored_procedure:
            raise InvalidOperationError('Parameter discovery requires a stored procedure command')
        routine = self.strategy.get_routine(discovery_command.connection,
                                            discovery_command.command_text)
        for info in routine['parameters']:
            self.add_parameter(
                discovery_command,
                info['name'],
                self.strategy.map_database_type(info['data_type']),
                size=info['max_length'],
                direction=self.strategy.map_parameter_mode(info['mode']),
                precision=info['precision'],
                scale=info['scale'],
            )


class SQLiteDatabase(Database):
    """SQLite database. Stored procedures are not supported.
    """

    def derive_parameters(self, discovery_command: Command) -> None:
        self.strategy.get_routine(discovery_command.connection, discovery_command.command_text)


_DATABASE_CLASSES: dict[str, type[Database]] = {
    'postgresql': PostgresDatabase,
    'sqlite': SQLiteDatabase,
}


@load_options(cls=DatabaseOptions)
def open_database(options: DatabaseOptions | dict[str, Any] | str,
                  config: Any | None = None, **kw: Any) -> Database:
    """Create the Database for a set of connection options

    Args:
        options: Can be:
                - DatabaseOptions object
                - String path to configuration
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Returns
        PostgresDatabase or SQLiteDatabase, depending on options.drivername
    """
    if isinstance(options, DatabaseOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=DatabaseOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    database_cls = _DATABASE_CLASSES[options.drivername]
    logger.debug(f'Opening {database_cls.__name__} for {options.database}')
    return database_cls(options)
