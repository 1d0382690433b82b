"""
Base strategy interface for dialect-specific database operations.

Defines the abstract base class that all database-specific strategy
implementations must inherit from. The strategy pattern encapsulates
dialect behaviors (connection URLs, identifier quoting, command timeouts,
stored procedure invocation and parameter discovery) while presenting a
consistent interface to ``Database``.
"""
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dataaccess.types import DbType, ParameterDirection

if TYPE_CHECKING:
    from dataaccess.command import Command
    from dataaccess.options import DatabaseOptions

# Registry of dialect name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}

parameter_modes: dict[str, ParameterDirection] = {
    'IN': ParameterDirection.INPUT,
    'VARIADIC': ParameterDirection.INPUT,
    'OUT': ParameterDirection.OUTPUT,
    'INOUT': ParameterDirection.INPUT_OUTPUT,
    'RETURN': ParameterDirection.RETURN_VALUE,
}


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Usage:
        @register_strategy('postgresql')
        class PostgresStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class DatabaseStrategy(ABC):
    """Base class for database-specific operations.
    """

    def _select_raw(self, cn: sa.Connection, sql: str,
                    params: dict[str, Any] | None = None) -> list[dict]:
        """Execute SQL and return results as list of dicts.

        Used internally by strategy methods for metadata queries.
        """
        result = cn.execute(sa.text(sql), params or {})
        return [dict(row) for row in result.mappings()]

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier (e.g., 'postgresql', 'sqlite')."""

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the database connection URL for this dialect.

        Args:
            options: DatabaseOptions containing connection parameters

        Returns
            SQLAlchemy URL
        """

    @abstractmethod
    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for this dialect.

        Args:
            options: DatabaseOptions containing connection parameters

        Returns
            Dictionary of keyword arguments for create_engine
        """

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Return list of required option field names for this dialect.

        Returns
            List of field names that must have non-None/non-zero values
        """

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Validate options for this dialect.

        Args:
            options: DatabaseOptions to validate

        Raises
            ValueError: If any required field is None or 0
        """
        for field in cls.get_required_options():
            if not getattr(options, field):
                raise ValueError(f'field {field} cannot be None or 0')

    def quote_identifier(self, identifier: str) -> str:
        """Quote a database identifier with standard SQL double quotes.

        Args:
            identifier: Database identifier to be quoted

        Returns
            str: Quoted identifier
        """
        return '"' + identifier.replace('"', '""') + '"'

    def split_qualified_name(self, name: str) -> list[str]:
        """Split 'schema.object' into its parts, honoring quoted parts."""
        parts: list[str] = []
        current = ''
        quoted = False
        i = 0
        while i < len(name):
            char = name[i]
            if char == '"':
                if quoted and name[i + 1:i + 2] == '"':
                    current += '"'
                    i += 1
                else:
                    quoted = not quoted
            elif char == '.' and not quoted:
                parts.append(current)
                current = ''
            else:
                current += char
            i += 1
        parts.append(current)
        return parts

    def map_database_type(self, type_name: str | None) -> DbType:
        """Map a database type name to a DbType, OBJECT when unknown."""
        return DbType.OBJECT

    def map_parameter_mode(self, mode: str | None) -> ParameterDirection:
        """Map a routine parameter mode (IN, OUT, INOUT) to a direction."""
        return parameter_modes.get((mode or 'IN').upper(), ParameterDirection.INPUT)

    @abstractmethod
    def apply_command_timeout(self, cn: sa.Connection, seconds: int) -> None:
        """Limit the execution time of statements on this connection.

        Args:
            cn: Open SQLAlchemy connection the command will run on
            seconds: Timeout in seconds, 0 for no limit
        """

    @abstractmethod
    def get_routine(self, cn: sa.Connection, name: str,
                    bypass_cache: bool = False) -> dict[str, Any]:
        """Describe a stored procedure or function.

        Args:
            cn: Open SQLAlchemy connection
            name: Possibly schema-qualified routine name
            bypass_cache: If True, bypass cache and query database directly

        Returns
            dict with 'schema', 'name', 'routine_type' ('PROCEDURE' or 'FUNCTION'),
            'return_type' and 'parameters' (list of dicts with 'name',
            'mode', 'data_type', 'max_length', 'precision', 'scale')

        Raises
            QueryError: If the routine does not exist or routines are unsupported
        """

    @abstractmethod
    def build_procedure_sql(self, cn: sa.Connection, command: 'Command') -> str:
        """Build the SQL text that invokes a stored procedure command.

        Input parameters appear as ':bind_name' placeholders.

        Args:
            cn: Open SQLAlchemy connection
            command: Stored procedure command

        Returns
            str: SQL text invoking the routine
        """
