"""
Database command: text or stored procedure plus its parameters.
"""
import logging
from typing import Any, Self

from dataaccess.parameters import ParameterCollection
from dataaccess.types import CommandType

logger = logging.getLogger(__name__)


class Command:
    """A command to run against a database connection.

    The connection and transaction are attached by
    ``Database.prepare_command`` just before execution.
    """

    def __init__(self, command_text: str,
                 command_type: CommandType = CommandType.TEXT,
                 command_timeout: int = 30) -> None:
        self.command_text = command_text
        self.command_type = command_type
        self.command_timeout = command_timeout
        self.parameters = ParameterCollection()
        self.connection: Any = None
        self.transaction: Any = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __repr__(self) -> str:
        return (f'Command({self.command_text!r}, {self.command_type.name}, '
                f'parameters={self.parameters.names()})')

    @property
    def is_stored_procedure(self) -> bool:
        return self.command_type is CommandType.STORED_PROCEDURE

    def close(self) -> None:
        """Release the command's connection and transaction references."""
        self.connection = None
        self.transaction = None
