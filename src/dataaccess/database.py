"""
Database: command creation, parameter binding and execution.

This module provides:
1. The abstract `Database` class that owns an engine built from
   DatabaseOptions, creates commands, binds typed parameters and executes
   commands as non-queries, readers, scalars, data sets and data frames
2. The `dumpsql` decorator that logs every executed command and its timing

Commit rules for the execute_* methods:
- no connection or transaction: a connection is opened for the call, the
  work is committed and the connection is closed
- a connection: the work is committed unless the connection is already
  inside a transaction
- a transaction: the command joins it and nothing is committed
"""
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

import sqlalchemy as sa
from dataaccess.command import Command
from dataaccess.connection import DatabaseConnection, check_connection
from dataaccess.connection import get_engine_for_options
from dataaccess.options import DatabaseOptions
from dataaccess.parameters import Parameter
from dataaccess.reader import DataReader
from dataaccess.strategy import get_strategy
from dataaccess.table import DataSet, DataTable
from dataaccess.types import CommandType, DataRowVersion, DbType
from dataaccess.types import ParameterDirection
from sqlalchemy.exc import ResourceClosedError

logger = logging.getLogger(__name__)

T = TypeVar('T')

__all__ = ['Database', 'dumpsql']


def dumpsql(func):
    """Decorator for logging executed commands and their parameters."""
    @wraps(func)
    def wrapper(self, command: Command, *args: Any, **kwargs: Any):
        if command is None:
            raise TypeError('command must not be None')
        start = time.time()
        logger.debug(f'SQL:\n{command.command_text}\nparams: {command.parameters.names()}')
        try:
            return func(self, command, *args, **kwargs)
        except Exception:
            logger.error(f'Error with command:\nSQL:\n{command.command_text}'
                         f'\nparams: {command.parameters.names()}')
            raise
        finally:
            elapsed = time.time() - start
            logger.debug(f'Command time: {elapsed:.4f}s')
    return wrapper


def _unwrap(connection: Any) -> sa.Connection:
    if isinstance(connection, DatabaseConnection):
        if not connection.is_open:
            raise ResourceClosedError('Connection is closed')
        return connection.connection
    return connection


class Database(ABC):
    """Base class for executing commands against a database.

    Subclasses supply ``derive_parameters`` for stored-procedure parameter
    discovery and may override the parameter factory hooks
    (``create_parameter``, ``configure_parameter``, ``format_parameter_name``).
    """

    def __init__(self, options: DatabaseOptions, command_timeout: int | None = None) -> None:
        if options is None:
            raise TypeError('options must not be None')
        if command_timeout is None:
            command_timeout = options.command_timeout or 0
        if command_timeout < 0:
            raise ValueError('command_timeout cannot be negative')
        self.options = options
        self.command_timeout = command_timeout
        self.strategy = get_strategy(options.drivername)
        self.engine = get_engine_for_options(options)

    def __repr__(self) -> str:
        url = self.engine.url.render_as_string(hide_password=True)
        return f'{self.__class__.__name__}({url})'

    # Commands

    def get_sql_text_command(self, sql_text: str) -> Command:
        if not sql_text:
            raise ValueError('sql_text cannot be empty')
        return Command(sql_text, CommandType.TEXT, self.command_timeout)

    def get_stored_proc_command(self, stored_proc_name: str) -> Command:
        if not stored_proc_name:
            raise ValueError('stored_proc_name cannot be empty')
        return Command(stored_proc_name, CommandType.STORED_PROCEDURE, self.command_timeout)

    # Parameters

    def add_in_parameter(self, command: Command, name: str, db_type: DbType,
                         value: Any = None, size: int = 0) -> Parameter:
        return self.add_parameter(command, name, db_type, size, ParameterDirection.INPUT,
                                  value=value)

    def add_out_parameter(self, command: Command, name: str, db_type: DbType,
                          size: int = 0, value: Any = None) -> Parameter:
        return self.add_parameter(command, name, db_type, size, ParameterDirection.OUTPUT,
                                  value=value)

    def add_in_out_parameter(self, command: Command, name: str, db_type: DbType,
                             value: Any = None, size: int = 0) -> Parameter:
        return self.add_parameter(command, name, db_type, size, ParameterDirection.INPUT_OUTPUT,
                                  value=value)

    def add_parameter(self, command: Command, name: str, db_type: DbType, size: int = 0,
                      direction: ParameterDirection = ParameterDirection.INPUT,
                      is_nullable: bool = True, source_column: str | None = None,
                      source_version: DataRowVersion = DataRowVersion.DEFAULT,
                      value: Any = None, precision: int = 0, scale: int = 0) -> Parameter:
        """Create a parameter and append it to the command.

        Raises
            TypeError: If command is None
            ValueError: If name is empty
        """
        if command is None:
            raise TypeError('command must not be None')
        if not name:
            raise ValueError('Parameter name cannot be empty')
        parameter = self.create_parameter(name, db_type, size, direction, is_nullable,
                                          source_column, source_version, value,
                                          precision, scale)
        return command.parameters.add(parameter)

    def create_parameter(self, name: str, db_type: DbType = DbType.OBJECT, size: int = 0,
                         direction: ParameterDirection = ParameterDirection.INPUT,
                         is_nullable: bool = True, source_column: str | None = None,
                         source_version: DataRowVersion = DataRowVersion.DEFAULT,
                         value: Any = None, precision: int = 0, scale: int = 0) -> Parameter:
        parameter = Parameter(self.format_parameter_name(name))
        self.configure_parameter(parameter, db_type, size, direction, is_nullable,
                                 source_column, source_version, value, precision, scale)
        return parameter

    def configure_parameter(self, parameter: Parameter, db_type: DbType, size: int,
                            direction: ParameterDirection, is_nullable: bool,
                            source_column: str | None, source_version: DataRowVersion,
                            value: Any, precision: int = 0, scale: int = 0) -> None:
        """Set a parameter's properties. A None value is bound as NULL."""
        parameter.db_type = db_type
        parameter.size = size
        parameter.direction = direction
        parameter.is_nullable = is_nullable
        parameter.source_column = source_column
        parameter.source_version = source_version
        parameter.value = value
        parameter.precision = precision
        parameter.scale = scale

    def format_parameter_name(self, name: str) -> str:
        """Hook for providers that decorate parameter names."""
        return name

    def get_parameter_value(self, command: Command, name: str) -> Any:
        """Value of a parameter; output values are available after execution."""
        if command is None:
            raise TypeError('command must not be None')
        return command.parameters[self.format_parameter_name(name)].value

    @abstractmethod
    def derive_parameters(self, discovery_command: Command) -> None:
        """Populate the discovery command's parameters.

        The command's connection is open when this is called.
        """

    def discover_parameters(self, command: Command) -> None:
        """Append the parameters of a command's routine to the command.

        Discovery runs on a connection of its own, which is always closed.
        """
        if command is None:
            raise TypeError('command must not be None')
        with self.get_open_connection() as wrapper, \
                Command(command.command_text, command.command_type,
                        command.command_timeout) as discovery:
            discovery.connection = wrapper.connection
            self.derive_parameters(discovery)
            command.parameters.extend(p.clone() for p in discovery.parameters)
        logger.debug(f'Discovered parameters {command.parameters.names()} for {command.command_text}')

    # Execution

    def _statement(self, command: Command) -> sa.TextClause:
        cn = command.connection
        if command.is_stored_procedure:
            sql = self.strategy.build_procedure_sql(cn, command)
        else:
            sql = command.command_text
        binds = [
            sa.bindparam(p.bind_name, p.bind_value(),
                         type_=p.db_type.sa_type(p.size, p.precision, p.scale))
            for p in command.parameters if p.direction.is_input
        ]
        return sa.text(sql).bindparams(*binds)

    def _execute(self, command: Command) -> sa.CursorResult:
        command.parameters.validate()
        statement = self._statement(command)
        if command.command_timeout:
            self.strategy.apply_command_timeout(command.connection, command.command_timeout)
        return command.connection.execute(statement)

    def _assign_outputs(self, command: Command, fieldnames: list[str],
                        row: tuple | None) -> None:
        """Write output values back from a result row.

        An output or in/out parameter takes the column named like it; a
        return-value parameter takes the first column no other parameter took.
        """
        outputs = command.parameters.output_parameters()
        if not outputs or row is None:
            return
        lowered = [name.lower() for name in fieldnames]
        used: set[int] = set()
        for parameter in outputs:
            if parameter.direction is ParameterDirection.RETURN_VALUE:
                continue
            name = parameter.bind_name.lower()
            if name in lowered:
                i = lowered.index(name)
                parameter.value = row[i]
                used.add(i)
        for parameter in outputs:
            if parameter.direction is not ParameterDirection.RETURN_VALUE:
                continue
            remaining = [i for i in range(len(fieldnames)) if i not in used]
            if remaining:
                parameter.value = row[remaining[0]]
                used.add(remaining[0])

    def _run(self, command: Command, connection: Any, transaction: Any,
             work: Callable[[Command], T]) -> T:
        if transaction is not None:
            self.prepare_command(command, transaction=transaction)
            return work(command)

        if connection is not None:
            self.prepare_command(command, connection)
            cn = command.connection
            autocommit = not cn.in_transaction()
            try:
                value = work(command)
            except Exception:
                if autocommit:
                    cn.rollback()
                raise
            if autocommit:
                cn.commit()
            return value

        with self.get_open_connection() as wrapper:
            self.prepare_command(command, wrapper)
            value = work(command)
            wrapper.connection.commit()
            return value

    def _do_execute_non_query(self, command: Command) -> int:
        result = self._execute(command)
        try:
            if result.returns_rows:
                row = result.fetchone()
                self._assign_outputs(command, list(result.keys()),
                                     tuple(row) if row is not None else None)
            return result.rowcount
        finally:
            result.close()

    def _do_execute_scalar(self, command: Command) -> Any:
        result = self._execute(command)
        try:
            if not result.returns_rows:
                return None
            row = result.fetchone()
            if row is None:
                return None
            self._assign_outputs(command, list(result.keys()), tuple(row))
            return row[0]
        finally:
            result.close()

    def _do_execute_data_set(self, command: Command) -> DataSet:
        result = self._execute(command)
        data_set = DataSet()
        try:
            if not result.returns_rows:
                return data_set
            cursor = result.cursor
            while True:
                if cursor.description:
                    fieldnames = [d[0] for d in cursor.description]
                    rows = [tuple(row) for row in cursor.fetchall()]
                    if not data_set.tables:
                        self._assign_outputs(command, fieldnames, rows[0] if rows else None)
                    data_set.add_table(DataTable.from_result(fieldnames, rows))
                if not hasattr(cursor, 'nextset') or not cursor.nextset():
                    break
            return data_set
        finally:
            result.close()

    @dumpsql
    def execute_non_query(self, command: Command, connection: Any = None,
                          transaction: Any = None) -> int:
        """Execute a command and return the number of rows affected.

        Returns -1 when the driver does not report a row count.
        """
        rowcount = self._run(command, connection, transaction, self._do_execute_non_query)
        logger.debug(f'Rows affected: {rowcount}')
        return rowcount

    @dumpsql
    def execute_scalar(self, command: Command, connection: Any = None,
                       transaction: Any = None) -> Any:
        """First column of the first row, or None when there are no rows."""
        return self._run(command, connection, transaction, self._do_execute_scalar)

    @dumpsql
    def execute_reader(self, command: Command, connection: Any = None) -> DataReader:
        """Execute a command and return a DataReader over its rows.

        When no connection is given the reader owns the connection it runs
        on: closing the reader commits and closes it.
        """
        if connection is not None:
            self.prepare_command(command, connection)
            return DataReader(self._execute(command))

        wrapper = self.get_open_connection()
        try:
            self.prepare_command(command, wrapper)
            result = self._execute(command)
        except Exception:
            wrapper.close()
            raise
        return DataReader(result, connection=wrapper)

    @dumpsql
    def execute_data_set(self, command: Command, connection: Any = None,
                         transaction: Any = None) -> DataSet:
        """Fill every result set of the command into a DataSet."""
        data_set = self._run(command, connection, transaction, self._do_execute_data_set)
        logger.debug(f'Data set filled with {[len(t) for t in data_set]} rows')
        return data_set

    def execute_data_frame(self, command: Command, connection: Any = None,
                           transaction: Any = None) -> Any:
        """Load the first result set through ``options.data_loader``."""
        data_set = self.execute_data_set(command, connection, transaction)
        if not data_set.tables:
            return self.options.data_loader([], [])
        return data_set[0].to_dataframe(self.options.data_loader)

    def prepare_command(self, command: Command, connection: Any = None,
                        transaction: Any = None) -> None:
        """Attach a connection, or a transaction and its connection, to a command.

        Raises
            TypeError: If command is None or neither connection nor transaction is given
        """
        if command is None:
            raise TypeError('command must not be None')
        if transaction is not None:
            command.transaction = transaction
            command.connection = transaction.connection
            return
        if connection is None:
            raise TypeError('connection or transaction must be given')
        command.connection = _unwrap(connection)

    # Connections

    def get_open_connection(self) -> DatabaseConnection:
        """Open a connection wrapped for deterministic release."""
        return DatabaseConnection(self.get_new_open_connection())

    @check_connection
    def get_new_open_connection(self) -> sa.Connection:
        """Open a new connection, retrying transient connection errors."""
        cn = self.create_connection()
        logger.debug(f'Opened connection to {self.options.drivername}:{self.options.database}')
        return cn

    def create_connection(self) -> sa.Connection:
        """Create a connection from the engine. SQLAlchemy connects eagerly."""
        return self.engine.connect()
