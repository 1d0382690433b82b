"""
Relational database access layer for PostgreSQL and SQLite.

A Database builds commands (SQL text or stored procedure), binds typed
parameters, discovers stored-procedure parameters and executes commands as
non-queries, readers, scalars, data sets and data frames:

    db = open_database('postgresql', config)
    command = db.get_stored_proc_command('add_customer')
    db.discover_parameters(command)
    command.parameters['name'].value = 'Acme'
    db.execute_non_query(command)
"""
__version__ = '0.1.0'

from dataaccess.builder import DataTableBuilder
from dataaccess.command import Command
from dataaccess.connection import DatabaseConnection, dispose_all_engines
from dataaccess.convert import as_boolean, as_byte, as_bytes, as_char
from dataaccess.convert import as_datetime, as_decimal, as_double, as_guid
from dataaccess.convert import as_int16, as_int32, as_int64, as_sbyte
from dataaccess.convert import as_single, as_string, as_uint16, as_uint32
from dataaccess.convert import as_uint64, coerce
from dataaccess.database import Database
from dataaccess.databases import PostgresDatabase, SQLiteDatabase
from dataaccess.databases import open_database
from dataaccess.exceptions import ConnectionFailure, ConstraintError
from dataaccess.exceptions import DatabaseError, DbConnectionError
from dataaccess.exceptions import IntegrityError, IntegrityViolationError
from dataaccess.exceptions import InvalidOperationError, OperationalError
from dataaccess.exceptions import ProgrammingError, QueryError, ReadOnlyError
from dataaccess.exceptions import TypeConversionError, ValidationError
from dataaccess.mapper import ParameterMapper, SourceColumnParameterMapper
from dataaccess.options import DatabaseOptions
from dataaccess.parameters import Parameter, ParameterCollection
from dataaccess.reader import DataReader
from dataaccess.table import DataColumn, DataRow, DataSet, DataTable
from dataaccess.table import ForeignKeyConstraint, UniqueConstraint
from dataaccess.types import CommandType, DataRowVersion, DbType
from dataaccess.types import ParameterDirection, Rule, TypeConverter
