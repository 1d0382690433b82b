"""
Database-specific exception classes.
"""
import re
import sqlite3

import psycopg
import sqlalchemy.exc as sa_exc

RETRYABLE_PATTERNS = [
    # SSL/TLS errors
    r'ssl',
    r'tls',
    # Connection drops
    r'connection.*(closed|reset|refused|lost|terminated|broken)',
    r'server closed',
    r'eof detected',
    r'broken pipe',
    # Timeouts
    r'timeout',
    r'timed out',
    # Network issues
    r'could not connect',
    r'no route to host',
    r'network.*(unreachable|error)',
    r'host.*(unreachable|down)',
    # Database unavailable
    r'database.*unavailable',
    r'too many connections',
    r'database is locked',
]

_RETRYABLE_REGEX = re.compile('|'.join(RETRYABLE_PATTERNS), re.IGNORECASE)


def is_retryable_error(exc: BaseException) -> bool:
    """Check if an exception represents a transient error worth retrying.

    Returns True for dropped connections, timeouts, network failures, a
    temporarily unavailable or locked database. Syntax errors, type
    mismatches, constraint violations and permission errors are not retried.

    :param exc: The exception to check.
    :returns: True if the error is likely transient and worth retrying.
    """
    error_msg = str(exc).lower()
    return bool(_RETRYABLE_REGEX.search(error_msg))


class DatabaseError(Exception):
    """Base class for all dataaccess errors.
    """


class ConnectionFailure(DatabaseError):
    """Error establishing or maintaining database connection.
    """


class QueryError(DatabaseError):
    """Error in command construction or execution.
    """


class TypeConversionError(DatabaseError):
    """Error converting a value to a column or parameter type.
    """


class IntegrityViolationError(DatabaseError):
    """Database constraint violation error.
    """


class ConstraintError(IntegrityViolationError):
    """An in-memory table constraint was violated.
    """


class ValidationError(DatabaseError):
    """Error in input validation.
    """


class ReadOnlyError(DatabaseError):
    """Attempt to modify a read-only column.
    """


class InvalidOperationError(DatabaseError):
    """Operation is not valid for the current object state.
    """


DbConnectionError = (
    sa_exc.OperationalError,
    sa_exc.InterfaceError,
    sa_exc.DisconnectionError,
    psycopg.OperationalError,
    psycopg.InterfaceError,
    sqlite3.OperationalError,
    sqlite3.InterfaceError,
    ConnectionFailure,
    )

IntegrityError = (
    sa_exc.IntegrityError,
    psycopg.IntegrityError,
    sqlite3.IntegrityError,
    IntegrityViolationError,
    )

ProgrammingError = (
    sa_exc.ProgrammingError,
    psycopg.ProgrammingError,
    psycopg.DatabaseError,
    sqlite3.ProgrammingError,
    sqlite3.DatabaseError,
    QueryError,
    )

OperationalError = (
    sa_exc.OperationalError,
    psycopg.OperationalError,
    sqlite3.OperationalError,
    )
