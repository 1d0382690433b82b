"""
PostgreSQL-specific strategy implementation.

This module implements the DatabaseStrategy interface with PostgreSQL-specific operations:
- Connection URLs for the psycopg driver
- Statement timeouts through SET LOCAL statement_timeout
- Stored procedures invoked with CALL, functions with SELECT * FROM
- Routine parameter discovery from information_schema
"""
import logging
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dataaccess.cache import cacheable_strategy
from dataaccess.exceptions import QueryError
from dataaccess.strategy.base import DatabaseStrategy, register_strategy
from dataaccess.types import DbType, ParameterDirection

if TYPE_CHECKING:
    from dataaccess.command import Command
    from dataaccess.options import DatabaseOptions

logger = logging.getLogger(__name__)

postgres_types: dict[str, DbType] = {
    'smallint': DbType.INT16,
    'integer': DbType.INT32,
    'bigint': DbType.INT64,
    'numeric': DbType.DECIMAL,
    'money': DbType.CURRENCY,
    'real': DbType.SINGLE,
    'double precision': DbType.DOUBLE,
    'boolean': DbType.BOOLEAN,
    'text': DbType.STRING,
    'character varying': DbType.STRING,
    'character': DbType.STRING_FIXED_LENGTH,
    'date': DbType.DATE,
    'timestamp without time zone': DbType.DATETIME,
    'timestamp with time zone': DbType.DATETIME_OFFSET,
    'time without time zone': DbType.TIME,
    'uuid': DbType.GUID,
    'bytea': DbType.BINARY,
    'xml': DbType.XML,
}


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):
    """PostgreSQL-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for PostgreSQL."""
        return 'postgresql'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for PostgreSQL."""
        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)
        if options.appname:
            query['application_name'] = options.appname

        return sa.URL.create(
            drivername='postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port,
            database=options.database,
            query=query
        )

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for PostgreSQL."""
        return {}

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for PostgreSQL connections."""
        return ['hostname', 'username', 'password', 'database', 'port']

    def map_database_type(self, type_name: str | None) -> DbType:
        """Map an information_schema data_type to a DbType."""
        if not type_name:
            return DbType.OBJECT
        return postgres_types.get(type_name.lower(), DbType.OBJECT)

    def apply_command_timeout(self, cn: sa.Connection, seconds: int) -> None:
        """Set statement_timeout for the current transaction.
        """
        cn.exec_driver_sql(f'set local statement_timeout = {int(seconds) * 1000}')
        logger.debug(f'Statement timeout set to {seconds}s')

    @cacheable_strategy('routines', ttl=300, maxsize=50)
    def get_routine(self, cn: sa.Connection, name: str,
                    bypass_cache: bool = False) -> dict[str, Any]:
        """Describe a routine from information_schema.

        Unquoted names are matched case-insensitively the way PostgreSQL
        folds them; an exact match wins.
        """
        parts = self.split_qualified_name(name)
        if len(parts) > 2:
            raise QueryError(f'Invalid routine name: {name}')
        params = {'name': parts[-1]}
        if len(parts) == 2:
            schema_clause = 'r.routine_schema = :schema'
            params['schema'] = parts[0]
        else:
            schema_clause = 'r.routine_schema = current_schema()'

        sql = f"""
select
    r.routine_schema,
    r.routine_name,
    r.specific_name,
    r.routine_type,
    r.data_type as return_type,
    p.ordinal_position,
    p.parameter_name,
    p.parameter_mode,
    p.data_type,
    p.character_maximum_length,
    p.numeric_precision,
    p.numeric_scale
from information_schema.routines r
left join information_schema.parameters p
    on p.specific_schema = r.specific_schema
    and p.specific_name = r.specific_name
where
    (r.routine_name = :name or r.routine_name = lower(:name))
    and {schema_clause}
order by
    (r.routine_name = :name) desc,
    r.specific_name,
    p.ordinal_position
"""
        rows = self._select_raw(cn, sql, params)
        if not rows:
            raise QueryError(f'Stored procedure {name} not found')

        specific_name = rows[0]['specific_name']
        rows = [row for row in rows if row['specific_name'] == specific_name]

        parameters = [
            {
                'name': row['parameter_name'] or f"p{row['ordinal_position']}",
                'mode': row['parameter_mode'] or 'IN',
                'data_type': row['data_type'],
                'max_length': row['character_maximum_length'] or 0,
                'precision': row['numeric_precision'] or 0,
                'scale': row['numeric_scale'] or 0,
            }
            for row in rows if row['ordinal_position'] is not None
        ]

        routine_type = rows[0]['routine_type']
        return_type = rows[0]['return_type']
        has_outputs = any(p['mode'] in {'OUT', 'INOUT'} for p in parameters)
        if routine_type == 'FUNCTION' and return_type not in {'void', 'record', None} and not has_outputs:
            parameters.append({
                'name': 'return_value',
                'mode': 'RETURN',
                'data_type': return_type,
                'max_length': 0,
                'precision': 0,
                'scale': 0,
            })

        logger.debug(f'Routine {name} ({routine_type}) has {len(parameters)} parameters')
        return {
            'schema': rows[0]['routine_schema'],
            'name': rows[0]['routine_name'],
            'routine_type': routine_type,
            'return_type': return_type,
            'parameters': parameters,
        }

    def build_procedure_sql(self, cn: sa.Connection, command: 'Command') -> str:
        """Build CALL for procedures and SELECT * FROM for functions.

        OUT arguments of a procedure are passed as null; functions take
        only their input arguments.
        """
        routine = self.get_routine(cn, command.command_text)
        quoted_name = f"{self.quote_identifier(routine['schema'])}.{self.quote_identifier(routine['name'])}"

        if routine['routine_type'] == 'FUNCTION':
            params = [p for p in command.parameters if p.direction.is_input]
            params = self._in_signature_order(routine, params, {'IN', 'INOUT', 'VARIADIC'})
            args = [f':{p.bind_name}' for p in params]
            return f"select * from {quoted_name}({', '.join(args)})"

        params = [p for p in command.parameters if p.direction is not ParameterDirection.RETURN_VALUE]
        params = self._in_signature_order(routine, params, {'IN', 'INOUT', 'VARIADIC', 'OUT'})
        args = [f':{p.bind_name}' if p.direction.is_input else 'null' for p in params]
        return f"call {quoted_name}({', '.join(args)})"

    @staticmethod
    def _in_signature_order(routine: dict, params: list, modes: set[str]) -> list:
        """Order parameters by their position in the routine signature.

        Parameters are matched by name, ignoring case; names the signature
        does not know keep their order after the matched ones.

        Raises
            QueryError: If a signature argument is skipped before a later one
        """
        signature = [p['name'].lower() for p in routine['parameters'] if p['mode'] in modes]
        positions = {name: i for i, name in enumerate(signature)}
        ordered = sorted(params, key=lambda p: positions.get(p.bind_name.lower(), len(signature)))
        matched = [p.bind_name.lower() for p in ordered if p.bind_name.lower() in positions]
        if matched and matched != signature[:len(matched)]:
            missing = next(name for name in signature if name not in matched)
            raise QueryError(f"Parameter {missing} of {routine['name']} was not supplied")
        return ordered
