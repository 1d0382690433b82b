import pandas as pd
import pytest
from dataaccess.databases import SQLiteDatabase, open_database
from dataaccess.exceptions import IntegrityError, InvalidOperationError
from dataaccess.exceptions import OperationalError, ProgrammingError, QueryError
from dataaccess.exceptions import ValidationError
from dataaccess.options import iterdict_data_loader
from dataaccess.reader import DataReader
from dataaccess.types import DbType, ParameterDirection

from tests.fixtures.sqlite import execute_sql


def count_rows(database):
    return database.execute_scalar(database.get_sql_text_command('select count(*) from test_table'))


def insert_command(database, name, value):
    command = database.get_sql_text_command('insert into test_table (name, value) values (:name, :value)')
    database.add_in_parameter(command, 'name', DbType.STRING, name)
    database.add_in_parameter(command, 'value', DbType.INT32, value)
    return command


class TestNonQuery:

    def test_own_connection_commits(self, sqlite_db):
        assert sqlite_db.execute_non_query(insert_command(sqlite_db, 'Dave', 40)) == 1
        assert count_rows(sqlite_db) == 4

    def test_update_rowcount(self, sqlite_db):
        command = sqlite_db.get_sql_text_command('update test_table set value = value + 1 where value >= :low')
        sqlite_db.add_in_parameter(command, 'low', DbType.INT32, 20)
        assert sqlite_db.execute_non_query(command) == 2

    def test_supplied_connection_commits(self, sqlite_db):
        with sqlite_db.get_open_connection() as cn:
            sqlite_db.execute_non_query(insert_command(sqlite_db, 'Dave', 40), cn)
            assert not cn.connection.in_transaction()
        assert count_rows(sqlite_db) == 4

    def test_supplied_connection_rolls_back_on_error(self, sqlite_db):
        with sqlite_db.get_open_connection() as cn:
            with pytest.raises(IntegrityError):
                sqlite_db.execute_non_query(insert_command(sqlite_db, 'Alice', 1), cn)
            assert not cn.connection.in_transaction()
        assert count_rows(sqlite_db) == 3

    def test_connection_in_transaction_is_not_committed(self, sqlite_db):
        with sqlite_db.get_open_connection() as cn:
            cn.connection.begin()
            sqlite_db.execute_non_query(insert_command(sqlite_db, 'Dave', 40), cn)
            assert cn.connection.in_transaction()
        assert count_rows(sqlite_db) == 3

    def test_transaction_commit(self, sqlite_db):
        with sqlite_db.get_open_connection() as cn:
            transaction = cn.begin()
            sqlite_db.execute_non_query(insert_command(sqlite_db, 'Dave', 40), transaction=transaction)
            sqlite_db.execute_non_query(insert_command(sqlite_db, 'Erin', 50), transaction=transaction)
            transaction.commit()
        assert count_rows(sqlite_db) == 5

    def test_transaction_rollback(self, sqlite_db):
        with sqlite_db.get_open_connection() as cn:
            transaction = cn.begin()
            sqlite_db.execute_non_query(insert_command(sqlite_db, 'Dave', 40), transaction=transaction)
            transaction.rollback()
        assert count_rows(sqlite_db) == 3

    def test_parameters_are_validated(self, sqlite_db):
        command = insert_command(sqlite_db, 'Dave', 'forty')
        with pytest.raises(ValidationError):
            sqlite_db.execute_non_query(command)
        command = insert_command(sqlite_db, 'Dave', 40)
        command.parameters['name'].size = 2
        with pytest.raises(ValidationError):
            sqlite_db.execute_non_query(command)
        assert count_rows(sqlite_db) == 3

    def test_null_parameter(self, sqlite_db):
        execute_sql(sqlite_db, 'create table notes (id integer primary key, body text)')
        command = sqlite_db.get_sql_text_command('insert into notes (body) values (:body)')
        sqlite_db.add_in_parameter(command, 'body', DbType.STRING)
        sqlite_db.execute_non_query(command)
        check = sqlite_db.get_sql_text_command('select count(*) from notes where body is null')
        assert sqlite_db.execute_scalar(check) == 1

    def test_syntax_error(self, sqlite_db):
        with pytest.raises(ProgrammingError + OperationalError):
            execute_sql(sqlite_db, 'selec nothing')


class TestScalar:

    def test_first_column_of_first_row(self, sqlite_db):
        command = sqlite_db.get_sql_text_command('select name, value from test_table order by value desc')
        assert sqlite_db.execute_scalar(command) == 'Charlie'

    def test_no_rows(self, sqlite_db):
        command = sqlite_db.get_sql_text_command('select name from test_table where value > :v')
        sqlite_db.add_in_parameter(command, 'v', DbType.INT32, 100)
        assert sqlite_db.execute_scalar(command) is None

    def test_output_parameter_from_column(self, sqlite_db):
        command = sqlite_db.get_sql_text_command(
            'select sum(value) as total, count(*) as cnt from test_table')
        sqlite_db.add_out_parameter(command, 'cnt', DbType.INT32)
        sqlite_db.add_parameter(command, 'rv', DbType.INT32,
                                direction=ParameterDirection.RETURN_VALUE)
        assert sqlite_db.execute_scalar(command) == 60
        assert sqlite_db.get_parameter_value(command, 'cnt') == 3
        assert sqlite_db.get_parameter_value(command, 'rv') == 60


class TestReader:

    def test_read_rows(self, sqlite_db):
        command = sqlite_db.get_sql_text_command('select id, name, value from test_table order by id')
        with sqlite_db.execute_reader(command) as reader:
            assert isinstance(reader, DataReader)
            assert reader.fieldnames == ['id', 'name', 'value']
            names = []
            while reader.read():
                names.append(reader['NAME'])
                assert reader[2] == reader.get_value(reader.get_ordinal('value'))
            assert names == ['Alice', 'Bob', 'Charlie']
        assert reader.is_closed

    def test_iterate_as_attrdicts(self, sqlite_db):
        command = sqlite_db.get_sql_text_command('select name, value from test_table order by id')
        with sqlite_db.execute_reader(command) as reader:
            rows = reader.fetchall()
        assert rows[0].name == 'Alice'
        assert [row.value for row in rows] == [10, 20, 30]

    def test_reader_owns_connection(self, sqlite_db):
        reader = sqlite_db.execute_reader(sqlite_db.get_sql_text_command('select 1'))
        connection = reader._connection
        assert connection.is_open
        reader.close()
        assert not connection.is_open
        reader.close()

    def test_reader_on_supplied_connection(self, sqlite_db):
        with sqlite_db.get_open_connection() as cn:
            reader = sqlite_db.execute_reader(sqlite_db.get_sql_text_command('select 1'), cn)
            assert reader.read()
            assert reader[0] == 1
            assert not reader.read()
            reader.close()
            assert cn.is_open

    def test_value_before_read(self, sqlite_db):
        with sqlite_db.execute_reader(sqlite_db.get_sql_text_command('select 1')) as reader:
            with pytest.raises(InvalidOperationError):
                reader.get_value(0)

    def test_unknown_column(self, sqlite_db):
        with sqlite_db.execute_reader(sqlite_db.get_sql_text_command('select 1 as a')) as reader:
            reader.read()
            with pytest.raises(IndexError):
                reader['b']

    def test_reader_commits_on_close(self, sqlite_db):
        command = insert_command(sqlite_db, 'Dave', 40)
        with sqlite_db.execute_reader(command) as reader:
            assert not reader.read()
            assert reader.rowcount == 1
        assert count_rows(sqlite_db) == 4


class TestDataSet:

    def test_fill_table(self, sqlite_db):
        command = sqlite_db.get_sql_text_command('select id, name, value from test_table order by id')
        data_set = sqlite_db.execute_data_set(command)
        assert len(data_set) == 1
        table = data_set['Table']
        assert table.columns.names() == ['id', 'name', 'value']
        assert table.columns['value'].db_type is DbType.INT64
        assert [row['name'] for row in table] == ['Alice', 'Bob', 'Charlie']

    def test_empty_result_keeps_columns(self, sqlite_db):
        command = sqlite_db.get_sql_text_command('select name from test_table where 1 = 0')
        table = sqlite_db.execute_data_set(command)[0]
        assert table.columns.names() == ['name']
        assert len(table) == 0

    def test_statement_without_rows(self, sqlite_db):
        data_set = sqlite_db.execute_data_set(insert_command(sqlite_db, 'Dave', 40))
        assert len(data_set) == 0
        assert count_rows(sqlite_db) == 4

    def test_on_transaction(self, sqlite_db):
        with sqlite_db.get_open_connection() as cn:
            transaction = cn.begin()
            sqlite_db.execute_non_query(insert_command(sqlite_db, 'Dave', 40), transaction=transaction)
            data_set = sqlite_db.execute_data_set(
                sqlite_db.get_sql_text_command('select count(*) as n from test_table'),
                transaction=transaction)
            transaction.rollback()
        assert data_set[0][0]['n'] == 4


class TestDataFrame:

    def test_default_loader(self, sqlite_db):
        command = sqlite_db.get_sql_text_command('select name, value from test_table order by id')
        df = sqlite_db.execute_data_frame(command)
        assert isinstance(df, pd.DataFrame)
        assert df['value'].tolist() == [10, 20, 30]
        assert df.attrs['column_types'] == {'name': 'STRING', 'value': 'INT64'}

    def test_custom_loader(self, tmp_path):
        database = open_database({'drivername': 'sqlite', 'database': str(tmp_path / 'loader.db'),
                                  'data_loader': iterdict_data_loader})
        assert isinstance(database, SQLiteDatabase)
        rows = database.execute_data_frame(database.get_sql_text_command('select 1 as a'))
        assert rows == [{'a': 1}]

    def test_no_result(self, sqlite_db):
        df = sqlite_db.execute_data_frame(insert_command(sqlite_db, 'Dave', 40))
        assert isinstance(df, pd.DataFrame)
        assert df.empty


class TestStoredProcedures:

    def test_discovery_not_supported(self, sqlite_db):
        with pytest.raises(QueryError):
            sqlite_db.discover_parameters(sqlite_db.get_stored_proc_command('proc'))

    def test_execution_not_supported(self, sqlite_db):
        with pytest.raises(QueryError):
            sqlite_db.execute_non_query(sqlite_db.get_stored_proc_command('proc'))


class TestOpenDatabase:

    def test_from_dict(self, tmp_path):
        database = open_database({'drivername': 'sqlite', 'database': str(tmp_path / 'open.db')})
        assert isinstance(database, SQLiteDatabase)
        assert database.command_timeout == 30

    def test_from_keywords(self, tmp_path):
        database = open_database(drivername='sqlite', database=str(tmp_path / 'kw.db'),
                                 command_timeout=5)
        assert database.command_timeout == 5

    def test_from_config(self):
        import config
        database = open_database('sqlite', config=config)
        assert database.options.database == 'database.db'
        assert isinstance(database, SQLiteDatabase)


if __name__ == '__main__':
    __import__('pytest').main([__file__])
