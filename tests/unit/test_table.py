import datetime

import pandas as pd
import pytest
from dataaccess.exceptions import ConstraintError, InvalidOperationError
from dataaccess.exceptions import ReadOnlyError, TypeConversionError
from dataaccess.options import iterdict_data_loader
from dataaccess.table import DataColumn, DataSet, DataTable
from dataaccess.table import ForeignKeyConstraint, UniqueConstraint
from dataaccess.types import DbType, Rule


@pytest.fixture
def customers():
    table = DataTable('Customer')
    table.columns.add(DataColumn('Id', DbType.INT32, allow_null=False, auto_increment=True,
                                 read_only=True))
    table.columns.add(DataColumn('Name', DbType.STRING, allow_null=False, max_length=10))
    table.columns.add(DataColumn('Score', DbType.DOUBLE, default=1.5))
    table.primary_key = [table.columns['Id']]
    return table


@pytest.fixture
def orders(customers):
    table = DataTable('Order')
    table.columns.add(DataColumn('OrderId', DbType.INT32, allow_null=False))
    table.columns.add(DataColumn('CustomerId', DbType.INT32, default=1))
    return table


def link(customers, orders, rule):
    constraint = ForeignKeyConstraint('FK_Order_Customer', customers.columns['Id'],
                                      orders.columns['CustomerId'], delete_rule=rule)
    orders.add_constraint(constraint)
    return constraint


class TestDataColumn:

    def test_default_is_coerced(self):
        assert DataColumn('a', DbType.INT32, default='7').default == 7

    def test_bad_default(self):
        with pytest.raises(TypeConversionError):
            DataColumn('a', DbType.INT32, default='seven')

    def test_caption_falls_back_to_name(self):
        column = DataColumn('a')
        assert column.caption == 'a'
        column.caption = 'Alpha'
        assert column.caption == 'Alpha'

    def test_invalid_definitions(self):
        with pytest.raises(ValueError):
            DataColumn('')
        with pytest.raises(ValueError):
            DataColumn('a', max_length=-2)
        with pytest.raises(ValueError):
            DataColumn('a', DbType.STRING, auto_increment=True)
        with pytest.raises(ValueError):
            DataColumn('a', DbType.INT32, auto_increment=True, auto_increment_step=0)

    def test_ordinal(self, customers):
        assert customers.columns['Score'].ordinal == 2
        assert DataColumn('x').ordinal == -1


class TestColumns:

    def test_case_insensitive_lookup(self, customers):
        assert customers.columns['name'] is customers.columns['Name']
        assert customers.columns.contains('SCORE')
        assert customers.columns.index_of('score') == 2
        assert customers.columns.index_of('missing') == -1

    def test_duplicate_column(self, customers):
        with pytest.raises(InvalidOperationError):
            customers.columns.add(DataColumn('name'))

    def test_column_belongs_to_one_table(self, customers, orders):
        with pytest.raises(InvalidOperationError):
            orders.columns.add(customers.columns['Name'])

    def test_adding_column_fills_existing_rows(self, customers):
        customers.add_row({'Name': 'a'})
        customers.columns.add(DataColumn('Active', DbType.BOOLEAN, default=True))
        assert customers[0]['Active'] is True

    def test_adding_not_null_column_without_default(self, customers):
        customers.add_row({'Name': 'a'})
        with pytest.raises(ConstraintError):
            customers.columns.add(DataColumn('Code', DbType.STRING, allow_null=False))

    def test_adding_unique_column_with_default(self, customers):
        customers.add_rows([{'Name': 'a'}, {'Name': 'b'}])
        with pytest.raises(ConstraintError):
            customers.columns.add(DataColumn('Code', DbType.INT32, default=7, unique=True))
        assert 'Code' not in customers.columns
        customers.columns.add(DataColumn('Tag', DbType.INT32, unique=True))
        assert [row['Tag'] for row in customers] == [None, None]

    def test_adding_unique_column_with_default_to_single_row(self, customers):
        customers.add_row({'Name': 'a'})
        customers.columns.add(DataColumn('Code', DbType.INT32, default=7, unique=True))
        assert customers[0]['Code'] == 7


class TestRows:

    def test_add_row_fills_defaults_and_auto_values(self, customers):
        first = customers.add_row({'Name': 'Alice'})
        second = customers.add_row({'name': 'Bob', 'Score': '2.5'})
        assert first.to_dict() == {'Id': 1, 'Name': 'Alice', 'Score': 1.5}
        assert second['Id'] == 2
        assert second['score'] == 2.5

    def test_add_row_from_sequence(self, customers):
        row = customers.add_row([None, 'Alice'])
        assert row['Id'] == 1
        assert row['Score'] == 1.5

    def test_sequence_too_long(self, customers):
        with pytest.raises(InvalidOperationError):
            customers.add_row([None, 'a', 1.0, 'extra'])

    def test_explicit_auto_value_moves_counter(self, customers):
        customers.add_row({'Id': 10, 'Name': 'a'})
        assert customers.add_row({'Name': 'b'})['Id'] == 11

    def test_failed_insert_does_not_consume_auto_value(self, customers):
        with pytest.raises(ConstraintError):
            customers.add_row({'Name': None})
        assert customers.add_row({'Name': 'a'})['Id'] == 1

    def test_null_not_allowed(self, customers):
        with pytest.raises(ConstraintError):
            customers.add_row({})

    def test_max_length(self, customers):
        with pytest.raises(ConstraintError):
            customers.add_row({'Name': 'x' * 11})

    def test_type_conversion_failure(self, customers):
        with pytest.raises(ConstraintError):
            customers.add_row({'Name': 'a', 'Score': 'high'})

    def test_unknown_column(self, customers):
        with pytest.raises(KeyError):
            customers.add_row({'Nickname': 'a'})

    def test_update_validates(self, customers):
        row = customers.add_row({'Name': 'Alice'})
        row['Score'] = '3'
        assert row['Score'] == 3.0
        with pytest.raises(ConstraintError):
            row['Name'] = None
        assert row['Name'] == 'Alice'

    def test_read_only_column(self, customers):
        row = customers.add_row({'Name': 'Alice'})
        with pytest.raises(ReadOnlyError):
            row['Id'] = 5

    def test_access_by_ordinal_and_column(self, customers):
        row = customers.add_row({'Name': 'Alice'})
        assert row[1] == 'Alice'
        assert row[customers.columns['Name']] == 'Alice'
        assert row.get('missing', 'x') == 'x'

    def test_delete_detaches(self, customers):
        row = customers.add_row({'Name': 'Alice'})
        row.delete()
        assert row.is_detached
        assert len(customers) == 0
        with pytest.raises(InvalidOperationError):
            row['Name'] = 'x'
        with pytest.raises(InvalidOperationError):
            row.delete()

    def test_find(self, customers):
        customers.add_rows([{'Name': 'a'}, {'Name': 'b', 'Score': 9}])
        assert [r['Name'] for r in customers.find(Score=9.0)] == ['b']


class TestUniqueConstraints:

    def test_primary_key_rejects_duplicates(self, customers):
        customers.add_row({'Id': 1, 'Name': 'a'})
        with pytest.raises(ConstraintError):
            customers.add_row({'Id': 1, 'Name': 'b'})

    def test_primary_key_makes_columns_not_null(self):
        table = DataTable('t')
        table.columns.add(DataColumn('k', DbType.INT32))
        table.primary_key = table.columns['k']
        assert table.columns['k'].allow_null is False
        assert table.primary_key == [table.columns['k']]

    def test_primary_key_over_existing_duplicates(self):
        table = DataTable('t')
        table.columns.add(DataColumn('k', DbType.INT32))
        table.add_rows([[1], [1]])
        with pytest.raises(ConstraintError):
            table.primary_key = [table.columns['k']]
        assert table.primary_key == []

    def test_rejected_primary_key_keeps_current(self):
        table = DataTable('t')
        a = table.columns.add(DataColumn('a', DbType.INT32))
        b = table.columns.add(DataColumn('b', DbType.INT32))
        table.primary_key = [a]
        table.add_row([1, None])
        with pytest.raises(ConstraintError):
            table.primary_key = [b]
        assert table.primary_key == [a]
        with pytest.raises(InvalidOperationError):
            table.primary_key = [DataTable('other').columns.add(DataColumn('c', DbType.INT32))]
        assert table.primary_key == [a]
        with pytest.raises(ConstraintError):
            table.add_row([1, 2])

    def test_nulls_do_not_collide(self):
        table = DataTable('t')
        table.columns.add(DataColumn('code', DbType.STRING, unique=True))
        table.add_rows([[None], [None], ['a']])
        with pytest.raises(ConstraintError):
            table.add_row(['a'])

    def test_uniqueness_is_case_sensitive(self):
        table = DataTable('t')
        table.columns.add(DataColumn('code', DbType.STRING, unique=True))
        table.add_rows([['a'], ['A']])
        assert len(table) == 2

    def test_composite_key(self):
        table = DataTable('t')
        a = table.columns.add(DataColumn('a', DbType.INT32))
        b = table.columns.add(DataColumn('b', DbType.INT32))
        table.add_constraint(UniqueConstraint([a, b], name='UQ_ab'))
        table.add_rows([[1, 1], [1, 2]])
        with pytest.raises(ConstraintError):
            table.add_row([1, 2])

    def test_update_into_duplicate(self):
        table = DataTable('t')
        table.columns.add(DataColumn('code', DbType.STRING, unique=True))
        table.add_rows([['a'], ['b']])
        with pytest.raises(ConstraintError):
            table[1]['code'] = 'a'
        table[0]['code'] = 'a'

    def test_duplicate_constraint_name(self):
        table = DataTable('t')
        a = table.columns.add(DataColumn('a', DbType.INT32))
        table.add_constraint(UniqueConstraint(a, name='UQ'))
        with pytest.raises(InvalidOperationError):
            table.add_constraint(UniqueConstraint(a, name='uq'))


class TestForeignKeys:

    def test_child_requires_parent(self, customers, orders):
        link(customers, orders, Rule.CASCADE)
        customers.add_row({'Name': 'a'})
        orders.add_row({'OrderId': 1, 'CustomerId': 1})
        orders.add_row({'OrderId': 2, 'CustomerId': None})
        with pytest.raises(ConstraintError):
            orders.add_row({'OrderId': 3, 'CustomerId': 99})

    def test_existing_orphans_rejected(self, customers, orders):
        orders.add_row({'OrderId': 1, 'CustomerId': 5})
        with pytest.raises(ConstraintError):
            link(customers, orders, Rule.CASCADE)

    def test_cascade(self, customers, orders):
        link(customers, orders, Rule.CASCADE)
        alice = customers.add_row({'Name': 'a'})
        customers.add_row({'Name': 'b'})
        orders.add_rows([[1, 1], [2, 1], [3, 2]])
        alice.delete()
        assert [r['OrderId'] for r in orders] == [3]

    def test_set_null(self, customers, orders):
        link(customers, orders, Rule.SET_NULL)
        alice = customers.add_row({'Name': 'a'})
        orders.add_row([1, 1])
        alice.delete()
        assert orders[0]['CustomerId'] is None

    def test_set_default(self, customers, orders):
        link(customers, orders, Rule.SET_DEFAULT)
        customers.add_row({'Name': 'a'})
        bob = customers.add_row({'Name': 'b'})
        orders.add_row([1, 2])
        bob.delete()
        assert orders[0]['CustomerId'] == 1

    def test_set_default_without_parent_row(self, customers, orders):
        link(customers, orders, Rule.SET_DEFAULT)
        alice = customers.add_row({'Name': 'a'})
        orders.add_row([1, 1])
        with pytest.raises(ConstraintError):
            alice.delete()
        assert len(customers) == 1

    def test_none_rule_blocks_delete(self, customers, orders):
        link(customers, orders, Rule.NONE)
        alice = customers.add_row({'Name': 'a'})
        orders.add_row([1, 1])
        with pytest.raises(ConstraintError):
            alice.delete()
        assert not alice.is_detached

    def test_rejected_cascade_changes_nothing(self, customers, orders):
        link(customers, orders, Rule.CASCADE)
        lines = DataTable('Line')
        lines.columns.add(DataColumn('OrderId', DbType.INT32))
        lines.add_constraint(ForeignKeyConstraint('FK_Line_Order', orders.columns['OrderId'],
                                                  lines.columns['OrderId'], delete_rule=Rule.NONE))
        alice = customers.add_row({'Name': 'a'})
        first, second = orders.add_rows([[1, 1], [2, 1]])
        lines.add_row([2])
        with pytest.raises(ConstraintError):
            alice.delete()
        assert list(customers) == [alice]
        assert list(orders) == [first, second]
        assert not first.is_detached and not second.is_detached
        assert [row['CustomerId'] for row in orders] == [1, 1]
        assert len(lines) == 1

    def test_rejected_set_null_changes_nothing(self, customers, orders):
        link(customers, orders, Rule.SET_NULL)
        lines = DataTable('Line')
        lines.columns.add(DataColumn('CustomerId', DbType.INT32))
        lines.add_constraint(ForeignKeyConstraint('FK_Line_Order', orders.columns['CustomerId'],
                                                  lines.columns['CustomerId'], delete_rule=Rule.NONE))
        alice = customers.add_row({'Name': 'a'})
        orders.add_row([1, 1])
        lines.add_row([1])
        with pytest.raises(ConstraintError):
            alice.delete()
        assert not alice.is_detached
        assert orders[0]['CustomerId'] == 1

    def test_parent_key_change_blocked(self, customers, orders):
        customers.columns['Id'].read_only = False
        link(customers, orders, Rule.CASCADE)
        alice = customers.add_row({'Name': 'a'})
        orders.add_row([1, 1])
        with pytest.raises(ConstraintError):
            alice['Id'] = 5

    def test_remove_constraint(self, customers, orders):
        constraint = link(customers, orders, Rule.NONE)
        orders.remove_constraint(constraint)
        orders.add_row([1, 42])
        assert orders[0]['CustomerId'] == 42

    def test_clear_cascades(self, customers, orders):
        link(customers, orders, Rule.CASCADE)
        customers.add_rows([{'Name': 'a'}, {'Name': 'b'}])
        orders.add_rows([[1, 1], [2, 2]])
        customers.clear()
        assert len(customers) == 0
        assert len(orders) == 0


class TestFromResult:

    def test_infers_types(self):
        table = DataTable.from_result(
            ['id', 'name', 'created', 'mixed', 'empty'],
            [(1, 'a', datetime.datetime(2024, 1, 1), 1, None),
             (2, None, datetime.datetime(2024, 1, 2), 'x', None)],
            name='result')
        types = {column.name: column.db_type for column in table.columns}
        assert types == {'id': DbType.INT64, 'name': DbType.STRING,
                         'created': DbType.DATETIME, 'mixed': DbType.OBJECT,
                         'empty': DbType.OBJECT}
        assert table[1]['name'] is None

    def test_names_missing_and_duplicate_columns(self):
        table = DataTable.from_result(['', 'a', 'A'], [(1, 2, 3)])
        assert table.columns.names() == ['Column1', 'a', 'A1']

    def test_to_dataframe(self):
        table = DataTable.from_result(['id', 'name'], [(1, 'a'), (2, 'b')])
        df = table.to_dataframe()
        assert isinstance(df, pd.DataFrame)
        assert list(df['name']) == ['a', 'b']
        assert df.attrs['column_types'] == {'id': 'INT64', 'name': 'STRING'}

    def test_to_dataframe_empty(self):
        table = DataTable.from_result(['id'], [])
        df = table.to_dataframe()
        assert list(df.columns) == ['id']
        assert len(df) == 0

    def test_to_records_with_loader(self):
        table = DataTable.from_result(['id'], [(1,)])
        assert table.to_dataframe(iterdict_data_loader) == [{'id': 1}]


class TestDataSet:

    def test_auto_names(self):
        dataset = DataSet()
        first = dataset.add_table()
        second = dataset.add_table(DataTable())
        named = dataset.add_table('Orders')
        assert (first.name, second.name, named.name) == ('Table', 'Table1', 'Orders')
        assert dataset['orders'] is named
        assert dataset[0] is first
        assert 'TABLE1' in dataset

    def test_duplicate_table(self):
        dataset = DataSet()
        dataset.add_table('a')
        with pytest.raises(InvalidOperationError):
            dataset.add_table('A')

    def test_table_in_one_dataset(self):
        table = DataSet().add_table('a')
        with pytest.raises(InvalidOperationError):
            DataSet().add_table(table)

    def test_missing_table(self):
        with pytest.raises(KeyError):
            DataSet()['missing']


if __name__ == '__main__':
    __import__('pytest').main([__file__])
