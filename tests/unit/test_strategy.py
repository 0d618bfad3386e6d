"""
Unit tests for dialect strategies.
"""
import sqlite3

import pytest
from dbmodel.options import DatabaseOptions
from dbmodel.strategy import MySQLStrategy, SQLiteStrategy, get_available_dialects
from dbmodel.strategy import get_db_strategy, get_strategy, get_strategy_class
from dbmodel.strategy import is_supported_dialect
from dbmodel.utils import get_dialect_name


def test_available_dialects():
    assert set(get_available_dialects()) == {'mysql', 'sqlite'}
    assert is_supported_dialect('mysql')
    assert not is_supported_dialect('postgresql')


def test_get_strategy():
    assert isinstance(get_strategy('mysql'), MySQLStrategy)
    assert get_strategy('sqlite') is get_strategy('sqlite')
    assert get_strategy_class('sqlite') is SQLiteStrategy


def test_unsupported_dialect():
    with pytest.raises(ValueError, match='Unsupported dialect'):
        get_strategy('oracle')


def test_dialect_detection(create_simple_mock_connection):
    assert get_dialect_name(create_simple_mock_connection('mysql')) == 'mysql'
    assert get_dialect_name(create_simple_mock_connection('sqlite')) == 'sqlite'
    assert isinstance(get_db_strategy(create_simple_mock_connection('mysql')), MySQLStrategy)
    with pytest.raises(AttributeError):
        get_dialect_name(create_simple_mock_connection('unknown'))


def test_dialect_detection_from_wrapper(mocker):
    cn = mocker.Mock(spec=['sa_connection'])
    cn.sa_connection.engine.dialect.name = 'SQLite'
    assert get_dialect_name(cn) == 'sqlite'


class TestMySQLStrategy:

    @pytest.fixture
    def options(self):
        return DatabaseOptions(hostname='db.local', username='app', password='pw',
                               database='main', timeout=15)

    def test_url(self, options):
        url = MySQLStrategy().build_connection_url(options)
        assert url.drivername == 'mysql+pymysql'
        assert url.host == 'db.local'
        assert url.port == 3306
        assert url.username == 'app'
        assert url.password == 'pw'
        assert url.database == 'main'
        assert url.query['charset'] == 'utf8mb4'

    def test_explicit_port(self):
        options = DatabaseOptions(hostname='h', username='u', database='d', port=3307)
        assert MySQLStrategy().build_connection_url(options).port == 3307

    def test_engine_kwargs(self, options):
        assert MySQLStrategy().get_engine_kwargs(options) == {'connect_args': {'connect_timeout': 15}}

    def test_quoting_and_paramstyle(self):
        strategy = MySQLStrategy()
        assert strategy.quote_identifier('users') == '`users`'
        assert strategy.quote_identifier('we`ird') == '`we``ird`'
        assert strategy.paramstyle == 'format'
        assert strategy.dialect_name == 'mysql'


class TestSQLiteStrategy:

    def test_url(self):
        options = DatabaseOptions(drivername='sqlite', database=':memory:')
        url = SQLiteStrategy().build_connection_url(options)
        assert url.drivername == 'sqlite'
        assert url.database == ':memory:'

    def test_engine_kwargs(self):
        options = DatabaseOptions(drivername='sqlite', database=':memory:')
        kwargs = SQLiteStrategy().get_engine_kwargs(options)
        assert kwargs['connect_args']['detect_types'] & sqlite3.PARSE_DECLTYPES

    def test_quoting_and_paramstyle(self):
        strategy = SQLiteStrategy()
        assert strategy.quote_identifier('users') == '"users"'
        assert strategy.quote_identifier('we"ird') == '"we""ird"'
        assert strategy.paramstyle == 'qmark'
        assert strategy.dialect_name == 'sqlite'


if __name__ == '__main__':
    __import__('pytest').main([__file__])
