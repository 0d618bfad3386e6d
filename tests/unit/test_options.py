import pandas as pd
import pytest
from dbmodel.options import DatabaseOptions, iterdict_data_loader
from dbmodel.options import pandas_data_loader
from pydantic import ValidationError as SettingsError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep DBMODEL_* variables of the calling shell out of these tests."""
    for name in ('HOSTNAME', 'USERNAME', 'PASSWORD', 'DATABASE', 'PORT', 'DRIVERNAME', 'PREFIX'):
        monkeypatch.delenv(f'DBMODEL_{name}', raising=False)


def test_init_defaults():
    """Test default initialization"""
    options = DatabaseOptions(
        hostname='testhost',
        username='testuser',
        password='testpass',
        database='testdb',
        )

    assert options.drivername == 'mysql'
    assert options.port is None
    assert options.timeout == 0
    assert options.prefix == ''
    assert options.strict_fields is False
    assert options.error_handler is None
    assert options.data_loader == iterdict_data_loader

    assert options.use_pool is False
    assert options.pool_max_connections == 5
    assert options.pool_max_idle_time == 300
    assert options.pool_wait_timeout == 30


def test_pooling_options():
    """Test connection pooling options"""
    options = DatabaseOptions(
        drivername='sqlite',
        database=':memory:',
        use_pool=True,
        pool_max_connections=10,
        pool_max_idle_time=600,
        pool_wait_timeout=60
        )

    assert options.use_pool is True
    assert options.pool_max_connections == 10
    assert options.pool_max_idle_time == 600
    assert options.pool_wait_timeout == 60


def test_unsupported_driver():
    with pytest.raises(SettingsError, match='drivername must be one of'):
        DatabaseOptions(drivername='postgresql', database='x')


@pytest.mark.parametrize('missing', ['hostname', 'username', 'database'])
def test_mysql_required_options(missing):
    kwargs = {'hostname': 'h', 'username': 'u', 'database': 'd'}
    del kwargs[missing]
    with pytest.raises(SettingsError, match=f'{missing} is required for mysql'):
        DatabaseOptions(**kwargs)


def test_sqlite_requires_database():
    with pytest.raises(SettingsError, match='database is required for sqlite'):
        DatabaseOptions(drivername='sqlite')


def test_unknown_option_rejected():
    with pytest.raises(SettingsError):
        DatabaseOptions(drivername='sqlite', database=':memory:', appname='x')


def test_environment_variables(monkeypatch):
    """Options not passed explicitly are read from DBMODEL_* variables"""
    monkeypatch.setenv('DBMODEL_HOSTNAME', 'envhost')
    monkeypatch.setenv('DBMODEL_USERNAME', 'envuser')
    monkeypatch.setenv('DBMODEL_DATABASE', 'envdb')
    monkeypatch.setenv('DBMODEL_PORT', '3307')

    options = DatabaseOptions(database='explicit')

    assert options.hostname == 'envhost'
    assert options.username == 'envuser'
    assert options.port == 3307
    assert options.database == 'explicit'


def test_error_handler_option():
    errors = []
    options = DatabaseOptions(drivername='sqlite', database=':memory:', error_handler=errors.append)
    assert options.error_handler == errors.append


def test_cache_key_covers_password():
    options = DatabaseOptions(hostname='h', username='u', password='secret', database='d')
    other = DatabaseOptions(hostname='h', username='u', password='other', database='d')
    key = options.cache_key()
    assert 'secret' not in key
    assert key.startswith('mysql:u@h:None/d')
    assert key != other.cache_key()
    assert key == DatabaseOptions(hostname='h', username='u', password='secret', database='d').cache_key()


def test_iterdict_data_loader():
    rows = [{'a': 1}, {'a': 2}]
    assert iterdict_data_loader(rows, ['a']) == rows
    assert iterdict_data_loader([], ['a']) == []


def test_pandas_data_loader():
    df = pandas_data_loader([{'a': 1, 'b': 'x'}], ['a', 'b'])
    assert isinstance(df, pd.DataFrame)
    assert df.to_dict('records') == [{'a': 1, 'b': 'x'}]

    empty = pandas_data_loader([], ['a', 'b'])
    assert isinstance(empty, pd.DataFrame)
    assert list(empty.columns) == ['a', 'b']
    assert len(empty) == 0


if __name__ == '__main__':
    __import__('pytest').main([__file__])
