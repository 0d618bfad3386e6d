import dbmodel as db
import pytest
from dbmodel import exceptions


@pytest.mark.parametrize('error_cls', [
    exceptions.ConnectionFailure,
    exceptions.QueryError,
    exceptions.TypeConversionError,
    exceptions.ValidationError,
    exceptions.UnknownFieldError,
])
def test_hierarchy(error_cls):
    assert issubclass(error_cls, exceptions.DatabaseError)


def test_unknown_field_error():
    error = exceptions.UnknownFieldError('users', ['nickname', 'alias'])
    assert isinstance(error, exceptions.ValidationError)
    assert error.table == 'users'
    assert error.fields == ['nickname', 'alias']
    assert str(error) == "Unknown field(s) for table 'users': nickname, alias"


def test_exported_errors_share_base():
    """Every exception class exported by the package is a DatabaseError"""
    exported = [getattr(db, name) for name in db.__all__]
    errors = [obj for obj in exported if isinstance(obj, type) and issubclass(obj, Exception)]
    assert errors
    assert all(issubclass(error, exceptions.DatabaseError) for error in errors)
    assert not any(isinstance(obj, tuple) for obj in exported)


if __name__ == '__main__':
    __import__('pytest').main([__file__])
