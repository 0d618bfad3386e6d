"""
Dialect strategies: one shared instance per supported dialect.

Importing this package registers the MySQL and SQLite strategies.
"""
from functools import lru_cache

from dbmodel.strategy.base import _STRATEGY_REGISTRY
from dbmodel.strategy.base import DatabaseStrategy as DatabaseStrategy
from dbmodel.strategy.base import register_strategy as register_strategy
from dbmodel.strategy.mysql import MySQLStrategy as MySQLStrategy
from dbmodel.strategy.sqlite import SQLiteStrategy as SQLiteStrategy
from dbmodel.utils import get_dialect_name


def get_strategy_class(dialect: str) -> type[DatabaseStrategy]:
    """Strategy class registered for `dialect`.

    Raises
        ValueError: If no strategy handles the dialect
    """
    try:
        return _STRATEGY_REGISTRY[dialect]
    except KeyError:
        raise ValueError(f'Unsupported dialect: {dialect}. '
                         f'Available: {get_available_dialects()}') from None


@lru_cache(maxsize=8)
def get_strategy(dialect: str) -> DatabaseStrategy:
    """Shared strategy instance for a dialect name (`mysql`, `sqlite`).
    """
    return get_strategy_class(dialect)()


def get_db_strategy(cn) -> DatabaseStrategy:
    """Strategy for a connection wrapper, SQLAlchemy connection or engine.
    """
    return get_strategy(get_dialect_name(cn))


def get_available_dialects() -> list[str]:
    return sorted(_STRATEGY_REGISTRY)


def is_supported_dialect(dialect: str) -> bool:
    return dialect in _STRATEGY_REGISTRY
