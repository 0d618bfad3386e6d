import hashlib
from collections.abc import Callable, Sequence
from typing import Any

import pandas as pd
from dbmodel.exceptions import QueryError
from dbmodel.strategy import get_available_dialects, get_strategy_class
from dbmodel.strategy import is_supported_dialect
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    'DatabaseOptions',
    'ErrorHandler',
    'iterdict_data_loader',
    'pandas_data_loader',
]

ErrorHandler = Callable[[QueryError], None]


def iterdict_data_loader(data: Sequence[dict], columns: Sequence[str], **kwargs: Any) -> list[dict]:
    """Minimal data loader: rows as plain dicts.
    """
    if not data:
        return []
    return list(data)


def pandas_data_loader(data: Sequence[dict], columns: Sequence[str], **kwargs: Any) -> pd.DataFrame:
    """pandas DataFrame loader.

    Always returns a DataFrame, never None, with columns preserved for empty results.
    """
    if not data:
        return pd.DataFrame(columns=list(columns))
    return pd.DataFrame.from_records(list(data), columns=list(columns))


class DatabaseOptions(BaseSettings):
    """Options

    supported driver names: `mysql`, `sqlite`

    Values not passed explicitly are read from `DBMODEL_*` environment
    variables (e.g. `DBMODEL_HOSTNAME`).

    Behaviour options:
    - prefix: prepended to table names passed to insert/update/delete
    - strict_fields: reject unknown fields instead of dropping them
    - error_handler: called with a QueryError when a statement fails
    - data_loader: shapes SELECT results when no model class is given

    Connection pooling options:
    - use_pool: Whether to use connection pooling (default: False)
    - pool_max_connections: Maximum connections in pool (default: 5)
    - pool_max_idle_time: Maximum seconds a connection can be idle (default: 300)
    - pool_wait_timeout: Maximum seconds to wait for a connection (default: 30)
    """
    model_config = SettingsConfigDict(env_prefix='DBMODEL_', extra='forbid')

    drivername: str = 'mysql'
    hostname: str | None = None
    username: str | None = None
    password: str | None = None
    database: str | None = None
    port: int | None = None
    timeout: int = 0
    prefix: str = ''
    strict_fields: bool = False
    error_handler: ErrorHandler | None = None
    data_loader: Callable[..., Any] = iterdict_data_loader
    # Connection pooling parameters
    use_pool: bool = False
    pool_max_connections: int = 5
    pool_max_idle_time: int = 300
    pool_wait_timeout: int = 30

    @model_validator(mode='after')
    def validate_driver(self) -> 'DatabaseOptions':
        if not is_supported_dialect(self.drivername):
            available = get_available_dialects()
            raise ValueError(f'drivername must be one of: {available}')
        strategy_cls = get_strategy_class(self.drivername)
        strategy_cls.validate_options(self)
        return self

    def cache_key(self) -> str:
        """Key identifying the engine these options produce.

        Credentials are part of the key; the password enters as a digest.
        """
        secret = hashlib.sha256((self.password or '').encode()).hexdigest()[:16]
        return (f'{self.drivername}:{self.username}@{self.hostname}:{self.port}/{self.database}'
                f'_{secret}'
                f'_{self.use_pool}_{self.pool_max_connections}_{self.pool_max_idle_time}'
                f'_{self.pool_wait_timeout}_{self.timeout}')
