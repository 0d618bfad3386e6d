"""Low-level connection utilities with no internal dependencies.

These utilities work with ConnectionWrapper, SQLAlchemy connections and
engines, and have no imports from other dbmodel modules.
"""
import logging
import pathlib
import traceback
from typing import Any

logger = logging.getLogger(__name__)

_PACKAGE_DIR = pathlib.Path(__file__).resolve().parent


def get_dialect_name(obj: Any) -> str:
    """Get dialect name for a database connection or engine.
    """
    if hasattr(obj, 'dialect'):
        dialect = obj.dialect
        if isinstance(dialect, str):
            return dialect.lower()
        return str(dialect.name).lower()

    if hasattr(obj, 'engine') and hasattr(obj.engine, 'dialect'):
        return str(obj.engine.dialect.name).lower()

    if hasattr(obj, 'sa_connection') and hasattr(obj.sa_connection, 'engine'):
        return str(obj.sa_connection.engine.dialect.name).lower()

    type_name = f'{type(obj).__module__}.{type(obj).__name__}'
    if 'pymysql' in type_name:
        return 'mysql'
    if 'sqlite3' in type_name:
        return 'sqlite'

    raise AttributeError(f'Cannot determine dialect for {type(obj)}')


def caller_backtrace(limit: int | None = None) -> list[str]:
    """Return `file at line N` entries for the current stack outside dbmodel.

    Innermost frame first.
    """
    entries = []
    for frame in reversed(traceback.extract_stack()):
        path = pathlib.Path(frame.filename)
        if _PACKAGE_DIR in path.resolve().parents:
            continue
        entries.append(f'{frame.filename} at line {frame.lineno}')
        if limit and len(entries) >= limit:
            break
    return entries
