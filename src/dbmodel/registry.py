"""
Table registrations for model classes.

A Registry binds model classes to tables on one connection. Each
registration introspects the table once and is immutable afterwards, so
registered models never re-query the schema.
"""
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

from dbmodel.exceptions import ValidationError
from dbmodel.types import Field

if TYPE_CHECKING:
    from dbmodel.connection import ConnectionWrapper

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TableRegistration:
    """Table name, primary key and field descriptors of a registered model."""
    table: str
    pk: str | None
    fields: Mapping[str, Field]

    def get_field(self, name: str) -> Field | None:
        return self.fields.get(name)

    def has_field(self, name: str) -> bool:
        return name in self.fields


class Registry:
    """Registrations of model classes on a connection.

    Usage:
        registry = Registry(cn)
        registry.register(User, 'users')
        User.find(1)
    """

    def __init__(self, cn: 'ConnectionWrapper') -> None:
        self.cn = cn
        self._models: dict[type, TableRegistration] = {}
        self._lock = threading.RLock()

    def __contains__(self, model_cls: type) -> bool:
        return model_cls in self._models

    def register(self, model_cls: type, table: str, pk: str | None = None) -> TableRegistration:
        """Register a model class for a table.

        The primary key defaults to the first column the driver reports as
        one. Registering the same class again for the same table returns the
        existing registration.

        Raises
            ValidationError: If the table has no columns (does not exist), the
                given primary key is not a column, or the class is already
                registered for another table
        """
        with self._lock:
            existing = self._models.get(model_cls)
            if existing is not None:
                if existing.table != table:
                    raise ValidationError(
                        f'{model_cls.__name__} is already registered for table "{existing.table}"')
                return existing

            fields = self.cn.get_fields(table, bypass_cache=True)
            if not fields:
                raise ValidationError(
                    f'table "{table}" for {model_cls.__name__} not found in database.')

            if pk is None:
                pk = next((field.name for field in fields.values() if field.primary), None)
            elif pk not in fields:
                raise ValidationError(f'primary key "{pk}" is not a column of "{table}"')

            registration = TableRegistration(table=table, pk=pk,
                                             fields=MappingProxyType(dict(fields)))
            self._models[model_cls] = registration
            model_cls.registry = self
            logger.debug(f'Registered {model_cls.__name__} for {table} (pk={pk})')
            return registration

    def lookup(self, model_cls: type) -> TableRegistration:
        """Return the registration of a model class.

        Raises
            ValidationError: If the class is not registered here
        """
        registration = self._models.get(model_cls)
        if registration is None:
            name = model_cls.__name__
            raise ValidationError(
                f"{name} must be registered with its table. Use registry.register({name}, table)")
        return registration
