"""
Command parameters.

A Parameter pairs a name with a DbType, direction, size and value. Output,
in/out and return-value parameters receive their values back after the
command executes.
"""
import copy
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from dataaccess.convert import coerce
from dataaccess.exceptions import TypeConversionError, ValidationError
from dataaccess.types import DataRowVersion, DbType, ParameterDirection
from dataaccess.types import TypeConverter

logger = logging.getLogger(__name__)

PARAMETER_MARKERS = '@:'


def normalize_parameter_name(name: str) -> str:
    """Strip a leading parameter marker ('@' or ':') from a name."""
    return name.lstrip(PARAMETER_MARKERS)


@dataclass
class Parameter:
    """A typed command parameter.

    ``value`` of None is bound as database NULL.
    """
    name: str
    db_type: DbType = DbType.OBJECT
    size: int = 0
    direction: ParameterDirection = ParameterDirection.INPUT
    is_nullable: bool = True
    source_column: str | None = None
    source_version: DataRowVersion = DataRowVersion.DEFAULT
    value: Any = None
    precision: int = 0
    scale: int = 0

    @property
    def bind_name(self) -> str:
        """Name used in the statement's bind parameters."""
        return normalize_parameter_name(self.name)

    def clone(self) -> 'Parameter':
        """Return an independent copy of this parameter."""
        return copy.deepcopy(self)

    def bind_value(self) -> Any:
        """Value to bind, converted to the parameter's DbType."""
        value = TypeConverter.convert_value(self.value)
        return coerce(value, self.db_type)

    def validate(self) -> None:
        """Check direction, type, size and nullability are consistent.

        Raises
            ValidationError: If the parameter cannot be bound as configured
        """
        if not self.bind_name:
            raise ValidationError(f'Parameter name {self.name!r} is empty')
        if self.size < 0 or self.precision < 0 or self.scale < 0:
            raise ValidationError(
                f'Parameter {self.name}: size, precision and scale must not be negative')
        if not self.direction.is_input:
            return
        value = TypeConverter.convert_value(self.value)
        if value is None:
            if not self.is_nullable:
                raise ValidationError(f'Parameter {self.name} does not allow null values')
            return
        try:
            value = coerce(value, self.db_type)
        except TypeConversionError as exc:
            raise ValidationError(f'Parameter {self.name}: {exc}') from exc
        if self.size > 0 and isinstance(value, str | bytes) and len(value) > self.size:
            raise ValidationError(
                f'Parameter {self.name} value length {len(value)} exceeds size {self.size}')


class ParameterCollection:
    """Ordered collection of a command's parameters.

    Parameters are addressed by position or by name. Name lookup tries an
    exact match first and then ignores the leading parameter marker.
    """

    def __init__(self, parameters: Iterable[Parameter] = ()) -> None:
        self._items: list[Parameter] = list(parameters)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Parameter]:
        return iter(self._items)

    def __contains__(self, name: object) -> bool:
        if isinstance(name, Parameter):
            return name in self._items
        return isinstance(name, str) and self._find(name) is not None

    def __getitem__(self, key: int | str) -> Parameter:
        if isinstance(key, int):
            return self._items[key]
        parameter = self._find(key)
        if parameter is None:
            raise KeyError(f'Parameter {key!r} not found')
        return parameter

    def __repr__(self) -> str:
        return f'ParameterCollection({self.names()})'

    def _find(self, name: str) -> Parameter | None:
        for parameter in self._items:
            if parameter.name == name:
                return parameter
        bind_name = normalize_parameter_name(name)
        for parameter in self._items:
            if parameter.bind_name == bind_name:
                return parameter
        return None

    def add(self, parameter: Parameter) -> Parameter:
        if parameter is None:
            raise TypeError('parameter must not be None')
        self._items.append(parameter)
        return parameter

    def extend(self, parameters: Iterable[Parameter]) -> None:
        for parameter in parameters:
            self.add(parameter)

    def remove(self, key: Parameter | str) -> None:
        parameter = key if isinstance(key, Parameter) else self[key]
        self._items.remove(parameter)

    def clear(self) -> None:
        self._items.clear()

    def names(self) -> list[str]:
        return [p.name for p in self._items]

    def validate(self) -> None:
        """Validate every parameter and reject duplicate bind names."""
        seen: set[str] = set()
        for parameter in self._items:
            parameter.validate()
            if parameter.bind_name in seen:
                raise ValidationError(f'Parameter {parameter.bind_name} is defined more than once')
            seen.add(parameter.bind_name)

    def input_values(self) -> dict[str, Any]:
        """Bind values of input and in/out parameters keyed by bind name."""
        return {p.bind_name: p.bind_value() for p in self._items if p.direction.is_input}

    def output_parameters(self) -> list[Parameter]:
        return [p for p in self._items if p.direction.is_output]
