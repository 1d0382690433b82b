"""
Binding of value collections and entities onto command parameters.
"""
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any, Generic, TypeVar

from dataaccess.command import Command
from dataaccess.exceptions import ValidationError
from dataaccess.table import DataRow

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ParameterMapper(ABC, Generic[T]):
    """Assign values to a command's parameters.
    """

    @abstractmethod
    def assign_parameters(self, command: Command, values: Sequence[Any]) -> None:
        """Assign a positional collection of values."""

    @abstractmethod
    def assign_entity(self, command: Command, entity: T) -> None:
        """Assign the values carried by an entity."""


class SourceColumnParameterMapper(ParameterMapper[Any]):
    """Map values onto input parameters.

    Positional values go to the input and in/out parameters in order. Entity
    values are read from each parameter's ``source_column``, or its bind name
    when no source column is set, out of a mapping, a DataRow or the entity's
    attributes.
    """

    def assign_parameters(self, command: Command, values: Sequence[Any]) -> None:
        if command is None:
            raise TypeError('command must not be None')
        if values is None:
            raise TypeError('values must not be None')
        parameters = [p for p in command.parameters if p.direction.is_input]
        if len(parameters) != len(values):
            raise ValidationError(
                f'Expected {len(parameters)} parameter values, got {len(values)}')
        for parameter, value in zip(parameters, values):
            parameter.value = value

    def assign_entity(self, command: Command, entity: Any) -> None:
        if command is None:
            raise TypeError('command must not be None')
        if entity is None:
            raise TypeError('entity must not be None')
        for parameter in command.parameters:
            if not parameter.direction.is_input:
                continue
            key = parameter.source_column or parameter.bind_name
            parameter.value = self._read(entity, key)
        logger.debug(f'Assigned {type(entity).__name__} to {command.command_text}')

    def _read(self, entity: Any, key: str) -> Any:
        if isinstance(entity, DataRow):
            if key not in entity:
                raise ValidationError(f'Row has no column {key!r}')
            return entity[key]
        if isinstance(entity, Mapping):
            if key in entity:
                return entity[key]
            for name, value in entity.items():
                if isinstance(name, str) and name.lower() == key.lower():
                    return value
            raise ValidationError(f'Entity has no value for {key!r}')
        if hasattr(entity, key):
            return getattr(entity, key)
        raise ValidationError(f'{type(entity).__name__} has no attribute {key!r}')
