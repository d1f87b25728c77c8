"""Descriptions of remotely controllable things: properties, methods and their JSON forms."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

Schedule = Callable[[Callable[[], None]], None]


class ValueType(Enum):
    """Type of a property or parameter value, named as it appears in descriptors."""

    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def _join_object(items: Iterable[tuple[str, str]]) -> str:
    return "{" + ",".join(f"{_quote(key)}:{value}" for key, value in items) + "}"


def _typed_descriptor(description: str, value_type: ValueType) -> str:
    return _join_object(
        [("description", _quote(description)), ("type", _quote(value_type.value))]
    )


def _run_now(task: Callable[[], None]) -> None:
    task()


@dataclass
class Property:
    """A readable value of a thing, produced on demand by a getter."""

    name: str
    description: str
    value_type: ValueType
    getter: Callable[[], Any]

    def value(self) -> Any:
        """Read the current value, converted to the property's type."""
        raw = self.getter()
        if self.value_type is ValueType.BOOLEAN:
            return bool(raw)
        if self.value_type is ValueType.NUMBER:
            return int(raw)
        return str(raw)

    def get_descriptor_json(self) -> str:
        return _typed_descriptor(self.description, self.value_type)

    def get_state_json(self) -> str:
        current = self.value()
        if self.value_type is ValueType.BOOLEAN:
            return "true" if current else "false"
        if self.value_type is ValueType.NUMBER:
            return str(current)
        return _quote(current)


class PropertyList:
    """Ordered collection of properties, looked up by name."""

    def __init__(self, properties: Optional[Iterable[Property]] = None) -> None:
        self._properties: List[Property] = list(properties or [])

    def add_boolean_property(self, name: str, description: str, getter: Callable[[], bool]) -> None:
        self._properties.append(Property(name, description, ValueType.BOOLEAN, getter))

    def add_number_property(self, name: str, description: str, getter: Callable[[], int]) -> None:
        self._properties.append(Property(name, description, ValueType.NUMBER, getter))

    def add_string_property(self, name: str, description: str, getter: Callable[[], str]) -> None:
        self._properties.append(Property(name, description, ValueType.STRING, getter))

    def __getitem__(self, name: str) -> Property:
        for prop in self._properties:
            if prop.name == name:
                return prop
        raise KeyError(f"Property not found: {name}")

    def __iter__(self) -> Iterator[Property]:
        return iter(self._properties)

    def get_descriptor_json(self) -> str:
        return _join_object((p.name, p.get_descriptor_json()) for p in self._properties)

    def get_state_json(self) -> str:
        return _join_object((p.name, p.get_state_json()) for p in self._properties)


@dataclass
class Parameter:
    """An argument of a method; its value is filled in from an incoming command."""

    name: str
    description: str
    value_type: ValueType
    required: bool = True
    value: Any = field(default=None, compare=False)

    def get_descriptor_json(self) -> str:
        return _typed_descriptor(self.description, self.value_type)


class ParameterList:
    """Ordered collection of parameters, looked up by name."""

    def __init__(self, parameters: Optional[Iterable[Parameter]] = None) -> None:
        self._parameters: List[Parameter] = list(parameters or [])

    def add_parameter(self, parameter: Parameter) -> None:
        self._parameters.append(parameter)

    def __getitem__(self, name: str) -> Parameter:
        for parameter in self._parameters:
            if parameter.name == name:
                return parameter
        raise KeyError(f"Parameter not found: {name}")

    def __iter__(self) -> Iterator[Parameter]:
        return iter(self._parameters)

    def get_descriptor_json(self) -> str:
        return _join_object((p.name, p.get_descriptor_json()) for p in self._parameters)


class Method:
    """A command a thing accepts, run through a callback that receives its parameters."""

    def __init__(
        self,
        name: str,
        description: str,
        parameters: Optional[ParameterList],
        callback: Callable[[ParameterList], None],
    ) -> None:
        self.name = name
        self.description = description
        self.parameters = parameters if parameters is not None else ParameterList()
        self.callback = callback

    def get_descriptor_json(self) -> str:
        return _join_object(
            [
                ("description", _quote(self.description)),
                ("parameters", self.parameters.get_descriptor_json()),
            ]
        )

    def invoke(self) -> None:
        self.callback(self.parameters)


class MethodList:
    """Ordered collection of methods, looked up by name."""

    def __init__(self, methods: Optional[Iterable[Method]] = None) -> None:
        self._methods: List[Method] = list(methods or [])

    def add_method(
        self,
        name: str,
        description: str,
        parameters: Optional[ParameterList],
        callback: Callable[[ParameterList], None],
    ) -> None:
        self._methods.append(Method(name, description, parameters, callback))

    def __getitem__(self, name: str) -> Method:
        for method in self._methods:
            if method.name == name:
                return method
        raise KeyError(f"Method not found: {name}")

    def __iter__(self) -> Iterator[Method]:
        return iter(self._methods)

    def get_descriptor_json(self) -> str:
        return _join_object((m.name, m.get_descriptor_json()) for m in self._methods)


def _coerce(value_type: ValueType, raw: Any) -> Any:
    if value_type is ValueType.NUMBER:
        return int(raw)
    if value_type is ValueType.BOOLEAN:
        return raw == 1
    return str(raw)


class Thing:
    """A device exposed to the server through its properties and methods."""

    def __init__(self, name: str, description: str) -> None:
        self.name = name
        self.description = description
        self.properties = PropertyList()
        self.methods = MethodList()

    def get_descriptor_json(self) -> str:
        return _join_object(
            [
                ("name", _quote(self.name)),
                ("description", _quote(self.description)),
                ("properties", self.properties.get_descriptor_json()),
                ("methods", self.methods.get_descriptor_json()),
            ]
        )

    def get_state_json(self) -> str:
        return _join_object(
            [("name", _quote(self.name)), ("state", self.properties.get_state_json())]
        )

    def invoke(self, command: Dict[str, Any], schedule: Optional[Schedule] = None) -> None:
        """Fill the named method's parameters from ``command`` and schedule its call.

        Raises KeyError for an unknown method and ValueError when a required
        parameter is missing.
        """
        method = self.methods[command.get("method")]
        inputs = command.get("parameters") or {}
        for parameter in method.parameters:
            if parameter.name not in inputs:
                if parameter.required:
                    raise ValueError(f"Parameter {parameter.name} is required")
                continue
            parameter.value = _coerce(parameter.value_type, inputs[parameter.name])
        (schedule or _run_now)(method.invoke)


_thing_creators: Dict[str, Callable[[], Thing]] = {}


def register_thing(type_name: str, creator: Callable[[], Thing]) -> None:
    """Register a factory for things of the given type, replacing any earlier one."""
    _thing_creators[type_name] = creator


def create_thing(type_name: str) -> Thing:
    """Create a thing of a registered type; raises KeyError if the type is unknown."""
    try:
        creator = _thing_creators[type_name]
    except KeyError:
        raise KeyError(f"Thing type not found: {type_name}") from None
    return creator()