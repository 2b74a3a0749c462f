"""Build a state machine from a dataclass whose fields are state machines."""

from __future__ import annotations

import abc
import dataclasses
import re
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, get_origin

from apersync.core import StateMachine, Transition, decode_value, encode_value


def pascal_case(name: str) -> str:
    """Convert ``snake_case`` or similar to ``PascalCase``."""
    parts = re.split(r"[^0-9A-Za-z]+", name)
    return "".join(part[:1].upper() + part[1:] for part in parts if part)


@dataclass(frozen=True)
class FieldTransition(Transition):
    """Applies ``transition`` to the field named ``field``."""

    field: str
    transition: Any
    _variants: ClassVar[dict[str, tuple[str, Any]]] = {}

    def to_wire(self) -> Any:
        return {"Apply" + pascal_case(self.field): encode_value(self.transition)}

    @classmethod
    def from_wire(cls, data: Any) -> FieldTransition:
        if not isinstance(data, dict) or len(data) != 1:
            raise ValueError(f"malformed field transition: {data!r}")
        ((name, payload),) = data.items()
        try:
            field_name, transition_type = cls._variants[name]
        except KeyError:
            raise ValueError(f"unknown transition {name!r} for {cls.__name__}") from None
        return cls(field_name, decode_value(payload, transition_type))


def _mapper(transform: type, name: str) -> Callable:
    def map_field(self, fun):
        return transform(name, fun(getattr(self, name)))

    map_field.__name__ = f"map_{name}"
    map_field.__doc__ = f"Return a transition built by ``fun`` from the ``{name}`` field."
    return map_field


def state_machine(cls: type) -> type:
    """Make a dataclass of state machines into a state machine itself.

    Adds ``apply``, a ``map_<field>`` method per field and a
    ``transition_type`` named ``<Class>Transform``. Field annotations must be
    real types, not strings.
    """
    if not (isinstance(cls, type) and issubclass(cls, StateMachine)):
        raise TypeError("state_machine requires a StateMachine subclass")
    if not dataclasses.is_dataclass(cls):
        cls = dataclass(cls)

    variants: dict[str, tuple[str, Any]] = {}
    names = []
    for f in dataclasses.fields(cls):
        hint = f.type
        if isinstance(hint, str):
            raise TypeError(
                f"field {f.name!r} of {cls.__name__} has a string annotation; use a real type"
            )
        machine_type = get_origin(hint) or hint
        if not (isinstance(machine_type, type) and issubclass(machine_type, StateMachine)):
            raise TypeError(f"field {f.name!r} of {cls.__name__} is not a state machine")
        inner = getattr(machine_type, "transition_type", None)
        variants["Apply" + pascal_case(f.name)] = (f.name, Any if inner is None else inner)
        names.append(f.name)

    transform = type(
        f"{cls.__name__}Transform",
        (FieldTransition,),
        {
            "_variants": variants,
            "__module__": cls.__module__,
            "__qualname__": f"{cls.__qualname__}Transform",
        },
    )
    field_names = frozenset(names)

    def apply(self, transition):
        if not isinstance(transition, FieldTransition):
            raise TypeError(f"{type(self).__name__} cannot apply {type(transition).__name__}")
        if transition.field not in field_names:
            raise ValueError(f"{type(self).__name__} has no field {transition.field!r}")
        getattr(self, transition.field).apply(transition.transition)

    cls.apply = apply
    for name in names:
        setattr(cls, f"map_{name}", _mapper(transform, name))
    cls.transition_type = transform
    abc.update_abstractmethods(cls)
    return cls