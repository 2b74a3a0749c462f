"""Players, transitions, events, state machines and state programs."""

from __future__ import annotations

import copy
import dataclasses
import types
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import (
    Any,
    ClassVar,
    Generic,
    Optional,
    TypeVar,
    Union,
    get_args,
    get_origin,
)
from uuid import UUID

T = TypeVar("T")

Timestamp = datetime

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def timestamp_to_millis(timestamp: datetime) -> int:
    """Milliseconds since the Unix epoch; naive datetimes are taken as UTC."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return (timestamp - _EPOCH) // _MILLISECOND


def millis_to_timestamp(millis: int) -> datetime:
    """Inverse of :func:`timestamp_to_millis`."""
    if isinstance(millis, bool) or not isinstance(millis, int):
        raise TypeError(f"timestamp must be an integer number of milliseconds, got {millis!r}")
    return _EPOCH + millis * _MILLISECOND


def encode_value(value: Any) -> Any:
    """Turn a value into plain data (dicts, lists, strings, numbers, None)."""
    if value is None or isinstance(value, (bool, int, float, str, bytes)):
        return value
    if isinstance(value, datetime):
        return timestamp_to_millis(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.name
    to_wire = getattr(value, "to_wire", None)
    if callable(to_wire):
        return to_wire()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: encode_value(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [encode_value(item) for item in value]
    if isinstance(value, dict):
        return {encode_value(k): encode_value(v) for k, v in value.items()}
    raise TypeError(f"cannot encode value of type {type(value).__name__}")


def _require_sequence(data: Any) -> None:
    if not isinstance(data, (list, tuple)):
        raise TypeError(f"expected a sequence, got {data!r}")


def _decode_union(data: Any, args: tuple) -> Any:
    if data is None and type(None) in args:
        return None
    for arg in args:
        if arg is type(None):
            continue
        try:
            return decode_value(data, arg)
        except (TypeError, ValueError):
            continue
    raise ValueError(f"cannot decode {data!r} as any of {args}")


def _decode_container(data: Any, container: type, args: tuple) -> Any:
    if container is dict:
        if not isinstance(data, dict):
            raise TypeError(f"expected a mapping, got {data!r}")
        key_type, value_type = args if args else (Any, Any)
        return {decode_value(k, key_type): decode_value(v, value_type) for k, v in data.items()}
    _require_sequence(data)
    if container is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            return tuple(decode_value(item, args[0]) for item in data)
        if args:
            if len(args) != len(data):
                raise ValueError(f"expected {len(args)} items, got {len(data)}")
            return tuple(decode_value(item, arg) for item, arg in zip(data, args))
        return tuple(data)
    item_type = args[0] if args else Any
    return container(decode_value(item, item_type) for item in data)


def _decode_scalar(data: Any, hint: type) -> Any:
    if hint is bool:
        if not isinstance(data, bool):
            raise TypeError(f"expected a bool, got {data!r}")
        return data
    if hint is int:
        if isinstance(data, bool) or not isinstance(data, int):
            raise TypeError(f"expected an int, got {data!r}")
        return data
    if hint is float:
        if isinstance(data, bool) or not isinstance(data, (int, float)):
            raise TypeError(f"expected a number, got {data!r}")
        return float(data)
    if hint in (str, bytes) and not isinstance(data, hint):
        raise TypeError(f"expected {hint.__name__}, got {data!r}")
    return data


def decode_value(data: Any, hint: Any = Any) -> Any:
    """Rebuild a value of the type ``hint`` from plain data.

    Hints given as strings (unevaluated annotations) pass the data through.
    """
    if hint is Any or hint is object or isinstance(hint, (TypeVar, str)):
        return data
    origin = get_origin(hint)
    args = get_args(hint)
    if origin is Union or origin is types.UnionType:
        return _decode_union(data, args)
    if origin is TransitionEvent:
        return TransitionEvent.from_wire(data, args[0] if args else Any)
    container = origin if origin is not None else hint
    if container in (list, tuple, dict, set, frozenset):
        return _decode_container(data, container, args)
    if origin is not None:
        hint = origin
    if not isinstance(hint, type):
        return data
    if hint is type(None):
        if data is not None:
            raise TypeError(f"expected None, got {data!r}")
        return None
    if hint is TransitionEvent:
        return TransitionEvent.from_wire(data, Any)
    if issubclass(hint, datetime):
        return millis_to_timestamp(data)
    if issubclass(hint, UUID):
        return data if isinstance(data, UUID) else UUID(str(data))
    if issubclass(hint, Enum):
        try:
            return hint[data]
        except (KeyError, TypeError):
            raise ValueError(f"{data!r} is not a member of {hint.__name__}") from None
    from_wire = getattr(hint, "from_wire", None)
    if callable(from_wire):
        return from_wire(data)
    if dataclasses.is_dataclass(hint):
        return hint(**_decode_fields(hint, data))
    return _decode_scalar(data, hint)


def _decode_fields(cls: type, data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f"expected a mapping for {cls.__name__}, got {data!r}")
    kwargs = {}
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        if f.name not in data:
            if f.default is not dataclasses.MISSING or f.default_factory is not dataclasses.MISSING:
                continue
            raise ValueError(f"missing field {f.name!r} for {cls.__name__}")
        kwargs[f.name] = decode_value(data[f.name], f.type)
    return kwargs


_TRANSITIONS: dict[str, list[type]] = {}


def _find_variant(cls: type, name: str) -> type:
    candidates = [c for c in _TRANSITIONS.get(name, ()) if issubclass(c, cls)]
    if not candidates:
        raise ValueError(f"unknown transition {name!r} for {cls.__name__}")
    return candidates[-1]


@dataclass(frozen=True, order=True)
class PlayerID:
    """An opaque identifier for a single connected user."""

    value: int

    def __str__(self) -> str:
        return str(self.value)

    def to_wire(self) -> int:
        return self.value

    @classmethod
    def from_wire(cls, data: Any) -> PlayerID:
        if isinstance(data, bool) or not isinstance(data, int):
            raise TypeError(f"player id must be an integer, got {data!r}")
        return cls(data)


class Transition:
    """Base for values that describe a change to a state machine.

    Subclasses are usually frozen dataclasses. A family of transitions shares a
    common base, and ``Base.from_wire`` finds the right subclass by name.
    """

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        _TRANSITIONS.setdefault(cls.__name__, []).append(cls)

    def to_wire(self) -> Any:
        name = type(self).__name__
        if not dataclasses.is_dataclass(self):
            return name
        payload = {f.name: encode_value(getattr(self, f.name)) for f in dataclasses.fields(self)}
        return {name: payload} if payload else name

    @classmethod
    def from_wire(cls, data: Any) -> Transition:
        if isinstance(data, str):
            name, payload = data, None
        elif isinstance(data, dict) and len(data) == 1:
            ((name, payload),) = data.items()
        else:
            raise ValueError(f"malformed transition: {data!r}")
        variant = _find_variant(cls, name)
        if dataclasses.is_dataclass(variant):
            return variant(**_decode_fields(variant, {} if payload is None else payload))
        if payload is not None:
            raise ValueError(f"transition {name!r} takes no payload")
        return variant()


@dataclass(frozen=True)
class TransitionEvent(Generic[T]):
    """A transition together with the player who made it and when."""

    player: Optional[PlayerID]
    timestamp: datetime
    transition: T

    def to_wire(self) -> dict[str, Any]:
        return {
            "timestamp": timestamp_to_millis(self.timestamp),
            "player": None if self.player is None else self.player.value,
            "transition": encode_value(self.transition),
        }

    @classmethod
    def from_wire(cls, data: Any, transition_type: Any = Any) -> TransitionEvent:
        if not isinstance(data, dict):
            raise ValueError(f"malformed transition event: {data!r}")
        try:
            timestamp, player, transition = data["timestamp"], data["player"], data["transition"]
        except KeyError as exc:
            raise ValueError(f"transition event is missing {exc.args[0]!r}") from None
        return cls(
            player=decode_value(player, Optional[PlayerID]),
            timestamp=millis_to_timestamp(timestamp),
            transition=decode_value(transition, transition_type),
        )


class StateMachine(ABC):
    """A value that changes only by applying transitions, deterministically."""

    transition_type: ClassVar[Any] = None

    @abstractmethod
    def apply(self, transition: Any) -> None:
        """Update the state in place according to ``transition``."""

    def clone(self) -> StateMachine:
        return copy.deepcopy(self)

    def to_wire(self) -> Any:
        if not dataclasses.is_dataclass(self):
            raise TypeError(f"{type(self).__name__} must define to_wire")
        return {f.name: encode_value(getattr(self, f.name)) for f in dataclasses.fields(self)}

    @classmethod
    def from_wire(cls, data: Any) -> StateMachine:
        if not dataclasses.is_dataclass(cls):
            raise TypeError(f"{cls.__name__} must define from_wire")
        return cls(**_decode_fields(cls, data))


class StateProgram(StateMachine):
    """A state machine whose transitions are :class:`TransitionEvent` values."""

    def suspended_event(self) -> Optional[TransitionEvent]:
        """The event to fire at a future time, if any; none by default."""
        return None


class StateProgramFactory(ABC):
    """Creates fresh state programs, one per channel."""

    @abstractmethod
    def create(self) -> StateProgram:
        """Return a new state program."""


_CONTAINER_TYPES: dict[tuple[type, type], type] = {}


@dataclass
class StateMachineContainerProgram(StateProgram):
    """Serves a plain state machine, stripping event metadata from transitions."""

    machine: StateMachine
    machine_type: ClassVar[Optional[type]] = None
    transition_type: ClassVar[Any] = TransitionEvent

    def apply(self, transition: TransitionEvent) -> None:
        self.machine.apply(transition.transition)

    def to_wire(self) -> Any:
        return self.machine.to_wire()

    @classmethod
    def from_wire(cls, data: Any) -> StateMachineContainerProgram:
        if cls.machine_type is None:
            raise TypeError("the machine type is unknown; use StateMachineContainerProgram.for_machine")
        return cls(cls.machine_type.from_wire(data))

    @classmethod
    def for_machine(cls, machine_type: type) -> type:
        """Return the container program class that wraps ``machine_type``."""
        key = (cls, machine_type)
        program_type = _CONTAINER_TYPES.get(key)
        if program_type is None:
            inner = machine_type.transition_type
            program_type = type(
                f"{machine_type.__name__}Program",
                (cls,),
                {
                    "machine_type": machine_type,
                    "transition_type": TransitionEvent if inner is None else TransitionEvent[inner],
                    "__module__": cls.__module__,
                },
            )
            _CONTAINER_TYPES[key] = program_type
        return program_type


@dataclass
class ReplaceState:
    """Tells a client to replace its whole state; sent when it first connects."""

    state: StateProgram
    timestamp: datetime
    player: PlayerID


@dataclass
class TransitionState:
    """Tells a client to apply an event to its copy of the state."""

    event: TransitionEvent


StateUpdateMessage = Union[ReplaceState, TransitionState]