"""Encoding of events and state updates: JSON for text, msgpack for binary."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union, get_args

import msgpack
from msgpack.exceptions import UnpackException

from apersync.core import (
    PlayerID,
    ReplaceState,
    TransitionEvent,
    TransitionState,
    encode_value,
    millis_to_timestamp,
    timestamp_to_millis,
)

T = TypeVar("T")

WireData = Union[str, bytes]


@dataclass(frozen=True)
class WireWrapped(Generic[T]):
    """A decoded value and whether it arrived as binary.

    Replies go back in the same form the peer used.
    """

    value: T
    binary: bool


def _dump(payload: Any, binary: bool) -> WireData:
    if binary:
        return msgpack.packb(payload, use_bin_type=True)
    return json.dumps(payload, separators=(",", ":"))


def _load(data: Any) -> tuple[Any, bool]:
    if isinstance(data, (bytes, bytearray, memoryview)):
        try:
            return msgpack.unpackb(bytes(data), raw=False), True
        except (ValueError, TypeError, UnpackException) as exc:
            raise ValueError(f"malformed binary message: {exc}") from exc
    if isinstance(data, str):
        try:
            return json.loads(data), False
        except json.JSONDecodeError as exc:
            raise ValueError(f"malformed text message: {exc}") from exc
    raise TypeError(f"expected str or bytes, got {type(data).__name__}")


def encode_event(event: TransitionEvent, binary: bool) -> WireData:
    """Encode a transition event as JSON text or msgpack bytes."""
    return _dump(event.to_wire(), binary)


def decode_event(data: WireData, transition_type: Any = Any) -> TransitionEvent:
    """Decode a transition event from text or bytes."""
    payload, _ = _load(data)
    return TransitionEvent.from_wire(payload, transition_type)


def encode_update(message: Union[ReplaceState, TransitionState], binary: bool) -> WireData:
    """Encode a state update message as JSON text or msgpack bytes."""
    if isinstance(message, ReplaceState):
        payload = {
            "ReplaceState": [
                encode_value(message.state),
                timestamp_to_millis(message.timestamp),
                message.player.to_wire(),
            ]
        }
    elif isinstance(message, TransitionState):
        payload = {"TransitionState": message.event.to_wire()}
    else:
        raise TypeError(f"not a state update message: {type(message).__name__}")
    return _dump(payload, binary)


def _event_transition_type(program_type: type) -> Any:
    args = get_args(getattr(program_type, "transition_type", None))
    return args[0] if args else Any


def decode_update(
    data: WireData, program_type: type, transition_type: Any = None
) -> WireWrapped[Union[ReplaceState, TransitionState]]:
    """Decode a state update message, noting whether it arrived as binary."""
    if transition_type is None:
        transition_type = _event_transition_type(program_type)
    payload, binary = _load(data)
    if not isinstance(payload, dict) or len(payload) != 1:
        raise ValueError(f"malformed state update: {payload!r}")
    ((kind, body),) = payload.items()
    if kind == "ReplaceState":
        if not isinstance(body, list) or len(body) != 3:
            raise ValueError(f"malformed ReplaceState body: {body!r}")
        state, millis, player = body
        message: Union[ReplaceState, TransitionState] = ReplaceState(
            program_type.from_wire(state),
            millis_to_timestamp(millis),
            PlayerID.from_wire(player),
        )
    elif kind == "TransitionState":
        message = TransitionState(TransitionEvent.from_wire(body, transition_type))
    else:
        raise ValueError(f"unknown state update kind {kind!r}")
    return WireWrapped(message, binary)