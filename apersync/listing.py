"""An ordered list state machine that tolerates concurrent edits."""

from __future__ import annotations

import bisect
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterator, Optional, TypeVar
from uuid import UUID

from apersync.core import StateMachine, Transition, decode_value, encode_value
from apersync.zeno_index import ZenoIndex

T = TypeVar("T", bound=StateMachine)


class ListPosition:
    """Base for the ways of naming a place in a :class:`List`."""


@dataclass(frozen=True)
class Beginning(ListPosition):
    """Before the first entry."""


@dataclass(frozen=True)
class End(ListPosition):
    """After the last entry."""


@dataclass(frozen=True)
class AbsolutePosition(ListPosition):
    """Exactly the given location."""

    location: ZenoIndex


@dataclass(frozen=True)
class Before(ListPosition):
    """Just before an entry, or before ``fallback`` if the entry is gone."""

    item_id: UUID
    fallback: ZenoIndex


@dataclass(frozen=True)
class After(ListPosition):
    """Just after an entry, or after ``fallback`` if the entry is gone."""

    item_id: UUID
    fallback: ZenoIndex


class ListOperation(Transition):
    """Base for the transitions of a :class:`List`."""


@dataclass(frozen=True)
class Insert(ListOperation):
    location: ZenoIndex
    item_id: UUID
    value: Any


@dataclass(frozen=True)
class Append(ListOperation):
    item_id: UUID
    value: Any


@dataclass(frozen=True)
class Prepend(ListOperation):
    item_id: UUID
    value: Any


@dataclass(frozen=True)
class Delete(ListOperation):
    item_id: UUID


@dataclass(frozen=True)
class Move(ListOperation):
    item_id: UUID
    location: ZenoIndex


@dataclass(frozen=True)
class ApplyTo(ListOperation):
    """Applies ``transition`` to the entry ``item_id``."""

    item_id: UUID
    transition: Any


@dataclass(frozen=True)
class ListItem(Generic[T]):
    """A view of one entry: its value, its location and its opaque id."""

    value: T
    location: ZenoIndex
    id: UUID


class List(StateMachine, Generic[T]):
    """A list of state machines, robust to concurrent changes by many users."""

    transition_type = ListOperation

    def __init__(self) -> None:
        self._locations: list[ZenoIndex] = []
        self._ids: dict[ZenoIndex, UUID] = {}
        self._where: dict[UUID, ZenoIndex] = {}
        self._pool: dict[UUID, T] = {}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, List):
            return NotImplemented
        return self._ids == other._ids and self._pool == other._pool

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"List({[item.value for item in self]!r})"

    def __len__(self) -> int:
        return len(self._locations)

    def __iter__(self) -> Iterator[ListItem[T]]:
        for location in list(self._locations):
            item_id = self._ids[location]
            yield ListItem(self._pool[item_id], location, item_id)

    def _set_location(self, location: ZenoIndex, item_id: UUID) -> None:
        if location not in self._ids:
            bisect.insort(self._locations, location)
        self._ids[location] = item_id

    def _remove_location(self, location: ZenoIndex) -> None:
        del self._ids[location]
        del self._locations[bisect.bisect_left(self._locations, location)]

    def _first(self) -> Optional[ZenoIndex]:
        return self._locations[0] if self._locations else None

    def _last(self) -> Optional[ZenoIndex]:
        return self._locations[-1] if self._locations else None

    def apply(self, transition: ListOperation) -> None:
        if isinstance(transition, Append):
            last = self._last()
            location = ZenoIndex() if last is None else ZenoIndex.new_after(last)
            self._do_insert(location, transition.item_id, transition.value)
        elif isinstance(transition, Prepend):
            first = self._first()
            location = ZenoIndex() if first is None else ZenoIndex.new_before(first)
            self._do_insert(location, transition.item_id, transition.value)
        elif isinstance(transition, Insert):
            self._do_insert(transition.location, transition.item_id, transition.value)
        elif isinstance(transition, Delete):
            self._do_delete(transition.item_id)
        elif isinstance(transition, Move):
            self._do_move(transition.item_id, transition.location)
        elif isinstance(transition, ApplyTo):
            value = self._pool.get(transition.item_id)
            if value is not None:
                value.apply(transition.transition)
        else:
            raise TypeError(f"List cannot apply {type(transition).__name__}")

    def get_location(self, position: ListPosition) -> ZenoIndex:
        """Resolve a position to a concrete location."""
        if isinstance(position, Beginning):
            first = self._first()
            return ZenoIndex() if first is None else ZenoIndex.new_before(first)
        if isinstance(position, End):
            last = self._last()
            return ZenoIndex() if last is None else ZenoIndex.new_after(last)
        if isinstance(position, AbsolutePosition):
            return position.location
        if isinstance(position, Before):
            return ZenoIndex.new_before(self._where.get(position.item_id, position.fallback))
        if isinstance(position, After):
            return ZenoIndex.new_after(self._where.get(position.item_id, position.fallback))
        raise TypeError(f"not a list position: {position!r}")

    def _do_insert(self, location: ZenoIndex, item_id: UUID, value: T) -> None:
        if location in self._ids:
            following = bisect.bisect_right(self._locations, location)
            if following < len(self._locations):
                location = ZenoIndex.new_between(location, self._locations[following])
            else:
                location = ZenoIndex.new_after(location)
        self._set_location(location, item_id)
        self._where[item_id] = location
        self._pool[item_id] = value

    def _do_move(self, item_id: UUID, location: ZenoIndex) -> None:
        old_location = self._where.pop(item_id, None)
        if old_location is None:
            return
        self._remove_location(old_location)
        self._set_location(location, item_id)
        self._where[item_id] = location

    def _do_delete(self, item_id: UUID) -> None:
        location = self._where.pop(item_id, None)
        if location is not None:
            self._remove_location(location)
        self._pool.pop(item_id, None)

    def _location_of(self, item_id: UUID) -> ZenoIndex:
        try:
            return self._where[item_id]
        except KeyError:
            raise KeyError(f"no item {item_id} in list") from None

    def insert_between(self, id1: UUID, id2: UUID, value: T) -> tuple[UUID, Insert]:
        """An insert of ``value`` between the entries ``id1`` and ``id2``."""
        location = ZenoIndex.new_between(self._location_of(id1), self._location_of(id2))
        item_id = uuid.uuid4()
        return item_id, Insert(location, item_id, value)

    def append(self, value: T) -> tuple[UUID, Append]:
        """An operation that appends ``value``, with the new entry's id."""
        item_id = uuid.uuid4()
        return item_id, Append(item_id, value)

    def prepend(self, value: T) -> tuple[UUID, Prepend]:
        """An operation that prepends ``value``, with the new entry's id."""
        item_id = uuid.uuid4()
        return item_id, Prepend(item_id, value)

    def insert(self, location: ZenoIndex, value: T) -> tuple[UUID, Insert]:
        """An operation that inserts ``value`` at ``location``, with the new id."""
        item_id = uuid.uuid4()
        return item_id, Insert(location, item_id, value)

    def delete(self, item_id: UUID) -> Delete:
        """An operation that deletes the entry ``item_id``."""
        return Delete(item_id)

    def move_item(self, item_id: UUID, new_location: ZenoIndex) -> Move:
        """An operation that moves the entry ``item_id`` to ``new_location``."""
        return Move(item_id, new_location)

    def map_item(self, item_id: UUID, fun: Callable[[T], Any]) -> ApplyTo:
        """An operation applying ``fun(value)`` to the entry ``item_id``."""
        try:
            value = self._pool[item_id]
        except KeyError:
            raise KeyError(f"no item {item_id} in list") from None
        return ApplyTo(item_id, fun(value))

    def to_wire(self) -> Any:
        return {
            "items": [[location.to_wire(), str(item_id)] for location, item_id in self._ids.items()],
            "pool": {str(item_id): encode_value(value) for item_id, value in self._pool.items()},
        }

    @classmethod
    def from_wire(cls, data: Any, item_type: Any = Any) -> List:
        if not isinstance(data, dict) or "items" not in data or "pool" not in data:
            raise ValueError(f"malformed list: {data!r}")
        result = cls()
        for entry in data["items"]:
            if not isinstance(entry, (list, tuple)) or len(entry) != 2:
                raise ValueError(f"malformed list entry: {entry!r}")
            location = ZenoIndex.from_wire(entry[0])
            item_id = UUID(str(entry[1]))
            result._set_location(location, item_id)
            result._where[item_id] = location
        for key, value in data["pool"].items():
            result._pool[UUID(str(key))] = decode_value(value, item_type)
        return result