"""State machines for values that are replaced whole, or never change."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from apersync.core import StateMachine, Transition

T = TypeVar("T")


@dataclass(frozen=True)
class ReplaceAtom(Transition, Generic[T]):
    """Replaces the value of an :class:`Atom`."""

    value: T


@dataclass
class Atom(StateMachine, Generic[T]):
    """A value that only ever changes by being replaced completely."""

    value: T
    transition_type = ReplaceAtom

    def replace(self, replacement: T) -> ReplaceAtom[T]:
        """Return a transition that sets the value to ``replacement``."""
        return ReplaceAtom(replacement)

    def apply(self, transition: ReplaceAtom[T]) -> None:
        if not isinstance(transition, ReplaceAtom):
            raise TypeError(f"Atom cannot apply {type(transition).__name__}")
        self.value = transition.value


@dataclass(frozen=True)
class InvalidTransition(Transition):
    """The transition type of a :class:`Constant`; never valid to apply."""


@dataclass(frozen=True)
class Constant(StateMachine, Generic[T]):
    """Wraps a value so it can stand in for a state machine that never changes."""

    value: T
    transition_type = InvalidTransition

    def apply(self, transition: InvalidTransition) -> None:
        raise TypeError("Constant should never receive a transition")