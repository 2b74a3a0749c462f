"""A shared counter that any player can change."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Optional, Sequence

from apersync.core import StateMachine, StateMachineContainerProgram, Transition
from apersync.server import ServerBuilder


class CounterTransition(Transition):
    """Base for the transitions of a :class:`Counter`."""


@dataclass(frozen=True)
class Add(CounterTransition):
    amount: int


@dataclass(frozen=True)
class Subtract(CounterTransition):
    amount: int


@dataclass(frozen=True)
class Reset(CounterTransition):
    """Sets the counter back to zero."""


@dataclass
class Counter(StateMachine):
    """An integer counter."""

    value: int = 0
    transition_type = CounterTransition

    def apply(self, transition: CounterTransition) -> None:
        if isinstance(transition, Add):
            self.value += transition.amount
        elif isinstance(transition, Subtract):
            self.value -= transition.amount
        elif isinstance(transition, Reset):
            self.value = 0
        else:
            raise TypeError(f"Counter cannot apply {type(transition).__name__}")


CounterProgram = StateMachineContainerProgram.for_machine(Counter)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Serve a shared counter."""
    parser = argparse.ArgumentParser(description="Serve a shared counter.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)
    ServerBuilder(CounterProgram(Counter())).serve_on(args.host, args.port)
    return 0