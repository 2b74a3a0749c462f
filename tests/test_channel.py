import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

import pytest

from apersync.atom import Atom
from apersync.channel import Channel
from apersync.core import (
    PlayerID,
    ReplaceState,
    StateMachineContainerProgram,
    StateProgram,
    TransitionEvent,
    TransitionState,
    utc_now,
)


class Recorder:
    def __init__(self):
        self.messages = []

    def send_update(self, message):
        self.messages.append(message)


def atom_channel(initial=0):
    return Channel(StateMachineContainerProgram(Atom(initial)))


def replace_event(player, value):
    return TransitionEvent(player, utc_now(), Atom(0).replace(value))


@dataclass
class Alarm(StateProgram):
    seen: list = field(default_factory=list)
    due: Optional[datetime] = None

    def apply(self, transition):
        self.seen.append(transition.transition)
        if transition.transition == "arm":
            self.due = transition.timestamp + timedelta(milliseconds=40)

    def suspended_event(self):
        if self.due is None or "ring" in self.seen:
            return None
        return TransitionEvent(None, self.due, "ring")


def test_connect_assigns_sequential_ids_and_sends_state():
    channel = atom_channel(7)
    first, second = Recorder(), Recorder()
    assert channel.connect(first) == PlayerID(0)
    assert channel.connect(second) == PlayerID(1)

    (message,) = second.messages
    assert isinstance(message, ReplaceState)
    assert message.player == PlayerID(1)
    assert message.state == channel.state


def test_initial_state_is_a_copy():
    channel = atom_channel(7)
    listener = Recorder()
    channel.connect(listener)
    channel.tick(replace_event(None, 9))
    assert listener.messages[0].state.machine.value == 7
    assert channel.state.machine.value == 9


def test_token_reuses_player_id():
    channel = atom_channel()
    first, second, third = Recorder(), Recorder(), Recorder()
    original = channel.connect(first, "token")
    channel.disconnect(first)
    assert channel.connect(second, "token") == original
    assert channel.connect(third) != original


def test_handle_event_broadcasts_and_updates_state():
    channel = atom_channel()
    a, b = Recorder(), Recorder()
    player = channel.connect(a)
    channel.connect(b)
    event = replace_event(player, 42)
    channel.handle_event(a, event)

    assert channel.state.machine.value == 42
    assert a.messages[-1] == TransitionState(event)
    assert b.messages[-1] == TransitionState(event)


def test_event_from_unknown_listener_raises():
    channel = atom_channel()
    with pytest.raises(LookupError):
        channel.handle_event(Recorder(), replace_event(None, 1))


def test_disconnected_listener_gets_no_updates():
    channel = atom_channel()
    a, b = Recorder(), Recorder()
    channel.connect(a)
    channel.connect(b)
    channel.disconnect(b)
    channel.handle_event(a, replace_event(None, 3))
    assert len(b.messages) == 1
    with pytest.raises(LookupError):
        channel.handle_event(b, replace_event(None, 4))


def test_tick_applies_and_broadcasts():
    channel = atom_channel()
    listener = Recorder()
    channel.connect(listener)
    event = replace_event(None, 5)
    channel.tick(event)
    assert channel.state.machine.value == 5
    assert listener.messages[-1] == TransitionState(event)


@pytest.mark.asyncio
async def test_suspended_event_fires_through_tick():
    channel = Channel(Alarm())
    listener = Recorder()
    player = channel.connect(listener)
    channel.handle_event(listener, TransitionEvent(player, utc_now(), "arm"))
    await asyncio.sleep(0.2)

    assert channel.state.seen == ["arm", "ring"]
    last = listener.messages[-1]
    assert isinstance(last, TransitionState)
    assert last.event.transition == "ring"
    assert last.event.player is None