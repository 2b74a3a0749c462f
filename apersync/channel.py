"""A channel: one shared state and the players connected to it."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, Optional

from apersync.core import (
    PlayerID,
    ReplaceState,
    StateProgram,
    TransitionEvent,
    TransitionState,
    utc_now,
)
from apersync.suspended import SuspendedEventManager


class Channel:
    """Receives events from players and broadcasts them to every listener.

    A listener is any hashable object with a non-blocking
    ``send_update(message)`` method.
    """

    def __init__(
        self,
        state: StateProgram,
        *,
        clock: Callable[[], datetime] = utc_now,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._state = state
        self._clock = clock
        self._listeners: dict[Any, PlayerID] = {}
        self._token_to_player: dict[str, PlayerID] = {}
        self._connections = 0
        self._suspended = SuspendedEventManager(clock=clock, loop=loop)

    @property
    def state(self) -> StateProgram:
        """The channel's own copy of the state."""
        return self._state

    def connect(self, listener: Any, token: Optional[str] = None) -> PlayerID:
        """Add a listener, send it the current state and return its player id.

        A token lets a later connection reuse the player id of an earlier one.
        """
        player = self._token_to_player.get(token) if token is not None else None
        if player is None:
            player = PlayerID(self._connections)
            if token is not None:
                self._token_to_player[token] = player
        self._connections += 1

        listener.send_update(ReplaceState(self._state.clone(), self._clock(), player))
        self._listeners[listener] = player
        return player

    def disconnect(self, listener: Any) -> None:
        """Stop sending updates to ``listener``."""
        self._listeners.pop(listener, None)

    def handle_event(self, listener: Any, event: TransitionEvent) -> None:
        """Process an event sent by a connected listener."""
        if listener not in self._listeners:
            raise LookupError("Received an event from a listener before it connected.")
        self._process_event(event)

    def tick(self, event: TransitionEvent) -> None:
        """Process a suspended event whose time has come."""
        self._process_event(event)

    def _process_event(self, event: TransitionEvent) -> None:
        self._state.apply(event)
        self._suspended.replace(self._state.suspended_event(), self.tick)
        for listener in list(self._listeners):
            listener.send_update(TransitionState(event))