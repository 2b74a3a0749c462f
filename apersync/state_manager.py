"""Client-side copy of the state with optimistic local updates."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Generic, Optional, TypeVar

from apersync.core import StateProgram, TransitionEvent, utc_now

P = TypeVar("P", bound=StateProgram)


class StateManager(Generic[P]):
    """Holds the confirmed state and an optimistic projection of it.

    It also estimates the server's clock from the timestamps the server sends.
    """

    def __init__(
        self,
        state: P,
        server_time: datetime,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._clock = clock
        self._golden: P = state.clone()
        self._optimistic: P = state
        self._sent_transition: Optional[TransitionEvent] = None
        self._last_server_time = server_time
        self._last_local_time = clock()

    def estimated_server_time(self) -> datetime:
        """The last server time seen plus the local time elapsed since then."""
        elapsed = self._clock() - self._last_local_time
        return self._last_server_time + elapsed

    def process_local_event(self, event: TransitionEvent) -> bool:
        """Apply an event made here; return True if the visible state changed.

        While an earlier local event awaits confirmation, new ones are ignored.
        """
        if self._sent_transition is not None:
            return False
        self._optimistic.apply(event)
        self._sent_transition = event
        return True

    def process_remote_event(self, event: TransitionEvent) -> None:
        """Apply an event confirmed by the server."""
        self._last_local_time = self._clock()
        self._last_server_time = event.timestamp

        sent = self._sent_transition
        self._golden.apply(event)
        if sent is None or sent != event:
            self._optimistic = self._golden.clone()
        self._sent_transition = None

    @property
    def state(self) -> P:
        """The state as the client should see it, including optimistic changes."""
        return self._optimistic