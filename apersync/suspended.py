"""Holds at most one event scheduled to fire at a future time."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from apersync.core import TransitionEvent, utc_now

logger = logging.getLogger(__name__)


class SuspendedEventManager:
    """Owns zero or one suspended event and the timer that will fire it.

    Replacing the event cancels the timer of the previous one; replacing it
    with an equal event changes nothing.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._clock = clock
        self._loop = loop
        self._event: Optional[TransitionEvent] = None
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def event(self) -> Optional[TransitionEvent]:
        """The current suspended event, if any."""
        return self._event

    def replace(
        self,
        event: Optional[TransitionEvent],
        fire: Callable[[TransitionEvent], None],
    ) -> None:
        """Make ``event`` the suspended event; ``fire(event)`` runs at its timestamp."""
        if self._event == event:
            return
        self.cancel()
        if event is None:
            return
        delay = (event.timestamp - self._clock()).total_seconds()
        if delay < 0:
            logger.warning("Negative duration encountered for suspended event.")
            return
        loop = self._loop if self._loop is not None else asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._fire, event, fire)
        self._event = event

    def _fire(self, event: TransitionEvent, fire: Callable[[TransitionEvent], None]) -> None:
        self._handle = None
        fire(event)

    def cancel(self) -> None:
        """Drop the suspended event and stop its timer."""
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._event = None