"""A client that keeps a local copy of a served state program in sync."""

from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum, auto
from typing import Any, Callable, Optional
from urllib.parse import urlsplit

import aiohttp

from apersync.core import (
    PlayerID,
    ReplaceState,
    StateProgram,
    TransitionEvent,
    TransitionState,
    utc_now,
)
from apersync.state_manager import StateManager
from apersync.wire import WireData, WireWrapped, decode_update, encode_event

_WS_SCHEMES = {"http": "ws", "https": "wss"}


def full_ws_url(path: str, page_url: str) -> str:
    """Expand a WebSocket path relative to the page at ``page_url``."""
    parts = urlsplit(page_url)
    try:
        scheme = _WS_SCHEMES[parts.scheme]
    except KeyError:
        raise ValueError(f"Unknown scheme: {parts.scheme}:") from None
    host = parts.netloc.rpartition("@")[2]
    return f"{scheme}://{host}/{path}"


class ConnectionStatus(Enum):
    """Where the client is in connecting to the server."""

    WAITING_TO_CONNECT = auto()
    WAITING_FOR_INITIAL_STATE = auto()
    CONNECTED = auto()
    ERROR_CONNECTING = auto()


def _to_millisecond(timestamp: datetime) -> datetime:
    return timestamp.replace(microsecond=timestamp.microsecond // 1000 * 1000)


class ClientState:
    """The client's connection status and, once connected, its copy of the state.

    Outgoing events are handed, already encoded, to ``send``.
    """

    def __init__(
        self,
        send: Callable[[WireData], None],
        *,
        onerror: Optional[Callable[[], None]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._send = send
        self._onerror = onerror
        self._clock = clock
        self.status = ConnectionStatus.WAITING_TO_CONNECT
        self.binary = False
        self._manager: Optional[StateManager] = None
        self._player: Optional[PlayerID] = None

    @property
    def player(self) -> Optional[PlayerID]:
        """This client's player id, once connected."""
        return self._player

    @property
    def state_manager(self) -> Optional[StateManager]:
        return self._manager

    @property
    def state(self) -> Optional[StateProgram]:
        """The state as this client sees it, or None before connecting."""
        return None if self._manager is None else self._manager.state

    def handle_status(self, status: ConnectionStatus) -> bool:
        """Record a change in the connection; errors invoke ``onerror``."""
        if status is ConnectionStatus.CONNECTED:
            raise ValueError("the connected status is reached by receiving the initial state")
        if status is ConnectionStatus.ERROR_CONNECTING and self._onerror is not None:
            self._onerror()
        self.status = status
        self._manager = None
        self._player = None
        return True

    def handle_server_message(self, wrapped: WireWrapped) -> bool:
        """Apply a state update received from the server."""
        self.binary = wrapped.binary
        message = wrapped.value
        if isinstance(message, ReplaceState):
            if self.status is not ConnectionStatus.WAITING_FOR_INITIAL_STATE:
                raise RuntimeError(f"Received state unexpectedly; was in state {self.status.name}")
            self._manager = StateManager(message.state, message.timestamp, clock=self._clock)
            self._player = message.player
            self.status = ConnectionStatus.CONNECTED
        elif isinstance(message, TransitionState):
            if self._manager is None:
                raise RuntimeError(f"Received a transition while in state {self.status.name}")
            self._manager.process_remote_event(message.event)
        else:
            raise TypeError(f"not a state update message: {type(message).__name__}")
        return True

    def transition(self, transition: Any) -> bool:
        """Make and send an event for ``transition``; True if the state changed.

        A ``None`` transition does nothing.
        """
        if transition is None:
            return False
        if self._manager is None:
            raise RuntimeError("Cannot make a transition before connecting.")
        event = TransitionEvent(
            self._player,
            _to_millisecond(self._manager.estimated_server_time()),
            transition,
        )
        changed = self._manager.process_local_event(event)
        self._send(encode_event(event, self.binary))
        return changed


class Client:
    """Connects to a server's WebSocket and keeps a copy of its state."""

    def __init__(
        self,
        url: str,
        program_type: type,
        *,
        on_update: Optional[Callable[[Client], None]] = None,
        onerror: Optional[Callable[[], None]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.url = url
        self.program_type = program_type
        self._on_update = on_update
        self._outgoing: asyncio.Queue = asyncio.Queue()
        self._client_state = ClientState(self._outgoing.put_nowait, onerror=onerror, clock=clock)
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    @property
    def client_state(self) -> ClientState:
        return self._client_state

    @property
    def status(self) -> ConnectionStatus:
        return self._client_state.status

    @property
    def state(self) -> Optional[StateProgram]:
        return self._client_state.state

    @property
    def player(self) -> Optional[PlayerID]:
        return self._client_state.player

    def _notify(self) -> None:
        if self._on_update is not None:
            self._on_update(self)

    def send_transition(self, transition: Any) -> bool:
        """Apply ``transition`` locally and send it; True if the state changed."""
        changed = self._client_state.transition(transition)
        if changed:
            self._notify()
        return changed

    async def _write(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while True:
            data = await self._outgoing.get()
            try:
                if isinstance(data, str):
                    await ws.send_str(data)
                else:
                    await ws.send_bytes(data)
            except ConnectionError:
                return

    async def run(self) -> None:
        """Connect and process server messages until the connection closes."""
        async with aiohttp.ClientSession() as session:
            try:
                ws = await session.ws_connect(self.url)
            except (aiohttp.ClientError, OSError):
                self._client_state.handle_status(ConnectionStatus.ERROR_CONNECTING)
                self._notify()
                return
            self._ws = ws
            self._client_state.handle_status(ConnectionStatus.WAITING_FOR_INITIAL_STATE)
            self._notify()
            writer = asyncio.create_task(self._write(ws))
            try:
                async for msg in ws:
                    if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                        wrapped = decode_update(msg.data, self.program_type)
                        self._client_state.handle_server_message(wrapped)
                        self._notify()
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        self._client_state.handle_status(ConnectionStatus.ERROR_CONNECTING)
                        self._notify()
                        break
            finally:
                writer.cancel()
                await asyncio.gather(writer, return_exceptions=True)
                if not ws.closed:
                    await ws.close()
                self._ws = None

    async def close(self) -> None:
        """Close the connection, which ends :meth:`run`."""
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()