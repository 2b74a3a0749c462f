"""Serving state programs to players over WebSockets."""

from __future__ import annotations

import asyncio
import random
import string
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Sequence, get_args

from aiohttp import WSMsgType, web

from apersync.channel import Channel
from apersync.core import (
    ReplaceState,
    StateMachineContainerProgram,
    StateProgram,
    StateProgramFactory,
    TransitionState,
)
from apersync.wire import decode_event, encode_update

HEARTBEAT_INTERVAL = 5.0
"""Seconds between pings sent to each player."""

_CHANNEL_NAME_LETTERS = string.ascii_uppercase[:-1]
_CHANNEL_NAME_LENGTH = 4
_CHANNEL_NAME_ATTEMPTS = 99


def random_channel_name() -> str:
    """Return a random four-letter upper-case name for a channel."""
    return "".join(random.choices(_CHANNEL_NAME_LETTERS, k=_CHANNEL_NAME_LENGTH))


class ChannelRegistry:
    """Creates channels on request and finds them again by name."""

    def __init__(
        self,
        factory: StateProgramFactory,
        *,
        name_generator: Callable[[], str] = random_channel_name,
    ) -> None:
        self._factory = factory
        self._name_generator = name_generator
        self._channels: dict[str, Channel] = {}

    def __len__(self) -> int:
        return len(self._channels)

    def create_channel(self) -> str:
        """Create a channel with a fresh state and return its unique name."""
        for _ in range(_CHANNEL_NAME_ATTEMPTS):
            name = self._name_generator()
            if name not in self._channels:
                self._channels[name] = Channel(self._factory.create())
                return name
        raise RuntimeError("Couldn't create a unique channel.")

    def get_channel(self, name: str) -> Optional[Channel]:
        """The channel called ``name``, or None if there is none."""
        return self._channels.get(name)


def _transition_type(state: StateProgram) -> Any:
    args = get_args(getattr(type(state), "transition_type", None))
    if args:
        return args[0]
    if isinstance(state, StateMachineContainerProgram):
        inner = getattr(type(state.machine), "transition_type", None)
        if inner is not None:
            return inner
    return Any


class PlayerConnection:
    """Owns one player's WebSocket and relays between it and a channel."""

    def __init__(
        self,
        websocket: web.WebSocketResponse,
        channel: Channel,
        *,
        token: Optional[str] = None,
        binary: bool = False,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
    ) -> None:
        self._ws = websocket
        self._channel = channel
        self._token = token
        self._binary = binary
        self._heartbeat_interval = heartbeat_interval
        self._outgoing: asyncio.Queue = asyncio.Queue()
        self._last_seen = time.monotonic()

    def send_update(self, message: ReplaceState | TransitionState) -> None:
        """Queue a state update to be sent to the player."""
        self._outgoing.put_nowait(encode_update(message, self._binary))

    async def _write(self) -> None:
        while True:
            data = await self._outgoing.get()
            try:
                if isinstance(data, str):
                    await self._ws.send_str(data)
                else:
                    await self._ws.send_bytes(data)
            except ConnectionError:
                return

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            if time.monotonic() - self._last_seen > 2 * self._heartbeat_interval:
                await self._ws.close()
                return
            try:
                await self._ws.ping(b"")
            except ConnectionError:
                return

    async def run(self) -> None:
        """Connect to the channel and relay messages until the socket closes."""
        transition_type = _transition_type(self._channel.state)
        self._last_seen = time.monotonic()
        self._channel.connect(self, self._token)
        tasks = [
            asyncio.create_task(self._write()),
            asyncio.create_task(self._heartbeat()),
        ]
        try:
            while True:
                msg = await self._ws.receive()
                if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                    event = decode_event(msg.data, transition_type)
                    self._channel.handle_event(self, event)
                elif msg.type == WSMsgType.PING:
                    await self._ws.pong(msg.data)
                elif msg.type == WSMsgType.PONG:
                    self._last_seen = time.monotonic()
                elif msg.type == WSMsgType.CLOSE:
                    await self._ws.close()
                    break
                elif msg.type in (WSMsgType.CLOSING, WSMsgType.CLOSED):
                    break
                elif msg.type == WSMsgType.ERROR:
                    raise ConnectionError(f"WebSocket error: {self._ws.exception()!r}")
                else:
                    raise ValueError(f"Unexpected message type: {msg.type!r}")
        finally:
            self._channel.disconnect(self)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if not self._ws.closed:
                await self._ws.close()


@dataclass(frozen=True)
class StaticDirectory:
    """A directory of files served under a URL path."""

    mount_path: str
    serve_from: str


def _route_prefix(mount_path: str) -> str:
    stripped = mount_path.strip("/")
    return f"/{stripped}" if stripped else ""


def _static_handler(directory: StaticDirectory) -> Callable:
    root = Path(directory.serve_from).resolve()

    async def handler(request: web.Request) -> web.StreamResponse:
        target = (root / request.match_info["tail"]).resolve()
        if target != root and root not in target.parents:
            raise web.HTTPNotFound()
        if target.is_dir():
            target = target / "index.html"
        if not target.is_file():
            raise web.HTTPNotFound()
        return web.FileResponse(target)

    return handler


def _default_directories() -> list[StaticDirectory]:
    return [
        StaticDirectory("client/", "./static-client"),
        StaticDirectory("/", "./static"),
    ]


class ServerBuilder:
    """Builds a web server that shares one state program with every player."""

    def __init__(
        self,
        state: StateProgram,
        *,
        static_directories: Optional[Sequence[StaticDirectory]] = None,
        binary: bool = False,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
    ) -> None:
        self.state = state
        self.static_directories = (
            _default_directories() if static_directories is None else list(static_directories)
        )
        self.binary = binary
        self.heartbeat_interval = heartbeat_interval

    def build_app(self) -> web.Application:
        """An application with a ``/ws`` endpoint and the static directories."""
        channel = Channel(self.state)

        async def ws_handler(request: web.Request) -> web.WebSocketResponse:
            websocket = web.WebSocketResponse(autoping=False)
            await websocket.prepare(request)
            connection = PlayerConnection(
                websocket,
                channel,
                token=request.query.get("token"),
                binary=self.binary,
                heartbeat_interval=self.heartbeat_interval,
            )
            await connection.run()
            return websocket

        app = web.Application()
        app.router.add_get("/ws", ws_handler)
        for directory in self.static_directories:
            prefix = _route_prefix(directory.mount_path)
            app.router.add_get(f"{prefix}/{{tail:.*}}", _static_handler(directory))
        return app

    def serve(self) -> None:
        """Serve on 127.0.0.1, port 8000, until stopped."""
        self.serve_on("127.0.0.1", 8000)

    def serve_on(self, host: str, port: int) -> None:
        """Serve on the given host and port until stopped."""
        state_type = type(self.state)
        print(f"Serving state program: {state_type.__module__}.{state_type.__qualname__}")
        app = self.build_app()
        print(f"Listening on {host}:{port}")
        web.run_app(app, host=host, port=port, print=None)