from __future__ import annotations

from typing import Protocol

from websockets.asyncio.server import ServerConnection
from websockets.protocol import State


class MediaSocket(Protocol):
    """The slice of a websocket connection the audio path needs."""

    @property
    def is_open(self) -> bool: ...

    async def send(self, message: str) -> None: ...

    async def ping(self) -> None: ...


class WebsocketsMediaSocket:
    """Adapter exposing a ``websockets`` server connection as a MediaSocket."""

    def __init__(self, connection: ServerConnection) -> None:
        self._connection = connection

    @property
    def connection_id(self) -> str:
        return str(self._connection.id)

    @property
    def is_open(self) -> bool:
        return self._connection.state is State.OPEN

    async def send(self, message: str) -> None:
        await self._connection.send(message)

    async def ping(self) -> None:
        # Only waits for the frame to be written, not for the pong.
        await self._connection.ping()
