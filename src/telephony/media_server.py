from __future__ import annotations

import argparse
import asyncio
import logging
from urllib.parse import urlsplit

from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from agents.orchestrator import Collaborators, build_collaborators
from config.settings import Settings, get_settings
from telephony.connection import ConnectionManager, SessionRegistry
from telephony.media_socket import WebsocketsMediaSocket

LOGGER = logging.getLogger(__name__)


class MediaStreamServer:
    """Websocket server for Twilio Media Streams, one call per connection.

    Speech recognition, reply generation and synthesis are provided by the
    configured collaborators; this process only owns the realtime audio path.
    """

    def __init__(
        self,
        host: str,
        port: int,
        *,
        path: str = "/media",
        settings: Settings | None = None,
        collaborators: Collaborators | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._path = path
        self._settings = settings or get_settings()
        self._collaborators = collaborators
        self._registry = SessionRegistry()

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    def _get_collaborators(self) -> Collaborators:
        if self._collaborators is None:
            self._collaborators = build_collaborators(self._settings)
        return self._collaborators

    async def handle(self, websocket: ServerConnection) -> None:
        request_path = urlsplit(websocket.request.path).path if websocket.request else ""
        if request_path.rstrip("/") != self._path.rstrip("/"):
            await websocket.close(code=1008, reason="unknown path")
            return

        LOGGER.info("WS connection from %s", websocket.remote_address)
        socket = WebsocketsMediaSocket(websocket)
        manager = ConnectionManager(
            socket,
            socket.connection_id,
            registry=self._registry,
            collaborators=self._get_collaborators(),
            settings=self._settings,
        )
        try:
            await manager.run(websocket)
        except ConnectionClosed:
            LOGGER.info("WS connection %s closed", socket.connection_id)

    async def run_forever(self) -> None:
        self._get_collaborators()
        async with serve(self.handle, self._host, self._port, ping_interval=None) as server:
            LOGGER.info("Media stream server listening on ws://%s:%s%s", self._host, self._port, self._path)
            try:
                await server.serve_forever()
            finally:
                self._registry.close_all()


def _parse_args() -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Media stream server for phone companion calls")
    parser.add_argument("--host", default=settings.media_server_host)
    parser.add_argument("--port", type=int, default=settings.media_server_port)
    parser.add_argument("--path", default=settings.media_stream_path)
    return parser.parse_args()


async def _amain() -> None:
    args = _parse_args()
    server = MediaStreamServer(args.host, args.port, path=args.path)
    await server.run_forever()


def main() -> None:
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    asyncio.run(_amain())


if __name__ == "__main__":
    main()
