from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, Coroutine
from typing import Any

from agents.orchestrator import Collaborators, TurnOrchestrator
from config.settings import Settings
from integrations.twilio_streaming import StreamMedia, StreamStart, StreamStop, parse_stream_message
from telephony.g711 import ulaw_decode
from telephony.idle import IdlePromptTimer
from telephony.media_socket import MediaSocket
from telephony.session import CallSession
from telephony.vad import EnergyVAD

LOGGER = logging.getLogger(__name__)


class SessionRegistry:
    """Maps connection identity to the call session it carries.

    Owned by one media server; sessions are never shared between connections.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, CallSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._sessions

    def get(self, connection_id: str) -> CallSession | None:
        return self._sessions.get(connection_id)

    def add(self, session: CallSession) -> None:
        previous = self._sessions.get(session.connection_id)
        if previous is not None and previous is not session:
            previous.close()
        self._sessions[session.connection_id] = session

    def remove(self, connection_id: str) -> CallSession | None:
        session = self._sessions.pop(connection_id, None)
        if session is not None:
            session.close()
        return session

    def close_all(self) -> None:
        for connection_id in list(self._sessions):
            self.remove(connection_id)


class ConnectionManager:
    """Drives one media-stream websocket: demux, keepalive and teardown.

    Inbound messages are handled one at a time; a finished caller turn runs
    as its own task so the socket keeps being drained (and audio dropped)
    while the agent thinks and talks.
    """

    def __init__(
        self,
        socket: MediaSocket,
        connection_id: str,
        *,
        registry: SessionRegistry,
        collaborators: Collaborators,
        settings: Settings,
    ) -> None:
        self._socket = socket
        self._connection_id = connection_id
        self._registry = registry
        self._settings = settings
        self._orchestrator = TurnOrchestrator(
            socket,
            collaborators,
            nudge_lines=settings.nudge_lines,
            fallback_reply=settings.fallback_reply,
            frame_size=settings.frame_size_bytes,
            cadence_ms=settings.frame_cadence_ms,
        )
        self._keepalive_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def session(self) -> CallSession | None:
        return self._registry.get(self._connection_id)

    async def run(self, messages: AsyncIterable[str | bytes]) -> None:
        self._keepalive_task = asyncio.create_task(self._keepalive())
        try:
            async for raw in messages:
                await self.handle_message(raw)
        finally:
            self.close()
            # Let in-flight collaborator calls finish; their results are discarded.
            await self.join_tasks()

    async def join_tasks(self) -> None:
        """Wait for every caller turn and idle nudge started on this connection."""

        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def handle_message(self, raw: str | bytes) -> None:
        message = parse_stream_message(raw)
        if message is None:
            return
        if isinstance(message, StreamStart):
            self._on_start(message)
        elif isinstance(message, StreamMedia):
            self._on_media(message)
        elif isinstance(message, StreamStop):
            self._on_stop()

    def _on_start(self, message: StreamStart) -> None:
        session = CallSession(
            connection_id=self._connection_id,
            stream_sid=message.stream_sid,
            call_sid=message.call_sid,
            metadata=message.metadata,
            vad=EnergyVAD(self._settings.vad_energy_threshold),
            silence_frame_threshold=self._settings.silence_frame_threshold,
        )
        session.idle_timer = IdlePromptTimer(
            lambda: self._spawn(self._orchestrator.nudge(session)),
            delay_ms=self._settings.idle_prompt_delay_ms,
        )
        self._registry.add(session)
        session.idle_timer.schedule()
        LOGGER.info("Stream started: stream_sid=%s call_sid=%s", session.stream_sid, session.call_sid)

    def _on_media(self, message: StreamMedia) -> None:
        session = self.session
        if session is None or not session.is_listening:
            return

        outcome = session.push_frame(ulaw_decode(message.payload))
        if outcome.vad.is_speech and session.idle_timer is not None:
            session.idle_timer.cancel()
        if outcome.turn_ended:
            self._spawn(self._orchestrator.finalize(session))

    def _on_stop(self) -> None:
        session = self._registry.remove(self._connection_id)
        if session is not None:
            LOGGER.info("Stream stopped: stream_sid=%s call_sid=%s", session.stream_sid, session.call_sid)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Call task failed on %s", self._connection_id, exc_info=exc)

    async def _keepalive(self) -> None:
        interval = self._settings.keepalive_interval_seconds
        while self._socket.is_open:
            await asyncio.sleep(interval)
            if not self._socket.is_open:
                break
            try:
                await self._socket.ping()
            except Exception:
                LOGGER.debug("Keepalive ping failed on %s", self._connection_id, exc_info=True)

    def close(self) -> None:
        """Release everything this connection owns. Safe to call repeatedly."""

        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            self._keepalive_task = None
        self._on_stop()
