from __future__ import annotations

import asyncio
import base64
import json
import logging

import numpy as np

from config.settings import Settings
from conftest import FakeSocket, FakeSynthesizer, FakeTranscriber, make_collaborators
from telephony.connection import ConnectionManager, SessionRegistry
from telephony.g711 import ulaw_encode
from telephony.session import CallPhase


def _settings(**overrides) -> Settings:
    values = {
        "idle_prompt_delay_ms": 60_000,
        "frame_cadence_ms": 1,
        "keepalive_interval_seconds": 60.0,
        "nudge_lines": ["Still with me?"],
    }
    values.update(overrides)
    return Settings(**values)


def _manager(socket: FakeSocket, registry: SessionRegistry, **kwargs) -> ConnectionManager:
    settings = kwargs.pop("settings", None) or _settings()
    return ConnectionManager(
        socket,
        "conn-1",
        registry=registry,
        collaborators=make_collaborators(**kwargs),
        settings=settings,
    )


def _start(call_sid: str = "CA123") -> str:
    return json.dumps(
        {
            "event": "start",
            "streamSid": "MZ42",
            "start": {"streamSid": "MZ42", "customParameters": {"callSid": call_sid}},
        }
    )


def _media(amplitude: int) -> str:
    frame = ulaw_encode(np.full(160, amplitude, dtype=np.int16))
    return json.dumps({"event": "media", "media": {"payload": base64.b64encode(frame).decode("ascii")}})


STOP = json.dumps({"event": "stop", "streamSid": "MZ42"})


def test_start_creates_session_and_arms_idle_timer() -> None:
    registry = SessionRegistry()

    async def scenario() -> None:
        manager = _manager(FakeSocket(), registry)
        await manager.handle_message(_start())
        session = registry.get("conn-1")
        assert session is not None
        assert session.stream_sid == "MZ42"
        assert session.call_sid == "CA123"
        assert session.metadata == {"callSid": "CA123"}
        assert session.idle_timer is not None and session.idle_timer.pending
        manager.close()

    asyncio.run(scenario())
    assert len(registry) == 0


def test_malformed_messages_are_dropped() -> None:
    registry = SessionRegistry()

    async def scenario() -> None:
        manager = _manager(FakeSocket(), registry)
        for raw in ["not json", "[]", '{"event": "media"}', _media(3000), '{"event": "dtmf"}']:
            await manager.handle_message(raw)
        assert len(registry) == 0

    asyncio.run(scenario())


def test_turn_is_segmented_and_reply_streamed() -> None:
    registry = SessionRegistry()
    socket = FakeSocket()
    transcriber = FakeTranscriber("I went for a walk")

    async def scenario() -> None:
        manager = _manager(socket, registry, transcriber=transcriber)
        await manager.handle_message(_start())
        session = registry.get("conn-1")

        for _ in range(5):
            await manager.handle_message(_media(3000))
        assert session.idle_timer.pending is False

        for _ in range(12):
            await manager.handle_message(_media(0))
        assert session.phase is not CallPhase.LISTENING

        # Audio arriving while the agent is busy is dropped, not queued.
        await manager.handle_message(_media(3000))
        assert session.pending_audio == []

        await manager.join_tasks()
        assert session.phase is CallPhase.LISTENING
        assert session.idle_timer.pending is True
        manager.close()

    asyncio.run(scenario())

    assert len(transcriber.calls) == 1
    assert transcriber.calls[0].size == 5 * 160
    outbound = [json.loads(message) for message in socket.sent]
    assert outbound
    assert all(message["event"] == "media" and message["streamSid"] == "MZ42" for message in outbound)


def test_stop_twice_and_close_after_stop_are_safe() -> None:
    registry = SessionRegistry()

    async def scenario() -> None:
        manager = _manager(FakeSocket(), registry)
        await manager.handle_message(_start())
        session = registry.get("conn-1")
        timer = session.idle_timer

        await manager.handle_message(STOP)
        await manager.handle_message(STOP)
        manager.close()
        manager.close()

        assert session.closed is True
        assert timer.pending is False
        await manager.handle_message(_media(3000))

    asyncio.run(scenario())
    assert len(registry) == 0


def test_run_tears_down_when_socket_closes() -> None:
    registry = SessionRegistry()
    socket = FakeSocket()

    async def messages():
        yield _start()
        yield _media(0)
        socket.close()

    async def scenario() -> None:
        manager = _manager(socket, registry)
        await manager.run(messages())

    asyncio.run(scenario())
    assert len(registry) == 0


def test_idle_caller_is_nudged() -> None:
    registry = SessionRegistry()
    socket = FakeSocket()

    async def scenario():
        manager = _manager(socket, registry, settings=_settings(idle_prompt_delay_ms=10))
        await manager.handle_message(_start())
        session = registry.get("conn-1")
        await asyncio.sleep(0.1)
        entries = session.history
        manager.close()
        return entries

    history = asyncio.run(scenario())
    assert history
    assert all(entry.role == "assistant" and entry.text == "Still with me?" for entry in history)
    assert socket.sent


def test_keepalive_pings_and_survives_failures() -> None:
    registry = SessionRegistry()
    socket = FakeSocket(fail_ping=True)

    async def messages():
        yield _start()
        await asyncio.sleep(0.06)
        socket.close()

    async def scenario() -> None:
        manager = _manager(socket, registry, settings=_settings(keepalive_interval_seconds=0.01))
        await manager.run(messages())

    asyncio.run(scenario())
    assert socket.pings >= 2


def _long_reply_manager(socket: FakeSocket, registry: SessionRegistry, **overrides) -> ConnectionManager:
    # 8000 samples at 8 kHz is 50 frames; at 5 ms cadence playback lasts ~250 ms.
    settings = _settings(frame_cadence_ms=5, **overrides)
    return _manager(socket, registry, settings=settings, synthesizer=FakeSynthesizer(samples=8000))


def test_stop_cuts_off_nudge_playback() -> None:
    registry = SessionRegistry()
    socket = FakeSocket()

    async def scenario() -> tuple[int, int]:
        manager = _long_reply_manager(socket, registry, idle_prompt_delay_ms=10)
        await manager.handle_message(_start())
        await asyncio.sleep(0.05)
        await manager.handle_message(STOP)
        at_stop = len(socket.sent)
        await asyncio.sleep(0.3)
        await manager.join_tasks()
        return at_stop, len(socket.sent)

    at_stop, after = asyncio.run(scenario())
    assert 0 < at_stop < 50
    assert after == at_stop
    assert socket.is_open


def test_stop_cuts_off_reply_playback() -> None:
    registry = SessionRegistry()
    socket = FakeSocket()

    async def scenario() -> tuple[int, int]:
        manager = _long_reply_manager(socket, registry)
        await manager.handle_message(_start())
        for _ in range(3):
            await manager.handle_message(_media(3000))
        for _ in range(12):
            await manager.handle_message(_media(0))
        await asyncio.sleep(0.05)
        await manager.handle_message(STOP)
        at_stop = len(socket.sent)
        await asyncio.sleep(0.3)
        await manager.join_tasks()
        return at_stop, len(socket.sent)

    at_stop, after = asyncio.run(scenario())
    assert 0 < at_stop < 50
    assert after == at_stop


def test_run_waits_for_nudge_in_flight() -> None:
    registry = SessionRegistry()
    socket = FakeSocket()
    manager = _long_reply_manager(socket, registry, idle_prompt_delay_ms=10)

    async def messages():
        yield _start()
        await asyncio.sleep(0.05)

    async def scenario() -> int:
        await manager.run(messages())
        return len(socket.sent)

    sent = asyncio.run(scenario())
    assert 0 < sent < 50
    assert manager._tasks == set()


def test_failed_turn_task_is_logged(caplog) -> None:
    registry = SessionRegistry()

    async def scenario() -> None:
        manager = _manager(FakeSocket(), registry)

        async def broken_finalize(session) -> None:
            raise RuntimeError("turn blew up")

        manager._orchestrator.finalize = broken_finalize
        await manager.handle_message(_start())
        for _ in range(2):
            await manager.handle_message(_media(3000))
        for _ in range(12):
            await manager.handle_message(_media(0))
        await manager.join_tasks()
        manager.close()

    with caplog.at_level(logging.ERROR, logger="telephony.connection"):
        asyncio.run(scenario())

    records = [r for r in caplog.records if r.getMessage().startswith("Call task failed")]
    assert len(records) == 1
    assert records[0].exc_info[1].args == ("turn blew up",)
