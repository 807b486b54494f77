"""Twilio Media Streams wire protocol and PCM helpers.

Inbound events handled: ``start``, ``media`` and ``stop``. Everything else
(``connected``, ``mark``, ``dtmf``, garbage) parses to ``None`` and is dropped
by the caller.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any

import numpy as np

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StreamStart:
    stream_sid: str
    call_sid: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class StreamMedia:
    payload: bytes  # raw mu-law bytes


@dataclass(frozen=True, slots=True)
class StreamStop:
    stream_sid: str | None = None


StreamMessage = StreamStart | StreamMedia | StreamStop


def _parse_start(message: dict[str, Any]) -> StreamStart | None:
    start = message.get("start")
    if not isinstance(start, dict):
        start = {}

    stream_sid = message.get("streamSid") or start.get("streamSid") or message.get("stream_id")
    if not isinstance(stream_sid, str) or not stream_sid:
        return None

    params = start.get("customParameters")
    if not isinstance(params, dict):
        params = message.get("metadata") if isinstance(message.get("metadata"), dict) else {}

    call_sid = params.get("callSid") or start.get("callSid")
    return StreamStart(
        stream_sid=stream_sid,
        call_sid=str(call_sid) if call_sid else None,
        metadata=dict(params),
    )


def _parse_media(message: dict[str, Any]) -> StreamMedia | None:
    media = message.get("media")
    if isinstance(media, dict):
        if media.get("track") and media.get("track") != "inbound":
            return None
        payload_b64 = media.get("payload")
    else:
        payload_b64 = message.get("payload")

    if not isinstance(payload_b64, str) or not payload_b64:
        return None
    try:
        payload = base64.b64decode(payload_b64, validate=True)
    except (binascii.Error, ValueError):
        return None
    return StreamMedia(payload=payload)


def parse_stream_message(text: str | bytes) -> StreamMessage | None:
    """Parse one inbound websocket message.

    Returns ``None`` for anything that is not a well-formed start/media/stop event.
    """

    try:
        message = json.loads(text)
    except (TypeError, ValueError):
        LOGGER.debug("Dropping non-JSON stream message")
        return None
    if not isinstance(message, dict):
        return None

    event = message.get("event")
    if event == "start":
        return _parse_start(message)
    if event == "media":
        return _parse_media(message)
    if event == "stop":
        sid = message.get("streamSid")
        return StreamStop(stream_sid=sid if isinstance(sid, str) else None)

    LOGGER.debug("Ignoring stream event %r", event)
    return None


def build_media_message(stream_sid: str, ulaw_frame: bytes) -> str:
    """Outbound media event carrying one mu-law frame."""

    return json.dumps(
        {
            "event": "media",
            "streamSid": stream_sid,
            "media": {"payload": base64.b64encode(ulaw_frame).decode("ascii")},
        }
    )


def pcm16_resample(pcm: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    if src_rate == dst_rate:
        return pcm
    if pcm.size == 0:
        return pcm.astype(np.int16)

    x_old = np.arange(pcm.size, dtype=np.float32)
    x_new = np.linspace(0, pcm.size - 1, int(pcm.size * dst_rate / src_rate), dtype=np.float32)

    y_old = pcm.astype(np.float32)
    y_new = np.interp(x_new, x_old, y_old)

    return np.clip(y_new, -32768, 32767).astype(np.int16)


def pcm16_to_wav_bytes(pcm: np.ndarray, sample_rate: int) -> bytes:
    import wave

    pcm_bytes = pcm.astype("<i2").tobytes()
    buffer = BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm_bytes)
    return buffer.getvalue()
