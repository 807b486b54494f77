from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from websockets.exceptions import ConnectionClosed

from integrations.twilio_streaming import build_media_message
from telephony.media_socket import MediaSocket

LOGGER = logging.getLogger(__name__)

FRAME_SIZE_BYTES = 160
FRAME_CADENCE_MS = 20


def iter_frames(payload: bytes, frame_size: int = FRAME_SIZE_BYTES):
    """Yield fixed-size slices of ``payload``; the last one may be shorter."""

    for offset in range(0, len(payload), frame_size):
        yield payload[offset : offset + frame_size]


async def stream_out(
    socket: MediaSocket,
    stream_sid: str,
    payload: bytes,
    *,
    frame_size: int = FRAME_SIZE_BYTES,
    cadence_ms: int = FRAME_CADENCE_MS,
    should_continue: Callable[[], bool] | None = None,
) -> int:
    """Send mu-law ``payload`` as paced media events, one frame per tick.

    Stops early, without raising, once the socket is no longer open or
    ``should_continue`` returns False. Returns the number of frames sent.
    """

    if frame_size <= 0:
        raise ValueError("frame_size must be positive")

    sent = 0
    for frame in iter_frames(payload, frame_size):
        if not socket.is_open or (should_continue is not None and not should_continue()):
            break
        try:
            await socket.send(build_media_message(stream_sid, frame))
        except ConnectionClosed:
            break
        sent += 1
        await asyncio.sleep(cadence_ms / 1000)

    if sent * frame_size < len(payload):
        LOGGER.info("Playback for stream %s interrupted after %d frames", stream_sid, sent)
    return sent
