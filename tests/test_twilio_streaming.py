from __future__ import annotations

import base64
import io
import json
import wave

import numpy as np
import pytest

from integrations.twilio_streaming import (
    StreamMedia,
    StreamStart,
    StreamStop,
    build_media_message,
    parse_stream_message,
    pcm16_resample,
    pcm16_to_wav_bytes,
)


def test_parse_start_extracts_ids_and_metadata():
    message = json.dumps(
        {
            "event": "start",
            "sequenceNumber": "1",
            "streamSid": "MZ123",
            "start": {
                "streamSid": "MZ123",
                "callSid": "CA999",
                "tracks": ["inbound"],
                "customParameters": {"callSid": "CA456", "lang": "en"},
            },
        }
    )

    parsed = parse_stream_message(message)
    assert isinstance(parsed, StreamStart)
    assert parsed.stream_sid == "MZ123"
    assert parsed.call_sid == "CA456"
    assert parsed.metadata == {"callSid": "CA456", "lang": "en"}


def test_parse_start_falls_back_to_start_call_sid():
    parsed = parse_stream_message(json.dumps({"event": "start", "start": {"streamSid": "MZ1", "callSid": "CA1"}}))
    assert isinstance(parsed, StreamStart)
    assert parsed.call_sid == "CA1"


def test_parse_media_decodes_base64_payload():
    payload = base64.b64encode(b"\xFF" * 160).decode("ascii")
    parsed = parse_stream_message(json.dumps({"event": "media", "media": {"track": "inbound", "payload": payload}}))
    assert parsed == StreamMedia(payload=b"\xFF" * 160)


def test_parse_stop():
    assert parse_stream_message('{"event": "stop", "streamSid": "MZ1"}') == StreamStop(stream_sid="MZ1")
    assert parse_stream_message('{"event": "stop"}') == StreamStop()


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "not json",
        "[1, 2]",
        '{"event": "connected", "protocol": "Call"}',
        '{"event": "mark", "mark": {"name": "x"}}',
        '{"event": "start", "start": {}}',
        '{"event": "media", "media": {"payload": "***"}}',
        '{"event": "media", "media": {"payload": 42}}',
        '{"event": "media", "media": {"track": "outbound", "payload": "/w=="}}',
        b"\xff\xfe",
    ],
)
def test_malformed_or_irrelevant_messages_parse_to_none(raw):
    assert parse_stream_message(raw) is None


def test_build_media_message_shape():
    message = json.loads(build_media_message("MZ1", b"\x00\xFF"))
    assert message == {"event": "media", "streamSid": "MZ1", "media": {"payload": "AP8="}}


def test_resample_changes_length():
    pcm = np.zeros(8000, dtype=np.int16)
    out = pcm16_resample(pcm, 8000, 16000)
    assert out.shape[0] == 16000


def test_wav_bytes_are_mono_pcm16():
    pcm = np.arange(-400, 400, dtype=np.int16)
    with wave.open(io.BytesIO(pcm16_to_wav_bytes(pcm, 8000)), "rb") as wf:
        assert wf.getnchannels() == 1
        assert wf.getsampwidth() == 2
        assert wf.getframerate() == 8000
        assert np.array_equal(np.frombuffer(wf.readframes(wf.getnframes()), dtype="<i2"), pcm)
