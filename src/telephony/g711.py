from __future__ import annotations

import numpy as np

# Mu-law companding constants (G.711): bias=0x84, clip=32635.
ULAW_BIAS = 0x84
ULAW_CLIP = 32635


def _build_decode_table() -> np.ndarray:
    codes = np.bitwise_not(np.arange(256, dtype=np.int32)) & 0xFF
    sign = codes & 0x80
    exponent = (codes & 0x70) >> 4
    mantissa = codes & 0x0F

    magnitude = ((mantissa << 3) + ULAW_BIAS) << exponent
    pcm = np.where(sign != 0, ULAW_BIAS - magnitude, magnitude - ULAW_BIAS)
    return pcm.astype(np.int16)


_DECODE_TABLE = _build_decode_table()


def ulaw_decode(ulaw_bytes: bytes) -> np.ndarray:
    """Decode G.711 mu-law bytes to PCM16 int16 array.

    One code expands to one 16-bit sample, so ``ulaw_decode(x).tobytes()`` is
    twice as long as ``x``. Empty input decodes to an empty array.
    """

    if not ulaw_bytes:
        return np.array([], dtype=np.int16)
    codes = np.frombuffer(ulaw_bytes, dtype=np.uint8)
    return _DECODE_TABLE[codes]


def as_pcm16(pcm: np.ndarray | bytes) -> np.ndarray:
    """View little-endian PCM16 bytes (or an array) as an int16 array.

    A trailing odd byte of a truncated buffer is dropped.
    """

    if isinstance(pcm, (bytes, bytearray, memoryview)):
        raw = bytes(pcm)
        usable = len(raw) - (len(raw) % 2)
        return np.frombuffer(raw[:usable], dtype="<i2").astype(np.int16)
    return np.asarray(pcm, dtype=np.int16)


def ulaw_encode(pcm16: np.ndarray | bytes) -> bytes:
    """Encode PCM16 samples to G.711 mu-law bytes.

    This is a vectorized mu-law encoder suitable for realtime packetization and
    is bit-exact with the reference G.711 encoder.
    """

    samples = as_pcm16(pcm16)
    if samples.size == 0:
        return b""

    x = samples.astype(np.int32)
    sign = np.where(x < 0, 0x80, 0).astype(np.int32)
    x = np.abs(x)

    x = np.minimum(x, ULAW_CLIP)
    x = x + ULAW_BIAS

    # Exponent is the position of the highest set bit above bit 7.
    exponent = np.zeros_like(x)
    for exp in range(1, 8):
        exponent = np.where(x >= (1 << (exp + 7)), exp, exponent)

    mantissa = (x >> (exponent + 3)) & 0x0F

    ulaw = np.bitwise_not(sign | (exponent << 4) | mantissa) & 0xFF
    return ulaw.astype(np.uint8).tobytes()
