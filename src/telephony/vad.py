from __future__ import annotations

from dataclasses import dataclass

import numpy as np

DEFAULT_SPEECH_THRESHOLD = 0.015


@dataclass(frozen=True, slots=True)
class VADResult:
    is_speech: bool
    energy: float


class EnergyVAD:
    """A tiny energy-based VAD suitable for telephone audio.

    Classification is stateless; run-length bookkeeping (how long the caller
    has been quiet) belongs to the call session.
    """

    def __init__(self, threshold: float = DEFAULT_SPEECH_THRESHOLD) -> None:
        self.threshold = threshold

    @staticmethod
    def energy(frame: np.ndarray) -> float:
        """RMS of the frame with samples normalized to [-1, 1)."""

        if frame.size == 0:
            return 0.0
        x = frame.astype(np.float64) / 32768.0
        return float(np.sqrt(np.mean(x * x)))

    def classify(self, frame: np.ndarray) -> VADResult:
        rms = self.energy(frame)
        return VADResult(is_speech=rms > self.threshold, energy=rms)
