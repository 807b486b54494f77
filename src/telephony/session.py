from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import numpy as np

from agents.schemas import ConversationEntry
from telephony.vad import EnergyVAD, VADResult

if TYPE_CHECKING:  # pragma: no cover
    from telephony.idle import IdlePromptTimer

LOGGER = logging.getLogger(__name__)

DEFAULT_SILENCE_FRAMES = 12


class CallPhase(str, Enum):
    LISTENING = "listening"
    PROCESSING = "processing"
    SPEAKING = "speaking"


@dataclass(frozen=True, slots=True)
class FrameOutcome:
    vad: VADResult
    turn_ended: bool = False


@dataclass
class CallSession:
    """Per-call state, owned by the connection that carries the call.

    Inbound audio is only accumulated while LISTENING, starting at the first
    speech frame. The turn ends once ``silence_frame_threshold`` consecutive
    silent frames follow speech; that trailing silence is not part of the turn.
    """

    connection_id: str
    stream_sid: str
    call_sid: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    vad: EnergyVAD = field(default_factory=EnergyVAD)
    silence_frame_threshold: int = DEFAULT_SILENCE_FRAMES

    phase: CallPhase = CallPhase.LISTENING
    heard_speech: bool = False
    silence_run: int = 0
    pending_audio: list[np.ndarray] = field(default_factory=list)
    idle_timer: IdlePromptTimer | None = None
    turn_in_flight: bool = False
    closed: bool = False
    _history: list[ConversationEntry] = field(default_factory=list)

    @property
    def history(self) -> tuple[ConversationEntry, ...]:
        return tuple(self._history)

    @property
    def is_listening(self) -> bool:
        return not self.closed and self.phase is CallPhase.LISTENING

    def push_frame(self, pcm: np.ndarray) -> FrameOutcome:
        """Run one inbound PCM16 frame through VAD and the turn segmenter."""

        result = self.vad.classify(pcm)
        if not self.is_listening:
            return FrameOutcome(vad=result)

        if result.is_speech:
            self.heard_speech = True
            self.silence_run = 0
            self.pending_audio.append(pcm)
            return FrameOutcome(vad=result)

        if not self.heard_speech:
            return FrameOutcome(vad=result)

        self.pending_audio.append(pcm)
        self.silence_run += 1
        if self.silence_run < self.silence_frame_threshold:
            return FrameOutcome(vad=result)

        del self.pending_audio[-self.silence_run :]
        self.heard_speech = False
        self.silence_run = 0
        self.phase = CallPhase.PROCESSING
        return FrameOutcome(vad=result, turn_ended=True)

    def drain_pending(self) -> np.ndarray | None:
        """Take the accumulated turn audio, leaving the buffer empty."""

        if not self.pending_audio:
            return None
        frames, self.pending_audio = self.pending_audio, []
        return np.concatenate(frames)

    def append_user(self, text: str) -> None:
        self._history.append(ConversationEntry(role="user", text=text))

    def append_assistant(self, text: str) -> None:
        self._history.append(ConversationEntry(role="assistant", text=text))

    def resume_listening(self) -> None:
        self.phase = CallPhase.LISTENING
        self.heard_speech = False
        self.silence_run = 0

    def close(self) -> None:
        """Tear down the session. Safe to call more than once."""

        if self.closed:
            return
        self.closed = True
        if self.idle_timer is not None:
            self.idle_timer.cancel()
        self.pending_audio.clear()
        LOGGER.debug("Session for stream %s closed", self.stream_sid)
