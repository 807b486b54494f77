"""Runs a caller turn through recognition, generation and synthesis, then speaks the reply."""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from agents.conversation import ReplyGenerator
from config.settings import Settings
from integrations.twilio_streaming import pcm16_resample
from speech.transcriber import BaseTranscriber
from speech.tts import TELEPHONY_SAMPLE_RATE, BaseSynthesizer
from telephony.g711 import ulaw_encode
from telephony.media_socket import MediaSocket
from telephony.pacing import FRAME_CADENCE_MS, FRAME_SIZE_BYTES, stream_out
from telephony.session import CallPhase, CallSession

LOGGER = logging.getLogger(__name__)

FALLBACK_REPLY = "I'm here with you. Tell me more about that."


@dataclass(slots=True)
class Collaborators:
    transcriber: BaseTranscriber
    generator: ReplyGenerator
    synthesizer: BaseSynthesizer


def build_collaborators(settings: Settings) -> Collaborators:
    # Lazy imports keep provider SDKs out of module import time.
    from llm.factory import build_llm_client
    from speech.transcriber import build_transcriber
    from speech.tts import build_synthesizer

    generator = ReplyGenerator(
        build_llm_client(settings),
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )
    return Collaborators(
        transcriber=build_transcriber(),
        generator=generator,
        synthesizer=build_synthesizer(),
    )


class TurnOrchestrator:
    """Per-connection speak path shared by caller turns and idle nudges."""

    def __init__(
        self,
        socket: MediaSocket,
        collaborators: Collaborators,
        *,
        nudge_lines: Sequence[str],
        fallback_reply: str = FALLBACK_REPLY,
        frame_size: int = FRAME_SIZE_BYTES,
        cadence_ms: int = FRAME_CADENCE_MS,
        rng: random.Random | None = None,
    ) -> None:
        if not nudge_lines:
            raise ValueError("nudge_lines may not be empty")
        self._socket = socket
        self._collaborators = collaborators
        self._nudge_lines = list(nudge_lines)
        self._fallback_reply = fallback_reply
        self._frame_size = frame_size
        self._cadence_ms = cadence_ms
        self._rng = rng or random.Random()

    async def finalize(self, session: CallSession) -> None:
        """Handle the audio accumulated for one caller turn.

        A second trigger while a turn is in flight, or a trigger with nothing
        buffered, does nothing.
        """

        if session.turn_in_flight:
            return

        pcm = session.drain_pending()
        if pcm is None:
            if session.phase is CallPhase.PROCESSING:
                self._resume(session)
            return

        session.turn_in_flight = True
        session.phase = CallPhase.PROCESSING
        try:
            await self._run_turn(session, pcm)
        finally:
            session.turn_in_flight = False

    async def _run_turn(self, session: CallSession, pcm: np.ndarray) -> None:
        text = await self._recognize(pcm)
        if session.closed:
            return
        if not text:
            self._resume(session)
            return

        session.append_user(text)
        reply = await self._generate(session, text)
        if session.closed:
            return
        session.append_assistant(reply)

        await self.speak(session, reply)

    async def _recognize(self, pcm: np.ndarray) -> str:
        try:
            text = await self._collaborators.transcriber.transcribe(pcm, TELEPHONY_SAMPLE_RATE)
        except Exception:
            LOGGER.exception("Recognition failed; dropping turn")
            return ""
        return (text or "").strip()

    async def _generate(self, session: CallSession, text: str) -> str:
        try:
            return await self._collaborators.generator.reply(session.history, text)
        except Exception:
            LOGGER.exception("Reply generation failed; using fallback line")
            return self._fallback_reply

    async def speak(self, session: CallSession, text: str) -> None:
        """Synthesize ``text`` and stream it into the call, then listen again."""

        session.phase = CallPhase.PROCESSING
        try:
            try:
                audio = await self._collaborators.synthesizer.synthesize(text)
            except Exception:
                LOGGER.exception("Synthesis failed for stream %s", session.stream_sid)
                return
            if session.closed:
                return

            pcm = pcm16_resample(np.asarray(audio.pcm, dtype=np.int16), audio.sample_rate, TELEPHONY_SAMPLE_RATE)
            session.phase = CallPhase.SPEAKING
            await stream_out(
                self._socket,
                session.stream_sid,
                ulaw_encode(pcm),
                frame_size=self._frame_size,
                cadence_ms=self._cadence_ms,
                should_continue=lambda: not session.closed,
            )
        finally:
            self._resume(session)

    async def nudge(self, session: CallSession) -> None:
        """Idle timer callback: re-engage a caller who has gone quiet."""

        if not session.is_listening or session.turn_in_flight or session.heard_speech:
            return
        line = self._rng.choice(self._nudge_lines)
        LOGGER.info("Caller idle on stream %s; nudging", session.stream_sid)
        session.append_assistant(line)
        await self.speak(session, line)

    @staticmethod
    def _resume(session: CallSession) -> None:
        if session.closed:
            return
        session.resume_listening()
        if session.idle_timer is not None:
            session.idle_timer.schedule()
