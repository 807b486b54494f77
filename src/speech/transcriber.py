"""Speech-to-text for finished caller turns."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

import numpy as np

from agents.errors import TranscriptionFailedError
from config.settings import get_settings
from integrations.twilio_streaming import pcm16_resample, pcm16_to_wav_bytes

LOGGER = logging.getLogger(__name__)

WHISPER_SAMPLE_RATE = 16000


class BaseTranscriber(ABC):
    """Interface for all recognizers. An empty string means no usable transcript."""

    @abstractmethod
    async def transcribe(self, pcm: np.ndarray, sample_rate: int = 8000) -> str:
        """Transcribe mono PCM16 audio."""


class OpenAITranscriber(BaseTranscriber):
    """Hosted Whisper via the OpenAI audio transcription endpoint."""

    def __init__(self) -> None:
        from openai import AsyncOpenAI

        settings = get_settings()
        api_key = settings.stt_api_key or settings.llm_api_key
        if not api_key:
            raise ValueError("STT API key must be configured for the OpenAI transcriber.")

        self._client = AsyncOpenAI(api_key=api_key)
        self._model = settings.stt_model

    async def transcribe(self, pcm: np.ndarray, sample_rate: int = 8000) -> str:
        wav = pcm16_to_wav_bytes(pcm, sample_rate)
        try:
            response = await self._client.audio.transcriptions.create(
                file=("turn.wav", wav, "audio/wav"),
                model=self._model,
            )
        except Exception as exc:
            raise TranscriptionFailedError(str(exc)) from exc
        return (response.text or "").strip()


class WhisperTranscriber(BaseTranscriber):
    """Local transcription using faster-whisper."""

    def __init__(self) -> None:
        from faster_whisper import WhisperModel

        settings = get_settings()
        self._model = WhisperModel(
            model_size_or_path=settings.whisper_model_size,
            device=settings.whisper_device,
            compute_type=settings.whisper_compute_type,
        )

    async def transcribe(self, pcm: np.ndarray, sample_rate: int = 8000) -> str:
        try:
            return await asyncio.to_thread(self._transcribe_sync, pcm, sample_rate)
        except Exception as exc:
            raise TranscriptionFailedError(str(exc)) from exc

    def _transcribe_sync(self, pcm: np.ndarray, sample_rate: int) -> str:
        audio = pcm16_resample(pcm, sample_rate, WHISPER_SAMPLE_RATE)
        audio_array = audio.astype(np.float32) / 32768.0

        segments, _info = self._model.transcribe(
            audio_array,
            beam_size=5,
            task="transcribe",
            condition_on_previous_text=False,
            temperature=0.0,
        )
        return " ".join(segment.text.strip() for segment in segments if segment.text.strip())


def build_transcriber() -> BaseTranscriber:
    """Factory returning the configured recognizer."""

    settings = get_settings()
    if settings.stt_provider == "openai":
        return OpenAITranscriber()
    if settings.stt_provider == "faster_whisper":
        return WhisperTranscriber()
    raise ValueError(f"Unsupported STT provider: {settings.stt_provider}")
