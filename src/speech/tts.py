"""Text-to-speech synthesis producing telephone-rate PCM."""

from __future__ import annotations

import asyncio
import logging
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from agents.errors import SynthesisFailedError
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)

TELEPHONY_SAMPLE_RATE = 8000


@dataclass(frozen=True, slots=True)
class SynthesizedAudio:
    pcm: np.ndarray  # mono int16
    sample_rate: int = TELEPHONY_SAMPLE_RATE


class BaseSynthesizer(ABC):
    """Interface for all text-to-speech synthesizers."""

    @abstractmethod
    async def synthesize(self, text: str) -> SynthesizedAudio:
        """Synthesize speech for the given text."""


class AzureSynthesizer(BaseSynthesizer):
    """Wrapper around Azure Cognitive Services Speech SDK."""

    def __init__(self) -> None:
        try:
            import azure.cognitiveservices.speech as speechsdk
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "azure-cognitiveservices-speech is required for AzureSynthesizer."
            ) from exc

        settings = get_settings()
        if not settings.azure_speech_key or not settings.azure_speech_region:
            raise ValueError("Azure speech key and region must be configured.")

        speech_config = speechsdk.SpeechConfig(
            subscription=settings.azure_speech_key,
            region=settings.azure_speech_region,
        )
        speech_config.speech_synthesis_voice_name = settings.tts_voice
        # Headerless PCM straight at the telephone rate; no resampling needed.
        speech_config.set_speech_synthesis_output_format(
            speechsdk.SpeechSynthesisOutputFormat.Raw8Khz16BitMonoPcm
        )

        self._speechsdk = speechsdk
        self._speech_config = speech_config
        self._voice = settings.tts_voice

    async def synthesize(self, text: str) -> SynthesizedAudio:
        audio = await asyncio.to_thread(self._synthesize_sync, text)
        return SynthesizedAudio(pcm=np.frombuffer(audio, dtype="<i2").astype(np.int16))

    def _synthesize_sync(self, text: str) -> bytes:
        synthesizer = self._speechsdk.SpeechSynthesizer(
            speech_config=self._speech_config,
            audio_config=None,  # allow retrieving audio data directly
        )
        result = synthesizer.speak_ssml_async(self._build_ssml(text, self._voice)).get()

        if result.reason == self._speechsdk.ResultReason.Canceled:
            cancellation = result.cancellation_details
            raise SynthesisFailedError(f"Azure TTS canceled: {cancellation.error_details}")
        return bytes(result.audio_data)

    @staticmethod
    def _build_ssml(text: str, voice_name: str) -> str:
        escaped_text = text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        lang = "-".join(voice_name.split("-")[:2])
        return (
            f"<speak version='1.0' xml:lang='{lang}'>"
            f"<voice name='{voice_name}'>{escaped_text}</voice>"
            "</speak>"
        )


class CoquiSynthesizer(BaseSynthesizer):
    """Offline TTS using Coqui TTS models."""

    def __init__(self) -> None:
        try:
            from TTS.api import TTS  # type: ignore[import]
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("TTS package required for CoquiSynthesizer.") from exc

        self._tts = TTS(model_name="tts_models/en/ljspeech/vits")

    async def synthesize(self, text: str) -> SynthesizedAudio:
        return await asyncio.to_thread(self._synthesize_sync, text)

    def _synthesize_sync(self, text: str) -> SynthesizedAudio:
        import soundfile as sf  # lazy import

        with tempfile.TemporaryDirectory() as tmp_dir:
            wav_path = Path(tmp_dir) / "reply.wav"
            self._tts.tts_to_file(text=text, file_path=str(wav_path))
            audio_array, sample_rate = sf.read(str(wav_path), dtype="float32")

        audio_array = np.asarray(audio_array, dtype=np.float32)
        if audio_array.ndim > 1:
            audio_array = np.mean(audio_array, axis=1)  # convert to mono

        pcm = np.clip(audio_array * 32767.0, -32768, 32767).astype(np.int16)
        return SynthesizedAudio(pcm=pcm, sample_rate=int(sample_rate))


def build_synthesizer() -> BaseSynthesizer:
    """Factory returning the configured synthesizer."""

    settings = get_settings()
    if settings.tts_provider == "azure":
        return AzureSynthesizer()
    if settings.tts_provider == "coqui":
        return CoquiSynthesizer()
    raise ValueError(f"Unsupported TTS provider: {settings.tts_provider}")
