from __future__ import annotations

import os
import sys
from pathlib import Path

import numpy as np
import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from agents.conversation import ReplyGenerator  # noqa: E402
from agents.orchestrator import Collaborators  # noqa: E402
from llm.base import BaseLLMClient  # noqa: E402
from speech.transcriber import BaseTranscriber  # noqa: E402
from speech.tts import BaseSynthesizer, SynthesizedAudio  # noqa: E402


class FakeSocket:
    """In-memory stand-in for a media-stream websocket."""

    def __init__(self, *, close_after: int | None = None, fail_ping: bool = False) -> None:
        self.sent: list[str] = []
        self.pings = 0
        self._open = True
        self._close_after = close_after
        self._fail_ping = fail_ping

    @property
    def is_open(self) -> bool:
        return self._open

    def close(self) -> None:
        self._open = False

    async def send(self, message: str) -> None:
        self.sent.append(message)
        if self._close_after is not None and len(self.sent) >= self._close_after:
            self._open = False

    async def ping(self) -> None:
        self.pings += 1
        if self._fail_ping:
            raise RuntimeError("ping failed")


class FakeTranscriber(BaseTranscriber):
    def __init__(self, text: str = "How are you today?", *, error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[np.ndarray] = []

    async def transcribe(self, pcm: np.ndarray, sample_rate: int = 8000) -> str:
        self.calls.append(pcm)
        if self.error is not None:
            raise self.error
        return self.text


class FakeLLM(BaseLLMClient):
    def __init__(self, response: str = "I'm doing great, thanks for asking!", *, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[list[dict[str, str]]] = []

    async def chat(self, messages, *, temperature: float = 0.7, max_tokens: int = 180) -> str:
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        return self.response


class FakeSynthesizer(BaseSynthesizer):
    def __init__(
        self,
        *,
        samples: int = 800,
        sample_rate: int = 8000,
        error: Exception | None = None,
    ) -> None:
        self.samples = samples
        self.sample_rate = sample_rate
        self.error = error
        self.texts: list[str] = []

    async def synthesize(self, text: str) -> SynthesizedAudio:
        self.texts.append(text)
        if self.error is not None:
            raise self.error
        t = np.arange(self.samples)
        pcm = (np.sin(2 * np.pi * 440 * t / self.sample_rate) * 8000).astype(np.int16)
        return SynthesizedAudio(pcm=pcm, sample_rate=self.sample_rate)


def make_collaborators(
    *,
    transcriber: BaseTranscriber | None = None,
    llm: BaseLLMClient | None = None,
    synthesizer: BaseSynthesizer | None = None,
) -> Collaborators:
    return Collaborators(
        transcriber=transcriber or FakeTranscriber(),
        generator=ReplyGenerator(llm or FakeLLM(), system_prompt="SYS"),
        synthesizer=synthesizer or FakeSynthesizer(),
    )


def speech_frame(amplitude: int = 3000, size: int = 160) -> np.ndarray:
    return np.full(size, amplitude, dtype=np.int16)


def silence_frame(size: int = 160) -> np.ndarray:
    return np.zeros(size, dtype=np.int16)


@pytest.fixture(scope="session")
def app(tmp_path_factory: pytest.TempPathFactory):
    os.environ["PUBLIC_BASE_URL"] = "https://companion.example.com"
    os.environ.pop("PUBLIC_WS_URL", None)

    import importlib

    # Ensure clean import with the test settings.
    for module_name in ["config.settings", "api.twilio_routes", "main"]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app
