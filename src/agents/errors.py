"""Domain-specific exceptions for collaborator calls during a turn.

These exceptions are safe to import from the audio path without triggering heavy ML imports.
"""

from __future__ import annotations


class VoiceAgentError(Exception):
    default_detail: str = "Voice agent error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class TranscriptionFailedError(VoiceAgentError):
    default_detail = "Transcription failed."


class GenerationFailedError(VoiceAgentError):
    default_detail = "Reply generation failed."


class SynthesisFailedError(VoiceAgentError):
    default_detail = "Speech synthesis failed."
