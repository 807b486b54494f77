"""Chat completion backends behind the companion's reply generator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

ChatMessage = dict[str, str]


class BaseLLMClient(ABC):
    """A chat model that turns role/content messages into the next reply."""

    @abstractmethod
    async def chat(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float = 0.7,
        max_tokens: int = 180,
    ) -> str:
        """Return the reply text; an empty string when the model said nothing."""
