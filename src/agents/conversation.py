"""Reply generation on top of the configured chat model."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from agents.errors import GenerationFailedError
from agents.schemas import ConversationEntry
from llm.base import BaseLLMClient
from prompts.loader import load_prompt

LOGGER = logging.getLogger(__name__)


def build_messages(
    system_prompt: str,
    history: Sequence[ConversationEntry],
    latest_user_text: str,
) -> list[dict[str, str]]:
    """System prompt, then the call transcript, ending with the latest user text.

    The latest user text is only appended when the transcript does not already
    end with it.
    """

    messages = [{"role": "system", "content": system_prompt.strip()}]
    messages.extend(entry.as_message() for entry in history)

    latest = latest_user_text.strip()
    last = history[-1] if history else None
    if latest and not (last is not None and last.role == "user" and last.text == latest):
        messages.append({"role": "user", "content": latest})
    return messages


class ReplyGenerator:
    """Turns the conversation so far into the agent's next line."""

    def __init__(
        self,
        llm: BaseLLMClient,
        *,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 180,
    ) -> None:
        self._llm = llm
        self._system_prompt = system_prompt or load_prompt("companion_system.txt")
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def reply(self, history: Sequence[ConversationEntry], latest_user_text: str) -> str:
        messages = build_messages(self._system_prompt, history, latest_user_text)
        try:
            text = await self._llm.chat(
                messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except Exception as exc:
            raise GenerationFailedError(str(exc)) from exc

        text = (text or "").strip()
        if not text:
            raise GenerationFailedError("Empty completion.")
        return text
