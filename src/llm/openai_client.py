"""Replies from the OpenAI chat completions API (or any compatible base URL)."""

from __future__ import annotations

from collections.abc import Sequence

from openai import AsyncOpenAI

from llm.base import BaseLLMClient, ChatMessage


class OpenAIClient(BaseLLMClient):
    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        if not api_key:
            raise ValueError("LLM_API_KEY is required for the openai provider.")
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        self._model = model

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float = 0.7,
        max_tokens: int = 180,
    ) -> str:
        completion = await self._client.chat.completions.create(
            model=self._model,
            messages=list(messages),
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""
