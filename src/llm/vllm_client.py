"""Replies from a self-hosted, OpenAI-compatible inference server such as vLLM."""

from __future__ import annotations

from collections.abc import Sequence

import httpx

from llm.base import BaseLLMClient, ChatMessage


class VLLMClient(BaseLLMClient):
    """Posts to ``<endpoint>/v1/chat/completions`` over one pooled connection."""

    def __init__(
        self,
        *,
        endpoint: str,
        model: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("LLM_ENDPOINT is required for the self_hosted_vllm provider.")
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._http = httpx.AsyncClient(
            base_url=endpoint.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self._model = model

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float = 0.7,
        max_tokens: int = 180,
    ) -> str:
        response = await self._http.post(
            "/v1/chat/completions",
            json={
                "model": self._model,
                "messages": list(messages),
                "temperature": temperature,
                "max_tokens": max_tokens,
            },
        )
        response.raise_for_status()
        choices = response.json().get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""

    async def aclose(self) -> None:
        await self._http.aclose()
