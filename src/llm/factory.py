"""Chooses the chat backend named by ``LLM_PROVIDER``."""

from __future__ import annotations

from config.settings import Settings
from llm.base import BaseLLMClient
from llm.openai_client import OpenAIClient
from llm.vllm_client import VLLMClient


def build_llm_client(settings: Settings) -> BaseLLMClient:
    if settings.llm_provider == "self_hosted_vllm":
        return VLLMClient(
            endpoint=settings.llm_endpoint or "",
            model=settings.llm_model,
            api_key=settings.llm_api_key,
            timeout=settings.llm_timeout_seconds,
        )
    if settings.llm_provider == "openai":
        return OpenAIClient(
            api_key=settings.llm_api_key or "",
            model=settings.llm_model,
            base_url=settings.llm_endpoint,
            timeout=settings.llm_timeout_seconds,
        )
    raise ValueError(f"Unsupported llm_provider: {settings.llm_provider}")
