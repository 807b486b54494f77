"""Pydantic schemas for conversation exchange."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

Role = Literal["user", "assistant"]


class ConversationEntry(BaseModel):
    """One line of the call transcript as handed to the language model."""

    model_config = ConfigDict(frozen=True)

    role: Role
    text: str

    @field_validator("text")
    @classmethod
    def text_not_empty(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("Text may not be empty.")
        return text

    def as_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.text}
