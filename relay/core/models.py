from __future__ import annotations

import re
from enum import Enum
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator


_LONE_SURROGATE = re.compile("[\ud800-\udfff]")


def replace_lone_surrogates(text: str) -> str:
    """Swap unpaired UTF-16 surrogates for U+FFFD so the text encodes as UTF-8."""
    return _LONE_SURROGATE.sub("\ufffd", text)


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ConversationTurn(BaseModel):
    """A single chat message. Turns are immutable once created."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    role: Role = Field(..., description="'system', 'user' or 'assistant'")
    content: str

    @field_validator("content")
    @classmethod
    def scrub_content(cls, value: str) -> str:
        return replace_lone_surrogates(value)

    @classmethod
    def system(cls, content: str) -> "ConversationTurn":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "ConversationTurn":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "ConversationTurn":
        return cls(role=Role.ASSISTANT, content=content)

    def to_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}
