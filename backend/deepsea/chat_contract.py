from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator, model_validator


MAX_MESSAGES = 200
MAX_IMPORT_CHARS = 1_000_000


class Mode(str, Enum):
    AUTO = "auto"
    LITE = "lite"
    STANDARD = "standard"
    HARDCORE = "hardcore"


EFFECTIVE_MODES = (Mode.LITE, Mode.STANDARD, Mode.HARDCORE)


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: StrictStr

    model_config = ConfigDict(extra="ignore")

    def as_upstream(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1, max_length=MAX_MESSAGES)
    mode: Mode = Mode.AUTO
    model: Optional[StrictStr] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("mode", mode="before")
    @classmethod
    def _missing_mode_is_auto(cls, v):
        if v is None or v == "":
            return Mode.AUTO
        return v

    @model_validator(mode="after")
    def _require_user_message(self) -> "ChatRequest":
        if not any(m.role == "user" for m in self.messages):
            raise ValueError("messages must contain at least one user message")
        return self

    def latest_user_text(self) -> str:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return ""


class ConversationExportRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)
    mode: Mode = Mode.STANDARD
    date: Optional[StrictStr] = None

    model_config = ConfigDict(extra="ignore")


class ConversationImportRequest(BaseModel):
    text: StrictStr = Field(..., min_length=1, max_length=MAX_IMPORT_CHARS)

    model_config = ConfigDict(extra="forbid")


class ConversationImportResponse(BaseModel):
    messages: List[ChatMessage]
    mode: Mode
    date: str


__all__ = [
    "ChatMessage",
    "ChatRequest",
    "ConversationExportRequest",
    "ConversationImportRequest",
    "ConversationImportResponse",
    "EFFECTIVE_MODES",
    "MAX_MESSAGES",
    "Mode",
]
