"""Wire schemas for the Mistral-compatible chat completions API.

Only the fields the advisor reads are modelled; everything else the upstream
sends is ignored so new provider fields never break decoding.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ChatCompletionRequest(BaseModel):
    model: str
    messages: list[ChatMessage]
    temperature: float
    max_tokens: int
    stream: bool | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class MessageFragment(BaseModel):
    """A `delta` (incremental) or `message` (full) fragment of a choice.

    `content` is usually a string. Reasoning-capable models may send a list of
    typed parts instead; only their `text` entries are kept.
    """

    content: str | list[dict[str, Any]] | None = None
    role: str | None = None

    model_config = ConfigDict(extra="ignore")

    def text(self) -> str:
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        parts: list[str] = []
        for part in self.content:
            if part.get("type", "text") != "text":
                continue
            value = part.get("text")
            if isinstance(value, str):
                parts.append(value)
        return "".join(parts)


class Choice(BaseModel):
    delta: MessageFragment | None = None
    message: MessageFragment | None = None
    finish_reason: str | None = None

    model_config = ConfigDict(extra="ignore")

    def content(self) -> str:
        """Prefer the incremental delta; fall back to a full message."""
        if self.delta is not None:
            return self.delta.text()
        if self.message is not None:
            return self.message.text()
        return ""


class DeltaEvent(BaseModel):
    """One decoded `data:` payload of the event stream."""

    choices: list[Choice]
    id: str | None = None
    object: str | None = None
    model: str | None = None

    model_config = ConfigDict(extra="ignore")


class ChatCompletionResponse(BaseModel):
    """Non-streaming response body."""

    choices: list[Choice] = Field(default_factory=list)
    id: str | None = None
    model: str | None = None

    model_config = ConfigDict(extra="ignore")
