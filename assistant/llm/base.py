"""Canonical conversation model shared by every backend.

Defines the provider-agnostic message/response types. Each backend family
(OpenAI, DeepSeek, Anthropic, Gemini) translates to and from these types;
callers never see a backend-specific shape.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

ROLES = ("system", "user", "assistant", "tool")


@dataclass
class ToolCall:
    """A single tool/function call requested by the model.

    ``parse_error`` is set when the model emitted arguments that are not a
    JSON object. Such a call is reported back to the model as a failure and
    never executed.
    """

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    parse_error: str | None = None


@dataclass
class Message:
    """Unified conversation message used across all providers.

    Roles:
        system    – system prompt
        user      – human message
        assistant – model response (may contain tool_calls)
        tool      – result of a tool execution

    ``extensions`` holds backend-scoped side-channel data keyed by family
    name. A translator reads only its own key.
    """

    role: str  # system | user | assistant | tool
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None  # links tool result to its call
    name: str | None = None  # tool name (for tool role)
    is_error: bool = False  # tool result describes a failure
    extensions: dict[str, dict[str, Any]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")
        if self.content is None:
            self.content = ""


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def of(cls, input_tokens: int | None, output_tokens: int | None, total: int | None = None) -> Usage:
        inp = int(input_tokens or 0)
        out = int(output_tokens or 0)
        return cls(input_tokens=inp, output_tokens=out, total_tokens=int(total or inp + out))


@dataclass
class LLMResponse:
    """Model response: text content, tool calls, or both."""

    content: str = ""
    model: str = ""
    provider: str = ""
    usage: Usage | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None
    reasoning: str = ""

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_message(self) -> Message:
        """The assistant turn this response contributes to the conversation."""
        return Message(
            role="assistant",
            content=self.content,
            tool_calls=list(self.tool_calls),
        )


@dataclass(frozen=True)
class ToolSchema:
    """Schema describing a tool the model can invoke."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


@dataclass
class ToolOutput:
    """What a tool catalog returns for one call."""

    content: Any = ""
    is_error: bool = False


@dataclass
class RequestOptions:
    max_tokens: int = 4096
    temperature: float = 0.7


@dataclass
class WireRequest:
    """A backend-native HTTP request produced by a translator."""

    url: str
    headers: dict[str, str]
    body: dict[str, Any]
    method: str = "POST"
    stream: bool = False


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"
