"""Exception hierarchy for the orchestration layer."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from assistant.llm.base import LLMResponse, Message


class AssistantError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(AssistantError):
    """Unknown or disabled provider/model, or an invalid option.

    Always raised before any network activity.
    """


class TransportError(AssistantError):
    """Non-success status or connection failure talking to a backend."""

    def __init__(self, message: str, status_code: int | None = None, provider: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider


class ToolNotFoundError(AssistantError):
    """A tool catalog was asked for a tool it does not know."""


class ToolLoopLimitExceeded(AssistantError):
    """The model kept requesting tools past the configured round limit."""

    def __init__(
        self,
        rounds: int,
        conversation: list[Message],
        response: LLMResponse,
    ) -> None:
        super().__init__(
            f"Model still requested {len(response.tool_calls)} tool call(s) "
            f"after {rounds} tool round(s)"
        )
        self.rounds = rounds
        self.conversation = conversation
        self.response = response
