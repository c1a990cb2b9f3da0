"""Tool-call loop driver.

Runs the multi-turn conversation with tool calling: ask the model, execute
the tool calls it requests (sequentially, in emission order), append the
results and ask again, until a response carries no tool calls. The number of
tool rounds is bounded; a model that keeps requesting tools past the bound
fails the run with ``ToolLoopLimitExceeded``.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field

from shared.log import bind_context, get_logger

from assistant.llm.base import LLMResponse, Message, RequestOptions, ToolCall, ToolSchema
from assistant.llm.dispatch import DeltaCallback, Dispatcher
from assistant.llm.errors import ConfigurationError, ToolLoopLimitExceeded
from assistant.tools import ToolCatalog, output_text

logger = get_logger("llm.tool_loop")

DEFAULT_MAX_ROUNDS = 10


class LoopState(str, enum.Enum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    FINAL = "final"


@dataclass
class ToolResult:
    call: ToolCall
    content: str
    is_error: bool = False


@dataclass
class ToolLoopResult:
    response: LLMResponse
    conversation: list[Message] = field(default_factory=list)
    rounds: int = 0
    state: LoopState = LoopState.FINAL


class ToolLoop:
    """Drives one orchestration run per ``run`` call."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        catalog: ToolCatalog | None = None,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
    ) -> None:
        self._dispatcher = dispatcher
        self._catalog = catalog
        self._max_rounds = max_rounds

    async def send_message(
        self,
        conversation: list[Message],
        *,
        provider: str | None = None,
        model: str | None = None,
        max_rounds: int | None = None,
        on_delta: DeltaCallback | None = None,
        stream: bool | None = None,
        options: RequestOptions | None = None,
    ) -> LLMResponse:
        """Send a conversation and return the model's final response."""
        result = await self.run(
            conversation,
            provider=provider,
            model=model,
            max_rounds=max_rounds,
            on_delta=on_delta,
            stream=stream,
            options=options,
        )
        return result.response

    async def run(
        self,
        conversation: list[Message],
        *,
        provider: str | None = None,
        model: str | None = None,
        max_rounds: int | None = None,
        on_delta: DeltaCallback | None = None,
        stream: bool | None = None,
        options: RequestOptions | None = None,
    ) -> ToolLoopResult:
        limit = self._max_rounds if max_rounds is None else max_rounds
        if limit < 0:
            raise ConfigurationError(f"max_rounds must be >= 0, got {limit}")

        # Fail fast on a bad provider/model before touching the catalog.
        config, resolved_model = self._dispatcher.resolve(provider, model)
        tools = await self._list_tools()

        with bind_context(run_id=uuid.uuid4().hex[:8]):
            return await self._drive(
                list(conversation),
                tools=tools,
                provider=config.name,
                model=resolved_model,
                limit=limit,
                stream=stream,
                on_delta=on_delta,
                options=options,
            )

    async def _drive(
        self,
        messages: list[Message],
        *,
        tools: list[ToolSchema],
        provider: str,
        model: str,
        limit: int,
        stream: bool | None,
        on_delta: DeltaCallback | None,
        options: RequestOptions | None,
    ) -> ToolLoopResult:
        rounds = 0

        while True:
            logger.debug("tool_loop_state", state=LoopState.AWAITING_MODEL.value, round=rounds)
            response = await self._dispatcher.send(
                messages,
                provider=provider,
                model=model,
                tools=tools,
                stream=stream,
                on_delta=on_delta,
                options=options,
            )

            if not response.has_tool_calls:
                return ToolLoopResult(
                    response=response, conversation=messages, rounds=rounds, state=LoopState.FINAL
                )

            if rounds >= limit:
                logger.warning("tool_loop_limit", rounds=rounds, pending=len(response.tool_calls))
                raise ToolLoopLimitExceeded(rounds, messages, response)

            rounds += 1
            logger.debug("tool_loop_state", state=LoopState.EXECUTING_TOOLS.value, round=rounds)
            messages.append(response.to_message())

            for tc in response.tool_calls:
                logger.info("tool_call", round=rounds, tool=tc.name, call_id=tc.id)
                messages.append(self._result_message(await self._execute(tc)))

    async def _list_tools(self) -> list[ToolSchema]:
        if self._catalog is None:
            return []
        return await self._catalog.list_tools()

    async def _execute(self, tc: ToolCall) -> ToolResult:
        """Execute one call; every failure becomes an error result."""
        if tc.parse_error:
            return ToolResult(tc, f"Error: tool {tc.name!r} was not run, {tc.parse_error}", True)
        if self._catalog is None:
            return ToolResult(tc, f"Error: no tools are available, {tc.name!r} was not run", True)
        try:
            output = await self._catalog.call_tool(tc.name, tc.arguments)
        except Exception as exc:
            logger.warning("tool_call_failed", tool=tc.name, call_id=tc.id, error=str(exc))
            return ToolResult(tc, f"Error: tool {tc.name!r} failed: {type(exc).__name__}: {exc}", True)
        return ToolResult(tc, output_text(output), output.is_error)

    @staticmethod
    def _result_message(result: ToolResult) -> Message:
        # One portable tool turn per call; the Anthropic translator merges
        # consecutive tool turns into a single user turn on the wire.
        return Message(
            role="tool",
            content=result.content,
            tool_call_id=result.call.id,
            name=result.call.name,
            is_error=result.is_error,
        )
