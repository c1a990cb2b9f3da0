"""Incremental stream decoding shared by all backend families.

A backend stream is processed in three layers:

1. ``iter_sse_events`` frames raw bytes into server-sent-event records,
   independent of how the transport happened to chunk them.
2. A family decoder (``decode_stream`` in each backend module) turns the
   records into normalized delta events.
3. ``StreamAccumulator`` folds delta events into the final ``LLMResponse``.

Callers that want live output observe the events between steps 2 and 3, so
one pass serves both the live consumer and the final result.
"""

from __future__ import annotations

import codecs
import json
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Union

from shared.log import get_logger

from assistant.llm.base import LLMResponse, ToolCall, Usage

logger = get_logger("llm.streaming")


# ------------------------------------------------------------------
# Delta events
# ------------------------------------------------------------------


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ReasoningDelta:
    text: str


@dataclass(frozen=True)
class ToolCallStart:
    id: str
    name: str


@dataclass(frozen=True)
class ToolCallArgsDelta:
    id: str
    fragment: str


@dataclass(frozen=True)
class ToolCallEnd:
    id: str


@dataclass(frozen=True)
class Metadata:
    model: str | None = None
    usage: Usage | None = None


@dataclass(frozen=True)
class StreamDone:
    finish_reason: str | None = None


DeltaEvent = Union[
    TextDelta, ReasoningDelta, ToolCallStart, ToolCallArgsDelta, ToolCallEnd, Metadata, StreamDone,
]


# ------------------------------------------------------------------
# SSE framing
# ------------------------------------------------------------------


@dataclass(frozen=True)
class SSEEvent:
    data: str
    event: str = "message"


@dataclass
class _EventBuilder:
    event: str = ""
    data: list[str] = field(default_factory=list)

    def feed(self, line: str) -> SSEEvent | None:
        if not line:
            return self.flush()
        if line.startswith(":"):
            return None
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            self.event = value
        elif name == "data":
            self.data.append(value)
        return None

    def flush(self) -> SSEEvent | None:
        if not self.data:
            self.event = ""
            return None
        record = SSEEvent(data="\n".join(self.data), event=self.event or "message")
        self.event = ""
        self.data = []
        return record


def _split_lines(buffer: str) -> tuple[list[str], str]:
    # A trailing CR may be the first half of a CRLF split across chunks.
    held = ""
    if buffer.endswith("\r"):
        buffer, held = buffer[:-1], "\r"
    lines = buffer.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return lines[:-1], lines[-1] + held


async def iter_sse_events(chunks: AsyncIterable[bytes]) -> AsyncIterator[SSEEvent]:
    """Frame a byte stream into SSE records, whatever the chunk boundaries."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    builder = _EventBuilder()
    buffer = ""

    async for chunk in chunks:
        buffer += decoder.decode(chunk)
        lines, buffer = _split_lines(buffer)
        for line in lines:
            record = builder.feed(line)
            if record is not None:
                yield record

    buffer += decoder.decode(b"", final=True)
    for line in buffer.replace("\r\n", "\n").replace("\r", "\n").split("\n"):
        record = builder.feed(line)
        if record is not None:
            yield record
    record = builder.flush()
    if record is not None:
        yield record


def load_record(record: SSEEvent, family: str) -> dict[str, Any] | None:
    """Parse a record's JSON payload; malformed records are logged and skipped."""
    try:
        payload = json.loads(record.data)
    except json.JSONDecodeError as exc:
        logger.warning("stream_record_skipped", family=family, reason=str(exc), data=record.data[:200])
        return None
    if not isinstance(payload, dict):
        logger.warning("stream_record_skipped", family=family, reason="not an object")
        return None
    return payload


# Raised while walking a valid JSON record whose structure is not the expected one.
RECORD_SHAPE_ERRORS = (KeyError, TypeError, AttributeError, IndexError, ValueError)


def skip_record(record: SSEEvent, family: str, exc: Exception) -> None:
    logger.warning(
        "stream_record_skipped",
        family=family,
        reason=f"{type(exc).__name__}: {exc}",
        data=record.data[:200],
    )


# ------------------------------------------------------------------
# Accumulation
# ------------------------------------------------------------------


def parse_arguments(raw: str | dict[str, Any] | None) -> tuple[dict[str, Any], str | None]:
    """Turn assembled argument text into a dict, or report why it is unusable."""
    if isinstance(raw, dict):
        return raw, None
    if raw is None or not raw.strip():
        return {}, None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        return {}, f"arguments are not valid JSON: {exc}"
    if not isinstance(value, dict):
        return {}, f"arguments must be a JSON object, got {type(value).__name__}"
    return value, None


@dataclass
class _PendingCall:
    id: str
    name: str
    fragments: list[str] = field(default_factory=list)
    done: bool = False


class StreamAccumulator:
    """Assemble delta events from one decode pass into an ``LLMResponse``."""

    def __init__(self, provider: str = "", model: str = "") -> None:
        self._provider = provider
        self._model = model
        self._text: list[str] = []
        self._reasoning: list[str] = []
        self._calls: dict[str, _PendingCall] = {}
        self._usage: Usage | None = None
        self._finish_reason: str | None = None
        self.finished = False

    def feed(self, event: DeltaEvent) -> None:
        if isinstance(event, TextDelta):
            self._text.append(event.text)
        elif isinstance(event, ReasoningDelta):
            self._reasoning.append(event.text)
        elif isinstance(event, ToolCallStart):
            if event.id not in self._calls:
                self._calls[event.id] = _PendingCall(id=event.id, name=event.name)
        elif isinstance(event, ToolCallArgsDelta):
            call = self._calls.get(event.id)
            if call is None or call.done:
                logger.warning("stream_fragment_orphaned", call_id=event.id)
                return
            call.fragments.append(event.fragment)
        elif isinstance(event, ToolCallEnd):
            call = self._calls.get(event.id)
            if call is not None:
                call.done = True
        elif isinstance(event, Metadata):
            if event.model:
                self._model = event.model
            if event.usage is not None:
                self._usage = event.usage
        elif isinstance(event, StreamDone):
            self.finished = True
            if event.finish_reason:
                self._finish_reason = event.finish_reason

    def result(self) -> LLMResponse:
        tool_calls: list[ToolCall] = []
        for call in self._calls.values():
            if not call.done:
                logger.warning("tool_call_incomplete", call_id=call.id, tool=call.name)
                continue
            arguments, error = parse_arguments("".join(call.fragments))
            if error:
                logger.warning("tool_call_arguments_invalid", call_id=call.id, tool=call.name, error=error)
            tool_calls.append(ToolCall(
                id=call.id, name=call.name, arguments=arguments, parse_error=error,
            ))

        return LLMResponse(
            content="".join(self._text),
            model=self._model,
            provider=self._provider,
            usage=self._usage,
            tool_calls=tool_calls,
            finish_reason=self._finish_reason,
            reasoning="".join(self._reasoning),
        )
