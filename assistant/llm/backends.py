"""Backend family dispatch table.

Each family is a set of pure functions (encode, decode_request,
parse_response, decode_stream) keyed by the family name from the
provider registry.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any

from assistant.llm import anthropic_llm, deepseek, gemini, openai_compat
from assistant.llm.base import LLMResponse, Message
from assistant.llm.errors import ConfigurationError
from assistant.llm.streaming import DeltaEvent, SSEEvent


@dataclass(frozen=True)
class Backend:
    family: str
    encode: Callable[..., Any]
    decode_request: Callable[[dict[str, Any]], list[Message]]
    parse_response: Callable[[dict[str, Any], str], LLMResponse]
    decode_stream: Callable[[AsyncIterable[SSEEvent]], AsyncIterator[DeltaEvent]]


def _backend(module: Any) -> Backend:
    return Backend(
        family=module.FAMILY,
        encode=module.encode,
        decode_request=module.decode_request,
        parse_response=module.parse_response,
        decode_stream=module.decode_stream,
    )


BACKENDS: dict[str, Backend] = {
    "openai": _backend(openai_compat),
    "deepseek": _backend(deepseek),
    "anthropic": _backend(anthropic_llm),
    "gemini": _backend(gemini),
}


def get_backend(family: str) -> Backend:
    try:
        return BACKENDS[family]
    except KeyError:
        raise ConfigurationError(f"No backend for family {family!r}") from None
