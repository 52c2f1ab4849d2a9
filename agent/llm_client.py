"""Model client used by the contract and security agents.

Agents only need one thing from a model: send a system prompt plus one user
message and get text back. ``AnthropicClient`` talks to Claude; ``MockClient``
replays scripted replies in tests and offline runs.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol, Union, runtime_checkable

import anthropic
import structlog

logger = structlog.get_logger()

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
# Contracts with many functions produce long JSON replies
DEFAULT_MAX_TOKENS = 16384

MOCK_FALLBACK_REPLY = "Mock response (no scripted response available)"


class LLMResponseError(Exception):
    """The model answered with something other than text."""


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @classmethod
    def from_api(cls, usage: Any) -> TokenUsage:
        return cls(input_tokens=usage.input_tokens, output_tokens=usage.output_tokens)


@dataclass
class Response:
    """A model reply reduced to its text and token accounting."""

    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: str = ""
    stop_reason: str = ""

    @property
    def truncated(self) -> bool:
        """True when the reply was cut off by the token limit."""
        return self.stop_reason == "max_tokens"


@runtime_checkable
class LLMClient(Protocol):
    async def chat(
        self,
        messages: list[dict[str, Any]],
        system: str | None = None,
    ) -> Response: ...


def _join_text(blocks: Iterable[Any]) -> str:
    texts = [block.text for block in blocks if block.type == "text"]
    if not texts:
        raise LLMResponseError("Unexpected response type from model")
    return "".join(texts)


class AnthropicClient:
    """Claude over the async Anthropic SDK.

    Model and token limit come from ``LLM_MODEL`` / ``LLM_MAX_TOKENS`` unless
    passed explicitly; the API key from ``ANTHROPIC_API_KEY``.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self.model = model or os.environ.get("LLM_MODEL", DEFAULT_MODEL)
        self.max_tokens = max_tokens or int(os.environ.get("LLM_MAX_TOKENS", DEFAULT_MAX_TOKENS))
        self._client = anthropic.AsyncAnthropic(api_key=api_key or os.environ["ANTHROPIC_API_KEY"])

    async def chat(
        self,
        messages: list[dict[str, Any]],
        system: str | None = None,
    ) -> Response:
        request: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": messages,
        }
        if system:
            request["system"] = system

        message = await self._client.messages.create(**request)
        reply = Response(
            content=_join_text(message.content),
            usage=TokenUsage.from_api(message.usage),
            model=message.model or self.model,
            stop_reason=message.stop_reason or "",
        )

        logger.info(
            "anthropic_api_call",
            model=reply.model,
            input_tokens=reply.usage.input_tokens,
            output_tokens=reply.usage.output_tokens,
            stop_reason=reply.stop_reason,
        )
        return reply


ScriptItem = Union[Response, Exception]


class MockClient:
    """Replays a script of replies in order.

    A script item that is an exception is raised instead of returned. Once the
    script runs out every call gets a fixed non-JSON reply.
    """

    def __init__(self, responses: list[ScriptItem] | None = None) -> None:
        self._script: list[ScriptItem] = list(responses or [])
        self.call_history: list[dict[str, Any]] = []

    @property
    def remaining(self) -> int:
        return len(self._script)

    async def chat(
        self,
        messages: list[dict[str, Any]],
        system: str | None = None,
    ) -> Response:
        self.call_history.append({"messages": messages, "system": system})

        if not self._script:
            return Response(
                content=MOCK_FALLBACK_REPLY,
                usage=TokenUsage(input_tokens=10, output_tokens=10),
                model="mock",
                stop_reason="end_turn",
            )

        item = self._script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


_PROVIDERS: dict[str, Callable[[], LLMClient]] = {
    "anthropic": AnthropicClient,
    "mock": MockClient,
}


def resolve_provider(provider: str | None = None) -> str:
    return provider or os.environ.get("LLM_PROVIDER", "anthropic")


def create_client(provider: str | None = None) -> LLMClient:
    """Build the model client named by *provider* or ``LLM_PROVIDER``."""
    name = resolve_provider(provider)
    try:
        factory = _PROVIDERS[name]
    except KeyError:
        raise ValueError(f"Unknown LLM provider: {name}") from None
    logger.info("llm_client_created", provider=name)
    return factory()
