"""
Abstract base class for all inference backend adapters.

Every backend adapter (OpenAI-compatible, Ollama) must implement this
interface so the provider layer can treat them interchangeably. Adapters
normalize their server's streaming wire format into ChatChunk objects.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncGenerator, Optional

import httpx

logger = logging.getLogger(__name__)


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: dict = field(default_factory=dict)
    raw_arguments: str = ""
    parse_error: Optional[str] = None

    @classmethod
    def from_raw(cls, call_id: str, name: str, raw_arguments) -> "ToolCall":
        """Build a call from wire arguments (JSON string or already-decoded dict)."""
        if isinstance(raw_arguments, dict):
            return cls(id=call_id, name=name, arguments=raw_arguments,
                       raw_arguments=json.dumps(raw_arguments))
        raw = raw_arguments or ""
        if not raw.strip():
            return cls(id=call_id, name=name, arguments={}, raw_arguments="{}")
        try:
            args = json.loads(raw)
        except json.JSONDecodeError as e:
            return cls(id=call_id, name=name, raw_arguments=raw, parse_error=str(e))
        if not isinstance(args, dict):
            return cls(id=call_id, name=name, raw_arguments=raw,
                       parse_error="arguments must be a JSON object")
        return cls(id=call_id, name=name, arguments=args, raw_arguments=raw)


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class ChatChunk:
    """One normalized piece of a streamed chat completion.

    type is one of:
      - "text": content holds a text delta
      - "tool_call": tool_call holds a fully assembled call
      - "usage": usage holds the token counts for the request
      - "finish": finish_reason holds the server's stop reason
    """
    type: str
    content: str = ""
    tool_call: Optional[ToolCall] = None
    usage: Optional[Usage] = None
    finish_reason: Optional[str] = None


class InferenceBackend(ABC):
    """Abstract inference backend interface.

    Concrete adapters implement the HTTP-specific details for their server type
    while exposing one uniform streaming chat call. `transport` lets tests
    swap in an httpx.MockTransport.
    """

    def __init__(self, base_url: str, default_timeout: float = 300,
                 api_key: str = "", transport: httpx.AsyncBaseTransport = None):
        self.base_url = base_url.rstrip("/")
        self.default_timeout = default_timeout
        self.api_key = api_key
        self._transport = transport

    def _headers(self) -> dict:
        if self.api_key:
            return {"Authorization": f"Bearer {self.api_key}"}
        return {}

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.default_timeout,
            headers=self._headers(),
            transport=self._transport,
        )

    # ── Chat Completion ──

    @abstractmethod
    def stream_chat(
        self,
        model_id: str,
        messages: list[dict],
        tools: list[dict] = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> AsyncGenerator[ChatChunk, None]:
        """Streaming chat completion for a single request (one step).

        Args:
            model_id: Model identifier as known by the backend.
            messages: OpenAI-format message list, system prompt included.
            tools: Optional tool definitions (OpenAI function-calling schema).
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.

        Yields:
            ChatChunk objects in arrival order. Tool calls are yielded once
            fully assembled; usage and finish chunks come last.

        Raises:
            httpx.HTTPError subclasses on transport or HTTP status failures.
        """
        ...
