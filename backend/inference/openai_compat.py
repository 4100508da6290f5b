"""
OpenAI-compatible inference backend adapter.

Covers any server that implements the OpenAI chat completions contract:
  - api.openai.com and hosted OpenAI-compatible gateways
  - LM Studio, vLLM, llama.cpp server
  - text-generation-webui (with --api flag)

Streams /v1/chat/completions as server-sent events and reassembles tool
calls, whose names and arguments arrive split across many deltas.
"""

import json
import logging
from typing import AsyncGenerator

from inference.base import ChatChunk, InferenceBackend, ToolCall, Usage

logger = logging.getLogger(__name__)


class OpenAICompatBackend(InferenceBackend):
    """Backend adapter for OpenAI-compatible inference servers."""

    def __init__(self, base_url: str = "http://localhost:1234",
                 default_timeout: float = 300, api_key: str = "",
                 transport=None):
        super().__init__(base_url, default_timeout, api_key=api_key,
                         transport=transport)

    @property
    def _completions_url(self) -> str:
        # Hosted APIs are often configured with the /v1 suffix already
        if self.base_url.endswith("/v1"):
            return f"{self.base_url}/chat/completions"
        return f"{self.base_url}/v1/chat/completions"

    async def stream_chat(
        self,
        model_id: str,
        messages: list[dict],
        tools: list[dict] = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> AsyncGenerator[ChatChunk, None]:
        """Streaming chat completion via /v1/chat/completions with SSE.

        Text deltas are yielded as they arrive. Tool-call fragments are
        accumulated by index and yielded as whole calls after the stream
        closes, followed by usage (when the server reports it) and finish.
        """
        payload = {
            "model": model_id,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        pending: dict[int, dict] = {}  # index -> {"id", "name", "arguments"}
        finish_reason = None
        usage = None

        async with self._client() as client:
            async with client.stream("POST", self._completions_url, json=payload) as resp:
                resp.raise_for_status()
                async for line in resp.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    data = line[6:]
                    if data.strip() == "[DONE]":
                        break
                    try:
                        chunk = json.loads(data)
                    except json.JSONDecodeError:
                        continue

                    if chunk.get("usage"):
                        u = chunk["usage"]
                        usage = Usage(
                            prompt_tokens=u.get("prompt_tokens", 0) or 0,
                            completion_tokens=u.get("completion_tokens", 0) or 0,
                        )

                    choices = chunk.get("choices") or []
                    if not choices:
                        continue
                    choice = choices[0]
                    delta = choice.get("delta") or {}

                    content = delta.get("content")
                    if content:
                        yield ChatChunk(type="text", content=content)

                    for tc in delta.get("tool_calls") or []:
                        slot = pending.setdefault(
                            tc.get("index", 0), {"id": "", "name": "", "arguments": ""})
                        if tc.get("id"):
                            slot["id"] = tc["id"]
                        fn = tc.get("function") or {}
                        if fn.get("name"):
                            slot["name"] += fn["name"]
                        if fn.get("arguments"):
                            slot["arguments"] += fn["arguments"]

                    if choice.get("finish_reason"):
                        finish_reason = choice["finish_reason"]

        for index in sorted(pending):
            slot = pending[index]
            if not slot["name"]:
                logger.warning("Dropping tool call %d with no function name", index)
                continue
            call_id = slot["id"] or f"call_{index}"
            yield ChatChunk(
                type="tool_call",
                tool_call=ToolCall.from_raw(call_id, slot["name"], slot["arguments"]),
            )

        if usage is not None:
            yield ChatChunk(type="usage", usage=usage)
        yield ChatChunk(type="finish", finish_reason=finish_reason or "stop")
