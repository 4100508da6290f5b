"""
Ollama inference backend adapter.

Wraps Ollama's native /api/chat endpoint, which streams newline-delimited
JSON objects. Normalizes OpenAI-format requests to Ollama format and the
streamed objects back to ChatChunk so the rest of the engine can use a
uniform interface.
"""

import json
import logging
from typing import AsyncGenerator

from inference.base import ChatChunk, InferenceBackend, ToolCall, Usage

logger = logging.getLogger(__name__)


def _openai_messages_to_ollama(messages: list[dict]) -> list[dict]:
    """Convert OpenAI-format messages to Ollama format.

    Ollama uses the same role/content structure but expects plain string
    content, and tool-call arguments as objects rather than JSON strings.
    """
    converted = []
    for msg in messages:
        entry = {"role": msg["role"]}
        content = msg.get("content", "")
        # Ollama expects content as a plain string
        if isinstance(content, list):
            text_parts = []
            images = []
            for part in content:
                if isinstance(part, dict):
                    if part.get("type") == "text":
                        text_parts.append(part.get("text", ""))
                    elif part.get("type") == "image_url":
                        url = part.get("image_url", {}).get("url", "")
                        # Ollama accepts base64 images in the images field
                        if url.startswith("data:"):
                            images.append(url.split(",", 1)[-1])
                else:
                    text_parts.append(str(part))
            entry["content"] = "\n".join(text_parts)
            if images:
                entry["images"] = images
        else:
            entry["content"] = content or ""

        if msg.get("tool_calls"):
            calls = []
            for tc in msg["tool_calls"]:
                fn = tc.get("function", {})
                args = fn.get("arguments", {})
                if isinstance(args, str):
                    try:
                        args = json.loads(args) if args.strip() else {}
                    except json.JSONDecodeError:
                        args = {}
                calls.append({"function": {"name": fn.get("name", ""), "arguments": args}})
            entry["tool_calls"] = calls
        converted.append(entry)
    return converted


class OllamaBackend(InferenceBackend):
    """Backend adapter for Ollama inference server."""

    def __init__(self, base_url: str = "http://localhost:11434",
                 default_timeout: float = 300, api_key: str = "",
                 transport=None):
        super().__init__(base_url, default_timeout, api_key=api_key,
                         transport=transport)

    async def stream_chat(
        self,
        model_id: str,
        messages: list[dict],
        tools: list[dict] = None,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> AsyncGenerator[ChatChunk, None]:
        """Streaming chat completion via /api/chat with stream=true.

        Ollama streams newline-delimited JSON objects. Each object has a
        'message' field with partial content (and, when the model calls
        tools, complete 'tool_calls'), and a 'done' field. The final object
        carries prompt_eval_count / eval_count.
        """
        payload = {
            "model": model_id,
            "messages": _openai_messages_to_ollama(messages),
            "stream": True,
            "options": {
                "num_predict": max_tokens,
                "temperature": temperature,
            },
        }
        # Ollama supports tools natively since v0.3+
        if tools:
            payload["tools"] = tools

        tool_calls: list[ToolCall] = []
        usage = None
        finish_reason = None

        async with self._client() as client:
            async with client.stream("POST", f"{self.base_url}/api/chat", json=payload) as resp:
                resp.raise_for_status()
                async for line in resp.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        continue

                    if chunk.get("error"):
                        raise RuntimeError(f"Ollama error: {chunk['error']}")

                    message = chunk.get("message") or {}
                    content = message.get("content", "")
                    if content:
                        yield ChatChunk(type="text", content=content)

                    for tc in message.get("tool_calls") or []:
                        fn = tc.get("function") or {}
                        if not fn.get("name"):
                            continue
                        call_id = tc.get("id") or f"call_{len(tool_calls)}"
                        tool_calls.append(
                            ToolCall.from_raw(call_id, fn["name"], fn.get("arguments", {})))

                    if chunk.get("done", False):
                        usage = Usage(
                            prompt_tokens=chunk.get("prompt_eval_count", 0) or 0,
                            completion_tokens=chunk.get("eval_count", 0) or 0,
                        )
                        finish_reason = chunk.get("done_reason") or "stop"
                        break

        for call in tool_calls:
            yield ChatChunk(type="tool_call", tool_call=call)
        if usage is not None:
            yield ChatChunk(type="usage", usage=usage)
        if tool_calls:
            finish_reason = "tool_calls"
        yield ChatChunk(type="finish", finish_reason=finish_reason or "stop")
