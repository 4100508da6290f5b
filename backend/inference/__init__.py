"""
Inference package — provider adapters and the streaming completion primitive.

Provides adapters for OpenAI-compatible and Ollama servers, a registry that
resolves (provider, model) pairs to handles on those adapters, and the
multi-step streaming exchange the execution loop drives.

Quick start:
    from inference import get_provider_registry, stream_completion
    handle = get_provider_registry().resolve("openai", "gpt-4o-mini")
    async for part in stream_completion(handle, system, messages, tools):
        ...
"""

from inference.base import ChatChunk, InferenceBackend, ToolCall, Usage
from inference.failover import ProviderInvocationError, classify_error
from inference.ollama import OllamaBackend
from inference.openai_compat import OpenAICompatBackend
from inference.provider import ModelHandle, ProviderRegistry, get_provider_registry
from inference.streaming import (
    StepResult,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    stream_completion,
)

__all__ = [
    "ChatChunk",
    "InferenceBackend",
    "ModelHandle",
    "OllamaBackend",
    "OpenAICompatBackend",
    "ProviderInvocationError",
    "ProviderRegistry",
    "StepResult",
    "TextPart",
    "ToolCall",
    "ToolCallPart",
    "ToolResultPart",
    "Usage",
    "classify_error",
    "get_provider_registry",
    "stream_completion",
]
