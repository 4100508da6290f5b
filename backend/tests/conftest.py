"""
Test fixtures for the Switchyard test suite.
"""

import os
import sys
from pathlib import Path

import pytest

# Add backend to path
BACKEND_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(BACKEND_DIR))

# Keep tests away from any real settings file
os.environ["SWITCHYARD_SETTINGS"] = str(BACKEND_DIR / "tests" / "missing-settings.yaml")

from agents.base import AgentProfile  # noqa: E402
from agents.runner import AgentRunner, RunOptions  # noqa: E402
from inference.base import ChatChunk, InferenceBackend, ToolCall, Usage  # noqa: E402
from inference.provider import ProviderRegistry  # noqa: E402
from routing.cooldown import CooldownTracker  # noqa: E402
from routing.selector import ModelCandidate, ModelGroup  # noqa: E402
from sessions import TranscriptStore  # noqa: E402
from tools import ToolContext, ToolRegistry  # noqa: E402


# ── Scripted chunks ──

def text_step(text: str, prompt: int = 10, completion: int = 5) -> list[ChatChunk]:
    """One model response that only produces text."""
    return [
        ChatChunk(type="text", content=text),
        ChatChunk(type="usage", usage=Usage(prompt, completion)),
        ChatChunk(type="finish", finish_reason="stop"),
    ]


def tool_step(name: str, args: dict = None, call_id: str = "call_1",
              prompt: int = 10, completion: int = 5, text: str = "") -> list[ChatChunk]:
    """One model response that calls a single tool."""
    chunks = [ChatChunk(type="text", content=text)] if text else []
    chunks += [
        ChatChunk(type="tool_call", tool_call=ToolCall(id=call_id, name=name,
                                                       arguments=args or {},
                                                       raw_arguments="{}")),
        ChatChunk(type="usage", usage=Usage(prompt, completion)),
        ChatChunk(type="finish", finish_reason="tool_calls"),
    ]
    return chunks


class ScriptedBackend(InferenceBackend):
    """Backend that replays one scripted chunk list per request.

    When the script runs out it repeats `default` (an empty text reply unless
    given). `error` is raised on every request instead.
    """

    def __init__(self, script: list = None, default: list = None, error: Exception = None):
        super().__init__("http://scripted.invalid")
        self.script = list(script or [])
        self.default = default
        self.error = error
        self.requests: list[dict] = []

    async def stream_chat(self, model_id, messages, tools=None, max_tokens=2048,
                          temperature=0.7):
        self.requests.append({"model": model_id, "messages": list(messages),
                              "tools": tools, "max_tokens": max_tokens})
        if self.error is not None:
            raise self.error
        if self.script:
            chunks = self.script.pop(0)
        elif self.default is not None:
            chunks = self.default
        else:
            chunks = [ChatChunk(type="finish", finish_reason="stop")]
        for chunk in chunks:
            yield chunk


class MemoryTranscriptStore(TranscriptStore):
    def __init__(self, fail: bool = False):
        self.entries: dict[str, list] = {}
        self.fail = fail

    async def append_transcript(self, session_id, entry):
        if self.fail:
            raise OSError("disk full")
        self.entries.setdefault(session_id, []).append(entry)

    async def get_transcript(self, session_id, limit=None):
        entries = self.entries.get(session_id, [])
        return entries[-limit:] if limit else list(entries)


# ── Fixtures ──

@pytest.fixture
def cooldowns():
    return CooldownTracker()


@pytest.fixture
def transcripts():
    return MemoryTranscriptStore()


@pytest.fixture
def tool_registry():
    return ToolRegistry()


@pytest.fixture
def make_runner(tool_registry, cooldowns, transcripts):
    """Build an AgentRunner over the given provider -> backend map."""
    def _make(backends: dict, **kwargs):
        providers = ProviderRegistry(backends=backends)
        return AgentRunner(tool_registry, cooldowns, transcripts, providers, **kwargs)
    return _make


@pytest.fixture
def make_options(tmp_path):
    """Build RunOptions with fast=[fast/f1] and slow=[slow/s1] unless overridden."""
    def _make(fast=None, slow=None, agent=None, **kwargs):
        workspace = str(tmp_path / "workspace")
        global_models = {
            ModelGroup.FAST: [ModelCandidate("fast", "f1")] if fast is None else fast,
            ModelGroup.SLOW: [ModelCandidate("slow", "s1")] if slow is None else slow,
        }
        defaults = dict(
            messages=({"role": "user", "content": "hello"},),
            workspace_id="ws",
            workspace_path=workspace,
            agent=agent or AgentProfile(name="Tester"),
            session_id="sess-1",
            tool_context=ToolContext(workspace_id="ws", workspace_path=workspace,
                                     session_id="sess-1"),
            global_models=global_models,
        )
        defaults.update(kwargs)
        return RunOptions(**defaults)
    return _make
