"""
Session transcripts — append-only conversation history per session.

Each session is persisted as `<data_dir>/sessions/<session_id>.jsonl`, one
TranscriptEntry per line. Appends for the same session are serialized with a
per-file asyncio.Lock; file IO runs in a worker thread so the event loop is
never blocked.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"[^A-Za-z0-9_.\-]")


class TranscriptEntry(BaseModel):
    timestamp: str
    role: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class TranscriptStore:
    """Interface the execution loop writes transcripts through."""

    async def append_transcript(self, session_id: str, entry: TranscriptEntry):
        raise NotImplementedError

    async def get_transcript(self, session_id: str,
                             limit: Optional[int] = None) -> list[TranscriptEntry]:
        raise NotImplementedError


class JsonlTranscriptStore(TranscriptStore):
    def __init__(self, data_dir):
        self.root = Path(data_dir) / "sessions"
        self._locks: dict[str, asyncio.Lock] = {}

    def _path(self, session_id: str) -> Path:
        # Session ids come from channels; keep them inside the sessions dir
        safe = _SAFE_ID.sub("_", session_id) or "_"
        return self.root / f"{safe}.jsonl"

    def _lock_for(self, path: Path) -> asyncio.Lock:
        key = str(path)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def _write_line(self, path: Path, line: str):
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def _read_lines(self, path: Path) -> list[str]:
        if not path.exists():
            return []
        with open(path, encoding="utf-8") as f:
            return [line for line in f if line.strip()]

    async def append_transcript(self, session_id: str, entry: TranscriptEntry):
        path = self._path(session_id)
        async with self._lock_for(path):
            await asyncio.to_thread(self._write_line, path, entry.model_dump_json())

    async def get_transcript(self, session_id: str,
                             limit: Optional[int] = None) -> list[TranscriptEntry]:
        """Entries in append order; `limit` keeps only the most recent ones."""
        path = self._path(session_id)
        async with self._lock_for(path):
            lines = await asyncio.to_thread(self._read_lines, path)

        entries = []
        for line in lines:
            try:
                entries.append(TranscriptEntry.model_validate_json(line))
            except ValidationError as e:
                logger.warning("Skipping corrupt transcript line in %s: %s", path.name, e)
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return entries
