"""
Usage tracker — one JSONL line per completed agent run.

Records live at `<data_dir>/usage.jsonl`. Appends are serialized with an
asyncio.Lock and run in a worker thread.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from usage.pricing import CostBreakdown

logger = logging.getLogger(__name__)


class TokenCounts(BaseModel):
    input: int = 0
    output: int = 0
    total: int = 0


class UsageRecord(BaseModel):
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    workspace_id: str
    session_id: str
    provider: str
    model: str
    agent_name: str
    model_group: Literal["fast", "slow"]
    tokens: TokenCounts
    cost: Optional[CostBreakdown] = None
    channel_type: Optional[str] = None


class UsageTracker:
    def __init__(self, data_dir):
        self.path = Path(data_dir) / "usage.jsonl"
        self._lock = asyncio.Lock()

    def _append(self, line: str):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def _read(self) -> list[str]:
        if not self.path.exists():
            return []
        with open(self.path, encoding="utf-8") as f:
            return [line for line in f if line.strip()]

    async def record(self, entry: UsageRecord):
        async with self._lock:
            await asyncio.to_thread(self._append, entry.model_dump_json())

    async def read_all(self) -> list[UsageRecord]:
        async with self._lock:
            lines = await asyncio.to_thread(self._read)
        records = []
        for line in lines:
            try:
                records.append(UsageRecord.model_validate_json(line))
            except ValidationError as e:
                logger.warning("Skipping corrupt usage line: %s", e)
        return records
