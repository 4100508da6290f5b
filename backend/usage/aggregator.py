"""Roll usage records up into totals and per-model, per-day, per-agent buckets."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field

from config import USAGE_SUMMARY_DAYS
from usage.pricing import CostBreakdown
from usage.tracker import TokenCounts, UsageRecord


class UsageBucket(BaseModel):
    tokens: TokenCounts = Field(default_factory=TokenCounts)
    cost: CostBreakdown = Field(default_factory=CostBreakdown)
    requests: int = 0

    def add(self, record: UsageRecord):
        self.tokens.input += record.tokens.input
        self.tokens.output += record.tokens.output
        self.tokens.total += record.tokens.total
        if record.cost is not None:
            self.cost.input += record.cost.input
            self.cost.output += record.cost.output
            self.cost.total += record.cost.total
        self.requests += 1


class UsageSummary(BaseModel):
    totals: UsageBucket = Field(default_factory=UsageBucket)
    by_model: dict[str, UsageBucket] = Field(default_factory=dict)
    by_day: dict[str, UsageBucket] = Field(default_factory=dict)
    by_agent: dict[str, UsageBucket] = Field(default_factory=dict)


def summarize_usage(records: list[UsageRecord], days: int = USAGE_SUMMARY_DAYS,
                    now: Optional[datetime] = None) -> UsageSummary:
    """Aggregate records from the last `days` days.

    Timestamps are ISO-8601 UTC strings, so the cutoff is a string compare
    and the day bucket is the first ten characters.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = (now - timedelta(days=days)).isoformat()

    summary = UsageSummary()
    for record in records:
        if record.timestamp < cutoff:
            continue
        summary.totals.add(record)
        summary.by_model.setdefault(f"{record.provider}/{record.model}", UsageBucket()).add(record)
        summary.by_day.setdefault(record.timestamp[:10], UsageBucket()).add(record)
        summary.by_agent.setdefault(record.agent_name, UsageBucket()).add(record)
    return summary
