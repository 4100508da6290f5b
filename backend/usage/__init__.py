from usage.aggregator import UsageBucket, UsageSummary, summarize_usage
from usage.pricing import MODEL_PRICING, CostBreakdown, estimate_cost
from usage.tracker import TokenCounts, UsageRecord, UsageTracker

__all__ = [
    "CostBreakdown",
    "MODEL_PRICING",
    "TokenCounts",
    "UsageBucket",
    "UsageRecord",
    "UsageSummary",
    "UsageTracker",
    "estimate_cost",
    "summarize_usage",
]
