"""Model pricing table and cost estimation (USD per 1M tokens)."""

from pydantic import BaseModel


class CostBreakdown(BaseModel):
    input: float = 0.0
    output: float = 0.0
    total: float = 0.0


# (input, output) USD per 1M tokens. Updated manually when providers change prices.
MODEL_PRICING: dict[str, tuple[float, float]] = {
    # OpenAI
    "gpt-4o": (2.50, 10.00),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o-2024-11-20": (2.50, 10.00),
    "gpt-4-turbo": (10.00, 30.00),
    "gpt-4": (30.00, 60.00),
    "gpt-3.5-turbo": (0.50, 1.50),
    # Anthropic
    "claude-sonnet-4-20250514": (3.00, 15.00),
    "claude-3-5-sonnet-20241022": (3.00, 15.00),
    "claude-3-5-haiku-20241022": (0.80, 4.00),
    "claude-3-opus-20240229": (15.00, 75.00),
    "claude-3-haiku-20240307": (0.25, 1.25),
    # Google
    "gemini-2.0-flash": (0.10, 0.40),
}


def estimate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> CostBreakdown:
    """Cost of a completion. Models missing from the table (local ones) cost zero."""
    pricing = MODEL_PRICING.get(model)
    if not pricing:
        return CostBreakdown()
    input_cost = prompt_tokens / 1_000_000 * pricing[0]
    output_cost = completion_tokens / 1_000_000 * pricing[1]
    return CostBreakdown(input=input_cost, output=output_cost, total=input_cost + output_cost)
