"""
Provider failure classification.

When a provider call fails mid-stream the execution loop classifies the
error, puts the candidate on cooldown for a category-specific duration, and
converts the failure into a response. Nothing is retried against the same
model within a run.
"""

import logging

import httpx

from config import COOLDOWN_DURATIONS_MS

logger = logging.getLogger(__name__)

ERROR_CATEGORIES = ("billing", "rate_limit", "auth", "timeout", "format", "unknown")


class ProviderInvocationError(Exception):
    """A provider call failed while streaming a completion."""

    def __init__(self, provider: str, model: str, category: str, cause: BaseException):
        super().__init__(str(cause) or cause.__class__.__name__)
        self.provider = provider
        self.model = model
        self.category = category
        self.cause = cause


def _status_of(error: BaseException):
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return getattr(error, "status", None) or getattr(error, "status_code", None)


def classify_error(error: BaseException) -> str:
    """Bucket a provider failure into one of ERROR_CATEGORIES."""
    message = str(error).lower()
    status = _status_of(error)

    if isinstance(error, httpx.TimeoutException):
        return "timeout"

    # Rate limiting
    if (status == 429 or "rate limit" in message or "rate_limit" in message
            or "too many requests" in message):
        return "rate_limit"

    # Auth / permissions
    if (status in (401, 403) or "unauthorized" in message or "forbidden" in message
            or "api key" in message):
        return "auth"

    # Billing / quota
    if (status == 402 or "billing" in message or "quota" in message
            or "insufficient" in message or "exceeded" in message):
        return "billing"

    # Timeouts and dropped connections
    if (isinstance(error, httpx.TransportError) or "timeout" in message
            or "timed out" in message or "econnreset" in message):
        return "timeout"

    # Format / validation
    if (status in (400, 422) or "invalid" in message or "malformed" in message
            or "bad request" in message):
        return "format"

    return "unknown"


def cooldown_ms(category: str) -> int:
    return COOLDOWN_DURATIONS_MS.get(category, COOLDOWN_DURATIONS_MS["unknown"])


def apply_cooldown(cooldowns, provider: str, model: str, error: BaseException) -> str:
    """Classify an error and cool the candidate down accordingly. Returns the category."""
    category = classify_error(error)
    duration = cooldown_ms(category)
    if duration > 0:
        cooldowns.mark_unavailable(provider, model, duration)
    logger.warning("Provider %s/%s failed (%s): %s", provider, model, category, error)
    return category
