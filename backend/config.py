"""
Configuration — internal constants for the execution engine.

User-configurable values (providers, model groups, escalation thresholds,
storage paths) come from settings.yaml via get_settings(). Execution limits
and user-facing messages remain as code constants.
"""

# ── Execution Limits (code constants, not user config) ──
MAX_ATTEMPTS = 3          # top-level attempts per run (caps escalation flapping)
MAX_TOOL_STEPS = 10       # tool-use steps per attempt
DEFAULT_TIMEOUT = 300     # seconds, per inference HTTP request
DEFAULT_MAX_TOKENS = 2048
DEFAULT_TEMPERATURE = 0.7

# ── User-facing Messages ──
NO_MODELS_MESSAGE = "No available models for this request."
ERROR_PREFIX = "Error during agent execution:"

# ── Cooldown durations per provider error category (ms) ──
COOLDOWN_DURATIONS_MS = {
    "rate_limit": 60_000,
    "timeout": 30_000,
    "unknown": 15_000,
    "billing": 300_000,
    "auth": 300_000,
    "format": 0,
}

# ── Transcript ──
TOOL_RESULT_LOG_CHARS = 500
PROMPT_SECTION_SEPARATOR = "\n\n---\n\n"

# ── Usage ──
USAGE_SUMMARY_DAYS = 30
