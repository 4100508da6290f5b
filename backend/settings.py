"""
Settings — loads settings.yaml and provides validated configuration.

The settings file is the single source of truth for user-configurable values:
inference providers, the fast/slow model candidate lists, per-workspace model
overrides, escalation thresholds, storage location and log level.

Usage:
    from settings import get_settings
    settings = get_settings()
    print(settings.models.fast)
"""

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from routing.escalation import EscalationConfig
from routing.selector import ModelCandidate, ModelGroup

logger = logging.getLogger(__name__)

# ── Settings Path Resolution ──
_PROJECT_ROOT = Path(__file__).parent.parent
_DEFAULT_SETTINGS_PATH = _PROJECT_ROOT / "settings.yaml"


# ── Dataclasses ──

@dataclass
class ProviderConfig:
    name: str = "default"
    type: str = "openai"  # openai | ollama
    endpoint: str = "http://localhost:1234"
    api_key_env: str = ""  # name of the env var holding the API key, if any
    enabled: bool = True
    timeout: float = 300

    @property
    def api_key(self) -> str:
        return os.environ.get(self.api_key_env, "") if self.api_key_env else ""


@dataclass
class ModelsConfig:
    fast: list[ModelCandidate] = field(default_factory=list)
    slow: list[ModelCandidate] = field(default_factory=list)

    def as_mapping(self) -> dict[ModelGroup, list[ModelCandidate]]:
        return {ModelGroup.FAST: list(self.fast), ModelGroup.SLOW: list(self.slow)}


@dataclass
class EscalationSettings:
    max_tool_call_depth: int = 3
    token_threshold: int = 4000

    def to_config(self) -> EscalationConfig:
        return EscalationConfig(
            max_tool_call_depth=self.max_tool_call_depth,
            token_threshold=self.token_threshold,
        )


@dataclass
class StorageConfig:
    data_dir: str = str(_PROJECT_ROOT / "data")


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class Settings:
    providers: list[ProviderConfig] = field(default_factory=lambda: [ProviderConfig()])
    models: ModelsConfig = field(default_factory=ModelsConfig)
    workspaces: dict[str, ModelsConfig] = field(default_factory=dict)
    escalation: EscalationSettings = field(default_factory=EscalationSettings)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def get_provider(self, name: str) -> Optional[ProviderConfig]:
        """Get a provider config by name."""
        for p in self.providers:
            if p.name == name:
                return p
        return None

    def workspace_models(self, workspace_id: str) -> Optional[dict[ModelGroup, list[ModelCandidate]]]:
        """Workspace-specific candidate lists, or None when there are no overrides."""
        override = self.workspaces.get(workspace_id)
        if override is None:
            return None
        result = {}
        if override.fast:
            result[ModelGroup.FAST] = list(override.fast)
        if override.slow:
            result[ModelGroup.SLOW] = list(override.slow)
        return result or None


# ── Parsing ──

def _parse_dict(data: dict, cls, **overrides):
    """Create a dataclass instance from a dict, ignoring unknown keys."""
    field_names = {f.name for f in dataclasses.fields(cls)}
    filtered = {k: v for k, v in data.items() if k in field_names}
    filtered.update(overrides)
    return cls(**filtered)


def _parse_candidates(raw, where: str) -> list[ModelCandidate]:
    """Parse a candidate list, skipping malformed entries."""
    candidates = []
    if not isinstance(raw, list):
        return candidates
    for entry in raw:
        if isinstance(entry, dict) and entry.get("provider") and entry.get("model"):
            candidates.append(ModelCandidate.from_dict(entry))
        elif isinstance(entry, str) and "/" in entry:
            provider, _, model = entry.partition("/")
            candidates.append(ModelCandidate(provider=provider, model=model))
        else:
            logger.warning("Skipping malformed model candidate in %s: %r", where, entry)
    return candidates


def _parse_models(raw: dict, where: str) -> ModelsConfig:
    # Accept both `fast: [...]` and `fast: {candidates: [...]}`
    models = ModelsConfig()
    for group in ModelGroup:
        group_raw = raw.get(group.value)
        if isinstance(group_raw, dict):
            group_raw = group_raw.get("candidates", [])
        setattr(models, group.value,
                _parse_candidates(group_raw, f"{where}.{group.value}"))
    return models


def load_settings_from_dict(raw: dict) -> Settings:
    """Parse a raw YAML dict into a Settings dataclass."""
    settings = Settings()

    # Providers
    if isinstance(raw.get("providers"), list):
        providers = [
            _parse_dict(p, ProviderConfig) for p in raw["providers"] if isinstance(p, dict)
        ]
        settings.providers = providers or [ProviderConfig()]

    # Model groups
    if isinstance(raw.get("models"), dict):
        settings.models = _parse_models(raw["models"], "models")

    # Per-workspace overrides
    if isinstance(raw.get("workspaces"), dict):
        for ws_id, ws_raw in raw["workspaces"].items():
            if isinstance(ws_raw, dict):
                models_raw = ws_raw.get("models", ws_raw)
                if isinstance(models_raw, dict):
                    settings.workspaces[str(ws_id)] = _parse_models(
                        models_raw, f"workspaces.{ws_id}")

    # Escalation
    if isinstance(raw.get("escalation"), dict):
        settings.escalation = _parse_dict(raw["escalation"], EscalationSettings)

    # Storage
    if isinstance(raw.get("storage"), dict):
        settings.storage = _parse_dict(raw["storage"], StorageConfig)

    # Logging
    if isinstance(raw.get("logging"), dict):
        settings.logging = _parse_dict(raw["logging"], LoggingConfig)

    return settings


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load settings from a YAML file. Falls back to defaults if missing."""
    if path is None:
        env_path = os.environ.get("SWITCHYARD_SETTINGS")
        path = Path(env_path) if env_path else _DEFAULT_SETTINGS_PATH
    path = Path(path)

    if not path.exists():
        logger.info("No settings file found at %s, using defaults", path)
        return Settings()

    try:
        raw = yaml.safe_load(path.read_text()) or {}
        if not isinstance(raw, dict):
            logger.warning("%s is not a valid YAML mapping, using defaults", path)
            return Settings()
        settings = load_settings_from_dict(raw)
        logger.info("Settings loaded: providers=%s, fast=%d, slow=%d",
                    [p.name for p in settings.providers],
                    len(settings.models.fast), len(settings.models.slow))
        return settings
    except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
        logger.error("Failed to load %s: %s, using defaults", path, e)
        return Settings()


# ── Singleton ──

_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the settings singleton. Loads on first call."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reload_settings() -> Settings:
    """Force reload of the settings from disk."""
    global _settings
    _settings = load_settings()
    return _settings
