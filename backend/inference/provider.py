"""
ProviderRegistry — maps configured provider names to backend adapters.

Reads `settings.providers` to instantiate one adapter per enabled provider.
`resolve(provider, model)` turns a model candidate into a ModelHandle bound
to the right adapter, or None when the provider is unknown or disabled. The
model selector treats None as "skip this candidate".

Usage:
    from inference import get_provider_registry
    providers = get_provider_registry()
    handle = providers.resolve("openai", "gpt-4o-mini")
"""

import logging
from dataclasses import dataclass
from typing import Optional

from inference.base import InferenceBackend
from inference.ollama import OllamaBackend
from inference.openai_compat import OpenAICompatBackend

logger = logging.getLogger(__name__)

# Map of provider type strings to adapter classes
_BACKEND_CLASSES: dict[str, type[InferenceBackend]] = {
    "openai": OpenAICompatBackend,
    "ollama": OllamaBackend,
}


@dataclass(frozen=True)
class ModelHandle:
    """A ready-to-invoke model: adapter plus the model id it should be sent."""
    provider: str
    model_id: str
    backend: InferenceBackend

    @property
    def label(self) -> str:
        return f"{self.provider}/{self.model_id}"


class ProviderRegistry:
    """Resolves (provider, model) pairs to handles on configured adapters."""

    def __init__(self, settings=None, backends: dict[str, InferenceBackend] = None):
        self._backends: dict[str, InferenceBackend] = dict(backends or {})
        if settings is not None:
            self.initialize(settings)

    def initialize(self, settings):
        """Build backend adapters from settings. Safe to call again after a reload."""
        self._backends.clear()
        for provider_cfg in settings.providers:
            if not provider_cfg.enabled:
                logger.info("Skipping disabled provider: %s", provider_cfg.name)
                continue

            provider_type = provider_cfg.type.lower()
            adapter_cls = _BACKEND_CLASSES.get(provider_type)
            if adapter_cls is None:
                logger.error(
                    "Unknown provider type '%s' for provider '%s'. "
                    "Supported types: %s",
                    provider_type, provider_cfg.name,
                    ", ".join(_BACKEND_CLASSES.keys()),
                )
                continue

            self._backends[provider_cfg.name] = adapter_cls(
                base_url=provider_cfg.endpoint,
                default_timeout=provider_cfg.timeout,
                api_key=provider_cfg.api_key,
            )
            logger.info(
                "Registered provider '%s' (%s) at %s",
                provider_cfg.name, provider_type, provider_cfg.endpoint,
            )

        if not self._backends:
            logger.warning("No providers configured or enabled")

    def register(self, name: str, backend: InferenceBackend):
        """Register an adapter under a provider name directly."""
        self._backends[name] = backend

    def resolve(self, provider: str, model: str) -> Optional[ModelHandle]:
        """Return a handle for the model, or None if the provider can't serve it."""
        backend = self._backends.get(provider)
        if backend is None or not model:
            return None
        return ModelHandle(provider=provider, model_id=model, backend=backend)

    def get_backend(self, name: str) -> Optional[InferenceBackend]:
        return self._backends.get(name)

    @property
    def providers(self) -> list[str]:
        """Names of all registered providers."""
        return list(self._backends)


# ── Singleton ──

_registry: Optional[ProviderRegistry] = None


def get_provider_registry() -> ProviderRegistry:
    """Return the global ProviderRegistry. Initializes from settings on first call."""
    global _registry
    if _registry is None:
        from settings import get_settings
        _registry = ProviderRegistry(get_settings())
    return _registry
