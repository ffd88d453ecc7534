"""Provider lookup by the explicit ``apiType`` discriminator."""

from __future__ import annotations

import logging
from typing import Any

from legalextract.config import AppSettings
from legalextract.errors import InputError
from legalextract.providers.base import CompletionProvider
from legalextract.providers.openai_compat import OpenAIProvider, OpenRouterProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Providers keyed by api type; built once at process start."""

    def __init__(self) -> None:
        self._providers: dict[str, CompletionProvider] = {}

    @property
    def api_types(self) -> list[str]:
        return sorted(self._providers)

    def register(self, api_type: str, provider: CompletionProvider) -> None:
        key = api_type.strip().lower()
        if not key:
            raise ValueError("api_type cannot be empty")
        self._providers[key] = provider

    def get(self, api_type: str) -> CompletionProvider:
        key = (api_type or "").strip().lower()
        provider = self._providers.get(key)
        if provider is None:
            available = ", ".join(self.api_types) or "none"
            raise InputError(f"Unknown apiType '{api_type}'; configured: {available}", field_name="apiType")
        return provider


def build_provider_registry(settings: AppSettings, *, clients: dict[str, Any] | None = None) -> ProviderRegistry:
    """Construct one provider per configured family."""

    injected = clients or {}
    registry = ProviderRegistry()
    timeout = settings.extraction.provider_timeout_seconds

    if settings.openai is not None:
        registry.register(
            OpenAIProvider.name,
            OpenAIProvider(settings.openai, client=injected.get(OpenAIProvider.name), timeout_seconds=timeout),
        )
    if settings.openrouter is not None:
        registry.register(
            OpenRouterProvider.name,
            OpenRouterProvider(settings.openrouter, client=injected.get(OpenRouterProvider.name), timeout_seconds=timeout),
        )

    logger.info("Configured provider families: %s", ", ".join(registry.api_types) or "none")
    return registry
