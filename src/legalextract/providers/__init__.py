"""AI completion providers and the api-type registry."""

from .base import CompletionProvider, ProviderRequest
from .openai_compat import OpenAIProvider, OpenRouterProvider, classify_error
from .registry import ProviderRegistry, build_provider_registry

__all__ = [
    "CompletionProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
    "ProviderRegistry",
    "ProviderRequest",
    "build_provider_registry",
    "classify_error",
]
