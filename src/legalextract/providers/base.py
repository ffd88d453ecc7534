"""Shared contract for AI completion providers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class ProviderRequest:
    """One completion request; created per chunk attempt and discarded after parsing."""

    system_prompt: str
    user_prompt: str
    model: str


@runtime_checkable
class CompletionProvider(Protocol):
    """Uniform interface over interchangeable AI backends."""

    @property
    def name(self) -> str:
        ...

    @property
    def default_model(self) -> str:
        ...

    def complete(self, system_prompt: str, user_prompt: str, model: str) -> str:
        """Return raw completion text or raise ``ProviderError``."""

    def fallback_model_for(self, model: str) -> str | None:
        """Return a lower-capability model to retry with, if the family has one."""
