"""OpenAI-compatible chat completion providers: direct OpenAI and OpenRouter."""

from __future__ import annotations

import logging
from typing import Any

from legalextract.config import (
    DEFAULT_PROVIDER_TIMEOUT_SECONDS,
    OpenAISettings,
    OpenRouterSettings,
)
from legalextract.errors import ProviderError, ProviderErrorKind

logger = logging.getLogger(__name__)

_TRANSIENT_STATUS_CODES = {408, 409, 429, 500, 502, 503, 504}
_TRANSIENT_ERROR_NAMES = {
    "RateLimitError",
    "APITimeoutError",
    "APIConnectionError",
    "InternalServerError",
}

DIRECT_TEMPERATURE = 0.1
DIRECT_MAX_TOKENS = 2000
SDK_TIMEOUT_FRACTION = 0.9


def _build_default_client(*, api_key: str, base_url: str, timeout_seconds: float, provider: str) -> Any:
    try:
        from openai import OpenAI
    except Exception as exc:  # pragma: no cover - environment-dependent
        raise ProviderError(
            provider=provider,
            model="-",
            error_kind="permanent",
            message=f"OpenAI SDK unavailable: {exc}",
        ) from exc

    # Retries are owned by the extraction orchestrator, not the SDK. The SDK
    # timeout stays below the orchestrator timeout so an abandoned call ends in its thread.
    return OpenAI(
        api_key=api_key,
        base_url=base_url,
        timeout=timeout_seconds * SDK_TIMEOUT_FRACTION,
        max_retries=0,
    )


def classify_error(exc: BaseException) -> ProviderErrorKind:
    """Classify an SDK or transport failure as transient or permanent."""

    status_code = getattr(exc, "status_code", None)
    if status_code in _TRANSIENT_STATUS_CODES:
        return "transient"

    if getattr(exc, "code", None) == "rate_limit_exceeded":
        return "transient"

    if isinstance(exc, (TimeoutError, ConnectionError)):
        return "transient"

    if type(exc).__name__ in _TRANSIENT_ERROR_NAMES:
        return "transient"
    return "permanent"


def _completion_text(response: Any, *, provider: str, model: str) -> str:
    choices = getattr(response, "choices", None)
    if choices is None and isinstance(response, dict):
        choices = response.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ProviderError(
            provider=provider,
            model=model,
            error_kind="permanent",
            message="Completion response has no choices",
        )

    first = choices[0]
    message = getattr(first, "message", None)
    content = getattr(message, "content", None) if message is not None else None
    if content is None and isinstance(first, dict):
        message_dict = first.get("message", {})
        if isinstance(message_dict, dict):
            content = message_dict.get("content")

    if not isinstance(content, str):
        raise ProviderError(
            provider=provider,
            model=model,
            error_kind="permanent",
            message=f"Completion content is not a string: {type(content).__name__}",
        )
    return content


class ChatCompletionProvider:
    """Chat-completions wrapper shared by OpenAI-compatible provider families."""

    name = "chat"

    def __init__(
        self,
        *,
        client: Any,
        default_model: str,
        temperature: float = DIRECT_TEMPERATURE,
        max_tokens: int = DIRECT_MAX_TOKENS,
    ) -> None:
        if not default_model.strip():
            raise ValueError("default_model cannot be empty")
        if max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")

        self._client = client
        self._default_model = default_model.strip()
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def default_model(self) -> str:
        return self._default_model

    def fallback_model_for(self, model: str) -> str | None:
        return None

    def complete(self, system_prompt: str, user_prompt: str, model: str) -> str:
        model_id = (model or "").strip() or self._default_model
        if not user_prompt.strip():
            raise ValueError("user_prompt cannot be empty")

        try:
            response = self._client.chat.completions.create(
                model=model_id,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except Exception as exc:
            error_kind = classify_error(exc)
            logger.debug("%s completion failed for %s (%s): %s", self.name, model_id, error_kind, exc)
            raise ProviderError(
                provider=self.name,
                model=model_id,
                error_kind=error_kind,
                message=f"Completion request failed: {exc}",
            ) from exc

        return _completion_text(response, provider=self.name, model=model_id)


class OpenAIProvider(ChatCompletionProvider):
    """Direct family: one configured OpenAI model with a cheaper downgrade target."""

    name = "openai"

    def __init__(
        self,
        settings: OpenAISettings,
        *,
        client: Any | None = None,
        timeout_seconds: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(
            client=client
            or _build_default_client(
                api_key=settings.api_key,
                base_url=settings.base_url,
                timeout_seconds=timeout_seconds,
                provider=self.name,
            ),
            default_model=settings.model,
        )
        self._fallback_model = settings.fallback_model
        self._downgrade_prefixes = settings.downgrade_prefixes

    def fallback_model_for(self, model: str) -> str | None:
        """Only high-capability models (by name prefix) step down to the fallback."""

        if model == self._fallback_model or not model.startswith(self._downgrade_prefixes):
            return None
        return self._fallback_model


class OpenRouterProvider(ChatCompletionProvider):
    """Aggregator family: routes the same request shape to any OpenRouter model."""

    name = "openrouter"

    def __init__(
        self,
        settings: OpenRouterSettings,
        *,
        client: Any | None = None,
        timeout_seconds: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(
            client=client
            or _build_default_client(
                api_key=settings.api_key,
                base_url=settings.base_url,
                timeout_seconds=timeout_seconds,
                provider=self.name,
            ),
            default_model=settings.default_model,
        )
