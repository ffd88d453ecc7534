"""Runtime configuration for providers and the extraction pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import os
import re
from typing import Mapping


DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_OPENAI_FALLBACK_MODEL = "gpt-3.5-turbo"
DEFAULT_OPENAI_DOWNGRADE_PREFIXES = ("gpt-4",)
DEFAULT_OPENROUTER_MODEL = "openai/gpt-4o-mini"
DEFAULT_CHUNK_SIZE = 2000
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_CONCURRENCY = 4
DEFAULT_BACKOFF_BASE_SECONDS = 1.0
DEFAULT_BACKOFF_MAX_SECONDS = 8.0
DEFAULT_PROVIDER_TIMEOUT_SECONDS = 60.0
DEFAULT_OCR_LANGUAGE = "eng"
DEFAULT_OCR_COVERAGE_THRESHOLD = 0.001
DEFAULT_OCR_DPI = 300

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})
_OCR_LANGUAGE_RE = re.compile(r"[A-Za-z_]+(?:\+[A-Za-z_]+)*")


class DowngradeScope(str, Enum):
    """How long a model downgrade after a transient failure stays in effect."""

    CHUNK = "chunk"
    EXTRACTION = "extraction"


def _parse_positive_int(*, name: str, raw_value: str, minimum: int = 1) -> int:
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _parse_positive_float(*, name: str, raw_value: str, minimum: float = 0.0) -> float:
    try:
        value = float(raw_value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _parse_bool(*, name: str, raw_value: str) -> bool:
    value = raw_value.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be one of: true, false")


def _parse_prefixes(raw_value: str) -> tuple[str, ...]:
    return tuple(prefix.strip() for prefix in raw_value.split(",") if prefix.strip())


def _validate_base_url(*, name: str, raw_value: str) -> str:
    base_url = raw_value.strip()
    if not base_url:
        raise ValueError(f"{name} cannot be empty")
    if not (base_url.startswith("http://") or base_url.startswith("https://")):
        raise ValueError(f"{name} must start with http:// or https://")
    return base_url.rstrip("/")


@dataclass(frozen=True, slots=True)
class OpenAISettings:
    """Direct OpenAI provider settings: one fixed model plus its downgrade target."""

    api_key: str
    model: str = DEFAULT_OPENAI_MODEL
    fallback_model: str = DEFAULT_OPENAI_FALLBACK_MODEL
    base_url: str = DEFAULT_OPENAI_BASE_URL
    downgrade_prefixes: tuple[str, ...] = DEFAULT_OPENAI_DOWNGRADE_PREFIXES

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "OpenAISettings | None":
        source: Mapping[str, str] = os.environ if environ is None else environ

        api_key = source.get("OPENAI_API_KEY", "").strip()
        if not api_key:
            return None

        model = source.get("OPENAI_MODEL", DEFAULT_OPENAI_MODEL).strip()
        fallback_model = source.get("OPENAI_FALLBACK_MODEL", DEFAULT_OPENAI_FALLBACK_MODEL).strip()
        if not model:
            raise ValueError("OPENAI_MODEL cannot be empty")
        if not fallback_model:
            raise ValueError("OPENAI_FALLBACK_MODEL cannot be empty")

        base_url = _validate_base_url(
            name="OPENAI_BASE_URL",
            raw_value=source.get("OPENAI_BASE_URL", DEFAULT_OPENAI_BASE_URL),
        )
        downgrade_prefixes = _parse_prefixes(
            source.get("OPENAI_DOWNGRADE_MODEL_PREFIXES", ",".join(DEFAULT_OPENAI_DOWNGRADE_PREFIXES))
        )
        return cls(
            api_key=api_key,
            model=model,
            fallback_model=fallback_model,
            base_url=base_url,
            downgrade_prefixes=downgrade_prefixes,
        )


@dataclass(frozen=True, slots=True)
class OpenRouterSettings:
    """Aggregator settings for routing to third-party models through OpenRouter."""

    api_key: str
    default_model: str = DEFAULT_OPENROUTER_MODEL
    base_url: str = DEFAULT_OPENROUTER_BASE_URL

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "OpenRouterSettings | None":
        source: Mapping[str, str] = os.environ if environ is None else environ

        api_key = source.get("OPENROUTER_API_KEY", "").strip()
        if not api_key:
            return None

        default_model = source.get("OPENROUTER_DEFAULT_MODEL", DEFAULT_OPENROUTER_MODEL).strip()
        if not default_model:
            raise ValueError("OPENROUTER_DEFAULT_MODEL cannot be empty")

        base_url = _validate_base_url(
            name="OPENROUTER_BASE_URL",
            raw_value=source.get("OPENROUTER_BASE_URL", DEFAULT_OPENROUTER_BASE_URL),
        )
        return cls(api_key=api_key, default_model=default_model, base_url=base_url)


@dataclass(frozen=True, slots=True)
class ExtractionSettings:
    """Chunking, retry and concurrency knobs for the extraction orchestrator."""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    concurrency: int = DEFAULT_CONCURRENCY
    backoff_base_seconds: float = DEFAULT_BACKOFF_BASE_SECONDS
    backoff_max_seconds: float = DEFAULT_BACKOFF_MAX_SECONDS
    provider_timeout_seconds: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS
    downgrade_scope: DowngradeScope = DowngradeScope.CHUNK

    def __post_init__(self) -> None:
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.backoff_base_seconds < 0:
            raise ValueError("backoff_base_seconds cannot be negative")
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError("backoff_max_seconds must be >= backoff_base_seconds")
        if self.provider_timeout_seconds <= 0:
            raise ValueError("provider_timeout_seconds must be positive")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ExtractionSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        scope_raw = source.get("MODEL_DOWNGRADE_SCOPE", DowngradeScope.CHUNK.value).strip().lower()
        try:
            downgrade_scope = DowngradeScope(scope_raw)
        except ValueError as exc:
            allowed = ", ".join(scope.value for scope in DowngradeScope)
            raise ValueError(f"MODEL_DOWNGRADE_SCOPE must be one of: {allowed}") from exc

        return cls(
            chunk_size=_parse_positive_int(
                name="EXTRACTION_CHUNK_SIZE",
                raw_value=source.get("EXTRACTION_CHUNK_SIZE", str(DEFAULT_CHUNK_SIZE)).strip(),
                minimum=100,
            ),
            max_attempts=_parse_positive_int(
                name="EXTRACTION_MAX_ATTEMPTS",
                raw_value=source.get("EXTRACTION_MAX_ATTEMPTS", str(DEFAULT_MAX_ATTEMPTS)).strip(),
            ),
            concurrency=_parse_positive_int(
                name="EXTRACTION_CONCURRENCY",
                raw_value=source.get("EXTRACTION_CONCURRENCY", str(DEFAULT_CONCURRENCY)).strip(),
            ),
            backoff_base_seconds=_parse_positive_float(
                name="EXTRACTION_BACKOFF_BASE_SECONDS",
                raw_value=source.get("EXTRACTION_BACKOFF_BASE_SECONDS", str(DEFAULT_BACKOFF_BASE_SECONDS)).strip(),
            ),
            backoff_max_seconds=_parse_positive_float(
                name="EXTRACTION_BACKOFF_MAX_SECONDS",
                raw_value=source.get("EXTRACTION_BACKOFF_MAX_SECONDS", str(DEFAULT_BACKOFF_MAX_SECONDS)).strip(),
            ),
            provider_timeout_seconds=_parse_positive_float(
                name="PROVIDER_TIMEOUT_SECONDS",
                raw_value=source.get("PROVIDER_TIMEOUT_SECONDS", str(DEFAULT_PROVIDER_TIMEOUT_SECONDS)).strip(),
                minimum=1.0,
            ),
            downgrade_scope=downgrade_scope,
        )


@dataclass(frozen=True, slots=True)
class OcrSettings:
    """Tesseract fallback for PDF pages that have no usable text layer."""

    enabled: bool = True
    language: str = DEFAULT_OCR_LANGUAGE
    # Embedded characters per pt²; an A4 page below 0.001 has fewer than ~500.
    coverage_threshold: float = DEFAULT_OCR_COVERAGE_THRESHOLD
    dpi: int = DEFAULT_OCR_DPI

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "OcrSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        language = source.get("OCR_LANGUAGE", DEFAULT_OCR_LANGUAGE).strip()
        if not _OCR_LANGUAGE_RE.fullmatch(language):
            raise ValueError("OCR_LANGUAGE must be Tesseract language codes such as eng or eng+rus")

        return cls(
            enabled=_parse_bool(name="OCR_ENABLED", raw_value=source.get("OCR_ENABLED", "true")),
            language=language,
            coverage_threshold=_parse_positive_float(
                name="OCR_COVERAGE_THRESHOLD",
                raw_value=source.get("OCR_COVERAGE_THRESHOLD", str(DEFAULT_OCR_COVERAGE_THRESHOLD)).strip(),
            ),
            dpi=_parse_positive_int(
                name="OCR_DPI",
                raw_value=source.get("OCR_DPI", str(DEFAULT_OCR_DPI)).strip(),
                minimum=72,
            ),
        )


@dataclass(frozen=True, slots=True)
class AppSettings:
    """Validated settings for the whole extraction service."""

    openai: OpenAISettings | None = None
    openrouter: OpenRouterSettings | None = None
    extraction: ExtractionSettings = field(default_factory=ExtractionSettings)
    ocr: OcrSettings = field(default_factory=OcrSettings)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AppSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        openai_settings = OpenAISettings.from_env(source)
        openrouter_settings = OpenRouterSettings.from_env(source)
        if openai_settings is None and openrouter_settings is None:
            raise ValueError("Missing provider credentials: set OPENAI_API_KEY and/or OPENROUTER_API_KEY")

        return cls(
            openai=openai_settings,
            openrouter=openrouter_settings,
            extraction=ExtractionSettings.from_env(source),
            ocr=OcrSettings.from_env(source),
        )
