"""Closed error taxonomy shared by the extraction pipeline and its entrypoints.

Every error carries a stable ``kind`` and the HTTP status the service layer
maps it to, so callers can tell "fix your input" (400) apart from processing
failures (500) without inspecting messages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


ProviderErrorKind = Literal["transient", "permanent"]


class LegalExtractError(Exception):
    """Base class for all pipeline errors."""

    kind: str = "internal_error"
    http_status: int = 500

    def to_dict(self) -> dict[str, object]:
        return {"kind": self.kind, "message": str(self)}


@dataclass(slots=True)
class InputError(LegalExtractError):
    """Caller supplied missing or invalid request fields."""

    message: str
    field_name: str | None = None

    kind = "input_error"
    http_status = 400

    def __str__(self) -> str:
        if self.field_name:
            return f"{self.message} (field={self.field_name})"
        return self.message


@dataclass(slots=True)
class UnsupportedFormat(LegalExtractError):
    """Payload format is not one the pipeline can turn into text."""

    mime_type: str | None
    message: str = "Unsupported document format"

    kind = "unsupported_format"

    def __str__(self) -> str:
        return f"{self.message} (mime_type={self.mime_type or 'unknown'})"


@dataclass(slots=True)
class BinaryDataDetected(LegalExtractError):
    """Text payload is contaminated with binary data above the threshold."""

    ratio: float
    threshold: float
    stage: str = "raw"

    kind = "binary_data_detected"

    def __str__(self) -> str:
        if self.stage == "signature":
            return "Binary data detected in text payload: document container signature found"
        return (
            f"Binary data detected in text payload: {self.ratio:.1%} non-text characters "
            f"exceeds {self.threshold:.0%} (stage={self.stage})"
        )


@dataclass(slots=True)
class EmptyResult(LegalExtractError):
    """Normalization produced no usable text."""

    message: str = "Document contains no extractable text"

    kind = "empty_result"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class ExtractionFailed(LegalExtractError):
    """Document conversion or chunk extraction failed as a whole."""

    reason: str
    message: str

    kind = "extraction_failed"

    def __str__(self) -> str:
        return f"{self.message} (reason={self.reason})"

    def to_dict(self) -> dict[str, object]:
        return {"kind": self.kind, "reason": self.reason, "message": str(self)}


@dataclass(slots=True)
class ProviderError(LegalExtractError):
    """Classified failure from an AI completion provider."""

    provider: str
    model: str
    error_kind: ProviderErrorKind
    message: str

    kind = "provider_error"

    @property
    def is_transient(self) -> bool:
        return self.error_kind == "transient"

    def __str__(self) -> str:
        return f"{self.message} (provider={self.provider}, model={self.model}, kind={self.error_kind})"


@dataclass(slots=True)
class FieldError:
    """One field-level validation failure inside an extraction payload."""

    index: int | None
    field_name: str
    message: str

    def to_dict(self) -> dict[str, object]:
        return {"index": self.index, "field": self.field_name, "message": self.message}


@dataclass(slots=True)
class SchemaInvalid(LegalExtractError):
    """Provider output does not have the required top-level shape."""

    message: str
    field_errors: list[FieldError] = field(default_factory=list)

    kind = "schema_invalid"

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind,
            "message": self.message,
            "fieldErrors": [error.to_dict() for error in self.field_errors],
        }
