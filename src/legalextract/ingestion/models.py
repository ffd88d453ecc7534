"""Canonical data structures shared by the normalizer and converter adapters."""

from __future__ import annotations

from dataclasses import dataclass

PDF_MIME_TYPE = "application/pdf"
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
LEGACY_DOC_MIME_TYPE = "application/msword"
TEXT_MIME_TYPE = "text/plain"


@dataclass(frozen=True, slots=True)
class DocumentBlob:
    """Raw upload payload with the MIME type the caller declared, if any."""

    data: bytes
    mime_type: str | None = None

    @property
    def declared_mime_type(self) -> str | None:
        if self.mime_type is None:
            return None
        cleaned = self.mime_type.split(";", 1)[0].strip().lower()
        return cleaned or None


@dataclass(frozen=True, slots=True)
class PreparedDocument:
    """Normalized text ready for chunked extraction."""

    text: str
    mime_type: str
    source_length: int
