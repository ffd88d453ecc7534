"""Routing entrypoint for converter adapters and document preparation."""

from __future__ import annotations

import logging

from legalextract.errors import ExtractionFailed, UnsupportedFormat
from legalextract.ingestion.adapters.base import ConverterAdapter
from legalextract.ingestion.models import DocumentBlob, PreparedDocument
from legalextract.ingestion.normalization import (
    is_text_mime_type,
    normalize,
    normalize_text_content,
    resolve_mime_type,
)

logger = logging.getLogger(__name__)

_GENERIC_MIME_TYPES = frozenset({"application/octet-stream", "binary/octet-stream"})


class DocumentConverter:
    """Resolve the adapter for a MIME type and return its raw extracted text."""

    def __init__(self) -> None:
        self._adapter_map: dict[str, ConverterAdapter] = {}

    @property
    def adapter_map(self) -> dict[str, ConverterAdapter]:
        """Registered adapters keyed by adapter name."""

        return dict(self._adapter_map)

    def register_adapter(self, name: str, adapter: ConverterAdapter) -> None:
        """Register an adapter implementation by key."""

        if not name:
            raise ValueError("Adapter name cannot be empty")
        self._adapter_map[name] = adapter

    def extract_text(self, data: bytes, mime_type: str) -> str:
        """Extract raw text; empty extractor output is a conversion failure."""

        for name, adapter in self._adapter_map.items():
            if not adapter.supports(mime_type):
                continue

            try:
                text = adapter.extract(data)
            except Exception as exc:
                logger.warning("Adapter %s failed on %s payload: %s", name, mime_type, exc)
                raise ExtractionFailed(
                    reason="conversion_failed",
                    message=f"Failed to convert {mime_type} document: {exc}",
                ) from exc

            if not isinstance(text, str) or not text.strip():
                raise ExtractionFailed(
                    reason="conversion_failed",
                    message=f"{mime_type} extraction produced no text",
                )

            logger.info("Converted %s document with %s adapter, text length: %d", mime_type, name, len(text))
            return text

        raise UnsupportedFormat(mime_type, "No converter registered for document type")


def prepare_document(blob: DocumentBlob, converter: DocumentConverter) -> PreparedDocument:
    """Turn an uploaded payload into normalized text, converting containers first."""

    declared = blob.declared_mime_type
    if declared in _GENERIC_MIME_TYPES:
        declared = None
    mime_type = resolve_mime_type(blob.data, declared)

    if is_text_mime_type(mime_type):
        text = normalize(blob.data, mime_type)
    else:
        text = normalize_text_content(converter.extract_text(blob.data, mime_type))

    return PreparedDocument(text=text, mime_type=mime_type, source_length=len(blob.data))
