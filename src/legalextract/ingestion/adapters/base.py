"""Shared adapter contract for per-format text extractors."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ConverterAdapter(Protocol):
    """Protocol that every format adapter must implement."""

    def supports(self, mime_type: str) -> bool:
        """Return True when this adapter extracts text for the exact MIME type."""

    def extract(self, data: bytes) -> str:
        """Extract raw text from the document payload."""
