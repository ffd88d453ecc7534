"""Ingestion package interfaces."""

from .converter import DocumentConverter, prepare_document
from .models import DocumentBlob, PreparedDocument
from .normalization import normalize, normalize_text_content, sniff_mime_type

__all__ = [
    "DocumentBlob",
    "DocumentConverter",
    "PreparedDocument",
    "normalize",
    "normalize_text_content",
    "prepare_document",
    "sniff_mime_type",
]
