"""Converter adapter implementations and contracts."""

import logging

from legalextract.config import OcrSettings

from .base import ConverterAdapter

logger = logging.getLogger(__name__)

try:
    from .pdf_adapter import PDFAdapter
    from ..ocr import PageTextReader
except ImportError:
    PDFAdapter = None
    PageTextReader = None
    logger.warning("PDF support unavailable: install 'pymupdf'")

try:
    from .docx_adapter import DOCXAdapter
except ImportError:
    DOCXAdapter = None
    logger.warning("DOCX support unavailable: install 'python-docx'")


def build_default_adapters(ocr_settings: OcrSettings | None = None) -> dict[str, ConverterAdapter]:
    """Return the default format adapter map for document conversion."""
    adapters: dict[str, ConverterAdapter] = {}
    if PDFAdapter is not None:
        adapters["pdf"] = PDFAdapter(PageTextReader(ocr_settings))
    if DOCXAdapter is not None:
        adapters["docx"] = DOCXAdapter()
    return adapters


__all__ = [
    "ConverterAdapter",
    "PDFAdapter",
    "DOCXAdapter",
    "build_default_adapters",
]
