"""PDF adapter returning page text in reading order."""

from __future__ import annotations

import logging

import pymupdf

from legalextract.ingestion.models import PDF_MIME_TYPE
from legalextract.ingestion.ocr import PageSource, PageTextReader

logger = logging.getLogger(__name__)

_PAGE_SEPARATOR = "\n\n"


class PDFAdapter:
    """Extract text from every PDF page, with OCR for scanned pages."""

    def __init__(self, reader: PageTextReader | None = None) -> None:
        self._reader = reader or PageTextReader()

    def supports(self, mime_type: str) -> bool:
        return mime_type == PDF_MIME_TYPE

    def extract(self, data: bytes) -> str:
        pages: list[str] = []
        recognized = 0

        with pymupdf.open(stream=data, filetype="pdf") as doc:
            for page_number, page in enumerate(doc, start=1):
                result = self._reader.read(page, page_number)
                if result.source is PageSource.OCR:
                    recognized += 1
                page_text = result.text.strip()
                if page_text:
                    pages.append(page_text)
            page_count = doc.page_count

        if recognized:
            logger.info("Recognized %d of %d PDF page(s) with OCR", recognized, page_count)
        return _PAGE_SEPARATOR.join(pages)
