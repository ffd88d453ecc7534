"""OCR fallback for PDF pages that have no usable text layer.

Scanned filings, signed exhibits and stamped court orders often arrive as
image-only pages. ``PageTextReader`` keeps the embedded text when a page has
enough of it and otherwise asks Tesseract for the page text. pytesseract and
Pillow are imported lazily so a missing OCR stack only costs scanned pages.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import io
import logging
from typing import Callable

import pymupdf

from legalextract.config import OcrSettings

logger = logging.getLogger(__name__)

RecognizeFn = Callable[[pymupdf.Page, str, int], str]


class PageSource(Enum):
    EMBEDDED = "embedded"
    OCR = "ocr"


@dataclass(slots=True)
class PageText:
    """Text chosen for one page and where it came from."""

    page_number: int
    source: PageSource
    text: str
    note: str | None = None


def text_density(page: pymupdf.Page, text: str) -> float:
    """Embedded characters per pt² of page area."""

    area = page.rect.width * page.rect.height
    return len(text.strip()) / area if area else 0.0


def is_tesseract_missing(exc: Exception) -> bool:
    if type(exc).__name__ == "TesseractNotFoundError":
        return True
    return "tesseract is not installed" in str(exc).lower()


def recognize_page(page: pymupdf.Page, language: str, dpi: int) -> str:
    """Render a page to PNG and run Tesseract over it."""
    import pytesseract
    from PIL import Image

    scale = dpi / 72
    pixmap = page.get_pixmap(matrix=pymupdf.Matrix(scale, scale), colorspace=pymupdf.csRGB)
    with Image.open(io.BytesIO(pixmap.tobytes("png"))) as image:
        return pytesseract.image_to_string(image, lang=language, config="--psm 6")


class PageTextReader:
    """Choose embedded or recognized text per page according to ``OcrSettings``."""

    def __init__(self, settings: OcrSettings | None = None, *, recognize: RecognizeFn = recognize_page) -> None:
        self._settings = settings or OcrSettings()
        self._recognize = recognize
        self._tesseract_missing = False

    @property
    def ocr_available(self) -> bool:
        return self._settings.enabled and not self._tesseract_missing

    def needs_ocr(self, page: pymupdf.Page, embedded: str) -> bool:
        return text_density(page, embedded) < self._settings.coverage_threshold

    def read(self, page: pymupdf.Page, page_number: int) -> PageText:
        embedded = page.get_text("text")
        if not self.needs_ocr(page, embedded):
            return PageText(page_number, PageSource.EMBEDDED, embedded)
        if not self.ocr_available:
            return PageText(page_number, PageSource.EMBEDDED, embedded, note="ocr unavailable")

        try:
            recognized = self._recognize(page, self._settings.language, self._settings.dpi).strip()
        except Exception as exc:
            if is_tesseract_missing(exc):
                self._tesseract_missing = True
                logger.warning("Tesseract is not installed; scanned PDF pages keep their embedded text only")
                return PageText(page_number, PageSource.EMBEDDED, embedded, note="tesseract missing")
            logger.warning("OCR failed for page %d: %s", page_number, exc)
            return PageText(page_number, PageSource.EMBEDDED, embedded, note=f"ocr failed: {exc}")

        # A sparse text layer (headers, Bates numbers) beats an OCR pass that found less.
        if len(recognized) <= len(embedded.strip()):
            return PageText(page_number, PageSource.EMBEDDED, embedded, note="ocr found no additional text")
        return PageText(page_number, PageSource.OCR, recognized)
