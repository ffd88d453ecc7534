"""Text normalization for uploaded documents: sniffing, decoding and cleaning."""

from __future__ import annotations

import logging
import re

from charset_normalizer import from_bytes

from legalextract.errors import BinaryDataDetected, EmptyResult, UnsupportedFormat
from legalextract.ingestion.models import (
    DOCX_MIME_TYPE,
    LEGACY_DOC_MIME_TYPE,
    PDF_MIME_TYPE,
    TEXT_MIME_TYPE,
)

logger = logging.getLogger(__name__)

BINARY_RATIO_THRESHOLD = 0.10
DEFAULT_SNIFF_BYTES = 4096

_MAGIC_NUMBERS: tuple[tuple[bytes, str], ...] = (
    (b"%PDF", PDF_MIME_TYPE),
    (b"PK\x03\x04", DOCX_MIME_TYPE),
    (b"\xd0\xcf\x11\xe0", LEGACY_DOC_MIME_TYPE),
)

# Control characters replaced during cleaning: C0 except LF, DEL and C1.
_CONTROL_RE = re.compile(r"[\x00-\x09\x0b-\x1f\x7f-\x9f]")
# Characters counted as binary contamination; tab, LF and CR are ordinary text.
_BINARY_CHAR_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufffd]")
_INLINE_WHITESPACE_RE = re.compile(r"[^\S\n]+")
_LINE_EDGE_SPACE_RE = re.compile(r" *\n *")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse repeated whitespace and trim boundaries."""

    return _WHITESPACE_RE.sub(" ", text).strip()


def sniff_mime_type(data: bytes, *, sniff_bytes: int = DEFAULT_SNIFF_BYTES) -> str | None:
    """Guess a MIME type from leading magic numbers.

    Returns ``text/plain`` for payloads without a known signature and without
    NUL bytes in the sniffed prefix, and ``None`` for anything else.
    """

    for magic, mime_type in _MAGIC_NUMBERS:
        if data.startswith(magic):
            return mime_type
    if b"\x00" in data[:sniff_bytes]:
        return None
    return TEXT_MIME_TYPE


def resolve_mime_type(data: bytes, declared_mime_type: str | None) -> str:
    """Return the declared MIME type, or the sniffed one when none was declared."""

    if declared_mime_type:
        return declared_mime_type
    sniffed = sniff_mime_type(data)
    if sniffed is None:
        raise UnsupportedFormat(None, "Unrecognized binary payload")
    logger.debug("No MIME type declared; sniffed %s", sniffed)
    return sniffed


def is_text_mime_type(mime_type: str) -> bool:
    return mime_type.startswith("text/")


def decode_text(data: bytes) -> str:
    """Decode text bytes with statistical charset detection and a UTF-8 fallback."""

    if not data:
        return ""

    best = from_bytes(data).best()
    if best is not None and best.encoding:
        try:
            return data.decode(best.encoding).lstrip("\ufeff")
        except (LookupError, UnicodeDecodeError):
            logger.debug("Detected encoding %s failed to decode payload", best.encoding)

    return data.decode("utf-8", errors="replace").lstrip("\ufeff")


def binary_ratio(text: str) -> float:
    """Share of characters that look like binary noise rather than text."""

    if not text:
        return 0.0
    return len(_BINARY_CHAR_RE.findall(text)) / len(text)


def clean_text(text: str) -> str:
    """Strip control characters and collapse whitespace; idempotent."""

    cleaned = text.replace("\r\n", "\n").replace("\r", "\n")
    cleaned = _CONTROL_RE.sub(" ", cleaned)
    cleaned = _INLINE_WHITESPACE_RE.sub(" ", cleaned)
    cleaned = _LINE_EDGE_SPACE_RE.sub("\n", cleaned)
    cleaned = _EXCESS_NEWLINES_RE.sub("\n\n", cleaned)
    return cleaned.strip()


def normalize_text_content(text: str, *, threshold: float = BINARY_RATIO_THRESHOLD) -> str:
    """Clean already-decoded text, rejecting binary contamination and empty output."""

    raw_ratio = binary_ratio(text)
    if raw_ratio > threshold:
        raise BinaryDataDetected(ratio=raw_ratio, threshold=threshold, stage="raw")

    cleaned = clean_text(text)
    cleaned_ratio = binary_ratio(cleaned)
    if cleaned_ratio > threshold:
        raise BinaryDataDetected(ratio=cleaned_ratio, threshold=threshold, stage="cleaned")

    if not cleaned:
        raise EmptyResult()
    return cleaned


def normalize(data: bytes, declared_mime_type: str | None = None) -> str:
    """Turn a plain-text payload into normalized text.

    Binary containers (PDF, DOCX, DOC) are not accepted here: they must go
    through the document converter first. A payload declared as text that
    carries a container signature is rejected as binary data.
    """

    mime_type = resolve_mime_type(data, declared_mime_type)
    if not is_text_mime_type(mime_type):
        raise UnsupportedFormat(mime_type, "Binary container must be converted before normalization")

    for magic, container in _MAGIC_NUMBERS:
        if data.startswith(magic):
            logger.warning("Payload declared as %s carries a %s signature", mime_type, container)
            raise BinaryDataDetected(ratio=1.0, threshold=BINARY_RATIO_THRESHOLD, stage="signature")

    return normalize_text_content(decode_text(data))
