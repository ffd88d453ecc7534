"""Fixed-size chunk builder for normalized document text."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_CHUNK_SIZE = 2000


@dataclass(frozen=True, slots=True)
class TextChunk:
    """Contiguous slice of normalized text with its offsets in the document."""

    index: int
    text: str
    char_start: int
    char_end: int


def build_chunks(text: str, *, max_chars: int = DEFAULT_CHUNK_SIZE) -> list[TextChunk]:
    """Split text into non-overlapping, in-order slices of at most ``max_chars``.

    Slicing ignores word and sentence boundaries: every chunk is summarized on
    its own, so a chunk may end mid-sentence.
    """

    if max_chars <= 0:
        raise ValueError("max_chars must be positive")

    return [
        TextChunk(index=index, text=text[start : start + max_chars], char_start=start, char_end=min(start + max_chars, len(text)))
        for index, start in enumerate(range(0, len(text), max_chars))
    ]
