"""Extraction result types and the sentinel placeholder event."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum

SENTINEL_EVENT_TEXT = "No significant legal dates were found in the document"


class EventStatus(str, Enum):
    COMPLETED = "completed"
    PENDING = "pending"
    SCHEDULED = "scheduled"


@dataclass(frozen=True, slots=True)
class ExtractionEvent:
    """One dated legal event extracted from a document."""

    date: str
    event: str
    status: str
    page: int | None = None
    citation: str | None = None

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.date, self.event)

    def to_dict(self) -> dict[str, str | int | None]:
        return {
            "date": self.date,
            "event": self.event,
            "status": self.status,
            "page": self.page,
            "citation": self.citation,
        }


def sentinel_event(today: date) -> ExtractionEvent:
    """Placeholder returned when a document yields no events at all."""

    return ExtractionEvent(
        date=today.isoformat(),
        event=SENTINEL_EVENT_TEXT,
        status=EventStatus.COMPLETED.value,
        page=None,
        citation=None,
    )


@dataclass(slots=True)
class ExtractionResult:
    """Merged, deduplicated events plus per-run diagnostics."""

    events: list[ExtractionEvent]
    chunk_count: int = 0
    failed_chunks: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    is_sentinel: bool = False

    def to_dict(self) -> dict[str, list[dict[str, str | int | None]]]:
        return {"dateEventTable": [event.to_dict() for event in self.events]}
