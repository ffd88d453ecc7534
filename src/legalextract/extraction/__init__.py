"""Date/event extraction: prompt contract, validation and orchestration."""

from .models import SENTINEL_EVENT_TEXT, EventStatus, ExtractionEvent, ExtractionResult
from .orchestrator import ExtractionOrchestrator, merge_events
from .validator import ValidationReport, validate_extraction

__all__ = [
    "SENTINEL_EVENT_TEXT",
    "EventStatus",
    "ExtractionEvent",
    "ExtractionOrchestrator",
    "ExtractionResult",
    "ValidationReport",
    "merge_events",
    "validate_extraction",
]
