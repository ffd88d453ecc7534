"""Schema validation and repair for provider extraction payloads.

Invalid events are dropped individually and reported as field errors; only a
payload whose top level is not ``{"dateEventTable": [...]}`` fails as a whole.
Optional fields are repaired rather than rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
import re
from typing import Any

from legalextract.errors import FieldError, SchemaInvalid
from legalextract.extraction.models import EventStatus, ExtractionEvent

EVENTS_FIELD = "dateEventTable"
MIN_YEAR = 1900
MAX_YEAR = 2100
MIN_EVENT_LENGTH = 10

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_STATUS_VALUES = frozenset(status.value for status in EventStatus)
_REQUIRED_FIELDS = ("date", "event", "status")


@dataclass(slots=True)
class ValidationReport:
    """Valid events in input order, plus what was dropped or repaired."""

    events: list[ExtractionEvent] = field(default_factory=list)
    field_errors: list[FieldError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _check_date(value: str) -> str | None:
    if not _DATE_RE.match(value):
        return "date must match YYYY-MM-DD"
    try:
        parsed = date.fromisoformat(value)
    except ValueError:
        return f"date {value!r} is not a real calendar date"
    if not MIN_YEAR <= parsed.year <= MAX_YEAR:
        return f"date year {parsed.year} outside [{MIN_YEAR}, {MAX_YEAR}]"
    return None


def _event_errors(index: int, item: dict[str, Any]) -> list[FieldError]:
    errors: list[FieldError] = []

    for name in _REQUIRED_FIELDS:
        value = item.get(name)
        if not isinstance(value, str) or not value.strip():
            errors.append(FieldError(index=index, field_name=name, message=f"{name} is required and must be a non-empty string"))
    if errors:
        return errors

    date_error = _check_date(item["date"])
    if date_error:
        errors.append(FieldError(index=index, field_name="date", message=date_error))

    if item["status"] not in _STATUS_VALUES:
        allowed = "|".join(sorted(_STATUS_VALUES))
        errors.append(FieldError(index=index, field_name="status", message=f"status must be one of {allowed}"))

    if len(item["event"].strip()) < MIN_EVENT_LENGTH:
        errors.append(
            FieldError(index=index, field_name="event", message=f"event must be at least {MIN_EVENT_LENGTH} characters")
        )
    return errors


def _repair_page(index: int, value: Any, warnings: list[str]) -> int | None:
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool) and value >= 1:
        return value
    warnings.append(f"event {index}: invalid page {value!r} replaced with null")
    return None


def _repair_citation(index: int, value: Any, warnings: list[str]) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        warnings.append(f"event {index}: non-string citation replaced with null")
        return None
    return value if value.strip() else None


def validate_extraction(payload: Any) -> ValidationReport:
    """Validate a parsed provider payload and return the events that survive."""

    if not isinstance(payload, dict):
        raise SchemaInvalid(
            f"Extraction payload must be an object, got {type(payload).__name__}",
            [FieldError(index=None, field_name="$", message="expected object")],
        )
    items = payload.get(EVENTS_FIELD)
    if not isinstance(items, list):
        raise SchemaInvalid(
            f"Extraction payload must contain a '{EVENTS_FIELD}' array",
            [FieldError(index=None, field_name=EVENTS_FIELD, message="expected array")],
        )

    report = ValidationReport()
    previous_date: str | None = None

    for index, item in enumerate(items):
        if not isinstance(item, dict):
            report.field_errors.append(FieldError(index=index, field_name="$", message="event must be an object"))
            continue

        errors = _event_errors(index, item)
        if errors:
            report.field_errors.extend(errors)
            continue

        event = ExtractionEvent(
            date=item["date"],
            event=item["event"],
            status=item["status"],
            page=_repair_page(index, item.get("page"), report.warnings),
            citation=_repair_citation(index, item.get("citation"), report.warnings),
        )
        # Zero-padded ISO dates compare chronologically as strings.
        if previous_date is not None and event.date < previous_date:
            report.warnings.append(f"event {index}: date {event.date} is earlier than previous entry {previous_date}")
        previous_date = event.date
        report.events.append(event)

    return report
