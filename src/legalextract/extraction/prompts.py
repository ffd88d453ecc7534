"""Fixed prompt contract for legal date/event extraction."""

from __future__ import annotations

from legalextract.extraction.models import SENTINEL_EVENT_TEXT

SYSTEM_PROMPT = (
    "You are a legal document analyzer specializing in extracting dates and events from legal documents. "
    "Return ONLY valid JSON in the specified format. Do not include any other text or explanation."
)

_EXTRACTION_INSTRUCTIONS = """Extract ONLY meaningful legal dates and events from the document into a table format in JSON.
Focus on legally significant events: court dates, hearings, filings, executions and signings of agreements, deadlines and meetings.
Ignore document metadata and system dates such as print, revision or file creation dates.

Required JSON structure:
{{
  "dateEventTable": [
    {{
      "date": "YYYY-MM-DD",
      "event": "Description of what happened or is scheduled to happen on this date",
      "status": "completed|pending|scheduled",
      "page": 1,
      "citation": "Exact text from document showing the date and event"
    }}
  ]
}}

Rules:
- "date" must be a real calendar date written as YYYY-MM-DD.
- If the document omits the year of a date, assume {current_year}.
- "status" must be exactly one of: completed, pending, scheduled.
- "page" is the page number where the date appears, or null when unknown.
- "citation" is the exact source text, or null when unavailable.
- If no legally significant dates are found, return exactly one entry with event
  "{sentinel}", status "completed", page null and citation null."""


def build_extraction_instructions(current_year: int) -> str:
    return _EXTRACTION_INSTRUCTIONS.format(current_year=current_year, sentinel=SENTINEL_EVENT_TEXT)


def build_user_prompt(chunk_text: str, *, current_year: int) -> str:
    """Concatenate the fixed instructions with one chunk of document text."""

    return f"{build_extraction_instructions(current_year)}\n\nDocument text:\n{chunk_text}"
