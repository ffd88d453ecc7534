"""Turn raw provider completions into JSON values."""

from __future__ import annotations

import json
import re
from typing import Any

from legalextract.errors import SchemaInvalid

_FENCED_RE = re.compile(r"^\s*```[A-Za-z0-9_-]*[ \t]*\n?(.*?)\n?[ \t]*```\s*$", re.DOTALL)
_EMBEDDED_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\n(.*?)\n[ \t]*```", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Remove a Markdown code fence (```json ... ``` or bare ```) around the payload."""

    match = _FENCED_RE.match(text)
    if match:
        return match.group(1).strip()

    embedded = _EMBEDDED_FENCE_RE.search(text)
    if embedded:
        return embedded.group(1).strip()
    return text.strip()


def parse_completion(text: str) -> Any:
    """Parse a completion as JSON, tolerating fences and prose around one object."""

    payload = strip_code_fences(text)
    if not payload:
        raise SchemaInvalid("Completion is empty")

    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        start = payload.find("{")
        end = payload.rfind("}")
        if 0 <= start < end:
            try:
                return json.loads(payload[start : end + 1])
            except json.JSONDecodeError:
                pass
        raise SchemaInvalid(f"Completion is not valid JSON: {exc.msg} at position {exc.pos}") from exc
