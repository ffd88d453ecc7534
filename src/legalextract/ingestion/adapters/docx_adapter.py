"""DOCX adapter emitting paragraphs and table rows in document order."""

from __future__ import annotations

import io

import docx
from docx.table import Table

from legalextract.ingestion.models import DOCX_MIME_TYPE
from legalextract.ingestion.normalization import normalize_whitespace

_CELL_SEPARATOR = " | "


def _table_rows(table: Table) -> list[str]:
    rows: list[str] = []
    for row in table.rows:
        cells: list[str] = []
        for cell in row.cells:
            text = normalize_whitespace(cell.text)
            # Merged cells repeat the same text across the span.
            if text and (not cells or cells[-1] != text):
                cells.append(text)
        if cells:
            rows.append(_CELL_SEPARATOR.join(cells))
    return rows


class DOCXAdapter:
    """Extract raw text from Word documents."""

    def supports(self, mime_type: str) -> bool:
        return mime_type == DOCX_MIME_TYPE

    def extract(self, data: bytes) -> str:
        document = docx.Document(io.BytesIO(data))
        lines: list[str] = []

        for block in document.iter_inner_content():
            if isinstance(block, Table):
                lines.extend(_table_rows(block))
                continue
            lines.append(block.text)

        return "\n".join(lines)
