"""CLI command for extracting legal dates and events from a local document."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from legalextract.config import AppSettings
from legalextract.errors import LegalExtractError
from legalextract.ingestion.models import DOCX_MIME_TYPE, PDF_MIME_TYPE, TEXT_MIME_TYPE
from legalextract.service import ExtractRequest, build_service

_SUFFIX_MIME_TYPES = {
    ".pdf": PDF_MIME_TYPE,
    ".docx": DOCX_MIME_TYPE,
    ".txt": TEXT_MIME_TYPE,
    ".md": "text/markdown",
}


def _guess_mime_type(path: Path) -> str:
    # Unknown suffixes fall back to magic-number sniffing during normalization.
    return _SUFFIX_MIME_TYPES.get(path.suffix.lower(), "application/octet-stream")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Extract legal dates and events from a document")
    parser.add_argument("--path", required=True, help="PDF, DOCX or plain-text document")
    parser.add_argument("--mime-type", default=None, help="Override the MIME type guessed from the file suffix")
    parser.add_argument("--api-type", default="openai", help="Provider family: openai or openrouter")
    parser.add_argument("--model", default="", help="Model identifier (defaults to the provider's configured model)")
    parser.add_argument("--verbose", action="store_true", help="Log pipeline progress to stderr")
    args = parser.parse_args(argv)

    load_dotenv()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO if args.verbose else logging.WARNING,
    )

    source = Path(args.path)
    try:
        data = source.read_bytes()
    except OSError as exc:
        print(json.dumps({"error": {"kind": "input_error", "message": f"Failed to read {source}: {exc}"}}))
        return 2

    try:
        settings = AppSettings.from_env()
    except ValueError as exc:
        print(json.dumps({"error": {"kind": "config_error", "message": str(exc)}}))
        return 2

    service = build_service(settings)
    request = ExtractRequest(
        document=data,
        mime_type=(args.mime_type or _guess_mime_type(source)).lower(),
        model=args.model,
        api_type=args.api_type.lower(),
    )

    try:
        result = asyncio.run(service.extract(request))
    except LegalExtractError as exc:
        print(json.dumps({"error": exc.to_dict()}, ensure_ascii=False, indent=2))
        return 2 if exc.http_status < 500 else 1

    payload = {
        "path": str(source),
        "chunks": result.chunk_count,
        "failedChunks": result.failed_chunks,
        "warnings": result.warnings,
        **result.to_dict(),
    }
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
