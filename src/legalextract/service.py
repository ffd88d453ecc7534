"""Request-level entry point: payload decoding, pipeline wiring and error mapping."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
import logging
from typing import Any, Mapping

from legalextract.config import AppSettings, OcrSettings
from legalextract.errors import InputError, LegalExtractError
from legalextract.extraction.models import ExtractionResult
from legalextract.extraction.orchestrator import ExtractionOrchestrator
from legalextract.ingestion.adapters import build_default_adapters
from legalextract.ingestion.converter import DocumentConverter, prepare_document
from legalextract.ingestion.models import DocumentBlob
from legalextract.providers.registry import ProviderRegistry, build_provider_registry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ExtractRequest:
    """Validated extraction request fields."""

    document: bytes
    mime_type: str
    model: str
    api_type: str

    @classmethod
    def from_payload(cls, payload: Any) -> "ExtractRequest":
        if not isinstance(payload, Mapping):
            raise InputError("Request body must be a JSON object")

        document_text = payload.get("documentText")
        mime_type = payload.get("mimeType")
        model = payload.get("model")
        api_type = payload.get("apiType")

        if not isinstance(document_text, str) or not document_text.strip():
            raise InputError("Document text must be provided", field_name="documentText")
        if not isinstance(mime_type, str) or not mime_type.strip():
            raise InputError("MIME type must be provided", field_name="mimeType")
        if not isinstance(model, str) or not model.strip():
            raise InputError("Model must be specified", field_name="model")
        if not isinstance(api_type, str) or not api_type.strip():
            raise InputError("API type must be specified", field_name="apiType")

        mime_type = mime_type.strip().lower()
        return cls(
            document=_decode_document(document_text, mime_type),
            mime_type=mime_type,
            model=model.strip(),
            api_type=api_type.strip().lower(),
        )


def _decode_document(document_text: str, mime_type: str) -> bytes:
    """Plain text travels as-is; every other type travels base64-encoded."""

    if mime_type.startswith("text/"):
        return document_text.encode("utf-8")

    compact = "".join(document_text.split())
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InputError("Document text must be base64-encoded for binary MIME types", field_name="documentText") from exc


@dataclass(frozen=True, slots=True)
class ServiceResponse:
    status_code: int
    body: dict[str, Any]


class ExtractionService:
    """Normalize/convert an uploaded document and extract its legal dates."""

    def __init__(self, *, converter: DocumentConverter, orchestrator: ExtractionOrchestrator) -> None:
        self._converter = converter
        self._orchestrator = orchestrator

    async def extract(self, request: ExtractRequest) -> ExtractionResult:
        prepared = prepare_document(DocumentBlob(data=request.document, mime_type=request.mime_type), self._converter)
        logger.info(
            "Prepared %s document: %d bytes -> %d chars of normalized text",
            prepared.mime_type,
            prepared.source_length,
            len(prepared.text),
        )
        return await self._orchestrator.extract(prepared.text, request.model, request.api_type)

    async def handle(self, payload: Any) -> ServiceResponse:
        """Run one request and map the outcome onto an HTTP-style response."""

        try:
            request = ExtractRequest.from_payload(payload)
            result = await self.extract(request)
        except LegalExtractError as exc:
            if exc.http_status >= 500:
                logger.error("Extraction request failed: %s", exc)
            else:
                logger.info("Rejected extraction request: %s", exc)
            return ServiceResponse(status_code=exc.http_status, body={"error": exc.to_dict()})
        except Exception:
            logger.exception("Unexpected error while processing extraction request")
            return ServiceResponse(
                status_code=500,
                body={"error": {"kind": "internal_error", "message": "Unexpected error while processing document"}},
            )

        logger.info(
            "Extracted %d event(s) from %d chunk(s) (%d failed)",
            len(result.events),
            result.chunk_count,
            len(result.failed_chunks),
        )
        return ServiceResponse(status_code=200, body=result.to_dict())


def build_converter(ocr_settings: OcrSettings | None = None) -> DocumentConverter:
    converter = DocumentConverter()
    for name, adapter in build_default_adapters(ocr_settings).items():
        converter.register_adapter(name, adapter)
    return converter


def build_service(settings: AppSettings, *, registry: ProviderRegistry | None = None) -> ExtractionService:
    """Wire converter, providers and orchestrator once per process."""

    orchestrator = ExtractionOrchestrator(registry or build_provider_registry(settings), settings.extraction)
    return ExtractionService(converter=build_converter(settings.ocr), orchestrator=orchestrator)
