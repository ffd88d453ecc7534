"""FastAPI surface for the extraction service."""

from __future__ import annotations

import json
import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from legalextract.config import AppSettings
from legalextract.providers.registry import build_provider_registry
from legalextract.service import ExtractionService, build_service

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def create_app(service: ExtractionService | None = None, *, api_types: list[str] | None = None) -> FastAPI:
    """Build the application; without an injected service, settings come from the environment."""

    if service is None:
        settings = AppSettings.from_env()
        registry = build_provider_registry(settings)
        service = build_service(settings, registry=registry)
        api_types = registry.api_types

    app = FastAPI(title="legalextract", summary="Legal date and event extraction")
    app.state.service = service
    app.state.api_types = api_types or []

    @app.get("/health")
    async def health() -> dict[str, object]:
        return {"status": "ok", "apiTypes": app.state.api_types}

    @app.post("/api/extract")
    async def extract(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return JSONResponse(
                status_code=400,
                content={"error": {"kind": "input_error", "message": "Request body must be valid JSON"}},
            )

        response = await app.state.service.handle(payload)
        return JSONResponse(status_code=response.status_code, content=response.body)

    return app


def main() -> None:
    """Serve the API with uvicorn."""
    import uvicorn
    from dotenv import load_dotenv

    load_dotenv()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )

    host = os.environ.get("LEGALEXTRACT_HOST", DEFAULT_HOST)
    port = int(os.environ.get("LEGALEXTRACT_PORT", str(DEFAULT_PORT)))
    logger.info("Starting extraction API on %s:%d", host, port)
    uvicorn.run("legalextract.api.app:create_app", factory=True, host=host, port=port)


if __name__ == "__main__":
    main()
