"""HTTP API for the extraction service."""

from .app import create_app

__all__ = ["create_app"]
