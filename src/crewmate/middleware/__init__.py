"""Middleware registration."""

from fastapi import FastAPI

from crewmate.config import Settings
from crewmate.middleware.error_handler import setup_error_handlers
from crewmate.middleware.logging import setup_logging
from crewmate.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure logging, error handlers and request ids."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
