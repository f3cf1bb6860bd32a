"""Middleware registration."""

from fastapi import FastAPI

from uwa.config import Settings
from uwa.middleware.cors import setup_cors
from uwa.middleware.error_handler import setup_error_handlers
from uwa.middleware.logging import setup_logging
from uwa.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    FastAPI/Starlette executes middleware in reverse-add order (last added = outermost).
    CORS is added last so it also wraps error responses.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
