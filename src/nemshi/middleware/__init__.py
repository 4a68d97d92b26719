"""Middleware registration."""

from fastapi import FastAPI

from nemshi.config import Settings
from nemshi.middleware.cors import setup_cors
from nemshi.middleware.error_handler import setup_error_handlers
from nemshi.middleware.logging import setup_logging
from nemshi.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette executes middleware in reverse-add order (last added = outermost),
    so CORS is added last to wrap error responses from inner layers.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
