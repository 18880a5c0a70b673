"""Exception handlers mapping failures onto the `{success: false, error}` envelope."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.muse_agent import MuseError
from src.muse_agent.config import API_RESPONSES

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


async def muse_exception_handler(request: Request, exc: MuseError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Server error on %s: %s", request.url.path, exc.message, exc_info=exc.cause)
    else:
        logger.warning("Client error on %s: %s", request.url.path, exc.message)
    return error_response(exc.status_code, exc.message)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail in (None, "Not Found"):
        return error_response(404, API_RESPONSES["NOT_FOUND"])
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return error_response(exc.status_code, message)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors (400), reported with the first failing field."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(loc) for loc in first.get("loc", ()) if loc != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    logger.warning("Rejected request to %s: %s", request.url.path, message)
    return error_response(400, message)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=exc)
    return error_response(500, API_RESPONSES["INTERNAL_ERROR"])


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MuseError, muse_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
