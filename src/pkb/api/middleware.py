"""API error handling middleware: consistent error responses.

Registers FastAPI exception handlers that convert domain exceptions into
standardised ``{"error": {"code": "...", "message": "..."}}`` JSON responses.

Status code mapping:
- ``PkbError`` subclasses → their own ``status_code`` (400 / 404 / 409)
- ``RequestValidationError`` (request body/params) → 400 Bad Request
- Any other ``Exception`` → 500 Internal Server Error
"""

from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from pkb.api.models import ErrorDetail, ErrorResponse
from pkb.core.logging import bind_request_id, reset_request_id
from pkb.errors import PkbError

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


async def _handle_pkb_error(request: Request, exc: PkbError) -> JSONResponse:
    """Render a typed domain error with its own status code."""
    logger.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    detail = ErrorDetail(code=exc.code, message=exc.message, details=exc.details)
    body = ErrorResponse(error=detail)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


async def _handle_request_validation(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Return 400 (not FastAPI's default 422) for malformed requests."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"
    logger.info("Validation error on %s %s: %s", request.method, request.url.path, message)
    body = ErrorResponse(
        error=ErrorDetail(
            code="VALIDATION_ERROR",
            message=message,
            details={
                "errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]
            },
        )
    )
    return JSONResponse(status_code=400, content=body.model_dump(mode="json"))


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id, exposed to logs and echoed in the response."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = bind_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class CatchAllErrorMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that catches any unhandled exception and returns a 500.

    This sits above the Starlette exception handler layer, ensuring that
    even exceptions not caught by ``add_exception_handler`` are converted
    to the standard error envelope rather than bubbling up as raw 500s.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.error(
                "Unhandled exception on %s %s",
                request.method,
                request.url.path,
                exc_info=True,
            )
            body = ErrorResponse(
                error=ErrorDetail(
                    code="INTERNAL_ERROR",
                    message="Internal server error",
                )
            )
            return JSONResponse(status_code=500, content=body.model_dump())


def register_error_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI application.

    Call this from ``create_app()`` after constructing the ``FastAPI`` instance.
    """
    app.add_exception_handler(PkbError, _handle_pkb_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_request_validation)  # type: ignore[arg-type]
    app.add_middleware(CatchAllErrorMiddleware)
    app.add_middleware(RequestContextMiddleware)
