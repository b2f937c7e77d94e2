"""JSON error bodies for routing errors and unhandled failures.

The visitor POST reports a bad payload in its own ``{"success": false}``
shape; everything else that escapes a route ends up here as
``{"detail", "code", "request_id"}`` with ``X-Request-ID`` echoed.
"""

from __future__ import annotations

import logging
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from iptracker.middleware.request_id import REQUEST_ID_HEADER, get_request_id

log = logging.getLogger(__name__)

_CODES = {
    404: "not_found",
    405: "method_not_allowed",
    500: "internal_error",
}


def error_response(request: Request, status: int, detail: str) -> JSONResponse:
    # Unhandled errors arrive after RequestIDMiddleware has reset its context,
    # so fall back to the inbound header before minting a new id.
    rid = get_request_id() or request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
    return JSONResponse(
        status_code=status,
        content={"detail": detail, "code": _CODES.get(status, "http_error"), "request_id": rid},
        headers={REQUEST_ID_HEADER: rid},
    )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = exc.detail if isinstance(exc.detail, str) else "HTTP error"
        return error_response(request, exc.status_code, detail)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        log.error(
            "unhandled error",
            exc_info=exc,
            extra={"event": "unhandled_error", "path": request.url.path},
        )
        return error_response(request, 500, "Internal server error")
