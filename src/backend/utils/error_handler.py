# src/backend/utils/error_handler.py
from __future__ import annotations

import html
import logging
from typing import Any, Dict

from fastapi import Request, HTTPException as FastAPIHTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.backend.utils.exceptions import AppError, StaleRecord

logger = logging.getLogger("fastapi")

# generic wording for statuses whose detail may leak internals
_DEFAULT_MESSAGES = {
    500: "Internal Server Error. Please try again later.",
}


def _safe_args(exc: Exception) -> str:
    a = getattr(exc, "args", None)
    return str(a) if a else "No additional details"


def _json_error(
    status_code: int,
    message: str,
    exc: Exception,
    extra: Dict[str, Any] | None = None,
) -> JSONResponse:
    """
    Unified JSON error response:
    {message, error_type, status_code, ...extra}
    """
    payload: Dict[str, Any] = {
        "message": _DEFAULT_MESSAGES.get(status_code, message),
        "error_type": exc.__class__.__name__,
        "status_code": status_code,
    }
    if extra:
        payload.update(jsonable_encoder(extra))
    return JSONResponse(status_code=status_code, content=payload)


def _log_http(request: Request, status_code: int, detail: str, exc: Exception) -> None:
    """
    Log levels:
    - 404 -> INFO (normal noise)
    - 401/403 -> WARNING (auth/permission)
    - other 4xx -> ERROR (client error worth checking)
    - 5xx -> EXCEPTION (stack trace)
    """
    url = str(request.url)
    method = request.method

    if status_code == 404:
        logger.info("404 Not Found: %s %s", method, url)
        return

    if status_code in (401, 403):
        logger.warning("%s: %s %s | detail=%s", status_code, method, url, detail)
        return

    if 400 <= status_code < 500:
        logger.error(
            "%s: %s %s | detail=%s | args=%s",
            status_code,
            method,
            url,
            detail,
            _safe_args(exc),
        )
        return

    logger.exception("%s: %s %s | detail=%s", status_code, method, url, detail)


def wants_html(request: Request) -> bool:
    """
    IMPORTANT:
    - Do NOT treat Accept: */* as HTML (fetch often sends */*)
    - HTML means browser navigation (document) OR Accept includes text/html
    """
    accept = (request.headers.get("accept") or "").lower()

    if "text/html" in accept:
        return True
    if "application/json" in accept:
        return False

    dest = (request.headers.get("sec-fetch-dest") or "").lower()
    mode = (request.headers.get("sec-fetch-mode") or "").lower()
    return dest == "document" or mode == "navigate"


def html_notice(status_code: int, title: str, message: str) -> HTMLResponse:
    """Minimal page for links opened from emails (confirmation links)."""
    body = (
        "<!doctype html><html><head><meta charset=\"utf-8\">"
        f"<title>{html.escape(title)}</title></head>"
        "<body style=\"font-family:sans-serif;max-width:36rem;margin:4rem auto;text-align:center\">"
        f"<h2>{html.escape(title)}</h2><p>{html.escape(message)}</p>"
        "</body></html>"
    )
    return HTMLResponse(content=body, status_code=status_code)


async def custom_exception_handler(request: Request, exc: Exception):
    # -----------------------------
    # 1) Domain errors
    # -----------------------------
    if isinstance(exc, StaleDataError):
        exc = StaleRecord()

    if isinstance(exc, AppError):
        _log_http(request, exc.status_code, exc.message, exc)
        return _json_error(exc.status_code, exc.message, exc, extra=exc.extra)

    # -----------------------------
    # 2) HTTPException (FastAPI subclasses Starlette's)
    # -----------------------------
    if isinstance(exc, (FastAPIHTTPException, StarletteHTTPException)):
        status = int(exc.status_code)
        detail = exc.detail
        extra: Dict[str, Any] | None = None
        if isinstance(detail, dict):
            # detail={"message": ..., **extra} carries structured payloads
            extra = {k: v for k, v in detail.items() if k != "message"}
            detail = detail.get("message", "")
        detail = str(detail)

        _log_http(request, status, detail, exc)
        response = _json_error(status_code=status, message=detail, exc=exc, extra=extra)
        if getattr(exc, "headers", None):
            response.headers.update(exc.headers)
        return response

    # -----------------------------
    # 3) Validation error
    # -----------------------------
    if isinstance(exc, RequestValidationError):
        logger.warning(
            "422 Validation error: %s %s | %s",
            request.method,
            str(request.url),
            exc.errors(),
        )
        return _json_error(
            status_code=422,
            message="Validation error occurred",
            exc=exc,
            extra={"validation_errors": exc.errors()},
        )

    # -----------------------------
    # 4) Any other unexpected exception
    # -----------------------------
    logger.exception("500 Unhandled exception: %s %s | %s", request.method, str(request.url), str(exc))
    return _json_error(
        status_code=500,
        message="Internal Server Error. Please try again later.",
        exc=exc,
    )
