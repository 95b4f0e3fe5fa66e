"""HTTP middleware and exception handler wiring for the FastAPI app."""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from drone_analytics.api.contracts import ApiErrorResponse
from drone_analytics.api.errors import ApiErrorCode, auth_error_response, to_error_payload
from drone_analytics.auth.errors import AuthError
from drone_analytics.core.config import AppConfig
from drone_analytics.core.logging import set_correlation_id

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
}

CORRELATION_HEADERS = ("x-request-id", "x-correlation-id")


def _error_response(
    status_code: int,
    error_code: str,
    message: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ApiErrorResponse(error_code=error_code, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def _request_fields(request: Request, status_code: int, **extra: Any) -> dict[str, Any]:
    return {
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
        **extra,
    }


def _validation_message(exc: RequestValidationError) -> str:
    """Summarize validation errors as ``loc: msg`` pairs, never echoing input."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg', '')}")
    return "; ".join(parts) or "Invalid request"


def _declared_length(request: Request) -> int:
    try:
        return int(request.headers.get("content-length") or 0)
    except ValueError:
        return 0


def register_http_middleware(
    app: FastAPI, *, config: AppConfig, logger: logging.Logger
) -> None:
    """Attach body size limiting, correlation ids, access logs and security headers."""
    max_bytes = config.security.request_max_bytes

    @app.middleware("http")
    async def request_size_limit_middleware(request: Request, call_next):
        if _declared_length(request) > max_bytes:
            logger.warning("request_too_large", extra=_request_fields(request, 413))
            return _error_response(
                413,
                ApiErrorCode.REQUEST_TOO_LARGE,
                f"Request size exceeds configured limit ({max_bytes} bytes).",
            )
        return await call_next(request)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        incoming = next(
            (request.headers[name] for name in CORRELATION_HEADERS if request.headers.get(name)),
            None,
        )
        correlation_id = set_correlation_id(incoming)
        started = time.perf_counter()

        response = await call_next(request)

        response.headers["X-Request-ID"] = correlation_id
        response.headers.update(SECURITY_HEADERS)
        identity = getattr(request.state, "identity", None)
        logger.info(
            "request_completed",
            extra=_request_fields(
                request,
                response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                user_id=identity.user_id if identity is not None else None,
            ),
        )
        return response


def register_exception_handlers(app: FastAPI, *, logger: logging.Logger) -> None:
    """Map every failure to the ``{error_code, message}`` envelope."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
        response = auth_error_response(exc)
        logger.warning(
            "auth_error",
            extra=_request_fields(request, response.status_code, reason=type(exc).__name__),
        )
        return response

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        payload = to_error_payload(exc.detail, exc.status_code)
        logger.warning("http_exception", extra=_request_fields(request, exc.status_code))
        return _error_response(
            exc.status_code,
            payload["error_code"],
            payload["message"],
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning("validation_exception", extra=_request_fields(request, 422))
        return _error_response(422, ApiErrorCode.VALIDATION_ERROR, _validation_message(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unexpected_exception", extra=_request_fields(request, 500))
        return _error_response(
            500, ApiErrorCode.INTERNAL_SERVER_ERROR, "Internal server error"
        )
