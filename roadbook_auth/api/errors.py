"""Render auth errors as consistent JSON responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from roadbook_auth.core.errors import AccountLocked, AuthError

logger = logging.getLogger(__name__)


def error_response(exc: AuthError) -> JSONResponse:
    headers = {}
    if isinstance(exc, AccountLocked):
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "code": exc.error_code, "message": exc.message},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn(f"{exc.status_code} {exc.error_code} on {request.method} {request.url.path}")
        return error_response(exc)
