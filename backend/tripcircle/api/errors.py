"""Error handlers and request-id binding for the HTTP surface."""

from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tripcircle.obs import logging as obs_logging
from tripcircle.social.domain.exceptions import SocialError

_LOG = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


def get_request_id(default: str = "unknown") -> str:
    return obs_logging.current_request_id() or default


def install_request_context(app: FastAPI) -> None:
    @app.middleware("http")
    async def bind_request_context(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        tokens = obs_logging.bind_context(request_id=request_id, user_id=request.headers.get("x-user-id"))
        try:
            response = await call_next(request)
        finally:
            obs_logging.reset_context(tokens)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SocialError)
    async def social_exc_handler(request: Request, exc: SocialError):  # type: ignore[override]
        if exc.status_code >= 500:
            _LOG.warning("social.request_failed", extra={"detail": exc.detail, "status": exc.status_code})
        payload = {"detail": exc.detail, "request_id": get_request_id()}
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        payload = {"detail": exc.detail, "request_id": get_request_id()}
        return JSONResponse(status_code=exc.status_code, content=payload)
