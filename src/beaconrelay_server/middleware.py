"""Middleware components for the beacon relay server."""
from __future__ import annotations

from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

from .logging_config import get_logger
from .security import OriginPolicy

logger = get_logger(__name__)

ALLOWED_METHODS = ("POST", "GET", "OPTIONS")
ALLOWED_HEADERS = ("Content-Type", "Accept")


class OriginAdmissionMiddleware(CORSMiddleware):
    """CORS handling driven by an `OriginPolicy` instead of a literal origin list.

    Requests from an origin the policy does not admit are refused here, before
    routing, whatever their method. Admitted requests get the usual CORS
    headers from Starlette's implementation.
    """

    def __init__(self, app: ASGIApp, policy: OriginPolicy, max_age: int = 86400):
        super().__init__(
            app,
            allow_origins=(),
            allow_methods=ALLOWED_METHODS,
            allow_headers=ALLOWED_HEADERS,
            allow_credentials=False,
            max_age=max_age,
        )
        self.policy = policy

    def is_allowed_origin(self, origin: str) -> bool:
        return self.policy.admits(origin)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        origin = Headers(scope=scope).get("origin")
        if not origin:
            await self.app(scope, receive, send)
            return

        if not self.policy.admits(origin):
            logger.warning(f"Not allowed by CORS: origin={origin} path={scope.get('path', '')}")
            response = JSONResponse({"error": "Not allowed by CORS"}, status_code=403)
            await response(scope, receive, send)
            return

        await super().__call__(scope, receive, send)


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject bodies whose declared Content-Length exceeds the cap."""

    def __init__(self, app, max_body_bytes: int = 64 * 1024):
        super().__init__(app)
        self.max_body_bytes = max_body_bytes

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        declared = request.headers.get("content-length")
        if declared is not None:
            try:
                size = int(declared)
            except ValueError:
                return JSONResponse({"error": "invalid content-length"}, status_code=400)
            if size > self.max_body_bytes:
                logger.warning(f"Body too large: {size} > {self.max_body_bytes} bytes ({request.url.path})")
                return JSONResponse({"error": "payload too large"}, status_code=413)

        return await call_next(request)


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One line per request; helps when debugging CORS and beacon encodings."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        logger.info(
            f"[req] {request.method} {request.url.path} "
            f"origin={request.headers.get('origin', '')} ct={request.headers.get('content-type', '')}"
        )
        return await call_next(request)
