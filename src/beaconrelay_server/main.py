from __future__ import annotations

import secrets
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from .settings import Settings
from .security import OriginPolicy
from .payload import decode_transport, coerce_payload, is_empty_payload, sanitize_payload
from .forwarder import WebhookForwarder, Outcome
from .middleware import OriginAdmissionMiddleware, BodySizeLimitMiddleware, RequestLogMiddleware
from .models import ErrorOut
from .logging_config import get_logger, log_beacon

logger = get_logger(__name__)

VERSION = "0.1.0"


def new_request_id() -> str:
    return secrets.token_hex(4)


async def read_body_capped(request: Request, limit: int) -> Optional[bytes]:
    """Read the body chunk by chunk; None as soon as it grows past `limit`."""
    buf = bytearray()
    async for chunk in request.stream():
        buf.extend(chunk)
        if len(buf) > limit:
            return None
    return bytes(buf)


def _error(status_code: int, error: str, request_id: str, status: Optional[int] = None) -> JSONResponse:
    return JSONResponse(
        ErrorOut(error=error, status=status).body(),
        status_code=status_code,
        headers={"X-Request-ID": request_id},
    )


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or Settings()  # reads env
    policy = OriginPolicy.from_settings(settings)
    forwarder = WebhookForwarder(settings.webhook_url, timeout_s=settings.forward_timeout_s, transport=transport)

    logger.info(f"Allowed domain: {policy.root_domain}")
    if policy.extra_hosts:
        logger.info(f"Extra allowed origins: {', '.join(policy.extra_hosts)}")
    if not forwarder.configured:
        logger.error("BEACONRELAY_WEBHOOK_URL is not configured; every beacon will be answered with 502")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.service_name}", extra={"collect_paths": settings.collect_paths_list()})
        yield
        logger.info(f"Shutting down {settings.service_name}")
        await forwarder.aclose()

    app = FastAPI(
        title="Beacon Relay",
        description="Origin-checked analytics beacon ingress forwarding to a webhook",
        version=VERSION,
        lifespan=lifespan,
    )

    # Last added runs first: origin admission, then size cap, then logging.
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=settings.max_body_bytes)
    app.add_middleware(OriginAdmissionMiddleware, policy=policy, max_age=settings.cors_max_age)

    @app.get("/healthz", tags=["Health"], response_class=PlainTextResponse)
    async def healthz():
        return PlainTextResponse("ok")

    @app.get("/", tags=["Health"], response_class=PlainTextResponse)
    async def home():
        return PlainTextResponse(f"{settings.service_name} is running")

    @app.options("/{rest:path}", tags=["CORS"])
    async def options_any(rest: str):
        # Preflights are answered by the middleware; this covers bare OPTIONS.
        return Response(status_code=204)

    async def collect(request: Request) -> Response:
        """Accept one beacon and forward it to the webhook."""
        request_id = new_request_id()

        raw = await read_body_capped(request, settings.max_body_bytes)
        if raw is None:
            logger.warning(f"[{request_id}] Body too large: over {settings.max_body_bytes} bytes")
            return _error(413, "payload too large", request_id)

        body = decode_transport(raw, request.headers.get("content-type"))
        payload = coerce_payload(body)
        if isinstance(payload, dict):
            log_beacon(logger, request_id, payload)

        if is_empty_payload(payload):
            logger.warning(f"[{request_id}] Rejected: empty body")
            return _error(400, "empty body", request_id)

        result = sanitize_payload(payload)
        if not result.ok:
            logger.warning(f"[{request_id}] Rejected: {result.error}")
            return _error(400, result.error, request_id)

        fwd = await forwarder.forward(result.payload, request_id=request_id)
        if fwd.outcome is Outcome.SUCCESS:
            # No body: sendBeacon callers ignore it anyway.
            return Response(status_code=204, headers={"X-Request-ID": request_id})
        if fwd.outcome is Outcome.DOWNSTREAM_ERROR:
            logger.error(f"[{request_id}] Webhook answered {fwd.status}")
            return _error(502, "bad gateway", request_id, status=fwd.status)

        logger.error(f"[{request_id}] Webhook forwarding failed: {fwd.outcome.value} ({fwd.reason})")
        return _error(502, "forwarding failed", request_id)

    for path in settings.collect_paths_list():
        app.add_api_route(path, collect, methods=["POST"], tags=["Collector"], status_code=204)

    return app


app = create_app()
