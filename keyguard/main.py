"""API key device binding gateway — FastAPI application entry point.

Sits in front of an upstream API and enforces, per request:
Auth -> Device binding -> Forward -> Log
"""

from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response

from keyguard.admin.router import router as device_bindings_router
from keyguard.bindings.factory import create_binding_store
from keyguard.bindings.models import utcnow
from keyguard.bindings.store import BindingStore, Clock
from keyguard.config.settings import get_settings
from keyguard.errors import DeviceBindingError, device_binding_error_handler
from keyguard.logging.audit import (
    RequestTimer,
    generate_request_id,
    get_audit_logger,
    request_id_var,
    setup_logging,
)
from keyguard.proxy.handler import close_client, forward_request
from keyguard.security.device_binding import build_guard, enforce_device_binding
from keyguard.security.identity import resolve_client_ip
from keyguard.security.masking import mask_key

VERSION = "0.1.0"

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def create_app(store: BindingStore | None = None, clock: Clock = utcnow) -> FastAPI:
    """Build the gateway app.

    When no store is given, the configured backend is created at startup and
    lives as long as the app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        if not hasattr(app.state, "binding_store"):
            _attach_store(app, create_binding_store(get_settings(), clock=clock), clock)
        get_audit_logger().info("Gateway started")
        yield
        await close_client()
        get_audit_logger().info("Gateway stopped")

    app = FastAPI(
        title="API Key Device Binding Gateway",
        description="Binds API keys to a single device and bans concurrent usage",
        version=VERSION,
        lifespan=lifespan,
    )
    if store is not None:
        _attach_store(app, store, clock)

    app.add_exception_handler(DeviceBindingError, device_binding_error_handler)
    app.middleware("http")(request_id_middleware)

    app.add_api_route("/health", health, methods=["GET"])
    app.include_router(device_bindings_router)
    app.add_api_route("/{path:path}", proxy, methods=PROXY_METHODS)
    return app


def _attach_store(app: FastAPI, store: BindingStore, clock: Clock) -> None:
    app.state.binding_store = store
    app.state.device_guard = build_guard(store, get_settings(), clock=clock)


async def request_id_middleware(request: Request, call_next):
    rid = generate_request_id()
    token = request_id_var.set(rid)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-Id"] = rid
    return response


async def health():
    return {"status": "healthy", "version": VERSION}


async def proxy(path: str, request: Request, api_key: str = Depends(enforce_device_binding)):
    """Forward an authenticated, device-checked request upstream."""
    logger = get_audit_logger()
    client_ip = resolve_client_ip(request, get_settings().trust_forwarded_for)
    body = await request.body()

    try:
        with RequestTimer() as timer:
            result = await forward_request(
                request.method,
                path,
                dict(request.headers),
                query=request.url.query,
                body=body,
            )
    except httpx.HTTPError as e:
        logger.error(
            "Upstream request failed",
            extra={"audit_data": {
                "api_key": mask_key(api_key),
                "client_ip": client_ip,
                "path": path,
                "error": str(e),
            }},
        )
        return JSONResponse(
            status_code=502,
            content={"error": "upstream_unavailable", "message": "Upstream service unavailable"},
        )

    logger.info(
        "Request proxied",
        extra={"audit_data": {
            "api_key": mask_key(api_key),
            "client_ip": client_ip,
            "method": request.method,
            "path": path,
            "upstream_status": result.status_code,
            "latency_ms": timer.elapsed_ms,
        }},
    )
    return Response(content=result.content, status_code=result.status_code, headers=result.headers)


app = create_app()
