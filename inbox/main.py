import logging
import time
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from inbox.api.router import api_router
from inbox.core.config import Settings, get_settings
from inbox.core.db import close_engine, create_schema, get_session_factory, init_engine
from inbox.core.logging import configure_logging
from inbox.infra.realtime import InMemoryChangeHub, RepositoryFeed
from inbox.services.delivery_service import DeliveryTracker

settings = get_settings()
settings.validate_security_settings()
configure_logging(settings)

logger = logging.getLogger(__name__)

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = init_engine()
    app.state.db_engine = engine
    if settings.db_auto_create:
        await create_schema(engine)

    # One hub per process: every request session publishes into it and
    # every workspace socket reads from it through the feed.
    hub = InMemoryChangeHub()
    app.state.realtime_hub = hub
    app.state.inbox_feed = RepositoryFeed(get_session_factory(), hub)
    app.state.channel_http = httpx.AsyncClient(timeout=settings.channel_timeout_seconds)
    app.state.delivery_tracker = DeliveryTracker()
    logger.info("Inbox service started env=%s", settings.app_env)
    try:
        yield
    finally:
        await app.state.delivery_tracker.drain()
        await app.state.channel_http.aclose()
        await close_engine(engine)
        logger.info("Inbox service stopped")


def _install_middleware(app: FastAPI, config: Settings) -> None:
    if config.trusted_hosts:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=config.trusted_hosts)
    if config.force_https:
        app.add_middleware(HTTPSRedirectMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type"],
    )


app = FastAPI(
    title="Agency Inbox API",
    version="0.1.0",
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    lifespan=lifespan,
)
_install_middleware(app, settings)


@app.middleware("http")
async def log_and_secure_response(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000

    for header, value in _SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    if settings.force_https:
        response.headers.setdefault(
            "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
        )

    logger.debug(
        "%s %s status=%s elapsed_ms=%.1f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router, prefix="/api")


@app.get("/", tags=["meta"])
async def root() -> dict[str, str]:
    return {"service": "agency-inbox", "env": settings.app_env, "status": "ok"}
