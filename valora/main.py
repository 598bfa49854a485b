# valora/main.py
from __future__ import annotations

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from valora.cache import TTLCache
from valora.config import Settings
from valora.data_client import QuoteFetcher
from valora.errors import install_error_handlers
from valora.logging_conf import setup_logging

# --- Observability ---
from valora.observability import metrics_endpoint, timing_middleware

# --- Routers ---
from valora.routers import proxy, quote
from valora.schemas import VersionResponse
from valora.session import SessionManager
from valora.version import SERVICE_VERSION, service_version_payload


def create_app(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the app. Shared state (client, cache, session) lives for the app's lifespan.

    `transport` lets tests swap the network for an httpx.MockTransport.
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(settings.upstream_timeout_sec),
            headers={"User-Agent": settings.user_agent},
            follow_redirects=True,
            transport=transport,
        ) as client:
            sessions = SessionManager(client, settings)
            app.state.client = client
            app.state.cache = TTLCache(settings.cache_max_entries, settings.cache_ttl_sec)
            app.state.sessions = sessions
            app.state.fetcher = QuoteFetcher(client, sessions, settings)
            yield

    app = FastAPI(title="Valora", version=SERVICE_VERSION, lifespan=lifespan)
    app.state.settings = settings

    # --- Include routers ---
    app.include_router(quote.router)
    app.include_router(proxy.router)
    install_error_handlers(app)

    # --- Middleware ---
    app.middleware("http")(timing_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # --- Utility endpoints ---
    @app.get("/version", response_model=VersionResponse)
    def version():
        return service_version_payload()

    @app.get("/metrics")
    def metrics():
        return metrics_endpoint()

    return app


setup_logging()
app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(
        "valora.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=Settings.from_env().port,
        log_config=None,
    )
