# valora/routers/proxy.py
# Purpose: Generic fetch-and-cache passthrough so the frontend stays within free API limits.
# Pitfalls: Open proxy; put it behind an allow-list before exposing it publicly.

from __future__ import annotations

import asyncio
import logging

import httpx
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from valora.cache import TTLCache
from valora.config import Settings
from valora.errors import MissingParameter, error_response
from valora.observability import CACHE_LOOKUPS
from valora.routers.quote import get_cache
from valora.schemas import ProxiedResource

router = APIRouter(prefix="/api", tags=["proxy"])
logger = logging.getLogger(__name__)


def get_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.client


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _render(resource: ProxiedResource) -> Response:
    if resource.is_json:
        return JSONResponse(content=resource.body)
    return PlainTextResponse(content=resource.body)


@router.get("/proxy")
async def proxy(
    url: str | None = Query(None, description="Absolute URL to fetch"),
    cache: TTLCache = Depends(get_cache),
    client: httpx.AsyncClient = Depends(get_client),
    settings: Settings = Depends(get_settings),
):
    if not url:
        raise MissingParameter("Missing url query parameter")

    # quotes share this cache; only a ProxiedResource counts as a hit
    cached = cache.get(url)
    if isinstance(cached, ProxiedResource):
        CACHE_LOOKUPS.labels(route="proxy", result="hit").inc()
        return _render(cached)
    CACHE_LOOKUPS.labels(route="proxy", result="miss").inc()

    try:
        resp = await asyncio.wait_for(client.get(url), timeout=settings.upstream_timeout_sec)
    except (httpx.HTTPError, httpx.InvalidURL, TimeoutError):
        logger.exception("proxy fetch failed")
        return error_response(500, "Failed to fetch resource")

    if not resp.is_success:
        return error_response(
            resp.status_code, f"Upstream responded with status {resp.status_code}"
        )

    if "application/json" in resp.headers.get("content-type", ""):
        try:
            resource = ProxiedResource(body=resp.json(), is_json=True)
        except ValueError:
            logger.warning("proxy target sent invalid JSON", extra={"url": url})
            return error_response(500, "Failed to fetch resource")
    else:
        resource = ProxiedResource(body=resp.text, is_json=False)

    cache.set(url, resource)
    return _render(resource)
