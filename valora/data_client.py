"""
Yahoo quote fetcher with session handling, backoff and host failover.

Returns a normalized Quote:
  Quote(symbol="AAPL", price=150.0, trailing_pe=25.0, forward_pe=20.0)
or None when upstream has no such ticker.

Notes / Pitfalls:
- Yahoo endpoints are unofficial -> can rate-limit (429), reject the crumb
  (401/403), 5xx on one host while the other is fine, or return junk with 200.
- Retry state (attempt counters, host index) lives in one fetch_quote call.
  Nothing is shared across requests, so one symbol's failures cannot eat
  another's retry allowance.
- Every upstream call runs under a fixed deadline.

Decision table per response:
  request error   -> refresh session, retry same host up to max_network_attempts,
                     then next host (covers transport, decoding and redirect errors)
  404             -> None, no retry
  401/403         -> forced session refresh + retry up to max_auth_attempts
  429             -> sleep backoff_base * n, retry same host up to max_backoff_attempts
  5xx             -> next host; once hosts run out, same backoff as 429
  other 4xx       -> ClientRejected
  200 junk        -> MalformedPayload (502)
  200 no result   -> None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from valora.config import Settings
from valora.errors import (
    ClientRejected,
    MalformedPayload,
    RateLimited,
    UpstreamUnavailable,
)
from valora.observability import UPSTREAM_ATTEMPTS
from valora.schemas import Quote
from valora.session import Session, SessionManager
from valora.utils import timer_ms
from valora.validator import decode_envelope, normalize_quote

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class QuoteFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        sessions: SessionManager,
        settings: Settings,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._sessions = sessions
        self._settings = settings
        self._sleep = sleep

    async def _send(self, host: str, symbol: str, session: Session) -> httpx.Response:
        headers = {"Accept": "application/json, text/plain, */*"}
        if session.cookie_header:
            headers["Cookie"] = session.cookie_header
        params = {"symbols": symbol, "crumb": session.crumb or ""}
        return await asyncio.wait_for(
            self._client.get(f"{host}{self._settings.quote_path}", params=params, headers=headers),
            timeout=self._settings.upstream_timeout_sec,
        )

    async def _backoff(self, attempt: int) -> None:
        await self._sleep(self._settings.backoff_base_sec * attempt)

    async def fetch_quote(self, symbol: str) -> Quote | None:
        s = self._settings
        sym = symbol.upper()
        hosts = s.upstream_hosts

        host_index = 0
        network_attempts = 0  # per host
        auth_attempts = 0
        backoff_attempts = 0
        force_refresh = False

        while True:
            host = hosts[host_index]
            session = await self._sessions.get_session(force_refresh=force_refresh)
            force_refresh = False

            log_ctx = {"symbol": sym, "host": host}
            try:
                with timer_ms() as elapsed:
                    resp = await self._send(host, sym, session)
            except (httpx.RequestError, TimeoutError) as e:
                network_attempts += 1
                UPSTREAM_ATTEMPTS.labels(outcome="network_error").inc()
                logger.warning(
                    "upstream request error: %s",
                    type(e).__name__,
                    extra={**log_ctx, "attempt": network_attempts},
                )
                if network_attempts < s.max_network_attempts:
                    force_refresh = True
                    continue
                if host_index + 1 < len(hosts):
                    host_index += 1
                    network_attempts = 0
                    continue
                raise UpstreamUnavailable() from e

            status = resp.status_code
            logger.debug(
                "upstream responded",
                extra={**log_ctx, "status": status, "duration_ms": elapsed()},
            )

            if status == 404:
                UPSTREAM_ATTEMPTS.labels(outcome="not_found").inc()
                return None

            if status in (401, 403):
                auth_attempts += 1
                UPSTREAM_ATTEMPTS.labels(outcome="auth_rejected").inc()
                if auth_attempts < s.max_auth_attempts:
                    force_refresh = True
                    continue
                raise ClientRejected(upstream_status=status)

            if status == 429:
                backoff_attempts += 1
                UPSTREAM_ATTEMPTS.labels(outcome="rate_limited").inc()
                if backoff_attempts < s.max_backoff_attempts:
                    await self._backoff(backoff_attempts)
                    continue
                raise RateLimited(upstream_status=status)

            if status >= 500:
                UPSTREAM_ATTEMPTS.labels(outcome="server_error").inc()
                if host_index + 1 < len(hosts):
                    logger.info("failing over to next host", extra={**log_ctx, "status": status})
                    host_index += 1
                    network_attempts = 0
                    continue
                backoff_attempts += 1
                if backoff_attempts < s.max_backoff_attempts:
                    await self._backoff(backoff_attempts)
                    continue
                raise UpstreamUnavailable(upstream_status=status)

            if status >= 400:
                UPSTREAM_ATTEMPTS.labels(outcome="client_error").inc()
                raise ClientRejected(upstream_status=status)

            if status != 200:
                UPSTREAM_ATTEMPTS.labels(outcome="unexpected").inc()
                raise UpstreamUnavailable(upstream_status=status)

            UPSTREAM_ATTEMPTS.labels(outcome="ok").inc()
            return self._parse(resp, sym)

    def _parse(self, resp: httpx.Response, symbol: str) -> Quote | None:
        try:
            payload: Any = resp.json()
        except ValueError as e:
            logger.warning("upstream returned non-JSON body", extra={"symbol": symbol})
            raise MalformedPayload() from e

        record = decode_envelope(payload)
        if record is None:
            return None
        return normalize_quote(record, symbol)
