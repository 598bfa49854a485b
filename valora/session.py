"""
Yahoo session (cookie + crumb) bootstrap and renewal.

Yahoo's quote endpoints want a "crumb" token that is only issued to a client
holding cookies from a Yahoo landing page. Refresh is two requests:

  1. GET the cookie URL (fc.yahoo.com answers 404 but still sets cookies)
  2. GET the crumb URL with those cookies -> plain-text crumb

Notes / Pitfalls:
- The session is a single slot swapped atomically; concurrent refreshes may
  race and the last one wins. Refresh is idempotent so that is tolerated.
- An empty crumb is not an error: requests go out with an empty crumb param.
- If a refresh fails but an older session exists (and the caller did not force
  the refresh) we hand back the stale one and let 401/403 handling sort it out.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from valora.config import Settings
from valora.errors import SessionRefreshError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    cookie_header: str | None = None
    crumb: str | None = None
    expires_at: float = 0.0

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at

    @property
    def established(self) -> bool:
        """True once a refresh has ever succeeded."""
        return self.expires_at > 0


EMPTY_SESSION = Session()


def _cookie_header(responses: list[httpx.Response]) -> str | None:
    pairs: dict[str, str] = {}
    for resp in responses:
        for raw in resp.headers.get_list("set-cookie"):
            name_value = raw.split(";", 1)[0].strip()
            name, sep, value = name_value.partition("=")
            if sep and name.strip():
                pairs[name.strip()] = value.strip()
    if not pairs:
        return None
    return "; ".join(f"{k}={v}" for k, v in pairs.items())


def _clean_crumb(body: str) -> str | None:
    crumb = body.strip()
    # an HTML error page or JSON error is not a crumb
    if not crumb or any(ch.isspace() for ch in crumb) or crumb[0] in "<{":
        return None
    return crumb


class SessionManager:
    """Owns the process-wide Session slot. Starts empty."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: Settings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._settings = settings
        self._clock = clock
        self._session = EMPTY_SESSION
        self.refresh_count = 0

    @property
    def current(self) -> Session:
        return self._session

    def invalidate(self) -> None:
        self._session = EMPTY_SESSION

    async def get_session(self, force_refresh: bool = False) -> Session:
        previous = self._session
        if not force_refresh and previous.is_valid(self._clock()):
            return previous

        try:
            return await self.refresh()
        except SessionRefreshError as e:
            if not force_refresh and previous.established:
                logger.warning("session refresh failed, reusing stale session: %s", e)
                return previous
            raise

    async def refresh(self) -> Session:
        self.refresh_count += 1
        timeout = self._settings.upstream_timeout_sec
        try:
            landing = await asyncio.wait_for(
                self._client.get(self._settings.cookie_url), timeout=timeout
            )
            cookie_header = _cookie_header([*landing.history, landing])

            headers = {"Cookie": cookie_header} if cookie_header else {}
            crumb_resp = await asyncio.wait_for(
                self._client.get(self._settings.crumb_url, headers=headers), timeout=timeout
            )
        except (httpx.RequestError, TimeoutError) as e:
            raise SessionRefreshError() from e

        if crumb_resp.status_code >= 400:
            raise SessionRefreshError(upstream_status=crumb_resp.status_code)

        crumb = _clean_crumb(crumb_resp.text)
        if crumb is None:
            logger.info("upstream issued no crumb, continuing without one")

        session = Session(
            cookie_header=cookie_header,
            crumb=crumb,
            expires_at=self._clock() + self._settings.session_ttl_sec,
        )
        self._session = session
        logger.debug(
            "session refreshed",
            extra={"has_cookie": cookie_header is not None, "has_crumb": crumb is not None},
        )
        return session
