# valora/config.py
# Purpose: Environment-driven settings for the quote pipeline.
# Pitfalls: Read once at app creation; changing env afterwards has no effect.

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/116.0 Safari/537.36"
)

DEFAULT_HOSTS = ("https://query1.finance.yahoo.com", "https://query2.finance.yahoo.com")


@dataclass(frozen=True)
class Settings:
    upstream_hosts: tuple[str, ...] = DEFAULT_HOSTS
    quote_path: str = "/v7/finance/quote"
    cookie_url: str = "https://fc.yahoo.com"
    crumb_url: str = "https://query2.finance.yahoo.com/v1/test/getcrumb"
    user_agent: str = DEFAULT_USER_AGENT

    cache_max_entries: int = 100
    cache_ttl_sec: float = 300.0
    session_ttl_sec: float = 1800.0

    max_network_attempts: int = 2
    max_auth_attempts: int = 2
    max_backoff_attempts: int = 3
    backoff_base_sec: float = 1.0
    upstream_timeout_sec: float = 10.0

    cors_origins: tuple[str, ...] = field(default=("*",))
    port: int = 3001

    def __post_init__(self) -> None:
        if not self.upstream_hosts:
            raise ValueError("at least one upstream host is required")
        for name in (
            "cache_max_entries",
            "max_network_attempts",
            "max_auth_attempts",
            "max_backoff_attempts",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        if self.cache_ttl_sec <= 0 or self.session_ttl_sec <= 0:
            raise ValueError("TTLs must be positive")
        if self.upstream_timeout_sec <= 0:
            raise ValueError("upstream_timeout_sec must be positive")
        if self.backoff_base_sec < 0:
            raise ValueError("backoff_base_sec must be >= 0")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ

        def _get(name: str, default: str) -> str:
            return env.get(name, default).strip() or default

        return cls(
            upstream_hosts=_split(_get("VALORA_UPSTREAM_HOSTS", ",".join(DEFAULT_HOSTS))),
            quote_path=_get("VALORA_QUOTE_PATH", cls.quote_path),
            cookie_url=_get("VALORA_COOKIE_URL", cls.cookie_url),
            crumb_url=_get("VALORA_CRUMB_URL", cls.crumb_url),
            user_agent=_get("VALORA_USER_AGENT", DEFAULT_USER_AGENT),
            cache_max_entries=int(_get("VALORA_CACHE_MAX_ENTRIES", "100")),
            cache_ttl_sec=float(_get("VALORA_CACHE_TTL_SEC", "300")),
            session_ttl_sec=float(_get("VALORA_SESSION_TTL_SEC", "1800")),
            max_network_attempts=int(_get("VALORA_MAX_NETWORK_ATTEMPTS", "2")),
            max_auth_attempts=int(_get("VALORA_MAX_AUTH_ATTEMPTS", "2")),
            max_backoff_attempts=int(_get("VALORA_MAX_BACKOFF_ATTEMPTS", "3")),
            backoff_base_sec=float(_get("VALORA_BACKOFF_BASE_SEC", "1.0")),
            upstream_timeout_sec=float(_get("VALORA_UPSTREAM_TIMEOUT_SEC", "10")),
            cors_origins=_split(_get("VALORA_CORS_ORIGINS", "*")),
            port=int(_get("PORT", "3001")),
        )


def _split(raw: str) -> tuple[str, ...]:
    return tuple(part.strip().rstrip("/") for part in raw.split(",") if part.strip())
