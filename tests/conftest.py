from __future__ import annotations

import httpx
import pytest

from fakes import HOST_1, HOST_2, FakeYahoo, quote_payload
from valora.config import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(upstream_hosts=(HOST_1, HOST_2), backoff_base_sec=0.5)


@pytest.fixture
def fake_yahoo() -> FakeYahoo:
    return FakeYahoo(quote_steps=[httpx.Response(200, json=quote_payload(regularMarketPrice=1.0))])
