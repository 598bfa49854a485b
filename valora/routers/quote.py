# valora/routers/quote.py
from __future__ import annotations

import logging
import re

from fastapi import APIRouter, Depends, Query, Request

from valora.cache import TTLCache, quote_cache_key
from valora.data_client import QuoteFetcher
from valora.errors import InvalidSymbol, MissingParameter, NotFound
from valora.observability import CACHE_LOOKUPS
from valora.schemas import HealthResponse, QuoteResponse, ScoredQuote
from valora.scoring import score_quote

router = APIRouter(prefix="/api", tags=["quote"])
logger = logging.getLogger(__name__)

# Letters, digits and the punctuation Yahoo uses: BRK-B, RDS.A, ^GSPC, EURUSD=X
_SYMBOL_RE = re.compile(r"^[A-Za-z0-9.^=-]{1,20}$")


def get_cache(request: Request) -> TTLCache:
    return request.app.state.cache


def get_fetcher(request: Request) -> QuoteFetcher:
    return request.app.state.fetcher


def _validate_symbol(symbol: str | None) -> str:
    sym = (symbol or "").strip()
    if not sym:
        raise MissingParameter("Missing symbol query parameter")
    if not _SYMBOL_RE.match(sym):
        raise InvalidSymbol()
    return sym.upper()


@router.get("/quote", response_model=QuoteResponse)
async def quote(
    symbol: str | None = Query(None, description="Ticker (e.g., AAPL)"),
    cache: TTLCache = Depends(get_cache),
    fetcher: QuoteFetcher = Depends(get_fetcher),
):
    """Return price, P/E ratios and the composite score for a ticker."""
    sym = _validate_symbol(symbol)
    key = quote_cache_key(sym)

    cached = cache.get(key)
    if isinstance(cached, ScoredQuote):
        CACHE_LOOKUPS.labels(route="quote", result="hit").inc()
        return cached.to_response()
    CACHE_LOOKUPS.labels(route="quote", result="miss").inc()

    found = await fetcher.fetch_quote(sym)
    if found is None:
        logger.info("ticker not found", extra={"symbol": sym})
        raise NotFound()

    scored = score_quote(found)
    cache.set(key, scored)
    return scored.to_response()


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse()
