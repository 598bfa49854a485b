"""
Decode and normalize Yahoo v7 quote payloads.

We expect:
  {"quoteResponse": {"result": [ {symbol, regularMarketPrice, trailingPE, forwardPE, ...} ],
                     "error": null}}

A field can be absent (missing key or null) or malformed (present but not a
finite number). Both collapse to None for the optional ratios; for the price
either one is a NormalizationError.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from pydantic import ValidationError

from valora.errors import MalformedPayload, NormalizationError
from valora.schemas import Quote, UpstreamQuoteEnvelope

logger = logging.getLogger(__name__)

_ABSENT = object()
_MALFORMED = object()


def decode_envelope(payload: Any) -> dict[str, Any] | None:
    """Return the first result record, None when upstream reports no match.

    Raises MalformedPayload if the body does not have the envelope shape.
    """
    if not isinstance(payload, dict):
        raise MalformedPayload()
    try:
        envelope = UpstreamQuoteEnvelope.model_validate(payload)
    except ValidationError as e:
        raise MalformedPayload() from e

    results = envelope.quote_response.result or []
    if not results:
        return None
    return results[0]


def _read_number(record: dict[str, Any], key: str) -> Any:
    if key not in record or record[key] is None:
        return _ABSENT
    value = record[key]
    # formatted responses wrap numbers as {"raw": 1.0, "fmt": "1.00"}
    if isinstance(value, dict):
        value = value.get("raw")
        if value is None:
            return _ABSENT
    if isinstance(value, bool) or not isinstance(value, int | float):
        return _MALFORMED
    if math.isnan(value) or math.isinf(value):
        return _MALFORMED
    return float(value)


def _optional_number(record: dict[str, Any], key: str, symbol: str) -> float | None:
    value = _read_number(record, key)
    if value is _MALFORMED:
        logger.debug("dropping malformed field", extra={"symbol": symbol, "field": key})
        return None
    if value is _ABSENT:
        return None
    return value


def normalize_quote(record: dict[str, Any], requested_symbol: str) -> Quote:
    """Convert one upstream result record into a Quote."""
    raw_symbol = record.get("symbol")
    symbol = (
        raw_symbol.strip().upper()
        if isinstance(raw_symbol, str) and raw_symbol.strip()
        else requested_symbol.upper()
    )

    price = _read_number(record, "regularMarketPrice")
    if price is _ABSENT:
        raise NormalizationError("Upstream quote is missing a price")
    if price is _MALFORMED:
        raise NormalizationError("Upstream quote has a non-numeric price")

    return Quote(
        symbol=symbol,
        price=price,
        trailing_pe=_optional_number(record, "trailingPE", symbol),
        forward_pe=_optional_number(record, "forwardPE", symbol),
    )
