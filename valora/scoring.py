# valora/scoring.py
# Purpose: Placeholder composite score from trailing and forward P/E.
# Pitfalls: Deliberately crude; lower multiples score higher. Not the research model.

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from valora.schemas import Quote, ScoredQuote

NEUTRAL_SCORE = 50


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return False
    return math.isfinite(value)


def _round_half_up(value: float) -> int:
    # trim float noise first so 4.4999999999 from 1/25 + 1/20 still lands on 5
    return int(Decimal(repr(round(value, 9))).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def compute_score(trailing_pe: Any, forward_pe: Any) -> int:
    """Score in [0, 100] from the mean reciprocal of the positive ratios.

    Ratios that are missing, non-numeric, zero or negative are excluded rather
    than clamped. With nothing left the neutral 50 is returned.
    """
    reciprocals = [1.0 / r for r in (trailing_pe, forward_pe) if _is_number(r) and r > 0]
    if not reciprocals:
        return NEUTRAL_SCORE

    raw = sum(reciprocals) / len(reciprocals) * 100.0
    return _round_half_up(min(100.0, max(0.0, raw)))


def score_quote(quote: Quote) -> ScoredQuote:
    return ScoredQuote(
        **quote.model_dump(),
        score=compute_score(quote.trailing_pe, quote.forward_pe),
    )
