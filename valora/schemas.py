from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# --- Domain records ---
class Quote(BaseModel):
    model_config = ConfigDict(frozen=True)
    symbol: str  # canonical uppercase
    price: float
    trailing_pe: float | None = None
    forward_pe: float | None = None


class ScoredQuote(Quote):
    score: int = Field(ge=0, le=100)

    def to_response(self) -> "QuoteResponse":
        return QuoteResponse(
            symbol=self.symbol,
            price=self.price,
            pe=self.trailing_pe,
            forwardPE=self.forward_pe,
            score=self.score,
        )


# --- Upstream payload (Yahoo v7 quote) ---
class UpstreamQuoteResult(BaseModel):
    result: list[dict[str, Any]] | None = None
    error: Any = None


class UpstreamQuoteEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    quote_response: UpstreamQuoteResult = Field(alias="quoteResponse")


# --- Proxy cache entry ---
class ProxiedResource(BaseModel):
    model_config = ConfigDict(frozen=True)
    body: Any
    is_json: bool


# --- API payloads ---
class QuoteResponse(BaseModel):
    symbol: str
    price: float
    pe: float | None = None
    forwardPE: float | None = None
    score: int


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"


class VersionResponse(BaseModel):
    service: str  # "valora:0.1.0"
    version: str


class ErrorResponse(BaseModel):
    error: str
