from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from valora.schemas import ErrorResponse


class ValoraError(Exception):
    """Base error; carries the HTTP status the API surfaces it with."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal error"

    def __init__(self, message: str | None = None, *, upstream_status: int | None = None):
        self.message = message or self.message
        self.upstream_status = upstream_status
        super().__init__(self.message)


class NotFound(ValoraError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Ticker not found"


class InvalidSymbol(ValoraError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid symbol"


class MissingParameter(ValoraError):
    status_code = status.HTTP_400_BAD_REQUEST


class ClientRejected(ValoraError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Upstream rejected the request"


class UpstreamUnavailable(ValoraError):
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "Failed to fetch quote"


class RateLimited(UpstreamUnavailable):
    message = "Upstream rate limit exceeded"


class MalformedPayload(UpstreamUnavailable):
    message = "Upstream returned a malformed payload"


class NormalizationError(MalformedPayload):
    message = "Upstream quote has no usable price"


class SessionRefreshError(UpstreamUnavailable):
    message = "Could not establish an upstream session"


def error_response(http_status: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=http_status, content=ErrorResponse(error=message).model_dump()
    )


async def handle_valora_error(request: Request, exc: ValoraError) -> JSONResponse:
    return error_response(exc.status_code, exc.message)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValoraError, handle_valora_error)
