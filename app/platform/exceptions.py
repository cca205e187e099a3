from typing import Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.platform.logger import get_logger
from app.platform.response import api_response, error_response

logger = get_logger(__name__)


class ScannerError(Exception):
    """Base class for every error the scan pipeline surfaces to callers."""

    kind = "InternalError"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.retry_after = retry_after

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class InvalidURLError(ScannerError):
    kind = "InvalidURL"
    status_code = status.HTTP_400_BAD_REQUEST


class RepositoryNotFoundError(ScannerError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND


class UpstreamRateLimitedError(ScannerError):
    """The code-hosting provider's own quota is exhausted."""

    kind = "RateLimited"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class UpstreamError(ScannerError):
    kind = "UpstreamError"
    status_code = status.HTTP_502_BAD_GATEWAY


class FetchFailedError(ScannerError):
    kind = "FetchFailed"
    status_code = status.HTTP_502_BAD_GATEWAY


class FetchTimeoutError(ScannerError):
    kind = "Timeout"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT


class SelfRateLimitedError(ScannerError):
    """This service's own per-client quota is exhausted."""

    kind = "SelfRateLimited"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str, retry_after: int, headers: Optional[dict] = None):
        super().__init__(message, retry_after=retry_after)
        self.headers = headers or {}


class StoreUnavailableError(Exception):
    """Raised by key-value store backends when the store cannot be reached."""


def add_exception_handlers(app):
    @app.exception_handler(ScannerError)
    async def scanner_exception_handler(request: Request, exc: ScannerError):
        logger.warning(f"Scan failed on {request.url.path}: {exc.kind} - {exc.message}")
        headers = dict(getattr(exc, "headers", {}))
        if exc.retry_after is not None:
            headers["Retry-After"] = str(exc.retry_after)
        return error_response(**exc.to_dict(), status_code=exc.status_code, headers=headers or None)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_response(message=str(exc.detail) or "Error", status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
        return error_response(
            kind="InternalError",
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
