from typing import Any, Dict, Optional

import httpx

from .models import ErrorResponse


class RelayError(Exception):
    """Base error rendered as ``{"error": ..., "message": ...}``."""

    status_code = 500
    error = "Proxy Server Error"

    def __init__(self, message: Optional[str] = None, *, status_code: Optional[int] = None, error: Optional[str] = None):
        super().__init__(message or error or self.error)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error is not None:
            self.error = error

    def to_payload(self) -> Dict[str, Any]:
        return ErrorResponse(error=self.error, message=self.message).model_dump(exclude_none=True)


class ValidationError(RelayError):
    status_code = 400


class MethodNotAllowed(RelayError):
    status_code = 405
    error = "Method not allowed"


class UpstreamTimeout(RelayError):
    status_code = 504
    error = "Gateway Timeout - The request took too long to complete"


class UpstreamError(RelayError):
    """The target answered with a failing status; the status is mirrored."""

    def __init__(self, status_code: int, message: Optional[str] = None):
        super().__init__(message, status_code=status_code, error=f"Target server returned {status_code}")


class InternalError(RelayError):
    pass


def classify_upstream_error(exc: BaseException) -> RelayError:
    if isinstance(exc, RelayError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        # Timeout body carries no message field
        return UpstreamTimeout()
    if isinstance(exc, httpx.HTTPStatusError):
        return UpstreamError(exc.response.status_code, str(exc))
    return InternalError(str(exc) or exc.__class__.__name__)
