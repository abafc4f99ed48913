"""Custom error types used in grclink."""

from __future__ import annotations

from typing import Any

import requests

HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_FORBIDDEN = 403
RETRYABLE_SERVER_STATUSES = frozenset({500, 502, 503, 504})
TRANSPORT_ERRORS = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
    requests.exceptions.ContentDecodingError,
)


class GrcClientError(Exception):
    """Base class for client runtime errors."""


class ApiError(GrcClientError, requests.HTTPError):
    """Non-2xx response from the GRC API.

    Attributes:
        status: HTTP status code of the response.
        body: Parsed JSON body, or the raw text when the body is not JSON.
        is_csrf_error: True when the server rejected the CSRF token.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int,
        body: Any = None,
        is_csrf_error: bool = False,
        response: requests.Response | None = None,
    ) -> None:
        super().__init__(message, response=response)
        self.status = status
        self.body = body
        self.is_csrf_error = is_csrf_error

    @property
    def status_code(self) -> int:
        return self.status


class NetworkError(GrcClientError, requests.ConnectionError):
    """Transport failure before any HTTP response was received."""


class CsrfTokenError(GrcClientError):
    """Raised when the CSRF token endpoint cannot supply a token."""


def extract_status_code(exc: BaseException) -> int | None:
    """Extract a status code from a client or ``requests`` exception.

    Args:
        exc: Exception raised by a request.

    Returns:
        Status code if available.
    """

    for attr in ("status", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    return status_code if isinstance(status_code, int) else None


def is_network_error(exc: BaseException) -> bool:
    """Return True for transport-level failures."""

    return isinstance(exc, (NetworkError, *TRANSPORT_ERRORS))


def is_auth_error(exc: BaseException) -> bool:
    """Return True when the exception carries a 401 status."""

    return extract_status_code(exc) == HTTP_STATUS_UNAUTHORIZED


__all__ = [
    "HTTP_STATUS_FORBIDDEN",
    "HTTP_STATUS_UNAUTHORIZED",
    "RETRYABLE_SERVER_STATUSES",
    "TRANSPORT_ERRORS",
    "ApiError",
    "CsrfTokenError",
    "GrcClientError",
    "NetworkError",
    "extract_status_code",
    "is_auth_error",
    "is_network_error",
]
