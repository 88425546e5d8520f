# src/remote/errors.py — v1
"""Error taxonomy for the shared-store client.

A legitimate miss is not an error: lookups return None.
"""

from __future__ import annotations


class CacheBackendError(Exception):
    """Base class for shared-store failures."""

    retryable: bool = False

    def __init__(self, message: str = "", status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message or self.__class__.__name__)


class Unauthorized(CacheBackendError):
    """Credential missing or rejected (401/403). Never retried."""


class RequestFailed(CacheBackendError):
    """The store rejected the request as malformed (400 and other 4xx). Never retried."""


class NetworkError(CacheBackendError):
    """Transient transport failure: connection lost, timeout, DNS, 5xx."""

    retryable = True


class InvalidResponse(CacheBackendError):
    """Malformed payload from the store. Retried like a network error."""

    retryable = True


class Conflict(CacheBackendError):
    """Uniqueness violation on insert (409): a concurrent writer won the race."""


class SaveFailed(CacheBackendError):
    """A write exhausted its retries or hit an unresolvable conflict."""

    def __init__(
        self,
        message: str = "",
        status_code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.cause = cause
        super().__init__(message, status_code)
