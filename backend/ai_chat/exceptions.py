from __future__ import annotations

import enum
from dataclasses import dataclass

from fastapi import status


class ErrorKind(str, enum.Enum):
    """Terminal failure kinds of the chat pipeline."""

    UNAUTHENTICATED = "unauthenticated"
    QUOTA_EXCEEDED = "quota_exceeded"
    INVALID_REQUEST = "invalid_request"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    SERVICE_MISCONFIGURED = "service_misconfigured"
    INTERNAL_ERROR = "internal_error"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.QUOTA_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UPSTREAM_UNAVAILABLE: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.SERVICE_MISCONFIGURED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@dataclass(frozen=True)
class Failure:
    """A stage outcome that terminates the pipeline.

    ``message`` is safe to show to the end user; diagnostics belong in logs.
    """

    kind: ErrorKind
    message: str

    @property
    def status_code(self) -> int:
        return self.kind.status_code


def unauthenticated(message: str = "Unauthorized") -> Failure:
    return Failure(ErrorKind.UNAUTHENTICATED, message)


def quota_exceeded(limit: int) -> Failure:
    return Failure(ErrorKind.QUOTA_EXCEEDED, f"Daily AI query limit reached ({limit}/day). Try again tomorrow.")


def invalid_request(message: str = "Invalid request body") -> Failure:
    return Failure(ErrorKind.INVALID_REQUEST, message)


def upstream_unavailable() -> Failure:
    return Failure(ErrorKind.UPSTREAM_UNAVAILABLE, "AI service temporarily unavailable. Please try again.")


def service_misconfigured() -> Failure:
    return Failure(ErrorKind.SERVICE_MISCONFIGURED, "AI service unavailable")


def internal_error() -> Failure:
    return Failure(ErrorKind.INTERNAL_ERROR, "Internal server error")


class BackendError(Exception):
    """Base error raised by external service adapters."""


class IdentityRejected(BackendError):
    """The identity provider refused the presented credential."""


class StoreError(BackendError):
    """The usage store or knowledge backend returned an unusable response."""


class ProviderError(BackendError):
    """The LLM provider returned a non-success or malformed response."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
