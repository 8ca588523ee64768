"""ConoHa object storage error types.

Authentication failures are the only hard errors of the client: without a
token nothing else can run, so they are raised. Storage operation failures
are reported as a ``StorageErrorKind`` inside a ``StorageResult`` instead.
"""

from __future__ import annotations

from enum import StrEnum


class StorageErrorKind(StrEnum):
    """Failure classification for storage operations.

    NOT_FOUND: the container or object does not exist.
    CONFLICT: container delete attempted while objects remain in it.
    TRANSPORT: any other HTTP error, network error, or missing local file.
    """

    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    TRANSPORT = "TRANSPORT"


class ConoHaError(Exception):
    """Base exception for the ConoHa client.

    Attributes:
        message: Human-readable error message.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthenticationError(ConoHaError):
    """Raised when the identity endpoint does not issue a token.

    Attributes:
        status_code: HTTP status from the identity endpoint, or None if the
            request never got a response.
        user: API user the token was requested for.
    """

    def __init__(
        self,
        message: str = "Failed to get access token",
        *,
        status_code: int | None = None,
        user: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.user = user

    def __str__(self) -> str:
        parts = [self.message]
        if self.user:
            parts.append(f"user={self.user}")
        if self.status_code is not None:
            parts.append(f"http_status={self.status_code}")
        return " ".join(parts)


class ConfigError(ConoHaError):
    """Raised when a credentials file is missing or malformed."""


class TokenCacheError(ConoHaError):
    """Raised when a token record cannot be stored.

    Attributes:
        user: API user whose record was being stored.
        cause: Underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        user: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.user = user
        self.cause = cause
