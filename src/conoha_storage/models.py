"""ConoHa object storage data models.

Credentials and the persisted token record are pydantic models because they
are parsed from JSON files. Tokens, object references and operation results
are plain frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from conoha_storage.errors import StorageErrorKind

T = TypeVar("T")


def _as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class Credentials(BaseModel):
    """API user credentials for one tenant.

    Loaded from a JSON file with the keys ``api_user``, ``api_pass`` and
    ``tenant_id``. Immutable once loaded.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user: str = Field(alias="api_user", min_length=1)
    password: SecretStr = Field(alias="api_pass")
    tenant_id: str = Field(min_length=1)


@dataclass(frozen=True)
class Token:
    """A bearer token issued by the identity endpoint.

    Attributes:
        value: Opaque token string sent as ``X-Auth-Token``.
        expires_at: Expiry timestamp (UTC).
    """

    value: str
    expires_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "expires_at", _as_utc(self.expires_at))

    def is_valid(self, now: datetime | None = None) -> bool:
        """Return True while ``now`` is strictly before the expiry."""
        if now is None:
            now = datetime.now(UTC)
        return _as_utc(now) < self.expires_at

    def __repr__(self) -> str:
        return f"Token(value=<redacted>, expires_at={self.expires_at.isoformat()})"


class CachedTokenRecord(BaseModel):
    """On-disk form of a Token, one record per API user."""

    api_token: str
    expire_date: datetime

    @field_validator("expire_date")
    @classmethod
    def _normalize_expire_date(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @classmethod
    def from_token(cls, token: Token) -> CachedTokenRecord:
        return cls(api_token=token.value, expire_date=token.expires_at)

    def to_token(self) -> Token:
        return Token(value=self.api_token, expires_at=self.expire_date)


@dataclass(frozen=True)
class ObjectRef:
    """Address of an object: container name plus object name."""

    container: str
    name: str

    @property
    def path(self) -> str:
        return f"{self.container}/{self.name}"


@dataclass(frozen=True)
class StorageResult(Generic[T]):
    """Outcome of a storage operation.

    Exactly one of ``value`` and ``error`` is meaningful: a successful result
    carries the value, a failed one carries ``value=None`` and an error kind.

    Attributes:
        value: Operation payload on success.
        error: Failure classification, or None on success.
        status_code: HTTP status of the deciding response, if there was one.
        message: Short description of the failure.
    """

    value: T | None = None
    error: StorageErrorKind | None = None
    status_code: int | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T, status_code: int | None = None) -> StorageResult[T]:
        return cls(value=value, status_code=status_code)

    @classmethod
    def failure(
        cls,
        error: StorageErrorKind,
        message: str,
        status_code: int | None = None,
    ) -> StorageResult[T]:
        return cls(error=error, status_code=status_code, message=message)
