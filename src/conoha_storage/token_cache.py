"""Persistent token cache keyed by API user.

Backends:
- FileTokenCache: one JSON record per user, ``{base_dir}/token_{user}.json``
- InMemoryTokenCache: process-local dict (dev/test)

A record that cannot be read or parsed counts as a cache miss; the manager
then acquires a fresh token and overwrites it.
"""

from __future__ import annotations

import logging
import re
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from conoha_storage.errors import TokenCacheError
from conoha_storage.models import CachedTokenRecord, Token

logger = logging.getLogger(__name__)

_SAFE_USER_PATTERN = re.compile(r"^[a-zA-Z0-9_\-.@]+$")

_RECORD_PREFIX = "token_"
_RECORD_SUFFIX = ".json"


class TokenCache(ABC):
    """Durable storage of one token per API user."""

    @abstractmethod
    def load(self, user: str) -> Token | None:
        """Return the stored token for ``user``, or None if there is none.

        Expired tokens are returned as-is; expiry is the caller's decision.
        """
        ...

    @abstractmethod
    def save(self, user: str, token: Token) -> None:
        """Store ``token`` for ``user``, replacing any previous record.

        Raises:
            TokenCacheError: If the record cannot be written.
        """
        ...


class InMemoryTokenCache(TokenCache):
    """Token cache held in a dict. Nothing survives the process."""

    def __init__(self) -> None:
        self._records: dict[str, CachedTokenRecord] = {}

    def load(self, user: str) -> Token | None:
        record = self._records.get(user)
        return record.to_token() if record is not None else None

    def save(self, user: str, token: Token) -> None:
        self._records[user] = CachedTokenRecord.from_token(token)


class FileTokenCache(TokenCache):
    """Filesystem token cache.

    Records are JSON documents of the form::

        {"api_token": "...", "expire_date": "2026-10-20T09:00:00Z"}

    Writes go to a temporary file that is then renamed over the record, so a
    concurrent reader sees either the old or the new record.
    """

    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def record_path(self, user: str) -> Path:
        """Return the record path for ``user``.

        Raises:
            TokenCacheError: If ``user`` cannot be used as a file name.
        """
        if not _SAFE_USER_PATTERN.match(user) or user in (".", ".."):
            raise TokenCacheError("Unsafe user id for token cache", user=user)
        return self._base_dir / f"{_RECORD_PREFIX}{user}{_RECORD_SUFFIX}"

    def load(self, user: str) -> Token | None:
        path = self.record_path(user)
        if not path.exists():
            return None
        try:
            record = CachedTokenRecord.model_validate_json(path.read_bytes())
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            logger.warning("Ignoring unreadable token record %s: %s", path.name, e)
            return None
        return record.to_token()

    def save(self, user: str, token: Token) -> None:
        path = self.record_path(user)
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        payload = CachedTokenRecord.from_token(token).model_dump_json()
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload + "\n", encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            if tmp_path.exists():
                tmp_path.unlink()
            raise TokenCacheError(
                f"Failed to write token record: {e}", user=user, cause=e
            ) from e
        logger.debug("Stored token record %s", path.name)
