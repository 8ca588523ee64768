"""Token lifecycle for the ConoHa identity service.

The manager settles on a token once, at construction: it reuses the cached
record for the API user while it is still valid and otherwise requests a new
one from ``POST {identity_url}/tokens``. After that the token only changes
through an explicit ``refresh()``.

Identity API: https://www.conoha.jp/docs/identity-post_tokens.html
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from enum import StrEnum
from typing import Any

import httpx

from conoha_storage.config import DEFAULT_TIMEOUT_SECONDS
from conoha_storage.errors import AuthenticationError, TokenCacheError
from conoha_storage.models import Credentials, Token
from conoha_storage.token_cache import TokenCache


class TokenState(StrEnum):
    """Lifecycle state of a TokenManager."""

    UNLOADED = "UNLOADED"
    CACHE_HIT_VALID = "CACHE_HIT_VALID"
    CACHE_MISS = "CACHE_MISS"
    CACHE_HIT_EXPIRED = "CACHE_HIT_EXPIRED"
    FORCED_REFRESH = "FORCED_REFRESH"
    ACQUIRING = "ACQUIRING"
    VALID = "VALID"
    FAILED = "FAILED"


class TokenManager:
    """Owns the bearer token for one set of credentials.

    Construction loads the cached token for ``credentials.user``. If
    ``force_refresh`` is set, or there is no cached token, or it has expired,
    a new token is acquired before the constructor returns.

    Refreshes are serialized: concurrent ``refresh(stale)`` calls that all saw
    the same stale token produce a single identity request.
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        cache: TokenCache,
        identity_url: str,
        force_refresh: bool = False,
        http_client: httpx.Client | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the manager and settle on a token.

        Args:
            credentials: API user, password and tenant.
            cache: Persistent token store.
            identity_url: Identity endpoint base URL.
            force_refresh: Ignore any cached token and authenticate now.
            http_client: Optional httpx.Client for dependency injection (testing).
            timeout_seconds: Timeout for identity requests.
            logger: Logger to use instead of the module logger.

        Raises:
            AuthenticationError: If a token is needed and cannot be acquired.
        """
        self._credentials = credentials
        self._cache = cache
        self._identity_url = identity_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._log = logger if logger is not None else logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._state = TokenState.UNLOADED
        self._token: Token | None = None

        self._owns_client = http_client is None
        self._http_client = http_client or httpx.Client(timeout=timeout_seconds)

        self._log.info("Initializing token manager (user: %s)", credentials.user)
        try:
            self._initialize(force_refresh)
        except AuthenticationError:
            self.close()
            raise

    def _initialize(self, force_refresh: bool) -> None:
        cached = self._load_cached()
        if force_refresh:
            self._state = TokenState.FORCED_REFRESH
        elif cached is None:
            self._state = TokenState.CACHE_MISS
        elif not cached.is_valid():
            self._state = TokenState.CACHE_HIT_EXPIRED
        else:
            self._state = TokenState.CACHE_HIT_VALID
            self._token = cached
            self._state = TokenState.VALID
            self._log.info(
                "Using cached token. (user: %s, expires: %s)",
                self._credentials.user,
                cached.expires_at.isoformat(),
            )
            return

        self._log.info(
            "Token required: %s (user: %s)",
            self._state.value,
            self._credentials.user,
        )
        self.acquire_token()

    def _load_cached(self) -> Token | None:
        self._log.info("Loading token data. (user: %s)", self._credentials.user)
        try:
            return self._cache.load(self._credentials.user)
        except TokenCacheError as e:
            self._log.warning("Token cache unavailable: %s", e)
            return None

    @property
    def state(self) -> TokenState:
        return self._state

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    @property
    def tenant_id(self) -> str:
        return self._credentials.tenant_id

    def current_token(self) -> Token:
        """Return the token settled at construction or by the last refresh.

        No refresh happens here, even if the token has since expired.

        Raises:
            AuthenticationError: If the last acquisition failed.
        """
        token = self._token
        if token is None:
            raise AuthenticationError(
                "No access token available", user=self._credentials.user
            )
        return token

    def acquire_token(self) -> Token:
        """Request a new token from the identity endpoint and persist it.

        Returns:
            The newly issued token.

        Raises:
            AuthenticationError: On a non-200 response, a network error, or a
                response body without ``access.token.id``/``expires``.
        """
        user = self._credentials.user
        self._state = TokenState.ACQUIRING
        self._log.info("Getting token. (user: %s)", user)

        body = {
            "auth": {
                "passwordCredentials": {
                    "username": user,
                    "password": self._credentials.password.get_secret_value(),
                },
                "tenantId": self._credentials.tenant_id,
            }
        }
        try:
            response = self._http_client.post(
                f"{self._identity_url}/tokens",
                json=body,
                headers={"Accept": "application/json"},
                timeout=self._timeout_seconds,
            )
        except httpx.RequestError as e:
            self._fail(f"Failed to get access token ({type(e).__name__})", None)
            raise AuthenticationError(
                f"Identity request failed: {e}", user=user
            ) from e

        if response.status_code != httpx.codes.OK:
            self._fail(
                f"Failed to get access token (HTTP {response.status_code})",
                response.status_code,
            )
            raise AuthenticationError(status_code=response.status_code, user=user)

        try:
            token = self._parse_token(response.json())
        except (ValueError, KeyError, TypeError) as e:
            self._fail("Failed to get access token (malformed response)", response.status_code)
            raise AuthenticationError(
                f"Malformed identity response: {e}",
                status_code=response.status_code,
                user=user,
            ) from e

        try:
            self._cache.save(user, token)
        except TokenCacheError as e:
            self._log.error("Failed to store token: %s", e)

        self._token = token
        self._state = TokenState.VALID
        self._log.info(
            "Got access token. (user: %s, expires: %s)",
            user,
            token.expires_at.isoformat(),
        )
        return token

    def refresh(self, stale: Token | None = None) -> Token:
        """Force a new token, single-flighted across threads.

        Args:
            stale: The token the caller found unusable. If another thread has
                already replaced it, that newer token is returned without a
                second identity request. If None, a new token is always
                acquired.

        Returns:
            The current token after the refresh.

        Raises:
            AuthenticationError: If acquisition fails.
        """
        with self._lock:
            if stale is not None and self._token is not None and self._token != stale:
                return self._token
            self._state = TokenState.FORCED_REFRESH
            return self.acquire_token()

    def close(self) -> None:
        """Close the HTTP client if this manager created it."""
        if self._owns_client:
            self._http_client.close()

    def _fail(self, message: str, status_code: int | None) -> None:
        self._state = TokenState.FAILED
        self._log.critical(
            "%s (user: %s)",
            message,
            self._credentials.user,
            extra={"status_code": status_code},
        )

    @staticmethod
    def _parse_token(data: Any) -> Token:
        token_data = data["access"]["token"]
        value = token_data["id"]
        if not isinstance(value, str) or not value:
            raise ValueError("access.token.id must be a non-empty string")
        return Token(value=value, expires_at=datetime.fromisoformat(token_data["expires"]))
