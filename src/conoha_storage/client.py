"""ConoHa object storage client.

Container and object operations against the Swift-compatible storage API,
authenticated with the token held by a TokenManager. Every operation returns
a StorageResult: failures are logged at ERROR level and reported through
``result.error`` rather than raised. Only authentication problems raise.

Storage API: https://www.conoha.jp/docs/swift-show_account_details_and_list_containers.html
"""

from __future__ import annotations

import logging
import urllib.parse
from collections.abc import Iterator
from pathlib import Path, PurePosixPath
from typing import Any, BinaryIO

import httpx

from conoha_storage.config import (
    DEFAULT_CONF_NAME,
    DEFAULT_DOWNLOAD_TIMEOUT_SECONDS,
    DEFAULT_STORAGE_URL,
    DEFAULT_TIMEOUT_SECONDS,
    ClientConfig,
    load_credentials,
)
from conoha_storage.errors import StorageErrorKind
from conoha_storage.models import ObjectRef, StorageResult
from conoha_storage.token_cache import FileTokenCache, TokenCache
from conoha_storage.token_manager import TokenManager
from conoha_storage.tracing import traced_storage_operation

TRANSFER_CHUNK_SIZE = 64 * 1024

Listing = list[dict[str, Any]]
Headers = dict[str, str]


def _iter_chunks(stream: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    """Yield ``stream`` content in pieces of at most ``chunk_size`` bytes."""
    while chunk := stream.read(chunk_size):
        yield chunk


def _error_kind(status_code: int) -> StorageErrorKind:
    if status_code == httpx.codes.NOT_FOUND:
        return StorageErrorKind.NOT_FOUND
    return StorageErrorKind.TRANSPORT


class StorageClient:
    """Client for one tenant's object storage account.

    The client never keeps a token of its own: each request asks the
    TokenManager for its current token.
    """

    def __init__(
        self,
        token_manager: TokenManager,
        *,
        storage_url: str = DEFAULT_STORAGE_URL,
        http_client: httpx.Client | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        download_timeout_seconds: float = DEFAULT_DOWNLOAD_TIMEOUT_SECONDS,
        chunk_size: int = TRANSFER_CHUNK_SIZE,
        owns_token_manager: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the storage client.

        Args:
            token_manager: Source of the bearer token.
            storage_url: Object storage endpoint base URL.
            http_client: Optional httpx.Client for dependency injection (testing).
            timeout_seconds: Timeout for ordinary requests.
            download_timeout_seconds: Read timeout for object downloads.
            chunk_size: Buffer size for streamed uploads and downloads.
            owns_token_manager: Close the token manager in ``close()``.
            logger: Logger to use instead of the module logger.
        """
        self._token_manager = token_manager
        self._account_url = f"{storage_url.rstrip('/')}/nc_{token_manager.tenant_id}"
        self._timeout_seconds = timeout_seconds
        self._download_timeout_seconds = download_timeout_seconds
        self._chunk_size = chunk_size
        self._owns_token_manager = owns_token_manager
        self._log = logger if logger is not None else logging.getLogger(__name__)

        self._owns_client = http_client is None
        self._http_client = http_client or httpx.Client(timeout=timeout_seconds)

        self._log.info("Storage client ready (tenant: %s)", self.tenant_id)

    @property
    def tenant_id(self) -> str:
        return self._token_manager.tenant_id

    @property
    def token_manager(self) -> TokenManager:
        return self._token_manager

    @property
    def account_url(self) -> str:
        return self._account_url

    def close(self) -> None:
        """Close owned HTTP clients."""
        if self._owns_client:
            self._http_client.close()
        if self._owns_token_manager:
            self._token_manager.close()

    def __enter__(self) -> StorageClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -----------------------------------------------------------------------
    # Request plumbing
    # -----------------------------------------------------------------------

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "X-Auth-Token": self._token_manager.current_token().value,
        }
        if extra:
            headers.update(extra)
        return headers

    def _container_url(self, container_name: str) -> str:
        return f"{self._account_url}/{urllib.parse.quote(container_name, safe='')}"

    def _object_url(self, container_name: str, object_name: str) -> str:
        encoded_object = urllib.parse.quote(object_name, safe="/")
        return f"{self._container_url(container_name)}/{encoded_object}"

    def _send(
        self,
        method: str,
        url: str,
        *,
        action: str,
        extra_headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response | None:
        """Send one request; log and return None on network failure."""
        try:
            return self._http_client.request(
                method,
                url,
                headers=self._headers(extra_headers),
                timeout=self._timeout_seconds,
                **kwargs,
            )
        except httpx.RequestError as e:
            self._log.error("Failed to %s (%s: %s)", action, type(e).__name__, e)
            return None

    def _listing(self, url: str, action: str) -> StorageResult[Listing]:
        response = self._send("GET", url, action=action)
        if response is None:
            return StorageResult.failure(StorageErrorKind.TRANSPORT, f"Failed to {action}")

        if response.status_code >= httpx.codes.BAD_REQUEST:
            self._log.error("Failed to %s (HTTP %s)", action, response.status_code)
            return StorageResult.failure(
                _error_kind(response.status_code),
                f"Failed to {action}",
                status_code=response.status_code,
            )

        if not response.content.strip():
            return StorageResult.success([], status_code=response.status_code)
        try:
            items = response.json()
        except ValueError:
            self._log.error("Failed to %s (response is not JSON)", action)
            return StorageResult.failure(
                StorageErrorKind.TRANSPORT,
                f"Failed to {action}: response is not JSON",
                status_code=response.status_code,
            )
        if not isinstance(items, list):
            self._log.error("Failed to %s (response is not a JSON array)", action)
            return StorageResult.failure(
                StorageErrorKind.TRANSPORT,
                f"Failed to {action}: response is not a JSON array",
                status_code=response.status_code,
            )
        return StorageResult.success(items, status_code=response.status_code)

    # -----------------------------------------------------------------------
    # Account and containers
    # -----------------------------------------------------------------------

    @traced_storage_operation("list_containers")
    def list_containers(self) -> StorageResult[Listing]:
        """List the containers of the account.

        Returns:
            Container descriptors (name, count, bytes, ...); an empty list if
            the account has no containers.
        """
        return self._listing(self._account_url, "get object storage info")

    @traced_storage_operation("get_container_info")
    def get_container_info(self, container_name: str) -> StorageResult[Listing]:
        """List the objects of a container.

        Returns:
            Object descriptors (name, hash, bytes, content_type, ...); an empty
            list if the container holds no objects.
        """
        return self._listing(
            self._container_url(container_name),
            f"get container '{container_name}' info",
        )

    @traced_storage_operation("create_container")
    def create_container(self, container_name: str) -> StorageResult[Headers]:
        """Create a container.

        HTTP 201 (created) and 202 (already exists) are both successes; the
        latter is logged as a warning.
        """
        self._log.info("Creating container: '%s'", container_name)
        response = self._send(
            "PUT",
            self._container_url(container_name),
            action=f"create container '{container_name}'",
        )
        if response is None:
            return StorageResult.failure(
                StorageErrorKind.TRANSPORT, f"Failed to create container '{container_name}'"
            )

        if response.status_code == httpx.codes.CREATED:
            self._log.info("Create container completed: '%s'", container_name)
            return StorageResult.success(dict(response.headers), status_code=response.status_code)
        if response.status_code == httpx.codes.ACCEPTED:
            self._log.warning("Container '%s' already exists.", container_name)
            return StorageResult.success(dict(response.headers), status_code=response.status_code)

        self._log.error(
            "Failed to create container '%s' (HTTP %s)", container_name, response.status_code
        )
        return StorageResult.failure(
            StorageErrorKind.TRANSPORT,
            f"Failed to create container '{container_name}'",
            status_code=response.status_code,
        )

    @traced_storage_operation("delete_container")
    def delete_container(self, container_name: str) -> StorageResult[Headers]:
        """Delete an empty container.

        The container must be emptied first; HTTP 409 is reported as CONFLICT.
        Every other non-204 status is a generic failure.
        """
        self._log.info("Deleting container: '%s'", container_name)
        response = self._send(
            "DELETE",
            self._container_url(container_name),
            action=f"delete container '{container_name}'",
        )
        if response is None:
            return StorageResult.failure(
                StorageErrorKind.TRANSPORT, f"Failed to delete container '{container_name}'"
            )

        if response.status_code == httpx.codes.NO_CONTENT:
            self._log.info("Delete container completed: '%s'", container_name)
            return StorageResult.success(dict(response.headers), status_code=response.status_code)
        if response.status_code == httpx.codes.CONFLICT:
            self._log.error(
                "Cannot delete container '%s' because some objects exist in the container.",
                container_name,
            )
            return StorageResult.failure(
                StorageErrorKind.CONFLICT,
                f"Container '{container_name}' is not empty",
                status_code=response.status_code,
            )

        self._log.error(
            "Failed to delete container '%s' (HTTP %s)", container_name, response.status_code
        )
        return StorageResult.failure(
            StorageErrorKind.TRANSPORT,
            f"Failed to delete container '{container_name}'",
            status_code=response.status_code,
        )

    # -----------------------------------------------------------------------
    # Objects
    # -----------------------------------------------------------------------

    @traced_storage_operation("get_object_metadata")
    def get_object_metadata(
        self, container_name: str, object_name: str
    ) -> StorageResult[Headers]:
        """Fetch the metadata of an object.

        Issues a GET and reads only the response headers; the body is never
        downloaded.

        Returns:
            Response headers (content-type, content-length, etag, ...).
        """
        path = ObjectRef(container_name, object_name).path
        try:
            with self._http_client.stream(
                "GET",
                self._object_url(container_name, object_name),
                headers=self._headers(),
                timeout=self._timeout_seconds,
            ) as response:
                status_code = response.status_code
                headers = dict(response.headers)
        except httpx.RequestError as e:
            self._log.error(
                "Failed to get object '%s' info (%s: %s)", path, type(e).__name__, e
            )
            return StorageResult.failure(
                StorageErrorKind.TRANSPORT, f"Failed to get object '{path}' info"
            )

        if status_code != httpx.codes.OK:
            self._log.error("Failed to get object '%s' info (HTTP %s)", path, status_code)
            return StorageResult.failure(
                _error_kind(status_code),
                f"Failed to get object '{path}' info",
                status_code=status_code,
            )
        return StorageResult.success(headers, status_code=status_code)

    @traced_storage_operation("upload_object")
    def upload_object(
        self,
        input_path: str | Path,
        content_type: str,
        container_name: str,
        object_name: str | None = None,
    ) -> StorageResult[Headers]:
        """Upload a local file as an object.

        The file is streamed as the request body. The local file is checked
        before any request is made.

        Args:
            input_path: File to upload.
            content_type: MIME type to store with the object.
            container_name: Destination container.
            object_name: Object name; defaults to the file's base name.

        Returns:
            Metadata of the stored object, fetched after the upload.
        """
        source = Path(input_path)
        if not source.is_file():
            self._log.error("File '%s' not found.", source)
            return StorageResult.failure(
                StorageErrorKind.TRANSPORT, f"File '{source}' not found"
            )

        object_name = object_name or source.name
        path = ObjectRef(container_name, object_name).path
        self._log.info("Uploading object: '%s' > '%s'", source, path)

        try:
            with open(source, "rb") as f:
                response = self._send(
                    "PUT",
                    self._object_url(container_name, object_name),
                    action=f"upload '{source}' to '{path}'",
                    extra_headers={
                        "Content-Type": content_type,
                        "Content-Length": str(source.stat().st_size),
                    },
                    content=_iter_chunks(f, self._chunk_size),
                )
        except OSError as e:
            self._log.error("Failed to read '%s': %s", source, e)
            return StorageResult.failure(
                StorageErrorKind.TRANSPORT, f"Failed to read '{source}'"
            )

        if response is None:
            return StorageResult.failure(
                StorageErrorKind.TRANSPORT, f"Failed to upload '{source}' to '{path}'"
            )
        if response.status_code >= httpx.codes.BAD_REQUEST:
            self._log.error(
                "Failed to upload '%s' to '%s' (HTTP %s)", source, path, response.status_code
            )
            return StorageResult.failure(
                _error_kind(response.status_code),
                f"Failed to upload '{source}' to '{path}'",
                status_code=response.status_code,
            )

        self._log.info("Upload object completed: '%s'", path)
        return self.get_object_metadata(container_name, object_name)

    @traced_storage_operation("download_object")
    def download_object(
        self,
        container_name: str,
        object_name: str,
        output_path: str | Path | None = None,
    ) -> StorageResult[Headers]:
        """Download an object to a local file.

        The object's metadata is checked first; nothing is written if the
        object does not exist. The body is streamed to disk in chunks with
        the extended download read timeout.

        Args:
            container_name: Source container.
            object_name: Object to download.
            output_path: Destination file; defaults to the object's final
                name segment in the current working directory.

        Returns:
            Metadata of the object, as fetched before the transfer.
        """
        path = ObjectRef(container_name, object_name).path
        self._log.info("Checking: '%s'", path)
        metadata = self.get_object_metadata(container_name, object_name)
        if not metadata.ok:
            self._log.error("Object '%s' not found.", path)
            return StorageResult.failure(
                metadata.error or StorageErrorKind.NOT_FOUND,
                f"Object '{path}' not found",
                status_code=metadata.status_code,
            )
        self._log.info("Object '%s' found.", path)

        if output_path is None:
            output_path = Path.cwd() / PurePosixPath(object_name).name
        target = Path(output_path)
        timeout = httpx.Timeout(self._timeout_seconds, read=self._download_timeout_seconds)

        self._log.info("Downloading object: '%s'", path)
        opened = False
        try:
            with self._http_client.stream(
                "GET",
                self._object_url(container_name, object_name),
                headers=self._headers(),
                timeout=timeout,
            ) as response:
                if response.status_code >= httpx.codes.BAD_REQUEST:
                    self._log.error(
                        "Failed to download object '%s' (HTTP %s)", path, response.status_code
                    )
                    return StorageResult.failure(
                        _error_kind(response.status_code),
                        f"Failed to download object '{path}'",
                        status_code=response.status_code,
                    )
                with open(target, "wb") as f:
                    opened = True
                    for chunk in response.iter_bytes(chunk_size=self._chunk_size):
                        f.write(chunk)
        except httpx.RequestError as e:
            if opened:
                target.unlink(missing_ok=True)
            self._log.error(
                "Failed to download object '%s' (%s: %s)", path, type(e).__name__, e
            )
            return StorageResult.failure(
                StorageErrorKind.TRANSPORT, f"Failed to download object '{path}'"
            )
        except OSError as e:
            if opened:
                target.unlink(missing_ok=True)
            self._log.error("Failed to write '%s': %s", target, e)
            return StorageResult.failure(
                StorageErrorKind.TRANSPORT, f"Failed to write '{target}'"
            )

        self._log.info("Download object completed: '%s' > '%s'", path, target)
        return StorageResult.success(metadata.value or {}, status_code=metadata.status_code)

    @traced_storage_operation("delete_object")
    def delete_object(self, container_name: str, object_name: str) -> StorageResult[Headers]:
        """Delete an object. Only HTTP 204 counts as success."""
        path = ObjectRef(container_name, object_name).path
        self._log.info("Deleting object: '%s'", path)
        response = self._send(
            "DELETE",
            self._object_url(container_name, object_name),
            action=f"delete object '{path}'",
        )
        if response is None:
            return StorageResult.failure(
                StorageErrorKind.TRANSPORT, f"Failed to delete object '{path}'"
            )

        if response.status_code == httpx.codes.NO_CONTENT:
            self._log.info("Delete object completed: '%s'", path)
            return StorageResult.success(dict(response.headers), status_code=response.status_code)

        self._log.error("Failed to delete object '%s' (HTTP %s)", path, response.status_code)
        return StorageResult.failure(
            _error_kind(response.status_code),
            f"Failed to delete object '{path}'",
            status_code=response.status_code,
        )


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def create_storage_client(
    conf_name: str = DEFAULT_CONF_NAME,
    force_refresh: bool = False,
    *,
    config: ClientConfig | None = None,
    cache: TokenCache | None = None,
    http_client: httpx.Client | None = None,
    logger: logging.Logger | None = None,
) -> StorageClient:
    """Build a ready StorageClient from configuration.

    Loads ``{config_dir}/{conf_name}.json``, settles the token through a
    TokenManager backed by a FileTokenCache in ``config.token_dir``, and
    wires both into a StorageClient.

    Args:
        conf_name: Credential file name without ``.json``.
        force_refresh: Ignore any cached token and authenticate now.
        config: Endpoint/directory/timeout settings (default: from env).
        cache: Token cache override (default: FileTokenCache).
        http_client: Shared httpx.Client for both components (testing).
        logger: Logger passed to both components.

    Returns:
        A StorageClient that closes its TokenManager on ``close()``.

    Raises:
        ConfigError: If the credential file is missing or invalid.
        AuthenticationError: If a token is needed and cannot be acquired.
    """
    if config is None:
        config = ClientConfig.from_env()
    credentials = load_credentials(conf_name, config.config_dir)

    token_manager = TokenManager(
        credentials,
        cache=cache if cache is not None else FileTokenCache(config.token_dir),
        identity_url=config.identity_url,
        force_refresh=force_refresh,
        http_client=http_client,
        timeout_seconds=config.timeout_seconds,
        logger=logger,
    )
    return StorageClient(
        token_manager,
        storage_url=config.storage_url,
        http_client=http_client,
        timeout_seconds=config.timeout_seconds,
        download_timeout_seconds=config.download_timeout_seconds,
        owns_token_manager=True,
        logger=logger,
    )
