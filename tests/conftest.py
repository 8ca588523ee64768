"""Pytest configuration and fixtures for conoha_storage tests.

Provides an in-memory fake of the ConoHa identity and object storage
endpoints, served through httpx.MockTransport so no test touches the network.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Generator
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from conoha_storage.client import StorageClient
from conoha_storage.models import Credentials
from conoha_storage.token_cache import InMemoryTokenCache
from conoha_storage.token_manager import TokenManager

IDENTITY_URL = "https://identity.example.test/v2.0"
STORAGE_URL = "https://object-storage.example.test/v1"
TEST_USER = "gncu12345678"
TEST_PASSWORD = "s3cret-pass"
TEST_TENANT_ID = "487727e3921d44e3bfe7ebb337bf085e"


class FakeConoHa:
    """Stateful fake of the identity and Swift storage APIs.

    Containers map object names to ``(content, content_type)``. Every request
    is recorded; storage requests must carry a token this fake issued (or one
    registered with ``accept_token``).
    """

    def __init__(self) -> None:
        self.containers: dict[str, dict[str, tuple[bytes, str]]] = {}
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_lifetime = timedelta(hours=24)
        self.issued_tokens: list[str] = []
        self._accepted_tokens: set[str] = set()

    @property
    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/tokens")]

    @property
    def storage_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith("/v1/")]

    def accept_token(self, value: str) -> None:
        self._accepted_tokens.add(value)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == httpx.URL(IDENTITY_URL).host:
            return self._identity(request)
        return self._storage(request)

    def _identity(self, request: httpx.Request) -> httpx.Response:
        if request.method != "POST" or not request.url.path.endswith("/tokens"):
            return httpx.Response(404)
        if self.token_status != 200:
            return httpx.Response(self.token_status, json={"error": {"code": self.token_status}})

        auth = json.loads(request.content)["auth"]
        password_credentials = auth["passwordCredentials"]
        if (
            password_credentials["username"] != TEST_USER
            or password_credentials["password"] != TEST_PASSWORD
            or auth["tenantId"] != TEST_TENANT_ID
        ):
            return httpx.Response(401, json={"error": {"code": 401}})

        value = f"token-{len(self.issued_tokens) + 1}"
        self.issued_tokens.append(value)
        self.accept_token(value)
        expires = (datetime.now(UTC) + self.token_lifetime).strftime("%Y-%m-%dT%H:%M:%SZ")
        return httpx.Response(
            200,
            json={"access": {"token": {"id": value, "expires": expires}}},
        )

    def _storage(self, request: httpx.Request) -> httpx.Response:
        prefix = f"/v1/nc_{TEST_TENANT_ID}"
        path = request.url.path
        if not path.startswith(prefix):
            return httpx.Response(404)
        if request.headers.get("X-Auth-Token") not in self._accepted_tokens:
            return httpx.Response(401)

        parts = path[len(prefix) :].lstrip("/").split("/", 1)
        container = parts[0]
        obj = parts[1] if len(parts) > 1 else None

        if not container:
            return self._account(request)
        if obj is None:
            return self._container(request, container)
        return self._object(request, container, obj)

    def _account(self, request: httpx.Request) -> httpx.Response:
        if request.method != "GET":
            return httpx.Response(405)
        if not self.containers:
            return httpx.Response(204)
        listing = [
            {
                "name": name,
                "count": len(objects),
                "bytes": sum(len(content) for content, _ in objects.values()),
            }
            for name, objects in sorted(self.containers.items())
        ]
        return httpx.Response(200, json=listing)

    def _container(self, request: httpx.Request, container: str) -> httpx.Response:
        if request.method == "PUT":
            if container in self.containers:
                return httpx.Response(202)
            self.containers[container] = {}
            return httpx.Response(201)

        if container not in self.containers:
            return httpx.Response(404)
        objects = self.containers[container]

        if request.method == "GET":
            if not objects:
                return httpx.Response(204)
            listing = [
                {
                    "name": name,
                    "bytes": len(content),
                    "content_type": content_type,
                    "hash": hashlib.md5(content).hexdigest(),
                }
                for name, (content, content_type) in sorted(objects.items())
            ]
            return httpx.Response(200, json=listing)
        if request.method == "DELETE":
            if objects:
                return httpx.Response(409)
            del self.containers[container]
            return httpx.Response(204)
        return httpx.Response(405)

    def _object(self, request: httpx.Request, container: str, obj: str) -> httpx.Response:
        if container not in self.containers:
            return httpx.Response(404)
        objects = self.containers[container]

        if request.method == "PUT":
            content = request.read()
            content_type = request.headers.get("Content-Type", "application/octet-stream")
            objects[obj] = (content, content_type)
            return httpx.Response(201, headers={"Etag": hashlib.md5(content).hexdigest()})

        if obj not in objects:
            return httpx.Response(404)
        content, content_type = objects[obj]

        if request.method == "GET":
            return httpx.Response(
                200,
                content=content,
                headers={
                    "Content-Type": content_type,
                    "Etag": hashlib.md5(content).hexdigest(),
                },
            )
        if request.method == "DELETE":
            del objects[obj]
            return httpx.Response(204)
        return httpx.Response(405)


@pytest.fixture
def fake_conoha() -> FakeConoHa:
    return FakeConoHa()


@pytest.fixture
def http_client(fake_conoha: FakeConoHa) -> Generator[httpx.Client, None, None]:
    client = httpx.Client(transport=httpx.MockTransport(fake_conoha.handler))
    yield client
    client.close()


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(user=TEST_USER, password=TEST_PASSWORD, tenant_id=TEST_TENANT_ID)


@pytest.fixture
def token_manager(credentials: Credentials, http_client: httpx.Client) -> TokenManager:
    return TokenManager(
        credentials,
        cache=InMemoryTokenCache(),
        identity_url=IDENTITY_URL,
        http_client=http_client,
    )


@pytest.fixture
def storage_client(token_manager: TokenManager, http_client: httpx.Client) -> StorageClient:
    return StorageClient(token_manager, storage_url=STORAGE_URL, http_client=http_client)
