"""Tests for client configuration and credential loading."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conoha_storage.config import (
    CONOHA_CONFIG_DIR_ENV,
    CONOHA_DOWNLOAD_TIMEOUT_SECONDS_ENV,
    CONOHA_IDENTITY_URL_ENV,
    CONOHA_STORAGE_URL_ENV,
    CONOHA_TIMEOUT_SECONDS_ENV,
    CONOHA_TOKEN_DIR_ENV,
    DEFAULT_DOWNLOAD_TIMEOUT_SECONDS,
    DEFAULT_IDENTITY_URL,
    DEFAULT_STORAGE_URL,
    DEFAULT_TIMEOUT_SECONDS,
    ClientConfig,
    load_credentials,
)
from conoha_storage.errors import ConfigError

ALL_ENV = [
    CONOHA_IDENTITY_URL_ENV,
    CONOHA_STORAGE_URL_ENV,
    CONOHA_CONFIG_DIR_ENV,
    CONOHA_TOKEN_DIR_ENV,
    CONOHA_TIMEOUT_SECONDS_ENV,
    CONOHA_DOWNLOAD_TIMEOUT_SECONDS_ENV,
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ALL_ENV:
        monkeypatch.delenv(key, raising=False)


def _write_config(directory: Path, name: str, data: object) -> Path:
    path = directory / f"{name}.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestClientConfig:
    def test_defaults(self) -> None:
        config = ClientConfig.from_env()

        assert config.identity_url == DEFAULT_IDENTITY_URL
        assert config.storage_url == DEFAULT_STORAGE_URL
        assert config.config_dir == Path("config")
        assert config.token_dir == Path("data")
        assert config.timeout_seconds == DEFAULT_TIMEOUT_SECONDS
        assert config.download_timeout_seconds == DEFAULT_DOWNLOAD_TIMEOUT_SECONDS == 7200.0

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv(CONOHA_IDENTITY_URL_ENV, "https://identity.example.test/v2.0/")
        monkeypatch.setenv(CONOHA_STORAGE_URL_ENV, "https://storage.example.test/v1")
        monkeypatch.setenv(CONOHA_CONFIG_DIR_ENV, str(tmp_path / "conf"))
        monkeypatch.setenv(CONOHA_TOKEN_DIR_ENV, str(tmp_path / "tokens"))
        monkeypatch.setenv(CONOHA_TIMEOUT_SECONDS_ENV, "5")
        monkeypatch.setenv(CONOHA_DOWNLOAD_TIMEOUT_SECONDS_ENV, "90.5")

        config = ClientConfig.from_env()

        assert config.identity_url == "https://identity.example.test/v2.0"
        assert config.storage_url == "https://storage.example.test/v1"
        assert config.config_dir == tmp_path / "conf"
        assert config.token_dir == tmp_path / "tokens"
        assert config.timeout_seconds == 5.0
        assert config.download_timeout_seconds == 90.5

    def test_blank_value_uses_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(CONOHA_STORAGE_URL_ENV, "   ")
        monkeypatch.setenv(CONOHA_TIMEOUT_SECONDS_ENV, "")

        config = ClientConfig.from_env()

        assert config.storage_url == DEFAULT_STORAGE_URL
        assert config.timeout_seconds == DEFAULT_TIMEOUT_SECONDS

    @pytest.mark.parametrize("raw", ["abc", "0", "-3", "nan", "inf", "-inf"])
    def test_invalid_timeout_rejected(self, monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
        monkeypatch.setenv(CONOHA_TIMEOUT_SECONDS_ENV, raw)

        with pytest.raises(ConfigError, match=CONOHA_TIMEOUT_SECONDS_ENV):
            ClientConfig.from_env()


class TestLoadCredentials:
    def test_loads_named_file(self, tmp_path: Path) -> None:
        _write_config(
            tmp_path,
            "work",
            {"api_user": "gncu1", "api_pass": "pw", "tenant_id": "t1"},
        )

        credentials = load_credentials("work", tmp_path)

        assert credentials.user == "gncu1"
        assert credentials.password.get_secret_value() == "pw"
        assert credentials.tenant_id == "t1"

    def test_config_dir_from_env(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        _write_config(
            tmp_path,
            "default",
            {"api_user": "gncu1", "api_pass": "pw", "tenant_id": "t1"},
        )
        monkeypatch.setenv(CONOHA_CONFIG_DIR_ENV, str(tmp_path))

        assert load_credentials().user == "gncu1"

    def test_extra_keys_ignored(self, tmp_path: Path) -> None:
        _write_config(
            tmp_path,
            "default",
            {"api_user": "u", "api_pass": "p", "tenant_id": "t", "region": "tyo1"},
        )
        assert load_credentials("default", tmp_path).tenant_id == "t"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_credentials("absent", tmp_path)

    def test_invalid_json(self, tmp_path: Path) -> None:
        (tmp_path / "default.json").write_text("{oops", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_credentials("default", tmp_path)

    def test_not_utf8(self, tmp_path: Path) -> None:
        (tmp_path / "default.json").write_bytes(b'{"api_user": "\xff\xfe"}')
        with pytest.raises(ConfigError, match="not valid UTF-8"):
            load_credentials("default", tmp_path)

    def test_not_an_object(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "default", ["api_user"])
        with pytest.raises(ConfigError, match="JSON object"):
            load_credentials("default", tmp_path)

    def test_missing_fields_named(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "default", {"api_user": "u"})

        with pytest.raises(ConfigError) as exc_info:
            load_credentials("default", tmp_path)

        assert "api_pass" in str(exc_info.value)
        assert "tenant_id" in str(exc_info.value)

    def test_password_redacted_in_repr(self, tmp_path: Path) -> None:
        _write_config(
            tmp_path,
            "default",
            {"api_user": "u", "api_pass": "top-secret", "tenant_id": "t"},
        )

        credentials = load_credentials("default", tmp_path)

        assert "top-secret" not in repr(credentials)
        assert "top-secret" not in str(credentials)
