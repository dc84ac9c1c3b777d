"""Tests for tokenflow.config -- XDG paths, atomic writes, settings, profiles, credentials."""

from __future__ import annotations

import io
import json
import os
import stat
from pathlib import Path
from unittest.mock import patch

import pytest

from tokenflow.config import (
    atomic_write,
    create_store,
    default_store_path,
    delete_profile,
    get_config_dir,
    get_data_dir,
    get_profiles_dir,
    list_profiles,
    load_profile,
    load_settings,
    resolve_client_secret,
    resolve_credential,
    save_profile,
    validate_proxy_url,
)
from tokenflow.exceptions import ConfigurationError
from tokenflow.models import (
    ClientCredentialsConfig,
    ClientSettings,
    DeviceCodeConfig,
    ManualEndpoints,
    OidcEndpoints,
)
from tokenflow.store import FileStore, KeyringStore, MemoryStore


def _cc_config(**kwargs: object) -> ClientCredentialsConfig:
    defaults: dict[str, object] = {
        "client_id": "c1",
        "client_secret": "s1",
        "endpoints": ManualEndpoints(token_endpoint="https://idp/test/token"),
    }
    defaults.update(kwargs)
    return ClientCredentialsConfig(**defaults)  # type: ignore[arg-type]


class _FakeTTY(io.StringIO):
    def isatty(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestXDGPaths:
    def test_config_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("tokenflow.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_config_dir()
        assert result == tmp_path / ".config" / "tokenflow"
        assert result.is_dir()

    def test_data_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("tokenflow.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

        assert get_data_dir() == tmp_path / "data" / "tokenflow"

    def test_fallback_dirs(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("tokenflow.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_config_dir() == tmp_path / ".tokenflow"
        assert get_data_dir() == tmp_path / ".tokenflow" / "data"

    def test_profiles_dir_inside_config_dir(self, xdg_dirs: Path) -> None:
        assert get_profiles_dir() == xdg_dirs / "config" / "tokenflow" / "profiles"

    def test_default_store_path(self, xdg_dirs: Path) -> None:
        assert default_store_path() == xdg_dirs / "data" / "tokenflow" / "tokens.json"


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    def test_creates_file_and_parents(self, tmp_path: Path) -> None:
        target = tmp_path / "a" / "b" / "tokens.json"
        atomic_write(target, "{}")
        assert target.read_text(encoding="utf-8") == "{}"

    def test_overwrites_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "f.txt"
        target.write_text("old", encoding="utf-8")
        atomic_write(target, "new")
        assert target.read_text(encoding="utf-8") == "new"

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_mode_applied(self, tmp_path: Path) -> None:
        target = tmp_path / "secret.json"
        atomic_write(target, "{}", mode=0o600)
        assert stat.S_IMODE(target.stat().st_mode) == 0o600

    def test_no_temp_files_left_on_error(self, tmp_path: Path) -> None:
        target = tmp_path / "f.txt"
        with patch("tokenflow.config.os.fsync", side_effect=OSError("disk error")):
            with pytest.raises(OSError, match="disk error"):
                atomic_write(target, "will fail")
        assert list(tmp_path.iterdir()) == []


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestProxyValidation:
    def test_valid(self) -> None:
        assert validate_proxy_url(" http://proxy.local:3128 ") == "http://proxy.local:3128"

    @pytest.mark.parametrize(
        "url",
        ["proxy.local:3128", "http://proxy.local", "http://:3128", "ftp://proxy:21", "http://proxy:port"],
    )
    def test_invalid(self, url: str) -> None:
        with pytest.raises(ConfigurationError, match="Invalid proxy URL"):
            validate_proxy_url(url)


class TestLoadSettings:
    def test_defaults(self, xdg_dirs: Path) -> None:
        settings = load_settings()
        assert settings == ClientSettings()

    def test_reads_environment(self, xdg_dirs: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOKENFLOW_TIMEOUT", "12.5")
        monkeypatch.setenv("TOKENFLOW_PROXY", "http://proxy.local:8080")
        monkeypatch.setenv("TOKENFLOW_MIN_VALIDITY", "120")
        monkeypatch.setenv("TOKENFLOW_TOKEN_STORE", "keyring")

        settings = load_settings()
        assert settings.timeout == 12.5
        assert settings.proxy_url == "http://proxy.local:8080"
        assert settings.min_validity_seconds == 120
        assert settings.token_store == "keyring"

    def test_overrides_win(self, xdg_dirs: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOKENFLOW_TOKEN_STORE", "keyring")
        assert load_settings(token_store="memory", proxy_url=None).token_store == "memory"

    def test_invalid_value(self, xdg_dirs: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOKENFLOW_TOKEN_STORE", "sqlite")
        with pytest.raises(ConfigurationError, match="Invalid tokenflow settings"):
            load_settings()

    def test_invalid_proxy(self, xdg_dirs: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOKENFLOW_PROXY", "proxy-without-port")
        with pytest.raises(ConfigurationError, match="Invalid proxy URL"):
            load_settings()


class TestCreateStore:
    def test_memory(self) -> None:
        assert isinstance(create_store(ClientSettings(token_store="memory")), MemoryStore)

    def test_keyring(self) -> None:
        store = create_store(ClientSettings(token_store="keyring"))
        assert isinstance(store, KeyringStore)
        assert store.service == "tokenflow"

    def test_file_default_path(self, xdg_dirs: Path) -> None:
        store = create_store(ClientSettings())
        assert isinstance(store, FileStore)
        assert store.path == default_store_path()

    def test_file_custom_path(self, tmp_path: Path) -> None:
        store = create_store(ClientSettings(store_path=str(tmp_path / "t.json")))
        assert isinstance(store, FileStore)
        assert store.path == tmp_path / "t.json"


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


class TestProfiles:
    def test_list_empty(self, xdg_dirs: Path) -> None:
        assert list_profiles() == []

    def test_save_load_list(self, xdg_dirs: Path) -> None:
        config = _cc_config(scope="read write")
        save_profile("svc", config)
        save_profile("another", DeviceCodeConfig(
            client_id="d1", endpoints=OidcEndpoints(discovery_url="https://idp/.well-known")
        ))

        assert list_profiles() == ["another", "svc"]
        assert load_profile("svc") == config

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_saved_with_restrictive_permissions(self, xdg_dirs: Path) -> None:
        path = save_profile("svc", _cc_config())
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_saved_json_omits_callbacks(self, xdg_dirs: Path) -> None:
        config = DeviceCodeConfig(
            client_id="d1",
            endpoints=ManualEndpoints(token_endpoint="https://idp/token"),
            automation_callback=lambda uri: None,
            automation_enabled=True,
        )
        path = save_profile("dev", config)
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["kind"] == "device_code"
        assert "automation_callback" not in data

    def test_load_missing(self, xdg_dirs: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_profile("ghost")

    def test_load_invalid_json(self, xdg_dirs: Path) -> None:
        (get_profiles_dir() / "broken.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid profile 'broken'"):
            load_profile("broken")

    def test_load_invalid_config(self, xdg_dirs: Path) -> None:
        (get_profiles_dir() / "bad.json").write_text(
            json.dumps({"kind": "client_credentials", "client_id": "c1"}), encoding="utf-8"
        )
        with pytest.raises(ConfigurationError):
            load_profile("bad")

    def test_delete(self, xdg_dirs: Path) -> None:
        save_profile("svc", _cc_config())
        delete_profile("svc")
        assert list_profiles() == []

    def test_delete_missing(self, xdg_dirs: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            delete_profile("ghost")

    @pytest.mark.parametrize("name", ["", "../escape", ".hidden", "a/b"])
    def test_rejects_path_like_names(self, xdg_dirs: Path, name: str) -> None:
        with pytest.raises(ConfigurationError, match="Invalid profile name"):
            load_profile(name)


# ---------------------------------------------------------------------------
# Credential resolution
# ---------------------------------------------------------------------------


class TestResolveCredential:
    def test_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TF_SECRET", "from-env")
        assert resolve_credential("env:TF_SECRET") == "from-env"

    def test_env_missing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TF_SECRET", raising=False)
        with pytest.raises(ConfigurationError, match="TF_SECRET"):
            resolve_credential("env:TF_SECRET")

    def test_file(self, tmp_path: Path) -> None:
        secret = tmp_path / "secret.txt"
        secret.write_text("  from-file\n", encoding="utf-8")
        assert resolve_credential(f"file:{secret}") == "from-file"

    def test_file_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            resolve_credential(f"file:{tmp_path / 'nope'}")

    def test_prompt_without_tty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.stdin", io.StringIO())
        with pytest.raises(ConfigurationError, match="not a TTY"):
            resolve_credential("prompt")

    def test_prompt_with_tty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.stdin", _FakeTTY(""))
        monkeypatch.setattr("tokenflow.config.getpass.getpass", lambda prompt: "typed")
        assert resolve_credential("prompt") == "typed"

    def test_unknown(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown credential source"):
            resolve_credential("vault:path")


class TestResolveClientSecret:
    def test_direct_secret(self) -> None:
        assert resolve_client_secret(_cc_config()) == "s1"

    def test_secret_source(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TF_SECRET", "from-env")
        config = _cc_config(client_secret=None, client_secret_source="env:TF_SECRET")
        assert resolve_client_secret(config) == "from-env"

    def test_no_secret(self) -> None:
        config = DeviceCodeConfig(
            client_id="d1", endpoints=ManualEndpoints(token_endpoint="https://idp/token")
        )
        assert resolve_client_secret(config) is None
