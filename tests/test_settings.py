"""Tests for the settings persistence layer."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from actionwire.services.settings import SecretVault, Settings, SettingsStore, redact_secret


def _store(tmp_path: Path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.json", vault=SecretVault(key_path=tmp_path / "key"))


def test_load_returns_defaults_when_file_missing(tmp_path: Path) -> None:
    assert _store(tmp_path).load() == Settings()


def test_save_and_load_roundtrip(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    original = Settings(
        base_url="https://api.example.com",
        api_token="super-secret",
        request_timeout=12.5,
        max_retries=4,
        default_headers={"X-Test": "1"},
        debug_logging=True,
        install_exception_hooks=False,
        metadata={"env": "dev"},
    )

    SettingsStore(path).save(original)
    reloaded = SettingsStore(path).load()

    assert reloaded == original


def test_api_token_is_never_written_in_plaintext(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save(Settings(api_token="super-secret"))

    raw = store.path.read_text(encoding="utf-8")
    payload = json.loads(raw)
    assert "super-secret" not in raw
    assert "api_token" not in payload
    assert payload["api_token_ciphertext"].startswith("fernet:")
    assert payload["version"] == 1


def test_load_legacy_plaintext_token(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text(json.dumps({"base_url": "https://old", "api_token": "legacy"}), encoding="utf-8")

    settings = _store(tmp_path).load()

    assert settings.api_token == "legacy"
    assert settings.base_url == "https://old"
    migrated = json.loads(target.read_text(encoding="utf-8"))
    assert "api_token" not in migrated
    assert migrated["api_token_ciphertext"].startswith("fernet:")


def test_undecryptable_token_is_dropped(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text(
        json.dumps({"api_token_ciphertext": "fernet:garbage", "version": 1}),
        encoding="utf-8",
    )

    assert _store(tmp_path).load().api_token == ""


def test_invalid_json_falls_back_to_defaults(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text("{not json", encoding="utf-8")
    assert _store(tmp_path).load() == Settings()


def test_unknown_fields_are_ignored(tmp_path: Path) -> None:
    target = tmp_path / "settings.json"
    target.write_text(json.dumps({"base_url": "https://x", "theme": "dark", "version": 1}), encoding="utf-8")
    assert _store(tmp_path).load().base_url == "https://x"


def test_runtime_overrides_apply_known_fields(tmp_path: Path) -> None:
    settings = _store(tmp_path).load(overrides={"base_url": "https://override", "unknown": 1, "api_token": None})
    assert settings.base_url == "https://override"
    assert settings.api_token == ""


def test_environment_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ACTIONWIRE_BASE_URL", "https://env")
    monkeypatch.setenv("ACTIONWIRE_DEBUG_LOGGING", "Yes")
    monkeypatch.setenv("ACTIONWIRE_INSTALL_EXCEPTION_HOOKS", "off")
    monkeypatch.setenv("ACTIONWIRE_MAX_RETRIES", "5")
    monkeypatch.setenv("ACTIONWIRE_REQUEST_TIMEOUT", "2.5")

    settings = _store(tmp_path).load(overrides={"base_url": "https://runtime"})

    assert settings.base_url == "https://env"
    assert settings.debug_logging is True
    assert settings.install_exception_hooks is False
    assert settings.max_retries == 5
    assert settings.request_timeout == 2.5


def test_invalid_numeric_environment_override_is_ignored(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    monkeypatch.setenv("ACTIONWIRE_MAX_RETRIES", "many")
    monkeypatch.setenv("ACTIONWIRE_RETRY_MAX_SECONDS", "soon")
    monkeypatch.setenv("ACTIONWIRE_RETRY_MIN_SECONDS", "0.25")

    with caplog.at_level("WARNING", logger="actionwire.services.settings"):
        settings = _store(tmp_path).load()

    assert "ACTIONWIRE_MAX_RETRIES='many': expected int" in caplog.text
    assert "ACTIONWIRE_RETRY_MAX_SECONDS='soon': expected float" in caplog.text
    assert settings.retry_min_seconds == 0.25
    assert settings.max_retries == Settings().max_retries
    assert settings.retry_max_seconds == Settings().retry_max_seconds


def test_settings_path_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ACTIONWIRE_SETTINGS_PATH", str(tmp_path / "custom.json"))
    assert SettingsStore().path == tmp_path / "custom.json"


def test_default_path_lives_in_state_dir(isolated_environment: Path) -> None:
    assert SettingsStore().path == isolated_environment / "settings.json"


def test_state_dir_resolution(tmp_path: Path, isolated_environment: Path) -> None:
    assert Settings().resolved_state_dir() == isolated_environment
    assert Settings(state_dir=str(tmp_path)).resolved_state_dir() == tmp_path


class TestSecretVault:
    """Fernet encryption of the API token."""

    def test_round_trip_reuses_key_file(self, tmp_path: Path) -> None:
        key_path = tmp_path / "vault.key"
        token = SecretVault(key_path).encrypt("secret")

        assert key_path.exists()
        assert SecretVault(key_path).decrypt(token) == "secret"

    def test_empty_secret_encrypts_to_empty(self, tmp_path: Path) -> None:
        vault = SecretVault(tmp_path / "vault.key")
        assert vault.encrypt("") == ""
        assert vault.decrypt("") == ""

    def test_unknown_prefix_is_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            SecretVault(tmp_path / "vault.key").decrypt("dpapi:abc")


@pytest.mark.parametrize(
    "value, expected",
    [("", ""), ("abc", "***"), ("abcdefghijkl", "abcd…ijkl")],
)
def test_redact_secret(value: str, expected: str) -> None:
    assert redact_secret(value) == expected
