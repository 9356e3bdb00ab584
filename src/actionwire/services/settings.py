"""Settings dataclass and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

__all__ = [
    "Settings",
    "SettingsStore",
    "SecretVault",
    "default_state_dir",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_STATE_DIR = Path.home() / ".actionwire"
_SETTINGS_FILE = "settings.json"
_SETTINGS_VERSION = 1
_TOKEN_FIELD = "api_token_ciphertext"
_TOKEN_PREFIX = "fernet"
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


def _parse_flag(raw: str) -> bool:
    return raw.strip().lower() in _TRUE_VALUES


# Environment variable -> (settings field, parser). A parser raising ValueError skips the override.
_ENV_OVERRIDES: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "ACTIONWIRE_BASE_URL": ("base_url", str),
    "ACTIONWIRE_API_TOKEN": ("api_token", str),
    "ACTIONWIRE_STATE_DIR": ("state_dir", str),
    "ACTIONWIRE_DEBUG_LOGGING": ("debug_logging", _parse_flag),
    "ACTIONWIRE_INSTALL_EXCEPTION_HOOKS": ("install_exception_hooks", _parse_flag),
    "ACTIONWIRE_MAX_RETRIES": ("max_retries", int),
    "ACTIONWIRE_REQUEST_TIMEOUT": ("request_timeout", float),
    "ACTIONWIRE_RETRY_MIN_SECONDS": ("retry_min_seconds", float),
    "ACTIONWIRE_RETRY_MAX_SECONDS": ("retry_max_seconds", float),
}


def default_state_dir() -> Path:
    """Return the directory holding settings, keys and the visitor id."""

    override = os.environ.get("ACTIONWIRE_STATE_DIR")
    return Path(override).expanduser() if override else _STATE_DIR


@dataclass(slots=True)
class Settings:
    """Runtime configuration of an actionwire application.

    ``max_retries`` is the total number of attempts the transport makes for
    connection-level failures; 1 means no retry.
    """

    base_url: str = "http://localhost"
    api_token: str = ""
    request_timeout: float = 30.0
    max_retries: int = 1
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: dict[str, str] = field(default_factory=dict)
    debug_logging: bool = False
    install_exception_hooks: bool = True
    state_dir: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def resolved_state_dir(self) -> Path:
        if self.state_dir:
            return Path(self.state_dir).expanduser()
        return default_state_dir()


class SecretVault:
    """Encrypts the API token with a Fernet key stored beside the settings."""

    def __init__(self, key_path: Path | None = None) -> None:
        self._key_path = key_path or (default_state_dir() / "settings.key")
        self._fernet: Fernet | None = None

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._get_fernet().encrypt(secret.encode("utf-8")).decode("ascii")
        return f"{_TOKEN_PREFIX}:{token}"

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        prefix, _, payload = token.partition(":")
        if prefix != _TOKEN_PREFIX or not payload:
            raise ValueError(f"Unknown secret token format (prefix={prefix!r})")
        try:
            return self._get_fernet().decrypt(payload.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Invalid Fernet token") from exc

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._load_or_create_key())
        return self._fernet

    def _load_or_create_key(self) -> bytes:
        path = self._key_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            return path.read_bytes().strip()
        key = Fernet.generate_key()
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(tmp_path, 0o600)
        tmp_path.replace(path)
        return key


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        env_path = os.environ.get("ACTIONWIRE_SETTINGS_PATH")
        self._path = path or (Path(env_path).expanduser() if env_path else default_state_dir() / _SETTINGS_FILE)
        self._vault = vault or SecretVault(self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, then apply runtime and environment overrides."""

        payload = self._read_payload()
        settings = Settings()
        needs_migration = False

        if payload:
            token, migrated = self._read_token(payload)
            needs_migration = migrated
            data = _filter_fields(payload)
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            if token:
                settings = replace(settings, api_token=token)
            LOGGER.debug("Settings loaded from %s", self._path)

        version_mismatch = bool(payload) and payload.get("version") != _SETTINGS_VERSION
        if needs_migration or version_mismatch:
            try:
                self.save(settings)
            except OSError as exc:
                LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="runtime")
        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with an atomic file write."""

        data = asdict(settings)
        token = data.pop("api_token", "") or ""
        ciphertext = self._vault.encrypt(token)
        if ciphertext:
            data[_TOKEN_FIELD] = ciphertext
        data["version"] = _SETTINGS_VERSION
        body = json.dumps(data, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _read_token(self, payload: Dict[str, Any]) -> tuple[str, bool]:
        ciphertext = payload.pop(_TOKEN_FIELD, None)
        plaintext = payload.pop("api_token", None)
        if ciphertext:
            try:
                return self._vault.decrypt(ciphertext), False
            except ValueError as exc:
                LOGGER.warning("Unable to decrypt API token: %s", exc)
                return "", False
        if plaintext:
            LOGGER.info("Detected plaintext API token; migrating to encrypted storage.")
            return plaintext, True
        return "", False

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str,
    ) -> Settings:
        allowed = {item.name for item in fields(Settings)}
        filtered = {key: value for key, value in overrides.items() if key in allowed and value is not None}
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, (field_name, parse) in _ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if raw is None:
                continue
            try:
                overrides[field_name] = parse(raw)
            except ValueError:
                LOGGER.warning("Ignoring environment override %s=%r: expected %s", env_name, raw, parse.__name__)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(Settings)} - {"api_token"}
    return {key: value for key, value in payload.items() if key in allowed}


def redact_secret(value: str) -> str:
    """Return a display-safe version of ``value``."""

    if not value:
        return ""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}…{value[-4:]}"
