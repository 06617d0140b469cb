"""Settings dataclasses and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

from ..ai.models import DEFAULT_MODEL

__all__ = [
    "Settings",
    "SettingsStore",
    "SecretVault",
    "default_settings_dir",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR_ENV = "HELM_HOME"
_SETTINGS_VERSION = 1
# Earlier names lose to later ones, so HELM_API_KEY beats OPENROUTER_API_KEY.
_ENV_OVERRIDES: tuple[tuple[str, str], ...] = (
    ("OPENROUTER_API_KEY", "api_key"),
    ("HELM_API_KEY", "api_key"),
    ("HELM_BASE_URL", "base_url"),
    ("HELM_MODEL", "model"),
    ("NEXT_PUBLIC_APP_URL", "app_url"),
    ("HELM_APP_URL", "app_url"),
    ("HELM_DATABASE", "database_path"),
)
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "HELM_DEBUG_LOGGING": "debug_logging",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "HELM_REQUEST_TIMEOUT": "request_timeout",
    "HELM_TEMPERATURE": "temperature",
    "HELM_AUTOSAVE_DELAY": "autosave_delay",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "HELM_MAX_TOKENS": "max_tokens",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_API_KEY_FIELD = "api_key_ciphertext"


def default_settings_dir() -> Path:
    override = os.environ.get(_SETTINGS_DIR_ENV, "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".helm"


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    base_url: str = "https://openrouter.ai/api/v1"
    api_key: str = ""
    model: str = DEFAULT_MODEL
    app_url: str = "http://localhost:3000"
    temperature: float = 0.7
    max_tokens: int = 200
    request_timeout: float = 30.0
    max_retries: int = 1
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 4.0
    autosave_delay: float = 1.0
    database_path: str | None = None
    default_headers: dict[str, str] = field(default_factory=dict)
    font_family: str = "Georgia"
    font_size: int = 14
    debug_logging: bool = False


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or (default_settings_dir() / "settings.json")
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, applying CLI/environment overrides when present."""

        payload = self._read_payload()
        settings = Settings()
        needs_migration = False

        if payload:
            plaintext_key, migrated = self._decrypt_api_key(
                payload.pop(_API_KEY_FIELD, None), payload.pop("api_key", None)
            )
            needs_migration = migrated
            data = _filter_fields(payload)
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            if plaintext_key:
                settings = replace(settings, api_key=plaintext_key)
        LOGGER.debug("Settings loaded from %s (%s keys)", self._path, len(payload))

        version_mismatch = bool(payload) and payload.get("version") != _SETTINGS_VERSION
        if needs_migration or version_mismatch:
            try:
                self.save(settings)
            except OSError as exc:  # pragma: no cover - defensive guard
                LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")

        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with atomic file writes."""

        payload = self._serialize(settings)
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _serialize(self, settings: Settings) -> Dict[str, Any]:
        data = asdict(settings)
        api_key = data.pop("api_key", "") or ""
        ciphertext = self._encrypt_api_key(api_key)
        if ciphertext:
            data[_API_KEY_FIELD] = ciphertext
        data["version"] = _SETTINGS_VERSION
        return data

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
            payload = json.loads(text)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {item.name for item in fields(Settings)}
        filtered: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in allowed or value is None:
                continue
            filtered[key] = value
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES:
            value = os.environ.get(env_name)
            if value:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings

    def _encrypt_api_key(self, api_key: str) -> str | None:
        if not api_key:
            return None
        try:
            return self._vault.encrypt(api_key)
        except Exception as exc:  # pragma: no cover - extremely rare
            LOGGER.warning("Failed to encrypt API key: %s", exc)
            return None

    def _decrypt_api_key(self, ciphertext: str | None, legacy_plaintext: str | None) -> tuple[str, bool]:
        if ciphertext:
            try:
                return self._vault.decrypt(ciphertext), False
            except ValueError as exc:
                LOGGER.warning("Unable to decrypt API key: %s", exc)
                return "", False
        if legacy_plaintext:
            LOGGER.info("Detected plaintext API key; migrating to encrypted storage.")
            return legacy_plaintext, True
        return "", False


class SecretVault:
    """Encrypts and decrypts sensitive strings with a Fernet key stored on disk."""

    prefix = "fernet"

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or (default_settings_dir() / "settings.key")
        self._fernet: Fernet | None = None

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._get_fernet().encrypt(secret.encode("utf-8"))
        return f"{self.prefix}:{token.decode('ascii')}"

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        prefix, _, payload = token.partition(":")
        if prefix != self.prefix or not payload:
            raise ValueError("Unrecognized secret token format")
        try:
            raw = self._get_fernet().decrypt(payload.encode("ascii"))
        except InvalidToken as exc:
            raise ValueError("Invalid Fernet token") from exc
        return raw.decode("utf-8")

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


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(Settings)} - {"api_key"}
    return {key: value for key, value in payload.items() if key in allowed}


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
