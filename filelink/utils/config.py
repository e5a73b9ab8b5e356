"""Configuration management for application settings and per-account settings.

Both stores persist JSON files under the application home. Neither ever
holds a secret: passwords, tokens and share-link passwords live in the
secret vault only.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import (
    ConfigurationError,
    FileLinkError,
    FileSystemError,
    InvalidConfigError,
    MissingConfigKeyError,
)
from .logging import get_logger, log_call
from .paths import ACCOUNTS_PATH, CONFIG_PATH
from .validation import clamp_days, normalize_origin, sanitize_path

logger = get_logger(__name__)

DEFAULT_UPLOAD_DIR = "/Thunderbird-Attachments"


class HttpConfig(BaseModel):
    """Pydantic model for HTTP transport settings."""

    timeout: float = 30.0  # in seconds
    upload_timeout: Optional[float] = None  # None = no limit


class UploadsConfig(BaseModel):
    """Pydantic model for upload defaults."""

    default_upload_dir: str = DEFAULT_UPLOAD_DIR


class VaultConfig(BaseModel):
    """Pydantic model for secret vault settings."""

    service_name: str = "filelink"
    backend: str = "auto"  # auto, keyring, file


class LoggingConfig(BaseModel):
    """Pydantic model for logging settings."""

    log_level: str = "INFO"


class AppConfig(BaseModel):
    """Pydantic model for overall application configuration."""

    version: str = "0.1.0"
    http: HttpConfig = Field(default_factory=HttpConfig)
    uploads: UploadsConfig = Field(default_factory=UploadsConfig)
    vault: VaultConfig = Field(default_factory=VaultConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigManager:
    """Manages persistent application configuration."""

    def __init__(self, config_path: Optional[Path] = None):
        self.path = Path(config_path or CONFIG_PATH)
        self.config = self._load_or_create_config()
        logger.debug(f"Configuration loaded from {self.path}")

    def _load_or_create_config(self) -> AppConfig:
        """Load configuration from file or create default if not present."""

        if not self.path.exists():
            logger.info("No config file found, creating default configuration.")
            config = AppConfig()
            self._save_config(config)
            return config

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return AppConfig(**data)

        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse config file: {e}")
            raise InvalidConfigError(
                f"Configuration file is not valid JSON: {str(e)}"
            ) from e
        except ValidationError as e:
            logger.error(f"Failed to validate config file: {e}")
            raise InvalidConfigError(
                f"Configuration data does not match expected schema: {str(e)}"
            ) from e
        except OSError as e:
            raise FileSystemError(f"Failed to read configuration file: {self.path}") from e

    def _save_config(self, config: Optional[AppConfig] = None) -> None:
        """Save the current configuration to file."""

        config = config or self.config

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(config.model_dump(), f, indent=2, ensure_ascii=False)
            logger.debug("Configuration successfully saved.")
        except OSError as e:
            raise FileSystemError(
                f"Failed to write configuration file: {str(e)}"
            ) from e

    def get_config(self, key_path: str, default: Any = None) -> Any:
        """Get a configuration value using a dot-separated key path."""

        obj: Any = self.config
        for key in key_path.split("."):
            if not hasattr(obj, key):
                return default
            obj = getattr(obj, key)
        return obj

    @log_call
    def set_config(self, key_path: str, value: Any, persist: bool = True) -> None:
        """Set a configuration value using a dot-separated key path."""

        keys = key_path.split(".")
        obj: Any = self.config

        for key in keys[:-1]:
            if not hasattr(obj, key):
                raise MissingConfigKeyError(
                    f"Configuration path '{key_path}' is invalid: '{key}' not found"
                )
            obj = getattr(obj, key)

        if not isinstance(obj, BaseModel) or keys[-1] not in type(obj).model_fields:
            raise MissingConfigKeyError(
                f"Configuration key '{keys[-1]}' does not exist in path '{key_path}'"
            )

        try:
            field_type = type(getattr(obj, keys[-1]))
            if field_type in (int, float, bool) and isinstance(value, str):
                value = _coerce(value, field_type)
            setattr(obj, keys[-1], value)
        except (TypeError, ValueError) as e:
            raise InvalidConfigError(
                f"Invalid value for configuration key '{key_path}': {value!r}"
            ) from e

        if persist:
            self._save_config()

        logger.info(f"Config key '{key_path}' updated.")

    def reset_to_defaults(self) -> None:
        """Reset configuration to default values."""

        logger.warning("Resetting configuration to default values.")
        self.config = AppConfig()
        self._save_config()

    def reset_key(self, key_path: str) -> Any:
        """Reset one configuration value to its default and return it."""

        obj: Any = AppConfig()
        for key in key_path.split("."):
            if not hasattr(obj, key):
                raise MissingConfigKeyError(f"Configuration path '{key_path}' is invalid")
            obj = getattr(obj, key)

        self.set_config(key_path, obj)
        return obj


def _coerce(value: str, field_type: type) -> Any:
    """Convert a command-line string into the type of an existing field."""
    if field_type is bool:
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(value)
    return field_type(value)


_config_manager: Optional[ConfigManager] = None


def get_config_manager(config_path: Optional[Path] = None) -> ConfigManager:
    """Get or create the process-wide application configuration."""
    global _config_manager

    if _config_manager is None or config_path is not None:
        _config_manager = ConfigManager(config_path)

    return _config_manager


## Account Configuration


class AccountConfig(BaseModel):
    """Non-secret settings for one FileLink account.

    Values are normalised on construction: the server URL is reduced to its
    origin, the upload directory is sanitised and the expiry is clamped.
    """

    server_url: str
    username: str = ""
    repo_id: str = ""
    repo_name: str = ""
    upload_dir: str = DEFAULT_UPLOAD_DIR
    share_link_expire_days: int = 0
    has_share_link_password: bool = False

    @field_validator("server_url", mode="before")
    @classmethod
    def _normalise_origin(cls, value: str) -> str:
        return normalize_origin(value)

    @field_validator("upload_dir", mode="before")
    @classmethod
    def _sanitise_upload_dir(cls, value: Any) -> str:
        return sanitize_path(value or DEFAULT_UPLOAD_DIR)

    @field_validator("share_link_expire_days", mode="before")
    @classmethod
    def _clamp_expiry(cls, value: Any) -> int:
        return clamp_days(value)

    @property
    def origin(self) -> str:
        return self.server_url

    @classmethod
    def from_request(cls, data: Dict[str, Any], **overrides: Any) -> "AccountConfig":
        """Build a config from untrusted input, ignoring unknown keys."""
        fields = {key: data[key] for key in cls.model_fields if data.get(key) is not None}
        fields.update(overrides)

        try:
            return cls(**fields)
        except ValidationError as e:
            raise InvalidConfigError(
                "Invalid account settings", details={"errors": e.errors()}
            ) from e


class AccountConfigStore:
    """Durable key/value store of AccountConfig records keyed by account id."""

    KEY_PREFIX = "account_"

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path or ACCOUNTS_PATH)

    def _key(self, account_id: str) -> str:
        return f"{self.KEY_PREFIX}{account_id}"

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidConfigError(f"Account store is not valid JSON: {e}") from e
        except OSError as e:
            raise FileSystemError(f"Failed to read account store: {self.path}") from e

        if not isinstance(data, dict):
            raise InvalidConfigError("Account store must contain a JSON object")

        return data

    def _save(self, data: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            tmp_path.replace(self.path)
        except OSError as e:
            raise FileSystemError(f"Failed to write account store: {e}") from e

    def get(self, account_id: str) -> Optional[AccountConfig]:
        """Return the stored config for an account, or None."""
        raw = self._load().get(self._key(account_id))
        if not raw:
            return None

        try:
            return AccountConfig(**raw)
        except ValidationError as e:
            raise InvalidConfigError(
                f"Stored configuration for account {account_id} is invalid",
                details={"account_id": account_id, "errors": e.errors()},
            ) from e
        except FileLinkError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to load account {account_id}: {e}") from e

    def set(self, account_id: str, config: AccountConfig) -> None:
        """Create or overwrite the config for an account."""
        data = self._load()
        data[self._key(account_id)] = config.model_dump()
        self._save(data)
        logger.debug(f"Stored configuration for account {account_id}")

    def remove(self, account_id: str) -> bool:
        """Delete an account's config. Returns True if one existed."""
        data = self._load()
        existed = data.pop(self._key(account_id), None) is not None
        if existed:
            self._save(data)
            logger.debug(f"Removed configuration for account {account_id}")
        return existed

    def list_accounts(self) -> list[str]:
        """Return the ids of all configured accounts."""
        return [
            key[len(self.KEY_PREFIX):]
            for key in self._load()
            if key.startswith(self.KEY_PREFIX)
        ]
