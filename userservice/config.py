"""Configuration management for the current user service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

DEFAULT_MONGO_URI = "mongodb://localhost:27017"
DEFAULT_DATABASE_NAME = "milestone2"
DEFAULT_COLLECTION_NAME = "users"
DEFAULT_ENVIRONMENT = "production"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000

CONFIG_PATH_ENV = "USER_SERVICE_CONFIG"

_ENV_FIELDS: Dict[str, str] = {
    "MONGO_URI": "mongo_uri",
    "MONGO_DB_NAME": "database_name",
    "MONGO_COLLECTION": "collection_name",
    "APP_ENV": "environment",
    "HOST": "host",
    "PORT": "port",
    "MONGO_SERVER_SELECTION_TIMEOUT_MS": "server_selection_timeout_ms",
    "MONGO_RETRY_DELAY": "retry_delay",
    "SHUTDOWN_GRACE_PERIOD": "shutdown_grace_period",
    "CORS_ALLOW_ORIGINS": "cors_allow_origins",
    "LOG_LEVEL": "log_level",
}


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the service and its database connection."""

    mongo_uri: str = DEFAULT_MONGO_URI
    database_name: str = DEFAULT_DATABASE_NAME
    collection_name: str = DEFAULT_COLLECTION_NAME
    environment: str = DEFAULT_ENVIRONMENT
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    server_selection_timeout_ms: int = 5000
    retry_delay: float = 5.0
    shutdown_grace_period: float = 10.0
    cors_allow_origins: Tuple[str, ...] = field(default=("*",))
    log_level: str = "INFO"

    @staticmethod
    def from_dict(data: Mapping[str, Any], base: "Settings | None" = None) -> "Settings":
        """Create :class:`Settings` from raw values, overriding ``base`` where present."""
        known = {item.name for item in fields(Settings)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        settings = base or Settings()
        overrides: Dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            overrides[key] = _coerce(key, value)
        return replace(settings, **overrides)

    def with_overrides(self, **values: Any) -> "Settings":
        """Return a copy with the non-``None`` values applied."""
        return Settings.from_dict({key: value for key, value in values.items() if value is not None}, self)


def _coerce(key: str, value: Any) -> Any:
    if key == "port":
        port = _to_int(key, value)
        if not 1 <= port <= 65535:
            raise ValueError(f"port must be between 1 and 65535, got {port}")
        return port
    if key == "server_selection_timeout_ms":
        timeout = _to_int(key, value)
        if timeout <= 0:
            raise ValueError(f"server_selection_timeout_ms must be positive, got {timeout}")
        return timeout
    if key in {"retry_delay", "shutdown_grace_period"}:
        try:
            seconds = float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{key} must be a number, got {value!r}") from exc
        if seconds < 0:
            raise ValueError(f"{key} must not be negative, got {seconds}")
        return seconds
    if key == "cors_allow_origins":
        if isinstance(value, str):
            items = value.split(",")
        else:
            items = [str(item) for item in value]
        return tuple(item.strip() for item in items if item.strip())
    if key == "log_level":
        return str(value).strip().upper()

    text = str(value).strip()
    if not text:
        raise ValueError(f"{key} must not be empty")
    return text


def _to_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {value!r}") from exc


def load_config_file(config_path: Path) -> Dict[str, Any]:
    """Load raw settings from a YAML file."""
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")
    return raw


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the optional configuration file path."""
    if not env_value:
        return None
    return Path(env_value).expanduser().resolve(strict=False)


def load_settings(
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build :class:`Settings` from defaults, an optional YAML file and the environment."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get(CONFIG_PATH_ENV))

    settings = Settings()
    if path is not None:
        settings = Settings.from_dict(load_config_file(path), settings)

    from_env = {
        field_name: env[variable]
        for variable, field_name in _ENV_FIELDS.items()
        if env.get(variable, "").strip()
    }
    return Settings.from_dict(from_env, settings)


__all__ = [
    "CONFIG_PATH_ENV",
    "DEFAULT_COLLECTION_NAME",
    "DEFAULT_DATABASE_NAME",
    "DEFAULT_ENVIRONMENT",
    "DEFAULT_MONGO_URI",
    "DEFAULT_PORT",
    "Settings",
    "load_config_file",
    "load_settings",
    "resolve_config_path",
]
