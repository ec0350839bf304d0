from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


class ConfigError(RuntimeError):
    """Raised when the configuration file is invalid."""


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    directory: Path = Path("logs")
    logger_channel_id: Optional[int] = None


@dataclass(slots=True)
class StorageConfig:
    backend: str = "sqlite"
    path: Path = Path("data") / "giveaways.sqlite"


@dataclass(slots=True)
class GiveawayConfig:
    min_duration_seconds: int = 5 * 60
    max_duration_seconds: int = 30 * 24 * 60 * 60
    sweep_interval_seconds: int = 15
    sweep_buffer_seconds: int = 5
    notification_timeout_seconds: float = 10.0
    join_cooldown_seconds: float = 3.0

    @property
    def min_duration_ms(self) -> int:
        return self.min_duration_seconds * 1000

    @property
    def max_duration_ms(self) -> int:
        return self.max_duration_seconds * 1000

    @property
    def sweep_buffer_ms(self) -> int:
        return self.sweep_buffer_seconds * 1000


@dataclass(slots=True)
class PermissionsConfig:
    development_guild_id: Optional[int] = None


@dataclass(slots=True)
class Config:
    token: str
    application_id: int
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    giveaways: GiveawayConfig = field(default_factory=GiveawayConfig)
    permissions: PermissionsConfig = field(default_factory=PermissionsConfig)


def _require(data: Dict[str, Any], key: str) -> Any:
    if key not in data:
        raise ConfigError(f"Missing required config key: {key}")
    return data[key]

def _resolve_env_value(value: str, key: str) -> str:
    trimmed = value.strip()
    if trimmed.startswith("${") and trimmed.endswith("}"):
        env_name = trimmed[2:-1].strip()
        if not env_name:
            raise ConfigError(f"Environment reference for '{key}' is empty.")
        env_value = os.getenv(env_name)
        if env_value is None:
            raise ConfigError(
                f"Environment variable '{env_name}' referenced by '{key}' is not set."
            )
        return env_value
    return value

def _positive_number(data: Dict[str, Any], key: str, default, *, allow_zero: bool = False):
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"giveaways.{key} must be a number.")
    if value < 0 or (value == 0 and not allow_zero):
        qualifier = "zero or greater" if allow_zero else "greater than zero"
        raise ConfigError(f"giveaways.{key} must be {qualifier}.")
    return value


def _parse_logging(data: Dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", "INFO")).upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ConfigError(f"logging.level {level!r} is not a valid log level.")
    directory = Path(str(data.get("directory", LoggingConfig().directory)))
    logger_channel_id = data.get("logger_channel_id")
    if logger_channel_id is not None and (
        isinstance(logger_channel_id, bool) or not isinstance(logger_channel_id, int)
    ):
        raise ConfigError("logging.logger_channel_id must be an integer channel ID or null.")
    return LoggingConfig(
        level=level, directory=directory, logger_channel_id=logger_channel_id
    )


def _parse_storage(data: Dict[str, Any]) -> StorageConfig:
    backend = str(data.get("backend", "sqlite")).lower()
    if backend not in ("sqlite", "memory"):
        raise ConfigError("storage.backend must be 'sqlite' or 'memory'.")
    path = Path(str(data.get("path", StorageConfig().path)))
    return StorageConfig(backend=backend, path=path)


def _parse_giveaways(data: Dict[str, Any]) -> GiveawayConfig:
    defaults = GiveawayConfig()
    min_duration = int(
        _positive_number(data, "min_duration_seconds", defaults.min_duration_seconds)
    )
    max_duration = int(
        _positive_number(data, "max_duration_seconds", defaults.max_duration_seconds)
    )
    if max_duration < min_duration:
        raise ConfigError(
            "giveaways.max_duration_seconds must not be smaller than min_duration_seconds."
        )
    return GiveawayConfig(
        min_duration_seconds=min_duration,
        max_duration_seconds=max_duration,
        sweep_interval_seconds=int(
            _positive_number(data, "sweep_interval_seconds", defaults.sweep_interval_seconds)
        ),
        sweep_buffer_seconds=int(
            _positive_number(
                data, "sweep_buffer_seconds", defaults.sweep_buffer_seconds, allow_zero=True
            )
        ),
        notification_timeout_seconds=float(
            _positive_number(
                data, "notification_timeout_seconds", defaults.notification_timeout_seconds
            )
        ),
        join_cooldown_seconds=float(
            _positive_number(
                data, "join_cooldown_seconds", defaults.join_cooldown_seconds, allow_zero=True
            )
        ),
    )


def _parse_permissions(data: Dict[str, Any]) -> PermissionsConfig:
    dev_guild_raw = data.get("development_guild_id")
    development_guild_id: Optional[int]
    if dev_guild_raw in (None, "", 0):
        development_guild_id = None
    else:
        try:
            development_guild_id = int(dev_guild_raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                "permissions.development_guild_id must be an integer guild ID or null."
            ) from exc
        if development_guild_id <= 0:
            raise ConfigError(
                "permissions.development_guild_id must be a positive integer."
            )
    return PermissionsConfig(development_guild_id=development_guild_id)


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"{key} must be a mapping.")
    return value


def load_config(path: Path) -> Config:
    if not path.exists():
        raise ConfigError(f"Config file {path} does not exist.")

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ConfigError("Configuration file must contain a mapping at the root.")

    token_raw = str(_require(data, "token"))
    token = _resolve_env_value(token_raw, "token").strip()
    if not token:
        raise ConfigError("token must not be empty.")
    try:
        application_id = int(_require(data, "application_id"))
    except (TypeError, ValueError) as exc:
        raise ConfigError("application_id must be an integer.") from exc

    return Config(
        token=token,
        application_id=application_id,
        logging=_parse_logging(_section(data, "logging")),
        storage=_parse_storage(_section(data, "storage")),
        giveaways=_parse_giveaways(_section(data, "giveaways")),
        permissions=_parse_permissions(_section(data, "permissions")),
    )
