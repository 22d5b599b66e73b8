"""Configuration loader for homebase-relay."""

from __future__ import annotations

import logging
import os
from configparser import ConfigParser
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from . import constants

LOGGER = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Raised when a configuration value cannot be interpreted."""


class OverwritePolicy(str, Enum):
    """What ``submit`` does when the device already holds an unanswered command."""

    SUPERSEDE = "supersede"
    WAIT = "wait"
    REJECT = "reject"


DEFAULT_OVERWRITE_POLICY = OverwritePolicy.SUPERSEDE


@dataclass(slots=True)
class ServerConfig:
    host: str = constants.DEFAULT_HTTP_HOST
    port: int = constants.DEFAULT_HTTP_PORT


@dataclass(slots=True)
class RelayConfig:
    command_timeout_seconds: float = constants.DEFAULT_COMMAND_TIMEOUT_SECONDS
    long_poll_max_seconds: float = constants.DEFAULT_LONG_POLL_MAX_SECONDS
    default_device_id: str = constants.DEFAULT_DEVICE_ID
    overwrite_policy: OverwritePolicy = DEFAULT_OVERWRITE_POLICY


@dataclass(slots=True)
class AuthConfig:
    admin_secret: Optional[str] = None
    device_token: str = constants.DEFAULT_DEVICE_TOKEN


@dataclass(slots=True)
class NotifyConfig:
    bark_device_key: Optional[str] = None
    base_url: str = constants.DEFAULT_BARK_BASE_URL
    timeout_seconds: float = constants.DEFAULT_NOTIFY_TIMEOUT_SECONDS
    title: str = constants.DEFAULT_NOTIFY_TITLE


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class RelayAppConfig:
    server: ServerConfig
    relay: RelayConfig
    auth: AuthConfig
    notify: NotifyConfig
    logging: LoggingConfig
    raw: ConfigParser
    path: Path


def _positive(value: float, *, default: float, name: str) -> float:
    if value <= 0:
        LOGGER.warning("%s must be positive (got %s); using %s", name, value, default)
        return default
    return value


def _parse_policy(value: str) -> OverwritePolicy:
    try:
        return OverwritePolicy(value.strip().lower())
    except ValueError:
        LOGGER.warning(
            "Unknown overwrite_policy %r; using %s", value, DEFAULT_OVERWRITE_POLICY.value
        )
        return DEFAULT_OVERWRITE_POLICY


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def load_config(path: Optional[Path] = None) -> RelayAppConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "server": {
                "host": constants.DEFAULT_HTTP_HOST,
                "port": str(constants.DEFAULT_HTTP_PORT),
            },
            "relay": {
                "command_timeout_seconds": str(
                    constants.DEFAULT_COMMAND_TIMEOUT_SECONDS
                ),
                "long_poll_max_seconds": str(constants.DEFAULT_LONG_POLL_MAX_SECONDS),
                "default_device_id": constants.DEFAULT_DEVICE_ID,
                "overwrite_policy": DEFAULT_OVERWRITE_POLICY.value,
            },
            "auth": {},
            "notify": {
                "base_url": constants.DEFAULT_BARK_BASE_URL,
                "timeout_seconds": str(constants.DEFAULT_NOTIFY_TIMEOUT_SECONDS),
                "title": constants.DEFAULT_NOTIFY_TITLE,
            },
            "logging": {
                "level": "INFO",
                "log_network": "false",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    try:
        server = ServerConfig(
            host=parser.get("server", "host"),
            port=parser.getint("server", "port"),
        )
        command_timeout = parser.getfloat("relay", "command_timeout_seconds")
        long_poll_max = parser.getfloat("relay", "long_poll_max_seconds")
        notify_timeout = parser.getfloat("notify", "timeout_seconds")
    except ValueError as exc:
        raise ConfigurationError(f"Invalid numeric setting in {config_path}: {exc}") from exc

    if not 0 <= server.port <= 65535:
        raise ConfigurationError(f"server.port out of range: {server.port}")

    default_device_id = parser.get("relay", "default_device_id").strip()
    if not default_device_id:
        raise ConfigurationError("relay.default_device_id cannot be empty")

    relay = RelayConfig(
        command_timeout_seconds=_positive(
            command_timeout,
            default=constants.DEFAULT_COMMAND_TIMEOUT_SECONDS,
            name="relay.command_timeout_seconds",
        ),
        long_poll_max_seconds=_positive(
            long_poll_max,
            default=constants.DEFAULT_LONG_POLL_MAX_SECONDS,
            name="relay.long_poll_max_seconds",
        ),
        default_device_id=default_device_id,
        overwrite_policy=_parse_policy(parser.get("relay", "overwrite_policy")),
    )

    env_admin = _optional(os.environ.get(constants.ADMIN_SECRET_ENV))
    admin_secret = _optional(parser.get("auth", "admin_secret", fallback=None)) or env_admin
    auth = AuthConfig(
        admin_secret=admin_secret,
        device_token=_optional(parser.get("auth", "device_token", fallback=None))
        or env_admin
        or constants.DEFAULT_DEVICE_TOKEN,
    )

    notify = NotifyConfig(
        bark_device_key=_optional(parser.get("notify", "bark_device_key", fallback=None))
        or _optional(os.environ.get(constants.BARK_DEVICE_KEY_ENV)),
        base_url=parser.get("notify", "base_url"),
        timeout_seconds=_positive(
            notify_timeout,
            default=constants.DEFAULT_NOTIFY_TIMEOUT_SECONDS,
            name="notify.timeout_seconds",
        ),
        title=parser.get("notify", "title"),
    )

    log_path_value = _optional(parser.get("logging", "path", fallback=None))
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    return RelayAppConfig(
        server=server,
        relay=relay,
        auth=auth,
        notify=notify,
        logging=logging_config,
        raw=parser,
        path=config_path,
    )


def save_config(config: RelayAppConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
