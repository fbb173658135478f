"""
Configuration management for influx-cli.

Settings are resolved from four layers, highest priority first:
    1. Command-line flags (applied by main.py as overrides)
    2. Environment variables with the INFLUX_ prefix
    3. The rc file (~/.influxrc, TOML)
    4. Defaults below

Invariants:
    - All settings have sensible defaults for a local store
    - Passwords are never logged
    - An rc file that exists but cannot be parsed is a hard error

How to change safely:
    - Add new settings with defaults that keep old rc files valid
    - Keep the rc key names stable ("pass", "AsyncCapacity", ...), users edit them by hand
"""

from __future__ import annotations

import json
import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_RC_PATH = "~/.influxrc"
DEFAULT_HISTORY_PATH = "~/.influx_history"

# rc keys are matched case-insensitively; hand-written files use AsyncCapacity style
_RC_KEYS = {
    "host": "host",
    "port": "port",
    "user": "user",
    "pass": "password",
    "password": "password",
    "db": "db",
    "asynccapacity": "async_capacity",
    "async_capacity": "async_capacity",
    "asyncmaxwait": "async_max_wait_ms",
    "async_max_wait_ms": "async_max_wait_ms",
}

_RC_TEMPLATE = """host = {host}
port = {port}
user = {user}
pass = {password}
db = {db}
"""


def expand_path(path: str) -> Path:
    """Expand a leading ~ to the current user's home directory."""
    return Path(os.path.expanduser(path))


def read_rc(path: str | Path) -> dict[str, Any]:
    """Read settings from an rc file.

    Unknown keys are ignored; zero or empty values are dropped so they don't
    shadow defaults.

    Args:
        path: Path to the TOML rc file

    Returns:
        Mapping of Settings field name to value. Empty if the file is missing.

    Raises:
        ConfigError: If the file exists but cannot be read or parsed
    """
    rc_path = expand_path(str(path))
    try:
        with open(rc_path, "rb") as f:
            raw = tomllib.load(f)
    except FileNotFoundError:
        return {}
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Cannot read rc file '{rc_path}': {e}", path=str(rc_path)) from e

    values: dict[str, Any] = {}
    for key, value in raw.items():
        name = _RC_KEYS.get(key.lower())
        if name is None:
            logger.debug("Ignoring unknown rc key", extra={"key": key, "path": str(rc_path)})
            continue
        if value in ("", 0):
            continue
        values[name] = value
    return values


class Settings(BaseSettings):
    """Client configuration.

    Attributes:
        host: Store host
        port: Store HTTP port
        user: Database user
        password: Database password (rc key "pass")
        db: Database to use
        secure: Use https
        request_timeout: HTTP timeout in seconds
        async_capacity: Series buffered before a forced flush
        async_max_wait_ms: Maximum time a buffered series waits for a flush
        drain_timeout: Seconds to wait for the final flush on exit
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        history_path: readline history file
    """

    host: str = Field(default="localhost", description="host to connect to")
    port: int = Field(default=8086, description="port to connect to")
    user: str = Field(default="root", description="influxdb username")
    password: str = Field(default="root", description="influxdb password")
    db: str = Field(default="", description="database to use")
    secure: bool = Field(default=False, description="use https")
    request_timeout: float = Field(default=10.0, description="HTTP timeout seconds")

    async_capacity: int = Field(default=1000, description="series per async commit")
    async_max_wait_ms: int = Field(default=500, description="max wait before async flush")
    drain_timeout: float = Field(default=5.0, description="seconds to wait for final flush")

    log_level: str = Field(default="WARNING", description="logging level")
    history_path: str = Field(default=DEFAULT_HISTORY_PATH, description="readline history")

    model_config = SettingsConfigDict(env_prefix="INFLUX_", extra="ignore")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # rc values arrive as init kwargs and must lose to the environment
        return (env_settings, init_settings)

    @classmethod
    def load(
        cls,
        rc_path: str | Path | None = DEFAULT_RC_PATH,
        overrides: dict[str, Any] | None = None,
    ) -> Settings:
        """Load settings from rc file, environment and flag overrides.

        Args:
            rc_path: rc file path, or None to skip the rc file
            overrides: Values from command-line flags; None entries are ignored

        Returns:
            Validated Settings

        Raises:
            ConfigError: If the rc file is unreadable or a value is invalid
        """
        rc_values = read_rc(rc_path) if rc_path else {}
        settings = cls(**rc_values)

        updates = {k: v for k, v in (overrides or {}).items() if v is not None}
        if updates:
            settings = settings.model_copy(update=updates)

        settings.validate_config()
        return settings

    def validate_config(self) -> None:
        """Validate configuration consistency.

        Raises:
            ConfigError: If configuration is invalid.
        """
        if self.async_capacity <= 0:
            raise ConfigError(f"async capacity must be positive, got {self.async_capacity}")
        if self.async_max_wait_ms <= 0:
            raise ConfigError(f"async max wait must be positive, got {self.async_max_wait_ms}")
        if not 0 < self.port < 65536:
            raise ConfigError(f"port out of range: {self.port}")
        if self.drain_timeout <= 0:
            raise ConfigError(f"drain timeout must be positive, got {self.drain_timeout}")

    @property
    def address(self) -> str:
        """host:port of the store."""
        return f"{self.host}:{self.port}"

    @property
    def base_url(self) -> str:
        """Base URL of the store's HTTP API."""
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.address}"

    def write_rc(self, path: str | Path = DEFAULT_RC_PATH) -> Path:
        """Persist connection parameters to the rc file.

        Only host, port, user, pass and db are written; async tuning stays
        whatever the user put in the file by hand before.

        Returns:
            The path written
        """
        rc_path = expand_path(str(path))
        # JSON string escapes are a subset of TOML basic-string escapes
        content = _RC_TEMPLATE.format(
            host=json.dumps(self.host),
            port=self.port,
            user=json.dumps(self.user),
            password=json.dumps(self.password),
            db=json.dumps(self.db),
        )
        rc_path.write_text(content, encoding="utf-8")
        logger.info("Wrote rc file", extra={"path": str(rc_path)})
        return rc_path

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Client configuration loaded",
            extra={
                "host": self.host,
                "port": self.port,
                "user": self.user,
                "db": self.db,
                "secure": self.secure,
                "async_capacity": self.async_capacity,
                "async_max_wait_ms": self.async_max_wait_ms,
                "log_level": self.log_level,
            },
        )


@dataclass(frozen=True)
class CommitterConfig:
    """Async batch committer configuration.

    Attributes:
        capacity: Series buffered before a capacity flush
        max_wait_seconds: Timer period for time-based flushes
        drain_timeout_seconds: Upper bound on the shutdown drain
    """

    capacity: int = 1000
    max_wait_seconds: float = 0.5
    drain_timeout_seconds: float = 5.0

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise ConfigError(f"capacity must be positive, got {self.capacity}")
        if self.max_wait_seconds <= 0:
            raise ConfigError(f"max wait must be positive, got {self.max_wait_seconds}")

    @classmethod
    def from_settings(cls, settings: Settings) -> CommitterConfig:
        """Derive committer configuration from client settings."""
        return cls(
            capacity=settings.async_capacity,
            max_wait_seconds=settings.async_max_wait_ms / 1000.0,
            drain_timeout_seconds=settings.drain_timeout,
        )
