"""
polykv Configuration — loads and merges config from multiple sources.

Precedence (highest to lowest):
1. Explicit overrides (passed in code)
2. Environment variables (POLYKV_*)
3. Project config (./polykv.toml)
4. User config (~/.polykv/config.toml)
5. Defaults (hardcoded)

Environment variable mapping:
    POLYKV_URL → driver.url
    POLYKV_BASE → driver.base
    POLYKV_LAZY_CONNECT → driver.lazy_connect
    POLYKV_TTL → driver.ttl
    POLYKV_LOG_LEVEL → logging.level
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from polykv.core.errors import ConfigError

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Config Sub-Models
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class DriverConfig(BaseModel):
    """
    Per-driver-instance configuration.

    base: prefix applied to every physical key ("test:")
    url: backend location; the scheme picks the driver
         (memory://, file:///var/data, sqlite:///kv.db,
          redis://localhost:6379/0, https://kv.example.com/store)
    lazy_connect: connect on first operation instead of up front
    ttl: default expiry in seconds for set(); None = never
    options: driver-specific settings (timeouts, http listing, ...)
    """

    base: str = ""
    url: str = "memory://"
    lazy_connect: bool = True
    ttl: int | None = None
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("base")
    @classmethod
    def _valid_base(cls, value: str) -> str:
        # "" or whole segments ending in ":", so "tes" can never overlap "test:"
        if not value:
            return value
        if not value.endswith(":"):
            raise ValueError(f"base '{value}' must end with ':'")
        if "" in value[:-1].split(":"):
            raise ValueError(f"base '{value}' has an empty segment")
        return value

    @field_validator("ttl")
    @classmethod
    def _positive_ttl(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError("ttl must be a positive number of seconds")
        return value

    @property
    def scheme(self) -> str:
        return self.url.split("://", 1)[0].lower() if "://" in self.url else ""


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    file: str | None = None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Main Config
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class PolyKVConfig(BaseModel):
    """Root configuration for polykv."""

    driver: DriverConfig = Field(default_factory=DriverConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @staticmethod
    def load(
        overrides: dict[str, Any] | None = None,
        project_path: Path | None = None,
        user_path: Path | None = None,
    ) -> PolyKVConfig:
        """
        Load configuration from all sources and merge.

        Precedence: overrides > env vars > project toml > user toml > defaults
        """
        merged: dict[str, Any] = {}

        # Layer 1: User config (~/.polykv/config.toml)
        user_config_path = user_path or Path.home() / ".polykv" / "config.toml"
        if user_config_path.exists():
            _deep_merge(merged, _load_toml(user_config_path))

        # Layer 2: Project config (./polykv.toml)
        project_config_path = project_path or Path.cwd() / "polykv.toml"
        if project_config_path.exists():
            _deep_merge(merged, _load_toml(project_config_path))

        # Layer 3: Environment variables
        _deep_merge(merged, _load_from_env())

        # Layer 4: Explicit overrides
        if overrides:
            _deep_merge(merged, overrides)

        _substitute_env_vars(merged)

        try:
            return PolyKVConfig(**merged)
        except Exception as e:
            raise ConfigError(f"Invalid configuration: {e}") from e


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Internal Helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _load_toml(path: Path) -> dict[str, Any]:
    """Load a TOML file."""
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore[no-redef]

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e


def _load_from_env() -> dict[str, Any]:
    """Load configuration from POLYKV_* environment variables."""
    result: dict[str, Any] = {}

    env_mapping = {
        "POLYKV_URL": ("driver", "url"),
        "POLYKV_BASE": ("driver", "base"),
        "POLYKV_LAZY_CONNECT": ("driver", "lazy_connect"),
        "POLYKV_TTL": ("driver", "ttl"),
        "POLYKV_LOG_LEVEL": ("logging", "level"),
        "POLYKV_LOG_FILE": ("logging", "file"),
    }
    # Base and URL are taken verbatim ("1:" must not become an int)
    verbatim = {"POLYKV_URL", "POLYKV_BASE", "POLYKV_LOG_FILE"}

    for env_var, (section, key) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            if section not in result:
                result[section] = {}
            result[section][key] = value if env_var in verbatim else _convert_value(value)

    return result


def _convert_value(value: str) -> Any:
    """Convert string value to appropriate type."""
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value


def _deep_merge(base: dict, override: dict) -> None:
    """Deep merge override into base (mutates base)."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _substitute(value: str) -> str:
    return _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), value)


def _substitute_env_vars(data: dict) -> None:
    """Recursively substitute ${ENV_VAR} patterns in string values."""
    for key, value in data.items():
        if isinstance(value, dict):
            _substitute_env_vars(value)
        elif isinstance(value, str):
            data[key] = _substitute(value)
        elif isinstance(value, list):
            data[key] = [_substitute(item) if isinstance(item, str) else item for item in value]
