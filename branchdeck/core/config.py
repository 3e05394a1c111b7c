"""Unified configuration via pydantic-settings."""

from __future__ import annotations

import shlex
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from branchdeck.exceptions import ConfigError

logger = structlog.get_logger()

_TRUE_STRINGS = {"true"}
_FALSE_STRINGS = {"false"}


class BranchDeckConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BRANCHDECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        frozen=True,
    )

    # Repository
    working_directory: Path | None = None
    git_timeout_seconds: int = 30

    # Log pane
    open_log_in_floating: bool = False
    log_args: str = ""

    # Logging
    log_level: str = "INFO"
    log_dir: Path | None = None
    log_max_bytes: int = 10_485_760
    log_backup_count: int = 5

    @field_validator("working_directory")
    @classmethod
    def resolve_working_directory(cls, v: Path | None) -> Path | None:
        if v is None:
            return None
        return v.expanduser().resolve()

    @field_validator("git_timeout_seconds")
    @classmethod
    def positive_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("git_timeout_seconds must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def log_arguments(self) -> list[str]:
        """Extra ``git log`` arguments, split with shell quoting rules."""
        return shlex.split(self.log_args)

    @classmethod
    def from_plugin_configuration(
        cls, configuration: Mapping[str, str], **overrides: Any
    ) -> BranchDeckConfig:
        """Build a config from the host's string-to-string plugin map.

        Boolean values other than ``true``/``false`` (any case) fall back to
        the default instead of failing, matching how hosts pass raw strings.
        Keyword *overrides* take precedence over the map.
        """
        values: dict[str, Any] = {}
        floating = configuration.get("open_log_in_floating")
        if floating is not None:
            lowered = floating.strip().lower()
            if lowered in _TRUE_STRINGS:
                values["open_log_in_floating"] = True
            elif lowered in _FALSE_STRINGS:
                values["open_log_in_floating"] = False
            else:
                logger.warning("config_invalid_bool", key="open_log_in_floating", value=floating)
                values["open_log_in_floating"] = False
        if "log_args" in configuration:
            values["log_args"] = configuration["log_args"]
        values.update(overrides)
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigError(str(e)) from e


def load_config_file(path: Path, **overrides: Any) -> BranchDeckConfig:
    """Load plugin configuration keys from a YAML mapping file.

    A missing file yields the defaults (plus *overrides*).
    """
    if not path.is_file():
        return BranchDeckConfig.from_plugin_configuration({}, **overrides)

    try:
        raw = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"config file {path} must contain a mapping")

    configuration = {
        str(key): _stringify(value) for key, value in raw.items() if value is not None
    }
    logger.debug("config_file_loaded", path=str(path), keys=sorted(configuration))
    return BranchDeckConfig.from_plugin_configuration(configuration, **overrides)


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return shlex.join(str(v) for v in value)
    return str(value)
