#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration loading: TOML file, built-in defaults and ``UPKG_*`` environment overrides.
"""

from __future__ import annotations

import os
import shlex
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from loguru import logger

from .core.errors import ConfigError

ENV_PREFIX = "UPKG_"
LOG_LEVELS = ("trace", "debug", "info", "success", "warning", "error", "critical")
COLOR_MODES = ("auto", "always", "never")

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def _home() -> Path:
    return Path.home()


def expand_path(value: str | Path) -> Path:
    """Expand ``~`` and ``$VARS`` in a configured path."""
    return Path(os.path.expandvars(os.path.expanduser(str(value))))


@dataclass(frozen=True, slots=True)
class PathsConfig:
    """Where upkg keeps its own state and where it installs artifacts."""

    data_dir: Path = field(default_factory=lambda: _home() / ".local" / "share" / "upkg")
    db_file: Path | None = None
    log_file: Path | None = None
    bin_dir: Path = field(default_factory=lambda: _home() / ".local" / "bin")
    apps_dir: Path = field(default_factory=lambda: _home() / ".local" / "share" / "applications")
    icon_dir: Path = field(default_factory=lambda: _home() / ".local" / "share" / "icons")

    def resolved_db_file(self) -> Path:
        return self.db_file or self.data_dir / "installed.db"

    def resolved_log_file(self) -> Path:
        return self.log_file or self.data_dir / "upkg.log"


@dataclass(frozen=True, slots=True)
class DesktopConfig:
    wayland_env_vars: bool = True
    custom_env_vars: tuple[str, ...] = ()
    electron_disable_sandbox: bool = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    level: str = "info"
    color: str = "auto"


@dataclass(frozen=True, slots=True)
class Config:
    """Complete, validated configuration."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    desktop: DesktopConfig = field(default_factory=DesktopConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source: Path | None = None


def default_config_path() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or str(_home() / ".config")
    return Path(base) / "upkg" / "config.toml"


def _parse_bool(value: Any, option: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    raise ConfigError(f"invalid boolean for {option}: {value!r}", invalid_option=option)


def _coerce(section: str, key: str, value: Any, current: Any) -> Any:
    option = f"{section}.{key}"
    if isinstance(current, bool):
        return _parse_bool(value, option)
    if section == "paths":
        if not isinstance(value, (str, Path)) or not str(value):
            raise ConfigError(f"invalid path for {option}: {value!r}", invalid_option=option)
        return expand_path(value)
    if isinstance(current, tuple):
        if isinstance(value, str):
            return tuple(shlex.split(value))
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return tuple(value)
        raise ConfigError(f"invalid list for {option}: {value!r}", invalid_option=option)
    if not isinstance(value, str):
        raise ConfigError(f"invalid value for {option}: {value!r}", invalid_option=option)
    return value.strip().lower()


def _apply_section(obj: Any, section: str, values: Mapping[str, Any]) -> Any:
    known = {f.name: f for f in fields(obj)}
    updates: dict[str, Any] = {}
    for key, value in values.items():
        if key not in known:
            logger.warning(f"Ignoring unknown config option {section}.{key}")
            continue
        updates[key] = _coerce(section, key, value, getattr(obj, key))
    return replace(obj, **updates) if updates else obj


def _env_overrides(env: Mapping[str, str], config: Config) -> dict[str, dict[str, str]]:
    overrides: dict[str, dict[str, str]] = {}
    for section_field in fields(config):
        if section_field.name == "source":
            continue
        section = getattr(config, section_field.name)
        for option in fields(section):
            name = f"{ENV_PREFIX}{section_field.name}_{option.name}".upper()
            if name in env:
                overrides.setdefault(section_field.name, {})[option.name] = env[name]
    return overrides


def _validate(config: Config) -> None:
    if config.logging.level not in LOG_LEVELS:
        raise ConfigError(
            f"unknown log level: {config.logging.level}",
            config_file=config.source,
            invalid_option="logging.level",
            hint=f"Use one of: {', '.join(LOG_LEVELS)}",
        )
    if config.logging.color not in COLOR_MODES:
        raise ConfigError(
            f"invalid color mode: {config.logging.color}",
            config_file=config.source,
            invalid_option="logging.color",
        )


def load_config(path: str | Path | None = None, env: Mapping[str, str] | None = None) -> Config:
    """
    Build the effective configuration.

    Args:
        path: Explicit config file; it must exist. Without one the default
            location is used if present.
        env: Environment mapping to read overrides from (``os.environ`` by default).

    Raises:
        ConfigError: If the file cannot be parsed or a value is invalid.
    """
    env = os.environ if env is None else env
    config_path = Path(path).expanduser() if path else default_config_path()
    if path and not config_path.is_file():
        raise ConfigError(f"config file not found: {config_path}", config_file=config_path)

    data: dict[str, Any] = {}
    source: Path | None = None
    if config_path.is_file():
        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(
                f"invalid TOML in {config_path}: {e}", config_file=config_path, cause=e
            ) from e
        except OSError as e:
            raise ConfigError(
                f"cannot read {config_path}: {e}", config_file=config_path, cause=e
            ) from e
        source = config_path
        logger.debug(f"Loaded configuration from {config_path}")

    config = Config(source=source)
    for layer in (data, _env_overrides(env, config)):
        for section, values in layer.items():
            if section not in ("paths", "desktop", "logging"):
                logger.warning(f"Ignoring unknown config section [{section}]")
                continue
            if not isinstance(values, Mapping):
                raise ConfigError(
                    f"section [{section}] must be a table", config_file=source, invalid_option=section
                )
            config = replace(
                config, **{section: _apply_section(getattr(config, section), section, values)}
            )

    _validate(config)
    return config
