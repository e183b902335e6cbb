"""Runtime settings for proctop."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from proctop.log import logger


class ConfigError(ValueError):
    """Raised for unreadable or invalid settings."""


def default_config_path() -> Path:
    """Return ~/.proctop/config.json."""
    return Path.home() / ".proctop" / "config.json"


@dataclass(slots=True, frozen=True)
class Settings:
    """Loop pacing, display and logging options."""

    cadence_seconds: float = 1.0
    max_name_length: int = 20
    fast_path_delay_ms: int = 200
    log_level: str = "INFO"
    log_file: str | None = None

    @property
    def fast_path_delay(self) -> float:
        """Fast-path delay in seconds."""
        return self.fast_path_delay_ms / 1000.0

    def validate(self) -> Settings:
        """Return self, or raise ConfigError naming the first bad option."""
        if not self.cadence_seconds > 0:
            raise ConfigError(f"cadence_seconds must be positive, got {self.cadence_seconds}")
        if self.max_name_length < 4:
            raise ConfigError(f"max_name_length must be at least 4, got {self.max_name_length}")
        if self.fast_path_delay_ms < 0:
            raise ConfigError(f"fast_path_delay_ms must not be negative, got {self.fast_path_delay_ms}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"unknown log_level {self.log_level!r}")
        return self


def _read_file(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a JSON object")

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"unknown option(s) in {path}: {', '.join(unknown)}")
    return data


def load_settings(path: Path | None = None, **overrides: Any) -> Settings:
    """
    Build Settings from defaults, a JSON file and explicit overrides.

    Args:
        path: Config file. When None, ~/.proctop/config.json is used if present.
        **overrides: Option values, ``None`` meaning "not given".

    Raises:
        ConfigError: If the file is unreadable or a value is invalid.
    """
    settings = Settings()

    if path is None:
        candidate = default_config_path()
        path = candidate if candidate.exists() else None
    if path is not None:
        logger.debug("Loading settings from %s", path)
        try:
            settings = replace(settings, **_read_file(path))
        except TypeError as exc:
            raise ConfigError(str(exc)) from exc

    given = {key: value for key, value in overrides.items() if value is not None}
    if given:
        settings = replace(settings, **given)

    try:
        return settings.validate()
    except (TypeError, AttributeError) as exc:
        raise ConfigError(f"invalid option type: {exc}") from exc
