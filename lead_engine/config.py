"""Configuration helpers for the lead acquisition engine."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

LOGGER = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised when configuration files are missing or malformed."""


_SUPPORTED_EXTENSIONS = {".json", ".yaml", ".yml"}


@dataclass(frozen=True)
class EngineSettings:
    """Tunable policy for the job engine.

    Defaults mirror the behaviour of the hosted dashboard: five starts per
    hour, twenty jobs of history, a five-entry activity feed and a half-second
    tick cadence.
    """

    history_limit: int = 20
    rate_limit_window_hours: float = 1.0
    rate_limit_max_starts: int = 5
    activity_feed_size: int = 5
    activity_batch_limit: int = 3
    tick_interval_seconds: float = 0.5
    min_progress_step: float = 5.0
    max_progress_step: float = 15.0
    max_job_duration_seconds: float = 600.0
    page_size: int = 50
    email_probability: float = 0.7
    min_target_count: int = 10
    max_target_count: int = 10000
    max_location_length: int = 100
    max_keyword_length: int = 50
    max_list_name_length: int = 50
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if self.history_limit < 1:
            raise ConfigurationError("history_limit must be at least 1")
        if self.rate_limit_window_hours <= 0:
            raise ConfigurationError("rate_limit_window_hours must be positive")
        if self.rate_limit_max_starts < 1:
            raise ConfigurationError("rate_limit_max_starts must be at least 1")
        if not 0 < self.min_progress_step <= self.max_progress_step <= 100:
            raise ConfigurationError("Progress steps must satisfy 0 < min_progress_step <= max_progress_step <= 100")
        if not 0.0 <= self.email_probability <= 1.0:
            raise ConfigurationError("email_probability must be between 0 and 1")
        if not 1 <= self.min_target_count <= self.max_target_count:
            raise ConfigurationError("Target count bounds must satisfy 1 <= min_target_count <= max_target_count")
        if self.page_size < 1:
            raise ConfigurationError("page_size must be at least 1")
        if self.tick_interval_seconds < 0 or self.max_job_duration_seconds <= 0:
            raise ConfigurationError("tick_interval_seconds must be >= 0 and max_job_duration_seconds > 0")

    @property
    def mean_progress_step(self) -> float:
        return (self.min_progress_step + self.max_progress_step) / 2

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "EngineSettings":
        """Build settings from the ``engine`` section of a configuration mapping."""

        section = dict((data or {}).get("engine", {}) or {})
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(section) - known)
        if unknown:
            raise ConfigurationError(f"Unknown engine settings: {', '.join(unknown)}")
        try:
            return cls(**section)
        except TypeError as exc:
            raise ConfigurationError(f"Invalid engine settings: {exc}") from exc

    def with_overrides(self, **overrides: Any) -> "EngineSettings":
        values = {item.name: getattr(self, item.name) for item in fields(self)}
        values.update({key: value for key, value in overrides.items() if value is not None})
        return EngineSettings(**values)


def load_configuration(path: str | Path) -> Dict[str, Any]:
    """Load configuration data from a JSON or YAML file."""

    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(f"Configuration file '{file_path}' was not found")

    if file_path.suffix.lower() not in _SUPPORTED_EXTENSIONS:
        raise ConfigurationError(
            f"Unsupported configuration format '{file_path.suffix}'. Supported extensions: {sorted(_SUPPORTED_EXTENSIONS)}"
        )

    text = file_path.read_text(encoding="utf-8")
    try:
        if file_path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Could not parse configuration file '{file_path}': {exc}") from exc

    if data is None:
        LOGGER.debug("Configuration file %s is empty, using defaults", file_path)
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file '{file_path}' must contain a mapping")
    return data


def load_settings(path: str | Path | None) -> EngineSettings:
    if path is None:
        return EngineSettings()
    return EngineSettings.from_mapping(load_configuration(path))


__all__ = ["ConfigurationError", "EngineSettings", "load_configuration", "load_settings"]
