"""Factory helpers for constructing an engine from configuration."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from .config import ConfigurationError, EngineSettings
from .orchestrator import JobEngine
from .storage import EngineStore, JsonFileStore, MemoryStore


def build_store(config: Dict[str, Any], settings: EngineSettings, store_path: Optional[str | Path] = None) -> EngineStore:
    """Pick the store from ``store_path`` or the ``store`` section of the configuration."""

    store_cfg = dict(config.get("store", {}) or {})
    path = store_path or store_cfg.get("path")
    kind = store_cfg.get("type", "json" if path else "memory")

    if kind == "memory":
        return MemoryStore(history_limit=settings.history_limit)
    if kind == "json":
        if not path:
            raise ConfigurationError("A JSON store requires a 'path'")
        return JsonFileStore(path, history_limit=settings.history_limit)
    raise ConfigurationError(f"Unknown store type '{kind}'")


def build_engine(
    config: Optional[Dict[str, Any]] = None,
    *,
    store_path: Optional[str | Path] = None,
    **overrides: Any,
) -> JobEngine:
    """Instantiate a :class:`JobEngine` from a configuration mapping."""

    config = config or {}
    settings = EngineSettings.from_mapping(config).with_overrides(**overrides)
    store = build_store(config, settings, store_path)
    return JobEngine(store, settings=settings)


__all__ = ["build_engine", "build_store"]
