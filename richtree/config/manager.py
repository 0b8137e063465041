from __future__ import annotations

"""Configuration loading and access helpers.

This module centralises the declarative settings of the editing engine
(default block, per-tag attributes, undo limits, filler flavour, logging).
It loads YAML files packaged with *richtree* and merges them with user
overrides.

User overrides are read from ``$RICHTREE_CONFIG_DIR/*.yml`` when the variable
is set, otherwise from ``~/.richtree/*.yml``. Override files are optional and
never created automatically.
"""

import importlib.resources as pkg_resources
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

__all__ = ["ConfigManager", "CONFIG_DIR_ENV"]

CONFIG_DIR_ENV = "RICHTREE_CONFIG_DIR"


def _get_user_config_dir() -> Path:
    """Return the directory searched for user override files."""
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override)
    return Path.home() / ".richtree"


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge *overrides* into a copy of *base*."""
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class _Singleton(type):
    _instance: "ConfigManager" | None = None

    def __call__(cls, *args, **kwargs):  # type: ignore[no-self-use]
        if cls._instance is None:
            cls._instance = super().__call__(*args, **kwargs)
        return cls._instance


class ConfigManager(metaclass=_Singleton):
    """Lazy-loads and exposes configuration sections as dictionaries."""

    _DEFAULT_FILENAMES = {
        "editor": "editor.yml",
        "logging": "logging.yml",
    }

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}
        self._ensure_loaded()

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------
    def get_editor_config(self) -> Dict[str, Any]:
        return self._data.get("editor", {})

    def get_logging_config(self) -> Dict[str, Any]:
        return self._data.get("logging", {})

    # ------------------------------------------------------------------
    # Internal loading logic
    # ------------------------------------------------------------------
    def _ensure_loaded(self) -> None:
        if self._data:
            return  # already loaded

        startup_summary = []
        user_config_dir = _get_user_config_dir()

        for key, filename in self._DEFAULT_FILENAMES.items():
            merged_cfg: Dict[str, Any] = {}
            status = "missing"

            # 1. load packaged default
            try:
                packaged_text = pkg_resources.files(__package__).joinpath(filename).read_text(
                    encoding="utf-8"
                )
                merged_cfg.update(yaml.safe_load(packaged_text) or {})
                status = "loaded"
            except (FileNotFoundError, OSError):
                logger.error("Missing packaged config for %s (%s)", key, filename)
            except yaml.YAMLError as exc:
                logger.error("Invalid packaged config for %s (%s): %s", key, filename, exc)
                status = "invalid"

            # 2. merge user overrides
            user_path = user_config_dir / filename
            if user_path.exists():
                try:
                    user_data = yaml.safe_load(user_path.read_text(encoding="utf-8")) or {}
                    merged_cfg = _merge(merged_cfg, user_data)
                    if status == "loaded":
                        status = "loaded+overrides"
                except (OSError, yaml.YAMLError) as exc:
                    logger.error("Could not parse user config %s: %s", user_path, exc)

            self._data[key] = merged_cfg
            startup_summary.append(f"{key}: {status}")

        logger.info("Config startup: %s", " | ".join(startup_summary))
