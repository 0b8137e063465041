"""Packaged YAML configuration and the :class:`ConfigManager` that loads it."""

from .manager import ConfigManager

__all__ = [
    "ConfigManager",
]
