from __future__ import annotations

"""Central logging configuration for richtree.

Import and call :func:`setup_logging` once at application start-up. Library
code never configures logging on its own; every module only creates its
logger with ``logging.getLogger(__name__)``.
"""

import copy
import logging
import logging.config
import os
from typing import Any, Dict

from richtree.config import ConfigManager

__all__ = ["setup_logging", "LOG_DIR_ENV", "DEBUG_MODULES_ENV"]

LOG_DIR_ENV = "RICHTREE_LOG_DIR"
DEBUG_MODULES_ENV = "RICHTREE_DEBUG_MODULES"
DEBUG_EDITING_ENV = "RICHTREE_DEBUG_EDITING"

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging() -> None:
    """Configure logging from the packaged ``logging.yml`` (plus overrides)."""
    log_dir = os.environ.get(LOG_DIR_ENV, "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, "richtree.log")

    logging_config: Dict[str, Any] = copy.deepcopy(ConfigManager().get_logging_config())

    if logging_config.get("version"):
        handlers = logging_config.get("handlers", {})
        if "file" in handlers:
            handlers["file"]["filename"] = log_file
        try:
            logging.config.dictConfig(logging_config)
        except (ValueError, TypeError, AttributeError, ImportError) as exc:
            _setup_minimal_logging()
            logging.getLogger(__name__).error("Invalid logging config, using fallback: %s", exc)
        else:
            logging.getLogger(__name__).info("===== Logging initialised from config files =====")
    else:
        _setup_minimal_logging()
        logging.getLogger(__name__).error(
            "===== Logging initialised with minimal fallback (config error) ====="
        )

    _apply_debug_overrides()


def _setup_minimal_logging() -> None:
    """Set up console-only logging when the config is unavailable."""
    minimal_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "simple": {"format": _FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "simple",
                "level": "INFO",
            },
        },
        "root": {
            "level": "INFO",
            "handlers": ["console"],
        },
        # Module entry so the env override can flip it even in minimal mode
        "loggers": {
            "richtree.core.services.editing_service": {
                "handlers": ["console"],
                "level": "INFO",
                "propagate": False,
            }
        },
    }
    logging.config.dictConfig(minimal_config)


def _apply_debug_overrides() -> None:
    """Apply environment-driven module-specific debug overrides.

    Supports:
    - RICHTREE_DEBUG_EDITING=true -> DEBUG for the editing service and range engine
    - RICHTREE_DEBUG_MODULES=comma,separated,logger,names -> DEBUG for listed loggers
    """
    debug_editing = os.environ.get(DEBUG_EDITING_ENV, "").strip().lower() in {"1", "true", "yes", "on"}
    extra_modules = os.environ.get(DEBUG_MODULES_ENV, "").strip()
    targets = []
    if debug_editing:
        targets.append("richtree.core.services.editing_service")
        targets.append("richtree.core.range_engine")
    if extra_modules:
        targets.extend([m.strip() for m in extra_modules.split(",") if m.strip()])

    for name in targets:
        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG)
        # Ensure at least one handler emits DEBUG for this logger
        has_debug_handler = any(
            handler.level == logging.NOTSET or handler.level <= logging.DEBUG
            for handler in logger.handlers
        )
        if not has_debug_handler:
            handler = logging.StreamHandler()
            handler.setLevel(logging.DEBUG)
            handler.setFormatter(logging.Formatter(_FORMAT))
            logger.addHandler(handler)
        logger.info("Debug override active for logger '%s'", name)
