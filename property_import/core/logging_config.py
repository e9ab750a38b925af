"""
Logging setup shared by the API, the console and the import pipeline.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers held at WARNING whatever the import level is
QUIET_LOGGERS = ("sqlalchemy.engine", "multipart", "python_multipart")

_is_configured = False


def build_logging_config(level: str) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "import": {"format": LOG_FORMAT, "datefmt": LOG_DATE_FORMAT},
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "import",
                "level": level,
            },
        },
        "root": {"handlers": ["stdout"], "level": level},
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
    }


def configure_logging(level: Optional[str] = None) -> None:
    """Install the logging configuration once per process; later calls are no-ops."""
    global _is_configured

    if _is_configured:
        return

    log_level = (level or "INFO").upper()
    dictConfig(build_logging_config(log_level))
    logging.getLogger("property_import").setLevel(log_level)

    _is_configured = True
