"""
Book Rental Logging Setup

Process-wide logging configuration:
- One stream handler on the root logger
- Level from LOG_LEVEL (default INFO)
- Modules log through logging.getLogger(__name__)
"""
from __future__ import annotations
from typing import Optional
import logging
import logging.config
import os

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger. Safe to call more than once."""
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": LOG_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            # SQL echo is controlled by DB_ECHO, keep the engine quiet otherwise
            "sqlalchemy.engine": {"level": "WARNING"},
        },
    })
