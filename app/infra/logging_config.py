"""Process-wide logging setup."""

from __future__ import annotations

import logging
import logging.config
import sys
from typing import Any, Dict, Optional

from app.config import get_settings

APP_LOGGER_NAME = "app"


class LoggingConfig:
    """Configure stdlib logging once per process from settings."""

    _configured = False

    def __init__(self, level: Optional[str] = None) -> None:
        if LoggingConfig._configured:
            return
        settings = get_settings()
        self.level = (level or settings.log_level or "INFO").upper()
        logging.config.dictConfig(self._build_config())
        LoggingConfig._configured = True

    def _build_config(self) -> Dict[str, Any]:
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": self.level,
                    "formatter": "default",
                    "stream": sys.stdout,
                },
            },
            "loggers": {
                "": {"level": self.level, "handlers": ["console"]},
                "sqlalchemy.engine": {"level": "WARNING"},
                "uvicorn.access": {"level": "WARNING"},
                "socketio": {"level": "WARNING"},
                "engineio": {"level": "WARNING"},
            },
        }


def get_logger(name: str = APP_LOGGER_NAME) -> logging.Logger:
    return logging.getLogger(name)
