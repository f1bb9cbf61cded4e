"""
Logging configuration for API Aggregator Service.
One console handler, formatted as JSON for log shippers or as text for
local runs. Every record carries the service name and version.
"""

import logging
import logging.config
import sys
from typing import Dict, Any
from pythonjsonlogger.json import JsonFormatter

from .config import settings

JSON_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s %(service)s %(version)s %(module)s %(funcName)s %(lineno)d"
TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s (%(filename)s:%(lineno)d)"
DEBUG_TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s [in %(pathname)s:%(lineno)d]"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are only interesting when something breaks
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class ServiceContextFilter(logging.Filter):
    """Stamp service identity onto every record."""

    def __init__(self, service: str, version: str):
        super().__init__()
        self.service = service
        self.version = version

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service
        record.version = self.version
        return True


def _formatter(log_format: str, log_level: str) -> Dict[str, Any]:
    if log_format == "json":
        return {"()": JsonFormatter, "format": JSON_FORMAT, "datefmt": DATE_FORMAT}
    text_format = DEBUG_TEXT_FORMAT if log_level == "DEBUG" else TEXT_FORMAT
    return {"format": text_format, "datefmt": DATE_FORMAT}


def build_logging_config(log_format: str, log_level: str) -> Dict[str, Any]:
    """dictConfig for the given format ('json' or 'text') and level."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "service_context": {
                "()": ServiceContextFilter,
                "service": settings.app_name,
                "version": settings.app_version
            }
        },
        "formatters": {
            "default": _formatter(log_format, log_level)
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "default",
                "filters": ["service_context"],
                "stream": sys.stdout
            }
        },
        "root": {
            "handlers": ["console"],
            "level": log_level
        },
        "loggers": {
            name: {"level": "WARNING"} for name in QUIET_LOGGERS
        }
    }


def setup_logging() -> None:
    """Setup structured logging for the application."""
    logging.config.dictConfig(build_logging_config(settings.log_format, settings.log_level))


def create_logger(module_name: str) -> logging.Logger:
    """Create a logger for a specific module under the application namespace."""
    return logging.getLogger(f"app.{module_name}")
