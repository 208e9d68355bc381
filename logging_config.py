from __future__ import annotations

import logging
import time
from enum import Enum
from logging.config import dictConfig
from typing import Any, Dict, Iterable, Sequence

from settings import get_settings

CONTEXT_KEYS = (
    "component",
    "error_kind",
    "last_value",
    "temperature_c",
    "band",
    "duty_cycle",
    "rpm",
    "attempt",
    "age_s",
    "delay_s",
    "batch_size",
    "status_code",
    "queue_depth",
    "dropped",
)

# Client libraries log every request at INFO; one line per metrics push is enough.
_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.error")

_configured = False


def _render(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, float):
        return f"{value:.3f}".rstrip("0").rstrip(".")
    return str(value)


class ContextualFormatter(logging.Formatter):
    """Appends the ``extra=`` fields a record carries as ``key=value`` pairs."""

    converter = time.gmtime

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        context_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._context_keys: Sequence[str] = tuple(context_keys or CONTEXT_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = [
            f"{key}={_render(getattr(record, key))}"
            for key in self._context_keys
            if getattr(record, key, None) is not None
        ]
        if not context:
            return message
        return f"{message} | {' '.join(context)}"


def build_logging_config(level: str | int) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "contextual": {
                "()": "logging_config.ContextualFormatter",
                "fmt": "%(asctime)sZ | %(levelname)s | %(threadName)s | %(name)s | %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S",
                "context_keys": list(CONTEXT_KEYS),
            }
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "level": level,
                "formatter": "contextual",
            }
        },
        "loggers": {name: {"level": "WARNING"} for name in _NOISY_LOGGERS},
        "root": {"handlers": ["stderr"], "level": level},
    }


def configure_logging(level: str | int | None = None) -> None:
    """Install the contextual stderr handler once per process."""
    global _configured
    if _configured:
        return
    dictConfig(build_logging_config(level if level is not None else get_settings().log_level))
    _configured = True
