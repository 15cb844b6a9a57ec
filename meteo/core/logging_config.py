from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Iterable

from meteo.core.config import Settings, load_settings

# Record attributes passed through ``extra=`` by the ingest, fan-out and history code.
CONTEXT_KEYS = ("device_id", "topic", "subscriber", "range_minutes", "reason")

# Chatty third-party loggers, held at WARNING unless debug is on.
LIBRARY_LOGGERS = ("influxdb_client", "paho", "urllib3")

_applied: tuple[str, bool] | None = None


class ContextualFormatter(logging.Formatter):
    """Formats a record and appends the telemetry context it carries.

    ``logger.warning("write failed", extra={"device_id": 7})`` renders as
    ``... | write failed [device_id=7]``. Keys absent from the record are skipped.
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        context_keys: Iterable[str] = CONTEXT_KEYS,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.context_keys = tuple(context_keys)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = " ".join(
            f"{key}={getattr(record, key)}"
            for key in self.context_keys
            if getattr(record, key, None) is not None
        )
        return f"{message} [{context}]" if context else message


def build_logging_config(settings: Settings) -> dict[str, Any]:
    level = settings.log_level.upper()
    library_level = level if settings.debug else "WARNING"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "telemetry": {
                "()": ContextualFormatter,
                "fmt": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S",
            }
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "telemetry"},
        },
        "loggers": {
            "meteo": {"level": level},
            **{name: {"level": library_level} for name in LIBRARY_LOGGERS},
        },
        "root": {"handlers": ["console"], "level": level},
    }


def configure_logging(settings: Settings | None = None) -> None:
    """Apply logging for ``settings`` (loaded from the environment when omitted).

    Repeated calls with the same level and debug flag are no-ops, so building
    several apps in one process does not stack handlers.
    """
    global _applied
    settings = settings or load_settings()
    key = (settings.log_level.upper(), settings.debug)
    if _applied == key:
        return

    dictConfig(build_logging_config(settings))
    _applied = key
