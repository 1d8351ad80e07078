"""JSON line logging for the loyalty API.

Loguru is the single logging front end. Records from stdlib loggers
(uvicorn, sqlalchemy, alembic) are bridged into it, and one sink renders every
event as a JSON object carrying the service identity, the active trace ids and
the bound fields. Customer phone numbers are reduced to their last four digits
at render time, whichever code path logged them.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from typing import Any, TextIO

from loguru import logger
from opentelemetry import trace

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_STANDARD_RECORD_FIELDS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_MASKED_FIELDS = frozenset({"phone"})
_NON_DIGITS = re.compile(r"\D")

# Chatty stdlib loggers kept at WARNING.
_QUIET_LOGGERS = ("uvicorn.access", "aiosqlite", "sqlalchemy.engine.Engine")


def mask_phone(phone: object) -> str:
    """Keep only the last four digits of a phone number."""

    digits = _NON_DIGITS.sub("", str(phone or ""))
    if not digits:
        return ""
    return "***" + digits[-4:]


class StdlibBridge(logging.Handler):
    """Forward stdlib ``logging`` records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        fields = {
            key: value
            for key, value in vars(record).items()
            if key not in _STANDARD_RECORD_FIELDS and not key.startswith("_")
        }
        fields["logger_name"] = record.name

        # "{}" keeps braces in third-party messages away from loguru's formatter.
        logger.bind(**fields).opt(depth=6, exception=record.exc_info).log(
            level, "{}", record.getMessage()
        )


class JsonLineSink:
    """Loguru sink writing one JSON object per event."""

    def __init__(
        self,
        *,
        service_name: str,
        environment: str,
        version: str,
        stream: TextIO | None = None,
    ) -> None:
        self._identity = {"service": service_name, "environment": environment, "version": version}
        self._stream = stream

    def render(self, record: dict[str, Any]) -> dict[str, Any]:
        fields = dict(record["extra"])
        payload: dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "message": record["message"],
            "logger": fields.pop("logger_name", record["name"]),
            **self._identity,
        }

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            payload["trace_id"] = format(span_context.trace_id, "032x")
            payload["span_id"] = format(span_context.span_id, "016x")

        for key, value in fields.items():
            payload[key] = mask_phone(value) if key in _MASKED_FIELDS else value

        if record["exception"] is not None:
            error = record["exception"].value
            payload["exception"] = {"type": type(error).__name__, "message": str(error)}
        return payload

    def __call__(self, message: Any) -> None:
        # sys.stdout is looked up per write so capture in tests keeps working.
        stream = self._stream or sys.stdout
        stream.write(json.dumps(self.render(message.record), default=str) + "\n")
        stream.flush()


def configure_logging(
    *,
    service_name: str,
    environment: str,
    version: str,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Route loguru and stdlib logging into a single JSON line sink."""

    logger.remove()
    logger.add(
        JsonLineSink(service_name=service_name, environment=environment, version=version, stream=stream),
        level=level.upper(),
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[StdlibBridge()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["JsonLineSink", "StdlibBridge", "configure_logging", "mask_phone"]
