"""Logger construction and an HTTP adapter that logs round trips."""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timedelta

import requests
from requests.adapters import HTTPAdapter

LOG_LEVEL_DEBUG = "debug"
LOG_LEVEL_INFO = "info"
LOG_LEVEL_WARN = "warn"
LOG_LEVEL_ERROR = "error"

LOGGER_NAME = "actions-runner-controller"

HEADER_RATE_LIMIT_REMAINING = "X-RateLimit-Remaining"
HEADER_FROM_CACHE = "X-From-Cache"

_INT8_RE = re.compile(r"[+-]?[0-9]+")


def level_for_verbosity(verbosity: int) -> int:
    """Map a verbosity (0 = info, 1 = debug, higher = more detail) to a logging level."""
    if verbosity <= 0:
        return logging.INFO
    return max(1, logging.DEBUG - (verbosity - 1))


def _format_rfc3339(moment: datetime) -> str:
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    offset = moment.utcoffset()
    if offset is None or offset == timedelta(0):
        return text + "Z"
    minutes = int(offset.total_seconds()) // 60
    sign = "+" if minutes >= 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    return f"{text}{sign}{hours:02d}:{mins:02d}"


def _level_name(levelno: int) -> str:
    if levelno >= logging.CRITICAL:
        return "dpanic"
    if levelno >= logging.ERROR:
        return "error"
    if levelno >= logging.WARNING:
        return "warn"
    if levelno >= logging.INFO:
        return "info"
    if levelno >= logging.DEBUG:
        return "debug"
    return f"Level({levelno - logging.DEBUG - 1})"


class _Rfc3339Formatter(logging.Formatter):
    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        return _format_rfc3339(datetime.fromtimestamp(record.created).astimezone())


class _ConsoleFormatter(_Rfc3339Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = "\t".join(
            (
                self.formatTime(record),
                _level_name(record.levelno).upper(),
                record.name,
                record.getMessage(),
            )
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class _JsonFormatter(_Rfc3339Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "level": _level_name(record.levelno),
            "ts": self.formatTime(record),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["stacktrace"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def _parse_level(log_level: str) -> int:
    if not _INT8_RE.fullmatch(log_level):
        raise ValueError(f"Failed to parse --log-level={log_level}: invalid syntax")
    value = int(log_level)
    if not -128 <= value <= 127:
        raise ValueError(f"Failed to parse --log-level={log_level}: value out of range")
    if value <= 0:
        return level_for_verbosity(-value)
    if value == 1:
        return logging.WARNING
    if value == 2:
        return logging.ERROR
    return logging.CRITICAL


def new_logger(log_level: str) -> logging.Logger:
    """Configure the controller's logger for the given level.

    Accepts "debug", "info", "warn", "error" or a numeric level where -1 is
    debug and -2, -3, ... enable more detailed verbosities.
    """
    development = False
    if log_level == LOG_LEVEL_DEBUG:
        development = True
        level = logging.DEBUG
    elif log_level == LOG_LEVEL_INFO:
        level = logging.INFO
    elif log_level == LOG_LEVEL_WARN:
        level = logging.WARNING
    elif log_level == LOG_LEVEL_ERROR:
        level = logging.ERROR
    else:
        level = _parse_level(log_level)

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_ConsoleFormatter() if development else _JsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def _render(fields: list[tuple[str, object]]) -> str:
    def value(v: object) -> str:
        if isinstance(v, bool):
            return "true" if v else "false"
        return str(v)

    return " ".join(f"{key}={value(v)}" for key, v in fields)


class LoggingAdapter(HTTPAdapter):
    """HTTP adapter that logs each response it receives."""

    def __init__(self, log: logging.Logger | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.log = log

    def send(self, request: requests.PreparedRequest, **kwargs) -> requests.Response:
        response = super().send(request, **kwargs)
        if response is not None:
            self._log_round_trip(request, response)
        return response

    def _log_round_trip(
        self, request: requests.PreparedRequest, response: requests.Response
    ) -> None:
        log = self.log
        if log is None:
            return

        from_cache = response.headers.get(HEADER_FROM_CACHE) == "1"
        fields: list[tuple[str, object]] = [
            ("from_cache", from_cache),
            ("method", request.method),
            ("url", request.url),
        ]
        if not from_cache:
            # A cached response carries an outdated rate limit.
            fields.append(
                ("ratelimit_remaining", response.headers.get(HEADER_RATE_LIMIT_REMAINING, ""))
            )

        if log.isEnabledFor(level_for_verbosity(4)):
            body = ""
            try:
                body = response.content.decode("utf-8", errors="replace")
            except (requests.RequestException, OSError) as exc:
                log.log(level_for_verbosity(3), "unable to copy http response error=%s", exc)
            log.log(
                level_for_verbosity(4),
                "Logging HTTP round-trip %s",
                _render(
                    [
                        ("method", request.method),
                        ("requestHeader", dict(request.headers)),
                        ("statusCode", response.status_code),
                        ("responseHeader", dict(response.headers)),
                        ("responseBody", body),
                    ]
                ),
            )

        log.log(level_for_verbosity(3), "Seen HTTP response %s", _render(fields))