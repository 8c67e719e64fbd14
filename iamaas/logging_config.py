from __future__ import annotations

import logging
import os
import re
import sys
from typing import Mapping, TextIO

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_ANSI_RESET = "\x1b[0m"
_ANSI_BY_LEVEL: Mapping[int, str] = {
    logging.DEBUG: "\x1b[2m",
    logging.INFO: "\x1b[34m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[41;97m",
}
_LEVELS_BY_NAME: Mapping[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}
_SECRET_PATTERN = re.compile(r"(?i)\b(password|client_secret|access_token)(['\"]?\s*[=:]\s*['\"]?)([^\s'\",}&]+)")


class AnsiLevelFormatter(logging.Formatter):
    """Tints the level column; the message itself is left untouched."""

    def __init__(self, *, colors: Mapping[int, str] | None = None) -> None:
        super().__init__(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
        self._colors = colors or {}

    def formatMessage(self, record: logging.LogRecord) -> str:
        ansi = self._colors.get(record.levelno)
        if not ansi:
            return super().formatMessage(record)
        plain = record.levelname
        record.levelname = f"{ansi}{plain}{_ANSI_RESET}"
        try:
            return super().formatMessage(record)
        finally:
            record.levelname = plain


class SecretRedactingFilter(logging.Filter):
    """Masks credential values that end up in rendered log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def redact_secrets(text: str) -> str:
    return _SECRET_PATTERN.sub(lambda m: f"{m.group(1)}{m.group(2)}***", text)


def colors_for(stream: TextIO) -> Mapping[int, str] | None:
    if os.getenv("NO_COLOR"):
        return None
    if os.getenv("FORCE_COLOR") or getattr(stream, "isatty", lambda: False)():
        return _ANSI_BY_LEVEL
    return None


def resolve_level(level: str | int | None = None) -> int:
    if isinstance(level, int):
        return level
    name = (level or os.getenv("IAMAAS_LOG_LEVEL") or "INFO").strip().upper()
    return _LEVELS_BY_NAME.get(name, logging.INFO)


def configure_logging(*, level: str | int | None = None, force: bool = False) -> None:
    root = logging.getLogger()
    threshold = resolve_level(level)
    root.setLevel(threshold)

    if root.handlers and not force:
        # Someone (uvicorn, pytest) already owns the handlers; only align level and redaction.
        for existing in root.handlers:
            existing.setLevel(threshold)
            if not any(isinstance(f, SecretRedactingFilter) for f in existing.filters):
                existing.addFilter(SecretRedactingFilter())
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(threshold)
    handler.addFilter(SecretRedactingFilter())
    handler.setFormatter(AnsiLevelFormatter(colors=colors_for(sys.stderr)))
    root.handlers.clear()
    root.addHandler(handler)
