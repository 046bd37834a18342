"""
Structured logging configuration for the CoreSend client.

Supports two output formats:
  - **human** – single-line, coloured when attached to a terminal
  - **json**  – newline-delimited JSON for log aggregators

Every handler carries a redaction filter that masks long hex runs in the
message *and* in any attached traceback, so key material or signatures can
never reach a sink even if they end up in an exception message.  Inbox
addresses (40 hex chars) stay readable.

Request and inbox context is passed with ``extra=``; the JSON formatter
emits the keys listed in ``CONTEXT_FIELDS`` when a record carries them:

    logger.info("Inbox registered", extra={"address": addr})

Usage:
    from coresend_core.logging_config import setup_logging
    setup_logging(level="DEBUG", fmt="json", log_file="coresend.log")
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# 64+ hex chars: private/public keys, signatures, seeds
_SECRET_HEX = re.compile(r"\b[0-9a-fA-F]{64,}\b")
REDACTED = "[REDACTED]"

CONTEXT_FIELDS = ("address", "method", "path", "status")


def redact(text: str) -> str:
    return _SECRET_HEX.sub(REDACTED, text)


class SecretRedactingFilter(logging.Filter):
    """Mask long hex runs in the rendered message and the traceback text."""

    _exc_formatter = logging.Formatter()

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None

        # formatters reuse exc_text, so mask it here
        if record.exc_info and not record.exc_text:
            record.exc_text = self._exc_formatter.formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = redact(record.exc_text)
        if record.stack_info:
            record.stack_info = redact(record.stack_info)
        return True


def _exception_text(formatter: logging.Formatter, record: logging.LogRecord) -> str:
    if record.exc_text:
        return record.exc_text
    if record.exc_info and record.exc_info[1]:
        return formatter.formatException(record.exc_info)
    return ""


class _JSONFormatter(logging.Formatter):
    """One JSON object per record, with request/inbox context when present."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_obj[key] = value
        exc = _exception_text(self, record)
        if exc:
            log_obj["exception"] = exc
        return json.dumps(log_obj, default=str)


class _HumanFormatter(logging.Formatter):
    """Concise single-line format; the traceback, if any, follows on new lines."""

    COLOURS = {
        "DEBUG": "\033[36m",     # cyan
        "INFO": "\033[32m",      # green
        "WARNING": "\033[33m",   # yellow
        "ERROR": "\033[31m",     # red
        "CRITICAL": "\033[1;31m",  # bold red
    }
    RESET = "\033[0m"

    def __init__(self, colour: bool = True):
        super().__init__()
        self.colour = colour

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"[{record.levelname:<7}]"
        if self.colour:
            level = f"{self.COLOURS.get(record.levelname, '')}{level}{self.RESET}"
        line = f"{ts} {level} {record.name}: {record.getMessage()}"
        exc = _exception_text(self, record)
        return f"{line}\n{exc}" if exc else line


def setup_logging(
    level: str = "INFO",
    fmt: str = "human",
    log_file: Optional[str] = None,
) -> None:
    """
    Configure the root logger for the client.

    Parameters
    ----------
    level : str
        One of DEBUG, INFO, WARNING, ERROR, CRITICAL.  Unknown names fall
        back to INFO.
    fmt : str
        ``"human"`` for single-line output (coloured on a terminal),
        ``"json"`` for newline-delimited JSON.
    log_file : str, optional
        If provided, logs are *also* written to this file (always JSON).
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    root.handlers.clear()
    redactor = SecretRedactingFilter()

    console = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        console.setFormatter(_JSONFormatter())
    else:
        console.setFormatter(_HumanFormatter(colour=sys.stderr.isatty()))
    console.addFilter(redactor)
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(path))
        fh.setFormatter(_JSONFormatter())
        fh.addFilter(redactor)
        root.addHandler(fh)
