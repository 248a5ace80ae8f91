"""Logging setup for doctype commands.

Console output of a command is plain ``print``; diagnostics go through the
``doctype.*`` loggers to stderr, either as short text lines or as one JSON
object per line for CI log collectors. API keys are scrubbed from every
record before it is formatted.
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Optional

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
TEXT_DATEFMT = "%H:%M:%S"

# Third-party loggers that are chatty at INFO during a completion call
QUIET_LOGGERS = ("LiteLLM", "litellm", "httpx", "urllib3", "openhands")

_LOG_RECORD_FIELDS = frozenset(vars(logging.makeLogRecord({}))) | {"message"}


class _JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Values passed via ``extra=`` (``anchor_id``, ``error_code`` ...) become
    top-level keys next to the standard ones.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        data = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.threadName not in (None, "MainThread"):
            data["thread"] = record.threadName
        data.update(
            (name, value)
            for name, value in vars(record).items()
            if name not in _LOG_RECORD_FIELDS and name not in data
        )
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


# ---------------------------------------------------------------------------
# Redaction
# ---------------------------------------------------------------------------

# Group 1 is kept, the rest of the match is replaced.
_SECRET_PATTERNS = (
    re.compile(r"()\bsk-[A-Za-z0-9_\-]{20,}\b"),
    re.compile(r"()\bor-[A-Za-z0-9]{20,}\b"),
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._\-]{20,}"),
    re.compile(r"""(?i)((?:api_key|secret|password|token|authorization)[=:]\s*)[^\s,'"]{8,}"""),
)

_MASK = "***REDACTED***"


def redact(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(lambda m: m.group(1) + _MASK, text)
    return text


class _SecretFilter(logging.Filter):
    """Render the message with its args, then mask anything key-shaped."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(record.getMessage())
        record.args = None
        if record.exc_text:
            record.exc_text = redact(record.exc_text)
        return True


def _formatter_for(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return _JsonFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATEFMT)


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Route all logging to stderr for one CLI run.

    Replaces any handlers already on the root logger, so calling it twice
    leaves a single handler.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (default INFO).
        log_format: ``"text"`` (default) or ``"json"``.
    """
    level = (log_level or "INFO").upper()
    fmt = (log_format or "text").lower()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_formatter_for(fmt))
    handler.addFilter(_SecretFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("doctype.logging").debug(
        "Logging configured", extra={"level": level, "format": fmt}
    )
