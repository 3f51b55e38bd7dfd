"""Process-wide logging configuration.

Modules never configure logging themselves; they only create
``logger = logging.getLogger(__name__)``. Entry points (the CLI and the
uvicorn runner) call :func:`configure_logging` once with the loaded
``LoggingSettings``.

Formats:
    simple   - ``LEVEL message``
    detailed - timestamp, level, logger name and message
    json     - one JSON object per line for log shippers
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

from share_ledger.config import LoggingSettings

_SIMPLE_FORMAT = "%(levelname)s %(message)s"
_DETAILED_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, sort_keys=True)


def build_formatter(fmt: str) -> logging.Formatter:
    """Return the formatter for a ``LoggingSettings.format`` value."""
    if fmt == "json":
        return JsonFormatter()
    if fmt == "simple":
        return logging.Formatter(_SIMPLE_FORMAT)
    return logging.Formatter(_DETAILED_FORMAT)


def configure_logging(settings: LoggingSettings) -> None:
    """Install a single stream handler on the root logger.

    Calling this more than once replaces the previous handler instead of
    stacking duplicates.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_share_ledger_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(build_formatter(settings.format))
    handler._share_ledger_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.level.upper(), logging.INFO))
