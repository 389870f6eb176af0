# src/situation_monitor/logging_utils.py
import json
import logging
import logging.handlers
import os
import sys
import time
from typing import Any, Dict, Optional

from .config import Settings, get_settings

# LogRecord attributes that are never echoed as extras
_RESERVED = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
    "asctime",
}


def _jsonify(value: Any) -> Any:
    """Return `value` if JSON can encode it, else its string form."""
    try:
        json.dumps(value)
        return value
    except Exception:
        return str(value)


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        k: _jsonify(v)
        for k, v in record.__dict__.items()
        if k not in _RESERVED and not k.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` attributes become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        base: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        for k, v in _extras(record).items():
            base.setdefault(k, v)
        if record.exc_info:
            try:
                base["exc"] = self.formatException(record.exc_info)
            except Exception:
                base["exc"] = "unavailable"
        return json.dumps(base, ensure_ascii=False)


class PlainFormatter(logging.Formatter):
    """Human-readable single-line formatter with colourised levels."""

    LEVEL_COLOURS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        ts = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created))
        extras = " ".join(f"{k}={v}" for k, v in _extras(record).items())
        colour = self.LEVEL_COLOURS.get(record.levelname, "")
        reset = self.RESET if colour else ""
        line = f"{ts} {colour}{record.levelname:<8}{reset} {record.name}: {record.getMessage()}"
        if extras:
            line = f"{line} {extras}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(level: str = "INFO", settings: Optional[Settings] = None) -> None:
    """Configure root logging for the dashboard engine.

    Console output is JSON lines unless ``LOG_PLAIN=1``, in which case the
    plain formatter is used.  A rotating JSON log (``monitor.jsonl``) and a
    WARNING-and-above log (``errors.log``) are written under
    ``<DATA_DIR>/logs``.  ``LOG_LEVEL`` overrides ``level``.
    """
    settings = settings or get_settings()
    level_upper = (settings.log_level or level or "INFO").upper()

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level_upper)

    try:
        log_dir = settings.data_dir / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        rotation_days = int(os.getenv("LOG_ROTATION_DAYS", "7"))
        max_bytes = 10 * 1024 * 1024

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / "monitor.jsonl",
            maxBytes=max_bytes,
            backupCount=rotation_days,
            encoding="utf-8",
        )
        file_handler.setFormatter(JsonFormatter())
        root.addHandler(file_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            log_dir / "errors.log",
            maxBytes=max_bytes,
            backupCount=rotation_days,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.WARNING)
        error_handler.setFormatter(JsonFormatter())
        root.addHandler(error_handler)
    except OSError as e:
        # Unwritable data dir: keep console logging only.
        sys.stderr.write(f"log_file_handlers_disabled err={e}\n")

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(
        PlainFormatter() if settings.log_plain else JsonFormatter()
    )
    root.addHandler(stream_handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
