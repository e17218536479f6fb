"""
Hybrid Kernels Logging — colorized dev output, JSON for production.

Most interesting lines are routing decisions ("Routing kernel start to
remote backend") and server failures, so records carry the backend they
concern. The color formatter prints it as a tag after the logger name
([local] green, [remote] magenta) along with a short kernel or session id;
the JSON formatter emits it as a top-level field.

Features:
- Color formatter for dev mode (auto-detects TTY)
- JSON structured formatter for production (HYBRID_KERNELS_LOG_FORMAT=json)
- Suppresses noisy third-party loggers (httpx, httpcore, uvicorn.access);
  every poll tick is an HTTP request
- Configurable via HYBRID_KERNELS_LOG_LEVEL, HYBRID_KERNELS_LOG_COLOR,
  HYBRID_KERNELS_LOG_FORMAT

Structured log extra fields (pass via logger.info(..., extra={...})):
    op, backend, kernel_id, session_id, mode, status, duration_ms
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone


# --- Color codes ---
COLORS = {
    "DEBUG": "\033[36m",  # Cyan
    "INFO": "\033[32m",  # Green
    "WARNING": "\033[33m",  # Yellow
    "ERROR": "\033[31m",  # Red
    "CRITICAL": "\033[1;31m",  # Bold red
    "RESET": "\033[0m",
    "DIM": "\033[2m",
}

# Backend tag colors (for the tag, not the whole line)
BACKEND_COLORS = {
    "local": "\033[32m",  # Green
    "remote": "\033[35m",  # Magenta
}

# Ids are uuids; eight characters are enough to tell kernels apart in a tail
_SHORT_ID = 8


def backend_tag(record: logging.LogRecord, use_color: bool = False) -> str:
    """Tag like "[remote k:1a2b3c4d] " for a record routed to a backend."""
    backend = getattr(record, "backend", None)
    if not backend:
        return ""
    label = str(backend)
    ident = getattr(record, "kernel_id", None) or getattr(record, "session_id", None)
    if ident:
        prefix = "k" if getattr(record, "kernel_id", None) else "s"
        label = f"{label} {prefix}:{str(ident)[:_SHORT_ID]}"
    if use_color:
        color = BACKEND_COLORS.get(str(backend), "")
        return f"{color}[{label}]{COLORS['RESET']} "
    return f"[{label}] "


class ColorFormatter(logging.Formatter):
    """Colorized log formatter for terminal output."""

    def __init__(self, use_color: bool = True):
        super().__init__(
            fmt="%(asctime)s [%(name)s] %(levelname)s: %(backend_tag)s%(message)s",
            datefmt="%H:%M:%S",
        )
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        record.backend_tag = backend_tag(record, self.use_color)
        if not self.use_color:
            return super().format(record)

        level_color = COLORS.get(record.levelname, "")
        reset = COLORS["RESET"]
        dim = COLORS["DIM"]

        orig_levelname = record.levelname
        orig_name = record.name

        record.levelname = f"{level_color}{record.levelname}{reset}"
        record.name = f"{dim}{record.name}{reset}"

        result = super().format(record)

        record.levelname = orig_levelname
        record.name = orig_name

        return result


# Structured log fields forwarded from logger.info(..., extra={...})
_STRUCTURED_FIELDS = (
    "op",
    "backend",
    "kernel_id",
    "session_id",
    "mode",
    "status",
    "duration_ms",
)


class StructuredFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation.

    Each log line is a single JSON object. Extra fields passed via
    logger.info("msg", extra={"kernel_id": "...", "backend": "remote"})
    are included at the top level.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for key in _STRUCTURED_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)

        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def _should_use_color() -> bool:
    """Auto-detect color support."""
    env_val = os.getenv("HYBRID_KERNELS_LOG_COLOR", "auto").lower()
    if env_val == "true":
        return True
    if env_val == "false":
        return False
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def setup_logging() -> None:
    """Configure logging for the whole process. Call once at startup.

    Env vars:
        HYBRID_KERNELS_LOG_LEVEL  — DEBUG / INFO / WARNING / ERROR (default: INFO)
        HYBRID_KERNELS_LOG_COLOR  — true / false / auto (default: auto)
        HYBRID_KERNELS_LOG_FORMAT — text / json (default: text)
    """
    level_name = os.getenv("HYBRID_KERNELS_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    log_format = os.getenv("HYBRID_KERNELS_LOG_FORMAT", "text").lower()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    if log_format == "json":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = ColorFormatter(use_color=_should_use_color())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    # Every poll tick is an HTTP request; keep them out of INFO output
    for noisy_logger in [
        "httpx",
        "httpcore",
        "httpcore.http11",
        "httpcore.connection",
        "uvicorn.access",
    ]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    logging.getLogger("uvicorn.error").setLevel(level)

    logger = logging.getLogger("hybrid_kernels")
    logger.debug("Logging configured (level=%s, format=%s)", level_name, log_format)
