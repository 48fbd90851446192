"""
Log formatters for gateway_logging.

Provides a JSON-lines formatter (audit file, production consoles) and a
human-readable console formatter for development.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from .context import CONTEXT_FIELDS


# Standard LogRecord attributes that never count as structured extras
_STANDARD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "message",
        "taskName",
        *CONTEXT_FIELDS,
    }
)


class JsonFormatter(logging.Formatter):
    """One JSON object per log record.

    Output format:
        {
            "timestamp": "2025-11-28T12:34:56.789Z",
            "severity": "INFO",
            "message": "MCP call",
            "service": "mcp-gateway",
            "context": {"request_id": "...", "role": "codex"},
            "extra": {"repo": "acme/widgets"}
        }
    """

    SEVERITY_MAP = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARNING",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def __init__(
        self,
        service: str = "mcp-gateway",
        component: str | None = None,
        include_extra: bool = True,
    ):
        super().__init__()
        self.service = service
        self.component = component
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": self._format_timestamp(record),
            "severity": self.SEVERITY_MAP.get(record.levelno, "DEFAULT"),
            "message": record.getMessage(),
            "service": self.service,
        }

        if self.component:
            log_entry["component"] = self.component

        if record.name and record.name != self.service:
            log_entry["logger"] = record.name

        context_fields = {}
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value:
                context_fields[name] = value
        if context_fields:
            log_entry["context"] = context_fields

        if self.include_extra:
            extra = self._extract_extra(record)
            if extra:
                log_entry["extra"] = extra

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if record.levelno >= logging.WARNING:
            log_entry["sourceLocation"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_entry, default=str, ensure_ascii=False)

    def _format_timestamp(self, record: logging.LogRecord) -> str:
        """Format timestamp in ISO 8601 format with UTC timezone."""
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(dt.microsecond / 1000):03d}Z"

    def _extract_extra(self, record: logging.LogRecord) -> dict[str, Any]:
        """Extract extra fields that were passed to the log call."""
        return {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }


class ConsoleFormatter(logging.Formatter):
    """Human-readable console formatter for development.

    Output format:
        2025-11-28 12:34:56 [INFO    ] mcp-gateway: MCP call (role=codex repo=acme/widgets)
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(
        self,
        service: str = "mcp-gateway",
        use_colors: bool | None = None,
        show_context: bool = True,
    ):
        super().__init__()
        self.service = service
        self.use_colors = use_colors if use_colors is not None else self._detect_color_support()
        self.show_context = show_context

    def _detect_color_support(self) -> bool:
        """Detect if the terminal supports colors."""
        if not hasattr(sys.stderr, "isatty") or not sys.stderr.isatty():
            return False
        return not os.environ.get("NO_COLOR")

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record for console output."""
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")

        level = record.levelname
        if self.use_colors:
            level = f"{self.COLORS.get(level, '')}{level:8}{self.RESET}"
        else:
            level = f"{level:8}"

        parts = [f"{timestamp} [{level}] {self.service}"]

        # Sub-loggers are shown by their last dotted segment
        if record.name and record.name != self.service and "." in record.name:
            parts.append(f".{record.name.split('.')[-1]}")

        parts.append(f": {record.getMessage()}")

        if self.show_context:
            context_parts = []
            role = getattr(record, "role", None)
            if role:
                context_parts.append(f"role={role}")
            repository = getattr(record, "repository", None)
            if repository:
                context_parts.append(f"repo={repository}")
            request_id = getattr(record, "request_id", None)
            if request_id:
                context_parts.append(f"req={request_id}")

            if context_parts:
                context_str = " ".join(context_parts)
                if self.use_colors:
                    context_str = f"\033[90m({context_str})\033[0m"
                else:
                    context_str = f"({context_str})"
                parts.append(f" {context_str}")

        message = "".join(parts)

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message
