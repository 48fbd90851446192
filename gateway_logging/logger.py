"""
GatewayLogger - Structured logging for the MCP gateway.

Wraps a standard library logger so that keyword arguments on log calls
become structured fields, and request context is attached automatically.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from .context import get_current_context
from .formatters import ConsoleFormatter, JsonFormatter


DEFAULT_LEVEL = logging.INFO

# LogRecord attributes that cannot be overwritten through `extra`
_RESERVED_RECORD_KEYS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys() | {"message", "asctime"}
)


def resolve_level(level: int | str | None = None) -> int:
    """Resolve a log level from an explicit value or the LOG_LEVEL env var.

    Unknown level names fall back to INFO.
    """
    if level is None:
        level = os.environ.get("LOG_LEVEL", "")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper()) if level else None
    return resolved if isinstance(resolved, int) else DEFAULT_LEVEL


class GatewayLogger:
    """Structured logger for gateway components.

    Usage:
        from gateway_logging import get_logger

        logger = get_logger("mcp-gateway")
        logger.info("MCP call", method="repo.getFile", repo="owner/repo")
    """

    def __init__(
        self,
        name: str,
        level: int | str | None = None,
        component: str | None = None,
    ):
        self.name = name
        self.component = component
        self._configured_level = level
        self._logger = logging.getLogger(name)
        self._logger.setLevel(resolve_level(level))
        self._logger.propagate = False

    def set_level(self, level: int | str | None = None) -> None:
        """Re-resolve the level (explicit, else the one given at creation, else LOG_LEVEL)."""
        self._logger.setLevel(resolve_level(level if level is not None else self._configured_level))

    def _ensure_handlers(self) -> None:
        """Attach the console handler on first use."""
        if any(getattr(h, "_gateway_console", False) for h in self._logger.handlers):
            return

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG)
        if os.environ.get("LOG_FORMAT", "").lower() == "json":
            console_handler.setFormatter(JsonFormatter(service=self.name, component=self.component))
        else:
            console_handler.setFormatter(ConsoleFormatter(service=self.name))
        console_handler._gateway_console = True
        self._logger.addHandler(console_handler)

    def _get_extra(self, extra: dict[str, Any] | None = None) -> dict[str, Any]:
        """Get extra fields including context."""
        result: dict[str, Any] = {}

        ctx = get_current_context()
        if ctx:
            result.update(ctx.to_dict())
            if ctx.extra:
                result.update(ctx.extra)

        if extra:
            result.update(extra)

        # Keys that collide with LogRecord attributes get a suffix
        return {
            (f"{key}_" if key in _RESERVED_RECORD_KEYS else key): value
            for key, value in result.items()
        }

    def _log(
        self,
        level: int,
        msg: str,
        *args: Any,
        exc_info: Any = None,
        **kwargs: Any,
    ) -> None:
        self._ensure_handlers()
        self._logger.log(
            level,
            msg,
            *args,
            exc_info=exc_info,
            extra=self._get_extra(kwargs),
        )

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log a debug message."""
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log an info message."""
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log a warning message."""
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, exc_info: Any = None, **kwargs: Any) -> None:
        """Log an error message."""
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log an exception (includes stack trace)."""
        self._log(logging.ERROR, msg, *args, exc_info=True, **kwargs)

    def add_file_handler(
        self,
        log_file: str | Path,
        level: int = logging.DEBUG,
        max_bytes: int = 10 * 1024 * 1024,  # 10 MB
        backup_count: int = 5,
    ) -> RotatingFileHandler:
        """Add a rotating JSON-lines file handler.

        Args:
            log_file: Path to the log file (parent directories are created)
            level: Log level for file handler
            max_bytes: Max file size before rotation
            backup_count: Number of backup files to keep

        Returns:
            The attached handler, so callers can detach it again
        """
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(JsonFormatter(service=self.name, component=self.component))
        self._logger.addHandler(file_handler)
        return file_handler

    def remove_handler(self, handler: logging.Handler) -> None:
        """Detach and close a handler previously added to this logger."""
        self._logger.removeHandler(handler)
        handler.close()

    def with_context(self, **kwargs: Any) -> "BoundLogger":
        """Create a bound logger with additional context.

        Usage:
            bound = logger.with_context(role="codex")
            bound.info("Processing")  # Includes role in all logs
        """
        return BoundLogger(self, kwargs)


class BoundLogger:
    """Logger bound to specific context fields."""

    def __init__(self, parent: GatewayLogger, bound_fields: dict[str, Any]):
        self._parent = parent
        self._bound_fields = bound_fields

    def _merge_kwargs(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        result = dict(self._bound_fields)
        result.update(kwargs)
        return result

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._parent.debug(msg, *args, **self._merge_kwargs(kwargs))

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._parent.info(msg, *args, **self._merge_kwargs(kwargs))

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._parent.warning(msg, *args, **self._merge_kwargs(kwargs))

    def error(self, msg: str, *args: Any, exc_info: Any = None, **kwargs: Any) -> None:
        self._parent.error(msg, *args, exc_info=exc_info, **self._merge_kwargs(kwargs))

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._parent.exception(msg, *args, **self._merge_kwargs(kwargs))

    def with_context(self, **kwargs: Any) -> "BoundLogger":
        """Create a new bound logger with additional context."""
        return BoundLogger(self._parent, self._merge_kwargs(kwargs))


# Logger registry for singleton behavior
_loggers: dict[str, GatewayLogger] = {}


def get_logger(
    name: str,
    level: int | str | None = None,
    component: str | None = None,
) -> GatewayLogger:
    """Get or create a logger by name.

    Loggers are cached by name and component, so calling get_logger with the
    same arguments returns the same instance.

    Args:
        name: Logger name (e.g. "mcp-gateway" or "mcp-gateway.audit")
        level: Log level (default: LOG_LEVEL env var, else INFO)
        component: Optional component within the service

    Returns:
        GatewayLogger instance
    """
    key = f"{name}:{component or ''}"

    if key not in _loggers:
        _loggers[key] = GatewayLogger(name, level, component)

    return _loggers[key]


def reconfigure_levels() -> None:
    """Re-apply LOG_LEVEL to every cached logger.

    Loggers are created at import time; call this once the environment is
    final (e.g. after loading `.env`).
    """
    for logger in _loggers.values():
        logger.set_level()
