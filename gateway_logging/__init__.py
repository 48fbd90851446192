"""
gateway_logging - Structured logging library for the MCP gateway.

Provides a unified logging interface with JSON output and request-scoped
context propagation.

Usage:
    from gateway_logging import get_logger, ContextScope

    logger = get_logger("mcp-gateway")

    # Simple logging
    logger.info("MCP call", method="repo.getFile", repo="owner/repo")

    # With context scope (all logs in scope include context)
    with ContextScope(method="repo.getFile", role="codex"):
        logger.info("Dispatching")

    # Append-only JSON-lines file (audit trail)
    audit = get_logger("mcp-gateway.audit")
    audit.add_file_handler("logs/audit.log")
"""

from .context import (
    ContextScope,
    LogContext,
    get_current_context,
    set_current_context,
    update_current_context,
)
from .formatters import ConsoleFormatter, JsonFormatter
from .logger import BoundLogger, GatewayLogger, get_logger, reconfigure_levels, resolve_level


__all__ = [
    "BoundLogger",
    "ConsoleFormatter",
    "ContextScope",
    "GatewayLogger",
    "JsonFormatter",
    "LogContext",
    "get_current_context",
    "get_logger",
    "reconfigure_levels",
    "resolve_level",
    "set_current_context",
    "update_current_context",
]

__version__ = "0.1.0"
