"""
Context management for gateway_logging.

Provides a request-scoped logging context so every log line emitted while a
gateway request is being handled carries the same correlation fields.
"""

import secrets
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any


# Thread-local and async-safe context storage
_current_context: ContextVar["LogContext | None"] = ContextVar(
    "gateway_log_context", default=None
)

# Fields promoted to the "context" block of structured log entries
CONTEXT_FIELDS = ("request_id", "method", "repository", "role")


@dataclass
class LogContext:
    """Context for log correlation.

    Attributes:
        request_id: Correlation ID for one HTTP request (16 hex chars)
        method: MCP method being dispatched (e.g. "repo.getFile")
        repository: Target repository (owner/name format)
        role: Authenticated agent role
        extra: Additional context fields to include in logs
    """

    request_id: str | None = None
    method: str | None = None
    repository: str | None = None
    role: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.request_id is None:
            self.request_id = secrets.token_hex(8)

    def with_extra(self, **kwargs: Any) -> "LogContext":
        """Create a new context with additional extra fields."""
        new_extra = dict(self.extra)
        new_extra.update(kwargs)
        return LogContext(
            request_id=self.request_id,
            method=self.method,
            repository=self.repository,
            role=self.role,
            extra=new_extra,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dict for log inclusion."""
        result: dict[str, Any] = {}
        for name in CONTEXT_FIELDS:
            value = getattr(self, name)
            if value:
                result[name] = value
        return result


def get_current_context() -> LogContext | None:
    """Get the current logging context."""
    return _current_context.get()


def set_current_context(ctx: LogContext | None) -> None:
    """Set the current logging context."""
    _current_context.set(ctx)


def update_current_context(**fields: Any) -> None:
    """Update fields of the current context in place.

    Used once a request has progressed far enough to know the values
    (e.g. the role after authentication). No-op outside a scope.
    """
    ctx = get_current_context()
    if ctx is None:
        return
    for name, value in fields.items():
        if name in CONTEXT_FIELDS:
            setattr(ctx, name, value)
        else:
            ctx.extra[name] = value


class ContextScope:
    """Context manager for scoped logging context.

    Usage:
        with ContextScope(method="repo.getFile", repository="owner/repo"):
            logger.info("Dispatching")
            # All logs in this scope include the context
    """

    def __init__(
        self,
        request_id: str | None = None,
        method: str | None = None,
        repository: str | None = None,
        role: str | None = None,
        **extra: Any,
    ):
        self._request_id = request_id
        self._method = method
        self._repository = repository
        self._role = role
        self._extra = extra
        self._token: Any = None

    def __enter__(self) -> LogContext:
        ctx = LogContext(
            request_id=self._request_id,
            method=self._method,
            repository=self._repository,
            role=self._role,
            extra=dict(self._extra),
        )
        self._token = _current_context.set(ctx)
        return ctx

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        _current_context.reset(self._token)
