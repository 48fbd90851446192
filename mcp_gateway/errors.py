"""
Error types for the MCP gateway.

Every failure a request can hit is a GatewayError subclass tagged with a
`kind` and the HTTP status it maps to when typed status codes are enabled.

By default the gateway keeps the collapsed contract: authentication failures
are 401 and every other request failure is 400. Setting
MCP_TYPED_STATUS_CODES=true switches to the per-kind statuses below.
"""

from typing import Any


class GatewayError(Exception):
    """Base class for all gateway errors."""

    kind = "gateway_error"
    status_code = 400

    def __init__(self, message: str, data: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        """Structured form for logs and the `error.data` envelope field."""
        result: dict[str, Any] = {"kind": self.kind}
        if self.data:
            result.update(self.data)
        return result


class ConfigError(GatewayError):
    """Config file missing, unreadable, or failing schema validation."""

    kind = "config_error"
    status_code = 500


class AuthenticationError(GatewayError):
    """Missing or unknown bearer token."""

    kind = "unauthorized"
    status_code = 401


class ForbiddenError(GatewayError):
    """Role lacks the permission level an operation requires."""

    kind = "forbidden"
    status_code = 403


class RepoNotFoundError(GatewayError):
    """Repository is not listed in the gateway config."""

    kind = "not_found"
    status_code = 404


class ValidationError(GatewayError):
    """Malformed method parameters or repository name."""

    kind = "invalid_params"
    status_code = 422


class InvalidRequestError(GatewayError):
    """Malformed MCP request envelope."""

    kind = "invalid_request"
    status_code = 400


class UnknownMethodError(GatewayError):
    """Method name not present in the dispatch table."""

    kind = "unknown_method"
    status_code = 400


class UpstreamError(GatewayError):
    """Failure reported by (or while reaching) the GitHub API."""

    kind = "upstream_error"
    status_code = 502

    def __init__(
        self,
        message: str,
        upstream_status: int | None = None,
        data: dict[str, Any] | None = None,
    ):
        super().__init__(message, data)
        self.upstream_status = upstream_status

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.upstream_status is not None:
            result["upstream_status"] = self.upstream_status
        return result


# Explicit mapping used when typed status codes are enabled
TYPED_STATUS_CODES: dict[type[GatewayError], int] = {
    cls: cls.status_code
    for cls in (
        ConfigError,
        AuthenticationError,
        ForbiddenError,
        RepoNotFoundError,
        ValidationError,
        InvalidRequestError,
        UnknownMethodError,
        UpstreamError,
    )
}


def as_gateway_error(error: BaseException) -> GatewayError:
    """Wrap anything that is not already a GatewayError as an upstream failure.

    Handler code only raises GatewayError itself; anything else escaped from
    a collaborator and is passed through by message.
    """
    if isinstance(error, GatewayError):
        return error
    return UpstreamError(str(error) or type(error).__name__)


def error_status(error: GatewayError, typed: bool = False) -> int:
    """Map an error to the HTTP status returned to the caller."""
    if isinstance(error, AuthenticationError):
        return 401
    if not typed:
        return 400
    for cls in type(error).__mro__:
        if cls in TYPED_STATUS_CODES:
            return TYPED_STATUS_CODES[cls]
    return error.status_code
