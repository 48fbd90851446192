"""
Agent authentication.

Each agent role is bound to exactly one bearer-token secret held in an
environment variable. The token map is built once (at startup, or on first
use) and kept for the life of the process; reload_agent_tokens() rebuilds it
explicitly when secrets are rotated.
"""

import functools
import os
import secrets
from collections.abc import Mapping

from flask import g, jsonify, request

from gateway_logging import get_logger, update_current_context

from .audit import audit_log
from .config import AgentRole
from .errors import ConfigError


logger = get_logger("mcp-gateway.auth")

ROLE_TOKEN_ENV: dict[AgentRole, str] = {
    AgentRole.CODEX: "CODEX_TOKEN",
    AgentRole.CURSOR: "CURSOR_TOKEN",
    AgentRole.GEMINI: "GEMINI_TOKEN",
}

BEARER_PREFIX = "Bearer "


class AgentTokens:
    """Immutable token -> role lookup."""

    def __init__(self, tokens: Mapping[AgentRole, str]):
        self._tokens = {role: token for role, token in tokens.items() if token}

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AgentTokens":
        """Build the lookup from CODEX_TOKEN / CURSOR_TOKEN / GEMINI_TOKEN.

        Unset or empty variables leave that role without access.

        Raises:
            ConfigError: If two roles are configured with the same token
        """
        env = os.environ if environ is None else environ
        tokens: dict[AgentRole, str] = {}
        owners: dict[str, str] = {}

        for role, var in ROLE_TOKEN_ENV.items():
            token = env.get(var, "").strip()
            if not token:
                continue
            if token in owners:
                raise ConfigError(
                    f"{owners[token]} and {var} hold the same token; "
                    "each agent role needs its own secret"
                )
            owners[token] = var
            tokens[role] = token

        return cls(tokens)

    @property
    def roles(self) -> list[AgentRole]:
        """Roles with a configured token."""
        return list(self._tokens)

    def resolve(self, token: str | None) -> AgentRole | None:
        """Resolve a bearer token to its role, or None if it matches none."""
        if not token:
            return None
        matched = None
        # Compare against every secret so timing does not reveal which matched
        for role, secret in self._tokens.items():
            if secrets.compare_digest(token.encode(), secret.encode()):
                matched = role
        return matched

    def __len__(self) -> int:
        return len(self._tokens)


def extract_bearer_token(header: str | None) -> str:
    """Return the token from an `Authorization: Bearer <token>` header."""
    if not header or not header.startswith(BEARER_PREFIX):
        return ""
    return header[len(BEARER_PREFIX):].strip()


_agent_tokens: AgentTokens | None = None


def get_agent_tokens() -> AgentTokens:
    """Get the process-wide token lookup, building it on first use."""
    global _agent_tokens
    if _agent_tokens is None:
        _agent_tokens = AgentTokens.from_env()
    return _agent_tokens


def reload_agent_tokens() -> AgentTokens:
    """Rebuild the token lookup from the current environment."""
    global _agent_tokens
    _agent_tokens = AgentTokens.from_env()
    logger.info("Agent tokens reloaded", roles=[role.value for role in _agent_tokens.roles])
    return _agent_tokens


def reset_agent_tokens() -> None:
    """Drop the cached token lookup (for testing)."""
    global _agent_tokens
    _agent_tokens = None


def authenticate(authorization: str | None) -> AgentRole | None:
    """Resolve an Authorization header value to an agent role."""
    return get_agent_tokens().resolve(extract_bearer_token(authorization))


def _request_id_from_body():
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        return body.get("id")
    return None


def require_agent(f):
    """Decorator that authenticates the caller and sets `g.role`.

    Unknown, missing, or malformed tokens get a 401 that never reveals which
    roles exist.
    """

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        try:
            role = authenticate(request.headers.get("Authorization"))
        except ConfigError as e:
            logger.error("Agent tokens misconfigured", error=e.message)
            audit_log(
                "MCP call rejected",
                event_type="mcp_auth",
                success=False,
                endpoint=request.path,
                error_kind="config_error",
                error="authentication unavailable",
            )
            return (
                jsonify(
                    {
                        "id": _request_id_from_body(),
                        "error": {"code": 500, "message": "authentication unavailable"},
                    }
                ),
                500,
            )

        if role is None:
            logger.warning(
                "Authentication failed",
                endpoint=request.path,
                source_ip=request.remote_addr,
            )
            audit_log(
                "MCP call rejected",
                event_type="mcp_auth",
                success=False,
                endpoint=request.path,
                error_kind="unauthorized",
                error="unauthorized",
            )
            return (
                jsonify(
                    {
                        "id": _request_id_from_body(),
                        "error": {"code": 401, "message": "unauthorized"},
                    }
                ),
                401,
            )

        g.role = role
        update_current_context(role=role.value)
        return f(*args, **kwargs)

    return decorated
