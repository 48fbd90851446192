#!/usr/bin/env python3
"""
MCP Gateway - single-endpoint API for agents to work on GitHub repositories.

Agents (codex, cursor, gemini) call one endpoint with an MCP-style envelope.
The gateway holds the GitHub App credentials, checks the caller's role
against the per-repository permission table, and proxies the call to GitHub.

Security:
    - Authentication via per-role bearer tokens (CODEX_TOKEN, CURSOR_TOKEN, GEMINI_TOKEN)
    - Per-repository read/write permissions from config/github.yaml
    - Every call and its outcome written to the audit log

Endpoints:
    POST /mcp       - Dispatch an MCP method (auth required)
    GET  /health    - Health check (no auth required)

Methods:
    repo.listFiles          (read)
    repo.getFile            (read)
    repo.createPullRequest  (write)

Usage:
    mcp-gateway [--host HOST] [--port PORT] [--config PATH] [--debug]
"""

import argparse
import functools
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from waitress import serve

from gateway_logging import ContextScope, get_logger, reconfigure_levels, update_current_context

from .audit import audit_log, audit_logger
from .auth import get_agent_tokens, require_agent
from .config import load_config
from .errors import ConfigError, GatewayError, UnknownMethodError, as_gateway_error, error_status
from .github_client import get_github_app, reset_github_app
from .methods import METHODS
from .protocol import McpError, McpRequest, McpResponse, request_id_of
from .settings import GatewaySettings, get_settings, set_settings


logger = get_logger("mcp-gateway")

app = Flask(__name__)


def request_scope(f):
    """Run the view inside a logging context with a fresh request ID."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        with ContextScope() as ctx:
            response = app.make_response(f(*args, **kwargs))
            response.headers["X-Request-ID"] = ctx.request_id
            return response

    return decorated


def make_mcp_response(response: McpResponse, status_code: int = 200):
    return jsonify(response.to_dict()), status_code


def make_mcp_error(request_id: Any, error: GatewayError):
    """Convert an error to the JSON envelope and its HTTP status."""
    status = error_status(error, typed=get_settings().typed_status_codes)
    return make_mcp_response(
        McpResponse(id=request_id, error=McpError.from_exception(error, code=status)),
        status,
    )


def dispatch(mcp_request: McpRequest, role: str) -> Any:
    """Look up and invoke the handler for a request.

    Raises:
        UnknownMethodError: Before any handler runs, if the method is unknown
        GatewayError: Whatever the handler raises
    """
    handler = METHODS.get(mcp_request.method)
    if handler is None:
        raise UnknownMethodError("unknown method", data={"method": mcp_request.method})
    # The authenticated role always wins over a caller-supplied one
    return handler({**mcp_request.params, "role": role})


@app.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint (no auth required)."""
    try:
        repo_count = len(load_config().repos)
        config_ok = True
    except ConfigError:
        repo_count = 0
        config_ok = False

    try:
        roles_configured = len(get_agent_tokens())
    except ConfigError:
        roles_configured = 0

    github_configured = get_github_app().is_configured
    healthy = config_ok and roles_configured > 0

    return jsonify(
        {
            "status": "healthy" if healthy else "degraded",
            "service": "mcp-gateway",
            "config_loaded": config_ok,
            "repos": repo_count,
            "roles_configured": roles_configured,
            "github_app_configured": github_configured,
        }
    )


@app.route("/mcp", methods=["POST"])
@request_scope
@require_agent
def mcp_endpoint():
    """
    Dispatch one MCP call.

    Request body:
        {
            "id": 1,
            "method": "repo.getFile",
            "params": {"repo": "owner/repo", "path": "README.md", "ref": "main"}
        }

    Response: {"id": 1, "result": ...} or {"id": 1, "error": {...}}
    """
    role = g.role.value
    body = request.get_json(silent=True)

    try:
        mcp_request = McpRequest.from_json(body)
    except GatewayError as e:
        audit_log("MCP call rejected", success=False, role=role, error_kind=e.kind, error=e.message)
        return make_mcp_error(request_id_of(body), e)

    repo = mcp_request.params.get("repo")
    update_current_context(method=mcp_request.method, repository=repo if isinstance(repo, str) else None)
    audit_log(
        "MCP call",
        event_type="mcp_call_received",
        method=mcp_request.method,
        repo=repo,
        role=role,
    )

    try:
        result = dispatch(mcp_request, role)
    except Exception as e:
        error = as_gateway_error(e)
        if isinstance(error, UnknownMethodError):
            logger.warning("Unknown method", method=mcp_request.method)
        elif error is not e:
            # Not raised deliberately by gateway code; keep the traceback
            logger.exception("Unexpected handler failure", method=mcp_request.method)
        audit_log(
            "MCP call failed",
            success=False,
            method=mcp_request.method,
            repo=repo,
            role=role,
            error_kind=error.kind,
            error=error.message,
        )
        return make_mcp_error(mcp_request.id, error)

    audit_log("MCP call succeeded", success=True, method=mcp_request.method, repo=repo, role=role)
    return make_mcp_response(McpResponse(id=mcp_request.id, result=result))


def main(argv: list[str] | None = None) -> None:
    """Run the gateway server."""
    load_dotenv()
    reconfigure_levels()
    settings = GatewaySettings.from_env()

    parser = argparse.ArgumentParser(description="MCP GitHub Gateway")
    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Host to listen on (default: {settings.host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Port to listen on (default: {settings.port})",
    )
    parser.add_argument(
        "--config",
        default=str(settings.config_path),
        help=f"Repository config file (default: {settings.config_path})",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Run the Flask development server",
    )
    args = parser.parse_args(argv)

    settings.host = args.host
    settings.port = args.port
    settings.config_path = Path(args.config)
    set_settings(settings)
    reset_github_app()

    validation = settings.validate()
    for error in validation.errors:
        logger.error("Settings error", error=error)
    for warning in validation.warnings:
        logger.warning("Settings warning", warning=warning)

    try:
        tokens = get_agent_tokens()
    except ConfigError as e:
        logger.error("Failed to load agent tokens", error=e.message)
        sys.exit(1)
    if not len(tokens):
        logger.warning("No agent tokens configured; every request will be rejected")

    try:
        config = load_config()
    except ConfigError as e:
        logger.error("Failed to load config", error=e.message)
        sys.exit(1)
    logger.info("Loaded config", repo_count=len(config.repos), config_path=str(settings.config_path))

    audit_logger.add_file_handler(settings.audit_log_path)

    logger.info(
        "Starting MCP Gateway",
        host=settings.host,
        port=settings.port,
        debug=args.debug,
        roles_configured=len(tokens),
        typed_status_codes=settings.typed_status_codes,
        audit_log=str(settings.audit_log_path),
    )

    if args.debug:
        app.run(host=settings.host, port=settings.port, debug=True)
    else:
        serve(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
