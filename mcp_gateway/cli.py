"""
Setup and diagnostics tool for the MCP gateway.

Usage:
    mcp-gateway-admin generate-tokens              # New agent bearer tokens
    mcp-gateway-admin format-key [PATH]            # PEM -> one-line .env value
    mcp-gateway-admin validate                     # Check .env and config
    mcp-gateway-admin access ROLE REPO [--write]   # Explain a permission check
"""

import argparse
import os
import secrets
import sys
from pathlib import Path

from dotenv import dotenv_values

from .auth import ROLE_TOKEN_ENV
from .config import ROLE_NAMES, AgentRole, Permission, find_repo, load_config
from .errors import ConfigError, RepoNotFoundError
from .policy import check_permission
from .settings import DEFAULT_CONFIG_PATH, ConfigStatus, ValidationResult


TOKEN_BYTES = 32

REQUIRED_ENV_VARS = (
    *ROLE_TOKEN_ENV.values(),
    "GITHUB_APP_ID",
    "GITHUB_APP_PRIVATE_KEY",
)

# Values shipped in the example files
PLACEHOLDER_PREFIX = "your-"
PLACEHOLDER_ORG = "YOUR-ORG"
PLACEHOLDER_INSTALLATION_ID = 123456


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def format_private_key(pem: str) -> str:
    """Escape a PEM so it fits on one `.env` line."""
    return pem.strip().replace("\r\n", "\n").replace("\n", "\\n")


def cmd_generate_tokens(args: argparse.Namespace) -> int:
    """Print a fresh secret for every agent role."""
    print("Generated tokens for agent authentication:\n")
    for var in ROLE_TOKEN_ENV.values():
        print(f"{var}={generate_token()}")
    print("\nCopy these values to your .env file.")
    return 0


def cmd_format_key(args: argparse.Namespace) -> int:
    """Print a PEM private key as a GITHUB_APP_PRIVATE_KEY line."""
    if args.path:
        try:
            content = Path(args.path).read_text(encoding="utf-8")
        except OSError as e:
            print(f"Error: cannot read {args.path}: {e}", file=sys.stderr)
            return 1
    else:
        content = sys.stdin.read()

    if not content.strip():
        print("Error: No private key content provided", file=sys.stderr)
        print("Usage: mcp-gateway-admin format-key private-key.pem", file=sys.stderr)
        print("   OR: cat private-key.pem | mcp-gateway-admin format-key", file=sys.stderr)
        return 1

    print("\nAdd this to your .env file:\n")
    print(f'GITHUB_APP_PRIVATE_KEY="{format_private_key(content)}"\n')
    return 0


def check_environment(env: dict[str, str | None]) -> tuple[list[str], list[str]]:
    """Check that every required variable is set to a non-placeholder value."""
    errors = []
    for var in REQUIRED_ENV_VARS:
        value = (env.get(var) or "").strip()
        if not value or value.startswith(PLACEHOLDER_PREFIX):
            errors.append(f"{var} not set or still has placeholder value")
    return errors, []


def check_config(config_path: Path) -> tuple[list[str], list[str]]:
    """Check that the repository config loads and has no placeholder entries."""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        return [e.message], []

    warnings = []
    if not config.repos:
        warnings.append(f"{config_path} lists no repositories")
    for index, repo in enumerate(config.repos, start=1):
        if PLACEHOLDER_ORG in repo.repo:
            warnings.append(f"Repository {index} appears to have placeholder value: {repo.repo}")
        if repo.installation_id == PLACEHOLDER_INSTALLATION_ID:
            warnings.append(
                f"Repository {index} has placeholder installationId: {repo.installation_id}"
            )
        if not repo.permissions:
            warnings.append(f"Repository {index} ({repo.repo}) grants no role any permission")
    return [], warnings


def validate_setup(env_file: Path, config_path: Path) -> ValidationResult:
    """Validate the environment file and the repository config together."""
    errors: list[str] = []
    warnings: list[str] = []

    if env_file.exists():
        env = {**os.environ, **dotenv_values(env_file)}
    else:
        warnings.append(f"{env_file} not found; checking the process environment only")
        env = dict(os.environ)

    for check_errors, check_warnings in (check_environment(env), check_config(config_path)):
        errors.extend(check_errors)
        warnings.extend(check_warnings)

    if errors:
        return ValidationResult.invalid(errors, warnings)
    if warnings:
        return ValidationResult.degraded([], warnings)
    return ValidationResult.valid()


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate setup and return exit code."""
    result = validate_setup(Path(args.env_file), Path(args.config))

    status_icons = {
        ConfigStatus.VALID: "[OK]",
        ConfigStatus.INVALID: "[FAIL]",
        ConfigStatus.DEGRADED: "[WARN]",
    }
    print(f"{status_icons[result.status]} setup: {result.status.value}")
    for error in result.errors:
        print(f"      ERROR: {error}")
    for warning in result.warnings:
        print(f"      WARNING: {warning}")

    if result.is_usable:
        print("\nSetup validation passed.")
        return 0
    print("\nPlease fix the errors above before starting the gateway.")
    return 1


def cmd_access(args: argparse.Namespace) -> int:
    """Explain whether a role may act on a repository."""
    action = Permission.WRITE if args.write else Permission.READ
    try:
        repo_config = find_repo(load_config(args.config), args.repo)
    except (ConfigError, RepoNotFoundError) as e:
        print(f"[FAIL] {e.message}")
        return 1

    result = check_permission(AgentRole(args.role), repo_config, action)
    icon = "[OK]" if result.allowed else "[DENY]"
    print(f"{icon} {args.role} {action.value} {args.repo}: {result.reason}")
    return 0 if result.allowed else 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="mcp-gateway-admin",
        description="Setup and diagnostics tool for the MCP GitHub gateway.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("generate-tokens", help="Generate agent bearer tokens")

    format_parser = subparsers.add_parser(
        "format-key", help="Format a PEM private key for the .env file"
    )
    format_parser.add_argument("path", nargs="?", help="PEM file (default: read stdin)")

    validate_parser = subparsers.add_parser("validate", help="Validate .env and repository config")
    validate_parser.add_argument("--env-file", default=".env", help="Environment file to check")
    validate_parser.add_argument(
        "--config", default=str(DEFAULT_CONFIG_PATH), help="Repository config to check"
    )

    access_parser = subparsers.add_parser("access", help="Check a role's access to a repository")
    access_parser.add_argument("role", choices=ROLE_NAMES, help="Agent role")
    access_parser.add_argument("repo", help="Repository (owner/name)")
    access_parser.add_argument("--write", action="store_true", help="Check write access")
    access_parser.add_argument(
        "--config", default=str(DEFAULT_CONFIG_PATH), help="Repository config file"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "generate-tokens": cmd_generate_tokens,
        "format-key": cmd_format_key,
        "validate": cmd_validate,
        "access": cmd_access,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
