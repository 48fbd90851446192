"""
Process settings for the MCP gateway.

Settings come from the environment (populated from `.env` by python-dotenv
at startup). The repository permission table lives in a separate YAML file,
see config.py.

Environment variables:
    PORT                      Listen port (default 4040)
    MCP_HOST                  Listen address (default 0.0.0.0)
    MCP_CONFIG_PATH           Repository config (default config/github.yaml)
    MCP_AUDIT_LOG             Audit log file (default logs/audit.log)
    MCP_TYPED_STATUS_CODES    Map error kinds to 403/404/422/502 (default false)
    GITHUB_APP_ID             GitHub App ID
    GITHUB_APP_PRIVATE_KEY    GitHub App private key (PEM, \\n escapes allowed)
    GITHUB_CLIENT_ID          Optional OAuth client ID
    GITHUB_CLIENT_SECRET      Optional OAuth client secret
    GITHUB_API_URL            API base URL (default https://api.github.com)
    GITHUB_TOKEN_CACHE        Cache installation tokens (default true)
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 4040
DEFAULT_CONFIG_PATH = Path("config") / "github.yaml"
DEFAULT_AUDIT_LOG = Path("logs") / "audit.log"
DEFAULT_API_URL = "https://api.github.com"

_TRUTHY = ("true", "1", "yes")


class ConfigStatus(Enum):
    """Status of configuration validation."""

    VALID = "valid"
    INVALID = "invalid"
    DEGRADED = "degraded"  # Usable, but some features may not work


@dataclass
class ValidationResult:
    """Result of validating a configuration."""

    status: ConfigStatus
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.status == ConfigStatus.VALID

    @property
    def is_usable(self) -> bool:
        return self.status in (ConfigStatus.VALID, ConfigStatus.DEGRADED)

    @classmethod
    def valid(cls, warnings: list[str] | None = None) -> "ValidationResult":
        return cls(status=ConfigStatus.VALID, warnings=warnings or [])

    @classmethod
    def invalid(cls, errors: list[str], warnings: list[str] | None = None) -> "ValidationResult":
        return cls(status=ConfigStatus.INVALID, errors=errors, warnings=warnings or [])

    @classmethod
    def degraded(cls, errors: list[str], warnings: list[str] | None = None) -> "ValidationResult":
        return cls(status=ConfigStatus.DEGRADED, errors=errors, warnings=warnings or [])


def mask_secret(value: str | None, *, visible_chars: int = 4) -> str:
    """Mask a secret value for safe display."""
    if not value:
        return "[EMPTY]"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def is_truthy(value: str | None) -> bool:
    return (value or "").lower().strip() in _TRUTHY


def unescape_private_key(value: str) -> str:
    """Turn a one-line `.env` PEM (literal \\n sequences) back into a PEM."""
    return value.strip().strip('"').replace("\\n", "\n")


@dataclass
class GatewaySettings:
    """Settings for the gateway process.

    Attributes:
        host: Address to bind
        port: Port to listen on
        config_path: Path to the repository permission YAML
        audit_log_path: Append-only JSON-lines audit log
        typed_status_codes: Return per-kind HTTP statuses instead of 400
        app_id: GitHub App ID
        private_key: GitHub App private key (PEM)
        client_id: Optional GitHub App OAuth client ID
        client_secret: Optional GitHub App OAuth client secret
        github_api_url: GitHub REST API base URL
        token_cache_enabled: Reuse installation tokens until near expiry
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    config_path: Path = DEFAULT_CONFIG_PATH
    audit_log_path: Path = DEFAULT_AUDIT_LOG
    typed_status_codes: bool = False
    app_id: str = ""
    private_key: str = field(default="", repr=False)
    client_id: str = ""
    client_secret: str = field(default="", repr=False)
    github_api_url: str = DEFAULT_API_URL
    token_cache_enabled: bool = True

    def validate(self) -> ValidationResult:
        """Validate settings.

        Missing GitHub App credentials are errors: the gateway can still
        authenticate and authorize, but every provider call would fail.
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not 1 <= self.port <= 65535:
            errors.append(f"port: must be between 1 and 65535, got: {self.port}")

        if not self.app_id:
            errors.append("GITHUB_APP_ID is not set")
        elif not self.app_id.isdigit():
            errors.append(f"GITHUB_APP_ID must be numeric, got: {self.app_id}")

        if not self.private_key:
            errors.append("GITHUB_APP_PRIVATE_KEY is not set")
        elif "PRIVATE KEY-----" not in self.private_key:
            errors.append("GITHUB_APP_PRIVATE_KEY does not look like a PEM private key")

        if not (self.client_id and self.client_secret):
            warnings.append("GITHUB_CLIENT_ID/GITHUB_CLIENT_SECRET not set (OAuth flows disabled)")

        if self.host == "0.0.0.0":
            warnings.append("Gateway bound to all interfaces (0.0.0.0)")

        if errors:
            return ValidationResult.invalid(errors, warnings)
        return ValidationResult.valid(warnings)

    def to_dict(self) -> dict[str, Any]:
        """Return settings with secrets masked."""
        return {
            "host": self.host,
            "port": self.port,
            "config_path": str(self.config_path),
            "audit_log_path": str(self.audit_log_path),
            "typed_status_codes": self.typed_status_codes,
            "app_id": self.app_id,
            "private_key": "[SET]" if self.private_key else "[EMPTY]",
            "client_id": self.client_id,
            "client_secret": mask_secret(self.client_secret),
            "github_api_url": self.github_api_url,
            "token_cache_enabled": self.token_cache_enabled,
        }

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "GatewaySettings":
        """Load settings from environment variables."""
        env = os.environ if environ is None else environ

        try:
            port = int(env.get("PORT", DEFAULT_PORT))
        except ValueError:
            port = DEFAULT_PORT

        return cls(
            host=env.get("MCP_HOST", DEFAULT_HOST),
            port=port,
            config_path=Path(env.get("MCP_CONFIG_PATH") or DEFAULT_CONFIG_PATH),
            audit_log_path=Path(env.get("MCP_AUDIT_LOG") or DEFAULT_AUDIT_LOG),
            typed_status_codes=is_truthy(env.get("MCP_TYPED_STATUS_CODES")),
            app_id=env.get("GITHUB_APP_ID", "").strip(),
            private_key=unescape_private_key(env.get("GITHUB_APP_PRIVATE_KEY", "")),
            client_id=env.get("GITHUB_CLIENT_ID", ""),
            client_secret=env.get("GITHUB_CLIENT_SECRET", ""),
            github_api_url=env.get("GITHUB_API_URL", DEFAULT_API_URL).rstrip("/"),
            token_cache_enabled=env.get("GITHUB_TOKEN_CACHE", "true").lower().strip() in _TRUTHY,
        )


_settings: GatewaySettings | None = None


def get_settings() -> GatewaySettings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = GatewaySettings.from_env()
    return _settings


def set_settings(settings: GatewaySettings | None) -> None:
    """Replace the process-wide settings (startup overrides and tests)."""
    global _settings
    _settings = settings
