"""
Repository configuration for the MCP gateway.

The config file maps each managed repository to the GitHub App installation
that can act on it and to the permission each agent role holds:

    repos:
      - repo: acme/widgets
        installationId: 42
        permissions:
          codex: write
          cursor: read

A role missing from `permissions` has no access at all. The file is re-read
on every load_config() call, so repository definitions can be edited without
restarting the gateway.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError, RepoNotFoundError, ValidationError
from .settings import get_settings


class AgentRole(str, Enum):
    """Fixed agent identities, each bound to one bearer token."""

    CODEX = "codex"
    CURSOR = "cursor"
    GEMINI = "gemini"


class Permission(str, Enum):
    """Two-level permission lattice: read < write."""

    READ = "read"
    WRITE = "write"

    def allows(self, action: "Permission") -> bool:
        """Whether holding this permission allows `action`."""
        return self is Permission.WRITE or action is Permission.READ


ROLE_NAMES = tuple(role.value for role in AgentRole)
PERMISSION_NAMES = tuple(perm.value for perm in Permission)

# owner/name, both segments non-empty, no whitespace, exactly one slash
OWNER_REPO_PATTERN = re.compile(r"^([^/\s]+)/([^/\s]+)$")


@dataclass(frozen=True)
class RepoName:
    """Validated `owner/name` repository identifier."""

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.full_name

    @classmethod
    def parse(cls, text: Any) -> "RepoName":
        """Parse `owner/name`, raising ValidationError naming the bad input."""
        if not isinstance(text, str):
            raise ValidationError(f"invalid repo: expected 'owner/name' string, got {text!r}")
        match = OWNER_REPO_PATTERN.match(text)
        if not match:
            raise ValidationError(f"invalid repo format: '{text}' (expected 'owner/name')")
        return cls(owner=match.group(1), name=match.group(2))


@dataclass
class RepoConfig:
    """One managed repository."""

    repo: str
    installation_id: int
    permissions: dict[AgentRole, Permission] = field(default_factory=dict)

    @property
    def repo_name(self) -> RepoName:
        return RepoName.parse(self.repo)

    def permission_for(self, role: AgentRole) -> Permission | None:
        return self.permissions.get(role)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the YAML file shape."""
        return {
            "repo": self.repo,
            "installationId": self.installation_id,
            "permissions": {role.value: perm.value for role, perm in self.permissions.items()},
        }


@dataclass
class GatewayConfig:
    """The full set of managed repositories."""

    repos: list[RepoConfig] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"repos": [repo.to_dict() for repo in self.repos]}


def _parse_permissions(raw: Any, where: str) -> dict[AgentRole, Permission]:
    if not isinstance(raw, dict):
        raise ValueError(f"{where}.permissions: expected a mapping of role to read/write")

    permissions: dict[AgentRole, Permission] = {}
    for role_name, perm_name in raw.items():
        if role_name not in ROLE_NAMES:
            raise ValueError(
                f"{where}.permissions: unknown role '{role_name}' "
                f"(expected one of: {', '.join(ROLE_NAMES)})"
            )
        if perm_name not in PERMISSION_NAMES:
            raise ValueError(
                f"{where}.permissions.{role_name}: expected 'read' or 'write', got {perm_name!r}"
            )
        permissions[AgentRole(role_name)] = Permission(perm_name)
    return permissions


def _parse_repo(raw: Any, index: int) -> RepoConfig:
    where = f"repos[{index}]"
    if not isinstance(raw, dict):
        raise ValueError(f"{where}: expected a mapping")

    repo = raw.get("repo")
    if not isinstance(repo, str) or not repo:
        raise ValueError(f"{where}.repo: expected a non-empty string")
    try:
        RepoName.parse(repo)
    except ValidationError as e:
        raise ValueError(f"{where}.repo: {e.message}") from e

    installation_id = raw.get("installationId")
    # bool is an int subclass; `installationId: true` is not an id
    if not isinstance(installation_id, int) or isinstance(installation_id, bool):
        raise ValueError(f"{where}.installationId: expected a number, got {installation_id!r}")

    if "permissions" not in raw:
        raise ValueError(f"{where}.permissions: required")

    return RepoConfig(
        repo=repo,
        installation_id=installation_id,
        permissions=_parse_permissions(raw["permissions"], where),
    )


def parse_config(data: Any) -> GatewayConfig:
    """Validate parsed YAML and build a GatewayConfig.

    Raises:
        ValueError: Describing the first schema violation found
    """
    if not isinstance(data, dict):
        raise ValueError("expected a mapping with a 'repos' list")
    repos = data.get("repos")
    if not isinstance(repos, list):
        raise ValueError("repos: expected a list")
    return GatewayConfig(repos=[_parse_repo(entry, i) for i, entry in enumerate(repos)])


def load_config(file_path: str | Path | None = None) -> GatewayConfig:
    """Read and validate the repository config file.

    Args:
        file_path: Config file (default: MCP_CONFIG_PATH or config/github.yaml)

    Returns:
        Parsed GatewayConfig

    Raises:
        ConfigError: On any read, parse, or schema failure; the message
            names the file and the underlying cause
    """
    path = Path(file_path) if file_path is not None else get_settings().config_path
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return parse_config(data)
    except (OSError, yaml.YAMLError, ValueError) as e:
        raise ConfigError(f"Failed to load config from {path}: {e}") from e


def find_repo(config: GatewayConfig, repo: str) -> RepoConfig:
    """Find a repository entry by exact name.

    Raises:
        RepoNotFoundError: If no entry matches
    """
    for repo_config in config.repos:
        if repo_config.repo == repo:
            return repo_config
    raise RepoNotFoundError(f"repo not found: {repo}")
