"""
Policy Engine - per-repository permission checks for agent roles.

Each repository entry grants every role at most one permission level:

- no entry: the role cannot touch the repository
- read: listing and reading files
- write: everything read allows, plus opening pull requests

There are no per-path or per-branch rules.
"""

from dataclasses import dataclass
from typing import Any

from .config import AgentRole, Permission, RepoConfig
from .errors import ForbiddenError


NO_PERMISSION_MESSAGE = "forbidden: no permission for this agent"
WRITE_REQUIRED_MESSAGE = "forbidden: write permission required"


@dataclass
class PolicyResult:
    """Result of a policy check."""

    allowed: bool
    reason: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        result = {"allowed": self.allowed, "reason": self.reason}
        if self.details:
            result["details"] = self.details
        return result


def check_permission(
    role: AgentRole | str,
    repo_config: RepoConfig,
    action: Permission | str,
) -> PolicyResult:
    """Check whether `role` may perform `action` on a repository."""
    role = AgentRole(role)
    action = Permission(action)
    granted = repo_config.permission_for(role)
    details = {
        "repo": repo_config.repo,
        "role": role.value,
        "action": action.value,
        "granted": granted.value if granted else None,
    }

    if granted is None:
        return PolicyResult(allowed=False, reason=NO_PERMISSION_MESSAGE, details=details)
    if not granted.allows(action):
        return PolicyResult(allowed=False, reason=WRITE_REQUIRED_MESSAGE, details=details)
    return PolicyResult(allowed=True, reason=f"{role.value} has {granted.value}", details=details)


def assert_permission(
    role: AgentRole | str,
    repo_config: RepoConfig,
    action: Permission | str,
) -> None:
    """Raise ForbiddenError unless `role` may perform `action`."""
    result = check_permission(role, repo_config, action)
    if not result.allowed:
        raise ForbiddenError(result.reason)
