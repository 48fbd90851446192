"""
Parameter parsing for MCP methods.

Each method declares its parameters as a dataclass built by from_params().
Parsing is strict: unknown keys, missing required keys, and values of the
wrong type are rejected with ValidationError before any side effect.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..config import ROLE_NAMES, AgentRole, RepoName
from ..errors import ValidationError


def _type_name(value: Any) -> str:
    return "null" if value is None else type(value).__name__


def parse_params(
    params: Any,
    *,
    required: Iterable[str],
    optional: Mapping[str, Any] | None = None,
    non_empty: Iterable[str] = (),
    booleans: Iterable[str] = (),
) -> dict[str, Any]:
    """Validate a parameter bag against a flat schema.

    Args:
        params: Raw parameters (must be a mapping)
        required: Keys that must be present
        optional: Keys that may be present, with their defaults
        non_empty: String keys that may not be empty when present
        booleans: Keys holding booleans; every other key holds a string

    Returns:
        Dict with every declared key, defaults filled in

    Raises:
        ValidationError: Listing every problem found
    """
    if params is None:
        params = {}
    if not isinstance(params, Mapping):
        raise ValidationError(f"params must be an object, got {_type_name(params)}")

    required = tuple(required)
    optional = dict(optional or {})
    non_empty = set(non_empty)
    booleans = set(booleans)
    problems: list[str] = []

    unknown = sorted(set(params) - set(required) - set(optional))
    if unknown:
        problems.append(f"unknown parameter(s): {', '.join(unknown)}")

    parsed: dict[str, Any] = {}
    for name in (*required, *optional):
        if name not in params:
            if name in required:
                problems.append(f"{name}: required")
            else:
                parsed[name] = optional[name]
            continue

        value = params[name]
        if name in booleans:
            if not isinstance(value, bool):
                problems.append(f"{name}: expected boolean, got {_type_name(value)}")
                continue
        elif not isinstance(value, str):
            problems.append(f"{name}: expected string, got {_type_name(value)}")
            continue
        elif name in non_empty and not value.strip():
            problems.append(f"{name}: must not be empty")
            continue
        parsed[name] = value

    if problems:
        raise ValidationError(f"invalid params: {'; '.join(problems)}", data={"problems": problems})
    return parsed


def parse_role(value: str) -> AgentRole:
    if value not in ROLE_NAMES:
        raise ValidationError(
            f"invalid params: role: expected one of {', '.join(ROLE_NAMES)}, got '{value}'"
        )
    return AgentRole(value)


@dataclass
class ListFilesParams:
    repo: RepoName
    role: AgentRole
    path: str = ""
    ref: str = "main"

    @classmethod
    def from_params(cls, params: Any) -> "ListFilesParams":
        values = parse_params(
            params,
            required=("repo", "role"),
            optional={"path": "", "ref": "main"},
            non_empty=("ref",),
        )
        return cls(
            repo=RepoName.parse(values["repo"]),
            role=parse_role(values["role"]),
            path=values["path"],
            ref=values["ref"],
        )


@dataclass
class GetFileParams:
    repo: RepoName
    role: AgentRole
    path: str
    ref: str = "main"

    @classmethod
    def from_params(cls, params: Any) -> "GetFileParams":
        values = parse_params(
            params,
            required=("repo", "path", "role"),
            optional={"ref": "main"},
            non_empty=("path", "ref"),
        )
        return cls(
            repo=RepoName.parse(values["repo"]),
            role=parse_role(values["role"]),
            path=values["path"],
            ref=values["ref"],
        )


@dataclass
class CreatePullRequestParams:
    repo: RepoName
    role: AgentRole
    title: str
    head: str
    base: str | None = None
    body: str = ""
    draft: bool = False

    @classmethod
    def from_params(cls, params: Any) -> "CreatePullRequestParams":
        values = parse_params(
            params,
            required=("repo", "title", "head", "role"),
            optional={"base": None, "body": "", "draft": False},
            non_empty=("title", "head", "base"),
            booleans=("draft",),
        )
        return cls(
            repo=RepoName.parse(values["repo"]),
            role=parse_role(values["role"]),
            title=values["title"],
            head=values["head"],
            base=values["base"],
            body=values["body"],
            draft=values["draft"],
        )
