"""MCP method handlers and the dispatch table."""

from collections.abc import Callable
from typing import Any

from .create_pr import handle_create_pull_request
from .get_file import handle_get_file
from .list_files import handle_list_files


MethodHandler = Callable[[Any], Any]

METHODS: dict[str, MethodHandler] = {
    "repo.listFiles": handle_list_files,
    "repo.getFile": handle_get_file,
    "repo.createPullRequest": handle_create_pull_request,
}

__all__ = [
    "METHODS",
    "MethodHandler",
    "handle_create_pull_request",
    "handle_get_file",
    "handle_list_files",
]
