"""repo.listFiles - list the entries under a path."""

from typing import Any

from gateway_logging import get_logger

from ..config import Permission, find_repo, load_config
from ..github_client import get_installation_client
from ..policy import assert_permission
from .params import ListFilesParams


logger = get_logger("mcp-gateway.methods")


def handle_list_files(params: Any) -> list[dict[str, Any]]:
    """List files and directories at `path` on `ref`.

    A path naming a single file yields a one-element list.
    """
    parsed = ListFilesParams.from_params(params)
    repo_config = find_repo(load_config(), str(parsed.repo))
    assert_permission(parsed.role, repo_config, Permission.READ)

    with get_installation_client(repo_config.installation_id) as client:
        data = client.get_content(parsed.repo, parsed.path, parsed.ref)

    entries = data if isinstance(data, list) else [data]
    logger.debug("Listed files", repo=str(parsed.repo), path=parsed.path, count=len(entries))
    return [{"path": entry.get("path"), "type": entry.get("type")} for entry in entries]
