"""repo.getFile - read one file's text."""

from typing import Any

from ..config import Permission, find_repo, load_config
from ..github_client import get_installation_client, read_file
from ..policy import assert_permission
from .params import GetFileParams


def handle_get_file(params: Any) -> dict[str, Any]:
    parsed = GetFileParams.from_params(params)
    repo_config = find_repo(load_config(), str(parsed.repo))
    assert_permission(parsed.role, repo_config, Permission.READ)

    with get_installation_client(repo_config.installation_id) as client:
        content = read_file(client, str(parsed.repo), parsed.path, parsed.ref)
    return {"content": content, "path": parsed.path, "ref": parsed.ref}
