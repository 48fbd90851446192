"""repo.createPullRequest - open a pull request from an existing branch."""

from typing import Any

from gateway_logging import get_logger

from ..config import Permission, find_repo, load_config
from ..github_client import get_installation_client
from ..policy import assert_permission
from .params import CreatePullRequestParams


logger = get_logger("mcp-gateway.methods")


def handle_create_pull_request(params: Any) -> dict[str, Any]:
    """Open a pull request from `head` into `base`.

    Without `base`, the pull request targets the repository's default branch.
    """
    parsed = CreatePullRequestParams.from_params(params)
    repo_config = find_repo(load_config(), str(parsed.repo))
    assert_permission(parsed.role, repo_config, Permission.WRITE)

    with get_installation_client(repo_config.installation_id) as client:
        base = parsed.base or client.get_default_branch(parsed.repo)
        data = client.create_pull_request(
            parsed.repo,
            title=parsed.title,
            head=parsed.head,
            base=base,
            body=parsed.body,
            draft=parsed.draft,
        )

    logger.info(
        "Pull request created",
        repo=str(parsed.repo),
        pr_number=data.get("number"),
        head=parsed.head,
        base=base,
    )
    return {
        "number": data.get("number"),
        "url": data.get("html_url"),
        "title": data.get("title"),
        "state": data.get("state"),
    }
