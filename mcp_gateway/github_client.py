"""
GitHub Client - GitHub App installation credentials and REST calls.

The gateway authenticates as a GitHub App: it signs a short-lived app JWT,
exchanges it for an installation access token scoped to the installation
that covers the target repository, and calls the REST API with that token.

Installation tokens live for an hour. They are cached per installation and
reused until they are within the refresh margin of expiry; the cache is
injected into GitHubApp so it can be disabled (NullTokenCache) without
touching callers. Provider calls are never retried here.
"""

import base64
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import quote

import jwt
import requests

from gateway_logging import get_logger

from .config import RepoName
from .errors import ConfigError, UpstreamError
from .settings import DEFAULT_API_URL, get_settings


logger = get_logger("mcp-gateway.github-client")

GITHUB_API_VERSION = "2022-11-28"
REQUEST_TIMEOUT = 30
DEFAULT_REFRESH_MARGIN_MINUTES = 5

TEXT_ENCODINGS = ("utf-8", "utf8", "")


@dataclass
class InstallationToken:
    """An installation access token and its expiry."""

    token: str
    expires_at: datetime

    @property
    def is_expired(self) -> bool:
        return datetime.now(UTC) > self.expires_at

    @property
    def minutes_until_expiry(self) -> float:
        return (self.expires_at - datetime.now(UTC)).total_seconds() / 60


class InstallationTokenCache:
    """Thread-safe cache of installation tokens keyed by installation ID."""

    def __init__(self, refresh_margin_minutes: int = DEFAULT_REFRESH_MARGIN_MINUTES):
        self._refresh_margin = timedelta(minutes=refresh_margin_minutes)
        self._tokens: dict[int, InstallationToken] = {}
        # Guards _tokens and _fetch_locks only; never held across a fetch
        self._lock = threading.Lock()
        self._fetch_locks: dict[int, threading.Lock] = {}

    def _needs_refresh(self, token: InstallationToken | None) -> bool:
        if token is None:
            return True
        return datetime.now(UTC) > (token.expires_at - self._refresh_margin)

    def get(
        self,
        installation_id: int,
        fetch: Callable[[int], InstallationToken],
    ) -> InstallationToken:
        """Return a cached token, calling `fetch` when missing or near expiry.

        Concurrent callers for the same installation share one fetch; a slow
        fetch for one installation does not block lookups for another.
        """
        with self._lock:
            token = self._tokens.get(installation_id)
            if not self._needs_refresh(token):
                return token
            fetch_lock = self._fetch_locks.setdefault(installation_id, threading.Lock())

        with fetch_lock:
            with self._lock:
                token = self._tokens.get(installation_id)
            if not self._needs_refresh(token):
                return token
            token = fetch(installation_id)
            with self._lock:
                self._tokens[installation_id] = token
            return token

    def invalidate(self, installation_id: int | None = None) -> None:
        """Drop one cached token, or all of them."""
        with self._lock:
            if installation_id is None:
                self._tokens.clear()
            else:
                self._tokens.pop(installation_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)


class NullTokenCache:
    """Token cache that never caches: every call exchanges a new token."""

    def get(
        self,
        installation_id: int,
        fetch: Callable[[int], InstallationToken],
    ) -> InstallationToken:
        return fetch(installation_id)

    def invalidate(self, installation_id: int | None = None) -> None:
        pass


def _github_headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
        "User-Agent": "mcp-github-gateway",
    }


def _error_message(response: requests.Response) -> str:
    """Best-effort extraction of GitHub's error message."""
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip() or response.reason or "unknown error"

    if not isinstance(payload, dict):
        return str(payload)
    message = payload.get("message") or response.reason or "unknown error"
    errors = payload.get("errors")
    if isinstance(errors, list) and errors:
        first = errors[0]
        detail = first.get("message") if isinstance(first, dict) else str(first)
        if detail:
            message = f"{message}: {detail}"
    return message


class InstallationClient:
    """REST client scoped to one GitHub App installation.

    Use as a context manager so the underlying session is closed after the
    call. A session passed in by the caller is left open.
    """

    def __init__(
        self,
        token: str,
        api_url: str = DEFAULT_API_URL,
        timeout: float = REQUEST_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._owns_session = session is None
        self.session = requests.Session() if session is None else session
        self.session.headers.update(_github_headers(token))

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def __enter__(self) -> "InstallationClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        url = f"{self.api_url}{path}"
        try:
            response = self.session.request(
                method, url, params=params, json=json, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise UpstreamError(f"GitHub API request failed: {e}") from e

        if not response.ok:
            raise UpstreamError(
                f"GitHub API error ({response.status_code}): {_error_message(response)}",
                upstream_status=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(f"GitHub API returned invalid JSON for {path}") from e

    def get_content(self, repo: RepoName, path: str, ref: str | None = None) -> Any:
        """GET /repos/{owner}/{repo}/contents/{path}.

        Returns a dict for a single entry or a list for a directory.
        """
        encoded_path = quote(path.strip("/"), safe="/")
        params = {"ref": ref} if ref else None
        return self._request(
            "GET",
            f"/repos/{repo.owner}/{repo.name}/contents/{encoded_path}",
            params=params,
        )

    def get_repository(self, repo: RepoName) -> dict[str, Any]:
        """GET /repos/{owner}/{repo}."""
        return self._request("GET", f"/repos/{repo.owner}/{repo.name}")

    def get_default_branch(self, repo: RepoName) -> str:
        """The repository's default branch as reported by GitHub."""
        data = self.get_repository(repo)
        branch = data.get("default_branch") if isinstance(data, dict) else None
        if not branch:
            raise UpstreamError(f"GitHub did not report a default branch for {repo}")
        return branch

    def create_pull_request(
        self,
        repo: RepoName,
        title: str,
        head: str,
        base: str,
        body: str = "",
        draft: bool = False,
    ) -> dict[str, Any]:
        """POST /repos/{owner}/{repo}/pulls."""
        return self._request(
            "POST",
            f"/repos/{repo.owner}/{repo.name}/pulls",
            json={"title": title, "head": head, "base": base, "body": body, "draft": draft},
        )


class GitHubApp:
    """GitHub App credentials and the installation token exchange."""

    def __init__(
        self,
        app_id: str,
        private_key: str,
        api_url: str = DEFAULT_API_URL,
        token_cache: InstallationTokenCache | NullTokenCache | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.app_id = app_id
        self._private_key = private_key
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.token_cache = token_cache if token_cache is not None else InstallationTokenCache()

    @property
    def is_configured(self) -> bool:
        return bool(self.app_id and self._private_key)

    def create_jwt(self) -> str:
        """Sign an app JWT (RS256, 10 minute lifetime)."""
        if not self.is_configured:
            raise ConfigError(
                "GitHub App credentials not configured (GITHUB_APP_ID, GITHUB_APP_PRIVATE_KEY)"
            )

        now = datetime.now(UTC)
        payload = {
            "iat": int(now.timestamp()) - 60,  # 1 min in past for clock skew
            "exp": int((now + timedelta(minutes=10)).timestamp()),
            "iss": self.app_id,
        }
        try:
            return jwt.encode(payload, self._private_key, algorithm="RS256")
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            raise ConfigError(f"Invalid GitHub App private key: {e}") from e

    def create_installation_token(self, installation_id: int) -> InstallationToken:
        """Exchange the app JWT for an installation access token."""
        url = f"{self.api_url}/app/installations/{installation_id}/access_tokens"
        try:
            response = requests.post(
                url,
                headers=_github_headers(self.create_jwt()),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Installation token request failed: {e}") from e

        if not response.ok:
            raise UpstreamError(
                f"Installation token request failed ({response.status_code}): "
                f"{_error_message(response)}",
                upstream_status=response.status_code,
            )

        try:
            data = response.json()
            token = InstallationToken(
                token=data["token"],
                # GitHub returns e.g. "2024-01-01T12:00:00Z"
                expires_at=datetime.fromisoformat(data["expires_at"].replace("Z", "+00:00")),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise UpstreamError(f"Malformed installation token response: {e!r}") from e
        logger.info(
            "Installation token issued",
            installation_id=installation_id,
            minutes_until_expiry=f"{token.minutes_until_expiry:.1f}",
        )
        return token

    def get_installation_token(self, installation_id: int) -> InstallationToken:
        return self.token_cache.get(installation_id, self.create_installation_token)

    def get_installation_client(self, installation_id: int) -> InstallationClient:
        """Client scoped to `installation_id`, or raise."""
        token = self.get_installation_token(installation_id)
        return InstallationClient(token.token, api_url=self.api_url, timeout=self.timeout)


def decode_content(content: str, encoding: str | None, path: str = "") -> str:
    """Decode file content using the encoding GitHub reports for it."""
    encoding = (encoding or "").lower()
    if encoding == "base64":
        # GitHub wraps base64 at 60 columns; b64decode drops the newlines
        return base64.b64decode(content).decode("utf-8", errors="replace")
    if encoding in TEXT_ENCODINGS:
        return content
    raise UpstreamError(
        f"unsupported content encoding '{encoding}' for {path or 'file'}",
        data={"encoding": encoding},
    )


def read_file(client: InstallationClient, repo: str, path: str, ref: str) -> str:
    """Read one file's text from a repository.

    `repo` is validated as owner/name before any request is made; it may
    come straight from caller parameters.

    Raises:
        ValidationError: If `repo` is not in owner/name form
        UpstreamError: If the path is not a single file, or the API fails
    """
    repo_name = RepoName.parse(repo)
    data = client.get_content(repo_name, path, ref)
    if not isinstance(data, dict) or "content" not in data:
        raise UpstreamError(f"not a file: {path}")
    return decode_content(data["content"], data.get("encoding"), path)


_github_app: GitHubApp | None = None


def get_github_app() -> GitHubApp:
    """Get the process-wide GitHubApp built from settings."""
    global _github_app
    if _github_app is None:
        settings = get_settings()
        _github_app = GitHubApp(
            app_id=settings.app_id,
            private_key=settings.private_key,
            api_url=settings.github_api_url,
            token_cache=InstallationTokenCache() if settings.token_cache_enabled else NullTokenCache(),
        )
    return _github_app


def reset_github_app() -> None:
    """Drop the process-wide GitHubApp (for testing and settings reloads)."""
    global _github_app
    _github_app = None


def get_installation_client(installation_id: int) -> InstallationClient:
    """Client scoped to `installation_id` using the process-wide app."""
    return get_github_app().get_installation_client(installation_id)
