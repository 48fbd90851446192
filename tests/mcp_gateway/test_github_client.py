"""Tests for mcp_gateway.github_client."""

import base64
import threading
import time
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
import requests

from mcp_gateway.config import RepoName
from mcp_gateway.errors import ConfigError, UpstreamError, ValidationError
from mcp_gateway.github_client import (
    GITHUB_API_VERSION,
    GitHubApp,
    InstallationClient,
    InstallationToken,
    InstallationTokenCache,
    NullTokenCache,
    decode_content,
    get_github_app,
    read_file,
)
from mcp_gateway.settings import GatewaySettings, set_settings


REPO = RepoName("acme", "widgets")


def make_response(ok=True, status_code=200, payload=None, json_error=False):
    response = MagicMock()
    response.ok = ok
    response.status_code = status_code
    response.reason = "Error" if not ok else "OK"
    response.text = ""
    if json_error:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = payload
    return response


def token_expiring_in(minutes):
    return InstallationToken(token=f"ghs_{minutes}", expires_at=datetime.now(UTC) + timedelta(minutes=minutes))


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session):
    return InstallationClient("ghs_test", session=session)


class TestInstallationToken:
    """Tests for InstallationToken."""

    def test_not_expired(self):
        token = token_expiring_in(60)
        assert not token.is_expired
        assert 59 < token.minutes_until_expiry <= 60

    def test_expired(self):
        assert token_expiring_in(-1).is_expired


class TestInstallationTokenCache:
    """Tests for InstallationTokenCache."""

    def test_reuses_fresh_token(self):
        """Test that a fresh token is fetched once."""
        cache = InstallationTokenCache()
        fetch = MagicMock(return_value=token_expiring_in(60))

        first = cache.get(42, fetch)
        second = cache.get(42, fetch)

        assert first is second
        fetch.assert_called_once_with(42)

    def test_refreshes_within_margin(self):
        """Test that a token close to expiry is replaced."""
        cache = InstallationTokenCache(refresh_margin_minutes=5)
        fetch = MagicMock(side_effect=[token_expiring_in(2), token_expiring_in(60)])

        cache.get(42, fetch)
        token = cache.get(42, fetch)

        assert token.token == "ghs_60"
        assert fetch.call_count == 2

    def test_keyed_by_installation(self):
        """Test that installations do not share tokens."""
        cache = InstallationTokenCache()
        fetch = MagicMock(side_effect=lambda installation_id: token_expiring_in(60 + installation_id))

        assert cache.get(1, fetch).token == "ghs_61"
        assert cache.get(2, fetch).token == "ghs_62"
        assert len(cache) == 2

    def test_invalidate(self):
        """Test dropping one or all tokens."""
        cache = InstallationTokenCache()
        fetch = MagicMock(return_value=token_expiring_in(60))
        cache.get(1, fetch)
        cache.get(2, fetch)

        cache.invalidate(1)
        assert len(cache) == 1
        cache.invalidate()
        assert len(cache) == 0

    def test_fetch_failure_not_cached(self):
        """Test that a failed exchange leaves the cache empty."""
        cache = InstallationTokenCache()
        fetch = MagicMock(side_effect=UpstreamError("boom"))

        with pytest.raises(UpstreamError):
            cache.get(42, fetch)
        assert len(cache) == 0

    def test_slow_fetch_does_not_block_other_installations(self):
        """Test that lookups for other installations proceed during an exchange."""
        cache = InstallationTokenCache()
        cache.get(2, MagicMock(return_value=token_expiring_in(60)))
        started = threading.Event()
        release = threading.Event()

        def slow_fetch(installation_id):
            started.set()
            release.wait(5)
            return token_expiring_in(61)

        worker = threading.Thread(target=cache.get, args=(1, slow_fetch))
        worker.start()
        try:
            assert started.wait(5)
            began = time.monotonic()
            cached = cache.get(2, MagicMock(side_effect=AssertionError("unexpected exchange")))
            fresh = cache.get(3, MagicMock(return_value=token_expiring_in(63)))
            elapsed = time.monotonic() - began
        finally:
            release.set()
            worker.join(5)

        assert cached.token == "ghs_60"
        assert fresh.token == "ghs_63"
        assert elapsed < 1
        assert cache.get(1, MagicMock(side_effect=AssertionError("unexpected exchange"))).token == "ghs_61"

    def test_concurrent_callers_share_one_fetch(self):
        """Test that simultaneous misses for one installation exchange once."""
        cache = InstallationTokenCache()
        started = threading.Event()
        release = threading.Event()
        calls = []

        def slow_fetch(installation_id):
            calls.append(installation_id)
            started.set()
            release.wait(5)
            return token_expiring_in(60)

        results = []
        workers = [
            threading.Thread(target=lambda: results.append(cache.get(42, slow_fetch))) for _ in range(3)
        ]
        for worker in workers:
            worker.start()
        try:
            assert started.wait(5)
        finally:
            release.set()
            for worker in workers:
                worker.join(5)

        assert calls == [42]
        assert len(results) == 3
        assert all(token is results[0] for token in results)

    def test_null_cache_always_fetches(self):
        """Test that NullTokenCache never reuses a token."""
        cache = NullTokenCache()
        fetch = MagicMock(return_value=token_expiring_in(60))

        cache.get(42, fetch)
        cache.get(42, fetch)

        assert fetch.call_count == 2


class TestInstallationClient:
    """Tests for InstallationClient."""

    def test_sets_headers(self, client):
        """Test that the installation token and API version are sent."""
        assert client.session.headers.update.call_args[0][0]["Authorization"] == "Bearer ghs_test"
        assert client.session.headers.update.call_args[0][0]["X-GitHub-Api-Version"] == GITHUB_API_VERSION

    def test_get_content(self, client, session):
        """Test the contents request."""
        session.request.return_value = make_response(payload={"type": "file"})

        assert client.get_content(REPO, "src/main.py", "main") == {"type": "file"}
        session.request.assert_called_once_with(
            "GET",
            "https://api.github.com/repos/acme/widgets/contents/src/main.py",
            params={"ref": "main"},
            json=None,
            timeout=30,
        )

    def test_get_content_quotes_path(self, client, session):
        """Test that paths are URL-quoted and stripped of slashes."""
        session.request.return_value = make_response(payload=[])

        client.get_content(REPO, "/docs/my file.md", "main")

        url = session.request.call_args[0][1]
        assert url.endswith("/contents/docs/my%20file.md")

    def test_error_response(self, client, session):
        """Test that provider errors keep the provider's message."""
        session.request.return_value = make_response(
            ok=False, status_code=404, payload={"message": "Not Found"}
        )

        with pytest.raises(UpstreamError) as exc_info:
            client.get_content(REPO, "missing.txt", "main")

        assert exc_info.value.message == "GitHub API error (404): Not Found"
        assert exc_info.value.upstream_status == 404

    def test_error_details_included(self, client, session):
        """Test that the first validation error detail is appended."""
        session.request.return_value = make_response(
            ok=False,
            status_code=422,
            payload={"message": "Validation Failed", "errors": [{"message": "No commits between main and fix-1"}]},
        )

        with pytest.raises(UpstreamError, match="Validation Failed: No commits between main and fix-1"):
            client.create_pull_request(REPO, title="Fix", head="fix-1", base="main")

    def test_network_error(self, client, session):
        """Test that transport failures become UpstreamError."""
        session.request.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(UpstreamError, match="connection refused"):
            client.get_repository(REPO)

    def test_invalid_json(self, client, session):
        """Test that an unparseable body becomes UpstreamError."""
        session.request.return_value = make_response(json_error=True)

        with pytest.raises(UpstreamError, match="invalid JSON"):
            client.get_repository(REPO)

    def test_get_default_branch(self, client, session):
        session.request.return_value = make_response(payload={"default_branch": "develop"})
        assert client.get_default_branch(REPO) == "develop"

    def test_get_default_branch_missing(self, client, session):
        session.request.return_value = make_response(payload={})
        with pytest.raises(UpstreamError, match="default branch"):
            client.get_default_branch(REPO)

    def test_create_pull_request(self, client, session):
        """Test the pull request payload."""
        session.request.return_value = make_response(payload={"number": 7})

        result = client.create_pull_request(REPO, title="Fix bug", head="fix-1", base="main", body="Details")

        assert result == {"number": 7}
        session.request.assert_called_once_with(
            "POST",
            "https://api.github.com/repos/acme/widgets/pulls",
            params=None,
            json={"title": "Fix bug", "head": "fix-1", "base": "main", "body": "Details", "draft": False},
            timeout=30,
        )


    def test_closes_own_session(self):
        """Test that a session created by the client is closed on exit."""
        with patch("mcp_gateway.github_client.requests.Session") as mock_session_cls:
            with InstallationClient("ghs_test") as client:
                assert client.session is mock_session_cls.return_value
                mock_session_cls.return_value.close.assert_not_called()

        mock_session_cls.return_value.close.assert_called_once()

    def test_leaves_given_session_open(self, client, session):
        """Test that a caller-supplied session outlives the client."""
        with client:
            pass

        session.close.assert_not_called()


class TestGitHubApp:
    """Tests for GitHubApp."""

    @pytest.fixture
    def app(self):
        return GitHubApp(app_id="12345", private_key="pem", token_cache=NullTokenCache())

    def test_is_configured(self, app):
        assert app.is_configured
        assert not GitHubApp(app_id="", private_key="pem").is_configured

    def test_create_jwt_payload(self, app):
        """Test the app JWT claims."""
        with patch("mcp_gateway.github_client.jwt.encode", return_value="signed") as mock_encode:
            assert app.create_jwt() == "signed"

        payload, key = mock_encode.call_args[0]
        assert key == "pem"
        assert mock_encode.call_args[1] == {"algorithm": "RS256"}
        assert payload["iss"] == "12345"
        assert payload["exp"] - payload["iat"] == 11 * 60

    def test_create_jwt_unconfigured(self):
        """Test that missing credentials are a configuration error."""
        with pytest.raises(ConfigError, match="GITHUB_APP_ID"):
            GitHubApp(app_id="", private_key="").create_jwt()

    def test_create_jwt_bad_key(self, app):
        """Test that an unusable key is a configuration error."""
        with patch("mcp_gateway.github_client.jwt.encode", side_effect=ValueError("Could not deserialize key data")):
            with pytest.raises(ConfigError, match="Invalid GitHub App private key"):
                app.create_jwt()

    def test_create_installation_token(self, app):
        """Test the token exchange request and parsing."""
        response = make_response(payload={"token": "ghs_abc", "expires_at": "2030-01-01T12:00:00Z"})
        with (
            patch("mcp_gateway.github_client.jwt.encode", return_value="app-jwt"),
            patch("mcp_gateway.github_client.requests.post", return_value=response) as mock_post,
        ):
            token = app.create_installation_token(42)

        assert token.token == "ghs_abc"
        assert token.expires_at == datetime(2030, 1, 1, 12, 0, tzinfo=UTC)
        url = mock_post.call_args[0][0]
        assert url == "https://api.github.com/app/installations/42/access_tokens"
        assert mock_post.call_args[1]["headers"]["Authorization"] == "Bearer app-jwt"

    def test_create_installation_token_rejected(self, app):
        """Test that a refused exchange is an upstream error."""
        response = make_response(ok=False, status_code=401, payload={"message": "Bad credentials"})
        with (
            patch("mcp_gateway.github_client.jwt.encode", return_value="app-jwt"),
            patch("mcp_gateway.github_client.requests.post", return_value=response),
        ):
            with pytest.raises(UpstreamError, match="Bad credentials") as exc_info:
                app.create_installation_token(42)

        assert exc_info.value.upstream_status == 401

    @pytest.mark.parametrize(
        "response",
        [
            make_response(payload={"expires_at": "2030-01-01T12:00:00Z"}),
            make_response(payload={"token": "ghs_abc"}),
            make_response(payload={"token": "ghs_abc", "expires_at": "soon"}),
            make_response(payload=["ghs_abc"]),
            make_response(json_error=True),
        ],
        ids=["no-token", "no-expiry", "bad-expiry", "not-an-object", "not-json"],
    )
    def test_create_installation_token_malformed(self, app, response):
        """Test that an unexpected token payload is a descriptive upstream error."""
        with (
            patch("mcp_gateway.github_client.jwt.encode", return_value="app-jwt"),
            patch("mcp_gateway.github_client.requests.post", return_value=response),
        ):
            with pytest.raises(UpstreamError, match="Malformed installation token response"):
                app.create_installation_token(42)

    def test_create_installation_token_network_error(self, app):
        with (
            patch("mcp_gateway.github_client.jwt.encode", return_value="app-jwt"),
            patch("mcp_gateway.github_client.requests.post", side_effect=requests.Timeout("timed out")),
        ):
            with pytest.raises(UpstreamError, match="timed out"):
                app.create_installation_token(42)

    def test_get_installation_client_uses_token(self, app):
        """Test that the client carries the installation token."""
        with patch.object(app, "create_installation_token", return_value=token_expiring_in(60)):
            client = app.get_installation_client(42)

        assert client.session.headers["Authorization"] == "Bearer ghs_60"

    def test_cache_used_across_clients(self):
        """Test that the default cache avoids repeated exchanges."""
        app = GitHubApp(app_id="12345", private_key="pem")
        with patch.object(app, "create_installation_token", return_value=token_expiring_in(60)) as mock_create:
            app.get_installation_client(42)
            app.get_installation_client(42)

        mock_create.assert_called_once_with(42)


class TestGetGitHubApp:
    """Tests for the process-wide GitHubApp."""

    def test_built_from_settings(self):
        set_settings(GatewaySettings(app_id="999", private_key="pem", github_api_url="https://ghe.example.com/api/v3"))
        app = get_github_app()
        assert app.app_id == "999"
        assert app.api_url == "https://ghe.example.com/api/v3"
        assert isinstance(app.token_cache, InstallationTokenCache)
        assert get_github_app() is app

    def test_cache_can_be_disabled(self):
        set_settings(GatewaySettings(app_id="999", private_key="pem", token_cache_enabled=False))
        assert isinstance(get_github_app().token_cache, NullTokenCache)


class TestDecodeContent:
    """Tests for decode_content."""

    def test_base64(self):
        """Test base64 content with GitHub's line wrapping."""
        encoded = base64.b64encode("hello\nworld\n".encode()).decode()
        wrapped = encoded[:8] + "\n" + encoded[8:]
        assert decode_content(wrapped, "base64") == "hello\nworld\n"

    def test_utf8_passthrough(self):
        assert decode_content("plain text", "utf-8") == "plain text"

    def test_unknown_encoding(self):
        """Test that content without a body is refused."""
        with pytest.raises(UpstreamError, match="unsupported content encoding 'none'"):
            decode_content("", "none", "big.bin")


class TestReadFile:
    """Tests for read_file."""

    @pytest.mark.parametrize("repo", ["", "owner/", "/name", "owner/repo/extra", "no-slash"])
    def test_rejects_bad_repo_without_calling_api(self, repo):
        """Test that malformed repos are rejected before any request."""
        api = MagicMock()

        with pytest.raises(ValidationError) as exc_info:
            read_file(api, repo, "README.md", "main")

        assert f"'{repo}'" in exc_info.value.message
        api.get_content.assert_not_called()

    def test_reads_file(self):
        """Test decoding a file response."""
        api = MagicMock()
        api.get_content.return_value = {
            "type": "file",
            "encoding": "base64",
            "content": base64.b64encode(b"# Widgets\n").decode(),
        }

        assert read_file(api, "acme/widgets", "README.md", "main") == "# Widgets\n"
        api.get_content.assert_called_once_with(REPO, "README.md", "main")

    def test_directory_is_not_a_file(self):
        """Test that a directory listing is refused."""
        api = MagicMock()
        api.get_content.return_value = [{"path": "src/a.py", "type": "file"}]

        with pytest.raises(UpstreamError, match="not a file: src"):
            read_file(api, "acme/widgets", "src", "main")

    def test_symlink_without_content(self):
        """Test that entries without content are refused."""
        api = MagicMock()
        api.get_content.return_value = {"type": "symlink", "target": "README.md"}

        with pytest.raises(UpstreamError, match="not a file"):
            read_file(api, "acme/widgets", "link", "main")
