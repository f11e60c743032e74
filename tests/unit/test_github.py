"""Tests for the GitHub REST client."""

import json

import httpx
import pytest

from updater.errors import GitHubError, NetworkError
from updater.github import GitHubClient


def pull(number, ref, title="chore: update nodejs", updated_at="2024-01-01T00:00:00Z", body=None):
    return {
        "number": number,
        "title": title,
        "body": body,
        "state": "open",
        "updated_at": updated_at,
        "head": {"ref": ref, "sha": "abc"},
        "base": {"ref": "main", "sha": "def"},
    }


def make_client(handler):
    return GitHubClient("octo", "repo", "secret-token", transport=httpx.MockTransport(handler))


class TestGitHubClient:
    """Test GitHub REST calls."""

    @pytest.mark.asyncio
    async def test_list_open_pulls(self):
        """Should request open PRs with auth and API version headers."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[pull(1, "devbox/nodejs-20-10-0")])

        pulls = await make_client(handler).list_open_pulls()

        assert pulls[0].number == 1
        assert pulls[0].head.ref == "devbox/nodejs-20-10-0"
        request = seen[0]
        assert request.url.path == "/repos/octo/repo/pulls"
        assert request.url.params["state"] == "open"
        assert request.url.params["per_page"] == "100"
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert request.headers["Accept"] == "application/vnd.github+json"
        assert request.headers["X-GitHub-Api-Version"] == "2022-11-28"

    @pytest.mark.asyncio
    async def test_create_pull(self):
        """Should post title, body, head and base."""
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(201, json=pull(7, "devbox/go-1-22-0"))

        pr = await make_client(handler).create_pull("title", "body", "devbox/go-1-22-0", "main")

        assert pr.number == 7
        assert seen[0] == {"title": "title", "body": "body", "head": "devbox/go-1-22-0", "base": "main"}

    @pytest.mark.asyncio
    async def test_get_branch_missing(self):
        """Should return None for an unknown branch."""
        client = make_client(lambda request: httpx.Response(404, json={"message": "Branch not found"}))
        assert await client.get_branch("nope") is None

    @pytest.mark.asyncio
    async def test_get_branch(self):
        """Should decode the branch head commit."""
        client = make_client(lambda request: httpx.Response(200, json={"name": "main", "commit": {"sha": "abc123"}}))
        branch = await client.get_branch("main")
        assert branch.commit.sha == "abc123"

    @pytest.mark.asyncio
    async def test_create_and_delete_ref(self):
        """Should create and delete branch refs."""
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path, request.content))
            return httpx.Response(201 if request.method == "POST" else 204)

        client = make_client(handler)
        await client.create_ref("devbox/x", "abc123")
        await client.delete_ref("devbox/x")

        assert seen[0][:2] == ("POST", "/repos/octo/repo/git/refs")
        assert json.loads(seen[0][2]) == {"ref": "refs/heads/devbox/x", "sha": "abc123"}
        assert seen[1][:2] == ("DELETE", "/repos/octo/repo/git/refs/heads/devbox/x")

    @pytest.mark.asyncio
    async def test_default_branch(self):
        """Should read the repository's default branch."""
        client = make_client(lambda request: httpx.Response(200, json={"default_branch": "trunk"}))
        assert await client.get_default_branch() == "trunk"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,text,expected",
        [
            (429, "", "rate limit exceeded"),
            (403, "API rate limit exceeded for installation", "rate limit exceeded"),
            (503, "", "service unavailable"),
            (502, "", "server error"),
            (422, "", "Unprocessable Entity"),
        ],
    )
    async def test_error_messages(self, status, text, expected):
        """Should name the failure class in the error message."""
        client = make_client(lambda request: httpx.Response(status, text=text))

        with pytest.raises(GitHubError) as exc_info:
            await client.list_open_pulls()
        assert expected in exc_info.value.message
        assert exc_info.value.context["status"] == status

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Should wrap transport failures as network errors."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError):
            await make_client(handler).get_pull(1)

    def test_repr_hides_token(self):
        """Should never expose the token."""
        assert "secret-token" not in repr(GitHubClient("octo", "repo", "secret-token"))
