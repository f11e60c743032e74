"""GitHub REST API client for pull requests and branches."""

from typing import Any

import httpx
from pydantic import BaseModel

from .config import GITHUB, REGISTRY_API
from .errors import GitHubError, NetworkError


class Repository(BaseModel):
    full_name: str = ""


class GitRef(BaseModel):
    ref: str
    sha: str = ""
    repo: Repository | None = None  # None when the source fork was deleted


class PullRequest(BaseModel):
    """The subset of a GitHub pull request the updater reads."""

    number: int
    title: str = ""
    body: str | None = None
    state: str = "open"
    updated_at: str = ""
    html_url: str = ""
    head: GitRef
    base: GitRef | None = None


class BranchCommit(BaseModel):
    sha: str


class Branch(BaseModel):
    name: str
    commit: BranchCommit


def describe_failure(response: httpx.Response) -> str:
    """Name the class of an unsuccessful response.

    The wording is what the error classifier keys retryability on.
    """
    status = response.status_code
    text = response.text.lower()
    if status == 429 or (status == 403 and "rate limit" in text):
        return "rate limit exceeded"
    if status == 503:
        return "service unavailable"
    if status >= 500:
        return "server error"
    return response.reason_phrase or "request failed"


class GitHubClient:
    """Minimal GitHub REST v3 client scoped to one repository.

    Args:
        owner: Repository owner
        repo: Repository name
        token: Token sent as a Bearer credential
        base_url: API base URL (GitHub Enterprise Server uses a different one)
        timeout: Request timeout in seconds
        transport: Optional httpx transport, for tests
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        base_url: str = GITHUB.api_url,
        timeout: float = REGISTRY_API.timeout,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.owner = owner
        self.repo = repo
        self.base_url = base_url.rstrip("/")
        self.repo_url = f"{self.base_url}/repos/{owner}/{repo}"
        self.timeout = timeout
        self._transport = transport
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB.api_version,
            "User-Agent": REGISTRY_API.user_agent,
        }

    def __repr__(self) -> str:
        return f"GitHubClient(owner={self.owner!r}, repo={self.repo!r})"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        allow_404: bool = False,
    ) -> Any:
        url = f"{self.repo_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, headers=self._headers, transport=self._transport
            ) as client:
                response = await client.request(method, url, params=params, json=json)
        except httpx.TimeoutException as e:
            raise NetworkError(f"GitHub request timeout after {self.timeout}s: {method} {path}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"Network error calling GitHub: {e}", {"method": method, "path": path}) from e

        if allow_404 and response.status_code == 404:
            return None

        if response.is_error:
            raise GitHubError(
                f"GitHub API {method} {path} failed with HTTP {response.status_code}: {describe_failure(response)}",
                {"status": response.status_code, "method": method, "path": path, "response": response.text[:500]},
            )

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def list_open_pulls(self) -> list[PullRequest]:
        data = await self._request("GET", "/pulls", params={"state": "open", "per_page": 100})
        return [PullRequest.model_validate(item) for item in data]

    async def get_pull(self, number: int) -> PullRequest:
        return PullRequest.model_validate(await self._request("GET", f"/pulls/{number}"))

    async def create_pull(self, title: str, body: str, head: str, base: str) -> PullRequest:
        data = await self._request("POST", "/pulls", json={"title": title, "body": body, "head": head, "base": base})
        return PullRequest.model_validate(data)

    async def update_pull(self, number: int, title: str, body: str) -> PullRequest:
        data = await self._request("PATCH", f"/pulls/{number}", json={"title": title, "body": body})
        return PullRequest.model_validate(data)

    async def get_branch(self, name: str) -> Branch | None:
        """Look up a branch; None if it does not exist."""
        data = await self._request("GET", f"/branches/{name}", allow_404=True)
        return Branch.model_validate(data) if data is not None else None

    async def create_ref(self, branch: str, sha: str) -> None:
        await self._request("POST", "/git/refs", json={"ref": f"refs/heads/{branch}", "sha": sha})

    async def delete_ref(self, branch: str) -> None:
        await self._request("DELETE", f"/git/refs/heads/{branch}")

    async def get_default_branch(self) -> str:
        data = await self._request("GET", "")
        return data["default_branch"]
