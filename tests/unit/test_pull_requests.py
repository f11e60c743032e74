"""Tests for pull request management."""

import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.factories import candidate
from updater.errors import GitHubError, NetworkError
from updater.github import Branch, PullRequest
from updater.models import ExistingPRInfo, MergeStrategy, UpdateSummary
from updater.pull_requests import PullRequestManager, validate_branch_name


def pr(number, ref, title="chore: update things", updated_at="2024-01-01T00:00:00Z", body="", repo="octo/repo"):
    head = {"ref": ref, "repo": {"full_name": repo} if repo else None}
    return PullRequest.model_validate(
        {"number": number, "title": title, "body": body, "updated_at": updated_at, "head": head}
    )


def branch(name, sha="abc123"):
    return Branch.model_validate({"name": name, "commit": {"sha": sha}})


def summary_of(*updates):
    return UpdateSummary(updates=tuple(updates), summary="")


@pytest.fixture
def forge():
    client = MagicMock()
    for name in (
        "list_open_pulls",
        "get_pull",
        "create_pull",
        "update_pull",
        "get_branch",
        "create_ref",
        "delete_ref",
        "get_default_branch",
    ):
        setattr(client, name, AsyncMock())
    client.owner = "octo"
    client.repo = "repo"
    client.get_default_branch.return_value = "main"
    return client


@pytest.fixture
def manager(forge, retry, log):
    return PullRequestManager(forge, retry, log, branch_prefix="devbox")


class TestCheckExistingPR:
    """Test detection of existing update PRs."""

    @pytest.mark.asyncio
    async def test_picks_most_recent_match(self, manager, forge):
        """Should choose the most recently updated matching PR."""
        forge.list_open_pulls.return_value = [
            pr(1, "devbox/nodejs-20-10-0", updated_at="2024-01-01T00:00:00Z"),
            pr(2, "devbox-legacy", updated_at="2024-03-01T00:00:00Z"),
            pr(3, "feature/unrelated", title="Add feature", updated_at="2024-06-01T00:00:00Z"),
            pr(4, "renovate/x", title="Update Devbox packages", updated_at="2024-02-01T00:00:00Z"),
        ]

        existing = await manager.check_existing_pr()

        assert existing.number == 2
        assert existing.branch == "devbox-legacy"

    @pytest.mark.asyncio
    async def test_ignores_unrelated(self, manager, forge):
        """Should return None when no PR matches."""
        forge.list_open_pulls.return_value = [pr(3, "feature/unrelated", title="Add feature")]
        assert await manager.check_existing_pr() is None

    @pytest.mark.asyncio
    async def test_forge_failure_returns_none(self, manager, forge):
        """Should swallow forge failures and report no PR."""
        forge.list_open_pulls.side_effect = GitHubError("GitHub API GET /pulls failed with HTTP 401: Unauthorized")
        assert await manager.check_existing_pr() is None

    @pytest.mark.asyncio
    async def test_find_by_branch_pattern(self, manager, forge):
        """Should match PRs by substring of the head branch."""
        forge.list_open_pulls.return_value = [pr(1, "devbox/nodejs-20"), pr(2, "devbox/go-1")]
        found = await manager.find_prs_by_branch_pattern("nodejs")
        assert [p.number for p in found] == [1]

    @pytest.mark.asyncio
    async def test_get_pr_details(self, manager, forge):
        """Should return None when the PR cannot be read."""
        forge.get_pull.return_value = pr(5, "devbox/x", body=None)
        details = await manager.get_pr_details(5)
        assert details.number == 5
        assert details.body == ""

        forge.get_pull.side_effect = GitHubError("GitHub API GET /pulls/6 failed with HTTP 404: Not Found")
        assert await manager.get_pr_details(6) is None


class TestBranchNames:
    """Test branch naming."""

    def test_single_package_branch(self, manager):
        """Should name single-package branches after package and version."""
        assert manager.generate_branch_name([candidate("biome", "2.3.8", "2.3.9")]) == "devbox/biome-2-3-9"

    def test_multi_package_branch(self, manager):
        """Should use a fixed branch for several updates."""
        updates = [candidate("biome", "2.3.8", "2.3.9"), candidate("nodejs", "18.0.0", "20.10.0")]
        assert manager.generate_branch_name(updates) == "devbox/multi-package-updates"
        assert manager.generate_branch_name([]) == "devbox/multi-package-updates"

    def test_multi_package_mode(self, forge, retry, log):
        """Should always use the multi-package branch when single mode is off."""
        manager = PullRequestManager(forge, retry, log, single_package_mode=False)
        assert manager.generate_branch_name([candidate("biome", "2.3.8", "2.3.9")]) == "devbox/multi-package-updates"

    def test_sanitizes_name(self, manager):
        """Should lowercase and replace unsafe characters."""
        assert manager.generate_package_branch_name("Python_3@3.12", "3.12.1+b1") == "devbox/python-3-3-12-1-b1"

    def test_unresolved_latest_gets_date(self, manager):
        """Should suffix an unresolved latest target with the date."""
        name = manager.generate_package_branch_name("go", "latest")
        assert re.fullmatch(r"devbox/go-latest-\d{4}-\d{2}-\d{2}", name)

    def test_resolved_latest_uses_version(self, manager):
        """Should use the resolved version for a latest target."""
        assert manager.generate_package_branch_name("go", "latest", "1.22.0") == "devbox/go-1-22-0"

    def test_unique_branch_name(self, manager):
        """Should add a timestamp to fallback branch names."""
        assert re.fullmatch(r"devbox/nodejs-\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}", manager.generate_unique_branch_name("nodejs"))
        assert manager.generate_unique_branch_name().startswith("devbox/updates-")

    def test_group_updates(self, manager):
        """Should group one update per PR in single-package mode."""
        updates = [candidate("a", "1", "2"), candidate("b", "1", "2")]
        assert manager.group_updates_for_prs(updates) == [[updates[0]], [updates[1]]]

    @pytest.mark.parametrize(
        "name,valid",
        [
            ("devbox/nodejs-20-10-0", True),
            ("", False),
            ("/devbox", False),
            ("devbox/", False),
            ("devbox//x", False),
            ("devbox/x.lock", False),
            ("devbox/a b", False),
            ("devbox/a~b", False),
            ("devbox/a\x07", False),
        ],
    )
    def test_validate_branch_name(self, name, valid):
        """Should apply git ref naming rules."""
        assert validate_branch_name(name) is valid


class TestBranches:
    """Test branch creation and reuse."""

    @pytest.mark.asyncio
    async def test_reuses_existing_branch(self, manager, forge):
        """Should reuse the computed branch when it exists."""
        forge.get_branch.return_value = branch("devbox/biome-2-3-9")

        name = await manager.get_or_create_update_branch([candidate("biome", "2.3.8", "2.3.9")])

        assert name == "devbox/biome-2-3-9"
        forge.create_ref.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_creates_branch_from_default(self, manager, forge):
        """Should create the branch at the default branch tip."""
        forge.get_default_branch.return_value = "trunk"
        forge.get_branch.side_effect = lambda name: branch(name, "tip") if name == "trunk" else None

        name = await manager.get_or_create_update_branch([candidate("biome", "2.3.8", "2.3.9")])

        assert name == "devbox/biome-2-3-9"
        forge.create_ref.assert_awaited_once_with("devbox/biome-2-3-9", "tip")

    @pytest.mark.asyncio
    async def test_falls_back_to_unique_name(self, manager, forge):
        """Should retry with a timestamped name when creation fails."""
        forge.get_branch.side_effect = lambda name: branch(name) if name == "main" else None
        forge.create_ref.side_effect = [
            GitHubError("GitHub API POST /git/refs failed with HTTP 422: Reference already exists"),
            None,
        ]

        name = await manager.get_or_create_update_branch([candidate("biome", "2.3.8", "2.3.9")])

        assert name.startswith("devbox/biome-")
        assert name != "devbox/biome-2-3-9"
        assert forge.create_ref.await_count == 2

    @pytest.mark.asyncio
    async def test_default_branch_falls_back_to_main(self, manager, forge):
        """Should use main when the repository cannot be read."""
        forge.get_default_branch.side_effect = GitHubError("GitHub API GET  failed with HTTP 403: Forbidden")
        assert await manager.get_default_branch() == "main"

    @pytest.mark.asyncio
    async def test_delete_branch_never_raises(self, manager, forge):
        """Should log and continue when deletion fails."""
        forge.delete_ref.side_effect = GitHubError("GitHub API DELETE failed with HTTP 422: Unprocessable Entity")
        await manager.delete_branch("devbox/x")

    @pytest.mark.asyncio
    async def test_forge_calls_are_retried(self, manager, forge):
        """Should retry transient forge failures."""
        forge.get_branch.side_effect = [NetworkError("down"), branch("devbox/x")]
        assert await manager.branch_exists("devbox/x")
        assert forge.get_branch.await_count == 2

    @pytest.mark.asyncio
    async def test_retry_bound_applies_to_forge_calls(self, forge, retry, log):
        """Should make a single attempt when max_retries is zero."""
        manager = PullRequestManager(forge, retry, log, branch_prefix="devbox", max_retries=0)
        forge.get_branch.side_effect = NetworkError("down")

        with pytest.raises(NetworkError):
            await manager.branch_exists("devbox/x")
        assert forge.get_branch.await_count == 1


class TestBranchOwnership:
    """Test which PR branches the updater may push to."""

    @pytest.mark.asyncio
    async def test_records_head_repository(self, manager, forge):
        """Should carry the head repository into the PR info."""
        forge.list_open_pulls.return_value = [pr(1, "devbox/x", repo="Octo/Repo")]
        existing = await manager.check_existing_pr()
        assert existing.head_repo == "Octo/Repo"
        assert manager.owns_branch(existing)

    @pytest.mark.parametrize(
        "branch_name,head_repo,owned",
        [
            ("devbox/multi-package-updates", "octo/repo", True),
            ("devbox-legacy", "octo/repo", True),
            ("alice/fix-devbox-update-docs", "octo/repo", False),
            ("devbox/multi-package-updates", "alice/repo", False),
            ("devbox/multi-package-updates", "", False),
            ("devboxes/x", "octo/repo", False),
        ],
    )
    def test_owns_branch(self, manager, branch_name, head_repo, owned):
        """Should own only prefixed branches in this repository."""
        existing = ExistingPRInfo(1, branch_name, "Update devbox", "", "open", "", head_repo)
        assert manager.owns_branch(existing) is owned

    @pytest.mark.asyncio
    async def test_deleted_fork_has_no_repository(self, manager, forge):
        """Should treat a PR whose fork is gone as not owned."""
        forge.list_open_pulls.return_value = [pr(1, "devbox/x", repo=None)]
        existing = await manager.check_existing_pr()
        assert existing.head_repo == ""
        assert not manager.owns_branch(existing)


class TestPullRequestContent:
    """Test PR titles and descriptions."""

    def test_single_title(self, manager):
        """Should describe a single update."""
        title = manager.generate_pr_title(summary_of(candidate("nodejs", "18.0.0", "20.10.0")))
        assert title == "chore: update nodejs from 18.0.0 to 20.10.0"

    def test_multi_title(self, manager):
        """Should count multiple updates."""
        title = manager.generate_pr_title(summary_of(candidate("a", "1", "2"), candidate("b", "1", "2")))
        assert title == "chore: update 2 Devbox packages"

    def test_description_sections(self, manager):
        """Should group updates into bump sections."""
        body = manager.format_change_description(
            [
                candidate("nodejs", "18.0.0", "20.10.0"),
                candidate("python", "3.11.0", "3.12.0"),
                candidate("biome", "2.3.8", "2.3.9"),
                candidate("go", "latest", "1.22.0"),
            ]
        )

        assert body.startswith("## 📦 Update Devbox packages\n\n")
        assert "### 🚨 Major Updates\n- **nodejs**: `18.0.0` → `20.10.0`" in body
        assert "### ✨ Minor Updates\n- **python**" in body
        assert "### 🐛 Patch Updates\n- **biome**" in body
        assert "### 📋 Other Updates\n- **go**" in body
        assert "automatically generated" in body

    def test_empty_description(self, manager):
        """Should say there is nothing to update."""
        assert manager.format_change_description([]) == "No package updates available."

    def test_description_is_capped(self, manager):
        """Should keep bodies within GitHub's limit."""
        updates = [candidate(f"package-{i}" * 20, "1.0.0", "2.0.0") for i in range(1000)]
        assert len(manager.format_change_description(updates)) <= 65536


class TestCreateAndUpdate:
    """Test opening and refreshing PRs."""

    @pytest.mark.asyncio
    async def test_create_update_pr(self, manager, forge):
        """Should open a PR against the default branch."""
        forge.create_pull.return_value = pr(42, "devbox/nodejs-20-10-0")
        summary = summary_of(candidate("nodejs", "18.0.0", "20.10.0"))

        number = await manager.create_update_pr(summary, "devbox/nodejs-20-10-0")

        assert number == 42
        title, body, head, base = forge.create_pull.await_args.args
        assert title == "chore: update nodejs from 18.0.0 to 20.10.0"
        assert head == "devbox/nodejs-20-10-0"
        assert base == "main"
        assert "nodejs" in body

    @pytest.mark.asyncio
    async def test_create_failure_raises(self, manager, forge):
        """Should propagate PR creation failures."""
        forge.create_pull.side_effect = GitHubError("GitHub API POST /pulls failed with HTTP 422: Unprocessable Entity")

        with pytest.raises(GitHubError):
            await manager.create_update_pr(summary_of(candidate("a", "1", "2")), "devbox/a-2")

    @pytest.mark.asyncio
    async def test_merge_appends_additional_updates(self, manager, forge):
        """Should append new updates to the existing description."""
        existing = ExistingPRInfo(1, "devbox/multi-package-updates", "old", "Existing body", "open", "")

        await manager.update_existing_pr(existing, summary_of(candidate("biome", "2.3.8", "2.3.9")))

        number, title, body = forge.update_pull.await_args.args
        assert number == 1
        assert title == "chore: update biome from 2.3.8 to 2.3.9"
        assert body.startswith("Existing body\n\n---\n\n### 🔄 Additional Updates\n\n")
        assert "**biome**" in body
        assert body.count("## 📦") == 0

    @pytest.mark.asyncio
    async def test_overwrite_replaces_body(self, manager, forge):
        """Should replace the description with the overwrite strategy."""
        existing = ExistingPRInfo(1, "devbox/x", "old", "Existing body", "open", "")

        await manager.update_existing_pr(
            existing,
            summary_of(candidate("biome", "2.3.8", "2.3.9")),
            MergeStrategy(conflict_resolution="overwrite"),
        )

        body = forge.update_pull.await_args.args[2]
        assert "Existing body" not in body
        assert body.startswith("## 📦 Update Devbox packages")

    @pytest.mark.asyncio
    async def test_fail_strategy_raises(self, manager, forge):
        """Should refuse to touch a PR that already has a description."""
        existing = ExistingPRInfo(1, "devbox/x", "old", "Existing body", "open", "")

        with pytest.raises(GitHubError):
            await manager.update_existing_pr(
                existing, summary_of(candidate("a", "1", "2")), MergeStrategy(conflict_resolution="fail")
            )
        forge.update_pull.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_keep_description(self, manager, forge):
        """Should leave title and body alone when descriptions are not updated."""
        existing = ExistingPRInfo(1, "devbox/x", "old title", "old body", "open", "")

        await manager.update_existing_pr(
            existing, summary_of(candidate("a", "1", "2")), MergeStrategy(update_description=False)
        )

        forge.update_pull.assert_awaited_once_with(1, "old title", "old body")
