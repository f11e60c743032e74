"""Pull request detection, branch naming and PR creation/updating."""

import re
from datetime import datetime, timezone

from .config import GITHUB, PATTERNS
from .errors import GitHubError
from .github import GitHubClient, PullRequest
from .logger import ActionLogger
from .models import LATEST, ExistingPRInfo, MergeStrategy, UpdateCandidate, UpdateSummary
from .retry import RetryMechanism
from .versions import version_change_type

INVALID_REF_CHARS = re.compile(r"[~^:?*\[\\\]\x00-\x1f\x7f ]")

SECTIONS = (
    ("major", "🚨 Major Updates"),
    ("minor", "✨ Minor Updates"),
    ("patch", "🐛 Patch Updates"),
    ("other", "📋 Other Updates"),
)

FOOTER = (
    "---\n\n"
    "🤖 This pull request was automatically generated by the Devbox Updater Action.\n"
    "📝 Please review the changes and test your development environment before merging.\n"
)


def _sanitize(value: str) -> str:
    return PATTERNS.branch_unsafe.sub("-", value).lower()


def _cap(body: str) -> str:
    limit = GITHUB.max_pr_body_length
    if len(body) <= limit:
        return body
    marker = "\n\n_Description truncated._\n"
    return body[: limit - len(marker)] + marker


def _parse_timestamp(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)


def _to_info(pr: PullRequest) -> ExistingPRInfo:
    return ExistingPRInfo(
        number=pr.number,
        branch=pr.head.ref,
        title=pr.title,
        body=pr.body or "",
        state=pr.state,
        updated_at=pr.updated_at,
        head_repo=pr.head.repo.full_name if pr.head.repo else "",
    )


def validate_branch_name(branch_name: str) -> bool:
    """Check a branch name against git's ref naming rules."""
    if not branch_name:
        return False
    if branch_name.startswith("/") or branch_name.endswith("/"):
        return False
    if "//" in branch_name or ".." in branch_name:
        return False
    if branch_name.endswith(".lock"):
        return False
    return not INVALID_REF_CHARS.search(branch_name)


class PullRequestManager:
    """Finds, creates and updates the pull request carrying package updates."""

    def __init__(
        self,
        forge: GitHubClient,
        retry: RetryMechanism,
        log: ActionLogger,
        branch_prefix: str = "devbox",
        single_package_mode: bool = True,
        pr_heading: str = GITHUB.default_pr_title,
        max_retries: int | None = None,
    ):
        """Initialize the manager.

        Args:
            forge: GitHub client for the target repository
            retry: Retry engine wrapping every forge call
            log: Logger
            branch_prefix: Prefix for update branches
            single_package_mode: One branch per package when a single update is found
            pr_heading: Heading of generated PR descriptions
            max_retries: Retry bound for forge calls; the engine's default when None
        """
        self.forge = forge
        self.retry = retry
        self.log = log
        self.branch_prefix = branch_prefix
        self.single_package_mode = single_package_mode
        self.pr_heading = pr_heading
        self.max_retries = max_retries

    async def _call(self, context: str, operation):
        if self.max_retries is None:
            return await self.retry.execute_with_retry(operation, context)
        return await self.retry.execute_with_retry(operation, context, max_retries=self.max_retries)

    def _has_update_prefix(self, branch: str) -> bool:
        return branch.startswith(f"{self.branch_prefix}/") or branch.startswith(f"{self.branch_prefix}-")

    def _is_update_pr(self, pr: PullRequest) -> bool:
        title = pr.title.lower()
        return self._has_update_prefix(pr.head.ref) or ("devbox" in title and "update" in title)

    def owns_branch(self, pr: ExistingPRInfo) -> bool:
        """Whether the PR's head is an update branch in this repository.

        Only such branches may be force-pushed. PRs matched by title alone,
        or opened from forks, are left untouched.
        """
        repository = f"{self.forge.owner}/{self.forge.repo}".lower()
        return self._has_update_prefix(pr.branch) and pr.head_repo.lower() == repository

    async def check_existing_pr(self) -> ExistingPRInfo | None:
        """Find the most recently updated open update PR.

        Total: forge failures are logged and reported as no PR.
        """
        self.log.info("Checking for existing Devbox update pull requests...")
        try:
            pulls = await self._call("list open pull requests", self.forge.list_open_pulls)
        except Exception as e:
            self.log.warn(f"Error checking existing PRs: Failed to check for existing PRs: {e}")
            return None

        matches = [pr for pr in pulls if self._is_update_pr(pr)]
        if not matches:
            self.log.info("No existing Devbox update PRs found")
            return None

        latest = max(matches, key=lambda pr: _parse_timestamp(pr.updated_at))
        info = _to_info(latest)
        self.log.info(f"Found existing PR #{info.number}: {info.title}")
        return info

    async def find_prs_by_branch_pattern(self, pattern: str) -> list[ExistingPRInfo]:
        """Open PRs whose head branch contains ``pattern``. Total."""
        try:
            pulls = await self._call("list open pull requests", self.forge.list_open_pulls)
        except Exception as e:
            self.log.warn(f"Error searching PRs by pattern: {e}")
            return []
        return [_to_info(pr) for pr in pulls if pattern in pr.head.ref]

    async def get_pr_details(self, number: int) -> ExistingPRInfo | None:
        """Total."""
        try:
            pr = await self._call(f"get pull request #{number}", lambda: self.forge.get_pull(number))
        except Exception as e:
            self.log.warn(f"Error getting PR details for #{number}: {e}")
            return None
        return _to_info(pr)

    def generate_package_branch_name(
        self, package_name: str, target_version: str, resolved_version: str | None = None
    ) -> str:
        """Branch for a single package update, e.g. ``devbox/biome-2-3-9``."""
        name = _sanitize(package_name.split("@")[0])

        version = target_version
        if target_version.lower() == LATEST:
            if resolved_version and resolved_version.lower() != LATEST:
                version = resolved_version
            else:
                # Unresolved "latest" gets a date suffix
                version = f"latest-{datetime.now(timezone.utc).strftime('%Y-%m-%d')}"

        return f"{self.branch_prefix}/{name}-{_sanitize(version)}"

    def generate_multi_package_branch_name(self) -> str:
        return f"{self.branch_prefix}/multi-package-updates"

    def generate_branch_name(self, updates: list[UpdateCandidate] | None = None) -> str:
        if updates and self.single_package_mode and len(updates) == 1:
            update = updates[0]
            return self.generate_package_branch_name(update.package_name, update.latest_version, update.latest_version)
        return self.generate_multi_package_branch_name()

    def generate_unique_branch_name(self, package_name: str | None = None) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
        if package_name:
            sanitized = re.sub(r"[^a-zA-Z0-9\-_.]", "-", package_name).lower()
            return f"{self.branch_prefix}/{sanitized}-{timestamp}"
        return f"{self.branch_prefix}/updates-{timestamp}"

    def group_updates_for_prs(self, updates: list[UpdateCandidate]) -> list[list[UpdateCandidate]]:
        if self.single_package_mode:
            return [[update] for update in updates]
        return [list(updates)]

    def validate_branch_name(self, branch_name: str) -> bool:
        return validate_branch_name(branch_name)

    async def branch_exists(self, branch_name: str) -> bool:
        branch = await self._call(f"get branch {branch_name}", lambda: self.forge.get_branch(branch_name))
        return branch is not None

    async def create_branch(self, branch_name: str, base_branch: str | None = None) -> None:
        """Create ``branch_name`` at the tip of ``base_branch``.

        Raises:
            GitHubError: If the base branch is missing or the ref cannot be created
        """
        base = base_branch or await self.get_default_branch()
        self.log.info(f"Creating branch: {branch_name} from {base}")

        base_ref = await self._call(f"get branch {base}", lambda: self.forge.get_branch(base))
        if base_ref is None:
            raise GitHubError(
                f"Failed to create branch {branch_name}: base branch {base} not found",
                {"branchName": branch_name, "baseBranch": base},
            )

        await self._call(
            f"create branch {branch_name}",
            lambda: self.forge.create_ref(branch_name, base_ref.commit.sha),
        )
        self.log.info(f"Successfully created branch: {branch_name}")

    async def get_or_create_update_branch(self, updates: list[UpdateCandidate] | None = None) -> str:
        """Reuse the computed update branch or create it.

        Falls back to a timestamped name when creation fails.
        """
        branch_name = self.generate_branch_name(updates)

        if await self.branch_exists(branch_name):
            self.log.info(f"Using existing branch: {branch_name}")
            return branch_name

        try:
            await self.create_branch(branch_name)
            return branch_name
        except GitHubError as e:
            self.log.warn(f"Failed to create branch, trying unique name: {e}")

        package_name = updates[0].package_name if updates and len(updates) == 1 else None
        branch_name = self.generate_unique_branch_name(package_name)
        await self.create_branch(branch_name)
        return branch_name

    async def delete_branch(self, branch_name: str) -> None:
        """Total."""
        try:
            await self._call(f"delete branch {branch_name}", lambda: self.forge.delete_ref(branch_name))
        except Exception as e:
            self.log.warn(f"Failed to delete branch {branch_name}: {e}")
            return
        self.log.info(f"Deleted branch: {branch_name}")

    async def get_default_branch(self) -> str:
        """Total: falls back to ``main``."""
        try:
            return await self._call("get default branch", self.forge.get_default_branch)
        except Exception as e:
            self.log.warn(f"Failed to get default branch, using 'main': {e}")
            return "main"

    def generate_pr_title(self, summary: UpdateSummary) -> str:
        if summary.total_updates == 1:
            update = summary.updates[0]
            return f"chore: update {update.package_name} from {update.current_version} to {update.latest_version}"
        return f"chore: update {summary.total_updates} Devbox packages"

    def _heading(self) -> str:
        return f"## 📦 {self.pr_heading}\n\n"

    def format_change_description(self, updates: list[UpdateCandidate] | tuple[UpdateCandidate, ...]) -> str:
        """Markdown PR body grouping updates by bump size."""
        if not updates:
            return "No package updates available."

        grouped: dict[str, list[UpdateCandidate]] = {kind: [] for kind, _ in SECTIONS}
        for update in updates:
            grouped[version_change_type(update.current_version, update.latest_version)].append(update)

        parts = [self._heading(), "This pull request updates the following packages to their latest versions:\n\n"]
        for kind, title in SECTIONS:
            if not grouped[kind]:
                continue
            parts.append(f"### {title}\n")
            for update in grouped[kind]:
                parts.append(f"- **{update.package_name}**: `{update.current_version}` → `{update.latest_version}`\n")
            parts.append("\n")
        parts.append(FOOTER)

        return _cap("".join(parts))

    def _merge_descriptions(self, existing_body: str, updates: tuple[UpdateCandidate, ...]) -> str:
        new_description = self.format_change_description(updates)
        _, _, new_sections = new_description.partition(self._heading())
        return _cap(f"{existing_body}\n\n---\n\n### 🔄 Additional Updates\n\n{new_sections or new_description}")

    async def create_update_pr(self, summary: UpdateSummary, branch_name: str, base_branch: str | None = None) -> int:
        """Open a PR from ``branch_name``; returns its number.

        Raises:
            GitHubError: If the PR cannot be created
        """
        self.log.info(f"Creating pull request for {summary.total_updates} package updates...")

        title = self.generate_pr_title(summary)
        body = self.format_change_description(summary.updates)
        base = base_branch or await self.get_default_branch()

        pr = await self._call(
            "create pull request",
            lambda: self.forge.create_pull(title, body, branch_name, base),
        )
        self.log.info(f"Created pull request #{pr.number}: {title}")
        return pr.number

    async def update_existing_pr(
        self,
        pr: ExistingPRInfo,
        summary: UpdateSummary,
        strategy: MergeStrategy = MergeStrategy(),
    ) -> None:
        """Refresh an open PR's title and description.

        Raises:
            GitHubError: On a "fail" strategy conflict or when the update fails
        """
        self.log.info(f"Updating existing PR #{pr.number} with {summary.total_updates} new updates...")

        title = pr.title
        body = pr.body

        if strategy.update_description:
            title = self.generate_pr_title(summary)
            if strategy.conflict_resolution == "fail" and pr.body:
                raise GitHubError(
                    f"Failed to update pull request #{pr.number}: existing description conflicts with new updates",
                    {"prNumber": pr.number, "strategy": strategy.conflict_resolution},
                )
            if strategy.conflict_resolution == "merge" and strategy.preserve_existing_updates and pr.body:
                body = self._merge_descriptions(pr.body, summary.updates)
            else:
                body = self.format_change_description(summary.updates)

        await self._call(
            f"update pull request #{pr.number}",
            lambda: self.forge.update_pull(pr.number, title, body),
        )
        self.log.info(f"Updated PR #{pr.number} successfully")
