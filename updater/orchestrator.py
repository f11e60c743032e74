"""End-to-end update workflow: scan, rewrite, commit, push, open or update a PR."""

import time

import httpx

from .classify import ErrorHandler
from .config import ActionConfig, load_action_config, validate_action_config
from .files import FileManager
from .github import GitHubClient
from .host import ActionEnvironment
from .logger import ActionLogger
from .models import ActionOutputs
from .pull_requests import PullRequestManager
from .registry import DevboxRegistry
from .retry import RetryMechanism
from .scanner import PackageScanner
from .vcs import GitRepository


class UpdateOrchestrator:
    """Runs the updater once.

    Every collaborator can be injected; anything not supplied is built
    from the configuration when the run starts.
    """

    def __init__(
        self,
        config: ActionConfig | None,
        log: ActionLogger,
        env: ActionEnvironment,
        *,
        error_handler: ErrorHandler | None = None,
        retry: RetryMechanism | None = None,
        scanner: PackageScanner | None = None,
        files: FileManager | None = None,
        git: GitRepository | None = None,
        pull_requests: PullRequestManager | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        config_path: str | None = None,
        lock_path: str | None = None,
    ):
        self.config = config
        self.log = log
        self.env = env
        self.error_handler = error_handler or ErrorHandler(log)
        self.retry = retry or RetryMechanism(self.error_handler, log)
        self.scanner = scanner
        self.files = files
        self.git = git
        self.pull_requests = pull_requests
        self._transport = transport
        self._config_path = config_path
        self._lock_path = lock_path

    def _build_components(self, config: ActionConfig) -> None:
        if self.scanner is None:
            registry = DevboxRegistry(self.retry, self.log, update_latest=config.update_latest, transport=self._transport)
            self.scanner = PackageScanner(registry, self.log, config.config_path)
        if self.git is None:
            self.git = GitRepository(self.log)
        if self.files is None:
            self.files = FileManager(self.git, self.log, config.config_path, config.lock_path)
        if self.pull_requests is None:
            forge = GitHubClient(config.owner, config.repo, config.token, config.api_url, transport=self._transport)
            self.pull_requests = PullRequestManager(
                forge,
                self.retry,
                self.log,
                branch_prefix=config.branch_prefix,
                pr_heading=config.pr_title,
                max_retries=config.max_retries,
            )

    async def run(self) -> ActionOutputs:
        """Execute the workflow and publish outputs.

        Never raises: failures are reported through the host environment
        and the returned outputs carry ``error_message``.
        """
        start = time.monotonic()
        outputs = ActionOutputs()

        try:
            await self._run(outputs)
        except Exception as e:
            info = self.error_handler.handle_error(e, "Main workflow execution")
            message = self.error_handler.create_user_friendly_message(info)

            outputs.error_message = message
            self.env.set_failed(f"Action failed: {message}")
            self.log.debug(
                "Error details",
                {
                    "category": info.category.value,
                    "code": info.code,
                    "severity": info.severity.value,
                    "retryable": info.retryable,
                    "context": info.context,
                },
            )
            self._publish(outputs)
            self.log.timing("Total execution time (with error)", start)
            return outputs

        self._publish(outputs)
        self.log.timing("Total execution time", start)
        return outputs

    async def _run(self, outputs: ActionOutputs) -> None:
        with self.log.operation("Validating configuration"):
            config = self.config or load_action_config(self.env, self._config_path, self._lock_path)
            validate_action_config(config)
            self.config = config
            self.log.debug("Configuration validation passed")

        self.log.info("🚀 Starting Devbox package updater...")
        self.log.debug(
            "Configuration loaded",
            {
                "devboxVersion": config.devbox_version,
                "branchPrefix": config.branch_prefix,
                "maxRetries": config.max_retries,
                "updateLatest": config.update_latest,
            },
        )

        self._build_components(config)

        with self.log.phase("Phase 1: Package Discovery"):
            self.log.info("🔍 Scanning for package updates...")
            scan_start = time.monotonic()
            summary = await self.retry.execute_with_retry(
                self.scanner.generate_update_summary,
                "Package scanning",
                max_retries=config.max_retries,
            )
            self.log.timing("Package scanning", scan_start)
            self.log.info(f"📊 Scan completed: {summary.total_updates} updates found")
            self.log.package_updates(summary.updates)
            outputs.update_summary = summary.summary

        if not summary.has_changes:
            self.log.success("All packages are up to date. No action needed.")
            return

        with self.log.phase("Phase 2: PR Detection"):
            self.log.info("🔎 Checking for existing update PRs...")
            existing_pr = await self.pull_requests.check_existing_pr()
            outputs.existing_pr_found = existing_pr is not None
            if existing_pr:
                self.log.debug(
                    "Existing PR details",
                    {
                        "number": existing_pr.number,
                        "branch": existing_pr.branch,
                        "headRepo": existing_pr.head_repo,
                        "updatedAt": existing_pr.updated_at,
                    },
                )
                if not self.pull_requests.owns_branch(existing_pr):
                    self.log.warn(
                        f"PR #{existing_pr.number} is not on an update branch of this repository "
                        f"({existing_pr.head_repo or 'unknown repository'}:{existing_pr.branch}); "
                        "opening a separate update PR"
                    )
                    existing_pr = None

        with self.log.phase("Phase 3: File Updates"):
            self.log.info("📝 Applying package updates...")
            update_start = time.monotonic()
            await self.files.apply_updates(list(summary.updates))
            self.log.timing("File updates", update_start)
            self.log.success(f"Successfully updated {summary.total_updates} packages")
            outputs.changes = True

        with self.log.phase("Phase 4: PR Management"):
            self.log.info("🔄 Managing pull request...")
            if existing_pr:
                with self.log.operation("Updating existing PR"):
                    await self.git.push(existing_pr.branch)
                    await self.pull_requests.update_existing_pr(existing_pr, summary)
                    outputs.pr_number = existing_pr.number
                    outputs.pr_updated = True
                    self.log.success(f"Updated existing PR #{existing_pr.number}")
            else:
                with self.log.operation("Creating new PR"):
                    branch = await self.pull_requests.get_or_create_update_branch(list(summary.updates))
                    await self.git.push(branch)
                    outputs.pr_number = await self.pull_requests.create_update_pr(summary, branch)
                    self.log.success(f"Created new PR #{outputs.pr_number} on branch {branch}")

        self.log.success("Devbox updater completed successfully!")

    def _publish(self, outputs: ActionOutputs) -> None:
        with self.log.operation("Setting action outputs"):
            self.env.set_outputs(outputs.as_dict())
            self.log.debug("Action outputs set", outputs.as_dict())
