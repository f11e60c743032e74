"""Thin async wrapper around the git CLI."""

from collections.abc import Awaitable, Callable
from pathlib import Path

from .commands import run_command
from .errors import CommandError
from .logger import ActionLogger
from .models import CommandResult

BOT_NAME = "github-actions[bot]"
BOT_EMAIL = "github-actions[bot]@users.noreply.github.com"

Runner = Callable[..., Awaitable[CommandResult]]


class GitRepository:
    """Git operations on the working copy the action runs in."""

    def __init__(self, log: ActionLogger, cwd: Path | str = ".", runner: Runner = run_command):
        self.log = log
        self.cwd = Path(cwd)
        self._run = runner

    async def _git(self, *args: str, check: bool = True) -> CommandResult:
        result = await self._run(["git", *args], cwd=self.cwd, log=self.log)
        if check and not result.ok:
            raise CommandError(
                f"git {args[0]} failed: {result.stderr.strip() or result.stdout.strip()}",
                "GIT_COMMAND_FAILED",
                {"command": result.command_str, "returnCode": result.return_code, "stderr": result.stderr},
            )
        return result

    async def configure_identity(self, name: str = BOT_NAME, email: str = BOT_EMAIL) -> None:
        await self._git("config", "user.name", name)
        await self._git("config", "user.email", email)

    async def add(self, *paths: str) -> None:
        await self._git("add", "--", *paths)

    async def has_staged_changes(self) -> bool:
        # exit 1 means the index differs from HEAD
        result = await self._git("diff", "--cached", "--quiet", check=False)
        if result.return_code not in (0, 1):
            raise CommandError(
                f"git diff failed: {result.stderr.strip()}",
                "GIT_COMMAND_FAILED",
                {"command": result.command_str, "returnCode": result.return_code},
            )
        return result.return_code == 1

    async def commit(self, message: str) -> bool:
        """Commit staged changes.

        Returns:
            False when there was nothing to commit
        """
        if not await self.has_staged_changes():
            self.log.info("No changes to commit")
            return False

        await self._git("commit", "-m", message)
        self.log.info(f"Committed changes: {message}")
        return True

    async def push(self, branch: str, force: bool = True) -> None:
        """Push HEAD to ``branch`` on origin."""
        args = ["push"]
        if force:
            args.append("--force")
        args.extend(["origin", f"HEAD:refs/heads/{branch}"])
        await self._git(*args)
        self.log.info(f"Pushed changes to {branch}")
