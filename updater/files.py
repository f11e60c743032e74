"""Rewriting devbox.json, regenerating devbox.lock and committing the result."""

import asyncio
import copy
import json
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .commands import run_command
from .config import DEFAULTS, FILES
from .errors import CommandError, DevboxError, NoUpdatesError, ValidationError
from .logger import ActionLogger
from .manifest import serialize_devbox_config, validate_devbox_config, validate_version
from .models import UpdateCandidate
from .packages import build_package_spec, parse_package_spec
from .vcs import GitRepository, Runner


def generate_commit_message(updates: list[UpdateCandidate]) -> str:
    """Commit message describing the applied updates."""
    if len(updates) == 1:
        update = updates[0]
        return f"chore: update {update.package_name} from {update.current_version} to {update.latest_version}"

    if len(updates) <= 3:
        return f"chore: update {', '.join(u.package_name for u in updates)}"

    return f"chore: update {len(updates)} packages"


def update_packages(config: dict[str, Any], updates: list[UpdateCandidate]) -> dict[str, Any]:
    """Return a copy of ``config`` with pinned packages moved to their new versions.

    Entries pinned to "latest" stay as they are; only the lock file changes
    for them. Array order and every other section are preserved.
    """
    new_versions = {}
    for update in updates:
        if update.update_available and not update.pinned_to_latest:
            validate_version(update.latest_version)
            new_versions[update.package_name] = update.latest_version

    updated = copy.deepcopy(config)
    packages = []
    for spec in config["packages"]:
        name = parse_package_spec(spec).name
        if name in new_versions:
            packages.append(build_package_spec(name, new_versions[name]))
        else:
            packages.append(spec)
    updated["packages"] = packages
    return updated


class FileManager:
    """Applies update candidates to devbox.json and devbox.lock."""

    def __init__(
        self,
        git: GitRepository,
        log: ActionLogger,
        config_path: Path | str = FILES.devbox_config,
        lock_path: Path | str = FILES.devbox_lock,
        runner: Runner = run_command,
    ):
        self.git = git
        self.log = log
        self.config_path = Path(config_path)
        self.lock_path = Path(lock_path)
        self._run = runner

    def read_config(self) -> dict[str, Any]:
        """Read and validate devbox.json.

        Raises:
            ValidationError: Invalid JSON or structure
            DevboxError: The file cannot be read
        """
        try:
            content = self.config_path.read_text(encoding="utf-8")
        except OSError as e:
            code = "FILE_NOT_FOUND" if isinstance(e, FileNotFoundError) else "FILE_READ_ERROR"
            raise DevboxError(
                f"Failed to read configuration file: {e}",
                code,
                {"configPath": str(self.config_path)},
            ) from e

        try:
            config = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in {self.config_path}: {e}") from e

        try:
            validate_devbox_config(config)
        except ValidationError as e:
            raise ValidationError(f"Invalid devbox.json configuration structure: {e.message}") from e

        return config

    def write_config(self, config: dict[str, Any]) -> None:
        """Validate and write devbox.json with two-space indentation."""
        try:
            validate_devbox_config(config)
        except ValidationError as e:
            raise ValidationError(f"Cannot write invalid devbox.json configuration: {e.message}") from e

        try:
            self.config_path.write_text(serialize_devbox_config(config), encoding="utf-8")
        except OSError as e:
            raise DevboxError(
                f"Failed to write configuration file: {e}",
                "FILE_WRITE_ERROR",
                {"configPath": str(self.config_path)},
            ) from e

    def update_packages(self, config: dict[str, Any], updates: list[UpdateCandidate]) -> dict[str, Any]:
        return update_packages(config, updates)

    def create_backup(self) -> Path:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%f")[:-3] + "Z"
        backup_path = self.config_path.with_name(f"{self.config_path.name}.backup.{timestamp}")

        try:
            shutil.copyfile(self.config_path, backup_path)
        except OSError as e:
            raise DevboxError(
                f"Failed to create backup: {e}",
                "BACKUP_ERROR",
                {"configPath": str(self.config_path), "backupPath": str(backup_path)},
            ) from e

        self.log.debug(f"Backed up {self.config_path} to {backup_path}")
        return backup_path

    def restore_from_backup(self, backup_path: Path | str) -> None:
        try:
            shutil.copyfile(backup_path, self.config_path)
        except OSError as e:
            raise DevboxError(
                f"Failed to restore from backup: {e}",
                "RESTORE_ERROR",
                {"configPath": str(self.config_path), "backupPath": str(backup_path)},
            ) from e

    async def ensure_devbox_installed(self) -> None:
        try:
            result = await self._run(["devbox", "version"], timeout=DEFAULTS.devbox_version_timeout, log=self.log)
        except (OSError, asyncio.TimeoutError) as e:
            raise CommandError(
                "devbox executable not found or not responding. Please install devbox first.",
                "DEVBOX_NOT_FOUND",
                {"error": str(e) or type(e).__name__},
            ) from e

        if not result.ok:
            raise CommandError(
                "devbox executable not found or not working. Please install devbox first.",
                "DEVBOX_NOT_FOUND",
                {"returnCode": result.return_code, "stderr": result.stderr},
            )

        self.log.debug(f"Using {result.stdout.strip()}")

    async def regenerate_lock(self) -> None:
        """Delete devbox.lock and let ``devbox install`` write a fresh one.

        Raises:
            CommandError: DEVBOX_NOT_FOUND, DEVBOX_TIMEOUT,
                DEVBOX_COMMAND_FAILED or LOCK_GENERATION_FAILED
        """
        await self.ensure_devbox_installed()

        try:
            self.lock_path.unlink(missing_ok=True)
        except OSError as e:
            self.log.warn(f"Could not remove existing lock file: {e}")

        timeout = DEFAULTS.devbox_install_timeout
        try:
            result = await self._run(
                ["devbox", "install"],
                cwd=self.config_path.parent,
                timeout=timeout,
                log=self.log,
            )
        except asyncio.TimeoutError as e:
            raise CommandError(
                f"devbox install timed out after {timeout}s",
                "DEVBOX_TIMEOUT",
                {"timeout": timeout},
            ) from e

        if not result.ok:
            raise CommandError(
                f"devbox install failed: {result.stderr.strip() or result.stdout.strip() or 'Unknown error'}",
                "DEVBOX_COMMAND_FAILED",
                {"returnCode": result.return_code, "stdout": result.stdout, "stderr": result.stderr},
            )

        if result.stderr.strip() and "warning" not in result.stderr.lower():
            self.log.warn(f"devbox install warnings: {result.stderr.strip()}")

        if not self.lock_path.exists():
            raise CommandError(
                "Lock file was not generated after devbox install",
                "LOCK_GENERATION_FAILED",
                {"lockPath": str(self.lock_path), "stdout": result.stdout, "stderr": result.stderr},
            )

    def validate_lock_file(self) -> bool:
        """Whether devbox.lock exists and is JSON. Total."""
        try:
            json.loads(self.lock_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return False
        return True

    async def commit_changes(self, updates: list[UpdateCandidate]) -> bool:
        await self.git.configure_identity()
        await self.git.add(str(self.config_path), str(self.lock_path))
        return await self.git.commit(generate_commit_message(updates))

    async def apply_updates(self, candidates: list[UpdateCandidate]) -> dict[str, Any]:
        """Apply available updates, regenerate the lock file and commit.

        The manifest is backed up first and restored if any later step
        fails; the original error is re-raised either way.

        Args:
            candidates: Update candidates from the scanner

        Returns:
            The manifest as written

        Raises:
            NoUpdatesError: If no candidate has an update available
        """
        applicable = [c for c in candidates if c.update_available]
        failed_lookups = [c for c in candidates if c.lookup_failed]
        current = [c for c in candidates if not c.update_available and not c.lookup_failed]

        if failed_lookups:
            self.log.info(f"🚫 Skipping {len(failed_lookups)} package(s) due to lookup failures:")
            for candidate in failed_lookups:
                self.log.info(f"   - {candidate.package_name} (could not be found in registry)")

        if current:
            self.log.debug(f"Skipping {len(current)} package(s) that are already up to date")

        if not applicable:
            raise NoUpdatesError()

        self.log.info(f"📝 Proceeding with {len(applicable)} valid update(s)")

        pin_changes = [c for c in applicable if not c.pinned_to_latest]
        latest_refresh = [c for c in applicable if c.pinned_to_latest]

        backup_path = self.create_backup()

        try:
            config = self.read_config()
            if pin_changes:
                config = update_packages(config, pin_changes)
                self.write_config(config)

            await self.regenerate_lock()

            if not self.validate_lock_file():
                raise DevboxError("Generated lock file is invalid", "INVALID_LOCK_FILE")

            await self.commit_changes(applicable)
        except Exception:
            try:
                self.restore_from_backup(backup_path)
                self.log.info(f"Restored {self.config_path} from backup")
            except DevboxError as restore_error:
                self.log.error(f"Failed to restore from backup: {restore_error}")
            raise

        backup_path.unlink(missing_ok=True)

        if pin_changes:
            self.log.info(f"Updated {len(pin_changes)} package(s) in {self.config_path.name}")
        if latest_refresh:
            self.log.info(f"Refreshed lock file for {len(latest_refresh)} 'latest' package(s)")

        return config
