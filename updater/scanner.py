"""Package discovery and update scanning for devbox.json."""

import json
from pathlib import Path
from typing import Any

from .config import FILES
from .errors import ValidationError
from .logger import ActionLogger
from .manifest import validate_devbox_config
from .models import ParsedPackage, UpdateCandidate, UpdateSummary
from .packages import parse_all_packages
from .registry import DevboxRegistry

UP_TO_DATE_MESSAGE = "All packages are up to date."


def render_summary(updates: list[UpdateCandidate]) -> str:
    """Human-readable summary of available updates."""
    if not updates:
        return UP_TO_DATE_MESSAGE

    lines = [f"Found {len(updates)} package update(s) available:"]
    lines.extend(f"- {u.package_name}: {u.current_version} → {u.latest_version}" for u in updates)
    return "\n".join(lines)


class PackageScanner:
    """Discovers packages in devbox.json and checks them for updates."""

    def __init__(self, registry: DevboxRegistry, log: ActionLogger, config_path: str = FILES.devbox_config):
        self.registry = registry
        self.log = log
        self.config_path = Path(config_path)

    def load_devbox_config(self) -> dict[str, Any]:
        """Load and validate devbox.json.

        Raises:
            ValidationError: If the file is missing, unreadable, not JSON or invalid
        """
        try:
            content = self.config_path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise ValidationError(
                f"Devbox configuration file not found: {self.config_path}",
                {"path": str(self.config_path)},
            ) from e
        except OSError as e:
            raise ValidationError(
                f"Failed to load devbox configuration: {e}",
                {"path": str(self.config_path)},
            ) from e

        try:
            config = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValidationError(
                f"Invalid JSON in {self.config_path}: {e}",
                {"path": str(self.config_path), "error": str(e)},
            ) from e

        validate_devbox_config(config)
        return config

    def extract_packages(self, config: dict[str, Any]) -> list[ParsedPackage]:
        packages = config.get("packages")
        if not isinstance(packages, list):
            return []
        return parse_all_packages(packages)

    def scan_packages(self) -> list[ParsedPackage]:
        return self.extract_packages(self.load_devbox_config())

    def config_exists(self) -> bool:
        return self.config_path.is_file()

    def get_packages_with_versions(self, packages: list[ParsedPackage]) -> list[ParsedPackage]:
        return [p for p in packages if p.version is not None]

    def get_packages_without_versions(self, packages: list[ParsedPackage]) -> list[ParsedPackage]:
        return [p for p in packages if p.version is None]

    async def scan_for_updates(self) -> list[UpdateCandidate]:
        """Check every package in devbox.json against the registry."""
        packages = self.scan_packages()
        self.log.debug(f"Checking {len(packages)} package(s) for updates")
        return await self.registry.check_multiple_packages_for_updates(packages)

    async def generate_update_summary(self) -> UpdateSummary:
        """Scan for updates and summarize the ones that are available.

        Partial: manifest problems raise ValidationError; registry
        failures for individual packages do not.
        """
        candidates = await self.scan_for_updates()
        available = [c for c in candidates if c.update_available]
        return UpdateSummary(updates=tuple(available), summary=render_summary(available))

    async def check_package_for_updates(self, package_name: str) -> UpdateCandidate | None:
        """Check a single package from devbox.json; None if it is not listed."""
        for package in self.scan_packages():
            if package.name == package_name:
                return await self.registry.check_for_updates(package)
        return None
