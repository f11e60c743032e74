"""CLI application for the Devbox updater."""

import asyncio
import json
import os

import typer
from rich.console import Console

from updater.classify import ErrorHandler
from updater.config import FILES
from updater.errors import DevboxError
from updater.host import ActionEnvironment
from updater.logger import ActionLogger
from updater.models import UpdateCandidate
from updater.orchestrator import UpdateOrchestrator
from updater.registry import DevboxRegistry
from updater.retry import RetryMechanism
from updater.scanner import PackageScanner, render_summary

console = Console()


def format_json_output(candidates: list[UpdateCandidate]) -> str:
    """Format JSON output."""
    reports = []
    for candidate in candidates:
        reports.append({
            "name": candidate.package_name,
            "current_version": candidate.current_version,
            "latest_version": candidate.latest_version,
            "update_available": candidate.update_available,
        })

    return json.dumps({"reports": reports}, indent=2)


def build_registry(log: ActionLogger, update_latest: bool = False) -> DevboxRegistry:
    error_handler = ErrorHandler(log)
    retry = RetryMechanism(error_handler, log)
    return DevboxRegistry(retry, log, update_latest=update_latest)


app = typer.Typer(
    name="devbox-updater",
    help="Keep devbox.json packages up to date and propose the changes as pull requests",
    add_completion=False,
)


@app.command()
def run(
    config_path: str | None = typer.Option(None, "--config", "-c", help="Path to devbox.json"),
    lock_path: str | None = typer.Option(None, "--lock", help="Path to devbox.lock"),
) -> None:
    """Run the updater as a GitHub Action step."""
    log = ActionLogger(console, level="debug" if os.environ.get("RUNNER_DEBUG") == "1" else "info")
    env = ActionEnvironment(log)

    orchestrator = UpdateOrchestrator(None, log, env, config_path=config_path, lock_path=lock_path)
    asyncio.run(orchestrator.run())

    if env.failed:
        raise typer.Exit(1)


@app.command()
def check(
    config_path: str = typer.Option(FILES.devbox_config, "--config", "-c", help="Path to devbox.json"),
    package: str | None = typer.Option(None, "--package", "-p", help="Only check this package"),
    update_latest: bool = typer.Option(False, "--update-latest", help="Report packages pinned to latest"),
    format_type: str = typer.Option("text", "--format", help="Output format: text or json"),
) -> None:
    """Check devbox.json for outdated packages without changing anything."""
    log = ActionLogger(console, annotate=False, level="warn")
    scanner = PackageScanner(build_registry(log, update_latest), log, config_path)

    if not scanner.config_exists():
        console.print(f"Error: File {config_path} not found", style="red")
        raise typer.Exit(1)

    try:
        if package:
            candidate = asyncio.run(scanner.check_package_for_updates(package))
            if candidate is None:
                console.print(f"Error: {package} is not listed in {config_path}", style="red")
                raise typer.Exit(1)
            candidates = [candidate]
        else:
            candidates = asyncio.run(scanner.scan_for_updates())
    except DevboxError as e:
        console.print(f"Error: {e.message}", style="red")
        raise typer.Exit(1)

    available = [c for c in candidates if c.update_available]

    if format_type == "json":
        console.print(format_json_output(candidates), markup=False, highlight=False)
    else:
        if not package:
            packages = scanner.scan_packages()
            pinned = len(scanner.get_packages_with_versions(packages))
            unpinned = len(scanner.get_packages_without_versions(packages))
            console.print(f"Checked {len(packages)} package(s): {pinned} pinned, {unpinned} unpinned", style="dim")
        console.print(render_summary(available), markup=False)

    if not available:
        raise typer.Exit(2)  # No changes exit code


@app.command()
def info(name: str = typer.Argument(help="Package name, e.g. nodejs")) -> None:
    """Show registry metadata for a package."""
    log = ActionLogger(console, annotate=False, level="warn")
    registry = build_registry(log)

    try:
        package = asyncio.run(registry.get_package_info(name))
    except DevboxError as e:
        console.print(f"Error: {e.message}", style="red")
        raise typer.Exit(1)

    console.print(f"[bold]{package.name}[/bold]")
    if package.summary:
        console.print(package.summary, markup=False)
    if package.homepage_url:
        console.print(f"Homepage: {package.homepage_url}", markup=False)
    if package.license:
        console.print(f"License: {package.license}", markup=False)
    for release in package.releases[:10]:
        console.print(f"  {release.version}  {release.last_updated}", markup=False)


if __name__ == "__main__":
    app()
