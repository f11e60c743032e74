"""Console logging for the Devbox updater.

Inside GitHub Actions messages are written as workflow commands so that
warnings and errors show up as annotations and phases fold into groups.
Everywhere else they are printed with rich styles.
"""

import json
import os
import time
from contextlib import contextmanager
from typing import Any, Iterator

from rich.console import Console

LEVELS = ("debug", "info", "warn", "error")

STYLES = {
    "debug": "dim",
    "info": None,
    "warn": "yellow",
    "error": "red",
}


def escape_data(value: str) -> str:
    """Escape a message for use in a workflow command."""
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def running_in_actions() -> bool:
    return os.environ.get("GITHUB_ACTIONS", "").lower() == "true"


class ActionLogger:
    """Structured logger for GitHub Actions and local runs."""

    def __init__(
        self,
        console: Console | None = None,
        level: str = "info",
        annotate: bool | None = None,
        enable_context: bool = True,
    ):
        """Initialize the logger.

        Args:
            console: Rich console to write to (stdout by default)
            level: Minimum level that is emitted
            annotate: Emit workflow commands; detected from GITHUB_ACTIONS when None
            enable_context: Print structured context at debug level
        """
        self.console = console or Console()
        self.level = level
        self.annotate = running_in_actions() if annotate is None else annotate
        self.enable_context = enable_context
        self._operations: list[str] = []

    def _should_log(self, level: str) -> bool:
        # debug is always forwarded in Actions, the runner hides it unless step debugging is on
        if level == "debug" and self.annotate:
            return True
        return LEVELS.index(level) >= LEVELS.index(self.level)

    def _format(self, message: str) -> str:
        if self._operations:
            return f"[{self._operations[-1]}] {message}"
        return message

    def _write(self, level: str, message: str) -> None:
        if self.annotate:
            if level == "debug":
                self.console.out(f"::debug::{escape_data(message)}", highlight=False)
            elif level == "warn":
                self.console.out(f"::warning::{escape_data(message)}", highlight=False)
            elif level == "error":
                self.console.out(f"::error::{escape_data(message)}", highlight=False)
            else:
                self.console.out(message, highlight=False)
            return

        self.console.print(message, style=STYLES[level], markup=False, highlight=False)

    def log(self, level: str, message: str, context: dict[str, Any] | None = None) -> None:
        if not self._should_log(level):
            return

        self._write(level, self._format(message))

        if self.enable_context and context:
            self.debug(f"Context: {json.dumps(context, indent=2, default=str)}")

    def debug(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.log("debug", message, context)

    def info(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.log("info", message, context)

    def warn(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.log("warn", message, context)

    def error(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.log("error", message, context)

    def success(self, message: str, context: dict[str, Any] | None = None) -> None:
        if not self.annotate and self._should_log("info"):
            self.console.print(f"✅ {self._format(message)}", style="green", markup=False, highlight=False)
            return
        self.log("info", f"✅ {message}", context)

    def progress(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.log("info", f"🔄 {message}", context)

    @contextmanager
    def phase(self, name: str) -> Iterator[None]:
        """Group all output of a workflow phase."""
        if self.annotate:
            self.console.out(f"::group::📋 {escape_data(name)}", highlight=False)
        else:
            self.console.rule(name, style="cyan")
        try:
            yield
        finally:
            if self.annotate:
                self.console.out("::endgroup::", highlight=False)

    @contextmanager
    def operation(self, name: str) -> Iterator[None]:
        """Prefix messages with the name of the running operation."""
        self._operations.append(name)
        try:
            yield
        finally:
            self._operations.pop()

    def package_updates(self, updates) -> None:
        """Log update candidates one per line."""
        if not updates:
            self.info("No package updates available")
            return

        self.info(f"Found {len(updates)} package update(s):")
        for index, update in enumerate(updates, start=1):
            self.info(f"  {index}. {update.package_name}: {update.current_version} → {update.latest_version}")

    def timing(self, operation_name: str, start: float, end: float | None = None) -> None:
        """Log how long an operation took, from time.monotonic() readings."""
        duration = (end if end is not None else time.monotonic()) - start
        self.info(f"⏱️  {operation_name} completed in {format_duration(duration)}")


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"
    if seconds < 60:
        return f"{round(seconds, 2)}s"
    minutes = int(seconds // 60)
    return f"{minutes}m {round(seconds % 60, 2)}s"
