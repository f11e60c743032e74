"""Core data models for the Devbox updater."""

from dataclasses import dataclass

# Sentinel version strings
UNKNOWN_VERSION = "unknown"
LOOKUP_FAILED = "lookup-failed"
LATEST = "latest"


@dataclass(frozen=True)
class ParsedPackage:
    """A single package specification from devbox.json."""

    name: str
    version: str | None
    full_spec: str


@dataclass(frozen=True)
class UpdateCandidate:
    """A package paired with its current and latest known version."""

    package_name: str
    current_version: str
    latest_version: str
    update_available: bool

    @property
    def lookup_failed(self) -> bool:
        return self.latest_version == LOOKUP_FAILED

    @property
    def pinned_to_latest(self) -> bool:
        return self.current_version == LATEST


@dataclass(frozen=True)
class UpdateSummary:
    """All available updates found by a single scan."""

    updates: tuple[UpdateCandidate, ...]
    summary: str

    @property
    def total_updates(self) -> int:
        return len(self.updates)

    @property
    def has_changes(self) -> bool:
        return self.total_updates > 0


@dataclass
class ExistingPRInfo:
    """Read projection of an open pull request on the forge."""

    number: int
    branch: str
    title: str
    body: str
    state: str  # open, closed, merged
    updated_at: str
    head_repo: str = ""  # owner/repo the head branch lives in


@dataclass(frozen=True)
class MergeStrategy:
    """How new updates are folded into an existing pull request."""

    preserve_existing_updates: bool = True
    conflict_resolution: str = "merge"  # fail, overwrite, merge
    update_description: bool = True


@dataclass
class ActionOutputs:
    """Values reported back to the workflow when the run finishes."""

    changes: bool = False
    update_summary: str = "No updates processed"
    pr_number: int | None = None
    pr_updated: bool = False
    existing_pr_found: bool = False
    error_message: str | None = None

    def as_dict(self) -> dict[str, object]:
        outputs: dict[str, object] = {
            "changes": self.changes,
            "update-summary": self.update_summary,
            "pr-updated": self.pr_updated,
            "existing-pr-found": self.existing_pr_found,
        }
        if self.pr_number is not None:
            outputs["pr-number"] = self.pr_number
        if self.error_message:
            outputs["error-message"] = self.error_message
        return outputs


@dataclass(frozen=True)
class CommandResult:
    """Result of an external command invocation."""

    command: list[str]
    return_code: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.return_code == 0

    @property
    def command_str(self) -> str:
        return " ".join(self.command)
