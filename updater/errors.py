"""Error types raised by the Devbox updater."""

from typing import Any


class DevboxError(Exception):
    """Base error carrying a machine-readable code and context."""

    def __init__(
        self,
        message: str,
        code: str = "DEVBOX_ERROR",
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context or {}


class NetworkError(DevboxError):
    """Transport-level failure talking to a remote service."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "NETWORK_ERROR", context)


class ValidationError(DevboxError):
    """Input or data that fails validation. Never retried."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "VALIDATION_ERROR", context)


class GitHubError(DevboxError):
    """Failure returned by the GitHub REST API."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "GITHUB_ERROR", context)


class ConfigurationError(DevboxError):
    """Action inputs or environment are missing or invalid."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "CONFIGURATION_ERROR", context)


class CommandError(DevboxError):
    """An external command (devbox, git) failed."""


class NoUpdatesError(DevboxError):
    """Raised when apply_updates is given nothing it can apply."""

    def __init__(self, message: str = "No valid updates to apply"):
        super().__init__(message, "NO_UPDATES")
