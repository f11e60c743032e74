"""Error classification and reporting.

Every failure that reaches the retry engine or the orchestrator is turned
into an :class:`ErrorInfo` describing its category, severity, whether it is
worth retrying, and what the user can do about it.
"""

import errno
import json
import re
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx

from .errors import (
    CommandError,
    ConfigurationError,
    DevboxError,
    GitHubError,
    NetworkError,
    ValidationError,
)
from .logger import ActionLogger


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    NETWORK = "network"
    VALIDATION = "validation"
    FILE_SYSTEM = "file_system"
    GITHUB_API = "github_api"
    DEVBOX_COMMAND = "devbox_command"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


@dataclass
class ErrorInfo:
    """Structured description of a single failure."""

    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    code: str
    context: dict[str, Any]
    timestamp: str
    retryable: bool
    suggestions: list[str] = field(default_factory=list)


NETWORK_PATTERNS = [
    re.compile(r"ECONNRESET"),
    re.compile(r"ETIMEDOUT"),
    re.compile(r"ENOTFOUND"),
    re.compile(r"ECONNREFUSED"),
    re.compile(r"fetch.*failed", re.IGNORECASE),
    re.compile(r"network.*error", re.IGNORECASE),
    re.compile(r"connection.*error", re.IGNORECASE),
]

FILE_SYSTEM_PATTERNS = [
    re.compile(r"ENOENT"),
    re.compile(r"EACCES"),
    re.compile(r"EPERM"),
    re.compile(r"ENOSPC"),
    re.compile(r"no such file", re.IGNORECASE),
    re.compile(r"permission denied", re.IGNORECASE),
    re.compile(r"access denied", re.IGNORECASE),
]

DEVBOX_COMMAND_PATTERNS = [
    re.compile(r"devbox.*not found", re.IGNORECASE),
    re.compile(r"devbox.*failed", re.IGNORECASE),
    re.compile(r"command not found.*devbox", re.IGNORECASE),
    re.compile(r"invalid package", re.IGNORECASE),
    re.compile(r"package.*not found", re.IGNORECASE),
]

CONFIGURATION_PATTERNS = [
    re.compile(r"missing.*token", re.IGNORECASE),
    re.compile(r"invalid.*configuration", re.IGNORECASE),
    re.compile(r"required.*parameter", re.IGNORECASE),
    re.compile(r"environment.*variable", re.IGNORECASE),
]

RETRYABLE_GITHUB_PATTERNS = [
    re.compile(r"rate limit", re.IGNORECASE),
    re.compile(r"server error", re.IGNORECASE),
    re.compile(r"service unavailable", re.IGNORECASE),
    re.compile(r"timeout", re.IGNORECASE),
]

SUGGESTIONS = {
    ErrorCategory.NETWORK: [
        "Check your internet connection",
        "Verify the Devbox Search API is accessible",
        "The operation will be retried automatically",
    ],
    ErrorCategory.VALIDATION: [
        "Check the devbox.json file syntax",
        "Verify package names are valid",
        "Ensure all required fields are present",
    ],
    ErrorCategory.GITHUB_API: [
        "Check GitHub token permissions",
        "Verify repository access rights",
        "Check GitHub API rate limits",
    ],
    ErrorCategory.FILE_SYSTEM: [
        "Check file permissions",
        "Verify file paths exist",
        "Ensure sufficient disk space",
    ],
    ErrorCategory.DEVBOX_COMMAND: [
        "Verify devbox is installed and accessible",
        "Check devbox.json syntax",
        "Ensure all packages are valid",
    ],
    ErrorCategory.CONFIGURATION: [
        "Check action configuration",
        "Verify required environment variables",
        "Review action.yml inputs",
    ],
    ErrorCategory.UNKNOWN: [],
}


def _matches(patterns: list[re.Pattern], message: str) -> bool:
    return any(pattern.search(message) for pattern in patterns)


def _match_text(error: BaseException) -> str:
    """Message used for pattern checks; OSErrors are prefixed with their errno name."""
    message = str(error)
    if isinstance(error, OSError) and error.errno in errno.errorcode:
        return f"{errno.errorcode[error.errno]} {message}"
    return message


class ErrorHandler:
    """Classifies, logs and formats errors."""

    def __init__(
        self,
        log: ActionLogger,
        log_level: str = "error",
        include_stack_trace: bool = False,
        max_context_size: int = 1000,
    ):
        self.log = log
        self.log_level = log_level
        self.include_stack_trace = include_stack_trace
        self.max_context_size = max_context_size

    def handle_error(self, error: object, context: str = "") -> ErrorInfo:
        """Classify an error and log it.

        Args:
            error: The error to handle
            context: What was being done when it happened

        Returns:
            Structured error information
        """
        info = self.classify(error, context)
        self._log_error(info)
        return info

    def should_retry(self, error: object) -> bool:
        return self.classify(error).retryable

    def classify(self, error: object, context: str = "") -> ErrorInfo:
        """Classify an error into category, severity and retryability."""
        timestamp = datetime.now(timezone.utc).isoformat()
        error_context: dict[str, Any] = {"context": context}

        if not isinstance(error, BaseException):
            error_context["rawError"] = error
            return self._build(
                ErrorCategory.UNKNOWN,
                ErrorSeverity.MEDIUM,
                str(error),
                "UNKNOWN_ERROR",
                error_context,
                timestamp,
                retryable=False,
            )

        message = str(error)
        if isinstance(error, DevboxError):
            message = error.message
            code = error.code
            error_context.update(error.context)
        else:
            code = type(error).__name__

        if self.include_stack_trace and error.__traceback__ is not None:
            error_context["stack"] = "".join(traceback.format_exception(type(error), error, error.__traceback__))

        text = _match_text(error)

        if isinstance(error, (NetworkError, httpx.TransportError, ConnectionError)) or _matches(
            NETWORK_PATTERNS, text
        ):
            category, severity, retryable = ErrorCategory.NETWORK, ErrorSeverity.MEDIUM, True
        elif isinstance(error, ValidationError):
            category, severity, retryable = ErrorCategory.VALIDATION, ErrorSeverity.HIGH, False
        elif isinstance(error, GitHubError):
            retryable = _matches(RETRYABLE_GITHUB_PATTERNS, message)
            category, severity = ErrorCategory.GITHUB_API, ErrorSeverity.HIGH
        elif _matches(FILE_SYSTEM_PATTERNS, text):
            category, severity, retryable = ErrorCategory.FILE_SYSTEM, ErrorSeverity.HIGH, False
        elif isinstance(error, CommandError) or _matches(DEVBOX_COMMAND_PATTERNS, text):
            category, severity, retryable = ErrorCategory.DEVBOX_COMMAND, ErrorSeverity.HIGH, False
        elif isinstance(error, ConfigurationError) or _matches(CONFIGURATION_PATTERNS, text):
            category, severity, retryable = ErrorCategory.CONFIGURATION, ErrorSeverity.CRITICAL, False
        else:
            category, severity, retryable = ErrorCategory.UNKNOWN, ErrorSeverity.MEDIUM, False

        return self._build(category, severity, message, code, error_context, timestamp, retryable)

    def _build(
        self,
        category: ErrorCategory,
        severity: ErrorSeverity,
        message: str,
        code: str,
        context: dict[str, Any],
        timestamp: str,
        retryable: bool,
    ) -> ErrorInfo:
        return ErrorInfo(
            category=category,
            severity=severity,
            message=message,
            code=code,
            context=self.truncate_context(context),
            timestamp=timestamp,
            retryable=retryable,
            suggestions=list(SUGGESTIONS[category]),
        )

    def truncate_context(self, context: dict[str, Any]) -> dict[str, Any]:
        """Replace an oversized context with a flagged preview."""
        serialized = json.dumps(context, default=str)
        size = len(serialized.encode("utf-8"))
        if size <= self.max_context_size:
            return context

        return {
            "context": context.get("context", ""),
            "_preview": serialized[: self.max_context_size],
            "_truncated": True,
            "_originalSize": size,
            "_truncatedAt": self.max_context_size,
        }

    def format_error_message(self, info: ErrorInfo) -> str:
        parts = [f"[{info.category.value.upper()}]", f"{info.code}:", info.message]
        if info.context.get("context"):
            parts.append(f"(Context: {info.context['context']})")
        if info.retryable:
            parts.append("(Retryable)")
        return " ".join(parts)

    def _log_error(self, info: ErrorInfo) -> None:
        message = self.format_error_message(info)

        if info.severity == ErrorSeverity.CRITICAL:
            self.log.error(f"🚨 CRITICAL ERROR: {message}")
        elif info.severity == ErrorSeverity.HIGH:
            self.log.error(f"❌ ERROR: {message}")
        elif info.severity == ErrorSeverity.MEDIUM:
            self.log.warn(f"⚠️  WARNING: {message}")
        elif self.log_level == "debug":
            self.log.debug(f"ℹ️  INFO: {message}")

        if info.suggestions:
            self.log.info("💡 Suggestions:")
            for suggestion in info.suggestions:
                self.log.info(f"   • {suggestion}")

    def create_user_friendly_message(self, info: ErrorInfo) -> str:
        """Render an error for the error-message action output."""
        parts = [info.message]

        if info.suggestions:
            parts.append("\n\nSuggestions:")
            parts.extend(f"• {suggestion}" for suggestion in info.suggestions)

        if info.retryable:
            parts.append("\n\nThis error may be temporary and will be retried automatically.")

        return "\n".join(parts)
