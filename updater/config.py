"""Constants and action configuration for the Devbox updater."""

import re
from dataclasses import dataclass

from .errors import ConfigurationError


@dataclass(frozen=True)
class RegistryAPI:
    """Devbox Search API settings."""

    base_url: str = "https://search.devbox.sh/v2"
    resolve_endpoint: str = "/resolve"
    package_endpoint: str = "/pkg"
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    retry_multiplier: float = 2.0
    max_retry_delay: float = 10.0
    user_agent: str = "devbox-updater-action/1.0.0"


@dataclass(frozen=True)
class Files:
    devbox_config: str = "devbox.json"
    devbox_lock: str = "devbox.lock"


@dataclass(frozen=True)
class GitHub:
    api_url: str = "https://api.github.com"
    api_version: str = "2022-11-28"
    default_branch_prefix: str = "devbox-updates"
    default_pr_title: str = "Update Devbox packages"
    max_pr_body_length: int = 65536


@dataclass(frozen=True)
class Defaults:
    devbox_version: str = "latest"
    max_retries: int = 3
    max_retries_limit: int = 10
    devbox_install_timeout: float = 300.0
    devbox_version_timeout: float = 10.0


@dataclass(frozen=True)
class Patterns:
    version: re.Pattern = re.compile(r"^[a-zA-Z0-9._-]+$")
    branch_unsafe: re.Pattern = re.compile(r"[^a-zA-Z0-9-]")


REGISTRY_API = RegistryAPI()
FILES = Files()
GITHUB = GitHub()
DEFAULTS = Defaults()
PATTERNS = Patterns()


@dataclass
class ActionConfig:
    """Configuration for a single action run."""

    token: str
    devbox_version: str = DEFAULTS.devbox_version
    branch_prefix: str = GITHUB.default_branch_prefix
    pr_title: str = GITHUB.default_pr_title
    max_retries: int = DEFAULTS.max_retries
    update_latest: bool = False
    repository: str = ""
    api_url: str = GITHUB.api_url
    config_path: str = FILES.devbox_config
    lock_path: str = FILES.devbox_lock

    @property
    def owner(self) -> str:
        return self.repository.split("/", 1)[0]

    @property
    def repo(self) -> str:
        return self.repository.split("/", 1)[1]


def load_action_config(env, config_path: str | None = None, lock_path: str | None = None) -> ActionConfig:
    """Build an ActionConfig from action inputs and the runner environment.

    Args:
        env: Host environment providing get_input() and get_env()
        config_path: Optional override for the devbox.json location
        lock_path: Optional override for the devbox.lock location

    Returns:
        Unvalidated configuration; see validate_action_config()
    """
    raw_retries = env.get_input("max-retries") or str(DEFAULTS.max_retries)
    try:
        max_retries = int(raw_retries)
    except ValueError:
        raise ConfigurationError(
            f"Invalid configuration: max-retries must be an integer, got {raw_retries!r}"
        )

    return ActionConfig(
        token=env.get_input("token", required=True),
        devbox_version=env.get_input("devbox-version") or DEFAULTS.devbox_version,
        branch_prefix=env.get_input("branch-prefix") or GITHUB.default_branch_prefix,
        pr_title=env.get_input("pr-title") or GITHUB.default_pr_title,
        max_retries=max_retries,
        update_latest=env.get_input("update-latest").lower() == "true",
        repository=env.get_env("GITHUB_REPOSITORY"),
        api_url=env.get_env("GITHUB_API_URL") or GITHUB.api_url,
        config_path=config_path or FILES.devbox_config,
        lock_path=lock_path or FILES.devbox_lock,
    )


def validate_action_config(config: ActionConfig) -> None:
    """Reject configurations the action cannot run with.

    Raises:
        ConfigurationError: On the first invalid setting
    """
    if not config.token:
        raise ConfigurationError("Invalid configuration: missing GitHub token (input 'token' is required)")

    if not 0 <= config.max_retries <= DEFAULTS.max_retries_limit:
        raise ConfigurationError(
            f"Invalid configuration: max-retries must be between 0 and "
            f"{DEFAULTS.max_retries_limit}, got {config.max_retries}"
        )

    if not config.branch_prefix or not config.branch_prefix.strip():
        raise ConfigurationError("Invalid configuration: branch-prefix cannot be empty")

    if "/" not in config.repository:
        raise ConfigurationError(
            "Invalid configuration: GITHUB_REPOSITORY environment variable must be set to owner/repo"
        )
