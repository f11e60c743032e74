"""Validation and serialization for devbox.json manifests."""

import json
from typing import Any

from .config import PATTERNS
from .errors import ValidationError


def validate_devbox_config(config: Any) -> None:
    """Validate a decoded devbox.json document.

    Args:
        config: The decoded JSON value

    Raises:
        ValidationError: Describing the first problem found
    """
    if not isinstance(config, dict):
        raise ValidationError("Configuration must be an object")

    packages = config.get("packages")
    if not isinstance(packages, list):
        raise ValidationError('Configuration must have a "packages" array')

    if not packages:
        raise ValidationError("Packages array cannot be empty")

    for index, package in enumerate(packages):
        if not isinstance(package, str):
            raise ValidationError(f"Package at index {index} must be a string")
        if not package.strip():
            raise ValidationError(f"Package at index {index} cannot be empty")

    if "shell" in config:
        _validate_shell(config["shell"])

    if "nixpkgs" in config:
        nixpkgs = config["nixpkgs"]
        if not isinstance(nixpkgs, dict):
            raise ValidationError("Nixpkgs configuration must be an object")
        commit = nixpkgs.get("commit")
        if not isinstance(commit, str):
            raise ValidationError("Nixpkgs commit must be a string")
        if not commit.strip():
            raise ValidationError("Nixpkgs commit cannot be empty")


def _validate_shell(shell: Any) -> None:
    if not isinstance(shell, dict):
        raise ValidationError("Shell configuration must be an object")

    if "init_hook" in shell:
        init_hook = shell["init_hook"]
        if not isinstance(init_hook, list):
            raise ValidationError("Shell init_hook must be an array")
        for index, hook in enumerate(init_hook):
            if not isinstance(hook, str):
                raise ValidationError(f"Shell init_hook at index {index} must be a string")

    if "scripts" in shell:
        scripts = shell["scripts"]
        if not isinstance(scripts, dict):
            raise ValidationError("Shell scripts must be an object")
        for key, value in scripts.items():
            if isinstance(value, str):
                continue
            if not isinstance(value, list):
                raise ValidationError(f'Shell script "{key}" must be a string or array')
            for index, line in enumerate(value):
                if not isinstance(line, str):
                    raise ValidationError(f'Shell script "{key}" at index {index} must be a string')


def parse_devbox_config(json_string: str) -> dict[str, Any]:
    """Parse and validate devbox.json content."""
    try:
        parsed = json.loads(json_string)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON: {e}") from e

    validate_devbox_config(parsed)
    return parsed


def serialize_devbox_config(config: dict[str, Any]) -> str:
    """Serialize a manifest the way devbox writes it."""
    return json.dumps(config, indent=2, ensure_ascii=False) + "\n"


def validate_package_name(package_name: str) -> None:
    if not isinstance(package_name, str):
        raise ValidationError("Package name must be a string")
    if not package_name.strip():
        raise ValidationError("Package name cannot be empty")
    if " " in package_name.strip():
        raise ValidationError("Package name cannot contain spaces")


def validate_version(version: str) -> None:
    if not isinstance(version, str):
        raise ValidationError("Version must be a string")
    if not version.strip():
        raise ValidationError("Version cannot be empty")
    if not PATTERNS.version.match(version):
        raise ValidationError(f"Invalid version format: {version}")
