"""Devbox package specification parsing."""

from .models import ParsedPackage


def parse_package_spec(package_spec: str) -> ParsedPackage:
    """Parse a package specification like "oxipng@9.1.5" or "nodejs".

    The version follows the last "@". Namespaced names such as
    "github:owner/repo@1.0" keep everything before that "@" as the name.

    Args:
        package_spec: The package specification string

    Returns:
        Parsed package information
    """
    at_index = package_spec.rfind("@")

    # No version, or a leading "@" that belongs to the name itself
    if at_index <= 0:
        return ParsedPackage(name=package_spec, version=None, full_spec=package_spec)

    return ParsedPackage(
        name=package_spec[:at_index],
        version=package_spec[at_index + 1 :],
        full_spec=package_spec,
    )


def build_package_spec(name: str, version: str | None = None) -> str:
    """Create a package specification string from name and version."""
    if not version:
        return name
    return f"{name}@{version}"


def parse_all_packages(packages: list[str]) -> list[ParsedPackage]:
    """Parse every package specification in a devbox.json packages array."""
    return [parse_package_spec(spec) for spec in packages]
