"""Test data builders shared across test modules."""

from updater.models import CommandResult, UpdateCandidate


async def no_sleep(_delay):
    return None


def candidate(name, current, latest, available=True):
    """Build an UpdateCandidate with less typing."""
    return UpdateCandidate(
        package_name=name,
        current_version=current,
        latest_version=latest,
        update_available=available,
    )


def command_result(cmd=None, return_code=0, stdout="", stderr=""):
    return CommandResult(command=cmd or [], return_code=return_code, stdout=stdout, stderr=stderr)
