"""Pytest configuration and fixtures."""

import io
import json

import pytest
from rich.console import Console

from tests.factories import no_sleep
from updater.classify import ErrorHandler
from updater.logger import ActionLogger
from updater.retry import RetryMechanism


@pytest.fixture
def console():
    """Console writing to an in-memory buffer."""
    return Console(file=io.StringIO(), width=200, color_system=None)


@pytest.fixture
def log(console):
    return ActionLogger(console, level="debug", annotate=False)


@pytest.fixture
def error_handler(log):
    return ErrorHandler(log)


@pytest.fixture
def retry(error_handler, log):
    """Retry engine that never actually sleeps."""
    return RetryMechanism(error_handler, log, sleep=no_sleep)


@pytest.fixture
def sample_devbox_config():
    """Sample devbox.json document for testing."""
    return {
        "packages": ["nodejs@18.0.0", "python@3.11.0", "go@latest", "ripgrep"],
        "shell": {
            "init_hook": ["echo hello"],
            "scripts": {"test": "pytest", "lint": ["ruff check", "ruff format --check"]},
        },
    }


@pytest.fixture
def devbox_json(tmp_path, sample_devbox_config):
    """Create a temporary devbox.json for testing."""
    manifest = tmp_path / "devbox.json"
    manifest.write_text(json.dumps(sample_devbox_config, indent=2) + "\n")
    return manifest
