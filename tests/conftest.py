"""
Pytest configuration and fixtures for crossforge tests.
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Make the package importable without installing it
sys.path.insert(0, str(Path(__file__).parent.parent))

from crossforge.core.config import BuildConfig  # noqa: E402


@pytest.fixture
def mock_docker_client():
    """Mock Docker client for testing."""
    client = MagicMock()
    client.ping.return_value = True
    client.images.get.return_value = MagicMock()

    container = MagicMock()
    container.short_id = "abc123"
    container.wait.return_value = {"StatusCode": 0}
    container.logs.return_value = iter([b"building...\n"])
    container.stop.return_value = None

    client.containers.run.return_value = container

    return client


@pytest.fixture
def worktree(tmp_path):
    """An empty directory standing in for a source checkout."""
    tree = tmp_path / "project"
    tree.mkdir()
    return tree


@pytest.fixture
def make_config(worktree):
    """Factory for BuildConfig rooted at the temporary worktree."""

    def _make(**overrides):
        values = {"worktree": worktree, "jobs": 2}
        values.update(overrides)
        return BuildConfig(**values)

    return _make


@pytest.fixture
def mock_depends():
    """DependsClient double: downloads succeed, print queries return nothing."""
    depends = MagicMock()
    depends.print_vars.return_value = {}
    depends.print_var.return_value = ""
    return depends
