"""Pytest fixtures for CLI tests."""

from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def mock_client():
    """DaemonClient returned by get_client()."""
    client = MagicMock()
    with patch("kbsync_cli.main.get_client", return_value=client):
        yield client
