"""
Shared fixtures: an isolated clivm root and fake managed binaries.
"""

import logging
import os

import pytest

from cli_vm import logging_config
from cli_vm.config import Paths
from cli_vm.logging_config import LOGGER_NAME


@pytest.fixture
def paths(tmp_path):
    """Layout rooted in a temp directory, with all directories created."""
    layout = Paths(root=tmp_path / "clivm-root")
    layout.ensure_directories()
    return layout


@pytest.fixture
def fake_version(paths):
    """
    Factory installing a fake binary for a version.

    The body is a POSIX shell snippet; by default it prints
    "jf version <version>".
    """
    def install(version, body=None):
        binary = paths.binary_path(version)
        binary.parent.mkdir(parents=True, exist_ok=True)
        body = body if body is not None else f'echo "jf version {version}"'
        binary.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
        os.chmod(binary, 0o755)
        return binary

    return install


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers bound to a previous test's captured streams."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.propagate = True
    logging_config._logger = None
