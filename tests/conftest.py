"""
Shared test fixtures and configuration.
"""

import logging
from pathlib import Path

import pytest

from archman.adapters.mock import MockFileBackend, MockPackageBackend, MockServiceBackend
from archman.adapters.registry import BackendRegistry


@pytest.fixture(autouse=True)
def isolated_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep the audit ledger and manifest lookup away from the real home."""
    state_dir = tmp_path / "state"
    monkeypatch.setenv("ARCHMAN_STATE_DIR", str(state_dir))
    monkeypatch.delenv("ARCHMAN_MANIFEST", raising=False)
    monkeypatch.delenv("ARCHMAN_LOG_FILE", raising=False)
    monkeypatch.delenv("ARCHMAN_LOG_LEVEL", raising=False)
    monkeypatch.delenv("ARCHMAN_LOG_FILE_LEVEL", raising=False)
    return state_dir


@pytest.fixture(autouse=True)
def reset_archman_logger():
    """Drop handlers and level left behind by CLI invocations."""
    logger = logging.getLogger("archman")
    handlers, level = list(logger.handlers), logger.level
    yield logger
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)


@pytest.fixture
def packages() -> MockPackageBackend:
    return MockPackageBackend("pacman")


@pytest.fixture
def aur() -> MockPackageBackend:
    return MockPackageBackend("paru")


@pytest.fixture
def files() -> MockFileBackend:
    return MockFileBackend()


@pytest.fixture
def services() -> MockServiceBackend:
    return MockServiceBackend()


@pytest.fixture
def registry(
    packages: MockPackageBackend,
    aur: MockPackageBackend,
    files: MockFileBackend,
    services: MockServiceBackend,
) -> BackendRegistry:
    """Registry over empty in-memory backends."""
    return BackendRegistry(packages=packages, aur=aur, files=files, services=services)


@pytest.fixture
def dotfiles(tmp_path: Path) -> Path:
    """A dotfiles directory with a couple of real source files."""
    d = tmp_path / "dotfiles"
    d.mkdir()
    (d / "vimrc").write_text("set nocompatible\n")
    (d / "zshrc").write_text("autoload -U compinit\n")
    return d
