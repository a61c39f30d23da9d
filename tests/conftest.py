"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
FAKE_PROC_PATH = FIXTURES_DIR / "fake_proc.py"

_CONFIG_VARS = (
    "PROCLINE_ACCEPTABLE_EXIT_CODES",
    "PROCLINE_ENCODING",
    "PROCLINE_SHELL",
    "PROCLINE_VERBOSE",
    "PROCLINE_LOG_DEBUG",
)


@pytest.fixture(autouse=True)
def clean_config(monkeypatch: pytest.MonkeyPatch):
    """Run every test with default configuration and whitelist."""
    from procline.config import reload_config

    for name in _CONFIG_VARS:
        monkeypatch.delenv(name, raising=False)
    reload_config()
    yield
    reload_config()


@pytest.fixture
def fake_proc():
    """Build an argv running the fake process with the given arguments."""

    def build(*args: str) -> list[str]:
        return [sys.executable, str(FAKE_PROC_PATH), *args]

    return build


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace directory."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace

