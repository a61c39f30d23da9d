"""Executable lookup tests."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

from procline.zx.which import try_get_path, which


def make_file(directory: Path, name: str) -> Path:
    path = directory / name
    path.write_text("")
    return path


class TestWhichPosix:
    """Test PATH lookup with POSIX rules."""

    def test_found_in_first_matching_directory(self, tmp_path: Path):
        first = tmp_path / "a"
        second = tmp_path / "b"
        first.mkdir()
        second.mkdir()
        make_file(second, "tool")
        expected = make_file(first, "tool")

        environ = {"PATH": f"{first}:{second}"}
        assert which("tool", environ=environ, is_windows=False) == str(expected)

    def test_not_found(self, tmp_path: Path):
        environ = {"PATH": str(tmp_path)}
        assert which("missing-tool", environ=environ, is_windows=False) is None

    def test_directories_are_skipped(self, tmp_path: Path):
        (tmp_path / "tool").mkdir()
        environ = {"PATH": str(tmp_path)}
        assert which("tool", environ=environ, is_windows=False) is None

    def test_empty_path(self):
        assert which("anything-procline", environ={}, is_windows=False) is None


class TestWhichWindows:
    """Test PATHEXT handling with Windows rules."""

    def test_pathext_tried_before_bare_name(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir()
        make_file(bin_dir, "tool")
        expected = make_file(bin_dir, "tool.EXE")

        environ = {"PATH": str(bin_dir), "PATHEXT": ".COM;.EXE"}
        assert which("tool", environ=environ, is_windows=True) == str(expected)

    def test_current_directory_searched_first(self, tmp_path: Path, monkeypatch):
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir()
        make_file(bin_dir, "tool.BAT")
        local = make_file(tmp_path, "tool.BAT")
        monkeypatch.chdir(tmp_path)

        environ = {"PATH": str(bin_dir), "PATHEXT": ".BAT"}
        assert which("tool", environ=environ, is_windows=True) == os.path.join(
            os.getcwd(), local.name
        )


class TestTryGetPath:
    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX PATH separator")
    def test_found(self, tmp_path: Path, monkeypatch):
        expected = make_file(tmp_path, "procline-tool")
        monkeypatch.setenv("PATH", str(tmp_path))
        assert try_get_path("procline-tool") == (True, str(expected))

    def test_not_found(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("PATH", str(tmp_path))
        assert try_get_path("procline-missing") == (False, "")
