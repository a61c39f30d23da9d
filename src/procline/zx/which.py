"""Executable lookup along PATH."""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping

__all__ = ["which", "try_get_path", "DEFAULT_PATHEXT"]

DEFAULT_PATHEXT = ".COM;.EXE;.BAT;.CMD;.VBS;.VBE;.JS;.JSE;.WSF;.WSH;.MSC"


def _search_paths(environ: Mapping[str, str], is_windows: bool) -> tuple[list[str], list[str]]:
    separator = ";" if is_windows else ":"
    paths = (environ.get("PATH") or "").split(separator)
    exts: list[str] = []
    if is_windows:
        paths.insert(0, os.getcwd())
        exts = (environ.get("PATHEXT") or DEFAULT_PATHEXT).split(";")
    return paths, exts


def which(
    name: str,
    *,
    environ: Mapping[str, str] | None = None,
    is_windows: bool | None = None,
) -> str | None:
    """Find an executable by name.

    Each PATH entry is tried in order. On Windows the current directory is
    searched first and each PATHEXT extension is tried before the bare name.

    Args:
        name: Command name, e.g. "bash"
        environ: Environment to read PATH/PATHEXT from (default os.environ)
        is_windows: Override platform detection (mainly for tests)

    Returns:
        Full path of the first existing file, or None if not found
    """
    if environ is None:
        environ = os.environ
    if is_windows is None:
        is_windows = sys.platform == "win32"

    paths, exts = _search_paths(environ, is_windows)
    for path in paths:
        for ext in exts:
            candidate = os.path.join(path, name + ext)
            if os.path.isfile(candidate):
                return candidate

        candidate = os.path.join(path, name)
        if os.path.isfile(candidate):
            return candidate

    return None


def try_get_path(name: str) -> tuple[bool, str]:
    """which() returning (found, path); path is "" when not found."""
    path = which(name)
    return (path is not None, path or "")
