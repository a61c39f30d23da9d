"""Shell scripting helpers built on the procline runtime.

These helpers only use the public launch/consume API: escaping command
templates, resolving executables on PATH, and running shell commands with
their output collected as strings.
"""

from __future__ import annotations

from .commands import run_command, run_commands
from .scripting import Env, FetchResponse, env
from .escape import escape, quote
from .which import try_get_path, which

__all__ = [
    "Env",
    "FetchResponse",
    "env",
    "escape",
    "quote",
    "run_command",
    "run_commands",
    "try_get_path",
    "which",
]
