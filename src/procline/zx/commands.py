"""Run plain command strings through the scripting environment.

A command starting with ``cd `` or ``chdir `` changes the current directory
of this Python process instead of spawning anything.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from collections.abc import Iterable

from .scripting import Env, env as default_env

__all__ = ["run_command", "run_commands", "try_change_directory"]

logger = logging.getLogger(__name__)

_CD_PREFIX = re.compile(r"^(?:cd|chdir)\s")


def try_change_directory(command: str) -> bool:
    """Apply a ``cd <path>`` command. Returns False for any other command."""
    if not _CD_PREFIX.match(command):
        return False

    path = re.sub(r"^cd|^chdir", "", command).strip()
    target = os.path.join(os.getcwd(), path)
    os.chdir(target)
    logger.debug(f"Changed directory to {os.getcwd()}")
    return True


async def run_command(command: str, environment: Env | None = None) -> str:
    """Run one command string and return its stdout ("" for ``cd``)."""
    if try_change_directory(command):
        return ""
    return await (environment or default_env).process(command)


async def run_commands(commands: Iterable[str], environment: Env | None = None) -> list[str]:
    """Run several command strings concurrently; results keep input order."""
    return list(
        await asyncio.gather(*(run_command(c, environment) for c in commands))
    )
