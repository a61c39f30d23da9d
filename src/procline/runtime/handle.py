"""Handle over a spawned subprocess.

The handle owns the asyncio subprocess started by ProcessLauncher and the
background tasks that feed its line channels. It exposes the exit code once
the process has exited and tears the process down exactly once.

Key design points:
- POSIX: processes run in their own session, so kills go to the whole
  process group (a shell and everything it started)
- Windows: CREATE_NEW_PROCESS_GROUP, kill() maps to TerminateProcess
- dispose() is synchronous and idempotent
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

__all__ = [
    "ProcessHandle",
    "IS_WINDOWS",
]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


class ProcessHandle:
    """Spawned OS process plus the tasks reading from it.

    Attributes:
        file_name: Executable name or path
        arguments: Argument string (None when launched from an argv list
            or without arguments)
        argv: Full argument vector used to spawn the process
        cwd: Working directory (None = inherited)
        environment: Environment overlay applied on top of os.environ
        redirect_stdin: Whether stdin is a pipe the caller may write to
        encoding: Encoding used for str written to stdin
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        *,
        file_name: str,
        arguments: str | None,
        argv: Sequence[str],
        cwd: Path | None = None,
        environment: Mapping[str, str] | None = None,
        redirect_stdin: bool = False,
        encoding: str = "utf-8",
    ) -> None:
        self._process = process
        self.file_name = file_name
        self.arguments = arguments
        self.argv = tuple(argv)
        self.cwd = cwd
        self.environment = dict(environment or {})
        self.redirect_stdin = redirect_stdin
        self.encoding = encoding
        self._disposed = False
        self._tasks: set[asyncio.Task] = set()

    def __repr__(self) -> str:
        return (
            f"ProcessHandle(pid={self.pid}, file_name={self.file_name}, "
            f"exit_code={self.exit_code}, disposed={self._disposed})"
        )

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def exit_code(self) -> int | None:
        """Exit code, or None while the process is running.

        On POSIX a process killed by a signal reports ``-signum``.
        """
        return self._process.returncode

    @property
    def has_exited(self) -> bool:
        return self._process.returncode is not None

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def stdin(self) -> asyncio.StreamWriter | None:
        return self._process.stdin

    @property
    def stdout(self) -> asyncio.StreamReader | None:
        return self._process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader | None:
        return self._process.stderr

    def attach_task(self, task: asyncio.Task) -> None:
        """Keep a reference to a background task working on this process."""
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""
        return await self._process.wait()

    async def write_stdin(self, data: bytes | str) -> None:
        """Write to the process's stdin.

        Raises:
            RuntimeError: If stdin was not redirected for this launch
        """
        if self._process.stdin is None:
            raise RuntimeError("stdin is not redirected for this process")
        if isinstance(data, str):
            data = data.encode(self.encoding)
        self._process.stdin.write(data)
        await self._process.stdin.drain()

    async def close_stdin(self) -> None:
        """Close stdin so the process sees end-of-file."""
        stdin = self._process.stdin
        if stdin is None or stdin.is_closing():
            return
        stdin.close()
        try:
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"stdin already closed by pid={self.pid}: {e}")

    def kill(self) -> None:
        """Forcibly kill the process (and its process group on POSIX)."""
        if self.has_exited:
            return

        pid = self._process.pid
        logger.debug(f"Killing subprocess pid={pid}")
        try:
            if IS_WINDOWS:
                self._process.kill()
            else:
                self._posix_kill()
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")

    def dispose(self) -> None:
        """Release the process. Kills it first if it is still running.

        Only the first call does anything.
        """
        if self._disposed:
            return
        self._disposed = True

        try:
            self.kill()
        except OSError as e:
            logger.warning(f"Error killing subprocess pid={self.pid}: {e}")
        finally:
            stdin = self._process.stdin
            if stdin is not None and not stdin.is_closing():
                stdin.close()

        logger.debug(f"Disposed subprocess pid={self.pid} exit_code={self.exit_code}")

    def _posix_kill(self) -> None:
        """SIGKILL the whole session started for this process."""
        pid = self._process.pid
        try:
            os.killpg(os.getpgid(pid), signal.SIGKILL)
        except ProcessLookupError:
            return
        except PermissionError as e:
            # The group may hold processes of another user; the child is ours.
            logger.debug(f"Group kill refused for pid={pid}: {e}")
            self._process.kill()
            return
        logger.debug(f"Sent SIGKILL to process group of pid={pid}")

