"""Scripting facade over the runtime.

Runs command lines through a shell in dual mode and returns their output as
strings or line lists, with helpers for timeouts, cancellation, HTTP fetches,
console prompts and coloured logging.

Example:
    from procline.zx import env

    branch = await env.run("git rev-parse --abbrev-ref HEAD")
    files = await env.runl("git ls-files {}", "*.py")
    out = await env.ignore(env.run("grep -r {} .", "TODO"))
    await env.with_cancellation("make all", env.terminate_event)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shlex
import signal
import sys
from collections.abc import Awaitable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, TypeVar

import aiohttp
import anyio
import anyio.to_thread

from ..config import get_config
from ..errors import ProcessExecutionError
from ..runtime.launcher import ProcessLauncher
from ..runtime.sequence import LineSequence
from .escape import escape
from .which import which

__all__ = [
    "ANSI_COLORS",
    "Env",
    "FetchResponse",
    "env",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Console colours
ANSI_COLORS = {
    "black": "\033[30m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "blue": "\033[34m",
    "magenta": "\033[35m",
    "cyan": "\033[36m",
    "white": "\033[37m",
    "gray": "\033[90m",
}
ANSI_RESET = "\033[0m"


def _seconds(value: float | timedelta) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


@dataclass(frozen=True)
class FetchResponse:
    """HTTP response read in full.

    Attributes:
        status: HTTP status code
        reason: Status reason phrase
        headers: Response headers
        body: Raw body bytes
    """

    status: int
    reason: str
    headers: Mapping[str, str]
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")


@dataclass
class Env:
    """Shell scripting environment.

    Attributes:
        verbose: Echo every output line to stdout while commands run
        working_directory: cwd for commands (None = current directory)
        env_vars: Variables laid over the inherited environment
        launcher: Launcher used to start the shell
        terminate_event: Set on Ctrl+C once read (see the property)
    """

    verbose: bool = field(default_factory=lambda: get_config().verbose)
    working_directory: str | None = None
    env_vars: dict[str, str] = field(default_factory=dict)
    launcher: ProcessLauncher = field(default_factory=ProcessLauncher)
    _shell: str | None = field(default=None, repr=False)
    _terminate_event: asyncio.Event | None = field(default=None, init=False, repr=False)
    _sigint_loop: asyncio.AbstractEventLoop | None = field(
        default=None, init=False, repr=False
    )
    _original_sigint_handler: Any = field(default=None, init=False, repr=False)

    @property
    def shell(self) -> str:
        """Shell prefix commands are passed to, e.g. "/bin/bash -c".

        Raises:
            RuntimeError: If no shell is configured and bash is not on PATH
        """
        if self._shell is None:
            configured = get_config().shell
            if configured:
                self._shell = configured
            elif sys.platform == "win32":
                self._shell = "cmd /c"
            else:
                bash = which("bash")
                if bash is None:
                    raise RuntimeError(
                        "shell is not found in PATH, set Env.shell manually."
                    )
                self._shell = f"{shlex.quote(bash)} -c"
        return self._shell

    @shell.setter
    def shell(self, value: str) -> None:
        self._shell = value

    def shell_argv(self, command: str) -> list[str]:
        """argv running command through the shell, e.g. ["/bin/bash", "-c", command]."""
        return [*shlex.split(self.shell, posix=sys.platform != "win32"), command]

    # Ctrl+C

    @property
    def terminate_event(self) -> asyncio.Event:
        """Event set when the script receives Ctrl+C (SIGINT).

        The SIGINT handler is installed on the running loop the first time
        the event is read, so it must be read from a coroutine. Pass the
        event to with_cancellation or process to stop commands on Ctrl+C.
        release_terminate_event() puts the previous handler back.
        """
        loop = asyncio.get_running_loop()
        if self._terminate_event is not None and self._sigint_loop is loop:
            return self._terminate_event
        self.release_terminate_event()

        self._original_sigint_handler = signal.getsignal(signal.SIGINT)
        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGINT, self._handle_sigint)
        else:
            signal.signal(
                signal.SIGINT,
                lambda sig, frame: loop.call_soon_threadsafe(self._handle_sigint),
            )
        self._sigint_loop = loop
        self._terminate_event = asyncio.Event()
        logger.debug("SIGINT handler installed")
        return self._terminate_event

    def release_terminate_event(self) -> None:
        """Remove the SIGINT handler installed by terminate_event."""
        if self._terminate_event is None:
            return
        loop = self._sigint_loop
        if sys.platform != "win32" and loop is not None and not loop.is_closed():
            loop.remove_signal_handler(signal.SIGINT)
        if self._original_sigint_handler is not None:
            signal.signal(signal.SIGINT, self._original_sigint_handler)
        self._terminate_event = None
        self._sigint_loop = None
        self._original_sigint_handler = None
        logger.debug("SIGINT handler removed")

    def _handle_sigint(self) -> None:
        logger.info("SIGINT received, cancelling running commands")
        if self._terminate_event is not None:
            self._terminate_event.set()

    # Running commands

    async def _process_start_list(
        self,
        command: str,
        cancel_event: asyncio.Event | None = None,
    ) -> tuple[list[str], list[str]]:
        argv = self.shell_argv(command)
        logger.debug(f"Running: {argv}")
        handle, stdout, stderr = await self.launcher.start_dual(
            argv,
            cwd=self.working_directory,
            env=dict(self.env_vars),
        )
        await handle.close_stdin()

        echo = self.verbose
        out_lines: list[str] = []
        err_lines: list[str] = []

        async def consume(sequence: LineSequence, sink: list[str]) -> None:
            if cancel_event is not None:
                sequence.with_cancellation(cancel_event)
            async with sequence:
                async for line in sequence:
                    sink.append(line)
                    if echo:
                        print(line)

        results = await asyncio.gather(
            consume(stdout, out_lines),
            consume(stderr, err_lines),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

        return out_lines, err_lines

    async def _process_start(
        self,
        command: str,
        cancel_event: asyncio.Event | None = None,
    ) -> tuple[str, str]:
        out_lines, err_lines = await self._process_start_list(
            command, cancel_event
        )
        return "\n".join(out_lines), "\n".join(err_lines)

    async def process(self, command: str, cancel_event: asyncio.Event | None = None) -> str:
        """Run a raw command line through the shell and return stdout."""
        return (await self._process_start(command, cancel_event))[0]

    async def process2(
        self, command: str, cancel_event: asyncio.Event | None = None
    ) -> tuple[str, str]:
        """Run a raw command line and return (stdout, stderr)."""
        return await self._process_start(command, cancel_event)

    async def processl(
        self, command: str, cancel_event: asyncio.Event | None = None
    ) -> list[str]:
        """Run a raw command line and return stdout lines."""
        return (await self._process_start_list(command, cancel_event))[0]

    async def processl2(
        self, command: str, cancel_event: asyncio.Event | None = None
    ) -> tuple[list[str], list[str]]:
        """Run a raw command line and return (stdout lines, stderr lines)."""
        return await self._process_start_list(command, cancel_event)

    async def run(self, template: str, *args: Any) -> str:
        """Run an escaped command template and return stdout."""
        return await self.process(escape(template, *args))

    async def run2(self, template: str, *args: Any) -> tuple[str, str]:
        return await self.process2(escape(template, *args))

    async def runl(self, template: str, *args: Any) -> list[str]:
        return await self.processl(escape(template, *args))

    async def runl2(self, template: str, *args: Any) -> tuple[list[str], list[str]]:
        return await self.processl2(escape(template, *args))

    # Timeouts and cancellation

    async def with_timeout(self, command: str, timeout: float | timedelta) -> str:
        """Run a raw command line, killing it after timeout.

        Raises:
            TimeoutError: If the command did not finish in time
        """
        with anyio.fail_after(_seconds(timeout)):
            return await self.process(command)

    async def with_timeout2(
        self, command: str, timeout: float | timedelta
    ) -> tuple[str, str]:
        with anyio.fail_after(_seconds(timeout)):
            return await self.process2(command)

    async def with_cancellation(self, command: str, cancel_event: asyncio.Event) -> str:
        """Run a raw command line until it ends or cancel_event is set.

        When cancelled, the process is killed and the output read so far is
        returned.
        """
        return await self.process(command, cancel_event)

    async def with_cancellation2(
        self, command: str, cancel_event: asyncio.Event
    ) -> tuple[str, str]:
        return await self.process2(command, cancel_event)

    async def ignore(self, awaitable: Awaitable[T]) -> T | None:
        """Await a command, returning None instead of raising on failure."""
        try:
            return await awaitable
        except ProcessExecutionError as e:
            logger.debug(f"Ignored process failure: exit_code={e.exit_code}")
            return None

    # Misc helpers

    async def sleep(self, duration: float | timedelta) -> None:
        await anyio.sleep(_seconds(duration))

    async def fetch(self, url: str) -> FetchResponse:
        """GET a URL and read the whole response."""
        async with aiohttp.ClientSession() as session:
            async with session.get(url) as response:
                body = await response.read()
                return FetchResponse(
                    status=response.status,
                    reason=response.reason or "",
                    headers=dict(response.headers),
                    body=body,
                )

    async def fetch_text(self, url: str) -> str:
        """GET a URL and return its text body.

        Raises:
            aiohttp.ClientResponseError: On a non-success status
        """
        async with aiohttp.ClientSession(raise_for_status=True) as session:
            async with session.get(url) as response:
                return await response.text()

    async def fetch_bytes(self, url: str) -> bytes:
        async with aiohttp.ClientSession(raise_for_status=True) as session:
            async with session.get(url) as response:
                return await response.read()

    async def question(self, prompt: str) -> str:
        """Print a prompt and read one line from stdin ("" at EOF)."""
        print(prompt, flush=True)
        line = await anyio.to_thread.run_sync(sys.stdin.readline)
        return line.rstrip("\r\n")

    @contextlib.contextmanager
    def color(self, name: str, stream: Any = None) -> Iterator[None]:
        """Write everything inside the block in a console colour.

        Raises:
            ValueError: If the colour name is unknown
        """
        if stream is None:
            stream = sys.stdout
        try:
            code = ANSI_COLORS[name.lower()]
        except KeyError:
            raise ValueError(f"Unknown color: {name}") from None
        stream.write(code)
        try:
            yield
        finally:
            stream.write(ANSI_RESET)
            stream.flush()

    def log(self, value: object, color: str | None = None, stream: Any = None) -> None:
        """Print a value, optionally coloured."""
        if stream is None:
            stream = sys.stdout
        if color is None:
            print(value, file=stream)
            return
        with self.color(color, stream):
            print(value, file=stream, end="")
        stream.write("\n")


# Module-level environment used by procline.zx helpers
env = Env()
