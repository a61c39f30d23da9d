"""Process launcher wiring subprocess output into line sequences.

procline runtime v0.1.0

This module provides:
- Merged launches: one stdout line sequence, stderr captured for failures
- Dual launches: independent stdout and stderr sequences plus the handle
- Binary launches: a future resolving to the whole raw stdout payload
- Exit-code validation against the acceptable exit codes

Key design points:
- One reader task per redirected stream pushes lines into its channel and
  sets a one-shot "drained" event when the stream hits EOF
- One finalizer task per launch waits for the process exit, then for the
  drained events, and only then validates the exit code and completes the
  channels; the exit notification and the last reads are never assumed to
  arrive in any particular order
- Failures are never raised from reader or finalizer tasks; they travel as
  channel completions and surface where the consumer reads them
- Processes start in a new session (POSIX) or process group (Windows)
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import os
import re
import shlex
import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, NamedTuple, Union

from ..config import get_acceptable_exit_codes, get_config
from ..errors import ProcessExecutionError, ProcessStartError
from .channel import CapturedLines, LineChannel
from .handle import IS_WINDOWS, ProcessHandle
from .sequence import LineSequence, Ownership

__all__ = [
    "ProcessLauncher",
    "LaunchOptions",
    "MergedPolicy",
    "DualLaunch",
    "Command",
    "parse_command",
    "LineSplitter",
    "start",
    "start_dual",
    "start_read_binary",
    "read_binary",
]

logger = logging.getLogger(__name__)

# Bytes requested per read from a stdout/stderr pipe
READ_CHUNK_SIZE = 4096

_LINE_END = re.compile(rb"\r\n|\r|\n")

Command = Union[str, Sequence[str]]


class MergedPolicy(str, Enum):
    """What a merged launch does with stdout once stderr produced output.

    - DRAIN_STDOUT: wait for stdout to reach EOF, then fail (every stdout
      line is delivered before the failure)
    - ABANDON_STDOUT: fail as soon as stderr is drained; stdout lines not
      yet read from the pipe are dropped
    """

    DRAIN_STDOUT = "drain_stdout"
    ABANDON_STDOUT = "abandon_stdout"


@dataclass(frozen=True)
class LaunchOptions:
    """Options shared by every launch mode.

    Attributes:
        cwd: Working directory (None = the caller's current directory)
        env: Variables laid over the inherited environment
        encoding: Text encoding for output lines (None = config default)
        errors: Decode error handler
        acceptable_exit_codes: Exit codes treated as success
            (None = the process-wide set, read at finalization)
        merged_policy: stdout handling in merged mode once stderr has output
        stdin_bytes: Bytes written to stdin, which is then closed
            (merged and binary modes; dual mode exposes stdin instead)
    """

    cwd: Path | str | None = None
    env: Mapping[str, str] | None = None
    encoding: str | None = None
    errors: str = "replace"
    acceptable_exit_codes: frozenset[int] | None = None
    merged_policy: MergedPolicy = MergedPolicy.DRAIN_STDOUT
    stdin_bytes: bytes | None = None

    def __post_init__(self) -> None:
        if self.acceptable_exit_codes is not None and not isinstance(
            self.acceptable_exit_codes, frozenset
        ):
            object.__setattr__(
                self, "acceptable_exit_codes", frozenset(self.acceptable_exit_codes)
            )
        if isinstance(self.merged_policy, str):
            object.__setattr__(self, "merged_policy", MergedPolicy(self.merged_policy))

    @property
    def resolved_encoding(self) -> str:
        return self.encoding or get_config().encoding

    def is_acceptable(self, exit_code: int) -> bool:
        codes = self.acceptable_exit_codes
        if codes is None:
            codes = get_acceptable_exit_codes()
        return exit_code in codes


class DualLaunch(NamedTuple):
    """Result of a dual-mode launch."""

    handle: ProcessHandle
    stdout: LineSequence
    stderr: LineSequence


def parse_command(
    command: Command, arguments: str | None = None
) -> tuple[str, str | None, list[str]]:
    """Split a command into file name, argument string and argv.

    Accepted forms:
    - "git status -s": split at the first space
    - ("git", "status -s"): explicit file name and argument string
    - ["git", "status", "-s"]: explicit argv

    The argument string is tokenized with shlex (POSIX rules outside
    Windows).

    Returns:
        (file_name, arguments, argv)

    Raises:
        ValueError: If the command is empty
        ProcessStartError: If the argument string cannot be tokenized
            (an unbalanced quote, for instance)
    """
    if not isinstance(command, str):
        argv = [os.fspath(arg) for arg in command]
        if not argv or not argv[0]:
            raise ValueError("Command must include an executable")
        if arguments is not None:
            raise ValueError("arguments cannot be combined with an argv sequence")
        joined = subprocess.list2cmdline(argv[1:]) if IS_WINDOWS else shlex.join(argv[1:])
        return argv[0], joined or None, argv

    if arguments is None:
        file_name, sep, rest = command.partition(" ")
        arguments = rest if sep else None
    else:
        file_name = command

    if not file_name:
        raise ValueError("Command must include an executable")

    argv = [file_name]
    if arguments:
        try:
            argv.extend(shlex.split(arguments, posix=not IS_WINDOWS))
        except ValueError as e:
            raise ProcessStartError(file_name, arguments) from e
    return file_name, arguments, argv


def build_environment(overlay: Mapping[str, str] | None) -> dict[str, str] | None:
    """Lay the overlay over the inherited environment (None = inherit as is)."""
    if overlay is None:
        return None
    env = os.environ.copy()
    for key, value in overlay.items():
        env[key] = value
    return env


class LineSplitter:
    """Incremental splitter for a chunked byte stream.

    A line ends at "\\n", "\\r" or "\\r\\n", including a "\\r\\n" pair that
    straddles two chunks. Work is proportional to the bytes fed, however
    long a single line grows.
    """

    def __init__(self) -> None:
        self._pending = bytearray()
        self._after_cr = False

    def feed(self, data: bytes) -> list[bytes]:
        """Add a chunk and return the lines it completed."""
        lines: list[bytes] = []
        pos = 0
        if self._after_cr:
            self._after_cr = False
            if data.startswith(b"\n"):
                pos = 1
        for match in _LINE_END.finditer(data, pos):
            self._pending += data[pos:match.start()]
            lines.append(bytes(self._pending))
            self._pending.clear()
            pos = match.end()
            if pos == len(data) and match.group() == b"\r":
                self._after_cr = True
        self._pending += data[pos:]
        return lines

    def flush(self) -> bytes | None:
        """Return the unterminated tail at end of stream, if any."""
        if not self._pending:
            return None
        tail = bytes(self._pending)
        self._pending.clear()
        return tail


def _decode_line(raw: bytes, encoding: str, errors: str) -> str:
    return raw.decode(encoding, errors=errors)


@dataclass
class ProcessLauncher:
    """Launches processes and exposes their output as line sequences.

    Example:
        launcher = ProcessLauncher()

        lines = await launcher.start("git status -s", cwd="/repo")
        for line in await lines.to_list():
            print(line)

        handle, stdout, stderr = await launcher.start_dual(["make", "all"])

        payload = await launcher.read_binary("cat image.png")

    Attributes:
        options: Defaults for every launch; per-call options and keyword
            overrides are applied on top
    """

    options: LaunchOptions = field(default_factory=LaunchOptions)

    # Entry points

    async def start(
        self,
        command: Command,
        arguments: str | None = None,
        options: LaunchOptions | None = None,
        **overrides: Any,
    ) -> LineSequence:
        """Start a process in merged mode.

        Returns:
            OWNING sequence of stdout lines. stderr is only reported inside
            a ProcessExecutionError at the end of the sequence.

        Raises:
            ProcessStartError: If the process could not be spawned
        """
        opts = self._resolve_options(options, overrides)
        handle = await self._spawn(command, arguments, opts, redirect_stdin=False)

        stdout_channel = LineChannel()
        captured = CapturedLines()
        stdout_drained = asyncio.Event()
        stderr_drained = asyncio.Event()

        self._start_task(
            handle, self._pump_lines(handle, "stdout", stdout_channel.write, stdout_drained, opts)
        )
        self._start_task(
            handle, self._pump_lines(handle, "stderr", captured.append, stderr_drained, opts)
        )
        self._feed_stdin(handle, opts)
        self._start_task(
            handle,
            self._finalize_merged(
                handle, stdout_channel, captured, stdout_drained, stderr_drained, opts
            ),
        )

        return LineSequence(stdout_channel, handle, Ownership.OWNING)

    async def start_dual(
        self,
        command: Command,
        arguments: str | None = None,
        options: LaunchOptions | None = None,
        **overrides: Any,
    ) -> DualLaunch:
        """Start a process in dual mode.

        stdin is redirected; write to it through the returned handle.

        Returns:
            (handle, stdout, stderr). stdout is OWNING, stderr is NON_OWNING.

        Raises:
            ProcessStartError: If the process could not be spawned
        """
        opts = self._resolve_options(options, overrides)
        handle = await self._spawn(command, arguments, opts, redirect_stdin=True)

        stdout_channel = LineChannel()
        stderr_channel = LineChannel()
        stdout_drained = asyncio.Event()
        stderr_drained = asyncio.Event()

        self._start_task(
            handle, self._pump_lines(handle, "stdout", stdout_channel.write, stdout_drained, opts)
        )
        self._start_task(
            handle, self._pump_lines(handle, "stderr", stderr_channel.write, stderr_drained, opts)
        )
        self._start_task(
            handle,
            self._finalize_dual(
                handle, stdout_channel, stderr_channel, stdout_drained, stderr_drained, opts
            ),
        )

        return DualLaunch(
            handle,
            LineSequence(stdout_channel, handle, Ownership.OWNING),
            LineSequence(stderr_channel, handle, Ownership.NON_OWNING),
        )

    async def start_read_binary(
        self,
        command: Command,
        arguments: str | None = None,
        options: LaunchOptions | None = None,
        **overrides: Any,
    ) -> asyncio.Future[bytes]:
        """Start a process and capture its raw stdout.

        Returns:
            Future resolving to the complete stdout payload, or failing with
            ProcessExecutionError. Cancelling the future kills the process.

        Raises:
            ProcessStartError: If the process could not be spawned
        """
        opts = self._resolve_options(options, overrides)
        handle = await self._spawn(command, arguments, opts, redirect_stdin=False)
        loop = asyncio.get_running_loop()

        captured = CapturedLines()
        stderr_drained = asyncio.Event()
        result: asyncio.Future[bytes] = loop.create_future()

        def on_result_done(future: asyncio.Future[bytes]) -> None:
            if future.cancelled():
                handle.dispose()

        result.add_done_callback(on_result_done)

        read_task = loop.create_task(self._read_all(handle))
        handle.attach_task(read_task)
        self._start_task(
            handle, self._pump_lines(handle, "stderr", captured.append, stderr_drained, opts)
        )
        self._feed_stdin(handle, opts)
        self._start_task(
            handle,
            self._finalize_binary(handle, result, read_task, captured, stderr_drained, opts),
        )

        return result

    async def read_binary(
        self,
        command: Command,
        arguments: str | None = None,
        options: LaunchOptions | None = None,
        **overrides: Any,
    ) -> bytes:
        """Start a process and return its raw stdout once it succeeds."""
        future = await self.start_read_binary(command, arguments, options, **overrides)
        return await future

    # Spawning

    def _resolve_options(
        self, options: LaunchOptions | None, overrides: Mapping[str, Any]
    ) -> LaunchOptions:
        opts = options if options is not None else self.options
        if overrides:
            opts = dataclasses.replace(opts, **overrides)
        return opts

    def _build_subprocess_kwargs(self, opts: LaunchOptions) -> dict[str, Any]:
        """Build platform-specific subprocess kwargs."""
        kwargs: dict[str, Any] = {}

        env = build_environment(opts.env)
        if env is not None:
            kwargs["env"] = env
        if opts.cwd is not None:
            kwargs["cwd"] = opts.cwd

        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        return kwargs

    async def _spawn(
        self,
        command: Command,
        arguments: str | None,
        opts: LaunchOptions,
        *,
        redirect_stdin: bool,
    ) -> ProcessHandle:
        file_name, arguments, argv = parse_command(command, arguments)
        kwargs = self._build_subprocess_kwargs(opts)

        # DEVNULL rather than inheriting the caller's stdin
        if redirect_stdin or opts.stdin_bytes is not None:
            stdin = asyncio.subprocess.PIPE
        else:
            stdin = asyncio.subprocess.DEVNULL

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=stdin,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **kwargs,
            )
        except OSError as e:
            logger.debug(f"Failed to start {file_name}: {e}")
            raise ProcessStartError(file_name, arguments) from e

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={argv} cwd={opts.cwd}"
        )

        return ProcessHandle(
            process,
            file_name=file_name,
            arguments=arguments,
            argv=argv,
            cwd=Path(opts.cwd) if opts.cwd is not None else None,
            environment=opts.env,
            redirect_stdin=redirect_stdin,
            encoding=opts.resolved_encoding,
        )

    def _start_task(self, handle: ProcessHandle, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        handle.attach_task(task)
        return task

    def _feed_stdin(self, handle: ProcessHandle, opts: LaunchOptions) -> None:
        if opts.stdin_bytes is not None:
            self._start_task(handle, self._write_stdin(handle, opts.stdin_bytes))

    async def _write_stdin(self, handle: ProcessHandle, data: bytes) -> None:
        try:
            await handle.write_stdin(data)
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"stdin closed early pid={handle.pid}: {e}")
        finally:
            await handle.close_stdin()

    # Readers

    async def _pump_lines(
        self,
        handle: ProcessHandle,
        name: str,
        sink: Callable[[str], Any],
        drained: asyncio.Event,
        opts: LaunchOptions,
    ) -> None:
        """Read a stream line by line into sink, then set drained.

        Lines end at "\\n", "\\r" or "\\r\\n"; a final line with no
        terminator is still delivered.
        """
        stream = handle.stdout if name == "stdout" else handle.stderr
        encoding = opts.resolved_encoding
        splitter = LineSplitter()
        try:
            if stream is None:
                return
            while True:
                chunk = await stream.read(READ_CHUNK_SIZE)
                if not chunk:
                    tail = splitter.flush()
                    if tail is not None:
                        sink(_decode_line(tail, encoding, opts.errors))
                    break

                for raw in splitter.feed(chunk):
                    sink(_decode_line(raw, encoding, opts.errors))
        except OSError as e:
            logger.warning(f"Error reading {name} pid={handle.pid}: {e}")
        finally:
            drained.set()
            logger.debug(f"{name} drained pid={handle.pid}")

    async def _read_all(self, handle: ProcessHandle) -> bytes | None:
        """Read stdout to EOF. None if the read failed."""
        if handle.stdout is None:
            return b""
        try:
            return await handle.stdout.read()
        except OSError as e:
            logger.warning(f"Error reading stdout pid={handle.pid}: {e}")
            return None

    # Finalizers

    async def _finalize_merged(
        self,
        handle: ProcessHandle,
        channel: LineChannel,
        captured: CapturedLines,
        stdout_drained: asyncio.Event,
        stderr_drained: asyncio.Event,
        opts: LaunchOptions,
    ) -> None:
        try:
            exit_code = await handle.wait()
            await stderr_drained.wait()

            if not captured:
                await stdout_drained.wait()
            elif opts.merged_policy is MergedPolicy.DRAIN_STDOUT:
                await stdout_drained.wait()
            else:
                # Reader keeps draining the pipe; its writes are dropped
                # once the channel is complete.
                logger.debug(f"Abandoning remaining stdout pid={handle.pid}")

            errors = captured.snapshot()
            logger.debug(
                f"Subprocess completed pid={handle.pid} "
                f"returncode={exit_code} stderr_lines={len(errors)}"
            )

            if not opts.is_acceptable(exit_code) or errors:
                channel.complete(ProcessExecutionError(exit_code, errors))
            else:
                channel.complete()
        except asyncio.CancelledError:
            channel.complete()
            raise
        except Exception as e:
            logger.warning(f"Finalizer failed pid={handle.pid}: {e}")
            channel.complete(e)

    async def _finalize_dual(
        self,
        handle: ProcessHandle,
        stdout_channel: LineChannel,
        stderr_channel: LineChannel,
        stdout_drained: asyncio.Event,
        stderr_drained: asyncio.Event,
        opts: LaunchOptions,
    ) -> None:
        try:
            exit_code = await handle.wait()
            await stderr_drained.wait()
            await stdout_drained.wait()

            logger.debug(
                f"Subprocess completed pid={handle.pid} returncode={exit_code}"
            )

            # stderr lines already went out through their own sequence
            stderr_channel.complete()
            if opts.is_acceptable(exit_code):
                stdout_channel.complete()
            else:
                stdout_channel.complete(ProcessExecutionError(exit_code, []))
        except asyncio.CancelledError:
            stderr_channel.complete()
            stdout_channel.complete()
            raise
        except Exception as e:
            logger.warning(f"Finalizer failed pid={handle.pid}: {e}")
            stderr_channel.complete()
            stdout_channel.complete(e)

    async def _finalize_binary(
        self,
        handle: ProcessHandle,
        result: asyncio.Future[bytes],
        read_task: asyncio.Task,
        captured: CapturedLines,
        stderr_drained: asyncio.Event,
        opts: LaunchOptions,
    ) -> None:
        try:
            exit_code = await handle.wait()
            await stderr_drained.wait()

            if not captured and opts.is_acceptable(exit_code):
                payload = await read_task
                if payload is not None:
                    logger.debug(
                        f"Subprocess completed pid={handle.pid} "
                        f"returncode={exit_code} bytes={len(payload)}"
                    )
                    if not result.done():
                        result.set_result(payload)
                    return

            read_task.cancel()
            if not result.done():
                result.set_exception(
                    ProcessExecutionError(exit_code, captured.snapshot())
                )
        except asyncio.CancelledError:
            read_task.cancel()
            if not result.done():
                result.cancel()
            raise
        except Exception as e:
            logger.warning(f"Finalizer failed pid={handle.pid}: {e}")
            if not result.done():
                result.set_exception(e)
        finally:
            if result.done() and not result.cancelled():
                handle.dispose()


# Default launcher for the module-level shortcuts
_default_launcher = ProcessLauncher()


async def start(
    command: Command,
    arguments: str | None = None,
    options: LaunchOptions | None = None,
    **overrides: Any,
) -> LineSequence:
    """Merged-mode launch with the default launcher."""
    return await _default_launcher.start(command, arguments, options, **overrides)


async def start_dual(
    command: Command,
    arguments: str | None = None,
    options: LaunchOptions | None = None,
    **overrides: Any,
) -> DualLaunch:
    """Dual-mode launch with the default launcher."""
    return await _default_launcher.start_dual(command, arguments, options, **overrides)


async def start_read_binary(
    command: Command,
    arguments: str | None = None,
    options: LaunchOptions | None = None,
    **overrides: Any,
) -> asyncio.Future[bytes]:
    """Binary-mode launch with the default launcher."""
    return await _default_launcher.start_read_binary(command, arguments, options, **overrides)


async def read_binary(
    command: Command,
    arguments: str | None = None,
    options: LaunchOptions | None = None,
    **overrides: Any,
) -> bytes:
    """Binary-mode launch with the default launcher, awaited."""
    return await _default_launcher.read_binary(command, arguments, options, **overrides)
