"""procline command-line front-end.

Usage:
    procline [options] COMMAND [ARG ...]

A single COMMAND string is split at its first space into executable and
argument string; several words are used as an argv list.

Examples:
    procline "git status -s"
    procline --mode dual --env LANG=C -- make test
    procline --mode binary "cat logo.png" > copy.png
    procline --shell --timeout 5 "ls | wc -l"

Exit status:
    0 on success, the child's exit code on a process failure, 124 on
    timeout, 127 when the process cannot be started, 130 on interrupt.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

import anyio

from . import __version__
from .config import Config, get_config
from .errors import ProcessExecutionError, ProcessStartError
from .runtime.launcher import LaunchOptions, ProcessLauncher
from .runtime.sequence import LineSequence
from .zx.scripting import Env

__all__ = ["main", "build_parser", "configure_logging"]

logger = logging.getLogger(__name__)

EXIT_TIMEOUT = 124
EXIT_START_FAILED = 127
EXIT_INTERRUPTED = 130

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _parse_env_pair(value: str) -> tuple[str, str]:
    key, sep, val = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {value!r}")
    return key, val


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="procline",
        description="Run a process and stream its output line by line.",
    )
    parser.add_argument("command", nargs="+", help="Command string, or executable and arguments")
    parser.add_argument("--cwd", default=None, help="Working directory")
    parser.add_argument(
        "--env",
        action="append",
        type=_parse_env_pair,
        default=[],
        metavar="KEY=VALUE",
        help="Environment variable override (repeatable)",
    )
    parser.add_argument("--encoding", default=None, help="Output text encoding")
    parser.add_argument(
        "--accept-exit-code",
        action="append",
        type=int,
        dest="accept_exit_codes",
        default=None,
        metavar="CODE",
        help="Exit code treated as success (repeatable, default 0)",
    )
    parser.add_argument(
        "--mode",
        choices=("merged", "dual", "binary"),
        default="merged",
        help="merged: stdout lines, stderr on failure; dual: both streams; binary: raw stdout",
    )
    parser.add_argument("--timeout", type=float, default=None, help="Kill the process after SECONDS")
    parser.add_argument("--shell", action="store_true", help="Run the command through the shell")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="procline log level (default INFO, DEBUG with PROCLINE_LOG_DEBUG)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def configure_logging(config: Config, level: str | None = None) -> None:
    """Configure logging: stderr by default, a temp file in debug mode."""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    if level is not None:
        log_level = getattr(logging, level)

    # Third-party loggers stay at WARNING
    logging.basicConfig(level=logging.WARNING, handlers=log_handlers)
    logging.getLogger("procline").setLevel(log_level)


def _resolve_command(args: argparse.Namespace) -> str | list[str]:
    words: list[str] = args.command
    if args.shell:
        return Env().shell_argv(" ".join(words))
    if len(words) == 1:
        return words[0]
    return words


async def _write_lines(sequence: LineSequence, stream) -> None:
    async with sequence:
        async for line in sequence:
            stream.write(line + "\n")
            stream.flush()


async def _run(args: argparse.Namespace) -> int:
    command = _resolve_command(args)
    options = LaunchOptions(
        cwd=args.cwd,
        env=dict(args.env) if args.env else None,
        encoding=args.encoding,
        acceptable_exit_codes=frozenset(args.accept_exit_codes) if args.accept_exit_codes else None,
    )
    launcher = ProcessLauncher(options=options)

    if args.mode == "binary":
        payload = await launcher.read_binary(command)
        sys.stdout.buffer.write(payload)
        sys.stdout.buffer.flush()
        return 0

    if args.mode == "dual":
        handle, stdout, stderr = await launcher.start_dual(command)
        await handle.close_stdin()
        results = await asyncio.gather(
            _write_lines(stdout, sys.stdout),
            _write_lines(stderr, sys.stderr),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return 0

    await _write_lines(await launcher.start(command), sys.stdout)
    return 0


async def _run_with_timeout(args: argparse.Namespace) -> int:
    if args.timeout is None:
        return await _run(args)
    with anyio.fail_after(args.timeout):
        return await _run(args)


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(get_config(), args.log_level)

    try:
        return asyncio.run(_run_with_timeout(args))
    except ProcessStartError as e:
        print(f"procline: {e}", file=sys.stderr)
        return EXIT_START_FAILED
    except ProcessExecutionError as e:
        for line in e.error_output:
            print(line, file=sys.stderr)
        logger.info(f"Process failed with exit code {e.exit_code}")
        return e.exit_code if e.exit_code > 0 else 1
    except TimeoutError:
        print(f"procline: timed out after {args.timeout}s", file=sys.stderr)
        return EXIT_TIMEOUT
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
