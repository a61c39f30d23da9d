"""Exception types raised by procline.

procline runtime v0.1.0
"""

from __future__ import annotations

from collections.abc import Iterable

__all__ = [
    "ProcessError",
    "ProcessStartError",
    "ProcessExecutionError",
]


class ProcessError(Exception):
    """Base class for procline errors."""
    pass


class ProcessStartError(ProcessError):
    """The OS refused to spawn the process.

    Raised at the launch call itself; nothing is left running. The
    underlying ``OSError`` is available as ``__cause__``.

    Attributes:
        file_name: Executable that could not be started
        arguments: Argument string passed to it (None if there was none)
    """

    def __init__(self, file_name: str, arguments: str | None = None) -> None:
        self.file_name = file_name
        self.arguments = arguments
        super().__init__(
            f"Can't start process. FileName:{file_name}, Arguments:{arguments}"
        )


class ProcessExecutionError(ProcessError):
    """The process ran but did not succeed.

    Either its exit code is not in the acceptable set, or (merged and binary
    modes) it wrote to stderr. Delivered when consumption reaches the end of
    the line sequence or binary future.
    """

    def __init__(self, exit_code: int, error_output: Iterable[str] = ()) -> None:
        self._exit_code = exit_code
        self._error_output = tuple(error_output)
        message = f"Process returns error, ExitCode:{exit_code}"
        if self._error_output:
            message += "\n" + "\n".join(self._error_output)
        super().__init__(message)

    @property
    def exit_code(self) -> int:
        """Exit code reported by the process."""
        return self._exit_code

    @property
    def error_output(self) -> tuple[str, ...]:
        """Captured stderr lines, in the order they were written."""
        return self._error_output

    def __reduce__(self):
        return (type(self), (self._exit_code, self._error_output))
