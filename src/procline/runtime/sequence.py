"""Pull-based line sequences over a launched process.

A LineSequence reads one LineChannel. The OWNING variant also holds the
ProcessHandle and disposes it when iteration finishes, fails, is cancelled or
the sequence is closed; killing the process if it is still running. A
NON_OWNING sequence (the stderr side of a dual launch) only stops reading its
own channel.

Example:
    lines = await procline.start("git log --oneline -n 5")
    async with lines:
        async for line in lines:
            print(line)

Early exits from ``async for`` (break/return) do not notify the iterator, so
use ``async with`` or ``aclose()`` when a loop may stop before the end.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from enum import Enum
from typing import TextIO

from .channel import LineChannel
from .handle import ProcessHandle

__all__ = [
    "LineSequence",
    "Ownership",
    "SequenceState",
]

logger = logging.getLogger(__name__)


class Ownership(str, Enum):
    """Whether a sequence controls the lifetime of its process."""

    OWNING = "owning"
    NON_OWNING = "non_owning"


class SequenceState(str, Enum):
    """Iteration state of a LineSequence."""

    ITERATING = "iterating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class LineSequence:
    """Async iterator of decoded output lines.

    Attributes:
        ownership: OWNING sequences dispose the process handle
        failure: Error that ended iteration (state FAILED), else None
    """

    def __init__(
        self,
        channel: LineChannel,
        handle: ProcessHandle | None = None,
        ownership: Ownership = Ownership.NON_OWNING,
    ) -> None:
        if ownership is Ownership.OWNING and handle is None:
            raise ValueError("an owning sequence needs a process handle")
        self._channel = channel
        self._handle = handle
        self.ownership = ownership
        self.failure: BaseException | None = None
        self._state = SequenceState.ITERATING
        self._current: str | None = None
        self._cancel_event: asyncio.Event | None = None
        self._cancel_watcher: asyncio.Task | None = None
        self._disposed = False

    def __repr__(self) -> str:
        pid = self._handle.pid if self._handle is not None else None
        return (
            f"LineSequence(pid={pid}, ownership={self.ownership.value}, "
            f"state={self._state.value})"
        )

    @property
    def state(self) -> SequenceState:
        return self._state

    @property
    def handle(self) -> ProcessHandle | None:
        """Process this sequence reads from (None for detached channels)."""
        return self._handle

    @property
    def current(self) -> str:
        """Line produced by the last successful advance().

        Raises:
            RuntimeError: If advance() has not just returned True
        """
        if self._current is None:
            raise RuntimeError("current is only valid after advance() returned True")
        return self._current

    def with_cancellation(self, cancel_event: asyncio.Event) -> LineSequence:
        """Bind a cancellation signal to this sequence.

        When the event is set, an OWNING sequence kills its process right
        away and any pending or later advance() returns False with state
        CANCELLED. Must be called from a running event loop.

        Returns:
            self, so it can be chained into ``async for``
        """
        if self._cancel_event is not None:
            raise RuntimeError("a cancellation event is already bound")
        self._cancel_event = cancel_event
        if self._state is SequenceState.ITERATING:
            self._cancel_watcher = asyncio.get_running_loop().create_task(
                self._watch_cancellation(cancel_event)
            )
        return self

    async def _watch_cancellation(self, cancel_event: asyncio.Event) -> None:
        await cancel_event.wait()
        if self._state is SequenceState.ITERATING:
            logger.debug(f"Cancellation requested for {self!r}")
            self._cancel_watcher = None
            self._finish(SequenceState.CANCELLED)

    def _cancel_requested(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    async def advance(self) -> bool:
        """Move to the next line.

        Returns:
            True if a line is available in ``current``; False once the
            channel is finished or the sequence was cancelled or closed.

        Raises:
            ProcessExecutionError: When the process failed, raised once all
                lines queued before the failure have been read.
            asyncio.CancelledError: When the awaiting task is cancelled;
                the process is disposed first (OWNING only).
        """
        self._current = None
        if self._state is not SequenceState.ITERATING:
            return False
        if self._cancel_requested():
            self._finish(SequenceState.CANCELLED)
            return False

        line = self._channel.try_read()
        if line is not None:
            self._current = line
            return True

        try:
            ready = await self._channel.wait_for_data(self._cancel_event)
        except asyncio.CancelledError:
            self._finish(SequenceState.CANCELLED)
            raise
        except Exception as e:
            self.failure = e
            self._finish(SequenceState.FAILED)
            raise

        if self._state is not SequenceState.ITERATING:
            return False
        if self._cancel_requested():
            self._finish(SequenceState.CANCELLED)
            return False
        if not ready:
            self._finish(SequenceState.COMPLETED)
            return False

        self._current = self._channel.try_read()
        return self._current is not None

    def __aiter__(self) -> LineSequence:
        return self

    async def __anext__(self) -> str:
        if await self.advance():
            return self.current
        raise StopAsyncIteration

    def _finish(self, state: SequenceState) -> None:
        if self._state is SequenceState.ITERATING:
            self._state = state
            logger.debug(f"Sequence finished: {self!r}")
        self.dispose()

    def dispose(self) -> None:
        """Stop the sequence; an OWNING sequence also disposes its process.

        Idempotent. Lines still queued are discarded.
        """
        if self._state is SequenceState.ITERATING:
            self._state = SequenceState.CANCELLED
        if self._disposed:
            return
        self._disposed = True

        watcher = self._cancel_watcher
        self._cancel_watcher = None
        if watcher is not None and not watcher.done():
            watcher.cancel()

        if self.ownership is Ownership.OWNING and self._handle is not None:
            self._handle.dispose()

    async def aclose(self) -> None:
        self.dispose()

    async def __aenter__(self) -> LineSequence:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    # Whole-sequence helpers

    async def wait(self) -> None:
        """Consume every line and wait for the process to finish."""
        async with self:
            async for _ in self:
                pass

    async def first(self) -> str:
        """Return the first line, after consuming the rest.

        Raises:
            ValueError: If the process produced no lines
        """
        result = await self.first_or_none()
        if result is None:
            raise ValueError("Process does not return any data.")
        return result

    async def first_or_none(self) -> str | None:
        """Return the first line or None, after consuming the rest."""
        result: str | None = None
        async with self:
            async for line in self:
                if result is None:
                    result = line
        return result

    async def to_list(self) -> list[str]:
        """Collect every line in order."""
        async with self:
            return [line async for line in self]

    async def write_all(self, sink: TextIO | None = None) -> None:
        """Write every line to a text sink (stdout by default)."""
        if sink is None:
            sink = sys.stdout
        async with self:
            async for line in self:
                sink.write(line + "\n")
        sink.flush()
