"""Single-producer/single-consumer line channel.

A LineChannel carries decoded lines from one stream reader task to one
LineSequence. It is unbounded (the writer never waits) and completes exactly
once, either cleanly or with an error that the reader sees after the queue is
drained.
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque

__all__ = [
    "LineChannel",
    "CapturedLines",
]


class LineChannel:
    """Unbounded FIFO of text lines with a single-fire completion.

    Must be used from a single event loop. Lines written after completion
    are dropped.
    """

    def __init__(self) -> None:
        self._queue: deque[str] = deque()
        self._completed = False
        self._error: BaseException | None = None
        self._signal = asyncio.Event()

    @property
    def completed(self) -> bool:
        """Whether complete() has fired."""
        return self._completed

    @property
    def error(self) -> BaseException | None:
        """Error attached to the completion, if any."""
        return self._error

    def __len__(self) -> int:
        return len(self._queue)

    def write(self, line: str) -> bool:
        """Enqueue a line.

        Returns:
            False if the channel is already complete and the line was dropped
        """
        if self._completed:
            return False
        self._queue.append(line)
        self._signal.set()
        return True

    def complete(self, error: BaseException | None = None) -> bool:
        """Finish the channel, optionally with an error.

        Only the first call has an effect.

        Returns:
            True if this call completed the channel
        """
        if self._completed:
            return False
        self._completed = True
        self._error = error
        self._signal.set()
        return True

    def try_read(self) -> str | None:
        """Dequeue a line without waiting, or return None if none is queued."""
        if self._queue:
            return self._queue.popleft()
        return None

    async def wait_for_data(self, cancel_event: asyncio.Event | None = None) -> bool:
        """Wait until a line can be read or the channel is finished.

        Args:
            cancel_event: Optional event that interrupts the wait

        Returns:
            True when a line is queued. False when the channel completed
            cleanly with nothing left, or when cancel_event is set.

        Raises:
            The error attached by complete(error), once the queue is empty.
        """
        while True:
            if self._queue:
                return True
            if self._completed:
                if self._error is not None:
                    raise self._error
                return False
            if cancel_event is not None and cancel_event.is_set():
                return False

            self._signal.clear()
            if cancel_event is None:
                await self._signal.wait()
                continue

            data_task = asyncio.ensure_future(self._signal.wait())
            cancel_task = asyncio.ensure_future(cancel_event.wait())
            try:
                await asyncio.wait(
                    [data_task, cancel_task],
                    return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                for task in (data_task, cancel_task):
                    if not task.done():
                        task.cancel()


class CapturedLines:
    """Append-only list of stderr lines captured during one launch.

    Appended by the stderr reader and read once by the finalizer, so both
    sides go through a lock.
    """

    def __init__(self) -> None:
        self._lines: list[str] = []
        self._lock = threading.Lock()

    def append(self, line: str) -> None:
        with self._lock:
            self._lines.append(line)

    def snapshot(self) -> list[str]:
        """Return a copy of the captured lines in arrival order."""
        with self._lock:
            return list(self._lines)

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)

    def __bool__(self) -> bool:
        return len(self) > 0
