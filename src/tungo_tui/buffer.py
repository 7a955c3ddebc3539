"""
RuntimeLogBuffer for capturing daemon log output.

This module implements the log feed shown on the Logs screens:
- RuntimeLogBuffer: fixed-capacity ring of completed lines
- ChangeSignal: capacity-1, coalescing change notification
- PollableFeed / ObservableFeed: how a reader subscribes to a source
- LogCapture: scoped redirection of the logging root into a buffer

Many writer threads append; one UI reader copies out tails. Writers never
block on readers: a change notification is a non-blocking, coalesced
post, so a slow or absent reader costs nothing.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import threading
from dataclasses import dataclass
from typing import Protocol

DEFAULT_CAPACITY = 256
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class ChangeSignal:
    """
    Capacity-1 change notification usable from any thread.

    notify() never blocks. Notifications posted while one is already
    pending are coalesced into it. wait() is awaited from an event loop
    and consumes the pending notification.

    Example:
        signal = ChangeSignal()
        signal.notify()          # writer thread
        await signal.wait()      # UI task
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending = False
        self._waiters: list[tuple[asyncio.AbstractEventLoop, asyncio.Event]] = []

    def notify(self) -> None:
        """Post a notification without blocking."""
        with self._lock:
            self._pending = True
            waiters = list(self._waiters)
        for loop, event in waiters:
            try:
                loop.call_soon_threadsafe(event.set)
            except RuntimeError:
                # Waiter's loop already closed
                continue

    async def wait(self) -> None:
        """Wait for and consume one notification."""
        loop = asyncio.get_running_loop()
        event = asyncio.Event()
        entry = (loop, event)
        with self._lock:
            if self._pending:
                self._pending = False
                return
            self._waiters.append(entry)
        try:
            while True:
                await event.wait()
                event.clear()
                with self._lock:
                    if self._pending:
                        self._pending = False
                        return
        finally:
            with self._lock:
                self._waiters.remove(entry)


class LogSource(Protocol):
    """Anything the log viewport can read lines from."""

    def tail(self, limit: int) -> list[str]: ...

    def tail_into(self, dst: list[str], limit: int) -> int: ...


class RuntimeLogBuffer:
    """
    Fixed-capacity ring buffer of completed log lines.

    write() accepts arbitrary chunks; text up to each newline becomes one
    line (trailing carriage return stripped). Text after the last newline
    is held as a partial line and is never visible through tail().

    Thread-safe: all state is guarded by a single mutex.

    Example:
        buffer = RuntimeLogBuffer(capacity=3)
        buffer.write("one\\n")
        buffer.write("two\\nthree\\nfour\\n")
        buffer.tail(2)  # ["three", "four"]
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """
        Initialize the ring.

        Args:
            capacity: Maximum number of lines kept (<= 0 uses the default)
        """
        if capacity <= 0:
            capacity = DEFAULT_CAPACITY
        self._capacity = capacity
        self._lines: list[str] = [""] * capacity
        self._head = 0
        self._count = 0
        self._partial = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._lock = threading.Lock()
        self._changes = ChangeSignal()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        """Return number of completed lines held."""
        with self._lock:
            return self._count

    def write(self, data: str | bytes) -> int:
        """
        Append a chunk of log output.

        Args:
            data: Text or UTF-8 bytes; may contain any number of newlines.
                A multi-byte character may be split across byte writes.

        Returns:
            Length of data, as a stream write would
        """
        with self._lock:
            chunk = self._decoder.decode(data) if isinstance(data, bytes) else data
            while chunk:
                newline = chunk.find("\n")
                if newline < 0:
                    self._partial += chunk
                    break
                line = (self._partial + chunk[:newline]).rstrip("\r")
                self._partial = ""
                self._append_locked(line)
                chunk = chunk[newline + 1 :]
        return len(data)

    def flush(self) -> None:
        """No-op; present so the buffer can back a logging stream."""

    def write_separator(self, label: str) -> None:
        """Append a visual separator line such as '----- disconnected -----'."""
        self.write(f"----- {label} -----\n")

    def tail(self, limit: int) -> list[str]:
        """
        Copy out the most recent lines.

        Args:
            limit: Maximum number of lines

        Returns:
            Up to min(limit, len(self)) newest lines, oldest first
        """
        with self._lock:
            n = min(limit, self._count)
            if n <= 0:
                return []
            return self._slice_locked(n)

    def tail_into(self, dst: list[str], limit: int) -> int:
        """
        Copy the most recent lines into dst.

        Args:
            dst: Destination list, filled from index 0
            limit: Maximum number of lines

        Returns:
            Number of lines copied: min(limit, len(self), len(dst))
        """
        with self._lock:
            n = min(limit, self._count, len(dst))
            if n <= 0:
                return 0
            dst[:n] = self._slice_locked(n)
            return n

    def changes(self) -> ChangeSignal:
        """Return the change notification posted on every appended line."""
        return self._changes

    def clear(self) -> None:
        """Drop all lines and the pending partial line."""
        with self._lock:
            self._lines = [""] * self._capacity
            self._head = 0
            self._count = 0
            self._partial = ""
            self._decoder.reset()

    def _slice_locked(self, n: int) -> list[str]:
        start = (self._head - n) % self._capacity
        end = start + n
        if end <= self._capacity:
            return self._lines[start:end]
        # Range straddles the ring boundary
        return self._lines[start:] + self._lines[: end - self._capacity]

    def _append_locked(self, line: str) -> None:
        self._lines[self._head] = line
        self._head = (self._head + 1) % self._capacity
        if self._count < self._capacity:
            self._count += 1
        self._changes.notify()


@dataclass(frozen=True)
class PollableFeed:
    """A log source read on a fixed refresh interval."""

    source: LogSource

    def tail(self, limit: int) -> list[str]:
        return self.source.tail(limit)

    def tail_into(self, dst: list[str], limit: int) -> int:
        return self.source.tail_into(dst, limit)


@dataclass(frozen=True)
class ObservableFeed:
    """A log source that pushes a change notification on every append."""

    source: LogSource
    changes: ChangeSignal

    def tail(self, limit: int) -> list[str]:
        return self.source.tail(limit)

    def tail_into(self, dst: list[str], limit: int) -> int:
        return self.source.tail_into(dst, limit)


LogFeed = PollableFeed | ObservableFeed


def subscribe_feed(source: LogSource | None) -> LogFeed | None:
    """
    Pick the feed variant for a source, once.

    Sources exposing changes() get push-based refresh; everything else is
    polled.

    Args:
        source: Log source, or None when no log feed exists

    Returns:
        ObservableFeed, PollableFeed, or None
    """
    if source is None:
        return None
    changes_fn = getattr(source, "changes", None)
    if callable(changes_fn):
        changes = changes_fn()
        if isinstance(changes, ChangeSignal):
            return ObservableFeed(source=source, changes=changes)
    return PollableFeed(source=source)


class LogCapture:
    """
    Redirects the logging root into a RuntimeLogBuffer for a scope.

    While installed, the root logger's handlers are replaced by a single
    stream handler writing into the buffer, so records never reach the
    terminal underneath the dashboard. Uninstalling restores the previous
    handlers and level. Both operations are idempotent.

    Example:
        with LogCapture(buffer):
            logging.getLogger("tunnel").info("up")   # lands in buffer
    """

    def __init__(
        self,
        buffer: RuntimeLogBuffer,
        logger: logging.Logger | None = None,
        level: int = logging.INFO,
        fmt: str = DEFAULT_LOG_FORMAT,
    ) -> None:
        self._buffer = buffer
        self._logger = logger if logger is not None else logging.getLogger()
        self._level = level
        self._handler = logging.StreamHandler(buffer)
        self._handler.setFormatter(logging.Formatter(fmt))
        self._previous_handlers: list[logging.Handler] | None = None
        self._previous_level = logging.NOTSET
        self._lock = threading.Lock()

    @property
    def installed(self) -> bool:
        return self._previous_handlers is not None

    def install(self) -> None:
        """Route logging into the buffer; no-op if already installed."""
        with self._lock:
            if self._previous_handlers is not None:
                return
            self._previous_handlers = list(self._logger.handlers)
            self._previous_level = self._logger.level
            for handler in self._previous_handlers:
                self._logger.removeHandler(handler)
            self._logger.addHandler(self._handler)
            self._logger.setLevel(self._level)

    def uninstall(self) -> None:
        """Restore the previous handlers; no-op if not installed."""
        with self._lock:
            if self._previous_handlers is None:
                return
            self._logger.removeHandler(self._handler)
            for handler in self._previous_handlers:
                self._logger.addHandler(handler)
            self._logger.setLevel(self._previous_level)
            self._previous_handlers = None

    def __enter__(self) -> RuntimeLogBuffer:
        self.install()
        return self._buffer

    def __exit__(self, *exc_info: object) -> None:
        self.uninstall()
