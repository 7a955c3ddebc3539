"""
Scrollable window over the log feed.

The viewport holds a snapshot of the newest feed lines and an offset into
it. In follow mode the window sticks to the bottom as new lines arrive;
scrolling up leaves follow mode, End or Space re-enters it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace

from tungo_tui.buffer import LogFeed, ObservableFeed
from tungo_tui.keyboard import DEFAULT_KEYS, KeyMap
from tungo_tui.layout import truncate
from tungo_tui.messages import LogTickMsg, RuntimeContextDoneMsg, Task, wait_or_done
from tungo_tui.preferences import UIPreferences
from tungo_tui.render import logs_viewport_size
from tungo_tui.styles import TextStyle

SNAPSHOT_LIMIT = 4096
EMPTY_PLACEHOLDER = "No logs yet"


@dataclass(frozen=True)
class LogViewport:
    """
    Immutable log viewport state.

    Attributes:
        lines: Snapshot of feed lines, oldest first
        offset: Index of the first visible line
        follow: Stick to the newest line on refresh
        width: Visible columns
        height: Visible rows
        tick_seq: Sequence of the current refresh wait
        scratch: Reused destination for feed copies, shared by every
            version of the viewport
    """

    lines: tuple[str, ...] = ()
    offset: int = 0
    follow: bool = True
    width: int = 80
    height: int = 8
    tick_seq: int = 0
    scratch: list[str] = field(default_factory=list, compare=False, repr=False)

    @property
    def max_offset(self) -> int:
        return max(0, len(self.lines) - self.height)

    @property
    def at_bottom(self) -> bool:
        return self.offset >= self.max_offset

    def ensure(
        self,
        terminal_width: int,
        terminal_height: int,
        prefs: UIPreferences,
        subtitle: str,
        hint: str,
    ) -> LogViewport:
        """Resize to fit the terminal, keeping the offset in range."""
        width, height = logs_viewport_size(terminal_width, terminal_height, prefs, subtitle, hint)
        return replace(self, width=width, height=height)._scrolled(self.offset)

    def refresh(self, feed: LogFeed | None) -> LogViewport:
        """Take a new snapshot of the feed."""
        lines: tuple[str, ...] = ()
        if feed is not None:
            if len(self.scratch) < SNAPSHOT_LIMIT:
                self.scratch.extend([""] * (SNAPSHOT_LIMIT - len(self.scratch)))
            count = feed.tail_into(self.scratch, SNAPSHOT_LIMIT)
            lines = tuple(self.scratch[:count])
        updated = replace(self, lines=lines)
        if self.follow:
            return replace(updated, offset=updated.max_offset)
        return updated._scrolled(self.offset)

    def restarted(self) -> LogViewport:
        """Return a viewport whose refresh wait has a fresh sequence."""
        return replace(self, tick_seq=self.tick_seq + 1)

    def handle_key(self, key: str, keys: KeyMap = DEFAULT_KEYS) -> LogViewport:
        """
        Apply a scroll key.

        Args:
            key: Key name
            keys: Key bindings for up/down

        Returns:
            Updated viewport (unchanged for unrelated keys)
        """
        page = max(1, self.height)
        if key in keys.up:
            return replace(self._scrolled(self.offset - 1), follow=False)
        if key in keys.down:
            moved = self._scrolled(self.offset + 1)
            return replace(moved, follow=moved.at_bottom and self.follow)
        if key == "pgup":
            return replace(self._scrolled(self.offset - page), follow=False)
        if key == "pgdown":
            moved = self._scrolled(self.offset + page)
            return replace(moved, follow=moved.at_bottom and self.follow)
        if key == "home":
            return replace(self, offset=0, follow=False)
        if key == "end":
            return replace(self, offset=self.max_offset, follow=True)
        if key == "space":
            if self.follow:
                return replace(self, follow=False)
            return replace(self, offset=self.max_offset, follow=True)
        return self

    def view(self, style: TextStyle | None = None) -> list[str]:
        """
        Return the visible lines, truncated to the viewport width.

        Args:
            style: Renderer applied to each line (muted text on screens)
        """
        render = style.render if style is not None else str
        if not self.lines:
            return [render(EMPTY_PLACEHOLDER)]
        visible = self.lines[self.offset : self.offset + self.height]
        return [render(truncate(line, self.width)) for line in visible]

    def _scrolled(self, offset: int) -> LogViewport:
        return replace(self, offset=min(max(0, offset), self.max_offset))


def log_update_task(
    key: str,
    feed: LogFeed | None,
    seq: int,
    poll_interval: float,
    done: asyncio.Event | None = None,
    runtime_seq: int = 0,
) -> Task:
    """
    Build the wait that refreshes a Logs screen.

    Observable feeds wake on their change signal; other feeds are polled
    every poll_interval seconds. When done fires first, the runtime's
    context-done message is posted instead.

    Args:
        key: Task key of the owning screen
        feed: Log feed being shown
        seq: Viewport tick sequence the result is stamped with
        poll_interval: Polling period for feeds without change signal
        done: Governing runtime context, or None
        runtime_seq: Runtime activation the wait belongs to

    Returns:
        Task effect
    """

    async def run() -> LogTickMsg | RuntimeContextDoneMsg:
        if isinstance(feed, ObservableFeed):
            waiter = feed.changes.wait()
        else:
            waiter = asyncio.sleep(poll_interval)
        if await wait_or_done(waiter, done):
            return LogTickMsg(seq=seq)
        return RuntimeContextDoneMsg(seq=runtime_seq)

    return Task(key=key, run=run)
