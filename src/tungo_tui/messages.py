"""
Messages and effects of the dashboard update loop.

Every model exposes a pure update(msg) -> (model, effects). Messages are
immutable facts delivered to the loop (key presses, resizes, ticks,
results of waits, external control calls). Effects are instructions the
driver carries out after the update returns:
- Task: start a keyed background wait that posts one message
- Cancel: stop the keyed wait, if still pending
- Emit: publish a SessionEvent to the external caller
- WriteSeparator: mark a transition in the captured log
- ClearScreen: force a full redraw
- Quit: end the loop

Per-activation sequence numbers in tick/wait messages let models discard
results that outlived the screen or runtime that asked for them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from tungo_tui.telemetry import TrafficSnapshot

if TYPE_CHECKING:
    from tungo_tui.types import RuntimeOptions, SessionEvent


# --- Messages ---


@dataclass(frozen=True)
class KeyMsg:
    """A decoded key press, e.g. "up", "enter", "ctrl+c", "q"."""

    key: str


@dataclass(frozen=True)
class ResizeMsg:
    width: int
    height: int


@dataclass(frozen=True)
class RuntimeTickMsg:
    """Dataplane sampling tick, carrying the snapshot taken for it."""

    seq: int
    snapshot: TrafficSnapshot | None = None


@dataclass(frozen=True)
class LogTickMsg:
    """Log feed refresh; seq 0 never matches a live wait."""

    seq: int = 0


@dataclass(frozen=True)
class RuntimeReadyMsg:
    seq: int


@dataclass(frozen=True)
class RuntimeContextDoneMsg:
    """The runtime's governing context ended."""

    seq: int


@dataclass(frozen=True)
class ContextDoneMsg:
    """The application context ended."""


@dataclass(frozen=True)
class ActivateRuntimeMsg:
    done: asyncio.Event
    options: RuntimeOptions


@dataclass(frozen=True)
class FatalErrorMsg:
    message: str
    title: str = "Fatal error"


@dataclass(frozen=True)
class CloseMsg:
    """Graceful close requested by the session owner."""


# --- Effects ---


@dataclass(frozen=True)
class Task:
    """
    Start a background wait.

    A new Task replaces a still-pending task with the same key.

    Attributes:
        key: Name of the wait, used to replace or cancel it
        run: Coroutine factory; its result (if not None) is posted
    """

    key: str
    run: Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class Cancel:
    key: str


@dataclass(frozen=True)
class Emit:
    event: SessionEvent


@dataclass(frozen=True)
class WriteSeparator:
    label: str


@dataclass(frozen=True)
class ClearScreen:
    pass


@dataclass(frozen=True)
class Quit:
    pass


Effect = Task | Cancel | Emit | WriteSeparator | ClearScreen | Quit


def without_quit(effects: list[Effect]) -> list[Effect]:
    """Drop Quit from a submodel's effects; the session decides when to quit."""
    return [effect for effect in effects if not isinstance(effect, Quit)]


async def wait_or_done(waiter: Awaitable[Any], done: asyncio.Event | None) -> bool:
    """
    Wait for waiter unless done fires first.

    Args:
        waiter: Awaitable to wait for
        done: Governing cancellation event, or None

    Returns:
        True if waiter completed, False if done fired first
    """
    if done is None:
        await waiter
        return True
    if done.is_set():
        if asyncio.iscoroutine(waiter):
            waiter.close()
        return False

    wait_task = asyncio.ensure_future(waiter)
    done_task = asyncio.ensure_future(done.wait())
    try:
        finished, _ = await asyncio.wait(
            {wait_task, done_task}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        for task in (wait_task, done_task):
            if not task.done():
                task.cancel()
    if wait_task in finished:
        wait_task.result()
        return True
    return False
