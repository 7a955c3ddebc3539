"""
Program: the message loop that drives a dashboard model.

This module owns every side effect of the dashboard:
- Registers SIGWINCH/SIGINT/SIGTERM handlers before entering Live
- Reads keys with KeyboardTask and posts them as KeyMsg
- Runs keyed background waits and posts their results
- Publishes session events on a bounded asyncio.Queue
- Renders each frame on the alternate screen through rich Live

The model is any object with init() -> effects, update(msg) ->
(model, effects) and view() -> str. Messages are processed one at a
time in arrival order; the model is never touched outside the loop.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import signal
from collections.abc import Callable
from typing import Any, Protocol

from rich.console import Console
from rich.live import Live
from rich.text import Text

from tungo_tui.keyboard import KeyboardTask
from tungo_tui.messages import (
    Cancel,
    ClearScreen,
    CloseMsg,
    Effect,
    Emit,
    KeyMsg,
    Quit,
    ResizeMsg,
    Task,
    WriteSeparator,
)
from tungo_tui.types import SessionEvent

logger = logging.getLogger(__name__)


class Model(Protocol):
    def init(self) -> list[Effect]: ...

    def update(self, msg: object) -> tuple[Any, list[Effect]]: ...

    def view(self) -> str: ...


class Program:
    """
    Drives a model until it quits.

    Example:
        program = Program(model, events)
        final_model = await program.run()
    """

    def __init__(
        self,
        model: Model,
        events: asyncio.Queue[SessionEvent],
        console: Console | None = None,
        write_separator: Callable[[str], None] | None = None,
        read_keys: bool = True,
        alt_screen: bool = True,
        handle_signals: bool = True,
    ) -> None:
        """
        Initialize the program.

        Args:
            model: Initial model
            events: Queue receiving emitted session events
            console: Rich Console to use (creates default if None)
            write_separator: Sink for log separator lines
            read_keys: Read keys from the terminal
            alt_screen: Render on the alternate screen buffer
            handle_signals: Install resize and shutdown signal handlers
        """
        self.model = model
        self.console = console if console is not None else Console()
        self._events = events
        self._write_separator = write_separator
        self._read_keys = read_keys
        self._alt_screen = alt_screen
        self._handle_signals = handle_signals
        self._messages: asyncio.Queue[object] = asyncio.Queue()
        self._tasks: dict[str, asyncio.Task] = {}
        self._quit = False
        self._clear = False
        self._keyboard: KeyboardTask | None = None

    @property
    def pending_tasks(self) -> list[str]:
        """Keys of background waits still running."""
        return sorted(key for key, task in self._tasks.items() if not task.done())

    def send(self, msg: object) -> None:
        """Post a message to the loop. Call from the loop's thread."""
        self._messages.put_nowait(msg)

    async def run(self) -> Model:
        """
        Run until the model quits.

        Returns:
            The final model
        """
        loop = asyncio.get_running_loop()
        installed = self._install_signal_handlers(loop) if self._handle_signals else []

        keyboard_task: asyncio.Task | None = None
        try:
            with Live(
                console=self.console,
                screen=self._alt_screen,
                auto_refresh=False,
                redirect_stdout=False,
                redirect_stderr=False,
            ) as live:
                if self._read_keys:
                    self._keyboard = KeyboardTask(on_key=lambda key: self.send(KeyMsg(key)))
                    keyboard_task = asyncio.create_task(self._keyboard.run())

                width, height = self.console.size
                self.send(ResizeMsg(width, height))
                await self._apply(self.model.init())
                self._render(live)

                while not self._quit:
                    msg = await self._messages.get()
                    self.model, effects = self.model.update(msg)
                    await self._apply(effects)
                    if not self._quit:
                        self._render(live)
        finally:
            await self._cancel_all()
            if self._keyboard is not None:
                self._keyboard.stop()
            if keyboard_task is not None:
                keyboard_task.cancel()
                await asyncio.gather(keyboard_task, return_exceptions=True)
            for sig in installed:
                loop.remove_signal_handler(sig)
        return self.model

    async def _apply(self, effects: list[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, Task):
                self._start_task(effect)
            elif isinstance(effect, Cancel):
                task = self._tasks.pop(effect.key, None)
                if task is not None:
                    task.cancel()
            elif isinstance(effect, Emit):
                await self._events.put(effect.event)
            elif isinstance(effect, WriteSeparator):
                if self._write_separator is not None:
                    self._write_separator(effect.label)
            elif isinstance(effect, ClearScreen):
                self._clear = True
            elif isinstance(effect, Quit):
                self._quit = True

    def _start_task(self, effect: Task) -> None:
        previous = self._tasks.pop(effect.key, None)
        if previous is not None:
            previous.cancel()
        self._tasks[effect.key] = asyncio.create_task(self._run_task(effect))

    async def _run_task(self, effect: Task) -> None:
        try:
            msg = await effect.run()
        except Exception:
            logger.exception(f"Background wait {effect.key!r} failed")
            return
        finally:
            if self._tasks.get(effect.key) is asyncio.current_task():
                del self._tasks[effect.key]
        if msg is not None:
            self.send(msg)

    async def _cancel_all(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _render(self, live: Live) -> None:
        if self._clear:
            self._clear = False
            self.console.clear()
        frame = Text.from_ansi(self.model.view(), no_wrap=True, end="")
        live.update(frame, refresh=True)

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> list[signal.Signals]:
        handlers = {
            signal.SIGINT: functools.partial(self.send, KeyMsg("ctrl+c")),
            signal.SIGTERM: functools.partial(self.send, CloseMsg()),
        }
        if hasattr(signal, "SIGWINCH"):
            handlers[signal.SIGWINCH] = self._handle_resize

        installed = []
        for sig, handler in handlers.items():
            try:
                loop.add_signal_handler(sig, handler)
            except (NotImplementedError, RuntimeError):
                logger.debug(f"Signal {sig!r} not supported on this loop")
                continue
            installed.append(sig)
        return installed

    def _handle_resize(self) -> None:
        width, height = self.console.size
        self.send(ResizeMsg(width, height))
