"""
Session: one dashboard across configuration and runtime phases.

Phases:
- CONFIGURING: the mode selector is shown
- WAITING_FOR_RUNTIME: a mode was chosen, the caller is starting the
  data plane and will call activate_runtime()
- RUNTIME: the runtime dashboard is shown
- FATAL_ERROR: an unrecoverable error is shown until dismissed

SessionModel is the pure state machine. Only the active phase's submodel
receives input. Runtime results carry the activation's sequence number;
results from an earlier activation are ignored.

Session is the caller's handle. It runs the Program in a background
task and exposes blocking calls built on two primitives only: a bounded
event queue and a done event. When done fires, events already queued
are consumed before a waiter falls back to SessionClosedError.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TypeVar

from rich.console import Console

from tungo_tui.buffer import LogCapture, RuntimeLogBuffer
from tungo_tui.config import Settings, settings as default_settings
from tungo_tui.configurator import Configurator, ConfiguratorOptions, new_configurator
from tungo_tui.dashboard import RuntimeDashboard, new_runtime_dashboard
from tungo_tui.exceptions import (
    ConfiguratorError,
    ConfiguratorUserExitError,
    RuntimeDisconnectedError,
    SessionClosedError,
    SessionQuitError,
)
from tungo_tui.fatal import FatalErrorModel
from tungo_tui.layout import content_width_for_terminal
from tungo_tui.messages import (
    ActivateRuntimeMsg,
    ClearScreen,
    CloseMsg,
    ContextDoneMsg,
    Effect,
    Emit,
    FatalErrorMsg,
    KeyMsg,
    Quit,
    ResizeMsg,
    RuntimeContextDoneMsg,
    Task,
    WriteSeparator,
    without_quit,
)
from tungo_tui.preferences import JsonPreferencesStore, PreferencesProvider
from tungo_tui.program import Program
from tungo_tui.render import CONFIGURATOR_TABS, render_screen, render_tabs_line
from tungo_tui.styles import resolve_styles
from tungo_tui.types import Mode, RuntimeOptions, SessionEvent, SessionEventKind

logger = logging.getLogger(__name__)

APP_DONE_KEY = "session.app_done"
INTERRUPT_KEY = "ctrl+c"
WAITING_BODY = "Starting..."

T = TypeVar("T")


class Phase(Enum):
    CONFIGURING = "configuring"
    WAITING_FOR_RUNTIME = "waiting_for_runtime"
    RUNTIME = "runtime"
    FATAL_ERROR = "fatal_error"


def _emit(kind: SessionEventKind, mode: Mode | None = None, error: BaseException | None = None) -> Emit:
    return Emit(SessionEvent(kind=kind, mode=mode, error=error))


def app_done_task(app_done: asyncio.Event) -> Task:
    async def run() -> ContextDoneMsg:
        await app_done.wait()
        return ContextDoneMsg()

    return Task(key=APP_DONE_KEY, run=run)


@dataclass(frozen=True)
class SessionModel:
    """
    Immutable session state.

    Attributes:
        provider: Preferences shared by every submodel
        config_options: Collaborators used to (re)build the configurator
        phase: Current phase
        configurator: Mode selector (logically active in CONFIGURING)
        runtime: Runtime dashboard, present only in RUNTIME
        fatal: Fatal error screen, present only in FATAL_ERROR
        runtime_seq: Incremented on every runtime activation
        app_done: Application context; setting it exits the session
        closed: Close already requested
    """

    provider: PreferencesProvider
    config_options: ConfiguratorOptions
    configurator: Configurator
    phase: Phase = Phase.CONFIGURING
    runtime: RuntimeDashboard | None = None
    fatal: FatalErrorModel | None = None
    width: int = 0
    height: int = 0
    runtime_seq: int = 0
    app_done: asyncio.Event | None = None
    closed: bool = False
    settings: Settings = field(default_factory=lambda: default_settings)

    def init(self) -> list[Effect]:
        effects = list(self.configurator.init())
        if self.app_done is not None:
            effects.append(app_done_task(self.app_done))
        return effects

    def update(self, msg: object) -> tuple[SessionModel, list[Effect]]:
        """
        Apply one message.

        Args:
            msg: Any loop message

        Returns:
            (new session model, effects)
        """
        if isinstance(msg, ResizeMsg):
            model = replace(self, width=msg.width, height=msg.height)
            return model._delegate(msg)

        if isinstance(msg, ContextDoneMsg):
            return self, [*self._stop_all_waits(), _emit(SessionEventKind.EXIT), Quit()]

        if isinstance(msg, CloseMsg):
            if self.closed:
                return self, []
            return replace(self, closed=True), [*self._stop_all_waits(), Quit()]

        if isinstance(msg, ActivateRuntimeMsg):
            return self._activate_runtime(msg)

        if isinstance(msg, RuntimeContextDoneMsg):
            if self.phase != Phase.RUNTIME or msg.seq != self.runtime_seq:
                return self, []
            model = replace(self, runtime=None, phase=Phase.WAITING_FOR_RUNTIME)
            return model, [
                *self._stop_all_waits(),
                WriteSeparator("disconnected"),
                _emit(SessionEventKind.RUNTIME_DISCONNECTED),
            ]

        if isinstance(msg, KeyMsg) and msg.key == INTERRUPT_KEY:
            return self, [*self._stop_all_waits(), _emit(SessionEventKind.EXIT), Quit()]

        if isinstance(msg, FatalErrorMsg):
            fatal = FatalErrorModel(
                title=msg.title,
                message=msg.message,
                preferences=self.provider.preferences(),
                width=self.width,
                height=self.height,
            )
            model = replace(self, fatal=fatal, phase=Phase.FATAL_ERROR)
            return model, self._stop_all_waits()

        return self._delegate(msg)

    # --- Transitions ---

    def _activate_runtime(self, msg: ActivateRuntimeMsg) -> tuple[SessionModel, list[Effect]]:
        if self.phase != Phase.WAITING_FOR_RUNTIME:
            logger.debug(f"Ignoring runtime activation in phase {self.phase.value}")
            return self, []
        seq = self.runtime_seq + 1
        runtime = new_runtime_dashboard(
            msg.options,
            self.provider,
            done=msg.done,
            runtime_seq=seq,
            width=self.width,
            height=self.height,
            tick_interval=self.settings.tick_interval,
            log_poll_interval=self.settings.log_poll_interval,
        )
        model = replace(self, runtime=runtime, runtime_seq=seq, phase=Phase.RUNTIME)
        return model, runtime.init()

    def _delegate(self, msg: object) -> tuple[SessionModel, list[Effect]]:
        if self.phase == Phase.CONFIGURING:
            return self._update_configurator(msg)
        if self.phase == Phase.RUNTIME:
            return self._update_runtime(msg)
        if self.phase == Phase.FATAL_ERROR:
            return self._update_fatal(msg)
        return self, []

    def _update_configurator(self, msg: object) -> tuple[SessionModel, list[Effect]]:
        configurator, effects = self.configurator.update(msg)
        model = replace(self, configurator=configurator)
        if not configurator.done:
            return model, without_quit(effects)

        effects = without_quit(effects)
        error = configurator.result_error
        if isinstance(error, ConfiguratorUserExitError):
            return model, [*effects, _emit(SessionEventKind.EXIT), Quit()]
        if error is not None:
            return model, [*effects, _emit(SessionEventKind.ERROR, error=error), Quit()]

        model = replace(model, phase=Phase.WAITING_FOR_RUNTIME)
        return model, [*effects, _emit(SessionEventKind.MODE_SELECTED, mode=configurator.result_mode)]

    def _update_runtime(self, msg: object) -> tuple[SessionModel, list[Effect]]:
        if self.runtime is None:
            return self, []
        runtime, effects = self.runtime.update(msg)
        model = replace(self, runtime=runtime)

        if runtime.exit_requested:
            return model, [*model._stop_all_waits(), _emit(SessionEventKind.EXIT), Quit()]
        if runtime.reconfigure_requested:
            return model._reconfigure()
        return model, without_quit(effects)

    def _reconfigure(self) -> tuple[SessionModel, list[Effect]]:
        stops = self._stop_all_waits()
        try:
            configurator = new_configurator(
                self.config_options,
                self.provider,
                width=self.width,
                height=self.height,
                log_poll_interval=self.settings.log_poll_interval,
            )
        except ConfiguratorError as exc:
            return self, [*stops, _emit(SessionEventKind.ERROR, error=exc), Quit()]

        model = replace(self, configurator=configurator, runtime=None, phase=Phase.CONFIGURING)
        return model, [
            *stops,
            WriteSeparator("reconfigured"),
            _emit(SessionEventKind.RECONFIGURE),
            *configurator.init(),
            ClearScreen(),
        ]

    def _update_fatal(self, msg: object) -> tuple[SessionModel, list[Effect]]:
        if self.fatal is None:
            return self, []
        fatal, effects = self.fatal.update(msg)
        model = replace(self, fatal=fatal)
        if fatal.dismissed:
            return model, [_emit(SessionEventKind.EXIT), Quit()]
        return model, without_quit(effects)

    def _stop_all_waits(self) -> list[Effect]:
        effects = self.configurator.stop_waits()
        if self.runtime is not None:
            effects.extend(self.runtime.stop_waits())
        return effects

    # --- Views ---

    def view(self) -> str:
        if self.phase == Phase.CONFIGURING:
            return self.configurator.view()
        if self.phase == Phase.RUNTIME and self.runtime is not None:
            return self.runtime.view()
        if self.phase == Phase.FATAL_ERROR and self.fatal is not None:
            return self.fatal.view()
        return self._waiting_view()

    def _waiting_view(self) -> str:
        prefs = self.provider.preferences()
        styles = resolve_styles(prefs.theme)
        tabs_line = render_tabs_line(
            CONFIGURATOR_TABS, 0, content_width_for_terminal(self.width), prefs.theme
        )
        return render_screen(self.width, self.height, tabs_line, "", [WAITING_BODY], "", prefs, styles)


def new_session_model(
    config_options: ConfiguratorOptions | None,
    provider: PreferencesProvider,
    app_done: asyncio.Event | None = None,
    settings: Settings | None = None,
) -> SessionModel:
    """
    Build the initial session state.

    Raises:
        ConfiguratorError: If the configurator cannot be built
    """
    settings = settings if settings is not None else default_settings
    configurator = new_configurator(
        config_options, provider, log_poll_interval=settings.log_poll_interval
    )
    return SessionModel(
        provider=provider,
        config_options=config_options,
        configurator=configurator,
        app_done=app_done,
        settings=settings,
    )


class Session:
    """
    External handle of an interactive dashboard session.

    Example:
        session = Session(ConfiguratorOptions(), log_buffer=buffer)
        await session.start()
        mode = await session.wait_for_mode()
        session.activate_runtime(runtime_done, RuntimeOptions(mode=mode))
        reconfigure = await session.wait_for_runtime_exit()
        await session.close()
    """

    def __init__(
        self,
        config_options: ConfiguratorOptions | None = None,
        provider: PreferencesProvider | None = None,
        log_buffer: RuntimeLogBuffer | None = None,
        app_done: asyncio.Event | None = None,
        console: Console | None = None,
        settings: Settings | None = None,
        read_keys: bool = True,
        alt_screen: bool = True,
        handle_signals: bool = True,
    ) -> None:
        """
        Initialize the session.

        Args:
            config_options: Mode selector collaborators
            provider: Preferences provider (default: loaded from the
                configured settings file)
            log_buffer: Buffer receiving captured logs while the session runs
            app_done: Application context; setting it exits the session
            console: Rich Console to render on
            settings: Configuration (default: environment settings)
            read_keys: Read keys from the terminal
            alt_screen: Render on the alternate screen buffer
            handle_signals: Install resize and shutdown signal handlers
        """
        self.settings = settings if settings is not None else default_settings
        if provider is None:
            provider = PreferencesProvider.from_store(JsonPreferencesStore(self.settings.settings_path))
        self.provider = provider
        self.config_options = config_options if config_options is not None else ConfiguratorOptions()
        self.log_buffer = log_buffer
        self.done = asyncio.Event()
        self._app_done = app_done
        self._console = console
        self._read_keys = read_keys
        self._alt_screen = alt_screen
        self._handle_signals = handle_signals
        self._events: asyncio.Queue[SessionEvent] = asyncio.Queue(maxsize=self.settings.event_buffer)
        self._program: Program | None = None
        self._task: asyncio.Task | None = None
        self._error: BaseException | None = None
        self._closing: asyncio.Future | None = None

    @property
    def error(self) -> BaseException | None:
        """Error the message loop terminated with, if any."""
        return self._error

    async def start(self) -> None:
        """
        Build the session and start its message loop.

        Raises:
            ConfiguratorError: If the configurator cannot be built
            RuntimeError: If the session was already started
        """
        if self._task is not None:
            raise RuntimeError("session already started")
        model = new_session_model(self.config_options, self.provider, self._app_done, self.settings)
        self._program = Program(
            model,
            self._events,
            console=self._console,
            write_separator=self.log_buffer.write_separator if self.log_buffer is not None else None,
            read_keys=self._read_keys,
            alt_screen=self._alt_screen,
            handle_signals=self._handle_signals,
        )
        self._task = asyncio.create_task(self._run(self._program))

    async def _run(self, program: Program) -> None:
        capture = LogCapture(self.log_buffer) if self.log_buffer is not None else None
        try:
            if capture is not None:
                capture.install()
            await program.run()
        except Exception as exc:
            logger.exception("Session loop failed")
            self._error = exc
        finally:
            if capture is not None:
                capture.uninstall()
            self.done.set()

    def activate_runtime(self, done: asyncio.Event, options: RuntimeOptions | None = None) -> None:
        """
        Switch to the runtime dashboard.

        Ignored unless the session is waiting for a runtime.

        Args:
            done: Runtime context; set it when the data plane stops
            options: Activation options
        """
        self._send(ActivateRuntimeMsg(done=done, options=options or RuntimeOptions()))

    async def wait_for_mode(self) -> Mode:
        """
        Block until a mode is selected.

        Returns:
            Selected mode

        Raises:
            SessionQuitError: The operator exited
            ConfiguratorError: The configurator failed
            SessionClosedError: The loop ended without a result
        """
        while True:
            event = await self._next_event()
            if event is None:
                return self._drain(self._mode_result)
            result = self._mode_result(event)
            if result is not None:
                return result

    async def wait_for_runtime_exit(self) -> bool:
        """
        Block until the runtime phase ends.

        Returns:
            True when the operator asked to reconfigure

        Raises:
            RuntimeDisconnectedError: The data plane dropped
            SessionQuitError: The operator exited
            SessionClosedError: The loop ended without a result
        """
        while True:
            event = await self._next_event()
            if event is None:
                return self._drain(self._runtime_result)
            result = self._runtime_result(event)
            if result is not None:
                return result

    async def show_fatal_error(self, message: str) -> None:
        """Show a fatal error and block until it is dismissed."""
        self._send(FatalErrorMsg(message=message))
        await self.done.wait()

    async def close(self) -> None:
        """
        Stop the session gracefully.

        Safe to call more than once; every caller returns once the first
        close has finished.
        """
        if self._closing is None:
            self._closing = asyncio.ensure_future(self._close())
        await asyncio.shield(self._closing)

    async def _close(self) -> None:
        if self._task is None:
            self.done.set()
            return
        self._send(CloseMsg())
        await self.done.wait()

    # --- Internals ---

    def _send(self, msg: object) -> None:
        if self._program is None or self.done.is_set():
            logger.debug(f"Dropping {type(msg).__name__}: session not running")
            return
        self._program.send(msg)

    async def _next_event(self) -> SessionEvent | None:
        """Return the next event, or None once the loop has ended."""
        if not self._events.empty():
            return self._events.get_nowait()
        if self.done.is_set():
            return None

        get_task = asyncio.ensure_future(self._events.get())
        done_task = asyncio.ensure_future(self.done.wait())
        try:
            finished, _ = await asyncio.wait(
                {get_task, done_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (get_task, done_task):
                if not task.done():
                    task.cancel()
        if get_task in finished:
            return get_task.result()
        return None

    def _drain(self, interpret: Callable[[SessionEvent], T | None]) -> T:
        while not self._events.empty():
            result = interpret(self._events.get_nowait())
            if result is not None:
                return result
        raise SessionClosedError(self._error)

    @staticmethod
    def _mode_result(event: SessionEvent) -> Mode | None:
        if event.kind == SessionEventKind.MODE_SELECTED:
            return event.mode
        if event.kind == SessionEventKind.EXIT:
            raise SessionQuitError()
        if event.kind == SessionEventKind.ERROR:
            raise event.error or SessionClosedError()
        return None

    @staticmethod
    def _runtime_result(event: SessionEvent) -> bool | None:
        if event.kind in (SessionEventKind.RECONFIGURE, SessionEventKind.MODE_SELECTED):
            return True
        if event.kind == SessionEventKind.RUNTIME_DISCONNECTED:
            raise RuntimeDisconnectedError()
        if event.kind == SessionEventKind.EXIT:
            raise SessionQuitError()
        if event.kind == SessionEventKind.ERROR:
            raise event.error or SessionClosedError()
        return None
