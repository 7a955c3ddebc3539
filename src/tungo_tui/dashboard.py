"""
Runtime dashboard shown while the tunnel is up.

Three screens cycle with Tab: Dataplane -> Settings -> Logs -> Dataplane.

- Dataplane: mode and connection status, RX/TX stats and braille trend
  graphs. A periodic tick samples telemetry while this screen is shown.
  Esc opens a Continue/Stop confirmation before stopping the tunnel.
- Settings: preference rows, applied immediately.
- Logs: scrollable view of the log feed, refreshed on change
  notification or on a polling interval.

The dashboard is an immutable reducer: update() returns a new dashboard
and the effects the driver should run. Tick and log waits carry sequence
numbers so results that outlive their screen are dropped.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from enum import IntEnum

from tungo_tui.buffer import LogFeed
from tungo_tui.config import settings
from tungo_tui.keyboard import DEFAULT_KEYS, KeyMap
from tungo_tui.layout import content_width_for_terminal
from tungo_tui.log_viewport import LogViewport, log_update_task
from tungo_tui.messages import (
    Cancel,
    ClearScreen,
    Effect,
    KeyMsg,
    LogTickMsg,
    Quit,
    ResizeMsg,
    RuntimeContextDoneMsg,
    RuntimeReadyMsg,
    RuntimeTickMsg,
    Task,
    wait_or_done,
)
from tungo_tui.preferences import (
    PreferencesProvider,
    UIPreferences,
    handle_settings_key,
    settings_rows,
)
from tungo_tui.render import (
    RUNTIME_TABS,
    render_screen,
    render_selectable_rows,
    render_tabs_line,
)
from tungo_tui.sparkline import SampleRing, render_braille_sparkline, sparkline_width_for_content
from tungo_tui.styles import resolve_styles
from tungo_tui.telemetry import StaticTelemetry, Telemetry, TrafficSnapshot, format_stats_lines
from tungo_tui.types import Mode, RuntimeOptions

TICK_KEY = "runtime.tick"
LOGS_KEY = "runtime.logs"
DONE_KEY = "runtime.done"
READY_KEY = "runtime.ready"
TASK_KEYS = (TICK_KEY, LOGS_KEY, DONE_KEY, READY_KEY)

DATAPLANE_HINT = "Tab switch tabs | ctrl+c exit"
CONFIRM_HINT = "left/right choose | Enter confirm | Esc cancel | ctrl+c exit"
SETTINGS_HINT = "up/k down/j row | left/right/Enter change | Tab switch tabs | ctrl+c exit"
LOGS_HINT = (
    "up/down scroll | PgUp/PgDn page | Home/End jump | Space follow"
    " | Tab switch tabs | Esc back | ctrl+c exit"
)
CONFIRM_TITLE = "Stop tunnel?"
CONFIRM_ROWS = ("Continue", "Stop")
CONFIRM_STOP = 1
HIDDEN_METRICS_NOTICE = "Dataplane metrics are hidden in Settings."


class Screen(IntEnum):
    DATAPLANE = 0
    SETTINGS = 1
    LOGS = 2

    def next(self) -> Screen:
        return Screen((self + 1) % len(Screen))


def tick_task(telemetry: Telemetry, seq: int, interval: float) -> Task:
    """Sleep one interval, then post a tick with a fresh snapshot."""

    async def run() -> RuntimeTickMsg:
        await asyncio.sleep(interval)
        return RuntimeTickMsg(seq=seq, snapshot=telemetry.snapshot())

    return Task(key=TICK_KEY, run=run)


def context_done_task(done: asyncio.Event, seq: int) -> Task:
    async def run() -> RuntimeContextDoneMsg:
        await done.wait()
        return RuntimeContextDoneMsg(seq=seq)

    return Task(key=DONE_KEY, run=run)


def ready_task(ready: asyncio.Event, done: asyncio.Event | None, seq: int) -> Task:
    """Post ready once a client connects, or context-done if that fires first."""

    async def run() -> RuntimeReadyMsg | RuntimeContextDoneMsg:
        if await wait_or_done(ready.wait(), done):
            return RuntimeReadyMsg(seq=seq)
        return RuntimeContextDoneMsg(seq=seq)

    return Task(key=READY_KEY, run=run)


@dataclass(frozen=True)
class RuntimeDashboard:
    """
    Immutable runtime dashboard state.

    Attributes:
        provider: Preferences provider shared with the session
        telemetry: Traffic counters
        done: Runtime context; set when the data plane stops
        ready: Client connection signal
        mode: Client or server runtime
        log_feed: Feed shown on the Logs screen
        runtime_seq: Activation this dashboard belongs to
        tick_seq: Sequence of the current dataplane tick
    """

    provider: PreferencesProvider
    telemetry: Telemetry
    done: asyncio.Event | None = None
    ready: asyncio.Event | None = None
    mode: Mode = Mode.CLIENT
    log_feed: LogFeed | None = None
    preferences: UIPreferences = field(default_factory=UIPreferences)
    width: int = 0
    height: int = 0
    screen: Screen = Screen.DATAPLANE
    settings_cursor: int = 0
    logs: LogViewport = field(default_factory=LogViewport)
    rx_samples: SampleRing = field(default_factory=SampleRing)
    tx_samples: SampleRing = field(default_factory=SampleRing)
    snapshot: TrafficSnapshot = field(default_factory=TrafficSnapshot)
    tick_seq: int = 1
    runtime_seq: int = 0
    confirm_open: bool = False
    confirm_cursor: int = 0
    connected: bool = False
    exit_requested: bool = False
    reconfigure_requested: bool = False
    tick_interval: float = settings.tick_interval
    log_poll_interval: float = settings.log_poll_interval
    keys: KeyMap = DEFAULT_KEYS

    # --- Lifecycle ---

    def init(self) -> list[Effect]:
        """Start the tick, the context-done wait and (clients) the ready wait."""
        effects: list[Effect] = [self._tick()]
        if self.done is not None:
            effects.append(context_done_task(self.done, self.runtime_seq))
        if self.mode == Mode.CLIENT and not self.connected and self.ready is not None:
            effects.append(ready_task(self.ready, self.done, self.runtime_seq))
        return effects

    def stop_waits(self) -> list[Effect]:
        return [Cancel(key) for key in TASK_KEYS]

    def update(self, msg: object) -> tuple[RuntimeDashboard, list[Effect]]:
        """
        Apply one message.

        Args:
            msg: Key, resize, tick or wait result

        Returns:
            (new dashboard, effects); Quit marks exit or reconfigure
        """
        if isinstance(msg, ResizeMsg):
            model = replace(self, width=msg.width, height=msg.height)
            if model.screen == Screen.LOGS:
                model = model._with_logs(model.logs)
            return model, []

        if isinstance(msg, RuntimeTickMsg):
            if msg.seq != self.tick_seq or self.screen != Screen.DATAPLANE:
                return self, []
            model = self
            if msg.snapshot is not None:
                model = replace(model, snapshot=msg.snapshot)
            if model.preferences.show_dataplane_graph:
                model = model._record_sample()
            return model, [model._tick()]

        if isinstance(msg, LogTickMsg):
            if msg.seq != self.logs.tick_seq or self.screen != Screen.LOGS:
                return self, []
            model = replace(self, logs=self.logs.refresh(self.log_feed))
            return model, [model._log_wait()]

        if isinstance(msg, RuntimeReadyMsg):
            if msg.seq == self.runtime_seq:
                return replace(self, connected=True), []
            return self, []

        if isinstance(msg, RuntimeContextDoneMsg):
            return self, [Cancel(LOGS_KEY), Quit()]

        if isinstance(msg, KeyMsg):
            return self._update_key(msg.key)

        return self, []

    # --- Key handling ---

    def _update_key(self, key: str) -> tuple[RuntimeDashboard, list[Effect]]:
        if self.confirm_open:
            return self._update_confirm(key)

        if key in self.keys.quit:
            return replace(self, exit_requested=True), [Cancel(LOGS_KEY), Quit()]

        if key == "esc":
            return self._update_escape()

        if key in self.keys.tab:
            return self._cycle_screen()

        if self.screen == Screen.SETTINGS:
            return self._update_settings(key)
        if self.screen == Screen.LOGS:
            return replace(self, logs=self.logs.handle_key(key, self.keys)), []
        return self, []

    def _update_escape(self) -> tuple[RuntimeDashboard, list[Effect]]:
        if self.screen == Screen.DATAPLANE:
            if self.mode == Mode.CLIENT and not self.connected:
                return replace(self, reconfigure_requested=True), [Cancel(LOGS_KEY), Quit()]
            return replace(self, confirm_open=True, confirm_cursor=0), []

        effects: list[Effect] = []
        if self.screen == Screen.LOGS:
            effects.append(Cancel(LOGS_KEY))
        model = replace(self, screen=Screen.DATAPLANE, tick_seq=self.tick_seq + 1)
        effects.append(model._tick())
        return model, effects

    def _cycle_screen(self) -> tuple[RuntimeDashboard, list[Effect]]:
        previous = self.screen
        model = replace(self, screen=self.screen.next(), preferences=self.provider.preferences())

        if model.screen == Screen.LOGS:
            model = model._with_logs(model.logs.restarted())
            return model, [model._log_wait()]

        effects: list[Effect] = []
        if previous == Screen.LOGS:
            effects.append(Cancel(LOGS_KEY))
        if model.screen == Screen.DATAPLANE and previous != Screen.DATAPLANE:
            model = replace(model, tick_seq=model.tick_seq + 1)
            effects.append(model._tick())
        return model, effects

    def _update_confirm(self, key: str) -> tuple[RuntimeDashboard, list[Effect]]:
        if key in self.keys.quit:
            return replace(self, exit_requested=True), [Cancel(LOGS_KEY), Quit()]
        if key == "esc":
            return replace(self, confirm_open=False, confirm_cursor=0), []
        if key in self.keys.up or key in self.keys.left:
            return replace(self, confirm_cursor=max(0, self.confirm_cursor - 1)), []
        if key in self.keys.down or key in self.keys.right:
            return replace(self, confirm_cursor=min(CONFIRM_STOP, self.confirm_cursor + 1)), []
        if key in self.keys.select:
            if self.confirm_cursor == CONFIRM_STOP:
                return replace(self, reconfigure_requested=True), [Cancel(LOGS_KEY), Quit()]
            return replace(self, confirm_open=False, confirm_cursor=0), []
        return self, []

    def _update_settings(self, key: str) -> tuple[RuntimeDashboard, list[Effect]]:
        graph_was_on = self.preferences.show_dataplane_graph
        prefs, cursor, theme_changed = handle_settings_key(
            self.provider, self.settings_cursor, key, self.keys
        )
        model = replace(self, preferences=prefs, settings_cursor=cursor)
        if prefs.show_dataplane_graph != graph_was_on:
            if prefs.show_dataplane_graph:
                model = model._record_sample()
            else:
                model = replace(
                    model,
                    rx_samples=model.rx_samples.cleared(),
                    tx_samples=model.tx_samples.cleared(),
                )
        effects: list[Effect] = [ClearScreen()] if theme_changed else []
        return model, effects

    # --- Helpers ---

    def _tick(self) -> Task:
        return tick_task(self.telemetry, self.tick_seq, self.tick_interval)

    def _log_wait(self) -> Task:
        return log_update_task(
            LOGS_KEY,
            self.log_feed,
            self.logs.tick_seq,
            self.log_poll_interval,
            self.done,
            self.runtime_seq,
        )

    def _with_logs(self, logs: LogViewport) -> RuntimeDashboard:
        logs = logs.ensure(self.width, self.height, self.preferences, "", LOGS_HINT)
        return replace(self, logs=logs.refresh(self.log_feed))

    def _record_sample(self) -> RuntimeDashboard:
        return replace(
            self,
            rx_samples=self.rx_samples.record(self.snapshot.rx_rate),
            tx_samples=self.tx_samples.record(self.snapshot.tx_rate),
        )

    # --- Views ---

    def view(self) -> str:
        """Render the active screen."""
        if self.screen == Screen.SETTINGS:
            return self._settings_view()
        if self.screen == Screen.LOGS:
            return self._logs_view()
        return self._dataplane_view()

    def _tabs_line(self) -> str:
        return render_tabs_line(
            RUNTIME_TABS,
            int(self.screen),
            content_width_for_terminal(self.width),
            self.preferences.theme,
        )

    def _content_width(self) -> int:
        return content_width_for_terminal(self.width) if self.width > 0 else 0

    def _status_lines(self) -> list[str]:
        if self.mode == Mode.SERVER:
            return ["Mode: Server", "Status: Running"]
        status = "Status: Connected" if self.connected else "Status: Connecting to server..."
        return ["Mode: Client", status]

    def _dataplane_view(self) -> str:
        prefs = self.preferences
        styles = resolve_styles(prefs.theme)
        content_width = self._content_width()

        body = self._status_lines()
        if prefs.show_dataplane_stats or prefs.show_dataplane_graph:
            body.append("")
        if prefs.show_dataplane_stats:
            body.extend(format_stats_lines(prefs, self.snapshot))
        if prefs.show_dataplane_graph:
            graph_width = sparkline_width_for_content(content_width)
            body.append("RX trend: " + render_braille_sparkline(self.rx_samples, graph_width))
            body.append("TX trend: " + render_braille_sparkline(self.tx_samples, graph_width))
        if not prefs.show_dataplane_stats and not prefs.show_dataplane_graph:
            body.extend(["", HIDDEN_METRICS_NOTICE])

        hint = DATAPLANE_HINT
        if self.confirm_open:
            body.extend(["", CONFIRM_TITLE, ""])
            body.extend(
                render_selectable_rows(list(CONFIRM_ROWS), self.confirm_cursor, content_width, styles)
            )
            hint = CONFIRM_HINT

        return render_screen(
            self.width, self.height, self._tabs_line(), "", body, hint, prefs, styles, wrap=False
        )

    def _settings_view(self) -> str:
        styles = resolve_styles(self.preferences.theme)
        body = render_selectable_rows(
            settings_rows(self.preferences), self.settings_cursor, self._content_width(), styles
        )
        return render_screen(
            self.width, self.height, self._tabs_line(), "", body, SETTINGS_HINT, self.preferences, styles
        )

    def _logs_view(self) -> str:
        styles = resolve_styles(self.preferences.theme)
        return render_screen(
            self.width,
            self.height,
            self._tabs_line(),
            "",
            self.logs.view(styles.meta),
            LOGS_HINT,
            self.preferences,
            styles,
        )


def new_runtime_dashboard(
    options: RuntimeOptions,
    provider: PreferencesProvider,
    done: asyncio.Event | None = None,
    runtime_seq: int = 0,
    width: int = 0,
    height: int = 0,
    tick_interval: float = settings.tick_interval,
    log_poll_interval: float = settings.log_poll_interval,
) -> RuntimeDashboard:
    """
    Build a dashboard for one runtime activation.

    Servers count as connected immediately; clients do once their ready
    event is set (or when none is given). The first sample is recorded
    right away when the graph is enabled.

    Args:
        options: Activation options
        provider: Preferences provider
        done: Runtime context
        runtime_seq: Activation sequence number
        width: Current terminal columns
        height: Current terminal rows
        tick_interval: Dataplane sampling period in seconds
        log_poll_interval: Log refresh period for feeds without change signal

    Returns:
        New dashboard; call init() for its startup effects
    """
    mode = Mode.SERVER if options.mode == Mode.SERVER else Mode.CLIENT
    telemetry = options.telemetry if options.telemetry is not None else StaticTelemetry()
    ready = options.ready
    connected = mode == Mode.SERVER or ready is None or ready.is_set()

    model = RuntimeDashboard(
        provider=provider,
        telemetry=telemetry,
        done=done,
        ready=ready,
        mode=mode,
        log_feed=options.log_feed,
        preferences=provider.preferences(),
        width=width,
        height=height,
        snapshot=telemetry.snapshot(),
        runtime_seq=runtime_seq,
        connected=connected,
        tick_interval=tick_interval,
        log_poll_interval=log_poll_interval,
    )
    if model.preferences.show_dataplane_graph:
        model = model._record_sample()
    return model
