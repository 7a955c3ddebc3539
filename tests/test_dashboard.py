"""Tests for the runtime dashboard reducer and its views."""

import asyncio

import pytest

from tungo_tui.buffer import RuntimeLogBuffer, subscribe_feed
from tungo_tui.dashboard import (
    CONFIRM_TITLE,
    DONE_KEY,
    HIDDEN_METRICS_NOTICE,
    LOGS_KEY,
    READY_KEY,
    TICK_KEY,
    Screen,
    context_done_task,
    new_runtime_dashboard,
    ready_task,
    tick_task,
)
from tungo_tui.layout import strip_ansi, visible_width
from tungo_tui.messages import (
    Cancel,
    ClearScreen,
    KeyMsg,
    LogTickMsg,
    Quit,
    ResizeMsg,
    RuntimeContextDoneMsg,
    RuntimeReadyMsg,
    RuntimeTickMsg,
    Task,
)
from tungo_tui.preferences import SETTINGS_GRAPH_ROW, PreferencesProvider, ThemeOption, UIPreferences
from tungo_tui.telemetry import StaticTelemetry, TrafficSnapshot
from tungo_tui.types import Mode, RuntimeOptions


def task_keys(effects):
    return [effect.key for effect in effects if isinstance(effect, Task)]


def press(model, *keys):
    effects = []
    for key in keys:
        model, effects = model.update(KeyMsg(key))
    return model, effects


# ===== Construction Tests =====


class TestNewRuntimeDashboard:
    """Tests for dashboard construction and startup effects."""

    def setup_method(self):
        self.provider = PreferencesProvider(UIPreferences())
        self.telemetry = StaticTelemetry(TrafficSnapshot(100, 50, 1000, 500))

    def test_server_is_connected(self):
        model = new_runtime_dashboard(
            RuntimeOptions(mode=Mode.SERVER, telemetry=self.telemetry), self.provider
        )

        assert model.connected is True
        assert model.snapshot == TrafficSnapshot(100, 50, 1000, 500)
        assert model.rx_samples.count == 1

    def test_client_waits_for_ready(self):
        ready = asyncio.Event()
        done = asyncio.Event()
        model = new_runtime_dashboard(
            RuntimeOptions(mode=Mode.CLIENT, ready=ready), self.provider, done=done, runtime_seq=3
        )

        assert model.connected is False
        assert task_keys(model.init()) == [TICK_KEY, DONE_KEY, READY_KEY]

    def test_client_without_ready_is_connected(self):
        model = new_runtime_dashboard(RuntimeOptions(mode=Mode.CLIENT), self.provider)

        assert model.connected is True
        assert task_keys(model.init()) == [TICK_KEY]

    def test_graph_off_records_nothing(self):
        provider = PreferencesProvider(UIPreferences(show_dataplane_graph=False))
        model = new_runtime_dashboard(RuntimeOptions(telemetry=self.telemetry), provider)

        assert model.rx_samples.count == 0

    def test_stop_waits_cancels_every_key(self):
        model = new_runtime_dashboard(RuntimeOptions(), self.provider)
        assert {effect.key for effect in model.stop_waits()} == {TICK_KEY, LOGS_KEY, DONE_KEY, READY_KEY}


# ===== Reducer Tests =====


class TestRuntimeDashboardUpdate:
    """Tests for RuntimeDashboard.update."""

    def setup_method(self):
        self.provider = PreferencesProvider(UIPreferences())
        self.telemetry = StaticTelemetry(TrafficSnapshot(100, 50, 1000, 500))
        self.buffer = RuntimeLogBuffer(32)
        self.buffer.write("first\nsecond\n")
        self.model = new_runtime_dashboard(
            RuntimeOptions(
                mode=Mode.SERVER,
                telemetry=self.telemetry,
                log_feed=subscribe_feed(self.buffer),
            ),
            self.provider,
            done=asyncio.Event(),
            runtime_seq=1,
            width=100,
            height=30,
        )

    def test_tick_records_sample_and_reschedules(self):
        snapshot = TrafficSnapshot(200, 80, 1200, 580)
        model, effects = self.model.update(RuntimeTickMsg(seq=self.model.tick_seq, snapshot=snapshot))

        assert model.snapshot == snapshot
        assert model.rx_samples.count == 2
        assert model.rx_samples.at(1, 0) == 200
        assert task_keys(effects) == [TICK_KEY]

    def test_stale_tick_is_ignored(self):
        model, effects = self.model.update(RuntimeTickMsg(seq=self.model.tick_seq - 1))

        assert model is self.model
        assert effects == []

    def test_tick_off_dataplane_is_ignored(self):
        model, _ = press(self.model, "tab")
        after, effects = model.update(RuntimeTickMsg(seq=model.tick_seq))

        assert after is model
        assert effects == []

    def test_tab_cycles_screens(self):
        model, effects = press(self.model, "tab")
        assert model.screen == Screen.SETTINGS
        assert effects == []

        model, effects = press(model, "tab")
        assert model.screen == Screen.LOGS
        assert task_keys(effects) == [LOGS_KEY]
        assert model.logs.tick_seq == 1
        assert model.logs.lines == ("first", "second")

        model, effects = press(model, "tab")
        assert model.screen == Screen.DATAPLANE
        assert Cancel(LOGS_KEY) in effects
        assert task_keys(effects) == [TICK_KEY]
        assert model.tick_seq == self.model.tick_seq + 1

    def test_log_tick_refreshes_current_sequence_only(self):
        model, _ = press(self.model, "tab", "tab")
        self.buffer.write("third\n")

        stale, effects = model.update(LogTickMsg(seq=model.logs.tick_seq - 1))
        assert stale is model
        assert effects == []

        fresh, effects = model.update(LogTickMsg(seq=model.logs.tick_seq))
        assert fresh.logs.lines[-1] == "third"
        assert task_keys(effects) == [LOGS_KEY]

    def test_escape_from_logs_returns_to_dataplane(self):
        model, _ = press(self.model, "tab", "tab")
        model, effects = press(model, "esc")

        assert model.screen == Screen.DATAPLANE
        assert Cancel(LOGS_KEY) in effects
        assert task_keys(effects) == [TICK_KEY]

    def test_quit_requests_exit(self):
        model, effects = press(self.model, "q")

        assert model.exit_requested is True
        assert Quit() in effects

    def test_escape_opens_confirmation(self):
        model, effects = press(self.model, "esc")

        assert model.confirm_open is True
        assert model.confirm_cursor == 0
        assert effects == []

    def test_confirm_stop_requests_reconfigure(self):
        model, effects = press(self.model, "esc", "right", "enter")

        assert model.reconfigure_requested is True
        assert Quit() in effects

    def test_confirm_continue_closes_dialog(self):
        model, effects = press(self.model, "esc", "enter")

        assert model.confirm_open is False
        assert model.reconfigure_requested is False
        assert effects == []

    def test_confirm_escape_cancels(self):
        model, _ = press(self.model, "esc", "right", "esc")

        assert model.confirm_open is False
        assert model.confirm_cursor == 0

    def test_confirm_cursor_is_bounded(self):
        model, _ = press(self.model, "esc", "right", "right", "l")
        assert model.confirm_cursor == 1

        model, _ = press(model, "left", "left", "h")
        assert model.confirm_cursor == 0

    def test_unconnected_client_escape_reconfigures_directly(self):
        model = new_runtime_dashboard(
            RuntimeOptions(mode=Mode.CLIENT, ready=asyncio.Event()), self.provider, runtime_seq=1
        )
        model, effects = press(model, "esc")

        assert model.reconfigure_requested is True
        assert model.confirm_open is False
        assert Quit() in effects

    def test_ready_for_current_activation_connects(self):
        model = new_runtime_dashboard(
            RuntimeOptions(mode=Mode.CLIENT, ready=asyncio.Event()), self.provider, runtime_seq=2
        )

        stale, _ = model.update(RuntimeReadyMsg(seq=1))
        assert stale.connected is False

        ready, _ = model.update(RuntimeReadyMsg(seq=2))
        assert ready.connected is True

    def test_context_done_quits(self):
        _, effects = self.model.update(RuntimeContextDoneMsg(seq=1))
        assert effects == [Cancel(LOGS_KEY), Quit()]

    def test_graph_toggle_off_clears_history(self):
        model, _ = press(self.model, "tab")
        model, _ = press(model, *["down"] * SETTINGS_GRAPH_ROW)
        model, _ = press(model, "enter")

        assert model.preferences.show_dataplane_graph is False
        assert model.rx_samples.count == 0
        assert model.tx_samples.count == 0
        assert self.provider.preferences().show_dataplane_graph is False

    def test_graph_toggle_on_records_sample(self):
        model, _ = press(self.model, "tab")
        model, _ = press(model, *["down"] * SETTINGS_GRAPH_ROW)
        model, _ = press(model, "enter", "enter")

        assert model.preferences.show_dataplane_graph is True
        assert model.rx_samples.count == 1

    def test_theme_change_clears_screen(self):
        model, _ = press(self.model, "tab")
        model, effects = press(model, "right")

        assert model.preferences.theme == ThemeOption.DARK
        assert effects == [ClearScreen()]

    def test_resize_updates_dimensions(self):
        model, effects = self.model.update(ResizeMsg(80, 24))

        assert (model.width, model.height) == (80, 24)
        assert effects == []


# ===== View Tests =====


class TestRuntimeDashboardView:
    """Tests for rendered frames."""

    def setup_method(self):
        self.provider = PreferencesProvider(UIPreferences())
        self.telemetry = StaticTelemetry(TrafficSnapshot(2048, 1024, 10_000, 5_000))

    def build(self, mode=Mode.SERVER, ready=None):
        return new_runtime_dashboard(
            RuntimeOptions(mode=mode, ready=ready, telemetry=self.telemetry),
            self.provider,
            width=100,
            height=30,
        )

    def test_frame_fills_terminal(self):
        rows = self.build().view().split("\n")

        assert len(rows) == 30
        assert all(visible_width(row) == 100 for row in rows)

    def test_dataplane_content(self):
        text = strip_ansi(self.build().view())

        assert "Dataplane" in text
        assert "TunGo" in text
        assert "Mode: Server" in text
        assert "Status: Running" in text
        assert "2.0 KiB/s" in text
        assert "RX trend: " in text

    def test_connecting_client(self):
        text = strip_ansi(self.build(Mode.CLIENT, asyncio.Event()).view())
        assert "Status: Connecting to server..." in text

    def test_hidden_metrics_notice(self):
        self.provider.update(show_dataplane_stats=False, show_dataplane_graph=False)
        text = strip_ansi(self.build().view())

        assert HIDDEN_METRICS_NOTICE in text
        assert "RX trend" not in text

    def test_confirmation_dialog(self):
        model, _ = press(self.build(), "esc")
        text = strip_ansi(model.view())

        assert CONFIRM_TITLE in text
        assert "> Continue" in text
        assert "Stop" in text

    def test_settings_and_logs_screens(self):
        model, _ = press(self.build(), "tab")
        assert "Theme      : LIGHT" in strip_ansi(model.view())

        model, _ = press(model, "tab")
        assert "No logs yet" in strip_ansi(model.view())

    def test_footer_can_be_hidden(self):
        assert "ctrl+c exit" in strip_ansi(self.build().view())

        self.provider.update(show_footer=False)
        assert "ctrl+c exit" not in strip_ansi(self.build().view())


# ===== Wait Task Tests =====


class TestRuntimeWaits:
    """Tests for the dashboard's background waits."""

    @pytest.mark.asyncio
    async def test_tick_carries_fresh_snapshot(self):
        telemetry = StaticTelemetry(TrafficSnapshot(rx_rate=9))
        task = tick_task(telemetry, seq=5, interval=0.01)

        assert task.key == TICK_KEY
        assert await task.run() == RuntimeTickMsg(seq=5, snapshot=TrafficSnapshot(rx_rate=9))

    @pytest.mark.asyncio
    async def test_context_done(self):
        done = asyncio.Event()
        done.set()
        assert await context_done_task(done, seq=2).run() == RuntimeContextDoneMsg(seq=2)

    @pytest.mark.asyncio
    async def test_ready_before_done(self):
        ready = asyncio.Event()
        ready.set()
        assert await ready_task(ready, asyncio.Event(), seq=3).run() == RuntimeReadyMsg(seq=3)

    @pytest.mark.asyncio
    async def test_done_before_ready(self):
        done = asyncio.Event()
        done.set()
        result = await asyncio.wait_for(ready_task(asyncio.Event(), done, seq=3).run(), timeout=1.0)
        assert result == RuntimeContextDoneMsg(seq=3)
