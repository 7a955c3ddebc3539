"""Tests for the session state machine and its caller-facing handle."""

import asyncio
import io
import logging
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from tungo_tui import dashboard
from tungo_tui.buffer import RuntimeLogBuffer
from tungo_tui.config import Settings
from tungo_tui.configurator import LOGS_KEY as CONFIGURATOR_LOGS_KEY, ConfiguratorOptions
from tungo_tui.exceptions import (
    ConfiguratorError,
    RuntimeDisconnectedError,
    SessionClosedError,
    SessionQuitError,
)
from tungo_tui.layout import strip_ansi
from tungo_tui.messages import (
    ActivateRuntimeMsg,
    Cancel,
    ClearScreen,
    CloseMsg,
    ContextDoneMsg,
    Emit,
    FatalErrorMsg,
    KeyMsg,
    Quit,
    ResizeMsg,
    RuntimeContextDoneMsg,
    Task,
    WriteSeparator,
)
from tungo_tui.preferences import PreferencesProvider, UIPreferences
from tungo_tui.session import (
    APP_DONE_KEY,
    WAITING_BODY,
    Phase,
    Session,
    new_session_model,
)
from tungo_tui.types import Mode, RuntimeOptions, SessionEvent, SessionEventKind


def emitted(effects):
    return [effect.event for effect in effects if isinstance(effect, Emit)]


def emitted_kinds(effects):
    return [event.kind for event in emitted(effects)]


def press(model, *keys):
    effects = []
    for key in keys:
        model, effects = model.update(KeyMsg(key))
    return model, effects


# ===== SessionModel Tests =====


class TestSessionModel:
    """Tests for the pure session reducer."""

    def setup_method(self):
        self.provider = PreferencesProvider(UIPreferences())
        self.model = new_session_model(ConfiguratorOptions(), self.provider)
        self.model, _ = self.model.update(ResizeMsg(100, 30))

    def waiting(self, mode_key="enter"):
        model, _ = press(self.model, mode_key)
        return model

    def running(self, mode=Mode.SERVER):
        model, _ = self.waiting().update(
            ActivateRuntimeMsg(done=asyncio.Event(), options=RuntimeOptions(mode=mode))
        )
        return model

    def test_starts_configuring(self):
        assert self.model.phase == Phase.CONFIGURING
        assert self.model.runtime is None
        assert self.model.configurator.width == 100

    def test_init_watches_app_context(self):
        model = new_session_model(ConfiguratorOptions(), self.provider, app_done=asyncio.Event())
        assert [effect.key for effect in model.init() if isinstance(effect, Task)] == [APP_DONE_KEY]

    def test_missing_options_fail_construction(self):
        with pytest.raises(ConfiguratorError):
            new_session_model(None, self.provider)

    def test_mode_selection_waits_for_runtime(self):
        model, effects = press(self.model, "enter")

        assert model.phase == Phase.WAITING_FOR_RUNTIME
        assert emitted(effects) == [SessionEvent(SessionEventKind.MODE_SELECTED, mode=Mode.CLIENT)]
        assert Quit() not in effects

    def test_configurator_exit(self):
        _, effects = press(self.model, "ctrl+c")

        assert emitted_kinds(effects) == [SessionEventKind.EXIT]
        assert effects[-1] == Quit()

    def test_configurator_failure_is_reported(self):
        on_select = MagicMock(side_effect=OSError("no tun device"))
        model = new_session_model(ConfiguratorOptions(on_select=on_select), self.provider)

        _, effects = press(model, "enter")

        events = emitted(effects)
        assert [event.kind for event in events] == [SessionEventKind.ERROR]
        assert isinstance(events[0].error, ConfiguratorError)
        assert effects[-1] == Quit()

    def test_waiting_ignores_other_keys(self):
        model = self.waiting()
        after, effects = press(model, "q")

        assert after is model
        assert effects == []

    def test_interrupt_exits_while_waiting(self):
        _, effects = press(self.waiting(), "ctrl+c")

        assert emitted_kinds(effects) == [SessionEventKind.EXIT]
        assert Cancel(CONFIGURATOR_LOGS_KEY) in effects
        assert effects[-1] == Quit()

    def test_interrupt_exits_fatal_error(self):
        model, _ = self.waiting().update(FatalErrorMsg(message="tun0 setup hung"))

        _, effects = press(model, "ctrl+c")

        assert emitted_kinds(effects) == [SessionEventKind.EXIT]
        assert effects[-1] == Quit()

    def test_interrupt_stops_runtime_waits(self):
        _, effects = press(self.running(), "ctrl+c")

        assert emitted_kinds(effects) == [SessionEventKind.EXIT]
        for key in dashboard.TASK_KEYS:
            assert Cancel(key) in effects

    def test_activation_outside_waiting_is_ignored(self):
        msg = ActivateRuntimeMsg(done=asyncio.Event(), options=RuntimeOptions())
        model, effects = self.model.update(msg)

        assert model is self.model
        assert effects == []

    def test_activation_starts_runtime(self):
        model, effects = self.waiting().update(
            ActivateRuntimeMsg(done=asyncio.Event(), options=RuntimeOptions(mode=Mode.SERVER))
        )

        assert model.phase == Phase.RUNTIME
        assert model.runtime_seq == 1
        assert model.runtime.runtime_seq == 1
        assert model.runtime.width == 100
        keys = [effect.key for effect in effects if isinstance(effect, Task)]
        assert keys == [dashboard.TICK_KEY, dashboard.DONE_KEY]

    def test_second_activation_while_running_is_ignored(self):
        model = self.running()
        again, effects = model.update(
            ActivateRuntimeMsg(done=asyncio.Event(), options=RuntimeOptions())
        )

        assert again is model
        assert effects == []

    def test_stale_disconnect_is_ignored(self):
        model = self.running()
        after, effects = model.update(RuntimeContextDoneMsg(seq=model.runtime_seq - 1))

        assert after is model
        assert effects == []

    def test_disconnect_returns_to_waiting(self):
        model = self.running()
        model, effects = model.update(RuntimeContextDoneMsg(seq=model.runtime_seq))

        assert model.phase == Phase.WAITING_FOR_RUNTIME
        assert model.runtime is None
        assert WriteSeparator("disconnected") in effects
        assert emitted_kinds(effects) == [SessionEventKind.RUNTIME_DISCONNECTED]
        for key in dashboard.TASK_KEYS:
            assert Cancel(key) in effects
        assert Quit() not in effects

    def test_reactivation_increments_sequence(self):
        model = self.running()
        model, _ = model.update(RuntimeContextDoneMsg(seq=model.runtime_seq))
        model, _ = model.update(ActivateRuntimeMsg(done=asyncio.Event(), options=RuntimeOptions()))

        assert model.runtime_seq == 2
        stale, effects = model.update(RuntimeContextDoneMsg(seq=1))
        assert stale is model
        assert effects == []

    def test_reconfigure_emits_once_and_rebuilds_configurator(self):
        model = self.running()
        model, effects = press(model, "esc", "right", "enter")

        assert model.phase == Phase.CONFIGURING
        assert model.runtime is None
        assert model.configurator.done is False
        assert emitted_kinds(effects) == [SessionEventKind.RECONFIGURE]
        assert WriteSeparator("reconfigured") in effects
        assert ClearScreen() in effects
        assert Quit() not in effects

    def test_reconfigure_then_select_again(self):
        model = self.running()
        model, _ = press(model, "esc", "right", "enter")
        model, effects = press(model, "down", "enter")

        assert model.phase == Phase.WAITING_FOR_RUNTIME
        assert emitted(effects) == [SessionEvent(SessionEventKind.MODE_SELECTED, mode=Mode.SERVER)]

    def test_reconfigure_failure_ends_session(self):
        loader = MagicMock(side_effect=["", OSError("config removed")])
        model = new_session_model(ConfiguratorOptions(load_notice=loader), self.provider)
        model, _ = press(model, "enter")
        model, _ = model.update(
            ActivateRuntimeMsg(done=asyncio.Event(), options=RuntimeOptions(mode=Mode.SERVER))
        )

        _, effects = press(model, "esc", "right", "enter")

        events = emitted(effects)
        assert [event.kind for event in events] == [SessionEventKind.ERROR]
        assert isinstance(events[0].error, ConfiguratorError)
        assert effects[-1] == Quit()

    def test_runtime_quit(self):
        _, effects = press(self.running(), "q")

        assert emitted_kinds(effects) == [SessionEventKind.EXIT]
        assert effects[-1] == Quit()

    def test_app_context_done(self):
        _, effects = self.model.update(ContextDoneMsg())

        assert emitted_kinds(effects) == [SessionEventKind.EXIT]
        assert Cancel(CONFIGURATOR_LOGS_KEY) in effects
        assert effects[-1] == Quit()

    def test_close_is_idempotent(self):
        model, effects = self.model.update(CloseMsg())

        assert model.closed is True
        assert effects[-1] == Quit()
        assert emitted(effects) == []

        again, effects = model.update(CloseMsg())
        assert again is model
        assert effects == []

    def test_fatal_error_until_dismissed(self):
        model, effects = self.running().update(FatalErrorMsg(message="tunnel crashed"))

        assert model.phase == Phase.FATAL_ERROR
        assert Cancel(dashboard.TICK_KEY) in effects
        assert "tunnel crashed" in strip_ansi(model.view())

        model, effects = press(model, "tab")
        assert effects == []

        _, effects = press(model, "enter")
        assert emitted_kinds(effects) == [SessionEventKind.EXIT]
        assert effects[-1] == Quit()

    def test_waiting_view(self):
        assert WAITING_BODY in strip_ansi(self.waiting().view())

    def test_runtime_view(self):
        assert "Mode: Server" in strip_ansi(self.running().view())


# ===== Session Handle Tests =====


def make_session(**kwargs):
    kwargs.setdefault("config_options", ConfiguratorOptions())
    return Session(
        provider=PreferencesProvider(UIPreferences()),
        console=Console(file=io.StringIO(), width=100, height=30),
        settings=Settings(tick_interval=0.05, log_poll_interval=0.05),
        read_keys=False,
        alt_screen=False,
        handle_signals=False,
        **kwargs,
    )


class TestSessionHandle:
    """Tests for Session driven through its message loop."""

    @pytest.mark.asyncio
    async def test_select_mode_then_disconnect(self):
        session = make_session()
        await session.start()
        session._program.send(KeyMsg("enter"))

        mode = await asyncio.wait_for(session.wait_for_mode(), timeout=2.0)
        assert mode == Mode.CLIENT

        done = asyncio.Event()
        session.activate_runtime(done, RuntimeOptions(mode=Mode.SERVER))
        done.set()

        with pytest.raises(RuntimeDisconnectedError):
            await asyncio.wait_for(session.wait_for_runtime_exit(), timeout=2.0)

        await asyncio.wait_for(session.close(), timeout=2.0)
        assert session.done.is_set()
        assert session.error is None

    @pytest.mark.asyncio
    async def test_reconfigure_round_trip(self):
        session = make_session()
        await session.start()
        session._program.send(KeyMsg("enter"))
        await asyncio.wait_for(session.wait_for_mode(), timeout=2.0)

        session.activate_runtime(asyncio.Event(), RuntimeOptions(mode=Mode.SERVER))
        for key in ("esc", "right", "enter"):
            session._program.send(KeyMsg(key))
        assert await asyncio.wait_for(session.wait_for_runtime_exit(), timeout=2.0) is True

        session._program.send(KeyMsg("down"))
        session._program.send(KeyMsg("enter"))
        assert await asyncio.wait_for(session.wait_for_mode(), timeout=2.0) == Mode.SERVER

        await asyncio.wait_for(session.close(), timeout=2.0)

    @pytest.mark.asyncio
    async def test_operator_quit(self):
        session = make_session()
        await session.start()
        session._program.send(KeyMsg("ctrl+c"))

        with pytest.raises(SessionQuitError):
            await asyncio.wait_for(session.wait_for_mode(), timeout=2.0)

        await asyncio.wait_for(session.close(), timeout=2.0)

    @pytest.mark.asyncio
    async def test_app_context_ends_session(self):
        app_done = asyncio.Event()
        session = make_session(app_done=app_done)
        await session.start()
        app_done.set()

        with pytest.raises(SessionQuitError):
            await asyncio.wait_for(session.wait_for_mode(), timeout=2.0)
        await asyncio.wait_for(session.done.wait(), timeout=2.0)

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        session = make_session()
        await session.start()

        await asyncio.wait_for(session.close(), timeout=2.0)
        await asyncio.wait_for(session.close(), timeout=2.0)

        assert session.done.is_set()
        with pytest.raises(SessionClosedError):
            await session.wait_for_mode()

    @pytest.mark.asyncio
    async def test_second_close_waits_for_first(self):
        session = make_session()
        await session.start()

        first = asyncio.create_task(session.close())
        await asyncio.sleep(0)
        await asyncio.wait_for(session.close(), timeout=2.0)

        assert session.done.is_set()
        await asyncio.wait_for(first, timeout=2.0)

    @pytest.mark.asyncio
    async def test_interrupt_while_waiting_for_runtime(self):
        session = make_session()
        await session.start()
        session._program.send(KeyMsg("enter"))
        await asyncio.wait_for(session.wait_for_mode(), timeout=2.0)

        session._program.send(KeyMsg("ctrl+c"))

        with pytest.raises(SessionQuitError):
            await asyncio.wait_for(session.wait_for_runtime_exit(), timeout=2.0)
        await asyncio.wait_for(session.done.wait(), timeout=2.0)

    @pytest.mark.asyncio
    async def test_close_before_start(self):
        session = make_session()
        await session.close()

        assert session.done.is_set()

    @pytest.mark.asyncio
    async def test_start_twice_fails(self):
        session = make_session()
        await session.start()

        with pytest.raises(RuntimeError, match="already started"):
            await session.start()

        await asyncio.wait_for(session.close(), timeout=2.0)

    @pytest.mark.asyncio
    async def test_show_fatal_error_blocks_until_dismissed(self):
        session = make_session()
        await session.start()

        fatal = asyncio.create_task(session.show_fatal_error("tun0 vanished"))
        await asyncio.sleep(0)
        session._program.send(KeyMsg("enter"))

        await asyncio.wait_for(fatal, timeout=2.0)
        with pytest.raises(SessionQuitError):
            await session.wait_for_mode()

    @pytest.mark.asyncio
    async def test_logs_are_captured_while_running(self):
        buffer = RuntimeLogBuffer(32)
        session = make_session(log_buffer=buffer)
        await session.start()
        await asyncio.sleep(0.05)

        logging.getLogger("tungo_tui.tests.session").warning("inside session")
        await asyncio.wait_for(session.close(), timeout=2.0)

        assert any("inside session" in line for line in buffer.tail(32))


class TestSessionEventDrain:
    """Tests for event delivery after the loop has ended."""

    @pytest.mark.asyncio
    async def test_queued_event_survives_done(self):
        session = make_session()
        session._events.put_nowait(SessionEvent(SessionEventKind.MODE_SELECTED, mode=Mode.SERVER))
        session.done.set()

        assert await session.wait_for_mode() == Mode.SERVER

    @pytest.mark.asyncio
    async def test_irrelevant_events_then_closed(self):
        session = make_session()
        session._events.put_nowait(SessionEvent(SessionEventKind.RECONFIGURE))
        session.done.set()

        with pytest.raises(SessionClosedError):
            await session.wait_for_mode()

    @pytest.mark.asyncio
    async def test_runtime_result_mapping(self):
        session = make_session()
        error = ConfiguratorError("bad config")
        session._events.put_nowait(SessionEvent(SessionEventKind.ERROR, error=error))
        session.done.set()

        with pytest.raises(ConfiguratorError) as exc_info:
            await session.wait_for_runtime_exit()
        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_closed_error_carries_loop_failure(self):
        session = make_session()
        session._error = OSError("terminal gone")
        session.done.set()

        with pytest.raises(SessionClosedError) as exc_info:
            await session.wait_for_runtime_exit()
        assert isinstance(exc_info.value.cause, OSError)
