"""
Mode selector shown before a runtime exists.

The configurator has three tabs, Main, Settings and Logs. Main lists the
modes the host supports (Client, plus Server where supported); Enter
picks one. Settings and Logs share their components with the runtime
dashboard.

The outcome is carried on the model: done with result_mode on success,
or done with result_error on user exit (ConfiguratorUserExitError) or on
a collaborator failure (ConfiguratorError).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import IntEnum

from tungo_tui.buffer import LogFeed
from tungo_tui.config import settings
from tungo_tui.exceptions import ConfiguratorError, ConfiguratorUserExitError
from tungo_tui.keyboard import DEFAULT_KEYS, KeyMap
from tungo_tui.layout import content_width_for_terminal
from tungo_tui.log_viewport import LogViewport, log_update_task
from tungo_tui.messages import Cancel, ClearScreen, Effect, KeyMsg, LogTickMsg, Quit, ResizeMsg
from tungo_tui.preferences import (
    PreferencesProvider,
    UIPreferences,
    handle_settings_key,
    settings_cursor_down,
    settings_cursor_up,
    settings_rows,
)
from tungo_tui.render import (
    CONFIGURATOR_TABS,
    render_screen,
    render_selectable_rows,
    render_tabs_line,
)
from tungo_tui.styles import resolve_styles
from tungo_tui.types import Mode

logger = logging.getLogger(__name__)

LOGS_KEY = "configurator.logs"

MODE_TITLE = "Select mode"
MODE_HINT = "up/k down/j move | Enter select | Tab switch tabs | Esc exit | ctrl+c exit"
SETTINGS_HINT = "up/k down/j row | left/right/Enter change | Tab switch tabs | Esc back | ctrl+c exit"
LOGS_HINT = (
    "up/down scroll | PgUp/PgDn page | Home/End jump | Space follow"
    " | Tab switch tabs | Esc back | ctrl+c exit"
)

MODE_LABELS = {Mode.CLIENT: "Client", Mode.SERVER: "Server"}


class Tab(IntEnum):
    MAIN = 0
    SETTINGS = 1
    LOGS = 2

    def next(self) -> Tab:
        return Tab((self + 1) % len(Tab))


@dataclass(frozen=True)
class ConfiguratorOptions:
    """
    Collaborators of the mode selector.

    Attributes:
        server_supported: List Server as a mode
        log_feed: Feed shown on the Logs tab
        on_select: Called with the chosen mode before the choice is
            reported; raising aborts the session with a ConfiguratorError
        load_notice: Called when the selector is built; its text is shown
            under the title. Raising fails construction.
    """

    server_supported: bool = True
    log_feed: LogFeed | None = None
    on_select: Callable[[Mode], None] | None = None
    load_notice: Callable[[], str] | None = None


@dataclass(frozen=True)
class Configurator:
    """Immutable mode selector state."""

    provider: PreferencesProvider
    options: ConfiguratorOptions
    modes: tuple[Mode, ...]
    notice: str = ""
    preferences: UIPreferences = field(default_factory=UIPreferences)
    width: int = 0
    height: int = 0
    tab: Tab = Tab.MAIN
    cursor: int = 0
    settings_cursor: int = 0
    logs: LogViewport = field(default_factory=LogViewport)
    done: bool = False
    result_mode: Mode | None = None
    result_error: Exception | None = None
    log_poll_interval: float = settings.log_poll_interval
    keys: KeyMap = DEFAULT_KEYS

    def init(self) -> list[Effect]:
        return []

    def stop_waits(self) -> list[Effect]:
        return [Cancel(LOGS_KEY)]

    def update(self, msg: object) -> tuple[Configurator, list[Effect]]:
        """
        Apply one message.

        Returns:
            (new configurator, effects); Quit marks the model done
        """
        if self.done:
            return self, [*self.stop_waits(), Quit()]

        if isinstance(msg, ResizeMsg):
            model = replace(self, width=msg.width, height=msg.height)
            if model.tab == Tab.LOGS:
                model = model._with_logs(model.logs)
            return model, []

        if isinstance(msg, LogTickMsg):
            if msg.seq != self.logs.tick_seq or self.tab != Tab.LOGS:
                return self, []
            model = replace(self, logs=self.logs.refresh(self.options.log_feed))
            return model, [model._log_wait()]

        if isinstance(msg, KeyMsg):
            return self._update_key(msg.key)
        return self, []

    def _update_key(self, key: str) -> tuple[Configurator, list[Effect]]:
        if key == "ctrl+c":
            return self._finish(error=ConfiguratorUserExitError())
        if key in self.keys.tab:
            return self._cycle_tab()

        if self.tab == Tab.SETTINGS:
            if key == "esc":
                return replace(self, tab=Tab.MAIN), []
            prefs, cursor, theme_changed = handle_settings_key(
                self.provider, self.settings_cursor, key, self.keys
            )
            model = replace(self, preferences=prefs, settings_cursor=cursor)
            return model, [ClearScreen()] if theme_changed else []

        if self.tab == Tab.LOGS:
            if key == "esc":
                return replace(self, tab=Tab.MAIN), [Cancel(LOGS_KEY)]
            return replace(self, logs=self.logs.handle_key(key, self.keys)), []

        return self._update_modes(key)

    def _update_modes(self, key: str) -> tuple[Configurator, list[Effect]]:
        if key == "esc" or key in self.keys.quit:
            return self._finish(error=ConfiguratorUserExitError())
        if key in self.keys.up:
            return replace(self, cursor=settings_cursor_up(self.cursor)), []
        if key in self.keys.down:
            return replace(self, cursor=settings_cursor_down(self.cursor, len(self.modes))), []
        if key not in self.keys.select:
            return self, []

        mode = self.modes[self.cursor]
        if self.options.on_select is not None:
            try:
                self.options.on_select(mode)
            except Exception as exc:
                logger.error(f"Mode selection failed: {exc}")
                return self._finish(error=ConfiguratorError(f"failed to select {mode.value} mode", exc))
        return self._finish(mode=mode)

    def _finish(
        self, mode: Mode | None = None, error: Exception | None = None
    ) -> tuple[Configurator, list[Effect]]:
        model = replace(self, done=True, result_mode=mode, result_error=error)
        return model, [Cancel(LOGS_KEY), Quit()]

    def _cycle_tab(self) -> tuple[Configurator, list[Effect]]:
        previous = self.tab
        model = replace(self, tab=self.tab.next(), preferences=self.provider.preferences())
        if model.tab == Tab.LOGS:
            model = model._with_logs(model.logs.restarted())
            return model, [model._log_wait()]
        if previous == Tab.LOGS:
            return model, [Cancel(LOGS_KEY)]
        return model, []

    def _with_logs(self, logs: LogViewport) -> Configurator:
        logs = logs.ensure(self.width, self.height, self.preferences, "", LOGS_HINT)
        return replace(self, logs=logs.refresh(self.options.log_feed))

    def _log_wait(self) -> Effect:
        return log_update_task(
            LOGS_KEY, self.options.log_feed, self.logs.tick_seq, self.log_poll_interval
        )

    # --- Views ---

    def view(self) -> str:
        styles = resolve_styles(self.preferences.theme)
        content_width = content_width_for_terminal(self.width) if self.width > 0 else 0
        tabs_line = render_tabs_line(
            CONFIGURATOR_TABS,
            int(self.tab),
            content_width_for_terminal(self.width),
            self.preferences.theme,
        )

        if self.tab == Tab.SETTINGS:
            body = render_selectable_rows(
                settings_rows(self.preferences), self.settings_cursor, content_width, styles
            )
            return render_screen(
                self.width, self.height, tabs_line, "", body, SETTINGS_HINT, self.preferences, styles
            )
        if self.tab == Tab.LOGS:
            return render_screen(
                self.width,
                self.height,
                tabs_line,
                "",
                self.logs.view(styles.meta),
                LOGS_HINT,
                self.preferences,
                styles,
            )

        body = [styles.title.render(MODE_TITLE), ""]
        body.extend(
            render_selectable_rows(
                [MODE_LABELS[mode] for mode in self.modes], self.cursor, content_width, styles
            )
        )
        return render_screen(
            self.width, self.height, tabs_line, self.notice, body, MODE_HINT, self.preferences, styles
        )


def new_configurator(
    options: ConfiguratorOptions | None,
    provider: PreferencesProvider,
    width: int = 0,
    height: int = 0,
    log_poll_interval: float = settings.log_poll_interval,
) -> Configurator:
    """
    Build a fresh mode selector.

    Args:
        options: Collaborators; None is a construction error
        provider: Preferences provider
        width: Current terminal columns
        height: Current terminal rows
        log_poll_interval: Log refresh period for feeds without change signal

    Returns:
        New configurator

    Raises:
        ConfiguratorError: If options are missing or load_notice fails
    """
    if options is None:
        raise ConfiguratorError("configurator dependencies are not initialized")

    notice = ""
    if options.load_notice is not None:
        try:
            notice = options.load_notice()
        except Exception as exc:
            raise ConfiguratorError("failed to load configuration", exc) from exc

    modes = (Mode.CLIENT, Mode.SERVER) if options.server_supported else (Mode.CLIENT,)
    return Configurator(
        provider=provider,
        options=options,
        modes=modes,
        notice=notice,
        preferences=provider.preferences(),
        width=width,
        height=height,
        log_poll_interval=log_poll_interval,
    )
