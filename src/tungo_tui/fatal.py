"""Full-screen fatal error message, dismissible only to quit."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from tungo_tui.messages import Effect, KeyMsg, Quit, ResizeMsg
from tungo_tui.preferences import UIPreferences
from tungo_tui.render import render_screen
from tungo_tui.styles import resolve_styles

DISMISS_HINT = "Press Enter to exit"
DISMISS_KEYS = frozenset({"enter", "esc", "q", "ctrl+c"})


@dataclass(frozen=True)
class FatalErrorModel:
    title: str
    message: str
    preferences: UIPreferences = field(default_factory=UIPreferences)
    width: int = 0
    height: int = 0
    dismissed: bool = False

    def update(self, msg: object) -> tuple[FatalErrorModel, list[Effect]]:
        if isinstance(msg, ResizeMsg):
            return replace(self, width=msg.width, height=msg.height), []
        if isinstance(msg, KeyMsg) and msg.key in DISMISS_KEYS:
            return replace(self, dismissed=True), [Quit()]
        return self, []

    def view(self) -> str:
        styles = resolve_styles(self.preferences.theme)
        body = [*self.message.split("\n"), "", styles.hint.render(DISMISS_HINT)]
        return render_screen(
            self.width,
            self.height,
            styles.title.render(self.title),
            "",
            body,
            "",
            self.preferences,
            styles,
        )
