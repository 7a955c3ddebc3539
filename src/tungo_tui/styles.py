"""
Theme palettes and compiled ANSI styles.

This module turns a theme identifier into the set of text renderers
every screen draws with:
- ThemePalette: static ANSI color codes per theme
- TextStyle: immutable renderer with a compiled SGR prefix
- StyleSet: the named styles one screen needs
- StyleResolver: memoized theme -> StyleSet compilation

Style sets are pure functions of the palette, so a resolver builds each
one at most once. Cache hits take no lock; the first build for a theme
is serialized under a lock so concurrent dashboards share one instance.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from tungo_tui.layout import ANSI_RESET
from tungo_tui.preferences import DEFAULT_THEME, ThemeOption, is_known_theme

ANSI_BOLD = "\x1b[1m"

FG_BLACK = "\x1b[30m"
FG_GREEN = "\x1b[32m"
FG_BLUE = "\x1b[34m"
FG_CYAN = "\x1b[36m"
FG_WHITE = "\x1b[37m"
FG_BRIGHT_BLACK = "\x1b[90m"
FG_BRIGHT_GREEN = "\x1b[92m"
FG_BRIGHT_YELLOW = "\x1b[93m"
FG_BRIGHT_BLUE = "\x1b[94m"
FG_BRIGHT_CYAN = "\x1b[96m"
FG_BRIGHT_WHITE = "\x1b[97m"

BG_BLACK = "\x1b[40m"
BG_BLUE = "\x1b[44m"
BG_CYAN = "\x1b[46m"
BG_WHITE = "\x1b[47m"
BG_BRIGHT_BLACK = "\x1b[100m"
BG_BRIGHT_GREEN = "\x1b[102m"
BG_BRIGHT_YELLOW = "\x1b[103m"
BG_BRIGHT_WHITE = "\x1b[107m"


@dataclass(frozen=True)
class ThemePalette:
    """
    ANSI color codes for one theme.

    Attributes:
        background: Base background SGR
        text: Base foreground SGR
        muted: Foreground for secondary text
        brand: Foreground for the product label
        accent: Foreground for rules and frames
        active_background: Background of the highlighted row/tab
        active_text: Foreground of the highlighted row/tab
    """

    background: str
    text: str
    muted: str
    brand: str
    accent: str
    active_background: str
    active_text: str

    @property
    def base(self) -> str:
        """SGR prefix painting the theme's base background and text."""
        if not self.background or not self.text:
            return ""
        return self.background + self.text


PALETTES: dict[ThemeOption, ThemePalette] = {
    ThemeOption.LIGHT: ThemePalette(
        background=BG_BRIGHT_WHITE,
        text=FG_BLACK,
        muted=FG_BRIGHT_BLACK,
        brand=FG_BRIGHT_CYAN,
        accent=FG_BLUE,
        active_background=BG_BLUE,
        active_text=FG_BRIGHT_WHITE,
    ),
    ThemeOption.DARK: ThemePalette(
        background=BG_BLACK,
        text=FG_WHITE,
        muted=FG_BRIGHT_BLACK,
        brand=FG_BRIGHT_CYAN,
        accent=FG_BRIGHT_BLUE,
        active_background=BG_CYAN,
        active_text=FG_BLACK,
    ),
    ThemeOption.DARK_HIGH_CONTRAST: ThemePalette(
        background=BG_BLACK,
        text=FG_BRIGHT_WHITE,
        muted=FG_WHITE,
        brand=FG_BRIGHT_CYAN,
        accent=FG_BRIGHT_YELLOW,
        active_background=BG_BRIGHT_YELLOW,
        active_text=FG_BLACK,
    ),
    ThemeOption.DARK_MATRIX: ThemePalette(
        background=BG_BLACK,
        text=FG_BRIGHT_GREEN,
        muted=FG_GREEN,
        brand=FG_BRIGHT_CYAN,
        accent=FG_GREEN,
        active_background=BG_BRIGHT_GREEN,
        active_text=FG_BLACK,
    ),
    ThemeOption.DARK_OCEAN: ThemePalette(
        background=BG_BLACK,
        text=FG_BRIGHT_WHITE,
        muted=FG_CYAN,
        brand=FG_BRIGHT_CYAN,
        accent=FG_BLUE,
        active_background=BG_BLUE,
        active_text=FG_BRIGHT_WHITE,
    ),
    ThemeOption.DARK_NORD: ThemePalette(
        background=BG_BRIGHT_BLACK,
        text=FG_WHITE,
        muted=FG_BRIGHT_BLACK,
        brand=FG_BRIGHT_CYAN,
        accent=FG_CYAN,
        active_background=BG_CYAN,
        active_text=FG_BLACK,
    ),
    ThemeOption.DARK_MONO: ThemePalette(
        background=BG_BLACK,
        text=FG_WHITE,
        muted=FG_BRIGHT_BLACK,
        brand=FG_BRIGHT_CYAN,
        accent=FG_WHITE,
        active_background=BG_WHITE,
        active_text=FG_BLACK,
    ),
}


def style_prefix(fg: str, bg: str, bold: bool = False) -> str:
    """Compile an SGR prefix; empty when either color is missing."""
    if not fg or not bg:
        return ""
    return (ANSI_BOLD if bold else "") + fg + bg


@dataclass(frozen=True)
class TextStyle:
    """Renders text with a fixed SGR prefix."""

    prefix: str = ""

    def render(self, value: str) -> str:
        if not self.prefix:
            return value
        return self.prefix + value + ANSI_RESET


@dataclass(frozen=True)
class StyleSet:
    """Named renderers for one theme."""

    header_bar: TextStyle
    brand: TextStyle
    header_title: TextStyle
    header_rule: TextStyle
    title: TextStyle
    subtitle: TextStyle
    hint: TextStyle
    option: TextStyle
    active: TextStyle
    meta: TextStyle
    base: str


def build_style_set(palette: ThemePalette) -> StyleSet:
    """Compile every style of a palette."""
    text = style_prefix(palette.text, palette.background)
    bold_text = style_prefix(palette.text, palette.background, bold=True)
    muted = style_prefix(palette.muted, palette.background)
    rule = style_prefix(palette.accent, palette.background)
    return StyleSet(
        header_bar=TextStyle(text),
        brand=TextStyle(style_prefix(palette.brand, palette.background)),
        header_title=TextStyle(bold_text),
        header_rule=TextStyle(rule),
        title=TextStyle(bold_text),
        subtitle=TextStyle(muted),
        hint=TextStyle(text),
        option=TextStyle(text),
        active=TextStyle(style_prefix(palette.active_text, palette.active_background, bold=True)),
        meta=TextStyle(muted),
        base=palette.base,
    )


class StyleResolver:
    """
    Memoized theme -> StyleSet table.

    Safe for concurrent use by several dashboards. Cache hits read the
    table without locking; a miss builds under the lock and re-checks so
    each theme is compiled once.

    Example:
        resolver = StyleResolver()
        styles = resolver.resolve(ThemeOption.DARK)
    """

    def __init__(self) -> None:
        self._cache: dict[ThemeOption, StyleSet] = {}
        self._lock = threading.Lock()
        self.builds = 0

    def resolve(self, theme: ThemeOption | str) -> StyleSet:
        """
        Return the style set for theme.

        Unknown themes resolve to the default theme.

        Args:
            theme: Theme identifier

        Returns:
            Shared, immutable StyleSet
        """
        key = ThemeOption(theme) if is_known_theme(theme) else DEFAULT_THEME
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        with self._lock:
            cached = self._cache.get(key)
            if cached is None:
                cached = build_style_set(PALETTES[key])
                self._cache[key] = cached
                self.builds += 1
            return cached


_default_resolver = StyleResolver()


def resolve_styles(theme: ThemeOption | str) -> StyleSet:
    """Resolve through the process-wide resolver."""
    return _default_resolver.resolve(theme)

