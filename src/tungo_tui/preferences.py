"""
Operator UI preferences.

This module provides the preferences record every render call receives:
- ThemeOption / StatsUnits: closed option sets
- UIPreferences: immutable, self-sanitizing snapshot (pydantic)
- PreferencesProvider: current snapshot plus update/persist
- JsonPreferencesStore: JSON file persistence with atomic replace

The dashboard only ever reads snapshots; updates go through the provider,
which sanitizes, stores and (optionally) persists the new snapshot.
"""

from __future__ import annotations

import logging
import os
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from tungo_tui.keyboard import DEFAULT_KEYS, KeyMap

logger = logging.getLogger(__name__)


class ThemeOption(str, Enum):
    """Available color themes, in settings-cycle order."""

    LIGHT = "light"
    DARK = "dark"
    DARK_HIGH_CONTRAST = "dark_high_contrast"
    DARK_MATRIX = "dark_matrix"
    DARK_OCEAN = "dark_ocean"
    DARK_NORD = "dark_nord"
    DARK_MONO = "dark_mono"


class StatsUnits(str, Enum):
    """Unit system for traffic figures."""

    BYTES = "bytes"  # decimal, KB/MB/GB
    BIBYTES = "bibytes"  # binary, KiB/MiB/GiB


DEFAULT_THEME = ThemeOption.LIGHT
ORDERED_THEMES: tuple[ThemeOption, ...] = tuple(ThemeOption)

# Themes shipped by older releases
LEGACY_THEME_MIGRATION: dict[str, ThemeOption] = {
    "light_arctic": ThemeOption.LIGHT,
    "light_ivory": ThemeOption.LIGHT,
    "light_mint": ThemeOption.LIGHT,
    "light_sand": ThemeOption.LIGHT,
    "light_lavender": ThemeOption.LIGHT,
    "light_slate": ThemeOption.LIGHT,
    "light_sky": ThemeOption.LIGHT,
    "light_peach": ThemeOption.LIGHT,
    "light_mono": ThemeOption.LIGHT,
    "light_azure": ThemeOption.LIGHT,
    "light_cyan": ThemeOption.LIGHT,
    "dark_midnight": ThemeOption.DARK_OCEAN,
    "dark_ember": ThemeOption.DARK_HIGH_CONTRAST,
    "dark_violet": ThemeOption.DARK,
    "dark_forest": ThemeOption.DARK_MATRIX,
    "dark_graphite": ThemeOption.DARK_NORD,
    "dark_cyber": ThemeOption.DARK,
}


def is_known_theme(theme: Any) -> bool:
    """Check whether theme names one of the shipped themes."""
    try:
        ThemeOption(theme)
    except ValueError:
        return False
    return True


class UIPreferences(BaseModel):
    """
    Immutable preferences snapshot.

    Invalid values never fail validation; they are sanitized to defaults
    so a damaged settings file cannot keep the dashboard from starting.

    Attributes:
        theme: Color theme
        language: UI language code
        stats_units: Decimal or binary traffic units
        show_dataplane_stats: Show the RX/TX figures panel
        show_dataplane_graph: Show the RX/TX trend sparklines
        show_footer: Show the key hint footer
    """

    model_config = ConfigDict(frozen=True)

    theme: ThemeOption = DEFAULT_THEME
    language: str = "en"
    stats_units: StatsUnits = StatsUnits.BIBYTES
    show_dataplane_stats: bool = True
    show_dataplane_graph: bool = True
    show_footer: bool = True

    @field_validator("theme", mode="before")
    @classmethod
    def _sanitize_theme(cls, value: Any) -> Any:
        if isinstance(value, ThemeOption):
            return value
        if isinstance(value, str) and value in LEGACY_THEME_MIGRATION:
            return LEGACY_THEME_MIGRATION[value]
        if not is_known_theme(value):
            return DEFAULT_THEME
        return value

    @field_validator("language", mode="before")
    @classmethod
    def _sanitize_language(cls, value: Any) -> Any:
        if not isinstance(value, str) or not value.strip():
            return "en"
        return value

    @field_validator("stats_units", mode="before")
    @classmethod
    def _sanitize_units(cls, value: Any) -> Any:
        try:
            return StatsUnits(value)
        except ValueError:
            return StatsUnits.BIBYTES

    def updated(self, **changes: Any) -> UIPreferences:
        """Return a sanitized copy with changes applied."""
        return UIPreferences.model_validate({**self.model_dump(), **changes})


class PreferencesStore(Protocol):
    """Persistence backend for preferences."""

    def load(self) -> UIPreferences: ...

    def save(self, prefs: UIPreferences) -> None: ...


class JsonPreferencesStore:
    """
    Stores preferences as a JSON document.

    A missing file loads as defaults. Saving writes a temp file next to
    the target and renames it into place.

    Example:
        store = JsonPreferencesStore(Path("/etc/tungo/tui.json"))
        prefs = store.load()
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> UIPreferences:
        """
        Read preferences from disk.

        Returns:
            Loaded (sanitized) preferences, defaults if the file is absent

        Raises:
            OSError: If the file exists but cannot be read
            ValueError: If the file is not a valid preferences document
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return UIPreferences()

        try:
            return UIPreferences.model_validate_json(raw)
        except ValidationError as exc:
            raise ValueError(f"{self.path}: invalid preferences document: {exc}") from exc

    def save(self, prefs: UIPreferences) -> None:
        """
        Atomically write preferences to disk.

        Raises:
            OSError: If the directory or file cannot be written
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = prefs.model_dump_json(indent=2) + "\n"
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        try:
            os.replace(tmp_path, self.path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise


class PreferencesProvider:
    """
    Holds the current preferences snapshot.

    Updates are serialized; readers get the latest immutable snapshot.
    Persistence failures are logged and never reach the UI.
    """

    def __init__(
        self,
        initial: UIPreferences | None = None,
        store: PreferencesStore | None = None,
    ) -> None:
        self._prefs = initial if initial is not None else UIPreferences()
        self._store = store
        self._lock = threading.Lock()

    @classmethod
    def from_store(cls, store: PreferencesStore) -> PreferencesProvider:
        """Build a provider seeded from store, defaults on load failure."""
        try:
            initial = store.load()
        except (OSError, ValueError) as exc:
            logger.warning(f"Failed to load UI preferences: {exc}")
            initial = UIPreferences()
        return cls(initial, store)

    def preferences(self) -> UIPreferences:
        return self._prefs

    def update(self, **changes: Any) -> UIPreferences:
        """
        Apply changes, store and persist the new snapshot.

        Args:
            **changes: UIPreferences field values

        Returns:
            The new snapshot
        """
        with self._lock:
            prefs = self._prefs.updated(**changes)
            self._prefs = prefs
            if self._store is not None:
                try:
                    self._store.save(prefs)
                except OSError as exc:
                    logger.warning(f"Failed to persist UI preferences: {exc}")
            return prefs


# Settings screen rows
SETTINGS_THEME_ROW = 0
SETTINGS_UNITS_ROW = 1
SETTINGS_STATS_ROW = 2
SETTINGS_GRAPH_ROW = 3
SETTINGS_FOOTER_ROW = 4
SETTINGS_ROW_COUNT = 5


def settings_rows(prefs: UIPreferences) -> list[str]:
    """Render the settings screen rows for prefs."""
    return [
        "Theme      : " + prefs.theme.value.replace("_", " ").upper(),
        "Stats units: " + stats_units_label(prefs.stats_units),
        "Dataplane stats: " + on_off(prefs.show_dataplane_stats),
        "Dataplane graph: " + on_off(prefs.show_dataplane_graph),
        "Show footer: " + on_off(prefs.show_footer),
    ]


def stats_units_label(units: StatsUnits) -> str:
    if units == StatsUnits.BYTES:
        return "Decimal units (KB/MB/GB)"
    return "Binary units (KiB/MiB/GiB)"


def on_off(value: bool) -> str:
    return "ON" if value else "OFF"


def cycle_theme(theme: ThemeOption, step: int) -> ThemeOption:
    index = ORDERED_THEMES.index(theme)
    return ORDERED_THEMES[(index + step) % len(ORDERED_THEMES)]


def apply_settings_change(provider: PreferencesProvider, row: int, step: int) -> UIPreferences:
    """
    Change the value on a settings row.

    Args:
        provider: Preferences provider to update
        row: Settings row index
        step: +1 for next value, -1 for previous

    Returns:
        The new preferences snapshot
    """
    prefs = provider.preferences()
    if row == SETTINGS_THEME_ROW:
        return provider.update(theme=cycle_theme(prefs.theme, step))
    if row == SETTINGS_UNITS_ROW:
        units = StatsUnits.BIBYTES if prefs.stats_units == StatsUnits.BYTES else StatsUnits.BYTES
        return provider.update(stats_units=units)
    if row == SETTINGS_STATS_ROW:
        return provider.update(show_dataplane_stats=not prefs.show_dataplane_stats)
    if row == SETTINGS_GRAPH_ROW:
        return provider.update(show_dataplane_graph=not prefs.show_dataplane_graph)
    if row == SETTINGS_FOOTER_ROW:
        return provider.update(show_footer=not prefs.show_footer)
    return prefs


def settings_cursor_up(cursor: int) -> int:
    return max(0, cursor - 1)


def settings_cursor_down(cursor: int, row_count: int = SETTINGS_ROW_COUNT) -> int:
    return min(max(0, row_count - 1), cursor + 1)


def handle_settings_key(
    provider: PreferencesProvider,
    cursor: int,
    key: str,
    keys: KeyMap = DEFAULT_KEYS,
) -> tuple[UIPreferences, int, bool]:
    """
    Apply one key press on the settings screen.

    Args:
        provider: Preferences provider to update
        cursor: Selected row
        key: Key name
        keys: Key bindings

    Returns:
        (new preferences, new cursor, whether the theme changed)
    """
    prefs = provider.preferences()
    if key in keys.up:
        return prefs, settings_cursor_up(cursor), False
    if key in keys.down:
        return prefs, settings_cursor_down(cursor), False

    if key in keys.left:
        step = -1
    elif key in keys.right or key in keys.select:
        step = 1
    else:
        return prefs, cursor, False
    updated = apply_settings_change(provider, cursor, step)
    return updated, cursor, updated.theme != prefs.theme
