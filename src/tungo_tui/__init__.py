"""
Terminal operator dashboard for the TunGo tunnel daemon.

This package provides the building blocks of the dashboard:
- Session: caller handle over the configure/runtime state machine
- SessionModel: pure session reducer
- RuntimeDashboard: dataplane, settings and logs screens
- Configurator: mode selector shown before a runtime exists
- Program: message loop, keyboard and rich Live rendering
- RuntimeLogBuffer: ring buffer of captured log lines
- LogCapture: scoped redirection of logging into the buffer
- render_braille_sparkline: braille trend graphs
- UIPreferences, PreferencesProvider: operator preferences
- resolve_styles: memoized theme style sets
"""

from tungo_tui.buffer import (
    LogCapture,
    ObservableFeed,
    PollableFeed,
    RuntimeLogBuffer,
    subscribe_feed,
)
from tungo_tui.configurator import Configurator, ConfiguratorOptions
from tungo_tui.dashboard import RuntimeDashboard, new_runtime_dashboard
from tungo_tui.exceptions import (
    ConfiguratorError,
    ConfiguratorUserExitError,
    RuntimeDisconnectedError,
    SessionClosedError,
    SessionQuitError,
)
from tungo_tui.preferences import JsonPreferencesStore, PreferencesProvider, ThemeOption, UIPreferences
from tungo_tui.program import Program
from tungo_tui.session import Phase, Session, SessionModel, new_session_model
from tungo_tui.sparkline import SampleRing, render_braille_sparkline
from tungo_tui.styles import resolve_styles
from tungo_tui.telemetry import StaticTelemetry, TrafficSnapshot
from tungo_tui.types import Mode, RuntimeOptions, SessionEvent, SessionEventKind

__all__ = [
    "Configurator",
    "ConfiguratorError",
    "ConfiguratorOptions",
    "ConfiguratorUserExitError",
    "JsonPreferencesStore",
    "LogCapture",
    "Mode",
    "ObservableFeed",
    "Phase",
    "PollableFeed",
    "PreferencesProvider",
    "Program",
    "RuntimeDashboard",
    "RuntimeDisconnectedError",
    "RuntimeLogBuffer",
    "RuntimeOptions",
    "SampleRing",
    "Session",
    "SessionClosedError",
    "SessionEvent",
    "SessionEventKind",
    "SessionModel",
    "SessionQuitError",
    "StaticTelemetry",
    "ThemeOption",
    "TrafficSnapshot",
    "UIPreferences",
    "new_runtime_dashboard",
    "new_session_model",
    "render_braille_sparkline",
    "resolve_styles",
    "subscribe_feed",
]
