"""
Shared session types.

These types cross the boundary between the dashboard and the caller that
owns the tunnel: the mode the operator picked, the options a runtime is
activated with, and the events the session reports back.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

from tungo_tui.buffer import LogFeed
from tungo_tui.telemetry import Telemetry


class Mode(str, Enum):
    """Tunnel role selected in the configurator."""

    CLIENT = "client"
    SERVER = "server"


@dataclass(frozen=True)
class RuntimeOptions:
    """
    How a runtime dashboard is activated.

    Attributes:
        mode: Client or server runtime
        log_feed: Log feed shown on the Logs screen
        ready: Set once a client has connected; None means ready already
        telemetry: Traffic counters sampled by the dataplane screen
    """

    mode: Mode = Mode.CLIENT
    log_feed: LogFeed | None = None
    ready: asyncio.Event | None = None
    telemetry: Telemetry | None = None


class SessionEventKind(Enum):
    """Events the session posts to its external caller."""

    MODE_SELECTED = "mode_selected"
    RECONFIGURE = "reconfigure"
    RUNTIME_DISCONNECTED = "runtime_disconnected"
    EXIT = "exit"
    ERROR = "error"


@dataclass(frozen=True)
class SessionEvent:
    """
    One event from the session state machine.

    Attributes:
        kind: What happened
        mode: Selected mode, for MODE_SELECTED
        error: Cause, for ERROR
    """

    kind: SessionEventKind
    mode: Mode | None = None
    error: BaseException | None = None
