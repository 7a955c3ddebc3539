"""
Traffic telemetry interface and formatting.

The dashboard reads one TrafficSnapshot per tick from a Telemetry
collaborator and renders rates/totals in the operator's unit system.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Protocol

from tungo_tui.preferences import StatsUnits, UIPreferences

STATS_LABEL_WIDTH = 8
STATS_VALUE_WIDTH = 12

_DECIMAL_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")
_BINARY_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB")


@dataclass(frozen=True)
class TrafficSnapshot:
    """
    Point-in-time data plane counters.

    Attributes:
        rx_rate: Receive rate in bytes per second
        tx_rate: Transmit rate in bytes per second
        rx_bytes_total: Bytes received since start
        tx_bytes_total: Bytes transmitted since start
    """

    rx_rate: int = 0
    tx_rate: int = 0
    rx_bytes_total: int = 0
    tx_bytes_total: int = 0


class Telemetry(Protocol):
    """Source of traffic snapshots."""

    def snapshot(self) -> TrafficSnapshot: ...


class StaticTelemetry:
    """
    Telemetry returning the last snapshot it was given.

    Thread-safe; a producer may call set() from any thread.
    """

    def __init__(self, snapshot: TrafficSnapshot | None = None) -> None:
        self._snapshot = snapshot or TrafficSnapshot()
        self._lock = threading.Lock()

    def set(self, snapshot: TrafficSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot

    def snapshot(self) -> TrafficSnapshot:
        with self._lock:
            return self._snapshot


def format_bytes(value: int, units: StatsUnits) -> str:
    """
    Format a byte count with decimal or binary prefixes.

    Args:
        value: Byte count (negative values are treated as 0)
        units: Unit system

    Returns:
        String like "512 B", "1.5 KiB" or "12.0 MB"
    """
    value = max(0, int(value))
    if units == StatsUnits.BYTES:
        base, names = 1000, _DECIMAL_UNITS
    else:
        base, names = 1024, _BINARY_UNITS
    if value < base:
        return f"{value} {names[0]}"

    scaled = float(value)
    index = 0
    while scaled >= base and index < len(names) - 1:
        scaled /= base
        index += 1
    return f"{scaled:.1f} {names[index]}"


def format_rate(bytes_per_second: int, units: StatsUnits) -> str:
    return format_bytes(bytes_per_second, units) + "/s"


def format_total(total: int, units: StatsUnits) -> str:
    return format_bytes(total, units)


def format_stats_line(label_a: str, value_a: str, label_b: str, value_b: str) -> str:
    """Lay out two label/value pairs in fixed columns."""
    return (
        f"{label_a:<{STATS_LABEL_WIDTH}} {value_a:>{STATS_VALUE_WIDTH}}"
        f" | {label_b:<{STATS_LABEL_WIDTH}} {value_b:>{STATS_VALUE_WIDTH}}"
    )


def format_stats_lines(prefs: UIPreferences, snapshot: TrafficSnapshot) -> list[str]:
    """Render the two-line RX/TX stats panel."""
    units = prefs.stats_units
    return [
        format_stats_line(
            "RX", format_rate(snapshot.rx_rate, units),
            "TX", format_rate(snapshot.tx_rate, units),
        ),
        format_stats_line(
            "Total RX", format_total(snapshot.rx_bytes_total, units),
            "Total TX", format_total(snapshot.tx_bytes_total, units),
        ),
    ]
