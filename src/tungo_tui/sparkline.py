"""
Braille sparklines for the dataplane trend graphs.

This module provides traffic rate history and its visualization:
- SampleRing: fixed 40-slot ring of rate samples
- render_braille_sparkline(): trend line drawn with Unicode braille cells

Each output character is one braille cell of 2 columns x 4 rows of dots,
so a graph of N characters has 2N horizontal pixels. Values are
quantized into 4 vertical levels relative to the window maximum, and
consecutive pixel columns at different levels are joined by a vertical
fill so the trend reads as a line rather than scattered dots.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field

SPARKLINE_POINTS = 40
BRAILLE_BASE = 0x2800
# Bottom row of both dot columns: the flat baseline glyph
ZERO_GLYPH = "⣀"
TREND_LABEL = "RX trend: "

# Dot bit for (sub_column, row)
_DOT_MASKS = (
    (0x01, 0x02, 0x04, 0x40),
    (0x08, 0x10, 0x20, 0x80),
)


@dataclass(frozen=True)
class SampleRing:
    """
    Immutable ring of unsigned rate samples.

    record() returns a new ring; once full, the oldest sample is replaced.

    Attributes:
        samples: Fixed-size sample storage
        count: Number of valid samples, saturating at the ring size
        cursor: Slot the next sample is written to
    """

    samples: tuple[int, ...] = field(default=(0,) * SPARKLINE_POINTS)
    count: int = 0
    cursor: int = 0

    @property
    def size(self) -> int:
        return len(self.samples)

    def record(self, value: int) -> SampleRing:
        """Return a ring with value appended."""
        samples = list(self.samples)
        samples[self.cursor] = max(0, int(value))
        return SampleRing(
            samples=tuple(samples),
            count=min(self.count + 1, self.size),
            cursor=(self.cursor + 1) % self.size,
        )

    def cleared(self) -> SampleRing:
        return SampleRing(samples=(0,) * self.size)

    def at(self, window: int, pos: int) -> int:
        """
        Read a sample from the newest window samples.

        Args:
            window: How many of the newest samples form the window
            pos: Position inside the window, 0 is the oldest

        Returns:
            Sample value, 0 when pos is out of range
        """
        if window <= 0 or pos < 0 or pos >= window:
            return 0
        start = (self.cursor - window) % self.size
        return self.samples[(start + pos) % self.size]


@functools.lru_cache(maxsize=128)
def zero_sparkline(width: int) -> str:
    """Return the flat baseline of width cells."""
    if width <= 0:
        return ""
    return ZERO_GLYPH * width


def braille_row(value: int, max_value: int) -> int:
    """Map value to a dot row: 3 is the bottom, 0 the top."""
    if max_value <= 0:
        return 3
    level = (value * 3) // max_value
    return 3 - level


def _set_dot(cells: list[int], x: int, row: int) -> None:
    cell = x // 2
    if x < 0 or cell >= len(cells):
        return
    row = min(3, max(0, row))
    cells[cell] |= _DOT_MASKS[x % 2][row]


def render_braille_sparkline(ring: SampleRing, width: int) -> str:
    """
    Draw the newest samples of ring as a braille trend line.

    Args:
        ring: Sample history
        width: Output width in characters; <= 0 uses the sample count

    Returns:
        String of exactly width braille characters (left-padded with the
        flat baseline when fewer samples exist than width)
    """
    if width <= 0:
        width = min(ring.size, ring.count)
    if ring.count <= 0:
        return zero_sparkline(width)

    window = min(ring.count, width)
    max_value = max(ring.at(window, i) for i in range(window))
    if max_value == 0:
        return zero_sparkline(width)

    pixel_width = max(2, window * 2)
    last_pos = max(1, window - 1)
    cells = [0] * window
    last_row = -1
    for x in range(pixel_width):
        pos = (x * last_pos) // max(1, pixel_width - 1)
        row = braille_row(ring.at(window, pos), max_value)
        _set_dot(cells, x, row)
        if last_row >= 0 and last_row != row:
            low, high = sorted((last_row, row))
            for mid in range(low, high + 1):
                _set_dot(cells, x, mid)
        last_row = row

    graph = "".join(chr(BRAILLE_BASE + mask) for mask in cells)
    return zero_sparkline(width - window) + graph


def sparkline_width_for_content(content_width: int) -> int:
    """Pick the graph width that fits next to its label."""
    if content_width <= 0:
        return 20
    available = content_width - len(TREND_LABEL)
    return max(12, min(SPARKLINE_POINTS, available))
