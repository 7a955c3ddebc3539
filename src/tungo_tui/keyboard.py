"""
KeyboardTask for async keyboard input in the dashboard.

This module provides non-blocking key reading for the Program loop:
- Reads raw bytes in cbreak mode on an executor thread
- Uses select() with a timeout so the thread always returns quickly
- Decodes escape sequences into key names ("up", "pgdown", "ctrl+c", ...)

Key names are plain strings. KeyMap groups the names that trigger the
same action (arrow keys and their vi equivalents).
"""

import asyncio
import select
import sys
import termios
import tty
from collections.abc import Callable
from dataclasses import dataclass
from typing import TextIO

# Time to wait for the rest of an escape sequence
_SEQUENCE_TIMEOUT = 0.05

_SEQUENCES = {
    "\x1b": "esc",
    "\x1b[A": "up",
    "\x1b[B": "down",
    "\x1b[C": "right",
    "\x1b[D": "left",
    "\x1bOA": "up",
    "\x1bOB": "down",
    "\x1bOC": "right",
    "\x1bOD": "left",
    "\x1b[5~": "pgup",
    "\x1b[6~": "pgdown",
    "\x1b[H": "home",
    "\x1b[1~": "home",
    "\x1b[7~": "home",
    "\x1bOH": "home",
    "\x1b[F": "end",
    "\x1b[4~": "end",
    "\x1b[8~": "end",
    "\x1bOF": "end",
    "\x1b[Z": "shift+tab",
    "\r": "enter",
    "\n": "enter",
    "\t": "tab",
    " ": "space",
    "\x03": "ctrl+c",
    "\x7f": "backspace",
    "\x08": "backspace",
}


def decode_key(sequence: str) -> str | None:
    """
    Map a raw input sequence to a key name.

    Args:
        sequence: One key's worth of raw terminal input

    Returns:
        Key name, the character itself for printable keys, or None for
        sequences with no name
    """
    name = _SEQUENCES.get(sequence)
    if name is not None:
        return name
    if len(sequence) == 1 and sequence.isprintable():
        return sequence
    return None


def _ready(stream: TextIO, timeout: float) -> bool:
    return bool(select.select([stream], [], [], timeout)[0])


def _readkey_with_timeout(timeout: float, stream: TextIO = sys.stdin) -> str | None:
    """
    Read one key's raw sequence with timeout.

    Does NOT change terminal modes - caller must ensure cbreak mode is set.

    Args:
        timeout: Maximum seconds to wait for input
        stream: Input stream

    Returns:
        Raw sequence, or None if timeout
    """
    if not _ready(stream, timeout):
        return None
    seq = stream.read(1)
    if seq != "\x1b" or not _ready(stream, _SEQUENCE_TIMEOUT):
        return seq

    seq += stream.read(1)
    if seq == "\x1bO" and _ready(stream, _SEQUENCE_TIMEOUT):
        return seq + stream.read(1)
    if seq == "\x1b[":
        # CSI: read up to the final byte
        while _ready(stream, _SEQUENCE_TIMEOUT):
            ch = stream.read(1)
            seq += ch
            if "\x40" <= ch <= "\x7e":
                break
    return seq


@dataclass(frozen=True)
class KeyMap:
    """Key names bound to each navigation action."""

    up: tuple[str, ...] = ("up", "k")
    down: tuple[str, ...] = ("down", "j")
    left: tuple[str, ...] = ("left", "h")
    right: tuple[str, ...] = ("right", "l")
    select: tuple[str, ...] = ("enter",)
    tab: tuple[str, ...] = ("tab",)
    quit: tuple[str, ...] = ("ctrl+c", "q")


DEFAULT_KEYS = KeyMap()


class KeyboardTask:
    """Reads key presses in cbreak mode and hands their names to the Program loop."""

    def __init__(self, on_key: Callable[[str], None], stream: TextIO | None = None) -> None:
        self._on_key = on_key
        self._stream = stream if stream is not None else sys.stdin
        self._shutdown = asyncio.Event()
        self._old_settings: list | None = None

    async def run(self) -> None:
        """Decode keys until stopped; terminal attributes are restored on exit."""
        loop = asyncio.get_running_loop()

        fd = self._stream.fileno()
        self._old_settings = termios.tcgetattr(fd)
        try:
            tty.setcbreak(fd)

            while not self._shutdown.is_set():
                try:
                    sequence = await loop.run_in_executor(
                        None,
                        lambda: _readkey_with_timeout(0.3, self._stream),
                    )
                except asyncio.CancelledError:
                    break
                if sequence is None:
                    continue
                key = decode_key(sequence)
                if key is not None:
                    self._on_key(key)
        finally:
            if self._old_settings is not None:
                termios.tcsetattr(fd, termios.TCSADRAIN, self._old_settings)

    def stop(self) -> None:
        """Ask the reader to exit after its current poll."""
        self._shutdown.set()
