"""
ANSI-aware text layout for the dashboard card.

This module measures and shapes styled terminal text:
- visible_width(): rendered column count, escape sequences are zero-width
- wrap_text(): greedy word wrap for plain text
- truncate(): clip to a visible width with an ASCII ellipsis
- pad_right(): pad to an exact visible width
- build_card(): fixed-character box around content lines
- place_centered(): position a card inside the terminal
- fill_base(): re-apply the theme base colors after embedded resets

Every function is total. No size or content raises; zero or negative
dimensions degrade to the smallest valid output.

Card layout:
+------------------------+
|                        |
|  content padded to W   |
|                        |
+------------------------+
"""

from __future__ import annotations

ESC = "\x1b"
ANSI_RESET = "\x1b[0m"

# Card geometry
MIN_CARD_WIDTH = 36
MAX_CARD_WIDTH = 96
SIDE_INSET_COLS = 6
MIN_CARD_HEIGHT = 16
MAX_CARD_HEIGHT = 30
TOP_BOTTOM_INSETS = 4
FRAME_PAD_X = 2
FRAME_PAD_Y = 1
FRAME_BORDER_X = 2
FRAME_BORDER_Y = 2
FRAME_HORIZ_SIZE = FRAME_BORDER_X + FRAME_PAD_X * 2
FRAME_VERT_SIZE = FRAME_BORDER_Y + FRAME_PAD_Y * 2

ELLIPSIS = "..."

# Scanner states
_NORMAL, _ESC, _CSI, _OSC, _ST = range(5)

# SGR parameters that reset foreground/background to the terminal default
_BASE_RESET_PARAMS = frozenset({"", "0", "39", "49"})


def _scan(s: str, keep: list[str] | None) -> int:
    """
    Walk s through the escape-sequence state machine.

    CSI (ESC [ ... final byte 0x40-0x7E) and OSC (ESC ] ... BEL or ESC \\)
    sequences are skipped. Any other ESC-prefixed sequence ends after one
    byte. Rendered characters are counted and, when keep is given,
    collected into it.

    Args:
        s: Text to scan
        keep: Optional list receiving the rendered characters

    Returns:
        Number of rendered characters
    """
    width = 0
    state = _NORMAL
    for ch in s:
        if state == _NORMAL:
            if ch == ESC:
                state = _ESC
                continue
            width += 1
            if keep is not None:
                keep.append(ch)
        elif state == _ESC:
            if ch == "[":
                state = _CSI
            elif ch == "]":
                state = _OSC
            else:
                state = _NORMAL
        elif state == _CSI:
            if "\x40" <= ch <= "\x7e":
                state = _NORMAL
        elif state == _OSC:
            if ch == "\a":
                state = _NORMAL
            elif ch == ESC:
                state = _ST
        else:
            # ST: ESC \ terminates the OSC, anything else resumes it
            state = _NORMAL if ch == "\\" else _OSC
    return width


def visible_width(s: str) -> int:
    """Return the number of rendered characters in s."""
    if ESC not in s:
        return len(s)
    return _scan(s, None)


def strip_ansi(s: str) -> str:
    """Return s with every escape sequence removed."""
    if ESC not in s:
        return s
    keep: list[str] = []
    _scan(s, keep)
    return "".join(keep)


def contains_ansi(s: str) -> bool:
    """Check whether s carries a CSI sequence."""
    return "\x1b[" in s


def wrap_text(s: str, width: int) -> list[str]:
    """
    Wrap plain text to lines no wider than width.

    Splits on explicit line breaks first, then greedily packs
    whitespace-separated words. A word longer than width is hard-split.
    Wrapping is disabled for width <= 0 and for styled input, which is
    only split on its explicit line breaks.

    Args:
        s: Text to wrap
        width: Maximum visible columns per line

    Returns:
        Wrapped lines (at least one)
    """
    if s == "":
        return [""]
    if width <= 0 or contains_ansi(s):
        return s.split("\n")

    out: list[str] = []
    for part in s.split("\n"):
        out.extend(_wrap_line(part, width))
    return out


def _wrap_line(line: str, width: int) -> list[str]:
    if len(line) <= width:
        return [line]

    words = line.split()
    if not words:
        return [""]

    out: list[str] = []
    current = ""
    for word in words:
        while len(word) > width:
            if current:
                out.append(current)
                current = ""
            out.append(word[:width])
            word = word[width:]

        if not word:
            continue
        if not current:
            current = word
        elif len(current) + 1 + len(word) <= width:
            current = f"{current} {word}"
        else:
            out.append(current)
            current = word
    if current:
        out.append(current)
    return out


def wrap_body(lines: list[str], width: int) -> list[str]:
    """
    Wrap each body line independently.

    Empty lines are kept as spacers. Styled single lines and any line
    when width is unknown are passed through untouched.
    """
    out: list[str] = []
    for line in lines:
        if line == "":
            out.append("")
            continue
        if (width <= 0 or contains_ansi(line)) and "\n" not in line:
            out.append(line)
            continue
        out.extend(wrap_text(line, width) or [""])
    return out


def truncate(s: str, width: int) -> str:
    """
    Clip s to at most width visible columns.

    Text that already fits is returned unchanged, styling included.
    Otherwise styling is dropped and the plain text is cut; widths
    above 3 end with an ASCII ellipsis.

    Args:
        s: Text to clip
        width: Maximum visible columns

    Returns:
        Text whose visible width is <= max(width, 0)
    """
    if width <= 0:
        return ""
    if s.isascii() and ESC not in s:
        # Plain ASCII: one byte per column
        if len(s) <= width:
            return s
        plain = s
    else:
        if visible_width(s) <= width:
            return s
        plain = strip_ansi(s)
        if len(plain) <= width:
            return plain
    if width <= len(ELLIPSIS):
        return plain[:width]
    return plain[: width - len(ELLIPSIS)] + ELLIPSIS


def pad_right(s: str, width: int) -> str:
    """Pad s with spaces to width visible columns; never truncates."""
    current = visible_width(s)
    if current >= width:
        return s
    return s + " " * (width - current)


def pad_left(s: str, width: int) -> str:
    """Right-align s in width visible columns; never truncates."""
    current = visible_width(s)
    if current >= width:
        return s
    return " " * (width - current) + s


def compute_card_width(terminal_width: int) -> int:
    """Return the card width for a terminal, 0 when the width is unknown."""
    if terminal_width <= 0:
        return 0
    available = terminal_width - SIDE_INSET_COLS
    if available < MIN_CARD_WIDTH:
        available = terminal_width - 2
    available = max(1, available)
    return min(MAX_CARD_WIDTH, available, terminal_width)


def compute_card_height(terminal_height: int) -> int:
    """Return the card height for a terminal, 0 when the height is unknown."""
    if terminal_height <= 0:
        return 0
    available = terminal_height - TOP_BOTTOM_INSETS
    if available < MIN_CARD_HEIGHT:
        available = terminal_height - 2
    available = max(1, available)
    return min(MAX_CARD_HEIGHT, available, terminal_height)


def content_width_for_terminal(terminal_width: int) -> int:
    """Return the usable text width inside the card, floor 1."""
    if terminal_width <= 0:
        return 1
    return max(1, compute_card_width(terminal_width) - FRAME_HORIZ_SIZE)


def build_card(content_lines: list[str], content_width: int, base: str = "") -> str:
    """
    Frame content lines in an ASCII box.

    Every line is padded to a uniform inner width. With content_width <= 0
    the widest line decides the width.

    Args:
        content_lines: Lines to frame (may carry styling)
        content_width: Inner text width, or <= 0 to fit content
        base: Theme base SGR prefix to keep alive across embedded resets

    Returns:
        Multi-line card string without a trailing newline
    """
    effective = content_width
    if effective <= 0:
        effective = max([1, *(visible_width(line) for line in content_lines)])

    inner = effective + FRAME_PAD_X * 2
    top_bottom = "+" + "-" * inner + "+"
    padding_line = "|" + " " * inner + "|"
    pad = " " * FRAME_PAD_X

    rows = [top_bottom, padding_line]
    for line in content_lines:
        rows.append(f"|{pad}{pad_right(line, effective)}{pad}|")
    rows.append(padding_line)
    rows.append(top_bottom)

    card = "\n".join(rows)
    if base:
        return fill_base(card, base)
    return card


def place_centered(card: str, width: int, height: int) -> str:
    """
    Center a rendered card in a width x height terminal.

    Lines wider than the terminal are clipped, rows beyond the terminal
    height are dropped, and the remaining area is blank-filled so the
    frame is exactly height rows of width columns.

    Args:
        card: Multi-line card text
        width: Terminal columns
        height: Terminal rows

    Returns:
        Full-frame text, or the card unchanged for unknown dimensions
    """
    if width <= 0 or height <= 0:
        return card

    lines = card.split("\n")
    card_height = len(lines)
    card_width = max(1, max(visible_width(line) for line in lines))
    card_width = min(card_width, width)

    top_pad = max(0, (height - card_height) // 2)
    left_pad = max(0, (width - card_width) // 2)
    blank = " " * width
    left = " " * left_pad

    rows = [blank] * min(top_pad, height)
    for line in lines:
        if len(rows) >= height:
            break
        if visible_width(line) > card_width:
            line = truncate(line, card_width)
        right_pad = max(0, width - left_pad - visible_width(line))
        rows.append(left + line + " " * right_pad)
    while len(rows) < height:
        rows.append(blank)
    return "\n".join(rows)


def fill_base(s: str, base: str) -> str:
    """
    Paint every line of s with the theme base colors.

    Each line starts with base and ends with a reset. Any SGR inside a
    line that resets the foreground or background (0, 39, 49 or empty)
    is followed by base again, so other widgets' resets do not punch
    holes into the themed background.

    Args:
        s: Rendered frame
        base: SGR prefix (background + text color); empty disables fill

    Returns:
        Frame with the base colors applied
    """
    if not base:
        return s
    return "\n".join(base + _reapply_base(line, base) + ANSI_RESET for line in s.split("\n"))


def _reapply_base(line: str, base: str) -> str:
    out: list[str] = []
    i = 0
    n = len(line)
    while i < n:
        if line[i] != ESC or i + 1 >= n or line[i + 1] != "[":
            out.append(line[i])
            i += 1
            continue

        seq_start = i
        i += 2
        params_start = i
        while i < n:
            ch = line[i]
            i += 1
            if "@" <= ch <= "~":
                out.append(line[seq_start:i])
                if ch == "m" and _resets_base(line[params_start : i - 1]):
                    out.append(base)
                break
        else:
            # Unterminated sequence at end of line
            out.append(line[seq_start:])
    return "".join(out)


def _resets_base(params: str) -> bool:
    return any(token.strip() in _BASE_RESET_PARAMS for token in params.split(";"))
