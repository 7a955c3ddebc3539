"""
Full-screen composition shared by every dashboard screen.

A screen is a header (tab line + rule), an optional subtitle, a body and
an optional footer of key hints, framed as a card, centered in the
terminal and painted with the theme base colors.
"""

from __future__ import annotations

import functools

from tungo_tui.layout import (
    FRAME_HORIZ_SIZE,
    FRAME_VERT_SIZE,
    build_card,
    compute_card_height,
    compute_card_width,
    contains_ansi,
    content_width_for_terminal,
    fill_base,
    pad_left,
    pad_right,
    place_centered,
    truncate,
    visible_width,
    wrap_body,
    wrap_text,
)
from tungo_tui.preferences import ThemeOption, UIPreferences
from tungo_tui.styles import StyleSet, resolve_styles

PRODUCT_LABEL = "TunGo"
CONFIGURATOR_TABS = ("Main", "Settings", "Logs")
RUNTIME_TABS = ("Dataplane", "Settings", "Logs")


def render_screen(
    width: int,
    height: int,
    title: str,
    subtitle: str,
    body: list[str],
    hint: str,
    prefs: UIPreferences,
    styles: StyleSet,
    wrap: bool = True,
) -> str:
    """
    Compose one full frame.

    Args:
        width: Terminal columns (<= 0 if unknown)
        height: Terminal rows (<= 0 if unknown)
        title: Header line; plain titles get the header style
        subtitle: Muted, wrapped line(s) under the header
        body: Body lines
        hint: Footer key hints (shown when the footer is enabled)
        prefs: Preferences snapshot
        styles: Style set of the active theme
        wrap: Wrap plain body lines to the content width

    Returns:
        Frame text, exactly width x height when both are known
    """
    content_width = 0
    content_height = 0
    if width > 0:
        content_width = max(1, compute_card_width(width) - FRAME_HORIZ_SIZE)
    if height > 0:
        content_height = max(1, compute_card_height(height) - FRAME_VERT_SIZE)

    lines: list[str] = []
    if title.strip():
        header = title if contains_ansi(title) else styles.header_title.render(title)
        rule_width = max(1, content_width)
        if content_width > 0:
            header = pad_right(header, content_width)
        lines.append(styles.header_bar.render(header))
        lines.append(styles.header_rule.render("-" * rule_width))
        lines.append("")
    if subtitle.strip():
        for line in wrap_text(subtitle, content_width):
            lines.append(line if contains_ansi(line) else styles.subtitle.render(line))
        lines.append("")

    if wrap:
        lines.extend(wrap_body(body, content_width))
    elif content_width > 0:
        lines.extend(truncate(line, content_width) for line in body)
    else:
        lines.extend(body)

    footer = footer_block(styles, content_width, hint) if prefs.show_footer else []
    if content_height > 0:
        missing = content_height - len(lines) - len(footer)
        lines.extend([""] * max(0, missing))
    lines.extend(footer)

    card = build_card(lines, content_width)
    if width > 0 and height > 0:
        return fill_base(place_centered(card, width, height), styles.base)
    return fill_base(card, styles.base) + "\n"


def footer_block(styles: StyleSet, content_width: int, hint: str) -> list[str]:
    """Return the footer rule and wrapped hint lines, or nothing."""
    if not hint.strip():
        return []
    hint_lines = [styles.hint.render(line) for line in wrap_text(hint, content_width)]
    rule = styles.header_rule.render("-" * max(1, content_width))
    return [rule, *hint_lines]


@functools.lru_cache(maxsize=512)
def render_tabs_line(
    tabs: tuple[str, ...],
    active_index: int,
    content_width: int,
    theme: ThemeOption,
    product_label: str = PRODUCT_LABEL,
) -> str:
    """
    Render the tab captions with the product label right-aligned.

    When the tabs and label do not fit, only the label is kept.

    Args:
        tabs: Tab captions
        active_index: Highlighted tab
        content_width: Available width (<= 1 if unknown)
        theme: Theme to render with
        product_label: Brand text on the right

    Returns:
        Styled tab line
    """
    styles = resolve_styles(theme)
    captions = []
    for index, tab in enumerate(tabs):
        caption = f" {tab.strip()} "
        style = styles.active if index == active_index else styles.option
        captions.append(style.render(caption))
    left = " ".join(captions)
    right = styles.brand.render(product_label)

    if content_width <= 1:
        return f"{left}  {right}"
    room = content_width - visible_width(left)
    if room - visible_width(right) < 1:
        return right
    return left + pad_left(right, room)


def render_selectable_rows(rows: list[str], cursor: int, width: int, styles: StyleSet) -> list[str]:
    """Render a list with a "> " cursor and the active style on the cursor row."""
    out = []
    for index, row in enumerate(rows):
        prefix = "> " if index == cursor else "  "
        line = prefix + row
        if width > 0:
            line = truncate(line, width)
        out.append(styles.active.render(line) if index == cursor else line)
    return out


def logs_viewport_size(
    terminal_width: int,
    terminal_height: int,
    prefs: UIPreferences,
    subtitle: str,
    hint: str,
) -> tuple[int, int]:
    """
    Compute the log viewport's width and height for a terminal.

    Returns:
        (content width, viewport rows); at least 3 rows
    """
    content_width = 80
    if terminal_width > 0:
        content_width = content_width_for_terminal(terminal_width)
    if terminal_height <= 0:
        return content_width, 8

    content_height = max(1, compute_card_height(terminal_height) - FRAME_VERT_SIZE)
    used = 3  # tab line, rule, spacer
    if subtitle.strip():
        used += len(wrap_text(subtitle, content_width)) + 1
    if prefs.show_footer:
        used += len(footer_block(resolve_styles(prefs.theme), content_width, hint))
    return content_width, max(3, content_height - used)
