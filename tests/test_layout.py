"""Tests for ANSI-aware measurement, wrapping and card placement."""

from tungo_tui.layout import (
    ANSI_RESET,
    build_card,
    compute_card_height,
    compute_card_width,
    content_width_for_terminal,
    fill_base,
    pad_left,
    pad_right,
    place_centered,
    strip_ansi,
    truncate,
    visible_width,
    wrap_body,
    wrap_text,
)


# ===== Measurement Tests =====


class TestVisibleWidth:
    """Tests for visible_width and strip_ansi."""

    def test_plain_text_counts_characters(self):
        assert visible_width("hello") == 5
        assert visible_width("") == 0

    def test_csi_sequences_are_zero_width(self):
        assert visible_width("\x1b[1;31mred\x1b[0m") == 3

    def test_osc_terminated_by_bel(self):
        assert visible_width("\x1b]0;window title\x07abc") == 3

    def test_osc_terminated_by_string_terminator(self):
        assert visible_width("\x1b]8;;http://example\x1b\\link") == 4

    def test_strip_ansi_keeps_rendered_characters(self):
        assert strip_ansi("\x1b[32mok\x1b[0m done") == "ok done"
        assert strip_ansi("plain") == "plain"


# ===== Wrapping Tests =====


class TestWrapText:
    """Tests for greedy word wrapping."""

    def test_packs_words_greedily(self):
        assert wrap_text("hello world foo", 11) == ["hello world", "foo"]

    def test_hard_splits_long_words(self):
        assert wrap_text("abcdefghij", 4) == ["abcd", "efgh", "ij"]

    def test_explicit_newlines_are_kept(self):
        assert wrap_text("one\ntwo", 20) == ["one", "two"]

    def test_empty_input_is_one_empty_line(self):
        assert wrap_text("", 10) == [""]

    def test_unknown_width_only_splits_newlines(self):
        assert wrap_text("a long line\nnext", 0) == ["a long line", "next"]

    def test_styled_text_is_not_wrapped(self):
        styled = "\x1b[1mvery long styled text\x1b[0m"
        assert wrap_text(styled, 5) == [styled]

    def test_wrap_body_keeps_spacers(self):
        assert wrap_body(["aaa bbb", "", "c"], 3) == ["aaa", "bbb", "", "c"]


# ===== Truncation and Padding Tests =====


class TestTruncate:
    """Tests for truncate."""

    def test_fitting_text_is_unchanged(self):
        assert truncate("short", 10) == "short"

    def test_long_text_gets_ellipsis(self):
        assert truncate("hello world", 8) == "hello..."

    def test_narrow_width_cuts_without_ellipsis(self):
        assert truncate("hello", 3) == "hel"

    def test_zero_width_is_empty(self):
        assert truncate("hello", 0) == ""
        assert truncate("hello", -4) == ""

    def test_fitting_styled_text_keeps_styling(self):
        styled = "\x1b[1mab\x1b[0m"
        assert truncate(styled, 2) == styled

    def test_overflowing_styled_text_is_stripped(self):
        assert truncate("\x1b[1mabcdef\x1b[0m", 4) == "a..."

    def test_result_never_exceeds_width(self):
        for width in range(0, 12):
            assert visible_width(truncate("the quick brown fox", width)) <= width


class TestPadding:
    """Tests for pad_right and pad_left."""

    def test_pad_right_uses_visible_width(self):
        padded = pad_right("\x1b[1mab\x1b[0m", 4)
        assert visible_width(padded) == 4
        assert padded.endswith("  ")

    def test_pad_never_truncates(self):
        assert pad_right("abcdef", 3) == "abcdef"
        assert pad_left("abcdef", 3) == "abcdef"

    def test_pad_left_right_aligns(self):
        assert pad_left("ab", 4) == "  ab"


# ===== Card Geometry Tests =====


class TestCardGeometry:
    """Tests for card width/height selection."""

    def test_wide_terminal_caps_card_width(self):
        assert compute_card_width(120) == 96

    def test_narrow_terminal_uses_smaller_inset(self):
        assert compute_card_width(40) == 38

    def test_unknown_width_is_zero(self):
        assert compute_card_width(0) == 0
        assert compute_card_height(-1) == 0

    def test_tiny_terminal_keeps_one_column(self):
        assert compute_card_width(1) == 1

    def test_tall_terminal_caps_card_height(self):
        assert compute_card_height(50) == 30

    def test_short_terminal_uses_smaller_inset(self):
        assert compute_card_height(18) == 16

    def test_content_width_floor(self):
        assert content_width_for_terminal(120) == 90
        assert content_width_for_terminal(0) == 1
        assert content_width_for_terminal(5) == 1


class TestBuildCard:
    """Tests for build_card."""

    def test_frames_and_pads_content(self):
        card = build_card(["ab", "c"], 4)
        assert card.split("\n") == [
            "+--------+",
            "|        |",
            "|  ab    |",
            "|  c     |",
            "|        |",
            "+--------+",
        ]

    def test_unknown_width_fits_widest_line(self):
        rows = build_card(["abc", "a"], 0).split("\n")
        assert rows[0] == "+-------+"
        assert {visible_width(row) for row in rows} == {9}


class TestPlaceCentered:
    """Tests for place_centered."""

    def test_fills_exact_terminal_size(self):
        frame = place_centered(build_card(["hi"], 4), 20, 10)
        rows = frame.split("\n")
        assert len(rows) == 10
        assert all(visible_width(row) == 20 for row in rows)

    def test_card_is_centered(self):
        rows = place_centered("xx\nxx", 6, 4).split("\n")
        assert rows == ["      ", "  xx  ", "  xx  ", "      "]

    def test_oversized_card_is_clipped(self):
        rows = place_centered("abcdefgh\n1\n2\n3", 4, 2).split("\n")
        assert len(rows) == 2
        assert all(visible_width(row) == 4 for row in rows)

    def test_unknown_size_returns_card(self):
        assert place_centered("card", 0, 10) == "card"


class TestFillBase:
    """Tests for fill_base."""

    def test_wraps_every_line(self):
        assert fill_base("a\nb", "\x1b[40m") == (
            "\x1b[40ma" + ANSI_RESET + "\n" + "\x1b[40mb" + ANSI_RESET
        )

    def test_reapplies_base_after_reset(self):
        assert fill_base("a\x1b[0mb", "\x1b[40m") == (
            "\x1b[40ma\x1b[0m\x1b[40mb" + ANSI_RESET
        )

    def test_reapplies_base_after_default_color(self):
        filled = fill_base("a\x1b[1;39mb", "\x1b[40m")
        assert "\x1b[1;39m\x1b[40m" in filled

    def test_color_change_does_not_reapply_base(self):
        filled = fill_base("a\x1b[31mb", "\x1b[40m")
        assert "\x1b[31m\x1b[40m" not in filled

    def test_empty_base_is_noop(self):
        assert fill_base("a\x1b[0mb", "") == "a\x1b[0mb"
