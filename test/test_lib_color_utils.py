#!/usr/bin/env python3
"""Tests for iwyu_lib/color_utils.py"""

import io
import sys
from typing import Any

from iwyu_lib.color_utils import (
    Colors,
    colored,
    print_colored,
    print_success,
    print_error,
    print_warning,
    print_info,
    print_highlight,
    should_use_color,
)


class TestColored:
    """Tests for colored function."""

    def test_basic_coloring(self) -> None:
        """Test basic color application."""
        result = colored("test", Colors.RED)
        assert "test" in result
        assert result.endswith(Colors.RESET)

    def test_with_style(self) -> None:
        result = colored("test", Colors.GREEN, Colors.BRIGHT)
        assert result.startswith(Colors.BRIGHT)

    def test_no_color(self) -> None:
        """Test without color codes."""
        assert colored("test", "", "") == "test"


class TestPrintFunctions:
    """Tests for print_* convenience functions."""

    def test_print_colored_plain(self) -> None:
        output = io.StringIO()
        print_colored("[CWD] /proj/build", file=output)
        assert output.getvalue() == "[CWD] /proj/build\n"

    def test_print_success(self) -> None:
        output = io.StringIO()
        print_success("Fix applied", file=output)
        assert "Fix applied" in output.getvalue()
        assert "Success:" not in output.getvalue()

    def test_print_error_prefix(self) -> None:
        """Test print_error prepends Error: by default."""
        output = io.StringIO()
        print_error("IWYU returned no suggestions to process.", file=output)
        assert "Error: IWYU returned no suggestions to process." in output.getvalue()

    def test_print_error_defaults_to_stderr(self, capsys: Any) -> None:
        print_error("boom")
        captured = capsys.readouterr()
        assert "boom" in captured.err
        assert captured.out == ""

    def test_print_warning(self) -> None:
        output = io.StringIO()
        print_warning("No compile command found for this file.", file=output)
        assert "Warning: No compile command found for this file." in output.getvalue()

    def test_print_info_and_highlight(self) -> None:
        output = io.StringIO()
        print_info("[Running IWYU]", file=output)
        print_highlight("[Finished]", file=output)
        assert "[Running IWYU]" in output.getvalue()
        assert "[Finished]" in output.getvalue()


class TestShouldUseColor:
    """Tests for should_use_color()."""

    def test_no_color_flag_wins(self) -> None:
        assert should_use_color(force_color=True, no_color=True) is False

    def test_force_color(self) -> None:
        assert should_use_color(force_color=True) is True

    def test_not_a_tty(self, monkeypatch: Any) -> None:
        monkeypatch.setattr(sys, "stdout", io.StringIO())
        assert should_use_color() is False

    def test_no_color_environment(self, monkeypatch: Any) -> None:
        """Test the NO_COLOR convention is honoured on a terminal."""

        class FakeTty(io.StringIO):
            def isatty(self) -> bool:
                return True

        monkeypatch.setattr(sys, "stdout", FakeTty())
        monkeypatch.setenv("NO_COLOR", "1")
        assert should_use_color() is False

        monkeypatch.delenv("NO_COLOR")
        assert should_use_color() is True


class TestDisable:
    """Tests for Colors.disable()."""

    def test_disable_strips_codes(self, monkeypatch: Any) -> None:
        for name in ("RED", "GREEN", "YELLOW", "BLUE", "CYAN", "WHITE", "RESET", "BRIGHT", "DIM", "NORMAL"):
            monkeypatch.setattr(Colors, name, getattr(Colors, name))

        Colors.disable()
        assert colored("plain", Colors.RED) == "plain"
