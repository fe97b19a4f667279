#!/usr/bin/env python3
"""Tests for iwyu_lib/tool_detection.py"""

import subprocess
from typing import Any, List
from unittest.mock import Mock, MagicMock

import pytest

from iwyu_lib.tool_detection import (
    ToolInfo,
    clear_cache,
    find_iwyu,
    find_fix_includes,
    resolve_iwyu_path,
    resolve_fix_includes_path,
    check_all_tools,
    strip_quotes,
    IWYU_COMMANDS,
    FIX_INCLUDES_COMMANDS,
    _tool_cache,
)


@pytest.fixture(autouse=True)
def fresh_cache() -> Any:
    """Every test starts and ends with an empty detection cache."""
    clear_cache()
    yield
    clear_cache()


class TestToolInfo:
    """Tests for ToolInfo dataclass."""

    def test_is_found_with_command(self) -> None:
        """Test is_found returns True when command is set."""
        tool_info = ToolInfo(command="iwyu", full_command="/usr/bin/iwyu", version="include-what-you-use 0.22")
        assert tool_info.is_found() is True

    def test_is_found_without_command(self) -> None:
        """Test is_found returns False when command is None."""
        assert ToolInfo(command=None, full_command=None, version=None).is_found() is False


class TestConstants:
    """Tests for exported command constants."""

    def test_iwyu_commands(self) -> None:
        """Test the long name is preferred over the short alias."""
        assert IWYU_COMMANDS == ["include-what-you-use", "iwyu"]

    def test_fix_includes_commands(self) -> None:
        """Test fix_includes.py is tried before the distribution renames."""
        assert FIX_INCLUDES_COMMANDS[0] == "fix_includes.py"


class TestStripQuotes:
    """Tests for strip_quotes()."""

    def test_quoted(self) -> None:
        assert strip_quotes('"C:/Program Files/iwyu.exe"') == "C:/Program Files/iwyu.exe"

    def test_unquoted(self) -> None:
        assert strip_quotes("/usr/bin/iwyu") == "/usr/bin/iwyu"


class TestCaching:
    """Tests for session caching functionality."""

    def test_clear_cache(self) -> None:
        """Test clear_cache empties the cache."""
        _tool_cache["test_key"] = ToolInfo(command="test", full_command="test", version="1.0")
        clear_cache()
        assert len(_tool_cache) == 0

    def test_find_uses_cache(self, monkeypatch: Any) -> None:
        """Test that detection runs subprocess only once."""
        mock_result = MagicMock()
        mock_result.stdout = "include-what-you-use 0.22 based on clang version 18.1.8"
        mock_run = Mock(return_value=mock_result)
        monkeypatch.setattr("subprocess.run", mock_run)
        monkeypatch.setattr("shutil.which", lambda x: f"/usr/bin/{x}")

        tool_info1 = find_iwyu()
        assert mock_run.call_count == 1
        tool_info2 = find_iwyu()
        assert mock_run.call_count == 1
        assert tool_info2 is tool_info1

    def test_configured_path_is_not_cached(self, monkeypatch: Any) -> None:
        """Test a configured path bypasses the cache."""
        monkeypatch.setattr("subprocess.run", Mock(side_effect=FileNotFoundError()))
        monkeypatch.setattr("shutil.which", lambda x: None)

        find_iwyu("/opt/iwyu/bin/include-what-you-use")
        assert "find_iwyu" not in _tool_cache


class TestFindIwyu:
    """Tests for find_iwyu function."""

    def test_found_first(self, monkeypatch: Any) -> None:
        """Test include-what-you-use is found under its long name."""
        mock_result = MagicMock()
        mock_result.stdout = "include-what-you-use 0.22 based on clang version 18.1.8\n"
        monkeypatch.setattr("subprocess.run", Mock(return_value=mock_result))
        monkeypatch.setattr("shutil.which", lambda x: f"/usr/bin/{x}")

        tool_info = find_iwyu()
        assert tool_info.command == "include-what-you-use"
        assert tool_info.full_command == "/usr/bin/include-what-you-use"
        assert tool_info.version == "include-what-you-use 0.22 based on clang version 18.1.8"

    def test_fallback_to_alias(self, monkeypatch: Any) -> None:
        """Test falling back to iwyu when include-what-you-use is missing."""

        def mock_run(cmd: List[str], **kwargs: Any) -> MagicMock:
            if cmd[0] == "include-what-you-use":
                raise FileNotFoundError()
            result = MagicMock()
            result.stdout = "include-what-you-use 0.21"
            return result

        monkeypatch.setattr("subprocess.run", mock_run)
        monkeypatch.setattr("shutil.which", lambda x: f"/usr/local/bin/{x}")

        tool_info = find_iwyu()
        assert tool_info.command == "iwyu"
        assert tool_info.full_command == "/usr/local/bin/iwyu"

    def test_responds_but_not_in_path(self, monkeypatch: Any) -> None:
        """Test a command that answers --version but is not on PATH is rejected."""
        mock_result = MagicMock()
        mock_result.stdout = "include-what-you-use 0.22"
        monkeypatch.setattr("subprocess.run", Mock(return_value=mock_result))
        monkeypatch.setattr("shutil.which", lambda x: None)

        assert not find_iwyu().is_found()

    def test_not_found(self, monkeypatch: Any) -> None:
        """Test when include-what-you-use is not installed."""
        monkeypatch.setattr("subprocess.run", Mock(side_effect=subprocess.CalledProcessError(1, "iwyu")))
        monkeypatch.setattr("shutil.which", lambda x: None)

        tool_info = find_iwyu()
        assert not tool_info.is_found()
        assert tool_info.version is None

    def test_timeout_is_not_found(self, monkeypatch: Any) -> None:
        """Test a hanging --version call counts as missing."""
        monkeypatch.setattr("subprocess.run", Mock(side_effect=subprocess.TimeoutExpired("iwyu", 5)))
        monkeypatch.setattr("shutil.which", lambda x: f"/usr/bin/{x}")

        assert not find_iwyu().is_found()

    def test_configured_path(self, monkeypatch: Any) -> None:
        """Test a configured path is used even when it does not answer."""
        monkeypatch.setattr("subprocess.run", Mock(side_effect=FileNotFoundError()))
        monkeypatch.setattr("shutil.which", lambda x: None)

        tool_info = find_iwyu('"/opt/iwyu/bin/include-what-you-use"')
        assert tool_info.command == "/opt/iwyu/bin/include-what-you-use"
        assert tool_info.version is None

    def test_default_configured_value_searches(self, monkeypatch: Any) -> None:
        """Test the default setting value behaves like no configuration."""
        mock_result = MagicMock()
        mock_result.stdout = "include-what-you-use 0.22"
        monkeypatch.setattr("subprocess.run", Mock(return_value=mock_result))
        monkeypatch.setattr("shutil.which", lambda x: f"/usr/bin/{x}")

        find_iwyu("include-what-you-use")
        assert "find_iwyu" in _tool_cache


class TestFindFixIncludes:
    """Tests for find_fix_includes function."""

    def test_found_on_path(self, monkeypatch: Any) -> None:
        """Test fix_includes.py is located without running it."""
        mock_run = Mock()
        monkeypatch.setattr("subprocess.run", mock_run)
        monkeypatch.setattr("shutil.which", lambda x: "/usr/bin/fix_includes.py" if x == "fix_includes.py" else None)

        tool_info = find_fix_includes()
        assert tool_info.full_command == "/usr/bin/fix_includes.py"
        assert mock_run.call_count == 0

    def test_renamed_script(self, monkeypatch: Any) -> None:
        """Test distributions that ship the script as iwyu-fix-includes."""
        monkeypatch.setattr("shutil.which", lambda x: "/usr/bin/iwyu-fix-includes" if x == "iwyu-fix-includes" else None)

        assert find_fix_includes().command == "iwyu-fix-includes"

    def test_not_found(self, monkeypatch: Any) -> None:
        monkeypatch.setattr("shutil.which", lambda x: None)
        assert not find_fix_includes().is_found()


class TestResolve:
    """Tests for resolve_iwyu_path() and resolve_fix_includes_path()."""

    def test_resolve_iwyu_fallback_to_default(self, monkeypatch: Any) -> None:
        """Test the default name is returned when nothing is found."""
        monkeypatch.setattr("subprocess.run", Mock(side_effect=FileNotFoundError()))
        monkeypatch.setattr("shutil.which", lambda x: None)

        assert resolve_iwyu_path() == "include-what-you-use"

    def test_resolve_iwyu_configured(self, monkeypatch: Any) -> None:
        monkeypatch.setattr("subprocess.run", Mock(side_effect=FileNotFoundError()))
        monkeypatch.setattr("shutil.which", lambda x: None)

        assert resolve_iwyu_path("/opt/iwyu") == "/opt/iwyu"

    def test_resolve_fix_includes_full_path(self, monkeypatch: Any) -> None:
        """Test the absolute script path is returned for the interpreter."""
        monkeypatch.setattr("shutil.which", lambda x: f"/usr/bin/{x}")

        assert resolve_fix_includes_path() == "/usr/bin/fix_includes.py"

    def test_resolve_fix_includes_fallback(self, monkeypatch: Any) -> None:
        monkeypatch.setattr("shutil.which", lambda x: None)

        assert resolve_fix_includes_path() == "fix_includes.py"


class TestCheckAllTools:
    """Tests for check_all_tools()."""

    def test_check_all_tools(self, monkeypatch: Any) -> None:
        """Test only found tools are reported."""
        mock_result = MagicMock()
        mock_result.stdout = "include-what-you-use 0.22"
        monkeypatch.setattr("subprocess.run", Mock(return_value=mock_result))
        monkeypatch.setattr("shutil.which", lambda x: f"/usr/bin/{x}" if x == "include-what-you-use" else None)

        tools = check_all_tools()
        assert tools == {"include-what-you-use": {"command": "/usr/bin/include-what-you-use", "version": "include-what-you-use 0.22"}}
