#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# ****************************************************************************************************************************************************
# * BSD 3-Clause License
# *
# * Copyright (c) 2025, Mana Battery
# * All rights reserved.
# *
# * Redistribution and use in source and binary forms, with or without modification, are permitted provided that the following conditions are met:
# *
# * 1. Redistributions of source code must retain the above copyright notice, this list of conditions and the following disclaimer.
# * 2. Redistributions in binary form must reproduce the above copyright notice, this list of conditions and the following disclaimer in the
# *    documentation and/or other materials provided with the distribution.
# * 3. Neither the name of the copyright holder nor the names of its contributors may be used to endorse or promote products derived from this
# *    software without specific prior written permission.
# *
# * THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO,
# * THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR
# * CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO,
# * PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
# * LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE,
# * EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
"""External tool detection for iwyu-check.

This module locates include-what-you-use and its fix_includes.py companion
script. A path configured in the settings always wins; otherwise the known
command names are tried in order of preference.

Tool detection results are cached within the Python process session to avoid repeated
subprocess calls.
"""

import shutil
import logging
import subprocess
from typing import Optional, Dict, List
from dataclasses import dataclass

from iwyu_lib.constants import DEFAULT_IWYU_PATH, DEFAULT_FIX_INCLUDES_PATH, TOOL_VERSION_TIMEOUT

logger = logging.getLogger(__name__)

# Tool command variants to try (in order of preference)
IWYU_COMMANDS = ["include-what-you-use", "iwyu"]
FIX_INCLUDES_COMMANDS = ["fix_includes.py", "iwyu-fix-includes", "iwyu_fix_includes.py"]

# Session-level cache for tool detection results (keyed by function name)
_tool_cache: Dict[str, "ToolInfo"] = {}


@dataclass
class ToolInfo:
    """Information about a detected external tool.

    Attributes:
        command: Command name or path to execute (e.g., "include-what-you-use")
        full_command: Resolved absolute path when found on PATH, else the command
        version: Raw version string as reported by tool (e.g., "include-what-you-use 0.22 ...")
    """

    command: Optional[str]
    full_command: Optional[str]
    version: Optional[str]

    def is_found(self) -> bool:
        """Check if tool was found.

        Returns:
            True if command is not None
        """
        return self.command is not None


def clear_cache() -> None:
    """Clear the tool detection cache.

    Useful for testing or when environment changes during process lifetime.
    """
    _tool_cache.clear()
    logger.debug("Tool detection cache cleared")


def strip_quotes(path: str) -> str:
    """Remove one pair of surrounding double quotes from a configured path."""
    if path.startswith('"'):
        path = path[1:]
    if path.endswith('"'):
        path = path[:-1]
    return path


def _try_command(cmd_parts: List[str], timeout: int = TOOL_VERSION_TIMEOUT) -> Optional[str]:
    """Try to run a command with --version and return version output.

    Args:
        cmd_parts: Command parts (e.g., ["include-what-you-use"])
        timeout: Timeout in seconds for subprocess call

    Returns:
        Version output string if successful, None otherwise
    """
    try:
        result = subprocess.run(cmd_parts + ["--version"], capture_output=True, text=True, check=True, timeout=timeout)
        return result.stdout.strip()
    except (subprocess.CalledProcessError, FileNotFoundError, PermissionError, subprocess.TimeoutExpired):
        return None


def _extract_version(output: str) -> str:
    """Extract version string from command output.

    Args:
        output: Raw version output from command

    Returns:
        First line of the output, stripped
    """
    lines = output.split("\n")
    return lines[0].strip() if lines else output.strip()


def find_iwyu(configured: Optional[str] = None) -> ToolInfo:
    """Find an include-what-you-use executable.

    Args:
        configured: Path from the iwyu.path setting; used as is when it differs from the default

    Returns:
        ToolInfo with command and version if found, or empty ToolInfo if not found
    """
    if configured and strip_quotes(configured) != DEFAULT_IWYU_PATH:
        command = strip_quotes(configured)
        version_output = _try_command([command])
        return ToolInfo(command=command, full_command=shutil.which(command) or command, version=_extract_version(version_output) if version_output else None)

    cache_key = "find_iwyu"
    if cache_key in _tool_cache:
        return _tool_cache[cache_key]

    for cmd in IWYU_COMMANDS:
        logger.debug("Trying %s...", cmd)
        version_output = _try_command([cmd])

        if version_output:
            # Validate command exists in PATH
            full_path = shutil.which(cmd)
            if full_path:
                version = _extract_version(version_output)
                logger.debug("Found %s version %s", cmd, version)
                tool_info = ToolInfo(command=cmd, full_command=full_path, version=version)
                _tool_cache[cache_key] = tool_info
                return tool_info
            else:
                logger.debug("%s responded but not in PATH", cmd)
        else:
            logger.debug("%s not found", cmd)

    logger.debug("include-what-you-use not found")
    tool_info = ToolInfo(command=None, full_command=None, version=None)
    _tool_cache[cache_key] = tool_info
    return tool_info


def find_fix_includes(configured: Optional[str] = None) -> ToolInfo:
    """Find the fix_includes.py script shipped with include-what-you-use.

    The script has no --version option, so only PATH lookup is performed.

    Args:
        configured: Path from the fixIncludes.path setting; used as is when it differs from the default

    Returns:
        ToolInfo with the script path if found, or empty ToolInfo if not found
    """
    if configured and strip_quotes(configured) != DEFAULT_FIX_INCLUDES_PATH:
        command = strip_quotes(configured)
        return ToolInfo(command=command, full_command=shutil.which(command) or command, version=None)

    cache_key = "find_fix_includes"
    if cache_key in _tool_cache:
        return _tool_cache[cache_key]

    for cmd in FIX_INCLUDES_COMMANDS:
        full_path = shutil.which(cmd)
        if full_path:
            logger.debug("Found %s at %s", cmd, full_path)
            tool_info = ToolInfo(command=cmd, full_command=full_path, version=None)
            _tool_cache[cache_key] = tool_info
            return tool_info
        logger.debug("%s not found", cmd)

    logger.debug("fix_includes.py not found")
    tool_info = ToolInfo(command=None, full_command=None, version=None)
    _tool_cache[cache_key] = tool_info
    return tool_info


def resolve_iwyu_path(configured: Optional[str] = None) -> str:
    """Return the include-what-you-use executable to run.

    Falls back to the configured value (or the default name) when detection
    fails, leaving the final error to process start-up.
    """
    tool_info = find_iwyu(configured)
    if tool_info.is_found():
        assert tool_info.command is not None  # For type checker
        return tool_info.command
    return strip_quotes(configured) if configured else DEFAULT_IWYU_PATH


def resolve_fix_includes_path(configured: Optional[str] = None) -> str:
    """Return the fix_includes.py script path to run with the Python interpreter."""
    tool_info = find_fix_includes(configured)
    if tool_info.is_found():
        assert tool_info.full_command is not None  # For type checker
        return tool_info.full_command
    return strip_quotes(configured) if configured else DEFAULT_FIX_INCLUDES_PATH


def check_all_tools() -> Dict[str, Dict[str, str]]:
    """Check all known tools and return their status.

    Returns:
        Dictionary with tool names as keys, each containing command and version.
        Missing tools are omitted from the result.
    """
    tools: Dict[str, Dict[str, str]] = {}

    tool_checks = [
        ("include-what-you-use", find_iwyu),
        ("fix_includes.py", find_fix_includes),
    ]

    for tool_name, find_func in tool_checks:
        tool_info = find_func()
        if tool_info.is_found():
            assert tool_info.full_command is not None  # For type checker
            tools[tool_name] = {"command": tool_info.full_command, "version": tool_info.version or "unknown"}

    return tools

