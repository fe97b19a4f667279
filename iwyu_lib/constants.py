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
"""Shared constants for iwyu-check.

This module provides centralized constants used across the iwyu-check library
and command-line front end, together with the exception hierarchy that carries
exit codes up to the main entry point.
"""

# =============================================================================
# Exit Codes
# =============================================================================

EXIT_SUCCESS = 0
EXIT_INVALID_ARGS = 1
EXIT_RUNTIME_ERROR = 2
EXIT_KEYBOARD_INTERRUPT = 130

# =============================================================================
# Compilation Database Constants
# =============================================================================

COMPILE_COMMANDS_JSON = "compile_commands.json"  # Standard compilation database filename
SETTINGS_FILE = ".iwyu-check.json"  # Per-project settings file in the project root

# =============================================================================
# Tool Defaults
# =============================================================================

DEFAULT_IWYU_PATH = "include-what-you-use"
DEFAULT_FIX_INCLUDES_PATH = "fix_includes.py"

# Flag prefix that routes an argument to IWYU rather than to the clang frontend
IWYU_FLAG_PREFIX = "-Xiwyu"

# =============================================================================
# Performance Constants
# =============================================================================

# Timeouts (seconds), None = no limit
IWYU_TIMEOUT = None
FIX_INCLUDES_TIMEOUT = None
TOOL_VERSION_TIMEOUT = 5  # Timeout for --version probes

# =============================================================================
# Exception Classes
# =============================================================================


class IwyuCheckError(Exception):
    """Base exception for all iwyu-check errors.

    All iwyu-check exceptions carry an exit_code attribute that indicates
    what exit code the program should use when this error is caught at the
    main entry point.
    """

    def __init__(self, message: str, exit_code: int = EXIT_RUNTIME_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


# Validation errors (EXIT_INVALID_ARGS)
class ValidationError(IwyuCheckError):
    """Raised when input validation fails (arguments, paths, etc)."""

    def __init__(self, message: str):
        super().__init__(message, EXIT_INVALID_ARGS)


class ConfigurationError(ValidationError):
    """Raised when the settings file or a setting value is unusable."""


# Compilation database errors
class DatabaseError(IwyuCheckError):
    """Raised when the compilation database cannot be used."""

    def __init__(self, message: str):
        super().__init__(message, EXIT_INVALID_ARGS)


class DatabaseNotFoundError(DatabaseError):
    """Raised when compile_commands.json does not exist."""


class DatabaseParseError(DatabaseError):
    """Raised when compile_commands.json is malformed or structurally unusable."""


# External tool errors
class ExternalToolError(IwyuCheckError):
    """Raised when external tools (include-what-you-use, fix_includes.py) fail."""

    def __init__(self, message: str, exit_code: int = EXIT_RUNTIME_ERROR):  # pylint: disable=useless-parent-delegation
        super().__init__(message, exit_code)
