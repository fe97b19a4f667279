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
"""Translate compile_commands.json invocations into include-what-you-use arguments.

The compiler command line of a compilation database entry is split into
tokens, stripped of everything that only matters to the build (compile mode,
precompiled headers, forced includes, output files) and prefixed with the
IWYU specific flags from the settings.

Nothing in this module performs I/O and nothing raises: a malformed command
line (for example with an unbalanced quote) degrades into fewer or merged
tokens instead of failing.
"""

import os
import logging
from typing import Dict, Iterable, List
from dataclasses import dataclass, field

from iwyu_lib.constants import IWYU_FLAG_PREFIX

logger = logging.getLogger(__name__)

__all__ = ["TranslatorOptions", "FilteredFlags", "split_arguments", "join_arguments", "filter_compiler_flags", "prepare_iwyu_args"]

# Global flag for debug translation output
_DEBUG_TRANSLATION = False

# Compile mode markers that are meaningless for analysis
COMPILE_MODE_FLAGS = ("--", "-c", "/c")

# Precompiled header creation/usage/output (MSVC and clang-cl spellings)
PCH_FLAGS = ("/Yc", "/Yu", "/Fp", "-Yc", "-Yu", "-Fp")

# Forced includes, usually the precompiled header itself. The prefix match also
# covers clang's -include-pch, which is dropped without its .pch argument
FORCED_INCLUDE_FLAGS = ("/FI", "-include")

# Output file specifications
OUTPUT_FLAGS = ("-o", "/o", "/Fo")

# Substring identifying the MSVC compatible clang driver
MSVC_DRIVER_MARKER = "clang-cl"
MSVC_DRIVER_MODE_FLAG = "--driver-mode=cl"

PCH_IN_CODE_FLAG = "--pch_in_code"


@dataclass
class TranslatorOptions:
    """User configured inputs to the translation.

    Attributes:
        project_root: Directory relative mapping files are resolved against
        mapping_files: IWYU mapping files (.imp), absolute or project relative
        additional_args: Extra IWYU arguments, each passed behind -Xiwyu
        fix_includes_args: Extra fix_includes.py arguments
    """

    project_root: str = ""
    mapping_files: List[str] = field(default_factory=list)
    additional_args: List[str] = field(default_factory=list)
    fix_includes_args: List[str] = field(default_factory=list)


@dataclass
class FilteredFlags:
    """Result of filtering a compiler command line.

    Attributes:
        flags: Compiler flags that survived filtering, in original order
        has_pch: True if any precompiled header or forced include flag was removed
        removed: Removed tokens grouped by the rule that removed them
    """

    flags: List[str] = field(default_factory=list)
    has_pch: bool = False
    removed: Dict[str, List[str]] = field(default_factory=dict)


def set_debug_translation(enabled: bool) -> None:
    """Enable or disable debug output for command line translation.

    Args:
        enabled: If True, translation will log every removed token
    """
    global _DEBUG_TRANSLATION
    _DEBUG_TRANSLATION = enabled


def split_arguments(command: str) -> List[str]:
    """Split a command line string into arguments, respecting double quotes.

    A double quote toggles quoted mode in which spaces do not separate
    arguments. Quote characters never end up in an argument. An unbalanced
    quote simply leaves quoted mode switched on until the end of the string.

    Args:
        command: Raw command line

    Returns:
        List of arguments

    Examples:
        >>> split_arguments('cl.exe /Fo"out dir/a.obj" a.cpp')
        ['cl.exe', '/Foout dir/a.obj', 'a.cpp']
    """
    arguments: List[str] = []
    current = ""
    in_quotes = False

    for char in command:
        if char == '"':
            in_quotes = not in_quotes
        elif char == " " and not in_quotes:
            if current:
                arguments.append(current)
                current = ""
        else:
            current += char

    if current:
        arguments.append(current)
    return arguments


def join_arguments(arguments: Iterable[str]) -> str:
    """Join arguments back into a display string.

    Arguments containing a space are wrapped in double quotes so that
    split_arguments() yields the same list again.

    Args:
        arguments: Arguments to join

    Returns:
        Single space separated command line
    """
    return " ".join(f'"{arg}"' if " " in arg else arg for arg in arguments)


def is_msvc_driver(executable: str) -> bool:
    """Check if the compiler executable is the MSVC compatible clang driver.

    Args:
        executable: Compiler path or name as found in the command

    Returns:
        True if the name contains clang-cl (case-insensitive)
    """
    return MSVC_DRIVER_MARKER in executable.lower()


def _resolve_mapping_file(mapping_file: str, project_root: str) -> str:
    """Strip quotes from a mapping file setting and make it absolute."""
    cleaned = mapping_file.replace('"', "")
    if os.path.isabs(cleaned):
        return cleaned
    return os.path.join(project_root, cleaned)


def filter_compiler_flags(arguments: List[str]) -> FilteredFlags:
    """Remove build-only flags from compiler arguments.

    The arguments must not include the compiler executable. Rules are
    evaluated in order and the first match decides the fate of a token:

    1. Compile mode markers (--, -c, /c) are removed
    2. PCH flags (/Yc, /Yu, /Fp and -Yc, -Yu, -Fp) are removed, together with
       the next argument when the value is given separately
    3. Forced includes (/FI, -include and anything starting with them, such as
       -include-pch) are removed like PCH flags
    4. Output flags (-o, /o, /Fo) are removed, together with the next
       argument when the value is given separately
    5. Everything else is kept

    Args:
        arguments: Compiler arguments after the executable

    Returns:
        FilteredFlags with the kept flags and whether PCH was in use
    """
    result = FilteredFlags()
    removed = result.removed

    def record(category: str, item: str) -> None:
        removed.setdefault(category, []).append(item)

    i = 0
    while i < len(arguments):
        arg = arguments[i]
        has_next = i + 1 < len(arguments)

        if arg in COMPILE_MODE_FLAGS:
            record("compile_mode", arg)
            i += 1
            continue

        if arg.startswith(PCH_FLAGS):
            result.has_pch = True
            if arg in PCH_FLAGS and has_next:
                record("pch", f"{arg} {arguments[i + 1]}")
                i += 2
            else:
                record("pch", arg)
                i += 1
            continue

        if arg.startswith(FORCED_INCLUDE_FLAGS):
            result.has_pch = True
            if arg in FORCED_INCLUDE_FLAGS and has_next:
                record("forced_include", f"{arg} {arguments[i + 1]}")
                i += 2
            else:
                record("forced_include", arg)
                i += 1
            continue

        if arg in OUTPUT_FLAGS:
            if has_next:
                record("output", f"{arg} {arguments[i + 1]}")
                i += 2
            else:
                record("output", arg)
                i += 1
            continue

        if arg.startswith(OUTPUT_FLAGS) and len(arg) > 2:
            record("output", arg)
            i += 1
            continue

        result.flags.append(arg)
        i += 1

    return result


def prepare_iwyu_args(command: str, options: TranslatorOptions) -> List[str]:
    """Build the include-what-you-use argument list for a compile command.

    The result starts with the IWYU flags (mapping files, additional
    arguments and --pch_in_code when precompiled headers were stripped),
    followed by the compiler flags. IWYU expects its own flags first and
    later compiler flags take precedence over earlier ones, so the relative
    order of the compiler flags is preserved.

    Args:
        command: Raw compiler invocation from compile_commands.json
        options: Mapping files and additional arguments from the settings

    Returns:
        Argument list for include-what-you-use (without the executable)
    """
    arguments = split_arguments(command)
    compiler = arguments.pop(0) if arguments else ""

    clang_flags: List[str] = []
    if is_msvc_driver(compiler):
        clang_flags.append(MSVC_DRIVER_MODE_FLAG)

    filtered = filter_compiler_flags(arguments)
    clang_flags.extend(filtered.flags)

    iwyu_flags: List[str] = []
    for mapping_file in options.mapping_files:
        iwyu_flags.extend([IWYU_FLAG_PREFIX, f"--mapping_file={_resolve_mapping_file(mapping_file, options.project_root)}"])

    for arg in options.additional_args:
        iwyu_flags.extend([IWYU_FLAG_PREFIX, arg])

    if filtered.has_pch:
        iwyu_flags.extend([IWYU_FLAG_PREFIX, PCH_IN_CODE_FLAG])

    if _DEBUG_TRANSLATION:
        logger.debug("Translating compile command: %s", command)
        logger.debug("Compiler executable: %s", compiler or "<missing>")
        total_removed = sum(len(items) for items in filtered.removed.values())
        for category, items in filtered.removed.items():
            logger.debug("Removed %s (%d): %s", category, len(items), ", ".join(items))
        logger.debug("Kept %d of %d arguments (%d removed), PCH: %s", len(filtered.flags), len(arguments), total_removed, filtered.has_pch)

    return iwyu_flags + clang_flags
