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
"""Run include-what-you-use on a source file using its compile_commands.json entry.

The compiler invocation recorded for the file is translated into an
include-what-you-use argument list (precompiled header, forced include and
output flags removed, mapping files added) and run from the entry's working
directory. The fix command feeds the resulting report to fix_includes.py.

Requirements:
    - Python 3.8+
    - include-what-you-use (and fix_includes.py for the fix command)
    - watchdog, colorama, packaging: pip install watchdog colorama packaging

Usage:
    iwyuCheck.py [--project-root DIR] dry-run <source_file>
    iwyuCheck.py [--project-root DIR] fix <source_file>
    iwyuCheck.py [--project-root DIR] args <source_file>
    iwyuCheck.py [--project-root DIR] check [--packages] [--tools]
    iwyuCheck.py [--project-root DIR] watch

Exit Codes:
    0: Success
    1: Invalid arguments, missing/invalid compilation database or no entry for the file
    2: include-what-you-use or fix_includes.py failed
    130: Interrupted
"""

import os
import sys
import json
import signal
import asyncio
import logging
import argparse
from typing import Any, Optional

__version__ = "1.0.0"

from iwyu_lib.color_utils import Colors, print_error, print_warning, print_success, print_info, print_highlight, should_use_color
from iwyu_lib.constants import (
    EXIT_SUCCESS, EXIT_INVALID_ARGS, EXIT_RUNTIME_ERROR, EXIT_KEYBOARD_INTERRUPT,
    IwyuCheckError, DatabaseError, ValidationError
)

# Check watchdog availability early with helpful error message
from iwyu_lib.package_verification import require_package, check_all_packages
require_package('watchdog', 'compilation database watching')

from iwyu_lib.command_translator import set_debug_translation
from iwyu_lib.compile_db import CompilationDatabase, CompileEntry
from iwyu_lib.process_runner import ProcessResult, build_iwyu_spec, build_fix_includes_spec, run_dry_run, run_fix
from iwyu_lib.settings import (
    Settings, COMPILE_COMMANDS_PATH, IWYU_PATH, FIX_INCLUDES_PATH,
    IWYU_MAPPING_FILES, IWYU_ADDITIONAL_ARGS, FIX_INCLUDES_ADDITIONAL_ARGS
)
from iwyu_lib.tool_detection import check_all_tools

__all__ = ['EXIT_SUCCESS', 'main']

logger = logging.getLogger(__name__)

INVALID_DATABASE_MESSAGE = "compile_commands.json not found or invalid. Please ensure your project is configured (e.g., run CMake)."
NO_ENTRY_MESSAGE = "No compile command found for this file."


class NoEntryError(ValidationError):
    """Raised when the compilation database has no command for a file."""


def disable_colors() -> None:
    """Disable color output globally."""
    Colors.disable()


def signal_handler(signum: int, frame: Any) -> None:
    """Handle interrupt signals gracefully."""
    print_warning("\nInterrupted by user. Exiting...", prefix=False)
    sys.exit(EXIT_KEYBOARD_INTERRUPT)


def write_output(text: str) -> None:
    """Stream tool output to stdout as it arrives."""
    sys.stdout.write(text)
    sys.stdout.flush()


def write_fix_output(text: str) -> None:
    """Stream fix_includes.py output with a source prefix."""
    sys.stdout.write(f"[fix_includes.py] {text}")
    sys.stdout.flush()


async def get_entry(db: CompilationDatabase, source_file: str) -> CompileEntry:
    """Validate the database and look up the entry for a file.

    Raises:
        DatabaseError: If the compilation database is missing or invalid
        NoEntryError: If the file has no compile command
    """
    if not await db.is_valid():
        logger.info("Compilation database is invalid or not found.")
        if db.last_error:
            logger.info("Last parse error: %s", db.last_error)
        raise DatabaseError(INVALID_DATABASE_MESSAGE)

    entry = await db.lookup(source_file)
    if entry is None:
        logger.info("No entry found for %s", source_file)
        raise NoEntryError(NO_ENTRY_MESSAGE)
    return entry


def print_run_header(source_file: str, entry: CompileEntry, command: str) -> None:
    print_highlight(f"[Running IWYU] {source_file}")
    print_info(f"[CWD] {entry.directory}")
    print_info(f"[Command] {command}")


async def dry_run(db: CompilationDatabase, settings: Settings, source_file: str) -> int:
    """Run include-what-you-use on one file and print its report.

    Returns:
        Exit code
    """
    entry = await get_entry(db, source_file)
    assert db.project_root is not None
    spec = build_iwyu_spec(entry, settings, db.project_root)

    print_run_header(source_file, entry, spec.display())
    result = await run_dry_run(spec, on_output=write_output)
    print_info(f"\n[Finished] Exit code: {result.exit_code}")
    return EXIT_SUCCESS


async def fix(db: CompilationDatabase, settings: Settings, source_file: str) -> int:
    """Run include-what-you-use on one file and apply its report with fix_includes.py.

    Returns:
        Exit code
    """
    entry = await get_entry(db, source_file)
    assert db.project_root is not None
    iwyu_spec = build_iwyu_spec(entry, settings, db.project_root)
    fix_spec = build_fix_includes_spec(entry, settings, db.project_root)

    print_run_header(source_file, entry, iwyu_spec.display())

    def on_iwyu_finished(result: ProcessResult) -> None:
        print_info(f"\n--- IWYU Raw Report Finished (Exit Code: {result.exit_code}) ---")
        if result.output.strip():
            print_highlight("[Running Fix Script]")
            print_info(f"[CWD] {fix_spec.cwd}")
            print_info(f"[Command] {fix_spec.display()}")

    _, fix_result = await run_fix(iwyu_spec, fix_spec, on_output=write_output, on_fix_output=write_fix_output, on_iwyu_finished=on_iwyu_finished)
    print_info(f"\n[Finished] Fix script exited with code: {fix_result.exit_code}")

    if fix_result.exit_code != 0:
        print_error(f"fix_includes.py failed with code {fix_result.exit_code}")
        return EXIT_RUNTIME_ERROR

    print_success(f"Fix applied to {source_file}")
    return EXIT_SUCCESS


async def show_args(db: CompilationDatabase, settings: Settings, source_file: str, as_json: bool) -> int:
    """Print the translated include-what-you-use invocation without running it."""
    entry = await get_entry(db, source_file)
    assert db.project_root is not None
    spec = build_iwyu_spec(entry, settings, db.project_root)

    if as_json:
        print(json.dumps({"executable": spec.executable, "arguments": spec.arguments, "directory": spec.cwd}, indent=2))
    else:
        print(spec.display())
    return EXIT_SUCCESS


async def check(db: CompilationDatabase, packages: bool, tools: bool) -> int:
    """Report the state of the compilation database (and optionally dependencies and tools)."""
    valid = await db.is_valid()
    print(f"Database: {db.database_path}")
    print(f"Entries:  {db.entry_count}")
    if valid:
        print_success("Compilation database is valid")
    else:
        print_error(INVALID_DATABASE_MESSAGE)
        if db.last_error:
            print_error(db.last_error, prefix=False)

    ok = valid
    if packages:
        print()
        ok = check_all_packages() and ok
    if tools:
        print()
        print(json.dumps({"tools": check_all_tools()}, indent=2))

    return EXIT_SUCCESS if ok else EXIT_INVALID_ARGS


async def watch(db: CompilationDatabase, settings: Settings) -> int:
    """Serve requests from stdin while the database stays cached and watched.

    Each input line is a source file path, optionally prefixed with
    "dry-run " or "fix ". The settings file is re-read before each request so
    edits to it reach the cache.
    """
    loop = asyncio.get_running_loop()
    print_info("Waiting for source files on stdin (Ctrl+D to stop)...")

    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            break
        line = line.strip()
        if not line:
            continue

        action, _, path = line.partition(" ")
        if action not in ("dry-run", "fix") or not path:
            action, path = "dry-run", line

        try:
            settings.reload()
            source_file = os.path.abspath(path.strip())
            if action == "fix":
                await fix(db, settings, source_file)
            else:
                await dry_run(db, settings, source_file)
        except NoEntryError as e:
            print_warning(str(e))
        except IwyuCheckError as e:
            print_error(str(e))

    return EXIT_SUCCESS


def build_settings(args: argparse.Namespace, project_root: str) -> Settings:
    """Load the settings file and apply command line overrides.

    Raises:
        ConfigurationError: If the settings file is invalid
    """
    settings = Settings.load(project_root, args.settings)

    if args.compile_commands is not None:
        settings.override(COMPILE_COMMANDS_PATH, args.compile_commands)
    if args.iwyu is not None:
        settings.override(IWYU_PATH, args.iwyu)
    if args.fix_includes is not None:
        settings.override(FIX_INCLUDES_PATH, args.fix_includes)
    if args.mapping_file:
        settings.override(IWYU_MAPPING_FILES, settings.get(IWYU_MAPPING_FILES) + args.mapping_file)
    if args.iwyu_arg:
        settings.override(IWYU_ADDITIONAL_ARGS, settings.get(IWYU_ADDITIONAL_ARGS) + args.iwyu_arg)
    if args.fix_arg:
        settings.override(FIX_INCLUDES_ADDITIONAL_ARGS, settings.get(FIX_INCLUDES_ADDITIONAL_ARGS) + args.fix_arg)

    return settings


async def run_command(args: argparse.Namespace, project_root: str, settings: Settings) -> int:
    """Create the database cache for the project and dispatch the command."""
    with CompilationDatabase(project_root, settings) as db:
        if args.command == "dry-run":
            return await dry_run(db, settings, os.path.abspath(args.source_file))
        if args.command == "fix":
            return await fix(db, settings, os.path.abspath(args.source_file))
        if args.command == "args":
            return await show_args(db, settings, os.path.abspath(args.source_file), args.json)
        if args.command == "check":
            return await check(db, args.packages, args.tools)
        return await watch(db, settings)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Run include-what-you-use on a source file using its compile_commands.json entry.',
        epilog=f'Version {__version__}\n\nExamples:\n'
               f'  %(prog)s dry-run src/main.cpp\n'
               f'  %(prog)s --compile-commands build/release fix src/main.cpp\n'
               f'  %(prog)s args --json src/main.cpp\n'
               f'  %(prog)s check --packages --tools\n',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument('--project-root', metavar='DIR', default=None, help='Project root (default: current directory)')
    parser.add_argument('--settings', metavar='FILE', default=None, help='Settings file (default: <project root>/.iwyu-check.json)')
    parser.add_argument('--compile-commands', metavar='PATH', default=None,
                        help='Directory containing compile_commands.json, relative to the project root (overrides compileCommands.path)')
    parser.add_argument('--iwyu', metavar='PATH', default=None, help='include-what-you-use executable (overrides iwyu.path)')
    parser.add_argument('--fix-includes', metavar='PATH', default=None, help='fix_includes.py script (overrides fixIncludes.path)')
    parser.add_argument('--mapping-file', metavar='FILE', action='append', default=[], help='Additional IWYU mapping file (repeatable)')
    parser.add_argument('--iwyu-arg', metavar='ARG', action='append', default=[], help='Additional IWYU argument passed via -Xiwyu (repeatable)')
    parser.add_argument('--fix-arg', metavar='ARG', action='append', default=[], help='Additional fix_includes.py argument (repeatable)')
    parser.add_argument('--no-color', action='store_true', help='Disable colored output')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose output to stderr')
    parser.add_argument('--debug-translation', action='store_true', help='Log every compiler flag removed during translation')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', required=True)

    dry_run_parser = subparsers.add_parser('dry-run', help='Run include-what-you-use and print its report')
    dry_run_parser.add_argument('source_file', help='Source file to analyze')

    fix_parser = subparsers.add_parser('fix', help='Run include-what-you-use and apply the report with fix_includes.py')
    fix_parser.add_argument('source_file', help='Source file to fix')

    args_parser = subparsers.add_parser('args', help='Print the translated include-what-you-use command without running it')
    args_parser.add_argument('source_file', help='Source file to translate')
    args_parser.add_argument('--json', action='store_true', help='Output executable, arguments and directory as JSON')

    check_parser = subparsers.add_parser('check', help='Report the compilation database state')
    check_parser.add_argument('--packages', action='store_true', help='Also verify Python package versions')
    check_parser.add_argument('--tools', action='store_true', help='Also detect include-what-you-use and fix_includes.py')

    subparsers.add_parser('watch', help='Keep the database cached and run files read from stdin')

    return parser


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the script.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    parser = create_parser()
    args = parser.parse_args(argv)

    if not should_use_color(no_color=args.no_color):
        disable_colors()

    if args.debug_translation:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s", stream=sys.stderr)
        set_debug_translation(True)
    elif args.verbose:
        logging.basicConfig(level=logging.INFO, format="IWYU: %(message)s", stream=sys.stderr)
    else:
        logging.basicConfig(level=logging.WARNING, format="IWYU: %(message)s", stream=sys.stderr)

    project_root = os.path.abspath(args.project_root or os.getcwd())
    if not os.path.isdir(project_root):
        print_error(f"Project root not found: {project_root}")
        return EXIT_INVALID_ARGS

    try:
        settings = build_settings(args, project_root)
        return asyncio.run(run_command(args, project_root, settings))
    except NoEntryError as e:
        print_warning(str(e))
        return e.exit_code
    except IwyuCheckError as e:
        print_error(str(e))
        return e.exit_code


if __name__ == "__main__":
    sys.exit(main())
