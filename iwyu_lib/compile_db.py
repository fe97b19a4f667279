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
"""Live cache of a project's compilation database.

CompilationDatabase keeps an in-memory map from canonical source file path to
the CompileEntry found for it in compile_commands.json. The map is reloaded
whenever the file is created or changed on disk (watchdog) or when the
``compileCommands.path`` setting moves it, and cleared when the file is
deleted.

All cache state lives on one asyncio event loop. File reads run in the
default executor and the watchdog observer thread only schedules callbacks
onto the loop, so readers never see a partially built map: every reload
builds a complete new dictionary and swaps it in.

Typical use from a coroutine:

    db = CompilationDatabase(project_root, settings)
    try:
        if await db.is_valid():
            entry = await db.lookup("/proj/src/main.cpp")
    finally:
        db.dispose()
"""

import os
import json
import asyncio
import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple
from dataclasses import dataclass

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from iwyu_lib.constants import COMPILE_COMMANDS_JSON, DatabaseNotFoundError, DatabaseParseError
from iwyu_lib.command_translator import join_arguments
from iwyu_lib.settings import COMPILE_COMMANDS_PATH, ConfigurationChangeEvent, Settings

logger = logging.getLogger(__name__)

__all__ = ["CompileEntry", "CompilationDatabase", "DatabaseState", "DatabaseWatcher", "canonical_path", "parse_compile_commands"]


@dataclass(frozen=True)
class CompileEntry:
    """One build invocation for one source file.

    Attributes:
        command: Full compiler invocation
        directory: Working directory the invocation runs in
    """

    command: str
    directory: str


class DatabaseState(Enum):
    """Externally observable state of a CompilationDatabase."""

    UNINITIALIZED = "uninitialized"  # No project root
    LOADING = "loading"
    VALID = "valid"  # File found and at least one entry parsed
    INVALID = "invalid"  # File missing, empty, unparsable or deleted


def canonical_path(path: str) -> str:
    """Return the identity used as cache key for a source file.

    Args:
        path: Absolute or working directory relative path

    Returns:
        Absolute, symlink resolved and case normalized path
    """
    return os.path.normcase(os.path.realpath(path))


def resolve_database_path(project_root: str, configured: str) -> str:
    """Resolve the compile_commands.json location from the setting.

    Args:
        project_root: Project root directory
        configured: Value of compileCommands.path, a directory relative to the
            project root (absolute allowed) or a path to a .json file

    Returns:
        Absolute path of the compilation database file
    """
    base = configured if os.path.isabs(configured) else os.path.join(project_root, configured)
    if base.lower().endswith(".json"):
        return os.path.normpath(base)
    return os.path.normpath(os.path.join(base, COMPILE_COMMANDS_JSON))


def read_compile_commands(path: str) -> Any:
    """Read and decode a compilation database file.

    Args:
        path: Path to compile_commands.json

    Returns:
        Decoded JSON document

    Raises:
        DatabaseNotFoundError: If the file does not exist
        DatabaseParseError: If the file cannot be read or is not valid JSON
    """
    if not os.path.isfile(path):
        raise DatabaseNotFoundError(f"Database not found at {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise DatabaseNotFoundError(f"Database not found at {path}") from e
    except (IOError, ValueError) as e:
        raise DatabaseParseError(f"Failed to read {path}: {e}") from e


def parse_compile_commands(data: Any, project_root: str) -> Dict[str, CompileEntry]:
    """Build the file to entry map from a decoded compilation database.

    Records without a usable ``file`` or without a non-empty command are
    skipped. A record given as ``arguments`` is joined into an equivalent
    command string. When a file is listed more than once the last record wins.

    Args:
        data: Decoded compile_commands.json document
        project_root: Directory used when a record has no (or a relative) directory

    Returns:
        Dictionary of canonical file path to CompileEntry

    Raises:
        DatabaseParseError: If the document is not a list of records
    """
    if not isinstance(data, list):
        raise DatabaseParseError(f"Invalid compile_commands.json format: expected list, got {type(data).__name__}")

    commands: Dict[str, CompileEntry] = {}
    for index, record in enumerate(data):
        if not isinstance(record, dict):
            logger.warning("Skipping invalid entry %d in compile_commands.json: %s", index, record)
            continue

        file = record.get("file")
        if not file or not isinstance(file, str):
            continue

        directory = record.get("directory") or project_root
        if not isinstance(directory, str):
            logger.warning("Skipping entry %d with invalid directory: %r", index, directory)
            continue
        directory = os.path.normpath(os.path.join(project_root, directory))

        command = record.get("command")
        if not command:
            arguments = record.get("arguments")
            if isinstance(arguments, list) and all(isinstance(arg, str) for arg in arguments):
                command = join_arguments(arguments)
        if not command or not isinstance(command, str):
            continue

        try:
            key = canonical_path(os.path.join(directory, file))
        except (ValueError, OSError) as e:
            logger.warning("Skipping entry %d with unusable path %r: %s", index, file, e)
            continue
        commands[key] = CompileEntry(command=command, directory=directory)

    return commands


def _find_watch_root(path: str) -> Tuple[str, bool]:
    """Find the directory to observe for a file that may not exist yet.

    Returns:
        Tuple of (directory, recursive); recursive when an ancestor above the
        file's own directory had to be used
    """
    directory = os.path.dirname(path)
    recursive = False
    while not os.path.isdir(directory):
        parent = os.path.dirname(directory)
        if parent == directory:
            break
        directory = parent
        recursive = True
    return directory, recursive


class DatabaseEventHandler(FileSystemEventHandler):
    """Forward watchdog events for exactly one file path."""

    def __init__(self, path: str, on_changed: Callable[[], None], on_deleted: Callable[[], None]):
        super().__init__()
        self.path = os.path.normcase(os.path.abspath(path))
        self._on_changed = on_changed
        self._on_deleted = on_deleted

    def _matches(self, event_path: Any) -> bool:
        if not event_path:
            return False
        return os.path.normcase(os.path.abspath(os.fsdecode(event_path))) == self.path

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._matches(event.src_path):
            self._on_changed()

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory and self._matches(event.src_path):
            self._on_changed()

    def on_deleted(self, event: FileSystemEvent) -> None:
        if self._matches(event.src_path):
            self._on_deleted()

    def on_moved(self, event: FileSystemEvent) -> None:
        # Build systems often write to a temporary file and rename it into place
        if self._matches(getattr(event, "dest_path", "")):
            self._on_changed()
        elif self._matches(event.src_path):
            self._on_deleted()


class DatabaseWatcher:
    """Watch one file path and report changes on an asyncio loop.

    The watchdog observer runs in its own thread; callbacks are scheduled on
    ``loop`` with call_soon_threadsafe so they run on the loop thread.
    """

    def __init__(
        self,
        path: str,
        on_changed: Callable[[], None],
        on_deleted: Callable[[], None],
        loop: asyncio.AbstractEventLoop,
        observer_factory: Callable[[], Any] = Observer,
    ):
        self.path = os.path.abspath(path)
        self._loop = loop
        self._lock = threading.Lock()
        self._disposed = False

        handler = DatabaseEventHandler(self.path, lambda: self._schedule(on_changed), lambda: self._schedule(on_deleted))
        watch_root, recursive = _find_watch_root(self.path)

        self._observer = observer_factory()
        self._observer.daemon = True
        self._observer.schedule(handler, watch_root, recursive=recursive)
        self._observer.start()
        logger.debug("Watching %s (observing %s, recursive=%s)", self.path, watch_root, recursive)

    def _schedule(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if self._disposed or self._loop.is_closed():
                return
            self._loop.call_soon_threadsafe(callback)

    def dispose(self) -> None:
        """Stop the observer thread. Safe to call more than once."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
        self._observer.stop()
        if self._observer.is_alive():
            self._observer.join()
        logger.debug("Stopped watching %s", self.path)


class CompilationDatabase:
    """Cache of a project's compile_commands.json, kept fresh on disk changes.

    Must be constructed while an asyncio event loop is running when a project
    root is given. Every reload gets a generation number and only the most
    recent reload may commit its result, so a slow superseded reload can never
    overwrite a newer one.

    Attributes:
        project_root: Absolute project root, or None when no project is open
        settings: Settings providing compileCommands.path
        last_error: Error text of the most recent failed parse, None otherwise
    """

    def __init__(self, project_root: Optional[str], settings: Settings, watcher_factory: Callable[..., Any] = DatabaseWatcher):
        self.project_root = os.path.abspath(project_root) if project_root else None
        self.settings = settings
        self.last_error: Optional[str] = None
        self._watcher_factory = watcher_factory
        self._watcher: Optional[Any] = None
        self._commands: Dict[str, CompileEntry] = {}
        self._db_exists = False
        self._generation = 0
        self._load_task: Optional["asyncio.Task[None]"] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        if self.project_root is None:
            logger.debug("No project root, compilation database stays uninitialized")
            return

        self._loop = asyncio.get_running_loop()
        self._init_watcher()
        self._start_load()
        self._unsubscribe = settings.on_did_change(self._on_configuration_changed)

    def __enter__(self) -> "CompilationDatabase":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.dispose()

    @property
    def database_path(self) -> Optional[str]:
        """Absolute path of the backing compile_commands.json."""
        if self.project_root is None:
            return None
        return resolve_database_path(self.project_root, self.settings.get(COMPILE_COMMANDS_PATH))

    @property
    def entry_count(self) -> int:
        return len(self._commands)

    @property
    def state(self) -> DatabaseState:
        if self.project_root is None:
            return DatabaseState.UNINITIALIZED
        if self._load_task is not None and not self._load_task.done():
            return DatabaseState.LOADING
        if self._db_exists and self._commands:
            return DatabaseState.VALID
        return DatabaseState.INVALID

    def _init_watcher(self) -> None:
        if self._watcher is not None:
            self._watcher.dispose()
            self._watcher = None

        path = self.database_path
        try:
            self._watcher = self._watcher_factory(path, self._on_database_changed, self._on_database_deleted, self._loop)
        except OSError as e:
            logger.warning("Cannot watch %s, changes will not be picked up: %s", path, e)

    def _start_load(self) -> None:
        assert self._loop is not None
        self._generation += 1
        self._load_task = self._loop.create_task(self._load_database(self._generation))

    def _on_configuration_changed(self, event: ConfigurationChangeEvent) -> None:
        if event.affects_configuration(COMPILE_COMMANDS_PATH):
            logger.info("Settings changed, reloading database...")
            self._init_watcher()
            self._start_load()

    def _on_database_changed(self) -> None:
        logger.info("Database change, reloading cache...")
        self._start_load()

    def _on_database_deleted(self) -> None:
        # Outdates any load still in flight
        self._generation += 1
        self._commands = {}
        self._db_exists = False
        self._load_task = None
        logger.info("Database deleted, cache cleared.")

    async def _load_database(self, generation: int) -> None:
        path = self.database_path
        assert path is not None and self.project_root is not None
        loop = asyncio.get_running_loop()

        try:
            data = await loop.run_in_executor(None, read_compile_commands, path)
            commands = parse_compile_commands(data, self.project_root)
        except DatabaseNotFoundError:
            if generation != self._generation:
                return
            self._db_exists = False
            logger.info("Database not found at %s", path)
            return
        except DatabaseParseError as e:
            if generation != self._generation:
                return
            self._db_exists = True
            self.last_error = str(e)
            logger.error("Error parsing database: %s", e)
            return

        if generation != self._generation:
            logger.debug("Discarding superseded load of %s", path)
            return

        self._db_exists = True
        self.last_error = None
        self._commands = commands
        logger.info("Loaded %d compile commands.", len(commands))

    async def _wait_for_load(self) -> None:
        task = self._load_task
        if task is not None:
            await task

    async def is_valid(self) -> bool:
        """Check that compile_commands.json exists and produced at least one entry.

        Waits for the reload that is current at call time.
        """
        await self._wait_for_load()
        return self._db_exists and bool(self._commands)

    async def lookup(self, path: str) -> Optional[CompileEntry]:
        """Return the compile entry of a source file.

        Args:
            path: Source file path (made absolute against the working directory)

        Returns:
            CompileEntry, or None if the file has no compile command
        """
        await self._wait_for_load()
        try:
            key = canonical_path(path)
        except (ValueError, OSError) as e:
            logger.debug("Cannot look up %r: %s", path, e)
            return None
        return self._commands.get(key)

    def dispose(self) -> None:
        """Stop watching and stop listening to settings changes."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._watcher is not None:
            self._watcher.dispose()
            self._watcher = None
