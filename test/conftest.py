#!/usr/bin/env python3
#****************************************************************************************************************************************************
#* BSD 3-Clause License
#*
#* Copyright (c) 2025, Mana Battery
#* All rights reserved.
#*
#* Redistribution and use in source and binary forms, with or without modification, are permitted provided that the following conditions are met:
#*
#* 1. Redistributions of source code must retain the above copyright notice, this list of conditions and the following disclaimer.
#* 2. Redistributions in binary form must reproduce the above copyright notice, this list of conditions and the following disclaimer in the
#*    documentation and/or other materials provided with the distribution.
#* 3. Neither the name of the copyright holder nor the names of its contributors may be used to endorse or promote products derived from this
#*    software without specific prior written permission.
#*
#* THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO,
#* THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR
#* CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO,
#* PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
#* LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE,
#* EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
#****************************************************************************************************************************************************
"""Pytest configuration and shared fixtures for iwyu-check tests.

Fixture Scopes:
- function: Default, recreated for each test
"""

import os
import sys
import json
import shutil
import asyncio
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


class FakeWatcher:
    """Stand-in for DatabaseWatcher that lets tests fire filesystem events."""

    def __init__(self, path: str, on_changed: Callable[[], None], on_deleted: Callable[[], None], loop: asyncio.AbstractEventLoop):
        self.path = path
        self.loop = loop
        self.disposed = False
        self._on_changed = on_changed
        self._on_deleted = on_deleted

    def fire_changed(self) -> None:
        self._on_changed()

    def fire_deleted(self) -> None:
        self._on_deleted()

    def dispose(self) -> None:
        self.disposed = True


class WatcherRecorder:
    """watcher_factory that records every FakeWatcher it creates."""

    def __init__(self) -> None:
        self.created: List[FakeWatcher] = []

    def __call__(self, path: str, on_changed: Callable[[], None], on_deleted: Callable[[], None], loop: asyncio.AbstractEventLoop) -> FakeWatcher:
        watcher = FakeWatcher(path, on_changed, on_deleted, loop)
        self.created.append(watcher)
        return watcher

    @property
    def current(self) -> FakeWatcher:
        return self.created[-1]


@pytest.fixture
def temp_dir() -> Generator[str, None, None]:
    """Create a temporary directory for tests.

    Scope: function (default)
    Use for: File I/O operations that need isolation
    """
    tmpdir = tempfile.mkdtemp(prefix="iwyucheck_test_")
    yield os.path.realpath(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def project_dir(temp_dir: str) -> str:
    """Create a small C++ project with src/ and build/ directories.

    Scope: function
    Dependencies: temp_dir
    """
    src_dir = Path(temp_dir) / "src"
    src_dir.mkdir(parents=True, exist_ok=True)
    (Path(temp_dir) / "build").mkdir(parents=True, exist_ok=True)

    (src_dir / "main.cpp").write_text('#include "utils.hpp"\n\nint main() { return add(1, 2); }\n')
    (src_dir / "utils.cpp").write_text('#include "utils.hpp"\n\nint add(int a, int b) { return a + b; }\n')
    (src_dir / "utils.hpp").write_text("#pragma once\n\nint add(int a, int b);\n")
    return temp_dir


@pytest.fixture
def write_compile_commands() -> Callable[..., str]:
    """Return a helper writing a compile_commands.json document.

    The helper takes the target directory and either a list of records or a
    raw string, and returns the path of the written file.
    """

    def write(directory: str, content: Any) -> str:
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, "compile_commands.json")
        with open(path, "w", encoding="utf-8") as f:
            if isinstance(content, str):
                f.write(content)
            else:
                json.dump(content, f, indent=2)
        return path

    return write


@pytest.fixture
def sample_commands(project_dir: str) -> List[Dict[str, str]]:
    """Compile commands for the project_dir sources, built in build/.

    Scope: function
    Dependencies: project_dir
    """
    build_dir = os.path.join(project_dir, "build")
    src_dir = os.path.join(project_dir, "src")
    return [
        {"directory": build_dir, "command": f"/usr/bin/g++ -I{src_dir} -DNDEBUG -c -o main.o {src_dir}/main.cpp", "file": f"{src_dir}/main.cpp"},
        {"directory": build_dir, "command": f"/usr/bin/g++ -I{src_dir} -c -o utils.o {src_dir}/utils.cpp", "file": f"{src_dir}/utils.cpp"},
    ]


@pytest.fixture
def watcher_factory() -> WatcherRecorder:
    """Fake watcher factory for CompilationDatabase."""
    return WatcherRecorder()
