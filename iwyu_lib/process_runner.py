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
"""Run include-what-you-use and fix_includes.py for a compile entry.

A ProcessSpec is the (executable, arguments, working directory) triple handed
to run_process(). Standard output and standard error are combined and
streamed to a callback as they arrive, and the full text is returned so the
IWYU report can be fed to fix_includes.py verbatim.
"""

import sys
import codecs
import asyncio
import logging
from typing import Callable, List, Optional, Tuple
from dataclasses import dataclass, field

from iwyu_lib.constants import IWYU_TIMEOUT, FIX_INCLUDES_TIMEOUT, ExternalToolError
from iwyu_lib.command_translator import join_arguments, prepare_iwyu_args
from iwyu_lib.compile_db import CompileEntry
from iwyu_lib.settings import Settings, IWYU_PATH, FIX_INCLUDES_PATH
from iwyu_lib.tool_detection import resolve_iwyu_path, resolve_fix_includes_path

logger = logging.getLogger(__name__)

OutputCallback = Callable[[str], None]

READ_CHUNK_SIZE = 4096


@dataclass
class ProcessSpec:
    """Everything needed to start one external process.

    Attributes:
        executable: Program to run
        arguments: Arguments, not including the executable
        cwd: Working directory
    """

    executable: str
    arguments: List[str] = field(default_factory=list)
    cwd: Optional[str] = None

    def display(self) -> str:
        """Return the command line for logging."""
        return join_arguments([self.executable] + self.arguments)


@dataclass
class ProcessResult:
    """Outcome of a finished process.

    Attributes:
        exit_code: Process return code
        output: Combined standard output and standard error
    """

    exit_code: int
    output: str


def build_iwyu_spec(entry: CompileEntry, settings: Settings, project_root: str) -> ProcessSpec:
    """Create the include-what-you-use invocation for a compile entry."""
    executable = resolve_iwyu_path(settings.get(IWYU_PATH))
    arguments = prepare_iwyu_args(entry.command, settings.translator_options(project_root))
    return ProcessSpec(executable=executable, arguments=arguments, cwd=entry.directory)


def build_fix_includes_spec(entry: CompileEntry, settings: Settings, project_root: str) -> ProcessSpec:
    """Create the fix_includes.py invocation for a compile entry.

    The script is run through the current Python interpreter so it works on
    platforms where .py files are not directly executable.
    """
    script = resolve_fix_includes_path(settings.get(FIX_INCLUDES_PATH))
    options = settings.translator_options(project_root)
    return ProcessSpec(executable=sys.executable, arguments=[script] + options.fix_includes_args, cwd=entry.directory)


async def _pump_output(stream: asyncio.StreamReader, chunks: List[str], on_output: Optional[OutputCallback]) -> None:
    # Multi-byte characters may be split across reads
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        data = await stream.read(READ_CHUNK_SIZE)
        text = decoder.decode(data, final=not data)
        if text:
            chunks.append(text)
            if on_output is not None:
                on_output(text)
        if not data:
            break


async def run_process(
    spec: ProcessSpec, stdin_text: Optional[str] = None, on_output: Optional[OutputCallback] = None, timeout: Optional[float] = None
) -> ProcessResult:
    """Run a process, streaming its combined output.

    Args:
        spec: What to run and where
        stdin_text: Text written to standard input before it is closed (None = no input)
        on_output: Called with each decoded output chunk
        timeout: Seconds to wait before the process is killed (None = no limit)

    Returns:
        ProcessResult with exit code and the complete output

    Raises:
        ExternalToolError: If the process cannot be started or times out
    """
    logger.debug("Starting %s (cwd=%s)", spec.display(), spec.cwd)
    try:
        process = await asyncio.create_subprocess_exec(
            spec.executable,
            *spec.arguments,
            cwd=spec.cwd,
            stdin=asyncio.subprocess.PIPE if stdin_text is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as e:
        raise ExternalToolError(f"{spec.executable} failed to start: {e}") from e

    chunks: List[str] = []

    async def feed_input() -> None:
        if stdin_text is None:
            return
        assert process.stdin is not None
        try:
            process.stdin.write(stdin_text.encode("utf-8"))
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("%s closed its input early", spec.executable)
        process.stdin.close()

    async def communicate() -> int:
        assert process.stdout is not None
        # Input is written while output is read so neither pipe can fill up
        await asyncio.gather(feed_input(), _pump_output(process.stdout, chunks, on_output))
        return await process.wait()

    try:
        exit_code = await asyncio.wait_for(communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        process.kill()
        await process.wait()
        raise ExternalToolError(f"{spec.executable} timed out after {timeout}s") from e

    logger.debug("%s exited with code %d", spec.executable, exit_code)
    return ProcessResult(exit_code=exit_code, output="".join(chunks))


async def run_dry_run(spec: ProcessSpec, on_output: Optional[OutputCallback] = None) -> ProcessResult:
    """Run include-what-you-use and report its suggestions without applying them."""
    return await run_process(spec, on_output=on_output, timeout=IWYU_TIMEOUT)


async def run_fix(
    iwyu_spec: ProcessSpec,
    fix_spec: ProcessSpec,
    on_output: Optional[OutputCallback] = None,
    on_fix_output: Optional[OutputCallback] = None,
    on_iwyu_finished: Optional[Callable[[ProcessResult], None]] = None,
) -> Tuple[ProcessResult, ProcessResult]:
    """Run include-what-you-use, then apply its report with fix_includes.py.

    IWYU exits non-zero whenever it has suggestions, so its exit code is not
    used to decide whether to continue; an empty report is.

    Args:
        iwyu_spec: include-what-you-use invocation
        fix_spec: fix_includes.py invocation
        on_output: Receives IWYU output chunks
        on_fix_output: Receives fix_includes.py output chunks
        on_iwyu_finished: Called with the IWYU result before the fix script starts

    Returns:
        Tuple of (iwyu result, fix_includes result)

    Raises:
        ExternalToolError: If a process fails to start or IWYU produced no output
    """
    iwyu_result = await run_process(iwyu_spec, on_output=on_output, timeout=IWYU_TIMEOUT)
    if on_iwyu_finished is not None:
        on_iwyu_finished(iwyu_result)

    if not iwyu_result.output.strip():
        raise ExternalToolError("IWYU returned no suggestions to process.")

    fix_result = await run_process(fix_spec, stdin_text=iwyu_result.output, on_output=on_fix_output, timeout=FIX_INCLUDES_TIMEOUT)
    return iwyu_result, fix_result
