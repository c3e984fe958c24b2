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
# ****************************************************************************************************************************************************
"""Process execution for compiler and package manager invocations.

Every external command clang-sbom runs goes through this module:

- the compiler in dependency-listing mode (one run per compile command)
- dpkg / rpm presence probes and file ownership queries

Commands are split with shlex and run without a shell. stdout and stderr are
drained on separate reader threads while the main thread waits for exit, so
a child that fills one pipe cannot block on the other. There is no timeout:
a hung command hangs the calling worker.
"""

import os
import shlex
import logging
import threading
import subprocess
from dataclasses import dataclass
from typing import Dict, IO, List, Optional

from clangsbom.constants import FALLBACK_PATH_DIRS, ExecutionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of a finished process.

    Attributes:
        command: Command line as given by the caller
        return_code: Process exit code
        stdout: Captured standard output, lines newline-joined and trimmed
        stderr: Captured standard error, lines newline-joined and trimmed
    """

    command: str
    return_code: int
    stdout: str
    stderr: str

    def succeeded(self) -> bool:
        return self.return_code == 0


def build_environment(env_overlay: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Merge env_overlay on top of the inherited environment.

    PATH is extended with FALLBACK_PATH_DIRS, never replaced, so dpkg and rpm
    are found in their default locations even under a minimal caller PATH.

    Args:
        env_overlay: Variables to set or override (None values are ignored)

    Returns:
        Complete environment mapping for subprocess.Popen
    """
    env = dict(os.environ)
    if env_overlay:
        env.update({key: value for key, value in env_overlay.items() if key is not None and value is not None})
    path = env.get("PATH")
    env["PATH"] = f"{path}{os.pathsep}{FALLBACK_PATH_DIRS}" if path else FALLBACK_PATH_DIRS
    return env


def _drain(stream: IO[str], lines: List[str]) -> None:
    """Read a pipe to EOF, collecting its lines without trailing newlines."""
    with stream:
        for line in stream:
            lines.append(line.rstrip("\r\n"))


def run_command(working_dir: str, env_overlay: Optional[Dict[str, str]], command_line: str) -> ExecutionResult:
    """Run command_line in working_dir and capture its output.

    A nonzero exit code is returned, not raised.

    Args:
        working_dir: Directory the process starts in
        env_overlay: Extra environment variables (see build_environment)
        command_line: Full command line, split with shlex

    Returns:
        ExecutionResult with exit code and trimmed output

    Raises:
        ExecutionError: If the command cannot be parsed or the process cannot be started
    """
    logger.info("Executing %s in %s", command_line, working_dir)
    try:
        args = shlex.split(command_line)
    except ValueError as exc:
        raise ExecutionError(f"Cannot parse command '{command_line}': {exc}", command=command_line) from exc
    if not args:
        raise ExecutionError("Cannot execute an empty command", command=command_line)

    try:
        process = subprocess.Popen(
            args,
            cwd=working_dir,
            env=build_environment(env_overlay),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
    except OSError as exc:
        raise ExecutionError(f"Cannot start '{command_line}': {exc}", command=command_line) from exc

    stdout_lines: List[str] = []
    stderr_lines: List[str] = []
    readers = [
        threading.Thread(target=_drain, args=(process.stdout, stdout_lines), daemon=True),
        threading.Thread(target=_drain, args=(process.stderr, stderr_lines), daemon=True),
    ]
    for reader in readers:
        reader.start()

    return_code = process.wait()
    for reader in readers:
        reader.join()
    logger.debug("Command '%s' finished with return code %d", command_line, return_code)

    return ExecutionResult(
        command=command_line,
        return_code=return_code,
        stdout="\n".join(stdout_lines).strip(),
        stderr="\n".join(stderr_lines).strip(),
    )


class Executor:
    """Runs commands and treats a nonzero exit code as failure.

    The extractor and the package manager backends only talk to this class,
    which makes it the seam tests replace with a scripted fake.
    """

    def execute(self, working_dir: str, env_overlay: Optional[Dict[str, str]], command_line: str) -> str:
        """Run a command and return its trimmed stdout.

        Raises:
            ExecutionError: If the process cannot be started or exits nonzero
        """
        result = run_command(working_dir, env_overlay, command_line)
        logger.debug("Command: '%s'; stdout: %s; stderr: %s", command_line, result.stdout, result.stderr)
        if not result.succeeded():
            raise ExecutionError(
                f"Command '{command_line}' return code: {result.return_code}; stderr: {result.stderr}",
                command=command_line,
                return_code=result.return_code,
                stderr=result.stderr,
            )
        return result.stdout
