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
"""Compilation database loading and dependency-listing command construction."""

import os
import json
import shlex
import logging
from dataclasses import dataclass
from typing import Any, List

from clangsbom.constants import COMPILE_COMMANDS_JSON, DEPENDENCY_LISTING_FLAGS, SYSTEM_INCLUDE_DIRS, CompileDatabaseError, SourceDirectoryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompileCommand:
    """One translation unit from compile_commands.json.

    Attributes:
        directory: Working directory the command was run in
        command: Full compiler command line
        file: Source file being compiled
    """

    directory: str
    command: str
    file: str

    def source_path(self) -> str:
        """Absolute path of the source file, resolved against directory when relative."""
        if os.path.isabs(self.file):
            return self.file
        return os.path.normpath(os.path.join(self.directory, self.file))


def resolve_compile_commands_path(path: str) -> str:
    """Accept either compile_commands.json itself or the build directory holding it."""
    if os.path.isdir(path):
        return os.path.join(path, COMPILE_COMMANDS_JSON)
    return path


def _parse_entry(index: int, entry: Any) -> CompileCommand:
    if not isinstance(entry, dict):
        raise CompileDatabaseError(f"Entry {index} of the compilation database is not an object")
    command = entry.get("command")
    if command is None and isinstance(entry.get("arguments"), list):
        command = shlex.join(str(arg) for arg in entry["arguments"])
    missing = [key for key, value in (("directory", entry.get("directory")), ("command", command), ("file", entry.get("file"))) if not value]
    if missing:
        raise CompileDatabaseError(f"Entry {index} of the compilation database is missing: {', '.join(missing)}")
    return CompileCommand(directory=str(entry["directory"]), command=str(command), file=str(entry["file"]))


def load_compile_commands(path: str) -> List[CompileCommand]:
    """Load compile commands from a compilation database.

    Args:
        path: Path to compile_commands.json, or the build directory containing it

    Returns:
        Compile commands in file order

    Raises:
        CompileDatabaseError: If the file is unreadable, not valid JSON, not an array,
            or has an entry without directory/command/file
    """
    db_path = resolve_compile_commands_path(path)
    try:
        with open(db_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise CompileDatabaseError(f"Cannot read compilation database {db_path}: {e}") from e
    except json.JSONDecodeError as e:
        raise CompileDatabaseError(f"Invalid JSON in compilation database {db_path}: {e}") from e

    if not isinstance(data, list):
        raise CompileDatabaseError(f"Compilation database {db_path} must contain a JSON array")

    compile_commands = [_parse_entry(index, entry) for index, entry in enumerate(data)]
    logger.info("Loaded %d compile commands from %s", len(compile_commands), db_path)
    return compile_commands


def build_dependency_command(compile_command: CompileCommand, deps_path: str) -> str:
    """Append the dependency-listing flags to a compile command.

    Args:
        compile_command: The original compile command
        deps_path: Where the compiler should write the declaration

    Returns:
        ``<command> -M -MF <deps_path>``
    """
    return f"{compile_command.command} {DEPENDENCY_LISTING_FLAGS} {shlex.quote(deps_path)}"


def find_source_dir(compile_commands: List[CompileCommand]) -> str:
    """Guess the source tree root as the common directory of all compiled files.

    Args:
        compile_commands: Loaded compile commands

    Returns:
        Common directory of every source file, "/" when there are none

    Raises:
        SourceDirectoryError: If the common directory is "/" or contains a system include directory
    """
    if not compile_commands:
        return "/"
    source_dirs = [os.path.dirname(os.path.realpath(cc.source_path())) for cc in compile_commands]
    source_dir = os.path.commonpath(source_dirs)

    swallowed = [d for d in SYSTEM_INCLUDE_DIRS if os.path.commonpath([source_dir, d]) == source_dir]
    if source_dir == os.path.sep or swallowed:
        raise SourceDirectoryError(
            f"Compiled files share no project directory (derived root: {source_dir}); pass --source-dir to name the project source tree"
        )
    return source_dir
