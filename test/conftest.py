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
"""Pytest configuration and shared fixtures for clang-sbom tests.

The extractor and the package manager backends only run external commands
through an Executor, so most tests swap in MockExecutor: a scripted stand-in
for dpkg, rpm and the compiler that records every command it is asked to run.
"""

import os
import sys
import shlex
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional, Set, Tuple
import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from clangsbom.constants import ExecutionError

DPKG_VERSION_BANNER = "Debian 'dpkg' package management program version 1.19.0.5 (amd64)."
RPM_VERSION_BANNER = "RPM version 4.11.3"
INSTALLED_STATUS = "Package: {name}\nStatus: install ok installed\nVersion: {version}\nx\n"


class MockExecutor:
    """Scripted Executor replacement.

    Attributes:
        declarations: Compile command -> dependency declaration written on ``-M -MF``
        dpkg_owners: Absolute path -> ``dpkg -S`` output line(s)
        dpkg_status: Package name -> ``dpkg -s`` output
        rpm_owners: Absolute path -> ``rpm -qf`` output line(s)
        failing_commands: Compile commands whose dependency listing fails
        calls: Every (working_dir, command_line) executed, in call order
    """

    def __init__(self, dpkg_present: bool = True, rpm_present: bool = False) -> None:
        self.dpkg_present = dpkg_present
        self.rpm_present = rpm_present
        self.declarations: Dict[str, str] = {}
        self.dpkg_owners: Dict[str, str] = {}
        self.dpkg_status: Dict[str, str] = {}
        self.rpm_owners: Dict[str, str] = {}
        self.failing_commands: Set[str] = set()
        self.calls: List[Tuple[str, str]] = []
        self._lock = threading.Lock()

    def execute(self, working_dir: str, env_overlay: Optional[Dict[str, str]], command_line: str) -> str:
        with self._lock:
            self.calls.append((working_dir, command_line))

        if command_line == "dpkg --version" and self.dpkg_present:
            return DPKG_VERSION_BANNER
        if command_line == "rpm --version" and self.rpm_present:
            return RPM_VERSION_BANNER
        if command_line.startswith("dpkg -S ") and self.dpkg_present:
            return self._lookup(self.dpkg_owners, shlex.split(command_line)[2], "dpkg-query: no path found matching pattern")
        if command_line.startswith("dpkg -s ") and self.dpkg_present:
            return self._lookup(self.dpkg_status, shlex.split(command_line)[2], "dpkg-query: package is not installed")
        if command_line.startswith("rpm -qf ") and self.rpm_present:
            return self._lookup(self.rpm_owners, shlex.split(command_line)[2], "is not owned by any package")
        if " -M -MF " in command_line:
            compile_command, deps_path = command_line.split(" -M -MF ", 1)
            if compile_command in self.failing_commands or compile_command not in self.declarations:
                raise ExecutionError(f"Command '{command_line}' return code: 1", command=command_line, return_code=1)
            with open(shlex.split(deps_path)[0], "w", encoding="utf-8") as f:
                f.write(self.declarations[compile_command])
            return ""
        raise ExecutionError(f'exec: "{command_line}": executable file not found in $PATH', command=command_line)

    @staticmethod
    def _lookup(table: Dict[str, str], key: str, error: str) -> str:
        if key not in table:
            raise ExecutionError(f"{error} {key}", return_code=1)
        return table[key]

    def commands(self, prefix: str) -> List[str]:
        """Executed command lines starting with prefix."""
        return [command for _, command in self.calls if command.startswith(prefix)]

    def own(self, path: str, name: str, version: str, arch: str = "amd64") -> None:
        """Make dpkg report path as owned by an installed package."""
        self.dpkg_owners[path] = f"{name}:{arch}: {path}"
        self.dpkg_status[name] = INSTALLED_STATUS.format(name=name, version=version)


@pytest.fixture
def temp_dir() -> Generator[str, None, None]:
    """Create a temporary directory for tests.

    Scope: function (default)
    Use for: File I/O operations that need isolation
    """
    tmpdir = tempfile.mkdtemp(prefix="clangsbom_test_")
    yield os.path.realpath(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def mock_executor() -> MockExecutor:
    """MockExecutor with dpkg present and rpm absent."""
    return MockExecutor()


@pytest.fixture
def project_layout(temp_dir: str) -> Dict[str, str]:
    """Create a source tree, a build dir and a fake system include dir.

    Scope: function
    Dependencies: temp_dir
    Returns: mapping of role -> absolute path
    """
    root = Path(temp_dir)
    src_dir = root / "src"
    build_dir = root / "build"
    include_dir = root / "sysroot" / "usr" / "include"
    work_dir = root / "work"
    for directory in (src_dir, build_dir, include_dir, work_dir):
        directory.mkdir(parents=True, exist_ok=True)

    files = {
        "main.c": src_dir / "main.c",
        "util.c": src_dir / "util.c",
        "util.h": src_dir / "util.h",
        "wchar.h": include_dir / "wchar.h",
        "stdio.h": include_dir / "stdio.h",
        "zlib.h": include_dir / "zlib.h",
        "unowned.h": include_dir / "unowned.h",
    }
    for path in files.values():
        path.write_text("/* test */\n")

    layout = {name: str(path) for name, path in files.items()}
    layout.update(src_dir=str(src_dir), build_dir=str(build_dir), include_dir=str(include_dir), work_dir=str(work_dir))
    return layout


@pytest.fixture
def make_executor() -> Callable[..., MockExecutor]:
    """Factory for MockExecutors with chosen package managers present."""

    def factory(dpkg_present: bool = True, rpm_present: bool = False) -> MockExecutor:
        return MockExecutor(dpkg_present=dpkg_present, rpm_present=rpm_present)

    return factory
