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
"""Shared constants and exception types for clang-sbom.

This module provides centralized constants used across the extractor, the
package manager backends and the command-line entry point.
"""

from typing import Optional

# =============================================================================
# Exit Codes
# =============================================================================

EXIT_SUCCESS = 0
EXIT_INVALID_ARGS = 1
EXIT_RUNTIME_ERROR = 2
EXIT_NO_PACKAGE_MANAGER = 3
EXIT_KEYBOARD_INTERRUPT = 130

# =============================================================================
# Build System Constants
# =============================================================================

COMPILE_COMMANDS_JSON = "compile_commands.json"  # Standard compilation database filename
DEPS_MK_FILE = "deps.mk"  # Base name of the per-unit dependency declaration file
DEPENDENCY_LISTING_FLAGS = "-M -MF"  # Appended to each compile command

# A derived source root may not contain any of these
SYSTEM_INCLUDE_DIRS = ("/usr/include", "/usr/local/include")

# =============================================================================
# Process Execution Constants
# =============================================================================

# Appended to PATH so package manager binaries in default locations are found
FALLBACK_PATH_DIRS = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"

# Parallel processing
DEFAULT_MAX_WORKERS = None  # None = ThreadPoolExecutor default

# =============================================================================
# Output Defaults
# =============================================================================

DEFAULT_OUTPUT_FILE = "clang-sbom.json"
DEFAULT_CODE_LOCATION_NAME = "ClangExtractorCodeLocation"
DEFAULT_PROJECT_NAME = "ClangExtractorProject"
DEFAULT_PROJECT_VERSION = "default"

SUPPORTED_GRAPH_FORMATS = [".json", ".graphml", ".gexf"]
DEFAULT_GRAPH_FORMAT = "json"

EXTERNAL_ID_SEPARATOR = "/"  # Joins forge, name, version and arch in external ids

# =============================================================================
# Exception Classes
# =============================================================================


class ClangSbomError(Exception):
    """Base exception for all clang-sbom errors.

    All clang-sbom exceptions carry an exit_code attribute that indicates
    what exit code the program should use when this error is caught at the
    main entry point.
    """

    def __init__(self, message: str, exit_code: int = EXIT_RUNTIME_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


# Validation errors (EXIT_INVALID_ARGS)
class ValidationError(ClangSbomError):
    """Raised when input validation fails (arguments, paths, etc)."""

    def __init__(self, message: str):
        super().__init__(message, EXIT_INVALID_ARGS)


class WorkingDirectoryError(ValidationError):
    """Raised when the working directory cannot hold dependency files."""


class CompileDatabaseError(ValidationError):
    """Raised when compile_commands.json is missing, unreadable or malformed."""


class SourceDirectoryError(ValidationError):
    """Raised when no usable source tree root can be derived from the compile commands."""


# External tool errors
class ExternalToolError(ClangSbomError):
    """Raised when external tools (compiler, dpkg, rpm) fail."""


class ExecutionError(ExternalToolError):
    """Raised when a process cannot be started or exits with a nonzero code.

    Attributes:
        command: The command line that was executed
        return_code: Process exit code, or None if the process never started
        stderr: Captured standard error output (may be empty)
    """

    def __init__(self, message: str, command: str = "", return_code: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.command = command
        self.return_code = return_code
        self.stderr = stderr


class NoPackageManagerFoundError(ClangSbomError):
    """Raised when no supported package manager is present on this host."""

    def __init__(self, message: str = "No supported package manager found"):
        super().__init__(message, EXIT_NO_PACKAGE_MANAGER)
