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
"""Make-style dependency declaration parsing and source-tree classification.

The compiler writes one declaration per translation unit when run with
``-M -MF <file>``::

    main.o: /src/main.cpp /src/util.h \
      /usr/include/stdio.h /usr/include/zlib.h

Only the part after the first ": " matters. The format is textual and
best-effort, so every parse failure degrades to an empty list.
"""

import os
import re
import logging
from dataclasses import dataclass
from typing import List

logger = logging.getLogger(__name__)

TARGET_SEPARATOR = ": "
_LINE_BREAKS = re.compile(r"[\\\r\n]")


@dataclass(frozen=True)
class DependencyFile:
    """A file the compiler reported as a dependency of some translation unit.

    Attributes:
        path: Absolute path of the file
        is_under_source_tree: True when the canonical path is the source dir or lies inside it
    """

    path: str
    is_under_source_tree: bool


def parse_dependency_declaration(text: str) -> List[str]:
    """Extract dependency paths from a make-style declaration.

    The target is discarded by splitting once on the first ": ". Line
    continuation backslashes and newlines become spaces and the remainder is
    split on whitespace runs. Blank entries are left for the caller to drop.

    Args:
        text: Declaration text

    Returns:
        Dependency paths in declaration order, or [] if there is no ": " separator
    """
    if TARGET_SEPARATOR not in text:
        logger.warning("Dependency declaration has no '%s' separator; ignoring it", TARGET_SEPARATOR.strip())
        return []
    _, dependencies = text.split(TARGET_SEPARATOR, 1)
    return re.split(r"\s+", _LINE_BREAKS.sub(" ", dependencies))


def parse_dependency_file(deps_path: str) -> List[str]:
    """Read and parse a dependency declaration file.

    Args:
        deps_path: Path of the file written by ``-MF``

    Returns:
        Dependency paths, or [] if the file cannot be read
    """
    try:
        with open(deps_path, "r", encoding="utf-8", errors="replace") as f:
            text = f.read()
    except OSError as e:
        logger.warning("Could not read dependency file %s: %s", deps_path, e)
        return []
    return parse_dependency_declaration(text)


def remove_dependency_file(deps_path: str) -> None:
    """Delete a dependency file if it exists."""
    try:
        os.remove(deps_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.debug("Could not remove dependency file %s: %s", deps_path, e)


def is_under_source_tree(path: str, source_dir: str) -> bool:
    """Check whether path is source_dir or nested under it, after resolving symlinks."""
    real_path = os.path.realpath(path)
    real_source_dir = os.path.realpath(source_dir)
    return real_path == real_source_dir or real_path.startswith(real_source_dir.rstrip(os.sep) + os.sep)


def classify_dependency_file(path: str, source_dir: str) -> DependencyFile:
    return DependencyFile(path=path, is_under_source_tree=is_under_source_tree(path, source_dir))
