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
"""Runtime package verification for clang-sbom.

The command-line entry point calls require_package() for each required
library before any extraction work starts, so a missing or outdated library
is reported with an install hint instead of a traceback.
"""

import sys
import logging
from typing import Tuple, Optional, Dict
from importlib.metadata import version, PackageNotFoundError

from packaging.version import parse

from clangsbom.color_utils import print_error, print_warning, print_success
from clangsbom.constants import EXIT_RUNTIME_ERROR

logger = logging.getLogger(__name__)

# Minimum versions, based on Ubuntu 24.04 LTS
PACKAGE_REQUIREMENTS: Dict[str, str] = {
    "networkx": "2.8.8",
    "packaging": "24.0",
    "colorama": "0.4.6",  # optional - colored output only
}

REQUIRED_PACKAGES = ("packaging", "networkx")
OPTIONAL_PACKAGES = ("colorama",)


def check_package_version(package_name: str, min_version: Optional[str] = None, raise_on_error: bool = True) -> Tuple[bool, bool, Optional[str]]:
    """Check if a package is installed and meets minimum version requirement.

    Args:
        package_name: PyPI package name (e.g., 'networkx')
        min_version: Minimum required version string. If None, uses PACKAGE_REQUIREMENTS.
        raise_on_error: If True, raises ImportError on failure

    Returns:
        Tuple of (is_installed, meets_version, installed_version)

    Raises:
        ValueError: If no minimum version is known for package_name
        ImportError: If raise_on_error=True and package is missing or too old
    """
    if min_version is None:
        min_version = PACKAGE_REQUIREMENTS.get(package_name)
        if min_version is None:
            raise ValueError(f"No version requirement specified for {package_name}")

    try:
        installed_version = version(package_name)
    except PackageNotFoundError as exc:
        if raise_on_error:
            raise ImportError(f"{package_name} is not installed. Install with: pip install '{package_name}>={min_version}'") from exc
        return False, False, None

    meets_version = parse(installed_version) >= parse(min_version)
    if not meets_version and raise_on_error:
        raise ImportError(
            f"{package_name} {installed_version} is too old. "
            f"Version >={min_version} is required. "
            f"Upgrade with: pip install --upgrade '{package_name}>={min_version}'"
        )
    return True, meets_version, installed_version


def require_package(package_name: str, context: str = "clang-sbom") -> None:
    """Exit with EXIT_RUNTIME_ERROR and an install hint if a package is missing or too old.

    Args:
        package_name: PyPI package name
        context: Description of what needs the package
    """
    min_ver = PACKAGE_REQUIREMENTS.get(package_name)
    if min_ver is None:
        print_error(f"Unknown package '{package_name}' - no version requirement defined")
        sys.exit(EXIT_RUNTIME_ERROR)

    is_installed, meets_version, installed_version = check_package_version(package_name, min_ver, raise_on_error=False)
    if not is_installed:
        print_error(f"{package_name} is required for {context}.")
        print(f"Install with: pip install '{package_name}>={min_ver}'", file=sys.stderr)
        sys.exit(EXIT_RUNTIME_ERROR)
    if not meets_version:
        print_error(f"{package_name} {installed_version} is too old for {context}.")
        print(f"Upgrade with: pip install --upgrade '{package_name}>={min_ver}'", file=sys.stderr)
        sys.exit(EXIT_RUNTIME_ERROR)
    logger.debug("%s %s satisfies >=%s", package_name, installed_version, min_ver)


def check_all_packages() -> bool:
    """Check every known package and print its status.

    Returns:
        True if all required packages are OK, False otherwise
    """
    all_ok = True
    for pkg_name in REQUIRED_PACKAGES + OPTIONAL_PACKAGES:
        required = pkg_name in REQUIRED_PACKAGES
        report = print_error if required else print_warning
        min_ver = PACKAGE_REQUIREMENTS[pkg_name]
        is_installed, meets_version, installed_ver = check_package_version(pkg_name, min_ver, raise_on_error=False)
        if is_installed and meets_version:
            print_success(f"{pkg_name} {installed_ver}")
            continue
        if is_installed:
            report(f"{pkg_name} {installed_ver} (need >={min_ver})", prefix=False)
        else:
            report(f"{pkg_name} not installed", prefix=False)
        if required:
            all_ok = False
    return all_ok
