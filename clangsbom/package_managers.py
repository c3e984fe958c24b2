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
"""Operating-system package manager backends.

A backend answers one question for the extractor: which installed package
owns this file? Two families are supported and probed in a fixed order:

1. Dpkg - Debian, Ubuntu (``dpkg -S`` / ``dpkg -s``)
2. Rpm  - CentOS, Fedora, RHEL (``rpm -qf``)

Package manager output is unstructured text that drifts across versions and
locales. Every query parses defensively and falls back to an empty result,
and a failed query is logged, never raised.
"""

import os
import re
import abc
import enum
import shlex
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Type

from clangsbom.constants import EXTERNAL_ID_SEPARATOR, ExecutionError, NoPackageManagerFoundError
from clangsbom.executor import Executor

logger = logging.getLogger(__name__)


class Forge(enum.Enum):
    """Package ecosystem namespaces that external ids are reported under."""

    UBUNTU = "ubuntu"
    DEBIAN = "debian"
    CENTOS = "centos"
    FEDORA = "fedora"
    RHEL = "rhel"


@dataclass(frozen=True)
class PackageAttributes:
    """What a backend learned about the package owning a file.

    Each field is None when its part of the query failed. Equality and hash
    are structural, which the extractor relies on for deduplication.
    """

    name: Optional[str]
    version: Optional[str]
    arch: Optional[str]

    def is_complete(self) -> bool:
        return bool(self.name) and bool(self.version) and bool(self.arch)


_BDIO_UNSAFE = re.compile(r"[^A-Za-z0-9]")


@dataclass(frozen=True)
class ExternalId:
    """A package identifier scoped to a forge.

    Attributes:
        forge: Namespace the id belongs to
        value: ``<name>/<version>/<arch>``
    """

    forge: Forge
    value: str

    @property
    def namespaced(self) -> str:
        return f"{self.forge.value}{EXTERNAL_ID_SEPARATOR}{self.value}"

    @property
    def bdio_id(self) -> str:
        """BDIO component id, e.g. ``http:ubuntu/libc6_dev/2_27_3ubuntu1/amd64``."""
        pieces = [_BDIO_UNSAFE.sub("_", piece) for piece in self.value.split(EXTERNAL_ID_SEPARATOR)]
        return f"http:{self.forge.value}/" + "/".join(pieces)


class PackageManager(abc.ABC):
    """Common interface of the package manager backends.

    Subclasses set the class attributes and implement resolve().
    """

    name: str = ""
    presence_command: str = ""
    presence_expected_text: str = ""
    forges: Sequence[Forge] = ()

    def __init__(self, executor: Executor):
        self.executor = executor

    @property
    def default_forge(self) -> Forge:
        return self.forges[0]

    def probe_present(self) -> bool:
        """Run the version command and look for the expected banner in its output."""
        try:
            version_output = self.executor.execute(os.curdir, None, self.presence_command)
        except ExecutionError as e:
            logger.debug("Error executing %s; concluding that %s is not present: %s", self.presence_command, self.name, e)
            return False
        if self.presence_expected_text in version_output:
            logger.info("Found package manager %s", self.name)
            return True
        logger.debug("Output of %s does not look right; concluding that %s is not present. Output: %s", self.presence_command, self.name, version_output)
        return False

    def external_id(self, attributes: PackageAttributes, forge: Forge) -> ExternalId:
        """Build the forge-scoped id ``<name>/<version>/<arch>`` for complete attributes."""
        value = EXTERNAL_ID_SEPARATOR.join([str(attributes.name), str(attributes.version), str(attributes.arch)])
        return ExternalId(forge=forge, value=value)

    def _query(self, command: str) -> Optional[str]:
        try:
            output = self.executor.execute(os.curdir, None, command)
        except ExecutionError as e:
            logger.error("Error executing %s: %s", command, e)
            return None
        logger.debug("Output of %s: %s", command, output)
        return output

    @abc.abstractmethod
    def resolve(self, file_path: str) -> List[PackageAttributes]:
        """Find the packages owning file_path.

        Returns:
            One entry per owning package; [] when nothing owns the file or the query failed
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(forges={[forge.value for forge in self.forges]})"


class Dpkg(PackageManager):
    """Debian-family backend. Packages are reported under both the ubuntu and debian forges."""

    name = "dpkg"
    presence_command = "dpkg --version"
    presence_expected_text = "package management program version"
    forges = (Forge.UBUNTU, Forge.DEBIAN)

    # "libc6-dev:amd64: /usr/include/wchar.h" (several owners are comma separated)
    _OWNER_LINE = re.compile(r"^(?P<owners>\S.*?): (?P<path>.+)$")
    _OWNER = re.compile(r"^(?P<name>[^\s:,]+):(?P<arch>[^\s:,]+)$")

    def resolve(self, file_path: str) -> List[PackageAttributes]:
        output = self._query(f"dpkg -S {shlex.quote(os.path.abspath(file_path))}")
        if output is None:
            return []

        packages: List[PackageAttributes] = []
        for name, arch in self.parse_owners(output):
            logger.debug("package name: %s; arch: %s", name, arch)
            packages.append(PackageAttributes(name=name, version=self.query_version(name), arch=arch))
        return packages

    @classmethod
    def parse_owners(cls, search_output: str) -> List[Tuple[str, str]]:
        """Extract (name, arch) pairs from ``dpkg -S`` output, skipping diagnostic lines."""
        owners: List[Tuple[str, str]] = []
        for line in search_output.splitlines():
            line_match = cls._OWNER_LINE.match(line.strip())
            if not line_match:
                logger.info("Skipping line: %s", line)
                continue
            candidates = [cls._OWNER.match(owner.strip()) for owner in line_match.group("owners").split(",")]
            if not all(candidates):
                logger.info("Skipping line: %s", line)
                continue
            owners.extend((m.group("name"), m.group("arch")) for m in candidates if m)
        return owners

    def query_version(self, package_name: str) -> Optional[str]:
        """Look up the installed version of a package with ``dpkg -s``."""
        output = self._query(f"dpkg -s {shlex.quote(package_name)}")
        if output is None:
            return None
        return self.parse_status_version(package_name, output)

    @staticmethod
    def parse_status_version(package_name: str, status_output: str) -> Optional[str]:
        """Read the Version field from ``dpkg -s`` output.

        A Status field without "installed" means the package is not really
        installed, and no version is reported.
        """
        for line in status_output.splitlines():
            if ":" not in line:
                continue
            label, value = line.split(":", 1)
            label, value = label.strip(), value.strip()
            if label == "Status" and "installed" not in value:
                logger.info("%s is not installed; Status is: %s", package_name, value)
                return None
            if label == "Version" and value:
                return value
        return None


class Rpm(PackageManager):
    """RPM-family backend. Packages are reported under the centos, fedora and rhel forges."""

    name = "rpm"
    presence_command = "rpm --version"
    presence_expected_text = "RPM version"
    forges = (Forge.CENTOS, Forge.FEDORA, Forge.RHEL)

    # name-version-release.arch, e.g. "glibc-headers-2.17-317.el7.x86_64"
    _PACKAGE_LINE = re.compile(r".+-.+-.+\..*")

    def resolve(self, file_path: str) -> List[PackageAttributes]:
        output = self._query(f"rpm -qf {shlex.quote(os.path.abspath(file_path))}")
        if output is None:
            return []

        packages: List[PackageAttributes] = []
        for line in output.splitlines():
            attributes = self.parse_package_line(line.strip())
            if attributes is None:
                logger.debug("Skipping line: %s", line)
                continue
            packages.append(attributes)
        return packages

    @classmethod
    def parse_package_line(cls, line: str) -> Optional[PackageAttributes]:
        """Split ``name-version-release.arch`` from the right.

        Returns:
            PackageAttributes with version holding ``version-release``, or None for other lines
        """
        if not cls._PACKAGE_LINE.fullmatch(line):
            return None
        last_dot = line.rfind(".")
        last_dash = line.rfind("-")
        second_to_last_dash = line.rfind("-", 0, last_dash)
        if second_to_last_dash <= 0 or last_dot < last_dash:
            return None
        return PackageAttributes(
            name=line[:second_to_last_dash],
            version=line[second_to_last_dash + 1 : last_dot],
            arch=line[last_dot + 1 :] or None,
        )


# Probe order; the first backend present on the host wins
PACKAGE_MANAGERS: Sequence[Type[PackageManager]] = (Dpkg, Rpm)


def select_package_manager(executor: Executor, candidates: Optional[Sequence[Type[PackageManager]]] = None) -> PackageManager:
    """Probe backends in priority order and return the first one present.

    Args:
        executor: Executor the backends run their commands with
        candidates: Backend classes to probe (default: PACKAGE_MANAGERS)

    Returns:
        The selected backend

    Raises:
        NoPackageManagerFoundError: If no backend reports itself present
    """
    for backend_class in candidates if candidates is not None else PACKAGE_MANAGERS:
        backend = backend_class(executor)
        if backend.probe_present():
            return backend
    raise NoPackageManagerFoundError("No supported package manager (dpkg, rpm) found on this host")
