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
"""Dependency attribution engine.

For every compile command in the compilation database the extractor:

1. runs ``<command> -M -MF <deps file>`` in the command's directory
2. parses the dependency declaration the compiler wrote
3. drops blank, already-seen and non-existent paths
4. splits the rest into source-tree files and external files
5. asks the selected package manager which packages own the external files
6. emits one DependencyRecord per (new package, forge) pair and collects
   external files nobody owns as unattributed

Compile commands run in parallel on a thread pool. The only shared state is an
ExtractionContext whose claim methods are atomic insert-if-absent operations,
so each file is resolved at most once and each package is emitted at most once
per run, whichever worker gets there first.
"""

import os
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from clangsbom.compile_commands import CompileCommand, build_dependency_command
from clangsbom.constants import DEFAULT_MAX_WORKERS, DEPS_MK_FILE, ExecutionError, WorkingDirectoryError
from clangsbom.dependency_file import DependencyFile, classify_dependency_file, parse_dependency_file, remove_dependency_file
from clangsbom.executor import Executor
from clangsbom.package_managers import ExternalId, Forge, PackageAttributes, PackageManager, select_package_manager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependencyRecord:
    """A package attributed to the build, reported under one forge.

    Attributes:
        name: Package name
        version: Package version
        external_id: Forge-scoped id ``<name>/<version>/<arch>``
    """

    name: str
    version: str
    external_id: ExternalId

    @property
    def forge(self) -> Forge:
        return self.external_id.forge


@dataclass
class ExtractionResult:
    """Everything one extraction run produced.

    Attributes:
        dependencies: Attributed packages; all are direct children of the project root
        unattributed_files: Existing external files no package could be found for
        source_files: Dependency files inside the source tree, handed off for further scanning
        compile_command_count: Number of compile commands processed
        failed_command_count: Compile commands whose dependency listing failed
    """

    dependencies: Set[DependencyRecord] = field(default_factory=set)
    unattributed_files: Set[str] = field(default_factory=set)
    source_files: Set[str] = field(default_factory=set)
    compile_command_count: int = 0
    failed_command_count: int = 0

    def packages(self) -> Set[str]:
        """Distinct ``name/version`` strings, independent of forge."""
        return {f"{record.name}/{record.version}" for record in self.dependencies}


class ExtractionContext:
    """Deduplication and accumulation state for one extraction run.

    All methods are safe to call from several worker threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claimed_files: Set[str] = set()
        self._claimed_packages: Set[PackageAttributes] = set()
        self._result = ExtractionResult()

    def claim_file(self, path: str) -> bool:
        """Return True exactly once per path: for the first caller."""
        with self._lock:
            if path in self._claimed_files:
                return False
            self._claimed_files.add(path)
            return True

    def claim_package(self, attributes: PackageAttributes) -> bool:
        """Return True exactly once per distinct PackageAttributes value."""
        with self._lock:
            if attributes in self._claimed_packages:
                return False
            self._claimed_packages.add(attributes)
            return True

    def add_dependencies(self, records: Iterable[DependencyRecord]) -> None:
        with self._lock:
            self._result.dependencies.update(records)

    def add_unattributed_file(self, path: str) -> None:
        with self._lock:
            self._result.unattributed_files.add(path)

    def add_source_file(self, path: str) -> None:
        with self._lock:
            self._result.source_files.add(path)

    def record_processed(self, failed: bool) -> None:
        with self._lock:
            self._result.compile_command_count += 1
            if failed:
                self._result.failed_command_count += 1

    def result(self) -> ExtractionResult:
        with self._lock:
            return ExtractionResult(
                dependencies=set(self._result.dependencies),
                unattributed_files=set(self._result.unattributed_files),
                source_files=set(self._result.source_files),
                compile_command_count=self._result.compile_command_count,
                failed_command_count=self._result.failed_command_count,
            )


def prepare_working_dir(working_dir: str) -> None:
    """Make sure dependency files can be written to working_dir.

    Raises:
        WorkingDirectoryError: If the directory cannot be created or written to
    """
    probe_path = os.path.join(working_dir, DEPS_MK_FILE)
    try:
        os.makedirs(working_dir, exist_ok=True)
        remove_dependency_file(probe_path)
        with open(probe_path, "w", encoding="utf-8"):
            pass
        os.remove(probe_path)
    except OSError as e:
        raise WorkingDirectoryError(f"Error creating file in working dir {working_dir}; please make sure the directory exists and is writable. Error: {e}") from e


def deps_file_path(working_dir: str, index: int) -> str:
    """Per-unit dependency file path, unique so parallel units never share one."""
    stem, ext = os.path.splitext(DEPS_MK_FILE)
    return os.path.join(os.path.abspath(working_dir), f"{stem}-{index}{ext}")


class ClangExtractor:
    """Attributes the files a C/C++ build depends on to installed OS packages.

    Args:
        executor: Runs compiler and package manager commands
        package_manager: Backend to use; probed with select_package_manager() when None
        max_workers: Thread pool size (None = ThreadPoolExecutor default)
        env_overlay: Extra environment for compiler invocations
    """

    def __init__(
        self,
        executor: Optional[Executor] = None,
        package_manager: Optional[PackageManager] = None,
        max_workers: Optional[int] = DEFAULT_MAX_WORKERS,
        env_overlay: Optional[Dict[str, str]] = None,
    ):
        self.executor = executor if executor is not None else Executor()
        self.package_manager = package_manager
        self.max_workers = max_workers
        self.env_overlay = env_overlay

    def extract(self, compile_commands: List[CompileCommand], source_dir: str, working_dir: str) -> ExtractionResult:
        """Run the attribution pipeline over all compile commands.

        Args:
            compile_commands: Entries of the compilation database
            source_dir: Root of the project source tree
            working_dir: Directory for the per-unit dependency files

        Returns:
            ExtractionResult for this run

        Raises:
            NoPackageManagerFoundError: If no supported package manager is present
            WorkingDirectoryError: If working_dir is not writable
        """
        package_manager = self.package_manager or select_package_manager(self.executor)
        prepare_working_dir(working_dir)
        logger.info("Extracting dependencies of %d compile commands using %s", len(compile_commands), package_manager.name)

        context = ExtractionContext()
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {
                pool.submit(self._process_compile_command, index, compile_command, package_manager, source_dir, working_dir, context): compile_command
                for index, compile_command in enumerate(compile_commands)
            }
            for future in as_completed(futures):
                future.result()

        result = context.result()
        logger.info(
            "Attributed %d dependency records; %d unattributed files; %d source files; %d of %d compile commands failed",
            len(result.dependencies),
            len(result.unattributed_files),
            len(result.source_files),
            result.failed_command_count,
            result.compile_command_count,
        )
        return result

    def _process_compile_command(
        self, index: int, compile_command: CompileCommand, package_manager: PackageManager, source_dir: str, working_dir: str, context: ExtractionContext
    ) -> None:
        deps_path = deps_file_path(working_dir, index)
        dependency_paths = self._generate_dependency_paths(compile_command, deps_path)
        context.record_processed(failed=dependency_paths is None)
        if not dependency_paths:
            return

        dependency_files = self._collect_dependency_files(dependency_paths, compile_command.directory, source_dir, context)

        resolved: Dict[str, List[PackageAttributes]] = {}
        for dependency_file in dependency_files:
            if dependency_file.is_under_source_tree:
                context.add_source_file(dependency_file.path)
                continue
            resolved[dependency_file.path] = package_manager.resolve(dependency_file.path)

        for path, packages in resolved.items():
            complete = [attributes for attributes in packages if attributes.is_complete()]
            if not complete:
                logger.debug("No package found for %s", path)
                context.add_unattributed_file(path)
                continue
            for attributes in complete:
                if context.claim_package(attributes):
                    context.add_dependencies(self._create_records(package_manager, attributes))

    def _generate_dependency_paths(self, compile_command: CompileCommand, deps_path: str) -> Optional[List[str]]:
        """Run the compiler in dependency-listing mode and parse what it wrote.

        Returns:
            Parsed paths, or None when the compiler invocation failed
        """
        command = build_dependency_command(compile_command, deps_path)
        logger.info("cd %s; %s", compile_command.directory, command)
        try:
            self.executor.execute(compile_command.directory, self.env_overlay, command)
        except ExecutionError as e:
            logger.error("Error generating dependencies for %s: %s", compile_command.file, e)
            remove_dependency_file(deps_path)
            return None
        try:
            return parse_dependency_file(deps_path)
        finally:
            remove_dependency_file(deps_path)

    @staticmethod
    def _collect_dependency_files(dependency_paths: List[str], directory: str, source_dir: str, context: ExtractionContext) -> List[DependencyFile]:
        """Turn parsed paths into DependencyFiles, keeping only new, existing files."""
        dependency_files: List[DependencyFile] = []
        for raw_path in dependency_paths:
            raw_path = raw_path.strip()
            if not raw_path:
                continue
            path = os.path.abspath(os.path.join(directory, raw_path))
            if not context.claim_file(path):
                logger.debug("Skipping already processed file %s", path)
                continue
            if not os.path.exists(path):
                logger.debug("Skipping non-existent file %s", path)
                continue
            dependency_files.append(classify_dependency_file(path, source_dir))
        return dependency_files

    @staticmethod
    def _create_records(package_manager: PackageManager, attributes: PackageAttributes) -> List[DependencyRecord]:
        """One record per forge the backend reports packages under."""
        records: List[DependencyRecord] = []
        for forge in package_manager.forges:
            external_id = package_manager.external_id(attributes, forge)
            logger.info("Adding dependency %s", external_id.namespaced)
            records.append(DependencyRecord(name=str(attributes.name), version=str(attributes.version), external_id=external_id))
        return records
