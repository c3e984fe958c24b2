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
"""Attribute the dependencies of a C/C++ build to installed OS packages.

This script re-runs every compile command from compile_commands.json in
dependency-listing mode (-M -MF), asks the host package manager (dpkg or rpm)
which package owns each external header, and writes the resulting component
graph for SBOM generation.

Requirements:
    - Python 3.8+
    - networkx, packaging
    - colorama (optional, for colored output): pip install colorama
    - dpkg or rpm on the host, and the build toolchain on PATH

Usage:
    clangSbomExtract.py <compile_commands.json|build_directory> [--source-dir DIR] [--output FILE]

Exit Codes:
    0: Success
    1: Invalid arguments, compilation database or working directory
    2: Runtime error
    3: No supported package manager found
"""

import os
import sys
import json
import signal
import logging
import argparse
import tempfile
from typing import Any, Dict

__version__ = "1.0.0"

from clangsbom.color_utils import Colors, print_error, print_warning, print_success, print_heading
from clangsbom.compile_commands import load_compile_commands, find_source_dir
from clangsbom.constants import (
    EXIT_SUCCESS,
    EXIT_RUNTIME_ERROR,
    EXIT_KEYBOARD_INTERRUPT,
    DEFAULT_OUTPUT_FILE,
    DEFAULT_CODE_LOCATION_NAME,
    DEFAULT_PROJECT_NAME,
    DEFAULT_PROJECT_VERSION,
    ClangSbomError,
)
from clangsbom.extractor import ClangExtractor, ExtractionResult
from clangsbom.graph_export import build_dependency_graph, export_dependency_graph, write_unattributed_files
from clangsbom.package_verification import check_all_packages, require_package

__all__ = ["EXIT_SUCCESS", "main", "format_json_summary"]

logger = logging.getLogger(__name__)


def signal_handler(signum: int, frame: Any) -> None:
    """Handle interrupt signals gracefully."""
    print_warning("\nInterrupted by user. Exiting...", prefix=False)
    sys.exit(EXIT_KEYBOARD_INTERRUPT)


def format_json_summary(result: ExtractionResult, source_dir: str) -> str:
    """Format the extraction result as JSON.

    Args:
        result: Output of ClangExtractor.extract()
        source_dir: Source tree root used for classification

    Returns:
        JSON formatted string
    """
    summary: Dict[str, Any] = {
        "summary": {
            "version": __version__,
            "source_dir": source_dir,
            "compile_commands": result.compile_command_count,
            "failed_compile_commands": result.failed_command_count,
            "packages": len(result.packages()),
            "dependencies": len(result.dependencies),
            "unattributed_files": len(result.unattributed_files),
        },
        "dependencies": [
            {"name": r.name, "version": r.version, "forge": r.forge.value, "external_id": r.external_id.value}
            for r in sorted(result.dependencies, key=lambda r: r.external_id.namespaced)
        ],
        "unattributed_files": sorted(result.unattributed_files),
        "source_files": sorted(result.source_files),
    }
    return json.dumps(summary, indent=2)


def print_text_summary(result: ExtractionResult, verbose: bool) -> None:
    """Print a human readable summary to stdout."""
    print_heading("Dependency Attribution Summary")
    print(f"Compile commands:   {Colors.BRIGHT}{result.compile_command_count}{Colors.RESET}")
    if result.failed_command_count:
        print(f"  failed:           {Colors.RED}{result.failed_command_count}{Colors.RESET}")
    print(f"Packages:           {Colors.BRIGHT}{len(result.packages())}{Colors.RESET}")
    print(f"Dependency records: {Colors.BRIGHT}{len(result.dependencies)}{Colors.RESET}")
    print(f"Unattributed files: {Colors.YELLOW}{len(result.unattributed_files)}{Colors.RESET}")
    print(f"Source tree files:  {len(result.source_files)}")

    if result.dependencies:
        print()
        print_heading("Packages")
        for package in sorted(result.packages()):
            print(f"  {Colors.GREEN}{package}{Colors.RESET}")

    if verbose and result.unattributed_files:
        print()
        print_heading("Unattributed Files")
        for path in sorted(result.unattributed_files):
            print(f"  {Colors.DIM}{path}{Colors.RESET}")


def parse_args(argv: Any = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Attribute the dependencies of a C/C++ build to installed OS packages.",
        epilog=f"Version {__version__}\n\nExamples:\n"
        f"  %(prog)s ../build/release/\n"
        f"  %(prog)s compile_commands.json --source-dir ../src --output sbom.graphml\n"
        f"  %(prog)s ../build/release/ --format json --unattributed-output unowned.txt\n",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("compile_commands", nargs="?", help="Path to compile_commands.json or the build directory containing it")
    parser.add_argument("--source-dir", help="Project source tree root (default: common directory of all compiled files)")
    parser.add_argument("--working-dir", help="Directory for intermediate dependency files (default: a temporary directory)")
    parser.add_argument("--output", "-o", default=DEFAULT_OUTPUT_FILE, metavar="FILE", help=f"Dependency graph output (.json, .graphml, .gexf; default: {DEFAULT_OUTPUT_FILE})")
    parser.add_argument("--unattributed-output", metavar="FILE", help="Write files no package could be found for to FILE")
    parser.add_argument("--project-name", default=DEFAULT_PROJECT_NAME, help=f"Root project name (default: {DEFAULT_PROJECT_NAME})")
    parser.add_argument("--project-version", default=DEFAULT_PROJECT_VERSION, help=f"Root project version (default: {DEFAULT_PROJECT_VERSION})")
    parser.add_argument("--code-location-name", default=DEFAULT_CODE_LOCATION_NAME, help=f"Code location name (default: {DEFAULT_CODE_LOCATION_NAME})")
    parser.add_argument("--jobs", "-j", type=int, default=None, metavar="N", help="Number of compile commands processed in parallel")
    parser.add_argument("--format", choices=["text", "json"], default="text", help="Summary format on stdout (default: text)")
    parser.add_argument("--check-environment", action="store_true", help="Check required Python packages and exit")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose debug logging to stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(argv)
    if not args.check_environment and not args.compile_commands:
        parser.error("the following arguments are required: compile_commands")
    if args.jobs is not None and args.jobs < 1:
        parser.error("--jobs must be at least 1")
    return args


def run(args: argparse.Namespace) -> int:
    """Run the extraction described by parsed arguments.

    Raises:
        ClangSbomError: For fatal errors (bad compilation database, no package manager, ...)
    """
    compile_commands = load_compile_commands(args.compile_commands)
    source_dir = os.path.abspath(args.source_dir) if args.source_dir else find_source_dir(compile_commands)
    logger.info("Source tree: %s", source_dir)

    extractor = ClangExtractor(max_workers=args.jobs)
    if args.working_dir:
        result = extractor.extract(compile_commands, source_dir, args.working_dir)
    else:
        with tempfile.TemporaryDirectory(prefix="clang_sbom_") as working_dir:
            result = extractor.extract(compile_commands, source_dir, working_dir)

    graph = build_dependency_graph(result, args.project_name, args.project_version, args.code_location_name)
    graph_file = export_dependency_graph(graph, args.output)
    if graph_file is None:
        return EXIT_RUNTIME_ERROR
    if args.unattributed_output and not write_unattributed_files(result.unattributed_files, args.unattributed_output):
        return EXIT_RUNTIME_ERROR

    if args.format == "json":
        print(format_json_summary(result, source_dir))
    else:
        print_text_summary(result, args.verbose)
        print_success(f"Exported dependency graph to {graph_file}")
        if result.failed_command_count:
            print_warning(f"{result.failed_command_count} compile command(s) could not be run; their dependencies are missing")
        else:
            print_success("All compile commands processed")
    return EXIT_SUCCESS


def main(argv: Any = None) -> int:
    """Main entry point for the script.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    args = parse_args(argv)

    if args.no_color or not sys.stdout.isatty():
        Colors.disable()

    if args.check_environment:
        return EXIT_SUCCESS if check_all_packages() else EXIT_RUNTIME_ERROR

    require_package("networkx", "dependency graph export")

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)
    else:
        logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s", stream=sys.stderr)

    try:
        return run(args)
    except ClangSbomError as e:
        print_error(str(e))
        return e.exit_code


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print_warning("Interrupted.", prefix=False)
        sys.exit(EXIT_KEYBOARD_INTERRUPT)
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(EXIT_RUNTIME_ERROR)
