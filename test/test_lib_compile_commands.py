#!/usr/bin/env python3
"""Tests for clangsbom/compile_commands.py"""

import os
import json
import shlex
import pytest
from typing import Any, Dict, List

from clangsbom.compile_commands import (
    CompileCommand,
    build_dependency_command,
    find_source_dir,
    load_compile_commands,
    resolve_compile_commands_path,
)
from clangsbom.constants import CompileDatabaseError, SourceDirectoryError, EXIT_INVALID_ARGS


def write_db(directory: str, entries: Any) -> str:
    path = os.path.join(directory, "compile_commands.json")
    with open(path, "w") as f:
        json.dump(entries, f)
    return path


class TestLoadCompileCommands:
    """Tests for load_compile_commands function."""

    def test_load_valid_database(self, temp_dir: str) -> None:
        """Test loading a well-formed compilation database."""
        path = write_db(
            temp_dir,
            [
                {"directory": "/build", "command": "gcc -c -o main.o /src/main.c", "file": "/src/main.c"},
                {"directory": "/build", "command": "gcc -c -o util.o /src/util.c", "file": "/src/util.c"},
            ],
        )

        commands = load_compile_commands(path)

        assert commands == [
            CompileCommand(directory="/build", command="gcc -c -o main.o /src/main.c", file="/src/main.c"),
            CompileCommand(directory="/build", command="gcc -c -o util.o /src/util.c", file="/src/util.c"),
        ]

    def test_load_from_build_directory(self, temp_dir: str) -> None:
        """Test passing the build directory instead of the JSON file."""
        write_db(temp_dir, [{"directory": "/build", "command": "cc -c a.c", "file": "a.c"}])

        assert len(load_compile_commands(temp_dir)) == 1
        assert resolve_compile_commands_path(temp_dir) == os.path.join(temp_dir, "compile_commands.json")

    def test_arguments_form(self, temp_dir: str) -> None:
        """Test entries using an arguments array instead of command."""
        path = write_db(temp_dir, [{"directory": "/build", "arguments": ["gcc", "-DNAME=a b", "-c", "a.c"], "file": "a.c"}])

        commands = load_compile_commands(path)

        assert shlex.split(commands[0].command) == ["gcc", "-DNAME=a b", "-c", "a.c"]

    def test_empty_database(self, temp_dir: str) -> None:
        """Test an empty array is valid and yields no commands."""
        assert load_compile_commands(write_db(temp_dir, [])) == []

    def test_missing_file(self, temp_dir: str) -> None:
        """Test a missing database is a fatal input error."""
        with pytest.raises(CompileDatabaseError) as exc_info:
            load_compile_commands(os.path.join(temp_dir, "nope.json"))
        assert exc_info.value.exit_code == EXIT_INVALID_ARGS

    def test_malformed_json(self, temp_dir: str) -> None:
        """Test malformed JSON is a fatal input error."""
        path = os.path.join(temp_dir, "compile_commands.json")
        with open(path, "w") as f:
            f.write("[{not json")

        with pytest.raises(CompileDatabaseError, match="Invalid JSON"):
            load_compile_commands(path)

    def test_not_an_array(self, temp_dir: str) -> None:
        """Test a JSON object at top level is rejected."""
        with pytest.raises(CompileDatabaseError, match="JSON array"):
            load_compile_commands(write_db(temp_dir, {"directory": "/b"}))

    def test_entry_missing_keys(self, temp_dir: str) -> None:
        """Test an entry without command is rejected with the missing key named."""
        with pytest.raises(CompileDatabaseError, match="command"):
            load_compile_commands(write_db(temp_dir, [{"directory": "/build", "file": "a.c"}]))


class TestBuildDependencyCommand:
    """Tests for build_dependency_command function."""

    def test_appends_flags(self) -> None:
        """Test the dependency-listing flags are appended to the original command."""
        cc = CompileCommand(directory="/build", command="gcc -I/src -c -o main.o /src/main.c", file="/src/main.c")

        assert build_dependency_command(cc, "/work/deps-0.mk") == "gcc -I/src -c -o main.o /src/main.c -M -MF /work/deps-0.mk"

    def test_quotes_deps_path(self) -> None:
        """Test a deps path with spaces survives shell-style splitting."""
        cc = CompileCommand(directory="/build", command="cc -c a.c", file="a.c")

        command = build_dependency_command(cc, "/my work/deps-0.mk")

        assert shlex.split(command)[-1] == "/my work/deps-0.mk"


class TestCompileCommandPaths:
    """Tests for CompileCommand.source_path and find_source_dir."""

    def test_relative_source_path(self) -> None:
        """Test relative files are resolved against the command directory."""
        cc = CompileCommand(directory="/build", command="cc -c ../src/a.c", file="../src/a.c")
        assert cc.source_path() == "/src/a.c"

    def test_find_source_dir_common_path(self, temp_dir: str) -> None:
        """Test the source dir is the common directory of all compiled files."""
        commands = [
            CompileCommand(directory=temp_dir, command="cc", file=os.path.join(temp_dir, "src", "app", "main.c")),
            CompileCommand(directory=temp_dir, command="cc", file=os.path.join(temp_dir, "src", "lib", "util.c")),
        ]
        assert find_source_dir(commands) == os.path.join(temp_dir, "src")

    def test_find_source_dir_single_file(self, temp_dir: str) -> None:
        """Test a single file yields its own directory."""
        commands = [CompileCommand(directory=temp_dir, command="cc", file=os.path.join(temp_dir, "src", "main.c"))]
        assert find_source_dir(commands) == os.path.join(temp_dir, "src")

    def test_find_source_dir_empty(self) -> None:
        assert find_source_dir([]) == "/"

    def test_find_source_dir_rejects_filesystem_root(self, temp_dir: str) -> None:
        """Test one file outside the project tree does not widen the root to /."""
        commands = [
            CompileCommand(directory=temp_dir, command="cc", file=os.path.join(temp_dir, "src", "main.c")),
            CompileCommand(directory=temp_dir, command="cc", file="/clangsbom_outside_tree/gen.c"),
        ]
        with pytest.raises(SourceDirectoryError, match="--source-dir") as exc_info:
            find_source_dir(commands)
        assert exc_info.value.exit_code == EXIT_INVALID_ARGS

    def test_find_source_dir_rejects_system_include_ancestor(self) -> None:
        """Test a root that would swallow /usr/local/include is rejected."""
        commands = [
            CompileCommand(directory="/usr/local", command="cc", file="/usr/local/src/project/main.c"),
            CompileCommand(directory="/usr/local", command="cc", file="/usr/local/include/generated/gen.c"),
        ]
        with pytest.raises(SourceDirectoryError):
            find_source_dir(commands)
