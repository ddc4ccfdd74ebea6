"""Tests for coursepath CLI utility functions."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from coursepath.authorization import Role
from coursepath.cli_utils import (
    EXIT_SUCCESS,
    EXIT_SYSTEM_ERROR,
    EXIT_USER_ERROR,
    ProjectRootNotFoundError,
    check_data_status,
    error,
    find_project_root,
    format_error_details,
    resolve_actor,
    warning,
    wire_config,
)
from coursepath.config import CoursepathConfig

# Default CliRunner - note that stderr is mixed into output by default
runner = CliRunner()


class TestErrorFormatting:
    """Tests for error formatting helpers."""

    def test_error_exits_with_user_error_code_by_default(self) -> None:
        """Test that error() exits with EXIT_USER_ERROR by default."""
        app = typer.Typer()

        @app.command()
        def cmd() -> None:
            error("Test error message")

        result = runner.invoke(app, [])
        assert result.exit_code == EXIT_USER_ERROR
        assert "Error:" in result.output
        assert "Test error message" in result.output

    def test_error_exits_with_custom_exit_code(self) -> None:
        """Test that error() can use a custom exit code."""
        app = typer.Typer()

        @app.command()
        def cmd() -> None:
            error("System failure", exit_code=EXIT_SYSTEM_ERROR)

        result = runner.invoke(app, [])
        assert result.exit_code == EXIT_SYSTEM_ERROR

    def test_warning_does_not_exit(self) -> None:
        """Test that warning() prints and returns."""
        app = typer.Typer()

        @app.command()
        def cmd() -> None:
            warning("Careful")

        result = runner.invoke(app, [])
        assert result.exit_code == EXIT_SUCCESS
        assert "Warning:" in result.output
        assert "Careful" in result.output

    def test_format_error_details(self) -> None:
        """Test bullet formatting of detail lines."""
        assert format_error_details([]) == ""
        assert format_error_details(["a", "b"]) == "  - a\n  - b"


class TestFindProjectRoot:
    """Tests for find_project_root function."""

    def test_finds_root_in_start_dir(self, tmp_path: Path) -> None:
        """Test finding the marker in the start directory."""
        (tmp_path / ".coursepath").mkdir()
        assert find_project_root(tmp_path) == tmp_path.resolve()

    def test_finds_root_from_subdirectory(self, tmp_path: Path) -> None:
        """Test walking up from a nested directory."""
        (tmp_path / ".coursepath").mkdir()
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_project_root(nested) == tmp_path.resolve()

    def test_custom_marker(self, tmp_path: Path) -> None:
        """Test a custom data directory name."""
        (tmp_path / ".catalog").mkdir()
        assert find_project_root(tmp_path, marker=".catalog") == tmp_path.resolve()

    def test_not_found(self, tmp_path: Path) -> None:
        """Test missing marker raises ProjectRootNotFoundError."""
        with pytest.raises(ProjectRootNotFoundError) as exc_info:
            find_project_root(tmp_path)
        assert "Run 'coursepath init' first" in str(exc_info.value)
        assert exc_info.value.marker == ".coursepath"

    def test_marker_file_is_not_directory(self, tmp_path: Path) -> None:
        """Test a file named like the marker is ignored."""
        (tmp_path / ".coursepath").write_text("")
        with pytest.raises(ProjectRootNotFoundError):
            find_project_root(tmp_path)

    def test_defaults_to_cwd(self, tmp_path: Path) -> None:
        """Test the search starts at the current directory by default."""
        (tmp_path / ".coursepath").mkdir()
        original_cwd = os.getcwd()
        try:
            os.chdir(tmp_path)
            assert find_project_root() == tmp_path.resolve()
        finally:
            os.chdir(original_cwd)


class TestCheckDataStatus:
    """Tests for check_data_status."""

    def test_missing(self, tmp_path: Path) -> None:
        """Test status is missing without a database file."""
        assert check_data_status(tmp_path, CoursepathConfig()) == "missing"

    def test_complete(self, tmp_path: Path) -> None:
        """Test status is complete once the database file exists."""
        (tmp_path / ".coursepath").mkdir()
        (tmp_path / ".coursepath" / "catalog.db").write_bytes(b"")
        assert check_data_status(tmp_path, CoursepathConfig()) == "complete"


class TestWireConfig:
    """Tests for wire_config."""

    def test_overrides_applied(self, tmp_path: Path) -> None:
        """Test CLI values reach the config."""
        config = wire_config(data_dir=".catalog", db_name="x.db", start_dir=tmp_path)
        assert config.data_dir == ".catalog"
        assert config.db_name == "x.db"

    def test_invalid_config_exits(self, tmp_path: Path) -> None:
        """Test invalid values exit with a user error."""
        app = typer.Typer()

        @app.command()
        def cmd() -> None:
            wire_config(db_name="catalog.sqlite", start_dir=tmp_path)

        result = runner.invoke(app, [])
        assert result.exit_code == EXIT_USER_ERROR
        assert "Invalid configuration" in result.output


class TestResolveActor:
    """Tests for resolve_actor."""

    def test_regular_admin(self) -> None:
        """Test unlisted users get the admin role."""
        actor = resolve_actor(CoursepathConfig(global_admins=["root"]), "alice")
        assert actor.username == "alice"
        assert actor.role == Role.ADMIN

    def test_global_admin(self) -> None:
        """Test listed users get the global_admin role."""
        actor = resolve_actor(CoursepathConfig(global_admins=["root"]), " root ")
        assert actor.username == "root"
        assert actor.role == Role.GLOBAL_ADMIN

    def test_missing_user_exits(self) -> None:
        """Test a missing acting user exits with a user error."""
        app = typer.Typer()

        @app.command()
        def cmd() -> None:
            resolve_actor(CoursepathConfig(), None)

        result = runner.invoke(app, [])
        assert result.exit_code == EXIT_USER_ERROR
        assert "No acting user" in result.output
