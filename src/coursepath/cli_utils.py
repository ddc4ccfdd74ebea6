"""CLI utility functions for coursepath.

Provides helper functions for:
- Config wiring: Extracting Typer CLI options and passing to load_config
- Path resolution: Finding project root by looking for .coursepath/ directory
- Acting user: Resolving --as / COURSEPATH_USER to an Actor
- Error formatting: Consistent user-friendly error messages with exit codes
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, NoReturn

import typer

from coursepath.authorization import Actor, Role
from coursepath.config import CoursepathConfig, load_config

DataStatus = Literal["missing", "complete"]

DEFAULT_DATA_DIR = ".coursepath"

# Exit code conventions
EXIT_SUCCESS = 0
EXIT_USER_ERROR = 1  # User error (bad input, rejected mutation, missing file)
EXIT_SYSTEM_ERROR = 2  # System error (permissions, I/O, database)


class ProjectRootNotFoundError(Exception):
    """Raised when project root cannot be found."""

    def __init__(self, start_dir: Path, marker: str = DEFAULT_DATA_DIR) -> None:
        self.start_dir = start_dir
        self.marker = marker
        super().__init__(
            f"Could not find project root (no '{marker}/' directory found). "
            f"Searched from: {start_dir}. Run 'coursepath init' first."
        )


# -----------------------------------------------------------------------------
# Error Formatting Helpers
# -----------------------------------------------------------------------------


def error(msg: str, *, exit_code: int = EXIT_USER_ERROR) -> NoReturn:
    """Print an error message and exit with the given exit code.

    Raises:
        typer.Exit: Always raises to exit the program.
    """
    styled_prefix = typer.style("Error:", fg=typer.colors.RED, bold=True)
    typer.echo(f"{styled_prefix} {msg}", err=True)
    raise typer.Exit(code=exit_code)


def warning(msg: str) -> None:
    """Print a warning message to stderr."""
    styled_prefix = typer.style("Warning:", fg=typer.colors.YELLOW, bold=True)
    typer.echo(f"{styled_prefix} {msg}", err=True)


def format_error_details(errors: list[str]) -> str:
    """Format a list of messages as indented bullet points."""
    if not errors:
        return ""
    return "\n".join(f"  - {e}" for e in errors)


# -----------------------------------------------------------------------------
# Path Resolution Helper
# -----------------------------------------------------------------------------


def find_project_root(
    start_dir: Path | None = None,
    marker: str = DEFAULT_DATA_DIR,
) -> Path:
    """Find the project root by looking for the data directory marker.

    Traverses up the directory tree from start_dir looking for a directory
    containing the marker (default: .coursepath/).

    Args:
        start_dir: Directory to start searching from. Defaults to cwd.
        marker: Name of the marker directory to look for.

    Returns:
        Path to the project root (directory containing the marker).

    Raises:
        ProjectRootNotFoundError: If no project root is found.
        PermissionError: If a directory cannot be accessed.
    """
    current = (start_dir or Path.cwd()).resolve()
    original_start = current

    while True:
        marker_path = current / marker

        try:
            if marker_path.is_dir():
                return current
        except PermissionError as e:
            raise PermissionError(
                f"Permission denied when checking for project root at: {current}"
            ) from e

        parent = current.parent
        if parent == current:
            raise ProjectRootNotFoundError(original_start, marker)

        current = parent


def check_data_status(path: Path, config: CoursepathConfig) -> DataStatus:
    """Check whether the data directory and catalog database exist under path."""
    if config.get_db_path(path).is_file():
        return "complete"
    return "missing"


# -----------------------------------------------------------------------------
# Config Wiring Helper
# -----------------------------------------------------------------------------


def wire_config(
    data_dir: str | None = None,
    db_name: str | None = None,
    start_dir: Path | None = None,
) -> CoursepathConfig:
    """Wire CLI options to load_config with appropriate overrides.

    Args:
        data_dir: Override for data directory name.
        db_name: Override for database file name.
        start_dir: Directory to start searching for config files.

    Returns:
        Fully resolved CoursepathConfig instance.

    Raises:
        typer.Exit: If configuration is invalid.
    """
    cli_overrides: dict[str, Any] = {}

    if data_dir is not None:
        cli_overrides["data_dir"] = data_dir
    if db_name is not None:
        cli_overrides["db_name"] = db_name

    try:
        return load_config(cli_overrides=cli_overrides, start_dir=start_dir)
    except ValueError as e:
        error(f"Invalid configuration: {e}", exit_code=EXIT_USER_ERROR)


def resolve_actor(config: CoursepathConfig, username: str | None) -> Actor:
    """Build the acting user for a mutating command.

    The role is global_admin when the username is listed in the configured
    global_admins, admin otherwise.

    Raises:
        typer.Exit: If no username was given.
    """
    if username is None or not username.strip():
        error("No acting user. Pass --as USER or set COURSEPATH_USER.")
    username = username.strip()
    role = Role.GLOBAL_ADMIN if config.is_global_admin(username) else Role.ADMIN
    return Actor(username=username, role=role)


# -----------------------------------------------------------------------------
# Typer Option Factory Functions
# -----------------------------------------------------------------------------
# Typer consumes Option objects when decorating commands, so each command
# needs a fresh instance.


def data_dir_option() -> Any:
    """Create a Typer Option for --data-dir / -d."""
    return typer.Option(
        None,
        "--data-dir",
        "-d",
        help="Override data directory name (default: .coursepath).",
        envvar="COURSEPATH_DATA_DIR",
    )


def db_name_option() -> Any:
    """Create a Typer Option for --db-name."""
    return typer.Option(
        None,
        "--db-name",
        help="Override database file name (default: catalog.db).",
        envvar="COURSEPATH_DB_NAME",
    )


def as_user_option() -> Any:
    """Create a Typer Option for --as (the acting user)."""
    return typer.Option(
        None,
        "--as",
        help="Username performing the change.",
        envvar="COURSEPATH_USER",
    )


def json_option() -> Any:
    """Create a Typer Option for --json."""
    return typer.Option(False, "--json", help="Output as JSON.")


def quiet_option() -> Any:
    """Create a Typer Option for --quiet / -q."""
    return typer.Option(False, "--quiet", "-q", help="Minimal output for CI.")
