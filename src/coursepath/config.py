"""Configuration management for coursepath.

Handles configuration loading from multiple sources with precedence:
CLI args > environment variables > .coursepathrc > pyproject.toml > defaults
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

# tomllib is only available in Python 3.11+
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[import-not-found]

DEFAULT_MAX_PATHWAY_DEPTH = 10
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_LOG_FORMATS = ("console", "json")


@dataclass
class CoursepathConfig:
    """Configuration for coursepath.

    Attributes:
        data_dir: Name of the data directory (default: ".coursepath")
        db_name: Name of the SQLite catalog file (default: "catalog.db")
        max_pathway_depth: Deepest allowed prerequisite chain (default: 10)
        global_admins: Usernames resolved to the global_admin role
        log_level: Minimum log level emitted (default: "WARNING")
        log_format: Log renderer, "console" or "json" (default: "console")
    """

    data_dir: str = ".coursepath"
    db_name: str = "catalog.db"
    max_pathway_depth: int = DEFAULT_MAX_PATHWAY_DEPTH
    global_admins: list[str] = field(default_factory=lambda: ["admin-global"])
    log_level: str = "WARNING"
    log_format: str = "console"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If any configuration value is invalid.
        """
        if not self.data_dir or not isinstance(self.data_dir, str):
            raise ValueError("data_dir must be a non-empty string")

        if not self.db_name or not isinstance(self.db_name, str):
            raise ValueError("db_name must be a non-empty string")
        if not self.db_name.endswith(".db"):
            raise ValueError("db_name must end with .db")

        if isinstance(self.max_pathway_depth, bool) or not isinstance(self.max_pathway_depth, int):
            raise ValueError("max_pathway_depth must be an integer")
        if self.max_pathway_depth < 1:
            raise ValueError("max_pathway_depth must be at least 1")

        if not isinstance(self.global_admins, list) or not all(
            isinstance(name, str) and name for name in self.global_admins
        ):
            raise ValueError("global_admins must be a list of non-empty strings")

        self.log_level = str(self.log_level).upper()
        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}")

        if self.log_format not in VALID_LOG_FORMATS:
            raise ValueError(f"log_format must be one of: {', '.join(VALID_LOG_FORMATS)}")

    def get_data_path(self, base_path: Path | None = None) -> Path:
        """Get the full path to the data directory.

        Args:
            base_path: Base path to resolve from. Defaults to current directory.

        Returns:
            Path to the data directory.
        """
        base = base_path or Path.cwd()
        return base / self.data_dir

    def get_db_path(self, base_path: Path | None = None) -> Path:
        """Get the full path to the catalog database.

        Args:
            base_path: Base path to resolve from. Defaults to current directory.

        Returns:
            Path to the database file.
        """
        return self.get_data_path(base_path) / self.db_name

    def is_global_admin(self, username: str) -> bool:
        """Check whether a username is configured as a global admin."""
        return username in self.global_admins


def _get_config_field_names() -> set[str]:
    return {f.name for f in fields(CoursepathConfig)}


def find_config_file(filename: str = ".coursepathrc", start_dir: Path | None = None) -> Path | None:
    """Find a configuration file by traversing up the directory tree.

    Args:
        filename: Name of the config file to find.
        start_dir: Directory to start searching from. Defaults to current directory.

    Returns:
        Path to the config file if found, None otherwise.
    """
    current = (start_dir or Path.cwd()).resolve()

    while True:
        config_path = current / filename
        if config_path.is_file():
            return config_path

        parent = current.parent
        if parent == current:
            return None
        current = parent


def _load_toml_file(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        result: dict[str, Any] = tomllib.load(f)
        return result


def _load_from_rc(start_dir: Path | None = None) -> dict[str, Any]:
    """Load configuration from a .coursepathrc file.

    Args:
        start_dir: Directory to start searching from.

    Returns:
        Dictionary containing configuration from .coursepathrc, or empty dict if not found.
    """
    config_path = find_config_file(".coursepathrc", start_dir)
    if config_path is None:
        return {}

    try:
        data = _load_toml_file(config_path)
        valid_fields = _get_config_field_names()
        return {k: v for k, v in data.items() if k in valid_fields}
    except (tomllib.TOMLDecodeError, OSError):
        return {}


def _load_from_pyproject(start_dir: Path | None = None) -> dict[str, Any]:
    """Load configuration from pyproject.toml [tool.coursepath] section.

    Args:
        start_dir: Directory to start searching from.

    Returns:
        Dictionary containing configuration from pyproject.toml, or empty dict if not found.
    """
    config_path = find_config_file("pyproject.toml", start_dir)
    if config_path is None:
        return {}

    try:
        data = _load_toml_file(config_path)
        section = data.get("tool", {}).get("coursepath", {})
        valid_fields = _get_config_field_names()
        return {k: v for k, v in section.items() if k in valid_fields}
    except (tomllib.TOMLDecodeError, OSError):
        return {}


def _load_from_env() -> dict[str, Any]:
    """Load configuration from environment variables.

    Environment variables are prefixed with COURSEPATH_ and use uppercase names,
    for example COURSEPATH_DB_NAME or COURSEPATH_MAX_PATHWAY_DEPTH.
    COURSEPATH_GLOBAL_ADMINS is a comma-separated list.

    Returns:
        Dictionary containing configuration from environment variables.

    Raises:
        ValueError: If COURSEPATH_MAX_PATHWAY_DEPTH is not an integer.
    """
    env_mapping = {
        "COURSEPATH_DATA_DIR": "data_dir",
        "COURSEPATH_DB_NAME": "db_name",
        "COURSEPATH_MAX_PATHWAY_DEPTH": "max_pathway_depth",
        "COURSEPATH_GLOBAL_ADMINS": "global_admins",
        "COURSEPATH_LOG_LEVEL": "log_level",
        "COURSEPATH_LOG_FORMAT": "log_format",
    }

    result: dict[str, Any] = {}
    for env_var, config_key in env_mapping.items():
        value = os.environ.get(env_var)
        if value is None:
            continue
        if config_key == "max_pathway_depth":
            try:
                result[config_key] = int(value)
            except ValueError:
                raise ValueError(f"{env_var} must be an integer, got {value!r}") from None
        elif config_key == "global_admins":
            result[config_key] = [name.strip() for name in value.split(",") if name.strip()]
        else:
            result[config_key] = value

    return result


def _merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
    """Merge configuration dictionaries; later ones take precedence."""
    result: dict[str, Any] = {}
    for config in configs:
        for key, value in config.items():
            if value is not None:
                result[key] = value
    return result


def load_config(
    cli_overrides: dict[str, Any] | None = None,
    start_dir: Path | None = None,
) -> CoursepathConfig:
    """Load configuration with full precedence chain.

    Precedence (highest to lowest):
    1. CLI arguments (cli_overrides)
    2. Environment variables (COURSEPATH_*)
    3. .coursepathrc file
    4. pyproject.toml [tool.coursepath] section
    5. Default values

    Args:
        cli_overrides: Configuration overrides from CLI arguments.
        start_dir: Directory to start searching for config files.

    Returns:
        Fully resolved CoursepathConfig instance.

    Raises:
        ValueError: If the resulting configuration is invalid.
    """
    pyproject_config = _load_from_pyproject(start_dir)
    rc_config = _load_from_rc(start_dir)
    env_config = _load_from_env()

    valid_fields = _get_config_field_names()
    cli_config = {
        k: v for k, v in (cli_overrides or {}).items() if k in valid_fields and v is not None
    }

    merged = _merge_configs(pyproject_config, rc_config, env_config, cli_config)
    return CoursepathConfig(**merged)
