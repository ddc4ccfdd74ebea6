"""Pytest configuration and fixtures for coursepath tests."""

import os

# Set a fixed terminal width to prevent line wrapping issues in CI
# This must be set before any Rich imports
os.environ.setdefault("COLUMNS", "200")
os.environ.setdefault("LINES", "50")
# Disable Rich's terminal detection to ensure consistent output
os.environ.setdefault("TERM", "dumb")

import tempfile  # noqa: E402
from collections.abc import Callable, Generator  # noqa: E402
from pathlib import Path  # noqa: E402

import pytest  # noqa: E402

from coursepath import catalog_crud, crud  # noqa: E402
from coursepath.authorization import Actor, Role  # noqa: E402
from coursepath.database import CatalogDB  # noqa: E402
from coursepath.logging import configure_logging  # noqa: E402

configure_logging("WARNING")


@pytest.fixture
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def initialized_db(temp_db_path: Path) -> Generator[CatalogDB, None, None]:
    """Create a connected CatalogDB instance."""
    with CatalogDB(temp_db_path) as db:
        yield db


@pytest.fixture
def alice() -> Actor:
    """A regular admin."""
    return Actor("alice")


@pytest.fixture
def bob() -> Actor:
    """Another regular admin."""
    return Actor("bob")


@pytest.fixture
def global_admin() -> Actor:
    """A global admin."""
    return Actor("admin-global", Role.GLOBAL_ADMIN)


@pytest.fixture
def domain_id(initialized_db: CatalogDB) -> int:
    """Create a domain owned by alice and return its id."""
    domain = catalog_crud.create_domain(initialized_db, "Software Engineering", "alice")
    return int(domain["id"])


@pytest.fixture
def make_course(initialized_db: CatalogDB, domain_id: int) -> Callable[..., int]:
    """Factory creating a course directly in the store and returning its id."""

    def make(
        name: str,
        course_type: str = "skill_based",
        created_by: str = "alice",
        weeks: int = 4,
    ) -> int:
        course = crud.create_course(
            initialized_db,
            course_name=name,
            course_type=course_type,
            domain_id=domain_id,
            weeks=weeks,
            course_objectives=f"Learn {name}",
            created_by=created_by,
        )
        return int(course["id"])

    return make
