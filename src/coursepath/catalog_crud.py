"""CRUD operations for domains, job roles and course-job-role links.

Provides create, read, update, and (soft) delete operations for:
- Domains registry
- Job roles registry
- Course to job role associations (primary and secondary role)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from coursepath.database import CatalogDB

MAX_JOB_ROLES_PER_COURSE = 2


def _validate_text(value: str, field_name: str, max_length: int = 255) -> None:
    """Validate a required text field.

    Raises:
        ValueError: If value is empty or exceeds max length.
    """
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    if len(value) > max_length:
        raise ValueError(f"{field_name} exceeds maximum length ({max_length})")


def _row_to_dict(row: Any) -> dict[str, Any]:
    if row is None:
        return {}
    return dict(row)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# Domains CRUD Operations


def create_domain(
    db: CatalogDB, name: str, created_by: str, description: str | None = None
) -> dict[str, Any]:
    """Create a new domain.

    Args:
        db: Database connection.
        name: Domain name.
        created_by: Username of the creating admin.
        description: Optional description.

    Returns:
        Dictionary with created domain data.

    Raises:
        ValueError: If name is invalid.
    """
    _validate_text(name, "name")

    now = _now()
    new_id = db.insert(
        """
        INSERT INTO domains (name, description, is_active, created_by, created_at, updated_at)
        VALUES (?, ?, 1, ?, ?, ?)
        """,
        (name, description, created_by, now, now),
    )
    result = db.fetchone("SELECT * FROM domains WHERE id = ?", (new_id,))
    return _row_to_dict(result)


def get_domain(db: CatalogDB, domain_id: int) -> dict[str, Any] | None:
    """Get a domain by id, active or not."""
    result = db.fetchone("SELECT * FROM domains WHERE id = ?", (domain_id,))
    return _row_to_dict(result) if result is not None else None


def list_domains(db: CatalogDB, include_inactive: bool = False) -> list[dict[str, Any]]:
    """List domains, sorted by name.

    Args:
        db: Database connection.
        include_inactive: Also return soft-deleted domains.
    """
    if include_inactive:
        results = db.fetchall("SELECT * FROM domains ORDER BY name, id")
    else:
        results = db.fetchall("SELECT * FROM domains WHERE is_active = 1 ORDER BY name, id")
    return [_row_to_dict(row) for row in results]


def update_domain(
    db: CatalogDB, domain_id: int, name: str | None = None, description: str | None = None
) -> bool:
    """Update a domain's name and/or description.

    Returns:
        True if row was updated, False if domain not found or nothing to change.
    """
    if name is None and description is None:
        return False
    if name is not None:
        _validate_text(name, "name")

    now = _now()
    if name is not None and description is not None:
        cursor = db.execute(
            "UPDATE domains SET name = ?, description = ?, updated_at = ? WHERE id = ?",
            (name, description, now, domain_id),
        )
    elif name is not None:
        cursor = db.execute(
            "UPDATE domains SET name = ?, updated_at = ? WHERE id = ?",
            (name, now, domain_id),
        )
    else:
        cursor = db.execute(
            "UPDATE domains SET description = ?, updated_at = ? WHERE id = ?",
            (description, now, domain_id),
        )
    return cursor.rowcount > 0


def deactivate_domain(db: CatalogDB, domain_id: int) -> bool:
    """Soft-delete a domain by clearing its active flag.

    Returns:
        True if row was updated, False if domain not found.
    """
    cursor = db.execute(
        "UPDATE domains SET is_active = 0, updated_at = ? WHERE id = ?",
        (_now(), domain_id),
    )
    return cursor.rowcount > 0


# Job Roles CRUD Operations


def create_job_role(
    db: CatalogDB,
    title: str,
    description: str | None = None,
    salary_range: str | None = None,
) -> dict[str, Any]:
    """Create a new job role.

    Raises:
        ValueError: If title is invalid.
        sqlite3.IntegrityError: If a job role with the title already exists.
    """
    _validate_text(title, "title")

    now = _now()
    new_id = db.insert(
        """
        INSERT INTO job_roles (title, description, salary_range, is_active, created_at, updated_at)
        VALUES (?, ?, ?, 1, ?, ?)
        """,
        (title, description, salary_range, now, now),
    )
    result = db.fetchone("SELECT * FROM job_roles WHERE id = ?", (new_id,))
    return _row_to_dict(result)


def get_job_role(db: CatalogDB, job_role_id: int) -> dict[str, Any] | None:
    """Get a job role by id, active or not."""
    result = db.fetchone("SELECT * FROM job_roles WHERE id = ?", (job_role_id,))
    return _row_to_dict(result) if result is not None else None


def find_job_role_by_title(
    db: CatalogDB, title: str, exclude_id: int | None = None
) -> dict[str, Any] | None:
    """Find a job role with an exact title, optionally ignoring one id."""
    result = db.fetchone("SELECT * FROM job_roles WHERE title = ?", (title,))
    if result is None:
        return None
    if exclude_id is not None and result["id"] == exclude_id:
        return None
    return _row_to_dict(result)


def list_job_roles(db: CatalogDB, include_inactive: bool = False) -> list[dict[str, Any]]:
    """List job roles, sorted by title."""
    if include_inactive:
        results = db.fetchall("SELECT * FROM job_roles ORDER BY title")
    else:
        results = db.fetchall("SELECT * FROM job_roles WHERE is_active = 1 ORDER BY title")
    return [_row_to_dict(row) for row in results]


def update_job_role(
    db: CatalogDB,
    job_role_id: int,
    title: str | None = None,
    description: str | None = None,
    salary_range: str | None = None,
) -> bool:
    """Update a job role's fields; None values are left unchanged.

    Returns:
        True if row was updated, False if job role not found or nothing to change.
    """
    updates: dict[str, Any] = {}
    if title is not None:
        _validate_text(title, "title")
        updates["title"] = title
    if description is not None:
        updates["description"] = description
    if salary_range is not None:
        updates["salary_range"] = salary_range
    if not updates:
        return False

    updates["updated_at"] = _now()
    assignments = ", ".join(f"{column} = ?" for column in updates)
    cursor = db.execute(
        f"UPDATE job_roles SET {assignments} WHERE id = ?",
        (*updates.values(), job_role_id),
    )
    return cursor.rowcount > 0


def deactivate_job_role(db: CatalogDB, job_role_id: int) -> bool:
    """Soft-delete a job role.

    Returns:
        True if row was updated, False if job role not found.
    """
    cursor = db.execute(
        "UPDATE job_roles SET is_active = 0, updated_at = ? WHERE id = ?",
        (_now(), job_role_id),
    )
    return cursor.rowcount > 0


# Course-Job Role links


def set_course_job_roles(db: CatalogDB, course_id: int, job_role_ids: list[int]) -> None:
    """Replace the job roles linked to a course.

    The first id becomes the primary role, the second the secondary role.

    Raises:
        ValueError: If more than MAX_JOB_ROLES_PER_COURSE ids or duplicates are given.
        sqlite3.IntegrityError: If a job role doesn't exist.
    """
    if len(job_role_ids) > MAX_JOB_ROLES_PER_COURSE:
        raise ValueError(f"A course can have at most {MAX_JOB_ROLES_PER_COURSE} job roles")
    if len(set(job_role_ids)) != len(job_role_ids):
        raise ValueError("Duplicate job role ids")

    db.execute("DELETE FROM course_job_roles WHERE course_id = ?", (course_id,))
    now = _now()
    for index, job_role_id in enumerate(job_role_ids):
        db.execute(
            """
            INSERT INTO course_job_roles (course_id, job_role_id, is_primary, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (course_id, job_role_id, 1 if index == 0 else 0, now),
        )


def get_job_roles_for_course(db: CatalogDB, course_id: int) -> list[dict[str, Any]]:
    """Get the job roles linked to a course, primary role first."""
    results = db.fetchall(
        """
        SELECT jr.id, jr.title, jr.description, jr.salary_range, cjr.is_primary
        FROM course_job_roles cjr
        JOIN job_roles jr ON jr.id = cjr.job_role_id
        WHERE cjr.course_id = ?
        ORDER BY cjr.is_primary DESC, cjr.id
        """,
        (course_id,),
    )
    return [_row_to_dict(row) for row in results]
