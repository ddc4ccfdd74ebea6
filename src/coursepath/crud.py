"""CRUD operations for courses and pathway edges.

Provides basic create, read, update, and delete operations for:
- Courses registry (with display key assignment)
- Pathway edges between courses
- One-hop pathway queries (prerequisites and next steps of a course)

No graph invariant is enforced here; that is the job of coursepath.graph
and coursepath.engine.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from coursepath.database import CatalogDB

COURSE_TYPES = ("immersive", "skill_based", "exam_cert", "completion_cert", "paid")
COURSE_KEY_PREFIX = "CRS-"

_UPDATABLE_COURSE_FIELDS = (
    "course_name",
    "course_type",
    "course_objectives",
    "weeks",
    "certifications_badges",
    "domain_id",
)


def _validate_name(name: str, field_name: str = "course_name") -> None:
    """Validate a name field.

    Args:
        name: The name string to validate.
        field_name: The field name for error messages.

    Raises:
        ValueError: If name is empty or exceeds max length.
    """
    if not name or not name.strip():
        raise ValueError(f"{field_name} cannot be empty")
    if len(name) > 255:
        raise ValueError(f"{field_name} exceeds maximum length (255)")


def _validate_course_type(course_type: str) -> None:
    if course_type not in COURSE_TYPES:
        raise ValueError(
            f"Invalid course_type: {course_type}. Must be one of: {', '.join(COURSE_TYPES)}"
        )


def _validate_positive(value: int, field_name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{field_name} must be a positive integer")


def _row_to_dict(row: Any) -> dict[str, Any]:
    """Convert sqlite3.Row to dict."""
    if row is None:
        return {}
    return dict(row)


def course_key(course_pk: int) -> str:
    """Return the display key for a course primary key (e.g. ``CRS-12``)."""
    return f"{COURSE_KEY_PREFIX}{course_pk}"


# Courses CRUD Operations


def create_course(
    db: CatalogDB,
    course_name: str,
    course_type: str,
    domain_id: int,
    weeks: int,
    course_objectives: str,
    created_by: str,
    certifications_badges: str | None = None,
) -> dict[str, Any]:
    """Create a new course and assign its display key.

    The row is inserted first; the ``CRS-<id>`` key is derived from the
    generated id and written by a second statement.

    Args:
        db: Database connection.
        course_name: Human-readable course name.
        course_type: One of COURSE_TYPES.
        domain_id: Id of the domain the course belongs to.
        weeks: Course length in weeks.
        course_objectives: Objectives text.
        created_by: Username of the creating admin.
        certifications_badges: Optional certifications text.

    Returns:
        Dictionary with created course data.

    Raises:
        ValueError: If a field is invalid.
        sqlite3.IntegrityError: If the domain doesn't exist.
    """
    _validate_name(course_name)
    _validate_course_type(course_type)
    _validate_positive(weeks, "weeks")
    if not course_objectives or not course_objectives.strip():
        raise ValueError("course_objectives cannot be empty")

    now = datetime.now(timezone.utc).isoformat()
    new_id = db.insert(
        """
        INSERT INTO courses (
            course_name, course_type, course_objectives, weeks,
            certifications_badges, domain_id, created_by, created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            course_name,
            course_type,
            course_objectives,
            weeks,
            certifications_badges,
            domain_id,
            created_by,
            now,
            now,
        ),
    )
    db.execute("UPDATE courses SET course_id = ? WHERE id = ?", (course_key(new_id), new_id))

    result = db.fetchone("SELECT * FROM courses WHERE id = ?", (new_id,))
    return _row_to_dict(result)


def get_course(db: CatalogDB, course_id: int) -> dict[str, Any] | None:
    """Get a course by primary key.

    Returns:
        Dictionary with course data, or None if not found.
    """
    result = db.fetchone("SELECT * FROM courses WHERE id = ?", (course_id,))
    return _row_to_dict(result) if result is not None else None


def get_course_by_key(db: CatalogDB, key: str) -> dict[str, Any] | None:
    """Get a course by its display key (e.g. ``CRS-3``).

    Returns:
        Dictionary with course data, or None if not found.
    """
    result = db.fetchone("SELECT * FROM courses WHERE course_id = ?", (key,))
    return _row_to_dict(result) if result is not None else None


def find_course_by_name(db: CatalogDB, course_name: str) -> dict[str, Any] | None:
    """Find a course by name, ignoring case.

    Returns:
        Dictionary with course data, or None if no course has that name.
    """
    result = db.fetchone(
        "SELECT * FROM courses WHERE LOWER(course_name) = LOWER(?) ORDER BY id LIMIT 1",
        (course_name,),
    )
    return _row_to_dict(result) if result is not None else None


def list_courses(db: CatalogDB) -> list[dict[str, Any]]:
    """List all courses, sorted by id."""
    results = db.fetchall("SELECT * FROM courses ORDER BY id")
    return [_row_to_dict(row) for row in results]


def update_course(db: CatalogDB, course_id: int, **changes: Any) -> bool:
    """Update a course's editable fields.

    Args:
        db: Database connection.
        course_id: Primary key of the course.
        **changes: Field values to set; None values are ignored.

    Returns:
        True if row was updated, False if course not found or nothing to change.

    Raises:
        ValueError: If a field name is not editable or a value is invalid.
    """
    updates = {k: v for k, v in changes.items() if v is not None}
    unknown = set(updates) - set(_UPDATABLE_COURSE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update course field(s): {', '.join(sorted(unknown))}")
    if not updates:
        return False

    if "course_name" in updates:
        _validate_name(updates["course_name"])
    if "course_type" in updates:
        _validate_course_type(updates["course_type"])
    if "weeks" in updates:
        _validate_positive(updates["weeks"], "weeks")

    updates["updated_at"] = datetime.now(timezone.utc).isoformat()
    assignments = ", ".join(f"{column} = ?" for column in updates)
    cursor = db.execute(
        f"UPDATE courses SET {assignments} WHERE id = ?",
        (*updates.values(), course_id),
    )
    return cursor.rowcount > 0


def delete_course(db: CatalogDB, course_id: int) -> bool:
    """Hard-delete a course by primary key.

    Job role links are removed by the schema's ON DELETE CASCADE. Pathway
    edges are not: deleting a course that still has edges raises
    sqlite3.IntegrityError.

    Returns:
        True if row was deleted, False if course not found.
    """
    cursor = db.execute("DELETE FROM courses WHERE id = ?", (course_id,))
    return cursor.rowcount > 0


def count_courses_in_domain(db: CatalogDB, domain_id: int) -> int:
    """Count courses that reference a domain."""
    result = db.fetchone("SELECT COUNT(*) AS n FROM courses WHERE domain_id = ?", (domain_id,))
    return int(result["n"]) if result is not None else 0


# Pathway CRUD Operations


def create_pathway(
    db: CatalogDB,
    prerequisite_course_id: int,
    next_course_id: int,
    order: int,
    created_by: str,
) -> dict[str, Any]:
    """Insert a pathway edge.

    Args:
        db: Database connection.
        prerequisite_course_id: Course that must be completed first.
        next_course_id: Course unlocked by the prerequisite.
        order: Display position among siblings sharing the prerequisite.
        created_by: Username of the creating admin.

    Returns:
        Dictionary with created pathway data.

    Raises:
        ValueError: If order is not a positive integer.
        sqlite3.IntegrityError: If either course doesn't exist.
    """
    _validate_positive(order, "order")

    now = datetime.now(timezone.utc).isoformat()
    new_id = db.insert(
        """
        INSERT INTO pathways (prerequisite_course_id, next_course_id, "order", created_by, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (prerequisite_course_id, next_course_id, order, created_by, now),
    )
    result = db.fetchone("SELECT * FROM pathways WHERE id = ?", (new_id,))
    return _row_to_dict(result)


def get_pathway(db: CatalogDB, pathway_id: int) -> dict[str, Any] | None:
    """Get a pathway edge by id."""
    result = db.fetchone("SELECT * FROM pathways WHERE id = ?", (pathway_id,))
    return _row_to_dict(result) if result is not None else None


def list_pathways(db: CatalogDB) -> list[dict[str, Any]]:
    """List all pathway edges, sorted by id (insertion order)."""
    results = db.fetchall("SELECT * FROM pathways ORDER BY id")
    return [_row_to_dict(row) for row in results]


def list_pathways_touching(db: CatalogDB, course_id: int) -> list[dict[str, Any]]:
    """List pathway edges that have the course at either end, sorted by id."""
    results = db.fetchall(
        """
        SELECT * FROM pathways
        WHERE prerequisite_course_id = ? OR next_course_id = ?
        ORDER BY id
        """,
        (course_id, course_id),
    )
    return [_row_to_dict(row) for row in results]


def update_pathway_order(db: CatalogDB, pathway_id: int, order: int) -> bool:
    """Change the display order of a pathway edge.

    Returns:
        True if row was updated, False if pathway not found.

    Raises:
        ValueError: If order is not a positive integer.
    """
    _validate_positive(order, "order")
    cursor = db.execute('UPDATE pathways SET "order" = ? WHERE id = ?', (order, pathway_id))
    return cursor.rowcount > 0


def delete_pathway(db: CatalogDB, pathway_id: int) -> bool:
    """Delete a pathway edge by id.

    Returns:
        True if row was deleted, False if pathway not found.
    """
    cursor = db.execute("DELETE FROM pathways WHERE id = ?", (pathway_id,))
    return cursor.rowcount > 0


# One-hop pathway queries


def _split_joined_row(row: Any) -> dict[str, Any]:
    data = dict(row)
    edge = {
        "id": data.pop("pathway_id"),
        "prerequisite_course_id": data.pop("pathway_prerequisite_course_id"),
        "next_course_id": data.pop("pathway_next_course_id"),
        "order": data.pop("pathway_order"),
    }
    edge["course"] = data
    return edge


def get_prerequisites(db: CatalogDB, course_id: int) -> list[dict[str, Any]]:
    """Get the direct prerequisites of a course.

    Args:
        db: Database connection.
        course_id: Course whose incoming edges are expanded.

    Returns:
        One dict per incoming edge with the edge fields and a ``course`` key
        holding the prerequisite course row, sorted by order then edge id.
    """
    results = db.fetchall(
        """
        SELECT p.id AS pathway_id,
               p.prerequisite_course_id AS pathway_prerequisite_course_id,
               p.next_course_id AS pathway_next_course_id,
               p."order" AS pathway_order,
               c.*
        FROM pathways p
        JOIN courses c ON c.id = p.prerequisite_course_id
        WHERE p.next_course_id = ?
        ORDER BY p."order", p.id
        """,
        (course_id,),
    )
    return [_split_joined_row(row) for row in results]


def get_next_steps(db: CatalogDB, course_id: int) -> list[dict[str, Any]]:
    """Get the direct next steps of a course.

    Args:
        db: Database connection.
        course_id: Course whose outgoing edges are expanded.

    Returns:
        One dict per outgoing edge with the edge fields and a ``course`` key
        holding the next course row, sorted by order then edge id.
    """
    results = db.fetchall(
        """
        SELECT p.id AS pathway_id,
               p.prerequisite_course_id AS pathway_prerequisite_course_id,
               p.next_course_id AS pathway_next_course_id,
               p."order" AS pathway_order,
               c.*
        FROM pathways p
        JOIN courses c ON c.id = p.next_course_id
        WHERE p.prerequisite_course_id = ?
        ORDER BY p."order", p.id
        """,
        (course_id,),
    )
    return [_split_joined_row(row) for row in results]
