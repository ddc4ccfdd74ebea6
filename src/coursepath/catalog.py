"""Catalog service: courses, domains and job roles.

Wraps the CRUD modules with existence checks, ownership and capability
gates, conflict detection and audit records. Course type changes are checked
against the pathway graph so an edit can never turn an edge target into an
immersive course or strand the courses an immersive course roots.
"""

from __future__ import annotations

from typing import Any

from coursepath import catalog_crud, crud
from coursepath.audit import record_audit
from coursepath.authorization import Actor, assert_can_modify, require_capability
from coursepath.database import CatalogDB
from coursepath.engine import load_snapshot
from coursepath.errors import (
    ConflictError,
    InvalidOperationError,
    NotFoundError,
)
from coursepath.graph import IMMERSIVE, CourseNode, PathwaySnapshot, has_path_to_immersive
from coursepath.logging import get_logger

logger = get_logger(__name__)


def _require_domain(db: CatalogDB, domain_id: int) -> dict[str, Any]:
    domain = catalog_crud.get_domain(db, domain_id)
    if domain is None or not domain["is_active"]:
        raise NotFoundError(f"Domain not found: {domain_id}")
    return domain


def _require_job_roles(db: CatalogDB, job_role_ids: list[int]) -> None:
    if len(job_role_ids) > catalog_crud.MAX_JOB_ROLES_PER_COURSE:
        raise InvalidOperationError(
            f"A course can have at most {catalog_crud.MAX_JOB_ROLES_PER_COURSE} job roles "
            "(one primary, one secondary)"
        )
    if len(set(job_role_ids)) != len(job_role_ids):
        raise InvalidOperationError("The same job role cannot be linked twice")
    for job_role_id in job_role_ids:
        role = catalog_crud.get_job_role(db, job_role_id)
        if role is None or not role["is_active"]:
            raise NotFoundError(f"Job role not found: {job_role_id}")


# Courses


def create_course(
    db: CatalogDB,
    actor: Actor,
    *,
    course_name: str,
    course_type: str,
    domain_id: int,
    weeks: int,
    course_objectives: str,
    certifications_badges: str | None = None,
    job_role_ids: list[int] | None = None,
) -> dict[str, Any]:
    """Create a course, link its job roles and record the creation.

    Returns:
        Dictionary with the created course.

    Raises:
        ConflictError: If a course with the same name (ignoring case) exists.
        NotFoundError: If the domain or a job role doesn't exist.
        InvalidOperationError: If more than two job roles are given.
        ValueError: If a field is invalid.
    """
    job_role_ids = list(job_role_ids or [])

    with db.transaction():
        if crud.find_course_by_name(db, course_name) is not None:
            raise ConflictError(f'A course named "{course_name}" already exists')
        _require_domain(db, domain_id)
        _require_job_roles(db, job_role_ids)

        course = crud.create_course(
            db,
            course_name=course_name,
            course_type=course_type,
            domain_id=domain_id,
            weeks=weeks,
            course_objectives=course_objectives,
            created_by=actor.username,
            certifications_badges=certifications_badges,
        )
        if job_role_ids:
            catalog_crud.set_course_job_roles(db, course["id"], job_role_ids)

        record_audit(
            db,
            actor,
            "create",
            "course",
            course["id"],
            course_name,
            f'Created course "{course_name}" ({course_type}, {weeks} weeks)',
        )

    logger.info("course_created", course_id=course["id"], user=actor.username)
    return course


def _check_type_change(snapshot: PathwaySnapshot, course: dict[str, Any], new_type: str) -> None:
    """Reject a course type change that would break the pathway graph."""
    old_type = course["course_type"]
    if new_type == old_type:
        return

    name = course["course_name"]
    if new_type == IMMERSIVE:
        incoming = snapshot.incoming.get(course["id"], ())
        if incoming:
            raise InvalidOperationError(
                f'Cannot change "{name}" to immersive: it is a next step in '
                f"{len(incoming)} pathway(s). Immersive courses can only be entry points "
                "in a pathway."
            )
        return

    if old_type != IMMERSIVE:
        return

    retyped = PathwaySnapshot.build(
        (
            CourseNode(c.id, c.course_name, new_type, c.course_key) if c.id == course["id"] else c
            for c in snapshot.courses.values()
        ),
        snapshot.edges,
    )
    stranded = [
        snapshot.course_name(e.next_course_id)
        for e in snapshot.outgoing.get(course["id"], ())
        if not has_path_to_immersive(retyped, e.next_course_id)
    ]
    if stranded:
        names = ", ".join(f'"{n}"' for n in stranded)
        raise InvalidOperationError(
            f'Cannot change "{name}" from immersive: {names} would no longer trace back '
            "to an immersive course."
        )


def update_course(
    db: CatalogDB,
    actor: Actor,
    course_id: int,
    *,
    job_role_ids: list[int] | None = None,
    **changes: Any,
) -> dict[str, Any]:
    """Update a course's fields and, optionally, its job roles.

    Args:
        db: Database connection.
        actor: Acting user.
        course_id: Primary key of the course.
        job_role_ids: Replacement job roles; None leaves them unchanged.
        **changes: Course fields to change; None values are ignored.

    Returns:
        Dictionary with the updated course.

    Raises:
        NotFoundError: If the course, domain or a job role doesn't exist.
        ForbiddenError: If the actor is neither creator nor global admin.
        ConflictError: If the new name belongs to another course.
        InvalidOperationError: If a type change would break the pathway graph.
    """
    changes = {k: v for k, v in changes.items() if v is not None}

    with db.transaction():
        old = crud.get_course(db, course_id)
        if old is None:
            raise NotFoundError(f"Course not found: {course_id}")
        assert_can_modify(actor, old["created_by"], "course", old["course_name"])

        new_name = changes.get("course_name")
        if new_name is not None:
            existing = crud.find_course_by_name(db, new_name)
            if existing is not None and existing["id"] != course_id:
                raise ConflictError(f'A course named "{new_name}" already exists')
        if "domain_id" in changes:
            _require_domain(db, changes["domain_id"])
        if "course_type" in changes:
            _check_type_change(load_snapshot(db), old, changes["course_type"])
        if job_role_ids is not None:
            _require_job_roles(db, job_role_ids)

        crud.update_course(db, course_id, **changes)
        if job_role_ids is not None:
            catalog_crud.set_course_job_roles(db, course_id, job_role_ids)

        described: list[str] = []
        if new_name is not None and new_name != old["course_name"]:
            described.append(f'name: "{old["course_name"]}" → "{new_name}"')
        if "weeks" in changes and changes["weeks"] != old["weeks"]:
            described.append(f"weeks: {old['weeks']} → {changes['weeks']}")
        if "course_type" in changes and changes["course_type"] != old["course_type"]:
            described.append(f"type: {old['course_type']} → {changes['course_type']}")
        if job_role_ids is not None:
            described.append("job roles updated")

        updated = crud.get_course(db, course_id) or {}
        record_audit(
            db,
            actor,
            "update",
            "course",
            course_id,
            updated.get("course_name", old["course_name"]),
            f"Updated course: {', '.join(described) if described else 'no field changes'}",
        )

    logger.info("course_updated", course_id=course_id, user=actor.username)
    return updated


# Domains


def create_domain(
    db: CatalogDB, actor: Actor, name: str, description: str | None = None
) -> dict[str, Any]:
    """Create a domain and record the creation."""
    with db.transaction():
        domain = catalog_crud.create_domain(db, name, actor.username, description)
        record_audit(db, actor, "create", "domain", domain["id"], name, f'Created domain "{name}"')

    logger.info("domain_created", domain_id=domain["id"], user=actor.username)
    return domain


def update_domain(
    db: CatalogDB,
    actor: Actor,
    domain_id: int,
    name: str | None = None,
    description: str | None = None,
) -> dict[str, Any]:
    """Rename or re-describe a domain.

    Raises:
        NotFoundError: If the domain doesn't exist.
        ForbiddenError: If the actor is neither creator nor global admin.
    """
    with db.transaction():
        domain = _require_domain(db, domain_id)
        assert_can_modify(actor, domain["created_by"], "domain", domain["name"])

        catalog_crud.update_domain(db, domain_id, name=name, description=description)
        updated = catalog_crud.get_domain(db, domain_id) or {}
        if name is not None and name != domain["name"]:
            description_text = f'Updated domain: name: "{domain["name"]}" → "{name}"'
        else:
            description_text = f'Updated domain "{domain["name"]}"'
        record_audit(
            db, actor, "update", "domain", domain_id, updated.get("name", ""), description_text
        )

    logger.info("domain_updated", domain_id=domain_id, user=actor.username)
    return updated


def delete_domain(db: CatalogDB, actor: Actor, domain_id: int) -> dict[str, Any]:
    """Soft-delete a domain no course references.

    Raises:
        NotFoundError: If the domain doesn't exist.
        ForbiddenError: If the actor is neither creator nor global admin.
        InvalidOperationError: If courses still reference the domain.
    """
    with db.transaction():
        domain = _require_domain(db, domain_id)
        assert_can_modify(actor, domain["created_by"], "domain", domain["name"])

        in_use = crud.count_courses_in_domain(db, domain_id)
        if in_use:
            raise InvalidOperationError(
                f'Cannot delete domain "{domain["name"]}": {in_use} course(s) still belong '
                "to it. Move or delete those courses first."
            )

        catalog_crud.deactivate_domain(db, domain_id)
        record_audit(
            db,
            actor,
            "delete",
            "domain",
            domain_id,
            domain["name"],
            f'Deleted domain "{domain["name"]}"',
        )

    logger.info("domain_deleted", domain_id=domain_id, user=actor.username)
    return domain


# Job roles


def _require_job_role(db: CatalogDB, job_role_id: int) -> dict[str, Any]:
    role = catalog_crud.get_job_role(db, job_role_id)
    if role is None or not role["is_active"]:
        raise NotFoundError(f"Job role not found: {job_role_id}")
    return role


def create_job_role(
    db: CatalogDB,
    actor: Actor,
    title: str,
    description: str | None = None,
    salary_range: str | None = None,
) -> dict[str, Any]:
    """Create a job role. Global admins only.

    Raises:
        ForbiddenError: If the actor lacks the job_role capability.
        ConflictError: If the title is taken.
    """
    require_capability(actor, "job_role")

    with db.transaction():
        if catalog_crud.find_job_role_by_title(db, title) is not None:
            raise ConflictError("A job role with this title already exists")
        role = catalog_crud.create_job_role(db, title, description, salary_range)
        record_audit(
            db, actor, "create", "job_role", role["id"], title, f"Created job role: {title}"
        )

    logger.info("job_role_created", job_role_id=role["id"], user=actor.username)
    return role


def update_job_role(
    db: CatalogDB,
    actor: Actor,
    job_role_id: int,
    title: str | None = None,
    description: str | None = None,
    salary_range: str | None = None,
) -> dict[str, Any]:
    """Update a job role. Global admins only.

    Raises:
        ForbiddenError: If the actor lacks the job_role capability.
        NotFoundError: If the job role doesn't exist.
        ConflictError: If the new title belongs to another job role.
    """
    require_capability(actor, "job_role")

    with db.transaction():
        _require_job_role(db, job_role_id)
        if title is not None and catalog_crud.find_job_role_by_title(
            db, title, exclude_id=job_role_id
        ):
            raise ConflictError("A job role with this title already exists")

        catalog_crud.update_job_role(
            db, job_role_id, title=title, description=description, salary_range=salary_range
        )
        updated = catalog_crud.get_job_role(db, job_role_id) or {}
        record_audit(
            db,
            actor,
            "update",
            "job_role",
            job_role_id,
            updated.get("title", ""),
            f"Updated job role: {updated.get('title', '')}",
        )

    logger.info("job_role_updated", job_role_id=job_role_id, user=actor.username)
    return updated


def delete_job_role(db: CatalogDB, actor: Actor, job_role_id: int) -> dict[str, Any]:
    """Soft-delete a job role. Global admins only.

    Raises:
        ForbiddenError: If the actor lacks the job_role capability.
        NotFoundError: If the job role doesn't exist.
    """
    require_capability(actor, "job_role")

    with db.transaction():
        role = _require_job_role(db, job_role_id)
        catalog_crud.deactivate_job_role(db, job_role_id)
        record_audit(
            db,
            actor,
            "delete",
            "job_role",
            job_role_id,
            role["title"],
            f"Deleted job role: {role['title']}",
        )

    logger.info("job_role_deleted", job_role_id=job_role_id, user=actor.username)
    return role
