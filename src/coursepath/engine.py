"""Pathway service layer.

Every mutation reads a fresh snapshot inside its own transaction, runs the
graph checks against it, then writes and appends audit records. A rejected
mutation leaves no rows behind: neither the edge nor an audit entry.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from coursepath import catalog_crud, crud
from coursepath.audit import record_audit
from coursepath.authorization import Actor, assert_can_modify
from coursepath.database import CatalogDB
from coursepath.errors import InvalidOperationError, NotFoundError, PreconditionFailedError
from coursepath.graph import (
    DEFAULT_MAX_DEPTH,
    PathwayEdge,
    PathwaySnapshot,
    check_pathway_removal,
    describe_edge,
    edge_label,
    find_orphaned_courses,
    find_touching_pathways,
    validate_new_pathway,
)
from coursepath.logging import get_logger

logger = get_logger(__name__)


def load_snapshot(db: CatalogDB) -> PathwaySnapshot:
    """Read all courses and pathways into an immutable snapshot."""
    return PathwaySnapshot.from_rows(crud.list_courses(db), crud.list_pathways(db))


def _require_edge(snapshot: PathwaySnapshot, pathway_id: int) -> PathwayEdge:
    edge = snapshot.edge(pathway_id)
    if edge is None:
        raise NotFoundError(f"Pathway not found: {pathway_id}")
    return edge


def _require_positive_order(order: int) -> None:
    if isinstance(order, bool) or not isinstance(order, int) or order < 1:
        raise InvalidOperationError(f"Pathway order must be a positive integer, got {order!r}")


def create_pathway(
    db: CatalogDB,
    prerequisite_course_id: int,
    next_course_id: int,
    order: int,
    actor: Actor,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> dict[str, Any]:
    """Create a pathway edge after checking every graph invariant.

    Args:
        db: Database connection.
        prerequisite_course_id: Course that must be completed first.
        next_course_id: Course unlocked by the prerequisite.
        order: Display position among siblings sharing the prerequisite.
        actor: Acting user, recorded as creator.
        max_depth: Deepest allowed prerequisite chain.

    Returns:
        Dictionary with the created pathway.

    Raises:
        NotFoundError: If either course doesn't exist.
        ConflictError: If the edge already exists.
        InvalidOperationError: If the edge would break a graph invariant or
            order is not positive.
    """
    _require_positive_order(order)

    with db.transaction():
        snapshot = load_snapshot(db)
        prereq, nxt = validate_new_pathway(
            snapshot, prerequisite_course_id, next_course_id, max_depth
        )
        row = crud.create_pathway(
            db, prerequisite_course_id, next_course_id, order, actor.username
        )
        label = f"{prereq.course_name} → {nxt.course_name}"
        record_audit(
            db,
            actor,
            "create",
            "pathway",
            row["id"],
            label,
            f"Created pathway: {label} (order: {order})",
        )

    logger.info(
        "pathway_created",
        pathway_id=row["id"],
        prerequisite_course_id=prerequisite_course_id,
        next_course_id=next_course_id,
        user=actor.username,
    )
    return row


def delete_pathway(db: CatalogDB, pathway_id: int, actor: Actor) -> dict[str, Any]:
    """Delete a pathway edge unless it would strand downstream courses.

    Returns:
        Dictionary with the deleted pathway.

    Raises:
        NotFoundError: If the pathway doesn't exist.
        ForbiddenError: If the actor is neither its creator nor a global admin.
        InvalidOperationError: If the next course has dependents and no
            alternative incoming pathway.
    """
    with db.transaction():
        snapshot = load_snapshot(db)
        edge = _require_edge(snapshot, pathway_id)
        row = crud.get_pathway(db, pathway_id) or {}
        label = edge_label(snapshot, edge)
        assert_can_modify(actor, edge.created_by, "pathway", label)
        check_pathway_removal(snapshot, pathway_id)

        crud.delete_pathway(db, pathway_id)
        record_audit(db, actor, "delete", "pathway", pathway_id, label, f"Deleted pathway: {label}")

    logger.info("pathway_deleted", pathway_id=pathway_id, user=actor.username)
    return row


def update_pathway_order(
    db: CatalogDB, pathway_id: int, order: int, actor: Actor
) -> dict[str, Any]:
    """Change the display order of a pathway edge.

    Returns:
        Dictionary with the updated pathway.

    Raises:
        NotFoundError: If the pathway doesn't exist.
        ForbiddenError: If the actor is neither its creator nor a global admin.
        InvalidOperationError: If order is not a positive integer.
    """
    with db.transaction():
        snapshot = load_snapshot(db)
        edge = _require_edge(snapshot, pathway_id)
        row = crud.get_pathway(db, pathway_id) or {}
        label = edge_label(snapshot, edge)
        assert_can_modify(actor, edge.created_by, "pathway", label)
        _require_positive_order(order)

        crud.update_pathway_order(db, pathway_id, order)
        record_audit(
            db,
            actor,
            "update",
            "pathway",
            pathway_id,
            label,
            f"Updated pathway order: {label} (order: {edge.order} → {order})",
        )
        updated = crud.get_pathway(db, pathway_id)

    logger.info("pathway_reordered", pathway_id=pathway_id, order=order, user=actor.username)
    return updated or {}


@dataclass
class DeleteImpact:
    """What deleting a course would do to the pathway graph.

    Attributes:
        course_id: Primary key of the course.
        course_name: Name of the course.
        can_delete: True when no pathway touches the course.
        requires_cascade: True when deletion must also remove pathways.
        affected_pathways: ``{"id", "description"}`` for each touching pathway.
        orphaned_courses: ``{"id", "course_id", "course_name"}`` for each
            downstream course that would lose every path to an immersive course.
    """

    course_id: int
    course_name: str
    can_delete: bool
    requires_cascade: bool
    affected_pathways: list[dict[str, Any]] = field(default_factory=list)
    orphaned_courses: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def get_delete_impact(db: CatalogDB, course_id: int) -> DeleteImpact:
    """Preview the effect of deleting a course. Read only.

    Raises:
        NotFoundError: If the course doesn't exist.
    """
    course = crud.get_course(db, course_id)
    if course is None:
        raise NotFoundError(f"Course not found: {course_id}")

    snapshot = load_snapshot(db)
    touching = find_touching_pathways(snapshot, course_id)
    orphaned = find_orphaned_courses(snapshot, course_id)

    return DeleteImpact(
        course_id=course_id,
        course_name=course["course_name"],
        can_delete=not touching,
        requires_cascade=bool(touching),
        affected_pathways=[
            {"id": e.id, "description": describe_edge(snapshot, e)} for e in touching
        ],
        orphaned_courses=[
            {"id": c.id, "course_id": c.course_key, "course_name": c.course_name}
            for c in orphaned
        ],
    )


def delete_course_cascade(
    db: CatalogDB, course_id: int, actor: Actor, cascade: bool = False
) -> dict[str, Any]:
    """Delete a course, optionally removing every pathway that touches it.

    Touching pathways are re-read from the store on each call, so a retry
    after a partial failure picks up whatever remains. Cascaded edges skip
    the downstream check that delete_pathway applies.

    Args:
        db: Database connection.
        course_id: Primary key of the course.
        actor: Acting user.
        cascade: Remove touching pathways instead of refusing.

    Returns:
        Dictionary with the deleted course.

    Raises:
        NotFoundError: If the course doesn't exist.
        ForbiddenError: If the actor is neither its creator nor a global admin.
        PreconditionFailedError: If pathways touch the course and cascade is False.
    """
    with db.transaction():
        course = crud.get_course(db, course_id)
        if course is None:
            raise NotFoundError(f"Course not found: {course_id}")
        name = course["course_name"]
        assert_can_modify(actor, course["created_by"], "course", name)

        snapshot = load_snapshot(db)
        touching = find_touching_pathways(snapshot, course_id)
        if touching and not cascade:
            descriptions = [describe_edge(snapshot, e) for e in touching]
            raise PreconditionFailedError(
                f'Cannot delete course "{name}": It is used in {len(touching)} pathway(s): '
                f"{', '.join(descriptions)}. Enable cascade delete to remove these pathways "
                "automatically, or remove them manually first.",
                affected=descriptions,
            )

        for edge in touching:
            label = edge_label(snapshot, edge)
            crud.delete_pathway(db, edge.id)
            record_audit(
                db,
                actor,
                "delete",
                "pathway",
                edge.id,
                label,
                f"Deleted pathway (cascade from course deletion): {label}",
            )

        catalog_crud.set_course_job_roles(db, course_id, [])
        crud.delete_course(db, course_id)
        record_audit(db, actor, "delete", "course", course_id, name, f'Deleted course "{name}"')

    logger.info(
        "course_deleted",
        course_id=course_id,
        cascaded_pathways=len(touching),
        user=actor.username,
    )
    return course
