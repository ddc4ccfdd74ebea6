"""Tests for coursepath.engine module."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from coursepath import crud
from coursepath.audit import get_audit_logs_for_entity, list_audit_logs
from coursepath.authorization import Actor
from coursepath.catalog_crud import create_job_role, get_job_roles_for_course, set_course_job_roles
from coursepath.database import CatalogDB
from coursepath.engine import (
    create_pathway,
    delete_course_cascade,
    delete_pathway,
    get_delete_impact,
    load_snapshot,
    update_pathway_order,
)
from coursepath.errors import (
    ConflictError,
    ForbiddenError,
    InvalidOperationError,
    NotFoundError,
    PreconditionFailedError,
)


class TestCreatePathway:
    """Tests for engine.create_pathway."""

    def test_create_records_edge_and_audit(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test a valid edge is stored with its creator and audited."""
        root = make_course("Data Immersive", "immersive")
        nxt = make_course("SQL")

        row = create_pathway(initialized_db, root, nxt, 2, alice)

        assert row["created_by"] == "alice"
        assert row["order"] == 2
        logs = get_audit_logs_for_entity(initialized_db, "pathway", row["id"])
        assert len(logs) == 1
        assert logs[0]["entity_name"] == "Data Immersive → SQL"
        assert logs[0]["change_description"] == "Created pathway: Data Immersive → SQL (order: 2)"

    def test_duplicate_rejected(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test the same pair cannot be added twice."""
        root = make_course("Root", "immersive")
        nxt = make_course("Next")
        create_pathway(initialized_db, root, nxt, 1, alice)

        with pytest.raises(ConflictError, match="Cannot create duplicate pathways"):
            create_pathway(initialized_db, root, nxt, 5, alice)
        assert len(crud.list_pathways(initialized_db)) == 1

    def test_immersive_only_as_root(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test an immersive course cannot be a next step."""
        root = make_course("Root", "immersive")
        other = make_course("Other Root", "immersive")
        with pytest.raises(InvalidOperationError, match="entry points"):
            create_pathway(initialized_db, root, other, 1, alice)

    def test_cycle_rejected(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test closing a loop is rejected and nothing is written."""
        root = make_course("Root", "immersive")
        a = make_course("A")
        b = make_course("B")
        create_pathway(initialized_db, root, a, 1, alice)
        create_pathway(initialized_db, a, b, 1, alice)

        with pytest.raises(InvalidOperationError, match="circular dependency"):
            create_pathway(initialized_db, b, a, 1, alice)
        assert len(crud.list_pathways(initialized_db)) == 2
        assert len(list_audit_logs(initialized_db)) == 2

    def test_depth_limit(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test ten levels below the root are allowed and the eleventh is not."""
        ids = [make_course("Root", "immersive")] + [make_course(f"Level {i}") for i in range(1, 12)]

        for prereq, nxt in zip(ids[:10], ids[1:11]):
            create_pathway(initialized_db, prereq, nxt, 1, alice)

        with pytest.raises(InvalidOperationError, match="maximum pathway depth of 10"):
            create_pathway(initialized_db, ids[10], ids[11], 1, alice)

    def test_custom_depth_limit(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test max_depth is configurable."""
        root = make_course("Root", "immersive")
        a = make_course("A")
        b = make_course("B")
        create_pathway(initialized_db, root, a, 1, alice, max_depth=1)

        with pytest.raises(InvalidOperationError, match="maximum pathway depth of 1"):
            create_pathway(initialized_db, a, b, 1, alice, max_depth=1)

    def test_prerequisite_must_trace_to_immersive(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test an unrooted prerequisite is rejected."""
        loose = make_course("Loose")
        nxt = make_course("Next")
        with pytest.raises(InvalidOperationError, match="does not have a path"):
            create_pathway(initialized_db, loose, nxt, 1, alice)

    def test_missing_course(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test unknown courses raise NotFoundError."""
        root = make_course("Root", "immersive")
        with pytest.raises(NotFoundError, match="Course not found: 999"):
            create_pathway(initialized_db, root, 999, 1, alice)

    def test_order_must_be_positive(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test a zero order is rejected before any write."""
        root = make_course("Root", "immersive")
        nxt = make_course("Next")
        with pytest.raises(InvalidOperationError, match="positive integer"):
            create_pathway(initialized_db, root, nxt, 0, alice)
        assert crud.list_pathways(initialized_db) == []

    def test_audit_failure_does_not_block(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test the edge is kept when the audit write fails."""
        root = make_course("Root", "immersive")
        nxt = make_course("Next")
        initialized_db.execute("DROP TABLE audit_logs")

        row = create_pathway(initialized_db, root, nxt, 1, alice)
        assert crud.get_pathway(initialized_db, row["id"]) is not None


class TestDeletePathway:
    """Tests for engine.delete_pathway."""

    def test_delete_leaf_edge(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test an edge without dependents is deleted and audited."""
        root = make_course("Root", "immersive")
        nxt = make_course("Next")
        pid = create_pathway(initialized_db, root, nxt, 1, alice)["id"]

        deleted = delete_pathway(initialized_db, pid, alice)

        assert deleted["id"] == pid
        assert crud.get_pathway(initialized_db, pid) is None
        actions = [log["action"] for log in get_audit_logs_for_entity(initialized_db, "pathway", pid)]
        assert actions == ["delete", "create"]

    def test_delete_blocked_without_alternative(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test stranding a course with dependents is rejected until an alternative exists."""
        root = make_course("Root", "immersive")
        other_root = make_course("Other Root", "immersive")
        a = make_course("A")
        b = make_course("B")
        first = create_pathway(initialized_db, root, a, 1, alice)["id"]
        create_pathway(initialized_db, a, b, 1, alice)

        with pytest.raises(InvalidOperationError, match="no alternative incoming pathways"):
            delete_pathway(initialized_db, first, alice)

        create_pathway(initialized_db, other_root, a, 1, alice)
        delete_pathway(initialized_db, first, alice)
        assert crud.get_pathway(initialized_db, first) is None

    def test_delete_forbidden_leaves_no_trace(
        self,
        initialized_db: CatalogDB,
        make_course: Callable[..., int],
        alice: Actor,
        bob: Actor,
    ) -> None:
        """Test a non-creator cannot delete and nothing is written."""
        root = make_course("Root", "immersive")
        nxt = make_course("Next")
        pid = create_pathway(initialized_db, root, nxt, 1, alice)["id"]

        with pytest.raises(ForbiddenError, match=r"Only the creator \(alice\)"):
            delete_pathway(initialized_db, pid, bob)

        assert crud.get_pathway(initialized_db, pid) is not None
        assert len(list_audit_logs(initialized_db)) == 1

    def test_global_admin_may_delete(
        self,
        initialized_db: CatalogDB,
        make_course: Callable[..., int],
        alice: Actor,
        global_admin: Actor,
    ) -> None:
        """Test global admins bypass the ownership rule."""
        root = make_course("Root", "immersive")
        nxt = make_course("Next")
        pid = create_pathway(initialized_db, root, nxt, 1, alice)["id"]

        delete_pathway(initialized_db, pid, global_admin)
        logs = get_audit_logs_for_entity(initialized_db, "pathway", pid)
        assert logs[0]["admin_username"] == "admin-global"

    def test_delete_missing(self, initialized_db: CatalogDB, alice: Actor) -> None:
        """Test deleting an unknown edge raises NotFoundError."""
        with pytest.raises(NotFoundError, match="Pathway not found: 5"):
            delete_pathway(initialized_db, 5, alice)


class TestUpdatePathwayOrder:
    """Tests for engine.update_pathway_order."""

    def test_reorder(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test the order changes and the audit records old and new values."""
        root = make_course("Root", "immersive")
        nxt = make_course("Next")
        pid = create_pathway(initialized_db, root, nxt, 1, alice)["id"]

        updated = update_pathway_order(initialized_db, pid, 3, alice)

        assert updated["order"] == 3
        latest = get_audit_logs_for_entity(initialized_db, "pathway", pid)[0]
        assert latest["change_description"] == "Updated pathway order: Root → Next (order: 1 → 3)"

    def test_reorder_rejects_non_positive(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test order must stay positive."""
        root = make_course("Root", "immersive")
        nxt = make_course("Next")
        pid = create_pathway(initialized_db, root, nxt, 1, alice)["id"]

        with pytest.raises(InvalidOperationError):
            update_pathway_order(initialized_db, pid, -1, alice)
        assert crud.get_pathway(initialized_db, pid)["order"] == 1  # type: ignore[index]

    def test_reorder_forbidden(
        self,
        initialized_db: CatalogDB,
        make_course: Callable[..., int],
        alice: Actor,
        bob: Actor,
    ) -> None:
        """Test only the creator or a global admin may reorder."""
        root = make_course("Root", "immersive")
        nxt = make_course("Next")
        pid = create_pathway(initialized_db, root, nxt, 1, alice)["id"]

        with pytest.raises(ForbiddenError):
            update_pathway_order(initialized_db, pid, 2, bob)


class TestDeleteImpact:
    """Tests for engine.get_delete_impact."""

    def test_impact_of_middle_course(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test touching pathways and orphans are listed."""
        root = make_course("Root", "immersive")
        a = make_course("A")
        b = make_course("B")
        create_pathway(initialized_db, root, a, 1, alice)
        create_pathway(initialized_db, a, b, 1, alice)

        impact = get_delete_impact(initialized_db, a)

        assert impact.can_delete is False
        assert impact.requires_cascade is True
        assert [p["description"] for p in impact.affected_pathways] == [
            '"Root" → "A"',
            '"A" → "B"',
        ]
        assert impact.orphaned_courses == [{"id": b, "course_id": f"CRS-{b}", "course_name": "B"}]
        assert impact.to_dict()["course_name"] == "A"

    def test_impact_reports_courses_stranded_below_next_steps(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test a course whose only other prerequisite also depends on the course is listed."""
        root = make_course("Root", "immersive")
        c = make_course("C")
        e = make_course("E")
        d = make_course("D")
        create_pathway(initialized_db, root, c, 1, alice)
        create_pathway(initialized_db, c, e, 1, alice)
        create_pathway(initialized_db, e, d, 1, alice)
        create_pathway(initialized_db, c, d, 2, alice)

        impact = get_delete_impact(initialized_db, c)

        assert [o["course_name"] for o in impact.orphaned_courses] == ["E", "D"]

    def test_impact_of_unused_course(
        self, initialized_db: CatalogDB, make_course: Callable[..., int]
    ) -> None:
        """Test a course without pathways can be deleted directly."""
        cid = make_course("Alone")
        impact = get_delete_impact(initialized_db, cid)
        assert impact.can_delete is True
        assert impact.affected_pathways == []

    def test_impact_missing_course(self, initialized_db: CatalogDB) -> None:
        """Test unknown courses raise NotFoundError."""
        with pytest.raises(NotFoundError):
            get_delete_impact(initialized_db, 77)

    def test_impact_is_read_only(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test previewing changes nothing."""
        root = make_course("Root", "immersive")
        a = make_course("A")
        create_pathway(initialized_db, root, a, 1, alice)
        before = load_snapshot(initialized_db)

        get_delete_impact(initialized_db, root)
        assert load_snapshot(initialized_db) == before


class TestDeleteCourseCascade:
    """Tests for engine.delete_course_cascade."""

    def test_delete_unused_course(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test deleting a course without pathways."""
        cid = make_course("Alone")
        deleted = delete_course_cascade(initialized_db, cid, alice)

        assert deleted["course_name"] == "Alone"
        assert crud.get_course(initialized_db, cid) is None
        logs = get_audit_logs_for_entity(initialized_db, "course", cid)
        assert logs[0]["change_description"] == 'Deleted course "Alone"'

    def test_requires_cascade(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test touching pathways block deletion without cascade."""
        root = make_course("Root", "immersive")
        a = make_course("A")
        create_pathway(initialized_db, root, a, 1, alice)

        with pytest.raises(PreconditionFailedError, match="Enable cascade delete") as exc_info:
            delete_course_cascade(initialized_db, a, alice)

        assert exc_info.value.affected == ['"Root" → "A"']
        assert crud.get_course(initialized_db, a) is not None

    def test_cascade_removes_edges_and_audits_each(
        self, initialized_db: CatalogDB, make_course: Callable[..., int], alice: Actor
    ) -> None:
        """Test cascade deletes every touching edge and records one audit per removal."""
        root = make_course("Root", "immersive")
        a = make_course("A")
        b = make_course("B")
        create_pathway(initialized_db, root, a, 1, alice)
        create_pathway(initialized_db, a, b, 1, alice)
        role = create_job_role(initialized_db, "Analyst")
        set_course_job_roles(initialized_db, a, [role["id"]])

        delete_course_cascade(initialized_db, a, alice, cascade=True)

        assert crud.get_course(initialized_db, a) is None
        assert crud.list_pathways(initialized_db) == []
        assert get_job_roles_for_course(initialized_db, a) == []
        deletes = [log for log in list_audit_logs(initialized_db) if log["action"] == "delete"]
        assert len(deletes) == 3
        assert sum(
            "(cascade from course deletion)" in log["change_description"] for log in deletes
        ) == 2

    def test_forbidden_for_other_admin(
        self,
        initialized_db: CatalogDB,
        make_course: Callable[..., int],
        bob: Actor,
    ) -> None:
        """Test a non-creator cannot delete a course."""
        cid = make_course("Alice's course")
        with pytest.raises(ForbiddenError):
            delete_course_cascade(initialized_db, cid, bob, cascade=True)
        assert crud.get_course(initialized_db, cid) is not None
        assert list_audit_logs(initialized_db) == []

    def test_missing_course(self, initialized_db: CatalogDB, alice: Actor) -> None:
        """Test deleting an unknown course raises NotFoundError."""
        with pytest.raises(NotFoundError, match="Course not found: 12"):
            delete_course_cascade(initialized_db, 12, alice)
