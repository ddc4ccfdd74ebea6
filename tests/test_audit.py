"""Tests for coursepath.audit module."""

from __future__ import annotations

import pytest

from coursepath.audit import get_audit_logs_for_entity, list_audit_logs, record_audit
from coursepath.authorization import Actor
from coursepath.database import CatalogDB


class TestRecordAudit:
    """Tests for record_audit function."""

    def test_record_audit(self, initialized_db: CatalogDB, alice: Actor) -> None:
        """Test a record stores every field plus a timestamp."""
        row = record_audit(initialized_db, alice, "create", "course", 1, "Python", "Created course")

        assert row is not None
        assert row["admin_username"] == "alice"
        assert row["action"] == "create"
        assert row["entity_type"] == "course"
        assert row["entity_id"] == 1
        assert row["entity_name"] == "Python"
        assert row["change_description"] == "Created course"
        assert row["timestamp"]

    def test_invalid_action(self, initialized_db: CatalogDB, alice: Actor) -> None:
        """Test unknown actions are rejected."""
        with pytest.raises(ValueError, match="Invalid audit action"):
            record_audit(initialized_db, alice, "rename", "course", 1, "x", "y")

    def test_invalid_entity_type(self, initialized_db: CatalogDB, alice: Actor) -> None:
        """Test unknown entity types are rejected."""
        with pytest.raises(ValueError, match="Invalid audit entity type"):
            record_audit(initialized_db, alice, "create", "user", 1, "x", "y")

    def test_store_failure_returns_none(self, initialized_db: CatalogDB, alice: Actor) -> None:
        """Test a failing insert is swallowed and reported as None."""
        initialized_db.execute("DROP TABLE audit_logs")
        assert record_audit(initialized_db, alice, "create", "course", 1, "x", "y") is None


class TestListAuditLogs:
    """Tests for audit queries."""

    def test_newest_first_with_limit(self, initialized_db: CatalogDB, alice: Actor) -> None:
        """Test records are listed newest first and limited."""
        for i in range(3):
            record_audit(initialized_db, alice, "create", "domain", i, f"D{i}", "Created")

        logs = list_audit_logs(initialized_db, limit=2)
        assert [log["entity_id"] for log in logs] == [2, 1]

    def test_logs_for_entity(self, initialized_db: CatalogDB, alice: Actor, bob: Actor) -> None:
        """Test filtering records by entity."""
        record_audit(initialized_db, alice, "create", "course", 7, "A", "Created")
        record_audit(initialized_db, bob, "update", "course", 7, "A", "Updated")
        record_audit(initialized_db, alice, "create", "course", 8, "B", "Created")

        logs = get_audit_logs_for_entity(initialized_db, "course", 7)
        assert [log["action"] for log in logs] == ["update", "create"]
        assert get_audit_logs_for_entity(initialized_db, "pathway", 7) == []
