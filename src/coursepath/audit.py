"""Audit recorder for catalog mutations.

Audit rows are append-only. Recording is best effort: a failed insert is
logged and swallowed so it never blocks or undoes the mutation it describes.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Any

from coursepath.authorization import Actor
from coursepath.database import CatalogDB
from coursepath.logging import get_logger

logger = get_logger(__name__)

AUDIT_ACTIONS = ("create", "update", "delete")
AUDIT_ENTITY_TYPES = ("course", "pathway", "domain", "job_role")


def record_audit(
    db: CatalogDB,
    actor: Actor,
    action: str,
    entity_type: str,
    entity_id: int,
    entity_name: str,
    change_description: str,
) -> dict[str, Any] | None:
    """Append an audit record.

    Args:
        db: Database connection.
        actor: User who performed the mutation.
        action: One of AUDIT_ACTIONS.
        entity_type: One of AUDIT_ENTITY_TYPES.
        entity_id: Id of the mutated entity.
        entity_name: Readable name of the mutated entity.
        change_description: Sentence describing the change.

    Returns:
        The stored audit row, or None if the insert failed.

    Raises:
        ValueError: If action or entity_type is unknown.
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Invalid audit action: {action}")
    if entity_type not in AUDIT_ENTITY_TYPES:
        raise ValueError(f"Invalid audit entity type: {entity_type}")

    try:
        new_id = db.insert(
            """
            INSERT INTO audit_logs (
                admin_username, action, entity_type, entity_id,
                entity_name, change_description, timestamp
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                actor.username,
                action,
                entity_type,
                entity_id,
                entity_name,
                change_description,
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        row = db.fetchone("SELECT * FROM audit_logs WHERE id = ?", (new_id,))
    except sqlite3.Error as e:
        logger.error(
            "audit_write_failed",
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            error=str(e),
        )
        return None

    return dict(row) if row is not None else None


def list_audit_logs(db: CatalogDB, limit: int = 100) -> list[dict[str, Any]]:
    """List the most recent audit records, newest first."""
    results = db.fetchall(
        "SELECT * FROM audit_logs ORDER BY timestamp DESC, id DESC LIMIT ?",
        (limit,),
    )
    return [dict(row) for row in results]


def get_audit_logs_for_entity(
    db: CatalogDB, entity_type: str, entity_id: int
) -> list[dict[str, Any]]:
    """List audit records for one entity, newest first."""
    results = db.fetchall(
        """
        SELECT * FROM audit_logs
        WHERE entity_type = ? AND entity_id = ?
        ORDER BY timestamp DESC, id DESC
        """,
        (entity_type, entity_id),
    )
    return [dict(row) for row in results]
