# Overview: Best-effort append-only audit log sink.

"""
Audit Log Sink

WHY: Every administrative action (deposits, confirmations, adjustments,
permission changes) leaves an attributable trail.

INVARIANTS:
- Append-only: entries are never updated or deleted.
- Written AFTER the audited unit of work has committed, in its own commit.
- Best effort: a failed write is logged and dropped. It must never undo or
  fail the action being audited.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import AuditLog


def record(
    action: str,
    entity_type: str,
    entity_id,
    metadata: dict | None = None,
    *,
    actor_user_id: int | None = None,
) -> AuditLog | None:
    """
    Append an audit entry.

    Returns the entry, or None when the write failed.
    """
    try:
        entry = AuditLog(
            actor_user_id=actor_user_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            metadata_json=metadata or {},
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except Exception:
        db.session.rollback()
        current_app.logger.warning(
            "Audit log write failed: action=%s entity=%s:%s",
            action,
            entity_type,
            entity_id,
            exc_info=True,
        )
        return None


def list_entries(
    *,
    entity_type: str | None = None,
    entity_id=None,
    action: str | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    """Newest-first audit entries, optionally filtered."""
    query = db.session.query(AuditLog)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditLog.entity_id == str(entity_id))
    if action:
        query = query.filter(AuditLog.action == action)
    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
