"""Audit entries for billing mutations."""

from __future__ import annotations

from sqlalchemy.orm import Session

from studioflow.models.activity_log import ActivityLog


def log_activity(
    db: Session,
    *,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    actor_id: int | None = None,
    details: dict | None = None,
    commit: bool = False,
) -> ActivityLog:
    """
    Record an audit entry.

    By default the entry is only added to the session so it commits (or rolls back)
    together with the mutation it describes.
    """
    entry = ActivityLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        details=details,
    )
    db.add(entry)
    if commit:
        db.commit()
        db.refresh(entry)
    return entry


def list_activity(db: Session, *, entity_type: str | None = None, entity_id: int | None = None) -> list[ActivityLog]:
    q = db.query(ActivityLog)
    if entity_type is not None:
        q = q.filter(ActivityLog.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(ActivityLog.entity_id == entity_id)
    return q.order_by(ActivityLog.id.asc()).all()
