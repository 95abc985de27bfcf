# Overview: Best-effort activity log writes and queries.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import ActivityLog


def log_activity(user_id: int | None, action: str, entity_type: str | None = None,
                 entity_id: int | None = None, details: str | None = None) -> ActivityLog | None:
    """
    Append an ActivityLog row in its own commit.

    Called after the business transaction committed. A failure is rolled
    back, logged, and dropped; returns None in that case.
    """
    entry = ActivityLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
    )
    try:
        db.session.add(entry)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning("Failed to write activity log %s: %s", action, exc)
        return None
    return entry


def recent_activity(limit: int = 50, user_id: int | None = None, action: str | None = None) -> list[ActivityLog]:
    query = db.session.query(ActivityLog)
    if user_id is not None:
        query = query.filter(ActivityLog.user_id == user_id)
    if action:
        query = query.filter(ActivityLog.action == action)
    return query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit).all()
