# Overview: Periodic pending-work reminder for monitors.

"""
Reminder Job

Read-only: counts pending product requests, pending returns and pending
extensions, then emails every active monitor if anything is waiting.
Run from cron through ``flask reminders send``; suggested schedule is
``0 9,11,13,15,17 * * 1-5`` (every two hours during working days).
"""

from __future__ import annotations

from dataclasses import dataclass, asdict

from flask import current_app

from ..extensions import db
from ..models import User, ProductRequest, ProductAssignment
from ..permissions import ROLE_MONITOR
from . import email_service


@dataclass
class PendingCounts:
    pending_requests: int
    pending_returns: int
    pending_extensions: int

    @property
    def total(self) -> int:
        return self.pending_requests + self.pending_returns + self.pending_extensions


def pending_counts() -> PendingCounts:
    return PendingCounts(
        pending_requests=db.session.query(ProductRequest).filter(ProductRequest.status == "pending").count(),
        pending_returns=db.session.query(ProductAssignment).filter(
            ProductAssignment.is_returned.is_(False),
            ProductAssignment.return_status == "requested",
        ).count(),
        pending_extensions=db.session.query(ProductAssignment).filter(
            ProductAssignment.is_returned.is_(False),
            ProductAssignment.extension_status == "requested",
        ).count(),
    )


def monitor_emails() -> list[str]:
    rows = db.session.query(User.email).filter(
        User.role == ROLE_MONITOR,
        User.is_active.is_(True),
    ).order_by(User.id.asc()).all()
    return [r[0] for r in rows if r[0]]


def send_pending_reminders() -> dict:
    """
    Returns:
        dict with the counts, recipient list, and whether mail was sent
    """
    counts = pending_counts()
    result = {**asdict(counts), "total": counts.total, "recipients": [], "sent": False}

    if not current_app.config.get("REMINDER_ENABLED", True):
        current_app.logger.info("Reminders disabled; skipping")
        return result

    if counts.total == 0:
        current_app.logger.info("No pending items; no reminder sent")
        return result

    recipients = monitor_emails()
    result["recipients"] = recipients
    if not recipients:
        current_app.logger.warning("%s pending item(s) but no active monitors to remind", counts.total)
        return result

    result["sent"] = email_service.send_pending_reminder(
        recipients, counts.pending_requests, counts.pending_returns, counts.pending_extensions,
    )
    return result
