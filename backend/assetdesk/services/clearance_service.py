# Overview: Outstanding-assignment checks and account activation.

"""
Clearance

INVARIANT: An employee or monitor account is deactivated only when it holds
zero unreturned assignments. The check and the flag flip happen in the same
transaction, and bulk deactivation is all-or-nothing: the first account that
fails clearance aborts the batch with nothing changed.

Deactivation also closes the account's pending requests (rejected with an
"Account deactivated" remark) so nothing can be approved onto it later.
"""

from __future__ import annotations

from sqlalchemy import func, update

from ..extensions import db
from ..models import User, ProductAssignment, ProductRequest
from ..errors import NotFoundError, OutstandingAssignmentsError, PermissionDeniedError, ValidationError
from . import notification_service, session_service
from .concurrency import run_in_transaction
from .workflow_service import REQUEST_STATUS_PENDING, REQUEST_STATUS_REJECTED, load_actor
from assetdesk.time_utils import utcnow

DEACTIVATED_REMARK = "Account deactivated"


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def count_outstanding(user_id: int) -> int:
    user = _get_user(user_id)
    if user.employee is None:
        return 0
    return db.session.query(func.count(ProductAssignment.id)).filter(
        ProductAssignment.employee_id == user.employee.id,
        ProductAssignment.is_returned.is_(False),
    ).scalar() or 0


def get_clearance_status(user_id: int) -> dict:
    """
    Summarize what an account still holds.

    Returns:
        dict with user, totals (assigned/returned/outstanding/percentage),
        can_deactivate, and the assignment list (newest first)
    """
    user = _get_user(user_id)
    assignments = []
    if user.employee is not None:
        assignments = db.session.query(ProductAssignment).filter(
            ProductAssignment.employee_id == user.employee.id
        ).order_by(ProductAssignment.assigned_at.desc(), ProductAssignment.id.desc()).all()

    total = len(assignments)
    returned = sum(1 for a in assignments if a.is_returned)
    outstanding = total - returned
    percentage = round(returned * 100.0 / total, 1) if total else 100.0

    return {
        "user": user.to_dict(),
        "total_assigned": total,
        "total_returned": returned,
        "outstanding": outstanding,
        "clearance_percentage": percentage,
        "can_deactivate": outstanding == 0,
        "assignments": [a.to_dict() for a in assignments],
    }


def require_clearance(user_id: int) -> None:
    """
    Raises:
        OutstandingAssignmentsError: the user holds unreturned products (with count)
    """
    count = count_outstanding(user_id)
    if count:
        raise OutstandingAssignmentsError(user_id, count)


def _close_pending_requests(user: User, actor: User) -> int:
    if user.employee is None:
        return 0
    result = db.session.execute(
        update(ProductRequest)
        .where(
            ProductRequest.employee_id == user.employee.id,
            ProductRequest.status == REQUEST_STATUS_PENDING,
        )
        .values(
            status=REQUEST_STATUS_REJECTED,
            processed_by=actor.id,
            processed_at=utcnow(),
            remarks=DEACTIVATED_REMARK,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def _apply_active(user: User, active: bool, actor: User) -> None:
    if not active:
        require_clearance(user.id)
        _close_pending_requests(user, actor)
    user.is_active = active
    if user.employee is not None:
        user.employee.is_active = active
    if not active:
        session_service.revoke_all_user_sessions(user.id, reason="Account deactivated", commit=False)


def set_user_active(user_id: int, active: bool, actor_id: int) -> User:
    """
    Activate or deactivate one account.

    Raises:
        PermissionDeniedError: Actor is not an admin, or deactivating themselves
        NotFoundError: Unknown user
        OutstandingAssignmentsError: Deactivation with unreturned products
    """
    actor = load_actor(actor_id, "manage_accounts")
    if not active and actor.id == user_id:
        raise PermissionDeniedError("You cannot deactivate your own account")

    def _op():
        user = _get_user(user_id)
        _apply_active(user, active, actor)
        return user

    user = run_in_transaction(_op)
    notification_service.account_status_changed(user, actor, active)
    return user


def bulk_set_active(user_ids: list[int], active: bool, actor_id: int) -> list[User]:
    """All-or-nothing version of set_user_active."""
    actor = load_actor(actor_id, "manage_accounts")
    if not user_ids:
        raise ValidationError("user_ids must be a non-empty list")
    unique_ids = list(dict.fromkeys(user_ids))
    if not active and actor.id in unique_ids:
        raise PermissionDeniedError("You cannot deactivate your own account")

    def _op():
        users = []
        for uid in unique_ids:
            user = _get_user(uid)
            _apply_active(user, active, actor)
            users.append(user)
        return users

    users = run_in_transaction(_op)
    for user in users:
        notification_service.account_status_changed(user, actor, active)
    return users
