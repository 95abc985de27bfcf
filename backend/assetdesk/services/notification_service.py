# Overview: Post-commit side effects (live feed, activity log, email) for workflow events.

"""
Notification fan-out.

LIFECYCLE: Every function here runs AFTER the workflow transaction has
committed. Each collaborator is called independently; a failure in one is
logged at WARNING and swallowed so it can neither roll back the committed
change nor stop the remaining collaborators.
"""

from __future__ import annotations

from flask import current_app

from . import activity_service, email_service
from .live_feed import broadcaster


def _safely(label: str, func, *args, **kwargs):
    try:
        return func(*args, **kwargs)
    except Exception as exc:  # side effects never propagate
        current_app.logger.warning("Side effect %s failed: %s", label, exc)
        return None


def _publish(event_type: str, message: str, data: dict | None = None):
    return _safely(f"live_feed:{event_type}", broadcaster.publish, event_type, message, data)


def _activity(user_id, action, entity_type=None, entity_id=None, details=None):
    return _safely(f"activity:{action}", activity_service.log_activity,
                   user_id, action, entity_type, entity_id, details)


def _email(label: str, func, *args, **kwargs):
    return _safely(f"email:{label}", func, *args, **kwargs)


def _holder(assignment_or_request):
    employee = assignment_or_request.employee
    return employee.user if employee else None


# =============================================================================
# REQUESTS
# =============================================================================

def request_submitted(req, actor) -> None:
    product_name = req.product.name if req.product else f"#{req.product_id}"
    _publish(
        "request_submitted",
        f'New request for "{product_name}" submitted by {actor.full_name}',
        {"request_id": req.id, "product_id": req.product_id, "quantity": req.quantity},
    )
    _activity(actor.id, "request_submitted", "product_request", req.id,
              f"product={req.product_id} quantity={req.quantity}")


def request_processed(req, actor, assignment=None) -> None:
    approved = req.status == "approved"
    product_name = req.product.name if req.product else f"#{req.product_id}"
    holder = _holder(req)

    event_type = "request_approved" if approved else "request_rejected"
    _publish(
        event_type,
        f'Request for "{product_name}" {req.status} by {actor.full_name}',
        {"request_id": req.id, "product_id": req.product_id},
    )
    if assignment is not None:
        product_assigned(assignment, actor, log=False)

    _activity(actor.id, event_type, "product_request", req.id, req.remarks)

    if holder is not None:
        _email("request_decision", email_service.send_request_decision,
               holder.email, holder.full_name, product_name, approved, req.remarks)


def request_cancelled(req, actor) -> None:
    _activity(actor.id, "request_cancelled", "product_request", req.id, req.remarks)


def request_reactivated(req, actor) -> None:
    _activity(actor.id, "request_reactivated", "product_request", req.id)


# =============================================================================
# ASSIGNMENTS / RETURNS / EXTENSIONS
# =============================================================================

def product_assigned(assignment, actor, log: bool = True) -> None:
    product_name = assignment.product.name if assignment.product else f"#{assignment.product_id}"
    holder = _holder(assignment)
    holder_name = holder.full_name if holder else f"employee #{assignment.employee_id}"
    _publish(
        "product_assigned",
        f'Product "{product_name}" assigned to {holder_name} by {actor.full_name}',
        {"assignment_id": assignment.id, "product_id": assignment.product_id,
         "quantity": assignment.quantity},
    )
    if log:
        _activity(actor.id, "product_assigned", "product_assignment", assignment.id,
                  f"product={assignment.product_id} employee={assignment.employee_id} "
                  f"quantity={assignment.quantity}")


def return_requested(assignment, actor) -> None:
    product_name = assignment.product.name if assignment.product else f"#{assignment.product_id}"
    _publish(
        "return_requested",
        f'Return of "{product_name}" requested by {actor.full_name}',
        {"assignment_id": assignment.id, "product_id": assignment.product_id},
    )
    _activity(actor.id, "return_requested", "product_assignment", assignment.id)


def return_processed(assignment, actor, approved: bool) -> None:
    product_name = assignment.product.name if assignment.product else f"#{assignment.product_id}"
    holder = _holder(assignment)
    if approved:
        _publish(
            "product_returned",
            f'Product "{product_name}" returned to {actor.full_name}',
            {"assignment_id": assignment.id, "product_id": assignment.product_id,
             "quantity": assignment.quantity},
        )
    else:
        _publish(
            "return_rejected",
            f'Return of "{product_name}" rejected by {actor.full_name}',
            {"assignment_id": assignment.id, "product_id": assignment.product_id},
        )
    _activity(actor.id, "return_approved" if approved else "return_rejected",
              "product_assignment", assignment.id, assignment.return_remarks)
    if holder is not None:
        _email("return_decision", email_service.send_return_decision,
               holder.email, holder.full_name, product_name, approved, assignment.return_remarks)


def extension_requested(assignment, actor) -> None:
    product_name = assignment.product.name if assignment.product else f"#{assignment.product_id}"
    _publish(
        "extension_requested",
        f'Extension for "{product_name}" requested by {actor.full_name}',
        {"assignment_id": assignment.id, "new_return_date": str(assignment.new_return_date)},
    )
    _activity(actor.id, "extension_requested", "product_assignment", assignment.id,
              assignment.extension_reason)


def extension_processed(assignment, actor) -> None:
    approved = assignment.extension_status == "approved"
    product_name = assignment.product.name if assignment.product else f"#{assignment.product_id}"
    holder = _holder(assignment)
    event_type = "extension_approved" if approved else "extension_rejected"
    _publish(
        event_type,
        f'Extension for "{product_name}" {assignment.extension_status} by {actor.full_name}',
        {"assignment_id": assignment.id},
    )
    _activity(actor.id, event_type, "product_assignment", assignment.id, assignment.extension_remarks)
    if holder is not None:
        return_date = assignment.return_date.isoformat() if assignment.return_date else None
        _email("extension_decision", email_service.send_extension_decision,
               holder.email, holder.full_name, product_name, approved, return_date,
               assignment.extension_remarks)


# =============================================================================
# CATALOG / ACCOUNTS
# =============================================================================

def product_added(product, actor) -> None:
    _publish("product_added", f'New product "{product.name}" added by {actor.full_name}',
             {"product_id": product.id, "quantity": product.quantity})
    _activity(actor.id, "product_added", "product", product.id, product.name)


def product_updated(product, actor, details: str | None = None) -> None:
    _publish("product_updated", f'Product "{product.name}" updated by {actor.full_name}',
             {"product_id": product.id, "quantity": product.quantity})
    _activity(actor.id, "product_updated", "product", product.id, details)


def user_registered(registration) -> None:
    _publish("user_registered", f"New registration request from {registration.full_name}",
             {"registration_id": registration.id, "username": registration.username})
    _activity(None, "user_registered", "registration_request", registration.id, registration.username)


def registration_processed(registration, actor) -> None:
    approved = registration.status == "approved"
    _activity(actor.id, f"registration_{registration.status}", "registration_request", registration.id,
              registration.username)
    _email("registration_decision", email_service.send_registration_decision,
           registration.email, registration.full_name, registration.username, approved)


def account_status_changed(user, actor, active: bool) -> None:
    _activity(actor.id, "user_activated" if active else "user_deactivated", "user", user.id, user.username)


def monitor_changed(user, actor, appointed: bool) -> None:
    _activity(actor.id if actor else None, "monitor_assigned" if appointed else "monitor_unassigned",
              "user", user.id, user.username)


def password_reset_requested(user, reset_link: str, valid_minutes: int) -> None:
    _activity(user.id, "password_reset_requested", "user", user.id, user.username)
    _email("password_reset", email_service.send_password_reset,
           user.email, user.full_name, reset_link, valid_minutes)


def password_reset_completed(user) -> None:
    _activity(user.id, "password_reset", "user", user.id, user.username)
