# Overview: Flask API routes for admin account management, registrations, monitors, and clearance.

# backend/assetdesk/routes/admin.py
"""
Admin API routes

All endpoints require the admin role. Business rules (clearance before
deactivation, monitor limit, registration state) live in the services.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import WorkflowError
from ..decorators import require_auth, require_role
from ..permissions import ROLE_ADMIN
from ..validation import parse_bool
from ..services import account_service, clearance_service, reminder_service


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _error(e: WorkflowError):
    return jsonify(e.to_dict()), e.status_code


def _server_error(label: str):
    current_app.logger.exception("Failed to %s", label)
    return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# USERS
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    active = request.args.get("active")
    users = account_service.list_users(
        role=request.args.get("role"),
        active=parse_bool(active) if active is not None else None,
    )
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)})


@admin_bp.post("/users")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    data = request.get_json(silent=True) or {}
    try:
        user = account_service.create_account(
            actor_id=g.current_user.id,
            username=data.get("username"),
            email=data.get("email"),
            password=data.get("password"),
            full_name=data.get("full_name"),
            role=data.get("role", "employee"),
            department_id=data.get("department_id"),
            monitor_end_date=data.get("end_date"),
        )
        return jsonify({"user": user.to_dict()}), 201
    except WorkflowError as e:
        return _error(e)
    except Exception:
        return _server_error("create user")


@admin_bp.get("/users/<int:user_id>/clearance")
@require_auth
@require_role(ROLE_ADMIN)
def clearance_route(user_id: int):
    try:
        return jsonify(clearance_service.get_clearance_status(user_id))
    except WorkflowError as e:
        return _error(e)


@admin_bp.post("/users/<int:user_id>/deactivate")
@require_auth
@require_role(ROLE_ADMIN)
def deactivate_user_route(user_id: int):
    try:
        user = clearance_service.set_user_active(user_id, False, g.current_user.id)
        return jsonify({"user": user.to_dict()})
    except WorkflowError as e:
        return _error(e)
    except Exception:
        return _server_error(f"deactivate user {user_id}")


@admin_bp.post("/users/<int:user_id>/activate")
@require_auth
@require_role(ROLE_ADMIN)
def activate_user_route(user_id: int):
    try:
        user = clearance_service.set_user_active(user_id, True, g.current_user.id)
        return jsonify({"user": user.to_dict()})
    except WorkflowError as e:
        return _error(e)
    except Exception:
        return _server_error(f"activate user {user_id}")


@admin_bp.post("/users/bulk-status")
@require_auth
@require_role(ROLE_ADMIN)
def bulk_status_route():
    """
    Body: {"user_ids": [..], "active": false}

    All-or-nothing: one user failing clearance aborts the whole batch.
    """
    data = request.get_json(silent=True) or {}
    user_ids = data.get("user_ids")
    if not isinstance(user_ids, list) or not all(
        isinstance(i, int) and not isinstance(i, bool) for i in user_ids
    ):
        return jsonify({"error": "user_ids must be a list of integers"}), 400
    if "active" not in data:
        return jsonify({"error": "active is required"}), 400

    try:
        users = clearance_service.bulk_set_active(user_ids, parse_bool(data.get("active")), g.current_user.id)
        return jsonify({"items": [u.to_dict() for u in users], "count": len(users)})
    except WorkflowError as e:
        return _error(e)
    except Exception:
        return _server_error("update user status in bulk")


# =============================================================================
# REGISTRATIONS
# =============================================================================

@admin_bp.get("/registrations")
@require_auth
@require_role(ROLE_ADMIN)
def list_registrations_route():
    items = account_service.list_registrations(status=request.args.get("status"))
    return jsonify({"items": [r.to_dict() for r in items], "count": len(items)})


@admin_bp.post("/registrations/<int:registration_id>/approve")
@require_auth
@require_role(ROLE_ADMIN)
def approve_registration_route(registration_id: int):
    try:
        user = account_service.approve_registration(registration_id, g.current_user.id)
        return jsonify({"user": user.to_dict()}), 201
    except WorkflowError as e:
        return _error(e)
    except Exception:
        return _server_error(f"approve registration {registration_id}")


@admin_bp.post("/registrations/<int:registration_id>/reject")
@require_auth
@require_role(ROLE_ADMIN)
def reject_registration_route(registration_id: int):
    try:
        registration = account_service.reject_registration(registration_id, g.current_user.id)
        return jsonify({"registration": registration.to_dict()})
    except WorkflowError as e:
        return _error(e)


@admin_bp.post("/registrations/<int:registration_id>/reactivate")
@require_auth
@require_role(ROLE_ADMIN)
def reactivate_registration_route(registration_id: int):
    try:
        registration = account_service.reactivate_registration(registration_id, g.current_user.id)
        return jsonify({"registration": registration.to_dict()})
    except WorkflowError as e:
        return _error(e)


@admin_bp.delete("/registrations/<int:registration_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_registration_route(registration_id: int):
    try:
        account_service.delete_registration(registration_id, g.current_user.id)
        return jsonify({"message": "Registration deleted"})
    except WorkflowError as e:
        return _error(e)


# =============================================================================
# MONITORS
# =============================================================================

@admin_bp.get("/monitors")
@require_auth
@require_role(ROLE_ADMIN)
def list_monitors_route():
    active_only = parse_bool(request.args.get("active_only"), default=True)
    appointments = account_service.list_monitor_assignments(active_only=active_only)
    return jsonify({
        "items": [a.to_dict() for a in appointments],
        "active_monitors": account_service.active_monitor_count(),
        "max_monitors": current_app.config.get("MAX_MONITORS", 4),
    })


@admin_bp.post("/monitors")
@require_auth
@require_role(ROLE_ADMIN)
def assign_monitor_route():
    data = request.get_json(silent=True) or {}
    if data.get("user_id") is None:
        return jsonify({"error": "user_id is required"}), 400
    try:
        appointment = account_service.assign_monitor(data["user_id"], data.get("end_date"), g.current_user.id)
        return jsonify({"appointment": appointment.to_dict()}), 201
    except WorkflowError as e:
        return _error(e)
    except Exception:
        return _server_error("assign monitor")


@admin_bp.delete("/monitors/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def unassign_monitor_route(user_id: int):
    try:
        user = account_service.unassign_monitor(user_id, g.current_user.id)
        return jsonify({"user": user.to_dict()})
    except WorkflowError as e:
        return _error(e)
    except Exception:
        return _server_error(f"unassign monitor {user_id}")


@admin_bp.post("/monitors/expire")
@require_auth
@require_role(ROLE_ADMIN)
def expire_monitors_route():
    reverted = account_service.expire_monitor_assignments()
    return jsonify({"reverted": [u.to_dict() for u in reverted], "count": len(reverted)})


# =============================================================================
# DEPARTMENTS / REMINDERS
# =============================================================================

@admin_bp.post("/departments")
@require_auth
@require_role(ROLE_ADMIN)
def create_department_route():
    data = request.get_json(silent=True) or {}
    try:
        department = account_service.create_department(data.get("name"), data.get("description"))
        return jsonify({"department": department.to_dict()}), 201
    except WorkflowError as e:
        return _error(e)


@admin_bp.post("/reminders/send")
@require_auth
@require_role(ROLE_ADMIN)
def send_reminders_route():
    try:
        return jsonify(reminder_service.send_pending_reminders())
    except Exception:
        return _server_error("send reminders")
