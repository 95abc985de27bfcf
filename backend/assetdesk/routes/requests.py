# Overview: Flask API routes for product requests; thin callers of workflow_service.

"""
Product request routes

LIFECYCLE (see workflow_service):
- POST /api/requests                      employee/monitor submits (pending)
- POST /api/requests/<id>/process         monitor/admin approves or rejects
- POST /api/requests/<id>/cancel          owner (or staff) withdraws a pending request
- POST /api/requests/<id>/reactivate      monitor/admin moves rejected -> pending
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import WorkflowError
from ..decorators import require_auth, require_operation
from ..permissions import ROLE_EMPLOYEE
from ..services import workflow_service


requests_bp = Blueprint("requests", __name__, url_prefix="/api/requests")


@requests_bp.get("")
@require_auth
def list_requests_route():
    """
    Employees see their own requests; monitors and admins see all
    (``mine=true`` narrows to their own).
    """
    user = g.current_user
    employee_id = request.args.get("employee_id", type=int)
    if user.role == ROLE_EMPLOYEE or request.args.get("mine") == "true":
        if user.employee is None:
            return jsonify({"items": [], "count": 0})
        employee_id = user.employee.id

    items = workflow_service.list_requests(
        status=request.args.get("status"),
        employee_id=employee_id,
        product_id=request.args.get("product_id", type=int),
    )
    return jsonify({"items": [r.to_dict() for r in items], "count": len(items)})


@requests_bp.get("/<int:request_id>")
@require_auth
def get_request_route(request_id: int):
    try:
        req = workflow_service.get_request(request_id)
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code

    user = g.current_user
    if user.role == ROLE_EMPLOYEE and (user.employee is None or req.employee_id != user.employee.id):
        return jsonify({"error": "Permission denied"}), 403
    return jsonify({"request": req.to_dict()})


@requests_bp.post("")
@require_auth
@require_operation("submit_request")
def submit_request_route():
    data = request.get_json(silent=True) or {}
    if data.get("product_id") is None:
        return jsonify({"error": "product_id is required"}), 400

    try:
        req = workflow_service.submit_request(
            user_id=g.current_user.id,
            product_id=data.get("product_id"),
            quantity=data.get("quantity", 1),
            purpose=data.get("purpose"),
            return_date=data.get("return_date"),
        )
        return jsonify({"request": req.to_dict()}), 201
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to submit request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("/<int:request_id>/process")
@require_auth
@require_operation("process_request")
def process_request_route(request_id: int):
    data = request.get_json(silent=True) or {}
    try:
        req = workflow_service.process_request(
            request_id=request_id,
            action=data.get("action"),
            actor_id=g.current_user.id,
            remarks=data.get("remarks"),
        )
        return jsonify({"request": req.to_dict()})
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process request %s", request_id)
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("/<int:request_id>/cancel")
@require_auth
@require_operation("cancel_request")
def cancel_request_route(request_id: int):
    data = request.get_json(silent=True) or {}
    try:
        req = workflow_service.cancel_request(request_id, g.current_user.id, remarks=data.get("remarks"))
        return jsonify({"request": req.to_dict()})
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel request %s", request_id)
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("/<int:request_id>/reactivate")
@require_auth
@require_operation("reactivate_request")
def reactivate_request_route(request_id: int):
    try:
        req = workflow_service.reactivate_request(request_id, g.current_user.id)
        return jsonify({"request": req.to_dict()})
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reactivate request %s", request_id)
        return jsonify({"error": "Internal server error"}), 500
