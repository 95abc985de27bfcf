# Overview: Flask API routes for assignments, returns, and extensions.

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import WorkflowError
from ..decorators import require_auth, require_operation
from ..permissions import ROLE_EMPLOYEE
from ..validation import parse_bool
from ..services import workflow_service


assignments_bp = Blueprint("assignments", __name__, url_prefix="/api/assignments")


def _run(label: str, func, *args, **kwargs):
    """Call a workflow operation and render its assignment or mapped error."""
    try:
        assignment = func(*args, **kwargs)
        return jsonify({"assignment": assignment.to_dict()})
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to %s", label)
        return jsonify({"error": "Internal server error"}), 500


@assignments_bp.get("")
@require_auth
def list_assignments_route():
    user = g.current_user
    employee_id = request.args.get("employee_id", type=int)
    if user.role == ROLE_EMPLOYEE or request.args.get("mine") == "true":
        if user.employee is None:
            return jsonify({"items": [], "count": 0})
        employee_id = user.employee.id

    returned = request.args.get("returned")
    items = workflow_service.list_assignments(
        employee_id=employee_id,
        returned=parse_bool(returned) if returned is not None else None,
        return_status=request.args.get("return_status"),
        extension_status=request.args.get("extension_status"),
        product_id=request.args.get("product_id", type=int),
    )
    return jsonify({"items": [a.to_dict() for a in items], "count": len(items)})


@assignments_bp.get("/<int:assignment_id>")
@require_auth
def get_assignment_route(assignment_id: int):
    try:
        assignment = workflow_service.get_assignment(assignment_id)
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code

    user = g.current_user
    if user.role == ROLE_EMPLOYEE and (user.employee is None or assignment.employee_id != user.employee.id):
        return jsonify({"error": "Permission denied"}), 403
    return jsonify({"assignment": assignment.to_dict()})


@assignments_bp.post("")
@require_auth
@require_operation("assign_product")
def assign_product_route():
    """Direct assignment by a monitor/admin, bypassing the request step."""
    data = request.get_json(silent=True) or {}
    if data.get("product_id") is None or data.get("employee_id") is None:
        return jsonify({"error": "product_id and employee_id are required"}), 400

    response = _run(
        "assign product", workflow_service.assign_product,
        product_id=data.get("product_id"),
        employee_id=data.get("employee_id"),
        actor_id=g.current_user.id,
        quantity=data.get("quantity", 1),
        return_date=data.get("return_date"),
        remarks=data.get("remarks"),
    )
    if isinstance(response, tuple):
        return response
    return response, 201


@assignments_bp.post("/<int:assignment_id>/return")
@require_auth
@require_operation("request_return")
def request_return_route(assignment_id: int):
    return _run("request return", workflow_service.request_return, assignment_id, g.current_user.id)


@assignments_bp.post("/<int:assignment_id>/return/process")
@require_auth
@require_operation("process_return")
def process_return_route(assignment_id: int):
    data = request.get_json(silent=True) or {}
    return _run(
        "process return", workflow_service.process_return,
        assignment_id, data.get("action"), g.current_user.id, remarks=data.get("remarks"),
    )


@assignments_bp.post("/<int:assignment_id>/extension")
@require_auth
@require_operation("request_extension")
def request_extension_route(assignment_id: int):
    data = request.get_json(silent=True) or {}
    return _run(
        "request extension", workflow_service.request_extension,
        assignment_id, g.current_user.id, data.get("new_return_date"), data.get("reason"),
    )


@assignments_bp.post("/<int:assignment_id>/extension/process")
@require_auth
@require_operation("process_extension")
def process_extension_route(assignment_id: int):
    data = request.get_json(silent=True) or {}
    return _run(
        "process extension", workflow_service.process_extension,
        assignment_id, data.get("action"), g.current_user.id, remarks=data.get("remarks"),
    )
