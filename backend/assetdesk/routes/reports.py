# Overview: Flask API routes for dashboards and reports.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_operation, require_role
from ..permissions import ROLE_ADMIN
from ..validation import parse_bool
from ..services import report_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")

ASSIGNMENT_STATUSES = {"active", "returned", "overdue", "all"}


@reports_bp.get("/dashboard")
@require_auth
def dashboard_route():
    return jsonify(report_service.dashboard(g.current_user))


@reports_bp.get("/stock")
@require_auth
@require_operation("view_reports")
def stock_report_route():
    include_inactive = parse_bool(request.args.get("include_inactive"))
    return jsonify(report_service.stock_report(include_inactive=include_inactive))


@reports_bp.get("/assignments")
@require_auth
@require_operation("view_reports")
def assignment_report_route():
    status = request.args.get("status", "active")
    if status not in ASSIGNMENT_STATUSES:
        return jsonify({"error": f"status must be one of {', '.join(sorted(ASSIGNMENT_STATUSES))}"}), 400
    return jsonify(report_service.assignment_report(status))


@reports_bp.get("/calibration")
@require_auth
@require_operation("view_reports")
def calibration_report_route():
    within_days = request.args.get("within_days", 30, type=int)
    if within_days < 0:
        return jsonify({"error": "within_days must be >= 0"}), 400
    return jsonify(report_service.calibration_report(within_days))


@reports_bp.get("/stock-history")
@require_auth
@require_operation("view_reports")
def stock_history_route():
    items = report_service.stock_history_report(
        product_id=request.args.get("product_id", type=int),
        limit=request.args.get("limit", 200, type=int),
    )
    return jsonify({"items": items, "count": len(items)})


@reports_bp.get("/employees")
@require_auth
@require_role(ROLE_ADMIN)
def employee_records_route():
    items = report_service.employee_records()
    return jsonify({"items": items, "count": len(items)})


@reports_bp.get("/monitors")
@require_auth
@require_role(ROLE_ADMIN)
def monitor_records_route():
    items = report_service.monitor_records()
    return jsonify({"items": items, "count": len(items)})
