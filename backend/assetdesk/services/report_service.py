# Overview: Read-only reporting queries (dashboard, stock, assignments, people).

"""
Reports

All functions are read-only and return plain dicts ready for jsonify.

STOCK REPORT: For every product the report shows on_hand (Product.quantity),
assigned (sum of unreturned assignment quantities), total (on_hand +
assigned) and total_added (sum of 'add' stock history rows). When history
covers the product's whole life, total == total_added.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import (
    User, Employee, Department, Product, ProductRequest, ProductAssignment, StockHistory,
    MonitorAssignment, RegistrationRequest,
)
from ..permissions import ROLE_ADMIN, ROLE_MONITOR, ROLE_EMPLOYEE
from . import product_service, stock_service
from assetdesk.time_utils import today


def _count(query) -> int:
    return query.count()


def dashboard(user: User) -> dict:
    """Counts relevant to the caller's role."""
    data = {
        "role": user.role,
        "active_products": _count(db.session.query(Product).filter(Product.is_active.is_(True))),
    }

    if user.employee is not None:
        emp_id = user.employee.id
        data["my_pending_requests"] = _count(db.session.query(ProductRequest).filter(
            ProductRequest.employee_id == emp_id, ProductRequest.status == "pending"))
        data["my_active_assignments"] = _count(db.session.query(ProductAssignment).filter(
            ProductAssignment.employee_id == emp_id, ProductAssignment.is_returned.is_(False)))
        data["my_overdue_assignments"] = _count(db.session.query(ProductAssignment).filter(
            ProductAssignment.employee_id == emp_id,
            ProductAssignment.is_returned.is_(False),
            ProductAssignment.return_date < today()))

    if user.role in (ROLE_MONITOR, ROLE_ADMIN):
        data["pending_requests"] = _count(db.session.query(ProductRequest).filter(
            ProductRequest.status == "pending"))
        data["pending_returns"] = _count(db.session.query(ProductAssignment).filter(
            ProductAssignment.is_returned.is_(False), ProductAssignment.return_status == "requested"))
        data["pending_extensions"] = _count(db.session.query(ProductAssignment).filter(
            ProductAssignment.is_returned.is_(False), ProductAssignment.extension_status == "requested"))
        data["active_assignments"] = _count(db.session.query(ProductAssignment).filter(
            ProductAssignment.is_returned.is_(False)))
        data["out_of_stock_products"] = _count(db.session.query(Product).filter(
            Product.is_active.is_(True), Product.quantity == 0))

    if user.role == ROLE_ADMIN:
        data["total_employees"] = _count(db.session.query(User).filter(
            User.role.in_([ROLE_EMPLOYEE, ROLE_MONITOR])))
        data["total_monitors"] = _count(db.session.query(User).filter(
            User.role == ROLE_MONITOR, User.is_active.is_(True)))
        data["pending_registrations"] = _count(db.session.query(RegistrationRequest).filter(
            RegistrationRequest.status == "pending"))

    return data


def stock_report(include_inactive: bool = False) -> dict:
    assigned_rows = db.session.query(
        ProductAssignment.product_id, func.coalesce(func.sum(ProductAssignment.quantity), 0)
    ).filter(ProductAssignment.is_returned.is_(False)).group_by(ProductAssignment.product_id).all()
    assigned = {pid: int(qty) for pid, qty in assigned_rows}

    added_rows = db.session.query(
        StockHistory.product_id, func.coalesce(func.sum(StockHistory.quantity), 0)
    ).filter(StockHistory.action == "add").group_by(StockHistory.product_id).all()
    added = {pid: int(qty) for pid, qty in added_rows}

    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))

    items = []
    for product in query.order_by(Product.name.asc(), Product.id.asc()).all():
        out = assigned.get(product.id, 0)
        items.append({
            "product_id": product.id,
            "name": product.name,
            "category": product.category,
            "on_hand": product.quantity,
            "assigned": out,
            "total": product.quantity + out,
            "total_added": added.get(product.id, 0),
        })

    return {
        "items": items,
        "totals": {
            "on_hand": sum(i["on_hand"] for i in items),
            "assigned": sum(i["assigned"] for i in items),
            "total": sum(i["total"] for i in items),
        },
    }


def assignment_report(status: str = "active") -> dict:
    """status: active, returned, overdue, or all."""
    query = db.session.query(ProductAssignment)
    if status == "active":
        query = query.filter(ProductAssignment.is_returned.is_(False))
    elif status == "returned":
        query = query.filter(ProductAssignment.is_returned.is_(True))
    elif status == "overdue":
        query = query.filter(
            ProductAssignment.is_returned.is_(False),
            ProductAssignment.return_date.isnot(None),
            ProductAssignment.return_date < today(),
        )
    items = query.order_by(ProductAssignment.assigned_at.desc(), ProductAssignment.id.desc()).all()
    return {"status": status, "count": len(items), "items": [a.to_dict() for a in items]}


def calibration_report(within_days: int = 30) -> dict:
    products = product_service.calibration_due(within_days)
    now = today()
    return {
        "within_days": within_days,
        "count": len(products),
        "items": [
            {**p.to_dict(), "overdue": p.next_calibration_date < now}
            for p in products
        ],
    }


def employee_records() -> list[dict]:
    active_counts = dict(db.session.query(
        ProductAssignment.employee_id, func.count(ProductAssignment.id)
    ).filter(ProductAssignment.is_returned.is_(False)).group_by(ProductAssignment.employee_id).all())
    total_counts = dict(db.session.query(
        ProductAssignment.employee_id, func.count(ProductAssignment.id)
    ).group_by(ProductAssignment.employee_id).all())

    employees = db.session.query(Employee).join(User, Employee.user_id == User.id).outerjoin(
        Department, Employee.department_id == Department.id
    ).order_by(User.full_name.asc()).all()

    return [
        {
            **e.to_dict(),
            "email": e.user.email,
            "user_active": e.user.is_active,
            "active_assignments": active_counts.get(e.id, 0),
            "total_assignments": total_counts.get(e.id, 0),
        }
        for e in employees
    ]


def monitor_records() -> list[dict]:
    processed = dict(db.session.query(
        ProductRequest.processed_by, func.count(ProductRequest.id)
    ).filter(ProductRequest.processed_by.isnot(None)).group_by(ProductRequest.processed_by).all())
    assigned = dict(db.session.query(
        ProductAssignment.monitor_id, func.count(ProductAssignment.id)
    ).group_by(ProductAssignment.monitor_id).all())
    returns = dict(db.session.query(
        ProductAssignment.returned_to, func.count(ProductAssignment.id)
    ).filter(ProductAssignment.returned_to.isnot(None)).group_by(ProductAssignment.returned_to).all())

    appointments = db.session.query(MonitorAssignment).order_by(MonitorAssignment.start_date.desc()).all()
    latest = {}
    for appointment in appointments:
        latest.setdefault(appointment.user_id, appointment)

    monitor_ids = set(latest) | {
        u.id for u in db.session.query(User).filter(User.role == ROLE_MONITOR).all()
    }
    users = []
    if monitor_ids:
        users = db.session.query(User).filter(User.id.in_(monitor_ids)).order_by(User.full_name.asc()).all()

    return [
        {
            "user_id": u.id,
            "full_name": u.full_name,
            "is_current_monitor": u.role == ROLE_MONITOR,
            "appointment": latest[u.id].to_dict() if u.id in latest else None,
            "requests_processed": processed.get(u.id, 0),
            "assignments_made": assigned.get(u.id, 0),
            "returns_received": returns.get(u.id, 0),
        }
        for u in users
    ]


def stock_history_report(product_id: int | None = None, limit: int = 200) -> list[dict]:
    return [h.to_dict() for h in stock_service.get_stock_history(product_id, limit)]
