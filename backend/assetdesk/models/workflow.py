from __future__ import annotations

from ..extensions import db
from assetdesk.time_utils import to_utc_z, to_iso_date


class ProductRequest(db.Model):
    """
    An employee's ask for a product.

    LIFECYCLE:
    1. pending: submitted by the employee (no stock is reserved)
    2. approved: monitor approved; a ProductAssignment exists and stock was decremented
    3. rejected: monitor rejected or the request was cancelled

    approved is terminal. rejected can be reactivated back to pending.
    """
    __tablename__ = "product_requests"
    __table_args__ = (
        db.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_product_requests_status"),
        db.CheckConstraint("quantity > 0", name="ck_product_requests_quantity_positive"),
        db.Index("ix_product_requests_status_requested", "status", "requested_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    purpose = db.Column(db.Text, nullable=True)
    return_date = db.Column(db.Date, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending")
    remarks = db.Column(db.Text, nullable=True)

    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    processed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    employee = db.relationship("Employee", backref=db.backref("requests", lazy=True))
    product = db.relationship("Product", backref=db.backref("requests", lazy=True))
    processor = db.relationship("User", foreign_keys=[processed_by])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "employee_name": self.employee.user.full_name if self.employee and self.employee.user else None,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "purpose": self.purpose,
            "return_date": to_iso_date(self.return_date),
            "status": self.status,
            "remarks": self.remarks,
            "requested_at": to_utc_z(self.requested_at),
            "processed_by": self.processed_by,
            "processed_by_name": self.processor.full_name if self.processor else None,
            "processed_at": to_utc_z(self.processed_at) if self.processed_at else None,
        }


class ProductAssignment(db.Model):
    """
    A product handed to an employee by a monitor.

    Created only by request approval or direct monitor assignment. Never deleted.

    RETURN STATE (return_status):
        none -> requested (holder) -> approved (monitor, terminal: is_returned=True)
                          requested -> none (monitor rejects)

    EXTENSION STATE (extension_status):
        none|approved|rejected -> requested (holder)
        requested -> approved (return_date := new_return_date) | rejected
    """
    __tablename__ = "product_assignments"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_product_assignments_quantity_positive"),
        db.CheckConstraint(
            "return_status IN ('none', 'requested', 'approved')",
            name="ck_product_assignments_return_status",
        ),
        db.CheckConstraint(
            "extension_status IN ('none', 'requested', 'approved', 'rejected')",
            name="ck_product_assignments_extension_status",
        ),
        db.Index("ix_product_assignments_employee_returned", "employee_id", "is_returned"),
        db.Index("ix_product_assignments_return_status", "return_status"),
        db.Index("ix_product_assignments_extension_status", "extension_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    monitor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    request_id = db.Column(db.Integer, db.ForeignKey("product_requests.id"), nullable=True, unique=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    return_date = db.Column(db.Date, nullable=True)
    remarks = db.Column(db.Text, nullable=True)

    # Two-phase return
    is_returned = db.Column(db.Boolean, nullable=False, default=False)
    return_status = db.Column(db.String(16), nullable=False, default="none")
    return_requested_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    return_requested_at = db.Column(db.DateTime(timezone=True), nullable=True)
    return_remarks = db.Column(db.Text, nullable=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_to = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Due-date extension
    extension_status = db.Column(db.String(16), nullable=False, default="none")
    extension_reason = db.Column(db.Text, nullable=True)
    new_return_date = db.Column(db.Date, nullable=True)
    extension_requested_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    extension_requested_at = db.Column(db.DateTime(timezone=True), nullable=True)
    extension_processed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    extension_processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    extension_remarks = db.Column(db.Text, nullable=True)

    product = db.relationship("Product", backref=db.backref("assignments", lazy=True))
    employee = db.relationship("Employee", backref=db.backref("assignments", lazy=True))
    monitor = db.relationship("User", foreign_keys=[monitor_id])
    request = db.relationship("ProductRequest", backref=db.backref("assignment", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "employee_id": self.employee_id,
            "employee_name": self.employee.user.full_name if self.employee and self.employee.user else None,
            "monitor_id": self.monitor_id,
            "monitor_name": self.monitor.full_name if self.monitor else None,
            "request_id": self.request_id,
            "quantity": self.quantity,
            "assigned_at": to_utc_z(self.assigned_at),
            "return_date": to_iso_date(self.return_date),
            "remarks": self.remarks,
            "is_returned": self.is_returned,
            "return_status": self.return_status,
            "return_requested_by": self.return_requested_by,
            "return_requested_at": to_utc_z(self.return_requested_at) if self.return_requested_at else None,
            "return_remarks": self.return_remarks,
            "returned_at": to_utc_z(self.returned_at) if self.returned_at else None,
            "returned_to": self.returned_to,
            "extension_status": self.extension_status,
            "extension_reason": self.extension_reason,
            "new_return_date": to_iso_date(self.new_return_date),
            "extension_requested_by": self.extension_requested_by,
            "extension_requested_at": to_utc_z(self.extension_requested_at) if self.extension_requested_at else None,
            "extension_processed_by": self.extension_processed_by,
            "extension_processed_at": to_utc_z(self.extension_processed_at) if self.extension_processed_at else None,
            "extension_remarks": self.extension_remarks,
        }
