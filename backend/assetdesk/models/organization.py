from __future__ import annotations

from ..extensions import db
from assetdesk.time_utils import to_utc_z


class Department(db.Model):
    __tablename__ = "departments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
        }


class Employee(db.Model):
    """
    1:1 extension of a User holding the employee or monitor role.

    WHY: Requests and assignments belong to an Employee, not a User, so an
    admin (who has no Employee row) can never end up holding a product.
    """
    __tablename__ = "employees"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    user = db.relationship("User", backref=db.backref("employee", uselist=False))
    department = db.relationship("Department", backref=db.backref("employees", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "full_name": self.user.full_name if self.user else None,
            "username": self.user.username if self.user else None,
            "role": self.user.role if self.user else None,
            "department_id": self.department_id,
            "department_name": self.department.name if self.department else None,
            "is_active": self.is_active,
        }


class RegistrationRequest(db.Model):
    """
    Self-service account request awaiting admin review.

    LIFECYCLE:
    1. pending: submitted from the public registration endpoint
    2. approved: admin created the User + Employee (terminal)
    3. rejected: admin declined; may be reactivated back to pending
    """
    __tablename__ = "registration_requests"
    __table_args__ = (
        db.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_registration_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(128), nullable=False)
    username = db.Column(db.String(64), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    password_hash = db.Column(db.String(255), nullable=False)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    processed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    department = db.relationship("Department")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "username": self.username,
            "email": self.email,
            "department_id": self.department_id,
            "department_name": self.department.name if self.department else None,
            "status": self.status,
            "requested_at": to_utc_z(self.requested_at),
            "processed_by": self.processed_by,
            "processed_at": to_utc_z(self.processed_at) if self.processed_at else None,
        }


class MonitorAssignment(db.Model):
    """Time-boxed appointment of an employee to the monitor role."""
    __tablename__ = "monitor_assignments"
    __table_args__ = (
        db.Index("ix_monitor_assignments_active", "is_active", "end_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    assigned_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    end_date = db.Column(db.DateTime(timezone=True), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "full_name": self.user.full_name if self.user else None,
            "assigned_by": self.assigned_by,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "is_active": self.is_active,
        }
