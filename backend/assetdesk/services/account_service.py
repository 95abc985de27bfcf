# Overview: Registration requests, account creation, departments, and monitor appointments.

"""
Account Management

REGISTRATION LIFECYCLE:
1. pending: submitted publicly (password already bcrypt-hashed)
2. approved: admin approved; User + Employee created from the request (terminal)
3. rejected: admin declined; reactivate moves it back to pending

MONITOR APPOINTMENTS:
An admin promotes an active employee to the monitor role until an end date.
At most MAX_MONITORS users hold the role at once. Unassigning, or the
expiry job after the end date passes, reverts the role to employee.
"""

from __future__ import annotations

from datetime import datetime, time

from flask import current_app

from ..extensions import db
from ..models import User, Department, RegistrationRequest, MonitorAssignment
from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..permissions import ROLE_EMPLOYEE, ROLE_MONITOR, ALL_ROLES
from ..validation import clean_text, parse_optional_date
from . import auth_service, notification_service
from .auth_service import PasswordValidationError
from .concurrency import lock_for_update, run_in_transaction
from .workflow_service import load_actor
from assetdesk.time_utils import utcnow, today


REGISTRATION_STATUS_PENDING = "pending"
REGISTRATION_STATUS_APPROVED = "approved"
REGISTRATION_STATUS_REJECTED = "rejected"


def _ensure_unique_identity(username: str, email: str, exclude_registration_id: int | None = None) -> None:
    if db.session.query(User).filter(db.or_(User.username == username, User.email == email)).first():
        raise ConflictError("Username or email already exists")
    query = db.session.query(RegistrationRequest).filter(
        db.or_(RegistrationRequest.username == username, RegistrationRequest.email == email)
    )
    if exclude_registration_id is not None:
        query = query.filter(RegistrationRequest.id != exclude_registration_id)
    if query.first():
        raise ConflictError("A registration request with this username or email already exists")


def _get_department(department_id) -> Department:
    department = db.session.get(Department, department_id) if department_id is not None else None
    if department is None:
        raise ValidationError("A valid department_id is required")
    return department


# =============================================================================
# DEPARTMENTS
# =============================================================================

def list_departments() -> list[Department]:
    return db.session.query(Department).order_by(Department.name.asc()).all()


def create_department(name: str, description: str | None = None) -> Department:
    name = clean_text(name)
    if not name:
        raise ValidationError("name is required")
    if db.session.query(Department).filter_by(name=name).first():
        raise ConflictError(f"Department '{name}' already exists")

    def _op():
        department = Department(name=name, description=clean_text(description))
        db.session.add(department)
        db.session.flush()
        return department

    return run_in_transaction(_op)


# =============================================================================
# REGISTRATION REQUESTS
# =============================================================================

def submit_registration(full_name: str, username: str, email: str, password: str,
                        department_id: int) -> RegistrationRequest:
    """
    Public self-registration. Creates a pending RegistrationRequest.

    Raises:
        ValidationError: Missing fields, weak password, unknown department
        ConflictError: Username/email already in use
    """
    full_name = clean_text(full_name)
    username = clean_text(username)
    email = clean_text(email)
    if not (full_name and username and email and password):
        raise ValidationError("full_name, username, email and password are required")
    if "@" not in email:
        raise ValidationError("email is not valid")
    try:
        password_hash = auth_service.hash_password(password)
    except PasswordValidationError as e:
        raise ValidationError(str(e))

    def _op():
        _get_department(department_id)
        _ensure_unique_identity(username, email)
        registration = RegistrationRequest(
            full_name=full_name,
            username=username,
            email=email,
            password_hash=password_hash,
            department_id=department_id,
            status=REGISTRATION_STATUS_PENDING,
        )
        db.session.add(registration)
        db.session.flush()
        return registration

    registration = run_in_transaction(_op)
    notification_service.user_registered(registration)
    return registration


def _get_registration(registration_id: int) -> RegistrationRequest:
    registration = lock_for_update(
        db.session.query(RegistrationRequest).filter_by(id=registration_id)
    ).first()
    if registration is None:
        raise NotFoundError(f"Registration request {registration_id} not found")
    return registration


def list_registrations(status: str | None = None) -> list[RegistrationRequest]:
    query = db.session.query(RegistrationRequest)
    if status:
        query = query.filter(RegistrationRequest.status == status)
    return query.order_by(RegistrationRequest.requested_at.desc(), RegistrationRequest.id.desc()).all()


def approve_registration(registration_id: int, actor_id: int) -> User:
    """Create the User + Employee for a pending registration."""
    actor = load_actor(actor_id, "process_registration")

    def _op():
        registration = _get_registration(registration_id)
        if registration.status != REGISTRATION_STATUS_PENDING:
            raise InvalidStateError(f"Registration {registration_id} is already {registration.status}")
        try:
            user = auth_service.create_user(
                username=registration.username,
                email=registration.email,
                password="",
                full_name=registration.full_name,
                role=ROLE_EMPLOYEE,
                department_id=registration.department_id,
                password_hash=registration.password_hash,
                commit=False,
            )
        except ValueError as e:
            raise ConflictError(str(e))
        registration.status = REGISTRATION_STATUS_APPROVED
        registration.processed_by = actor.id
        registration.processed_at = utcnow()
        return registration, user

    registration, user = run_in_transaction(_op)
    notification_service.registration_processed(registration, actor)
    return user


def reject_registration(registration_id: int, actor_id: int) -> RegistrationRequest:
    actor = load_actor(actor_id, "process_registration")

    def _op():
        registration = _get_registration(registration_id)
        if registration.status != REGISTRATION_STATUS_PENDING:
            raise InvalidStateError(f"Registration {registration_id} is already {registration.status}")
        registration.status = REGISTRATION_STATUS_REJECTED
        registration.processed_by = actor.id
        registration.processed_at = utcnow()
        return registration

    registration = run_in_transaction(_op)
    notification_service.registration_processed(registration, actor)
    return registration


def reactivate_registration(registration_id: int, actor_id: int) -> RegistrationRequest:
    load_actor(actor_id, "process_registration")

    def _op():
        registration = _get_registration(registration_id)
        if registration.status != REGISTRATION_STATUS_REJECTED:
            raise InvalidStateError("Only rejected registrations can be reactivated")
        _ensure_unique_identity(registration.username, registration.email,
                                exclude_registration_id=registration.id)
        registration.status = REGISTRATION_STATUS_PENDING
        registration.processed_by = None
        registration.processed_at = None
        return registration

    return run_in_transaction(_op)


def delete_registration(registration_id: int, actor_id: int) -> None:
    """Remove a pending or rejected registration. Approved ones are kept as history."""
    load_actor(actor_id, "process_registration")

    def _op():
        registration = _get_registration(registration_id)
        if registration.status == REGISTRATION_STATUS_APPROVED:
            raise InvalidStateError("Approved registrations cannot be deleted")
        db.session.delete(registration)

    run_in_transaction(_op)


# =============================================================================
# ACCOUNTS
# =============================================================================

def create_account(actor_id: int, username: str, email: str, password: str, full_name: str,
                   role: str = ROLE_EMPLOYEE, department_id: int | None = None,
                   monitor_end_date=None) -> User:
    """
    Admin-created account. A monitor account needs monitor_end_date and
    counts against MAX_MONITORS.
    """
    actor = load_actor(actor_id, "manage_accounts")
    if role not in ALL_ROLES:
        raise ValidationError(f"role must be one of {', '.join(ALL_ROLES)}")
    username = clean_text(username)
    email = clean_text(email)
    full_name = clean_text(full_name)
    if not (username and email and full_name and password):
        raise ValidationError("username, email, full_name and password are required")
    end_date = _parse_end_date(monitor_end_date) if role == ROLE_MONITOR else None

    def _op():
        if role == ROLE_MONITOR:
            _ensure_monitor_capacity()
        try:
            user = auth_service.create_user(
                username=username, email=email, password=password, full_name=full_name,
                role=role, department_id=department_id, commit=False,
            )
        except PasswordValidationError as e:
            raise ValidationError(str(e))
        except ValueError as e:
            raise ConflictError(str(e)) if "exists" in str(e) else ValidationError(str(e))
        if role == ROLE_MONITOR:
            db.session.add(MonitorAssignment(
                user_id=user.id, assigned_by=actor.id, start_date=utcnow(),
                end_date=end_date, is_active=True,
            ))
        return user

    return run_in_transaction(_op)


def list_users(role: str | None = None, active: bool | None = None) -> list[User]:
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role)
    if active is not None:
        query = query.filter(User.is_active.is_(active))
    return query.order_by(User.full_name.asc()).all()


# =============================================================================
# MONITOR APPOINTMENTS
# =============================================================================

def _parse_end_date(value) -> datetime:
    end = parse_optional_date(value, "end_date")
    if end is None:
        raise ValidationError("end_date is required for a monitor appointment")
    if end < today():
        raise ValidationError("end_date cannot be in the past")
    return datetime.combine(end, time(23, 59, 59))


def active_monitor_count() -> int:
    return db.session.query(User).filter(User.role == ROLE_MONITOR, User.is_active.is_(True)).count()


def _ensure_monitor_capacity() -> None:
    limit = current_app.config.get("MAX_MONITORS", 4)
    if active_monitor_count() >= limit:
        raise InvalidStateError(f"Maximum of {limit} monitors allowed")


def assign_monitor(user_id: int, end_date, actor_id: int) -> MonitorAssignment:
    """
    Promote an active employee to monitor until end_date.

    Raises:
        NotFoundError: Unknown user
        InvalidStateError: Not an active employee, or MAX_MONITORS reached
    """
    actor = load_actor(actor_id, "manage_monitors")
    end = _parse_end_date(end_date)

    def _op():
        user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        if user.role != ROLE_EMPLOYEE or not user.is_active or user.employee is None:
            raise InvalidStateError("Only active employees can be appointed as monitors")
        _ensure_monitor_capacity()

        user.role = ROLE_MONITOR
        appointment = MonitorAssignment(
            user_id=user.id, assigned_by=actor.id, start_date=utcnow(), end_date=end, is_active=True,
        )
        db.session.add(appointment)
        db.session.flush()
        return user, appointment

    user, appointment = run_in_transaction(_op)
    notification_service.monitor_changed(user, actor, appointed=True)
    return appointment


def _revert_monitor(user: User, ended_at: datetime) -> None:
    user.role = ROLE_EMPLOYEE
    db.session.query(MonitorAssignment).filter(
        MonitorAssignment.user_id == user.id,
        MonitorAssignment.is_active.is_(True),
    ).update({"is_active": False, "end_date": ended_at}, synchronize_session=False)


def unassign_monitor(user_id: int, actor_id: int) -> User:
    actor = load_actor(actor_id, "manage_monitors")

    def _op():
        user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        if user.role != ROLE_MONITOR:
            raise InvalidStateError("User is not currently a monitor")
        _revert_monitor(user, utcnow())
        return user

    user = run_in_transaction(_op)
    notification_service.monitor_changed(user, actor, appointed=False)
    return user


def list_monitor_assignments(active_only: bool = True) -> list[MonitorAssignment]:
    query = db.session.query(MonitorAssignment)
    if active_only:
        query = query.filter(MonitorAssignment.is_active.is_(True))
    return query.order_by(MonitorAssignment.end_date.asc()).all()


def expire_monitor_assignments(now: datetime | None = None) -> list[User]:
    """
    Revert every monitor whose active appointment ended before ``now``.

    Returns the users whose role was reverted.
    """
    now = now or utcnow()

    def _op():
        expired = db.session.query(MonitorAssignment).filter(
            MonitorAssignment.is_active.is_(True),
            MonitorAssignment.end_date < now,
        ).all()
        reverted = []
        for appointment in expired:
            user = db.session.get(User, appointment.user_id)
            if user is not None and user.role == ROLE_MONITOR:
                user.role = ROLE_EMPLOYEE
                reverted.append(user)
            appointment.is_active = False
        return reverted

    reverted = run_in_transaction(_op)
    for user in reverted:
        current_app.logger.info("Monitor appointment expired for user %s", user.username)
        notification_service.monitor_changed(user, None, appointed=False)
    return reverted
