# Overview: Product lifecycle state machine (request, approval, assignment, return, extension).

"""
Product Workflow Service

WHY: One module owns every state transition a product goes through, so the
stock rules and the ordering guarantees live in one place. Routes, the CLI
and tests call these functions; none of them touch the tables directly.

LIFECYCLE:
    ProductRequest.status
        pending -> approved (creates ProductAssignment, decrements stock; terminal)
        pending -> rejected (monitor rejection or owner cancellation)
        rejected -> pending (explicit reactivation)

    ProductAssignment.return_status
        none -> requested (holder) -> approved (monitor; is_returned=True, stock restored)
        requested -> none (monitor rejects; holder may ask again)

    ProductAssignment.extension_status
        none|approved|rejected -> requested (holder)
        requested -> approved (return_date := new_return_date) | rejected

TRANSACTIONS:
Each operation validates its actor, then runs one run_in_transaction unit.
State changes are conditional UPDATEs guarded by the expected prior state and
stock changes go through stock_service.adjust_quantity, so two concurrent
callers can never both win. Any exception rolls the whole unit back.
Notifications (live feed, activity log, email) run after the commit through
notification_service and cannot undo it.

SELF-APPROVAL: The same person may never both ask for and grant a
transition: monitors cannot process their own requests, returns or
extensions, nor assign stock to themselves.
"""

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import User, Employee, Product, ProductRequest, ProductAssignment
from ..errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ..permissions import is_allowed
from ..validation import require_positive_int, parse_optional_date, clean_text
from . import notification_service, stock_service
from .concurrency import lock_for_update, run_in_transaction
from assetdesk.time_utils import utcnow, today


# Request status constants
REQUEST_STATUS_PENDING = "pending"
REQUEST_STATUS_APPROVED = "approved"
REQUEST_STATUS_REJECTED = "rejected"

# Return status constants
RETURN_STATUS_NONE = "none"
RETURN_STATUS_REQUESTED = "requested"
RETURN_STATUS_APPROVED = "approved"

# Extension status constants
EXTENSION_STATUS_NONE = "none"
EXTENSION_STATUS_REQUESTED = "requested"
EXTENSION_STATUS_APPROVED = "approved"
EXTENSION_STATUS_REJECTED = "rejected"

_ACTION_ALIASES = {
    "approved": "approved",
    "approve": "approved",
    "rejected": "rejected",
    "reject": "rejected",
}

CANCELLED_REMARK = "Cancelled"


# =============================================================================
# HELPERS
# =============================================================================

def normalize_action(action: str | None) -> str:
    """Map approve/approved/reject/rejected to approved or rejected."""
    normalized = _ACTION_ALIASES.get((action or "").strip().lower())
    if normalized is None:
        raise ValidationError("action must be 'approved' or 'rejected'")
    return normalized


def load_actor(user_id: int, operation: str) -> User:
    """
    Load the acting user and check the operation's role allow-list.

    Raises:
        PermissionDeniedError: Unknown, inactive, or wrong-role actor
    """
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise PermissionDeniedError("Actor account is missing or inactive")
    if not is_allowed(user.role, operation):
        raise PermissionDeniedError(f"Role '{user.role}' may not perform {operation}")
    return user


def _employee_for(user: User) -> Employee:
    employee = user.employee
    if employee is None:
        raise ValidationError(f"User {user.id} has no employee record")
    return employee


def _actor_employee_id(user: User) -> int | None:
    return user.employee.id if user.employee is not None else None


def _get_request(request_id: int, lock: bool = False) -> ProductRequest:
    query = db.session.query(ProductRequest).filter_by(id=request_id)
    if lock:
        query = lock_for_update(query)
    req = query.first()
    if req is None:
        raise NotFoundError(f"Request {request_id} not found")
    return req


def _get_assignment(assignment_id: int, lock: bool = False) -> ProductAssignment:
    query = db.session.query(ProductAssignment).filter_by(id=assignment_id)
    if lock:
        query = lock_for_update(query)
    assignment = query.first()
    if assignment is None:
        raise NotFoundError(f"Assignment {assignment_id} not found")
    return assignment


def _require_active_holder(employee: Employee | None, employee_id: int) -> Employee:
    if employee is None:
        raise NotFoundError(f"Employee {employee_id} not found")
    if not employee.is_active or not employee.user.is_active:
        raise ValidationError(f"Employee {employee_id} is inactive")
    return employee


def _get_active_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    if not product.is_active:
        raise ValidationError(f"Product {product_id} is not available")
    return product


def _guarded_update(model, row_id: int, guards: dict, values: dict, state_error: str) -> None:
    """
    UPDATE model SET values WHERE id = row_id AND <guards>.

    Raises InvalidStateError when no row matched (another caller moved the
    row out of the expected state first).
    """
    stmt = update(model).where(model.id == row_id)
    for column, expected in guards.items():
        stmt = stmt.where(getattr(model, column) == expected)
    stmt = stmt.values(**values).execution_options(synchronize_session=False)

    result = db.session.execute(stmt)
    if result.rowcount == 0:
        raise InvalidStateError(state_error)


def _refresh(obj):
    db.session.refresh(obj)
    return obj


# =============================================================================
# REQUESTS
# =============================================================================

def submit_request(
    user_id: int,
    product_id: int,
    quantity: int = 1,
    purpose: str | None = None,
    return_date=None,
) -> ProductRequest:
    """
    Create a pending request for a product. No stock is reserved.

    Args:
        user_id: Requesting user (employee or monitor)
        product_id: Product being requested
        quantity: Positive number of units
        purpose: Free-text reason
        return_date: Desired return date (date or "YYYY-MM-DD"), not in the past

    Returns:
        ProductRequest: The new pending request

    Raises:
        PermissionDeniedError: Actor cannot request products
        ValidationError: Bad input, unknown product, or no employee record
    """
    actor = load_actor(user_id, "submit_request")
    quantity = require_positive_int(quantity, "quantity")
    return_date = parse_optional_date(return_date, "return_date")
    if return_date is not None and return_date < today():
        raise ValidationError("return_date cannot be in the past")

    def _op():
        employee = _employee_for(actor)
        if not employee.is_active:
            raise ValidationError("Employee record is inactive")
        _get_active_product(product_id)

        req = ProductRequest(
            employee_id=employee.id,
            product_id=product_id,
            quantity=quantity,
            purpose=clean_text(purpose),
            return_date=return_date,
            status=REQUEST_STATUS_PENDING,
        )
        db.session.add(req)
        db.session.flush()
        return req

    req = run_in_transaction(_op)
    notification_service.request_submitted(req, actor)
    return req


def process_request(request_id: int, action: str, actor_id: int, remarks: str | None = None) -> ProductRequest:
    """
    Approve or reject a pending request.

    Approval decrements stock, marks the request approved, creates the
    assignment, and records stock history as one unit. If stock is short
    nothing changes.

    Args:
        request_id: Request to process
        action: approved/approve or rejected/reject
        actor_id: Monitor or admin processing it
        remarks: Optional note stored on the request

    Returns:
        ProductRequest: The processed request

    Raises:
        PermissionDeniedError: Wrong role, or a monitor processing their own request
        NotFoundError: Unknown request
        InvalidStateError: Request is not pending
        ValidationError: Approval for an inactive employee
        InsufficientStockError: Approval exceeds on-hand stock
    """
    action = normalize_action(action)
    actor = load_actor(actor_id, "process_request")
    remarks = clean_text(remarks)
    actor_employee_id = _actor_employee_id(actor)

    def _op():
        req = _get_request(request_id, lock=True)
        if req.status != REQUEST_STATUS_PENDING:
            raise InvalidStateError(f"Request {request_id} is already {req.status}")
        if actor_employee_id is not None and req.employee_id == actor_employee_id:
            raise PermissionDeniedError("You cannot process your own request")

        now = utcnow()
        assignment = None

        if action == REQUEST_STATUS_APPROVED:
            _require_active_holder(req.employee, req.employee_id)
            stock_service.decrement_for_assignment(
                req.product_id, req.quantity, actor.id, notes=f"Request #{req.id} approved",
            )

        _guarded_update(
            ProductRequest, req.id,
            guards={"status": REQUEST_STATUS_PENDING},
            values={
                "status": action,
                "processed_by": actor.id,
                "processed_at": now,
                "remarks": remarks,
            },
            state_error=f"Request {request_id} is no longer pending",
        )

        if action == REQUEST_STATUS_APPROVED:
            assignment = ProductAssignment(
                product_id=req.product_id,
                employee_id=req.employee_id,
                monitor_id=actor.id,
                request_id=req.id,
                quantity=req.quantity,
                assigned_at=now,
                return_date=req.return_date,
                remarks=remarks,
                is_returned=False,
                return_status=RETURN_STATUS_NONE,
                extension_status=EXTENSION_STATUS_NONE,
            )
            db.session.add(assignment)
            db.session.flush()

        return req, assignment

    req, assignment = run_in_transaction(_op)
    _refresh(req)
    notification_service.request_processed(req, actor, assignment)
    return req


def cancel_request(request_id: int, actor_id: int, remarks: str | None = None) -> ProductRequest:
    """
    Withdraw a pending request (pending -> rejected with a Cancelled remark).

    The owner may cancel their own request; monitors and admins may cancel any.
    """
    actor = load_actor(actor_id, "cancel_request")
    actor_employee_id = _actor_employee_id(actor)
    note = clean_text(remarks)
    note = f"{CANCELLED_REMARK}: {note}" if note else CANCELLED_REMARK

    def _op():
        req = _get_request(request_id, lock=True)
        is_owner = actor_employee_id is not None and req.employee_id == actor_employee_id
        if not is_owner and actor.role == "employee":
            raise PermissionDeniedError("You can only cancel your own requests")
        if req.status != REQUEST_STATUS_PENDING:
            raise InvalidStateError(f"Request {request_id} is already {req.status}")

        _guarded_update(
            ProductRequest, req.id,
            guards={"status": REQUEST_STATUS_PENDING},
            values={
                "status": REQUEST_STATUS_REJECTED,
                "processed_by": actor.id,
                "processed_at": utcnow(),
                "remarks": note,
            },
            state_error=f"Request {request_id} is no longer pending",
        )
        return req

    req = _refresh(run_in_transaction(_op))
    notification_service.request_cancelled(req, actor)
    return req


def reactivate_request(request_id: int, actor_id: int) -> ProductRequest:
    """Move a rejected request back to pending, clearing its processing stamp."""
    actor = load_actor(actor_id, "reactivate_request")

    def _op():
        req = _get_request(request_id, lock=True)
        if req.status != REQUEST_STATUS_REJECTED:
            raise InvalidStateError(f"Only rejected requests can be reactivated (request is {req.status})")
        _require_active_holder(req.employee, req.employee_id)
        _get_active_product(req.product_id)

        _guarded_update(
            ProductRequest, req.id,
            guards={"status": REQUEST_STATUS_REJECTED},
            values={
                "status": REQUEST_STATUS_PENDING,
                "processed_by": None,
                "processed_at": None,
                "remarks": None,
            },
            state_error=f"Request {request_id} is no longer rejected",
        )
        return req

    req = _refresh(run_in_transaction(_op))
    notification_service.request_reactivated(req, actor)
    return req


# =============================================================================
# DIRECT ASSIGNMENT
# =============================================================================

def assign_product(
    product_id: int,
    employee_id: int,
    actor_id: int,
    quantity: int = 1,
    return_date=None,
    remarks: str | None = None,
) -> ProductAssignment:
    """
    Hand a product straight to an employee without a request.

    Raises:
        PermissionDeniedError: Wrong role, or a monitor assigning to themselves
        NotFoundError: Unknown product or employee
        ValidationError: Inactive product/employee or bad input
        InsufficientStockError: quantity exceeds on-hand stock
    """
    actor = load_actor(actor_id, "assign_product")
    quantity = require_positive_int(quantity, "quantity")
    return_date = parse_optional_date(return_date, "return_date")
    if return_date is not None and return_date < today():
        raise ValidationError("return_date cannot be in the past")
    remarks = clean_text(remarks)
    actor_employee_id = _actor_employee_id(actor)

    if actor_employee_id is not None and actor_employee_id == employee_id:
        raise PermissionDeniedError("You cannot assign products to yourself")

    def _op():
        _require_active_holder(db.session.get(Employee, employee_id), employee_id)
        _get_active_product(product_id)

        stock_service.decrement_for_assignment(
            product_id, quantity, actor.id, notes=f"Direct assignment to employee #{employee_id}",
        )

        assignment = ProductAssignment(
            product_id=product_id,
            employee_id=employee_id,
            monitor_id=actor.id,
            quantity=quantity,
            assigned_at=utcnow(),
            return_date=return_date,
            remarks=remarks,
            is_returned=False,
            return_status=RETURN_STATUS_NONE,
            extension_status=EXTENSION_STATUS_NONE,
        )
        db.session.add(assignment)
        db.session.flush()
        return assignment

    assignment = run_in_transaction(_op)
    notification_service.product_assigned(assignment, actor)
    return assignment


# =============================================================================
# RETURNS
# =============================================================================

def request_return(assignment_id: int, user_id: int) -> ProductAssignment:
    """
    Holder asks to give a product back (return_status none -> requested).

    Raises:
        PermissionDeniedError: Caller does not hold the assignment
        InvalidStateError: Already returned or a return is already pending
    """
    actor = load_actor(user_id, "request_return")
    actor_employee_id = _actor_employee_id(actor)

    def _op():
        assignment = _get_assignment(assignment_id, lock=True)
        if actor_employee_id is None or assignment.employee_id != actor_employee_id:
            raise PermissionDeniedError("You can only return products assigned to you")
        if assignment.is_returned:
            raise InvalidStateError(f"Assignment {assignment_id} is already returned")
        if assignment.return_status != RETURN_STATUS_NONE:
            raise InvalidStateError(f"Return already {assignment.return_status} for assignment {assignment_id}")

        _guarded_update(
            ProductAssignment, assignment.id,
            guards={"is_returned": False, "return_status": RETURN_STATUS_NONE},
            values={
                "return_status": RETURN_STATUS_REQUESTED,
                "return_requested_by": actor.id,
                "return_requested_at": utcnow(),
                "return_remarks": None,
            },
            state_error=f"Return already requested for assignment {assignment_id}",
        )
        return assignment

    assignment = _refresh(run_in_transaction(_op))
    notification_service.return_requested(assignment, actor)
    return assignment


def process_return(assignment_id: int, action: str, actor_id: int, remarks: str | None = None) -> ProductAssignment:
    """
    Accept or refuse a requested return.

    approved: stock restored, assignment closed (is_returned=True), any
    pending extension is closed as rejected.
    rejected: return_status goes back to none so the holder can ask again.

    Raises:
        PermissionDeniedError: Wrong role, or the actor is the requester/holder
        InvalidStateError: No return is pending
    """
    action = normalize_action(action)
    actor = load_actor(actor_id, "process_return")
    remarks = clean_text(remarks)
    actor_employee_id = _actor_employee_id(actor)

    def _op():
        assignment = _get_assignment(assignment_id, lock=True)
        if assignment.is_returned or assignment.return_status != RETURN_STATUS_REQUESTED:
            raise InvalidStateError(f"No pending return for assignment {assignment_id}")
        if assignment.return_requested_by == actor.id or (
            actor_employee_id is not None and assignment.employee_id == actor_employee_id
        ):
            raise PermissionDeniedError("You cannot process your own return")

        now = utcnow()
        guards = {"is_returned": False, "return_status": RETURN_STATUS_REQUESTED}
        state_error = f"Return for assignment {assignment_id} was already processed"

        if action == RETURN_STATUS_APPROVED:
            values = {
                "is_returned": True,
                "return_status": RETURN_STATUS_APPROVED,
                "returned_at": now,
                "returned_to": actor.id,
                "return_remarks": remarks,
            }
            if assignment.extension_status == EXTENSION_STATUS_REQUESTED:
                values.update({
                    "extension_status": EXTENSION_STATUS_REJECTED,
                    "extension_processed_by": actor.id,
                    "extension_processed_at": now,
                    "extension_remarks": "Closed by return",
                })
            _guarded_update(ProductAssignment, assignment.id, guards, values, state_error)
            stock_service.increment_for_return(
                assignment.product_id, assignment.quantity, actor.id,
                notes=f"Assignment #{assignment.id} returned",
            )
        else:
            _guarded_update(
                ProductAssignment, assignment.id, guards,
                {"return_status": RETURN_STATUS_NONE, "return_remarks": remarks},
                state_error,
            )
        return assignment

    assignment = _refresh(run_in_transaction(_op))
    notification_service.return_processed(assignment, actor, approved=(action == RETURN_STATUS_APPROVED))
    return assignment


# =============================================================================
# EXTENSIONS
# =============================================================================

def request_extension(assignment_id: int, user_id: int, new_return_date, reason: str) -> ProductAssignment:
    """
    Holder asks to keep a product past its return date.

    Raises:
        PermissionDeniedError: Caller does not hold the assignment
        ValidationError: Missing reason, or the new date is not after both
            today and the current return date
        InvalidStateError: Returned, return pending, or extension already pending
    """
    actor = load_actor(user_id, "request_extension")
    actor_employee_id = _actor_employee_id(actor)
    new_date = parse_optional_date(new_return_date, "new_return_date")
    if new_date is None:
        raise ValidationError("new_return_date is required")
    reason = clean_text(reason)
    if not reason:
        raise ValidationError("reason is required")
    if new_date <= today():
        raise ValidationError("new_return_date must be in the future")

    def _op():
        assignment = _get_assignment(assignment_id, lock=True)
        if actor_employee_id is None or assignment.employee_id != actor_employee_id:
            raise PermissionDeniedError("You can only extend products assigned to you")
        if assignment.is_returned:
            raise InvalidStateError(f"Assignment {assignment_id} is already returned")
        if assignment.return_status != RETURN_STATUS_NONE:
            raise InvalidStateError(f"Assignment {assignment_id} has a pending return")
        if assignment.extension_status == EXTENSION_STATUS_REQUESTED:
            raise InvalidStateError(f"Extension already requested for assignment {assignment_id}")
        if assignment.return_date is not None and new_date <= assignment.return_date:
            raise ValidationError("new_return_date must be after the current return date")

        _guarded_update(
            ProductAssignment, assignment.id,
            guards={"is_returned": False, "extension_status": assignment.extension_status},
            values={
                "extension_status": EXTENSION_STATUS_REQUESTED,
                "extension_reason": reason,
                "new_return_date": new_date,
                "extension_requested_by": actor.id,
                "extension_requested_at": utcnow(),
                "extension_processed_by": None,
                "extension_processed_at": None,
                "extension_remarks": None,
            },
            state_error=f"Extension already requested for assignment {assignment_id}",
        )
        return assignment

    assignment = _refresh(run_in_transaction(_op))
    notification_service.extension_requested(assignment, actor)
    return assignment


def process_extension(assignment_id: int, action: str, actor_id: int, remarks: str | None = None) -> ProductAssignment:
    """
    Approve (adopt new_return_date) or reject (keep the original date) an extension.

    Raises:
        PermissionDeniedError: Wrong role, or the actor is the requester/holder
        InvalidStateError: No extension is pending
    """
    action = normalize_action(action)
    actor = load_actor(actor_id, "process_extension")
    remarks = clean_text(remarks)
    actor_employee_id = _actor_employee_id(actor)

    def _op():
        assignment = _get_assignment(assignment_id, lock=True)
        if assignment.is_returned or assignment.extension_status != EXTENSION_STATUS_REQUESTED:
            raise InvalidStateError(f"No pending extension for assignment {assignment_id}")
        if assignment.extension_requested_by == actor.id or (
            actor_employee_id is not None and assignment.employee_id == actor_employee_id
        ):
            raise PermissionDeniedError("You cannot process your own extension")

        values = {
            "extension_status": action,
            "extension_processed_by": actor.id,
            "extension_processed_at": utcnow(),
            "extension_remarks": remarks,
        }
        if action == EXTENSION_STATUS_APPROVED:
            values["return_date"] = assignment.new_return_date

        _guarded_update(
            ProductAssignment, assignment.id,
            guards={"is_returned": False, "extension_status": EXTENSION_STATUS_REQUESTED},
            values=values,
            state_error=f"Extension for assignment {assignment_id} was already processed",
        )
        return assignment

    assignment = _refresh(run_in_transaction(_op))
    notification_service.extension_processed(assignment, actor)
    return assignment


# =============================================================================
# QUERIES
# =============================================================================

def list_requests(status: str | None = None, employee_id: int | None = None,
                  product_id: int | None = None) -> list[ProductRequest]:
    query = db.session.query(ProductRequest)
    if status:
        query = query.filter(ProductRequest.status == status)
    if employee_id is not None:
        query = query.filter(ProductRequest.employee_id == employee_id)
    if product_id is not None:
        query = query.filter(ProductRequest.product_id == product_id)
    return query.order_by(ProductRequest.requested_at.desc(), ProductRequest.id.desc()).all()


def list_assignments(employee_id: int | None = None, returned: bool | None = None,
                     return_status: str | None = None, extension_status: str | None = None,
                     product_id: int | None = None) -> list[ProductAssignment]:
    query = db.session.query(ProductAssignment)
    if employee_id is not None:
        query = query.filter(ProductAssignment.employee_id == employee_id)
    if returned is not None:
        query = query.filter(ProductAssignment.is_returned.is_(returned))
    if return_status:
        query = query.filter(ProductAssignment.return_status == return_status)
    if extension_status:
        query = query.filter(ProductAssignment.extension_status == extension_status)
    if product_id is not None:
        query = query.filter(ProductAssignment.product_id == product_id)
    return query.order_by(ProductAssignment.assigned_at.desc(), ProductAssignment.id.desc()).all()


def get_request(request_id: int) -> ProductRequest:
    return _get_request(request_id)


def get_assignment(assignment_id: int) -> ProductAssignment:
    return _get_assignment(assignment_id)
