"""
Workflow tests: requests, direct assignment, returns, and extensions.

Verifies:
- Approval decrements stock and creates exactly one assignment
- Short stock leaves request, stock, and assignments untouched
- Every transition is refused from the wrong state
- Nobody processes their own request, return, or extension
- Stock is conserved across assign/return cycles
"""

from datetime import timedelta

import pytest
from sqlalchemy import func

from assetdesk.extensions import db
from assetdesk.errors import (
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from assetdesk.models import Product, ProductAssignment, ProductRequest, StockHistory
from assetdesk.services import workflow_service
from assetdesk.time_utils import today


INITIAL_STOCK = 5


def _quantity(product_id: int) -> int:
    db.session.expire_all()
    return db.session.get(Product, product_id).quantity


def _assert_conserved(product_id: int, total_added: int = INITIAL_STOCK):
    on_hand = _quantity(product_id)
    held = db.session.query(func.coalesce(func.sum(ProductAssignment.quantity), 0)).filter(
        ProductAssignment.product_id == product_id,
        ProductAssignment.is_returned.is_(False),
    ).scalar()
    assert on_hand >= 0
    assert on_hand + held == total_added


def _approved_assignment(product, holder, approver, quantity=1, return_date=None):
    req = workflow_service.submit_request(holder.id, product.id, quantity=quantity, return_date=return_date)
    workflow_service.process_request(req.id, "approved", approver.id)
    return db.session.query(ProductAssignment).filter_by(request_id=req.id).one()


# =============================================================================
# REQUESTS
# =============================================================================


class TestSubmitRequest:

    def test_creates_pending_request_without_touching_stock(self, product, employee):
        req = workflow_service.submit_request(employee.id, product.id, quantity=2, purpose="Audit")

        assert req.status == "pending"
        assert req.quantity == 2
        assert req.employee_id == employee.employee.id
        assert _quantity(product.id) == INITIAL_STOCK

    def test_admin_cannot_request(self, product, admin):
        with pytest.raises(PermissionDeniedError):
            workflow_service.submit_request(admin.id, product.id)

    def test_monitor_can_request(self, product, monitor):
        req = workflow_service.submit_request(monitor.id, product.id)
        assert req.status == "pending"

    @pytest.mark.parametrize("quantity", [0, -1, "abc", 1.5])
    def test_rejects_non_positive_quantity(self, product, employee, quantity):
        with pytest.raises(ValidationError):
            workflow_service.submit_request(employee.id, product.id, quantity=quantity)

    def test_rejects_past_return_date(self, product, employee):
        with pytest.raises(ValidationError):
            workflow_service.submit_request(employee.id, product.id, return_date=today() - timedelta(days=1))

    def test_unknown_product(self, employee, db_session):
        with pytest.raises(NotFoundError):
            workflow_service.submit_request(employee.id, 9999)

    def test_inactive_product(self, product, employee, db_session):
        product.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError):
            workflow_service.submit_request(employee.id, product.id)
        assert db_session.query(ProductRequest).count() == 0


class TestProcessRequest:

    def test_approve_decrements_stock_and_creates_assignment(self, product, employee, monitor):
        req = workflow_service.submit_request(employee.id, product.id, quantity=2)

        processed = workflow_service.process_request(req.id, "approved", monitor.id, remarks="OK")

        assert processed.status == "approved"
        assert processed.processed_by == monitor.id
        assert processed.processed_at is not None
        assert _quantity(product.id) == 3

        assignments = db.session.query(ProductAssignment).filter_by(request_id=req.id).all()
        assert len(assignments) == 1
        a = assignments[0]
        assert a.quantity == 2
        assert a.monitor_id == monitor.id
        assert a.employee_id == employee.employee.id
        assert a.is_returned is False
        assert a.return_status == "none"
        assert a.extension_status == "none"

        history = db.session.query(StockHistory).filter_by(product_id=product.id, action="assign").all()
        assert [h.quantity for h in history] == [2]
        _assert_conserved(product.id)

    def test_return_date_carries_over_to_assignment(self, product, employee, monitor):
        due = today() + timedelta(days=10)
        a = _approved_assignment(product, employee, monitor, return_date=due)
        assert a.return_date == due

    def test_insufficient_stock_changes_nothing(self, product, employee, monitor):
        req = workflow_service.submit_request(employee.id, product.id, quantity=INITIAL_STOCK + 1)

        with pytest.raises(InsufficientStockError) as exc:
            workflow_service.process_request(req.id, "approved", monitor.id)

        assert exc.value.available == INITIAL_STOCK
        assert exc.value.requested == INITIAL_STOCK + 1
        db.session.expire_all()
        assert db.session.get(ProductRequest, req.id).status == "pending"
        assert _quantity(product.id) == INITIAL_STOCK
        assert db.session.query(ProductAssignment).count() == 0
        assert db.session.query(StockHistory).count() == 0

    def test_approve_whole_stock_leaves_zero(self, product, employee, monitor):
        _approved_assignment(product, employee, monitor, quantity=INITIAL_STOCK)
        assert _quantity(product.id) == 0

        req = workflow_service.submit_request(employee.id, product.id)
        with pytest.raises(InsufficientStockError):
            workflow_service.process_request(req.id, "approved", monitor.id)

    def test_reject_keeps_stock(self, product, employee, monitor):
        req = workflow_service.submit_request(employee.id, product.id)

        processed = workflow_service.process_request(req.id, "rejected", monitor.id, remarks="Not now")

        assert processed.status == "rejected"
        assert processed.remarks == "Not now"
        assert _quantity(product.id) == INITIAL_STOCK
        assert db.session.query(ProductAssignment).count() == 0

    def test_action_aliases(self, product, employee, monitor):
        req = workflow_service.submit_request(employee.id, product.id)
        assert workflow_service.process_request(req.id, "Approve", monitor.id).status == "approved"

    def test_bad_action(self, product, employee, monitor):
        req = workflow_service.submit_request(employee.id, product.id)
        with pytest.raises(ValidationError):
            workflow_service.process_request(req.id, "maybe", monitor.id)

    def test_cannot_process_twice(self, product, employee, monitor):
        req = workflow_service.submit_request(employee.id, product.id)
        workflow_service.process_request(req.id, "approved", monitor.id)

        with pytest.raises(InvalidStateError):
            workflow_service.process_request(req.id, "approved", monitor.id)
        with pytest.raises(InvalidStateError):
            workflow_service.process_request(req.id, "rejected", monitor.id)
        assert _quantity(product.id) == INITIAL_STOCK - 1

    def test_unknown_request(self, monitor):
        with pytest.raises(NotFoundError):
            workflow_service.process_request(9999, "approved", monitor.id)

    def test_employee_cannot_process(self, product, employee, employee2):
        req = workflow_service.submit_request(employee.id, product.id)
        with pytest.raises(PermissionDeniedError):
            workflow_service.process_request(req.id, "approved", employee2.id)

    def test_monitor_cannot_approve_own_request(self, product, monitor, monitor2):
        req = workflow_service.submit_request(monitor.id, product.id)

        with pytest.raises(PermissionDeniedError):
            workflow_service.process_request(req.id, "approved", monitor.id)
        assert _quantity(product.id) == INITIAL_STOCK

        assert workflow_service.process_request(req.id, "approved", monitor2.id).status == "approved"

    def test_cannot_approve_for_inactive_employee(self, product, employee, monitor, db_session):
        req = workflow_service.submit_request(employee.id, product.id, quantity=2)
        employee.is_active = False
        employee.employee.is_active = False
        db_session.commit()

        with pytest.raises(ValidationError):
            workflow_service.process_request(req.id, "approved", monitor.id)

        assert _quantity(product.id) == INITIAL_STOCK
        assert db.session.get(ProductRequest, req.id).status == "pending"
        assert db.session.query(ProductAssignment).count() == 0
        assert workflow_service.process_request(req.id, "rejected", monitor.id).status == "rejected"

    def test_admin_can_approve(self, product, employee, admin):
        req = workflow_service.submit_request(employee.id, product.id)
        assert workflow_service.process_request(req.id, "approved", admin.id).status == "approved"


class TestCancelAndReactivate:

    def test_owner_cancels_pending_request(self, product, employee):
        req = workflow_service.submit_request(employee.id, product.id)

        cancelled = workflow_service.cancel_request(req.id, employee.id, remarks="Changed plans")

        assert cancelled.status == "rejected"
        assert cancelled.remarks.startswith(workflow_service.CANCELLED_REMARK)
        assert "Changed plans" in cancelled.remarks

    def test_other_employee_cannot_cancel(self, product, employee, employee2):
        req = workflow_service.submit_request(employee.id, product.id)
        with pytest.raises(PermissionDeniedError):
            workflow_service.cancel_request(req.id, employee2.id)

    def test_cannot_cancel_approved(self, product, employee, monitor):
        req = workflow_service.submit_request(employee.id, product.id)
        workflow_service.process_request(req.id, "approved", monitor.id)
        with pytest.raises(InvalidStateError):
            workflow_service.cancel_request(req.id, employee.id)

    def test_reactivate_rejected_then_approve(self, product, employee, monitor):
        req = workflow_service.submit_request(employee.id, product.id)
        workflow_service.process_request(req.id, "rejected", monitor.id)

        reactivated = workflow_service.reactivate_request(req.id, monitor.id)
        assert reactivated.status == "pending"
        assert reactivated.processed_by is None
        assert reactivated.remarks is None

        assert workflow_service.process_request(req.id, "approved", monitor.id).status == "approved"
        assert _quantity(product.id) == INITIAL_STOCK - 1

    def test_reactivate_requires_rejected(self, product, employee, monitor):
        req = workflow_service.submit_request(employee.id, product.id)
        with pytest.raises(InvalidStateError):
            workflow_service.reactivate_request(req.id, monitor.id)

    def test_employee_cannot_reactivate(self, product, employee, monitor):
        req = workflow_service.submit_request(employee.id, product.id)
        workflow_service.process_request(req.id, "rejected", monitor.id)
        with pytest.raises(PermissionDeniedError):
            workflow_service.reactivate_request(req.id, employee.id)


# =============================================================================
# DIRECT ASSIGNMENT
# =============================================================================


class TestDirectAssignment:

    def test_assign_decrements_stock(self, product, employee, monitor):
        a = workflow_service.assign_product(product.id, employee.employee.id, monitor.id, quantity=3)

        assert a.request_id is None
        assert a.quantity == 3
        assert a.monitor_id == monitor.id
        assert _quantity(product.id) == 2
        _assert_conserved(product.id)

    def test_insufficient_stock(self, product, employee, monitor):
        with pytest.raises(InsufficientStockError):
            workflow_service.assign_product(product.id, employee.employee.id, monitor.id, quantity=6)
        assert _quantity(product.id) == INITIAL_STOCK
        assert db.session.query(ProductAssignment).count() == 0

    def test_monitor_cannot_assign_to_self(self, product, monitor):
        with pytest.raises(PermissionDeniedError):
            workflow_service.assign_product(product.id, monitor.employee.id, monitor.id)

    def test_employee_cannot_assign(self, product, employee, employee2):
        with pytest.raises(PermissionDeniedError):
            workflow_service.assign_product(product.id, employee2.employee.id, employee.id)

    def test_unknown_employee(self, product, monitor):
        with pytest.raises(NotFoundError):
            workflow_service.assign_product(product.id, 9999, monitor.id)

    def test_inactive_employee(self, product, employee, monitor, db_session):
        employee.employee.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError):
            workflow_service.assign_product(product.id, employee.employee.id, monitor.id)
        assert _quantity(product.id) == INITIAL_STOCK


# =============================================================================
# RETURNS
# =============================================================================


class TestReturns:

    def test_full_return_cycle_restores_stock(self, product, employee, monitor):
        a = _approved_assignment(product, employee, monitor, quantity=2)

        requested = workflow_service.request_return(a.id, employee.id)
        assert requested.return_status == "requested"
        assert requested.return_requested_by == employee.id
        assert _quantity(product.id) == 3

        returned = workflow_service.process_return(a.id, "approved", monitor.id, remarks="Good condition")
        assert returned.is_returned is True
        assert returned.return_status == "approved"
        assert returned.returned_to == monitor.id
        assert returned.returned_at is not None
        assert _quantity(product.id) == INITIAL_STOCK

        actions = [h.action for h in db.session.query(StockHistory).order_by(StockHistory.id).all()]
        assert actions == ["assign", "return"]
        _assert_conserved(product.id)

    def test_double_return_request_refused(self, product, employee, monitor):
        a = _approved_assignment(product, employee, monitor)
        workflow_service.request_return(a.id, employee.id)
        with pytest.raises(InvalidStateError):
            workflow_service.request_return(a.id, employee.id)

    def test_only_holder_can_request_return(self, product, employee, employee2, monitor):
        a = _approved_assignment(product, employee, monitor)
        with pytest.raises(PermissionDeniedError):
            workflow_service.request_return(a.id, employee2.id)

    def test_rejected_return_can_be_requested_again(self, product, employee, monitor):
        a = _approved_assignment(product, employee, monitor)
        workflow_service.request_return(a.id, employee.id)

        rejected = workflow_service.process_return(a.id, "rejected", monitor.id, remarks="Bring the case")
        assert rejected.return_status == "none"
        assert rejected.is_returned is False
        assert _quantity(product.id) == INITIAL_STOCK - 1

        assert workflow_service.request_return(a.id, employee.id).return_status == "requested"

    def test_process_without_pending_return(self, product, employee, monitor):
        a = _approved_assignment(product, employee, monitor)
        with pytest.raises(InvalidStateError):
            workflow_service.process_return(a.id, "approved", monitor.id)

    def test_returned_assignment_is_closed(self, product, employee, monitor):
        a = _approved_assignment(product, employee, monitor)
        workflow_service.request_return(a.id, employee.id)
        workflow_service.process_return(a.id, "approved", monitor.id)

        with pytest.raises(InvalidStateError):
            workflow_service.request_return(a.id, employee.id)
        with pytest.raises(InvalidStateError):
            workflow_service.process_return(a.id, "approved", monitor.id)
        assert _quantity(product.id) == INITIAL_STOCK

    def test_monitor_cannot_process_own_return(self, product, monitor, monitor2):
        a = workflow_service.assign_product(product.id, monitor.employee.id, monitor2.id)
        workflow_service.request_return(a.id, monitor.id)

        with pytest.raises(PermissionDeniedError):
            workflow_service.process_return(a.id, "approved", monitor.id)
        assert workflow_service.process_return(a.id, "approved", monitor2.id).is_returned is True

    def test_approved_return_closes_pending_extension(self, product, employee, monitor):
        due = today() + timedelta(days=5)
        a = _approved_assignment(product, employee, monitor, return_date=due)
        workflow_service.request_extension(a.id, employee.id, due + timedelta(days=7), "Still measuring")
        workflow_service.request_return(a.id, employee.id)

        returned = workflow_service.process_return(a.id, "approved", monitor.id)

        assert returned.is_returned is True
        assert returned.extension_status == "rejected"
        assert returned.extension_remarks == "Closed by return"
        assert returned.return_date == due
        with pytest.raises(InvalidStateError):
            workflow_service.process_extension(a.id, "approved", monitor.id)


# =============================================================================
# EXTENSIONS
# =============================================================================


class TestExtensions:

    def test_approve_adopts_new_date(self, product, employee, monitor):
        due = today() + timedelta(days=3)
        a = _approved_assignment(product, employee, monitor, return_date=due)
        new_date = due + timedelta(days=14)

        requested = workflow_service.request_extension(a.id, employee.id, new_date.isoformat(), "Project slipped")
        assert requested.extension_status == "requested"
        assert requested.new_return_date == new_date
        assert requested.return_date == due

        approved = workflow_service.process_extension(a.id, "approved", monitor.id, remarks="Fine")
        assert approved.extension_status == "approved"
        assert approved.return_date == new_date
        assert approved.extension_processed_by == monitor.id

    def test_reject_keeps_original_date(self, product, employee, monitor):
        due = today() + timedelta(days=3)
        a = _approved_assignment(product, employee, monitor, return_date=due)
        workflow_service.request_extension(a.id, employee.id, due + timedelta(days=1), "Need one more day")

        rejected = workflow_service.process_extension(a.id, "rejected", monitor.id)
        assert rejected.extension_status == "rejected"
        assert rejected.return_date == due

        # A rejected extension may be asked for again
        again = workflow_service.request_extension(a.id, employee.id, due + timedelta(days=2), "Please")
        assert again.extension_status == "requested"

    def test_second_request_while_pending(self, product, employee, monitor):
        a = _approved_assignment(product, employee, monitor)
        workflow_service.request_extension(a.id, employee.id, today() + timedelta(days=10), "Reason")
        with pytest.raises(InvalidStateError):
            workflow_service.request_extension(a.id, employee.id, today() + timedelta(days=20), "Reason")

    def test_new_date_must_follow_current_return_date(self, product, employee, monitor):
        due = today() + timedelta(days=10)
        a = _approved_assignment(product, employee, monitor, return_date=due)
        with pytest.raises(ValidationError):
            workflow_service.request_extension(a.id, employee.id, due, "Same day")

    def test_new_date_must_be_future(self, product, employee, monitor):
        a = _approved_assignment(product, employee, monitor)
        with pytest.raises(ValidationError):
            workflow_service.request_extension(a.id, employee.id, today(), "Today")

    def test_reason_required(self, product, employee, monitor):
        a = _approved_assignment(product, employee, monitor)
        with pytest.raises(ValidationError):
            workflow_service.request_extension(a.id, employee.id, today() + timedelta(days=5), "  ")

    def test_refused_while_return_pending(self, product, employee, monitor):
        a = _approved_assignment(product, employee, monitor)
        workflow_service.request_return(a.id, employee.id)
        with pytest.raises(InvalidStateError):
            workflow_service.request_extension(a.id, employee.id, today() + timedelta(days=5), "Reason")

    def test_process_without_pending_extension(self, product, employee, monitor):
        a = _approved_assignment(product, employee, monitor)
        with pytest.raises(InvalidStateError):
            workflow_service.process_extension(a.id, "approved", monitor.id)

    def test_monitor_cannot_process_own_extension(self, product, monitor, monitor2):
        a = workflow_service.assign_product(product.id, monitor.employee.id, monitor2.id)
        workflow_service.request_extension(a.id, monitor.id, today() + timedelta(days=10), "Still calibrating")

        with pytest.raises(PermissionDeniedError):
            workflow_service.process_extension(a.id, "approved", monitor.id)

        db.session.expire_all()
        assert db.session.get(ProductAssignment, a.id).extension_status == "requested"
        assert workflow_service.process_extension(a.id, "approved", monitor2.id).extension_status == "approved"

    def test_only_holder_requests_extension(self, product, employee, employee2, monitor):
        a = _approved_assignment(product, employee, monitor)
        with pytest.raises(PermissionDeniedError):
            workflow_service.request_extension(a.id, employee2.id, today() + timedelta(days=5), "Reason")


# =============================================================================
# QUERIES
# =============================================================================


class TestQueries:

    def test_list_filters(self, product, employee, employee2, monitor):
        r1 = workflow_service.submit_request(employee.id, product.id)
        workflow_service.submit_request(employee2.id, product.id)
        workflow_service.process_request(r1.id, "approved", monitor.id)

        assert len(workflow_service.list_requests()) == 2
        assert [r.id for r in workflow_service.list_requests(status="approved")] == [r1.id]
        assert len(workflow_service.list_requests(employee_id=employee2.employee.id)) == 1

        assert len(workflow_service.list_assignments(returned=False)) == 1
        assert workflow_service.list_assignments(employee_id=employee2.employee.id) == []
