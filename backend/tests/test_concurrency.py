"""
Concurrency tests against a file-backed SQLite database.

Verifies:
- Concurrent approvals never oversell stock
- A request processed by two monitors at once succeeds exactly once
- Concurrent direct assignments conserve on_hand + unreturned units

Each worker thread pushes its own app context, so each has its own
session and connection.
"""

import threading

import pytest

from assetdesk import create_app
from assetdesk.extensions import db
from assetdesk.errors import InsufficientStockError, InvalidStateError, WorkflowError
from assetdesk.models import Department, Product, ProductAssignment, User
from assetdesk.services import workflow_service
from assetdesk.services.auth_service import create_user


@pytest.fixture(scope='function')
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {"connect_args": {"timeout": 30, "check_same_thread": False}},
        'MAIL_ENABLED': False,
        'UPLOAD_FOLDER': str(tmp_path / "uploads"),
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


@pytest.fixture(scope='function')
def seed(file_app):
    """Two monitors, two employees, and a product; returns ids only."""
    with file_app.app_context():
        dept = Department(name="Metrology")
        db.session.add(dept)
        db.session.commit()

        admin = create_user("admin", "admin@x.io", "Password123!", "Admin", role="admin")
        ids = {
            "admin": admin.id,
            "monitors": [
                create_user(f"mon{i}", f"mon{i}@x.io", "Password123!", f"Monitor {i}",
                            role="monitor", department_id=dept.id).id
                for i in range(2)
            ],
            "employees": [
                create_user(f"emp{i}", f"emp{i}@x.io", "Password123!", f"Employee {i}",
                            department_id=dept.id).id
                for i in range(2)
            ],
        }
        product = Product(name="Oscilloscope", quantity=5, added_by=admin.id, is_active=True)
        db.session.add(product)
        db.session.commit()
        ids["product"] = product.id
        return ids


def _run_concurrently(app, jobs):
    """
    Start every job at the same time.

    Returns a list of ("ok", value) or ("error", exception) per job, in order.
    """
    barrier = threading.Barrier(len(jobs))
    results = [None] * len(jobs)

    def worker(index, job):
        with app.app_context():
            barrier.wait()
            try:
                results[index] = ("ok", job())
            except WorkflowError as exc:
                results[index] = ("error", exc)

    threads = [threading.Thread(target=worker, args=(i, job)) for i, job in enumerate(jobs)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results


def _stock_state(app, product_id):
    with app.app_context():
        on_hand = db.session.get(Product, product_id).quantity
        out = sum(
            a.quantity for a in db.session.query(ProductAssignment).filter_by(
                product_id=product_id, is_returned=False
            )
        )
        assignments = db.session.query(ProductAssignment).filter_by(product_id=product_id).count()
        return on_hand, out, assignments


class TestConcurrentApprovals:

    def test_last_units_go_to_one_request(self, file_app, seed):
        with file_app.app_context():
            request_ids = [
                workflow_service.submit_request(emp_id, seed["product"], quantity=4).id
                for emp_id in seed["employees"]
            ]

        jobs = [
            (lambda rid=rid, mid=mid: workflow_service.process_request(rid, "approved", mid).id)
            for rid, mid in zip(request_ids, seed["monitors"])
        ]
        results = _run_concurrently(file_app, jobs)

        outcomes = sorted(kind for kind, _ in results)
        assert outcomes == ["error", "ok"]
        errors = [value for kind, value in results if kind == "error"]
        assert isinstance(errors[0], InsufficientStockError)

        on_hand, out, assignments = _stock_state(file_app, seed["product"])
        assert (on_hand, out, assignments) == (1, 4, 1)

    def test_same_request_processed_once(self, file_app, seed):
        with file_app.app_context():
            request_id = workflow_service.submit_request(seed["employees"][0], seed["product"], quantity=2).id

        jobs = [
            (lambda mid=mid: workflow_service.process_request(request_id, "approved", mid).id)
            for mid in seed["monitors"]
        ]
        results = _run_concurrently(file_app, jobs)

        assert sorted(kind for kind, _ in results) == ["error", "ok"]
        errors = [value for kind, value in results if kind == "error"]
        assert isinstance(errors[0], InvalidStateError)

        assert _stock_state(file_app, seed["product"]) == (3, 2, 1)


class TestConcurrentAssignments:

    def test_direct_assignments_conserve_stock(self, file_app, seed):
        with file_app.app_context():
            employee_ids = [db.session.get(User, uid).employee.id for uid in seed["employees"]]

        monitors = seed["monitors"]
        jobs = [
            (lambda i=i: workflow_service.assign_product(
                seed["product"], employee_ids[i % 2], monitors[i % 2], quantity=2).id)
            for i in range(4)
        ]
        results = _run_concurrently(file_app, jobs)

        successes = [value for kind, value in results if kind == "ok"]
        failures = [value for kind, value in results if kind == "error"]
        assert len(successes) == 2
        assert all(isinstance(f, InsufficientStockError) for f in failures)

        on_hand, out, assignments = _stock_state(file_app, seed["product"])
        assert on_hand == 1
        assert on_hand + out == 5
        assert assignments == 2
