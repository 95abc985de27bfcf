"""
HTTP API tests.

Verifies:
- Protected endpoints require a session token
- Role checks return 403 before any state changes
- Auth lifecycle (login, me, logout, change password, registration, password reset)
- End-to-end request/approve/return keeps stock consistent
- Reports, health, and the live feed stream
"""

import re

import pytest

from assetdesk.extensions import db
from assetdesk.models import Product
from assetdesk.services import workflow_service
from assetdesk.services.live_feed import broadcaster

PASSWORD = "Password123!"


# =============================================================================
# AUTHENTICATION REQUIRED
# =============================================================================


class TestAuthenticationRequired:

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/products"),
        ("post", "/api/products"),
        ("get", "/api/requests"),
        ("post", "/api/requests"),
        ("get", "/api/assignments"),
        ("post", "/api/assignments/1/return"),
        ("get", "/api/admin/users"),
        ("get", "/api/reports/dashboard"),
        ("get", "/api/activity/recent"),
        ("get", "/api/auth/me"),
    ])
    def test_requires_token(self, client, db_session, method, path):
        resp = getattr(client, method)(path)
        assert resp.status_code == 401

    def test_invalid_token(self, client, db_session):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401


# =============================================================================
# ROLE CHECKS
# =============================================================================


class TestRoleChecks:

    def test_employee_cannot_process_requests(self, client, product, employee, employee_headers):
        resp = client.post("/api/requests", json={"product_id": product.id}, headers=employee_headers)
        request_id = resp.json["request"]["id"]

        resp = client.post(f"/api/requests/{request_id}/process", json={"action": "approved"},
                           headers=employee_headers)
        assert resp.status_code == 403
        assert resp.json["required_roles"] == ["admin", "monitor"]

    def test_admin_cannot_submit_requests(self, client, product, admin_headers):
        resp = client.post("/api/requests", json={"product_id": product.id}, headers=admin_headers)
        assert resp.status_code == 403

    def test_monitor_cannot_use_admin_routes(self, client, monitor_headers):
        assert client.get("/api/admin/users", headers=monitor_headers).status_code == 403
        assert client.get("/api/reports/employees", headers=monitor_headers).status_code == 403

    def test_employee_cannot_view_reports(self, client, employee_headers):
        assert client.get("/api/reports/stock", headers=employee_headers).status_code == 403

    def test_employee_cannot_read_others_assignment(self, client, product, employee2, monitor,
                                                    employee_headers):
        assignment = workflow_service.assign_product(product.id, employee2.employee.id, monitor.id)
        resp = client.get(f"/api/assignments/{assignment.id}", headers=employee_headers)
        assert resp.status_code == 403

    def test_employee_sees_only_own_requests(self, client, product, employee, employee_headers,
                                             employee2_headers):
        client.post("/api/requests", json={"product_id": product.id}, headers=employee_headers)
        client.post("/api/requests", json={"product_id": product.id}, headers=employee2_headers)

        resp = client.get("/api/requests", headers=employee_headers)
        assert resp.json["count"] == 1
        assert resp.json["items"][0]["employee_id"] == employee.employee.id


# =============================================================================
# AUTH LIFECYCLE
# =============================================================================


class TestAuthRoutes:

    def test_login_and_me(self, client, employee):
        resp = client.post("/api/auth/login", json={"username": "employee", "password": PASSWORD})
        assert resp.status_code == 200
        assert "password_hash" not in resp.json["user"]

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {resp.json['token']}"})
        assert me.json["user"]["username"] == "employee"

    def test_login_failures(self, client, employee):
        assert client.post("/api/auth/login", json={"username": "employee"}).status_code == 400
        resp = client.post("/api/auth/login", json={"username": "employee", "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_logout_revokes_token(self, client, employee_headers):
        assert client.post("/api/auth/logout", headers=employee_headers).status_code == 200
        assert client.get("/api/auth/me", headers=employee_headers).status_code == 401

    def test_change_password(self, client, employee_headers, token_for):
        resp = client.post("/api/auth/change-password", headers=employee_headers,
                           json={"current_password": PASSWORD, "new_password": "weak"})
        assert resp.status_code == 400

        resp = client.post("/api/auth/change-password", headers=employee_headers,
                           json={"current_password": PASSWORD, "new_password": "Different456!"})
        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=employee_headers).status_code == 401
        assert token_for("employee", "Different456!") is not None

    def test_register_and_approve(self, client, department, admin_headers, token_for):
        resp = client.get("/api/auth/departments")
        assert [d["name"] for d in resp.json["items"]] == ["Metrology"]

        resp = client.post("/api/auth/register", json={
            "full_name": "New Person", "username": "newbie", "email": "newbie@assetdesk.local",
            "password": PASSWORD, "department_id": department.id,
        })
        assert resp.status_code == 201
        assert token_for("newbie") is None

        registration_id = resp.json["registration"]["id"]
        resp = client.post(f"/api/admin/registrations/{registration_id}/approve", headers=admin_headers)
        assert resp.status_code == 201
        assert token_for("newbie") is not None

    def test_forgot_and_reset_password(self, client, employee, outbox, employee_headers, token_for):
        assert client.post("/api/auth/forgot-password", json={}).status_code == 400

        resp = client.post("/api/auth/forgot-password", json={"email": "nobody@assetdesk.local"})
        assert resp.status_code == 200
        assert outbox == []

        resp = client.post("/api/auth/forgot-password", json={"email": "employee@assetdesk.local"})
        assert resp.status_code == 200
        assert outbox[-1]["recipients"] == ["employee@assetdesk.local"]
        token = re.search(r"/reset-password/([0-9a-f]{64})", outbox[-1]["body"]).group(1)

        assert client.get(f"/api/auth/reset-password/{token}").json == {"valid": True}
        resp = client.post(f"/api/auth/reset-password/{token}", json={"new_password": "weak"})
        assert resp.status_code == 400

        resp = client.post(f"/api/auth/reset-password/{token}", json={"new_password": "Different456!"})
        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=employee_headers).status_code == 401
        assert token_for("employee", "Different456!") is not None

        assert client.get(f"/api/auth/reset-password/{token}").json == {"valid": False}
        resp = client.post(f"/api/auth/reset-password/{token}", json={"new_password": "Another789!"})
        assert resp.status_code == 400

    def test_register_validation(self, client, department):
        resp = client.post("/api/auth/register", json={"username": "x"})
        assert resp.status_code == 400


# =============================================================================
# END-TO-END WORKFLOW
# =============================================================================


class TestEndToEnd:

    def _quantity(self, product_id):
        db.session.expire_all()
        return db.session.get(Product, product_id).quantity

    def test_request_approve_return(self, client, product, employee, monitor, employee_headers,
                                    monitor_headers):
        resp = client.post("/api/requests", json={"product_id": product.id, "quantity": 2,
                                                  "purpose": "Line audit"}, headers=employee_headers)
        assert resp.status_code == 201
        request_id = resp.json["request"]["id"]
        assert self._quantity(product.id) == 5

        resp = client.post(f"/api/requests/{request_id}/process", json={"action": "approved"},
                           headers=monitor_headers)
        assert resp.status_code == 200
        assert resp.json["request"]["status"] == "approved"
        assert self._quantity(product.id) == 3

        resp = client.get("/api/assignments", headers=employee_headers)
        assert resp.json["count"] == 1
        assignment_id = resp.json["items"][0]["id"]

        resp = client.post(f"/api/assignments/{assignment_id}/return", headers=employee_headers)
        assert resp.json["assignment"]["return_status"] == "requested"

        resp = client.post(f"/api/assignments/{assignment_id}/return/process",
                           json={"action": "approved"}, headers=monitor_headers)
        assert resp.status_code == 200
        assert resp.json["assignment"]["is_returned"] is True
        assert self._quantity(product.id) == 5

    def test_insufficient_stock_is_409(self, client, product, employee, monitor_headers):
        resp = client.post("/api/assignments", json={"product_id": product.id,
                                                     "employee_id": employee.employee.id,
                                                     "quantity": 6}, headers=monitor_headers)
        assert resp.status_code == 409
        assert self._quantity(product.id) == 5

    def test_double_processing_is_409(self, client, product, employee, employee_headers, monitor_headers):
        resp = client.post("/api/requests", json={"product_id": product.id}, headers=employee_headers)
        request_id = resp.json["request"]["id"]
        client.post(f"/api/requests/{request_id}/process", json={"action": "rejected"},
                    headers=monitor_headers)

        resp = client.post(f"/api/requests/{request_id}/process", json={"action": "approved"},
                           headers=monitor_headers)
        assert resp.status_code == 409
        assert self._quantity(product.id) == 5

    def test_unknown_request_is_404(self, client, monitor_headers):
        resp = client.post("/api/requests/999/process", json={"action": "approved"}, headers=monitor_headers)
        assert resp.status_code == 404

    def test_bad_action_is_400(self, client, product, employee_headers, monitor_headers):
        resp = client.post("/api/requests", json={"product_id": product.id}, headers=employee_headers)
        request_id = resp.json["request"]["id"]
        resp = client.post(f"/api/requests/{request_id}/process", json={"action": "maybe"},
                           headers=monitor_headers)
        assert resp.status_code == 400


# =============================================================================
# ADMIN
# =============================================================================


class TestAdminRoutes:

    def test_deactivate_with_outstanding_is_409(self, client, product, employee, monitor, admin_headers):
        workflow_service.assign_product(product.id, employee.employee.id, monitor.id)
        resp = client.post(f"/api/admin/users/{employee.id}/deactivate", headers=admin_headers)
        assert resp.status_code == 409
        assert resp.json["outstanding_count"] == 1

        resp = client.get(f"/api/admin/users/{employee.id}/clearance", headers=admin_headers)
        assert resp.json["can_deactivate"] is False

    def test_bulk_status_validation(self, client, admin_headers):
        resp = client.post("/api/admin/users/bulk-status", json={"user_ids": "1", "active": False},
                           headers=admin_headers)
        assert resp.status_code == 400

        resp = client.post("/api/admin/users/bulk-status", json={"user_ids": [True], "active": False},
                           headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json["error"] == "user_ids must be a list of integers"

    def test_monitor_overview(self, client, app, monitor, admin_headers):
        resp = client.get("/api/admin/monitors", headers=admin_headers)
        assert resp.json["active_monitors"] == 1
        assert resp.json["max_monitors"] == app.config["MAX_MONITORS"]


# =============================================================================
# REPORTS / ACTIVITY / HEALTH
# =============================================================================


class TestReports:

    def test_stock_report_totals(self, client, product, employee, monitor, monitor_headers):
        workflow_service.assign_product(product.id, employee.employee.id, monitor.id, quantity=2)
        resp = client.get("/api/reports/stock", headers=monitor_headers)

        item = resp.json["items"][0]
        assert (item["on_hand"], item["assigned"], item["total"]) == (3, 2, 5)

    def test_dashboard_by_role(self, client, product, employee_headers, admin_headers):
        employee_view = client.get("/api/reports/dashboard", headers=employee_headers).json
        assert "my_pending_requests" in employee_view
        assert "pending_registrations" not in employee_view

        admin_view = client.get("/api/reports/dashboard", headers=admin_headers).json
        assert admin_view["pending_registrations"] == 0
        assert admin_view["active_products"] == 1

    def test_assignment_report_status(self, client, monitor_headers):
        assert client.get("/api/reports/assignments?status=bogus", headers=monitor_headers).status_code == 400
        assert client.get("/api/reports/assignments?status=overdue", headers=monitor_headers).json["count"] == 0

    def test_activity_scoped_to_caller(self, client, product, employee, employee_headers, monitor_headers):
        client.post("/api/requests", json={"product_id": product.id}, headers=employee_headers)

        assert client.get("/api/activity/recent", headers=employee_headers).json["count"] == 1
        assert client.get("/api/activity/recent", headers=monitor_headers).json["count"] == 0


class TestHealth:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["database"]["status"] == "healthy"


# =============================================================================
# LIVE FEED
# =============================================================================


class TestLiveFeedRoute:

    def test_requires_token(self, client, db_session):
        assert client.get("/api/live-feed").status_code == 401
        assert client.get("/api/live-feed?token=bogus").status_code == 401

    def test_stream_opens_with_connected_event(self, client, employee, token_for):
        token = token_for("employee")
        resp = client.get(f"/api/live-feed?token={token}", buffered=False)
        try:
            assert resp.status_code == 200
            assert resp.mimetype == "text/event-stream"
            first = next(iter(resp.response))
            if isinstance(first, bytes):
                first = first.decode("utf-8")
            assert first.startswith("data: ")
            assert '"connected"' in first
            assert broadcaster.subscriber_count() == 1
        finally:
            resp.close()

    def test_status(self, client, db_session):
        assert client.get("/api/live-feed/status").json == {"subscribers": 0}
