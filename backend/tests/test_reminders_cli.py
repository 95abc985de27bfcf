"""
Reminder job and Flask CLI tests.
"""

from datetime import timedelta

from assetdesk.extensions import db
from assetdesk.models import Department, MonitorAssignment, SessionToken, User
from assetdesk.services import account_service, reminder_service, session_service, workflow_service
from assetdesk.time_utils import today, utcnow


# =============================================================================
# REMINDERS
# =============================================================================


class TestReminders:

    def test_nothing_pending_sends_nothing(self, outbox, monitor):
        result = reminder_service.send_pending_reminders()
        assert result["total"] == 0
        assert result["sent"] is False
        assert outbox == []

    def test_counts_and_recipients(self, outbox, product, employee, monitor, monitor2):
        workflow_service.submit_request(employee.id, product.id)
        a1 = workflow_service.assign_product(product.id, employee.employee.id, monitor.id)
        a2 = workflow_service.assign_product(product.id, employee.employee.id, monitor.id)
        workflow_service.request_return(a1.id, employee.id)
        workflow_service.request_extension(a2.id, employee.id, (today() + timedelta(days=14)).isoformat(),
                                           "Still testing")

        result = reminder_service.send_pending_reminders()

        assert (result["pending_requests"], result["pending_returns"], result["pending_extensions"]) == (1, 1, 1)
        assert result["recipients"] == ["monitor@assetdesk.local", "monitor2@assetdesk.local"]
        assert result["sent"] is True
        assert outbox[-1]["subject"] == "Reminder: 3 Pending Items - AssetDesk"
        assert "- Return requests: 1" in outbox[-1]["body"]

    def test_disabled(self, app, monkeypatch, outbox, product, employee, monitor):
        monkeypatch.setitem(app.config, "REMINDER_ENABLED", False)
        workflow_service.submit_request(employee.id, product.id)

        result = reminder_service.send_pending_reminders()
        assert result["total"] == 1
        assert result["sent"] is False
        assert outbox == []

    def test_no_monitors(self, outbox, product, employee):
        workflow_service.submit_request(employee.id, product.id)
        result = reminder_service.send_pending_reminders()
        assert result["recipients"] == []
        assert result["sent"] is False

    def test_admin_route(self, client, outbox, admin_headers):
        resp = client.post("/api/admin/reminders/send", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["total"] == 0


# =============================================================================
# CLI
# =============================================================================


class TestCli:

    def test_system_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["system", "init"])
        assert result.exit_code == 0
        assert "PASS Created user: admin" in result.output
        assert db_session.query(Department).filter_by(name="General").count() == 1
        assert sorted(u.role for u in db_session.query(User).all()) == ["admin", "employee", "monitor"]

        result = runner.invoke(args=["system", "init"])
        assert "already exists" in result.output
        assert db_session.query(User).count() == 3

    def test_users_list(self, app, employee):
        result = app.test_cli_runner().invoke(args=["users", "list", "--role", "employee"])
        assert result.exit_code == 0
        assert "employee@assetdesk.local" in result.output

    def test_users_create_weak_password(self, app, department):
        result = app.test_cli_runner().invoke(args=[
            "users", "create", "--username", "cli", "--email", "cli@x.io", "--full-name", "Cli User",
            "--password", "weak", "--role", "employee", "--department-id", str(department.id),
        ])
        assert "FAIL Password validation failed" in result.output
        assert db.session.query(User).filter_by(username="cli").count() == 0

    def test_departments(self, app, db_session):
        runner = app.test_cli_runner()
        assert "PASS Created department: Quality" in runner.invoke(
            args=["departments", "create", "--name", "Quality"]).output
        assert "FAIL" in runner.invoke(args=["departments", "create", "--name", "Quality"]).output
        assert "Quality" in runner.invoke(args=["departments", "list"]).output

    def test_reminders_send(self, app, outbox, product, employee, monitor):
        workflow_service.submit_request(employee.id, product.id)
        result = app.test_cli_runner().invoke(args=["reminders", "send"])
        assert "Pending: 1 request(s), 0 return(s), 0 extension(s)" in result.output
        assert "PASS Reminder sent to 1 monitor(s)" in result.output

    def test_monitors_expire(self, app, employee, admin):
        account_service.assign_monitor(employee.id, today(), admin.id)
        db.session.query(MonitorAssignment).update(
            {"end_date": utcnow() - timedelta(days=1)}, synchronize_session=False)
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["monitors", "expire"])
        assert "Reverted employee to employee" in result.output
        assert "1 monitor appointment(s) expired." in result.output

    def test_cleanup_sessions(self, app, employee):
        session, _ = session_service.create_session(employee.id)
        session.created_at = utcnow() - timedelta(days=61)
        session.expires_at = utcnow() - timedelta(days=60)
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-sessions", "--older-than-days", "30"])
        assert "Deleted 1 session tokens older than 30 days." in result.output
        assert db.session.query(SessionToken).count() == 0
