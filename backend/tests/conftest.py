"""
Pytest fixtures for AssetDesk backend tests.

Provides the test database, one user per role, a stocked product, and
login helpers for route tests.
"""

import pytest

from assetdesk import create_app
from assetdesk.extensions import db
from assetdesk.models import Department, Product
from assetdesk.services import email_service
from assetdesk.services.auth_service import create_user
from assetdesk.services.live_feed import broadcaster


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MAIL_ENABLED': False,
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp("uploads")),
    })

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh tables for each test, inside an app context."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture(autouse=True)
def _reset_live_feed():
    """Subscribers left over from one test must not leak into the next."""
    yield
    with broadcaster._lock:
        broadcaster._subscribers.clear()


@pytest.fixture(scope='function')
def department(db_session):
    dept = Department(name="Metrology", description="Calibration lab")
    db_session.add(dept)
    db_session.commit()
    return dept


@pytest.fixture(scope='function')
def admin(db_session):
    return create_user(
        username="admin", email="admin@assetdesk.local", password=PASSWORD,
        full_name="Ada Admin", role="admin",
    )


@pytest.fixture(scope='function')
def monitor(db_session, department):
    return create_user(
        username="monitor", email="monitor@assetdesk.local", password=PASSWORD,
        full_name="Mo Monitor", role="monitor", department_id=department.id,
    )


@pytest.fixture(scope='function')
def monitor2(db_session, department):
    return create_user(
        username="monitor2", email="monitor2@assetdesk.local", password=PASSWORD,
        full_name="Mia Monitor", role="monitor", department_id=department.id,
    )


@pytest.fixture(scope='function')
def employee(db_session, department):
    return create_user(
        username="employee", email="employee@assetdesk.local", password=PASSWORD,
        full_name="Eve Employee", role="employee", department_id=department.id,
    )


@pytest.fixture(scope='function')
def employee2(db_session, department):
    return create_user(
        username="employee2", email="employee2@assetdesk.local", password=PASSWORD,
        full_name="Ed Employee", role="employee", department_id=department.id,
    )


@pytest.fixture(scope='function')
def product(db_session, admin):
    """Active product with 5 units on hand."""
    p = Product(name="Digital Caliper", category="Measuring", quantity=5, added_by=admin.id, is_active=True)
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def outbox(monkeypatch):
    """Capture outgoing email instead of talking to SMTP."""
    sent = []

    def fake_send(subject, body, recipients, html_body=None):
        sent.append({"subject": subject, "body": body, "recipients": list(recipients)})
        return True

    monkeypatch.setattr(email_service, "send_email", fake_send)
    return sent


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def login(client, username: str) -> dict:
    return auth_headers(get_auth_token(client, username))


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return login(client, "admin")


@pytest.fixture(scope='function')
def monitor_headers(client, monitor):
    return login(client, "monitor")


@pytest.fixture(scope='function')
def employee_headers(client, employee):
    return login(client, "employee")


@pytest.fixture(scope='function')
def employee2_headers(client, employee2):
    return login(client, "employee2")


@pytest.fixture(scope='function')
def token_for(client):
    """Log in through the API; returns the bearer token or None."""
    def _token(username, password=PASSWORD):
        return get_auth_token(client, username, password)
    return _token
