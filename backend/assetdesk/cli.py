# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/assetdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates missing tables, a default department and the admin/monitor/employee users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users and departments:
# - python -m flask users list [--role monitor]
# - python -m flask users create --username admin2 --email a2@assetdesk.local --full-name "Second Admin" --role admin
# - python -m flask departments list
# - python -m flask departments create --name "Metrology"
#
# Scheduled jobs (cron):
# - python -m flask reminders send
#   Email active monitors a summary of pending requests, returns, and extensions.
# - python -m flask monitors expire
#   Revert monitors whose appointment end date has passed.
# - python -m flask maintenance cleanup-sessions --older-than-days 30

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Department, User
from .permissions import ALL_ROLES, HOLDER_ROLES
from .errors import WorkflowError
from .services.auth_service import create_user, PasswordValidationError
from .services import account_service, reminder_service, session_service


DEFAULT_DEPARTMENT = "General"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--password', default='Password123!', show_default=True, help='Password for the default users')
@with_appcontext
def init_system(password):
    """
    Initialize AssetDesk: default department and one user per role.

    Creates:
    - Any missing tables
    - Department "General" (if no department exists)
    - Users: admin, monitor, employee (all @assetdesk.local)

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing AssetDesk...")

    db.create_all()
    click.echo("PASS Schema ready")

    department = db.session.query(Department).order_by(Department.id.asc()).first()
    if not department:
        department = Department(name=DEFAULT_DEPARTMENT, description="Default department")
        db.session.add(department)
        db.session.commit()
        click.echo(f"PASS Created department: {department.name} (ID: {department.id})")
    else:
        click.echo(f"PASS Using existing department: {department.name} (ID: {department.id})")

    default_users = [
        ("admin", "admin@assetdesk.local", "System Administrator", "admin"),
        ("monitor", "monitor@assetdesk.local", "Default Monitor", "monitor"),
        ("employee", "employee@assetdesk.local", "Default Employee", "employee"),
    ]

    click.echo("\nUSERS Creating default users...")
    for username, email, full_name, role in default_users:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(
                username=username,
                email=email,
                password=password,
                full_name=full_name,
                role=role,
                department_id=department.id if role in HOLDER_ROLES else None,
            )
            click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        except PasswordValidationError as e:
            db.session.rollback()
            click.echo(f"FAIL Password validation failed for '{username}': {str(e)}")
        except ValueError as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create user '{username}': {str(e)}")

    click.echo("\n" + "="*60)
    click.echo("DONE AssetDesk initialized")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    for username, email, _, _ in default_users:
        click.echo(f"   {username:<9} -> {email:<26} / {password}")
    click.echo("")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--full-name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(sorted(ALL_ROLES)), prompt=True, help='Role')
@click.option('--department-id', type=int, help='Department (required for employee and monitor)')
@with_appcontext
def create_user_cli(username, email, full_name, password, role, department_id):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(
            username=username,
            email=email,
            password=password,
            full_name=full_name,
            role=role,
            department_id=department_id,
        )
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}' (ID: {user.id})")
    except PasswordValidationError as e:
        db.session.rollback()
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except ValueError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@click.option('--role', type=click.Choice(sorted(ALL_ROLES)), help='Filter by role')
@with_appcontext
def list_users(role):
    """List users with role and active status."""
    users = account_service.list_users(role=role)

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<32} {'Role':<10} {'Active'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<32} {user.role:<10} {active_str}")

    click.echo("="*90 + "\n")


# =============================================================================
# DEPARTMENTS
# =============================================================================

@click.group('departments')
def departments_group():
    """Department management commands."""


@departments_group.command('list')
@with_appcontext
def list_departments_cli():
    """List all departments."""
    departments = account_service.list_departments()
    if not departments:
        click.echo("No departments found.")
        return
    for department in departments:
        click.echo(f"{department.id:<5} {department.name}")


@departments_group.command('create')
@click.option('--name', required=True, help='Department name (unique)')
@click.option('--description', help='Optional description')
@with_appcontext
def create_department_cli(name, description):
    """Create a department."""
    try:
        department = account_service.create_department(name, description)
        click.echo(f"PASS Created department: {department.name} (ID: {department.id})")
    except WorkflowError as e:
        click.echo(f"FAIL {e.message}")


# =============================================================================
# SCHEDULED JOBS
# =============================================================================

@click.group('reminders')
def reminders_group():
    """Reminder email commands."""


@reminders_group.command('send')
@with_appcontext
def send_reminders_cli():
    """Email active monitors a summary of pending work."""
    result = reminder_service.send_pending_reminders()
    click.echo(
        f"Pending: {result['pending_requests']} request(s), "
        f"{result['pending_returns']} return(s), "
        f"{result['pending_extensions']} extension(s)"
    )
    if result["sent"]:
        click.echo(f"PASS Reminder sent to {len(result['recipients'])} monitor(s)")
    else:
        click.echo("No reminder sent.")


@click.group('monitors')
def monitors_group():
    """Monitor appointment commands."""


@monitors_group.command('expire')
@with_appcontext
def expire_monitors_cli():
    """Revert monitors whose appointment end date has passed."""
    reverted = account_service.expire_monitor_assignments()
    for user in reverted:
        click.echo(f"Reverted {user.username} to employee")
    click.echo(f"{len(reverted)} monitor appointment(s) expired.")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--older-than-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(older_than_days):
    """
    Delete expired or revoked session tokens.

    Default retention: 30 days.
    """
    deleted = session_service.cleanup_expired_sessions(older_than_days=older_than_days)
    click.echo(f"Deleted {deleted} session tokens older than {older_than_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(departments_group)
    app.cli.add_command(reminders_group)
    app.cli.add_command(monitors_group)
    app.cli.add_command(maintenance_group)
