# Overview: Password hashing, strength rules, and credential checks.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
- Deactivated accounts cannot authenticate
- Password reset tokens are single-use, stored as SHA-256, and expire after
  30 minutes
"""

import bcrypt
import re
from datetime import timedelta
from ..extensions import db
from ..models import User, Employee, Department
from ..permissions import ALL_ROLES, HOLDER_ROLES
from assetdesk.time_utils import utcnow
from . import session_service


PASSWORD_RESET_TTL = timedelta(minutes=30)


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash verifies as False.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    full_name: str,
    role: str = "employee",
    department_id: int | None = None,
    password_hash: str | None = None,
    commit: bool = True,
) -> User:
    """
    Create a user, plus the Employee record for holder roles.

    Args:
        username: Unique username
        email: Unique email
        password: Password meeting strength requirements (ignored when
            password_hash is given, e.g. from an approved registration)
        full_name: Display name
        role: employee, monitor, or admin
        department_id: Required for employee and monitor roles
        password_hash: Pre-computed bcrypt hash
        commit: False when the caller owns the transaction

    Returns:
        Created User object

    Raises:
        ValueError: Unknown role, duplicate username/email, missing department
        PasswordValidationError: If password doesn't meet requirements
    """
    if role not in ALL_ROLES:
        raise ValueError(f"Invalid role: {role}")

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ValueError("Username or email already exists")

    if role in HOLDER_ROLES:
        if department_id is None:
            raise ValueError("department_id is required for employee and monitor accounts")
        if not db.session.get(Department, department_id):
            raise ValueError("Department not found")

    user = User(
        username=username,
        email=email,
        full_name=full_name,
        password_hash=password_hash or hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()

    if role in HOLDER_ROLES:
        db.session.add(Employee(user_id=user.id, department_id=department_id, is_active=True))

    if commit:
        db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username (or email) and password.

    Returns User if credentials valid and the account is active, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def change_password(user_id: int, current_password: str, new_password: str) -> None:
    """
    Change a user's password and revoke their other sessions.

    Raises:
        ValueError: Unknown user or wrong current password
        PasswordValidationError: New password too weak
    """
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")
    if not verify_password(current_password, user.password_hash):
        raise ValueError("Current password is incorrect")

    user.password_hash = hash_password(new_password)
    session_service.revoke_all_user_sessions(user_id, reason="Password changed", commit=False)
    db.session.commit()


def request_password_reset(email: str) -> tuple[User, str] | None:
    """
    Issue a reset token for the active account registered under email.

    A new request replaces any earlier token. Only the hash is stored.

    Returns:
        (user, plaintext_token), or None when no active account matches
    """
    email = (email or "").strip()
    if not email:
        raise ValueError("Email required")

    user = db.session.query(User).filter(
        User.email == email,
        User.is_active.is_(True),
    ).first()
    if user is None:
        return None

    token = session_service.generate_token()
    user.reset_token_hash = session_service.hash_token(token)
    user.reset_token_expires_at = utcnow() + PASSWORD_RESET_TTL
    db.session.commit()
    return user, token


def _find_reset_user(token: str) -> User | None:
    if not token:
        return None
    return db.session.query(User).filter(
        User.reset_token_hash == session_service.hash_token(token),
        User.reset_token_expires_at > utcnow(),
        User.is_active.is_(True),
    ).first()


def check_reset_token(token: str) -> bool:
    return _find_reset_user(token) is not None


def reset_password(token: str, new_password: str) -> User:
    """
    Set a new password from a reset token and revoke every session.

    The token is consumed; a weak password leaves it usable.

    Raises:
        ValueError: Unknown, used, or expired token
        PasswordValidationError: New password too weak
    """
    user = _find_reset_user(token)
    if user is None:
        raise ValueError("Invalid or expired reset token")

    user.password_hash = hash_password(new_password)
    user.reset_token_hash = None
    user.reset_token_expires_at = None
    session_service.revoke_all_user_sessions(user.id, reason="Password reset", commit=False)
    db.session.commit()
    return user
