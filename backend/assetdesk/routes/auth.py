# Overview: Flask API routes for login, logout, self-registration, and password changes.

# backend/assetdesk/routes/auth.py
"""
Authentication API routes

- Public self-registration creates a pending RegistrationRequest (admin approves)
- Login returns a bearer session token
- Logout and password change revoke sessions
- Forgot-password emails a 30-minute single-use reset link
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import WorkflowError
from ..services import auth_service, session_service, account_service, notification_service
from ..services.auth_service import PasswordValidationError
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.get("/departments")
def departments_route():
    """Public department list for the registration form."""
    departments = account_service.list_departments()
    return jsonify({"items": [d.to_dict() for d in departments]})


@auth_bp.post("/register")
def register_route():
    """
    Submit a self-registration request.

    The account is created only when an admin approves the request.
    """
    data = request.get_json(silent=True) or {}
    try:
        registration = account_service.submit_registration(
            full_name=data.get("full_name"),
            username=data.get("username"),
            email=data.get("email"),
            password=data.get("password"),
            department_id=data.get("department_id"),
        )
        return jsonify({
            "registration": registration.to_dict(),
            "message": "Registration submitted. An administrator will review it.",
        }), 201
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to submit registration")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.info("Failed login for %s from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful",
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the caller's session token."""
    try:
        session_service.revoke_session(g.token, reason="User logout")
        return jsonify({"message": "Logout successful"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()})


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    data = request.get_json(silent=True) or {}
    current_password = data.get("current_password")
    new_password = data.get("new_password")
    if not current_password or not new_password:
        return jsonify({"error": "current_password and new_password required"}), 400

    try:
        auth_service.change_password(g.current_user.id, current_password, new_password)
        return jsonify({"message": "Password changed. Please log in again."}), 200
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/forgot-password")
def forgot_password_route():
    """
    Email a password reset link.

    The response does not reveal whether the address belongs to an account.
    """
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip()
    if not email:
        return jsonify({"error": "email required"}), 400

    try:
        issued = auth_service.request_password_reset(email)
        if issued is None:
            current_app.logger.info("Password reset requested for unknown email from %s", request.remote_addr)
        else:
            user, token = issued
            reset_link = f"{current_app.config['APP_BASE_URL'].rstrip('/')}/reset-password/{token}"
            valid_minutes = int(auth_service.PASSWORD_RESET_TTL.total_seconds() // 60)
            notification_service.password_reset_requested(user, reset_link, valid_minutes)
        return jsonify({"message": "If that address belongs to an account, a reset link has been sent."}), 200
    except Exception:
        current_app.logger.exception("Failed to issue password reset")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/reset-password/<token>")
def reset_token_status_route(token):
    return jsonify({"valid": auth_service.check_reset_token(token)})


@auth_bp.post("/reset-password/<token>")
def reset_password_route(token):
    data = request.get_json(silent=True) or {}
    new_password = data.get("new_password")
    if not new_password:
        return jsonify({"error": "new_password required"}), 400

    try:
        user = auth_service.reset_password(token, new_password)
        notification_service.password_reset_completed(user)
        return jsonify({"message": "Password reset. You can now log in."}), 200
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to reset password")
        return jsonify({"error": "Internal server error"}), 500
