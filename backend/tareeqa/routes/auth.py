# Overview: Flask API routes for the login session; parses input and returns JSON responses.

# backend/tareeqa/routes/auth.py
"""
Session API routes

One operator session per process. The desktop shell calls:
- login / logout on the sign-in screen
- touch on user input (idle auto-lock)
- lock / unlock for the lock screen
- session to render the header and gate navigation
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_session
from ..errors import (
    AccountLockedError,
    InvalidCredentialError,
    NoActiveSessionError,
    SecurityCoreError,
    UserManagementError,
    UserNotFoundError,
    http_status,
)
from ..services.bootstrap_service import get_security_core
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

# Warn on the login screen once this few attempts are left
ATTEMPTS_WARNING_THRESHOLD = 3


def _session_payload(sessions) -> dict:
    info = sessions.session_info()
    info["permissions"] = sessions.effective_permissions()
    return info


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and open the session.

    Returns the session and effective permissions on success.

    SECURITY:
    - 401 with attempts_remaining on a wrong password
    - 429 with retry_after_seconds while the account is locked out
    - 403 for deactivated accounts
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username and password required"}), 400

        sessions = get_security_core().sessions
        try:
            sessions.login(username, password)
        except AccountLockedError as e:
            return jsonify({
                "error": e.message,
                "code": e.code,
                "locked": True,
                "locked_until": to_utc_z(e.locked_until),
                "retry_after_seconds": e.seconds_remaining,
            }), 429
        except InvalidCredentialError as e:
            body = {"error": e.message, "code": e.code, "attempts_remaining": e.attempts_remaining}
            if e.attempts_remaining is not None and e.attempts_remaining <= ATTEMPTS_WARNING_THRESHOLD:
                body["warning"] = f"{e.attempts_remaining} attempts remaining before account lockout"
            return jsonify(body), 401
        except SecurityCoreError as e:
            return jsonify(e.to_dict()), http_status(e)

        payload = _session_payload(sessions)
        payload["message"] = "Login successful"
        return jsonify(payload), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    try:
        get_security_core().sessions.logout()
        return jsonify({"message": "Logout successful"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/lock")
def lock_route():
    sessions = get_security_core().sessions
    try:
        sessions.lock()
    except NoActiveSessionError as e:
        return jsonify(e.to_dict()), 401
    return jsonify({"state": sessions.state.value, "message": "Session locked"}), 200


@auth_bp.post("/unlock")
def unlock_route():
    """
    Unlock with the session user's password.

    Failed unlocks keep the session locked and don't count towards the
    account lockout.
    """
    data = request.get_json(silent=True) or {}
    password = data.get("password")
    if not password:
        return jsonify({"error": "password required"}), 400

    sessions = get_security_core().sessions
    try:
        unlocked = sessions.unlock(password)
    except NoActiveSessionError as e:
        return jsonify(e.to_dict()), 401

    if not unlocked:
        return jsonify({"error": "Incorrect password", "locked": True}), 401

    payload = _session_payload(sessions)
    payload["message"] = "Session unlocked"
    return jsonify(payload), 200


@auth_bp.post("/touch")
def touch_route():
    """Activity signal from the UI; resets the idle timer."""
    sessions = get_security_core().sessions
    active = sessions.touch()
    return jsonify({"active": active, "state": sessions.state.value})


@auth_bp.get("/session")
def session_route():
    """Current state, session info and effective permissions (for UI filtering)."""
    return jsonify(_session_payload(get_security_core().sessions))


@auth_bp.get("/lockout-status/<username>")
def lockout_status_route(username: str):
    """
    Check lockout status for an account.

    Public so the login screen can show when the user may retry.
    """
    try:
        status = get_security_core().credentials.lockout_status(username)
    except UserNotFoundError as e:
        return jsonify(e.to_dict()), 404
    return jsonify(status)


@auth_bp.post("/change-password")
@require_session
def change_password_route():
    """Change the logged-in user's own password."""
    data = request.get_json(silent=True) or {}
    current_password = data.get("current_password")
    new_password = data.get("new_password")

    if not all([current_password, new_password]):
        return jsonify({"error": "current_password and new_password required"}), 400

    try:
        get_security_core().sessions.change_password(current_password, new_password)
    except InvalidCredentialError as e:
        return jsonify(e.to_dict()), 400
    except UserManagementError as e:
        return jsonify(e.to_dict()), 400
    except SecurityCoreError as e:
        return jsonify(e.to_dict()), http_status(e)

    current_app.logger.info("Password changed for %s", g.session.user.username)
    return jsonify({"message": "Password changed"}), 200
