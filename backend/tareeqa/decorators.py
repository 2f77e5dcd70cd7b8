# Overview: Session and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services.bootstrap_service import get_security_core
from .services.session_service import SessionState


def _has_session() -> bool:
    return getattr(g, "session", None) is not None


def permission_denied(required: list[str], **extra):
    """Audit the refusal and build the 403 response."""
    core = get_security_core()
    core.audit.append("access_denied", {
        "permissions": required,
        "resource": request.path,
        "method": request.method,
    })
    return jsonify({
        "error": "Permission denied",
        "required_permissions": required,
        "message": f"Requires: {', '.join(required)}",
        **extra,
    }), 403


def require_session(f):
    """
    Require an active (unlocked) session.

    Sets g.session to the current Session and counts the request as activity.

    Returns 401 when nobody is logged in, 423 when the session is locked
    (including a lock applied just now by the idle timeout).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        sessions = get_security_core().sessions
        state = sessions.check_idle()

        if state == SessionState.LOCKED:
            return jsonify({"error": "Session is locked", "locked": True}), 423
        if state != SessionState.ACTIVE:
            return jsonify({"error": "Authentication required"}), 401

        sessions.touch()
        g.session = sessions.session
        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_key: str):
    """
    Require a specific permission. Stack below @require_session.

    Refusals are recorded as access_denied audit events.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _has_session():
                return jsonify({"error": "Authentication required"}), 401

            if not get_security_core().sessions.has_permission(permission_key):
                return permission_denied([permission_key], required_permission=permission_key)

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_any_permission(*permission_keys):
    """Require any of the specified permissions."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _has_session():
                return jsonify({"error": "Authentication required"}), 401

            if not get_security_core().sessions.has_any(permission_keys):
                return permission_denied(list(permission_keys))

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_all_permissions(*permission_keys):
    """Require all of the specified permissions."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _has_session():
                return jsonify({"error": "Authentication required"}), 401

            if not get_security_core().sessions.has_all(permission_keys):
                return permission_denied(list(permission_keys))

            return f(*args, **kwargs)

        return decorated_function
    return decorator
