# Overview: Flask API routes for user administration and the role/permission catalogue.

# backend/tareeqa/routes/admin.py
"""
Admin routes for user and role management.

Provides endpoints for:
- User management (list, create, update, activate/deactivate, unlock, reset password)
- Role and permission catalogue (read-only; roles are a static table)

All endpoints require an active session and the listed permission.

SECURITY: Assigning any role other than the default, and any change to an
administrator account, additionally requires users.permissions.
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import permission_denied, require_permission, require_session
from ..errors import SecurityCoreError, http_status
from ..permissions import PERMISSION_DEFINITIONS, PermissionCategory, get_all_roles
from ..services.bootstrap_service import get_security_core

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

DEFAULT_ROLE = "cashier"
ROLE_ASSIGNMENT_PERMISSION = "users.permissions"


def _require_role_assignment(target=None, role: str | None = None):
    """
    403 response unless the caller may assign `role` or manage `target`; None otherwise.

    `target` is the stored user being changed (None on create or unknown id).
    """
    if target is None:
        assigns_role = role is not None and role != DEFAULT_ROLE
    else:
        assigns_role = role is not None and role != target.role
    touches_admin = target is not None and target.role == "admin"

    if not (assigns_role or touches_admin):
        return None
    if get_security_core().sessions.has_permission(ROLE_ASSIGNMENT_PERMISSION):
        return None
    return permission_denied([ROLE_ASSIGNMENT_PERMISSION], required_permission=ROLE_ASSIGNMENT_PERMISSION)


def _guarded_target(user_id: str, role: str | None = None):
    """Look up the target user and apply the role-assignment guard."""
    target = get_security_core().credentials.find_by_id(user_id)
    return _require_role_assignment(target, role)


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_session
@require_permission("users.view")
def list_users():
    """
    List users sorted by role priority.

    Query params:
    - include_inactive: bool (default true)
    """
    include_inactive = request.args.get("include_inactive", "true").lower() == "true"
    users = get_security_core().credentials.list_users()
    if not include_inactive:
        users = [user for user in users if user.is_active]
    result = [user.to_public_dict() for user in users]
    return jsonify({"users": result, "count": len(result)})


@admin_bp.post("/users")
@require_session
@require_permission("users.create")
def create_user():
    """
    Create a user.

    Body: username, password, full_name?, role? (default cashier), email?
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not all([username, password]):
        return jsonify({"error": "username and password required"}), 400

    role = data.get("role") or DEFAULT_ROLE
    denied = _require_role_assignment(role=role)
    if denied:
        return denied

    try:
        user = get_security_core().credentials.create(
            username,
            password,
            full_name=data.get("full_name"),
            role=role,
            email=data.get("email"),
            is_active=data.get("is_active", True) is not False,
        )
    except SecurityCoreError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"user": user.to_public_dict(), "message": "User created"}), 201


@admin_bp.patch("/users/<user_id>")
@require_session
@require_permission("users.edit")
def update_user(user_id: str):
    """Update full_name, email and/or role."""
    data = request.get_json(silent=True) or {}
    denied = _guarded_target(user_id, data.get("role"))
    if denied:
        return denied
    try:
        user = get_security_core().credentials.update_user(
            user_id,
            full_name=data.get("full_name"),
            email=data.get("email"),
            role=data.get("role"),
        )
    except SecurityCoreError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({"user": user.to_public_dict()})


@admin_bp.post("/users/<user_id>/status")
@require_session
@require_permission("users.edit")
def set_user_status(user_id: str):
    """Activate or deactivate. Body: {"is_active": bool}"""
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("is_active"), bool):
        return jsonify({"error": "is_active (bool) required"}), 400
    denied = _guarded_target(user_id)
    if denied:
        return denied
    try:
        user = get_security_core().credentials.set_active(user_id, data["is_active"])
    except SecurityCoreError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({"user": user.to_public_dict()})


@admin_bp.post("/users/<user_id>/unlock")
@require_session
@require_permission("users.edit")
def clear_user_lockout(user_id: str):
    """Clear failed attempts and any lockout window."""
    denied = _guarded_target(user_id)
    if denied:
        return denied
    try:
        user = get_security_core().credentials.clear_lockout(user_id)
    except SecurityCoreError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({"user": user.to_public_dict(), "message": "Lockout cleared"})


@admin_bp.post("/users/<user_id>/reset-password")
@require_session
@require_permission("users.edit")
def reset_user_password(user_id: str):
    data = request.get_json(silent=True) or {}
    new_password = data.get("new_password")
    if not new_password:
        return jsonify({"error": "new_password required"}), 400
    denied = _guarded_target(user_id)
    if denied:
        return denied
    try:
        user = get_security_core().credentials.reset_password(user_id, new_password)
    except SecurityCoreError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({"user": user.to_public_dict(), "message": "Password reset"})


# =============================================================================
# ROLES & PERMISSIONS
# =============================================================================

@admin_bp.get("/roles")
@require_session
@require_permission("users.view")
def list_roles():
    roles = [role.to_dict() for role in get_all_roles()]
    return jsonify({"roles": roles, "count": len(roles)})


@admin_bp.get("/permissions")
@require_session
@require_permission("users.view")
def list_permissions():
    """
    Permission catalogue.

    Query params:
    - category: filter by category (e.g. "pos", "security")
    """
    category = request.args.get("category")
    permissions = [
        {"code": code, "name": name, "description": description, "category": cat}
        for code, name, description, cat in PERMISSION_DEFINITIONS
        if category is None or cat == category
    ]
    return jsonify({
        "permissions": permissions,
        "count": len(permissions),
        "categories": PermissionCategory.LABELS,
    })


@admin_bp.get("/permissions/matrix")
@require_session
@require_permission("users.permissions")
def permission_matrix():
    return jsonify(get_security_core().permissions.permission_matrix())
