# Overview: Flask API routes over the secure record store; parses input and returns JSON responses.

# backend/tareeqa/routes/secure_data.py
"""
Secure data routes

Application data (products, settings, customers, ...) is stored as opaque
JSON values under namespace keys. Reserved keys (security log, session
snapshot) and the user table are readable only through their own endpoints.
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_permission, require_session
from ..errors import BackupError
from ..services.bootstrap_service import get_security_core
from ..services.credential_service import USERS_KEY
from ..services.secure_storage_service import RESERVED_KEYS

secure_data_bp = Blueprint("secure_data", __name__, url_prefix="/api/secure-data")

_MISSING = object()

# User records go through /api/admin only
PROTECTED_KEYS = RESERVED_KEYS | {USERS_KEY}


def _reserved(key: str):
    return jsonify({"error": f"'{key}' is reserved"}), 403


def _backup_protected_keys() -> frozenset:
    """User records travel in backups only for callers who may assign roles."""
    if get_security_core().sessions.has_permission("users.permissions"):
        return frozenset()
    return frozenset({USERS_KEY})


# =============================================================================
# ITEMS
# =============================================================================

@secure_data_bp.get("/keys")
@require_session
def list_keys():
    keys = [
        key for key in get_security_core().records.list_keys(include_reserved=False)
        if key not in PROTECTED_KEYS
    ]
    return jsonify({"keys": keys, "count": len(keys)})


@secure_data_bp.get("/items/<key>")
@require_session
def get_item(key: str):
    if key in PROTECTED_KEYS:
        return _reserved(key)
    records = get_security_core().records
    value = records.get(key, _MISSING)
    if value is _MISSING:
        if records.has(key):
            return jsonify({"error": "Stored value could not be read", "key": key}), 500
        return jsonify({"error": "Not found", "key": key}), 404
    return jsonify({"key": key, "value": value})


@secure_data_bp.put("/items/<key>")
@require_session
def put_item(key: str):
    """Body: {"value": <any JSON>}"""
    if key in PROTECTED_KEYS:
        return _reserved(key)
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or "value" not in data:
        return jsonify({"error": "value required"}), 400
    if not get_security_core().records.put(key, data["value"]):
        return jsonify({"error": "Failed to store value", "key": key}), 500
    return jsonify({"key": key, "stored": True})


@secure_data_bp.delete("/items/<key>")
@require_session
def delete_item(key: str):
    if key in PROTECTED_KEYS:
        return _reserved(key)
    records = get_security_core().records
    if not records.has(key):
        return jsonify({"error": "Not found", "key": key}), 404
    if not records.remove(key):
        return jsonify({"error": "Failed to remove value", "key": key}), 500
    return jsonify({"key": key, "removed": True})


# =============================================================================
# BACKUP / RESTORE
# =============================================================================

@secure_data_bp.post("/backup")
@require_session
@require_permission("settings.backup")
def create_backup():
    """
    Body: {"password": str?}. Returns the backup artifact as text.
    """
    data = request.get_json(silent=True) or {}
    try:
        artifact = get_security_core().records.backup(
            data.get("password") or None,
            protected_keys=_backup_protected_keys(),
        )
    except BackupError as e:
        return jsonify(e.to_dict()), 500
    return jsonify({"backup": artifact, "encrypted": bool(data.get("password"))})


@secure_data_bp.post("/restore")
@require_session
@require_permission("settings.backup")
def restore_backup():
    """
    Body: {"backup": str, "password": str?, "overwrite": bool?}
    """
    data = request.get_json(silent=True) or {}
    artifact = data.get("backup")
    if not isinstance(artifact, str) or not artifact:
        return jsonify({"error": "backup required"}), 400

    try:
        result = get_security_core().records.restore(
            artifact,
            password=data.get("password") or None,
            overwrite=bool(data.get("overwrite", False)),
            protected_keys=_backup_protected_keys(),
        )
    except BackupError as e:
        return jsonify(e.to_dict()), 400
    except Exception:
        current_app.logger.exception("Failed to restore backup")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result.to_dict())


# =============================================================================
# MAINTENANCE
# =============================================================================

@secure_data_bp.get("/stats")
@require_session
@require_permission("settings.view")
def storage_stats():
    records = get_security_core().records
    stats = records.stats()
    stats["usage_by_category"] = records.usage_by_category()
    return jsonify(stats)


@secure_data_bp.post("/verify")
@require_session
@require_permission("security.manage")
def verify_integrity():
    return jsonify(get_security_core().records.verify_integrity())


@secure_data_bp.post("/migrate")
@require_session
@require_permission("security.manage")
def migrate_legacy():
    return jsonify(get_security_core().records.migrate_legacy().to_dict())
