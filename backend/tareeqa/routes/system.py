# backend/tareeqa/routes/system.py
"""
System health endpoint.

Checks the persistence medium and the security core for the desktop
shell's startup screen.
"""

import time
from flask import Blueprint, current_app
from ..services.bootstrap_service import get_security_core
from tareeqa.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_storage_health() -> dict:
    """
    Check the persistence medium can list keys.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        core = get_security_core()
        key_count = len(core.backend.list_keys())
        secure_count = len(core.records.list_keys())

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "backend": type(core.backend).__name__,
                "keys": key_count,
                "secure_keys": secure_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Storage health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Storage error"
        }


def check_security_core_health() -> dict:
    """
    Check that at least one active administrator exists.
    """
    start_time = time.time()
    try:
        core = get_security_core()
        users = core.credentials.list_users()
        active_admins = [u for u in users if u.is_active and u.role == "admin"]

        elapsed_ms = (time.time() - start_time) * 1000

        details = {
            "users": len(users),
            "active_admins": len(active_admins),
            "session_state": core.sessions.state.value,
        }
        if not active_admins:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "No active administrator account",
                "details": details,
            }

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Security core health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Security core error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    storage_health = check_storage_health()
    security_health = check_security_core_health()

    all_checks = [storage_health, security_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "storage": storage_health,
            "security_core": security_health,
        }
    }

    return response, http_status
