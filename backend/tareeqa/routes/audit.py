# Overview: Flask API route for reading the security audit log.

from flask import Blueprint, request, jsonify

from ..decorators import require_permission, require_session
from ..services.bootstrap_service import get_security_core

audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")

DEFAULT_LIMIT = 100


@audit_bp.get("/events")
@require_session
@require_permission("security.logs")
def list_events():
    """
    Audit events, newest last.

    Query params:
    - event: filter by event kind (e.g. "login_failed")
    - user_id: filter by acting user
    - limit: most recent N (default 100, 0 for all)
    """
    limit = request.args.get("limit", DEFAULT_LIMIT, type=int)
    events = get_security_core().audit.query(
        event=request.args.get("event"),
        user_id=request.args.get("user_id"),
        limit=limit if limit else None,
    )
    return jsonify({"events": [e.to_dict() for e in events], "count": len(events)})
