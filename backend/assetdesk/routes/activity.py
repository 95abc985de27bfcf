# Overview: Flask API routes for the activity log.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..permissions import ROLE_ADMIN
from ..services import activity_service


activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity")


@activity_bp.get("/recent")
@require_auth
def recent_activity_route():
    """Admins see everyone's activity; other roles only their own."""
    limit = min(max(request.args.get("limit", 50, type=int), 1), 500)
    user_id = request.args.get("user_id", type=int)
    if g.current_user.role != ROLE_ADMIN:
        user_id = g.current_user.id

    entries = activity_service.recent_activity(limit=limit, user_id=user_id, action=request.args.get("action"))
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)})
