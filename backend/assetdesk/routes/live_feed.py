# Overview: Server-sent event stream of live workflow events.

import queue

from flask import Blueprint, request, jsonify, current_app, Response

from ..services import session_service
from ..services.live_feed import broadcaster, format_sse
from assetdesk.time_utils import utcnow, to_utc_z


live_feed_bp = Blueprint("live_feed", __name__, url_prefix="/api/live-feed")


def _token_from_request() -> str | None:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip()
    # EventSource cannot send headers
    return request.args.get("token")


@live_feed_bp.get("")
def stream_route():
    """
    Stream events visible to the caller's role as text/event-stream.

    Auth: Bearer header or ?token=. A comment line is sent every
    LIVE_FEED_KEEPALIVE_SECONDS so proxies keep the connection open.
    """
    token = _token_from_request()
    context = session_service.validate_session(token) if token else None
    if not context:
        return jsonify({"error": "Authentication required"}), 401

    user_id = context.user.id
    role = context.user.role
    keepalive = current_app.config.get("LIVE_FEED_KEEPALIVE_SECONDS", 15)
    subscriber = broadcaster.subscribe(user_id, role)
    current_app.logger.info("Live feed subscriber %s connected (user %s, %s)", subscriber.id, user_id, role)

    def generate():
        try:
            yield format_sse({
                "type": "connected",
                "message": "Live feed connected",
                "timestamp": to_utc_z(utcnow()),
            })
            while True:
                try:
                    event = subscriber.events.get(timeout=keepalive)
                except queue.Empty:
                    yield ": keep-alive\n\n"
                    continue
                yield format_sse(event)
        finally:
            broadcaster.unsubscribe(subscriber)

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@live_feed_bp.get("/status")
def status_route():
    return jsonify({"subscribers": broadcaster.subscriber_count()})
