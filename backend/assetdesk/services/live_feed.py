# Overview: In-process live event fan-out to role-filtered subscribers (SSE).

"""
Live Feed

LiveFeedBroadcaster keeps one bounded queue per connected client. publish()
pushes an event into every queue whose role is in the event's audience.
The /api/live-feed route drains a queue as a server-sent event stream.

SCOPE: Single process. Subscribers live in memory; with several workers each
worker only sees events published by its own requests.

DELIVERY: Best-effort. A full queue (slow client) drops the event for that
client rather than blocking the publisher.
"""

from __future__ import annotations

import itertools
import json
import queue
import threading
from dataclasses import dataclass, field

from assetdesk.permissions import ROLE_ADMIN, ROLE_MONITOR, ROLE_EMPLOYEE
from assetdesk.time_utils import utcnow, to_utc_z


_ALL = frozenset({ROLE_ADMIN, ROLE_MONITOR, ROLE_EMPLOYEE})
_STAFF = frozenset({ROLE_ADMIN, ROLE_MONITOR})
_REQUESTER = frozenset({ROLE_ADMIN, ROLE_EMPLOYEE})

EVENT_AUDIENCES = {
    "product_added": _STAFF,
    "product_updated": _STAFF,
    "product_assigned": _ALL,
    "product_returned": _ALL,
    "request_submitted": _STAFF,
    "request_approved": _REQUESTER,
    "request_rejected": _REQUESTER,
    "return_requested": _STAFF,
    "return_rejected": _REQUESTER,
    "extension_requested": _STAFF,
    "extension_approved": _REQUESTER,
    "extension_rejected": _REQUESTER,
    "user_registered": frozenset({ROLE_ADMIN}),
}

QUEUE_MAXSIZE = 100


def should_receive(role: str, event_type: str) -> bool:
    return role in EVENT_AUDIENCES.get(event_type, frozenset())


@dataclass
class Subscriber:
    id: int
    user_id: int
    role: str
    events: queue.Queue = field(default_factory=lambda: queue.Queue(maxsize=QUEUE_MAXSIZE))


class LiveFeedBroadcaster:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[int, Subscriber] = {}
        self._ids = itertools.count(1)

    def subscribe(self, user_id: int, role: str) -> Subscriber:
        with self._lock:
            sub = Subscriber(id=next(self._ids), user_id=user_id, role=role)
            self._subscribers[sub.id] = sub
            return sub

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.pop(subscriber.id, None)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event_type: str, message: str, data: dict | None = None) -> int:
        """
        Deliver an event to every subscriber whose role is in its audience.

        Returns the number of subscribers the event was queued for.
        """
        event = {
            "type": event_type,
            "message": message,
            "data": data or {},
            "timestamp": to_utc_z(utcnow()),
        }
        with self._lock:
            targets = [s for s in self._subscribers.values() if should_receive(s.role, event_type)]

        delivered = 0
        for sub in targets:
            try:
                sub.events.put_nowait(event)
                delivered += 1
            except queue.Full:
                continue
        return delivered


def format_sse(event: dict) -> str:
    return f"data: {json.dumps(event, default=str)}\n\n"


# Process-wide broadcaster used by routes and notification_service
broadcaster = LiveFeedBroadcaster()
