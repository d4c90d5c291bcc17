from __future__ import annotations

import logging

from flask import Blueprint, Response, current_app, json, stream_with_context
from flask_login import current_user

from .. import commands
from ..extensions import broadcaster
from ..policies import CredentialRequiredMixin
from .responses import respond

logger = logging.getLogger(__name__)

events_bp = Blueprint("events", __name__, url_prefix="/api/groups/<group_id>")


def _sse(name: str, data: dict, event_id: str | None = None) -> str:
    lines = []
    if event_id:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {name}")
    lines.append(f"data: {json.dumps(data)}")
    return "\n".join(lines) + "\n\n"


class EventStreamView(CredentialRequiredMixin):
    """
    Server-sent events for one group session. The first event is a snapshot
    taken after subscribing, so the client applies only events with a higher
    sequence than the snapshot reports. A ``resync`` event means the stream
    fell behind and was dropped: reconnect.
    """

    def get(self, group_id):
        code = current_user.code
        # Topics depend on who is asking; the probe also rejects strangers.
        probe = commands.get_group_snapshot(group_id, code)
        if not probe.success:
            return respond(probe)

        subscription = broadcaster.subscribe(*probe.data["topics"])
        snapshot = commands.get_group_snapshot(group_id, code)
        if not snapshot.success:
            subscription.close()
            return respond(snapshot)

        keepalive = current_app.config.get("EVENT_KEEPALIVE_SECONDS", 15)
        logger.debug("Event stream opened for group %s on %d topic(s)", group_id, len(subscription.topics))

        def generate():
            try:
                yield _sse("snapshot", snapshot.data)
                while True:
                    event = subscription.get(timeout=keepalive)
                    if event is not None:
                        yield _sse(event.name, event.to_dict(), f"{event.topic}:{event.seq}")
                    elif subscription.closed:
                        yield _sse("resync", {"overflowed": subscription.overflowed})
                        return
                    else:
                        yield ": keepalive\n\n"
            finally:
                subscription.close()
                logger.debug("Event stream closed for group %s", group_id)

        return Response(
            stream_with_context(generate()),
            mimetype="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )


events_bp.add_url_rule("/events", view_func=EventStreamView.as_view("stream"))
