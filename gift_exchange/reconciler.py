"""
Client-side view of one group, kept in step with the server by events.

Every merge is keyed by a stable id (member name, message id, client token),
so redelivered events are no-ops and a sender's own echoed message replaces
its optimistic copy instead of appearing twice. Events are treated as hints:
a sequence gap or a dropped subscription marks the view stale, and the fix
is a fresh snapshot, never a replay.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from . import events as ev
from .events import Event, Subscription
from .graph import listing_key

logger = logging.getLogger(__name__)

SELF_LABEL = "You"
SANTA_THREADS = ("my_santa", "my_giftee")


def _normalize(event: Event | dict) -> Event:
    if isinstance(event, Event):
        return event
    return Event(
        topic=event["topic"],
        name=event["event"],
        seq=int(event["seq"]),
        payload=dict(event.get("payload") or {}),
    )


class Reconciler:
    def __init__(self, me: str | None = None) -> None:
        self.me = me
        self.group: dict[str, Any] = {}
        self.members: dict[str, dict] = {}
        self.messages: dict[str, dict[int, dict]] = {}
        self.pending: dict[str, dict] = {}
        self.unread: dict[str, int] = {}
        self.last_seq: dict[str, int] = {}
        self.is_creator = False
        self.stale = True
        self.removed = False
        # server-side facts the events hint at but do not carry
        self.needs_refresh: set[str] = set()
        self._handlers: dict[str, Callable[[dict], None]] = {
            ev.MEMBER_JOINED: self._on_member_joined,
            ev.MEMBER_LEFT: self._on_member_left,
            ev.GROUP_LOCKED: self._on_group_locked,
            ev.GROUP_UNLOCKED: self._on_group_unlocked,
            ev.GROUP_OPENED: self._on_open_changed,
            ev.GROUP_CLOSED: self._on_open_changed,
            ev.NEW_MESSAGE: self._on_new_message,
            ev.READ_MESSAGE: self._on_read_message,
        }

    # ------------------------------------------------------------------
    # snapshots

    def load_snapshot(self, snapshot: dict) -> None:
        """Replace local state with the server's. Optimistic entries are dropped:
        whatever they became is either in the snapshot or still to arrive."""
        self.group = dict(snapshot["group"])
        self.members = {m["name"]: dict(m) for m in snapshot["members"]}
        self.messages = {
            thread: {m["id"]: dict(m) for m in rows}
            for thread, rows in snapshot.get("messages", {}).items()
        }
        self.unread = {
            thread: sum(1 for m in rows.values() if not m["is_read"] and m["sender_name"] != SELF_LABEL)
            for thread, rows in self.messages.items()
        }
        self.pending.clear()
        self.last_seq = dict(snapshot.get("sequences", {}))
        self.is_creator = bool(snapshot.get("is_creator"))
        if snapshot.get("me"):
            self.me = snapshot["me"]["name"]
        self.removed = False
        self.stale = False
        self.needs_refresh.clear()

    def resync(self, subscription: Subscription, snapshot: dict) -> None:
        """
        Load a snapshot taken after `subscription` was opened, then apply
        anything already queued. Events the snapshot covers are skipped by
        their sequence numbers.
        """
        self.load_snapshot(snapshot)
        for event in subscription.drain():
            self.apply(event)

    # ------------------------------------------------------------------
    # events

    def apply(self, event: Event | dict) -> bool:
        """Merge one event. Returns False when it was a duplicate or unknown."""
        event = _normalize(event)
        last = self.last_seq.get(event.topic, 0)
        if event.seq <= last:
            return False
        if event.seq > last + 1:
            logger.info("Gap on %s (had #%d, got #%d); view needs a resync", event.topic, last, event.seq)
            self.stale = True
        self.last_seq[event.topic] = event.seq

        handler = self._handlers.get(event.name)
        if handler is None:
            logger.debug("Ignoring unknown event %s", event.name)
            return False
        handler(event.payload)
        return True

    def run(self, subscription: Subscription, stop: threading.Event | None = None, poll: float = 0.5) -> None:
        """Apply events until the subscription closes or `stop` is set."""
        while not (stop and stop.is_set()):
            event = subscription.get(timeout=poll)
            if event is not None:
                self.apply(event)
            elif subscription.closed:
                break
        if subscription.overflowed:
            self.stale = True

    def _on_member_joined(self, payload: dict) -> None:
        name = payload.get("name")
        if isinstance(name, str) and name not in self.members:
            self.members[name] = {"name": name, "code_name": payload.get("code_name")}

    def _on_member_left(self, payload: dict) -> None:
        name = payload.get("name")
        if not isinstance(name, str):
            return
        self.members.pop(name, None)
        if name == self.me:
            self.removed = True

    def _on_group_locked(self, payload: dict) -> None:
        self.group["is_frozen"] = True
        self.needs_refresh.add("secret_santa")

    def _on_group_unlocked(self, payload: dict) -> None:
        self.group["is_frozen"] = False
        # santa threads belong to the previous draw
        for thread in SANTA_THREADS:
            self.messages.pop(thread, None)
            self.unread.pop(thread, None)
        self.needs_refresh.discard("secret_santa")

    def _on_open_changed(self, payload: dict) -> None:
        self.group["is_open"] = bool(payload.get("is_open"))

    def _on_new_message(self, payload: dict) -> None:
        message_id = payload.get("id")
        thread = payload.get("thread")
        if message_id is None or thread is None:
            return
        token = payload.get("client_token")
        if token:
            self.pending.pop(token, None)

        rows = self.messages.setdefault(thread, {})
        if message_id in rows:
            return
        rows[message_id] = {k: v for k, v in payload.items() if k != "client_token"}
        # group broadcasts come back labelled for everyone else
        if thread == "group" and self.is_creator:
            rows[message_id]["sender_name"] = SELF_LABEL
        mine = rows[message_id]["sender_name"] == SELF_LABEL
        if not mine and not payload.get("is_read"):
            self.unread[thread] = self.unread.get(thread, 0) + 1

    def _on_read_message(self, payload: dict) -> None:
        message_id = payload.get("message_id")
        thread = payload.get("thread")
        message = self.messages.get(thread, {}).get(message_id)
        if message is not None:
            if message["is_read"]:
                return
            message["is_read"] = True
        self.unread[thread] = max(0, self.unread.get(thread, 0) - 1)

    # ------------------------------------------------------------------
    # optimistic commands

    def add_pending_message(self, client_token: str, thread: str, body: str) -> dict:
        entry = {"client_token": client_token, "thread": thread, "message": body, "sender_name": SELF_LABEL}
        self.pending[client_token] = entry
        return entry

    def fail_pending_message(self, client_token: str) -> None:
        self.pending.pop(client_token, None)

    # ------------------------------------------------------------------
    # views

    @property
    def member_list(self) -> list[dict]:
        return sorted(self.members.values(), key=lambda m: listing_key(m["name"], m.get("code_name")))

    def thread(self, thread: str) -> list[dict]:
        """Confirmed messages oldest first, then this session's pending ones."""
        confirmed = sorted(
            self.messages.get(thread, {}).values(),
            key=lambda m: (m.get("created_date") or "", m["id"]),
        )
        return confirmed + [p for p in self.pending.values() if p["thread"] == thread]
