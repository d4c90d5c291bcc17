from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator

logger = logging.getLogger(__name__)

MEMBER_JOINED = "member_joined"
MEMBER_LEFT = "member_left"
GROUP_LOCKED = "group_locked"
GROUP_UNLOCKED = "group_unlocked"
GROUP_OPENED = "group_opened"
GROUP_CLOSED = "group_closed"
NEW_MESSAGE = "new_message"
READ_MESSAGE = "read_message"


def group_topic(group_id: str) -> str:
    return f"group:{group_id}"


def inbox_topic(thread: str, member_id: int) -> str:
    """Per-recipient topic for one message thread, e.g. ``my_santa:12``."""
    return f"{thread}:{member_id}"


def organizer_topic(group_id: str) -> str:
    return f"organizer_inbox:{group_id}"


@dataclass(frozen=True)
class Event:
    topic: str
    name: str
    seq: int
    payload: dict[str, Any] = field(default_factory=dict)
    published_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "event": self.name,
            "seq": self.seq,
            "payload": self.payload,
            "published_at": self.published_at,
        }


class Subscription:
    """
    A client's view of one or more topics.

    Events arrive in publication order. If the client falls behind and its
    queue fills, the subscription is marked ``overflowed`` and closed; the
    client must resubscribe and resync from a snapshot.
    """

    _CLOSED = object()

    def __init__(self, broadcaster: "Broadcaster", topics: tuple[str, ...], maxsize: int) -> None:
        self.topics = topics
        self.overflowed = False
        self.closed = False
        self._broadcaster = broadcaster
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)

    def _deliver(self, event: Event) -> None:
        if self.closed:
            return
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            logger.warning("Subscription on %s overflowed; dropping it", ",".join(self.topics))
            self.overflowed = True
            self._shutdown()

    def get(self, timeout: float | None = None) -> Event | None:
        """Next event, or None on timeout or after close."""
        if self.closed and self._queue.empty():
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is self._CLOSED:
            return None
        return item

    def drain(self) -> list[Event]:
        events = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return events
            if item is not self._CLOSED:
                events.append(item)

    def __iter__(self) -> Iterator[Event]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event

    def _shutdown(self) -> None:
        self.closed = True
        # Wake a blocked reader; a full queue already has something to read.
        try:
            self._queue.put_nowait(self._CLOSED)
        except queue.Full:
            pass

    def close(self) -> None:
        if not self.closed:
            self._broadcaster.unsubscribe(self)
            self._shutdown()


class Broadcaster:
    """
    In-process topic fan-out with a per-topic sequence number.

    Callers publish only after their transaction commits and while holding
    the group lock, so a topic's sequence order is its commit order.
    """

    def __init__(self, queue_size: int = 256) -> None:
        self.queue_size = queue_size
        self._lock = threading.Lock()
        self._seq: dict[str, int] = {}
        self._subs: dict[str, set[Subscription]] = {}

    def init_app(self, app) -> None:
        self.queue_size = app.config.get("EVENT_QUEUE_SIZE", self.queue_size)
        app.extensions["broadcaster"] = self

    def subscribe(self, *topics: str) -> Subscription:
        sub = Subscription(self, tuple(topics), self.queue_size)
        with self._lock:
            for topic in topics:
                self._subs.setdefault(topic, set()).add(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            for topic in sub.topics:
                subs = self._subs.get(topic)
                if subs is not None:
                    subs.discard(sub)
                    if not subs:
                        del self._subs[topic]

    def publish(self, topic: str, name: str, payload: dict[str, Any] | None = None) -> Event:
        with self._lock:
            seq = self._seq.get(topic, 0) + 1
            self._seq[topic] = seq
            event = Event(topic=topic, name=name, seq=seq, payload=dict(payload or {}))
            subscribers = list(self._subs.get(topic, ()))
            for sub in subscribers:
                sub._deliver(event)
                if sub.overflowed:
                    for t in sub.topics:
                        self._subs.get(t, set()).discard(sub)
        logger.debug("Published %s #%d on %s to %d subscriber(s)", name, seq, topic, len(subscribers))
        return event

    def sequences(self, topics) -> dict[str, int]:
        with self._lock:
            return {topic: self._seq.get(topic, 0) for topic in topics}
