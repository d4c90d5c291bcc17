from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from .extensions import broadcaster, db, group_locks
from .models import Group
from .policies import load_group

logger = logging.getLogger(__name__)


class GroupTransaction:
    """
    A locked, in-flight change to one group.

    Events emitted here are held back until the commit succeeds and are then
    published in emission order, still under the group lock.
    """

    def __init__(self, group: Group) -> None:
        self.group = group
        self._pending: list[tuple[str, str, dict[str, Any]]] = []

    def emit(self, topic: str, name: str, payload: dict[str, Any] | None = None) -> None:
        self._pending.append((topic, name, dict(payload or {})))


@contextmanager
def group_transaction(group_id: str) -> Iterator[GroupTransaction]:
    with group_locks.hold(group_id):
        try:
            tx = GroupTransaction(load_group(group_id, for_update=True))
            yield tx
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        logger.debug("Committed change to group %s (%d event(s))", group_id, len(tx._pending))
        for topic, name, payload in tx._pending:
            broadcaster.publish(topic, name, payload)
