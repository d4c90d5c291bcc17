from __future__ import annotations

from ..errors import NotAuthorized
from ..extensions import broadcaster, group_locks
from ..graph import listing_key
from ..policies import find_member, is_organizer, load_group
from . import messaging


def get_group_snapshot(group_id: str, code: str) -> dict:
    """
    Authoritative state for a (re)connecting session.

    Read under the group lock, so the sequence numbers match the state: a
    reconciler that loads this and then applies only newer events misses
    nothing and applies nothing twice.
    """
    with group_locks.hold(group_id):
        group = load_group(group_id)
        member = find_member(group.id, code)
        organizer = is_organizer(group, code)
        if member is None and not organizer:
            raise NotAuthorized("You are not a member of this group.")

        threads = [messaging.GROUP, messaging.ORGANIZER]
        if member is not None and group.is_frozen:
            threads[1:1] = [messaging.MY_SANTA, messaging.MY_GIFTEE]

        topics = messaging.subscription_topics(group, code)
        members = sorted(group.members, key=lambda m: listing_key(m.name, m.code_name))
        snapshot = {
            "group": group.public_dict(),
            "me": member.to_dict() if member else None,
            "is_creator": organizer,
            "members": [m.to_dict() for m in members],
            "messages": {t: messaging.get_message_history(group.id, code, t) for t in threads},
            "topics": topics,
            "sequences": broadcaster.sequences(topics),
        }
    return snapshot
