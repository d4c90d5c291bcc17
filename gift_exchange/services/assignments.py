from __future__ import annotations

import logging
import random
from typing import Sequence

from sqlalchemy import update

from ..errors import AlreadyFrozen, NotEnoughMembers, NotFound, NotFrozen, TransientFailure
from ..events import GROUP_LOCKED, GROUP_UNLOCKED, group_topic
from ..extensions import db
from ..graph import Node, RelationshipGraph
from ..models import Assignment, Group, utcnow
from ..policies import load_group, require_member, require_organizer
from ..security import decrypt_assignment_recipient, encrypt_assignment_recipient
from ..transactions import GroupTransaction, group_transaction

logger = logging.getLogger(__name__)

MIN_MEMBERS_TO_ASSIGN = 3


def generate_derangement(ids: Sequence[int], rng: random.Random | None = None) -> dict[int, int]:
    """
    Uniformly random giver -> receiver bijection with no fixed point.

    Rejection sampling: shuffle until nobody draws themself. About 1/e of
    all permutations are derangements, so the expected number of shuffles
    is e (< 3) whatever the group size, and every derangement is equally
    likely.
    """
    if len(ids) < 2:
        raise ValueError("Need at least 2 members to build a derangement.")
    if len(set(ids)) != len(ids):
        raise ValueError("Member ids must be distinct.")

    rng = rng or random.SystemRandom()
    givers = list(ids)
    receivers = givers[:]
    while True:
        rng.shuffle(receivers)
        if all(g != r for g, r in zip(givers, receivers)):
            return dict(zip(givers, receivers))


def assign_santa(group_id: str, creator_code: str, rng: random.Random | None = None) -> None:
    with group_transaction(group_id) as tx:
        group = tx.group
        require_organizer(group, creator_code)
        if group.is_frozen:
            raise AlreadyFrozen()

        members = list(group.members)
        if len(members) < MIN_MEMBERS_TO_ASSIGN:
            raise NotEnoughMembers()

        # Compare-and-set on the flag: the one writer that flips it owns the draw.
        flipped = db.session.execute(
            update(Group)
            .where(Group.id == group.id, Group.is_frozen.is_(False))
            .values(is_frozen=True, frozen_at=utcnow())
        )
        if flipped.rowcount != 1:
            raise AlreadyFrozen()

        pairs = generate_derangement([m.id for m in members], rng)
        for giver_id, receiver_id in pairs.items():
            group.assignments.append(Assignment(
                giver_id=giver_id,
                receiver_ciphertext=encrypt_assignment_recipient(group.id, receiver_id),
            ))
        tx.emit(group_topic(group.id), GROUP_LOCKED, {"is_frozen": True, "epoch": group.epoch})

    logger.info("Assigned Secret Santas for group %s (%d members)", group_id, len(members))


def clear_assignments(tx: GroupTransaction) -> None:
    """Delete the draw and unfreeze, inside the caller's transaction."""
    group = tx.group
    group.assignments.clear()
    group.is_frozen = False
    group.frozen_at = None
    group.epoch += 1
    tx.emit(group_topic(group.id), GROUP_UNLOCKED, {"is_frozen": False, "epoch": group.epoch})


def unlock_group(group_id: str, creator_code: str) -> None:
    with group_transaction(group_id) as tx:
        require_organizer(tx.group, creator_code)
        if not tx.group.is_frozen:
            raise NotFrozen()
        clear_assignments(tx)

    logger.info("Reset assignments for group %s", group_id)


def load_graph(group: Group) -> RelationshipGraph:
    """Relationship graph of the current draw; empty while the group is unfrozen."""
    if not group.is_frozen:
        return RelationshipGraph.empty()

    nodes = [Node(m.id, m.name, m.code_name) for m in group.members]
    try:
        edges = {
            a.giver_id: decrypt_assignment_recipient(group.id, a.receiver_ciphertext)
            for a in group.assignments
        }
        return RelationshipGraph(nodes, edges)
    except ValueError:
        logger.exception("Stored assignments for group %s are unreadable", group.id)
        raise TransientFailure("Assignments could not be loaded.")


def get_my_secret_santa(group_id: str, code: str) -> dict | None:
    """Who the caller gives to, or None before the draw."""
    group = load_group(group_id)
    member = require_member(group.id, code)
    neighbors = load_graph(group).neighbors_of(member.id)
    return neighbors.gives_to.to_dict() if neighbors else None


def get_all_secret_santa_relationships(group_id: str, creator_code: str) -> list[dict]:
    group = load_group(group_id)
    require_organizer(group, creator_code)
    return [
        {
            "santa_name": giver.name,
            "santa_code_name": giver.code_name,
            "receiver_name": receiver.name,
            "receiver_code_name": receiver.code_name,
        }
        for giver, receiver in load_graph(group).relationships()
    ]


def get_chain(group_id: str, code: str, member_name: str | None = None) -> list[dict]:
    """
    The gifting cycle through a member, in giving order. Members see their
    own chain; the organizer may ask for any member's. Empty before the draw.
    """
    group = load_group(group_id)
    if member_name is not None:
        require_organizer(group, code)
        key = member_name.strip().lower()
        member = next((m for m in group.members if m.name_key == key), None)
        if member is None:
            raise NotFound("Member not found.")
    else:
        member = require_member(group.id, code)
    return [n.to_dict() for n in load_graph(group).chain_of(member.id)]
