from __future__ import annotations

import logging
import random

from sqlalchemy import delete, or_

from ..errors import (
    AlreadyMember,
    CapacityExceeded,
    Closed,
    DuplicateName,
    InvalidPassword,
    NotAuthorized,
    NotFound,
    ValidationFailed,
)
from ..events import MEMBER_JOINED, MEMBER_LEFT, group_topic
from ..extensions import db
from ..graph import listing_key
from ..models import Member, Message, MessageKind, MessageReceipt
from ..policies import ensure_unfrozen, find_member, is_organizer, load_group, require_member, require_organizer
from ..security import verify_group_password
from ..transactions import group_transaction
from .assignments import clear_assignments
from .code_names import resolve_code_name

logger = logging.getLogger(__name__)

MAX_MEMBER_NAME_LENGTH = 30


def _forget_member_messages(group_id: str, member_id: int) -> None:
    """Directed messages and read receipts leave with the member."""
    db.session.execute(delete(MessageReceipt).where(MessageReceipt.member_id == member_id))
    db.session.execute(
        delete(Message).where(
            Message.group_id == group_id,
            Message.kind != MessageKind.GROUP,
            or_(Message.sender_id == member_id, Message.recipient_id == member_id),
        )
    )


def join_group(
    group_id: str,
    code: str,
    name: str,
    password: str | None = None,
    code_name: str | None = None,
    rng: random.Random | None = None,
) -> Member:
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Name is required.")
    if len(name) > MAX_MEMBER_NAME_LENGTH:
        raise ValidationFailed(f"Name cannot exceed {MAX_MEMBER_NAME_LENGTH} characters.")
    if not code:
        raise NotAuthorized("Member code is required.")

    with group_transaction(group_id) as tx:
        group = tx.group
        ensure_unfrozen(group)
        if not group.is_open or group.is_expired():
            raise Closed()
        if group.has_password and not verify_group_password(password, group.password_hash):
            raise InvalidPassword()
        if any(m.code == code for m in group.members):
            raise AlreadyMember()
        if len(group.members) >= group.capacity:
            raise CapacityExceeded()
        if any(m.name_key == name.lower() for m in group.members):
            raise DuplicateName()

        chosen = resolve_code_name(group, code_name, rng)
        member = Member(
            name=name,
            name_key=name.lower(),
            code_name=chosen,
            code_name_key=chosen.lower() if chosen else None,
            code=code,
        )
        group.members.append(member)
        tx.emit(group_topic(group.id), MEMBER_JOINED, member.to_dict())

    logger.info("Member joined group %s (%d/%d)", group_id, len(group.members), group.capacity)
    return member


def leave_group(group_id: str, code: str) -> None:
    """Members cannot walk out of a frozen draw; only the organizer can remove them then."""
    with group_transaction(group_id) as tx:
        group = tx.group
        member = require_member(group.id, code)
        ensure_unfrozen(group)
        _forget_member_messages(group.id, member.id)
        group.members.remove(member)
        tx.emit(group_topic(group.id), MEMBER_LEFT, {"name": member.name})

    logger.info("Member left group %s", group_id)


def kick_member(group_id: str, creator_code: str, member_name: str) -> None:
    """
    Remove a member by name. Allowed even after the draw: the assignment set
    would stop being a bijection, so a frozen group is reset in the same
    transaction and subscribers see group_unlocked before member_left.
    """
    key = (member_name or "").strip().lower()
    with group_transaction(group_id) as tx:
        group = tx.group
        require_organizer(group, creator_code)
        member = next((m for m in group.members if m.name_key == key), None)
        if member is None:
            raise NotFound("Member not found.")
        if group.is_frozen:
            clear_assignments(tx)
        _forget_member_messages(group.id, member.id)
        group.members.remove(member)
        tx.emit(group_topic(group.id), MEMBER_LEFT, {"name": member.name})

    logger.info("Organizer removed a member from group %s", group_id)


def get_members(group_id: str, code: str) -> list[dict]:
    group = load_group(group_id)
    if not is_organizer(group, code):
        require_member(group.id, code)
    members = sorted(group.members, key=lambda m: listing_key(m.name, m.code_name))
    return [m.to_dict() for m in members]


def get_member(group_id: str, code: str) -> dict:
    load_group(group_id)
    member = find_member(group_id, code)
    if member is None:
        raise NotFound("Member not found.")
    return member.to_dict()


def is_member(group_id: str, code: str) -> bool:
    load_group(group_id)
    return find_member(group_id, code) is not None
