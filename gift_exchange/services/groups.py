from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, or_, select

from ..errors import GroupNotEmpty, ValidationFailed
from ..events import GROUP_CLOSED, GROUP_OPENED, group_topic
from ..extensions import db, group_locks
from ..models import (
    Assignment,
    CustomCodeName,
    Group,
    Member,
    Message,
    MessageReceipt,
    utcnow,
)
from ..policies import ensure_unfrozen, is_organizer, load_group, require_organizer
from ..security import hash_group_password
from ..transactions import group_transaction
from .code_names import clean_names, validate_pool

logger = logging.getLogger(__name__)

MIN_CAPACITY = 2
MAX_CAPACITY = 100
MAX_NAME_LENGTH = 30
MAX_DESCRIPTION_LENGTH = 500


def _require_text(value: str | None, label: str, max_length: int) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationFailed(f"{label} is required.")
    if len(value) > max_length:
        raise ValidationFailed(f"{label} cannot exceed {max_length} characters.")
    return value


def _clean_description(description: str | None) -> str | None:
    description = (description or "").strip() or None
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationFailed(f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters.")
    return description


def _check_capacity(capacity) -> int:
    if not isinstance(capacity, int) or isinstance(capacity, bool) or capacity < MIN_CAPACITY:
        raise ValidationFailed(f"Capacity must be at least {MIN_CAPACITY} members.")
    if capacity > MAX_CAPACITY:
        raise ValidationFailed(f"Capacity cannot exceed {MAX_CAPACITY} members.")
    return capacity


def _check_expiry(expiry: datetime | None, now: datetime | None = None) -> datetime | None:
    if expiry is None:
        return None
    if expiry.tzinfo is not None:
        expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)
    now = now or utcnow()
    if expiry <= now:
        raise ValidationFailed("Expiry date must be in the future.")
    try:
        one_year_out = now.replace(year=now.year + 1)
    except ValueError:  # Feb 29
        one_year_out = now + timedelta(days=365)
    if expiry > one_year_out:
        raise ValidationFailed("Expiry date cannot be more than 1 year from now.")
    return expiry


def create_group(
    *,
    name: str,
    capacity: int,
    creator_name: str,
    creator_code: str,
    description: str | None = None,
    password: str | None = None,
    expiry: datetime | None = None,
    is_open: bool = True,
    use_code_names: bool = False,
    auto_assign_code_names: bool = False,
    use_custom_code_names: bool = False,
    custom_code_names: list[str] | None = None,
) -> Group:
    name = _require_text(name, "Group name", MAX_NAME_LENGTH)
    creator_name = _require_text(creator_name, "Admin name", MAX_NAME_LENGTH)
    creator_code = _require_text(creator_code, "Member code", 128)
    capacity = _check_capacity(capacity)

    pool = clean_names(custom_code_names) if use_custom_code_names else []
    if use_custom_code_names:
        if not pool:
            raise ValidationFailed("Custom code names are required when providing your own code names.")
        validate_pool([], pool, capacity)

    group = Group(
        name=name,
        description=_clean_description(description),
        capacity=capacity,
        is_open=is_open,
        expires_at=_check_expiry(expiry),
        use_code_names=use_code_names or use_custom_code_names,
        auto_assign_code_names=auto_assign_code_names,
        use_custom_code_names=use_custom_code_names,
        password_hash=hash_group_password(password) if password else None,
        creator_code=creator_code,
        creator_name=creator_name,
    )
    group.custom_code_names = [CustomCodeName(name=n, name_key=n.lower()) for n in pool]
    db.session.add(group)
    db.session.commit()

    logger.info("Created group %s (capacity %d)", group.id, capacity)
    return group


def update_group(
    group_id: str,
    creator_code: str,
    *,
    capacity: int,
    description: str | None = None,
    password: str | None = None,
    is_open: bool = True,
    expiry: datetime | None = None,
    new_custom_code_names: list[str] | None = None,
) -> Group:
    """
    Replace the editable settings of an unfrozen group. The password is
    left alone when None, removed when empty, and replaced otherwise.
    """
    capacity = _check_capacity(capacity)
    description = _clean_description(description)
    expiry = _check_expiry(expiry)

    with group_transaction(group_id) as tx:
        group = tx.group
        require_organizer(group, creator_code)
        ensure_unfrozen(group)

        if capacity < len(group.members):
            raise ValidationFailed(
                f"Capacity cannot be lower than the current member count ({len(group.members)})."
            )

        if group.use_custom_code_names:
            new_names = clean_names(new_custom_code_names)
            validate_pool([c.name for c in group.custom_code_names], new_names, capacity)
            for n in new_names:
                group.custom_code_names.append(CustomCodeName(name=n, name_key=n.lower()))

        group.capacity = capacity
        group.description = description
        group.expires_at = expiry
        if password is not None:
            group.password_hash = hash_group_password(password) if password else None

        if group.is_open != is_open:
            group.is_open = is_open
            tx.emit(group_topic(group.id), GROUP_OPENED if is_open else GROUP_CLOSED, {"is_open": is_open})

    logger.info("Updated settings of group %s", group_id)
    return group


def toggle_group_open(group_id: str, creator_code: str) -> bool:
    with group_transaction(group_id) as tx:
        group = tx.group
        require_organizer(group, creator_code)
        ensure_unfrozen(group)
        group.is_open = not group.is_open
        tx.emit(group_topic(group.id), GROUP_OPENED if group.is_open else GROUP_CLOSED, {"is_open": group.is_open})

    logger.info("Group %s is now %s", group_id, "open" if group.is_open else "closed")
    return group.is_open


def get_group(group_id: str) -> dict:
    return load_group(group_id).public_dict()


def get_group_details(group_id: str, creator_code: str) -> dict:
    group = load_group(group_id)
    require_organizer(group, creator_code)
    details = group.public_dict()
    details["custom_code_names"] = [c.name for c in group.custom_code_names]
    return details


def get_custom_code_names(group_id: str, creator_code: str) -> list[str]:
    group = load_group(group_id)
    require_organizer(group, creator_code)
    return [c.name for c in group.custom_code_names]


def is_creator(group_id: str, code: str) -> bool:
    return is_organizer(load_group(group_id), code)


def delete_group(group_id: str, creator_code: str) -> None:
    with group_locks.hold(group_id):
        try:
            group = load_group(group_id, for_update=True)
            require_organizer(group, creator_code)
            if group.members:
                raise GroupNotEmpty()
            db.session.delete(group)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
    group_locks.forget(group_id)
    logger.info("Deleted group %s", group_id)


def get_my_groups(code: str) -> list[dict]:
    """Groups the credential organizes or belongs to."""
    if not code:
        return []
    member_of = select(Member.group_id).where(Member.code == code)
    groups = db.session.execute(
        select(Group).where(or_(Group.creator_code == code, Group.id.in_(member_of)))
    ).scalars().all()

    rows = []
    for group in sorted(groups, key=lambda g: (g.name.lower(), g.id)):
        row = group.public_dict()
        row["is_creator"] = is_organizer(group, code)
        row["is_member"] = any(m.code == code for m in group.members)
        rows.append(row)
    return rows


def purge_expired_groups(now: datetime | None = None) -> int:
    """Delete every group whose expiry has passed, members and history included."""
    now = now or utcnow()
    expired = db.session.execute(
        select(Group.id).where(Group.expires_at.is_not(None), Group.expires_at <= now)
    ).scalars().all()
    if not expired:
        return 0

    message_ids = select(Message.id).where(Message.group_id.in_(expired))
    db.session.execute(delete(MessageReceipt).where(MessageReceipt.message_id.in_(message_ids)))
    db.session.execute(delete(Message).where(Message.group_id.in_(expired)))
    db.session.execute(delete(Assignment).where(Assignment.group_id.in_(expired)))
    db.session.execute(delete(CustomCodeName).where(CustomCodeName.group_id.in_(expired)))
    db.session.execute(delete(Member).where(Member.group_id.in_(expired)))
    db.session.execute(delete(Group).where(Group.id.in_(expired)))
    db.session.commit()

    for group_id in expired:
        group_locks.forget(group_id)
    logger.info("Purged %d expired group(s)", len(expired))
    return len(expired)
