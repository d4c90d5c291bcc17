from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import and_, false, or_, select

from ..errors import BodyTooLong, EmptyMessage, NoIds, NotAuthorized, NotFound, NotFrozen, ValidationFailed
from ..events import NEW_MESSAGE, READ_MESSAGE, group_topic, inbox_topic, organizer_topic
from ..extensions import db
from ..models import Group, Member, Message, MessageKind, MessageReceipt
from ..policies import find_member, is_organizer, load_group, require_member
from ..transactions import group_transaction
from .assignments import load_graph

logger = logging.getLogger(__name__)

MAX_BODY_LENGTH = 150

# Threads as seen by the viewer
GROUP = "group"
MY_SANTA = "my_santa"        # the person who gives to me
MY_GIFTEE = "my_giftee"      # the person I give to
ORGANIZER = "organizer"      # me <-> the group organizer
THREADS = (GROUP, MY_SANTA, MY_GIFTEE, ORGANIZER)

SECRET_SANTA_LABEL = "Secret Santa"
ADMIN_LABEL = "Admin"
SELF_LABEL = "You"

# kinds the organizer sends; their sender_id stays empty
ORGANIZER_KINDS = (MessageKind.GROUP, MessageKind.FROM_ORGANIZER)


@dataclass
class Viewer:
    group: Group
    member: Member | None
    organizer: bool

    @property
    def member_id(self) -> int | None:
        return self.member.id if self.member else None


def _viewer(group: Group, code: str, thread: str) -> Viewer:
    if thread not in THREADS:
        raise ValidationFailed(f"Unknown message thread: {thread}.")
    organizer = is_organizer(group, code)
    member = find_member(group.id, code)
    if member is None and not (organizer and thread in (GROUP, ORGANIZER)):
        raise NotAuthorized("You are not a member of this group.")
    return Viewer(group, member, organizer)


def _organizer_view(viewer: Viewer, thread: str) -> bool:
    return thread == ORGANIZER and viewer.organizer


def _thread_criteria(viewer: Viewer, thread: str):
    """Every message in the thread, both directions."""
    me = viewer.member_id
    epoch = viewer.group.epoch
    if thread == GROUP:
        return Message.kind == MessageKind.GROUP
    if thread == MY_SANTA:
        return and_(Message.epoch == epoch, or_(
            and_(Message.kind == MessageKind.SANTA_TO_GIFTEE, Message.recipient_id == me),
            and_(Message.kind == MessageKind.GIFTEE_TO_SANTA, Message.sender_id == me),
        ))
    if thread == MY_GIFTEE:
        return and_(Message.epoch == epoch, or_(
            and_(Message.kind == MessageKind.SANTA_TO_GIFTEE, Message.sender_id == me),
            and_(Message.kind == MessageKind.GIFTEE_TO_SANTA, Message.recipient_id == me),
        ))
    if _organizer_view(viewer, thread):
        return Message.kind.in_((MessageKind.TO_ORGANIZER, MessageKind.FROM_ORGANIZER))
    return or_(
        and_(Message.kind == MessageKind.TO_ORGANIZER, Message.sender_id == me),
        and_(Message.kind == MessageKind.FROM_ORGANIZER, Message.recipient_id == me),
    )


def _inbox_criteria(viewer: Viewer, thread: str):
    """Only the messages addressed to the viewer."""
    me = viewer.member_id
    epoch = viewer.group.epoch
    if thread == GROUP:
        # the organizer's own broadcasts are not addressed to them
        if me is None or viewer.organizer:
            return false()
        return Message.kind == MessageKind.GROUP
    if thread == MY_SANTA:
        return and_(Message.epoch == epoch, Message.kind == MessageKind.SANTA_TO_GIFTEE, Message.recipient_id == me)
    if thread == MY_GIFTEE:
        return and_(Message.epoch == epoch, Message.kind == MessageKind.GIFTEE_TO_SANTA, Message.recipient_id == me)
    if _organizer_view(viewer, thread):
        return Message.kind == MessageKind.TO_ORGANIZER
    return and_(Message.kind == MessageKind.FROM_ORGANIZER, Message.recipient_id == me)


def _topic_for(viewer: Viewer, thread: str) -> str:
    if _organizer_view(viewer, thread):
        return organizer_topic(viewer.group.id)
    return inbox_topic(thread, viewer.member_id)


def _message_view(msg: Message, sender_name: str, is_read: bool, thread: str) -> dict:
    return {
        "id": msg.id,
        "thread": thread,
        "message": msg.body,
        "sender_name": sender_name,
        "created_date": msg.created_at.isoformat(),
        "is_read": is_read,
    }


def _read_by(viewer: Viewer, msg: Message) -> bool:
    if msg.kind != MessageKind.GROUP:
        return msg.is_read
    if viewer.member is None or viewer.organizer:
        return True
    return any(r.member_id == viewer.member_id for r in msg.receipts)


def _label(viewer: Viewer, msg: Message, thread: str, names: dict[int, str]) -> str:
    if msg.kind in ORGANIZER_KINDS:
        return SELF_LABEL if viewer.organizer else ADMIN_LABEL
    if viewer.member_id is not None and msg.sender_id == viewer.member_id:
        return SELF_LABEL
    if thread == MY_SANTA:
        return SECRET_SANTA_LABEL
    return names.get(msg.sender_id, "Former member")


def send_message(
    group_id: str,
    sender_code: str,
    body: str,
    is_group_message: bool = False,
    to_secret_santa: bool = False,
    to_organizer: bool = False,
    recipient_name: str | None = None,
    client_token: str | None = None,
) -> dict:
    """
    Post a message and return it as the sender sees it.

    Exactly one route applies, checked in order: group broadcast (organizer
    only), organizer to a named member, member to the organizer, member to
    their Secret Santa, member to their giftee. The last two need the draw.
    """
    body = (body or "").strip()
    if not body:
        raise EmptyMessage()
    if len(body) > MAX_BODY_LENGTH:
        raise BodyTooLong()

    with group_transaction(group_id) as tx:
        group = tx.group
        organizer = is_organizer(group, sender_code)
        msg = Message(group_id=group.id, epoch=group.epoch, body=body)

        if is_group_message:
            if not organizer:
                raise NotAuthorized("Only the group organizer can send group messages.")
            msg.kind = MessageKind.GROUP
            deliveries = [(group_topic(group.id), ADMIN_LABEL, GROUP)]
            echo = None

        elif recipient_name is not None:
            if not organizer:
                raise NotAuthorized("Only the group organizer can message members directly.")
            key = recipient_name.strip().lower()
            target = next((m for m in group.members if m.name_key == key), None)
            if target is None:
                raise NotFound("Member not found.")
            msg.kind = MessageKind.FROM_ORGANIZER
            msg.recipient_id = target.id
            deliveries = [(inbox_topic(ORGANIZER, target.id), ADMIN_LABEL, ORGANIZER)]
            echo = (organizer_topic(group.id), ORGANIZER)

        else:
            member = require_member(group.id, sender_code)
            msg.sender_id = member.id
            if to_organizer:
                msg.kind = MessageKind.TO_ORGANIZER
                deliveries = [(organizer_topic(group.id), member.name, ORGANIZER)]
                echo = (inbox_topic(ORGANIZER, member.id), ORGANIZER)
            else:
                if not group.is_frozen:
                    raise NotFrozen()
                neighbors = load_graph(group).neighbors_of(member.id)
                if to_secret_santa:
                    msg.kind = MessageKind.GIFTEE_TO_SANTA
                    msg.recipient_id = neighbors.receives_from.member_id
                    deliveries = [(inbox_topic(MY_GIFTEE, msg.recipient_id), member.display_name, MY_GIFTEE)]
                    echo = (inbox_topic(MY_SANTA, member.id), MY_SANTA)
                else:
                    msg.kind = MessageKind.SANTA_TO_GIFTEE
                    msg.recipient_id = neighbors.gives_to.member_id
                    deliveries = [(inbox_topic(MY_SANTA, msg.recipient_id), SECRET_SANTA_LABEL, MY_SANTA)]
                    echo = (inbox_topic(MY_GIFTEE, member.id), MY_GIFTEE)

        db.session.add(msg)
        db.session.flush()

        for topic, label, thread in deliveries:
            payload = _message_view(msg, label, False, thread)
            if echo is None:
                payload["client_token"] = client_token
            tx.emit(topic, NEW_MESSAGE, payload)
        own_thread = echo[1] if echo else GROUP
        own_view = _message_view(msg, SELF_LABEL, False, own_thread)
        own_view["client_token"] = client_token
        if echo is not None:
            tx.emit(echo[0], NEW_MESSAGE, own_view)

    logger.info("Message %d (%s) posted in group %s", msg.id, msg.kind, group_id)
    return own_view


def get_message_history(group_id: str, code: str, thread: str) -> list[dict]:
    group = load_group(group_id)
    viewer = _viewer(group, code, thread)
    messages = db.session.execute(
        select(Message)
        .where(Message.group_id == group.id, _thread_criteria(viewer, thread))
        .order_by(Message.created_at, Message.id)
    ).scalars().all()
    names = {m.id: (m.display_name if thread == MY_GIFTEE else m.name) for m in group.members}
    return [
        _message_view(msg, _label(viewer, msg, thread, names), _read_by(viewer, msg), thread)
        for msg in messages
    ]


def get_unread_message_count(group_id: str, code: str, thread: str) -> dict:
    group = load_group(group_id)
    viewer = _viewer(group, code, thread)
    inbox = db.session.execute(
        select(Message).where(Message.group_id == group.id, _inbox_criteria(viewer, thread))
    ).scalars().all()
    unread = sum(1 for msg in inbox if not _read_by(viewer, msg))
    return {"unread_count": unread, "total_count": len(inbox)}


def mark_messages_as_read(group_id: str, code: str, message_ids: list[int]) -> int:
    """
    Mark messages addressed to the caller as read. Ids that are unknown,
    already read, or addressed to someone else are skipped. Returns how many
    messages changed state.
    """
    if not message_ids:
        raise NoIds()

    changed = 0
    with group_transaction(group_id) as tx:
        group = tx.group
        organizer = is_organizer(group, code)
        member = find_member(group.id, code)
        if member is None and not organizer:
            raise NotAuthorized("You are not a member of this group.")
        viewer = Viewer(group, member, organizer)

        messages = db.session.execute(
            select(Message).where(Message.group_id == group.id, Message.id.in_(set(message_ids)))
        ).scalars().all()
        for msg in sorted(messages, key=lambda m: m.id):
            thread = _addressed_thread(viewer, msg)
            if thread is None or _read_by(viewer, msg):
                continue
            if msg.kind == MessageKind.GROUP:
                msg.receipts.append(MessageReceipt(member_id=member.id))
            else:
                msg.is_read = True
            changed += 1
            tx.emit(_topic_for(viewer, thread), READ_MESSAGE, {"message_id": msg.id, "thread": thread})

    if changed:
        logger.debug("Marked %d message(s) read in group %s", changed, group_id)
    return changed


def _addressed_thread(viewer: Viewer, msg: Message) -> str | None:
    """The viewer's thread in which msg is addressed to them, if it is."""
    me = viewer.member_id
    if msg.kind == MessageKind.GROUP:
        return GROUP if me is not None and not viewer.organizer else None
    if msg.kind == MessageKind.TO_ORGANIZER:
        return ORGANIZER if viewer.organizer else None
    if me is None or msg.recipient_id != me:
        return None
    if msg.kind == MessageKind.FROM_ORGANIZER:
        return ORGANIZER
    if msg.epoch != viewer.group.epoch:
        return None
    return MY_SANTA if msg.kind == MessageKind.SANTA_TO_GIFTEE else MY_GIFTEE


def subscription_topics(group: Group, code: str) -> list[str]:
    """Every topic a session for this credential should listen on."""
    topics = [group_topic(group.id)]
    member = find_member(group.id, code)
    if member is not None:
        topics.extend(inbox_topic(thread, member.id) for thread in THREADS)
    if is_organizer(group, code):
        topics.append(organizer_topic(group.id))
    return topics
