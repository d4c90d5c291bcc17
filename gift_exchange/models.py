from __future__ import annotations

import uuid
from datetime import datetime, timezone

from .extensions import db


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_group_id() -> str:
    return uuid.uuid4().hex


class Group(db.Model):
    __tablename__ = "groups"

    id = db.Column(db.String(32), primary_key=True, default=_new_group_id)
    name = db.Column(db.String(30), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    capacity = db.Column(db.Integer, nullable=False)

    is_open = db.Column(db.Boolean, default=True, nullable=False)
    is_frozen = db.Column(db.Boolean, default=False, nullable=False)
    frozen_at = db.Column(db.DateTime, nullable=True)
    # Bumped on every reset; directed messages belong to the epoch they were sent in.
    epoch = db.Column(db.Integer, default=1, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=True)

    use_code_names = db.Column(db.Boolean, default=False, nullable=False)
    auto_assign_code_names = db.Column(db.Boolean, default=False, nullable=False)
    use_custom_code_names = db.Column(db.Boolean, default=False, nullable=False)

    # argon2 hash; None means no password
    password_hash = db.Column(db.String(255), nullable=True)

    creator_code = db.Column(db.String(128), nullable=False, index=True)
    creator_name = db.Column(db.String(30), nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    members = db.relationship(
        "Member", back_populates="group", cascade="all, delete-orphan", order_by="Member.id"
    )
    assignments = db.relationship("Assignment", back_populates="group", cascade="all, delete-orphan")
    custom_code_names = db.relationship(
        "CustomCodeName", back_populates="group", cascade="all, delete-orphan", order_by="CustomCodeName.id"
    )
    messages = db.relationship("Message", back_populates="group", cascade="all, delete-orphan")

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at is not None and self.expires_at <= (now or utcnow())

    def public_dict(self) -> dict:
        return {
            "group_id": self.id,
            "name": self.name,
            "description": self.description,
            "capacity": self.capacity,
            "member_count": len(self.members),
            "is_open": self.is_open,
            "is_frozen": self.is_frozen,
            "expiry_date": self.expires_at.isoformat() if self.expires_at else None,
            "has_password": self.has_password,
            "use_code_names": self.use_code_names,
            "auto_assign_code_names": self.auto_assign_code_names,
            "use_custom_code_names": self.use_custom_code_names,
            "creator_name": self.creator_name,
        }


class Member(db.Model):
    __tablename__ = "members"

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.String(32), db.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)

    name = db.Column(db.String(30), nullable=False)
    # lower-cased copies back the case-insensitive uniqueness rules
    name_key = db.Column(db.String(30), nullable=False)
    code_name = db.Column(db.String(30), nullable=True)
    code_name_key = db.Column(db.String(30), nullable=True)

    code = db.Column(db.String(128), nullable=False, index=True)
    joined_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    group = db.relationship("Group", back_populates="members")

    __table_args__ = (
        db.UniqueConstraint("group_id", "code", name="uq_members_group_code"),
        db.UniqueConstraint("group_id", "name_key", name="uq_members_group_name_key"),
        db.UniqueConstraint("group_id", "code_name_key", name="uq_members_group_code_name_key"),
        # a departed member's id must never be handed to the next joiner
        {"sqlite_autoincrement": True},
    )

    @property
    def display_name(self) -> str:
        return self.code_name or self.name

    def to_dict(self) -> dict:
        return {"name": self.name, "code_name": self.code_name}


class Assignment(db.Model):
    """
    giver -> receiver for one frozen group. The receiver id is stored as a
    Fernet token (see security.encrypt_assignment_recipient).
    """
    __tablename__ = "assignments"

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.String(32), db.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    giver_id = db.Column(db.Integer, db.ForeignKey("members.id", ondelete="CASCADE"), nullable=False, unique=True)
    receiver_ciphertext = db.Column(db.Text, nullable=False)

    group = db.relationship("Group", back_populates="assignments")
    giver = db.relationship("Member", foreign_keys=[giver_id])


class CustomCodeName(db.Model):
    __tablename__ = "custom_code_names"

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.String(32), db.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(30), nullable=False)
    name_key = db.Column(db.String(30), nullable=False)

    group = db.relationship("Group", back_populates="custom_code_names")

    __table_args__ = (
        db.UniqueConstraint("group_id", "name_key", name="uq_custom_code_names_group_name_key"),
    )


class MessageKind:
    GROUP = "group"
    SANTA_TO_GIFTEE = "santa_to_giftee"
    GIFTEE_TO_SANTA = "giftee_to_santa"
    TO_ORGANIZER = "to_organizer"
    FROM_ORGANIZER = "from_organizer"


class Message(db.Model):
    """
    `kind` says who spoke: the organizer sends group and from_organizer
    messages, members send the rest. recipient_id is None for group
    broadcasts and for messages addressed to the organizer.
    """
    __tablename__ = "messages"

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.String(32), db.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    epoch = db.Column(db.Integer, nullable=False)
    kind = db.Column(db.String(20), nullable=False)

    sender_id = db.Column(db.Integer, db.ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey("members.id", ondelete="SET NULL"), nullable=True, index=True)

    body = db.Column(db.String(150), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    is_read = db.Column(db.Boolean, default=False, nullable=False)

    group = db.relationship("Group", back_populates="messages")
    receipts = db.relationship("MessageReceipt", back_populates="message", cascade="all, delete-orphan")


class MessageReceipt(db.Model):
    """Per-reader read state for group broadcasts."""
    __tablename__ = "message_receipts"

    id = db.Column(db.Integer, primary_key=True)
    message_id = db.Column(db.Integer, db.ForeignKey("messages.id", ondelete="CASCADE"), nullable=False)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    read_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    message = db.relationship("Message", back_populates="receipts")

    __table_args__ = (
        db.UniqueConstraint("message_id", "member_id", name="uq_message_receipts_message_member"),
    )
