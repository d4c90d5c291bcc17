"""
The command/query surface. One function per operation, credentials passed
explicitly, and every call returns a CommandResult: service errors become
failed results with a readable message, database trouble becomes a generic
transient failure. Nothing raises across this boundary.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from functools import wraps
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from .errors import GiftExchangeError, TransientFailure
from .extensions import db
from .services import assignments, groups, membership, messaging, sync

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    success: bool
    data: Any = None
    error: str | None = None
    error_code: str | None = None
    category: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "CommandResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: GiftExchangeError) -> "CommandResult":
        return cls(success=False, error=error.message, error_code=error.code, category=error.category)

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"success": self.success}
        if self.success:
            if self.data is not None:
                body["data"] = self.data
        else:
            body["error"] = self.error
            body["error_code"] = self.error_code
        return body


def command(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs) -> CommandResult:
        try:
            return CommandResult.ok(fn(*args, **kwargs))
        except GiftExchangeError as e:
            logger.debug("%s refused: %s", fn.__name__, e.message)
            return CommandResult.fail(e)
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("%s failed on the database", fn.__name__)
            return CommandResult.fail(TransientFailure())
        except Exception:
            db.session.rollback()
            logger.exception("%s failed unexpectedly", fn.__name__)
            return CommandResult.fail(TransientFailure())
    return wrapper


# --- groups ---

@command
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
    auto_join: bool = False,
    creator_code_name: str | None = None,
) -> str:
    group = groups.create_group(
        name=name,
        capacity=capacity,
        creator_name=creator_name,
        creator_code=creator_code,
        description=description,
        password=password,
        expiry=expiry,
        is_open=is_open,
        use_code_names=use_code_names,
        auto_assign_code_names=auto_assign_code_names,
        use_custom_code_names=use_custom_code_names,
        custom_code_names=custom_code_names,
    )
    if auto_join:
        # The group exists either way; the organizer can join by hand later.
        try:
            membership.join_group(group.id, creator_code, creator_name, password, creator_code_name)
        except GiftExchangeError as e:
            logger.warning("Group %s created but organizer auto-join failed: %s", group.id, e.message)
    return group.id


@command
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
) -> None:
    groups.update_group(
        group_id,
        creator_code,
        capacity=capacity,
        description=description,
        password=password,
        is_open=is_open,
        expiry=expiry,
        new_custom_code_names=new_custom_code_names,
    )


@command
def toggle_group_open(group_id: str, creator_code: str) -> dict:
    return {"is_open": groups.toggle_group_open(group_id, creator_code)}


@command
def get_group(group_id: str) -> dict:
    return groups.get_group(group_id)


@command
def get_group_details(group_id: str, creator_code: str) -> dict:
    return groups.get_group_details(group_id, creator_code)


@command
def get_custom_code_names(group_id: str, creator_code: str) -> list[str]:
    return groups.get_custom_code_names(group_id, creator_code)


@command
def is_creator(group_id: str, code: str) -> bool:
    return groups.is_creator(group_id, code)


@command
def delete_group(group_id: str, creator_code: str) -> None:
    groups.delete_group(group_id, creator_code)


@command
def get_my_groups(code: str) -> list[dict]:
    return groups.get_my_groups(code)


# --- membership ---

@command
def join_group(
    group_id: str,
    code: str,
    name: str,
    password: str | None = None,
    code_name: str | None = None,
    rng: random.Random | None = None,
) -> dict:
    return membership.join_group(group_id, code, name, password, code_name, rng).to_dict()


@command
def leave_group(group_id: str, code: str) -> None:
    membership.leave_group(group_id, code)


@command
def kick_member(group_id: str, creator_code: str, member_name: str) -> None:
    membership.kick_member(group_id, creator_code, member_name)


@command
def get_members(group_id: str, code: str) -> list[dict]:
    return membership.get_members(group_id, code)


@command
def get_member(group_id: str, code: str) -> dict:
    return membership.get_member(group_id, code)


@command
def is_member(group_id: str, code: str) -> bool:
    return membership.is_member(group_id, code)


# --- assignments and the relationship graph ---

@command
def assign_santa(group_id: str, creator_code: str, rng: random.Random | None = None) -> None:
    assignments.assign_santa(group_id, creator_code, rng)


@command
def unlock_group(group_id: str, creator_code: str) -> None:
    assignments.unlock_group(group_id, creator_code)


@command
def get_my_secret_santa(group_id: str, code: str) -> dict | None:
    return assignments.get_my_secret_santa(group_id, code)


@command
def get_all_secret_santa_relationships(group_id: str, creator_code: str) -> list[dict]:
    return assignments.get_all_secret_santa_relationships(group_id, creator_code)


@command
def get_chain(group_id: str, code: str, member_name: str | None = None) -> list[dict]:
    return assignments.get_chain(group_id, code, member_name)


# --- messaging ---

@command
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
    return messaging.send_message(
        group_id,
        sender_code,
        body,
        is_group_message=is_group_message,
        to_secret_santa=to_secret_santa,
        to_organizer=to_organizer,
        recipient_name=recipient_name,
        client_token=client_token,
    )


@command
def get_message_history(group_id: str, code: str, thread: str) -> list[dict]:
    return messaging.get_message_history(group_id, code, thread)


@command
def get_unread_message_count(group_id: str, code: str, thread: str) -> dict:
    return messaging.get_unread_message_count(group_id, code, thread)


@command
def mark_messages_as_read(group_id: str, code: str, message_ids: list[int]) -> dict:
    return {"marked": messaging.mark_messages_as_read(group_id, code, message_ids)}


# --- resync ---

@command
def get_group_snapshot(group_id: str, code: str) -> dict:
    return sync.get_group_snapshot(group_id, code)
