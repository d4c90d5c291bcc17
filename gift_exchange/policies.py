from __future__ import annotations

import hmac

from flask import jsonify
from flask.views import MethodView
from flask_login import current_user
from sqlalchemy import select

from .errors import GroupFrozen, NotAuthorized, NotFound
from .extensions import db
from .models import Group, Member


def load_group(group_id: str, *, for_update: bool = False) -> Group:
    stmt = select(Group).where(Group.id == group_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    group = db.session.execute(stmt).scalar_one_or_none()
    if group is None:
        raise NotFound("Group not found.")
    return group


def is_organizer(group: Group, code: str | None) -> bool:
    return bool(code) and hmac.compare_digest(group.creator_code, code)


def require_organizer(group: Group, code: str | None) -> None:
    if not is_organizer(group, code):
        raise NotAuthorized("Only the group organizer can do that.")


def find_member(group_id: str, code: str | None) -> Member | None:
    if not code:
        return None
    return db.session.execute(
        select(Member).where(Member.group_id == group_id, Member.code == code)
    ).scalar_one_or_none()


def require_member(group_id: str, code: str | None) -> Member:
    member = find_member(group_id, code)
    if member is None:
        raise NotAuthorized("You are not a member of this group.")
    return member


def ensure_unfrozen(group: Group) -> None:
    if group.is_frozen:
        raise GroupFrozen()


# --------- Class-based view Mixins ----------

class CredentialRequiredMixin(MethodView):
    """Rejects requests that arrive without an X-Member-Code header."""

    def dispatch_request(self, *args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify(success=False, error="Member code is required."), 401
        return super().dispatch_request(*args, **kwargs)
