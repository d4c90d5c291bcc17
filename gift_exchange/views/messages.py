from __future__ import annotations

from flask import Blueprint, request
from flask_login import current_user

from .. import commands
from ..forms import MarkReadForm, MessageForm
from ..policies import CredentialRequiredMixin
from ..services.messaging import GROUP
from .responses import form_error, respond

messages_bp = Blueprint("messages", __name__, url_prefix="/api/groups/<group_id>/messages")


def _thread() -> str:
    return request.args.get("thread") or GROUP


class MessagesView(CredentialRequiredMixin):
    def get(self, group_id):
        return respond(commands.get_message_history(group_id, current_user.code, _thread()))

    def post(self, group_id):
        form = MessageForm()
        if not form.validate():
            return form_error(form)
        result = commands.send_message(
            group_id,
            current_user.code,
            form.message.data,
            is_group_message=form.is_group_message.data,
            to_secret_santa=form.to_secret_santa.data,
            to_organizer=form.to_organizer.data,
            recipient_name=form.recipient_name.data or None,
            client_token=form.client_token.data or None,
        )
        return respond(result, 201)


class UnreadCountView(CredentialRequiredMixin):
    def get(self, group_id):
        return respond(commands.get_unread_message_count(group_id, current_user.code, _thread()))


class MarkReadView(CredentialRequiredMixin):
    def post(self, group_id):
        form = MarkReadForm()
        if not form.validate():
            return form_error(form)
        return respond(commands.mark_messages_as_read(group_id, current_user.code, form.message_ids.data or []))


messages_bp.add_url_rule("", view_func=MessagesView.as_view("thread"), methods=["GET", "POST"])
messages_bp.add_url_rule("/unread", view_func=UnreadCountView.as_view("unread"))
messages_bp.add_url_rule("/read", view_func=MarkReadView.as_view("mark_read"), methods=["POST"])
