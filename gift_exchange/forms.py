"""
Request validation for the JSON API. Flask-WTF binds JSON bodies to these
forms; they check shape and ranges, the services check everything that needs
the database.
"""
from __future__ import annotations

from datetime import datetime

from flask_wtf import FlaskForm
from wtforms import BooleanField, Field, IntegerField, StringField
from wtforms.validators import InputRequired, Length, NumberRange, Optional

from .services.groups import MAX_CAPACITY, MAX_DESCRIPTION_LENGTH, MAX_NAME_LENGTH, MIN_CAPACITY


class JSONBooleanField(BooleanField):
    """Accepts JSON true/false; a missing key keeps the default."""

    false_values = (False, "false", "False", "0", "", None)

    def process_formdata(self, valuelist):
        if valuelist:
            self.data = valuelist[0] not in self.false_values


class UnchangedWhenMissingField(StringField):
    """None when the key is absent or null, so the caller can keep the stored value."""

    def process_formdata(self, valuelist):
        self.data = valuelist[0] if valuelist else None


class StringListField(Field):
    def _value(self):
        return self.data or []

    def process_formdata(self, valuelist):
        self.data = [str(v) for v in valuelist if v is not None]


class IntegerListField(Field):
    def process_formdata(self, valuelist):
        try:
            self.data = [int(v) for v in valuelist]
        except (TypeError, ValueError):
            self.data = []
            raise ValueError("Message IDs must be integers.")


class ISODateTimeField(Field):
    def process_formdata(self, valuelist):
        raw = valuelist[0] if valuelist else None
        if not raw:
            self.data = None
            return
        try:
            self.data = datetime.fromisoformat(str(raw))
        except ValueError:
            self.data = None
            raise ValueError("Invalid expiry date format.")


class ApiForm(FlaskForm):
    class Meta:
        # header-credentialled, like the exempt API blueprints
        csrf = False

    def first_error(self) -> str:
        for field_name, messages in self.errors.items():
            field = getattr(self, field_name, None)
            label = field.label.text if field is not None else field_name
            return f"{label}: {messages[0]}"
        return "Invalid input."


class GroupCreateForm(ApiForm):
    name = StringField("Group name", validators=[InputRequired(), Length(max=MAX_NAME_LENGTH)])
    capacity = IntegerField("Capacity", validators=[InputRequired(), NumberRange(MIN_CAPACITY, MAX_CAPACITY)])
    creator_name = StringField("Admin name", validators=[InputRequired(), Length(max=MAX_NAME_LENGTH)])
    creator_code_name = StringField("Code name", validators=[Optional(), Length(max=30)])
    description = StringField("Description", validators=[Optional(), Length(max=MAX_DESCRIPTION_LENGTH)])
    password = StringField("Password", validators=[Optional()])
    expiry_date = ISODateTimeField("Expiry date")
    is_open = JSONBooleanField("Open", default=True)
    use_code_names = JSONBooleanField("Use code names")
    auto_assign_code_names = JSONBooleanField("Auto-assign code names")
    use_custom_code_names = JSONBooleanField("Provide your own code names")
    custom_code_names = StringListField("Custom code names")
    auto_join = JSONBooleanField("Join the group")


class GroupUpdateForm(ApiForm):
    capacity = IntegerField("Capacity", validators=[InputRequired(), NumberRange(MIN_CAPACITY, MAX_CAPACITY)])
    description = StringField("Description", validators=[Optional(), Length(max=MAX_DESCRIPTION_LENGTH)])
    # absent keeps the current password, "" removes it
    password = UnchangedWhenMissingField("Password", validators=[Optional()])
    expiry_date = ISODateTimeField("Expiry date")
    is_open = JSONBooleanField("Open", default=True)
    new_custom_code_names = StringListField("New custom code names")


class JoinForm(ApiForm):
    name = StringField("Name", validators=[InputRequired(), Length(max=30)])
    password = StringField("Password", validators=[Optional()])
    code_name = StringField("Code name", validators=[Optional(), Length(max=30)])


class KickForm(ApiForm):
    member_name = StringField("Member name", validators=[InputRequired()])


class MessageForm(ApiForm):
    # blank and over-long bodies are reported by the messaging service
    message = StringField("Message")
    is_group_message = JSONBooleanField("Group message")
    to_secret_santa = JSONBooleanField("To Secret Santa")
    to_organizer = JSONBooleanField("To organizer")
    recipient_name = StringField("Recipient", validators=[Optional()])
    client_token = StringField("Client token", validators=[Optional(), Length(max=64)])


class MarkReadForm(ApiForm):
    message_ids = IntegerListField("Message IDs")
