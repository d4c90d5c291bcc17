from __future__ import annotations

from flask import Blueprint, request
from flask.views import MethodView
from flask_login import current_user

from .. import commands
from ..forms import GroupCreateForm, GroupUpdateForm, JoinForm, KickForm
from ..policies import CredentialRequiredMixin
from .responses import form_error, respond

groups_bp = Blueprint("groups", __name__, url_prefix="/api/groups")


class GroupCollectionView(CredentialRequiredMixin):
    def post(self):
        form = GroupCreateForm()
        if not form.validate():
            return form_error(form)
        result = commands.create_group(
            name=form.name.data,
            capacity=form.capacity.data,
            creator_name=form.creator_name.data,
            creator_code=current_user.code,
            description=form.description.data,
            password=form.password.data,
            expiry=form.expiry_date.data,
            is_open=form.is_open.data,
            use_code_names=form.use_code_names.data,
            auto_assign_code_names=form.auto_assign_code_names.data,
            use_custom_code_names=form.use_custom_code_names.data,
            custom_code_names=form.custom_code_names.data,
            auto_join=form.auto_join.data,
            creator_code_name=form.creator_code_name.data,
        )
        if result.success:
            result.data = {"group_id": result.data}
        return respond(result, 201)


class MyGroupsView(CredentialRequiredMixin):
    def get(self):
        return respond(commands.get_my_groups(current_user.code))


class GroupView(MethodView):
    # public summary; everything else on a group needs a credential
    def get(self, group_id):
        return respond(commands.get_group(group_id))


class GroupAdminView(CredentialRequiredMixin):
    def get(self, group_id):
        return respond(commands.get_group_details(group_id, current_user.code))

    def patch(self, group_id):
        form = GroupUpdateForm()
        if not form.validate():
            return form_error(form)
        return respond(commands.update_group(
            group_id,
            current_user.code,
            capacity=form.capacity.data,
            description=form.description.data,
            password=form.password.data,
            is_open=form.is_open.data,
            expiry=form.expiry_date.data,
            new_custom_code_names=form.new_custom_code_names.data,
        ))

    def delete(self, group_id):
        return respond(commands.delete_group(group_id, current_user.code))


class ToggleOpenView(CredentialRequiredMixin):
    def post(self, group_id):
        return respond(commands.toggle_group_open(group_id, current_user.code))


class CustomCodeNamesView(CredentialRequiredMixin):
    def get(self, group_id):
        return respond(commands.get_custom_code_names(group_id, current_user.code))


class CreatorCheckView(CredentialRequiredMixin):
    def get(self, group_id):
        return respond(commands.is_creator(group_id, current_user.code))


class JoinView(CredentialRequiredMixin):
    def post(self, group_id):
        form = JoinForm()
        if not form.validate():
            return form_error(form)
        return respond(
            commands.join_group(group_id, current_user.code, form.name.data, form.password.data, form.code_name.data),
            201,
        )


class LeaveView(CredentialRequiredMixin):
    def post(self, group_id):
        return respond(commands.leave_group(group_id, current_user.code))


class KickView(CredentialRequiredMixin):
    def post(self, group_id):
        form = KickForm()
        if not form.validate():
            return form_error(form)
        return respond(commands.kick_member(group_id, current_user.code, form.member_name.data))


class MembersView(CredentialRequiredMixin):
    def get(self, group_id):
        return respond(commands.get_members(group_id, current_user.code))


class MeView(CredentialRequiredMixin):
    def get(self, group_id):
        return respond(commands.get_member(group_id, current_user.code))


class MembershipCheckView(CredentialRequiredMixin):
    def get(self, group_id):
        return respond(commands.is_member(group_id, current_user.code))


class AssignView(CredentialRequiredMixin):
    def post(self, group_id):
        return respond(commands.assign_santa(group_id, current_user.code))


class UnlockView(CredentialRequiredMixin):
    def post(self, group_id):
        return respond(commands.unlock_group(group_id, current_user.code))


class MySecretSantaView(CredentialRequiredMixin):
    def get(self, group_id):
        return respond(commands.get_my_secret_santa(group_id, current_user.code))


class RelationshipsView(CredentialRequiredMixin):
    def get(self, group_id):
        return respond(commands.get_all_secret_santa_relationships(group_id, current_user.code))


class ChainView(CredentialRequiredMixin):
    def get(self, group_id):
        member_name = request.args.get("member_name") or None
        return respond(commands.get_chain(group_id, current_user.code, member_name))


class SnapshotView(CredentialRequiredMixin):
    def get(self, group_id):
        return respond(commands.get_group_snapshot(group_id, current_user.code))


groups_bp.add_url_rule("", view_func=GroupCollectionView.as_view("create"), methods=["POST"])
groups_bp.add_url_rule("/mine", view_func=MyGroupsView.as_view("mine"))
groups_bp.add_url_rule("/<group_id>", view_func=GroupView.as_view("detail"))
groups_bp.add_url_rule(
    "/<group_id>/admin",
    view_func=GroupAdminView.as_view("admin"),
    methods=["GET", "PATCH", "DELETE"],
)
groups_bp.add_url_rule("/<group_id>/toggle-open", view_func=ToggleOpenView.as_view("toggle_open"), methods=["POST"])
groups_bp.add_url_rule("/<group_id>/custom-code-names", view_func=CustomCodeNamesView.as_view("custom_code_names"))
groups_bp.add_url_rule("/<group_id>/is-creator", view_func=CreatorCheckView.as_view("is_creator"))

groups_bp.add_url_rule("/<group_id>/join", view_func=JoinView.as_view("join"), methods=["POST"])
groups_bp.add_url_rule("/<group_id>/leave", view_func=LeaveView.as_view("leave"), methods=["POST"])
groups_bp.add_url_rule("/<group_id>/kick", view_func=KickView.as_view("kick"), methods=["POST"])
groups_bp.add_url_rule("/<group_id>/members", view_func=MembersView.as_view("members"))
groups_bp.add_url_rule("/<group_id>/me", view_func=MeView.as_view("me"))
groups_bp.add_url_rule("/<group_id>/is-member", view_func=MembershipCheckView.as_view("is_member"))

groups_bp.add_url_rule("/<group_id>/assign", view_func=AssignView.as_view("assign"), methods=["POST"])
groups_bp.add_url_rule("/<group_id>/unlock", view_func=UnlockView.as_view("unlock"), methods=["POST"])
groups_bp.add_url_rule("/<group_id>/my-secret-santa", view_func=MySecretSantaView.as_view("my_secret_santa"))
groups_bp.add_url_rule("/<group_id>/relationships", view_func=RelationshipsView.as_view("relationships"))
groups_bp.add_url_rule("/<group_id>/chain", view_func=ChainView.as_view("chain"))
groups_bp.add_url_rule("/<group_id>/snapshot", view_func=SnapshotView.as_view("snapshot"))
