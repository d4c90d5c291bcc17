import random

from conftest import ORGANIZER_CODE, member_code
from gift_exchange import commands
from gift_exchange.services.code_names import BUILT_IN_CODE_NAMES


class TestJoin:
    def test_join_returns_the_member(self, make_group):
        group_id = make_group()
        result = commands.join_group(group_id, "c1", "  Alice ")
        assert result.data == {"name": "Alice", "code_name": None}
        assert commands.get_member(group_id, "c1").data["name"] == "Alice"

    def test_capacity_boundary(self, make_group, join):
        group_id = make_group(capacity=3)
        join(group_id, "Alice")
        join(group_id, "Bob")
        join(group_id, "Carol")
        result = commands.join_group(group_id, "c4", "Dave")
        assert result.error_code == "CapacityExceeded"

    def test_names_are_unique_ignoring_case(self, make_group, join):
        group_id = make_group()
        join(group_id, "Alice")
        assert commands.join_group(group_id, "c2", "ALICE").error_code == "DuplicateName"

    def test_same_code_cannot_join_twice(self, make_group, join):
        group_id = make_group()
        join(group_id, "Alice")
        result = commands.join_group(group_id, member_code("Alice"), "Alicia")
        assert result.error_code == "AlreadyMember"

    def test_password(self, make_group):
        group_id = make_group(password="sleigh")
        assert commands.join_group(group_id, "c1", "Alice").error_code == "InvalidPassword"
        assert commands.join_group(group_id, "c1", "Alice", password="wrong").error_code == "InvalidPassword"
        assert commands.join_group(group_id, "c1", "Alice", password="sleigh").success

    def test_closed_group(self, make_group):
        group_id = make_group(is_open=False)
        assert commands.join_group(group_id, "c1", "Alice").error_code == "Closed"

    def test_frozen_group(self, frozen_trio):
        assert commands.join_group(frozen_trio, "c9", "Dave").error_code == "GroupFrozen"

    def test_name_too_long(self, make_group):
        result = commands.join_group(make_group(), "c1", "x" * 31)
        assert result.category == "validation"


class TestCodeNames:
    def test_auto_assigned_from_the_built_in_pool(self, make_group):
        group_id = make_group(use_code_names=True, auto_assign_code_names=True)
        first = commands.join_group(group_id, "c1", "Alice", rng=random.Random(1)).data
        second = commands.join_group(group_id, "c2", "Bob", rng=random.Random(1)).data
        assert first["code_name"] in BUILT_IN_CODE_NAMES
        assert second["code_name"] in BUILT_IN_CODE_NAMES
        assert first["code_name"] != second["code_name"]

    def test_chosen_code_name_must_be_free(self, make_group):
        group_id = make_group(use_code_names=True)
        assert commands.join_group(group_id, "c1", "Alice", code_name="Rudolph").success
        result = commands.join_group(group_id, "c2", "Bob", code_name="rudolph")
        assert result.error_code == "DuplicateName"
        assert commands.join_group(group_id, "c3", "Carol").category == "validation"

    def test_custom_pool_picks_canonical_spelling(self, make_group):
        group_id = make_group(capacity=2, use_custom_code_names=True, custom_code_names=["North Star", "Comet"])
        assert commands.join_group(group_id, "c1", "Alice", code_name="north star").data["code_name"] == "North Star"
        assert commands.join_group(group_id, "c2", "Bob", code_name="Vixen").category == "validation"

    def test_members_listed_by_code_name(self, make_group):
        group_id = make_group(use_code_names=True)
        commands.join_group(group_id, "c1", "Alice", code_name="Zebra")
        commands.join_group(group_id, "c2", "Bob", code_name="Aardvark")
        names = [m["name"] for m in commands.get_members(group_id, ORGANIZER_CODE).data]
        assert names == ["Bob", "Alice"]


class TestLeaveAndKick:
    def test_leave(self, trio):
        assert commands.leave_group(trio, member_code("Bob")).success
        assert commands.is_member(trio, member_code("Bob")).data is False

    def test_cannot_leave_after_the_draw(self, frozen_trio):
        assert commands.leave_group(frozen_trio, member_code("Bob")).error_code == "GroupFrozen"

    def test_non_member_cannot_leave(self, trio):
        assert commands.leave_group(trio, "stranger").category == "authorization"

    def test_kick(self, trio):
        assert commands.kick_member(trio, ORGANIZER_CODE, "bob").success
        names = [m["name"] for m in commands.get_members(trio, ORGANIZER_CODE).data]
        assert names == ["Alice", "Carol"]

    def test_kick_after_the_draw_resets_the_group(self, frozen_trio):
        assert commands.kick_member(frozen_trio, ORGANIZER_CODE, "Bob").success
        group = commands.get_group(frozen_trio).data
        assert group["is_frozen"] is False
        assert group["member_count"] == 2
        assert commands.get_my_secret_santa(frozen_trio, member_code("Alice")).data is None

    def test_only_the_organizer_kicks(self, trio):
        assert commands.kick_member(trio, member_code("Alice"), "Bob").category == "authorization"

    def test_kick_unknown_member(self, trio):
        assert commands.kick_member(trio, ORGANIZER_CODE, "Zed").error_code == "NotFound"


class TestMemberQueries:
    def test_strangers_cannot_list_members(self, trio):
        assert commands.get_members(trio, "stranger").category == "authorization"

    def test_get_member_for_stranger(self, trio):
        assert commands.get_member(trio, "stranger").error_code == "NotFound"
