from datetime import datetime, timedelta

from conftest import ORGANIZER_CODE, member_code
from gift_exchange import commands
from gift_exchange.extensions import db
from gift_exchange.models import Group, Member, utcnow
from gift_exchange.services.groups import purge_expired_groups


class TestCreateGroup:
    def test_defaults(self, make_group):
        group = commands.get_group(make_group(capacity=5)).data
        assert group["capacity"] == 5
        assert group["member_count"] == 0
        assert group["is_open"] is True
        assert group["is_frozen"] is False
        assert group["has_password"] is False
        assert group["creator_name"] == "Olive"

    def test_capacity_limits(self, app):
        for capacity in (1, 101):
            result = commands.create_group(
                name="Team", capacity=capacity, creator_name="Olive", creator_code=ORGANIZER_CODE
            )
            assert result.category == "validation"

    def test_blank_name(self, app):
        result = commands.create_group(name="   ", capacity=4, creator_name="Olive", creator_code=ORGANIZER_CODE)
        assert result.error_code == "ValidationFailed"

    def test_expiry_must_be_within_a_year(self, app):
        for expiry in (utcnow() - timedelta(minutes=1), utcnow() + timedelta(days=400)):
            result = commands.create_group(
                name="Team", capacity=4, creator_name="Olive", creator_code=ORGANIZER_CODE, expiry=expiry
            )
            assert result.category == "validation"

    def test_auto_join_makes_the_organizer_a_member(self, make_group):
        group_id = make_group(auto_join=True)
        assert commands.is_member(group_id, ORGANIZER_CODE).data is True
        assert commands.is_creator(group_id, ORGANIZER_CODE).data is True

    def test_custom_pool_must_cover_capacity(self, app):
        result = commands.create_group(
            name="Team", capacity=3, creator_name="Olive", creator_code=ORGANIZER_CODE,
            use_custom_code_names=True, custom_code_names=["Elf", "Star"],
        )
        assert result.category == "validation"

    def test_custom_pool_rejects_duplicates(self, app):
        result = commands.create_group(
            name="Team", capacity=2, creator_name="Olive", creator_code=ORGANIZER_CODE,
            use_custom_code_names=True, custom_code_names=["Elf", "elf", "Star"],
        )
        assert "unique" in result.error


class TestUpdateGroup:
    def test_update_settings(self, make_group):
        group_id = make_group(capacity=4)
        result = commands.update_group(
            group_id, ORGANIZER_CODE, capacity=6, description="Budget 20", password="hunter2", is_open=False
        )
        assert result.success
        group = commands.get_group(group_id).data
        assert group["capacity"] == 6
        assert group["description"] == "Budget 20"
        assert group["has_password"] is True
        assert group["is_open"] is False

    def test_password_is_kept_unless_sent(self, make_group):
        group_id = make_group(password="sleigh")
        assert commands.update_group(group_id, ORGANIZER_CODE, capacity=12, description="new budget").success
        assert commands.get_group(group_id).data["has_password"] is True
        assert commands.join_group(group_id, "c1", "Alice", password="sleigh").success

    def test_empty_password_removes_it(self, make_group):
        group_id = make_group(password="sleigh")
        assert commands.update_group(group_id, ORGANIZER_CODE, capacity=12, password="").success
        assert commands.get_group(group_id).data["has_password"] is False

    def test_new_password_replaces_the_old_one(self, make_group):
        group_id = make_group(password="sleigh")
        assert commands.update_group(group_id, ORGANIZER_CODE, capacity=12, password="reindeer").success
        assert commands.join_group(group_id, "c1", "Alice", password="sleigh").error_code == "InvalidPassword"
        assert commands.join_group(group_id, "c1", "Alice", password="reindeer").success

    def test_capacity_cannot_drop_below_members(self, trio):
        result = commands.update_group(trio, ORGANIZER_CODE, capacity=2)
        assert result.category == "validation"

    def test_raising_capacity_needs_more_custom_names(self, make_group):
        group_id = make_group(capacity=2, use_custom_code_names=True, custom_code_names=["Elf", "Star"])
        assert commands.update_group(group_id, ORGANIZER_CODE, capacity=3).category == "validation"
        assert commands.update_group(
            group_id, ORGANIZER_CODE, capacity=3, new_custom_code_names=["Comet"]
        ).success
        names = commands.get_custom_code_names(group_id, ORGANIZER_CODE).data
        assert names == ["Elf", "Star", "Comet"]

    def test_frozen_group_cannot_be_edited(self, frozen_trio):
        assert commands.update_group(frozen_trio, ORGANIZER_CODE, capacity=8).error_code == "GroupFrozen"
        assert commands.toggle_group_open(frozen_trio, ORGANIZER_CODE).error_code == "GroupFrozen"

    def test_only_the_organizer_edits(self, trio):
        result = commands.update_group(trio, member_code("Alice"), capacity=8)
        assert result.category == "authorization"

    def test_toggle_open(self, make_group):
        group_id = make_group()
        assert commands.toggle_group_open(group_id, ORGANIZER_CODE).data == {"is_open": False}
        assert commands.toggle_group_open(group_id, ORGANIZER_CODE).data == {"is_open": True}


class TestDeleteAndListing:
    def test_delete_needs_an_empty_group(self, trio):
        assert commands.delete_group(trio, ORGANIZER_CODE).error_code == "GroupNotEmpty"

    def test_delete_empty_group(self, make_group):
        group_id = make_group()
        assert commands.delete_group(group_id, ORGANIZER_CODE).success
        assert commands.get_group(group_id).category == "not_found"

    def test_unknown_group(self, app):
        assert commands.get_group("does-not-exist").error_code == "NotFound"

    def test_my_groups(self, make_group, join):
        mine = make_group(name="Family")
        other = commands.create_group(name="Book Club", capacity=5, creator_name="Zed", creator_code="zed").data
        join(other, "Alice")
        join(mine, "Alice")

        rows = commands.get_my_groups(member_code("Alice")).data
        assert [r["name"] for r in rows] == ["Book Club", "Family"]
        assert all(r["is_member"] and not r["is_creator"] for r in rows)

        organized = commands.get_my_groups(ORGANIZER_CODE).data
        assert [(r["name"], r["is_creator"], r["is_member"]) for r in organized] == [("Family", True, False)]

    def test_details_include_custom_names(self, make_group):
        group_id = make_group(capacity=2, use_custom_code_names=True, custom_code_names=["Elf", "Star"])
        details = commands.get_group_details(group_id, ORGANIZER_CODE).data
        assert details["custom_code_names"] == ["Elf", "Star"]
        assert commands.get_group_details(group_id, "someone").category == "authorization"


class TestPurge:
    def test_purges_expired_groups_with_their_members(self, make_group, join):
        keep = make_group(name="Keep")
        gone = make_group(name="Gone", expiry=utcnow() + timedelta(days=1))
        join(gone, "Alice")

        db.session.get(Group, gone).expires_at = datetime(2000, 1, 1)
        db.session.commit()

        assert purge_expired_groups() == 1
        assert db.session.get(Group, gone) is None
        assert db.session.get(Group, keep) is not None
        assert db.session.query(Member).filter_by(group_id=gone).count() == 0
