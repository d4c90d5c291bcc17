import random
import threading
from collections import Counter

import pytest

from conftest import ORGANIZER_CODE, member_code
from gift_exchange import commands
from gift_exchange.extensions import db
from gift_exchange.models import Assignment
from gift_exchange.services.assignments import generate_derangement


class TestDerangement:
    def test_no_fixed_points(self):
        rng = random.Random(7)
        ids = list(range(1, 21))
        for _ in range(200):
            pairs = generate_derangement(ids, rng)
            assert sorted(pairs) == ids
            assert sorted(pairs.values()) == ids
            assert all(g != r for g, r in pairs.items())

    def test_two_ids_swap(self):
        assert generate_derangement([5, 9]) == {5: 9, 9: 5}

    def test_three_ids_give_only_the_two_cycles(self):
        rng = random.Random(42)
        seen = Counter(tuple(sorted(generate_derangement([1, 2, 3], rng).items())) for _ in range(600))
        assert set(seen) == {((1, 2), (2, 3), (3, 1)), ((1, 3), (2, 1), (3, 2))}
        # both 3-cycles are drawn, roughly evenly
        assert min(seen.values()) > 200

    def test_rejects_tiny_or_repeated_input(self):
        with pytest.raises(ValueError):
            generate_derangement([1])
        with pytest.raises(ValueError):
            generate_derangement([1, 1, 2])


class TestAssignSanta:
    def test_assign_freezes_and_everyone_has_a_giftee(self, frozen_trio):
        group = commands.get_group(frozen_trio).data
        assert group["is_frozen"] is True

        receivers = set()
        for name in ("Alice", "Bob", "Carol"):
            giftee = commands.get_my_secret_santa(frozen_trio, member_code(name)).data
            assert giftee["name"] != name
            receivers.add(giftee["name"])
        assert receivers == {"Alice", "Bob", "Carol"}

    def test_receivers_are_encrypted_at_rest(self, frozen_trio):
        rows = db.session.query(Assignment).filter_by(group_id=frozen_trio).all()
        assert len(rows) == 3
        assert all(not r.receiver_ciphertext.isdigit() for r in rows)

    def test_two_members_are_not_enough(self, make_group, join):
        group_id = make_group()
        join(group_id, "Alice")
        join(group_id, "Bob")
        result = commands.assign_santa(group_id, ORGANIZER_CODE)
        assert result.error_code == "NotEnoughMembers"
        assert commands.get_group(group_id).data["is_frozen"] is False

    def test_only_the_organizer_assigns(self, trio):
        result = commands.assign_santa(trio, member_code("Alice"))
        assert result.category == "authorization"

    def test_second_assign_is_refused(self, frozen_trio):
        result = commands.assign_santa(frozen_trio, ORGANIZER_CODE)
        assert result.error_code == "AlreadyFrozen"

    def test_concurrent_assign_succeeds_exactly_once(self, app, trio):
        results = []
        start = threading.Barrier(4)

        def worker():
            with app.app_context():
                start.wait()
                results.append(commands.assign_santa(trio, ORGANIZER_CODE))
                db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(r.success for r in results) == 1
        assert sorted(r.error_code for r in results if not r.success) == ["AlreadyFrozen"] * 3
        db.session.expire_all()
        assert db.session.query(Assignment).filter_by(group_id=trio).count() == 3

    def test_before_assign_nobody_has_a_giftee(self, trio):
        assert commands.get_my_secret_santa(trio, member_code("Alice")).data is None
        assert commands.get_chain(trio, member_code("Alice")).data == []


class TestReset:
    def test_unlock_then_reassign(self, frozen_trio, rng):
        assert commands.unlock_group(frozen_trio, ORGANIZER_CODE).success
        group = commands.get_group(frozen_trio).data
        assert group["is_frozen"] is False
        assert db.session.query(Assignment).filter_by(group_id=frozen_trio).count() == 0
        assert commands.get_chain(frozen_trio, member_code("Alice")).data == []

        assert commands.assign_santa(frozen_trio, ORGANIZER_CODE, rng).success
        giftees = {commands.get_my_secret_santa(frozen_trio, member_code(n)).data["name"] for n in ("Alice", "Bob", "Carol")}
        assert giftees == {"Alice", "Bob", "Carol"}
        assert len(commands.get_chain(frozen_trio, member_code("Bob")).data) == 3

    def test_unlock_unfrozen_group(self, trio):
        assert commands.unlock_group(trio, ORGANIZER_CODE).error_code == "NotFrozen"


class TestRelationships:
    def test_organizer_sees_every_pair(self, frozen_trio):
        pairs = commands.get_all_secret_santa_relationships(frozen_trio, ORGANIZER_CODE).data
        assert [p["santa_name"] for p in pairs] == ["Alice", "Bob", "Carol"]
        assert {p["receiver_name"] for p in pairs} == {"Alice", "Bob", "Carol"}

    def test_members_cannot_see_every_pair(self, frozen_trio):
        result = commands.get_all_secret_santa_relationships(frozen_trio, member_code("Alice"))
        assert result.category == "authorization"

    def test_chain_is_the_whole_trio(self, frozen_trio):
        chain = commands.get_chain(frozen_trio, member_code("Alice")).data
        assert chain[0]["name"] == "Alice"
        assert sorted(n["name"] for n in chain) == ["Alice", "Bob", "Carol"]

    def test_organizer_can_ask_for_any_chain(self, frozen_trio):
        chain = commands.get_chain(frozen_trio, ORGANIZER_CODE, "bob").data
        assert chain[0]["name"] == "Bob"
        assert commands.get_chain(frozen_trio, member_code("Alice"), "Bob").category == "authorization"
