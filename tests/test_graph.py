import pytest

from gift_exchange.graph import GraphIntegrityError, Node, RelationshipGraph, listing_key


def _graph(edges, code_names=None):
    code_names = code_names or {}
    names = {1: "Alice", 2: "Bob", 3: "Carol", 4: "Dave", 5: "Erin"}
    nodes = [Node(i, names[i], code_names.get(i)) for i in edges]
    return RelationshipGraph(nodes, edges)


class TestIntegrity:
    def test_rejects_fixed_point(self):
        with pytest.raises(GraphIntegrityError):
            _graph({1: 1, 2: 3, 3: 2})

    def test_rejects_double_receiver(self):
        with pytest.raises(GraphIntegrityError):
            _graph({1: 2, 2: 1, 3: 1})

    def test_rejects_missing_giver(self):
        nodes = [Node(1, "Alice"), Node(2, "Bob"), Node(3, "Carol")]
        with pytest.raises(GraphIntegrityError):
            RelationshipGraph(nodes, {1: 2, 2: 1})

    def test_empty_graph(self):
        graph = RelationshipGraph.empty()
        assert len(graph) == 0
        assert graph.neighbors_of(1) is None
        assert graph.chain_of(1) == []


class TestTraversal:
    def test_neighbors(self):
        graph = _graph({1: 2, 2: 3, 3: 1})
        neighbors = graph.neighbors_of(2)
        assert neighbors.gives_to.name == "Carol"
        assert neighbors.receives_from.name == "Alice"

    def test_unknown_member_has_no_neighbors(self):
        assert _graph({1: 2, 2: 1}).neighbors_of(99) is None

    def test_chain_closes_and_starts_at_member(self):
        graph = _graph({1: 3, 3: 2, 2: 1})
        assert [n.name for n in graph.chain_of(3)] == ["Carol", "Bob", "Alice"]

    def test_disjoint_cycles(self):
        graph = _graph({1: 2, 2: 1, 3: 4, 4: 5, 5: 3})
        assert [n.name for n in graph.chain_of(1)] == ["Alice", "Bob"]
        assert len(graph.chain_of(4)) == 3
        assert [len(c) for c in graph.chains()] == [2, 3]

    def test_two_cycle_neighbors_are_the_same_person(self):
        neighbors = _graph({1: 2, 2: 1}).neighbors_of(1)
        assert neighbors.gives_to == neighbors.receives_from


class TestOrdering:
    def test_code_names_win_over_real_names(self):
        graph = _graph({1: 2, 2: 3, 3: 1}, code_names={1: "Zebra", 2: "apple"})
        assert [n.display_name for n in graph.nodes] == ["apple", "Carol", "Zebra"]

    def test_relationships_follow_listing_order(self):
        graph = _graph({1: 2, 2: 3, 3: 1})
        pairs = [(g.name, r.name) for g, r in graph.relationships()]
        assert pairs == [("Alice", "Bob"), ("Bob", "Carol"), ("Carol", "Alice")]

    def test_listing_key_is_case_insensitive(self):
        assert sorted(["bob", "Alice", "carol"], key=listing_key) == ["Alice", "bob", "carol"]
