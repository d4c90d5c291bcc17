"""
Giver -> receiver graph of one frozen group.

A derangement is a bijection without fixed points, so every node has exactly
one outgoing and one incoming edge and the graph splits into disjoint simple
cycles of length >= 2. Traversals walk the successor map and stop after at
most N steps.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, NamedTuple


class GraphIntegrityError(ValueError):
    pass


def listing_key(name: str, code_name: str | None = None) -> tuple[str, str, str]:
    """Sort by code name when present, else real name."""
    shown = code_name or name
    return (shown.lower(), shown, name)


@dataclass(frozen=True)
class Node:
    member_id: int
    name: str
    code_name: str | None = None

    @property
    def display_name(self) -> str:
        return self.code_name or self.name

    @property
    def sort_key(self) -> tuple[str, str, str]:
        return listing_key(self.name, self.code_name)

    def to_dict(self) -> dict:
        return {"name": self.name, "code_name": self.code_name}


class Neighbors(NamedTuple):
    gives_to: Node
    receives_from: Node


class RelationshipGraph:
    def __init__(self, nodes: Iterable[Node], edges: Mapping[int, int]) -> None:
        self._nodes = {n.member_id: n for n in nodes}
        self._succ = dict(edges)

        ids = set(self._nodes)
        if set(self._succ) != ids:
            raise GraphIntegrityError("every member must give exactly once")
        if set(self._succ.values()) != ids or len(set(self._succ.values())) != len(self._succ):
            raise GraphIntegrityError("every member must receive exactly once")
        if any(giver == receiver for giver, receiver in self._succ.items()):
            raise GraphIntegrityError("a member cannot give to themself")

        self._pred = {receiver: giver for giver, receiver in self._succ.items()}

    @classmethod
    def empty(cls) -> "RelationshipGraph":
        return cls([], {})

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, member_id: int) -> bool:
        return member_id in self._nodes

    @property
    def nodes(self) -> list[Node]:
        return sorted(self._nodes.values(), key=lambda n: n.sort_key)

    def neighbors_of(self, member_id: int) -> Neighbors | None:
        if member_id not in self._nodes:
            return None
        return Neighbors(
            gives_to=self._nodes[self._succ[member_id]],
            receives_from=self._nodes[self._pred[member_id]],
        )

    def chain_of(self, member_id: int) -> list[Node]:
        """The cycle through member_id in giving order, starting at member_id."""
        if member_id not in self._nodes:
            return []
        chain = [self._nodes[member_id]]
        current = self._succ[member_id]
        for _ in range(len(self._nodes)):
            if current == member_id:
                return chain
            chain.append(self._nodes[current])
            current = self._succ[current]
        raise GraphIntegrityError("chain did not close")

    def chains(self) -> list[list[Node]]:
        """All cycles, each rotated to start at its first node in listing order."""
        seen: set[int] = set()
        cycles = []
        for node in self.nodes:
            if node.member_id in seen:
                continue
            cycle = self.chain_of(node.member_id)
            seen.update(n.member_id for n in cycle)
            cycles.append(cycle)
        return cycles

    def relationships(self) -> list[tuple[Node, Node]]:
        return [(n, self._nodes[self._succ[n.member_id]]) for n in self.nodes]
