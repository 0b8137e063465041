from __future__ import annotations

"""Boundary-point ranges over the node tree.

A boundary point is a ``(container, offset)`` pair: the offset counts
characters inside a :class:`~richtree.core.nodes.Text` and children inside
any other node. Comparison follows DOM tree order.
"""

from typing import List, Optional, Tuple

from richtree.core.exceptions import ContractViolation
from richtree.core.nodes import Node

__all__ = [
    "START_TO_START",
    "START_TO_END",
    "END_TO_END",
    "END_TO_START",
    "compare_tree_order",
    "compare_points",
    "Range",
]

START_TO_START = 0
START_TO_END = 1
END_TO_END = 2
END_TO_START = 3


def _chain(node: Node) -> List[Node]:
    """Return ``[root, ..., node]``."""
    chain = [node]
    chain.extend(node.ancestors())
    chain.reverse()
    return chain


def compare_tree_order(node: Node, other: Node) -> int:
    """Return -1, 0 or 1 as *node* precedes, is, or follows *other*.

    An ancestor precedes its descendants.

    Raises
    ------
    ContractViolation
        If the nodes do not share a root.
    """
    if node is other:
        return 0
    chain = _chain(node)
    other_chain = _chain(other)
    if chain[0] is not other_chain[0]:
        raise ContractViolation(
            "Cannot order nodes that belong to different trees",
            {"node": node.node_name, "other": other.node_name},
        )
    depth = 0
    limit = min(len(chain), len(other_chain))
    while depth < limit and chain[depth] is other_chain[depth]:
        depth += 1
    if depth == len(chain):
        return -1
    if depth == len(other_chain):
        return 1
    return -1 if chain[depth].index < other_chain[depth].index else 1


def _child_towards(ancestor: Node, node: Node) -> Node:
    child = node
    while child.parent is not ancestor:
        child = child.parent  # type: ignore[assignment]
    return child


def compare_points(node: Node, offset: int, other: Node, other_offset: int) -> int:
    """Compare two boundary points; -1 when the first comes before the second."""
    if node is other:
        if offset == other_offset:
            return 0
        return -1 if offset < other_offset else 1

    order = compare_tree_order(node, other)
    if order < 0 and any(ancestor is node for ancestor in other.ancestors()):
        # node contains other
        child = _child_towards(node, other)
        return 1 if child.index < offset else -1
    if order > 0 and any(ancestor is other for ancestor in node.ancestors()):
        child = _child_towards(other, node)
        return -1 if child.index < other_offset else 1
    return order


class Range:
    """Mutable pair of boundary points.

    Setting one boundary beyond the other (or into another tree) collapses
    the range onto the new boundary. Offsets outside ``0..length`` of their
    container raise :class:`ContractViolation`.
    """

    def __init__(
        self,
        start_container: Node,
        start_offset: int = 0,
        end_container: Optional[Node] = None,
        end_offset: Optional[int] = None,
    ) -> None:
        self._check(start_container, start_offset)
        self.start_container = start_container
        self.start_offset = start_offset
        self.end_container = start_container
        self.end_offset = start_offset
        if end_container is not None:
            self.set_end(end_container, start_offset if end_offset is None else end_offset)

    @staticmethod
    def _check(node: Node, offset: int) -> None:
        if offset < 0 or offset > node.length:
            raise ContractViolation(
                f"Offset {offset} is outside <{node.node_name}> of length {node.length}",
                {"node": node.node_name, "offset": offset, "length": node.length},
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def collapsed(self) -> bool:
        return (
            self.start_container is self.end_container
            and self.start_offset == self.end_offset
        )

    @property
    def common_ancestor(self) -> Node:
        start_chain = {id(node) for node in _chain(self.start_container)}
        node = self.end_container
        while id(node) not in start_chain:
            if node.parent is None:
                return node
            node = node.parent
        return node

    def boundaries(self) -> Tuple[Node, int, Node, int]:
        return self.start_container, self.start_offset, self.end_container, self.end_offset

    def compare_boundary_points(self, how: int, source: "Range") -> int:
        """Compare one boundary of this range with one of *source*.

        ``how`` is one of ``START_TO_START`` (start vs start), ``START_TO_END``
        (this end vs source start), ``END_TO_END`` (end vs end) and
        ``END_TO_START`` (this start vs source end).
        """
        if how == START_TO_START:
            return compare_points(self.start_container, self.start_offset,
                                  source.start_container, source.start_offset)
        if how == START_TO_END:
            return compare_points(self.end_container, self.end_offset,
                                  source.start_container, source.start_offset)
        if how == END_TO_END:
            return compare_points(self.end_container, self.end_offset,
                                  source.end_container, source.end_offset)
        if how == END_TO_START:
            return compare_points(self.start_container, self.start_offset,
                                  source.end_container, source.end_offset)
        raise ContractViolation(f"Unknown comparison mode {how!r}", {"how": how})

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def set_start(self, node: Node, offset: int) -> None:
        self._check(node, offset)
        self.start_container = node
        self.start_offset = offset
        if (
            node.root_node() is not self.end_container.root_node()
            or compare_points(node, offset, self.end_container, self.end_offset) > 0
        ):
            self.end_container = node
            self.end_offset = offset

    def set_end(self, node: Node, offset: int) -> None:
        self._check(node, offset)
        self.end_container = node
        self.end_offset = offset
        if (
            node.root_node() is not self.start_container.root_node()
            or compare_points(node, offset, self.start_container, self.start_offset) < 0
        ):
            self.start_container = node
            self.start_offset = offset

    @staticmethod
    def _position(node: Node) -> Tuple[Node, int]:
        parent = node.parent
        if parent is None:
            raise ContractViolation(
                f"<{node.node_name}> has no parent to position a boundary in",
                {"node": node.node_name},
            )
        return parent, parent.children.index(node)

    def set_start_before(self, node: Node) -> None:
        parent, index = self._position(node)
        self.set_start(parent, index)

    def set_start_after(self, node: Node) -> None:
        parent, index = self._position(node)
        self.set_start(parent, index + 1)

    def set_end_before(self, node: Node) -> None:
        parent, index = self._position(node)
        self.set_end(parent, index)

    def set_end_after(self, node: Node) -> None:
        parent, index = self._position(node)
        self.set_end(parent, index + 1)

    def select_node(self, node: Node) -> None:
        parent, index = self._position(node)
        self.set_start(parent, index)
        self.set_end(parent, index + 1)

    def select_node_contents(self, node: Node) -> None:
        self.set_start(node, 0)
        self.set_end(node, node.length)

    def collapse(self, to_start: bool = False) -> None:
        if to_start:
            self.end_container = self.start_container
            self.end_offset = self.start_offset
        else:
            self.start_container = self.end_container
            self.start_offset = self.end_offset

    def clone(self) -> "Range":
        copy = Range(self.start_container, self.start_offset)
        copy.end_container = self.end_container
        copy.end_offset = self.end_offset
        return copy

    def __repr__(self) -> str:
        return (
            f"Range({self.start_container!r}, {self.start_offset}, "
            f"{self.end_container!r}, {self.end_offset})"
        )
