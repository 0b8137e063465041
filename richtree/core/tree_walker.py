from __future__ import annotations

"""Filtered, restartable document-order traversal.

:class:`TreeWalker` advances one step per call and never materialises the
whole sequence; assigning :attr:`TreeWalker.current_node` restarts it from
any node. Traversal is confined to the subtree of ``root``.
"""

from typing import Callable, Iterator, Optional

from richtree.core.classifier import is_block
from richtree.core.nodes import Comment, Element, Fragment, Node, Text

__all__ = [
    "SHOW_ELEMENT",
    "SHOW_TEXT",
    "SHOW_COMMENT",
    "SHOW_FRAGMENT",
    "SHOW_ALL",
    "TreeWalker",
    "get_block_walker",
    "get_previous_block",
    "get_next_block",
    "is_empty_block",
]

SHOW_ELEMENT = 0x1
SHOW_TEXT = 0x4
SHOW_COMMENT = 0x80
SHOW_FRAGMENT = 0x400
SHOW_ALL = SHOW_ELEMENT | SHOW_TEXT | SHOW_COMMENT | SHOW_FRAGMENT

NodeFilter = Callable[[Node], bool]


def _type_bit(node: Node) -> int:
    if isinstance(node, Text):
        return SHOW_TEXT
    if isinstance(node, Element):
        return SHOW_ELEMENT
    if isinstance(node, Comment):
        return SHOW_COMMENT
    if isinstance(node, Fragment):
        return SHOW_FRAGMENT
    return 0


def _accept_all(node: Node) -> bool:
    return True


class TreeWalker:
    """Walk nodes matching a type mask and a predicate.

    Parameters
    ----------
    root : Node or None
        Traversal boundary. ``None`` lets the walk climb to the top of the
        tree the current node belongs to.
    what_to_show : int
        Bitwise OR of the ``SHOW_*`` constants.
    node_filter : callable, optional
        Extra predicate; nodes for which it returns False are skipped (their
        descendants are still visited).
    """

    def __init__(
        self,
        root: Optional[Node],
        what_to_show: int = SHOW_ALL,
        node_filter: Optional[NodeFilter] = None,
    ) -> None:
        self.root = root
        self.current_node: Optional[Node] = root
        self.what_to_show = what_to_show
        self.node_filter: NodeFilter = node_filter or _accept_all

    def _accepts(self, node: Node) -> bool:
        return bool(_type_bit(node) & self.what_to_show) and self.node_filter(node)

    def next_node(self) -> Optional[Node]:
        """Advance to the next matching node in document order."""
        current = self.current_node
        root = self.root
        while True:
            node = current.first_child
            while node is None and current is not None:
                if current is root:
                    break
                node = current.next_sibling
                if node is None:
                    current = current.parent
            if node is None:
                return None
            if self._accepts(node):
                self.current_node = node
                return node
            current = node

    def previous_node(self) -> Optional[Node]:
        """Step back to the previous matching node in document order."""
        current = self.current_node
        root = self.root
        while True:
            if current is root:
                return None
            node = current.previous_sibling
            if node is not None:
                while node.last_child is not None:
                    node = node.last_child
            else:
                node = current.parent
            if node is None:
                return None
            if self._accepts(node):
                self.current_node = node
                return node
            current = node

    def previous_post_order_node(self) -> Optional[Node]:
        """Step back to the previous matching node in post-order."""
        current = self.current_node
        root = self.root
        while True:
            node = current.last_child
            while node is None and current is not None:
                if current is root:
                    break
                node = current.previous_sibling
                if node is None:
                    current = current.parent
            if node is None:
                return None
            if self._accepts(node):
                self.current_node = node
                return node
            current = node

    def __iter__(self) -> Iterator[Node]:
        node = self.next_node()
        while node is not None:
            yield node
            node = self.next_node()


def get_block_walker(node: Node, root: Optional[Node]) -> TreeWalker:
    walker = TreeWalker(root, SHOW_ELEMENT, is_block)
    walker.current_node = node
    return walker


def get_previous_block(node: Node, root: Optional[Node]) -> Optional[Node]:
    block = get_block_walker(node, root).previous_node()
    return block if block is not root else None


def get_next_block(node: Node, root: Optional[Node]) -> Optional[Node]:
    block = get_block_walker(node, root).next_node()
    return block if block is not root else None


def is_empty_block(block: Node) -> bool:
    """True when *block* has no text and no image."""
    if block.text_content:
        return False
    if isinstance(block, Element):
        return not any(
            isinstance(node, Element) and node.tag == "img"
            for node in block.iter_descendants()
        )
    return True
