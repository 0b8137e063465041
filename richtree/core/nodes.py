from __future__ import annotations

"""Mutable document tree manipulated by the editing engine.

The model mirrors the small subset of the DOM the engine relies on: text,
element, comment and fragment nodes, each attached node holding a reference
to its parent. A node is owned by exactly one child list at a time; inserting
a node elsewhere moves it, and inserting a :class:`Fragment` moves the
fragment's children.

This module is free of any parsing or I/O; see :mod:`richtree.core.markup`
for conversion to and from markup text.
"""

from typing import Dict, Iterator, List, Optional, Sequence, Union

from richtree.core.exceptions import ContractViolation, StructuralInvariantViolation

__all__ = [
    "ZWS",
    "INLINE_TAGS",
    "LEAF_TAGS",
    "Node",
    "CharacterData",
    "Text",
    "Comment",
    "ParentNode",
    "Element",
    "Fragment",
]

ZWS = "\u200b"

INLINE_TAGS = frozenset({
    "#text",
    "a", "abbr", "acronym",
    "b", "bdi", "bdo", "br",
    "cite", "code",
    "data", "del", "dfn",
    "em",
    "font",
    "hr",
    "i", "iframe", "img", "input", "ins",
    "kbd",
    "q",
    "rp", "rt", "ruby",
    "s", "samp", "small", "span", "strike", "strong", "sub", "sup",
    "time",
    "u",
    "var",
    "wbr",
})

LEAF_TAGS = frozenset({"br", "hr", "iframe", "img", "input"})


class Node:
    """Common navigation API shared by every node kind."""

    node_name = "#node"
    children: Sequence["Node"] = ()

    def __init__(self) -> None:
        self.parent: Optional[ParentNode] = None
        # Memoised NodeCategory, see richtree.core.classifier
        self._category = None

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------
    @property
    def first_child(self) -> Optional["Node"]:
        return self.children[0] if self.children else None

    @property
    def last_child(self) -> Optional["Node"]:
        return self.children[-1] if self.children else None

    @property
    def index(self) -> int:
        """Position of this node in its parent's child list (-1 if detached)."""
        if self.parent is None:
            return -1
        return self.parent.children.index(self)

    @property
    def next_sibling(self) -> Optional["Node"]:
        parent = self.parent
        if parent is None:
            return None
        position = parent.children.index(self) + 1
        return parent.children[position] if position < len(parent.children) else None

    @property
    def previous_sibling(self) -> Optional["Node"]:
        parent = self.parent
        if parent is None:
            return None
        position = parent.children.index(self)
        return parent.children[position - 1] if position else None

    @property
    def length(self) -> int:
        return len(self.children)

    @property
    def text_content(self) -> str:
        return ""

    def ancestors(self) -> Iterator["ParentNode"]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def root_node(self) -> "Node":
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    # ------------------------------------------------------------------
    # Mutation helpers
    # ------------------------------------------------------------------
    def detach(self) -> "Node":
        """Remove the node from its parent (no-op when already detached)."""
        if self.parent is not None:
            self.parent.remove_child(self)
        return self

    def clone(self, deep: bool = False) -> "Node":
        raise NotImplementedError

    def _invalidate(self) -> None:
        """Drop the memoised category of this node and all its ancestors."""
        node: Optional[Node] = self
        while node is not None:
            node._category = None
            node = node.parent

    # Character data and leaves never accept children; ParentNode overrides.
    def append_child(self, node: "Node") -> "Node":
        raise StructuralInvariantViolation(
            f"<{self.node_name}> cannot contain child nodes",
            {"parent": self.node_name, "child": node.node_name},
        )

    def insert_before(self, node: "Node", reference: Optional["Node"]) -> "Node":
        return self.append_child(node)


class CharacterData(Node):
    """Base for nodes that carry a string instead of children."""

    def __init__(self, data: str = "") -> None:
        super().__init__()
        self.data = data

    @property
    def length(self) -> int:
        return len(self.data)

    def append_data(self, data: str) -> None:
        self.data += data

    def delete_data(self, offset: int, count: int) -> None:
        if offset < 0 or offset > len(self.data):
            raise ContractViolation(
                f"Offset {offset} is outside {self.node_name} of length {len(self.data)}",
                {"offset": offset, "length": len(self.data)},
            )
        self.data = self.data[:offset] + self.data[offset + count:]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.data!r})"


class Text(CharacterData):
    """A run of text. Offsets into a text node are character indices."""

    node_name = "#text"

    @property
    def text_content(self) -> str:
        return self.data

    def split_text(self, offset: int) -> "Text":
        """Split at *offset*; the returned node holds the tail and follows self."""
        if offset < 0 or offset > len(self.data):
            raise ContractViolation(
                f"Cannot split text of length {len(self.data)} at {offset}",
                {"offset": offset, "length": len(self.data)},
            )
        after = Text(self.data[offset:])
        self.data = self.data[:offset]
        if self.parent is not None:
            self.parent.insert_before(after, self.next_sibling)
        return after

    def clone(self, deep: bool = False) -> "Text":
        return Text(self.data)


class Comment(CharacterData):
    """Markup comment; carried through parsing, never part of editable content."""

    node_name = "#comment"

    def clone(self, deep: bool = False) -> "Comment":
        return Comment(self.data)


class ParentNode(Node):
    """Node owning an ordered child list."""

    def __init__(self, children: Optional[Sequence[Node]] = None) -> None:
        super().__init__()
        self.children: List[Node] = []
        for child in list(children or ()):
            self.append_child(child)

    @property
    def text_content(self) -> str:
        return "".join(child.text_content for child in self.children)

    def _accepts(self, node: Node) -> None:
        if node is self or any(ancestor is node for ancestor in self.ancestors()):
            raise StructuralInvariantViolation(
                f"Inserting <{node.node_name}> into <{self.node_name}> would create a cycle",
                {"parent": self.node_name, "child": node.node_name},
            )

    def append_child(self, node: Node) -> Node:
        return self.insert_before(node, None)

    def insert_before(self, node: Node, reference: Optional[Node]) -> Node:
        """Insert *node* before *reference* (append when *reference* is None)."""
        if reference is not None and reference.parent is not self:
            raise ContractViolation(
                "Reference node is not a child of the insertion parent",
                {"parent": self.node_name, "reference": reference.node_name},
            )
        if isinstance(node, Fragment):
            for child in list(node.children):
                self.insert_before(child, reference)
            return node
        self._accepts(node)
        if reference is node:
            reference = node.next_sibling
        if node.parent is not None:
            node.parent.remove_child(node)
        position = len(self.children) if reference is None else self.children.index(reference)
        self.children.insert(position, node)
        node.parent = self
        self._invalidate()
        return node

    def remove_child(self, node: Node) -> Node:
        if node.parent is not self:
            raise ContractViolation(
                "Node is not a child of this parent",
                {"parent": self.node_name, "child": node.node_name},
            )
        del self.children[self.children.index(node)]
        node.parent = None
        self._invalidate()
        return node

    def replace_child(self, new_node: Node, old_node: Node) -> Node:
        """Put *new_node* where *old_node* is and return the removed node."""
        if new_node is old_node:
            return old_node
        if old_node.parent is not self:
            raise ContractViolation(
                "Replaced node is not a child of this parent",
                {"parent": self.node_name, "child": old_node.node_name},
            )
        if not isinstance(new_node, Fragment):
            self._accepts(new_node)
            new_node.detach()
        reference = old_node.next_sibling
        self.remove_child(old_node)
        self.insert_before(new_node, reference)
        return old_node

    def empty(self) -> "Fragment":
        """Move every child into a new fragment and return it."""
        fragment = Fragment()
        while self.children:
            fragment.append_child(self.children[0])
        return fragment

    def iter_descendants(self) -> Iterator[Node]:
        """Yield descendants in document order (pre-order, self excluded)."""
        for child in list(self.children):
            yield child
            if isinstance(child, ParentNode):
                yield from child.iter_descendants()

    def normalize(self) -> None:
        """Merge adjacent text nodes and drop empty ones, recursively."""
        index = 0
        while index < len(self.children):
            child = self.children[index]
            if isinstance(child, Text):
                if not child.data:
                    self.remove_child(child)
                    continue
                following = child.next_sibling
                while isinstance(following, Text):
                    child.append_data(following.data)
                    self.remove_child(following)
                    following = child.next_sibling
            elif isinstance(child, ParentNode):
                child.normalize()
            index += 1

    def find_by_id(self, node_id: str) -> Optional["Element"]:
        for node in self.iter_descendants():
            if isinstance(node, Element) and node.attributes.get("id") == node_id:
                return node
        return None

    def _clone_children_into(self, target: "ParentNode") -> None:
        for child in self.children:
            target.append_child(child.clone(deep=True))


class Element(ParentNode):
    """Tagged node with ordered attributes."""

    def __init__(
        self,
        tag: str,
        attributes: Optional[Dict[str, Optional[str]]] = None,
        children: Optional[Sequence[Node]] = None,
    ) -> None:
        self.tag = tag.lower()
        self.attributes: Dict[str, str] = {
            key: str(value) for key, value in (attributes or {}).items() if value is not None
        }
        super().__init__(children)

    @property
    def node_name(self) -> str:  # type: ignore[override]
        return self.tag

    def _accepts(self, node: Node) -> None:
        if self.tag in LEAF_TAGS:
            raise StructuralInvariantViolation(
                f"Leaf element <{self.tag}> cannot contain <{node.node_name}>",
                {"parent": self.tag, "child": node.node_name},
            )
        super()._accepts(node)

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------
    def get_attribute(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.attributes.get(name, default)

    def set_attribute(self, name: str, value: Union[str, int]) -> None:
        self.attributes[name] = str(value)

    def remove_attribute(self, name: str) -> None:
        self.attributes.pop(name, None)

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    @property
    def id(self) -> str:
        return self.attributes.get("id", "")

    @id.setter
    def id(self, value: str) -> None:
        self.attributes["id"] = value

    @property
    def class_name(self) -> str:
        return self.attributes.get("class", "")

    @property
    def style(self) -> str:
        return self.attributes.get("style", "")

    def clone(self, deep: bool = False) -> "Element":
        copy = Element(self.tag, dict(self.attributes))
        if deep:
            self._clone_children_into(copy)
        return copy

    def __repr__(self) -> str:
        return f"Element({self.tag!r}, children={len(self.children)})"


class Fragment(ParentNode):
    """Detached, parentless container used to carry extracted or new content."""

    node_name = "#document-fragment"

    def clone(self, deep: bool = False) -> "Fragment":
        copy = Fragment()
        if deep:
            self._clone_children_into(copy)
        return copy

    def __repr__(self) -> str:
        return f"Fragment(children={len(self.children)})"
