from __future__ import annotations

"""Node categorisation and structural predicates.

A node's :class:`NodeCategory` is a pure function of its subtree shape:

- text is always ``INLINE``;
- an element or fragment holding any non-inline child is a ``CONTAINER``
  (this tolerates block content nested in inline tags);
- otherwise it is ``INLINE`` when its tag is an inline tag, else ``BLOCK``;
- comments (and anything else) are ``UNKNOWN``.

The result is memoised on the node and dropped by the tree whenever a child
list below it changes.
"""

import re
from enum import IntEnum
from typing import Dict, List, Optional

from richtree.core.nodes import (
    INLINE_TAGS,
    LEAF_TAGS,
    Element,
    Node,
    ParentNode,
    Text,
)

__all__ = [
    "NodeCategory",
    "COLOR_CLASS",
    "BACKGROUND_COLOR_CLASS",
    "FONT_FAMILY_CLASS",
    "FONT_SIZE_CLASS",
    "classify",
    "is_inline",
    "is_block",
    "is_container",
    "is_leaf",
    "are_alike",
    "has_tag_attributes",
    "get_nearest",
    "is_or_contains",
    "parse_style",
    "get_path",
]

COLOR_CLASS = "color"
BACKGROUND_COLOR_CLASS = "background-color"
FONT_FAMILY_CLASS = "font-family"
FONT_SIZE_CLASS = "font-size"

_WS_RUN = re.compile(r"\s+")


class NodeCategory(IntEnum):
    UNKNOWN = 0
    INLINE = 1
    BLOCK = 2
    CONTAINER = 3


def classify(node: Node) -> NodeCategory:
    """Return the category of *node*, computing and caching it if needed."""
    if isinstance(node, Text):
        return NodeCategory.INLINE
    if not isinstance(node, ParentNode):
        return NodeCategory.UNKNOWN
    cached = node._category
    if cached is not None:
        return cached

    if not all(is_inline(child) for child in node.children):
        category = NodeCategory.CONTAINER
    elif node.node_name in INLINE_TAGS:
        category = NodeCategory.INLINE
    else:
        category = NodeCategory.BLOCK
    node._category = category
    return category


def is_inline(node: Optional[Node]) -> bool:
    return node is not None and classify(node) is NodeCategory.INLINE


def is_block(node: Optional[Node]) -> bool:
    return node is not None and classify(node) is NodeCategory.BLOCK


def is_container(node: Optional[Node]) -> bool:
    return node is not None and classify(node) is NodeCategory.CONTAINER


def is_leaf(node: Optional[Node]) -> bool:
    return isinstance(node, Element) and node.tag in LEAF_TAGS


def _normalised_style(node: Node) -> str:
    if not isinstance(node, Element):
        return ""
    declarations = []
    for name, value in parse_style(node.style).items():
        declarations.append(f"{name}: {value}")
    return "; ".join(declarations)


def are_alike(node: Node, other: Optional[Node]) -> bool:
    """Return True when *node* and *other* may be fused into one node.

    Two nodes are alike when they have the same kind and tag, are neither
    anchors nor leaves, and carry the same class and inline style.
    """
    if other is None or is_leaf(node):
        return False
    if type(node) is not type(other) or node.node_name != other.node_name:
        return False
    if node.node_name == "a":
        return False
    if isinstance(node, Element) and isinstance(other, Element):
        return (
            node.class_name == other.class_name
            and _normalised_style(node) == _normalised_style(other)
        )
    return True


def has_tag_attributes(
    node: Node, tag: str, attributes: Optional[Dict[str, str]] = None
) -> bool:
    if not isinstance(node, Element) or node.tag != tag:
        return False
    for name, value in (attributes or {}).items():
        if node.get_attribute(name) != value:
            return False
    return True


def get_nearest(
    node: Optional[Node],
    root: Optional[Node],
    tag: str,
    attributes: Optional[Dict[str, str]] = None,
) -> Optional[Element]:
    """Return the closest ancestor-or-self of *node* below *root* matching *tag*."""
    while node is not None and node is not root:
        if has_tag_attributes(node, tag, attributes):
            return node  # type: ignore[return-value]
        node = node.parent
    return None


def is_or_contains(parent: Node, node: Optional[Node]) -> bool:
    while node is not None:
        if node is parent:
            return True
        node = node.parent
    return False


def parse_style(style: str) -> Dict[str, str]:
    """Split an inline ``style`` attribute into ``{property: value}``.

    Property names are lower-cased and whitespace inside values collapsed,
    so that equivalent declarations compare equal.
    """
    declarations: Dict[str, str] = {}
    for declaration in style.split(";"):
        name, sep, value = declaration.partition(":")
        if not sep:
            continue
        name = name.strip().lower()
        value = _WS_RUN.sub(" ", value.strip())
        if name and value:
            declarations[name] = value
    return declarations


def get_path(node: Optional[Node], root: Node) -> str:
    """Describe the ancestor chain of *node* below *root*.

    Each element contributes ``TAG#id.class[dir=..]``, plus the colour/font
    value for nodes carrying one of the formatting classes; elements are joined
    with ``>``. Text nodes contribute nothing.

    Examples
    --------
    >>> get_path(bold_text, root)
    'DIV>B'
    """
    segments: List[str] = []
    while node is not None and node is not root:
        if isinstance(node, Element):
            segments.append(_path_segment(node))
        node = node.parent
    return ">".join(reversed(segments))


def _path_segment(node: Element) -> str:
    segment = node.tag.upper()
    if node.id:
        segment += "#" + node.id
    class_names: List[str] = []
    if node.class_name.strip():
        class_names = sorted(node.class_name.split())
        segment += "." + ".".join(class_names)
    direction = node.get_attribute("dir")
    if direction:
        segment += f"[dir={direction}]"
    if class_names:
        style = parse_style(node.style)
        if BACKGROUND_COLOR_CLASS in class_names:
            segment += "[backgroundColor=%s]" % style.get("background-color", "").replace(" ", "")
        if COLOR_CLASS in class_names:
            segment += "[color=%s]" % style.get("color", "").replace(" ", "")
        if FONT_FAMILY_CLASS in class_names:
            segment += "[fontFamily=%s]" % style.get("font-family", "").replace(" ", "")
        if FONT_SIZE_CLASS in class_names:
            segment += "[fontSize=%s]" % style.get("font-size", "")
    return segment
