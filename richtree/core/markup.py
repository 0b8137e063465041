from __future__ import annotations

"""Conversion between markup text and the node tree.

Parsing goes through ``lxml.html`` so that the usual HTML leniency applies
(unclosed tags, void elements, entities). The lxml tree is then copied into
:mod:`richtree.core.nodes` objects: ``text``/``tail`` strings become
:class:`~richtree.core.nodes.Text` nodes and lxml comments become
:class:`~richtree.core.nodes.Comment` nodes. Processing instructions are
dropped.

Serialisation runs the other way and relies on lxml's ``html`` output method,
which knows the void elements (``br``, ``img``...) and escapes text and
attribute values.
"""

import logging
from typing import List, Optional

import lxml.html
from lxml import etree as ET  # type: ignore

from richtree.core.nodes import (
    LEAF_TAGS,
    Comment,
    Element,
    Fragment,
    Node,
    ParentNode,
    Text,
)

__all__ = ["parse_fragment", "serialize", "serialize_node"]

logger = logging.getLogger(__name__)

_WRAPPER = "div"


def parse_fragment(markup: str) -> Fragment:
    """Parse *markup* into a detached :class:`Fragment`.

    Empty or whitespace-only markup yields an empty fragment.
    """
    fragment = Fragment()
    if not markup or not markup.strip():
        return fragment
    wrapper = lxml.html.fragment_fromstring(markup, create_parent=_WRAPPER)
    _copy_lxml_children(wrapper, fragment)
    return fragment


def _copy_lxml_children(source, target: ParentNode) -> None:
    if source.text:
        target.append_child(Text(source.text))
    for child in source:
        node = _from_lxml(child)
        if node is not None:
            target.append_child(node)
        if child.tail:
            target.append_child(Text(child.tail))


def _from_lxml(source) -> Optional[Node]:
    if source.tag is ET.Comment:
        return Comment(source.text or "")
    if not isinstance(source.tag, str):
        # processing instructions, entities
        return None
    element = Element(source.tag, dict(source.attrib))
    if element.tag not in LEAF_TAGS:
        _copy_lxml_children(source, element)
    return element


def serialize(node: Node) -> str:
    """Return the markup of the children of *node* (its inner markup).

    This is the snapshot format used by the undo history.
    """
    wrapper = ET.Element(_WRAPPER)
    for child in node.children:
        _append_lxml(wrapper, child)
    return _strip_wrapper(wrapper)


def serialize_node(node: Node) -> str:
    """Return the markup for *node* itself (its outer markup)."""
    wrapper = ET.Element(_WRAPPER)
    _append_lxml(wrapper, node)
    return _strip_wrapper(wrapper)


def _strip_wrapper(wrapper) -> str:
    markup = ET.tostring(wrapper, method="html", encoding="unicode")
    opening = f"<{_WRAPPER}>"
    closing = f"</{_WRAPPER}>"
    if markup.startswith(opening) and markup.endswith(closing):
        return markup[len(opening):-len(closing)]
    return markup


def _append_text(parent, data: str) -> None:
    if len(parent):
        last = parent[-1]
        last.tail = (last.tail or "") + data
    else:
        parent.text = (parent.text or "") + data


def _append_lxml(parent, node: Node) -> None:
    if isinstance(node, Text):
        _append_text(parent, node.data)
        return
    if isinstance(node, Comment):
        parent.append(ET.Comment(node.data))
        return
    if isinstance(node, Element):
        element = ET.SubElement(parent, node.tag)
        for name, value in node.attributes.items():
            element.set(name, value)
        children: List[Node] = list(node.children)
    elif isinstance(node, Fragment):
        element = parent
        children = list(node.children)
    else:
        logger.warning("Skipping unsupported node during serialisation: %r", node)
        return
    for child in children:
        _append_lxml(element, child)
