from __future__ import annotations

"""Normalisation of parsed content before it enters the document.

Parsed markup may carry comments, document-level elements, unknown wrappers,
insignificant whitespace and ``br`` elements that do not break a line. The
helpers here strip or rewrite those so that the surgery and range code only
ever sees a well-formed tree.
"""

import logging
import re
from typing import TYPE_CHECKING, List, Optional

from richtree.core.classifier import is_inline, is_leaf
from richtree.core.nodes import ZWS, Element, Node, ParentNode, Text
from richtree.core.surgery import fix_container
from richtree.core.tree_walker import SHOW_ELEMENT, SHOW_TEXT, TreeWalker

if TYPE_CHECKING:
    from richtree.core.models import EditingRoot

__all__ = [
    "ALLOWED_BLOCK_TAGS",
    "DISCARDED_TAGS",
    "clean_tree",
    "cleanup_brs",
    "is_line_break",
    "remove_empty_inlines",
    "remove_zws",
]

logger = logging.getLogger(__name__)

ALLOWED_BLOCK_TAGS = frozenset({
    "address", "article", "aside", "audio",
    "blockquote",
    "caption", "col", "colgroup",
    "dd", "div", "dl", "dt",
    "figcaption", "figure", "footer",
    "h1", "h2", "h3", "h4", "h5", "h6", "header",
    "label", "legend", "li",
    "ol", "output",
    "p", "pre",
    "section",
    "table", "tbody", "td", "tfoot", "th", "thead", "tr",
    "ul",
})

DISCARDED_TAGS = frozenset({"head", "meta", "style"})

# nbsp is content, not whitespace
_NOT_WS = re.compile(r"[^ \t\r\n]")
_LEADING_WS = re.compile(r"^[ \t\r\n]+")
_TRAILING_WS = re.compile(r"[ \t\r\n]+$")


def _has_content(data: str) -> bool:
    return _NOT_WS.search(data) is not None


def _is_visible(node: Node) -> bool:
    if isinstance(node, Text):
        return _has_content(node.data)
    return isinstance(node, Element) and node.tag == "img"


def _inline_content_between(step) -> bool:
    """Walk with *step* until visible content (True) or a non-inline node (False)."""
    sibling = step()
    while sibling is not None:
        if _is_visible(sibling):
            return True
        if not is_inline(sibling):
            return False
        sibling = step()
    return False


def clean_tree(node: ParentNode, preserve_ws: bool = False) -> ParentNode:
    """Remove unwanted nodes below *node* and trim insignificant whitespace.

    Comments and document-level elements (``head``, ``meta``, ``style``) are
    dropped; non-inline elements outside :data:`ALLOWED_BLOCK_TAGS` are
    replaced by their children. Whitespace at the edges of a text node is
    collapsed to one space when inline content lies beyond it within the same
    block, and removed otherwise. Text inside ``pre`` is kept verbatim.
    """
    non_inline_parent: Node = node
    while is_inline(non_inline_parent) and non_inline_parent.parent is not None:
        non_inline_parent = non_inline_parent.parent
    walker = TreeWalker(non_inline_parent, SHOW_ELEMENT | SHOW_TEXT)

    children = node.children
    index = 0
    while index < len(children):
        child = children[index]
        if isinstance(child, Element):
            if child.tag in DISCARDED_TAGS:
                node.remove_child(child)
                continue
            if child.tag not in ALLOWED_BLOCK_TAGS and not is_inline(child):
                node.replace_child(child.empty(), child)
                continue
            if child.children:
                clean_tree(child, preserve_ws or child.tag == "pre")
            index += 1
            continue

        if isinstance(child, Text):
            data = child.data
            starts_with_ws = not data or not _has_content(data[0])
            ends_with_ws = not data or not _has_content(data[-1])
            if preserve_ws or (not starts_with_ws and not ends_with_ws):
                index += 1
                continue
            if starts_with_ws:
                walker.current_node = child
                keep = _inline_content_between(walker.previous_post_order_node)
                data = _LEADING_WS.sub(" " if keep else "", data)
            if ends_with_ws:
                walker.current_node = child
                keep = _inline_content_between(walker.next_node)
                data = _TRAILING_WS.sub(" " if keep else "", data)
            if data:
                child.data = data
                index += 1
                continue

        node.remove_child(child)
    return node


def is_line_break(br: Element, if_empty_block: bool = False) -> bool:
    """Return True when *br* is followed by content in its block.

    With *if_empty_block*, a ``br`` with nothing before it in its block also
    counts as a line break (it holds a blank line open).
    """
    block: Node = br.parent
    while is_inline(block) and block.parent is not None:
        block = block.parent
    walker = TreeWalker(block, SHOW_ELEMENT | SHOW_TEXT, _breaks_or_has_content)
    walker.current_node = br
    if walker.next_node() is not None:
        return True
    return if_empty_block and walker.previous_node() is None


def _breaks_or_has_content(node: Node) -> bool:
    if isinstance(node, Element):
        return node.tag == "br"
    return isinstance(node, Text) and _has_content(node.data)


def cleanup_brs(node: ParentNode, root: "EditingRoot", keep_for_blank_line: bool = False) -> None:
    """Drop ``br`` elements below *node* that do not break a line.

    The ones that do are turned into block boundaries by fixing their
    (non-inline) parent with :func:`~richtree.core.surgery.fix_container`.
    Whether a ``br`` breaks a line is decided for all of them before any is
    touched, as converting one changes the context of its neighbours.
    """
    brs: List[Element] = [
        descendant for descendant in node.iter_descendants()
        if isinstance(descendant, Element) and descendant.tag == "br"
    ]
    breaks_line = [is_line_break(br, keep_for_blank_line) for br in brs]
    for br, breaks in zip(reversed(brs), reversed(breaks_line)):
        parent = br.parent
        # an earlier fix may have removed it already
        if parent is None:
            continue
        if not breaks:
            br.detach()
        elif not is_inline(parent):
            fix_container(parent, root)


def remove_empty_inlines(node: ParentNode) -> None:
    """Recursively remove childless inline elements and empty text nodes."""
    children = node.children
    index = len(children)
    while index:
        index -= 1
        child = children[index]
        if isinstance(child, Element) and not is_leaf(child):
            remove_empty_inlines(child)
            if is_inline(child) and not child.children:
                node.remove_child(child)
        elif isinstance(child, Text) and not child.data:
            node.remove_child(child)


def remove_zws(root: ParentNode, keep_node: Optional[Node] = None) -> None:
    """Strip zero-width space fillers below *root*.

    A text node holding nothing but the filler is removed together with any
    inline ancestors it leaves empty. Text directly inside *keep_node* is left
    untouched so that one filler can keep that block focusable.
    """
    walker = TreeWalker(root, SHOW_TEXT)
    node = walker.next_node()
    while node is not None:
        while ZWS in node.data and (keep_node is None or node.parent is not keep_node):
            if node.length == 1:
                emptied: Node = node
                while True:
                    parent = emptied.parent
                    parent.remove_child(emptied)
                    emptied = parent
                    walker.current_node = parent
                    if not (is_inline(emptied) and emptied.length == 0):
                        break
                break
            node.delete_data(node.data.index(ZWS), 1)
        node = walker.next_node()
