from __future__ import annotations

"""Low-level tree surgery: split, merge, wrap and filler insertion.

Every function here mutates the tree in place and keeps it editable: a node
emptied by a split gets filler content (see :func:`fix_cursor`) and stray
inline runs are wrapped in default blocks (see :func:`fix_container`).

The editor settings (default block tag, filler flavour) and the error
reporter are read from the editing root passed as ``root``.
"""

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Union

from richtree.core.classifier import (
    are_alike,
    get_nearest,
    is_container,
    is_inline,
    is_leaf,
)
from richtree.core.exceptions import (
    ContractViolation,
    ErrorKind,
    StructuralInvariantViolation,
)
from richtree.core.nodes import (
    LEAF_TAGS,
    ZWS,
    Element,
    Fragment,
    Node,
    ParentNode,
    Text,
)
from richtree.core.range import Range

if TYPE_CHECKING:
    from richtree.core.models import EditingRoot

__all__ = [
    "BoundaryPair",
    "fix_cursor",
    "fix_container",
    "split",
    "merge_inlines",
    "merge_with_block",
    "merge_containers",
]

logger = logging.getLogger(__name__)

_SPACES_ONLY = re.compile(r"^ +$")

SplitPoint = Union[int, Node, None]


@dataclass
class BoundaryPair:
    """Detached copy of a range's boundaries threaded through recursive merges.

    Merges move boundaries onto nodes that are about to be detached, which a
    live :class:`Range` would reject; the pair is applied to the real range
    once the merge is complete.
    """

    start_container: Node
    start_offset: int
    end_container: Node
    end_offset: int

    @classmethod
    def from_range(cls, rng: Range) -> "BoundaryPair":
        return cls(rng.start_container, rng.start_offset, rng.end_container, rng.end_offset)

    def apply_to(self, rng: Range) -> None:
        rng.set_start(self.start_container, self.start_offset)
        rng.set_end(self.end_container, self.end_offset)


# ---------------------------------------------------------------------------
# Filler and wrapping
# ---------------------------------------------------------------------------


def _has_visible_content(node: ParentNode) -> bool:
    if node.text_content:
        return True
    return any(is_leaf(descendant) for descendant in node.iter_descendants())


def _last_element_child(node: Node) -> Optional[Element]:
    for child in reversed(node.children):
        if isinstance(child, Element):
            return child
    return None


def fix_cursor(node: Node, root: "EditingRoot") -> Node:
    """Give an otherwise empty node filler content so it stays focusable.

    Inline nodes receive a text filler (a zero-width space when the editor
    cannot focus empty text). Block nodes receive a ``br`` at their deepest
    trailing block descendant, or a text node when the text fixer is enabled.
    When *node* is the root and has no content but a bare ``br``, a default
    block replaces it.

    Returns
    -------
    Node
        The node passed in, for chaining.
    """
    original = node
    settings = root.config
    fixer: Optional[Node] = None

    if node is root:
        child = root.first_child
        if child is None or child.node_name == "br":
            block = root.create_default_block()
            if child is not None:
                root.replace_child(block, child)
            else:
                root.append_child(block)
            node = block

    if not isinstance(node, ParentNode):
        return original

    if is_inline(node):
        child = node.first_child
        while settings.cant_focus_empty_text_nodes and isinstance(child, Text) and not child.data:
            node.remove_child(child)
            child = node.first_child
        if child is None:
            if settings.cant_focus_empty_text_nodes:
                fixer = Text(ZWS)
                root.note_filler_added()
            else:
                fixer = Text("")
    elif settings.use_text_fixer:
        while not isinstance(node, Text) and not is_leaf(node):
            child = node.first_child
            if child is None:
                fixer = Text("")
                break
            node = child
        if isinstance(node, Text):
            if _SPACES_ONLY.match(node.data):
                node.data = ""
        elif is_leaf(node):
            node.parent.insert_before(Text(""), node)
    elif not _has_visible_content(node):
        fixer = Element("br")
        child = _last_element_child(node)
        while child is not None and not is_inline(child):
            node = child
            child = _last_element_child(node)

    if fixer is not None:
        try:
            node.append_child(fixer)
        except StructuralInvariantViolation as exc:
            root.report_error(
                ErrorKind.STRUCTURAL_INVARIANT_VIOLATION,
                {"operation": "fix_cursor", "message": exc.message, **exc.details},
            )
    return original


def fix_container(container: ParentNode, root: "EditingRoot") -> ParentNode:
    """Wrap runs of inline children of *container* in default blocks.

    A bare ``br`` ends the current run (or stands for an empty line) and is
    replaced by the wrapper. Container children are fixed recursively.
    """
    children = container.children
    wrapper: Optional[Element] = None
    index = 0
    while index < len(children):
        child = children[index]
        is_br = child.node_name == "br"
        if not is_br and is_inline(child):
            if wrapper is None:
                wrapper = root.create_block()
            wrapper.append_child(child)
            continue
        if is_br or wrapper is not None:
            if wrapper is None:
                wrapper = root.create_block()
            fix_cursor(wrapper, root)
            if is_br:
                container.replace_child(wrapper, child)
            else:
                container.insert_before(wrapper, child)
                index += 1
            wrapper = None
        if is_container(child):
            fix_container(child, root)  # type: ignore[arg-type]
        index += 1
    if wrapper is not None:
        container.append_child(fix_cursor(wrapper, root))
    return container


# ---------------------------------------------------------------------------
# Split
# ---------------------------------------------------------------------------


def _list_start(node: Element) -> int:
    try:
        return int(node.get_attribute("start") or 1)
    except ValueError:
        return 1


def split(node: Node, offset: SplitPoint, stop_node: Node, root: "EditingRoot") -> Optional[Node]:
    """Split *node* at *offset* and keep splitting its ancestors up to *stop_node*.

    Args:
        node: Text or element to split.
        offset: Character offset for text; child index, child node or None
            (the end) for elements.
        stop_node: Ancestor-or-self of *node* where splitting stops.
        root: Editing root providing the block factory and settings.

    Returns:
        The child of *stop_node* that starts the second half, or None when the
        split point is at the end of *stop_node*.

    Raises:
        ContractViolation: if *stop_node* is not an ancestor-or-self of *node*,
            if *node* is a leaf element, or if *stop_node* is a text node.
    """
    if is_leaf(node):
        raise ContractViolation(
            f"Leaf element <{node.node_name}> cannot be split", {"node": node.node_name}
        )
    if isinstance(stop_node, Text):
        raise ContractViolation("Cannot split up to a text node", {"node": node.node_name})
    if stop_node is not node and not any(ancestor is stop_node for ancestor in node.ancestors()):
        raise ContractViolation(
            f"<{stop_node.node_name}> is not an ancestor of <{node.node_name}>",
            {"node": node.node_name, "stop_node": stop_node.node_name},
        )
    logger.debug("split %r at %r up to %r", node, offset, stop_node)
    return _split(node, offset, stop_node, root)


def _split(node: Node, offset: SplitPoint, stop_node: Node, root: "EditingRoot") -> Optional[Node]:
    if isinstance(node, Text):
        after = node.split_text(offset)  # type: ignore[arg-type]
        return _split(node.parent, after, stop_node, root)  # type: ignore[arg-type]

    if isinstance(offset, int):
        if offset < 0 or offset > len(node.children):
            raise ContractViolation(
                f"Offset {offset} is outside <{node.node_name}> with {len(node.children)} children",
                {"node": node.node_name, "offset": offset},
            )
        offset = node.children[offset] if offset < len(node.children) else None
    if node is stop_node:
        return offset

    parent = node.parent
    clone = node.clone(deep=False)
    while offset is not None:
        following = offset.next_sibling
        clone.append_child(offset)
        offset = following

    # Keep list numbering when an ordered list is split inside a quote
    if node.node_name == "ol" and get_nearest(node, root, "blockquote") is not None:
        remaining = sum(1 for child in node.children if child.node_name == "li")
        clone.set_attribute("start", _list_start(node) + remaining)  # type: ignore[attr-defined]

    # Do not normalise: it would drop fillers added further down the tree.
    fix_cursor(node, root)
    fix_cursor(clone, root)

    parent.insert_before(clone, node.next_sibling)
    return _split(parent, clone, stop_node, root)


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def _merge_inlines(node: ParentNode, boundaries: BoundaryPair) -> None:
    children = node.children
    fragments: List[Fragment] = []
    index = len(children)
    while index:
        index -= 1
        child = children[index]
        previous = children[index - 1] if index else None
        if (
            index
            and is_inline(child)
            and are_alike(child, previous)
            and child.node_name not in LEAF_TAGS
        ):
            if boundaries.start_container is child:
                boundaries.start_container = previous
                boundaries.start_offset += previous.length
            if boundaries.end_container is child:
                boundaries.end_container = previous
                boundaries.end_offset += previous.length
            if boundaries.start_container is node:
                if boundaries.start_offset > index:
                    boundaries.start_offset -= 1
                elif boundaries.start_offset == index:
                    boundaries.start_container = previous
                    boundaries.start_offset = previous.length
            if boundaries.end_container is node:
                if boundaries.end_offset > index:
                    boundaries.end_offset -= 1
                elif boundaries.end_offset == index:
                    boundaries.end_container = previous
                    boundaries.end_offset = previous.length
            child.detach()
            if isinstance(child, Text):
                previous.append_data(child.data)
            else:
                fragments.append(child.empty())
        elif isinstance(child, Element):
            while fragments:
                child.append_child(fragments.pop())
            _merge_inlines(child, boundaries)


def merge_inlines(node: Node, rng: Range) -> None:
    """Fuse alike adjacent inline siblings below *node*, keeping *rng* in place."""
    if isinstance(node, Text):
        node = node.parent
    if isinstance(node, ParentNode):
        boundaries = BoundaryPair.from_range(rng)
        _merge_inlines(node, boundaries)
        boundaries.apply_to(rng)


def merge_with_block(block: ParentNode, next_node: ParentNode, rng: Range, root: "EditingRoot") -> None:
    """Append the contents of *next_node* to *block*.

    The highest single-child wrapper chain around *next_node* is removed
    from the tree, a trailing ``br`` filler of *block* is dropped, and *rng*
    ends up collapsed at the seam.
    """
    container: Node = next_node
    parent = container.parent
    while (
        parent is not None
        and parent is not root
        and isinstance(parent, Element)
        and len(parent.children) == 1
    ):
        container = parent
        parent = container.parent
    container.detach()

    offset = len(block.children)

    last = block.last_child
    if last is not None and last.node_name == "br":
        block.remove_child(last)
        offset -= 1

    block.append_child(next_node.empty())

    rng.set_start(block, offset)
    rng.collapse(True)
    merge_inlines(block, rng)


def merge_containers(node: Node, root: "EditingRoot") -> None:
    """Merge *node* into its previous sibling when both are alike containers.

    List items only merge when they hold nothing but a nested list; the
    absorbing item's own content is wrapped in a ``div`` first.
    """
    previous = node.previous_sibling
    first = node.first_child
    is_list_item = node.node_name == "li"

    if is_list_item and (first is None or first.node_name not in ("ol", "ul")):
        return

    if previous is not None and are_alike(previous, node):
        if not is_container(previous):
            if not is_list_item:
                return
            block = Element("div")
            block.append_child(previous.empty())
            previous.append_child(block)
        node.detach()
        needs_fix = not is_container(node)
        previous.append_child(node.empty())
        if needs_fix:
            fix_container(previous, root)
        if first is not None:
            merge_containers(first, root)
    elif is_list_item:
        previous = Element("div")
        node.insert_before(previous, first)
        fix_cursor(previous, root)
