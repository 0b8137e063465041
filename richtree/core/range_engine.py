from __future__ import annotations

"""Block-aware range operations built on tree surgery.

Every mutating operation leaves the range it was given at a valid, minimal
position that reflects where the cursor conceptually ends up after the edit.

Design principles
-----------------
- Functions take the live :class:`~richtree.core.range.Range` and mutate it
  in place; nothing here owns state.
- Blocks are located with the block walker, so inline wrappers, containers
  and the editing root itself are all handled uniformly.
- Splits never cross the stop ancestor (the nearest ``blockquote`` or the
  root) when a fragment is inserted.
"""

import logging
import re
from typing import TYPE_CHECKING, Optional

from richtree.core.classifier import (
    get_nearest,
    is_block,
    is_container,
    is_inline,
    is_leaf,
    is_or_contains,
)
from richtree.core.clean import cleanup_brs
from richtree.core.nodes import Element, Fragment, Node, ParentNode, Text
from richtree.core.range import (
    END_TO_END,
    END_TO_START,
    START_TO_END,
    START_TO_START,
    Range,
)
from richtree.core.surgery import (
    fix_container,
    fix_cursor,
    merge_containers,
    merge_with_block,
    split,
)
from richtree.core.tree_walker import (
    SHOW_ELEMENT,
    SHOW_TEXT,
    TreeWalker,
    get_next_block,
    get_previous_block,
    is_empty_block,
)

if TYPE_CHECKING:
    from richtree.core.models import EditingRoot

__all__ = [
    "insert_node_in_range",
    "get_node_before",
    "get_node_after",
    "extract_contents_of_range",
    "delete_contents_of_range",
    "insert_tree_fragment_into_range",
    "is_node_contained_in_range",
    "move_range_boundaries_down_tree",
    "move_range_boundaries_up_tree",
    "get_start_block_of_range",
    "get_end_block_of_range",
    "range_does_start_at_block_boundary",
    "range_does_end_at_block_boundary",
    "expand_range_to_block_boundaries",
]

logger = logging.getLogger(__name__)

_NOT_WS = re.compile(r"[^ \t\r\n]")


def _is_content(node: Node) -> bool:
    if isinstance(node, Text):
        return _NOT_WS.search(node.data) is not None
    return isinstance(node, Element) and node.tag == "img"


# ---------------------------------------------------------------------------
# Node insertion and lookup
# ---------------------------------------------------------------------------


def insert_node_in_range(rng: Range, node: Node) -> None:
    """Insert *node* at the start of *rng*, splitting a text container if needed.

    The range is adjusted so that it still covers the same content; when it
    was collapsed it ends up around the inserted node.
    """
    start_container, start_offset, end_container, end_offset = rng.boundaries()

    if isinstance(start_container, Text):
        parent = start_container.parent
        children = parent.children
        if start_offset == start_container.length:
            start_offset = start_container.index + 1
            if rng.collapsed:
                end_container = parent
                end_offset = start_offset
        else:
            if start_offset:
                after_split = start_container.split_text(start_offset)
                if end_container is start_container:
                    end_offset -= start_offset
                    end_container = after_split
                elif end_container is parent:
                    end_offset += 1
                start_container = after_split
            start_offset = start_container.index
        start_container = parent
    else:
        children = start_container.children

    child_count = len(children)
    if start_offset == child_count:
        start_container.append_child(node)
    else:
        start_container.insert_before(node, children[start_offset])

    if start_container is end_container:
        end_offset += len(children) - child_count

    rng.set_start(start_container, start_offset)
    rng.set_end(end_container, end_offset)


def get_node_before(node: Node, offset: int) -> Node:
    """Return the deepest last descendant before boundary ``(node, offset)``."""
    children = node.children
    while offset and isinstance(node, ParentNode):
        node = children[offset - 1]
        children = node.children
        offset = len(children)
    return node


def get_node_after(node: Optional[Node], offset: int) -> Optional[Node]:
    """Return the node that starts right after boundary ``(node, offset)``."""
    if isinstance(node, ParentNode):
        children = node.children
        if offset < len(children):
            return children[offset]
        while node is not None and node.next_sibling is None:
            node = node.parent
        if node is not None:
            node = node.next_sibling
    return node


# ---------------------------------------------------------------------------
# Extract / delete / insert
# ---------------------------------------------------------------------------


def extract_contents_of_range(
    rng: Range, common: Optional[Node], root: "EditingRoot"
) -> Fragment:
    """Move the contents of *rng* into a new fragment.

    Both boundaries are split up to *common* (the range's common ancestor by
    default, promoted to its parent when it is a text node). Text nodes left
    adjacent at the removal point are joined, and *rng* is collapsed there.
    """
    start_container, start_offset, end_container, end_offset = rng.boundaries()

    if common is None:
        common = rng.common_ancestor
    if isinstance(common, Text):
        common = common.parent

    end_node = split(end_container, end_offset, common, root)
    start_node = split(start_container, start_offset, common, root)
    fragment = Fragment()

    # end_node is None when the range reaches the end of common
    while start_node is not end_node:
        following = start_node.next_sibling
        fragment.append_child(start_node)
        start_node = following

    start_container = common
    start_offset = end_node.index if end_node is not None else len(common.children)

    # Join text nodes left adjacent by the removal
    after = common.children[start_offset] if start_offset < len(common.children) else None
    before = after.previous_sibling if after is not None else None
    if isinstance(before, Text) and isinstance(after, Text):
        start_container = before
        start_offset = before.length
        before.append_data(after.data)
        after.detach()

    rng.set_start(start_container, start_offset)
    rng.collapse(True)

    fix_cursor(common, root)
    logger.debug("extracted %d node(s) from %r", len(fragment.children), common)
    return fragment


def delete_contents_of_range(rng: Range, root: "EditingRoot") -> Fragment:
    """Delete the contents of *rng*, fusing the start and end blocks if they differ.

    Returns the removed content as a fragment. The root always ends up holding
    at least one block.
    """
    start_block = get_start_block_of_range(rng, root)
    end_block = get_end_block_of_range(rng, root)
    needs_merge = start_block is not end_block

    # Climb as far as possible inside the blocks to reduce splitting
    move_range_boundaries_down_tree(rng)
    move_range_boundaries_up_tree(rng, start_block, end_block, root)

    fragment = extract_contents_of_range(rng, None, root)

    move_range_boundaries_down_tree(rng)

    if needs_merge:
        # the end block was split by the extraction
        end_block = get_end_block_of_range(rng, root)
        if start_block is not None and end_block is not None and start_block is not end_block:
            merge_with_block(start_block, end_block, rng, root)

    if start_block is not None:
        fix_cursor(start_block, root)

    child = root.first_child
    if child is None or child.node_name == "br":
        fix_cursor(root, root)
        rng.select_node_contents(root.first_child)
    else:
        rng.collapse(True)
    return fragment


def _wrap_list_items(fragment: Fragment, root: "EditingRoot") -> None:
    """Put runs of loose top-level ``li`` children of *fragment* into a ``ul``."""
    children = fragment.children
    wrapper: Optional[Element] = None
    index = 0
    while index < len(children):
        child = children[index]
        if child.node_name == "li":
            if wrapper is None:
                wrapper = root.create_element("ul")
                fragment.insert_before(wrapper, child)
                index += 1
            wrapper.append_child(child)
            continue
        wrapper = None
        index += 1


def insert_tree_fragment_into_range(
    rng: Range, fragment: Fragment, root: "EditingRoot"
) -> None:
    """Insert *fragment* at *rng*, replacing any selected content.

    The steps run in a fixed order:

    1. normalise the fragment (wrap loose list items and inline runs, add
       fillers);
    2. delete the selection if the range is not collapsed;
    3. pick the stop ancestor (nearest ``blockquote``, else the root);
    4. merge the fragment's first block into the cursor block, keeping the
       inline content after the cursor aside (an empty cursor block is
       replaced instead, and ``pre``/``table`` blocks are never merged);
    5. insert what is left of the fragment after splitting up to the stop
       ancestor, then merge containers at both seams;
    6. re-attach the content kept aside to the last inserted block;
    7. move the range down to the final text position.
    """
    # 1. Fixup content: no loose list items or top-level inline, fillers in every block
    _wrap_list_items(fragment, root)
    fix_container(fragment, root)
    node: Optional[Node] = get_next_block(fragment, fragment)
    while node is not None:
        fix_cursor(node, root)
        node = get_next_block(node, fragment)

    # 2. Insertion always replaces the selection
    if not rng.collapsed:
        delete_contents_of_range(rng, root)

    move_range_boundaries_down_tree(rng)
    rng.collapse(False)

    # 3. Split up to the first blockquote ancestor, otherwise the root
    stop_point: Node = get_nearest(rng.end_container, root, "blockquote") or root

    # 4. Merge the first block of the fragment into the cursor block
    block = get_start_block_of_range(rng, root)
    first_block_in_fragment = get_next_block(fragment, fragment)
    replace_block = block is not None and is_empty_block(block)
    block_contents_after_split: Optional[Fragment] = None

    if (
        block is not None
        and first_block_in_fragment is not None
        and not replace_block
        and get_nearest(first_block_in_fragment, fragment, "pre") is None
        and get_nearest(first_block_in_fragment, fragment, "table") is None
    ):
        move_range_boundaries_up_tree(rng, block, block, root)
        rng.collapse(True)
        container: Node = rng.end_container
        offset = rng.end_offset
        # A trailing br must not be carried over as content
        cleanup_brs(block, root, False)
        if is_inline(container):
            node_after_split = split(
                container, offset, get_previous_block(container, root), root
            )
            container = node_after_split.parent
            offset = node_after_split.index
        if offset != container.length:
            block_contents_after_split = Fragment()
            while offset < len(container.children):
                block_contents_after_split.append_child(container.children[offset])
        merge_with_block(container, first_block_in_fragment, rng, root)

        offset = container.index + 1
        container = container.parent
        rng.set_end(container, offset)

    # 5. Insert the remaining blocks as siblings
    if fragment.length:
        if replace_block:
            rng.set_end_before(block)
            rng.collapse(False)
            block.detach()
        move_range_boundaries_up_tree(rng, stop_point, stop_point, root)
        node_after_split = split(rng.end_container, rng.end_offset, stop_point, root)
        if node_after_split is not None:
            node_before_split = node_after_split.previous_sibling
        else:
            node_before_split = stop_point.last_child
        stop_point.insert_before(fragment, node_after_split)
        if node_after_split is not None:
            rng.set_end_before(node_after_split)
        else:
            rng.set_end(stop_point, stop_point.length)
        block = get_end_block_of_range(rng, root)

        # Boundary that survives the container merges below
        move_range_boundaries_down_tree(rng)
        container = rng.end_container
        offset = rng.end_offset

        if node_after_split is not None and is_container(node_after_split):
            merge_containers(node_after_split, root)
        node_after_split = node_before_split.next_sibling if node_before_split is not None else None
        if node_after_split is not None and is_container(node_after_split):
            merge_containers(node_after_split, root)
        rng.set_end(container, offset)

    # 6. Re-attach the inline content that followed the cursor
    if block_contents_after_split is not None and block is not None:
        temp_range = rng.clone()
        merge_with_block(block, block_contents_after_split, temp_range, root)
        rng.set_end(temp_range.end_container, temp_range.end_offset)

    # 7. Final cursor position
    move_range_boundaries_down_tree(rng)


# ---------------------------------------------------------------------------
# Containment and boundary movement
# ---------------------------------------------------------------------------


def is_node_contained_in_range(rng: Range, node: Node, partial: bool = False) -> bool:
    """Return True when *node* lies inside *rng*.

    With *partial*, any overlap is enough; otherwise *node* must be fully
    covered by the range.
    """
    node_range = Range(node.parent, 0)
    node_range.select_node(node)

    if partial:
        node_end_before_start = rng.compare_boundary_points(END_TO_START, node_range) > -1
        node_start_after_end = rng.compare_boundary_points(START_TO_END, node_range) < 1
        return not node_end_before_start and not node_start_after_end

    node_start_after_start = rng.compare_boundary_points(START_TO_START, node_range) < 1
    node_end_before_end = rng.compare_boundary_points(END_TO_END, node_range) > -1
    return node_start_after_start and node_end_before_end


def move_range_boundaries_down_tree(rng: Range) -> None:
    """Push both boundaries down to the deepest text position reachable.

    Leaves are never entered. The end boundary may step back over one
    trailing ``br``. For a collapsed range the two resolved positions lie
    on either side of the original point and are assigned crosswise: the
    start receives the position resolved for the end and vice versa.
    """
    start_container, start_offset, end_container, end_offset = rng.boundaries()
    may_skip_br = True

    while not isinstance(start_container, Text):
        children = start_container.children
        child = children[start_offset] if start_offset < len(children) else None
        if child is None or is_leaf(child):
            break
        start_container = child
        start_offset = 0

    if end_offset:
        while not isinstance(end_container, Text):
            children = end_container.children
            child = children[end_offset - 1] if 0 < end_offset <= len(children) else None
            if child is None or is_leaf(child):
                if may_skip_br and child is not None and child.node_name == "br":
                    end_offset -= 1
                    may_skip_br = False
                    continue
                break
            end_container = child
            end_offset = end_container.length
    else:
        while not isinstance(end_container, Text):
            child = end_container.first_child
            if child is None or is_leaf(child):
                break
            end_container = child

    if rng.collapsed:
        rng.set_start(end_container, end_offset)
        rng.set_end(start_container, start_offset)
    else:
        rng.set_start(start_container, start_offset)
        rng.set_end(end_container, end_offset)


def move_range_boundaries_up_tree(
    rng: Range,
    start_max: Optional[Node],
    end_max: Optional[Node],
    root: Node,
) -> None:
    """Pull boundaries up while they sit at the edge of their container.

    The start climbs while at offset 0, the end while at its container's
    length (after stepping over at most one ``br``); neither climbs past
    *start_max* / *end_max* (default: the common ancestor) or *root*.
    """
    start_container, start_offset, end_container, end_offset = rng.boundaries()
    may_skip_br = True

    if start_max is None:
        start_max = rng.common_ancestor
    if end_max is None:
        end_max = start_max

    while (
        not start_offset
        and start_container is not start_max
        and start_container is not root
        and start_container.parent is not None
    ):
        parent = start_container.parent
        start_offset = start_container.index
        start_container = parent

    while True:
        if may_skip_br and not isinstance(end_container, Text):
            children = end_container.children
            if end_offset < len(children) and children[end_offset].node_name == "br":
                end_offset += 1
                may_skip_br = False
        if (
            end_container is end_max
            or end_container is root
            or end_offset != end_container.length
            or end_container.parent is None
        ):
            break
        parent = end_container.parent
        end_offset = end_container.index + 1
        end_container = parent

    rng.set_start(start_container, start_offset)
    rng.set_end(end_container, end_offset)


# ---------------------------------------------------------------------------
# Blocks touching a range
# ---------------------------------------------------------------------------


def get_start_block_of_range(rng: Range, root: Node) -> Optional[Node]:
    """Return the first block at least partially inside *rng*, or None."""
    container = rng.start_container
    if is_inline(container):
        block = get_previous_block(container, root)
    elif container is not root and is_block(container):
        block = container
    else:
        block = get_next_block(get_node_before(container, rng.start_offset), root)
    if block is not None and is_node_contained_in_range(rng, block, True):
        return block
    return None


def get_end_block_of_range(rng: Range, root: Node) -> Optional[Node]:
    """Return the last block at least partially inside *rng*, or None."""
    container = rng.end_container
    if is_inline(container):
        block = get_previous_block(container, root)
    elif container is not root and is_block(container):
        block = container
    else:
        block = get_node_after(container, rng.end_offset)
        if block is None or not is_or_contains(root, block):
            block = root
            while block.last_child is not None:
                block = block.last_child
        block = get_previous_block(block, root)
    if block is not None and is_node_contained_in_range(rng, block, True):
        return block
    return None


def range_does_start_at_block_boundary(rng: Range, root: Node) -> bool:
    """True when no visible content precedes the range start in its block."""
    start_container = rng.start_container
    start_offset = rng.start_offset

    if isinstance(start_container, Text):
        if start_offset:
            return False
        node_after_cursor: Optional[Node] = start_container
    else:
        node_after_cursor = get_node_after(start_container, start_offset)
        if node_after_cursor is not None and not is_or_contains(root, node_after_cursor):
            node_after_cursor = None
        # cursor at the very end of the document
        if node_after_cursor is None:
            node_after_cursor = get_node_before(start_container, start_offset)
            if isinstance(node_after_cursor, Text) and node_after_cursor.length:
                return False

    walker = TreeWalker(get_start_block_of_range(rng, root), SHOW_TEXT | SHOW_ELEMENT, _is_content)
    walker.current_node = node_after_cursor
    return walker.previous_node() is None


def range_does_end_at_block_boundary(rng: Range, root: Node) -> bool:
    """True when no visible content follows the range end in its block."""
    end_container = rng.end_container
    end_offset = rng.end_offset

    if isinstance(end_container, Text):
        length = end_container.length
        if length and end_offset < length:
            return False
        current: Node = end_container
    else:
        current = get_node_before(end_container, end_offset)

    walker = TreeWalker(get_end_block_of_range(rng, root), SHOW_TEXT | SHOW_ELEMENT, _is_content)
    walker.current_node = current
    return walker.next_node() is None


def expand_range_to_block_boundaries(rng: Range, root: Node) -> None:
    """Widen *rng* so it covers its start and end blocks as whole children."""
    start = get_start_block_of_range(rng, root)
    end = get_end_block_of_range(rng, root)
    if start is not None and end is not None:
        parent = start.parent
        rng.set_start(parent, start.index)
        parent = end.parent
        rng.set_end(parent, end.index + 1)
