from __future__ import annotations

"""Selection bookmarks: round-trip a range through serialised markup.

A bookmark is a pair of hidden ``input`` elements with fixed ids inserted at
the range boundaries. They survive serialisation, so a snapshot restored by
the undo history can recover the selection it was taken with.
"""

import logging
from typing import Optional

from richtree.core.nodes import Element, ParentNode, Text
from richtree.core.range import Range, compare_tree_order
from richtree.core.range_engine import insert_node_in_range
from richtree.core.surgery import merge_inlines

__all__ = [
    "START_SELECTION_ID",
    "END_SELECTION_ID",
    "save_range_to_bookmark",
    "get_range_and_remove_bookmark",
]

logger = logging.getLogger(__name__)

START_SELECTION_ID = "richtree-selection-start"
END_SELECTION_ID = "richtree-selection-end"


def _marker(marker_id: str) -> Element:
    return Element("input", {"id": marker_id, "type": "hidden"})


def save_range_to_bookmark(rng: Range) -> None:
    """Insert the start/end markers at the boundaries of *rng*.

    On return *rng* spans exactly the content between the two markers.
    """
    start_node = _marker(START_SELECTION_ID)
    end_node = _marker(END_SELECTION_ID)

    insert_node_in_range(rng, start_node)
    rng.collapse(False)
    insert_node_in_range(rng, end_node)

    # With a collapsed range the start marker can land after the end marker
    if compare_tree_order(start_node, end_node) > 0:
        start_node.id = END_SELECTION_ID
        end_node.id = START_SELECTION_ID
        start_node, end_node = end_node, start_node

    rng.set_start_after(start_node)
    rng.set_end_before(end_node)


def get_range_and_remove_bookmark(
    root: ParentNode, rng: Optional[Range] = None
) -> Optional[Range]:
    """Remove the markers below *root* and return the range they delimited.

    Parameters
    ----------
    root : ParentNode
        Tree holding the markers.
    rng : Range, optional
        Range to update in place; a new one is created when omitted.

    Returns
    -------
    Optional[Range]
        The restored range, or *rng* unchanged (possibly None) when the
        markers are not both present.

    Notes
    -----
    Text nodes split by :func:`save_range_to_bookmark` are merged back. A
    collapsed result that does not sit in a text node is moved into the
    adjacent text node: the following one (at offset 0) when there is one,
    otherwise the preceding one (at its end).
    """
    start = root.find_by_id(START_SELECTION_ID)
    end = root.find_by_id(END_SELECTION_ID)

    if start is None or end is None:
        if start is not None or end is not None:
            logger.warning("Incomplete selection bookmark found; discarding it")
            for marker in (start, end):
                if marker is not None:
                    marker.detach()
        return rng

    start_container = start.parent
    end_container = end.parent
    start_offset = start.index
    end_offset = end.index
    if start_container is end_container:
        end_offset -= 1

    start.detach()
    end.detach()

    if rng is None:
        rng = Range(start_container, start_offset)
    rng.set_start(start_container, start_offset)
    rng.set_end(end_container, end_offset)

    # Merge any text nodes we split
    merge_inlines(start_container, rng)
    if start_container is not end_container:
        merge_inlines(end_container, rng)

    if rng.collapsed:
        container = rng.start_container
        if not isinstance(container, Text):
            children = container.children
            offset = rng.start_offset
            following = children[offset] if offset < len(children) else None
            preceding = children[offset - 1] if offset else None
            if isinstance(following, Text):
                rng.set_start(following, 0)
                rng.collapse(True)
            elif isinstance(preceding, Text):
                rng.set_start(preceding, preceding.length)
                rng.collapse(True)
    return rng
