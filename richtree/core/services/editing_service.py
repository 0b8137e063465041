from __future__ import annotations

"""Service layer for content edits on an editable document.

This module provides a host-agnostic, testable service that drives the
range engine on an :class:`~richtree.core.models.EditorContext`: replacing
and reading the document, inserting markup or plain text at the selection,
deleting, splitting blocks, quote and list levels, inline formatting, and
undo/redo.

Scope and guarantees:
- Operates purely in-memory on the context; no I/O and no rendering.
- Expected conditions (no selection available, nothing to undo) return
  ``OperationResult(success=False, ...)`` and never raise.
- Structural errors raised while mutating are reported through the root's
  error reporter and returned as unsuccessful results.
- Contract violations (invalid offsets or nodes passed by the caller)
  propagate.

Examples
--------
Basic usage:

    service = EditingService()
    context = EditorContext()
    service.set_html(context, "<div>Hello</div>")
    result = service.insert_plain_text(context, "world")
    if not result.success:
        print(result.message)
"""

import html
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from richtree.core.bookmark import (
    END_SELECTION_ID,
    START_SELECTION_ID,
    get_range_and_remove_bookmark,
    save_range_to_bookmark,
)
from richtree.core.classifier import (
    get_nearest,
    get_path,
    has_tag_attributes,
    is_block,
    is_inline,
    is_leaf,
    is_or_contains,
)
from richtree.core.clean import clean_tree, cleanup_brs, remove_empty_inlines, remove_zws
from richtree.core.exceptions import (
    ContractViolation,
    EmptyQuery,
    ErrorKind,
    RangeNotInDocument,
    StructuralInvariantViolation,
)
from richtree.core.markup import parse_fragment, serialize
from richtree.core.models import EditingRoot, EditorContext
from richtree.core.nodes import ZWS, Element, Fragment, Node, Text
from richtree.core.range import Range
from richtree.core.range_engine import (
    delete_contents_of_range,
    expand_range_to_block_boundaries,
    extract_contents_of_range,
    get_start_block_of_range,
    insert_node_in_range,
    insert_tree_fragment_into_range,
    is_node_contained_in_range,
    move_range_boundaries_down_tree,
    move_range_boundaries_up_tree,
)
from richtree.core.services.undo_service import UndoService, UndoState
from richtree.core.surgery import fix_container, fix_cursor, merge_containers, merge_inlines, split
from richtree.core.tree_walker import (
    SHOW_ELEMENT,
    SHOW_TEXT,
    TreeWalker,
    get_block_walker,
    get_next_block,
    is_empty_block,
)

__all__ = ["OperationResult", "EditingService", "EVENT_TYPES"]

logger = logging.getLogger(__name__)

EVENT_TYPES = ("path_change", "select", "cursor", "input", "undo_state_change")

Listener = Callable[[Dict[str, Any]], None]

_DANGLING_TD = re.compile(r"</td>((?!</tr>)[\s\S])*$", re.IGNORECASE)
_DANGLING_TR = re.compile(r"</tr>((?!</table>)[\s\S])*$", re.IGNORECASE)
_REPEATED_SPACE = re.compile(r" (?= )")

_START_FRAGMENT = "<!--StartFragment-->"
_END_FRAGMENT = "<!--EndFragment-->"


@dataclass(frozen=True)
class OperationResult:
    """Result of an editing operation.

    Attributes
    ----------
    success
        Whether the operation completed successfully.
    message
        Human-readable summary suitable for logs or UI display.
    details
        Optional structured details for diagnostics or caller logic.
    """
    success: bool
    message: str
    details: Optional[Dict[str, Any]] = None


class EditingService:
    """Encapsulates editing operations on an :class:`EditorContext`.

    Every mutating operation saves an undo checkpoint first (bookmarking the
    selection), mutates through the range engine, stores the resulting
    selection back on the context and notifies listeners.

    Parameters
    ----------
    undo_service : UndoService, optional
        History to use; one is created from the root's config on first use
        when omitted.

    Notes
    -----
    Listeners receive a payload dict: ``{"path": str}`` for ``path_change``,
    ``{"range": Range}`` for ``select``/``cursor``,
    ``{"can_undo": bool, "can_redo": bool}`` for ``undo_state_change`` and an
    empty dict for ``input``.
    """

    TAG_AFTER_SPLIT = {
        "dt": "dd",
        "dd": "dt",
        "li": "li",
        "pre": "pre",
    }

    def __init__(self, undo_service: Optional[UndoService] = None) -> None:
        self._undo = undo_service
        self._listeners: Dict[str, List[Listener]] = {}

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def add_event_listener(self, event: str, listener: Listener) -> None:
        if event not in EVENT_TYPES:
            raise ContractViolation(f"Unknown event type '{event}'", {"event": event})
        self._listeners.setdefault(event, []).append(listener)

    def remove_event_listener(self, event: str, listener: Optional[Listener] = None) -> None:
        """Remove *listener*, or every listener of *event* when omitted."""
        listeners = self._listeners.get(event)
        if not listeners:
            return
        if listener is None:
            listeners.clear()
        else:
            listeners[:] = [fn for fn in listeners if fn is not listener]
        if not listeners:
            del self._listeners[event]

    def _fire(self, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        payload = dict(payload or {})
        payload["type"] = event
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners.get(event, ())):
            try:
                listener(payload)
            except Exception:
                logger.exception("Listener for '%s' failed", event)

    # -------------------------------------------------------------------------
    # Undo helpers
    # -------------------------------------------------------------------------

    def undo_service(self, context: EditorContext) -> UndoService:
        if self._undo is None:
            self._undo = UndoService.from_config(context.root.config)
        return self._undo

    def _doc_was_changed(self, context: EditorContext) -> None:
        if self.undo_service(context).mark_dirty():
            self._fire("undo_state_change", {"can_undo": True, "can_redo": False})
        self._fire("input")

    def _remove_zws(self, root: EditingRoot) -> None:
        if root.has_filler:
            remove_zws(root)
            root.has_filler = False

    # -------------------------------------------------------------------------
    # Selection and path
    # -------------------------------------------------------------------------

    def get_selection(self, context: EditorContext) -> Range:
        """Return the live selection, falling back to the document start.

        Raises
        ------
        EmptyQuery
            If the document has no content to place a range in.
        """
        root = context.root
        rng = context.selection
        if rng is not None:
            try:
                self._check_in_document(rng, root)
            except RangeNotInDocument as exc:
                root.report_error(ErrorKind.RANGE_NOT_IN_DOCUMENT, {"message": exc.message, **exc.details})
                rng = None
        if rng is None:
            first = root.first_child
            if first is None:
                raise EmptyQuery("No selection available in an empty document", {"root": root.tag})
            rng = Range(first, 0)
            context.selection = rng
        self._move_out_of_leaves(rng)
        return rng

    @staticmethod
    def _check_in_document(rng: Range, root: Node) -> None:
        for container in (rng.start_container, rng.end_container):
            if not is_or_contains(root, container):
                raise RangeNotInDocument(
                    "Range container is not attached to the editing root",
                    {"container": container.node_name},
                )

    def set_selection(self, context: EditorContext, rng: Range) -> OperationResult:
        try:
            self._check_in_document(rng, context.root)
        except RangeNotInDocument as exc:
            context.root.report_error(ErrorKind.RANGE_NOT_IN_DOCUMENT, {"message": exc.message, **exc.details})
            return OperationResult(False, exc.message, exc.details)
        self._move_out_of_leaves(rng)
        context.selection = rng
        self._update_path(context, rng)
        return OperationResult(True, "Selection updated.")

    @staticmethod
    def _move_out_of_leaves(rng: Range) -> None:
        """Put boundaries that sit inside a leaf element right before it."""
        if is_leaf(rng.start_container):
            rng.set_start_before(rng.start_container)
        if is_leaf(rng.end_container):
            rng.set_end_before(rng.end_container)

    def clear_selection(self, context: EditorContext) -> None:
        context.selection = None

    def _update_path(self, context: EditorContext, rng: Range) -> None:
        anchor = rng.start_container
        focus = rng.end_container
        if anchor is focus:
            new_path = get_path(focus, context.root)
        else:
            new_path = "(selection)"
        if context.path != new_path:
            context.path = new_path
            self._fire("path_change", {"path": new_path})
        self._fire("cursor" if rng.collapsed else "select", {"range": rng})

    def _selection_or_noop(self, context: EditorContext, operation: str):
        try:
            return self.get_selection(context), None
        except EmptyQuery as exc:
            logger.info("Edit noop: %s no_selection", operation)
            return None, OperationResult(False, exc.message, exc.details)

    def _structural_failure(
        self, context: EditorContext, operation: str, exc: StructuralInvariantViolation
    ) -> OperationResult:
        logger.warning("Edit FAIL: %s %s", operation, exc.message)
        context.root.report_error(
            ErrorKind.STRUCTURAL_INVARIANT_VIOLATION,
            {"operation": operation, "message": exc.message, **exc.details},
        )
        return OperationResult(False, exc.message, {"operation": operation, **exc.details})

    def _ensure_bottom_line(self, root: EditingRoot) -> None:
        last = None
        for child in reversed(root.children):
            if isinstance(child, Element):
                last = child
                break
        if last is None or last.tag != root.config.block_tag or not is_block(last):
            root.append_child(root.create_default_block())

    # -------------------------------------------------------------------------
    # Document content
    # -------------------------------------------------------------------------

    def set_html(self, context: EditorContext, markup: str) -> OperationResult:
        """Replace the whole document with *markup* and reset the history."""
        logger.info("Edit: set_html length=%d", len(markup or ""))
        root = context.root
        fragment = parse_fragment(markup)

        clean_tree(fragment)
        cleanup_brs(fragment, root, False)
        fix_container(fragment, root)

        node = get_next_block(fragment, fragment)
        while node is not None:
            fix_cursor(node, root)
            node = get_next_block(node, fragment)

        root.empty()
        root.append_child(fragment)
        fix_cursor(root, root)

        undo = self.undo_service(context)
        undo.reset()

        rng = get_range_and_remove_bookmark(root) or Range(root.first_child, 0)
        undo.save_undo_state(context, rng)
        context.selection = rng
        self._update_path(context, rng)
        logger.info("Edit OK: set_html blocks=%d", len(root.children))
        return OperationResult(True, "Document replaced.", {"blocks": len(root.children)})

    def get_html(self, context: EditorContext, with_bookmark: bool = False) -> str:
        """Serialise the document without zero-width fillers.

        With *with_bookmark*, the selection markers are included in the output.
        """
        root = context.root
        rng: Optional[Range] = None
        if with_bookmark:
            try:
                rng = self.get_selection(context)
            except EmptyQuery:
                rng = None
            if rng is not None:
                save_range_to_bookmark(rng)

        fillers: List[Element] = []
        if root.config.use_text_fixer:
            node = get_next_block(root, root)
            while node is not None:
                has_br = any(d.node_name == "br" for d in node.iter_descendants())
                if not node.text_content and not has_br:
                    filler = Element("br")
                    node.append_child(filler)
                    fillers.append(filler)
                node = get_next_block(node, root)

        markup = serialize(root).replace(ZWS, "")

        for filler in reversed(fillers):
            filler.detach()
        if rng is not None:
            get_range_and_remove_bookmark(root, rng)
        return markup

    def insert_html(self, context: EditorContext, markup: str, is_paste: bool = False) -> OperationResult:
        """Insert *markup* at the selection, replacing any selected content."""
        logger.info("Edit: insert_html length=%d paste=%s", len(markup or ""), is_paste)
        rng, noop = self._selection_or_noop(context, "insert_html")
        if rng is None:
            return noop

        if is_paste:
            start = markup.find(_START_FRAGMENT)
            end = markup.rfind(_END_FRAGMENT)
            if start > -1 and end > -1:
                markup = markup[start + len(_START_FRAGMENT):end]
        # Wrap dangling cells and rows
        if _DANGLING_TD.search(markup):
            markup = "<tr>" + markup + "</tr>"
        if _DANGLING_TR.search(markup):
            markup = "<table>" + markup + "</table>"
        fragment = parse_fragment(markup)

        root = context.root
        try:
            self.undo_service(context).save_undo_state(context, rng)
            clean_tree(fragment)
            cleanup_brs(fragment, root, False)
            remove_empty_inlines(fragment)
            fragment.normalize()

            node = get_next_block(fragment, fragment)
            while node is not None:
                fix_cursor(node, root)
                node = get_next_block(node, fragment)

            insert_tree_fragment_into_range(rng, fragment, root)
            self._doc_was_changed(context)
            rng.collapse(False)
            self._ensure_bottom_line(root)
        except StructuralInvariantViolation as exc:
            return self._structural_failure(context, "insert_html", exc)

        context.selection = rng
        self._update_path(context, rng)
        logger.info("Edit OK: insert_html")
        return OperationResult(True, "Inserted markup.")

    def insert_plain_text(self, context: EditorContext, text: str, is_paste: bool = False) -> OperationResult:
        """Insert *text* as one default block per line.

        Markup characters are escaped, runs of spaces are kept with
        non-breaking spaces and empty lines become blank blocks.
        """
        config = context.root.config
        open_block = "<" + config.block_tag
        for name, value in config.block_attributes.items():
            open_block += f' {name}="{html.escape(value)}"'
        open_block += ">"
        close_block = f"</{config.block_tag}>"

        lines = []
        for line in text.split("\n"):
            line = _REPEATED_SPACE.sub("&nbsp;", html.escape(line))
            lines.append(open_block + (line or "<br>") + close_block)
        return self.insert_html(context, "".join(lines), is_paste)

    def delete_selection(self, context: EditorContext) -> OperationResult:
        """Delete the selected content, fusing the first and last blocks."""
        logger.info("Edit: delete_selection")
        rng, noop = self._selection_or_noop(context, "delete_selection")
        if rng is None:
            return noop
        if rng.collapsed:
            logger.info("Edit noop: delete_selection collapsed")
            return OperationResult(False, "Nothing selected.")

        root = context.root
        try:
            self.undo_service(context).save_undo_state(context, rng)
            fragment = delete_contents_of_range(rng, root)
        except StructuralInvariantViolation as exc:
            return self._structural_failure(context, "delete_selection", exc)
        self._doc_was_changed(context)

        context.selection = rng
        self._update_path(context, rng)
        logger.info("Edit OK: delete_selection removed=%d", len(fragment.children))
        return OperationResult(True, "Deleted selection.", {"removed": len(fragment.children)})

    # -------------------------------------------------------------------------
    # Block operations
    # -------------------------------------------------------------------------

    def _split_block(self, root: EditingRoot, block: Element, node: Node, offset: int) -> Node:
        split_tag = self.TAG_AFTER_SPLIT.get(block.tag)
        split_attributes: Optional[Dict[str, str]] = None
        if split_tag is None:
            split_tag = root.config.block_tag
            split_attributes = root.config.block_attributes

        node_after_split = split(node, offset, block.parent, root)

        # Make sure the new block is the correct type
        if not has_tag_attributes(node_after_split, split_tag, split_attributes):
            replacement = Element(split_tag, dict(split_attributes or {}))
            direction = node_after_split.get_attribute("dir")  # type: ignore[union-attr]
            if direction:
                replacement.set_attribute("dir", direction)
            node_after_split.parent.replace_child(replacement, node_after_split)
            replacement.append_child(node_after_split.empty())  # type: ignore[union-attr]
            node_after_split = replacement
        return node_after_split

    def split_block(self, context: EditorContext) -> OperationResult:
        """Break the block at the cursor in two, as pressing Enter does.

        In a table cell (or outside any block) a ``br`` is inserted instead. An
        empty block inside a quote leaves the quote.
        """
        logger.info("Edit: split_block")
        rng, noop = self._selection_or_noop(context, "split_block")
        if rng is None:
            return noop

        root = context.root
        undo = self.undo_service(context)
        undo.record(context, rng)
        # No zero-width filler may count as content in an empty block
        self._remove_zws(root)
        get_range_and_remove_bookmark(root, rng)

        try:
            if not rng.collapsed:
                delete_contents_of_range(rng, root)

            block = get_start_block_of_range(rng, root)

            if block is None or block.node_name in ("td", "th"):
                anchor = get_nearest(rng.end_container, root, "a")
                if anchor is not None:
                    parent = anchor.parent
                    move_range_boundaries_up_tree(rng, parent, parent, root)
                    rng.collapse(False)
                insert_node_in_range(rng, root.create_element("br"))
                rng.collapse(False)
                self._doc_was_changed(context)
                context.selection = rng
                self._update_path(context, rng)
                logger.info("Edit OK: split_block line_break")
                return OperationResult(True, "Inserted line break.")

            list_item = get_nearest(block, root, "li")
            if list_item is not None:
                block = list_item

            if (
                list_item is None
                and is_empty_block(block)
                and get_nearest(block, root, "blockquote") is not None
            ):
                return self.decrease_quote_level(context)

            node_after_split = self._split_block(root, block, rng.start_container, rng.start_offset)

            # Clean up empty inlines left at the split point
            remove_zws(block)
            remove_empty_inlines(block)
            fix_cursor(block, root)

            # Move into leading inline formatting of the new block
            while isinstance(node_after_split, Element):
                child = node_after_split.first_child

                # Links do not continue over a block break
                if node_after_split.tag == "a" and node_after_split.text_content in ("", ZWS):
                    child = Text("")
                    node_after_split.parent.replace_child(child, node_after_split)
                    node_after_split = child
                    break

                while isinstance(child, Text) and not child.data:
                    following = child.next_sibling
                    if following is None or following.node_name == "br":
                        break
                    child.detach()
                    child = following

                if child is None or child.node_name == "br" or isinstance(child, Text):
                    break
                node_after_split = child
        except StructuralInvariantViolation as exc:
            return self._structural_failure(context, "split_block", exc)

        rng = Range(node_after_split, 0)
        self._doc_was_changed(context)
        context.selection = rng
        self._update_path(context, rng)
        logger.info("Edit OK: split_block")
        return OperationResult(True, "Split block.", {"tag": getattr(node_after_split, "tag", None)})

    def insert_element(self, context: EditorContext, element: Element) -> OperationResult:
        """Insert *element* at the cursor.

        Inline elements go in at the cursor. Block elements are inserted
        between blocks, splitting up to the root; a blank default block is
        added after an element inserted at the very end.
        """
        logger.info("Edit: insert_element tag=%s", element.tag)
        rng, noop = self._selection_or_noop(context, "insert_element")
        if rng is None:
            return noop

        root = context.root
        rng.collapse(True)
        try:
            if is_inline(element):
                insert_node_in_range(rng, element)
                rng.set_start_after(element)
            else:
                split_node: Node = get_start_block_of_range(rng, root) or root
                # While at the end of a container, move up the tree
                while split_node is not root and split_node.next_sibling is None:
                    split_node = split_node.parent
                node_after_split: Optional[Node] = None
                if split_node is not root:
                    node_after_split = split(split_node.parent, split_node.next_sibling, root, root)
                if node_after_split is not None:
                    root.insert_before(element, node_after_split)
                else:
                    root.append_child(element)
                    # Blank line below the inserted block
                    node_after_split = root.create_default_block()
                    root.append_child(node_after_split)
                rng.set_start(node_after_split, 0)
                rng.set_end(node_after_split, 0)
                move_range_boundaries_down_tree(rng)
        except StructuralInvariantViolation as exc:
            return self._structural_failure(context, "insert_element", exc)

        self._doc_was_changed(context)
        context.selection = rng
        self._update_path(context, rng)
        logger.info("Edit OK: insert_element tag=%s", element.tag)
        return OperationResult(True, f"Inserted <{element.tag}>.")

    def modify_blocks(
        self, context: EditorContext, modify: Callable[[Fragment], Node]
    ) -> OperationResult:
        """Extract the blocks touched by the selection, transform and reinsert them.

        Args:
            context: Editing context.
            modify: Receives the extracted blocks as a fragment and returns the
                node (or fragment) to put back in their place.

        Returns:
            OperationResult; the selection is restored around the same content.
        """
        logger.info("Edit: modify_blocks")
        rng, noop = self._selection_or_noop(context, "modify_blocks")
        if rng is None:
            return noop

        root = context.root
        undo = self.undo_service(context)
        # Checkpoint and bookmark the selection
        undo.record(context, rng, replace=undo.state is UndoState.CLEAN)

        try:
            expand_range_to_block_boundaries(rng, root)

            move_range_boundaries_up_tree(rng, root, root, root)
            fragment = extract_contents_of_range(rng, root, root)

            insert_node_in_range(rng, modify(fragment))

            # Merge containers at the edges
            end_children = rng.end_container.children
            if rng.end_offset < len(end_children):
                merge_containers(end_children[rng.end_offset], root)
            start_children = rng.start_container.children
            if rng.start_offset < len(start_children):
                merge_containers(start_children[rng.start_offset], root)
        except StructuralInvariantViolation as exc:
            get_range_and_remove_bookmark(root, rng)
            return self._structural_failure(context, "modify_blocks", exc)

        get_range_and_remove_bookmark(root, rng)
        self._doc_was_changed(context)
        context.selection = rng
        self._update_path(context, rng)
        logger.info("Edit OK: modify_blocks")
        return OperationResult(True, "Modified blocks.")

    def increase_quote_level(self, context: EditorContext) -> OperationResult:
        """Wrap the selected blocks in a ``blockquote``."""
        root = context.root

        def wrap(fragment: Fragment) -> Node:
            return root.create_element("blockquote", None, [fragment])

        return self.modify_blocks(context, wrap)

    def decrease_quote_level(self, context: EditorContext) -> OperationResult:
        """Unwrap the outermost ``blockquote`` around the selected blocks."""

        def unwrap(fragment: Fragment) -> Node:
            # Pick the outermost quotes before unwrapping any of them
            outermost = [
                node for node in fragment.iter_descendants()
                if isinstance(node, Element)
                and node.tag == "blockquote"
                and get_nearest(node.parent, fragment, "blockquote") is None
            ]
            for quote in outermost:
                quote.parent.replace_child(quote.empty(), quote)
            return fragment

        return self.modify_blocks(context, unwrap)

    def remove_block_quote(self, context: EditorContext) -> OperationResult:
        """Replace the selected blocks with a single empty default block.

        Used to leave a quote from an empty line: the quoted blocks are
        dropped and the cursor ends up in the new block.
        """
        root = context.root

        def replace(fragment: Fragment) -> Node:
            return root.create_block([
                root.create_element("input", {"id": START_SELECTION_ID, "type": "hidden"}),
                root.create_element("input", {"id": END_SELECTION_ID, "type": "hidden"}),
            ])

        result = self.modify_blocks(context, replace)
        if result.success:
            block = get_start_block_of_range(context.selection, root)
            if block is not None:
                fix_cursor(block, root)
        return result

    # -------------------------------------------------------------------------
    # Lists
    # -------------------------------------------------------------------------

    def _make_list(self, root: EditingRoot, fragment: Fragment, list_tag: str) -> Fragment:
        walker = get_block_walker(fragment, fragment)
        node = walker.next_node()
        while node is not None:
            if node.parent.node_name == "li":
                node = node.parent
                walker.current_node = node.last_child
            if node.node_name != "li":
                item = root.create_element("li")
                direction = node.get_attribute("dir")
                if direction:
                    item.set_attribute("dir", direction)

                # Extend the list created for the previous block
                previous = node.previous_sibling
                if previous is not None and previous.node_name == list_tag:
                    previous.append_child(item)
                    node.detach()
                else:
                    node.parent.replace_child(root.create_element(list_tag, None, [item]), node)
                item.append_child(node.empty())
                walker.current_node = item
            else:
                node = node.parent
                if node.node_name != list_tag and node.node_name in ("ol", "ul"):
                    node.parent.replace_child(
                        root.create_element(list_tag, None, [node.empty()]), node
                    )
            node = walker.next_node()
        return fragment

    def make_unordered_list(self, context: EditorContext) -> OperationResult:
        """Turn the selected blocks into ``ul`` items."""
        return self.modify_blocks(context, lambda fragment: self._make_list(context.root, fragment, "ul"))

    def make_ordered_list(self, context: EditorContext) -> OperationResult:
        """Turn the selected blocks into ``ol`` items."""
        return self.modify_blocks(context, lambda fragment: self._make_list(context.root, fragment, "ol"))

    def remove_list(self, context: EditorContext) -> OperationResult:
        """Turn the selected list items back into default blocks."""
        root = context.root

        def unlist(fragment: Fragment) -> Node:
            lists = [node for node in fragment.iter_descendants() if node.node_name in ("ol", "ul")]
            items = [node for node in fragment.iter_descendants() if node.node_name == "li"]
            for list_node in lists:
                contents = list_node.empty()
                fix_container(contents, root)
                list_node.parent.replace_child(contents, list_node)
            for item in items:
                if is_block(item):
                    item.parent.replace_child(root.create_default_block([item.empty()]), item)
                else:
                    fix_container(item, root)
                    item.parent.replace_child(item.empty(), item)
            return fragment

        return self.modify_blocks(context, unlist)

    @staticmethod
    def _get_list_selection(rng: Range, root: Node):
        """Return ``(list, start_item, end_item)`` for *rng*, or None outside a list."""
        list_node: Optional[Node] = rng.common_ancestor
        while list_node is not None and list_node is not root and list_node.node_name not in ("ol", "ul"):
            list_node = list_node.parent
        if list_node is None or list_node is root:
            return None

        start_item: Optional[Node] = rng.start_container
        end_item: Optional[Node] = rng.end_container
        if start_item is list_node:
            children = list_node.children
            start_item = children[rng.start_offset] if rng.start_offset < len(children) else None
        if end_item is list_node:
            children = list_node.children
            end_item = children[rng.end_offset] if rng.end_offset < len(children) else None
        while start_item is not None and start_item.parent is not list_node:
            start_item = start_item.parent
        while end_item is not None and end_item.parent is not list_node:
            end_item = end_item.parent
        return list_node, start_item, end_item

    def _finish_list_edit(self, context: EditorContext, rng: Range, operation: str) -> OperationResult:
        get_range_and_remove_bookmark(context.root, rng)
        self._doc_was_changed(context)
        context.selection = rng
        self._update_path(context, rng)
        logger.info("Edit OK: %s", operation)
        return OperationResult(True, "Changed list level.")

    def increase_list_level(self, context: EditorContext) -> OperationResult:
        """Nest the selected list items one level deeper.

        The first item of a list cannot be indented; nothing happens then.
        """
        logger.info("Edit: increase_list_level")
        rng, noop = self._selection_or_noop(context, "increase_list_level")
        if rng is None:
            return noop

        root = context.root
        selection = self._get_list_selection(rng, root)
        if selection is None:
            logger.info("Edit noop: increase_list_level not_in_list")
            return OperationResult(False, "Selection is not in a list.")
        list_node, start_item, end_item = selection
        if start_item is None or start_item is list_node.first_child:
            logger.info("Edit noop: increase_list_level first_item")
            return OperationResult(False, "The first item of a list cannot be indented.")

        undo = self.undo_service(context)
        try:
            undo.record(context, rng, replace=undo.state is UndoState.CLEAN)
            new_parent = start_item.previous_sibling
            if new_parent.node_name != list_node.node_name:
                new_parent = root.create_element(list_node.node_name)
                list_node.insert_before(new_parent, start_item)
            item: Optional[Node] = start_item
            while item is not None:
                following = None if item is end_item else item.next_sibling
                new_parent.append_child(item)
                item = following
            following = new_parent.next_sibling
            if following is not None:
                merge_containers(following, root)
        except StructuralInvariantViolation as exc:
            get_range_and_remove_bookmark(root, rng)
            return self._structural_failure(context, "increase_list_level", exc)

        return self._finish_list_edit(context, rng, "increase_list_level")

    def decrease_list_level(self, context: EditorContext) -> OperationResult:
        """Move the selected list items one level up.

        Items leaving a top-level list become default blocks.
        """
        logger.info("Edit: decrease_list_level")
        rng, noop = self._selection_or_noop(context, "decrease_list_level")
        if rng is None:
            return noop

        root = context.root
        selection = self._get_list_selection(rng, root)
        if selection is None:
            logger.info("Edit noop: decrease_list_level not_in_list")
            return OperationResult(False, "Selection is not in a list.")
        list_node, start_item, end_item = selection
        if start_item is None:
            start_item = list_node.first_child
        if end_item is None:
            end_item = list_node.last_child

        undo = self.undo_service(context)
        try:
            undo.record(context, rng, replace=undo.state is UndoState.CLEAN)
            new_parent = list_node.parent
            # Split the list after the last selected item
            if end_item.next_sibling is None:
                insert_before = list_node.next_sibling
            else:
                insert_before = split(list_node, end_item.next_sibling, new_parent, root)

            if new_parent is not root and new_parent.node_name == "li":
                new_parent = new_parent.parent
                while insert_before is not None:
                    following = insert_before.next_sibling
                    end_item.append_child(insert_before)
                    insert_before = following
                insert_before = list_node.parent.next_sibling

            make_not_list = new_parent.node_name not in ("ol", "ul")
            item: Optional[Node] = start_item
            while item is not None:
                following = None if item is end_item else item.next_sibling
                list_node.remove_child(item)
                if make_not_list and item.node_name == "li":
                    item = root.create_default_block([item.empty()])
                new_parent.insert_before(item, insert_before)
                item = following

            if list_node.first_child is None:
                list_node.detach()
            if insert_before is not None:
                merge_containers(insert_before, root)
        except StructuralInvariantViolation as exc:
            get_range_and_remove_bookmark(root, rng)
            return self._structural_failure(context, "decrease_list_level", exc)

        return self._finish_list_edit(context, rng, "decrease_list_level")

    # -------------------------------------------------------------------------
    # Inline formatting
    # -------------------------------------------------------------------------

    def has_format(
        self,
        context: EditorContext,
        tag: str,
        attributes: Optional[Dict[str, str]] = None,
        rng: Optional[Range] = None,
    ) -> bool:
        """Return True when all the text in the selection is inside *tag*.

        Matching is on tag name and attributes only, so ``strong`` does not
        count as ``b``.
        """
        root = context.root
        tag = tag.lower()
        if rng is None:
            try:
                rng = self.get_selection(context)
            except EmptyQuery:
                return False
        rng = rng.clone()

        # Ignore boundaries sitting at the outer edge of a text node
        start_container = rng.start_container
        if (
            not rng.collapsed
            and isinstance(start_container, Text)
            and rng.start_offset == start_container.length
            and start_container.next_sibling is not None
        ):
            rng.set_start_before(start_container.next_sibling)
        end_container = rng.end_container
        if (
            not rng.collapsed
            and isinstance(end_container, Text)
            and rng.end_offset == 0
            and end_container.previous_sibling is not None
        ):
            rng.set_end_after(end_container.previous_sibling)

        common = rng.common_ancestor
        if get_nearest(common, root, tag, attributes) is not None:
            return True
        if isinstance(common, Text):
            return False

        walker = TreeWalker(common, SHOW_TEXT, lambda node: is_node_contained_in_range(rng, node, True))
        seen = False
        for node in walker:
            if get_nearest(node, root, tag, attributes) is None:
                return False
            seen = True
        return seen

    def _add_format(
        self, root: EditingRoot, tag: str, attributes: Dict[str, str], rng: Range
    ) -> Range:
        if rng.collapsed:
            # Empty element holding the cursor, filled by the next insertion
            element = fix_cursor(root.create_element(tag, attributes), root)
            insert_node_in_range(rng, element)
            filler = element.first_child
            rng.set_start(filler, filler.length)
            rng.collapse(True)

            block: Node = element
            while is_inline(block):
                block = block.parent
            remove_zws(block, element)
            return rng

        start_container, start_offset, end_container, end_offset = rng.boundaries()

        def wants_format(node: Node) -> bool:
            if isinstance(node, Text):
                # Text touching the range from outside has nothing selected
                if node is end_container and end_offset == 0:
                    return False
                if node is start_container and start_offset == node.length:
                    return False
            elif node.node_name not in ("br", "img"):
                return False
            return is_node_contained_in_range(rng, node, True)

        # Collect first: wrapping changes the tree under the walker
        common = rng.common_ancestor
        if isinstance(common, Text):
            targets = [common] if wants_format(common) else []
        else:
            targets = list(TreeWalker(common, SHOW_TEXT | SHOW_ELEMENT, wants_format))
        if not targets:
            return rng

        for index, node in enumerate(targets):
            if get_nearest(node, root, tag, attributes) is not None:
                continue
            if isinstance(node, Text):
                if node is end_container and node.length > end_offset:
                    node.split_text(end_offset)
                if node is start_container and start_offset:
                    node = node.split_text(start_offset)
                    if end_container is start_container:
                        end_container = node
                        end_offset -= start_offset
                    start_container = node
                    start_offset = 0
                    targets[index] = node
            wrapper = root.create_element(tag, attributes)
            node.parent.replace_child(wrapper, node)
            wrapper.append_child(node)

        first, last = targets[0], targets[-1]
        if start_container is not first:
            if isinstance(first, Text):
                start_container, start_offset = first, 0
            else:
                start_container, start_offset = first.parent, first.index
        if end_container is not last:
            if isinstance(last, Text):
                end_container, end_offset = last, last.length
            else:
                end_container, end_offset = last.parent, last.index + 1

        formatted = Range(start_container, start_offset)
        formatted.set_end(end_container, end_offset)
        return formatted

    def _remove_format(
        self,
        root: EditingRoot,
        tag: str,
        attributes: Dict[str, str],
        rng: Range,
        partial: bool,
    ) -> Range:
        save_range_to_bookmark(rng)

        # The selection needs a node to break the surrounding formatting at
        fixer: Optional[Text] = None
        if rng.collapsed:
            if root.config.cant_focus_empty_text_nodes:
                fixer = Text(ZWS)
                root.note_filler_added()
            else:
                fixer = Text("")
            insert_node_in_range(rng, fixer)

        block = rng.common_ancestor
        while is_inline(block):
            block = block.parent

        start_container, start_offset, end_container, end_offset = rng.boundaries()
        to_wrap: List[tuple] = []

        def examine(node: Node, exemplar: Element) -> None:
            # Fully selected content loses the format entirely
            if is_node_contained_in_range(rng, node, False):
                return
            is_text = isinstance(node, Text)
            if not is_node_contained_in_range(rng, node, True):
                # Bookmark markers and empty text stay unwrapped
                if node.node_name != "input" and (not is_text or node.data):
                    to_wrap.append((exemplar, node))
                return
            if is_text:
                if node is end_container and end_offset != node.length:
                    to_wrap.append((exemplar, node.split_text(end_offset)))
                if node is start_container and start_offset:
                    node.split_text(start_offset)
                    to_wrap.append((exemplar, node))
            else:
                for child in list(node.children):
                    examine(child, exemplar)

        format_tags = [
            node for node in block.iter_descendants()
            if has_tag_attributes(node, tag, attributes)
            and is_node_contained_in_range(rng, node, True)
        ]
        if not partial:
            for element in format_tags:
                examine(element, element)

        # Re-apply the format to the unselected parts
        for exemplar, node in to_wrap:
            wrapper = exemplar.clone(deep=False)
            node.parent.replace_child(wrapper, node)
            wrapper.append_child(node)
        for element in format_tags:
            element.parent.replace_child(element.empty(), element)

        get_range_and_remove_bookmark(root, rng)
        if fixer is not None:
            rng.collapse(False)
        merge_inlines(block, rng)
        return rng

    def change_format(
        self,
        context: EditorContext,
        add: Optional[Dict[str, Any]] = None,
        remove: Optional[Dict[str, Any]] = None,
        partial: bool = False,
    ) -> OperationResult:
        """Remove and/or add an inline format on the selection.

        Args:
            context: Editing context.
            add: ``{"tag": ..., "attributes": {...}}`` to wrap the selected
                text in, or None.
            remove: Format to strip from the selection, or None. Text of a
                removed element that lies outside the selection keeps it.
            partial: With *remove*, only unwrap the elements without
                re-applying the format outside the selection.

        Returns:
            OperationResult; the selection covers the same text afterwards.
        """
        logger.info(
            "Edit: change_format add=%s remove=%s",
            add.get("tag") if add else None,
            remove.get("tag") if remove else None,
        )
        rng, noop = self._selection_or_noop(context, "change_format")
        if rng is None:
            return noop

        root = context.root
        try:
            self.undo_service(context).save_undo_state(context, rng)
            if remove:
                rng = self._remove_format(
                    root, remove["tag"].lower(), remove.get("attributes") or {}, rng, partial
                )
            if add:
                rng = self._add_format(root, add["tag"].lower(), add.get("attributes") or {}, rng)
        except StructuralInvariantViolation as exc:
            return self._structural_failure(context, "change_format", exc)

        self._doc_was_changed(context)
        context.selection = rng
        self._update_path(context, rng)
        logger.info("Edit OK: change_format")
        return OperationResult(True, "Changed format.")

    def insert_image(
        self, context: EditorContext, src: str, attributes: Optional[Dict[str, str]] = None
    ) -> OperationResult:
        """Insert an ``img`` with *src* (and extra *attributes*) at the cursor."""
        image_attributes = {"src": src}
        image_attributes.update(attributes or {})
        image = context.root.create_element("img", image_attributes)
        result = self.insert_element(context, image)
        if result.success:
            return OperationResult(True, result.message, {"element": image})
        return result

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def save_undo_state(self, context: EditorContext) -> OperationResult:
        rng, noop = self._selection_or_noop(context, "save_undo_state")
        if rng is None:
            return noop
        self.undo_service(context).save_undo_state(context, rng)
        return OperationResult(True, "Checkpoint saved.")

    def undo(self, context: EditorContext) -> OperationResult:
        logger.info("Edit: undo")
        undo = self.undo_service(context)
        if not undo.can_undo():
            logger.info("Edit noop: undo at_oldest")
            return OperationResult(False, "Nothing to undo.")
        rng = undo.undo(context)
        self._after_history_move(context, rng)
        logger.info("Edit OK: undo")
        return OperationResult(True, "Undone.")

    def redo(self, context: EditorContext) -> OperationResult:
        logger.info("Edit: redo")
        undo = self.undo_service(context)
        if not undo.can_redo():
            logger.info("Edit noop: redo at_newest")
            return OperationResult(False, "Nothing to redo.")
        rng = undo.redo(context)
        self._after_history_move(context, rng)
        logger.info("Edit OK: redo")
        return OperationResult(True, "Redone.")

    def _after_history_move(self, context: EditorContext, rng: Optional[Range]) -> None:
        undo = self.undo_service(context)
        if rng is not None:
            context.selection = rng
        self._fire("undo_state_change", {"can_undo": undo.can_undo(), "can_redo": undo.can_redo()})
        self._fire("input")
        if rng is not None:
            self._update_path(context, rng)
