from __future__ import annotations

"""Undo/redo checkpoint management for an :class:`EditorContext`.

This service performs pure in-memory history tracking of the document held
by an editing root. Each checkpoint is the serialised markup of the whole
tree with the selection embedded as a bookmark, so restoring a checkpoint
also restores the selection it was taken with.

Design principles
-----------------
- No I/O; snapshots are immutable strings once stored.
- One linear stack with a pointer: recording after an undo truncates the
  redo tail.
- Two states: ``CLEAN`` (nothing changed since the last checkpoint) and
  ``DIRTY``. ``record`` is ignored while clean unless it replaces the current
  entry, which coalesces bursts of small edits into one checkpoint.
- Memory is bounded by an optional size threshold and entry limit (trim
  oldest).

Examples
--------
>>> service = UndoService()
>>> service.save_undo_state(context)   # baseline
>>> # ... mutate context.root ...
>>> service.mark_dirty()
>>> rng = service.undo(context)        # restores the baseline
"""

import logging
from enum import Enum
from typing import List, Optional

from richtree.core.bookmark import get_range_and_remove_bookmark, save_range_to_bookmark
from richtree.core.markup import parse_fragment, serialize
from richtree.core.models import EditorConfig, EditorContext
from richtree.core.range import Range
from richtree.core.surgery import fix_cursor
from richtree.core.tree_walker import get_next_block

__all__ = ["UndoState", "UndoService"]

logger = logging.getLogger(__name__)


class UndoState(Enum):
    CLEAN = "clean"
    DIRTY = "dirty"


class UndoService:
    """Manage the checkpoint stack of one editor.

    Parameters
    ----------
    document_size_threshold : int, default=-1
        Snapshot size in UTF-8 bytes above which the oldest entries are
        trimmed. -1 disables trimming.
    undo_limit : int, default=-1
        Number of entries kept when trimming. -1 means unlimited.
    """

    def __init__(self, document_size_threshold: int = -1, undo_limit: int = -1) -> None:
        self._document_size_threshold = int(document_size_threshold)
        self._undo_limit = int(undo_limit)
        self._stack: List[str] = []
        self._index: int = -1
        self._state = UndoState.DIRTY

    @classmethod
    def from_config(cls, config: EditorConfig) -> "UndoService":
        return cls(config.document_size_threshold, config.undo_limit)

    # --------------------------------------------------------------------- API

    @property
    def state(self) -> UndoState:
        return self._state

    def can_undo(self) -> bool:
        """Return True if an undo operation is currently possible."""
        return self._index > 0 or (self._index == 0 and self._state is UndoState.DIRTY)

    def can_redo(self) -> bool:
        """Return True if a redo operation is currently possible."""
        return self._state is UndoState.CLEAN and self._index + 1 < len(self._stack)

    def record(self, context: EditorContext, rng: Optional[Range], replace: bool = False) -> bool:
        """Store a checkpoint of ``context.root``.

        The bookmark inserted for *rng* is left in the document; callers
        remove it with :func:`~richtree.core.bookmark.get_range_and_remove_bookmark`.

        Parameters
        ----------
        context : EditorContext
            Context whose document is captured.
        rng : Range or None
            Selection to embed in the checkpoint.
        replace : bool
            Overwrite the current entry instead of pushing a new one.

        Returns
        -------
        bool
            True if a checkpoint was stored.
        """
        if self._state is UndoState.CLEAN and not replace:
            return False

        index = self._index
        if not replace:
            index += 1
        index = max(index, 0)

        # Drop the redo tail (and the entry being replaced)
        if index < len(self._stack):
            del self._stack[index:]

        if rng is not None:
            save_range_to_bookmark(rng)
        markup = serialize(context.root)

        threshold = self._document_size_threshold
        limit = self._undo_limit
        if threshold > -1 and len(markup.encode("utf-8")) > threshold:
            if limit > -1 and index > limit:
                del self._stack[0:index - limit]
                index = limit
                logger.debug("Undo history trimmed to %d entries", limit)

        self._stack.append(markup)
        self._index = index
        self._state = UndoState.CLEAN
        logger.debug("Undo checkpoint %d recorded (replace=%s)", index, replace)
        return True

    def save_undo_state(self, context: EditorContext, rng: Optional[Range] = None) -> None:
        """Record a checkpoint and leave the document without bookmark.

        The current entry is replaced when nothing changed since it was taken.
        """
        if rng is None:
            rng = context.selection
        self.record(context, rng, replace=self._state is UndoState.CLEAN)
        get_range_and_remove_bookmark(context.root, rng)

    def mark_dirty(self) -> bool:
        """Note that the document changed; return True on a CLEAN -> DIRTY transition."""
        if self._state is UndoState.CLEAN:
            self._state = UndoState.DIRTY
            return True
        return False

    def undo(self, context: EditorContext) -> Optional[Range]:
        """Restore the previous checkpoint into ``context.root``.

        A pending dirty edit is recorded first so that it can be redone.

        Returns
        -------
        Optional[Range]
            The selection stored with the restored checkpoint, or None when
            nothing was undone or the checkpoint carried no selection.
        """
        if not self.can_undo():
            return None

        # Make sure any changes since the last checkpoint are saved
        self.record(context, context.selection, replace=False)

        self._index -= 1
        rng = self._restore(context, self._stack[self._index])
        self._state = UndoState.CLEAN
        logger.debug("Undo to checkpoint %d", self._index)
        return rng

    def redo(self, context: EditorContext) -> Optional[Range]:
        """Re-apply the checkpoint that was undone last."""
        if not self.can_redo():
            return None
        self._index += 1
        rng = self._restore(context, self._stack[self._index])
        logger.debug("Redo to checkpoint %d", self._index)
        return rng

    def reset(self) -> None:
        """Clear the whole history."""
        self._stack.clear()
        self._index = -1
        self._state = UndoState.DIRTY

    # --------------------------------------------------------------- Internals

    def _restore(self, context: EditorContext, markup: str) -> Optional[Range]:
        root = context.root
        root.empty()
        root.append_child(parse_fragment(markup))
        node = root
        while node is not None:
            fix_cursor(node, root)
            node = get_next_block(node, root)
        return get_range_and_remove_bookmark(root)
