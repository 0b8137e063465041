from __future__ import annotations

"""High-level editing services.

Services operate on an :class:`~richtree.core.models.EditorContext` and are
instantiated directly; the editing service creates its own undo history when
none is injected.
"""

from .editing_service import EditingService, OperationResult  # noqa: F401
from .undo_service import UndoService, UndoState  # noqa: F401

__all__: list[str] = [
    "EditingService",
    "OperationResult",
    "UndoService",
    "UndoState",
]
