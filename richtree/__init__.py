"""Top-level package of the richtree editing engine.

The engine keeps a mutable tree of content nodes, a range model over it and
the surgery needed to split, merge, extract and insert content while keeping
the tree editable. Hosts should depend on the API re-exported here rather
than importing internal modules directly.
"""

from .core.models import EditingRoot, EditorConfig, EditorContext  # re-export for convenience
from .core.range import Range
from .core.services import EditingService, OperationResult, UndoService

__all__: list[str] = [
    "EditingRoot",
    "EditorConfig",
    "EditorContext",
    "Range",
    "EditingService",
    "OperationResult",
    "UndoService",
]
