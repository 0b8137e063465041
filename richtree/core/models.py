from __future__ import annotations

"""Shared data structures used across the richtree core.

This module is intentionally free of I/O so that the contained objects can
be reused in any context (unit-tests, services, host editors). Settings come
in as plain mappings; :meth:`EditorConfig.load` is the only bridge to the
YAML configuration.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from richtree.config import ConfigManager
from richtree.core.exceptions import ErrorKind
from richtree.core.nodes import Element, Node
from richtree.core.range import Range
from richtree.core.surgery import fix_cursor

__all__ = ["EditorConfig", "EditingRoot", "EditorContext", "ErrorReporter"]

logger = logging.getLogger(__name__)

ErrorReporter = Callable[[ErrorKind, Dict[str, Any]], None]


@dataclass
class EditorConfig:
    """Editor settings.

    Attributes
    ----------
    block_tag
        Tag of the element created whenever a new empty block is needed.
    block_attributes
        Attributes given to every default block.
    tag_attributes
        Per-tag attributes applied by :meth:`EditingRoot.create_element`.
    document_size_threshold
        Snapshot size (UTF-8 bytes) above which undo trimming kicks in; -1
        disables trimming.
    undo_limit
        Number of undo entries kept once the threshold is exceeded; -1 means
        unlimited.
    cant_focus_empty_text_nodes
        Fill empty inline elements with a zero-width space instead of an empty
        text node.
    use_text_fixer
        Fill empty blocks with a text node instead of a ``br``.
    """

    block_tag: str = "div"
    block_attributes: Dict[str, str] = field(default_factory=dict)
    tag_attributes: Dict[str, Dict[str, str]] = field(default_factory=dict)
    document_size_threshold: int = -1
    undo_limit: int = -1
    cant_focus_empty_text_nodes: bool = False
    use_text_fixer: bool = False

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "EditorConfig":
        """Build a config from the ``editor.yml`` layout; unknown keys are ignored."""
        data = data or {}
        undo = data.get("undo") or {}
        filler = data.get("filler") or {}
        tag_attributes = {
            str(tag).lower(): {str(k): str(v) for k, v in (attrs or {}).items()}
            for tag, attrs in (data.get("tag_attributes") or {}).items()
        }
        return cls(
            block_tag=str(data.get("block_tag") or "div").lower(),
            block_attributes={str(k): str(v) for k, v in (data.get("block_attributes") or {}).items()},
            tag_attributes=tag_attributes,
            document_size_threshold=int(undo.get("document_size_threshold", -1)),
            undo_limit=int(undo.get("undo_limit", -1)),
            cant_focus_empty_text_nodes=bool(filler.get("cant_focus_empty_text_nodes", False)),
            use_text_fixer=bool(filler.get("use_text_fixer", False)),
        )

    @classmethod
    def load(cls) -> "EditorConfig":
        """Build a config from the packaged ``editor.yml`` merged with user overrides."""
        return cls.from_mapping(ConfigManager().get_editor_config())


class EditingRoot(Element):
    """Root element of an editable document.

    Besides being the tree root it carries the editor settings, the default
    block factory and the error reporter used by the surgery code.

    Parameters
    ----------
    config : EditorConfig, optional
        Settings; the built-in defaults are used when omitted. The YAML
        files are only read when the caller passes ``EditorConfig.load()``.
    error_reporter : callable, optional
        ``(ErrorKind, dict) -> None`` called for every recovered error.
        Errors are always logged as well.
    tag : str
        Tag of the root element itself.
    """

    def __init__(
        self,
        config: Optional[EditorConfig] = None,
        error_reporter: Optional[ErrorReporter] = None,
        tag: str = "div",
        children: Optional[Sequence[Node]] = None,
    ) -> None:
        self.config = config or EditorConfig()
        self.error_reporter = error_reporter
        # Set when a zero-width filler was added; cleared by the editing service
        self.has_filler = False
        super().__init__(tag, None, children)

    def report_error(self, kind: ErrorKind, context: Dict[str, Any]) -> None:
        logger.error("Recovered %s: %s", kind.value, context)
        if self.error_reporter is not None:
            self.error_reporter(kind, context)

    def note_filler_added(self) -> None:
        self.has_filler = True

    def create_element(
        self,
        tag: str,
        attributes: Optional[Dict[str, str]] = None,
        children: Optional[Sequence[Node]] = None,
    ) -> Element:
        """Create an element with the configured attributes for *tag* applied."""
        merged = dict(self.config.tag_attributes.get(tag.lower(), {}))
        merged.update(attributes or {})
        return Element(tag, merged, children)

    def create_block(self, children: Optional[Sequence[Node]] = None) -> Element:
        """Create a default block without filler content."""
        return Element(self.config.block_tag, dict(self.config.block_attributes), children)

    def create_default_block(self, children: Optional[Sequence[Node]] = None) -> Element:
        """Create a default block, filled so that it can hold the cursor."""
        return fix_cursor(self.create_block(children), self)  # type: ignore[return-value]

    def __repr__(self) -> str:
        return f"EditingRoot({self.tag!r}, children={len(self.children)})"


@dataclass
class EditorContext:
    """Live editing state handled by the services.

    Attributes
    ----------
    root
        The document being edited.
    selection
        Current range, or None when nothing is selected yet.
    path
        Path string of the node at the selection (see
        :func:`richtree.core.classifier.get_path`).
    """

    root: EditingRoot = field(default_factory=EditingRoot)
    selection: Optional[Range] = None
    path: str = ""
