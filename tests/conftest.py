"""Shared fixtures for the richtree test-suite.

Documents are built from markup with :func:`parse_fragment` so that tests
read like the trees they exercise; no cleaning or filler is applied, the tree
is exactly what the markup says.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from richtree.core.markup import parse_fragment, serialize
from richtree.core.models import EditingRoot, EditorConfig, EditorContext
from richtree.core.nodes import Element, ParentNode, Text

# Configure test logging
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def build_root(markup: str, config: Optional[EditorConfig] = None, error_reporter=None) -> EditingRoot:
    root = EditingRoot(config=config, error_reporter=error_reporter)
    root.append_child(parse_fragment(markup))
    return root


def find_text(node: ParentNode, data: str) -> Text:
    """Return the first text node below *node* whose data equals *data*."""
    for descendant in node.iter_descendants():
        if isinstance(descendant, Text) and descendant.data == data:
            return descendant
    raise AssertionError(f"No text node {data!r} in {serialize(node)!r}")


def find_tag(node: ParentNode, tag: str, position: int = 0) -> Element:
    matches = [
        descendant for descendant in node.iter_descendants()
        if isinstance(descendant, Element) and descendant.tag == tag
    ]
    if len(matches) <= position:
        raise AssertionError(f"No <{tag}> #{position} in {serialize(node)!r}")
    return matches[position]


@pytest.fixture
def make_root():
    """Factory building an :class:`EditingRoot` from markup."""
    return build_root


@pytest.fixture
def root():
    return EditingRoot()


@pytest.fixture
def reported_errors():
    """List collecting ``(kind, context)`` pairs from an error reporter."""
    return []


@pytest.fixture
def make_context(reported_errors):
    def factory(markup: str = "", config: Optional[EditorConfig] = None) -> EditorContext:
        def reporter(kind, details):
            reported_errors.append((kind, details))

        return EditorContext(root=build_root(markup, config, reporter))

    return factory


@pytest.fixture
def as_html():
    return serialize


@pytest.fixture
def text_of():
    return find_text


@pytest.fixture
def tag_of():
    return find_tag


@pytest.fixture
def user_config_dir(tmp_path, monkeypatch):
    """Point the config manager at an empty override directory and reset it."""
    from richtree.config import ConfigManager
    from richtree.config.manager import CONFIG_DIR_ENV

    config_dir = tmp_path / "config"
    config_dir.mkdir()
    monkeypatch.setenv(CONFIG_DIR_ENV, str(config_dir))
    monkeypatch.setattr(ConfigManager, "_instance", None)
    return config_dir
