import os
import sys

import pytest

# Ensure project root is importable when running pytest from repository root
_THIS_DIR = os.path.dirname(__file__)
_REPO_ROOT = os.path.abspath(os.path.join(_THIS_DIR, "..", "..", ".."))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)

from richtree.core.services import EditingService, UndoService
from richtree.core.services.editing_service import EVENT_TYPES


@pytest.fixture
def undo_service():
    return UndoService()


@pytest.fixture
def editing_service(undo_service):
    return EditingService(undo_service)


@pytest.fixture
def events(editing_service):
    """Record every event fired by the editing service as ``(type, payload)``."""
    received = []
    for event in EVENT_TYPES:
        editing_service.add_event_listener(event, lambda payload: received.append((payload["type"], payload)))
    return received


@pytest.fixture
def loaded(make_context, editing_service):
    """Factory: a context whose document was replaced through ``set_html``."""
    def factory(markup: str, config=None):
        context = make_context("", config)
        result = editing_service.set_html(context, markup)
        assert result.success
        return context

    return factory
