import pytest

from richtree.core.markup import serialize
from richtree.core.models import EditorConfig
from richtree.core.range import Range
from richtree.core.services import UndoService, UndoState


@pytest.fixture
def context(make_context):
    return make_context("<div>abc</div>")


def _text(context):
    return context.root.first_child.first_child


def test_initial_state(undo_service):
    assert undo_service.state is UndoState.DIRTY
    assert not undo_service.can_undo()
    assert not undo_service.can_redo()


def test_from_config():
    service = UndoService.from_config(EditorConfig(document_size_threshold=10, undo_limit=2))
    assert service._document_size_threshold == 10
    assert service._undo_limit == 2


def test_save_records_baseline_and_leaves_no_bookmark(context, undo_service):
    undo_service.save_undo_state(context, Range(_text(context), 1))

    assert undo_service.state is UndoState.CLEAN
    assert serialize(context.root) == "<div>abc</div>"
    assert not undo_service.can_undo()
    assert not undo_service.can_redo()


def test_record_is_ignored_while_clean(context, undo_service):
    undo_service.save_undo_state(context)
    assert undo_service.record(context, None) is False
    assert undo_service.record(context, None, replace=True) is True


def test_mark_dirty_reports_transition_once(context, undo_service):
    undo_service.save_undo_state(context)
    assert undo_service.mark_dirty() is True
    assert undo_service.mark_dirty() is False
    assert undo_service.can_undo()


def test_undo_and_redo_restore_document_and_selection(context, undo_service):
    text = _text(context)
    context.selection = Range(text, 1)
    undo_service.save_undo_state(context)

    text.data = "abcX"
    undo_service.mark_dirty()

    rng = undo_service.undo(context)
    assert serialize(context.root) == "<div>abc</div>"
    assert rng.collapsed
    assert rng.start_container.data == "abc"
    assert rng.start_offset == 1
    assert not undo_service.can_undo()
    assert undo_service.can_redo()

    rng = undo_service.redo(context)
    assert serialize(context.root) == "<div>abcX</div>"
    assert (rng.start_container.data, rng.start_offset) == ("abcX", 1)
    assert undo_service.can_undo()
    assert not undo_service.can_redo()


def test_undo_and_redo_at_the_ends_return_none(context, undo_service):
    assert undo_service.undo(context) is None
    undo_service.save_undo_state(context)
    assert undo_service.redo(context) is None
    assert serialize(context.root) == "<div>abc</div>"


def test_new_checkpoint_after_undo_drops_redo_tail(context, undo_service):
    undo_service.save_undo_state(context)
    _text(context).data = "one"
    undo_service.mark_dirty()
    undo_service.undo(context)
    assert undo_service.can_redo()

    _text(context).data = "two"
    undo_service.mark_dirty()
    undo_service.save_undo_state(context)

    assert not undo_service.can_redo()
    undo_service.undo(context)
    assert serialize(context.root) == "<div>abc</div>"


def test_save_while_clean_replaces_current_entry(context, undo_service):
    undo_service.save_undo_state(context)
    _text(context).data = "changed"
    # no mark_dirty: the current checkpoint is overwritten
    undo_service.save_undo_state(context)

    assert not undo_service.can_undo()
    undo_service.mark_dirty()
    undo_service.undo(context)
    assert serialize(context.root) == "<div>changed</div>"


def test_history_is_trimmed_above_size_threshold(context):
    service = UndoService(document_size_threshold=0, undo_limit=2)
    for value in ("0", "1", "2", "3"):
        _text(context).data = value
        service.mark_dirty()
        service.save_undo_state(context)

    undone = 0
    while service.can_undo():
        service.undo(context)
        undone += 1

    assert undone == 2
    assert serialize(context.root) == "<div>1</div>"


def test_threshold_counts_utf8_bytes(make_context):
    # 14 characters but 17 bytes
    context = make_context("<div>ééé</div>")
    service = UndoService(document_size_threshold=16, undo_limit=0)
    service.save_undo_state(context)
    service.mark_dirty()
    service.save_undo_state(context)
    assert not service.can_undo()

    context = make_context("<div>abc</div>")
    service = UndoService(document_size_threshold=16, undo_limit=0)
    service.save_undo_state(context)
    service.mark_dirty()
    service.save_undo_state(context)
    assert service.can_undo()


def test_reset(context, undo_service):
    undo_service.save_undo_state(context)
    undo_service.mark_dirty()
    undo_service.reset()

    assert undo_service.state is UndoState.DIRTY
    assert not undo_service.can_undo()
    assert not undo_service.can_redo()
