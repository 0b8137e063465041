import logging

from richtree.core.bookmark import (
    END_SELECTION_ID,
    START_SELECTION_ID,
    get_range_and_remove_bookmark,
    save_range_to_bookmark,
)
from richtree.core.nodes import Element
from richtree.core.range import Range


def test_bookmark_markers_surround_the_selection(make_root, as_html, text_of):
    root = make_root("<div>abcd</div>")
    rng = Range(text_of(root, "abcd"), 1, text_of(root, "abcd"), 3)

    save_range_to_bookmark(rng)

    assert as_html(root) == (
        f'<div>a<input id="{START_SELECTION_ID}" type="hidden">'
        f'bc<input id="{END_SELECTION_ID}" type="hidden">d</div>'
    )
    block = root.first_child
    assert rng.boundaries() == (block, 2, block, 3)


def test_round_trip_restores_text_selection(make_root, as_html, text_of):
    root = make_root("<div>abcd</div>")
    text = text_of(root, "abcd")
    rng = Range(text, 1, text, 3)

    save_range_to_bookmark(rng)
    restored = get_range_and_remove_bookmark(root)

    assert as_html(root) == "<div>abcd</div>"
    assert restored.boundaries() == (text, 1, text, 3)


def test_round_trip_restores_collapsed_selection(make_root, as_html, text_of):
    root = make_root("<div>abcd</div>")
    text = text_of(root, "abcd")
    rng = Range(text, 2)

    save_range_to_bookmark(rng)
    restored = get_range_and_remove_bookmark(root, rng)

    assert restored is rng
    assert as_html(root) == "<div>abcd</div>"
    assert rng.boundaries() == (text, 2, text, 2)


def test_collapsed_selection_outside_text(make_root, as_html):
    root = make_root("<div><br></div>")
    block = root.first_child
    rng = Range(block, 0)

    save_range_to_bookmark(rng)
    restored = get_range_and_remove_bookmark(root)

    assert as_html(root) == "<div><br></div>"
    assert restored.boundaries() == (block, 0, block, 0)


def test_selection_spanning_blocks(make_root, as_html, text_of):
    root = make_root("<div>ab</div><div>cd</div>")
    first, second = text_of(root, "ab"), text_of(root, "cd")
    rng = Range(first, 1, second, 1)

    save_range_to_bookmark(rng)
    restored = get_range_and_remove_bookmark(root)

    assert as_html(root) == "<div>ab</div><div>cd</div>"
    assert restored.boundaries() == (first, 1, second, 1)


def test_missing_bookmark_returns_given_range(make_root):
    root = make_root("<div>a</div>")
    assert get_range_and_remove_bookmark(root) is None

    rng = Range(root, 0)
    assert get_range_and_remove_bookmark(root, rng) is rng


def test_incomplete_bookmark_is_discarded(make_root, as_html, caplog):
    root = make_root("<div>a</div>")
    root.first_child.append_child(Element("input", {"id": START_SELECTION_ID, "type": "hidden"}))
    rng = Range(root, 0)

    with caplog.at_level(logging.WARNING, logger="richtree.core.bookmark"):
        assert get_range_and_remove_bookmark(root, rng) is rng

    assert as_html(root) == "<div>a</div>"
    assert "Incomplete selection bookmark" in caplog.text
