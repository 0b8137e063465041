import pytest

from richtree.core.exceptions import ContractViolation, ErrorKind
from richtree.core.models import EditingRoot, EditorConfig
from richtree.core.nodes import ZWS, Element, Text
from richtree.core.range import Range
from richtree.core.surgery import (
    fix_container,
    fix_cursor,
    merge_containers,
    merge_inlines,
    merge_with_block,
    split,
)


class TestFixCursor:
    def test_empty_block_gets_br(self, root, as_html):
        block = root.append_child(Element("div"))
        fix_cursor(block, root)
        assert as_html(root) == "<div><br></div>"

    def test_block_with_content_is_untouched(self, make_root, as_html):
        root = make_root("<div>x</div>")
        fix_cursor(root.first_child, root)
        assert as_html(root) == "<div>x</div>"

    def test_empty_root_gets_default_block(self, root, as_html):
        fix_cursor(root, root)
        assert as_html(root) == "<div><br></div>"

    def test_root_with_bare_br_gets_default_block(self, make_root, as_html):
        root = make_root("<br>")
        fix_cursor(root, root)
        assert as_html(root) == "<div><br></div>"

    def test_filler_goes_to_deepest_trailing_block(self, make_root, as_html):
        root = make_root("<blockquote><div></div></blockquote>")
        fix_cursor(root.first_child, root)
        assert as_html(root) == "<blockquote><div><br></div></blockquote>"

    def test_empty_inline_gets_empty_text(self, root):
        span = root.append_child(Element("span"))
        fix_cursor(span, root)
        assert isinstance(span.first_child, Text)
        assert span.first_child.data == ""
        assert not root.has_filler

    def test_zero_width_filler_when_empty_text_cannot_be_focused(self):
        root = EditingRoot(EditorConfig(cant_focus_empty_text_nodes=True))
        span = root.append_child(Element("span", None, [Text("")]))

        fix_cursor(span, root)

        assert [child.data for child in span.children] == [ZWS]
        assert root.has_filler

    def test_text_fixer_fills_block_with_text(self, as_html):
        root = EditingRoot(EditorConfig(use_text_fixer=True))
        block = root.append_child(Element("div"))

        fix_cursor(block, root)

        assert isinstance(block.first_child, Text)
        assert as_html(root) == "<div></div>"

    def test_text_fixer_inserts_text_before_leaf(self):
        root = EditingRoot(EditorConfig(use_text_fixer=True))
        br = Element("br")
        block = root.append_child(Element("div", None, [br]))

        fix_cursor(block, root)

        assert isinstance(block.first_child, Text)
        assert block.last_child is br

    def test_leaf_that_cannot_hold_filler_is_reported(self, reported_errors):
        root = EditingRoot(error_reporter=lambda kind, details: reported_errors.append((kind, details)))
        br = root.append_child(Element("br"))

        assert fix_cursor(br, root) is br

        assert br.children == []
        assert [kind for kind, _ in reported_errors] == [ErrorKind.STRUCTURAL_INVARIANT_VIOLATION]
        assert reported_errors[0][1]["operation"] == "fix_cursor"


class TestFixContainer:
    def test_inline_runs_are_wrapped(self, make_root, as_html):
        root = make_root("a<b>b</b><p>c</p>d")
        fix_container(root, root)
        assert as_html(root) == "<div>a<b>b</b></div><p>c</p><div>d</div>"

    def test_br_ends_a_run(self, make_root, as_html):
        root = make_root("a<br>b")
        fix_container(root, root)
        assert as_html(root) == "<div>a</div><div>b</div>"

    def test_leading_br_becomes_blank_line(self, make_root, as_html):
        root = make_root("<br>a")
        fix_container(root, root)
        assert as_html(root) == "<div><br></div><div>a</div>"

    def test_nested_containers_are_fixed(self, make_root, as_html):
        root = make_root("<blockquote>a<p>b</p></blockquote>")
        fix_container(root, root)
        assert as_html(root) == "<blockquote><div>a</div><p>b</p></blockquote>"

    def test_configured_block_tag_is_used(self, as_html):
        root = EditingRoot(EditorConfig(block_tag="p", block_attributes={"class": "line"}))
        root.append_child(Text("x"))
        fix_container(root, root)
        assert as_html(root) == '<p class="line">x</p>'


class TestSplit:
    def test_split_text_up_to_root(self, make_root, as_html, text_of):
        root = make_root("<div>abcd</div>")

        after = split(text_of(root, "abcd"), 2, root, root)

        assert as_html(root) == "<div>ab</div><div>cd</div>"
        assert after is root.children[1]

    def test_split_at_end_fills_new_block(self, make_root, as_html, text_of):
        root = make_root("<div>abcd</div>")

        after = split(text_of(root, "abcd"), 4, root, root)

        assert as_html(root) == "<div>abcd</div><div><br></div>"
        assert after is root.children[1]

    def test_split_through_inline_ancestors(self, make_root, as_html, text_of):
        root = make_root("<div><b>abcd</b></div>")

        split(text_of(root, "abcd"), 1, root, root)

        assert as_html(root) == "<div><b>a</b></div><div><b>bcd</b></div>"

    def test_split_at_end_of_stop_node_returns_none(self, make_root):
        root = make_root("<div>a</div>")
        assert split(root, 1, root, root) is None

    def test_split_ordered_list_in_quote_keeps_numbering(self, make_root, as_html, tag_of):
        root = make_root('<blockquote><ol start="3"><li>a</li><li>b</li><li>c</li></ol></blockquote>')
        quote = root.first_child

        split(tag_of(root, "ol"), 1, quote, root)

        assert as_html(root) == (
            '<blockquote><ol start="3"><li>a</li></ol>'
            '<ol start="4"><li>b</li><li>c</li></ol></blockquote>'
        )

    def test_invalid_arguments(self, make_root, text_of, tag_of):
        root = make_root("<div>a<br></div><div>b</div>")
        with pytest.raises(ContractViolation):
            split(tag_of(root, "br"), 0, root, root)
        with pytest.raises(ContractViolation):
            split(text_of(root, "a"), 0, text_of(root, "a"), root)
        with pytest.raises(ContractViolation):
            split(text_of(root, "a"), 0, root.children[1], root)
        with pytest.raises(ContractViolation):
            split(root.first_child, 5, root, root)


class TestMerge:
    def test_merge_inlines_fuses_alike_spans(self, make_root, text_of):
        root = make_root(
            '<div><span class="color" style="color: red">a</span>'
            '<span class="color" style="color: red">b</span></div>'
        )
        block = root.first_child
        rng = Range(text_of(root, "b"), 1)

        merge_inlines(block, rng)

        assert len(block.children) == 1
        assert block.first_child.text_content == "ab"
        assert rng.start_container is block.first_child.first_child
        assert rng.start_offset == 2

    def test_merge_inlines_keeps_anchors_apart(self, make_root):
        root = make_root('<div><a href="x">a</a><a href="x">b</a></div>')
        rng = Range(root, 0)
        merge_inlines(root.first_child, rng)
        assert len(root.first_child.children) == 2

    def test_merge_with_block_drops_trailing_br(self, make_root, as_html):
        root = make_root("<div>ab<br></div><div>cd</div>")
        first, second = root.children
        rng = Range(root, 0)

        merge_with_block(first, second, rng, root)

        assert as_html(root) == "<div>abcd</div>"
        assert rng.collapsed
        assert rng.start_container is first.first_child
        assert rng.start_offset == 2

    def test_merge_with_block_removes_single_child_wrappers(self, make_root, as_html):
        root = make_root("<div>ab</div><blockquote><div>cd</div></blockquote>")
        first = root.first_child
        inner = root.children[1].first_child

        merge_with_block(first, inner, Range(root, 0), root)

        assert as_html(root) == "<div>abcd</div>"

    def test_merge_containers_undoes_a_split(self, make_root, as_html):
        markup = "<blockquote><div>a</div><div>b</div></blockquote>"
        root = make_root(markup)

        second_half = split(root.first_child, 1, root, root)
        assert len(root.children) == 2

        merge_containers(second_half, root)
        assert as_html(root) == markup

    def test_merge_containers_ignores_different_containers(self, make_root, as_html):
        markup = "<blockquote><div>a</div></blockquote><ul><li>b</li></ul>"
        root = make_root(markup)
        merge_containers(root.children[1], root)
        assert as_html(root) == markup

