import pytest

from richtree.core.markup import parse_fragment, serialize, serialize_node
from richtree.core.nodes import Comment, Element, Fragment, Text


@pytest.mark.parametrize("markup", ["", "   ", "\n\t"])
def test_blank_markup_gives_empty_fragment(markup):
    fragment = parse_fragment(markup)
    assert isinstance(fragment, Fragment)
    assert fragment.children == []


def test_text_and_tail_become_text_nodes():
    fragment = parse_fragment("<p>a<b>b</b>c</p>")

    paragraph = fragment.first_child
    assert paragraph.tag == "p"
    assert [type(child) for child in paragraph.children] == [Text, Element, Text]
    assert paragraph.text_content == "abc"


def test_attributes_are_kept():
    fragment = parse_fragment('<div id="x" class="a b">t</div>')
    assert fragment.first_child.attributes == {"id": "x", "class": "a b"}


def test_void_elements_have_no_children():
    fragment = parse_fragment("<div>a<br>b<img src='i.png'></div>")
    div = fragment.first_child
    assert [child.node_name for child in div.children] == ["#text", "br", "#text", "img"]
    assert div.children[1].children == []


def test_comments_are_carried():
    fragment = parse_fragment("<div>a<!--note--></div>")
    comment = fragment.first_child.last_child
    assert isinstance(comment, Comment)
    assert comment.data == "note"


def test_entities_are_decoded():
    fragment = parse_fragment("<p>1 &lt; 2 &amp; 3</p>")
    assert fragment.first_child.text_content == "1 < 2 & 3"


@pytest.mark.parametrize(
    "markup",
    [
        "<div>abc</div>",
        '<div class="x">a<b>b</b><br>c</div><p><img src="i.png"></p>',
        "<blockquote><ul><li>a</li><li>b</li></ul></blockquote>",
        "<div>a<!--c-->b</div>",
    ],
)
def test_serialize_round_trip(markup):
    assert serialize(parse_fragment(markup)) == markup


def test_serialize_escapes_text():
    div = Element("div", None, [Text("1 < 2 & 3")])
    assert serialize(Element("div", None, [div])) == "<div>1 &lt; 2 &amp; 3</div>"


def test_serialize_is_inner_and_serialize_node_is_outer():
    div = Element("div", {"id": "d"}, [Text("a"), Element("br")])
    assert serialize(div) == "a<br>"
    assert serialize_node(div) == '<div id="d">a<br></div>'


def test_serialize_of_text_node():
    assert serialize_node(Text("plain")) == "plain"


def test_adjacent_text_nodes_serialise_contiguously():
    div = Element("div", None, [Text("a"), Text("b"), Element("i", None, [Text("c")]), Text("d")])
    assert serialize_node(div) == "<div>ab<i>c</i>d</div>"
