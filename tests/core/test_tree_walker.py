from richtree.core.nodes import Comment, Element, Text
from richtree.core.tree_walker import (
    SHOW_ALL,
    SHOW_ELEMENT,
    SHOW_TEXT,
    TreeWalker,
    get_next_block,
    get_previous_block,
    is_empty_block,
)


def _document():
    """<div><p>a<b>b</b></p><!--c--><p>d</p></div>"""
    a, b, d = Text("a"), Text("b"), Text("d")
    bold = Element("b", None, [b])
    first = Element("p", None, [a, bold])
    second = Element("p", None, [d])
    root = Element("div", None, [first, Comment("c"), second])
    return root, first, second, a, bold, b, d


def test_next_node_visits_in_document_order():
    root, first, second, a, bold, b, d = _document()
    walker = TreeWalker(root, SHOW_ELEMENT | SHOW_TEXT)
    assert list(walker) == [first, a, bold, b, second, d]


def test_show_all_includes_comments():
    root = _document()[0]
    kinds = [type(node).__name__ for node in TreeWalker(root, SHOW_ALL)]
    assert "Comment" in kinds


def test_filter_skips_nodes_but_visits_descendants():
    root, first, second, a, bold, b, d = _document()
    walker = TreeWalker(root, SHOW_TEXT, lambda node: node.data != "a")
    assert list(walker) == [b, d]


def test_previous_node_walks_back():
    root, first, second, a, bold, b, d = _document()
    walker = TreeWalker(root, SHOW_TEXT)
    walker.current_node = d
    assert walker.previous_node() is b
    assert walker.previous_node() is a
    assert walker.previous_node() is None


def test_previous_post_order_node():
    root, first, second, a, bold, b, d = _document()
    walker = TreeWalker(root, SHOW_ELEMENT | SHOW_TEXT)
    walker.current_node = second
    assert walker.previous_post_order_node() is d

    walker.current_node = root.children[1]
    assert walker.previous_post_order_node() is first
    assert walker.previous_post_order_node() is bold
    assert walker.previous_post_order_node() is b


def test_walk_is_confined_to_root():
    root, first, second, a, bold, b, d = _document()
    walker = TreeWalker(first, SHOW_TEXT)
    walker.current_node = b
    assert walker.next_node() is None


def test_walker_restarts_from_assigned_node():
    root, first, second, a, bold, b, d = _document()
    walker = TreeWalker(root, SHOW_TEXT)
    walker.current_node = bold
    assert walker.next_node() is b


def test_block_navigation():
    root, first, second, a, bold, b, d = _document()
    assert get_next_block(root, root) is first
    assert get_next_block(first, root) is second
    assert get_next_block(second, root) is None
    assert get_previous_block(b, root) is first
    assert get_previous_block(first, root) is None


def test_is_empty_block():
    assert is_empty_block(Element("div", None, [Element("br")]))
    assert not is_empty_block(Element("div", None, [Text("x")]))
    assert not is_empty_block(Element("div", None, [Element("span", None, [Element("img")])]))
