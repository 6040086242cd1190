"""Tests for shallow, position-indexed reconciliation."""

from __future__ import annotations

from bs4 import NavigableString

from rivulet.reconcile import reconcile
from rivulet.tree import RenderedTree, parse_fragment

PENDING = '<div class="diagram" data-fingerprint="f1" data-language="mermaid">graph TD</div>'
RENDERED = (
    '<div class="diagram" data-fingerprint="f1" data-language="mermaid" '
    'data-rendered="true"><svg class="fake-diagram"></svg></div>'
)
FAILED = (
    '<div class="diagram diagram-error" data-fingerprint="f1" data-language="mermaid" '
    'data-error="true"><div class="diagram-error-banner">bad</div></div>'
)


def tree_with(markup: str) -> RenderedTree:
    tree = RenderedTree()
    reconcile(tree.root, list(parse_fragment(markup).contents))
    return tree


def candidates(markup: str) -> list:
    return list(parse_fragment(markup).contents)


class TestBasicPatching:
    def test_append_into_empty(self) -> None:
        tree = RenderedTree()
        stats = reconcile(tree.root, candidates("<p>a</p><p>b</p>"))
        assert stats.appended == 2
        assert tree.to_html() == "<p>a</p><p>b</p>"

    def test_remove_extra(self) -> None:
        tree = tree_with("<p>a</p><p>b</p><p>c</p>")
        stats = reconcile(tree.root, candidates("<p>a</p><p>b</p>"))
        assert stats.removed == 1
        assert stats.mutations == 1
        assert tree.to_html() == "<p>a</p><p>b</p>"

    def test_tag_mismatch_replaces(self) -> None:
        tree = tree_with("<p>Title</p>")
        stats = reconcile(tree.root, candidates("<h1>Title</h1>"))
        assert stats.replaced == 1
        assert tree.to_html() == "<h1>Title</h1>"

    def test_changed_element_replaced(self) -> None:
        tree = tree_with("<p>a</p><p>b</p>")
        first = tree.root.contents[0]
        stats = reconcile(tree.root, candidates("<p>a</p><p>b!</p>"))
        assert stats.replaced == 1
        assert tree.root.contents[0] is first

    def test_text_updated_in_place(self) -> None:
        tree = tree_with("abc")
        stats = reconcile(tree.root, candidates("abcd"))
        assert stats.updated_text == 1
        assert isinstance(tree.root.contents[0], NavigableString)
        assert tree.to_html() == "abcd"

    def test_candidates_are_copied(self) -> None:
        fragment = parse_fragment("<p>a</p><p>b</p>")
        tree = RenderedTree()
        reconcile(tree.root, list(fragment.contents))
        assert len(fragment.contents) == 2
        assert tree.root.contents[0] is not fragment.contents[0]


class TestIdempotence:
    def test_second_pass_no_mutations(self) -> None:
        markup = "<h1>T</h1><ul><li>x</li></ul><pre><code>y</code></pre>"
        tree = tree_with(markup)
        stats = reconcile(tree.root, candidates(markup))
        assert stats.mutations == 0


class TestSubContentPreservation:
    """Rendered diagrams survive a pass carrying the same fingerprint."""

    def test_rendered_node_untouched(self) -> None:
        tree = tree_with(RENDERED)
        svg = tree.root.find("svg")
        stats = reconcile(tree.root, candidates(PENDING))
        assert stats.mutations == 0
        assert stats.preserved == 1
        assert tree.root.find("svg") is svg

    def test_failed_node_untouched(self) -> None:
        tree = tree_with(FAILED)
        stats = reconcile(tree.root, candidates(PENDING))
        assert stats.mutations == 0
        assert tree.root.find(class_="diagram-error-banner") is not None

    def test_new_fingerprint_replaces(self) -> None:
        tree = tree_with(RENDERED)
        stats = reconcile(tree.root, candidates(PENDING.replace("f1", "f2")))
        assert stats.replaced == 1
        assert tree.root.find("svg") is None

    def test_nested_diagram_preserved(self) -> None:
        tree = tree_with(f"<ul><li>intro{RENDERED}</li></ul>")
        svg = tree.root.find("svg")
        stats = reconcile(tree.root, candidates(f"<ul><li>intro{PENDING}</li></ul>"))
        assert stats.mutations == 0
        assert tree.root.find("svg") is svg

    def test_nested_sibling_change_replaces(self) -> None:
        tree = tree_with(f"<ul><li>intro{RENDERED}</li></ul>")
        stats = reconcile(tree.root, candidates(f"<ul><li>changed{PENDING}</li></ul>"))
        assert stats.replaced == 1
        assert tree.root.find("svg") is None
        assert tree.root.find(class_="diagram") is not None

    def test_later_nodes_appended_around_diagram(self) -> None:
        tree = tree_with(RENDERED)
        svg = tree.root.find("svg")
        stats = reconcile(tree.root, candidates(PENDING + "<p>more</p>"))
        assert stats.appended == 1
        assert tree.root.find("svg") is svg
