"""Tests for the persistent rendered tree."""

from rivulet.tree import (
    ATTR_ERROR,
    ATTR_RENDERED,
    RenderedTree,
    is_sub_content,
    parse_fragment,
)

DIAGRAM = '<div class="diagram" data-fingerprint="00ff" data-language="mermaid">A</div>'


def _tree(markup: str) -> RenderedTree:
    tree = RenderedTree()
    for node in list(parse_fragment(markup).contents):
        tree.root.append(node.extract())
    return tree


class TestRenderedTree:
    def test_empty(self) -> None:
        tree = RenderedTree()
        assert len(tree) == 0
        assert tree.to_html() == ""
        assert not tree.failed

    def test_sub_content_at_any_depth(self) -> None:
        tree = _tree(f"<p>x</p>{DIAGRAM}<blockquote>{DIAGRAM}</blockquote>")
        assert len(tree.sub_content_nodes()) == 2

    def test_pending_excludes_settled(self) -> None:
        tree = _tree(DIAGRAM * 3)
        first, second, _ = tree.sub_content_nodes()
        first[ATTR_RENDERED] = "true"
        second[ATTR_ERROR] = "true"
        assert len(tree.pending_nodes()) == 1

    def test_contains(self) -> None:
        tree = _tree(f"<blockquote>{DIAGRAM}</blockquote>")
        node = tree.sub_content_nodes()[0]
        assert tree.contains(node)
        node.parent.extract()
        assert not tree.contains(node)

    def test_mark_and_clear_failure(self) -> None:
        tree = RenderedTree()
        tree.mark_failed("parse: boom")
        assert tree.failed
        assert tree.root["data-render-error"] == "parse: boom"
        tree.clear_failure()
        assert not tree.failed


class TestIsSubContent:
    def test_requires_fingerprint(self) -> None:
        node = parse_fragment('<div class="diagram">A</div>').div
        assert not is_sub_content(node)

    def test_streaming_is_not_sub_content(self) -> None:
        node = parse_fragment('<div class="diagram-streaming">A</div>').div
        assert not is_sub_content(node)
