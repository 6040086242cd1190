"""Tests for the markdown-it structural parser."""

from rivulet.fences import FenceRenderer
from rivulet.parsing import MarkdownItParser


class RecordingFenceRenderer:
    def __init__(self) -> None:
        self.seen: list[tuple[str, str, int | None, str]] = []

    def render(self, content: str, language: str, *, line: int | None = None, marker: str = "```") -> str:
        self.seen.append((content, language, line, marker))
        return "<fence/>"


class TestMarkdownItParser:
    def test_commonmark(self) -> None:
        parser = MarkdownItParser(FenceRenderer())
        assert parser.render("# Title\n\n*em*\n") == "<h1>Title</h1>\n<p><em>em</em></p>\n"

    def test_fence_rule_receives_details(self) -> None:
        fences = RecordingFenceRenderer()
        MarkdownItParser(fences).render("para\n\n~~~~ Mermaid extra\nA\n~~~~\n")  # type: ignore[arg-type]
        assert fences.seen == [("A\n", "Mermaid", 2, "~~~~")]

    def test_code_fence_without_highlighter(self) -> None:
        html = MarkdownItParser(FenceRenderer()).render("```python\nx = 1\n```\n")
        assert html == '<pre><code class="language-python">x = 1\n</code></pre>\n'

    def test_tables_and_strikethrough(self) -> None:
        html = MarkdownItParser(FenceRenderer()).render("| a |\n|---|\n| b |\n\n~~gone~~\n")
        assert "<table>" in html
        assert "<s>gone</s>" in html

    def test_raw_html_passes_through(self) -> None:
        html = MarkdownItParser(FenceRenderer()).render("<div>x</div>\n")
        assert html == "<div>x</div>\n"
