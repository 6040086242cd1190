"""Tests for the highlighter protocol and code block rendering."""

from rivulet.highlighting import PygmentsHighlighter, render_code_block


class BrokenHighlighter:
    def highlight(self, code: str, language: str) -> str:
        raise RuntimeError("lexer crashed")

    def supports_language(self, language: str) -> bool:
        return True


class TestPygmentsHighlighter:
    def test_supports_known_language(self) -> None:
        assert PygmentsHighlighter().supports_language("python")
        assert PygmentsHighlighter().supports_language("js")

    def test_rejects_unknown_language(self) -> None:
        assert not PygmentsHighlighter().supports_language("no-such-language-xyz")

    def test_highlight_uses_css_classes(self) -> None:
        markup = PygmentsHighlighter().highlight("def f(): pass\n", "python")
        assert '<span class="k">def</span>' in markup
        assert "style=" not in markup

    def test_highlight_escapes(self) -> None:
        markup = PygmentsHighlighter().highlight("a = '<b>'\n", "python")
        assert "<b>" not in markup


class TestRenderCodeBlock:
    def test_highlighted(self) -> None:
        markup = render_code_block("x = 1\n", "python", PygmentsHighlighter())
        assert markup.startswith('<pre><code class="hl language-python">')
        assert "<span" in markup

    def test_unknown_language_plain(self) -> None:
        markup = render_code_block("<b>\n", "no-such-language-xyz", PygmentsHighlighter())
        assert markup == '<pre><code class="language-no-such-language-xyz">&lt;b&gt;\n</code></pre>\n'

    def test_no_language(self) -> None:
        assert render_code_block("x\n", "", PygmentsHighlighter()) == "<pre><code>x\n</code></pre>\n"

    def test_no_highlighter(self) -> None:
        assert render_code_block("x\n", "python", None) == (
            '<pre><code class="language-python">x\n</code></pre>\n'
        )

    def test_highlighter_failure_falls_back(self) -> None:
        markup = render_code_block("x < y\n", "python", BrokenHighlighter())
        assert markup == '<pre><code class="language-python">x &lt; y\n</code></pre>\n'
