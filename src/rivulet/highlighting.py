"""Syntax highlighting protocol and the default Pygments highlighter.

Code fences that are not diagrams go through :func:`render_code_block`,
which asks the configured highlighter for markup and falls back to escaped
plain text when the language is unknown or the highlighter fails.

Usage:
    from rivulet.highlighting import PygmentsHighlighter, render_code_block

    render_code_block("x = 1", "python", PygmentsHighlighter())
    # '<pre><code class="language-python"><span class="n">x</span>...'

    # Any object implementing the protocol can be injected
    class Plain:
        def highlight(self, code, language):
            return escape_html(code)
        def supports_language(self, language):
            return True

    StreamRenderer(highlighter=Plain())
"""

from __future__ import annotations

from typing import Protocol

from pygments import highlight as pygments_highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from rivulet.utils.logger import get_logger
from rivulet.utils.text import escape_html

logger = get_logger(__name__)


class Highlighter(Protocol):
    """Protocol for syntax highlighters.

    Highlighters take code and language and return HTML markup with
    syntax highlighting applied (without the ``<pre><code>`` wrapper).
    """

    def highlight(self, code: str, language: str) -> str:
        """Highlight code with syntax colors.

        Args:
            code: Source code to highlight
            language: Language identifier (e.g., "python", "javascript")

        Returns:
            HTML markup with highlighting

        Contract:
            - MUST escape HTML entities in code
            - MUST use CSS classes (not inline styles)
            - MAY raise; the caller falls back to plain text
        """
        ...

    def supports_language(self, language: str) -> bool:
        """Check if highlighter supports the given language.

        Contract:
            - MUST NOT raise exceptions
            - SHOULD handle common aliases (js -> javascript)
        """
        ...


class PygmentsHighlighter:
    """Pygments-based highlighter implementing the Highlighter protocol."""

    __slots__ = ("_formatter",)

    def __init__(self) -> None:
        self._formatter = HtmlFormatter(nowrap=True)

    def highlight(self, code: str, language: str) -> str:
        lexer = get_lexer_by_name(language, stripall=False)
        result: str = pygments_highlight(code, lexer, self._formatter)
        return result

    def supports_language(self, language: str) -> bool:
        try:
            get_lexer_by_name(language)
        except ClassNotFound:
            return False
        return True


def render_code_block(code: str, language: str, highlighter: Highlighter | None) -> str:
    """Render a non-diagram fence as a ``<pre><code>`` block.

    Args:
        code: Fence body
        language: Language tag ("" when the fence has none)
        highlighter: Highlighter to use, or None for plain output

    Returns:
        HTML markup (highlighted if possible, escaped plain text otherwise)
    """
    if language and highlighter is not None and highlighter.supports_language(language):
        try:
            highlighted = highlighter.highlight(code, language)
        except Exception as e:
            logger.debug("Highlighting %s failed, using plain text: %s", language, e)
        else:
            lang = escape_html(language)
            return f'<pre><code class="hl language-{lang}">{highlighted}</code></pre>\n'

    lang_class = f' class="language-{escape_html(language)}"' if language else ""
    return f"<pre><code{lang_class}>{escape_html(code)}</code></pre>\n"
