"""Structural parser collaborator.

The parser turns protected text into markup. Fences are not rendered by the
parser itself: every fence token is handed to a :class:`FenceRenderer`
strategy supplied at construction time, which decides between highlighted
code, a streaming preview and a diagram node.

Usage:
    from rivulet.fences import FenceRenderer
    from rivulet.parsing import MarkdownItParser

    fences = FenceRenderer()
    parser = MarkdownItParser(fences)
    fences.bind(text)
    markup = parser.render(text)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from markdown_it import MarkdownIt
from markdown_it.token import Token

from rivulet.fences import FenceRenderer


class StructuralParser(Protocol):
    """Protocol for text-to-markup parsers."""

    def render(self, text: str) -> str:
        """Render protected text to markup.

        Implementations call their fence strategy for every fenced block.
        """
        ...


class MarkdownItParser:
    """CommonMark parser backed by markdown-it-py.

    Args:
        fence_renderer: Strategy receiving every fence
        preset: markdown-it preset name
        options: markdown-it options (raw HTML is allowed by default; the
            sanitizer runs afterwards)
        extensions: Core rules to enable on top of the preset
    """

    def __init__(
        self,
        fence_renderer: FenceRenderer,
        *,
        preset: str = "commonmark",
        options: Mapping[str, Any] | None = None,
        extensions: Sequence[str] = ("table", "strikethrough"),
    ) -> None:
        self.fence_renderer = fence_renderer
        self._md = MarkdownIt(preset, dict(options) if options is not None else {"html": True})
        for name in extensions:
            self._md.enable(name)
        self._md.renderer.rules["fence"] = self._render_fence

    def _render_fence(
        self,
        tokens: Sequence[Token],
        idx: int,
        options: Any,
        env: Any,
    ) -> str:
        token = tokens[idx]
        info = token.info.strip().split(maxsplit=1)[0] if token.info.strip() else ""
        line = token.map[0] if token.map else None
        return self.fence_renderer.render(
            token.content,
            info,
            line=line,
            marker=token.markup or "```",
        )

    def render(self, text: str) -> str:
        return self._md.render(text)
