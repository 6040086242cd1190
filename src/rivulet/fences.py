"""Fence completeness detection and per-fence rendering.

While text is streaming in, a parser that reaches the end of input inside a
code fence closes the fence implicitly. For ordinary code that is harmless,
but a diagram handed to the diagram engine half-written produces an error
banner that flickers until the rest arrives. :func:`is_fence_closed` checks
the whole source the parser was given for a real closing marker right after
the fence body.

:class:`FenceRenderer` is the strategy object the structural parser calls for
every fence. Closed diagram fences become sub-content nodes tagged with a
fingerprint; open ones become an escaped streaming preview; everything else
goes to the syntax highlighter.

Algorithm:
    Take the last ``suffix_length`` characters of the last line of the
    trimmed fence content (the parser strips list indentation and quote
    markers, so a suffix spanning lines may not exist in the source),
    locate them in the source, and test whether what follows matches
    ``(whitespace)(closing marker)``. With an anchor (the offset where the
    fence body starts) the search begins at the earliest position the suffix
    could occupy, so a repeat of the same text elsewhere cannot be mistaken
    for this fence. Without one, the last occurrence in the source is used.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from rivulet.highlighting import Highlighter, render_code_block
from rivulet.placeholders import PlaceholderTable
from rivulet.tree import (
    ATTR_FINGERPRINT,
    ATTR_LANGUAGE,
    STREAMING_CLASS,
    SUB_CONTENT_CLASS,
)
from rivulet.utils.hashing import fingerprint
from rivulet.utils.text import escape_html

DEFAULT_SUFFIX_LENGTH = 20

_closing_patterns: dict[str, re.Pattern[str]] = {}


def _closing_pattern(marker: str) -> re.Pattern[str]:
    pattern = _closing_patterns.get(marker)
    if pattern is None:
        # Blockquote markers may precede the closing fence of a quoted block.
        pattern = re.compile(r"\s*(?:>\s*)*" + re.escape(marker))
        _closing_patterns[marker] = pattern
    return pattern


def is_fence_closed(
    content: str,
    source: str,
    *,
    anchor: int | None = None,
    marker: str = "```",
    suffix_length: int = DEFAULT_SUFFIX_LENGTH,
) -> bool:
    """Decide whether a fence body is followed by its closing marker.

    Args:
        content: Fence body as extracted by the parser
        source: Full text handed to the parser this pass
        anchor: Offset in ``source`` where the fence body starts, if known
        marker: Opening fence marker (closing must start with it)
        suffix_length: Maximum suffix length to search for

    Returns:
        True only if a closing marker follows the body. Empty content or a
        body that cannot be located counts as unclosed.
    """
    trimmed = content.strip()
    if not trimmed or not source:
        return False

    suffix = trimmed.rsplit("\n", 1)[-1][-suffix_length:]
    if anchor is None:
        index = source.rfind(suffix)
    else:
        leading = len(content) - len(content.lstrip())
        earliest = anchor + leading + len(trimmed) - len(suffix)
        index = source.find(suffix, max(anchor, earliest))
    if index == -1:
        return False

    return _closing_pattern(marker).match(source, index + len(suffix)) is not None


@dataclass(slots=True)
class FenceRenderer:
    """Per-fence rendering strategy handed to the structural parser.

    Bind it to the current pass with :meth:`bind` before parsing; the parser
    then calls :meth:`render` for every fence it finds.

    Attributes:
        highlighter: Highlighter for ordinary code fences
        diagram_languages: Language tags rendered as diagrams
        suffix_length: See :func:`is_fence_closed`
        anchored: Use the fence's opening line as a search anchor
    """

    highlighter: Highlighter | None = None
    diagram_languages: tuple[str, ...] = ("mermaid",)
    suffix_length: int = DEFAULT_SUFFIX_LENGTH
    anchored: bool = True
    _source: str = field(default="", init=False, repr=False)
    _line_starts: list[int] = field(default_factory=lambda: [0], init=False, repr=False)
    _table: PlaceholderTable | None = field(default=None, init=False, repr=False)

    def bind(self, source: str, table: PlaceholderTable | None = None) -> None:
        """Attach the text the parser is about to see and the pass's table."""
        self._source = source
        self._table = table
        starts = [0]
        index = source.find("\n")
        while index != -1:
            starts.append(index + 1)
            index = source.find("\n", index + 1)
        self._line_starts = starts

    def line_offset(self, line: int) -> int | None:
        """Offset of the start of 0-based ``line`` in the bound source."""
        if line < 0:
            return None
        if line >= len(self._line_starts):
            return len(self._source)
        return self._line_starts[line]

    def render(
        self,
        content: str,
        language: str,
        *,
        line: int | None = None,
        marker: str = "```",
    ) -> str:
        """Render one fence.

        Args:
            content: Fence body
            language: First word of the info string ("" if none)
            line: 0-based line of the opening fence in the bound source
            marker: Opening fence characters, e.g. "```" or "~~~~"

        Returns:
            Markup for the fence
        """
        raw = self._table.decode(content) if self._table is not None else content
        language = language.lower()

        if language not in self.diagram_languages:
            return render_code_block(raw, language, self.highlighter)

        anchor = None
        if self.anchored and line is not None:
            anchor = self.line_offset(line + 1)
        closed = is_fence_closed(
            content,
            self._source,
            anchor=anchor,
            marker=marker,
            suffix_length=self.suffix_length,
        )
        if not closed:
            return f'<div class="{STREAMING_CLASS}">{escape_html(raw)}</div>\n'

        return (
            f'<div class="{SUB_CONTENT_CLASS}" {ATTR_FINGERPRINT}="{fingerprint(raw)}" '
            f'{ATTR_LANGUAGE}="{escape_html(language)}">{escape_html(raw)}</div>\n'
        )

    __call__ = render
