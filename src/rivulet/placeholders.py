"""Placeholder protection for literal spans.

Code spans and math expressions contain characters the structural parser
would otherwise interpret (``*`` and ``_`` inside TeX, ``$`` inside code).
Before parsing, :func:`encode` swaps those spans for opaque tokens:

1. fenced code blocks
2. inline code spans
3. escaped dollar signs
4. display math (``$$ ... $$`` on its own lines, then ``\\[ ... \\]``)
5. inline math (``$ ... $``, then ``\\( ... \\)``)

Each stage runs on the previous stage's output, so a ``$`` inside a code span
is never mistaken for math. Code and escape tokens go back into the text as
soon as the math stages are done, so the parser and highlighter still see real
code. Math tokens survive parsing and sanitizing and are resolved afterwards by
:func:`restore_math`, directly in the candidate tree.

Tokens are built from letters and digits only (nothing the parser treats as
syntax) around a per-pass nonce that is guaranteed absent from the input, so
a token can never collide with document text.
"""

from __future__ import annotations

import re
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from bs4 import BeautifulSoup, NavigableString, Tag

from rivulet.errors import TypesetError
from rivulet.typeset import MathTypesetter
from rivulet.utils.logger import get_logger

logger = get_logger(__name__)

_FENCED_CODE = re.compile(r"(?:\A|\n)(`{3,}|~{3,})[\s\S]*?\1")
_INLINE_CODE = re.compile(r"(`+)(.*?)\1")
_ESCAPED_DOLLAR = re.compile(r"\\\$")
_MATH_BLOCK = re.compile(r"(\A|\n)\$\$([\s\S]+?)\$\$(?=\n|\Z)")
# No whitespace just inside the delimiters and no digit right after the
# closing one, so "$5 and $10" stays prose.
_MATH_INLINE = re.compile(r"(?<!\$)\$(?![\s$])([^\n$]+?)(?<!\s)\$(?![\d$])")
_MATH_BRACKET_BLOCK = re.compile(r"(?<!\\)\\\[([\s\S]+?)\\\]")
_MATH_BRACKET_INLINE = re.compile(r"(?<!\\)\\\(([^\n]+?)\\\)")

# Scripts whose presence marks a "$...$" candidate as prose (CJK, kana,
# hangul, fullwidth forms).
_PROSE_CHARS = re.compile("[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af\uff00-\uffef]")
_MATH_TEXT_MARKER = "\\text"


class PlaceholderKind(Enum):
    """What a placeholder token stands for."""

    CODE = "code"
    INLINE_CODE = "inlineCode"
    ESCAPED_MARKER = "escapedMarker"
    MATH_BLOCK = "mathBlock"
    MATH_INLINE = "mathInline"

    @property
    def is_math(self) -> bool:
        return self in (PlaceholderKind.MATH_BLOCK, PlaceholderKind.MATH_INLINE)


@dataclass(frozen=True, slots=True)
class Placeholder:
    """One protected span.

    Attributes:
        kind: Span category
        raw: Exact original text the token replaced
        content: Payload (TeX expression for math, same as raw otherwise)
        display: True for display math
    """

    kind: PlaceholderKind
    raw: str
    content: str
    display: bool = False


class PlaceholderTable:
    """Token -> placeholder mapping for a single pass.

    Create one per pass; :meth:`reset` clears it and draws a new nonce that
    does not occur in the given text.
    """

    __slots__ = ("_counter", "_entries", "_nonce", "_pattern")

    def __init__(self, text: str = "") -> None:
        self._entries: dict[str, Placeholder] = {}
        self._counter = 0
        self._nonce = ""
        self._pattern: re.Pattern[str] = re.compile("(?!)")
        self.reset(text)

    def reset(self, text: str = "") -> None:
        """Clear all entries and pick a nonce absent from ``text``."""
        self._entries.clear()
        self._counter = 0
        nonce = secrets.token_hex(4).upper()
        while nonce in text:
            nonce = secrets.token_hex(4).upper()
        self._nonce = nonce
        self._pattern = re.compile(rf"RVLT{nonce}[A-Z]+\d+END")

    @property
    def pattern(self) -> re.Pattern[str]:
        """Regex matching any token issued by this table."""
        return self._pattern

    def add(self, kind: PlaceholderKind, raw: str, content: str | None = None,
            *, display: bool = False) -> str:
        """Register a span and return its token."""
        token = f"RVLT{self._nonce}{kind.name.replace('_', '')}{self._counter}END"
        self._counter += 1
        self._entries[token] = Placeholder(
            kind=kind,
            raw=raw,
            content=raw if content is None else content,
            display=display,
        )
        return token

    def get(self, token: str) -> Placeholder | None:
        return self._entries.get(token)

    def items(self) -> list[tuple[str, Placeholder]]:
        return list(self._entries.items())

    def math_items(self) -> list[tuple[str, Placeholder]]:
        return [(t, p) for t, p in self._entries.items() if p.kind.is_math]

    def decode(self, text: str) -> str:
        """Replace every token in ``text`` with the original span."""
        if not self._entries or "RVLT" not in text:
            return text

        def substitute(match: re.Match[str]) -> str:
            entry = self._entries.get(match.group(0))
            return entry.raw if entry is not None else match.group(0)

        return self._pattern.sub(substitute, text)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, token: object) -> bool:
        return token in self._entries


def _is_prose(tex: str) -> bool:
    return bool(_PROSE_CHARS.search(tex)) and _MATH_TEXT_MARKER not in tex


def encode(text: str, table: PlaceholderTable) -> str:
    """Protect code and math spans in ``text``.

    ``table`` is reset and refilled. On return the text still contains math
    tokens; code and escape tokens have already been substituted back.

    Args:
        text: Source text for this pass
        table: Table to (re)populate

    Returns:
        Text ready for the structural parser
    """
    table.reset(text)
    if not text:
        return ""

    def protect(kind: PlaceholderKind) -> Callable[[re.Match[str]], str]:
        return lambda m: table.add(kind, m.group(0))

    processed = _FENCED_CODE.sub(protect(PlaceholderKind.CODE), text)
    processed = _INLINE_CODE.sub(protect(PlaceholderKind.INLINE_CODE), processed)
    processed = _ESCAPED_DOLLAR.sub(protect(PlaceholderKind.ESCAPED_MARKER), processed)

    def protect_block(match: re.Match[str]) -> str:
        prefix, tex = match.group(1), match.group(2)
        # Escapes inside the expression were tokenized by an earlier stage.
        token = table.add(
            PlaceholderKind.MATH_BLOCK,
            table.decode(match.group(0)[len(prefix):]),
            table.decode(tex),
            display=True,
        )
        return prefix + token

    processed = _MATH_BLOCK.sub(protect_block, processed)

    def protect_bracket_block(match: re.Match[str]) -> str:
        return table.add(
            PlaceholderKind.MATH_BLOCK,
            table.decode(match.group(0)),
            table.decode(match.group(1)),
            display=True,
        )

    processed = _MATH_BRACKET_BLOCK.sub(protect_bracket_block, processed)

    def protect_inline(match: re.Match[str]) -> str:
        tex = match.group(1)
        if _is_prose(tex):
            return match.group(0)
        return table.add(
            PlaceholderKind.MATH_INLINE, table.decode(match.group(0)), table.decode(tex)
        )

    processed = _MATH_INLINE.sub(protect_inline, processed)
    processed = _MATH_BRACKET_INLINE.sub(protect_inline, processed)

    # Code goes back before parsing; the highlighter must see real syntax.
    for token, entry in table.items():
        if not entry.kind.is_math:
            processed = processed.replace(token, entry.raw, 1)

    return processed


def _typeset(entry: Placeholder, typesetter: MathTypesetter) -> list[Tag | NavigableString]:
    try:
        markup = typesetter.typeset(entry.content, display=entry.display)
    except TypesetError as e:
        logger.debug("Math fallback to raw text: %s", e)
        return [NavigableString(entry.content)]
    except Exception as e:
        logger.warning("Math typesetter raised %s for %r", type(e).__name__, entry.content)
        return [NavigableString(entry.content)]
    return list(BeautifulSoup(markup, "html.parser").contents)


def restore_math(root: Tag, table: PlaceholderTable, typesetter: MathTypesetter) -> int:
    """Resolve math tokens inside a parsed candidate tree.

    Tokens in text are replaced with typeset markup (or the raw expression if
    typesetting fails). Tokens inside ``pre`` or ``code`` go back to their
    source text. A paragraph holding nothing but a display-math token is
    replaced by the math itself. Tokens that ended up in attribute values are
    decoded back to their original source text.

    Args:
        root: Candidate tree (parsed after sanitizing)
        table: This pass's placeholder table
        typesetter: Math engine

    Returns:
        Number of math expressions rendered into the tree
    """
    if not table.math_items():
        return 0

    pattern = table.pattern
    rendered = 0

    for string in list(root.find_all(string=pattern)):
        if string.parent is None:
            continue
        parent = string.parent
        if string.find_parent(["pre", "code"]) is not None:
            # Indented code blocks are not protected; show their source as is.
            string.replace_with(NavigableString(table.decode(str(string))))
            continue
        token = string.strip()
        entry = table.get(token)
        if (
            entry is not None
            and entry.display
            and parent is not root
            and parent.name == "p"
            and len(parent.contents) == 1
        ):
            parent.replace_with(*_typeset(entry, typesetter))
            rendered += 1
            continue

        pieces: list[Tag | NavigableString] = []
        position = 0
        for match in pattern.finditer(string):
            if match.start() > position:
                pieces.append(NavigableString(string[position:match.start()]))
            entry = table.get(match.group(0))
            if entry is None:
                pieces.append(NavigableString(match.group(0)))
            else:
                pieces.extend(_typeset(entry, typesetter))
                rendered += 1
            position = match.end()
        if position < len(string):
            pieces.append(NavigableString(string[position:]))
        string.replace_with(*pieces)

    for tag in root.find_all(True):
        for name, value in list(tag.attrs.items()):
            if isinstance(value, str) and pattern.search(value):
                tag[name] = table.decode(value)
            elif isinstance(value, list) and any(pattern.search(v) for v in value):
                tag[name] = [table.decode(v) for v in value]

    return rendered


__all__ = [
    "Placeholder",
    "PlaceholderKind",
    "PlaceholderTable",
    "encode",
    "restore_math",
]
