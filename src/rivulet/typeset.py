"""Math typesetting protocol and the default MathML engine.

Usage:
    from rivulet.typeset import MathmlTypesetter

    typesetter = MathmlTypesetter()
    typesetter.typeset(r"\\frac{a}{b}", display=True)   # '<math ...>...</math>'

Any object with a matching ``typeset`` method can be passed to
``StreamRenderer(typesetter=...)``.
"""

from __future__ import annotations

from typing import Protocol

from latex2mathml.converter import convert as latex2mathml_convert

from rivulet.errors import TypesetError
from rivulet.utils.text import escape_html


class MathTypesetter(Protocol):
    """Protocol for math engines.

    Contract:
        - SHOULD degrade gracefully on recoverable syntax problems
          (return some markup rather than raise)
        - MAY raise :class:`TypesetError` when nothing sensible can be shown;
          the caller then substitutes the raw expression text
    """

    def typeset(self, expression: str, *, display: bool) -> str:
        """Render a TeX expression to markup.

        Args:
            expression: TeX source without delimiters
            display: Block (True) or inline (False) layout

        Returns:
            Markup to insert in place of the expression
        """
        ...


class MathmlTypesetter:
    """latex2mathml-based typesetter.

    Args:
        strict: Raise :class:`TypesetError` on conversion errors instead of
            returning an inline error span with the escaped expression.
    """

    __slots__ = ("strict",)

    def __init__(self, *, strict: bool = False) -> None:
        self.strict = strict

    def typeset(self, expression: str, *, display: bool) -> str:
        tex = expression.strip()
        if not tex:
            raise TypesetError(expression, "empty expression")
        try:
            return latex2mathml_convert(tex, display="block" if display else "inline")
        except Exception as e:
            if self.strict:
                raise TypesetError(expression, str(e) or type(e).__name__) from e
            title = escape_html(str(e) or type(e).__name__)
            return f'<span class="math-error" title="{title}">{escape_html(expression)}</span>'
