"""Text processing utilities for Rivulet."""

from __future__ import annotations

import html as html_module
import re

_NEWLINES = re.compile(r"\r\n?")


def escape_html(text: str) -> str:
    """Escape HTML special characters for safe use in text and attributes.

    Converts special characters to HTML entities:
    - & becomes &amp;
    - < becomes &lt;
    - > becomes &gt;
    - " becomes &quot;
    - ' becomes &#x27;

    Examples:
        >>> escape_html("<script>alert('xss')</script>")
        "&lt;script&gt;alert(&#x27;xss&#x27;)&lt;/script&gt;"
    """
    if not text:
        return ""

    escaped = html_module.escape(text, quote=True)
    return escaped.replace("'", "&#x27;")


def normalize_newlines(text: str) -> str:
    """Convert CRLF and lone CR line endings to LF.

    The structural parser does the same internally, so normalizing up front
    keeps its line numbers aligned with offsets into the text we hand it.
    """
    return _NEWLINES.sub("\n", text)
