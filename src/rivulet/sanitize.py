"""Composable sanitization policies over BeautifulSoup trees.

Parser output may contain raw HTML from the source text. Before it reaches
the live tree it goes through an allow-list sanitizer assembled from small
policies that compose via the | operator.

Example:
    >>> from rivulet.sanitize import Sanitizer
    >>> Sanitizer().sanitize('<p onclick="x()">Hi<script>alert(1)</script></p>')
    '<p>Hi</p>'

Structural marker attributes (fingerprint, language, materialized and error
state) must survive untouched; the stream renderer passes them as extra
attributes on every call.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import Protocol

from bs4 import BeautifulSoup, NavigableString
from bs4.element import PreformattedString

# Zero-width and bidi override characters to strip (Trojan Source mitigation)
_NORMALIZE_UNICODE_PATTERN = re.compile(
    "[\u200b\u200c\u200d\u200e\u200f\u202a\u202b\u202c\u202d\u202e\u2066\u2067\u2068\u2069\ufeff]+"
)

_DANGEROUS_SCHEMES = ("javascript:", "data:", "vbscript:")

# Control characters and whitespace browsers ignore inside a URL scheme
_URL_NOISE = re.compile(r"[\x00-\x20\x7f]+")

_URL_ATTRIBUTES = ("href", "src", "action", "formaction", "poster", "xlink:href")

# Dropped together with everything inside them
UNSAFE_ELEMENTS: frozenset[str] = frozenset((
    "script", "style", "object", "embed", "applet", "frame", "frameset",
    "base", "meta", "link", "noscript", "template", "title",
))

DEFAULT_ALLOWED_TAGS: frozenset[str] = frozenset((
    "a", "abbr", "b", "blockquote", "br", "caption", "code", "dd", "del",
    "details", "div", "dl", "dt", "em", "figcaption", "figure", "h1", "h2",
    "h3", "h4", "h5", "h6", "hr", "i", "img", "input", "ins", "kbd", "li",
    "mark", "ol", "p", "pre", "q", "s", "samp", "small", "span", "strong",
    "sub", "summary", "sup", "table", "tbody", "td", "tfoot", "th", "thead",
    "tr", "u", "ul", "var",
))

DEFAULT_ALLOWED_ATTRIBUTES: frozenset[str] = frozenset((
    "align", "alt", "checked", "colspan", "dir", "disabled", "height", "href",
    "id", "lang", "open", "rowspan", "src", "start", "title", "type", "width",
))


def _is_dangerous_url(url: str) -> bool:
    """Check if URL uses a dangerous scheme."""
    lower = _URL_NOISE.sub("", url).lower()
    return lower.startswith(_DANGEROUS_SCHEMES)


class Policy:
    """Wrapper for an in-place soup transform, supports composition via |."""

    __slots__ = ("_fn",)

    def __init__(self, fn: Callable[[BeautifulSoup], BeautifulSoup]) -> None:
        self._fn = fn

    def __call__(self, soup: BeautifulSoup) -> BeautifulSoup:
        return self._fn(soup)

    def __or__(self, other: Policy) -> Policy:
        """Chain policies: (self | other)(soup) applies self then other."""

        def chained(soup: BeautifulSoup) -> BeautifulSoup:
            return other._fn(self._fn(soup))

        return Policy(chained)


def _strip_comments(soup: BeautifulSoup) -> BeautifulSoup:
    """Remove comments, doctypes, CDATA and processing instructions."""
    for node in soup.find_all(string=lambda s: isinstance(s, PreformattedString)):
        node.extract()
    return soup


def _drop_unsafe_elements(soup: BeautifulSoup) -> BeautifulSoup:
    """Remove script-like elements with their content."""
    for tag in soup.find_all(sorted(UNSAFE_ELEMENTS)):
        if not tag.decomposed:
            tag.decompose()
    return soup


def _strip_dangerous_urls(soup: BeautifulSoup) -> BeautifulSoup:
    """Drop URL attributes using javascript:, data: or vbscript:."""
    for tag in soup.find_all(True):
        for name in _URL_ATTRIBUTES:
            value = tag.get(name)
            if isinstance(value, str) and _is_dangerous_url(value):
                del tag[name]
    return soup


def _normalize_unicode(soup: BeautifulSoup) -> BeautifulSoup:
    """Strip zero-width characters and bidi overrides from text."""
    for node in soup.find_all(string=_NORMALIZE_UNICODE_PATTERN):
        if type(node) is NavigableString:
            node.replace_with(NavigableString(_NORMALIZE_UNICODE_PATTERN.sub("", node)))
    return soup


# Composable Policy instances (use with | operator)
strip_comments = Policy(_strip_comments)
drop_unsafe_elements = Policy(_drop_unsafe_elements)
strip_dangerous_urls = Policy(_strip_dangerous_urls)
normalize_unicode = Policy(_normalize_unicode)


def allow_only(tags: Iterable[str], attributes: Iterable[str]) -> Policy:
    """Unwrap tags and strip attributes that are not on the allow-lists.

    Unwrapping keeps the text of an unknown element; only the element itself
    goes away.
    """
    allowed_tags = frozenset(t.lower() for t in tags)
    allowed_attributes = frozenset(a.lower() for a in attributes)

    def fn(soup: BeautifulSoup) -> BeautifulSoup:
        for tag in soup.find_all(True):
            if tag.decomposed:
                continue
            for name in list(tag.attrs):
                if name.lower() not in allowed_attributes:
                    del tag[name]
            if tag.name not in allowed_tags:
                tag.unwrap()
        return soup

    return Policy(fn)


# Pre-built policy set without the allow-list step
web_safe: Policy = strip_comments | drop_unsafe_elements | strip_dangerous_urls | normalize_unicode


class MarkupSanitizer(Protocol):
    """Protocol for output sanitizers."""

    def sanitize(
        self,
        markup: str,
        *,
        extra_tags: Iterable[str] = (),
        extra_attributes: Iterable[str] = (),
    ) -> str:
        """Return safe markup.

        Contract:
            - MUST keep every tag and attribute named in the extras unmodified
        """
        ...


class Sanitizer:
    """Allow-list sanitizer built from :class:`Policy` objects.

    Args:
        allowed_tags: Base tag allow-list
        allowed_attributes: Base attribute allow-list
        policy: Policies applied before the allow-list step
    """

    __slots__ = ("_allowed_attributes", "_allowed_tags", "_cache", "_policy")

    def __init__(
        self,
        *,
        allowed_tags: Iterable[str] = DEFAULT_ALLOWED_TAGS,
        allowed_attributes: Iterable[str] = DEFAULT_ALLOWED_ATTRIBUTES,
        policy: Policy = web_safe,
    ) -> None:
        self._allowed_tags = frozenset(allowed_tags)
        self._allowed_attributes = frozenset(allowed_attributes)
        self._policy = policy
        self._cache: dict[tuple[frozenset[str], frozenset[str]], Policy] = {}

    def policy_for(self, extra_tags: Iterable[str], extra_attributes: Iterable[str]) -> Policy:
        """Full policy for a given set of extras (cached)."""
        key = (frozenset(extra_tags), frozenset(extra_attributes))
        policy = self._cache.get(key)
        if policy is None:
            policy = self._policy | allow_only(
                self._allowed_tags | key[0],
                self._allowed_attributes | key[1],
            )
            self._cache[key] = policy
        return policy

    def sanitize(
        self,
        markup: str,
        *,
        extra_tags: Iterable[str] = (),
        extra_attributes: Iterable[str] = (),
    ) -> str:
        if not markup:
            return ""
        soup = BeautifulSoup(markup, "html.parser")
        return self.policy_for(extra_tags, extra_attributes)(soup).decode()


__all__ = [
    "DEFAULT_ALLOWED_ATTRIBUTES",
    "DEFAULT_ALLOWED_TAGS",
    "MarkupSanitizer",
    "Policy",
    "Sanitizer",
    "allow_only",
    "drop_unsafe_elements",
    "normalize_unicode",
    "strip_comments",
    "strip_dangerous_urls",
    "web_safe",
]
