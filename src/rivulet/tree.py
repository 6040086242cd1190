"""Live rendered tree and structural markers.

The rendered tree is a BeautifulSoup document holding a single
``<div class="markdown-body">`` root. Its children are the top-level nodes
the reconciler patches pass after pass. The surrounding document plays the
part of the shared global context: diagram engines that misbehave on error
may leave stray elements in it, which the sub-render pipeline removes.

Sub-content (diagram) nodes are recognised purely by markers in the markup,
so they survive the sanitizer and the parse round-trip:

    <div class="diagram" data-fingerprint="..." data-language="mermaid">
        escaped source
    </div>

A materialized node also carries ``data-rendered="true"``; a failed one
carries ``data-error="true"`` and the ``diagram-error`` class.
"""

from __future__ import annotations

from bs4 import BeautifulSoup, PageElement, Tag

ROOT_CLASS = "markdown-body"
SUB_CONTENT_CLASS = "diagram"
STREAMING_CLASS = "diagram-streaming"
ERROR_CLASS = "diagram-error"
ERROR_BANNER_CLASS = "diagram-error-banner"
SOURCE_CLASS = "diagram-source"

ATTR_FINGERPRINT = "data-fingerprint"
ATTR_LANGUAGE = "data-language"
ATTR_RENDERED = "data-rendered"
ATTR_ERROR = "data-error"
ATTR_RENDER_ERROR = "data-render-error"

# Attributes the sanitizer must let through untouched.
MARKER_ATTRIBUTES: tuple[str, ...] = (
    "class",
    ATTR_FINGERPRINT,
    ATTR_LANGUAGE,
    ATTR_RENDERED,
    ATTR_ERROR,
)


def parse_fragment(markup: str) -> BeautifulSoup:
    """Parse a markup fragment into a transient candidate tree."""
    return BeautifulSoup(markup, "html.parser")


def is_sub_content(node: PageElement) -> bool:
    """True for diagram nodes that carry a fingerprint."""
    return (
        isinstance(node, Tag)
        and SUB_CONTENT_CLASS in (node.get("class") or ())
        and node.has_attr(ATTR_FINGERPRINT)
    )


def is_materialized(node: Tag) -> bool:
    return node.get(ATTR_RENDERED) == "true"


def has_error(node: Tag) -> bool:
    return node.get(ATTR_ERROR) == "true"


def is_settled(node: Tag) -> bool:
    """Rendered or failed: either way the engine has seen this content."""
    return is_materialized(node) or has_error(node)


def fingerprint_of(node: Tag) -> str | None:
    value = node.get(ATTR_FINGERPRINT)
    return value if isinstance(value, str) else None


class RenderedTree:
    """Persistent tree patched by the reconciler and the sub-render pipeline.

    Attributes:
        document: Shared context the root lives in
        root: Container whose children are the rendered nodes
    """

    __slots__ = ("document", "root")

    def __init__(self) -> None:
        self.document = BeautifulSoup(f'<div class="{ROOT_CLASS}"></div>', "html.parser")
        root = self.document.find("div")
        assert isinstance(root, Tag)
        self.root: Tag = root

    @property
    def nodes(self) -> list[PageElement]:
        return list(self.root.contents)

    def sub_content_nodes(self) -> list[Tag]:
        """All diagram nodes, in document order, at any depth."""
        return [n for n in self.root.find_all(class_=SUB_CONTENT_CLASS) if is_sub_content(n)]

    def pending_nodes(self) -> list[Tag]:
        """Diagram nodes the engine has not handled yet."""
        return [n for n in self.sub_content_nodes() if not is_settled(n)]

    def contains(self, node: PageElement) -> bool:
        """True if ``node`` is still attached below the root."""
        return node is self.root or any(parent is self.root for parent in node.parents)

    def mark_failed(self, message: str) -> None:
        """Flag the view as stale after a failed pass."""
        self.root[ATTR_RENDER_ERROR] = message

    def clear_failure(self) -> None:
        if self.root.has_attr(ATTR_RENDER_ERROR):
            del self.root[ATTR_RENDER_ERROR]

    @property
    def failed(self) -> bool:
        return self.root.has_attr(ATTR_RENDER_ERROR)

    def to_html(self) -> str:
        """Serialized children of the root."""
        return self.root.decode_contents()

    def __len__(self) -> int:
        return len(self.root.contents)
