"""Sequential materialization of pending diagram nodes.

Each firing walks the rendered tree once and hands every diagram the engine
has not seen yet to the engine, one at a time. A failure replaces that node's
content with an error banner and its source; it never stops the walk.

Which nodes to render is decided by markers, not timing: rendered and failed
nodes are skipped, so running the pipeline twice is harmless.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from dataclasses import dataclass

from bs4 import Tag

from rivulet.diagrams import DiagramEngine
from rivulet.errors import DiagramError
from rivulet.profiling import get_render_accumulator
from rivulet.tree import (
    ATTR_ERROR,
    ATTR_RENDERED,
    ERROR_BANNER_CLASS,
    ERROR_CLASS,
    SOURCE_CLASS,
    RenderedTree,
    has_error,
    is_materialized,
    parse_fragment,
)
from rivulet.utils.logger import get_logger
from rivulet.utils.text import escape_html

logger = get_logger(__name__)


def new_render_id() -> str:
    """Fresh identifier for one engine call."""
    return f"diagram-{secrets.token_hex(5)}"


def error_summary(error: Exception) -> str:
    """First line of an engine error, prefixed with its type when unhelpful."""
    message = str(error).strip().splitlines()
    if isinstance(error, DiagramError) and message:
        return message[0]
    if message:
        return f"{type(error).__name__}: {message[0]}"
    return type(error).__name__


@dataclass(slots=True)
class MaterializeStats:
    """Outcome of one pipeline run."""

    rendered: int = 0
    failed: int = 0
    skipped: int = 0
    detached: int = 0

    @property
    def attempted(self) -> int:
        return self.rendered + self.failed + self.detached


class SubRenderPipeline:
    """Materialize pending diagram nodes of a rendered tree.

    Args:
        engine: Diagram engine
        decode: Undo any placeholder tokens left in node text
        id_factory: Render identifier generator
    """

    def __init__(
        self,
        engine: DiagramEngine,
        *,
        decode: Callable[[str], str] | None = None,
        id_factory: Callable[[], str] = new_render_id,
    ) -> None:
        self.engine = engine
        self._decode = decode
        self._id_factory = id_factory

    async def materialize(self, tree: RenderedTree, *, retry_failed: bool = False) -> MaterializeStats:
        """Render every pending diagram node in ``tree``, sequentially.

        Args:
            tree: Live tree to update in place
            retry_failed: Also retry nodes that show an error banner
        """
        stats = MaterializeStats()
        if retry_failed:
            nodes = [n for n in tree.sub_content_nodes() if not is_materialized(n)]
        else:
            nodes = tree.pending_nodes()
        for node in nodes:
            if not tree.contains(node):
                # Replaced by a pass while an earlier node was rendering.
                continue
            source = self._node_source(node)
            if self._decode is not None:
                source = self._decode(source)
            if not source.strip():
                stats.skipped += 1
                continue
            await self._materialize_node(tree, node, source, stats)

        acc = get_render_accumulator()
        if acc is not None:
            acc.record_materialize(stats.rendered, stats.failed)
        if stats.attempted:
            logger.debug(
                "Sub-render: %d rendered, %d failed, %d detached",
                stats.rendered, stats.failed, stats.detached,
            )
        return stats

    async def _materialize_node(
        self,
        tree: RenderedTree,
        node: Tag,
        source: str,
        stats: MaterializeStats,
    ) -> None:
        render_id = self._id_factory()
        try:
            markup = await self.engine.render(render_id, source)
        except Exception as e:
            if not tree.contains(node):
                stats.detached += 1
                self._remove_strays(tree, node, render_id)
                return
            logger.warning("Diagram %s failed: %s", render_id, error_summary(e))
            self._show_error(node, source, e)
            self._remove_strays(tree, node, render_id)
            stats.failed += 1
            return

        if not tree.contains(node):
            stats.detached += 1
            return

        node.clear()
        for child in list(parse_fragment(markup).contents):
            node.append(child)
        node[ATTR_RENDERED] = "true"
        if has_error(node):
            del node[ATTR_ERROR]
            node["class"] = [c for c in node.get("class", []) if c != ERROR_CLASS]
        stats.rendered += 1

    @staticmethod
    def _node_source(node: Tag) -> str:
        if has_error(node):
            shown = node.find(class_=SOURCE_CLASS)
            return shown.get_text() if shown is not None else ""
        return node.get_text()

    @staticmethod
    def _show_error(node: Tag, source: str, error: Exception) -> None:
        node.clear()
        fragment = parse_fragment(
            f'<div class="{ERROR_BANNER_CLASS}">{escape_html(error_summary(error))}</div>'
            f'<pre class="{SOURCE_CLASS}">{escape_html(source)}</pre>'
        )
        for child in list(fragment.contents):
            node.append(child)
        node[ATTR_ERROR] = "true"
        classes = list(node.get("class", []))
        if ERROR_CLASS not in classes:
            classes.append(ERROR_CLASS)
        node["class"] = classes

    @staticmethod
    def _remove_strays(tree: RenderedTree, node: Tag, render_id: str) -> None:
        """Drop engine leftovers registered under this render's id."""
        for element_id in (render_id, f"d{render_id}"):
            for stray in tree.document.find_all(id=element_id):
                if stray is node or any(p is node for p in stray.parents):
                    continue
                if any(p is stray for p in node.parents):
                    continue
                logger.debug("Removing stray diagram artifact #%s", element_id)
                stray.decompose()
