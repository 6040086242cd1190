"""Streaming renderer: the host-facing surface.

:class:`StreamRenderer` owns the accumulated source text and the live
rendered tree. Input events only update the source and ask the pass
scheduler for a pass; the pass itself runs the whole pipeline on the full
source every time:

    normalize -> before_parse hook -> protect spans -> parse (fences go to
    the fence strategy) -> sanitize -> after_sanitize hook -> candidate tree
    -> restore math -> reconcile into the live tree -> on_rendered hook

Every completed pass restarts the sub-render debounce. When it fires, pending
diagram nodes are handed to the diagram engine one at a time.

A pass that fails leaves the live tree exactly as it was. The failure is
logged, kept in :attr:`StreamRenderer.last_error`, passed to ``on_error`` and
marked on the tree root with ``data-render-error``; the next good pass clears
it.

Example:
    renderer = StreamRenderer()
    async for chunk in llm_stream():
        renderer.append(chunk)      # passes run every 30 ms at most
    html = await renderer.settle()  # final pass, then all diagrams
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from bs4 import NavigableString, PageElement, Tag

from rivulet.config import RenderConfig, get_render_config
from rivulet.diagrams import DiagramEngine, MermaidCliEngine
from rivulet.errors import PassError, RendererClosedError
from rivulet.fences import FenceRenderer
from rivulet.highlighting import Highlighter, PygmentsHighlighter
from rivulet.parsing import MarkdownItParser, StructuralParser
from rivulet.placeholders import PlaceholderTable, encode, restore_math
from rivulet.profiling import get_render_accumulator
from rivulet.reconcile import PatchStats, reconcile
from rivulet.sanitize import MarkupSanitizer, Sanitizer
from rivulet.scheduler import AsyncioClock, Clock, PassScheduler, SubRenderScheduler
from rivulet.subrender import MaterializeStats, SubRenderPipeline
from rivulet.tree import MARKER_ATTRIBUTES, RenderedTree, parse_fragment
from rivulet.typeset import MathmlTypesetter, MathTypesetter
from rivulet.utils.logger import get_logger
from rivulet.utils.text import normalize_newlines

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RenderHooks:
    """Host callbacks around each pass.

    Attributes:
        before_parse: Rewrites the source text before protection and parsing
        after_sanitize: Rewrites sanitized markup before it is parsed into
            the candidate tree
        on_rendered: Called with the live root after it has been patched
    """

    before_parse: Callable[[str], str] | None = None
    after_sanitize: Callable[[str], str] | None = None
    on_rendered: Callable[[Tag], None] | None = None


def _is_blank(node: PageElement) -> bool:
    return isinstance(node, NavigableString) and not node.strip()


class StreamRenderer:
    """Incrementally render streamed Markdown into a live tree.

    All collaborators are optional; the defaults are markdown-it-py,
    the allow-list sanitizer, latex2mathml, Pygments and the Mermaid CLI.

    Args:
        config: Render configuration (defaults to the context's config)
        parser: Structural parser; must route fences to ``fence_renderer``
        fence_renderer: Per-fence strategy
        sanitizer: Output sanitizer
        typesetter: Math engine
        highlighter: Syntax highlighter for the default fence strategy
        diagram_engine: Diagram engine
        hooks: Host callbacks
        on_error: Called with the :class:`PassError` of each failed pass
        clock: Timer source (an event-loop clock by default)
    """

    def __init__(
        self,
        *,
        config: RenderConfig | None = None,
        parser: StructuralParser | None = None,
        fence_renderer: FenceRenderer | None = None,
        sanitizer: MarkupSanitizer | None = None,
        typesetter: MathTypesetter | None = None,
        highlighter: Highlighter | None = None,
        diagram_engine: DiagramEngine | None = None,
        hooks: RenderHooks | None = None,
        on_error: Callable[[PassError], None] | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._config = config if config is not None else get_render_config()
        cfg = self._config

        if fence_renderer is None:
            fence_renderer = FenceRenderer(
                highlighter=highlighter if highlighter is not None else PygmentsHighlighter(),
                diagram_languages=cfg.diagram_languages,
                suffix_length=cfg.fence_suffix_length,
                anchored=cfg.anchored_fences,
            )
        self._fences = fence_renderer
        self._parser = parser if parser is not None else MarkdownItParser(fence_renderer)
        self._sanitizer = sanitizer if sanitizer is not None else Sanitizer()
        self._owns_typesetter = typesetter is None
        self._typesetter = typesetter if typesetter is not None else MathmlTypesetter(
            strict=cfg.strict_math
        )
        self._engine = diagram_engine if diagram_engine is not None else MermaidCliEngine()
        self._engine.apply_config(cfg)
        self.hooks = hooks if hooks is not None else RenderHooks()
        self.on_error = on_error

        self._source = ""
        self._closed = False
        self.last_error: PassError | None = None
        self._table = PlaceholderTable()
        self._tree = RenderedTree()
        self._pipeline = SubRenderPipeline(self._engine, decode=self._table.decode)

        clock = clock if clock is not None else AsyncioClock()
        self._passes = PassScheduler(clock, cfg.throttle_interval, self.render_pass)
        self._subrender = SubRenderScheduler(clock, cfg.subrender_debounce, self._materialize)

    # Input

    @property
    def source(self) -> str:
        """Accumulated source text."""
        return self._source

    @property
    def value(self) -> str:
        return self._source

    @value.setter
    def value(self, text: str) -> None:
        self.write(text)

    def write(self, text: str) -> None:
        """Replace the whole source and schedule a pass."""
        self._ensure_open()
        self._source = text
        self._passes.request()

    def append(self, chunk: str) -> None:
        """Append a streamed chunk and schedule a pass."""
        self._ensure_open()
        if not chunk:
            return
        self._source += chunk
        self._passes.request()

    def flush(self, text: str | None = None) -> None:
        """Run a pass now, optionally replacing the source first."""
        self._ensure_open()
        if text is not None:
            self._source = text
        self._passes.flush()

    async def settle(self, text: str | None = None) -> str:
        """Finish the stream: force a pass, then render all pending diagrams.

        Args:
            text: Replace the source first

        Returns:
            Serialized live tree
        """
        self.flush(text)
        await self._subrender.flush()
        return self.html

    async def wait(self) -> None:
        """Wait for a sub-render firing in progress to finish."""
        await self._subrender.wait()

    def close(self) -> None:
        """Cancel both timers and any running sub-render; further input raises."""
        if self._closed:
            return
        self._closed = True
        self._passes.cancel()
        self._subrender.cancel()
        logger.debug("Renderer closed")

    def _ensure_open(self) -> None:
        if self._closed:
            raise RendererClosedError("renderer is closed")

    # Configuration

    @property
    def config(self) -> RenderConfig:
        return self._config

    def configure(self, **overrides: Any) -> RenderConfig:
        """Apply configuration to this renderer and its collaborators.

        Diagrams already rendered keep their look; new and failed ones use
        the new theme.

        Raises:
            ConfigError: On unknown or invalid options
        """
        cfg = self._config.merged(**overrides)
        self._config = cfg
        self._engine.apply_config(cfg)
        self._passes.interval = cfg.throttle_interval
        self._subrender.delay = cfg.subrender_debounce
        self._fences.diagram_languages = cfg.diagram_languages
        self._fences.suffix_length = cfg.fence_suffix_length
        self._fences.anchored = cfg.anchored_fences
        if self._owns_typesetter and isinstance(self._typesetter, MathmlTypesetter):
            self._typesetter.strict = cfg.strict_math
        logger.debug("Renderer configured: %s", ", ".join(sorted(overrides)))
        if self._source and not self._closed:
            self._passes.request()
        return cfg

    # Output

    @property
    def tree(self) -> RenderedTree:
        return self._tree

    @property
    def html(self) -> str:
        """Serialized live tree."""
        return self._tree.to_html()

    @property
    def pending(self) -> bool:
        """True while a pass or a sub-render firing is outstanding."""
        return self._passes.pending or self._subrender.pending or self._subrender.busy

    # Pass

    def render_pass(self) -> PatchStats | None:
        """Run one full pass on the current source.

        Returns:
            What the reconciler changed, or None if the pass failed or the
            renderer is closed
        """
        if self._closed:
            return None
        acc = get_render_accumulator()
        try:
            candidates = self._build_candidates(self._source)
        except PassError as e:
            logger.exception("Render pass failed during %s", e.stage)
            self._fail(e)
            if acc is not None:
                acc.record_failure()
            return None

        stats = reconcile(self._tree.root, candidates)
        self._tree.clear_failure()
        self.last_error = None
        if acc is not None:
            acc.record_pass(stats.mutations, stats.preserved)
        logger.debug(
            "Pass: %d chars, %d mutations, %d preserved",
            len(self._source), stats.mutations, stats.preserved,
        )

        self._subrender.trigger()
        if self.hooks.on_rendered is not None:
            try:
                self.hooks.on_rendered(self._tree.root)
            except Exception:
                logger.exception("on_rendered hook failed")
        return stats

    def _build_candidates(self, source: str) -> list[PageElement]:
        cfg = self._config
        stage = "before_parse"
        try:
            text = normalize_newlines(source)
            if self.hooks.before_parse is not None:
                text = self.hooks.before_parse(text)

            stage = "parse"
            protected = encode(text, self._table)
            self._fences.bind(protected, self._table)
            markup = self._parser.render(protected)

            stage = "sanitize"
            markup = self._sanitizer.sanitize(
                markup,
                extra_tags=cfg.extra_tags,
                extra_attributes=cfg.extra_attributes + MARKER_ATTRIBUTES,
            )

            stage = "after_sanitize"
            if self.hooks.after_sanitize is not None:
                markup = self.hooks.after_sanitize(markup)
            candidate = parse_fragment(markup)
            restore_math(candidate, self._table, self._typesetter)
        except PassError:
            raise
        except Exception as e:
            raise PassError(stage, str(e) or type(e).__name__) from e

        return [node for node in candidate.contents if not _is_blank(node)]

    def _fail(self, error: PassError) -> None:
        self.last_error = error
        self._tree.mark_failed(error.message)
        if self.on_error is not None:
            try:
                self.on_error(error)
            except Exception:
                logger.exception("on_error callback failed")

    async def _materialize(self) -> MaterializeStats | None:
        if self._closed or not self._tree.pending_nodes():
            return None
        return await self._pipeline.materialize(self._tree)


async def render_markdown(text: str, **kwargs: Any) -> str:
    """Render a complete document once, diagrams included.

    Args:
        text: Markdown source
        **kwargs: Passed to :class:`StreamRenderer`

    Returns:
        Rendered HTML

    Raises:
        PassError: If the document could not be parsed or sanitized
    """
    renderer = StreamRenderer(**kwargs)
    try:
        html = await renderer.settle(text)
        if renderer.last_error is not None:
            raise renderer.last_error
        return html
    finally:
        renderer.close()


__all__ = [
    "RenderHooks",
    "StreamRenderer",
    "render_markdown",
]
