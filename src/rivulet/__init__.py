"""
Rivulet: incremental Markdown rendering for streamed text.

Renders text that arrives in small, frequent chunks (a generative model's
output, for example) into a live HTML tree. Each pass re-renders the whole
source, then patches the live tree in place: diagrams that were already
rendered are kept by fingerprint, and diagram fences that are still open show
as an escaped preview instead of flickering through engine errors.

Quick Start:
    >>> from rivulet import StreamRenderer, VirtualClock
    >>> renderer = StreamRenderer(clock=VirtualClock())
    >>> renderer.flush("Hello **World**")
    >>> renderer.html
    '<p>Hello <strong>World</strong></p>'

    >>> # One-shot rendering, diagrams included
    >>> from rivulet import render_markdown
    >>> html = await render_markdown("# Title")  # doctest: +SKIP

Collaborators:
    Parser (markdown-it-py), sanitizer (BeautifulSoup allow-list), math
    (latex2mathml), highlighter (Pygments) and diagram engine (Mermaid CLI)
    are all replaceable; see ``StreamRenderer``.
"""

from rivulet.config import (
    RenderConfig,
    get_render_config,
    render_config_context,
    reset_render_config,
    set_render_config,
)
from rivulet.diagrams import DiagramEngine, MermaidCliEngine
from rivulet.errors import (
    ConfigError,
    DiagramError,
    PassError,
    RendererClosedError,
    RivuletError,
    SchedulerError,
    TypesetError,
)
from rivulet.fences import FenceRenderer, is_fence_closed
from rivulet.highlighting import Highlighter, PygmentsHighlighter
from rivulet.parsing import MarkdownItParser, StructuralParser
from rivulet.placeholders import PlaceholderKind, PlaceholderTable, encode, restore_math
from rivulet.reconcile import PatchStats, reconcile
from rivulet.sanitize import MarkupSanitizer, Policy, Sanitizer
from rivulet.scheduler import (
    AsyncioClock,
    Clock,
    PassScheduler,
    SubRenderScheduler,
    VirtualClock,
)
from rivulet.stream import RenderHooks, StreamRenderer, render_markdown
from rivulet.subrender import MaterializeStats, SubRenderPipeline
from rivulet.tree import RenderedTree
from rivulet.typeset import MathmlTypesetter, MathTypesetter
from rivulet.utils.hashing import fingerprint

__version__ = "0.1.0"

__all__ = [  # noqa: RUF022 - grouped by category
    "__version__",
    # Renderer
    "RenderHooks",
    "StreamRenderer",
    "render_markdown",
    # Configuration
    "RenderConfig",
    "get_render_config",
    "render_config_context",
    "reset_render_config",
    "set_render_config",
    # Core
    "FenceRenderer",
    "MaterializeStats",
    "PatchStats",
    "PlaceholderKind",
    "PlaceholderTable",
    "RenderedTree",
    "SubRenderPipeline",
    "encode",
    "fingerprint",
    "is_fence_closed",
    "reconcile",
    "restore_math",
    # Scheduling
    "AsyncioClock",
    "Clock",
    "PassScheduler",
    "SubRenderScheduler",
    "VirtualClock",
    # Collaborators
    "DiagramEngine",
    "Highlighter",
    "MarkdownItParser",
    "MarkupSanitizer",
    "MathTypesetter",
    "MathmlTypesetter",
    "MermaidCliEngine",
    "Policy",
    "PygmentsHighlighter",
    "Sanitizer",
    "StructuralParser",
    # Errors
    "ConfigError",
    "DiagramError",
    "PassError",
    "RendererClosedError",
    "RivuletError",
    "SchedulerError",
    "TypesetError",
]
