"""Rivulet RenderAccumulator: opt-in metrics for streaming renders.

This module accumulates, across passes and sub-render firings:
- Passes run and passes that failed
- Tree mutations and preserved nodes
- Diagrams rendered and diagrams that failed

Zero overhead when disabled (get_render_accumulator() returns None).

Example:
    from rivulet import StreamRenderer
    from rivulet.profiling import profiled_render

    with profiled_render() as metrics:
        renderer = StreamRenderer()
        renderer.flush("# Hello **World**")

    print(metrics.summary())
    # {"total_ms": 1.2, "passes": 1, "failed_passes": 0, "mutations": 1, ...}

"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any


@dataclass
class RenderAccumulator:
    """Accumulated metrics during streaming rendering.

    Attributes:
        start_time: Profiling start timestamp.
        passes: Full passes that completed.
        failed_passes: Passes that raised and left the tree untouched.
        mutations: Live-tree changes made by the reconciler.
        preserved: Elements kept because only their diagrams differed.
        diagrams_rendered: Successful diagram materializations.
        diagrams_failed: Diagram engine failures.

    """

    start_time: float = field(default_factory=perf_counter)
    passes: int = 0
    failed_passes: int = 0
    mutations: int = 0
    preserved: int = 0
    diagrams_rendered: int = 0
    diagrams_failed: int = 0

    def record_pass(self, mutations: int, preserved: int) -> None:
        """Record a completed pass."""
        self.passes += 1
        self.mutations += mutations
        self.preserved += preserved

    def record_failure(self) -> None:
        """Record a pass that failed."""
        self.failed_passes += 1

    def record_materialize(self, rendered: int, failed: int) -> None:
        """Record one sub-render firing."""
        self.diagrams_rendered += rendered
        self.diagrams_failed += failed

    @property
    def total_duration_ms(self) -> float:
        """Total profiling duration in milliseconds."""
        return (perf_counter() - self.start_time) * 1000

    def summary(self) -> dict[str, Any]:
        """Get summary of render metrics."""
        return {
            "total_ms": round(self.total_duration_ms, 2),
            "passes": self.passes,
            "failed_passes": self.failed_passes,
            "mutations": self.mutations,
            "preserved": self.preserved,
            "diagrams_rendered": self.diagrams_rendered,
            "diagrams_failed": self.diagrams_failed,
        }


_accumulator: ContextVar[RenderAccumulator | None] = ContextVar(
    "render_accumulator",
    default=None,
)


def get_render_accumulator() -> RenderAccumulator | None:
    """Get current accumulator (None if profiling disabled)."""
    return _accumulator.get()


@contextmanager
def profiled_render() -> Iterator[RenderAccumulator]:
    """Context manager for profiled rendering.

    Creates a RenderAccumulator and makes it available via
    get_render_accumulator() for the duration of the with block.

    Timer callbacks and tasks copy the context they were scheduled from, so
    passes scheduled inside the block are recorded even if they run later.

    Yields:
        RenderAccumulator that will be populated during rendering.

    """
    acc = RenderAccumulator()
    token: Token[RenderAccumulator | None] = _accumulator.set(acc)
    try:
        yield acc
    finally:
        _accumulator.reset(token)
