"""Exception classes for Rivulet.

Provides standardized exceptions for error handling throughout Rivulet.

Only :class:`PassError` is fatal, and only to the pass that raised it. The
other errors are raised by collaborators and recovered close to where they
happen (raw-text fallback for math, an error banner for diagrams).
"""

from __future__ import annotations


class RivuletError(Exception):
    """Base exception for all Rivulet errors.

    Subclass this for specific error categories.
    """

    pass


class ConfigError(RivuletError):
    """Invalid render configuration value."""

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(f"Config '{key}': {message}")


class PassError(RivuletError):
    """A full render pass failed.

    The rendered tree is left exactly as the previous pass left it.

    Attributes:
        stage: Where the pass failed ("before_parse", "parse", "sanitize",
            "after_sanitize")
    """

    def __init__(self, stage: str, message: str) -> None:
        """Initialize pass error.

        Args:
            stage: Pipeline stage that raised
            message: Description of the failure
        """
        self.stage = stage
        self.message = message
        super().__init__(f"Render pass failed during {stage}: {message}")


class TypesetError(RivuletError):
    """Math expression could not be typeset."""

    def __init__(self, expression: str, message: str) -> None:
        self.expression = expression
        super().__init__(f"Cannot typeset {expression!r}: {message}")


class DiagramError(RivuletError):
    """Diagram engine failed to render a block.

    Raised by diagram engines; the sub-render pipeline turns it into an
    error banner on the affected node.
    """

    def __init__(self, render_id: str, message: str) -> None:
        """Initialize diagram error.

        Args:
            render_id: Identifier the render was attempted under
            message: Engine error details
        """
        self.render_id = render_id
        self.message = message
        super().__init__(message)


class SchedulerError(RivuletError):
    """A timer could not be scheduled (no running event loop)."""

    pass


class RendererClosedError(RivuletError):
    """Input was sent to a renderer after it was closed."""

    pass
