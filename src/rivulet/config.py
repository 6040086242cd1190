"""ContextVar-based render configuration for Rivulet.

Collaborator settings (diagram theme, security level) and scheduler cadences
live in one immutable :class:`RenderConfig`. The process-wide default is held
in a ContextVar rather than module globals, so it can be swapped and reset
deterministically (tests do this between cases).

Usage:
    from rivulet.config import RenderConfig, render_config_context

    with render_config_context(RenderConfig(theme="dark")):
        renderer = StreamRenderer()   # picks up the dark theme

    # Or per renderer, explicitly
    renderer = StreamRenderer(config=RenderConfig(throttle_interval=0.05))
    renderer.configure(theme="forest")   # apply configuration

"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, fields, replace
from typing import Any

from rivulet.errors import ConfigError


@dataclass(frozen=True, slots=True)
class RenderConfig:
    """Immutable render configuration.

    Attributes:
        theme: Diagram theme forwarded to the diagram engine
        security_level: Diagram engine security level
        throttle_interval: Seconds between coalesced full passes
        subrender_debounce: Quiet period in seconds before diagrams render
        diagram_languages: Fence language tags rendered as diagrams
        fence_suffix_length: Length of the content suffix used to locate a
            fence body in the source
        anchored_fences: Search for the fence body from its opening line
            instead of taking the last match anywhere in the source
        extra_tags: Tags allowed by the sanitizer on top of its defaults
        extra_attributes: Attributes allowed by the sanitizer on top of its
            defaults
        strict_math: Raise on math errors instead of rendering an inline
            error span (the codec then falls back to the raw expression)

    """

    theme: str = "default"
    security_level: str = "loose"
    throttle_interval: float = 0.03
    subrender_debounce: float = 0.3
    diagram_languages: tuple[str, ...] = ("mermaid",)
    fence_suffix_length: int = 20
    anchored_fences: bool = True
    extra_tags: tuple[str, ...] = ("iframe",)
    extra_attributes: tuple[str, ...] = ("target",)
    strict_math: bool = False

    def __post_init__(self) -> None:
        if self.throttle_interval < 0:
            raise ConfigError("throttle_interval", "must be >= 0")
        if self.subrender_debounce < 0:
            raise ConfigError("subrender_debounce", "must be >= 0")
        if self.fence_suffix_length < 1:
            raise ConfigError("fence_suffix_length", "must be >= 1")
        # Lists from YAML/JSON sources are accepted and frozen.
        for name in ("diagram_languages", "extra_tags", "extra_attributes"):
            value = getattr(self, name)
            if isinstance(value, str):
                raise ConfigError(name, "expected a sequence of strings")
            object.__setattr__(self, name, tuple(v.lower() for v in value))

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "RenderConfig":
        """Create RenderConfig from dictionary.

        Only includes keys that are valid RenderConfig fields; unknown keys
        are silently ignored.

        Example:
            >>> config = RenderConfig.from_dict({
            ...     "theme": "dark",
            ...     "unknown_key": "ignored",
            ... })
            >>> config.theme
            'dark'

        """
        valid_fields = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in config_dict.items() if k in valid_fields}
        return cls(**filtered)

    def merged(self, **overrides: Any) -> "RenderConfig":
        """Return a copy with the given fields replaced.

        Raises:
            ConfigError: If an override names an unknown field.
        """
        valid_fields = {f.name for f in fields(self)}
        for key in overrides:
            if key not in valid_fields:
                raise ConfigError(key, "unknown option")
        return replace(self, **overrides)


# Module-level default config (reused, never recreated)
_DEFAULT_CONFIG: RenderConfig = RenderConfig()

_render_config: ContextVar[RenderConfig] = ContextVar(
    "render_config",
    default=_DEFAULT_CONFIG,
)


def get_render_config() -> RenderConfig:
    """Get the current render configuration for this context."""
    return _render_config.get()


def set_render_config(config: RenderConfig) -> None:
    """Set render configuration for the current context.

    Renderers read this once, at construction; use
    ``StreamRenderer.configure`` to change a live renderer.
    """
    _render_config.set(config)


def reset_render_config() -> None:
    """Reset to the default configuration."""
    _render_config.set(_DEFAULT_CONFIG)


@contextmanager
def render_config_context(config: RenderConfig) -> Iterator[None]:
    """Context manager for temporary config changes.

    Example:
        >>> with render_config_context(RenderConfig(theme="dark")):
        ...     get_render_config().theme
        'dark'

    Restores the previous config even if an exception is raised.
    """
    previous = _render_config.get()
    _render_config.set(config)
    try:
        yield
    finally:
        _render_config.set(previous)


__all__ = [
    "RenderConfig",
    "get_render_config",
    "render_config_context",
    "reset_render_config",
    "set_render_config",
]
