"""Shared fixtures: a virtual clock and a scriptable diagram engine."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator

import pytest
from bs4 import BeautifulSoup

from rivulet import RenderConfig, StreamRenderer, VirtualClock
from rivulet.config import reset_render_config
from rivulet.errors import DiagramError
from rivulet.utils.text import escape_html


class FakeDiagramEngine:
    """Diagram engine double.

    Records every call, fails on sources containing ``fail_marker`` and, on
    failure, leaves stray elements named after the render id in ``document``
    the way a browser diagram library does.
    """

    def __init__(self, document: BeautifulSoup | None = None) -> None:
        self.document = document
        self.fail_marker: str | None = "INVALID"
        self.calls: list[tuple[str, str]] = []
        self.configs: list[RenderConfig] = []
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()
        self.active = 0
        self.max_active = 0

    @property
    def sources(self) -> list[str]:
        return [source for _, source in self.calls]

    def apply_config(self, config: RenderConfig) -> None:
        self.configs.append(config)

    async def render(self, render_id: str, source: str) -> str:
        self.calls.append((render_id, source))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.started.set()
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.fail_marker is not None and self.fail_marker in source:
                self._leave_strays(render_id)
                raise DiagramError(render_id, f"Parse error: unexpected {self.fail_marker}")
            return f'<svg class="fake-diagram"><text>{escape_html(source.strip())}</text></svg>'
        finally:
            self.active -= 1

    def _leave_strays(self, render_id: str) -> None:
        if self.document is None:
            return
        for element_id in (render_id, f"d{render_id}"):
            stray = self.document.new_tag("div", attrs={"id": element_id})
            self.document.append(stray)


@pytest.fixture(autouse=True)
def _reset_config() -> Iterator[None]:
    reset_render_config()
    yield
    reset_render_config()


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def engine() -> FakeDiagramEngine:
    return FakeDiagramEngine()


@pytest.fixture
def renderer(clock: VirtualClock, engine: FakeDiagramEngine) -> Iterator[StreamRenderer]:
    r = StreamRenderer(clock=clock, diagram_engine=engine)
    engine.document = r.tree.document
    yield r
    r.close()
