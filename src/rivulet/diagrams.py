"""Diagram engine protocol and the Mermaid CLI engine.

A diagram engine turns diagram source into graphic markup (usually SVG).
It is the only collaborator allowed to be slow, so its interface is async.

Usage:
    from rivulet.diagrams import MermaidCliEngine

    engine = MermaidCliEngine()               # uses `mmdc` from PATH
    svg = await engine.render("diagram-1a2b3c", "graph TD; A-->B")

Engines raise on failure; the sub-render pipeline catches the error and shows
it in place of the diagram.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import shutil
import tempfile
from pathlib import Path
from typing import Protocol

from rivulet.config import RenderConfig
from rivulet.errors import DiagramError
from rivulet.utils.logger import get_logger

logger = get_logger(__name__)


class DiagramEngine(Protocol):
    """Protocol for diagram engines."""

    async def render(self, render_id: str, source: str) -> str:
        """Render diagram source.

        Args:
            render_id: Unique identifier for this attempt. Engines that need a
                DOM id for intermediate elements must use it, so leftovers
                can be found and removed after a failure.
            source: Diagram source text

        Returns:
            Graphic markup

        Raises:
            Exception: Any failure; the caller contains it per node
        """
        ...

    def apply_config(self, config: RenderConfig) -> None:
        """(Re)initialize theme and security settings."""
        ...


def extract_error_details(stderr_text: str) -> str:
    """Condense mermaid-cli stderr into a readable message."""
    raw = (stderr_text or "").replace("\r\n", "\n").replace("\r", "\n")
    lines = [line.strip() for line in raw.split("\n") if line.strip()]
    if not lines:
        return "unknown error"

    # Mermaid CLI prints the parser error first, then a JS stack trace.
    message = [line for line in lines if not line.startswith("at ")]
    return "\n".join((message or lines)[:6])


class MermaidCliEngine:
    """Render Mermaid diagrams with the ``mmdc`` command-line tool.

    Args:
        executable: Command name or path of mermaid-cli
        timeout: Seconds before a render is abandoned (None waits forever)
    """

    def __init__(self, executable: str = "mmdc", *, timeout: float | None = None) -> None:
        self.executable = executable
        self.timeout = timeout
        self.theme = "default"
        self.security_level = "loose"

    def apply_config(self, config: RenderConfig) -> None:
        self.theme = config.theme
        self.security_level = config.security_level
        logger.debug("Mermaid engine configured: theme=%s security=%s", self.theme, self.security_level)

    async def render(self, render_id: str, source: str) -> str:
        command = shutil.which(self.executable)
        if command is None:
            raise DiagramError(render_id, f"'{self.executable}' not found on PATH")

        with tempfile.TemporaryDirectory(prefix="rivulet-") as tmp:
            workdir = Path(tmp)
            input_path = workdir / f"{render_id}.mmd"
            output_path = workdir / f"{render_id}.svg"
            config_path = workdir / "config.json"
            input_path.write_text(source, encoding="utf-8")
            config_path.write_text(
                json.dumps({"securityLevel": self.security_level}), encoding="utf-8"
            )

            process = await asyncio.create_subprocess_exec(
                command,
                "-i", str(input_path),
                "-o", str(output_path),
                "-t", self.theme,
                "-b", "transparent",
                "-c", str(config_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                _, stderr = await asyncio.wait_for(process.communicate(), self.timeout)
            except asyncio.TimeoutError:
                raise DiagramError(render_id, "Mermaid render timed out") from None
            finally:
                # Timed out or cancelled: never leave mmdc running.
                if process.returncode is None:
                    with contextlib.suppress(ProcessLookupError):
                        process.kill()
                    await process.wait()

            if process.returncode != 0:
                details = extract_error_details(stderr.decode("utf-8", errors="replace"))
                raise DiagramError(render_id, f"Mermaid render failed: {details}")

            try:
                svg = output_path.read_text(encoding="utf-8").strip()
            except OSError as e:
                raise DiagramError(render_id, f"Mermaid produced no output: {e}") from e

        if "<svg" not in svg.casefold():
            raise DiagramError(render_id, "Mermaid did not return SVG output")
        return svg
