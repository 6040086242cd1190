"""Tests for the Mermaid CLI engine."""

import asyncio
import os
import stat
import sys
from pathlib import Path

import pytest

from rivulet.config import RenderConfig
from rivulet.diagrams import MermaidCliEngine, extract_error_details
from rivulet.errors import DiagramError

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses a shell script as mmdc")


def _fake_mmdc(tmp_path: Path, body: str) -> str:
    script = tmp_path / "fake-mmdc"
    script.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    return str(script)


# Writes the input back as <svg> text at the path that follows "-o".
SUCCESS_SCRIPT = """\
while [ $# -gt 0 ]; do
  case "$1" in
    -i) input="$2"; shift 2 ;;
    -o) output="$2"; shift 2 ;;
    -t) echo "$2" > "$(dirname "$0")/theme.txt"; shift 2 ;;
    *) shift ;;
  esac
done
printf '<svg><text>%s</text></svg>' "$(cat "$input")" > "$output"
"""

FAILURE_SCRIPT = """\
echo "Error: Parse error on line 1:" >&2
echo "graph TD; A-->" >&2
echo "    at Parser.parseError (mermaid.js:1:2)" >&2
exit 1
"""


class TestExtractErrorDetails:
    def test_drops_stack_frames(self) -> None:
        stderr = "Error: Parse error\r\nExpecting 'NODE'\n    at parse (x.js:1)\n    at run (y.js:2)\n"
        assert extract_error_details(stderr) == "Error: Parse error\nExpecting 'NODE'"

    def test_empty(self) -> None:
        assert extract_error_details("") == "unknown error"
        assert extract_error_details("\n  \n") == "unknown error"

    def test_only_frames_kept(self) -> None:
        assert extract_error_details("at a\nat b") == "at a\nat b"

    def test_truncates(self) -> None:
        stderr = "\n".join(f"line {i}" for i in range(20))
        assert extract_error_details(stderr).count("\n") == 5


class TestMermaidCliEngine:
    def test_apply_config(self) -> None:
        engine = MermaidCliEngine()
        engine.apply_config(RenderConfig(theme="dark", security_level="strict"))
        assert engine.theme == "dark"
        assert engine.security_level == "strict"

    @pytest.mark.asyncio
    async def test_missing_executable(self) -> None:
        engine = MermaidCliEngine("rivulet-no-such-mmdc")
        with pytest.raises(DiagramError) as excinfo:
            await engine.render("diagram-1", "graph TD; A-->B")
        assert excinfo.value.render_id == "diagram-1"
        assert "not found" in str(excinfo.value)

    @posix_only
    @pytest.mark.asyncio
    async def test_renders_svg(self, tmp_path: Path) -> None:
        engine = MermaidCliEngine(_fake_mmdc(tmp_path, SUCCESS_SCRIPT))
        engine.apply_config(RenderConfig(theme="forest"))
        svg = await engine.render("diagram-2", "graph TD; A-->B")
        assert svg == "<svg><text>graph TD; A-->B</text></svg>"
        assert (tmp_path / "theme.txt").read_text().strip() == "forest"

    @posix_only
    @pytest.mark.asyncio
    async def test_failure_reports_stderr(self, tmp_path: Path) -> None:
        engine = MermaidCliEngine(_fake_mmdc(tmp_path, FAILURE_SCRIPT))
        with pytest.raises(DiagramError) as excinfo:
            await engine.render("diagram-3", "graph TD; A-->")
        message = str(excinfo.value)
        assert "Parse error on line 1" in message
        assert "Parser.parseError" not in message

    @posix_only
    @pytest.mark.asyncio
    async def test_non_svg_output(self, tmp_path: Path) -> None:
        script = 'while [ $# -gt 0 ]; do [ "$1" = "-o" ] && out="$2"; shift; done\necho nope > "$out"\n'
        engine = MermaidCliEngine(_fake_mmdc(tmp_path, script))
        with pytest.raises(DiagramError, match="did not return SVG"):
            await engine.render("diagram-4", "graph TD; A-->B")

    @posix_only
    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path: Path) -> None:
        engine = MermaidCliEngine(_fake_mmdc(tmp_path, "sleep 5\n"), timeout=0.2)
        with pytest.raises(DiagramError, match="timed out"):
            await engine.render("diagram-5", "graph TD; A-->B")

    @posix_only
    @pytest.mark.asyncio
    async def test_cancel_kills_child(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "mmdc.pid"
        engine = MermaidCliEngine(_fake_mmdc(tmp_path, f'echo $$ > "{pid_file}"\nexec sleep 30\n'))
        task = asyncio.create_task(engine.render("diagram-6", "graph TD; A-->B"))
        for _ in range(200):
            if pid_file.exists() and pid_file.read_text().strip():
                break
            await asyncio.sleep(0.01)
        pid = int(pid_file.read_text())

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)
