"""
Shared fixtures: fake typesetter/measurer executables and render caches.

The fake pdflatex writes `<source>.pdf` containing one 200x100pt page with a
black rectangle, plus `.log`/`.aux` clutter. Directives inside the LaTeX
source steer it:

    %delay=SECONDS   sleep before producing anything
    %fail            print a LaTeX error and exit without a PDF
    %bbox=X0 Y0 X1 Y1   rectangle to draw and report (default 10 20 110 70)
    %bbox=none       draw the default rectangle but report no bounding box

The fake gs prints `%%HiResBoundingBox` for that rectangle on stderr.
Both append a line per invocation to $TEXSNIP_FAKE_SPAWN_LOG.
"""

import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List

import pytest

from texsnip.contexts.compilation import CompileJob, get_paths, set_paths
from texsnip.contexts.rendering import RenderCache

FAKE_LATEX = r'''
import os
import re
import sys
import time
from pathlib import Path

PAGE_WIDTH, PAGE_HEIGHT = 200, 100
DEFAULT_BOX = "10.0 20.0 110.0 70.0"


def write_pdf(path, x0, y0, x1, y1):
    content = f"0 g {x0} {y0} {x1 - x0} {y1 - y0} re f".encode()
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        (
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 {PAGE_WIDTH} {PAGE_HEIGHT}] "
            f"/Resources << >> /Contents 4 0 R >>"
        ).encode(),
        b"<< /Length %d >>\nstream\n" % len(content) + content + b"\nendstream",
    ]
    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, 1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref_offset = len(out)
    out += b"xref\n0 %d\n0000000000 65535 f \n" % (len(objects) + 1)
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (
        len(objects) + 1,
        xref_offset,
    )
    Path(path).write_bytes(bytes(out))


source_path = Path(sys.argv[-1])
text = source_path.read_text(encoding="utf-8")

spawn_log = os.environ.get("TEXSNIP_FAKE_SPAWN_LOG")
if spawn_log:
    with open(spawn_log, "a") as fh:
        fh.write(f"latex {source_path.name}\n")

Path(f"{source_path}.log").write_text("This is fake pdfTeX\n")
Path(f"{source_path}.aux").write_text("\\relax\n")

delay = re.search(r"%delay=([0-9.]+)", text)
if delay:
    time.sleep(float(delay.group(1)))

if "%fail" in text:
    print("! Undefined control sequence.")
    print("l.7 \\undefinedmacro")
    sys.exit(1)

box = re.search(r"%bbox=(none|[-0-9. ]+)", text)
reported = box.group(1).strip() if box else DEFAULT_BOX
drawn = DEFAULT_BOX if reported == "none" else reported
Path(f"{source_path}.bbox").write_text(reported)

x0, y0, x1, y1 = (float(value) for value in drawn.split())
write_pdf(f"{source_path}.pdf", x0, y0, x1, y1)
'''

FAKE_GS = r'''
import os
import sys
from pathlib import Path

pdf_path = sys.argv[-1]

spawn_log = os.environ.get("TEXSNIP_FAKE_SPAWN_LOG")
if spawn_log:
    with open(spawn_log, "a") as fh:
        fh.write(f"gs {Path(pdf_path).name}\n")

sidecar = Path(pdf_path[: -len(".pdf")] + ".bbox")
reported = sidecar.read_text().strip() if sidecar.exists() else "none"
sys.stdout.write("GPL Ghostscript (fake)\n")
if reported != "none":
    x0, y0, x1, y1 = (float(value) for value in reported.split())
    sys.stderr.write(f"%%BoundingBox: {int(x0)} {int(y0)} {int(x1) + 1} {int(y1) + 1}\n")
    sys.stderr.write(f"%%HiResBoundingBox: {x0:.6f} {y0:.6f} {x1:.6f} {y1:.6f}\n")
'''


def _write_tool(directory: Path, name: str, script: str) -> Path:
    script_path = directory / f"{name}_impl.py"
    script_path.write_text(script)
    tool = directory / name
    tool.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{script_path}" "$@"\n')
    tool.chmod(0o755)
    return tool


@dataclass
class FakeTex:
    """Fake executables plus the working directory jobs should use."""

    latex: Path
    ghostscript: Path
    work_dir: Path
    spawn_log: Path

    def spawns(self, tool: str = "latex") -> int:
        """Number of times `tool` ("latex" or "gs") was executed."""
        if not self.spawn_log.exists():
            return 0
        return sum(1 for line in self.spawn_log.read_text().splitlines() if line.split()[0] == tool)

    def leftovers(self) -> List[Path]:
        """Files currently in the working directory."""
        return sorted(self.work_dir.iterdir())


@pytest.fixture
def fake_tex(tmp_path, monkeypatch):
    """Install fake pdflatex/gs as the configured executables for one test."""
    tools = tmp_path / "bin"
    tools.mkdir()
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    spawn_log = tmp_path / "spawns.log"
    monkeypatch.setenv("TEXSNIP_FAKE_SPAWN_LOG", str(spawn_log))

    original = get_paths()
    latex = _write_tool(tools, "pdflatex", FAKE_LATEX)
    ghostscript = _write_tool(tools, "gs", FAKE_GS)
    assert set_paths(latex, ghostscript)

    yield FakeTex(latex=latex, ghostscript=ghostscript, work_dir=work_dir, spawn_log=spawn_log)

    set_paths(original.latex, original.ghostscript, check=lambda *_: True)


@pytest.fixture
def make_job(fake_tex):
    """Factory for CompileJobs working in the fake working directory."""
    jobs = []

    def factory() -> CompileJob:
        job = CompileJob(working_dir=fake_tex.work_dir)
        jobs.append(job)
        return job

    yield factory

    for job in jobs:
        job.close()


@pytest.fixture
def make_cache(make_job):
    """Factory for RenderCaches driving jobs in the fake working directory."""
    caches = []

    def factory(source: str = "$x^2$", preamble: str = "") -> RenderCache:
        cache = RenderCache(source, preamble, job=make_job())
        caches.append(cache)
        return cache

    yield factory

    for cache in caches:
        cache.close()


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll `predicate` until true or `timeout` seconds pass."""

    def poll(predicate: Callable[[], bool], timeout: float = 10.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.02)
        return predicate()

    return poll
