"""
Compilation Context

Responsibilities:
- Writes LaTeX sources to temporary files
- Runs the typesetter, then the bounding-box measurer, as one chain
- Parses the measured bounding box from diagnostic output
- Reclaims temporary files on success, failure and cancellation

Owns: External processes, temporary sources, produced PDFs until released
Never: Loads or rasterizes PDFs, knows why a compile was requested
"""

from texsnip.contexts.compilation.compile_job import (
    NO_TAG,
    CompileHandle,
    CompileJob,
    CompileOutcome,
    CompileRequest,
    JobState,
)
from texsnip.contexts.compilation.diagnostics import ZERO_BOX, BoundingBox, parse_bbox_output
from texsnip.contexts.compilation.executables import (
    ExecutablePaths,
    check_paths,
    get_paths,
    paths_ok,
    set_paths,
)

__all__ = [
    "NO_TAG",
    "ZERO_BOX",
    "BoundingBox",
    "CompileHandle",
    "CompileJob",
    "CompileOutcome",
    "CompileRequest",
    "ExecutablePaths",
    "JobState",
    "check_paths",
    "get_paths",
    "parse_bbox_output",
    "paths_ok",
    "set_paths",
]
