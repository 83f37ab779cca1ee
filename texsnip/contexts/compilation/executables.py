"""
Executable path configuration for compile chains.

Holds the process-wide paths to the typesetter (pdflatex) and the measurer
(Ghostscript). Paths come from the environment (.env supported) and fall back
to conventional install locations. Replacing them goes through a check so that
running jobs never see an unvalidated executable.
"""

import os
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from dotenv import load_dotenv

from texsnip.contexts.compilation.logger import _log_info, _log_warning

load_dotenv()

DEFAULT_LATEX_COMPILER = "/usr/bin/pdflatex"
DEFAULT_GHOSTSCRIPT = "/usr/bin/gs"

PathLike = Union[str, Path]
PathCheck = Callable[[Path, Path], bool]


@dataclass(frozen=True)
class ExecutablePaths:
    """
    Paths to the two executables of a compile chain.

    Attributes:
        latex: Typesetter, invoked as `latex -interaction=nonstopmode <file>`
        ghostscript: Measurer, invoked with the bbox output device
    """

    latex: Path
    ghostscript: Path


def _is_executable(path: Path) -> bool:
    # Bare names ("pdflatex") are resolved through PATH
    return shutil.which(str(path)) is not None


def check_paths(latex: PathLike, ghostscript: PathLike) -> bool:
    """
    Default validation: both paths must resolve to executable files.

    Args:
        latex: Candidate typesetter path or command name
        ghostscript: Candidate measurer path or command name

    Returns:
        True if both are executable
    """
    return _is_executable(Path(latex)) and _is_executable(Path(ghostscript))


_lock = threading.Lock()
_paths = ExecutablePaths(
    latex=Path(os.getenv("LATEX_COMPILER", DEFAULT_LATEX_COMPILER)),
    ghostscript=Path(os.getenv("GHOSTSCRIPT", DEFAULT_GHOSTSCRIPT)),
)
_paths_ok: Optional[bool] = None


def get_paths() -> ExecutablePaths:
    """Current executable paths (a snapshot, safe to keep for a whole chain)."""
    with _lock:
        return _paths


def set_paths(latex: PathLike, ghostscript: PathLike, check: PathCheck = check_paths) -> bool:
    """
    Replace the executable paths if they pass `check`.

    Rejected paths leave the current configuration untouched.

    Args:
        latex: New typesetter path
        ghostscript: New measurer path
        check: Validation callable receiving (latex, ghostscript)

    Returns:
        True if the paths were accepted
    """
    global _paths, _paths_ok

    latex, ghostscript = Path(latex), Path(ghostscript)
    if not check(latex, ghostscript):
        _log_warning(f"Rejected executable paths: latex={latex}, gs={ghostscript}")
        return False

    with _lock:
        _paths = ExecutablePaths(latex=latex, ghostscript=ghostscript)
        _paths_ok = True
    _log_info(f"Executable paths set: latex={latex}, gs={ghostscript}")
    return True


def paths_ok() -> bool:
    """
    Whether the configured executables are usable.

    The environment/default paths are validated lazily on first call; paths
    accepted by set_paths() are trusted.
    """
    global _paths_ok

    with _lock:
        if _paths_ok is None:
            _paths_ok = check_paths(_paths.latex, _paths.ghostscript)
        return _paths_ok
