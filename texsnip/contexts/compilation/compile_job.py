"""
Compile Job Module

Runs one typeset -> measure process chain over a LaTeX source at a time.

The typesetter (pdflatex) turns a temporary source file into `<file>.pdf`; the
measurer (Ghostscript bbox device) reports the inked area of that PDF on stderr.
Process exits are observed by a watcher thread per chain, and each chain reports
exactly one terminal CompileOutcome, both through connected listeners and
through the CompileHandle returned when the chain was started.
"""

import itertools
import os
import subprocess
import tempfile
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Set, Tuple

from dotenv import load_dotenv

from texsnip.contexts.compilation.diagnostics import (
    ZERO_BOX,
    BoundingBox,
    parse_bbox_output,
    parse_latex_errors,
)
from texsnip.contexts.compilation.executables import get_paths
from texsnip.contexts.compilation.logger import (
    _log_debug,
    _log_error,
    _log_warning,
    log_chain_outcome,
    log_chain_start,
)

load_dotenv()

TEMP_PATH = Path(os.getenv("TEXSNIP_TEMP_PATH", tempfile.gettempdir()))
TEMP_PREFIX = "texsnip"

# Caller tag meaning "nobody is waiting for a ready notification"
NO_TAG = -1


class JobState(Enum):
    IDLE = "idle"
    TYPESETTING = "typesetting"
    MEASURING = "measuring"


@dataclass(frozen=True)
class CompileRequest:
    """
    Identity of one compile chain.

    Attributes:
        generation: Monotonically increasing id, distinguishes successive chains
        tag: Caller correlation tag echoed back on completion (NO_TAG if none)
    """

    generation: int
    tag: int = NO_TAG


@dataclass(frozen=True)
class CompileOutcome:
    """
    Terminal result of a compile chain.

    Cancelled chains are reported exactly like failed ones.

    Attributes:
        request: Request record of the chain that produced this outcome
        success: Whether a PDF was produced
        pdf_path: Produced PDF (None on failure)
        bbox: Measured bounding box (ZERO_BOX if failed or unmeasurable)
        errors: LaTeX `!` error lines from the typesetter output
    """

    request: CompileRequest
    success: bool
    pdf_path: Optional[Path] = None
    bbox: BoundingBox = ZERO_BOX
    errors: Tuple[str, ...] = ()

    @classmethod
    def failed(cls, request: CompileRequest, errors: Tuple[str, ...] = ()) -> "CompileOutcome":
        return cls(request=request, success=False, errors=errors)


@dataclass
class CompileHandle:
    """One-shot completion handle for a chain. Resolves exactly once."""

    request: CompileRequest
    future: Future = field(default_factory=Future)

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: Optional[float] = None) -> CompileOutcome:
        """Block until the chain reaches its terminal outcome."""
        return self.future.result(timeout=timeout)


@dataclass
class _Chain:
    handle: CompileHandle
    source_path: Path
    state: JobState = JobState.TYPESETTING
    process: Optional[subprocess.Popen] = None
    cancelled: bool = False
    started_at: float = field(default_factory=time.time)

    @property
    def request(self) -> CompileRequest:
        return self.handle.request

    @property
    def pdf_path(self) -> Path:
        return texname_to_pdf(self.source_path)


def texname_to_pdf(source_path: Path) -> Path:
    """Path of the PDF the typesetter produces for `source_path`."""
    return Path(f"{source_path}.pdf")


def remove_temp_files(source_path: Path, keep_document: bool = False) -> None:
    """
    Remove a chain's temporary source and every file derived from its name.

    Args:
        source_path: Temporary source file (no suffix)
        keep_document: Keep the produced PDF
    """
    pdf_path = texname_to_pdf(source_path)
    for artifact in source_path.parent.glob(f"{source_path.name}.*"):
        if keep_document and artifact == pdf_path:
            continue
        artifact.unlink(missing_ok=True)
    source_path.unlink(missing_ok=True)


CompletionListener = Callable[[CompileOutcome], None]


class CompileJob:
    """
    Owner of at most one typeset -> measure chain.

    State machine:
        IDLE --start--> TYPESETTING --exit--> MEASURING --exit--> IDLE (success)
        any --kill--> IDLE (failure, only if a chain was attached)

    Produced PDFs of successful chains are kept on disk and tracked until
    release_artifact() or close() deletes them.

    Args:
        working_dir: Directory for temporary sources and process cwd

    Example:
        >>> job = CompileJob()
        >>> handle = job.start(latex_source)
        >>> outcome = handle.result()
        >>> outcome.success, outcome.bbox
    """

    def __init__(self, working_dir: Optional[Path] = None):
        self.working_dir = Path(working_dir) if working_dir is not None else TEMP_PATH
        self.chains_started = 0
        self._lock = threading.RLock()
        self._chain: Optional[_Chain] = None
        self._generations = itertools.count(1)
        self._listeners: List[CompletionListener] = []
        self._artifacts: Set[Path] = set()

    def __enter__(self) -> "CompileJob":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Listeners

    def connect(self, listener: CompletionListener) -> None:
        """Call `listener(outcome)` on every terminal outcome."""
        with self._lock:
            self._listeners.append(listener)

    def disconnect(self, listener: CompletionListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # State

    def next_request(self, tag: int = NO_TAG) -> CompileRequest:
        """Allocate a request record with the next generation id."""
        return CompileRequest(generation=next(self._generations), tag=tag)

    def running(self) -> bool:
        """True from start until the chain's terminal outcome."""
        with self._lock:
            return self._chain is not None

    @property
    def state(self) -> JobState:
        with self._lock:
            return self._chain.state if self._chain is not None else JobState.IDLE

    @property
    def artifacts(self) -> Set[Path]:
        """PDFs of successful chains still kept on disk."""
        with self._lock:
            return set(self._artifacts)

    # Chain control

    def start(self, source: str, request: Optional[CompileRequest] = None) -> CompileHandle:
        """
        Write `source` to a fresh temporary file and start typesetting it.

        Does not start a second chain: if one is attached, logs a warning and
        returns the attached chain's handle. Use restart() to supersede.

        Args:
            source: Complete LaTeX document
            request: Request record (default: next generation, NO_TAG)

        Returns:
            Handle resolving to the chain's CompileOutcome
        """
        request = request or self.next_request()
        outcome = None

        with self._lock:
            if self._chain is not None:
                _log_warning(
                    "Cannot start while another chain is in progress, use restart() instead"
                )
                return self._chain.handle

            handle = CompileHandle(request=request)
            try:
                source_path = self._write_source(source)
            except OSError as e:
                _log_error(f"Cannot create temporary source in {self.working_dir}: {e}")
                outcome = CompileOutcome.failed(request)
                handle.future.set_result(outcome)
            else:
                chain = _Chain(handle=handle, source_path=source_path)
                self._chain = chain
                self.chains_started += 1
                outcome = self._begin_typesetting(chain)

        if outcome is not None:
            self._emit(outcome)
        return handle

    def restart(self, source: str, request: Optional[CompileRequest] = None) -> CompileHandle:
        """Kill the attached chain (if any), then start a new one over `source`."""
        self.kill()
        return self.start(source, request)

    def kill(self) -> None:
        """
        Terminate the attached chain immediately.

        Removes all of its temporary files, including the PDF, and emits one
        failed outcome synchronously. Does nothing if no chain is attached.
        """
        with self._lock:
            chain = self._chain
            if chain is None:
                return
            chain.cancelled = True
            if chain.process is not None and chain.process.poll() is None:
                chain.process.kill()
            _log_debug(f"Chain {chain.request.generation} killed while {chain.state.value}")
            outcome = self._finish(chain, CompileOutcome.failed(chain.request))

        self._emit(outcome)

    def release_artifact(self, pdf_path: Optional[Path]) -> None:
        """Delete a kept PDF once its consumer no longer needs it."""
        if pdf_path is None:
            return
        with self._lock:
            self._artifacts.discard(pdf_path)
        pdf_path.unlink(missing_ok=True)

    def close(self) -> None:
        """Kill any attached chain and delete every kept PDF."""
        self.kill()
        with self._lock:
            artifacts, self._artifacts = self._artifacts, set()
        for pdf_path in artifacts:
            pdf_path.unlink(missing_ok=True)

    # Internals

    def _write_source(self, source: str) -> Path:
        fd, name = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=str(self.working_dir))
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(source)
        return Path(name)

    def _begin_typesetting(self, chain: _Chain) -> Optional[CompileOutcome]:
        """Spawn the typesetter and its watcher. Returns an outcome only on spawn failure."""
        paths = get_paths()
        log_chain_start(
            chain.request.generation, chain.request.tag, chain.source_path, self.working_dir
        )
        try:
            chain.process = subprocess.Popen(
                [str(paths.latex), "-interaction=nonstopmode", str(chain.source_path)],
                cwd=self.working_dir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",  # pdflatex output is not guaranteed to be UTF-8
            )
        except OSError as e:
            _log_error(f"Cannot run typesetter {paths.latex}: {e}")
            return self._finish(chain, CompileOutcome.failed(chain.request))

        watcher = threading.Thread(
            target=self._watch,
            args=(chain,),
            name=f"texsnip-chain-{chain.request.generation}",
            daemon=True,
        )
        watcher.start()
        return None

    def _watch(self, chain: _Chain) -> None:
        """Follow one chain through both stages. Runs on the chain's watcher thread."""
        typeset_output, _ = chain.process.communicate()
        errors = tuple(parse_latex_errors(typeset_output or ""))
        outcome = None

        with self._lock:
            if chain.cancelled:
                # kill() already reported; catch files written while dying
                remove_temp_files(chain.source_path)
                return

            if not chain.pdf_path.exists():
                _log_debug(f"Typesetter exited with {chain.process.returncode} and no PDF")
                outcome = self._finish(chain, CompileOutcome.failed(chain.request, errors))
            else:
                outcome = self._begin_measuring(chain, errors)

        if outcome is not None:
            self._emit(outcome)
            return

        _, measure_output = chain.process.communicate()

        with self._lock:
            if chain.cancelled:
                remove_temp_files(chain.source_path)
                return
            outcome = self._finish(
                chain,
                CompileOutcome(
                    request=chain.request,
                    success=True,
                    pdf_path=chain.pdf_path,
                    bbox=parse_bbox_output(measure_output or ""),
                    errors=errors,
                ),
            )

        self._emit(outcome)

    def _begin_measuring(self, chain: _Chain, errors: Tuple[str, ...]) -> Optional[CompileOutcome]:
        """Spawn the measurer. Returns an outcome only if it cannot be spawned."""
        paths = get_paths()
        chain.state = JobState.MEASURING
        try:
            chain.process = subprocess.Popen(
                [
                    str(paths.ghostscript),
                    "-sDEVICE=bbox",
                    "-dBATCH",
                    "-dNOPAUSE",
                    "-f",
                    str(chain.pdf_path),
                ],
                cwd=self.working_dir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            # An unmeasured PDF is still usable
            _log_error(f"Cannot run measurer {paths.ghostscript}: {e}")
            return self._finish(
                chain,
                CompileOutcome(
                    request=chain.request, success=True, pdf_path=chain.pdf_path, errors=errors
                ),
            )
        return None

    def _finish(self, chain: _Chain, outcome: CompileOutcome) -> CompileOutcome:
        """Detach `chain` and resolve its handle. Caller holds the lock and emits afterwards."""
        if self._chain is chain:
            self._chain = None
        chain.state = JobState.IDLE
        remove_temp_files(chain.source_path, keep_document=outcome.success)
        if outcome.success:
            self._artifacts.add(outcome.pdf_path)
        chain.handle.future.set_result(outcome)
        log_chain_outcome(outcome, time.time() - chain.started_at)
        return outcome

    def _emit(self, outcome: CompileOutcome) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(outcome)
            except Exception as e:
                # Every listener is called even if an earlier one raises
                _log_error(
                    f"Completion listener {listener!r} failed for chain "
                    f"{outcome.request.generation}: {e}"
                )
