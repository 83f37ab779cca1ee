"""
Render Cache Module

Keeps the compiled PDF and bounding box of one LaTeX snippet, recompiling when
its source changes, and rasterizes it on demand.

Two access patterns are supported:
- Fire-and-forget: update() / pre_render() start a compile and return at once;
  connected listeners are told "rendering ready for tag T" when it succeeds.
- Blocking: render() waits for the in-flight compile (starting one if nothing
  is cached) and returns a finished image.

Every compile carries a CompileRequest (generation id + caller tag). Only the
outcome of the most recent request is applied; outcomes of superseded chains
are discarded and their PDFs deleted.
"""

import threading
from concurrent import futures
from pathlib import Path
from typing import Callable, List, Optional

from PIL import Image, ImageOps

from texsnip.contexts.compilation import (
    NO_TAG,
    ZERO_BOX,
    BoundingBox,
    CompileHandle,
    CompileJob,
    CompileOutcome,
    CompileRequest,
)
from texsnip.contexts.rendering.logger import (
    _log_debug,
    _log_error,
    _log_warning,
    log_render_result,
)
from texsnip.contexts.rendering.snippet_template import SnippetTemplate
from texsnip.utils.pdf_processing import POINTS_PER_INCH, RasterDocument

ReadyListener = Callable[[int], None]


def blank_image(inline: bool = False) -> Image.Image:
    """Empty (0x0) image returned when nothing could be rendered."""
    return Image.new("RGBA" if inline else "RGB", (0, 0))


def ink_to_alpha(image: Image.Image) -> Image.Image:
    """Turn a black-on-white rendering into RGBA with white made transparent."""
    ink = ImageOps.invert(image.convert("L"))
    rgba = image.convert("RGBA")
    rgba.putalpha(ink)
    return rgba


class RenderCache:
    """
    Cached rendering of one LaTeX snippet.

    Invariants:
        ready implies a document is loaded and bounding_box belongs to it.
        not ready implies any previous document has been closed.

    Args:
        source: LaTeX fragment (e.g. "$x^2$")
        preamble: Extra preamble lines for the standalone document
        job: Compile job to drive (default: a new CompileJob)
        template: Standalone document template (default: SnippetTemplate())

    Example:
        >>> cache = RenderCache("$e^{i\\pi} + 1 = 0$")
        >>> cache.connect(lambda tag: print(f"ready for {tag}"))
        >>> cache.pre_render(tag=7)
        >>> image = cache.render(zoom=2.0)
    """

    def __init__(
        self,
        source: str = "",
        preamble: str = "",
        job: Optional[CompileJob] = None,
        template: Optional[SnippetTemplate] = None,
    ):
        self._lock = threading.RLock()
        self._source = source
        self._preamble = preamble
        self._job = job or CompileJob()
        self._template = template or SnippetTemplate()

        self._ready = False
        self._document: Optional[RasterDocument] = None
        self._document_path: Optional[Path] = None
        self._bbox: BoundingBox = ZERO_BOX

        self._request: Optional[CompileRequest] = None
        self._handle: Optional[CompileHandle] = None
        self._applied_generation = 0
        self._waiting = 0
        self._listeners: List[ReadyListener] = []
        self._closed = False

        self._job.connect(self._apply)

    def __enter__(self) -> "RenderCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Read-only state

    @property
    def source(self) -> str:
        return self._source

    @property
    def preamble(self) -> str:
        return self._preamble

    @property
    def job(self) -> CompileJob:
        return self._job

    @property
    def ready(self) -> bool:
        with self._lock:
            return self._ready

    @property
    def bounding_box(self) -> BoundingBox:
        with self._lock:
            return self._bbox

    @property
    def document_path(self) -> Optional[Path]:
        """PDF backing the cached document (None when not ready)."""
        with self._lock:
            return self._document_path

    @property
    def waiting(self) -> int:
        """Number of callers currently blocked in render() or wait()."""
        with self._lock:
            return self._waiting

    @property
    def latex_source(self) -> str:
        """Complete standalone document compiled for the current source/preamble."""
        return self._template.render(self._source, self._preamble)

    def size(self) -> int:
        """Area of the bounding box in square points (layout hint, 0 when not ready)."""
        with self._lock:
            return int(self._bbox.area)

    # Ready notifications

    def connect(self, listener: ReadyListener) -> None:
        """Call `listener(tag)` when a compile requested with `tag` succeeds."""
        with self._lock:
            self._listeners.append(listener)

    def disconnect(self, listener: ReadyListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # Triggers

    def update(self, source: str, preamble: str, tag: int = NO_TAG) -> None:
        """
        Replace the snippet and recompile.

        Drops the cached document immediately. A chain still compiling the old
        source is superseded even if it was started for the same tag.

        Args:
            source: New LaTeX fragment
            preamble: New preamble
            tag: Correlation tag for the ready notification
        """
        with self._lock:
            if self._closed:
                _log_warning("update() on a closed render cache ignored")
                return
            self._source = source
            self._preamble = preamble
            self._invalidate()
            self._launch(tag)

    def pre_render(self, tag: int = NO_TAG) -> None:
        """
        Start compiling without waiting for the result.

        No-op if a chain for the same tag is already in flight; any other
        in-flight chain is superseded.

        Args:
            tag: Correlation tag for the ready notification
        """
        with self._lock:
            if self._closed:
                _log_warning("pre_render() on a closed render cache ignored")
                return
            handle = self._handle
            if handle is not None and not handle.done() and handle.request.tag == tag:
                _log_debug(f"Chain {handle.request.generation} already running for tag {tag}")
                return
            self._launch(tag)

    def kill(self) -> None:
        """Abandon the in-flight compile. Blocked callers get an empty image."""
        self._job.kill()

    # Blocking access

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the in-flight compile (if any) has been applied.

        Args:
            timeout: Maximum seconds to wait per chain (None = no limit)

        Returns:
            Whether a compiled document is ready
        """
        while True:
            with self._lock:
                handle = self._handle
                if handle is None:
                    return self._ready
                self._waiting += 1
            try:
                outcome = handle.result(timeout=timeout)
            except futures.TimeoutError:
                return False
            finally:
                with self._lock:
                    self._waiting -= 1
            self._apply(outcome)

    def render(self, zoom: float = 1.0, inline: bool = False) -> Image.Image:
        """
        Rasterize the snippet, compiling first if needed.

        Waits for the in-flight compile; if nothing is cached and nothing is in
        flight, starts one and waits for it. Page one is rendered at 72 * zoom
        dpi and cropped to the bounding box.

        Args:
            zoom: Scale factor, 1.0 = one pixel per point
            inline: Return RGBA with white made transparent, for placement in text

        Returns:
            Cropped image, or an empty image if the compile failed
        """
        if zoom <= 0:
            raise ValueError(f"zoom must be positive, got {zoom}")

        # Follow superseding chains until none is in flight; compile at most once ourselves
        waited = False
        while True:
            with self._lock:
                handle = self._handle
                if handle is None:
                    if self._ready or waited or self._closed:
                        break
                    handle = self._launch(NO_TAG)
                self._waiting += 1
            try:
                outcome = handle.result()
            finally:
                with self._lock:
                    self._waiting -= 1
            waited = True
            self._apply(outcome)

        with self._lock:
            if self._closed:
                _log_warning("render() on a closed render cache returns an empty image")
                return blank_image(inline)
            if not self._ready or self._document is None:
                _log_warning("Nothing to render: snippet failed to compile")
                return blank_image(inline)
            if self._bbox.is_empty:
                _log_warning("Compiled snippet has an empty bounding box")
                return blank_image(inline)
            image = self._rasterize(zoom)

        return ink_to_alpha(image) if inline else image

    # Lifecycle

    def close(self) -> None:
        """
        Kill any compile, close the document and delete every kept PDF.

        Afterwards update() and pre_render() are ignored and render() returns an
        empty image. Safe to call more than once.
        """
        with self._lock:
            self._closed = True
            self._job.kill()
            self._invalidate()
            self._job.disconnect(self._apply)
            self._job.close()
            self._listeners.clear()

    # Internals

    def _launch(self, tag: int) -> CompileHandle:
        """Start (or supersede with) a chain for the current source. Caller holds the lock."""
        request = self._job.next_request(tag)
        self._request = request
        latex_source = self.latex_source
        if self._job.running():
            handle = self._job.restart(latex_source, request)
        else:
            handle = self._job.start(latex_source, request)
        self._handle = handle
        return handle

    def _apply(self, outcome: CompileOutcome) -> None:
        """
        Apply a chain outcome to the cache.

        Delivered by the job's listener and by any waiter, so it is idempotent
        per generation. Outcomes of superseded requests only release their PDF.
        """
        ready_tag = None
        with self._lock:
            request = outcome.request
            if self._handle is not None and self._handle.request.generation == request.generation:
                self._handle = None

            if self._request is None or request.generation != self._request.generation:
                _log_debug(f"Discarding outcome of superseded chain {request.generation}")
                if outcome.success:
                    self._job.release_artifact(outcome.pdf_path)
                return

            if self._applied_generation == request.generation:
                return
            self._applied_generation = request.generation

            self._invalidate()
            if outcome.success:
                self._load(outcome)
            else:
                _log_warning(f"Error compiling LaTeX, chain {request.generation} failed")

            if self._ready and request.tag > NO_TAG:
                ready_tag = request.tag

        if ready_tag is not None:
            self._notify_ready(ready_tag)

    def _load(self, outcome: CompileOutcome) -> None:
        try:
            document = RasterDocument(outcome.pdf_path)
        except Exception as e:
            _log_error(f"Cannot open compiled PDF {outcome.pdf_path}: {e}")
            self._job.release_artifact(outcome.pdf_path)
            return

        self._document = document
        self._document_path = outcome.pdf_path
        self._bbox = outcome.bbox
        self._ready = True

    def _invalidate(self) -> None:
        """Close the cached document and forget its box. Caller holds the lock."""
        if self._document is not None:
            self._document.close()
            self._document = None
        if self._document_path is not None:
            self._job.release_artifact(self._document_path)
            self._document_path = None
        self._bbox = ZERO_BOX
        self._ready = False

    def _rasterize(self, zoom: float) -> Image.Image:
        """Render page one and crop to the bounding box. Caller holds the lock."""
        box = self._bbox
        page_size = self._document.page_size(0)
        page_image = self._document.render_page(0, resolution=POINTS_PER_INCH * zoom)

        # PDF space grows upward from the page bottom, image space downward from the top
        left = round(box.x * zoom)
        top = round((page_size[1] - box.y - box.height) * zoom)
        right = left + round(box.width * zoom)
        bottom = top + round(box.height * zoom)
        image = page_image.crop((left, top, right, bottom))

        log_render_result(zoom, box, page_size, image.size)
        return image

    def _notify_ready(self, tag: int) -> None:
        with self._lock:
            listeners = list(self._listeners)
        _log_debug(f"Rendering ready for tag {tag}")
        for listener in listeners:
            try:
                listener(tag)
            except Exception as e:
                _log_error(f"Ready listener {listener!r} failed for tag {tag}: {e}")
