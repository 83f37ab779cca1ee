"""
PDF processing utilities for loading and rasterizing compiled snippets.

Main class:
    RasterDocument: Open PDF handle with page geometry and rasterization.

Helper functions:
    page_count: Quick page count without opening a rendering handle.
"""

import threading
from pathlib import Path
from typing import Optional, Tuple, Union

import pdfplumber
from PIL import Image
from PyPDF2 import PdfReader

# PDF user space unit: 1 point = 1/72 inch
POINTS_PER_INCH = 72.0

# pdfium (behind pdfplumber's to_image) must not render from two threads at once
_RENDER_LOCK = threading.Lock()


def page_count(pdf_path: Path) -> Optional[int]:
    """Get page count from PDF, or None if unreadable."""
    try:
        reader = PdfReader(str(pdf_path))
        return len(reader.pages)
    except Exception:
        return None


class RasterDocument:
    """
    Open PDF document that can be rasterized page by page.

    Wraps a pdfplumber handle (pypdfium2 does the actual rendering). The handle
    stays open until close() is called, so repeated renders at different zoom
    factors do not re-parse the file.

    Args:
        pdf_path: Path to PDF file
        antialias: Antialias text and line art when rasterizing

    Example:
        >>> with RasterDocument(Path("snippet.pdf")) as doc:
        ...     image = doc.render_page(0, resolution=144)
    """

    def __init__(self, pdf_path: Union[str, Path], antialias: bool = True):
        pdf_path = Path(pdf_path) if isinstance(pdf_path, str) else pdf_path
        if not pdf_path.exists():
            raise FileNotFoundError(f"PDF not found: {pdf_path}")

        self.pdf_path = pdf_path
        self.antialias = antialias
        self._pdf = pdfplumber.open(pdf_path)

    def __enter__(self) -> "RasterDocument":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def page_size(self, page: int = 0) -> Tuple[float, float]:
        """
        Get (width, height) of a page in points.

        Args:
            page: Page index (0-indexed)
        """
        self._ensure_open()
        pdf_page = self._pdf.pages[page]
        return float(pdf_page.width), float(pdf_page.height)

    def render_page(self, page: int = 0, resolution: float = POINTS_PER_INCH) -> Image.Image:
        """
        Rasterize a page to a PIL image.

        Args:
            page: Page index (0-indexed)
            resolution: Dots per inch; 72 renders one pixel per point

        Returns:
            RGB image of the whole page
        """
        self._ensure_open()
        with _RENDER_LOCK:
            page_image = self._pdf.pages[page].to_image(
                resolution=resolution, antialias=self.antialias
            )
            return page_image.original.convert("RGB")

    def close(self) -> None:
        """Release the underlying PDF handle. Safe to call more than once."""
        if self._pdf is not None:
            self._pdf.close()
            self._pdf = None

    def _ensure_open(self) -> None:
        if self._pdf is None:
            raise ValueError(f"Document already closed: {self.pdf_path}")
