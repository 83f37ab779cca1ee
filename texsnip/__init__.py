"""
texsnip - LaTeX snippet rendering for PDF annotations

Compiles short LaTeX fragments (inline math, formatted notes) through pdflatex,
measures the inked area with Ghostscript and rasterizes the result at any zoom.

Architecture:
- Compilation Context: Two-stage external process chain (typeset, then measure)
- Rendering Context: Cached compiled documents and cropped raster output
"""

__version__ = "0.1.0"
