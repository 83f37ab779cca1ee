"""
Shared utilities for texsnip.

Common functionality used across contexts:
- Logger setup
- PDF loading and rasterization
"""

from texsnip.utils.logger import setup_logger
from texsnip.utils.pdf_processing import RasterDocument, page_count

__all__ = ["RasterDocument", "page_count", "setup_logger"]
