"""
Rendering context logger.

Provides logging interface for rendering context with automatic [render] prefix.
All rendering modules should import from this module, not from utils.logger directly.
"""

from pathlib import Path

from loguru import logger

from texsnip.contexts.compilation.executables import get_paths
from texsnip.utils.logger import setup_logger as _setup_logger

CONTEXT_PREFIX = "[render]"


def setup_rendering_logger(log_dir: Path, console_level: str = "INFO") -> Path:
    """
    Setup logger for rendering context.

    Configures loguru with provenance tracking and the executables in use.
    Library code never calls this; entry points (scripts, host applications) do.

    Args:
        log_dir: Directory for this rendering session
        console_level: Minimum level echoed to the console

    Returns:
        Path to log file
    """
    paths = get_paths()
    return _setup_logger(
        context_name="render",
        log_dir=log_dir,
        extra_provenance={"LaTeX compiler": paths.latex, "Ghostscript": paths.ghostscript},
        console_level=console_level,
    )


def _log_error(message: str) -> None:
    """Log error message with [render] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [render] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [render] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


def log_render_result(zoom: float, bbox, page_size, image_size) -> None:
    """Log a finished rasterization with its geometry."""
    _log_debug(
        f"Rendered at {72 * zoom:.0f} dpi: page {page_size[0]:.1f}x{page_size[1]:.1f}pt, "
        f"box ({bbox.x:.1f}, {bbox.y:.1f}, {bbox.width:.1f}, {bbox.height:.1f}) "
        f"-> {image_size[0]}x{image_size[1]}px"
    )
