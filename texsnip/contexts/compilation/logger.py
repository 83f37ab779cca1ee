"""
Compilation context logger.

Provides logging interface for compilation context with automatic [compile] prefix.
All compilation modules should import from this module, not from loguru directly.
"""

from loguru import logger

CONTEXT_PREFIX = "[compile]"


def _log_info(message: str) -> None:
    """Log info message with [compile] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [compile] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [compile] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [compile] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [compile] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


# High-level compilation-specific logging helpers


def log_chain_start(generation: int, tag: int, source_path, working_dir) -> None:
    """Log start of a compile chain with context."""
    _log_debug(f"Chain {generation} (tag {tag}): typesetting {source_path.name}")
    _log_debug(f"  Working directory: {working_dir}")


def log_chain_outcome(outcome, elapsed_time: float) -> None:
    """
    Log the terminal outcome of a compile chain.

    Args:
        outcome: CompileOutcome emitted by the chain
        elapsed_time: Seconds since the chain started
    """
    request = outcome.request
    if outcome.success:
        box = outcome.bbox
        _log_success(
            f"Chain {request.generation} (tag {request.tag}) finished in {elapsed_time:.2f}s: "
            f"box=({box.x:.2f}, {box.y:.2f}, {box.width:.2f}, {box.height:.2f})"
        )
        if box.is_empty:
            _log_warning(f"Chain {request.generation}: no bounding box in measurer output")
    else:
        _log_warning(
            f"Chain {request.generation} (tag {request.tag}) failed after {elapsed_time:.2f}s"
        )
        for i, err in enumerate(outcome.errors[:5], 1):
            _log_debug(f"  Error {i}: {err}")
        if len(outcome.errors) > 5:
            _log_debug(f"  ... and {len(outcome.errors) - 5} more errors")
