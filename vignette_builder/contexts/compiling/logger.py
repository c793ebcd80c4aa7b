"""
Compiling context logger.

Provides logging interface for the compiling context with automatic [compile]
prefix. Compiling modules should import from this module, not from
utils.logger directly.
"""

from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

from vignette_builder.utils.logger import setup_logger as _setup_logger

CONTEXT_PREFIX = "[compile]"


def setup_compiling_logger(
    log_dir: Path, renderer: Optional[Sequence[str]] = None, verbose: bool = False
) -> Path:
    """
    Setup logger for a build session.

    Args:
        log_dir: Directory for this build session
        renderer: Renderer command, recorded in the provenance header
        verbose: Show DEBUG messages on the console

    Returns:
        Path to log file
    """
    return _setup_logger(
        context_name="compile",
        log_dir=log_dir,
        extra_provenance={"Renderer": " ".join(renderer) if renderer else None},
        console_level="DEBUG" if verbose else "INFO",
    )


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


def log_compilation_start(target_name: str, source_path: Path, command: Sequence[str]) -> None:
    """Log start of a renderer run."""
    _log_info(f"Compiling: {target_name}")
    _log_debug(f"  Source: {source_path}")
    _log_debug(f"  Command: {' '.join(command)} {source_path}")


def log_compilation_result(result) -> None:
    """
    Log a CompilationResult.

    The captured renderer log of a failure is written raw so multi-line
    output keeps its original formatting.
    """
    name = result.target.name

    if result.cached:
        _log_info(f"{name}: output exists, skipping ({result.target.output_path})")
        return

    if result.success:
        _log_success(f"{name}: compiled ({result.elapsed_s:.2f}s)")
    elif result.failed:
        reason = "timed out" if result.timed_out else "failed"
        _log_error(f"{name}: {reason} ({result.elapsed_s:.2f}s)")
    else:
        _log_warning(f"{name}: skipped, a dependency failed")

    if result.failed and result.log:
        logger.opt(raw=True).debug(
            f"\n{'=' * 80}\nRENDERER OUTPUT ({name}):\n{'=' * 80}\n" + "\n".join(result.log) + "\n"
        )
