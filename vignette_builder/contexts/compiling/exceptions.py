"""Exceptions for the compiling context."""

from pathlib import Path
from typing import List, Optional, Sequence


class CompilationError(Exception):
    """Base class for every fatal compilation error."""


class CacheCheckError(CompilationError):
    """
    Raised when the freshness of a target cannot be determined.

    Attributes:
        target_name: Target whose output could not be checked
        path: Path that was being inspected
        original_error: The underlying OSError
    """

    def __init__(self, target_name: str, path: Path, original_error: Optional[Exception] = None):
        self.target_name = target_name
        self.path = path
        self.original_error = original_error

        message = f"cannot check output of '{target_name}': {path}"
        if original_error:
            message += f"\nOriginal error: {original_error}"
        super().__init__(message)


class ProcessLaunchError(CompilationError):
    """
    Raised when the renderer could not be started at all.

    Attributes:
        command: The attempted command line
        original_error: The OSError raised by the launch
    """

    def __init__(self, command: Sequence[str], original_error: Optional[Exception] = None):
        self.command = list(command)
        self.original_error = original_error

        message = f"could not start renderer: {' '.join(self.command)}"
        if original_error:
            message += f"\nOriginal error: {original_error}"
        super().__init__(message)


class RenderFailure(CompilationError):
    """
    Raised when the renderer ran but reported failure.

    Attributes:
        target_name: Target that failed
        source_path: Source document handed to the renderer
        log: Captured renderer output, each line prefixed with the target name
    """

    def __init__(self, target_name: str, source_path: Path, log: Sequence[str]):
        self.target_name = target_name
        self.source_path = source_path
        self.log: List[str] = list(log)

        parts = [f"failed to compile '{source_path}'"]
        if self.log:
            parts.append("\n".join(self.log))
        super().__init__("\n".join(parts))


class CompilationCancelled(CompilationError):
    """Raised when a running compilation is cancelled; its partial log is discarded."""

    def __init__(self, target_name: str):
        self.target_name = target_name
        super().__init__(f"compilation of '{target_name}' was cancelled")


class DependencyError(CompilationError, ValueError):
    """Raised for an unknown dependency or a dependency cycle between targets."""

    pass


class ManifestError(ValueError):
    """Raised when the vignette manifest is missing or malformed."""

    pass
