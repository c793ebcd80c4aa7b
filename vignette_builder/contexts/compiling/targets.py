"""
Targets and compilation results.

A Target names one vignette; its source and output paths are derived from the
name alone. A CompilationResult records the outcome of one attempt.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

DEFAULT_SOURCE_EXT = ".Rmd"
OUTPUT_EXT = ".html"


@dataclass(frozen=True)
class Target:
    """
    A vignette to compile.

    Attributes:
        name: Unique key, also the stem of source and output files
        source_ext: Extension of the source document (default: .Rmd)
        depends_on: Names of targets that must be compiled first
    """

    name: str
    source_ext: str = DEFAULT_SOURCE_EXT
    depends_on: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Target name must be non-empty")
        if "/" in self.name or "\\" in self.name:
            raise ValueError(f"Target name must not contain a path separator: {self.name!r}")
        # Accept any iterable for depends_on but store a tuple so the target stays hashable
        object.__setattr__(self, "depends_on", tuple(self.depends_on))

    @property
    def source_path(self) -> Path:
        return Path(f"{self.name}{self.source_ext}")

    @property
    def output_path(self) -> Path:
        return Path(f"{self.name}{OUTPUT_EXT}")


class CompilationStatus(str, Enum):
    """Terminal state of a target after one compilation attempt."""

    CACHED = "cached"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # dependency failed, never attempted


@dataclass
class CompilationResult:
    """
    Result of compiling one target.

    Attributes:
        target: The target that was compiled
        status: Exactly one terminal status
        log: Captured renderer output prefixed with '<name>> ' (FAILED only)
        elapsed_s: Wall time spent, zero for cached and skipped targets
        timed_out: Whether the renderer was stopped by the timeout
    """

    target: Target
    status: CompilationStatus
    log: List[str] = field(default_factory=list)
    elapsed_s: float = 0.0
    timed_out: bool = False

    @property
    def success(self) -> bool:
        """True for cached and succeeded results."""
        return self.status in (CompilationStatus.CACHED, CompilationStatus.SUCCEEDED)

    @property
    def cached(self) -> bool:
        return self.status is CompilationStatus.CACHED

    @property
    def failed(self) -> bool:
        return self.status is CompilationStatus.FAILED


@dataclass
class BuildReport:
    """Ordered results of a multi-target build."""

    results: List[CompilationResult] = field(default_factory=list)

    def _with_status(self, status: CompilationStatus) -> List[CompilationResult]:
        return [r for r in self.results if r.status is status]

    @property
    def cached(self) -> List[CompilationResult]:
        return self._with_status(CompilationStatus.CACHED)

    @property
    def succeeded(self) -> List[CompilationResult]:
        return self._with_status(CompilationStatus.SUCCEEDED)

    @property
    def failed(self) -> List[CompilationResult]:
        return self._with_status(CompilationStatus.FAILED)

    @property
    def skipped(self) -> List[CompilationResult]:
        return self._with_status(CompilationStatus.SKIPPED)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped

    def get(self, name: str) -> Optional[CompilationResult]:
        for result in self.results:
            if result.target.name == name:
                return result
        return None


def prefix_log(target_name: str, lines: Iterable[str]) -> List[str]:
    """Tag each log line with the target name for multiplexed readability."""
    return [f"{target_name}> {line}" for line in lines]
