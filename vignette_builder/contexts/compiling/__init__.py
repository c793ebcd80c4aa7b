"""
Compiling Context

Responsibilities:
- Decides whether a vignette's HTML output is already fresh
- Runs the renderer in a child process and captures its combined output
- Classifies outcomes and surfaces failures with the full captured log
- Orders multi-vignette builds by their declared dependencies

Owns: renderer invocation, build memoization, build reports
Never: Edits vignette sources or parses renderer output
"""

from vignette_builder.contexts.compiling.cache import (
    ArtifactCache,
    FileSystem,
    FreshnessPolicy,
    LocalFileSystem,
    MemoryFileSystem,
)
from vignette_builder.contexts.compiling.exceptions import (
    CacheCheckError,
    CompilationCancelled,
    CompilationError,
    DependencyError,
    ManifestError,
    ProcessLaunchError,
    RenderFailure,
)
from vignette_builder.contexts.compiling.executor import (
    DEFAULT_RENDERER,
    FailurePolicy,
    TaskExecutor,
    order_targets,
)
from vignette_builder.contexts.compiling.runner import (
    LogSink,
    ProcessRunner,
    RunOutcome,
    scoped_log_sink,
)
from vignette_builder.contexts.compiling.targets import (
    BuildReport,
    CompilationResult,
    CompilationStatus,
    Target,
)

__all__ = [
    "ArtifactCache",
    "BuildReport",
    "CacheCheckError",
    "CompilationCancelled",
    "CompilationError",
    "CompilationResult",
    "CompilationStatus",
    "DEFAULT_RENDERER",
    "DependencyError",
    "FailurePolicy",
    "FileSystem",
    "FreshnessPolicy",
    "LocalFileSystem",
    "LogSink",
    "ManifestError",
    "MemoryFileSystem",
    "ProcessLaunchError",
    "ProcessRunner",
    "RenderFailure",
    "RunOutcome",
    "Target",
    "TaskExecutor",
    "order_targets",
    "scoped_log_sink",
]
