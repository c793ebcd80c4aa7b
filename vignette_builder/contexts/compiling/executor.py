"""
Vignette compilation.

TaskExecutor.compile() renders one target unless its output is already fresh:

    check cache -> run renderer -> classify exit status -> report

compile_all() drives many targets in dependency order, either stopping at the
first failure (fail-fast) or recording every failure and skipping the
dependents of failed targets (collect-all). With jobs > 1 independent targets
are rendered in parallel; each has its own log sink so captured output never
interleaves across targets.
"""

import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from enum import Enum
from graphlib import CycleError, TopologicalSorter
from pathlib import Path
from typing import Deque, Dict, Iterable, List, Optional, Sequence, Union

from vignette_builder.contexts.compiling.cache import ArtifactCache
from vignette_builder.contexts.compiling.exceptions import (
    CacheCheckError,
    CompilationCancelled,
    DependencyError,
    ProcessLaunchError,
    RenderFailure,
)
from vignette_builder.contexts.compiling.logger import (
    _log_error,
    _log_info,
    _log_warning,
    log_compilation_result,
    log_compilation_start,
)
from vignette_builder.contexts.compiling.runner import ProcessRunner, scoped_log_sink
from vignette_builder.contexts.compiling.targets import (
    BuildReport,
    CompilationResult,
    CompilationStatus,
    Target,
    prefix_log,
)
from vignette_builder.utils.event_logging import log_status_change

# Renders the source given as the single trailing argument
DEFAULT_RENDERER = ("Rscript", "-e", "rmarkdown::render(commandArgs(TRUE)[1])")


class FailurePolicy(str, Enum):
    """What a multi-target build does after a target fails."""

    FAIL_FAST = "fail_fast"
    COLLECT_ALL = "collect_all"


class TaskExecutor:
    """
    Compiles targets, at most once per missing output.

    Args:
        renderer: Renderer command; the source path is appended as its last argument
        cache: Freshness check (default: existence of the output in the current directory)
        runner: Process runner (default: ProcessRunner in the current directory)
        sink_dir: Directory for temporary log sinks (default: system temp dir)
        events_file: Build events file; no events are recorded when None
    """

    def __init__(
        self,
        renderer: Sequence[str] = DEFAULT_RENDERER,
        cache: Optional[ArtifactCache] = None,
        runner: Optional[ProcessRunner] = None,
        sink_dir: Optional[Path] = None,
        events_file: Optional[Path] = None,
    ):
        if not renderer:
            raise ValueError("renderer command must not be empty")
        self.renderer = tuple(renderer)
        self.cache = cache if cache is not None else ArtifactCache()
        self.runner = runner if runner is not None else ProcessRunner()
        self.sink_dir = sink_dir
        self.events_file = events_file

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, name: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(name, threading.Lock())

    def _record(self, target: Target, status: str, **fields) -> None:
        if self.events_file is not None:
            log_status_change(
                target_name=target.name,
                new_status=status,
                source="compiling",
                events_file=self.events_file,
                **fields,
            )

    def compile(
        self, target: Target, cancel_event: Optional[threading.Event] = None
    ) -> CompilationResult:
        """
        Compile one target.

        Returns:
            CompilationResult with status CACHED, SUCCEEDED or FAILED

        Raises:
            CacheCheckError: If freshness cannot be determined
            ProcessLaunchError: If the renderer cannot be started
            CompilationCancelled: If cancel_event is set before or during the run
        """
        # Same-name compilations are serialized so the cache check and the render never overlap
        with self._lock_for(target.name):
            if self.cache.is_fresh(target):
                result = CompilationResult(target=target, status=CompilationStatus.CACHED)
                self._record(target, "cached")
                log_compilation_result(result)
                return result

            if cancel_event is not None and cancel_event.is_set():
                raise CompilationCancelled(target.name)

            log_compilation_start(target.name, target.source_path, self.renderer)
            self._record(target, "compiling")
            start_time = time.time()

            with scoped_log_sink(self.sink_dir) as sink:
                try:
                    outcome = self.runner.run(
                        self.renderer, [target.source_path], sink, cancel_event=cancel_event
                    )
                except ProcessLaunchError as e:
                    self._record(target, "compiling_failed", error=str(e))
                    raise

                if outcome.cancelled:
                    self._record(target, "compiling_cancelled")
                    raise CompilationCancelled(target.name)

                lines = [] if outcome.success else sink.read_lines()

            elapsed_s = time.time() - start_time

            if outcome.success:
                result = CompilationResult(
                    target=target, status=CompilationStatus.SUCCEEDED, elapsed_s=elapsed_s
                )
                if self._output_missing(target):
                    _log_warning(
                        f"{target.name}: renderer succeeded but {target.output_path} is missing"
                    )
                self._record(target, "compiling_completed", elapsed_s=round(elapsed_s, 2))
            else:
                if outcome.timed_out:
                    lines.append(f"timed out after {self.runner.timeout_s}s")
                result = CompilationResult(
                    target=target,
                    status=CompilationStatus.FAILED,
                    log=prefix_log(target.name, lines),
                    elapsed_s=elapsed_s,
                    timed_out=outcome.timed_out,
                )
                self._record(
                    target,
                    "compiling_failed",
                    elapsed_s=round(elapsed_s, 2),
                    exit_code=outcome.exit_code,
                    timed_out=outcome.timed_out,
                )

            log_compilation_result(result)
            return result

    def _output_missing(self, target: Target) -> bool:
        try:
            return not self.cache.filesystem.exists(target.output_path)
        except OSError as e:
            raise CacheCheckError(target.name, target.output_path, e) from e

    def compile_or_raise(
        self, target: Target, cancel_event: Optional[threading.Event] = None
    ) -> CompilationResult:
        """
        Compile one target and raise on failure.

        Raises:
            RenderFailure: With the source path and the full prefixed log
        """
        result = self.compile(target, cancel_event=cancel_event)
        if result.failed:
            raise RenderFailure(target.name, target.source_path, result.log)
        return result

    def compile_all(
        self,
        targets: Iterable[Target],
        policy: Union[FailurePolicy, str] = FailurePolicy.FAIL_FAST,
        jobs: int = 1,
        cancel_event: Optional[threading.Event] = None,
    ) -> BuildReport:
        """
        Compile many targets in dependency order.

        Args:
            targets: Targets to build; later duplicates of a name are ignored
            policy: FAIL_FAST raises on the first failure, COLLECT_ALL reports every failure
            jobs: Maximum number of renderers running at once
            cancel_event: Set to cancel; also set internally when a fail-fast build aborts

        Returns:
            BuildReport in the order the targets were given

        Raises:
            DependencyError: Unknown dependency or cycle (raised before any render)
            RenderFailure: First failure under FAIL_FAST
        """
        policy = FailurePolicy(policy)
        if jobs < 1:
            raise ValueError(f"jobs must be at least 1, got {jobs}")

        by_name = _unique_by_name(targets)
        sorter = _dependency_sorter(by_name)
        cancel_event = cancel_event if cancel_event is not None else threading.Event()

        results: Dict[str, CompilationResult] = {}
        unusable = set()  # failed or skipped targets

        _log_info(f"Building {len(by_name)} target(s) with {jobs} job(s), policy {policy.value}")

        with ThreadPoolExecutor(max_workers=jobs) as pool:
            running: Dict[Future, str] = {}
            ready: Deque[str] = deque()
            try:
                while sorter.is_active():
                    ready.extend(sorter.get_ready())
                    # Submit no more than `jobs` so nothing new starts after a fail-fast abort
                    while ready and len(running) < jobs:
                        name = ready.popleft()
                        target = by_name[name]
                        blocked = [d for d in target.depends_on if d in unusable]
                        if blocked:
                            results[name] = self._skip(target, blocked[0])
                            unusable.add(name)
                            sorter.done(name)
                            continue
                        running[pool.submit(self.compile, target, cancel_event)] = name

                    if not running:
                        continue

                    done, _ = wait(running, return_when=FIRST_COMPLETED)
                    for future in done:
                        name = running.pop(future)
                        result = future.result()
                        results[name] = result
                        if result.failed:
                            if policy is FailurePolicy.FAIL_FAST:
                                _log_error(f"Stopping build: {name} failed")
                                raise RenderFailure(
                                    name, result.target.source_path, result.log
                                )
                            unusable.add(name)
                        sorter.done(name)
            except BaseException:
                # Queued targets see the event before starting; running ones are killed
                cancel_event.set()
                raise

        report = BuildReport([results[name] for name in by_name if name in results])
        _log_info(
            f"Build finished: {len(report.succeeded)} compiled, {len(report.cached)} cached, "
            f"{len(report.failed)} failed, {len(report.skipped)} skipped"
        )
        return report

    def _skip(self, target: Target, failed_dependency: str) -> CompilationResult:
        result = CompilationResult(
            target=target,
            status=CompilationStatus.SKIPPED,
            log=prefix_log(target.name, [f"skipped: dependency '{failed_dependency}' failed"]),
        )
        self._record(target, "skipped", failed_dependency=failed_dependency)
        log_compilation_result(result)
        return result


def _unique_by_name(targets: Iterable[Target]) -> Dict[str, Target]:
    by_name: Dict[str, Target] = {}
    for target in targets:
        by_name.setdefault(target.name, target)
    return by_name


def _dependency_sorter(by_name: Dict[str, Target]) -> TopologicalSorter:
    sorter = TopologicalSorter()
    for name, target in by_name.items():
        missing = [d for d in target.depends_on if d not in by_name]
        if missing:
            raise DependencyError(f"'{name}' depends on unknown target(s): {', '.join(missing)}")
        sorter.add(name, *target.depends_on)
    try:
        sorter.prepare()
    except CycleError as e:
        raise DependencyError(f"dependency cycle: {' -> '.join(e.args[1])}") from e
    return sorter


def order_targets(targets: Iterable[Target]) -> List[Target]:
    """Targets in an order where every dependency precedes its dependents."""
    by_name = _unique_by_name(targets)
    sorter = _dependency_sorter(by_name)
    ordered = []
    while sorter.is_active():
        ready = sorter.get_ready()
        ordered.extend(by_name[name] for name in ready)
        sorter.done(*ready)
    return ordered
