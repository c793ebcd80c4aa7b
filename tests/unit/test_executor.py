"""Unit tests for TaskExecutor with an in-memory filesystem and a fake runner."""

import threading
import time

import pytest

from vignette_builder.contexts.compiling import (
    CacheCheckError,
    CompilationCancelled,
    CompilationStatus,
    DependencyError,
    FailurePolicy,
    ProcessLaunchError,
    RenderFailure,
    Target,
    TaskExecutor,
    order_targets,
)
from vignette_builder.utils.event_logging import get_recent_events, latest_statuses


@pytest.mark.unit
def test_compile_renders_missing_output_once(executor, fake_runner, filesystem):
    """Test a target without output is rendered exactly once."""
    result = executor.compile(Target("intro"))

    assert result.status is CompilationStatus.SUCCEEDED
    assert result.log == []
    assert fake_runner.calls == [["render", "intro.Rmd"]]
    assert filesystem.exists("intro.html")


@pytest.mark.unit
def test_compile_is_idempotent(executor, fake_runner):
    """Test a second compile with output present is cached and starts nothing."""
    executor.compile(Target("intro"))
    first = executor.compile(Target("intro"))
    second = executor.compile(Target("intro"))

    assert first.status is CompilationStatus.CACHED
    assert second.status is CompilationStatus.CACHED
    assert len(fake_runner.calls) == 1


@pytest.mark.unit
def test_compile_existing_output_starts_no_process(executor, fake_runner, filesystem):
    """Test an existing output short-circuits before the runner."""
    filesystem.touch("intro.html")

    assert executor.compile(Target("intro")).cached
    assert fake_runner.calls == []


@pytest.mark.unit
def test_compile_failure_returns_prefixed_log(executor, fake_runner, filesystem):
    """Test a failed render returns the log tagged with the target name."""
    fake_runner.fail("T", "error: bad syntax")

    result = executor.compile(Target("T"))

    assert result.status is CompilationStatus.FAILED
    assert result.log == ["T> error: bad syntax"]
    assert not filesystem.exists("T.html")


@pytest.mark.unit
def test_compile_failure_is_not_retried(executor, fake_runner):
    """Test a failure runs the renderer once and a later compile tries again."""
    fake_runner.fail("T", "error: bad syntax")

    executor.compile(Target("T"))
    assert len(fake_runner.calls) == 1

    executor.compile(Target("T"))
    assert len(fake_runner.calls) == 2


@pytest.mark.unit
def test_log_sink_removed_after_success_and_failure(executor, fake_runner, tmp_path):
    """Test the temporary log sink never outlives compile()."""
    fake_runner.fail("bad", "error: bad syntax")

    executor.compile(Target("good"))
    executor.compile(Target("bad"))

    assert list((tmp_path / "sinks").iterdir()) == []


@pytest.mark.unit
def test_log_sink_removed_after_launch_error(executor, fake_runner, tmp_path):
    """Test the log sink is removed even if the renderer cannot start."""
    fake_runner.launch_error = True

    with pytest.raises(ProcessLaunchError) as exc_info:
        executor.compile(Target("intro"))

    assert exc_info.value.command == ["render", "intro.Rmd"]
    assert list((tmp_path / "sinks").iterdir()) == []


@pytest.mark.unit
def test_compile_or_raise_message(executor, fake_runner):
    """Test RenderFailure names the source path and carries the full log."""
    fake_runner.fail("T", "line 1", "error: bad syntax")

    with pytest.raises(RenderFailure) as exc_info:
        executor.compile_or_raise(Target("T"))

    error = exc_info.value
    assert error.target_name == "T"
    assert error.log == ["T> line 1", "T> error: bad syntax"]
    assert str(error) == "failed to compile 'T.Rmd'\nT> line 1\nT> error: bad syntax"


@pytest.mark.unit
def test_compile_or_raise_success(executor):
    """Test compile_or_raise returns the result when nothing fails."""
    assert executor.compile_or_raise(Target("intro")).success


@pytest.mark.unit
def test_compile_cancelled_before_start(executor, fake_runner):
    """Test a set cancel event prevents the renderer from starting."""
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(CompilationCancelled):
        executor.compile(Target("intro"), cancel_event=cancel)
    assert fake_runner.calls == []


@pytest.mark.unit
def test_empty_renderer_rejected():
    """Test a renderer command is required."""
    with pytest.raises(ValueError):
        TaskExecutor(renderer=())


@pytest.mark.unit
def test_compile_records_events(executor, fake_runner, tmp_path):
    """Test status changes are appended to the events file."""
    fake_runner.fail("bad", "error: bad syntax")

    executor.compile(Target("good"))
    executor.compile(Target("good"))
    executor.compile(Target("bad"))

    events_file = tmp_path / "events.log"
    statuses = [e["new_status"] for e in get_recent_events(n=10, events_file=events_file)]
    assert statuses == [
        "compiling",
        "compiling_completed",
        "cached",
        "compiling",
        "compiling_failed",
    ]
    assert latest_statuses(events_file) == {"good": "cached", "bad": "compiling_failed"}


@pytest.mark.unit
def test_concurrent_compiles_of_same_target_render_once(executor, fake_runner):
    """Test threads compiling one target at the same time render it once; the rest find it cached."""
    run = fake_runner.run

    def slow_run(*args, **kwargs):
        time.sleep(0.2)
        return run(*args, **kwargs)

    fake_runner.run = slow_run
    barrier = threading.Barrier(4)
    results = []

    def compile_intro():
        barrier.wait()
        results.append(executor.compile(Target("intro")))

    threads = [threading.Thread(target=compile_intro) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert fake_runner.rendered() == ["intro.Rmd"]
    assert sorted(r.status.value for r in results) == ["cached", "cached", "cached", "succeeded"]


@pytest.mark.unit
def test_output_check_error_raises_cache_check_error(executor, filesystem, monkeypatch):
    """Test a failing output check after a render is reported as CacheCheckError."""

    def broken_exists(path):
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr(filesystem, "exists", broken_exists)

    with pytest.raises(CacheCheckError) as exc_info:
        executor.compile(Target("intro"))

    assert exc_info.value.target_name == "intro"
    assert isinstance(exc_info.value.original_error, PermissionError)


@pytest.mark.unit
def test_compile_all_respects_dependencies(executor, fake_runner):
    """Test dependencies are rendered before their dependents."""
    targets = [
        Target("de", depends_on=("reads", "umis")),
        Target("reads", depends_on=("intro",)),
        Target("umis", depends_on=("intro",)),
        Target("intro"),
    ]

    report = executor.compile_all(targets)

    rendered = fake_runner.rendered()
    assert rendered[0] == "intro.Rmd"
    assert rendered[-1] == "de.Rmd"
    assert [r.target.name for r in report.results] == ["de", "reads", "umis", "intro"]
    assert report.ok


@pytest.mark.unit
def test_compile_all_deduplicates_targets(executor, fake_runner):
    """Test a target listed twice is compiled once."""
    report = executor.compile_all([Target("intro"), Target("intro")])

    assert len(fake_runner.calls) == 1
    assert len(report.results) == 1


@pytest.mark.unit
def test_compile_all_skips_cached(executor, fake_runner, filesystem):
    """Test cached targets are reported without rendering."""
    filesystem.touch("intro.html")

    report = executor.compile_all([Target("intro"), Target("reads", depends_on=("intro",))])

    assert [r.target.name for r in report.cached] == ["intro"]
    assert fake_runner.rendered() == ["reads.Rmd"]


@pytest.mark.unit
def test_compile_all_fail_fast_stops_at_first_failure(executor, fake_runner):
    """Test fail-fast raises and starts nothing after the failure."""
    fake_runner.fail("intro", "error: bad syntax")
    targets = [Target("intro"), Target("reads", depends_on=("intro",))]

    with pytest.raises(RenderFailure) as exc_info:
        executor.compile_all(targets, policy=FailurePolicy.FAIL_FAST)

    assert exc_info.value.log == ["intro> error: bad syntax"]
    assert fake_runner.rendered() == ["intro.Rmd"]


@pytest.mark.unit
def test_compile_all_fail_fast_sequential_does_not_continue(executor, fake_runner):
    """Test fail-fast with independent targets stops after the failure."""
    fake_runner.fail("a", "error: bad syntax")

    with pytest.raises(RenderFailure):
        executor.compile_all([Target("a"), Target("b"), Target("c")], jobs=1)

    assert fake_runner.rendered() == ["a.Rmd"]


@pytest.mark.unit
def test_compile_all_collect_all(executor, fake_runner):
    """Test collect-all records every failure and skips dependents."""
    fake_runner.fail("reads", "error: bad syntax")
    fake_runner.fail("umis", "error: missing counts")
    targets = [
        Target("intro"),
        Target("reads", depends_on=("intro",)),
        Target("umis", depends_on=("intro",)),
        Target("de", depends_on=("reads", "umis")),
        Target("other"),
    ]

    report = executor.compile_all(targets, policy="collect_all")

    assert sorted(r.target.name for r in report.failed) == ["reads", "umis"]
    assert [r.target.name for r in report.skipped] == ["de"]
    assert sorted(r.target.name for r in report.succeeded) == ["intro", "other"]
    assert report.get("de").log[0].startswith("de> skipped: dependency ")
    assert "de.Rmd" not in fake_runner.rendered()
    assert not report.ok


@pytest.mark.unit
def test_compile_all_skips_transitive_dependents(executor, fake_runner):
    """Test a skipped target also blocks its own dependents."""
    fake_runner.fail("a", "boom")
    targets = [Target("a"), Target("b", depends_on=("a",)), Target("c", depends_on=("b",))]

    report = executor.compile_all(targets, policy=FailurePolicy.COLLECT_ALL)

    assert [r.target.name for r in report.skipped] == ["b", "c"]
    assert fake_runner.rendered() == ["a.Rmd"]


@pytest.mark.unit
def test_compile_all_parallel(executor, fake_runner):
    """Test a parallel build compiles every target once."""
    targets = [Target(f"v{i}") for i in range(8)]

    report = executor.compile_all(targets, jobs=4)

    assert len(report.succeeded) == 8
    assert sorted(fake_runner.rendered()) == sorted(f"v{i}.Rmd" for i in range(8))


@pytest.mark.unit
def test_compile_all_unknown_dependency(executor, fake_runner):
    """Test an unknown dependency fails before anything is rendered."""
    with pytest.raises(DependencyError):
        executor.compile_all([Target("reads", depends_on=("intro",))])
    assert fake_runner.calls == []


@pytest.mark.unit
def test_compile_all_cycle(executor, fake_runner):
    """Test a dependency cycle fails before anything is rendered."""
    targets = [Target("a", depends_on=("b",)), Target("b", depends_on=("a",))]

    with pytest.raises(DependencyError, match="cycle"):
        executor.compile_all(targets)
    assert fake_runner.calls == []


@pytest.mark.unit
def test_compile_all_invalid_jobs(executor):
    """Test jobs must be positive."""
    with pytest.raises(ValueError):
        executor.compile_all([Target("intro")], jobs=0)


@pytest.mark.unit
def test_order_targets():
    """Test dependencies come before dependents."""
    ordered = order_targets(
        [Target("c", depends_on=("b",)), Target("b", depends_on=("a",)), Target("a")]
    )

    assert [t.name for t in ordered] == ["a", "b", "c"]
