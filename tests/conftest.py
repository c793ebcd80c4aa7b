"""Shared fixtures: loguru reset and a fake renderer runner."""

from typing import List, Optional

import pytest
from loguru import logger

from vignette_builder.contexts.compiling import (
    ArtifactCache,
    MemoryFileSystem,
    ProcessLaunchError,
    RunOutcome,
    TaskExecutor,
)


@pytest.fixture(autouse=True)
def reset_loguru():
    """Drop sinks added by a test (CLI tests bind one to a captured stdout)."""
    yield
    logger.remove()


class FakeRunner:
    """
    Stand-in ProcessRunner.

    Writes scripted output into the real log sink, records every call, and
    creates the output in a MemoryFileSystem when the render succeeds.
    """

    def __init__(self, filesystem: MemoryFileSystem):
        self.filesystem = filesystem
        self.calls: List[List[str]] = []
        self.failures = {}  # source path -> output lines
        self.launch_error = False
        self.timeout_s: Optional[float] = None

    def fail(self, name: str, *lines: str) -> None:
        self.failures[f"{name}.Rmd"] = list(lines)

    def run(self, command, args, log_sink, cancel_event=None) -> RunOutcome:
        cmd = [*command, *(str(a) for a in args)]
        if self.launch_error:
            raise ProcessLaunchError(cmd, FileNotFoundError(cmd[0]))
        self.calls.append(cmd)

        source = str(args[0])
        if source in self.failures:
            for line in self.failures[source]:
                log_sink.handle.write(f"{line}\n".encode())
            return RunOutcome(exit_code=1)

        log_sink.handle.write(b"processing file\n")
        self.filesystem.touch(source[: -len(".Rmd")] + ".html", mtime=100.0)
        return RunOutcome(exit_code=0)

    def rendered(self) -> List[str]:
        return [cmd[-1] for cmd in self.calls]


@pytest.fixture
def filesystem():
    return MemoryFileSystem()


@pytest.fixture
def fake_runner(filesystem):
    return FakeRunner(filesystem)


@pytest.fixture
def executor(filesystem, fake_runner, tmp_path):
    sink_dir = tmp_path / "sinks"
    sink_dir.mkdir()
    return TaskExecutor(
        renderer=("render",),
        cache=ArtifactCache(filesystem),
        runner=fake_runner,
        sink_dir=sink_dir,
        events_file=tmp_path / "events.log",
    )
