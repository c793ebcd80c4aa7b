"""
Renderer subprocess execution.

Runs the renderer as a child process with stdout and stderr both written to
one log sink, so the captured log keeps the order in which the renderer
interleaved its diagnostics.
"""

import os
import subprocess
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, List, Optional, Sequence, Union

from vignette_builder.contexts.compiling.exceptions import ProcessLaunchError

# Exit code reported for a renderer stopped by the timeout (same as coreutils `timeout`)
TIMEOUT_EXIT_CODE = 124


@dataclass
class LogSink:
    """Temporary file receiving the renderer's combined output."""

    path: Path
    handle: BinaryIO

    def read_lines(self) -> List[str]:
        """Full contents as ordered lines. Undecodable bytes are replaced."""
        self.handle.flush()
        return self.path.read_text(encoding="utf-8", errors="replace").splitlines()


@contextmanager
def scoped_log_sink(directory: Optional[Path] = None) -> Iterator[LogSink]:
    """
    Create a temporary log file that is always removed on exit.

    Args:
        directory: Where to create the file (default: system temp dir)

    Yields:
        LogSink open for binary writing
    """
    fd, name = tempfile.mkstemp(suffix=".log", dir=directory)
    path = Path(name)
    handle = os.fdopen(fd, "wb")
    try:
        yield LogSink(path=path, handle=handle)
    finally:
        handle.close()
        path.unlink(missing_ok=True)


@dataclass
class RunOutcome:
    """
    Exit status of one renderer run.

    Attributes:
        exit_code: Child exit code (TIMEOUT_EXIT_CODE on timeout, negative if killed)
        timed_out: The child exceeded the configured timeout
        cancelled: The child was killed because cancellation was requested
    """

    exit_code: int
    timed_out: bool = False
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and not self.cancelled


class ProcessRunner:
    """
    Launches renderer processes.

    Args:
        cwd: Working directory for the child (default: current directory)
        timeout_s: Stop the child after this many seconds (default: no timeout)
        grace_period_s: Time between terminate and kill when stopping a child
        poll_interval_s: How often timeout and cancellation are checked
        env: Extra environment variables for the child
    """

    def __init__(
        self,
        cwd: Optional[Union[str, Path]] = None,
        timeout_s: Optional[float] = None,
        grace_period_s: float = 2.0,
        poll_interval_s: float = 0.1,
        env: Optional[Dict[str, str]] = None,
    ):
        self.cwd = Path(cwd) if cwd is not None else None
        self.timeout_s = timeout_s
        self.grace_period_s = grace_period_s
        self.poll_interval_s = poll_interval_s
        self.env = env

    def run(
        self,
        command: Sequence[str],
        args: Sequence[Union[str, Path]],
        log_sink: LogSink,
        cancel_event: Optional[threading.Event] = None,
    ) -> RunOutcome:
        """
        Run `command + args` and wait for it to finish.

        A non-zero exit is reported in the outcome, not raised.

        Raises:
            ProcessLaunchError: If the child could not be started
        """
        cmd = [*command, *(str(a) for a in args)]
        env = {**os.environ, **self.env} if self.env else None

        try:
            process = subprocess.Popen(  # noqa: S603
                cmd,
                cwd=self.cwd,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=log_sink.handle,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            raise ProcessLaunchError(cmd, e) from e

        if self.timeout_s is None and cancel_event is None:
            return RunOutcome(exit_code=process.wait())

        start = time.monotonic()
        while True:
            try:
                return RunOutcome(exit_code=process.wait(timeout=self.poll_interval_s))
            except subprocess.TimeoutExpired:
                pass

            if cancel_event is not None and cancel_event.is_set():
                process.kill()
                return RunOutcome(exit_code=process.wait(), cancelled=True)

            if self.timeout_s is not None and time.monotonic() - start >= self.timeout_s:
                self._terminate(process)
                return RunOutcome(exit_code=TIMEOUT_EXIT_CODE, timed_out=True)

    def _terminate(self, process: subprocess.Popen) -> None:
        """Terminate, then kill if the child ignores SIGTERM."""
        try:
            process.terminate()
        except OSError:
            return
        try:
            process.wait(timeout=self.grace_period_s)
        except subprocess.TimeoutExpired:
            try:
                process.kill()
            except OSError:
                return
            process.wait()
