"""
Direct invocation of installed versions.

Runs a version's binary as a child process with captured output, and
fans the same command out over several versions in parallel. Fan-out is
best effort: a failing task never cancels its siblings, and every task
reports either a result or the error that prevented one.
"""

from __future__ import annotations

import datetime
import logging
import subprocess
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from .errors import NotFoundError, SubprocessError
from .versions import VersionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionResult:
    """
    Result of one invocation.

    Attributes:
        version: Version whose binary ran
        command: Arguments joined with spaces
        stdout: Captured standard output
        stderr: Captured standard error
        exit_code: Process exit code (1 on spawn failure, -1 on timeout)
        duration: Wall-clock seconds from just before spawn to exit
        start_time: When the invocation started
        error: Spawn or timeout failure message, None when the process ran to completion
    """
    version: str
    command: str
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    duration: float = 0.0
    start_time: datetime.datetime = field(default_factory=datetime.datetime.now)
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and self.error is None

    @property
    def output(self) -> str:
        """
        Output used for comparison.

        Success joins stdout and stderr, since many tools print informational
        text to stderr. Failure prefers stdout, as usage errors often still
        print help there.
        """
        if self.success:
            if self.stdout and self.stderr:
                return self.stdout + "\n" + self.stderr
            return self.stdout or self.stderr
        return self.stdout or self.stderr

    @property
    def error_message(self) -> str:
        if self.success:
            return ""
        return self.stderr or (self.error or "")

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "version": self.version,
            "command": self.command,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
            "duration_ms": round(self.duration * 1000, 2),
            "start_time": self.start_time.isoformat(),
            "error": self.error,
        }


@dataclass(frozen=True)
class TaskOutcome:
    """
    One fan-out task: a result, an error, or a result plus the error behind it.

    Attributes:
        target: Version the task ran against
        result: Task result (ExecutionResult or list of them)
        error: Why the task could not produce a normal result
    """
    target: str
    result: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class FanOutResult:
    """All task outcomes in submission order plus the first error seen."""
    outcomes: tuple[TaskOutcome, ...]
    first_error: BaseException | None = None

    @property
    def results(self) -> list[Any]:
        return [outcome.result for outcome in self.outcomes]


class Deadline:
    """
    Cancellable deadline shared by fan-out tasks.

    Args:
        seconds: Time budget from now, or None for no overall limit
    """

    def __init__(self, seconds: float | None = None):
        self.expires_at = None if seconds is None else time.monotonic() + seconds
        self._cancelled = threading.Event()

    def remaining(self) -> float | None:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def expired(self) -> bool:
        remaining = self.remaining()
        return self.cancelled or (remaining is not None and remaining <= 0)


def _effective_timeout(timeout: float | None, deadline: Deadline | None) -> float | None:
    remaining = deadline.remaining() if deadline else None
    candidates = [t for t in (timeout, remaining) if t is not None]
    return min(candidates) if candidates else None


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def run_parallel(
    tasks: Sequence[tuple[str, Callable[[], Any]]],
    max_workers: int = 8,
) -> list[TaskOutcome]:
    """
    Run tasks concurrently and collect every outcome.

    Each task writes only its own slot; an exception in one task is
    captured on its outcome and never affects the others.

    Args:
        tasks: (target, callable) pairs
        max_workers: Maximum number of parallel workers

    Returns:
        Outcomes in the same order as tasks
    """
    if not tasks:
        return []

    outcomes: list[TaskOutcome | None] = [None] * len(tasks)
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(tasks)))) as executor:
        future_to_index = {
            executor.submit(fn): index
            for index, (_, fn) in enumerate(tasks)
        }
        for future in as_completed(future_to_index):
            index = future_to_index[future]
            target = tasks[index][0]
            try:
                outcomes[index] = TaskOutcome(target=target, result=future.result())
            except Exception as e:
                logger.debug(f"Task for {target} failed: {e}")
                outcomes[index] = TaskOutcome(target=target, error=e)

    return [outcome for outcome in outcomes if outcome is not None]


class ExecutionEngine:
    """Invokes installed versions directly, bypassing the shim."""

    def __init__(self, versions: VersionStore, max_workers: int = 8, verbose: bool = False):
        self.versions = versions
        self.max_workers = max_workers
        self.verbose = verbose

    def invoke(
        self,
        version: str,
        args: Sequence[str],
        timeout: float | None = None,
        deadline: Deadline | None = None,
    ) -> ExecutionResult:
        """
        Run one version's binary and capture its output.

        Args:
            version: Installed version to run
            args: Arguments passed to the binary
            timeout: Seconds before the child is killed
            deadline: Shared deadline; the tighter of it and timeout applies

        Returns:
            ExecutionResult; spawn failures and timeouts are reported on it, never raised
        """
        binary = self.versions.binary_path(version)
        command = " ".join(args)
        start_time = datetime.datetime.now()

        if deadline is not None and deadline.expired():
            return ExecutionResult(
                version=version,
                command=command,
                exit_code=-1,
                start_time=start_time,
                error="deadline exceeded before start",
            )

        effective_timeout = _effective_timeout(timeout, deadline)
        start = time.perf_counter()
        try:
            completed = subprocess.run(
                [str(binary), *args],
                capture_output=True,
                stdin=subprocess.DEVNULL,
                timeout=effective_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            return ExecutionResult(
                version=version,
                command=command,
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr),
                exit_code=-1,
                duration=time.perf_counter() - start,
                start_time=start_time,
                error=f"Command timed out after {effective_timeout:g}s",
            )
        except OSError as e:
            return ExecutionResult(
                version=version,
                command=command,
                exit_code=1,
                duration=time.perf_counter() - start,
                start_time=start_time,
                error=f"Failed to start {binary}: {e}",
            )

        return ExecutionResult(
            version=version,
            command=command,
            stdout=_decode(completed.stdout),
            stderr=_decode(completed.stderr),
            exit_code=completed.returncode,
            duration=time.perf_counter() - start,
            start_time=start_time,
        )

    def invoke_many(
        self,
        versions: Sequence[str],
        args: Sequence[str],
        timeout: float | None = None,
    ) -> FanOutResult:
        """
        Run the same command against several versions in parallel.

        All tasks share one deadline of `timeout` seconds.
        """
        deadline = Deadline(timeout)
        tasks = [
            (version, lambda version=version: self.invoke(version, args, deadline=deadline))
            for version in versions
        ]
        outcomes = []
        for outcome in run_parallel(tasks, self.max_workers):
            result = outcome.result
            if outcome.ok and result.error:
                outcome = TaskOutcome(outcome.target, result, SubprocessError(result.error))
            outcomes.append(outcome)
        return _collect(outcomes)

    def benchmark(
        self,
        versions: Sequence[str],
        args: Sequence[str],
        iterations: int,
        timeout: float | None = None,
    ) -> FanOutResult:
        """
        Run a command `iterations` times per version.

        Versions run in parallel; iterations for one version run
        sequentially, each with its own timeout.

        Returns:
            FanOutResult whose results are lists of ExecutionResult
        """
        deadline = Deadline()

        def run_iterations(version: str) -> tuple[list[ExecutionResult], SubprocessError | None]:
            executions = []
            first_failure = None
            for i in range(iterations):
                execution = self.invoke(version, args, timeout=timeout, deadline=deadline)
                executions.append(execution)
                if execution.error:
                    logger.warning(f"Iteration {i + 1} for {version} failed: {execution.error}")
                    first_failure = first_failure or SubprocessError(execution.error)
            return executions, first_failure

        tasks = [(version, lambda version=version: run_iterations(version)) for version in versions]
        outcomes = []
        for outcome in run_parallel(tasks, self.max_workers):
            if outcome.ok:
                executions, failure = outcome.result
                outcome = TaskOutcome(outcome.target, executions, failure)
            outcomes.append(outcome)
        return _collect(outcomes)

    def run_foreground(self, version: str, args: Sequence[str]) -> int:
        """
        Run a version's binary with inherited stdio.

        Returns:
            The child's exit code

        Raises:
            NotFoundError: If the binary cannot be started
        """
        binary = self.versions.binary_path(version)
        try:
            completed = subprocess.run([str(binary), *args], check=False)
        except OSError as e:
            raise NotFoundError(f"failed to run {binary}: {e}") from e
        return completed.returncode


def _collect(outcomes: list[TaskOutcome]) -> FanOutResult:
    first_error = next((outcome.error for outcome in outcomes if outcome.error), None)
    if first_error is not None:
        logger.warning(str(first_error))
    return FanOutResult(outcomes=tuple(outcomes), first_error=first_error)
