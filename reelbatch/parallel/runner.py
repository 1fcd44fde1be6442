"""
Parallel Task Runner for reelbatch.

Executes many independent generation calls (images, text, video frames)
against a remote service that enforces a requests-per-minute ceiling and
tolerates wide fan-out poorly while it is cold.

Execution strategy:
    - Warm-up: the first ``sequential_count`` tasks run one at a time, in
      order, so broken credentials or connectivity surface cheaply
    - Batches: remaining tasks run in fixed-size parallel batches; every
      batch fully settles before the next one is dispatched
    - Rate limiting: a sliding-window tracker is consulted before each
      sequential task and before each batch

Isolation:
    - A failing task is recorded and never aborts its batch or the run
    - Callers inspect the RunResult to learn about partial failure
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Generic, Iterable, Iterator, TypeVar

from ..tracking import MlflowLogger
from .rate_limiter import RateLimitTracker

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[int, int, str], Any]
TaskCompleteCallback = Callable[[str, bool, "str | None"], Any]


class RunPhase(Enum):
    """Lifecycle of a single run."""

    NOT_STARTED = "not_started"
    SEQUENTIAL = "sequential"
    BATCH = "batch"
    DONE = "done"


class TaskTimeoutError(Exception):
    """Raised when a task exceeds the configured per-task timeout."""


@dataclass(frozen=True)
class ParallelTask(Generic[T]):
    """A single unit of work submitted to the runner.

    Attributes:
        id: Identifier, unique within one run
        execute: Zero-argument coroutine function performing the call
        on_complete: Optional callback receiving the result on success
        on_error: Optional callback receiving the exception on failure
    """

    id: str
    execute: Callable[[], Awaitable[T]]
    on_complete: Callable[[T], Any] | None = None
    on_error: Callable[[BaseException], Any] | None = None


@dataclass
class ParallelRunnerConfig:
    """Configuration for the parallel runner.

    Attributes:
        rate_limit_rpm: Requests-per-minute ceiling shared by all tasks
        sequential_count: Number of warm-up tasks run one at a time
        batch_size: Maximum tasks in flight during the batch phase
        inter_batch_pause: Pause in seconds between batches
        task_timeout: Optional per-task timeout in seconds
    """

    rate_limit_rpm: int = 20
    sequential_count: int = 3
    batch_size: int = 12
    inter_batch_pause: float = 0.1
    task_timeout: float | None = None

    def __post_init__(self) -> None:
        if self.rate_limit_rpm < 1:
            raise ValueError(f"rate_limit_rpm must be at least 1, got {self.rate_limit_rpm}")
        if self.sequential_count < 1:
            logger.warning("sequential_count=%d clamped to 1", self.sequential_count)
            self.sequential_count = 1
        if self.batch_size < 1:
            logger.warning("batch_size=%d clamped to 1", self.batch_size)
            self.batch_size = 1
        if self.inter_batch_pause < 0:
            raise ValueError("inter_batch_pause cannot be negative")
        if self.task_timeout is not None and self.task_timeout <= 0:
            raise ValueError("task_timeout must be positive when set")


@dataclass
class TaskOutcome:
    """Result from executing a single task.

    Attributes:
        task_id: Identifier of the task
        result: Value returned by the task (if successful)
        error: Error message (if failed), never empty
        latency_ms: Execution time in milliseconds
        success: Whether the task succeeded
        phase: Phase in which the task ran
    """

    task_id: str
    result: Any
    error: str | None
    latency_ms: float
    success: bool
    phase: RunPhase = RunPhase.SEQUENTIAL


@dataclass
class RunResult:
    """Consolidated result of one run.

    Holds exactly one outcome per submitted task, in submission order.
    Aggregate counts are derived from the outcomes.
    """

    results: list[TaskOutcome] = field(default_factory=list)
    total_duration_ms: float = 0.0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def failed_ids(self) -> list[str]:
        return [r.task_id for r in self.results if not r.success]

    @property
    def by_id(self) -> Dict[str, TaskOutcome]:
        return {r.task_id: r for r in self.results}

    @property
    def avg_latency_ms(self) -> float:
        latencies = [r.latency_ms for r in self.results if r.success]
        return sum(latencies) / len(latencies) if latencies else 0.0

    @property
    def throughput_rps(self) -> float:
        if self.total_duration_ms <= 0:
            return 0.0
        return self.total / (self.total_duration_ms / 1000)

    def summary(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failed_ids": self.failed_ids,
            "total_duration_ms": self.total_duration_ms,
            "avg_latency_ms": self.avg_latency_ms,
            "throughput_rps": self.throughput_rps,
        }


@dataclass
class _RunContext:
    total: int
    on_progress: ProgressCallback | None
    on_task_complete: TaskCompleteCallback | None
    completed: int = 0
    outcomes: Dict[str, TaskOutcome] = field(default_factory=dict)


def _chunk(tasks: list[ParallelTask[Any]], size: int) -> Iterator[list[ParallelTask[Any]]]:
    for i in range(0, len(tasks), size):
        yield tasks[i : i + size]


def _error_message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class ParallelTaskRunner:
    """
    Phased, rate-limited executor for independent async tasks.

    Example:
        >>> runner = ParallelTaskRunner(rate_limit_rpm=20, batch_size=12)
        >>> tasks = [ParallelTask(id=shot.id, execute=partial(render, shot)) for shot in shots]
        >>> result = await runner.run(tasks, on_progress=report)
        >>> print(f"{result.succeeded} of {result.total} succeeded")

    The runner owns its RateLimitTracker. Pass ``tracker`` to share one
    tracker between runners that hit the same quota; the tracker's own RPM
    then applies instead of ``rate_limit_rpm``.
    """

    def __init__(
        self,
        config: ParallelRunnerConfig | None = None,
        *,
        tracker: RateLimitTracker | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        run_logger: MlflowLogger | None = None,
        **overrides: Any,
    ) -> None:
        """
        Initialize the runner.

        Args:
            config: Runner configuration; keyword overrides are applied on top
            tracker: Rate tracker to consult; one is created when omitted
            sleep: Coroutine used for the inter-batch pause
            run_logger: Optional MLflow logger receiving run summaries
            **overrides: Individual ParallelRunnerConfig fields
        """
        if config is None:
            config = ParallelRunnerConfig(**overrides)
        elif overrides:
            config = replace(config, **overrides)

        self._config = config
        self._tracker = tracker or RateLimitTracker(config.rate_limit_rpm)
        self._sleep = sleep
        self._run_logger = run_logger
        self._phase = RunPhase.NOT_STARTED

        logger.info(
            "ParallelTaskRunner initialized: rpm=%d, sequential=%d, batch_size=%d",
            self._tracker.requests_per_minute,
            config.sequential_count,
            config.batch_size,
        )

    @property
    def config(self) -> ParallelRunnerConfig:
        """Get current configuration."""
        return self._config

    @property
    def tracker(self) -> RateLimitTracker:
        return self._tracker

    @property
    def phase(self) -> RunPhase:
        return self._phase

    async def run(
        self,
        tasks: Iterable[ParallelTask[Any]],
        on_progress: ProgressCallback | None = None,
        on_task_complete: TaskCompleteCallback | None = None,
    ) -> RunResult:
        """
        Execute all tasks: sequential warm-up first, then parallel batches.

        Args:
            tasks: Tasks to execute; ids must be unique
            on_progress: Optional callback(completed, total, task_id) after each task
            on_task_complete: Optional callback(task_id, success, error) after each task

        Returns:
            RunResult with one outcome per task, in submission order

        Raises:
            ValueError: If two tasks share an id
        """
        tasks = list(tasks)
        _check_unique_ids(tasks)

        self._phase = RunPhase.NOT_STARTED
        if not tasks:
            self._phase = RunPhase.DONE
            return RunResult(results=[], total_duration_ms=0.0)

        start_time = time.monotonic()
        ctx = _RunContext(
            total=len(tasks),
            on_progress=on_progress,
            on_task_complete=on_task_complete,
        )

        sequential = tasks[: self._config.sequential_count]
        remaining = tasks[self._config.sequential_count :]

        logger.info(
            "Starting run: %d tasks (%d sequential, %d in batches of up to %d)",
            len(tasks),
            len(sequential),
            len(remaining),
            self._config.batch_size,
        )

        await self._run_sequential(sequential, ctx)
        if remaining:
            await self._run_batches(remaining, ctx)

        self._phase = RunPhase.DONE
        result = RunResult(
            results=[ctx.outcomes[task.id] for task in tasks],
            total_duration_ms=(time.monotonic() - start_time) * 1000,
        )

        logger.info(
            "Run complete: %d succeeded, %d failed, %.1fs total",
            result.succeeded,
            result.failed,
            result.total_duration_ms / 1000,
        )
        if self._run_logger is not None:
            self._run_logger.log_run_summary(result.summary())

        return result

    async def _run_sequential(
        self,
        tasks: list[ParallelTask[Any]],
        ctx: _RunContext,
    ) -> None:
        self._phase = RunPhase.SEQUENTIAL
        logger.info("Phase 1: processing %d tasks sequentially (warm-up)", len(tasks))

        for index, task in enumerate(tasks, start=1):
            await self._tracker.wait_if_needed()
            self._tracker.record_request()
            outcome = await self._execute(task, RunPhase.SEQUENTIAL, ctx)
            logger.info(
                "Sequential task %d/%d %s: %s (%.0fms)",
                index,
                len(tasks),
                "completed" if outcome.success else "failed",
                task.id,
                outcome.latency_ms,
            )

    async def _run_batches(
        self,
        tasks: list[ParallelTask[Any]],
        ctx: _RunContext,
    ) -> None:
        self._phase = RunPhase.BATCH
        batches = list(_chunk(tasks, self._config.batch_size))
        logger.info(
            "Phase 2: processing %d tasks in %d parallel batches",
            len(tasks),
            len(batches),
        )

        for number, batch in enumerate(batches, start=1):
            logger.info(
                "Processing batch %d/%d: %d tasks in parallel",
                number,
                len(batches),
                len(batch),
            )

            # One rate-limit check per batch; members dispatch together
            await self._tracker.wait_if_needed()
            outcomes = await asyncio.gather(
                *(self._dispatch(task, ctx) for task in batch)
            )

            logger.info(
                "Batch %d/%d completed: %d/%d succeeded",
                number,
                len(batches),
                sum(1 for o in outcomes if o.success),
                len(batch),
            )

            if number < len(batches) and self._config.inter_batch_pause > 0:
                await self._sleep(self._config.inter_batch_pause)

    async def _dispatch(self, task: ParallelTask[Any], ctx: _RunContext) -> TaskOutcome:
        self._tracker.record_request()
        return await self._execute(task, RunPhase.BATCH, ctx)

    async def _await_task(self, task: ParallelTask[Any]) -> Any:
        timeout = self._config.task_timeout
        if timeout is None:
            return await task.execute()
        try:
            return await asyncio.wait_for(task.execute(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise TaskTimeoutError(f"Timeout after {timeout}s") from exc

    async def _execute(
        self,
        task: ParallelTask[Any],
        phase: RunPhase,
        ctx: _RunContext,
    ) -> TaskOutcome:
        """
        Run one task and record its outcome. Never raises for task failures.
        """
        start_time = time.monotonic()
        try:
            value = await self._await_task(task)
        except Exception as exc:
            outcome = TaskOutcome(
                task_id=task.id,
                result=None,
                error=_error_message(exc),
                latency_ms=(time.monotonic() - start_time) * 1000,
                success=False,
                phase=phase,
            )
            logger.error("Task %s failed: %s", task.id, outcome.error[:200])
            _notify(task.on_error, exc)
        else:
            outcome = TaskOutcome(
                task_id=task.id,
                result=value,
                error=None,
                latency_ms=(time.monotonic() - start_time) * 1000,
                success=True,
                phase=phase,
            )
            _notify(task.on_complete, value)

        ctx.outcomes[task.id] = outcome
        ctx.completed += 1
        if ctx.completed % 10 == 0:
            logger.info(
                "Progress: %d/%d (%.1f%%)",
                ctx.completed,
                ctx.total,
                100 * ctx.completed / ctx.total,
            )

        _notify(ctx.on_task_complete, task.id, outcome.success, outcome.error)
        _notify(ctx.on_progress, ctx.completed, ctx.total, task.id)
        return outcome


def _check_unique_ids(tasks: list[ParallelTask[Any]]) -> None:
    seen: set[str] = set()
    duplicates: list[str] = []
    for task in tasks:
        if task.id in seen:
            duplicates.append(task.id)
        seen.add(task.id)
    if duplicates:
        raise ValueError(f"Duplicate task ids: {sorted(set(duplicates))}")


def _notify(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        logger.warning("Callback %r raised, continuing run", callback, exc_info=True)


def run_parallel_sync(
    tasks: Iterable[ParallelTask[Any]],
    config: ParallelRunnerConfig | None = None,
    on_progress: ProgressCallback | None = None,
    on_task_complete: TaskCompleteCallback | None = None,
    **overrides: Any,
) -> RunResult:
    """
    Synchronous wrapper for non-async code.

    Example:
        >>> from reelbatch.parallel import run_parallel_sync
        >>> result = run_parallel_sync(tasks, batch_size=6)
    """

    async def _run() -> RunResult:
        runner = ParallelTaskRunner(config, **overrides)
        return await runner.run(
            tasks,
            on_progress=on_progress,
            on_task_complete=on_task_complete,
        )

    return asyncio.run(_run())
