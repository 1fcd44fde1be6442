"""
reelbatch Parallel Processing Module.

Batched, rate-limited execution of many independent generation calls
(storyboard frames, character portraits, text passes) against services
with a requests-per-minute ceiling.

Key Components:
    - ParallelTaskRunner: Sequential warm-up followed by fixed-size parallel batches
    - RateLimitTracker: Sliding one-minute window of request timestamps
    - report: Run summaries, JSON export and failed-task selection

Example:
    >>> from reelbatch.parallel import ParallelTask, ParallelTaskRunner
    >>> runner = ParallelTaskRunner(rate_limit_rpm=20)
    >>> result = await runner.run(tasks)
"""

from .rate_limiter import RateLimitStats, RateLimitTracker
from .runner import (
    ParallelRunnerConfig,
    ParallelTask,
    ParallelTaskRunner,
    RunPhase,
    RunResult,
    TaskOutcome,
    TaskTimeoutError,
    run_parallel_sync,
)
from .report import failed_tasks, format_summary, save_run_result, summarize_run

__all__ = [
    "ParallelTaskRunner",
    "ParallelRunnerConfig",
    "ParallelTask",
    "RunPhase",
    "RunResult",
    "TaskOutcome",
    "TaskTimeoutError",
    "RateLimitTracker",
    "RateLimitStats",
    "run_parallel_sync",
    "failed_tasks",
    "format_summary",
    "save_run_result",
    "summarize_run",
]
