"""
Run reporting for reelbatch parallel execution.

Turns a RunResult into what callers show to users ("M of N succeeded" plus
the failed ids and their errors), exports it as JSON, and picks out the
failed tasks for resubmission.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List

from .runner import ParallelTask, RunResult

logger = logging.getLogger(__name__)


def summarize_run(result: RunResult) -> Dict[str, Any]:
    """
    Build a JSON-serialisable summary including per-task entries.

    Task results are stored as ``repr`` strings unless they are plain
    JSON scalars.
    """
    summary = result.summary()
    summary["results"] = [
        {
            "task_id": r.task_id,
            "success": r.success,
            "phase": r.phase.value,
            "latency_ms": r.latency_ms,
            "result": _jsonable(r.result),
            "error": r.error,
        }
        for r in result.results
    ]
    return summary


def format_summary(result: RunResult) -> str:
    """Human-readable run report."""
    lines = [
        f"{result.succeeded} of {result.total} succeeded "
        f"({result.total_duration_ms / 1000:.1f}s)"
    ]
    for outcome in result.results:
        if not outcome.success:
            lines.append(f"  - {outcome.task_id}: {outcome.error}")
    return "\n".join(lines)


def save_run_result(
    result: RunResult,
    output_dir: Path | str,
    name: str = "run",
) -> Path:
    """
    Write the run summary to ``<output_dir>/<name>.json``.

    Returns:
        Path of the written file
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_file = output_dir / f"{name}.json"

    with open(output_file, "w") as f:
        json.dump(summarize_run(result), f, indent=2)

    logger.info("Saved run results to %s", output_file)
    return output_file


def failed_tasks(
    result: RunResult,
    tasks: Iterable[ParallelTask[Any]],
) -> List[ParallelTask[Any]]:
    """
    Get the submitted tasks whose outcome was a failure, in submission order.

    Lets a caller resubmit only what failed in a fresh run.
    """
    failed = set(result.failed_ids)
    return [task for task in tasks if task.id in failed]


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return repr(value)
