import json

from reelbatch.parallel import (
    ParallelTask,
    RunPhase,
    RunResult,
    TaskOutcome,
    failed_tasks,
    format_summary,
    save_run_result,
    summarize_run,
)


async def _noop() -> None:
    return None


def _result() -> RunResult:
    return RunResult(
        results=[
            TaskOutcome("shot-1", "gs://one.png", None, 120.0, True, RunPhase.SEQUENTIAL),
            TaskOutcome("shot-2", None, "HTTP 429: quota", 80.0, False, RunPhase.BATCH),
            TaskOutcome("shot-3", {"frames": 3}, None, 95.0, True, RunPhase.BATCH),
        ],
        total_duration_ms=2500.0,
    )


def test_format_summary_lists_failures():
    """Test the summary text lists failed tasks."""
    text = format_summary(_result())
    assert text.splitlines() == [
        "2 of 3 succeeded (2.5s)",
        "  - shot-2: HTTP 429: quota",
    ]


def test_summarize_run_is_json_ready():
    """Test the summary dict is JSON serialisable."""
    summary = summarize_run(_result())
    assert summary["failed_ids"] == ["shot-2"]
    assert summary["results"][0]["result"] == "gs://one.png"
    assert summary["results"][1]["phase"] == "batch"
    assert summary["results"][2]["result"] == "{'frames': 3}"
    json.dumps(summary)


def test_save_run_result(tmp_path):
    """Test the run result is written as JSON."""
    path = save_run_result(_result(), tmp_path / "out", name="storyboard")
    assert path == tmp_path / "out" / "storyboard.json"
    data = json.loads(path.read_text())
    assert data["total"] == 3
    assert data["succeeded"] == 2


def test_failed_tasks_for_resubmission():
    """Test failed tasks are selected for resubmission."""
    tasks = [ParallelTask(id=f"shot-{i}", execute=_noop) for i in range(1, 4)]
    assert [t.id for t in failed_tasks(_result(), tasks)] == ["shot-2"]
