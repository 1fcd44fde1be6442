from __future__ import annotations

from typing import Any, Dict, List, Optional

from reelbatch.polling.job_client import JobClient, OperationSnapshot

OPERATION_NAME = "models/veo-3.0-generate-001/operations/op-1"


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays instead of waiting."""

    def __init__(self, clock: Optional[FakeClock] = None) -> None:
        self.calls: List[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


class ScriptedJobClient(JobClient):
    """Returns scripted snapshots (or raises scripted errors); the last entry repeats."""

    def __init__(self, responses: List[Any], name: str = OPERATION_NAME) -> None:
        self.responses = list(responses)
        self.name = name
        self.submitted: List[Dict[str, Any]] = []
        self.polls = 0

    async def submit(self, payload: Dict[str, Any]) -> str:
        self.submitted.append(payload)
        return self.name

    async def get_operation(self, name: str) -> OperationSnapshot:
        self.polls += 1
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


def pending(name: str = OPERATION_NAME) -> OperationSnapshot:
    return OperationSnapshot(name=name, done=False)


def finished_video(uri: str = "https://example.com/video.mp4", name: str = OPERATION_NAME) -> OperationSnapshot:
    return OperationSnapshot(
        name=name,
        done=True,
        response={"generateVideoResponse": {"generatedSamples": [{"video": {"uri": uri}}]}},
    )


def filtered(name: str = OPERATION_NAME) -> OperationSnapshot:
    return OperationSnapshot(
        name=name,
        done=True,
        response={
            "generateVideoResponse": {
                "raiMediaFilteredCount": 1,
                "raiMediaFilteredReasons": ["Violence policy"],
            }
        },
    )

