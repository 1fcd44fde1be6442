"""
reelbatch Long-Running Operation Polling.

Key Components:
    - LongRunningOperationPoller: Polls an operation handle to a terminal state
    - classify_error: Permanent vs. transient classification
    - GeminiVideoJobClient: HTTP client for the Veo long-running endpoint
"""

from .classifier import FailureKind, classify_error
from .job_client import (
    GeminiVideoJobClient,
    JobAPIError,
    JobClient,
    OperationSnapshot,
    extract_filter_reasons,
    extract_video_uri,
)
from .poller import (
    LongRunningOperationPoller,
    Operation,
    OperationResult,
    OperationState,
    PermanentOperationError,
    PollerConfig,
    PollingError,
    PollKind,
    PollStep,
    TransientOperationFailure,
    TransientRetriesExhausted,
)

__all__ = [
    "FailureKind",
    "classify_error",
    "GeminiVideoJobClient",
    "JobAPIError",
    "JobClient",
    "OperationSnapshot",
    "extract_filter_reasons",
    "extract_video_uri",
    "LongRunningOperationPoller",
    "Operation",
    "OperationResult",
    "OperationState",
    "PermanentOperationError",
    "PollerConfig",
    "PollingError",
    "PollKind",
    "PollStep",
    "TransientOperationFailure",
    "TransientRetriesExhausted",
]
