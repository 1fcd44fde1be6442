"""Permanent vs. transient classification of remote job errors."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union


class FailureKind(Enum):
    NONE = "none"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


PERMANENT_STATUS_CODES = frozenset({400, 401, 403, 404})

PERMANENT_ERROR_CODES = frozenset(
    {
        "INVALID_ARGUMENT",
        "NOT_FOUND",
        "PERMISSION_DENIED",
        "FAILED_PRECONDITION",
        "UNAUTHENTICATED",
    }
)

SERVER_ERROR_CODES = frozenset({"INTERNAL", "UNAVAILABLE", "DEADLINE_EXCEEDED"})

# Numeric codes carried in the ``error`` field of a finished operation
GRPC_CODE_NAMES = {
    3: "INVALID_ARGUMENT",
    4: "DEADLINE_EXCEEDED",
    5: "NOT_FOUND",
    7: "PERMISSION_DENIED",
    8: "RESOURCE_EXHAUSTED",
    9: "FAILED_PRECONDITION",
    13: "INTERNAL",
    14: "UNAVAILABLE",
    16: "UNAUTHENTICATED",
}

NON_RETRYABLE_MARKERS = (
    "not found",
    "invalid argument",
    "permission denied",
    "failed precondition",
    "api key not valid",
    "not supported",
    "unsupported",
    "non-retryable",
    "do not retry",
    "will not succeed",
)

ErrorCode = Union[str, int, None]


def normalize_code(code: ErrorCode) -> Optional[str]:
    """Map numeric or textual error codes onto canonical status names."""
    if code is None:
        return None
    if isinstance(code, int):
        return GRPC_CODE_NAMES.get(code, str(code))
    text = str(code).strip().upper()
    if text.isdigit():
        return GRPC_CODE_NAMES.get(int(text), text)
    return text or None


def is_server_error(status_code: Optional[int], code: ErrorCode = None) -> bool:
    if status_code is not None and 500 <= status_code < 600:
        return True
    return normalize_code(code) in SERVER_ERROR_CODES


def classify_error(
    status_code: Optional[int],
    code: ErrorCode = None,
    message: str = "",
    *,
    attempt: int = 1,
    server_errors: int = 0,
    late_server_error_attempt: int = 10,
) -> FailureKind:
    """
    Decide whether an error can resolve on retry.

    Permanent: 400/401/403/404, a permanent status name, a message that
    reads as intrinsic to the request, or a server error that keeps
    repeating once the operation is past ``late_server_error_attempt``.
    Everything else (429, isolated 5xx, connection failures) is transient.
    """
    if status_code in PERMANENT_STATUS_CODES:
        return FailureKind.PERMANENT

    if normalize_code(code) in PERMANENT_ERROR_CODES:
        return FailureKind.PERMANENT

    text = (message or "").lower()
    if any(marker in text for marker in NON_RETRYABLE_MARKERS):
        return FailureKind.PERMANENT

    if (
        is_server_error(status_code, code)
        and server_errors > 1
        and attempt > late_server_error_attempt
    ):
        return FailureKind.PERMANENT

    return FailureKind.TRANSIENT
