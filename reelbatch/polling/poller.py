"""
Long-running operation poller for reelbatch.

Drives a "submit a job, then poll its handle" API until the operation
finishes, is rejected by a content policy, fails permanently, or runs out of
attempts.

Outcomes:
    - SUCCEEDED / FILTERED / TIMED_OUT are returned as an OperationResult
    - Permanent failures raise PermanentOperationError
    - Too many transient failures raise TransientRetriesExhausted
    - An operation that finished with a transient error raises
      TransientOperationFailure without further polling

Each poll is interpreted into a tagged PollStep and the loop reacts to the
tag, so classification never unwinds through the loop as an exception.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..tracking import MlflowLogger
from .classifier import FailureKind, classify_error, is_server_error
from .job_client import (
    JobAPIError,
    JobClient,
    OperationSnapshot,
    extract_filter_reasons,
    extract_video_uri,
)

logger = logging.getLogger(__name__)


class OperationState(Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FILTERED = "filtered"
    ERROR = "error"
    TIMED_OUT = "timed_out"


class PollKind(Enum):
    SUCCESS = "success"
    PENDING = "pending"
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    FILTERED = "filtered"


@dataclass(frozen=True)
class PollStep:
    """Interpretation of a single status fetch."""

    kind: PollKind
    value: Any = None
    message: str = ""
    filter_reasons: tuple = ()
    # Set when the remote operation itself has finished; never polled again
    final: bool = False


@dataclass
class PollerConfig:
    """Configuration for the operation poller.

    Attributes:
        max_attempts: Maximum status fetches before giving up as timed out
        poll_interval: Seconds between fetches
        max_transient_errors: Transient errors tolerated before failing
        transient_backoff_base: Extra wait after the first transient error
        transient_backoff_cap: Upper bound of the extra wait
        late_server_error_attempt: Attempt after which repeated 5xx are permanent
    """

    max_attempts: int = 60
    poll_interval: float = 10.0
    max_transient_errors: int = 3
    transient_backoff_base: float = 5.0
    transient_backoff_cap: float = 60.0
    late_server_error_attempt: int = 10

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.poll_interval < 0:
            raise ValueError("poll_interval cannot be negative")
        if self.max_transient_errors < 0:
            raise ValueError("max_transient_errors cannot be negative")


@dataclass
class Operation:
    """Local view of one remote operation while it is being polled."""

    name: str
    attempts: int = 0
    last_failure: FailureKind = FailureKind.NONE
    state: OperationState = OperationState.PENDING
    transient_errors: int = 0
    server_errors: int = 0

    @property
    def terminal(self) -> bool:
        return self.state is not OperationState.PENDING


@dataclass
class OperationResult:
    """Returned (non-raising) outcome of polling an operation."""

    name: str
    state: OperationState
    value: Any = None
    attempts: int = 0
    filter_reasons: List[str] = field(default_factory=list)
    elapsed_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.state is OperationState.SUCCEEDED

    @property
    def filtered(self) -> bool:
        return self.state is OperationState.FILTERED

    @property
    def timed_out(self) -> bool:
        return self.state is OperationState.TIMED_OUT


class PollingError(Exception):
    """Base class for raised polling failures."""

    def __init__(self, message: str, operation: Operation) -> None:
        super().__init__(message)
        self.operation = operation


class PermanentOperationError(PollingError):
    """The operation cannot succeed; retrying is pointless."""


class TransientRetriesExhausted(PollingError):
    """The operation kept failing with errors that might have been temporary."""


class TransientOperationFailure(PollingError):
    """The operation finished with an error that may not recur if resubmitted."""


class LongRunningOperationPoller:
    """
    Poll a submitted operation until it reaches a terminal state.

    Example:
        >>> poller = LongRunningOperationPoller(GeminiVideoJobClient())
        >>> result = await poller.submit_and_poll(payload)
        >>> if result.succeeded:
        ...     print(result.value)
    """

    def __init__(
        self,
        client: JobClient,
        config: PollerConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        extract_result: Callable[[Dict[str, Any]], Any] = extract_video_uri,
        run_logger: MlflowLogger | None = None,
    ) -> None:
        self._client = client
        self._config = config or PollerConfig()
        self._sleep = sleep
        self._extract_result = extract_result
        self._run_logger = run_logger

    @property
    def config(self) -> PollerConfig:
        return self._config

    async def submit_and_poll(self, payload: Dict[str, Any]) -> OperationResult:
        """
        Submit a job and poll it to completion.

        Errors raised while submitting propagate unchanged.
        """
        name = await self._client.submit(payload)
        logger.info("Submitted operation %s", name)
        return await self.poll(name)

    async def poll(self, name: str) -> OperationResult:
        """
        Poll an existing operation handle.

        Raises:
            PermanentOperationError: On a permanent failure
            TransientRetriesExhausted: When transient errors exceed the budget
            TransientOperationFailure: When the operation finished with a transient error
        """
        operation = Operation(name=name)
        start_time = time.monotonic()
        next_wait = self._config.poll_interval
        value: Any = None
        filter_reasons: List[str] = []

        while not operation.terminal and operation.attempts < self._config.max_attempts:
            if operation.attempts > 0:
                await self._sleep(next_wait)
            next_wait = self._config.poll_interval
            operation.attempts += 1

            step = await self._poll_once(operation)

            if step.kind is PollKind.PENDING:
                logger.debug(
                    "Operation %s pending (attempt %d/%d)",
                    name,
                    operation.attempts,
                    self._config.max_attempts,
                )
            elif step.kind is PollKind.SUCCESS:
                operation.state = OperationState.SUCCEEDED
                value = step.value
            elif step.kind is PollKind.FILTERED:
                operation.state = OperationState.FILTERED
                filter_reasons = list(step.filter_reasons)
                logger.warning("Operation %s filtered by content policy: %s", name, filter_reasons)
            elif step.kind is PollKind.PERMANENT:
                operation.last_failure = FailureKind.PERMANENT
                operation.state = OperationState.ERROR
                logger.error("Operation %s failed permanently: %s", name, step.message)
                self._log_operation(operation, start_time, error=step.message)
                raise PermanentOperationError(step.message, operation)
            elif step.kind is PollKind.TRANSIENT:
                operation.last_failure = FailureKind.TRANSIENT
                operation.transient_errors += 1
                if step.final:
                    operation.state = OperationState.ERROR
                    message = f"Operation {name} finished with a transient error: {step.message}"
                    logger.error(message)
                    self._log_operation(operation, start_time, error=message)
                    raise TransientOperationFailure(message, operation)
                if operation.transient_errors > self._config.max_transient_errors:
                    operation.state = OperationState.ERROR
                    message = (
                        f"Operation {name} failed after {operation.transient_errors} "
                        f"transient errors: {step.message}"
                    )
                    logger.error(message)
                    self._log_operation(operation, start_time, error=message)
                    raise TransientRetriesExhausted(message, operation)
                backoff = self._backoff(operation.transient_errors)
                next_wait = self._config.poll_interval + backoff
                logger.warning(
                    "Transient error %d/%d polling %s, retrying in %.1fs: %s",
                    operation.transient_errors,
                    self._config.max_transient_errors,
                    name,
                    next_wait,
                    step.message[:200],
                )

        if not operation.terminal:
            operation.state = OperationState.TIMED_OUT
            logger.warning(
                "Operation %s timed out after %d attempts",
                name,
                operation.attempts,
            )

        result = OperationResult(
            name=name,
            state=operation.state,
            value=value,
            attempts=operation.attempts,
            filter_reasons=filter_reasons,
            elapsed_ms=(time.monotonic() - start_time) * 1000,
        )
        self._log_operation(operation, start_time)
        return result

    def _backoff(self, transient_errors: int) -> float:
        delay = self._config.transient_backoff_base * (2 ** (transient_errors - 1))
        return min(delay, self._config.transient_backoff_cap)

    async def _poll_once(self, operation: Operation) -> PollStep:
        try:
            snapshot = await self._client.get_operation(operation.name)
        except JobAPIError as exc:
            return self._classify(operation, exc.status_code, exc.code, str(exc))

        if snapshot.name and snapshot.name != operation.name:
            # Retired results from earlier submissions can be echoed back
            logger.warning(
                "Ignoring stale operation %s while polling %s",
                snapshot.name,
                operation.name,
            )
            return PollStep(PollKind.PENDING)

        return self._interpret(operation, snapshot)

    def _interpret(self, operation: Operation, snapshot: OperationSnapshot) -> PollStep:
        if not snapshot.done:
            return PollStep(PollKind.PENDING)

        if snapshot.error:
            error = snapshot.error
            if not isinstance(error, dict):
                error = {"message": str(error)}
            code = error.get("code")
            message = str(error.get("message") or "Operation failed")
            step = self._classify(operation, None, code, message)
            if step.kind is PollKind.TRANSIENT:
                return replace(step, final=True)
            return step

        response = snapshot.response if isinstance(snapshot.response, dict) else {}

        value = self._extract_result(response)
        if value is not None:
            return PollStep(PollKind.SUCCESS, value=value)

        reasons = extract_filter_reasons(response)
        if reasons:
            return PollStep(PollKind.FILTERED, filter_reasons=tuple(reasons))

        return PollStep(
            PollKind.PERMANENT,
            message="Operation finished without a result, filter report or error",
        )

    def _classify(
        self,
        operation: Operation,
        status_code: Optional[int],
        code: Any,
        message: str,
    ) -> PollStep:
        if is_server_error(status_code, code):
            operation.server_errors += 1
        kind = classify_error(
            status_code,
            code,
            message,
            attempt=operation.attempts,
            server_errors=operation.server_errors,
            late_server_error_attempt=self._config.late_server_error_attempt,
        )
        if kind is FailureKind.PERMANENT:
            return PollStep(PollKind.PERMANENT, message=message)
        return PollStep(PollKind.TRANSIENT, message=message)

    def _log_operation(
        self,
        operation: Operation,
        start_time: float,
        error: Optional[str] = None,
    ) -> None:
        if self._run_logger is None:
            return
        self._run_logger.log_operation(
            {
                "name": operation.name,
                "state": operation.state.value,
                "attempts": operation.attempts,
                "transient_errors": operation.transient_errors,
                "last_failure": operation.last_failure.value,
                "elapsed_ms": (time.monotonic() - start_time) * 1000,
                "error": error,
            }
        )
