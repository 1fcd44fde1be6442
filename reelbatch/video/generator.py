"""
Credit-gated video generation for character performance samples.

Each episode gets a small number of video credits. A generation submits a
job to the video model, polls it to completion and consumes one credit only
when a video was actually produced. Every poller outcome is mapped to a
VideoOutcome so callers can tell "try again later" from "do not retry" and
"fix your request".
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from ..polling.classifier import FailureKind, classify_error
from ..polling.job_client import JobAPIError, JobClient
from ..polling.poller import (
    LongRunningOperationPoller,
    PermanentOperationError,
    PollerConfig,
    TransientOperationFailure,
    TransientRetriesExhausted,
)
from ..tracking import MlflowLogger
from .credits import CreditLedger

logger = logging.getLogger(__name__)

SUPPORTED_ASPECT_RATIOS = ("16:9", "9:16", "1:1")


class VideoOutcome(Enum):
    SUCCEEDED = "succeeded"
    FILTERED = "filtered"
    TIMED_OUT = "timed_out"
    PERMANENT_FAILURE = "permanent_failure"
    TRANSIENT_FAILURE = "transient_failure"
    CREDIT_EXHAUSTED = "credit_exhausted"

    @property
    def retryable(self) -> bool:
        return self in (VideoOutcome.TIMED_OUT, VideoOutcome.TRANSIENT_FAILURE)


OUTCOME_MESSAGES = {
    VideoOutcome.SUCCEEDED: "Video generated.",
    VideoOutcome.FILTERED: "The video was rejected by the content policy. Revise the scene instead of retrying.",
    VideoOutcome.TIMED_OUT: "Video generation is taking longer than expected. Try again later.",
    VideoOutcome.PERMANENT_FAILURE: "The video request was rejected. Fix the request before retrying.",
    VideoOutcome.TRANSIENT_FAILURE: "The video service is temporarily unavailable. Try again later.",
    VideoOutcome.CREDIT_EXHAUSTED: "No video credits are left for this episode.",
}

# Outcomes where the remote job ran and may be billed
CHARGEABLE_OUTCOMES = frozenset(
    {VideoOutcome.SUCCEEDED, VideoOutcome.FILTERED, VideoOutcome.TIMED_OUT}
)


@dataclass
class VideoRequest:
    prompt: str
    character_name: str = ""
    aspect_ratio: str = "16:9"
    duration_seconds: int = 8
    negative_prompt: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.prompt.strip():
            raise ValueError("prompt cannot be empty")
        if self.aspect_ratio not in SUPPORTED_ASPECT_RATIOS:
            raise ValueError(
                f"Unsupported aspect ratio {self.aspect_ratio!r}; "
                f"expected one of {SUPPORTED_ASPECT_RATIOS}"
            )
        if self.duration_seconds < 1:
            raise ValueError("duration_seconds must be positive")


@dataclass
class VideoResponse:
    outcome: VideoOutcome
    video_uri: Optional[str] = None
    error: Optional[str] = None
    operation_name: Optional[str] = None
    filter_reasons: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.outcome is VideoOutcome.SUCCEEDED

    @property
    def message(self) -> str:
        return OUTCOME_MESSAGES[self.outcome]


def build_video_payload(request: VideoRequest) -> Dict[str, Any]:
    parameters: Dict[str, Any] = {
        "aspectRatio": request.aspect_ratio,
        "durationSeconds": request.duration_seconds,
    }
    if request.negative_prompt:
        parameters["negativePrompt"] = request.negative_prompt
    return {"instances": [{"prompt": request.prompt}], "parameters": parameters}


class VideoGenerator:
    """
    Generate videos against a per-episode credit budget.

    By default a credit is consumed only when a video was produced, so a
    filtered or timed-out job leaves the episode budget untouched. Pass
    ``charge_on`` to also charge outcomes the provider bills anyway, e.g.
    ``charge_on={VideoOutcome.SUCCEEDED, VideoOutcome.FILTERED}``.

    Not safe for concurrent generations on the same episode: the credit
    check happens before submission and the credit is consumed afterwards.

    Example:
        >>> generator = VideoGenerator(GeminiVideoJobClient())
        >>> response = await generator.generate(request, episode_id="ep-101")
        >>> if not response.success:
        ...     show(response.message)
    """

    def __init__(
        self,
        client: JobClient,
        ledger: CreditLedger | None = None,
        poller_config: PollerConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        run_logger: MlflowLogger | None = None,
        charge_on: Iterable[VideoOutcome] = (VideoOutcome.SUCCEEDED,),
    ) -> None:
        charge_on = frozenset(charge_on)
        unsupported = charge_on - CHARGEABLE_OUTCOMES
        if unsupported:
            raise ValueError(
                f"Cannot charge credits for {sorted(o.value for o in unsupported)}"
            )
        self.charge_on = charge_on
        self.ledger = ledger or CreditLedger()
        self._sleep = sleep
        self._poller = LongRunningOperationPoller(
            client,
            poller_config,
            sleep=sleep,
            run_logger=run_logger,
        )

    async def generate(self, request: VideoRequest, episode_id: str) -> VideoResponse:
        logger.info(
            "Generating video for %s in episode %s",
            request.character_name or "scene",
            episode_id,
        )

        check = self.ledger.check(episode_id)
        if not check.available:
            return VideoResponse(
                outcome=VideoOutcome.CREDIT_EXHAUSTED,
                error=(
                    f"Credit limit exceeded for episode {episode_id}. "
                    f"Used: {check.used}/{self.ledger.max_credits}"
                ),
            )

        start_time = time.monotonic()
        try:
            result = await self._poller.submit_and_poll(build_video_payload(request))
        except PermanentOperationError as exc:
            return VideoResponse(
                outcome=VideoOutcome.PERMANENT_FAILURE,
                error=str(exc),
                operation_name=exc.operation.name,
            )
        except (TransientRetriesExhausted, TransientOperationFailure) as exc:
            return VideoResponse(
                outcome=VideoOutcome.TRANSIENT_FAILURE,
                error=str(exc),
                operation_name=exc.operation.name,
            )
        except JobAPIError as exc:
            # Submission failed before an operation existed
            kind = classify_error(exc.status_code, exc.code, str(exc))
            logger.error("Video submission failed: %s", exc)
            return VideoResponse(
                outcome=(
                    VideoOutcome.PERMANENT_FAILURE
                    if kind is FailureKind.PERMANENT
                    else VideoOutcome.TRANSIENT_FAILURE
                ),
                error=str(exc),
            )

        generation_ms = (time.monotonic() - start_time) * 1000
        metadata = {
            "aspect_ratio": request.aspect_ratio,
            "duration_seconds": request.duration_seconds,
            "generation_time_ms": generation_ms,
            "attempts": result.attempts,
            "credits_used": 0,
        }

        if result.succeeded:
            logger.info(
                "Generated video for %s (%.0fms)",
                request.character_name or "scene",
                generation_ms,
            )
            response = VideoResponse(
                outcome=VideoOutcome.SUCCEEDED,
                video_uri=result.value,
                operation_name=result.name,
                metadata=metadata,
            )
        elif result.filtered:
            response = VideoResponse(
                outcome=VideoOutcome.FILTERED,
                error="Content filtered: " + "; ".join(result.filter_reasons),
                operation_name=result.name,
                filter_reasons=result.filter_reasons,
                metadata=metadata,
            )
        else:
            response = VideoResponse(
                outcome=VideoOutcome.TIMED_OUT,
                error=f"Timed out after {result.attempts} polls",
                operation_name=result.name,
                metadata=metadata,
            )

        if response.outcome in self.charge_on:
            self.ledger.consume(episode_id)
            metadata["credits_used"] = 1
        return response

    async def generate_samples(
        self,
        requests: Iterable[VideoRequest],
        episode_id: str,
        delay: float = 2.0,
    ) -> List[VideoResponse]:
        """
        Generate several performance samples one after another.

        Stops as soon as the episode runs out of credits.
        """
        requests = list(requests)
        responses: List[VideoResponse] = []

        for index, request in enumerate(requests):
            if not self.ledger.check(episode_id).available:
                logger.warning(
                    "Credit limit reached for episode %s. Stopping at %d videos.",
                    episode_id,
                    len(responses),
                )
                break
            if index > 0 and delay > 0:
                await self._sleep(delay)
            responses.append(await self.generate(request, episode_id))

        logger.info(
            "Generated %d/%d performance samples",
            sum(1 for r in responses if r.success),
            len(requests),
        )
        return responses
