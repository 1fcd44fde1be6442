"""Credit-gated video generation built on the operation poller."""

from .credits import CreditCheck, CreditLedger, VideoCredit
from .generator import (
    CHARGEABLE_OUTCOMES,
    OUTCOME_MESSAGES,
    VideoGenerator,
    VideoOutcome,
    VideoRequest,
    VideoResponse,
    build_video_payload,
)

__all__ = [
    "CHARGEABLE_OUTCOMES",
    "CreditCheck",
    "CreditLedger",
    "VideoCredit",
    "OUTCOME_MESSAGES",
    "VideoGenerator",
    "VideoOutcome",
    "VideoRequest",
    "VideoResponse",
    "build_video_payload",
]
