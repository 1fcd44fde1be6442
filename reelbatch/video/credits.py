"""Per-episode credit ledger for expensive video generations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict

logger = logging.getLogger(__name__)

DEFAULT_MAX_CREDITS = 3


@dataclass
class VideoCredit:
    episode_id: str
    credits_used: int = 0
    max_credits: int = DEFAULT_MAX_CREDITS
    reset_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class CreditCheck:
    available: bool
    used: int
    remaining: int


class CreditLedger:
    """
    In-memory count of video credits consumed per episode.

    The ledger belongs to the caller deciding what to submit; the poller and
    the parallel runner never consult it.
    """

    def __init__(self, max_credits: int = DEFAULT_MAX_CREDITS) -> None:
        if max_credits < 0:
            raise ValueError("max_credits cannot be negative")
        self.max_credits = max_credits
        self._credits: Dict[str, VideoCredit] = {}

    def _entry(self, episode_id: str) -> VideoCredit:
        credit = self._credits.get(episode_id)
        if credit is None:
            credit = VideoCredit(episode_id=episode_id, max_credits=self.max_credits)
            self._credits[episode_id] = credit
        return credit

    def check(self, episode_id: str) -> CreditCheck:
        credit = self._entry(episode_id)
        return CreditCheck(
            available=credit.credits_used < credit.max_credits,
            used=credit.credits_used,
            remaining=credit.max_credits - credit.credits_used,
        )

    def consume(self, episode_id: str) -> None:
        credit = self._entry(episode_id)
        if credit.credits_used >= credit.max_credits:
            raise ValueError(
                f"Credit limit exceeded for episode {episode_id}. "
                f"Used: {credit.credits_used}/{credit.max_credits}"
            )
        credit.credits_used += 1
        logger.info(
            "Credit consumed for episode %s. Used: %d/%d",
            episode_id,
            credit.credits_used,
            credit.max_credits,
        )

    def remaining(self, episode_id: str) -> int:
        return self.check(episode_id).remaining

    def reset(self, episode_id: str) -> None:
        self._credits.pop(episode_id, None)
        logger.info("Credits reset for episode %s", episode_id)
