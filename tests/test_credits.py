"""
Unit tests for the per-episode CreditLedger.
"""

import pytest

from reelbatch.video.credits import CreditLedger


class TestCreditLedger:
    """Tests for CreditLedger."""

    def test_fresh_episode_has_full_budget(self) -> None:
        """Test a new episode starts with every credit available."""
        ledger = CreditLedger()
        check = ledger.check("ep-1")
        assert check.available
        assert check.used == 0
        assert check.remaining == 3

    def test_consume_until_exhausted(self) -> None:
        """Test consuming past the limit raises."""
        ledger = CreditLedger(max_credits=2)
        ledger.consume("ep-1")
        ledger.consume("ep-1")

        check = ledger.check("ep-1")
        assert not check.available
        assert check.remaining == 0
        with pytest.raises(ValueError, match="Credit limit exceeded"):
            ledger.consume("ep-1")

    def test_episodes_are_independent(self) -> None:
        """Test credits are tracked per episode."""
        ledger = CreditLedger(max_credits=1)
        ledger.consume("ep-1")
        assert ledger.remaining("ep-2") == 1

    def test_reset(self) -> None:
        """Test reset restores an episode's budget."""
        ledger = CreditLedger(max_credits=1)
        ledger.consume("ep-1")
        ledger.reset("ep-1")
        assert ledger.check("ep-1").available

    def test_negative_budget_rejected(self) -> None:
        """Test a negative credit limit is rejected."""
        with pytest.raises(ValueError):
            CreditLedger(max_credits=-1)
