"""Tests for the 7-day streak bonus."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from studyflow.streak_bonus import (
    FLAG_RETENTION,
    StreakBonusDetector,
    StreakBonusLedger,
)

NOW = datetime(2026, 3, 18, 12, 0, tzinfo=UTC)


@pytest.fixture
def grant() -> MagicMock:
    return MagicMock(name="grant")


@pytest.fixture
def ledger() -> StreakBonusLedger:
    return StreakBonusLedger()


@pytest.fixture
def detector(ledger: StreakBonusLedger, grant: MagicMock) -> StreakBonusDetector:
    return StreakBonusDetector(ledger, grant)


class TestStreakBonusDetector:
    def test_below_seven_grants_nothing(
        self, detector: StreakBonusDetector, grant: MagicMock
    ) -> None:
        for streak in range(7):
            assert detector.observe(streak, NOW) is None
        grant.assert_not_called()

    def test_seven_grants_once(self, detector: StreakBonusDetector, grant: MagicMock) -> None:
        assert detector.observe(7, NOW) == 7
        grant.assert_called_once_with(50, "Streak - 7 days")
        assert detector.observe(8, NOW) is None
        assert grant.call_count == 1

    def test_fourteen_grants_second_bonus(
        self, detector: StreakBonusDetector, grant: MagicMock
    ) -> None:
        detector.observe(7, NOW)
        assert detector.observe(14, NOW) == 14
        assert grant.call_count == 2

    def test_jump_straight_to_multiple(
        self, detector: StreakBonusDetector, grant: MagicMock
    ) -> None:
        assert detector.observe(23, NOW) == 21
        grant.assert_called_once_with(50, "Streak - 21 days")

    def test_drop_and_rebuild_within_retention_not_regranted(
        self, detector: StreakBonusDetector, grant: MagicMock
    ) -> None:
        detector.observe(7, NOW)
        detector.observe(3, NOW + timedelta(days=1))
        assert detector.last_observed == 3
        assert detector.observe(7, NOW + timedelta(days=5)) is None
        assert grant.call_count == 1

    def test_flag_survives_restart(self, ledger: StreakBonusLedger, grant: MagicMock) -> None:
        StreakBonusDetector(ledger, grant).observe(7, NOW)
        fresh = StreakBonusDetector(ledger, grant)
        assert fresh.observe(7, NOW + timedelta(hours=1)) is None
        assert grant.call_count == 1

    def test_regranted_after_flag_expires(
        self, detector: StreakBonusDetector, grant: MagicMock
    ) -> None:
        detector.observe(7, NOW)
        detector.observe(0, NOW)
        later = NOW + FLAG_RETENTION + timedelta(days=1)
        detector.ledger.prune(later)
        assert detector.observe(7, later) == 7
        assert grant.call_count == 2

    def test_custom_amount_and_flag_callback(self, ledger: StreakBonusLedger) -> None:
        grant = MagicMock()
        on_flagged = MagicMock()
        detector = StreakBonusDetector(ledger, grant, bonus_xp=80, on_flagged=on_flagged)
        detector.observe(7, NOW)
        grant.assert_called_once_with(80, "Streak - 7 days")
        on_flagged.assert_called_once_with(ledger)

    def test_failed_grant_leaves_no_flag(self, ledger: StreakBonusLedger) -> None:
        detector = StreakBonusDetector(ledger, MagicMock(side_effect=RuntimeError("down")))
        with pytest.raises(RuntimeError):
            detector.observe(7, NOW)
        assert not ledger.is_flagged(7)


class TestStreakBonusLedger:
    def test_prune_drops_old_flags(self) -> None:
        ledger = StreakBonusLedger()
        ledger.flag(7, NOW - timedelta(days=31))
        ledger.flag(14, NOW - timedelta(days=2))
        assert ledger.prune(NOW) == [7]
        assert ledger.flags.keys() == {14}
