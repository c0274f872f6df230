"""Racha (camino que escribe), estado de la racha (camino de lectura) y caducidad de rachas perdidas."""
from datetime import date, timedelta

from gamification import (
    STREAK_ACTIVE, STREAK_AT_RISK, STREAK_FROZEN, STREAK_LOST,
    advance_streak, expire_lapsed_streak, streak_bonus, streak_status
)
from models import MenteeStats

TODAY = date(2026, 3, 4)


def _days_ago(n):
    return TODAY - timedelta(days=n)


class TestAdvanceStreak:

    def test_first_completion_starts_at_one(self):
        outcome = advance_streak(None, 0, 0, True, TODAY)
        assert outcome.streak == 1
        assert outcome.advanced
        assert not outcome.freeze_consumed

    def test_consecutive_day_increments(self):
        outcome = advance_streak(_days_ago(1), 4, 4, True, TODAY)
        assert outcome.streak == 5
        assert outcome.longest == 5

    def test_missed_day_with_freeze_spans_it(self):
        outcome = advance_streak(_days_ago(2), 4, 6, True, TODAY)
        assert outcome.streak == 5
        assert outcome.freeze_consumed
        assert outcome.longest == 6

    def test_missed_day_without_freeze_resets(self):
        outcome = advance_streak(_days_ago(2), 4, 4, False, TODAY)
        assert outcome.streak == 1
        assert outcome.broken
        assert not outcome.freeze_consumed

    def test_three_days_resets_regardless_of_freeze(self):
        for freeze in (True, False):
            outcome = advance_streak(_days_ago(3), 9, 9, freeze, TODAY)
            assert outcome.streak == 1
            assert not outcome.freeze_consumed
            assert outcome.longest == 9

    def test_same_day_is_unchanged_without_bonus(self):
        outcome = advance_streak(TODAY, 3, 3, True, TODAY)
        assert outcome.streak == 3
        assert not outcome.advanced

    def test_future_last_day_counts_as_same_day(self):
        outcome = advance_streak(TODAY + timedelta(days=2), 3, 3, True, TODAY)
        assert outcome.streak == 3
        assert not outcome.advanced
        assert outcome.anomaly


class TestStreakBonus:

    def test_default_table(self):
        assert streak_bonus(0) == 0
        assert streak_bonus(1) == 0
        assert streak_bonus(2) == 100
        assert streak_bonus(3) == 200
        assert streak_bonus(30) == 200


class TestStreakStatus:

    def test_labels(self):
        assert streak_status(TODAY, 3, True, TODAY).label == STREAK_ACTIVE
        assert streak_status(_days_ago(1), 3, True, TODAY).label == STREAK_AT_RISK
        assert streak_status(_days_ago(2), 3, True, TODAY).label == STREAK_FROZEN
        assert streak_status(_days_ago(2), 3, False, TODAY).label == STREAK_LOST
        assert streak_status(_days_ago(5), 3, True, TODAY).label == STREAK_LOST

    def test_no_history_is_active(self):
        status = streak_status(None, 0, True, TODAY)
        assert status.label == STREAK_ACTIVE
        assert status.days_since is None

    def test_lost_streak_is_shown_as_zero(self):
        status = streak_status(_days_ago(4), 7, True, TODAY)
        assert status.current_streak == 0


class TestExpireLapsedStreak:

    def _stats(self, last, streak, freeze=True):
        return MenteeStats(last_streak_date=last, current_streak=streak,
                           longest_streak=streak, streak_freeze_available=freeze)

    def test_zeroes_lost_streak_once(self):
        stats = self._stats(_days_ago(4), 6)
        assert expire_lapsed_streak(stats, TODAY) is True
        assert stats.current_streak == 0
        assert stats.longest_streak == 6
        assert expire_lapsed_streak(stats, TODAY) is False

    def test_frozen_streak_is_kept(self):
        stats = self._stats(_days_ago(2), 6, freeze=True)
        assert expire_lapsed_streak(stats, TODAY) is False
        assert stats.current_streak == 6

    def test_at_risk_streak_is_kept(self):
        stats = self._stats(_days_ago(1), 2)
        assert expire_lapsed_streak(stats, TODAY) is False
        assert stats.current_streak == 2
