"""Cálculo de recompensas y reglas de bonus (puro, sin base de datos)."""
from datetime import date

import pytest

from clock import Clock
from errors import ValidationError
from gamification import (
    ActiveBonuses, advance_streak, calculate_reward, resolve_active_bonuses, round_half_up
)
from models import BonusEvent

WEDNESDAY = date(2026, 3, 4)
SATURDAY = date(2026, 3, 7)


def _first_streak():
    return advance_streak(None, 0, 0, True, WEDNESDAY)


def _event(**kwargs):
    values = {"name": "Event", "multiplier": None, "bonus_xp": None, "start_date": None,
              "end_date": None, "days_of_week": None, "is_active": True}
    values.update(kwargs)
    return BonusEvent(**values)


class TestCalculateReward:

    def test_lucky_quest_with_first_daily(self):
        """200 base, suerte ×1.5 → 300, racha 1 no suma, +25 primera del día = 325"""
        breakdown = calculate_reward(
            200,
            streak=_first_streak(),
            bonuses=ActiveBonuses(first_daily_xp=25),
            first_daily_available=True,
            lucky_multiplier=1.5,
        )
        assert breakdown.total_xp_awarded == 325
        assert [(line.type, line.amount) for line in breakdown.lines] == [
            ("lucky", 100), ("first_daily", 25)
        ]
        assert breakdown.bonus_xp == 125

    def test_weekend_with_three_day_streak(self):
        """300 base, fin de semana ×2 → 600, racha 3 → +200, primera del día ya usada = 800"""
        streak = advance_streak(date(2026, 3, 6), 2, 2, True, SATURDAY)
        breakdown = calculate_reward(
            300,
            streak=streak,
            bonuses=ActiveBonuses(weekend_multiplier=2.0, first_daily_xp=25),
            first_daily_available=False,
        )
        assert streak.streak == 3
        assert breakdown.total_xp_awarded == 800
        assert [line.type for line in breakdown.lines] == ["weekend", "streak"]
        assert not breakdown.first_daily_claimed

    def test_no_bonuses(self):
        breakdown = calculate_reward(
            150, streak=_first_streak(), bonuses=ActiveBonuses(), first_daily_available=False
        )
        assert breakdown.total_xp_awarded == 150
        assert breakdown.lines == []

    def test_same_day_streak_earns_no_streak_bonus(self):
        streak = advance_streak(WEDNESDAY, 5, 5, True, WEDNESDAY)
        breakdown = calculate_reward(
            100, streak=streak, bonuses=ActiveBonuses(), first_daily_available=False
        )
        assert breakdown.total_xp_awarded == 100

    def test_multiplications_round_half_up(self):
        breakdown = calculate_reward(
            101, streak=_first_streak(), bonuses=ActiveBonuses(),
            first_daily_available=False, lucky_multiplier=1.5
        )
        assert breakdown.total_xp_awarded == 152

    def test_lucky_multiplier_of_one_is_ignored(self):
        breakdown = calculate_reward(
            100, streak=_first_streak(), bonuses=ActiveBonuses(),
            first_daily_available=False, lucky_multiplier=1.0
        )
        assert breakdown.lines == []

    def test_event_multiplier_applies_after_weekend_and_flat_after_first_daily(self):
        bonuses = ActiveBonuses(
            weekend_multiplier=2.0, first_daily_xp=25,
            multipliers=[("Double Trouble", 1.5)], flat_bonuses=[("Launch Day", 50)],
        )
        breakdown = calculate_reward(
            100, streak=_first_streak(), bonuses=bonuses, first_daily_available=True
        )
        assert [line.type for line in breakdown.lines] == ["weekend", "event", "first_daily", "bonus"]
        assert breakdown.total_xp_awarded == 100 * 2 * 3 // 2 + 25 + 50

    def test_running_total_never_decreases(self):
        bonuses = ActiveBonuses(multipliers=[("Broken event", 0.5)])
        breakdown = calculate_reward(
            100, streak=_first_streak(), bonuses=bonuses, first_daily_available=False
        )
        assert breakdown.total_xp_awarded == 100

    def test_negative_base_is_rejected(self):
        with pytest.raises(ValidationError):
            calculate_reward(-1, streak=_first_streak(), bonuses=ActiveBonuses(),
                             first_daily_available=False)

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(2.4) == 2


class TestResolveActiveBonuses:

    clock = Clock("Europe/Madrid")

    def test_empty_catalog_falls_back_to_rule_defaults(self):
        assert resolve_active_bonuses([], WEDNESDAY, self.clock).first_daily_xp == 25
        assert resolve_active_bonuses([], WEDNESDAY, self.clock).weekend_multiplier is None
        assert resolve_active_bonuses([], SATURDAY, self.clock).weekend_multiplier == 2.0

    def test_weekend_event_follows_the_calendar(self):
        events = [_event(name="Weekend Warrior", event_type="weekend", multiplier=2.0)]
        assert resolve_active_bonuses(events, SATURDAY, self.clock).weekend_multiplier == 2.0
        assert resolve_active_bonuses(events, WEDNESDAY, self.clock).weekend_multiplier is None

    def test_custom_weekend_calendar(self):
        friday_saturday = Clock("Europe/Madrid", weekend_days={4, 5})
        events = [_event(event_type="weekend", multiplier=2.0)]
        assert resolve_active_bonuses(events, date(2026, 3, 6), friday_saturday).weekend_multiplier == 2.0
        assert resolve_active_bonuses(events, date(2026, 3, 8), friday_saturday).weekend_multiplier is None

    def test_inactive_first_daily_disables_the_bonus(self):
        events = [_event(event_type="first_daily", bonus_xp=25, is_active=False)]
        assert resolve_active_bonuses(events, WEDNESDAY, self.clock).first_daily_xp == 0

    def test_first_daily_amount_comes_from_the_event(self):
        events = [_event(name="Early Bird", event_type="first_daily", bonus_xp=40)]
        bonuses = resolve_active_bonuses(events, WEDNESDAY, self.clock)
        assert bonuses.first_daily_xp == 40
        assert bonuses.first_daily_name == "Early Bird"

    def test_date_range_and_day_filter(self):
        events = [
            _event(name="March Madness", event_type="special", multiplier=1.5,
                   start_date=date(2026, 3, 1), end_date=date(2026, 3, 31)),
            _event(name="Old Promo", event_type="special", bonus_xp=50,
                   end_date=date(2026, 2, 1)),
            _event(name="Wednesday Boost", event_type="special", bonus_xp=20,
                   days_of_week=["Wednesday"]),
        ]
        bonuses = resolve_active_bonuses(events, WEDNESDAY, self.clock)
        assert bonuses.multipliers == [("March Madness", 1.5)]
        assert bonuses.flat_bonuses == [("Wednesday Boost", 20)]
