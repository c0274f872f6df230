"""Cálculo de rangos: umbrales, subniveles, el rango más alto sin techo y validación de reglas."""
import pytest

from errors import ValidationError
from gamification import DEFAULT_RULES, RewardRules, calculate_level, derive_rank


class TestDeriveRank:

    def test_zero_xp_is_rookie_level_1(self):
        info = derive_rank(0)
        assert info.rank == "ROOKIE"
        assert info.sub_level == 0
        assert info.level == 1
        assert info.next_rank == "APPRENTICE"
        assert info.xp_to_next_rank == 500

    def test_last_xp_before_apprentice_is_top_sub_level(self):
        info = derive_rank(499)
        assert info.rank == "ROOKIE"
        assert info.sub_level == 4
        assert info.level == 5

    def test_threshold_starts_next_rank(self):
        info = derive_rank(500)
        assert info.rank == "APPRENTICE"
        assert info.sub_level == 0
        assert info.level == 6

    def test_sub_bands_split_rank_span_in_five(self):
        # APPRENTICE abarca 1000 XP → tramos de 200
        assert derive_rank(699).sub_level == 0
        assert derive_rank(700).sub_level == 1
        assert derive_rank(1499).sub_level == 4

    def test_top_rank_has_no_next(self):
        info = derive_rank(7000)
        assert info.rank == "LEGEND"
        assert info.next_rank is None
        assert info.next_rank_xp is None
        assert info.xp_to_next_rank == 0
        assert info.level == 21

    def test_top_rank_uses_synthetic_span_and_clamps(self):
        assert derive_rank(8000).sub_level == 1
        assert derive_rank(12000).level == 25
        assert derive_rank(1_000_000).level == 25

    def test_negative_xp_reads_as_zero(self):
        assert derive_rank(-50).level == 1

    def test_threshold_invariant_holds_everywhere(self):
        thresholds = dict(DEFAULT_RULES.ranks)
        for xp in range(0, 15000, 37):
            info = derive_rank(xp)
            assert thresholds[info.rank] <= xp
            assert info.next_rank_xp is None or info.next_rank_xp > xp
            assert 0 <= info.sub_level <= 4

    def test_level_never_decreases_with_xp(self):
        levels = [calculate_level(xp) for xp in range(0, 13000, 50)]
        assert levels == sorted(levels)

    def test_to_dict_uses_api_keys(self):
        data = derive_rank(750).to_dict()
        assert data["rank"] == "APPRENTICE"
        assert data["xpToNextRank"] == 750
        assert data["subLevel"] == 1


class TestRewardRules:

    def test_custom_ranks(self):
        rules = RewardRules(ranks=[("NOVICE", 0), ("MASTER", 100)], top_rank_span=100)
        assert derive_rank(100, rules).rank == "MASTER"
        assert derive_rank(99, rules).level == 5

    def test_thresholds_must_increase(self):
        with pytest.raises(ValidationError):
            RewardRules(ranks=[("A", 0), ("B", 500), ("C", 500)])

    def test_first_rank_starts_at_zero(self):
        with pytest.raises(ValidationError):
            RewardRules(ranks=[("A", 10), ("B", 500)])

    def test_streak_table_must_be_monotone(self):
        with pytest.raises(ValidationError):
            RewardRules(streak_bonuses={2: 200, 3: 100})
