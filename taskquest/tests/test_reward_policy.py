"""
Tests for RewardPolicy.

Tests cover:
1. Priority magnitudes
2. Coin split
3. Level curve
"""
import pytest

from taskquest.services.reward_policy import RewardPolicy


class TestMagnitude:
    """Tests for the priority -> magnitude table"""

    @pytest.mark.parametrize("priority,expected", [
        ("trivial", 1),
        ("easy", 2),
        ("medium", 5),
        ("hard", 10),
    ])
    def test_fixed_table(self, priority, expected):
        """Each priority maps to its fixed magnitude"""
        assert RewardPolicy.magnitude(priority) == expected

    def test_unknown_priority_raises(self):
        """Unknown priorities are rejected"""
        with pytest.raises(KeyError):
            RewardPolicy.magnitude("epic")


class TestCoins:
    """Tests for coins earned alongside a reward"""

    def test_coins_are_half_rounded_down(self):
        """Coins are floor(reward / 2)"""
        assert RewardPolicy.coins_for(5) == 2
        assert RewardPolicy.coins_for(10) == 5
        assert RewardPolicy.coins_for(1) == 0

    def test_no_coins_for_non_positive_reward(self):
        """Penalties and zero rewards earn nothing"""
        assert RewardPolicy.coins_for(0) == 0
        assert RewardPolicy.coins_for(-5) == 0


class TestLevelCurve:
    """Tests for experience thresholds"""

    def test_thresholds(self):
        """Level L -> L+1 costs 50 * L"""
        assert RewardPolicy.experience_for_level(1) == 0
        assert RewardPolicy.experience_for_level(2) == 50
        assert RewardPolicy.experience_for_level(3) == 150
        assert RewardPolicy.experience_for_level(4) == 300

    def test_level_for_experience(self):
        """Level is the highest threshold reached"""
        assert RewardPolicy.level_for_experience(0) == 1
        assert RewardPolicy.level_for_experience(49) == 1
        assert RewardPolicy.level_for_experience(50) == 2
        assert RewardPolicy.level_for_experience(149) == 2
        assert RewardPolicy.level_for_experience(150) == 3

    def test_experience_to_next_level(self):
        """Remaining experience until the next threshold"""
        assert RewardPolicy.experience_to_next_level(0) == 50
        assert RewardPolicy.experience_to_next_level(60) == 90
