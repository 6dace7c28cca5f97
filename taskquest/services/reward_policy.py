"""
Reward policy.
Pure mapping from task priority to reward/penalty magnitude, plus the coin
split and the level curve. No side effects.
"""
from taskquest.constants import (
    DEFAULT_LEVEL, EXPERIENCE_PER_LEVEL_STEP, PRIORITY_MAGNITUDES
)


class RewardPolicy:
    """Static reward calculations shared by the scoring engine and the sweep"""

    @staticmethod
    def magnitude(priority: str) -> int:
        """
        Base reward/penalty for a priority.

        trivial=1, easy=2, medium=5, hard=10. Penalties use the same table.

        Raises:
            KeyError: If priority is not one of the known levels
        """
        return PRIORITY_MAGNITUDES[priority]

    @staticmethod
    def coins_for(reward: int) -> int:
        """Coins earned alongside a positive reward: floor(reward / 2)"""
        if reward <= 0:
            return 0
        return reward // 2

    @staticmethod
    def experience_for_level(level: int) -> int:
        """
        Cumulative experience needed to reach a level.

        Moving from level L to L+1 costs 50 * L, so level L starts at
        25 * L * (L - 1): 1 -> 0, 2 -> 50, 3 -> 150, 4 -> 300.
        """
        if level <= DEFAULT_LEVEL:
            return 0
        return EXPERIENCE_PER_LEVEL_STEP * level * (level - 1) // 2

    @staticmethod
    def level_for_experience(experience: int) -> int:
        """Highest level whose threshold is reached by the given experience"""
        level = DEFAULT_LEVEL
        while experience >= RewardPolicy.experience_for_level(level + 1):
            level += 1
        return level

    @staticmethod
    def experience_to_next_level(experience: int) -> int:
        level = RewardPolicy.level_for_experience(experience)
        return RewardPolicy.experience_for_level(level + 1) - experience
