"""Artificial thinking time before an AI acts. Purely cosmetic.

Nothing here sleeps. The engine compares the drawn duration against its
clock and lets an AI act only once that much time has passed since its
turn began.
"""
import random
from typing import Optional

from jossing.models import AIDifficulty

THINKING_RANGES = {
    AIDifficulty.EASY: (1.0, 3.0),
    AIDifficulty.MEDIUM: (2.0, 4.0),
    AIDifficulty.HARD: (3.0, 6.0),
}


class ThinkingDelay:
    """Tier-dependent random thinking time multiplied by scale; scale 0 means act at once."""

    def __init__(self, scale: float = 0.0, rng: Optional[random.Random] = None):
        self.scale = scale
        self.rng = rng or random.Random()

    def duration(self, difficulty: AIDifficulty) -> float:
        if self.scale <= 0:
            return 0.0
        low, high = THINKING_RANGES[difficulty]
        return self.rng.uniform(low, high) * self.scale

    def __call__(self, difficulty: AIDifficulty) -> float:
        return self.duration(difficulty)
