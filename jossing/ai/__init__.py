from jossing.ai.base import AIPlayer
from jossing.ai.easy import EasyAI
from jossing.ai.medium import MediumAI
from jossing.ai.hard import HardAI
from jossing.ai.heuristics import GameContext, HandStrength, evaluate_hand
from jossing.ai.manager import (
    AIManager, create_ai, available_difficulties,
    difficulty_display_name, difficulty_description,
)
from jossing.ai.pacing import ThinkingDelay

__all__ = [
    "AIPlayer", "EasyAI", "MediumAI", "HardAI",
    "GameContext", "HandStrength", "evaluate_hand",
    "AIManager", "create_ai", "available_difficulties",
    "difficulty_display_name", "difficulty_description",
    "ThinkingDelay",
]
