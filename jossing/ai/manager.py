"""Registry of computer opponents and the glue that feeds them the game."""
import logging
import random
from collections import deque
from typing import Optional, Union

from jossing.models import AIDifficulty, Card, Suit
from jossing.ai.base import AIPlayer
from jossing.ai.easy import EasyAI
from jossing.ai.medium import MediumAI
from jossing.ai.hard import HardAI
from jossing.ai.heuristics import GameContext
from jossing.ai.pacing import ThinkingDelay

logger = logging.getLogger(__name__)

AI_CLASSES = {
    AIDifficulty.EASY: EasyAI,
    AIDifficulty.MEDIUM: MediumAI,
    AIDifficulty.HARD: HardAI,
}

AI_NAMES = {
    AIDifficulty.EASY: [
        "Rookie Riley", "Beginner Bob", "Cautious Clara",
        "Simple Sam", "Learning Lucy", "Careful Carl",
    ],
    AIDifficulty.MEDIUM: [
        "Strategic Steve", "Tactical Tom", "Clever Claire",
        "Methodical Mike", "Analytical Anna", "Calculating Cal",
    ],
    AIDifficulty.HARD: [
        "Master Magnus", "Expert Elena", "Grandmaster Gary",
        "Prodigy Petra", "Genius Greg", "Virtuoso Vera",
    ],
}

DISPLAY_NAMES = {
    AIDifficulty.EASY: "Easy (Beginner Friendly)",
    AIDifficulty.MEDIUM: "Medium (Strategic Play)",
    AIDifficulty.HARD: "Hard (Expert Level)",
}

DESCRIPTIONS = {
    AIDifficulty.EASY: "Conservative bidding, basic card play, 20% random decisions for unpredictability.",
    AIDifficulty.MEDIUM: "Strategic bidding with position awareness, card counting, trump management.",
    AIDifficulty.HARD: "Expert analysis, opponent modeling, optimal play with minimal randomness.",
}


def parse_difficulty(value: Union[str, AIDifficulty]) -> AIDifficulty:
    if isinstance(value, AIDifficulty):
        return value
    try:
        return AIDifficulty(str(value).lower())
    except ValueError:
        raise ValueError(f"Unknown AI difficulty: {value!r}")


def generate_ai_name(difficulty: AIDifficulty, rng: Optional[random.Random] = None) -> str:
    rng = rng or random.Random()
    return rng.choice(AI_NAMES[difficulty])


def create_ai(difficulty: Union[str, AIDifficulty], name: Optional[str] = None,
              rng: Optional[random.Random] = None) -> AIPlayer:
    """Build the strategy object for a difficulty tier."""
    difficulty = parse_difficulty(difficulty)
    rng = rng or random.Random()
    cls = AI_CLASSES[difficulty]
    return cls(name=name or generate_ai_name(difficulty, rng), rng=rng)


def available_difficulties() -> list[AIDifficulty]:
    return list(AIDifficulty)


def difficulty_display_name(difficulty: Union[str, AIDifficulty]) -> str:
    return DISPLAY_NAMES[parse_difficulty(difficulty)]


def difficulty_description(difficulty: Union[str, AIDifficulty]) -> str:
    return DESCRIPTIONS[parse_difficulty(difficulty)]


class AIManager:
    """Maps player ids to AI strategies.

    Bids and cards from other seats are queued per AI and replayed into it
    right before it is asked to decide, so its memory matches the table.
    """

    def __init__(self, rng: Optional[random.Random] = None,
                 delay: Optional[ThinkingDelay] = None, memory_size: int = 200):
        self.rng = rng or random.Random()
        self.delay = delay or ThinkingDelay(scale=0.0)
        self.memory_size = memory_size
        self._players: dict[str, AIPlayer] = {}
        self._pending: dict[str, deque] = {}
        self._decisions: dict[str, int] = {}
        self._thinking: dict[str, float] = {}

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, player_id: str, difficulty: Union[str, AIDifficulty],
                 name: Optional[str] = None) -> AIPlayer:
        ai = create_ai(difficulty, name, rng=random.Random(self.rng.getrandbits(32)))
        self._players[player_id] = ai
        self._pending[player_id] = deque(maxlen=self.memory_size)
        self._decisions[player_id] = 0
        logger.debug(f"Registered {ai.difficulty.value} AI {ai.name} as {player_id}")
        return ai

    def unregister(self, player_id: str):
        self._players.pop(player_id, None)
        self._pending.pop(player_id, None)
        self._decisions.pop(player_id, None)
        self._thinking.pop(player_id, None)

    def get(self, player_id: str) -> Optional[AIPlayer]:
        return self._players.get(player_id)

    def is_ai(self, player_id: str) -> bool:
        return player_id in self._players

    def player_ids(self) -> list[str]:
        return list(self._players)

    def difficulty(self, player_id: str) -> Optional[AIDifficulty]:
        ai = self._players.get(player_id)
        return ai.difficulty if ai else None

    # ------------------------------------------------------------------
    # Observations
    # ------------------------------------------------------------------

    def observe_bid(self, actor_id: str, bid: int, audience: list[str]):
        """Queue a bid for every registered AI in audience except the bidder."""
        for player_id in audience:
            if player_id != actor_id and player_id in self._pending:
                self._pending[player_id].append(("bid", actor_id, bid))

    def observe_card(self, actor_id: str, card: Card, audience: list[str]):
        for player_id in audience:
            if player_id != actor_id and player_id in self._pending:
                self._pending[player_id].append(("card", actor_id, card))

    def new_section(self, player_ids: list[str]):
        for player_id in player_ids:
            ai = self._players.get(player_id)
            if ai:
                self._replay(player_id)
                ai.new_section()

    def _replay(self, player_id: str):
        ai = self._players[player_id]
        pending = self._pending[player_id]
        while pending:
            kind, actor_id, value = pending.popleft()
            if kind == "bid":
                ai.record_bid(actor_id, value)
            else:
                ai.record_card(actor_id, value)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def request_bid(self, player_id: str, hand: list[Card], max_bid: int, trump_suit: Suit,
                    position: int, opponent_bids: list[int]) -> Optional[int]:
        ai = self._players.get(player_id)
        if ai is None:
            return None
        self._replay(player_id)
        self._thinking.pop(player_id, None)
        bid = ai.make_bid(list(hand), max_bid, trump_suit, position, list(opponent_bids))
        self._decisions[player_id] += 1
        logger.debug(f"AI {ai.name} bids {bid}: {ai.describe_reasoning()}")
        return bid

    def request_card(self, player_id: str, hand: list[Card], trick: list[Card], trump_suit: Suit,
                     leading_suit: Optional[Suit] = None,
                     context: Optional[GameContext] = None) -> Optional[Card]:
        ai = self._players.get(player_id)
        if ai is None:
            return None
        self._replay(player_id)
        self._thinking.pop(player_id, None)
        card = ai.play_card(list(hand), list(trick), trump_suit, leading_suit, context)
        self._decisions[player_id] += 1
        logger.debug(f"AI {ai.name} plays {card}: {ai.describe_reasoning()}")
        return card

    def thinking_time(self, player_id: str) -> float:
        """Seconds the AI wants to think over its pending decision, drawn once per decision."""
        ai = self._players.get(player_id)
        if ai is None:
            return 0.0
        if player_id not in self._thinking:
            self._thinking[player_id] = self.delay(ai.difficulty)
        return self._thinking[player_id]

    def describe(self, player_id: str) -> Optional[str]:
        ai = self._players.get(player_id)
        return ai.describe_reasoning() if ai else None

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def stats(self, player_id: str) -> Optional[dict]:
        ai = self._players.get(player_id)
        if ai is None:
            return None
        return {
            "name": ai.name,
            "difficulty": ai.difficulty.value,
            "decisions": self._decisions[player_id],
            "pending_observations": len(self._pending[player_id]),
        }

    def summary(self) -> dict:
        difficulties = {d.value: 0 for d in AIDifficulty}
        players = []
        for player_id, ai in self._players.items():
            difficulties[ai.difficulty.value] += 1
            players.append({"player_id": player_id, "name": ai.name, "difficulty": ai.difficulty.value})
        return {"total_ais": len(self._players), "difficulties": difficulties, "players": players}

    def reset_memory(self, player_id: str):
        ai = self._players.get(player_id)
        if ai:
            ai.reset_memory()
            self._pending[player_id].clear()

    def clear(self):
        self._players.clear()
        self._pending.clear()
        self._decisions.clear()
        self._thinking.clear()
