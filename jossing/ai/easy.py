"""Easy computer opponent."""
import math
import random
from typing import Optional

from jossing.models import AIDifficulty, Card, Suit
from jossing.rules import legal_cards
from jossing.ai.heuristics import (
    GameContext, OpponentMemory, evaluate_hand, clamp_bid, nudge,
    winners, losers, non_trumps, trumps, lowest, highest,
)

THOUGHTS = [
    "Let me play it safe...",
    "I'll try a conservative approach.",
    "This should be okay.",
    "Playing carefully here.",
    "Better safe than sorry!",
    "I think this is reasonable.",
    "Hope this works out.",
    "Going with my gut feeling.",
]


class EasyAI:
    """Beginner-level opponent.

    Bidding: counts high cards and trumps, then bids one trick under the
    estimate. Play: leads its highest side card, wins cheaply when it
    still needs tricks, otherwise ducks with its lowest card.
    """

    difficulty = AIDifficulty.EASY
    bid_randomness = 0.15
    play_randomness = 0.20

    def __init__(self, name: str = "Easy AI", seed: Optional[int] = None,
                 rng: Optional[random.Random] = None):
        self.name = name
        self.rng = rng or random.Random(seed)
        self.memory = OpponentMemory()
        self.last_intent = ""

    # ------------------------------------------------------------------
    # Bidding
    # ------------------------------------------------------------------

    def make_bid(self, hand: list[Card], max_bid: int, trump_suit: Suit,
                 position: int, opponent_bids: list[int]) -> int:
        hs = evaluate_hand(hand, trump_suit)
        estimate = (
            math.floor(hs.high_card_points / 3)
            + math.floor(hs.trump_count / 2)
            + hs.high_trumps
            + hs.void_suits * 0.5
        )
        conservative = max(0, math.floor(estimate + 0.5) - 1)
        bid = clamp_bid(nudge(conservative, self.bid_randomness, self.rng), max_bid)
        self.last_intent = f"estimated {estimate:.1f} tricks, bidding {bid}"
        return bid

    # ------------------------------------------------------------------
    # Card play
    # ------------------------------------------------------------------

    def play_card(self, hand: list[Card], trick: list[Card], trump_suit: Suit,
                  leading_suit: Optional[Suit] = None,
                  context: Optional[GameContext] = None) -> Card:
        if leading_suit is None and trick:
            leading_suit = trick[0].suit
        valid = legal_cards(hand, leading_suit)

        if self.rng.random() < self.play_randomness:
            self.last_intent = "random play"
            return self.rng.choice(valid)

        if not trick:
            return self._lead(valid, trump_suit)

        if context is not None:
            want_trick = context.tricks_needed > 0
        else:
            want_trick = self.rng.random() > 0.5

        if want_trick:
            winning = winners(valid, trick, trump_suit)
            if winning:
                self.last_intent = "winning with the lowest card that takes it"
                return lowest(winning)
            self.last_intent = "cannot win, playing lowest"
            return lowest(valid)

        losing = losers(valid, trick, trump_suit)
        if losing:
            self.last_intent = "ducking with the lowest losing card"
            return lowest(losing)
        self.last_intent = "forced to win, playing lowest"
        return lowest(valid)

    def _lead(self, valid: list[Card], trump_suit: Suit) -> Card:
        side = non_trumps(valid, trump_suit)
        if side:
            self.last_intent = "leading highest side card"
            return highest(side)
        self.last_intent = "only trumps left, leading lowest"
        return lowest(trumps(valid, trump_suit))

    # ------------------------------------------------------------------
    # Memory and reasoning
    # ------------------------------------------------------------------

    def describe_reasoning(self) -> str:
        thought = self.rng.choice(THOUGHTS)
        return f"{thought} ({self.last_intent})" if self.last_intent else thought

    def record_bid(self, player_id: str, bid: int):
        self.memory.record_bid(player_id, bid)

    def record_card(self, player_id: str, card: Card):
        self.memory.record_card(player_id, card)

    def new_section(self):
        self.memory.new_section()

    def reset_memory(self):
        self.memory.reset()
        self.last_intent = ""
