"""Medium computer opponent."""
import random
from typing import Optional

from jossing.models import AIDifficulty, Card, Rank, Suit
from jossing.rules import legal_cards
from jossing.ai.heuristics import (
    GameContext, OpponentMemory, HandStrength, evaluate_hand, average, clamp_bid, nudge,
    winners, losers, non_trumps, trumps, lowest, highest, is_boss,
)

THOUGHTS = [
    "Let me think strategically...",
    "Considering my options carefully.",
    "This needs some planning.",
    "Analyzing the situation...",
    "What's the best move here?",
    "Thinking about trump management.",
    "Need to consider the bid count.",
    "Playing with more strategy now.",
]


class MediumAI:
    """Intermediate opponent.

    Bidding: per-suit trick estimate plus ruffing and short-suit potential,
    a bonus for bidding late, and a correction from the average of the
    bids already on the table.

    Play: remembers every card seen this section, leads cards nobody can
    beat when it needs tricks, wins with side cards before spending
    trumps, and sheds its highest safe card when it wants to lose.
    """

    difficulty = AIDifficulty.MEDIUM
    bid_randomness = 0.10
    play_randomness = 0.10

    def __init__(self, name: str = "Medium AI", seed: Optional[int] = None,
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
        estimate = self._estimate_tricks(hand, hs, trump_suit)

        # Later seats have seen more bids
        estimate += min(position / 4, 1.0) * 0.5
        estimate -= self._opponent_adjustment(opponent_bids, len(hand))

        bid = clamp_bid(estimate, max_bid)
        bid = clamp_bid(nudge(bid, self.bid_randomness, self.rng), max_bid)
        self.last_intent = f"estimated {estimate:.1f} tricks from seat {position}, bidding {bid}"
        return bid

    def _estimate_tricks(self, hand: list[Card], hs: HandStrength, trump_suit: Suit) -> float:
        tricks = 0.0
        for suit, count in hs.distribution.items():
            if suit == trump_suit:
                tricks += min(count, hs.high_trumps + 1)
                continue
            suit_cards = [c for c in hand if c.suit == suit]
            tricks += sum(1 for c in suit_cards if c.rank == Rank.ACE)
            if count >= 2:
                tricks += 0.5 * sum(1 for c in suit_cards if c.rank == Rank.KING)
            if count > 3:
                tricks += 0.25

        # Ruffing potential is bounded by the trumps available to ruff with
        tricks += min(hs.void_suits * hs.trump_count * 0.3, hs.trump_count)
        tricks += hs.short_suits * 0.2
        return tricks

    def _opponent_adjustment(self, opponent_bids: list[int], hand_size: int) -> float:
        avg = average(opponent_bids)
        if avg is None:
            return 0.0
        expected = hand_size * 0.3
        if avg > expected:
            return 0.5
        if avg < expected * 0.5:
            return -0.3
        return 0.0

    # ------------------------------------------------------------------
    # Card play
    # ------------------------------------------------------------------

    def play_card(self, hand: list[Card], trick: list[Card], trump_suit: Suit,
                  leading_suit: Optional[Suit] = None,
                  context: Optional[GameContext] = None) -> Card:
        for card in trick:
            self.memory.played.add(card)
        card = self._choose_card(hand, trick, trump_suit, leading_suit, context)
        self.memory.played.add(card)
        return card

    def _choose_card(self, hand: list[Card], trick: list[Card], trump_suit: Suit,
                     leading_suit: Optional[Suit], context: Optional[GameContext]) -> Card:
        if leading_suit is None and trick:
            leading_suit = trick[0].suit
        valid = legal_cards(hand, leading_suit)

        if self.rng.random() < self.play_randomness:
            self.last_intent = "random play"
            return self.rng.choice(valid)

        needed = context.tricks_needed if context is not None else 0
        if not trick:
            return self._lead(valid, hand, trump_suit, needed)
        return self._follow(valid, trick, trump_suit, needed)

    def _lead(self, valid: list[Card], hand: list[Card], trump_suit: Suit, needed: int) -> Card:
        side = non_trumps(valid, trump_suit)
        if needed > 0:
            bosses = [c for c in side if is_boss(c, hand, self.memory.played)]
            if bosses:
                self.last_intent = "leading a side card nobody can beat"
                return highest(bosses)
            if side:
                self.last_intent = "leading high to draw out big cards"
                return highest(side)
            own_trumps = trumps(valid, trump_suit)
            moderate = [c for c in own_trumps if Rank.TEN <= c.rank <= Rank.QUEEN]
            self.last_intent = "only trumps, leading a moderate one"
            return lowest(moderate) if moderate else lowest(own_trumps)

        self.last_intent = "leading low to stay out of the trick"
        return lowest(side) if side else lowest(valid)

    def _follow(self, valid: list[Card], trick: list[Card], trump_suit: Suit, needed: int) -> Card:
        winning = winners(valid, trick, trump_suit)

        if needed > 0 and winning:
            side_winners = non_trumps(winning, trump_suit)
            if side_winners:
                self.last_intent = "winning without spending a trump"
                return lowest(side_winners)
            self.last_intent = "winning with the lowest trump"
            return lowest(winning)

        if needed <= 0:
            losing = losers(valid, trick, trump_suit)
            if losing:
                self.last_intent = "dumping the highest card that still loses"
                return highest(losing)
            self.last_intent = "every card wins, playing lowest"
            return lowest(valid)

        side = non_trumps(valid, trump_suit)
        self.last_intent = "cannot win this one, saving trumps"
        return lowest(side) if side else lowest(valid)

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
