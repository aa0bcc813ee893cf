"""Hard computer opponent."""
import random
from typing import Optional

from jossing.models import AIDifficulty, Card, Rank, Suit
from jossing.rules import legal_cards
from jossing.ai.heuristics import (
    GameContext, OpponentMemory, HandStrength, evaluate_hand, average, clamp_bid, nudge,
    winners, losers, non_trumps, trumps, lowest, highest, cards_of_suit,
    unseen_in_suit, is_boss,
)

THOUGHTS = [
    "Calculating optimal play...",
    "Analyzing all possibilities.",
    "Consider the meta-game here.",
    "What would the best player do?",
    "Perfect information analysis.",
    "Optimizing for maximum EV.",
    "Strategic depth required.",
    "This requires careful thought.",
]

TRUMP_SUIT_BONUS = {
    Suit.SPADES: 0.1,
    Suit.HEARTS: 0.05,
    Suit.DIAMONDS: 0.05,
    Suit.CLUBS: 0.0,
}

AGGRESSIVE_RATIO = 0.4
CONSERVATIVE_RATIO = 0.2


class HardAI:
    """Expert opponent.

    Bidding sums weighted terms for high cards, trump quality, distribution
    and defensive stoppers, then adjusts for seat, for how hard the table
    is already bidding, for the section size and for the trump suit.

    Play counts cards by suit for the whole section and keeps a rough
    profile of each opponent's bidding. Leading, following to win,
    following to lose and discarding for later tricks are handled
    separately.
    """

    difficulty = AIDifficulty.HARD
    bid_randomness = 0.05
    play_randomness = 0.03

    def __init__(self, name: str = "Hard AI", seed: Optional[int] = None,
                 rng: Optional[random.Random] = None):
        self.name = name
        self.rng = rng or random.Random(seed)
        self.memory = OpponentMemory()
        self.hand_sizes_seen: list[int] = []
        self.last_intent = ""

    # ------------------------------------------------------------------
    # Bidding
    # ------------------------------------------------------------------

    def make_bid(self, hand: list[Card], max_bid: int, trump_suit: Suit,
                 position: int, opponent_bids: list[int]) -> int:
        hand_size = len(hand)
        self.hand_sizes_seen.append(hand_size)
        hs = evaluate_hand(hand, trump_suit)

        estimate = (
            self._high_card_strength(hand, trump_suit)
            + self._trump_strength(hand, hs, trump_suit)
            + self._distribution_strength(hs, trump_suit)
            + self._defensive_strength(hand, trump_suit)
        )
        estimate += self._positional_adjustment(position, opponent_bids, hand_size)
        estimate -= self._threat(opponent_bids, hand_size)
        estimate += self._meta_adjustment(hand_size, trump_suit)

        bid = clamp_bid(estimate, max_bid)
        bid = clamp_bid(nudge(bid, self.bid_randomness, self.rng), max_bid)
        self.last_intent = f"model says {estimate:.2f} tricks, bidding {bid}"
        return bid

    def _high_card_strength(self, hand: list[Card], trump_suit: Suit) -> float:
        strength = 0.0
        for card in hand:
            if card.rank >= Rank.JACK:
                weight = 1.5 if card.suit == trump_suit else 1.0
                strength += (card.value - 10) * 0.25 * weight
        return strength

    def _trump_strength(self, hand: list[Card], hs: HandStrength, trump_suit: Suit) -> float:
        own_trumps = trumps(hand, trump_suit)
        strength = hs.high_trumps * 0.7
        if hs.void_suits > 0:
            strength += min(len(own_trumps), hs.void_suits) * 0.5
        strength += sum(1 for c in own_trumps if Rank.EIGHT <= c.rank <= Rank.TEN) * 0.2
        return strength

    def _distribution_strength(self, hs: HandStrength, trump_suit: Suit) -> float:
        strength = hs.void_suits * hs.trump_count * 0.3
        strength += hs.short_suits * hs.trump_count * 0.15
        for suit, count in hs.distribution.items():
            if suit != trump_suit and count >= 4:
                strength += (count - 3) * 0.25
        return strength

    def _defensive_strength(self, hand: list[Card], trump_suit: Suit) -> float:
        strength = 0.0
        for suit in Suit:
            suit_cards = cards_of_suit(hand, suit)
            if suit_cards and highest(suit_cards).rank >= Rank.QUEEN:
                strength += 0.4 if suit == trump_suit else 0.2
        return strength

    def _positional_adjustment(self, position: int, opponent_bids: list[int], hand_size: int) -> float:
        adjustment = min(position / 4, 1.0) * 0.3
        avg = average(opponent_bids)
        if avg is not None:
            adjustment += -0.4 if avg > hand_size * 0.25 else 0.2
        return adjustment

    def _threat(self, opponent_bids: list[int], hand_size: int) -> float:
        threat = 0.0
        if opponent_bids and hand_size:
            ratio = sum(opponent_bids) / hand_size
            if ratio > 0.8:
                threat = 0.6
            elif ratio < 0.4:
                threat = -0.2
            else:
                threat = 0.2

        styles = self.opponent_profiles().values()
        threat += 0.1 * sum(1 for s in styles if s == "aggressive")
        threat -= 0.05 * sum(1 for s in styles if s == "conservative")
        return threat

    def _meta_adjustment(self, hand_size: int, trump_suit: Suit) -> float:
        adjustment = 0.0
        if hand_size <= 3:
            adjustment += 0.1
        elif hand_size >= 6:
            adjustment -= 0.1
        return adjustment + TRUMP_SUIT_BONUS[trump_suit]

    def opponent_profiles(self) -> dict[str, str]:
        """Label each opponent aggressive, conservative or balanced from past bids."""
        typical = average(self.hand_sizes_seen)
        if not typical:
            return {}
        profiles = {}
        for player_id in self.memory.bids_by_player:
            ratio = self.memory.average_bid(player_id) / typical
            if ratio > AGGRESSIVE_RATIO:
                profiles[player_id] = "aggressive"
            elif ratio < CONSERVATIVE_RATIO:
                profiles[player_id] = "conservative"
            else:
                profiles[player_id] = "balanced"
        return profiles

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
        after_me = context.players_after_me if context is not None else 0

        if not trick:
            if needed > 0:
                return self._lead_for_tricks(valid, hand, trump_suit)
            return self._lead_safely(valid, hand, trump_suit)

        winning = winners(valid, trick, trump_suit)
        if needed > 0 and winning:
            return self._win(winning, hand, trump_suit, after_me)
        if needed <= 0:
            return self._avoid(valid, trick, trump_suit, after_me)
        return self._position_for_future(valid, hand, trump_suit)

    def _lead_for_tricks(self, valid: list[Card], hand: list[Card], trump_suit: Suit) -> Card:
        played = self.memory.played
        side = non_trumps(valid, trump_suit)

        side_bosses = [c for c in side if is_boss(c, hand, played)]
        if side_bosses:
            self.last_intent = "cashing a side-suit winner"
            return highest(side_bosses)

        own_trumps = trumps(valid, trump_suit)
        outstanding = unseen_in_suit(trump_suit, hand, played)
        trump_bosses = [c for c in own_trumps if is_boss(c, hand, played)]
        if trump_bosses and len(own_trumps) >= len(outstanding):
            self.last_intent = "drawing trumps with the top trump"
            return highest(trump_bosses)

        if side:
            self.last_intent = "leading high to force out the top cards"
            return highest(side)
        self.last_intent = "only trumps left, leading the highest"
        return highest(valid)

    def _lead_safely(self, valid: list[Card], hand: list[Card], trump_suit: Suit) -> Card:
        played = self.memory.played
        side = non_trumps(valid, trump_suit)
        pool = side or valid

        def cover(card: Card) -> int:
            return sum(1 for c in unseen_in_suit(card.suit, hand, played) if c.value > card.value)

        # Most outstanding cards above it, then lowest
        self.last_intent = "leading the card most likely to be covered"
        return min(pool, key=lambda c: (-cover(c), c.value, c.suit))

    def _win(self, winning: list[Card], hand: list[Card], trump_suit: Suit, after_me: int) -> Card:
        if after_me == 0:
            self.last_intent = "last to play, taking it as cheaply as possible"
            return lowest(winning)

        played = self.memory.played
        safe = [c for c in winning if is_boss(c, hand, played)]
        side_safe = non_trumps(safe, trump_suit)
        if side_safe:
            self.last_intent = "winning with a side card nobody can top"
            return lowest(side_safe)
        if safe:
            self.last_intent = "winning with a trump nobody can top"
            return lowest(safe)

        side_winners = non_trumps(winning, trump_suit)
        self.last_intent = "winning for now and hoping it holds"
        return lowest(side_winners) if side_winners else lowest(winning)

    def _avoid(self, valid: list[Card], trick: list[Card], trump_suit: Suit, after_me: int) -> Card:
        losing = losers(valid, trick, trump_suit)
        if losing:
            self.last_intent = "shedding the highest card that still loses"
            return highest(losing)
        if after_me == 0:
            self.last_intent = "forced to win, dumping the highest card"
            return highest(valid)
        self.last_intent = "every card wins for now, playing low and hoping to be overtaken"
        return lowest(valid)

    def _position_for_future(self, valid: list[Card], hand: list[Card], trump_suit: Suit) -> Card:
        side = non_trumps(valid, trump_suit)
        if not side:
            self.last_intent = "cannot win, spending the lowest card"
            return lowest(valid)

        def suit_length(card: Card) -> int:
            return len(cards_of_suit(hand, card.suit))

        # Shorten the shortest side suit to open up ruffs later
        self.last_intent = "cannot win, shortening a side suit for later ruffs"
        return min(side, key=lambda c: (suit_length(c), c.value, c.suit))

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
        self.hand_sizes_seen.clear()
        self.last_intent = ""
