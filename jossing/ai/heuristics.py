"""Shared, stateless helpers used by every AI tier."""
import math
import random
from dataclasses import dataclass, field
from typing import Iterable, Optional

from jossing.models import Card, Suit, Rank
from jossing.rules import card_beats, legal_cards, winning_card

HIGH_RANK = Rank.JACK
TRUMP_HIGH_CARD_WEIGHT = 1.5


@dataclass
class HandStrength:
    high_card_points: float
    trump_count: int
    high_trumps: int
    void_suits: int
    short_suits: int
    distribution: dict[Suit, int]
    total_cards: int


@dataclass
class GameContext:
    """What a seat knows about the section beyond its own cards.

    bid and tricks_won are this player's own; bids maps seat position to
    every bid placed so far.
    """
    section_number: int
    total_sections: int
    hand_size: int
    position: int
    num_players: int
    bid: Optional[int] = None
    tricks_won: int = 0
    tricks_played: int = 0
    players_after_me: int = 0
    bids: dict[int, int] = field(default_factory=dict)
    scores: dict[str, int] = field(default_factory=dict)

    @property
    def tricks_needed(self) -> int:
        """Tricks still required to make the bid; negative once over it."""
        if self.bid is None:
            return 0
        return self.bid - self.tricks_won

    @property
    def tricks_remaining(self) -> int:
        return self.hand_size - self.tricks_played


class OpponentMemory:
    """Cards seen and bids made by other seats.

    Cards are forgotten every section; bids are kept across sections so
    an AI can learn how a table bids.
    """

    def __init__(self, history_limit: int = 50):
        self.history_limit = history_limit
        self.played: set[Card] = set()
        self.bids_by_player: dict[str, list[int]] = {}

    def record_card(self, player_id: str, card: Card):
        self.played.add(card)

    def record_bid(self, player_id: str, bid: int):
        history = self.bids_by_player.setdefault(player_id, [])
        history.append(bid)
        if len(history) > self.history_limit:
            del history[0]

    def new_section(self):
        self.played.clear()

    def reset(self):
        self.played.clear()
        self.bids_by_player.clear()

    def average_bid(self, player_id: str) -> Optional[float]:
        history = self.bids_by_player.get(player_id)
        if not history:
            return None
        return sum(history) / len(history)


# ----------------------------------------------------------------------
# Hand evaluation
# ----------------------------------------------------------------------

def evaluate_hand(hand: Iterable[Card], trump_suit: Suit) -> HandStrength:
    """Hand-strength summary shared by all tiers (A=4, K=3, Q=2, J=1 points)."""
    hand = list(hand)
    distribution = {suit: 0 for suit in Suit}
    high_card_points = 0.0
    trump_count = 0
    high_trumps = 0

    for card in hand:
        distribution[card.suit] += 1
        if card.suit == trump_suit:
            trump_count += 1
            if card.rank >= HIGH_RANK:
                high_trumps += 1
        if card.rank >= HIGH_RANK:
            points = card.value - 10
            high_card_points += points * TRUMP_HIGH_CARD_WEIGHT if card.suit == trump_suit else points

    return HandStrength(
        high_card_points=high_card_points,
        trump_count=trump_count,
        high_trumps=high_trumps,
        void_suits=sum(1 for n in distribution.values() if n == 0),
        short_suits=sum(1 for n in distribution.values() if n == 1),
        distribution=distribution,
        total_cards=len(hand),
    )


def average(values: list[int]) -> Optional[float]:
    return sum(values) / len(values) if values else None


# ----------------------------------------------------------------------
# Trick helpers
# ----------------------------------------------------------------------

def playable(hand: Iterable[Card], trick: list[Card]) -> list[Card]:
    """Legal subset of the hand given the cards already in the trick."""
    leading_suit = trick[0].suit if trick else None
    return legal_cards(hand, leading_suit)


def can_win(card: Card, trick: list[Card], trump_suit: Suit) -> bool:
    """Would this card currently take the trick? Leading always counts as winning."""
    if not trick:
        return True
    best = winning_card(trick, trump_suit)
    return card_beats(card, best, trump_suit, trick[0].suit)


def winners(cards: list[Card], trick: list[Card], trump_suit: Suit) -> list[Card]:
    return [c for c in cards if can_win(c, trick, trump_suit)]


def losers(cards: list[Card], trick: list[Card], trump_suit: Suit) -> list[Card]:
    return [c for c in cards if not can_win(c, trick, trump_suit)]


def non_trumps(cards: list[Card], trump_suit: Suit) -> list[Card]:
    return [c for c in cards if c.suit != trump_suit]


def trumps(cards: list[Card], trump_suit: Suit) -> list[Card]:
    return [c for c in cards if c.suit == trump_suit]


def lowest(cards: list[Card]) -> Card:
    return min(cards, key=lambda c: (c.value, c.suit))


def highest(cards: list[Card]) -> Card:
    return max(cards, key=lambda c: (c.value, c.suit))


def cards_of_suit(cards: Iterable[Card], suit: Suit) -> list[Card]:
    return [c for c in cards if c.suit == suit]


def unseen_in_suit(suit: Suit, hand: Iterable[Card], played: set[Card]) -> list[Card]:
    """Cards of a suit that are neither in hand nor already played."""
    known = set(hand) | played
    return [Card(suit=suit, rank=rank) for rank in Rank if Card(suit=suit, rank=rank) not in known]


def is_boss(card: Card, hand: Iterable[Card], played: set[Card]) -> bool:
    """True when no unseen card of the same suit outranks this one."""
    return all(c.value < card.value for c in unseen_in_suit(card.suit, hand, played))


# ----------------------------------------------------------------------
# Controlled randomness
# ----------------------------------------------------------------------

def nudge(value: int, probability: float, rng: random.Random) -> int:
    """With the given probability move value one step up or down."""
    if rng.random() < probability:
        return value + rng.choice((-1, 1))
    return value


def clamp_bid(value: float, max_bid: int) -> int:
    """Round half up and clamp into 0..max_bid."""
    return max(0, min(math.floor(value + 0.5), max_bid))
