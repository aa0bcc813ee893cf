"""Pure rules of Jøssing: deck, dealing, trick comparison, scheduling and scoring."""
import random
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from jossing.models import (
    Card, Suit, Rank, GameType, ScoringSystem,
    SUIT_SYMBOLS, RANK_NAMES,
)

DECK_SIZE = 52
MIN_PLAYERS = 3
MAX_PLAYERS = 6
CLASSIC_BASE = 10
MODERN_MULTIPLIER = 5

SECTIONS_PER_GAME = {
    GameType.UP: 10,
    GameType.UP_AND_DOWN: 20,
}


# === Deck & Dealing ===

@dataclass
class Deal:
    hands: list[list[Card]]
    trump_card: Card
    remainder: list[Card]


def create_deck() -> list[Card]:
    """Create a standard 52-card deck."""
    return [Card(suit=suit, rank=rank) for suit in Suit for rank in Rank]


def shuffle(deck: list[Card], rng: Optional[random.Random] = None) -> list[Card]:
    """Fisher-Yates shuffle in place. Returns the same list for chaining."""
    rng = rng or random.Random()
    for i in range(len(deck) - 1, 0, -1):
        j = rng.randrange(i + 1)
        deck[i], deck[j] = deck[j], deck[i]
    return deck


def deal(deck: list[Card], num_players: int, cards_per_player: int) -> Deal:
    """Deal round-robin, then turn up the next card as the trump card.

    Card i of the dealing sequence goes to player (i mod num_players).
    Whatever is left after the trump card stays undealt.
    """
    if num_players < 1 or cards_per_player < 1:
        raise ValueError("Need at least one player and one card per player")
    needed = num_players * cards_per_player + 1
    if needed > len(deck) or needed > DECK_SIZE:
        raise ValueError(
            f"Cannot deal {cards_per_player} cards to {num_players} players "
            f"from a {len(deck)}-card deck"
        )

    hands: list[list[Card]] = [[] for _ in range(num_players)]
    dealt = num_players * cards_per_player
    for i in range(dealt):
        hands[i % num_players].append(deck[i])

    return Deal(hands=hands, trump_card=deck[dealt], remainder=list(deck[dealt + 1:]))


# === Card Comparator ===

def card_beats(candidate: Card, current_best: Card, trump_suit: Suit,
               leading_suit: Optional[Suit]) -> bool:
    """Check if candidate takes the trick away from current_best."""
    if candidate.suit == trump_suit and current_best.suit != trump_suit:
        return True
    if candidate.suit != trump_suit and current_best.suit == trump_suit:
        return False
    if candidate.suit == trump_suit and current_best.suit == trump_suit:
        return candidate.value > current_best.value

    # Neither card is trump
    if candidate.suit == leading_suit and current_best.suit == leading_suit:
        return candidate.value > current_best.value
    if candidate.suit == leading_suit:
        return True
    return False


def resolve_trick_winner(played_cards: Mapping[int, Card], lead_position: int,
                         trump_suit: Suit, leading_suit: Optional[Suit] = None) -> int:
    """Return the seat position holding the winning card of a full trick."""
    if lead_position not in played_cards:
        raise ValueError(f"Lead position {lead_position} has no card in the trick")
    if leading_suit is None:
        leading_suit = played_cards[lead_position].suit

    best_position = lead_position
    best_card = played_cards[lead_position]
    for position in sorted(played_cards):
        if position == lead_position:
            continue
        card = played_cards[position]
        if card_beats(card, best_card, trump_suit, leading_suit):
            best_position, best_card = position, card
    return best_position


def winning_card(cards: list[Card], trump_suit: Suit) -> Optional[Card]:
    """Best card so far in a partially played trick (cards in play order)."""
    if not cards:
        return None
    leading_suit = cards[0].suit
    best = cards[0]
    for card in cards[1:]:
        if card_beats(card, best, trump_suit, leading_suit):
            best = card
    return best


# === Legality ===

def legal_cards(hand: Iterable[Card], leading_suit: Optional[Suit]) -> list[Card]:
    """Cards in hand that may be played; must follow the leading suit if able."""
    hand = list(hand)
    if leading_suit is None:
        return hand
    following = [c for c in hand if c.suit == leading_suit]
    return following if following else hand


def is_legal_play(card: Card, hand: Iterable[Card], leading_suit: Optional[Suit]) -> bool:
    return card in legal_cards(hand, leading_suit)


def forbidden_bid(hand_size: int, other_bids_total: int) -> Optional[int]:
    """The one bid the dealer may not make under the dealer restriction.

    It is the bid that would make the total of bids equal the tricks
    available, or None when that value is out of range.
    """
    forbidden = hand_size - other_bids_total
    if 0 <= forbidden <= hand_size:
        return forbidden
    return None


def legal_bids(hand_size: int, forbidden: Optional[int] = None) -> list[int]:
    return [b for b in range(hand_size + 1) if b != forbidden]


# === Scheduling ===

def total_sections(game_type: GameType) -> int:
    return SECTIONS_PER_GAME[game_type]


def cards_per_section(section_number: int, game_type: GameType, num_players: int) -> int:
    """Hand size for a section, capped so that every hand plus the trump card fits the deck."""
    if section_number < 1 or section_number > total_sections(game_type):
        raise ValueError(f"Section {section_number} is outside the {game_type.value} schedule")
    if game_type == GameType.UP_AND_DOWN and section_number > 10:
        size = 21 - section_number
    else:
        size = section_number
    return min(size, (DECK_SIZE - 1) // num_players)


def dealer_position(section_number: int, num_players: int) -> int:
    return ((section_number - 1) % num_players) + 1


def next_position(position: int, num_players: int) -> int:
    return (position % num_players) + 1


def clockwise_distance(from_position: int, to_position: int, num_players: int) -> int:
    """Seats travelled clockwise from one seat to another; a seat is num_players from itself."""
    return ((to_position - from_position - 1) % num_players) + 1


def select_lead_position(bids: Mapping[int, int], dealer: int, num_players: int) -> int:
    """Highest bidder leads the first trick; ties go to the seat nearest after the dealer."""
    if not bids:
        raise ValueError("No bids to select a lead from")
    return min(
        bids,
        key=lambda pos: (-bids[pos], clockwise_distance(dealer, pos, num_players)),
    )


# === Scoring ===

def calculate_score(bid: int, tricks_won: int,
                    scoring_system: ScoringSystem = ScoringSystem.CLASSIC) -> int:
    """Points for one player in one section. A bust scores nothing."""
    if bid != tricks_won:
        return 0
    if scoring_system == ScoringSystem.MODERN:
        return MODERN_MULTIPLIER * (bid + 1)
    return CLASSIC_BASE + bid


# === Presentation helpers ===

def card_to_string(card: Card) -> str:
    return f"{RANK_NAMES[card.rank]}{SUIT_SYMBOLS[card.suit]}"


def sort_hand(cards: Iterable[Card]) -> list[Card]:
    """Sort by suit (clubs, diamonds, hearts, spades), then ascending value."""
    return sorted(cards, key=lambda c: (c.suit.value, c.value))
