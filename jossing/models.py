"""Game models for Jøssing."""
from enum import IntEnum, Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


# === Enums ===

class Suit(IntEnum):
    CLUBS = 1
    DIAMONDS = 2
    HEARTS = 3
    SPADES = 4


class Rank(IntEnum):
    TWO = 2
    THREE = 3
    FOUR = 4
    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8
    NINE = 9
    TEN = 10
    JACK = 11
    QUEEN = 12
    KING = 13
    ACE = 14


class GameType(Enum):
    UP = "up"
    UP_AND_DOWN = "up_and_down"


class ScoringSystem(Enum):
    CLASSIC = "classic"
    MODERN = "modern"


class SessionPhase(Enum):
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class SectionPhase(Enum):
    DEALING = "dealing"
    BIDDING = "bidding"
    PLAYING = "playing"
    COMPLETED = "completed"


class AIDifficulty(Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


# === Mappings ===

SUIT_NAMES = {
    Suit.CLUBS: "clubs",
    Suit.DIAMONDS: "diamonds",
    Suit.HEARTS: "hearts",
    Suit.SPADES: "spades",
}

SUIT_SYMBOLS = {
    Suit.CLUBS: "♣",
    Suit.DIAMONDS: "♦",
    Suit.HEARTS: "♥",
    Suit.SPADES: "♠",
}

RANK_NAMES = {
    Rank.TWO: "2",
    Rank.THREE: "3",
    Rank.FOUR: "4",
    Rank.FIVE: "5",
    Rank.SIX: "6",
    Rank.SEVEN: "7",
    Rank.EIGHT: "8",
    Rank.NINE: "9",
    Rank.TEN: "10",
    Rank.JACK: "J",
    Rank.QUEEN: "Q",
    Rank.KING: "K",
    Rank.ACE: "A",
}

NAME_TO_SUIT = {v: k for k, v in SUIT_NAMES.items()}
NAME_TO_RANK = {v: k for k, v in RANK_NAMES.items()}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_suit(value) -> Suit:
    """Accept a Suit, its name ("hearts") or its integer value."""
    if isinstance(value, Suit):
        return value
    if isinstance(value, str) and value.lower() in NAME_TO_SUIT:
        return NAME_TO_SUIT[value.lower()]
    if isinstance(value, int) and not isinstance(value, bool):
        return Suit(value)
    raise ValueError(f"Invalid suit: {value!r}")


def parse_rank(value) -> Rank:
    """Accept a Rank, its label ("10", "Q") or its numeric strength (2-14)."""
    if isinstance(value, Rank):
        return value
    if isinstance(value, str) and value.upper() in NAME_TO_RANK:
        return NAME_TO_RANK[value.upper()]
    if isinstance(value, int) and not isinstance(value, bool):
        return Rank(value)
    raise ValueError(f"Invalid rank: {value!r}")


# === Models ===

@dataclass(frozen=True)
class Card:
    suit: Suit
    rank: Rank

    @property
    def id(self) -> str:
        return f"{RANK_NAMES[self.rank]}_{SUIT_NAMES[self.suit]}"

    @property
    def value(self) -> int:
        """Numeric strength of the rank, 2 (deuce) to 14 (ace)."""
        return self.rank.value

    def __str__(self) -> str:
        return f"{RANK_NAMES[self.rank]}{SUIT_SYMBOLS[self.suit]}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "suit": SUIT_NAMES[self.suit],
            "rank": RANK_NAMES[self.rank],
            "value": self.value,
        }

    @classmethod
    def from_id(cls, card_id: str) -> "Card":
        rank_str, suit_str = card_id.split("_")
        return cls(suit=parse_suit(suit_str), rank=parse_rank(rank_str))

    @classmethod
    def from_dict(cls, data: dict) -> "Card":
        if "suit" in data and "rank" in data:
            return cls(suit=parse_suit(data["suit"]), rank=parse_rank(data["rank"]))
        return cls.from_id(data["id"])


@dataclass
class Session:
    id: str
    admin_player_id: str
    game_type: GameType = GameType.UP
    scoring_system: ScoringSystem = ScoringSystem.CLASSIC
    max_players: int = 6
    current_section: int = 0
    phase: SessionPhase = SessionPhase.WAITING
    dealer_restriction: bool = False
    turn_started_at: Optional[float] = None  # clock reading when the current actor's turn began
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "admin_player_id": self.admin_player_id,
            "game_type": self.game_type.value,
            "scoring_system": self.scoring_system.value,
            "max_players": self.max_players,
            "current_section": self.current_section,
            "phase": self.phase.value,
            "dealer_restriction": self.dealer_restriction,
            "created_at": _iso(self.created_at),
        }


@dataclass
class Player:
    id: str
    session_id: str
    name: str
    position: int
    is_admin: bool = False
    total_score: int = 0
    is_connected: bool = True
    is_ai: bool = False
    ai_difficulty: Optional[AIDifficulty] = None
    joined_at: datetime = field(default_factory=utcnow)

    @property
    def is_human(self) -> bool:
        return not self.is_ai

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "name": self.name,
            "position": self.position,
            "is_admin": self.is_admin,
            "total_score": self.total_score,
            "is_connected": self.is_connected,
            "is_ai": self.is_ai,
            "ai_difficulty": self.ai_difficulty.value if self.ai_difficulty else None,
            "joined_at": _iso(self.joined_at),
        }


@dataclass(frozen=True)
class Bid:
    player_id: str
    player_name: str
    bid_value: int
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "bid": self.bid_value,
            "timestamp": _iso(self.timestamp),
        }


@dataclass
class SectionState:
    id: str
    session_id: str
    section_number: int
    hand_size: int
    dealer_position: int
    trump_suit: Suit
    trump_card_rank: Rank
    phase: SectionPhase = SectionPhase.DEALING
    current_bidder_position: Optional[int] = None
    lead_player_position: Optional[int] = None
    bids: list[Bid] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def trump_card(self) -> Card:
        return Card(suit=self.trump_suit, rank=self.trump_card_rank)

    def bid_for(self, player_id: str) -> Optional[Bid]:
        for bid in self.bids:
            if bid.player_id == player_id:
                return bid
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "section_number": self.section_number,
            "hand_size": self.hand_size,
            "dealer_position": self.dealer_position,
            "current_bidder_position": self.current_bidder_position,
            "lead_player_position": self.lead_player_position,
            "trump_suit": SUIT_NAMES[self.trump_suit],
            "trump_card_rank": RANK_NAMES[self.trump_card_rank],
            "trump_card": self.trump_card.to_dict(),
            "phase": self.phase.value,
            "bids": [b.to_dict() for b in self.bids],
            "created_at": _iso(self.created_at),
        }


@dataclass
class Hand:
    id: str
    section_id: str
    player_id: str
    cards: list[Card] = field(default_factory=list)
    bid: Optional[int] = None
    tricks_won: int = 0
    section_score: int = 0

    def has_card(self, card: Card) -> bool:
        return card in self.cards

    def has_suit(self, suit: Suit) -> bool:
        return any(c.suit == suit for c in self.cards)

    def to_dict(self, hide_cards: bool = False) -> dict:
        return {
            "player_id": self.player_id,
            "cards": [] if hide_cards else [c.to_dict() for c in self.cards],
            "card_count": len(self.cards),
            "bid": self.bid,
            "tricks_won": self.tricks_won,
            "section_score": self.section_score,
        }


@dataclass
class TrickCard:
    trick_id: str
    player_id: str
    player_position: int
    card: Card
    played_at: datetime = field(default_factory=utcnow)

    @property
    def suit(self) -> Suit:
        return self.card.suit

    @property
    def rank(self) -> Rank:
        return self.card.rank

    def to_dict(self) -> dict:
        return {
            "player_id": self.player_id,
            "player_position": self.player_position,
            "card": self.card.to_dict(),
            "played_at": _iso(self.played_at),
        }


@dataclass
class Trick:
    id: str
    section_id: str
    trick_number: int
    lead_player_position: int
    leading_suit: Optional[Suit] = None
    winner_position: Optional[int] = None
    completed_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    def to_dict(self, cards: Optional[list[TrickCard]] = None) -> dict:
        data = {
            "id": self.id,
            "section_id": self.section_id,
            "trick_number": self.trick_number,
            "lead_player_position": self.lead_player_position,
            "leading_suit": SUIT_NAMES[self.leading_suit] if self.leading_suit else None,
            "winner_position": self.winner_position,
            "completed_at": _iso(self.completed_at),
        }
        if cards is not None:
            data["cards"] = [tc.to_dict() for tc in cards]
        return data
