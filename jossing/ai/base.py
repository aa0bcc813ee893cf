"""Capability contract every computer opponent satisfies."""
from typing import Optional, Protocol, runtime_checkable

from jossing.models import AIDifficulty, Card, Suit
from jossing.ai.heuristics import GameContext


@runtime_checkable
class AIPlayer(Protocol):
    name: str
    difficulty: AIDifficulty

    def make_bid(self, hand: list[Card], max_bid: int, trump_suit: Suit,
                 position: int, opponent_bids: list[int]) -> int:
        """Return a bid in 0..max_bid.

        position is the seat's place in the bidding order (1 bids first,
        the dealer bids last); opponent_bids are the bids placed before it.
        """
        ...

    def play_card(self, hand: list[Card], trick: list[Card], trump_suit: Suit,
                  leading_suit: Optional[Suit] = None,
                  context: Optional[GameContext] = None) -> Card:
        """Return a card from hand that is legal to play into trick."""
        ...

    def describe_reasoning(self) -> str: ...

    def record_bid(self, player_id: str, bid: int) -> None: ...

    def record_card(self, player_id: str, card: Card) -> None: ...

    def new_section(self) -> None: ...

    def reset_memory(self) -> None: ...
