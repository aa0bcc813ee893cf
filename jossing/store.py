"""Repository contract for game state, and an in-memory implementation."""
import copy
import threading
from typing import Optional, Protocol, runtime_checkable

from jossing.models import Session, Player, SectionState, Hand, Trick, TrickCard


@runtime_checkable
class GameStore(Protocol):
    """Storage operations the engine relies on.

    Each call is atomic and visible to subsequent reads. Objects handed
    out are copies; callers persist changes with the matching update call.
    """

    # Sessions
    def create_session(self, session: Session) -> None: ...
    def get_session(self, session_id: str) -> Optional[Session]: ...
    def update_session(self, session: Session) -> None: ...

    # Players
    def create_player(self, player: Player) -> None: ...
    def get_player(self, player_id: str) -> Optional[Player]: ...
    def list_players(self, session_id: str) -> list[Player]: ...
    def update_player(self, player: Player) -> None: ...
    def delete_player(self, player_id: str) -> None: ...

    # Sections
    def create_section(self, section: SectionState) -> None: ...
    def get_section(self, session_id: str, section_number: int) -> Optional[SectionState]: ...
    def list_sections(self, session_id: str) -> list[SectionState]: ...
    def update_section(self, section: SectionState) -> None: ...

    # Hands
    def create_hand(self, hand: Hand) -> None: ...
    def get_hand(self, section_id: str, player_id: str) -> Optional[Hand]: ...
    def list_hands(self, section_id: str) -> list[Hand]: ...
    def update_hand(self, hand: Hand) -> None: ...

    # Tricks
    def create_trick(self, trick: Trick) -> None: ...
    def get_open_trick(self, section_id: str) -> Optional[Trick]: ...
    def list_tricks(self, section_id: str) -> list[Trick]: ...
    def update_trick(self, trick: Trick) -> None: ...
    def append_trick_card(self, trick_card: TrickCard) -> None: ...
    def list_trick_cards(self, trick_id: str) -> list[TrickCard]: ...


class InMemoryStore:
    """Dict-backed store. Copies on the way in and out so callers never share state."""

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}
        self._players: dict[str, Player] = {}
        self._sections: dict[str, SectionState] = {}
        self._hands: dict[str, Hand] = {}
        self._tricks: dict[str, Trick] = {}
        self._trick_cards: dict[str, list[TrickCard]] = {}

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, session: Session) -> None:
        with self._lock:
            if session.id in self._sessions:
                raise KeyError(f"Session {session.id} already exists")
            self._sessions[session.id] = copy.deepcopy(session)

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
            return copy.deepcopy(session) if session else None

    def update_session(self, session: Session) -> None:
        with self._lock:
            self._require(self._sessions, session.id, "Session")
            self._sessions[session.id] = copy.deepcopy(session)

    # ------------------------------------------------------------------
    # Players
    # ------------------------------------------------------------------

    def create_player(self, player: Player) -> None:
        with self._lock:
            self._players[player.id] = copy.deepcopy(player)

    def get_player(self, player_id: str) -> Optional[Player]:
        with self._lock:
            player = self._players.get(player_id)
            return copy.deepcopy(player) if player else None

    def list_players(self, session_id: str) -> list[Player]:
        with self._lock:
            players = [p for p in self._players.values() if p.session_id == session_id]
            return copy.deepcopy(sorted(players, key=lambda p: p.position))

    def update_player(self, player: Player) -> None:
        with self._lock:
            self._require(self._players, player.id, "Player")
            self._players[player.id] = copy.deepcopy(player)

    def delete_player(self, player_id: str) -> None:
        with self._lock:
            self._players.pop(player_id, None)

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def create_section(self, section: SectionState) -> None:
        with self._lock:
            self._sections[section.id] = copy.deepcopy(section)

    def get_section(self, session_id: str, section_number: int) -> Optional[SectionState]:
        with self._lock:
            for section in self._sections.values():
                if section.session_id == session_id and section.section_number == section_number:
                    return copy.deepcopy(section)
            return None

    def list_sections(self, session_id: str) -> list[SectionState]:
        with self._lock:
            sections = [s for s in self._sections.values() if s.session_id == session_id]
            return copy.deepcopy(sorted(sections, key=lambda s: s.section_number))

    def update_section(self, section: SectionState) -> None:
        with self._lock:
            self._require(self._sections, section.id, "Section")
            self._sections[section.id] = copy.deepcopy(section)

    # ------------------------------------------------------------------
    # Hands
    # ------------------------------------------------------------------

    def create_hand(self, hand: Hand) -> None:
        with self._lock:
            self._hands[hand.id] = copy.deepcopy(hand)

    def get_hand(self, section_id: str, player_id: str) -> Optional[Hand]:
        with self._lock:
            for hand in self._hands.values():
                if hand.section_id == section_id and hand.player_id == player_id:
                    return copy.deepcopy(hand)
            return None

    def list_hands(self, section_id: str) -> list[Hand]:
        with self._lock:
            return copy.deepcopy([h for h in self._hands.values() if h.section_id == section_id])

    def update_hand(self, hand: Hand) -> None:
        with self._lock:
            self._require(self._hands, hand.id, "Hand")
            self._hands[hand.id] = copy.deepcopy(hand)

    # ------------------------------------------------------------------
    # Tricks
    # ------------------------------------------------------------------

    def create_trick(self, trick: Trick) -> None:
        with self._lock:
            self._tricks[trick.id] = copy.deepcopy(trick)
            self._trick_cards.setdefault(trick.id, [])

    def get_open_trick(self, section_id: str) -> Optional[Trick]:
        with self._lock:
            for trick in self._tricks.values():
                if trick.section_id == section_id and trick.completed_at is None:
                    return copy.deepcopy(trick)
            return None

    def list_tricks(self, section_id: str) -> list[Trick]:
        with self._lock:
            tricks = [t for t in self._tricks.values() if t.section_id == section_id]
            return copy.deepcopy(sorted(tricks, key=lambda t: t.trick_number))

    def update_trick(self, trick: Trick) -> None:
        with self._lock:
            self._require(self._tricks, trick.id, "Trick")
            self._tricks[trick.id] = copy.deepcopy(trick)

    def append_trick_card(self, trick_card: TrickCard) -> None:
        with self._lock:
            self._require(self._tricks, trick_card.trick_id, "Trick")
            self._trick_cards[trick_card.trick_id].append(copy.deepcopy(trick_card))

    def list_trick_cards(self, trick_id: str) -> list[TrickCard]:
        with self._lock:
            return copy.deepcopy(self._trick_cards.get(trick_id, []))

    @staticmethod
    def _require(table: dict, key: str, kind: str):
        if key not in table:
            raise KeyError(f"{kind} {key} not found")
