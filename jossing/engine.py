"""Game engine for Jøssing - handles all game logic."""
import logging
import random
import string
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Optional, Union

from jossing import config
from jossing import rules
from jossing.models import (
    Session, Player, SectionState, Hand, Trick, TrickCard, Bid, Card,
    GameType, ScoringSystem, SessionPhase, SectionPhase, AIDifficulty,
    SUIT_NAMES, utcnow,
)
from jossing.store import GameStore, InMemoryStore
from jossing.events import EventBus
from jossing.game_logger import GameLogger
from jossing.ai.heuristics import GameContext
from jossing.ai.manager import AIManager, parse_difficulty, generate_ai_name
from jossing.ai.pacing import ThinkingDelay

logger = logging.getLogger(__name__)

SESSION_CODE_ALPHABET = string.ascii_uppercase + string.digits
SESSION_CODE_LENGTH = 6
MAX_NAME_LENGTH = 50


class GameError(Exception):
    """Base exception for game errors."""
    code = "game_error"
    retryable = False


class InvalidMoveError(GameError):
    """Raised when a player makes an invalid move. The same player may try again."""
    code = "invalid_move"
    retryable = True


class InvalidPhaseError(GameError):
    """Raised when an action is attempted in the wrong phase."""
    code = "invalid_phase"


class NotFoundError(GameError):
    """Raised for unknown sessions, players or sections."""
    code = "not_found"


class CapacityError(GameError):
    """Raised when a session is full or has too few players to start."""
    code = "capacity"


class PermissionDeniedError(GameError):
    """Raised when a non-admin attempts an admin-only action."""
    code = "permission_denied"


class GameEngine:
    """Manages sessions and enforces the rules of Jøssing.

    All state lives in the injected store. Every mutating call validates
    first and writes afterwards, so a rejected action leaves the store
    untouched. Calls for the same session are serialized by a per-session lock.
    """

    def __init__(self, store: Optional[GameStore] = None, events: Optional[EventBus] = None,
                 ai: Optional[AIManager] = None, rng: Optional[random.Random] = None,
                 clock=time.time, turn_timeout: float = config.TURN_TIMEOUT_SECONDS,
                 logs_dir: str = config.GAME_LOGS_DIR,
                 dealer_restriction: bool = config.DEALER_RESTRICTION,
                 think_scale: float = config.AI_THINK_SCALE):
        self.store = store if store is not None else InMemoryStore()
        self.events = events if events is not None else EventBus()
        self.rng = rng or random.Random()
        if ai is None:
            ai = AIManager(
                rng=random.Random(self.rng.getrandbits(32)),
                delay=ThinkingDelay(scale=think_scale),
            )
        self.ai = ai
        self.clock = clock
        self.turn_timeout = turn_timeout
        self.logs_dir = logs_dir
        self.default_dealer_restriction = dealer_restriction
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._game_loggers: dict[str, GameLogger] = {}

    @contextmanager
    def _session_lock(self, session_id: str):
        with self._locks_guard:
            lock = self._locks.setdefault(session_id, threading.Lock())
        with lock:
            yield

    # === Session Setup ===

    def create_session(self, admin_name: str, game_type: Union[str, GameType] = GameType.UP,
                       scoring_system: Union[str, ScoringSystem] = ScoringSystem.CLASSIC,
                       max_players: int = rules.MAX_PLAYERS,
                       dealer_restriction: Optional[bool] = None) -> dict:
        """Create a session with its admin seated at position 1."""
        name = self._validate_name(admin_name)
        game_type = self._parse_option(GameType, game_type, "game type")
        scoring_system = self._parse_option(ScoringSystem, scoring_system, "scoring system")
        if isinstance(max_players, bool) or not isinstance(max_players, int):
            raise InvalidMoveError("max_players must be an integer")
        if not rules.MIN_PLAYERS <= max_players <= rules.MAX_PLAYERS:
            raise InvalidMoveError(
                f"max_players must be between {rules.MIN_PLAYERS} and {rules.MAX_PLAYERS}"
            )
        if dealer_restriction is None:
            dealer_restriction = self.default_dealer_restriction

        session_id = self._new_session_code()
        player_id = str(uuid.uuid4())
        session = Session(
            id=session_id,
            admin_player_id=player_id,
            game_type=game_type,
            scoring_system=scoring_system,
            max_players=max_players,
            dealer_restriction=bool(dealer_restriction),
        )
        admin = Player(id=player_id, session_id=session_id, name=name, position=1, is_admin=True)
        self.store.create_session(session)
        self.store.create_player(admin)

        logger.info(f"Session {session_id} created by {name} ({game_type.value}, {scoring_system.value})")
        self.events.publish(session_id, "player_joined", {"player": admin.to_dict()})
        return {"session_id": session_id, "player_id": player_id}

    def join_session(self, session_id: str, player_name: str) -> dict:
        name = self._validate_name(player_name)
        with self._session_lock(session_id):
            session = self._get_session(session_id)
            if session.phase != SessionPhase.WAITING:
                raise InvalidPhaseError("Game has already started")
            players = self.store.list_players(session_id)
            if len(players) >= session.max_players:
                raise CapacityError("Session is full")

            player = Player(
                id=str(uuid.uuid4()),
                session_id=session_id,
                name=name,
                position=len(players) + 1,
            )
            self.store.create_player(player)

        logger.info(f"{name} joined session {session_id} at position {player.position}")
        self.events.publish(session_id, "player_joined", {"player": player.to_dict()})
        return {"player_id": player.id, "position": player.position}

    def leave_session(self, player_id: str) -> dict:
        """Remove a player before the game starts, or mark them disconnected during it."""
        player = self._get_player(player_id)
        session_id = player.session_id
        with self._session_lock(session_id):
            session = self._get_session(session_id)
            if session.phase == SessionPhase.WAITING:
                self.store.delete_player(player_id)
                self._resequence(session_id)
                if not self.store.list_players(session_id):
                    session.phase = SessionPhase.FINISHED
                    self.store.update_session(session)
                if player.is_ai:
                    self.ai.unregister(player_id)
            else:
                player.is_connected = False
                self.store.update_player(player)

            new_admin_id = None
            if player.is_admin and session.phase != SessionPhase.FINISHED:
                new_admin_id = self._reassign_admin(session, player_id)

        logger.info(f"{player.name} left session {session_id}")
        self.events.publish(session_id, "player_left", {
            "player_id": player_id,
            "player_name": player.name,
            "new_admin_id": new_admin_id,
        })
        return {"session_id": session_id, "player_id": player_id, "new_admin_id": new_admin_id}

    def set_connected(self, player_id: str, connected: bool) -> dict:
        player = self._get_player(player_id)
        with self._session_lock(player.session_id):
            player = self._get_player(player_id)
            player.is_connected = bool(connected)
            self.store.update_player(player)

        event = "player_connected" if connected else "player_disconnected"
        self.events.publish(player.session_id, event, {"player_id": player_id, "player_name": player.name})
        return player.to_dict()

    def add_ai_players(self, session_id: str, difficulty: Union[str, AIDifficulty] = AIDifficulty.MEDIUM,
                       count: int = 1, requester_id: Optional[str] = None) -> list[dict]:
        """Seat count AI players of the given difficulty."""
        try:
            difficulty = parse_difficulty(difficulty)
        except ValueError as e:
            raise InvalidMoveError(str(e))
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise InvalidMoveError("count must be a positive integer")

        added = []
        with self._session_lock(session_id):
            session = self._get_session(session_id)
            if requester_id is not None:
                self._require_admin(session, requester_id)
            if session.phase != SessionPhase.WAITING:
                raise InvalidPhaseError("AI players can only be added before the game starts")
            players = self.store.list_players(session_id)
            if len(players) + count > session.max_players:
                raise CapacityError(
                    f"Not enough seats: {session.max_players - len(players)} left, {count} requested"
                )

            for i in range(count):
                position = len(players) + i + 1
                name = f"{generate_ai_name(difficulty, self.rng)} {position}"
                player = Player(
                    id=f"ai-{difficulty.value}-{uuid.uuid4().hex[:12]}",
                    session_id=session_id,
                    name=name,
                    position=position,
                    is_ai=True,
                    ai_difficulty=difficulty,
                )
                self.store.create_player(player)
                self.ai.register(player.id, difficulty, name)
                added.append(player)

        for player in added:
            logger.info(f"AI {player.name} ({difficulty.value}) joined session {session_id}")
            self.events.publish(session_id, "player_joined", {"player": player.to_dict()})
        return [p.to_dict() for p in added]

    def remove_ai_player(self, session_id: str, player_id: str, requester_id: str) -> dict:
        with self._session_lock(session_id):
            session = self._get_session(session_id)
            self._require_admin(session, requester_id)
            if session.phase != SessionPhase.WAITING:
                raise InvalidPhaseError("AI players can only be removed before the game starts")
            player = self.store.get_player(player_id)
            if player is None or player.session_id != session_id:
                raise NotFoundError(f"Player {player_id} not found in session {session_id}")
            if not player.is_ai:
                raise InvalidMoveError("Only AI players can be removed")

            self.store.delete_player(player_id)
            self._resequence(session_id)
            self.ai.unregister(player_id)
            players = self.store.list_players(session_id)

        logger.info(f"AI {player.name} removed from session {session_id}")
        self.events.publish(session_id, "player_left", {"player_id": player_id, "player_name": player.name})
        return {
            "success": True,
            "removed_player_id": player_id,
            "players": [p.to_dict() for p in players],
        }

    def start_game(self, session_id: str, admin_player_id: str) -> dict:
        with self._session_lock(session_id):
            session = self._get_session(session_id)
            self._require_admin(session, admin_player_id)
            if session.phase != SessionPhase.WAITING:
                raise InvalidPhaseError("Game has already started")
            players = self.store.list_players(session_id)
            if len(players) < rules.MIN_PLAYERS:
                raise CapacityError(f"At least {rules.MIN_PLAYERS} players are needed to start")

            session.phase = SessionPhase.PLAYING
            session.current_section = 1
            self.store.update_session(session)
            logger.info(f"Game started in session {session_id} with {len(players)} players")
            self.events.publish(session_id, "game_started", {
                "players": [p.to_dict() for p in players],
                "total_sections": rules.total_sections(session.game_type),
            })

            self._deal_section(session)
            self._drive(session_id)
            return self._get_session(session_id).to_dict()

    # === Dealing ===

    def _deal_section(self, session: Session) -> SectionState:
        players = self.store.list_players(session.id)
        by_position = {p.position: p for p in players}
        n = len(players)
        number = session.current_section

        hand_size = rules.cards_per_section(number, session.game_type, n)
        dealer = rules.dealer_position(number, n)
        deck = rules.shuffle(rules.create_deck(), self.rng)
        dealt = rules.deal(deck, n, hand_size)

        section = SectionState(
            id=str(uuid.uuid4()),
            session_id=session.id,
            section_number=number,
            hand_size=hand_size,
            dealer_position=dealer,
            trump_suit=dealt.trump_card.suit,
            trump_card_rank=dealt.trump_card.rank,
        )
        self.store.create_section(section)

        # Dealing starts with the seat after the dealer
        for k, cards in enumerate(dealt.hands):
            player = by_position[((dealer + k) % n) + 1]
            self.store.create_hand(Hand(
                id=str(uuid.uuid4()),
                section_id=section.id,
                player_id=player.id,
                cards=rules.sort_hand(cards),
            ))

        section.phase = SectionPhase.BIDDING
        section.current_bidder_position = rules.next_position(dealer, n)
        self.store.update_section(section)

        session.turn_started_at = self.clock()
        self.store.update_session(session)

        for player in players:
            self._ensure_ai(player)
        self.ai.new_section([p.id for p in players if p.is_ai])

        logger.info(
            f"Section {number} dealt in session {session.id}: {hand_size} cards, "
            f"dealer {dealer}, trump {dealt.trump_card}"
        )
        self.events.publish(session.id, "section_started", {
            "section_number": number,
            "hand_size": hand_size,
            "dealer_position": dealer,
            "trump_suit": SUIT_NAMES[section.trump_suit],
            "trump_card": dealt.trump_card.to_dict(),
            "current_bidder_position": section.current_bidder_position,
        })
        return section

    # === Bidding Phase ===

    def place_bid(self, player_id: str, bid: int) -> dict:
        """Place a bid for the current section."""
        player = self._get_player(player_id)
        with self._session_lock(player.session_id):
            placed = self._place_bid(player_id, bid)
            self._drive(player.session_id)
        return placed.to_dict()

    def _place_bid(self, player_id: str, value: int) -> Bid:
        player = self._get_player(player_id)
        session = self._get_session(player.session_id)
        self._validate_session_phase(session, SessionPhase.PLAYING)
        section = self._current_section(session)
        if section.phase != SectionPhase.BIDDING:
            raise InvalidPhaseError(f"Expected phase bidding, but in {section.phase.value}")

        players = self.store.list_players(session.id)
        n = len(players)

        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidMoveError("Bid must be a whole number")
        if section.bid_for(player_id):
            raise InvalidMoveError("Player has already bid this section")
        if player.position != section.current_bidder_position:
            raise InvalidMoveError(f"Not {player.name}'s turn to bid")
        if not 0 <= value <= section.hand_size:
            raise InvalidMoveError(f"Bid must be between 0 and {section.hand_size}")
        forbidden = self._forbidden_bid(session, section, n)
        if value == forbidden:
            raise InvalidMoveError(f"Dealer may not bid {forbidden}: total bids would equal tricks available")

        options = rules.legal_bids(section.hand_size, forbidden)

        bid = Bid(player_id=player.id, player_name=player.name, bid_value=value)
        section.bids.append(bid)
        hand = self.store.get_hand(section.id, player.id)
        hand.bid = value
        self.store.update_hand(hand)

        logger.debug(f"{player.name} bids {value} in section {section.section_number} of {session.id}")
        self.events.publish(session.id, "bid_placed", {
            "player_id": player.id,
            "player_name": player.name,
            "position": player.position,
            "bid": value,
        })

        if len(section.bids) == n:
            position_of = {p.id: p.position for p in players}
            bids = {position_of[b.player_id]: b.bid_value for b in section.bids}
            lead = rules.select_lead_position(bids, section.dealer_position, n)
            section.phase = SectionPhase.PLAYING
            section.current_bidder_position = None
            section.lead_player_position = lead
            self.store.update_section(section)
            self.store.create_trick(Trick(
                id=str(uuid.uuid4()),
                section_id=section.id,
                trick_number=1,
                lead_player_position=lead,
            ))
            self.events.publish(session.id, "bidding_completed", {
                "bids": [b.to_dict() for b in section.bids],
                "total_bids": sum(bids.values()),
                "lead_player_position": lead,
            })
        else:
            section.current_bidder_position = rules.next_position(player.position, n)
            self.store.update_section(section)

        session.turn_started_at = self.clock()
        self.store.update_session(session)

        self.ai.observe_bid(player.id, value, [p.id for p in players if p.is_ai])
        self._log_step(session.id, ", ".join(str(b) for b in options), f"{player.name}: bid {value}")
        return bid

    def _forbidden_bid(self, session: Session, section: SectionState, num_players: int) -> Optional[int]:
        """The bid the dealer may not make, if the session plays with that restriction."""
        if not session.dealer_restriction or len(section.bids) != num_players - 1:
            return None
        return rules.forbidden_bid(section.hand_size, sum(b.bid_value for b in section.bids))

    # === Playing Phase ===

    def play_card(self, player_id: str, card) -> dict:
        """Play a card to the current trick.

        card may be a Card, an id such as "Q_hearts", or a dict with
        suit and rank (or id).
        """
        player = self._get_player(player_id)
        with self._session_lock(player.session_id):
            result = self._play_card(player_id, card)
            self._drive(player.session_id)
        return result

    def _play_card(self, player_id: str, card_input) -> dict:
        card = self._coerce_card(card_input)
        player = self._get_player(player_id)
        session = self._get_session(player.session_id)
        self._validate_session_phase(session, SessionPhase.PLAYING)
        section = self._current_section(session)
        if section.phase != SectionPhase.PLAYING:
            raise InvalidPhaseError(f"Expected phase playing, but in {section.phase.value}")
        trick = self.store.get_open_trick(section.id)
        if trick is None:
            raise InvalidPhaseError("No active trick")

        trick_cards = self.store.list_trick_cards(trick.id)
        players = self.store.list_players(session.id)
        n = len(players)

        if player.position != self._next_to_play(trick, trick_cards, n):
            raise InvalidMoveError(f"Not {player.name}'s turn")

        hand = self.store.get_hand(section.id, player.id)
        if not hand.has_card(card):
            raise InvalidMoveError(f"Card {card.id} not in hand")

        options = rules.legal_cards(hand.cards, trick.leading_suit)
        if card not in options:
            raise InvalidMoveError(f"Must follow suit ({SUIT_NAMES[trick.leading_suit]})")

        hand.cards.remove(card)
        self.store.update_hand(hand)
        trick_card = TrickCard(
            trick_id=trick.id,
            player_id=player.id,
            player_position=player.position,
            card=card,
        )
        self.store.append_trick_card(trick_card)
        trick_cards.append(trick_card)
        if trick.leading_suit is None:
            trick.leading_suit = card.suit
            self.store.update_trick(trick)

        logger.debug(f"{player.name} plays {card} in trick {trick.trick_number} of {session.id}")
        self.events.publish(session.id, "card_played", {
            "player_id": player.id,
            "player_name": player.name,
            "position": player.position,
            "card": card.to_dict(),
            "trick_number": trick.trick_number,
        })
        self.ai.observe_card(player.id, card, [p.id for p in players if p.is_ai])
        self._log_step(
            session.id,
            ", ".join(rules.card_to_string(c) for c in options),
            f"{player.name}: play {rules.card_to_string(card)}",
        )

        result = {"card": card.to_dict(), "trick_complete": False}
        if len(trick_cards) == n:
            result.update(self._complete_trick(session, section, trick, trick_cards, players))

        session.turn_started_at = self.clock() if session.phase == SessionPhase.PLAYING else None
        self.store.update_session(session)
        return result

    def _complete_trick(self, session: Session, section: SectionState, trick: Trick,
                        trick_cards: list[TrickCard], players: list[Player]) -> dict:
        played = {tc.player_position: tc.card for tc in trick_cards}
        winner_position = rules.resolve_trick_winner(
            played, trick.lead_player_position, section.trump_suit, trick.leading_suit
        )
        trick.winner_position = winner_position
        trick.completed_at = utcnow()
        self.store.update_trick(trick)

        winner = next(p for p in players if p.position == winner_position)
        winner_hand = self.store.get_hand(section.id, winner.id)
        winner_hand.tricks_won += 1
        self.store.update_hand(winner_hand)

        self.events.publish(session.id, "trick_completed", {
            "trick_number": trick.trick_number,
            "winner_position": winner_position,
            "winner_id": winner.id,
            "winner_name": winner.name,
            "cards": [tc.to_dict() for tc in trick_cards],
        })

        result = {
            "trick_complete": True,
            "trick_winner_position": winner_position,
            "trick_winner_id": winner.id,
        }

        if trick.trick_number == section.hand_size:
            result["section_complete"] = True
            result.update(self._complete_section(session, section, players))
        else:
            self.store.create_trick(Trick(
                id=str(uuid.uuid4()),
                section_id=section.id,
                trick_number=trick.trick_number + 1,
                lead_player_position=winner_position,
            ))
        return result

    def _next_to_play(self, trick: Trick, trick_cards: list[TrickCard], num_players: int) -> int:
        return ((trick.lead_player_position - 1 + len(trick_cards)) % num_players) + 1

    # === Scoring Phase ===

    def _complete_section(self, session: Session, section: SectionState, players: list[Player]) -> dict:
        hands = {h.player_id: h for h in self.store.list_hands(section.id)}
        section_scores = {}
        for player in players:
            hand = hands[player.id]
            points = rules.calculate_score(hand.bid, hand.tricks_won, session.scoring_system)
            hand.section_score = points
            self.store.update_hand(hand)
            player.total_score += points
            self.store.update_player(player)
            section_scores[player.id] = points

        section.phase = SectionPhase.COMPLETED
        self.store.update_section(section)

        totals = {p.id: p.total_score for p in players}
        logger.info(f"Section {section.section_number} completed in session {session.id}")
        self.events.publish(session.id, "section_completed", {
            "section_number": section.section_number,
            "results": [
                {
                    "player_id": p.id,
                    "bid": hands[p.id].bid,
                    "tricks_won": hands[p.id].tricks_won,
                    "points": section_scores[p.id],
                }
                for p in players
            ],
            "scores": section_scores,
            "totals": totals,
        })

        if session.current_section >= rules.total_sections(session.game_type):
            session.phase = SessionPhase.FINISHED
            session.turn_started_at = None
            self.store.update_session(session)
            top = max(totals.values())
            winners = [p.id for p in players if p.total_score == top]
            logger.info(f"Game finished in session {session.id}")
            self.events.publish(session.id, "game_ended", {"final_scores": totals, "winners": winners})
            self._release_session(session.id, players)
            return {"section_scores": section_scores, "game_finished": True}

        session.current_section += 1
        self.store.update_session(session)
        self._deal_section(session)
        return {"section_scores": section_scores, "game_finished": False}

    def _release_session(self, session_id: str, players: list[Player]):
        """Drop the in-process helpers of a finished session. Its events stay pollable."""
        for player in players:
            if player.is_ai:
                self.ai.unregister(player.id)
        self._game_loggers.pop(session_id, None)
        with self._locks_guard:
            self._locks.pop(session_id, None)

    # === AI Turns and Deadlines ===

    def expire_overdue_turns(self, session_id: str) -> int:
        """Act for every seat whose turn deadline has passed. Returns the number of actions taken."""
        with self._session_lock(session_id):
            self._get_session(session_id)
            return self._drive(session_id)

    def _drive(self, session_id: str) -> int:
        """Let AIs act and expire overdue turns until a human is on turn in time."""
        actions = 0
        while True:
            session = self._get_session(session_id)
            turn = self._current_turn(session)
            if turn is None:
                return actions
            kind, actor = turn
            if actor.is_ai:
                if not self._ai_ready(session, actor):
                    return actions
                self._ai_act(session, kind, actor)
            elif self._turn_expired(session):
                self._auto_act(session, kind, actor)
            else:
                return actions
            actions += 1

    def _current_turn(self, session: Session) -> Optional[tuple[str, Player]]:
        if session.phase != SessionPhase.PLAYING:
            return None
        section = self.store.get_section(session.id, session.current_section)
        if section is None:
            return None
        by_position = {p.position: p for p in self.store.list_players(session.id)}

        if section.phase == SectionPhase.BIDDING:
            return "bid", by_position[section.current_bidder_position]
        if section.phase == SectionPhase.PLAYING:
            trick = self.store.get_open_trick(section.id)
            if trick is None:
                return None
            trick_cards = self.store.list_trick_cards(trick.id)
            return "play", by_position[self._next_to_play(trick, trick_cards, len(by_position))]
        return None

    def _turn_expired(self, session: Session) -> bool:
        if self.turn_timeout <= 0 or session.turn_started_at is None:
            return False
        return self.clock() - session.turn_started_at >= self.turn_timeout

    def _turn_deadline(self, session: Session) -> Optional[float]:
        if self.turn_timeout <= 0 or session.turn_started_at is None:
            return None
        return session.turn_started_at + self.turn_timeout

    def _ai_ready(self, session: Session, actor: Player) -> bool:
        """An AI acts once its thinking time has passed since its turn began."""
        self._ensure_ai(actor)
        thinking = self.ai.thinking_time(actor.id)
        if thinking <= 0 or session.turn_started_at is None:
            return True
        return self.clock() >= session.turn_started_at + thinking

    def _ai_act(self, session: Session, kind: str, actor: Player):
        self._ensure_ai(actor)
        section = self._current_section(session)
        hand = self.store.get_hand(section.id, actor.id)
        players = self.store.list_players(session.id)
        n = len(players)

        if kind == "bid":
            options = rules.legal_bids(section.hand_size, self._forbidden_bid(session, section, n))
            value = self.ai.request_bid(
                actor.id,
                hand.cards,
                section.hand_size,
                section.trump_suit,
                rules.clockwise_distance(section.dealer_position, actor.position, n),
                [b.bid_value for b in section.bids],
            )
            # Steer onto the nearest legal bid if the dealer restriction bites
            value = min(options, key=lambda b: (abs(b - value), b))
            self._place_bid(actor.id, value)
            return

        trick = self.store.get_open_trick(section.id)
        trick_cards = self.store.list_trick_cards(trick.id)
        context = self._build_context(session, section, actor, hand, trick, trick_cards, players)
        card = self.ai.request_card(
            actor.id,
            hand.cards,
            [tc.card for tc in trick_cards],
            section.trump_suit,
            trick.leading_suit,
            context,
        )
        self._play_card(actor.id, card)

    def _auto_act(self, session: Session, kind: str, actor: Player):
        """Take the default action for a player whose turn deadline passed."""
        section = self._current_section(session)
        hand = self.store.get_hand(section.id, actor.id)
        logger.warning(f"Turn expired for {actor.name} in session {session.id}; acting on their behalf")

        if kind == "bid":
            n = len(self.store.list_players(session.id))
            value = min(rules.legal_bids(section.hand_size, self._forbidden_bid(session, section, n)))
            self.events.publish(session.id, "turn_expired", {
                "player_id": actor.id, "action": "bid", "bid": value,
            })
            self._place_bid(actor.id, value)
            return

        trick = self.store.get_open_trick(section.id)
        options = rules.legal_cards(hand.cards, trick.leading_suit)
        card = min(options, key=lambda c: (c.suit == section.trump_suit, c.value, c.suit))
        self.events.publish(session.id, "turn_expired", {
            "player_id": actor.id, "action": "play", "card": card.to_dict(),
        })
        self._play_card(actor.id, card)

    def _build_context(self, session: Session, section: SectionState, player: Player, hand: Hand,
                       trick: Trick, trick_cards: list[TrickCard], players: list[Player]) -> GameContext:
        position_of = {p.id: p.position for p in players}
        return GameContext(
            section_number=section.section_number,
            total_sections=rules.total_sections(session.game_type),
            hand_size=section.hand_size,
            position=player.position,
            num_players=len(players),
            bid=hand.bid,
            tricks_won=hand.tricks_won,
            tricks_played=trick.trick_number - 1,
            players_after_me=len(players) - len(trick_cards) - 1,
            bids={position_of[b.player_id]: b.bid_value for b in section.bids},
            scores={p.id: p.total_score for p in players},
        )

    def _ensure_ai(self, player: Player):
        """Register a strategy for an AI seat that the AI manager does not know yet."""
        if player.is_ai and not self.ai.is_ai(player.id):
            self.ai.register(player.id, player.ai_difficulty or AIDifficulty.MEDIUM, player.name)

    # === State Queries ===

    def get_game_state(self, player_id: str) -> dict:
        """Snapshot of the session as seen by one player."""
        player = self._get_player(player_id)
        with self._session_lock(player.session_id):
            self._drive(player.session_id)
            return self._snapshot(player_id)

    def _snapshot(self, viewer_id: str) -> dict:
        viewer = self._get_player(viewer_id)
        session = self._get_session(viewer.session_id)
        players = self.store.list_players(session.id)

        state = {
            "session": session.to_dict(),
            "players": [p.to_dict() for p in players],
            "viewer": {"player_id": viewer.id, "position": viewer.position, "is_admin": viewer.is_admin},
            "total_sections": rules.total_sections(session.game_type),
            "section": None,
            "hand": [],
            "card_counts": {},
            "tricks_won": {},
            "current_trick": None,
            "last_trick": None,
            "previous_section": None,
            "turn": None,
            "is_player_turn": False,
            "legal_bids": [],
            "legal_cards": [],
            "section_scores": {},
            "scores": {p.id: p.total_score for p in players},
        }

        section = None
        if session.current_section > 0:
            section = self.store.get_section(session.id, session.current_section)
        if section is None:
            return state

        hands = {h.player_id: h for h in self.store.list_hands(section.id)}
        own_hand = hands.get(viewer.id)
        state["section"] = section.to_dict()
        state["hand"] = [c.to_dict() for c in rules.sort_hand(own_hand.cards)] if own_hand else []
        state["card_counts"] = {pid: len(h.cards) for pid, h in hands.items()}
        state["tricks_won"] = {pid: h.tricks_won for pid, h in hands.items()}
        if section.phase == SectionPhase.COMPLETED:
            state["section_scores"] = {pid: h.section_score for pid, h in hands.items()}

        trick = self.store.get_open_trick(section.id)
        if trick is not None:
            state["current_trick"] = trick.to_dict(self.store.list_trick_cards(trick.id))
        completed = [t for t in self.store.list_tricks(section.id) if t.is_complete]
        if completed:
            last = completed[-1]
            state["last_trick"] = last.to_dict(self.store.list_trick_cards(last.id))

        if section.section_number > 1:
            previous = self.store.get_section(session.id, section.section_number - 1)
            if previous is not None:
                state["previous_section"] = self._section_summary(previous)
                if state["last_trick"] is None:
                    state["last_trick"] = state["previous_section"]["last_trick"]

        turn = self._current_turn(session)
        if turn is not None:
            kind, actor = turn
            state["turn"] = {
                "kind": kind,
                "player_id": actor.id,
                "position": actor.position,
                "deadline": self._turn_deadline(session),
            }
            if actor.id == viewer.id and own_hand is not None:
                state["is_player_turn"] = True
                if kind == "bid":
                    forbidden = self._forbidden_bid(session, section, len(players))
                    state["legal_bids"] = rules.legal_bids(section.hand_size, forbidden)
                else:
                    state["legal_cards"] = [
                        c.to_dict() for c in rules.legal_cards(own_hand.cards, trick.leading_suit)
                    ]
        return state

    def _section_summary(self, section: SectionState) -> dict:
        """Scores and closing trick of a completed section."""
        hands = self.store.list_hands(section.id)
        completed = [t for t in self.store.list_tricks(section.id) if t.is_complete]
        last_trick = None
        if completed:
            last_trick = completed[-1].to_dict(self.store.list_trick_cards(completed[-1].id))
        return {
            "section_number": section.section_number,
            "section_scores": {h.player_id: h.section_score for h in hands},
            "tricks_won": {h.player_id: h.tricks_won for h in hands},
            "last_trick": last_trick,
        }

    def get_final_game_stats(self, session_id: str) -> dict:
        """Rankings, winners and per-section history of a finished game."""
        session = self._get_session(session_id)
        if session.phase != SessionPhase.FINISHED:
            raise InvalidPhaseError("Game is not finished")

        players = self.store.list_players(session_id)
        names = {p.id: p.name for p in players}
        exact_bids = {p.id: 0 for p in players}
        history = []
        for section in self.store.list_sections(session_id):
            hands = self.store.list_hands(section.id)
            results = []
            for hand in sorted(hands, key=lambda h: names.get(h.player_id, "")):
                if hand.bid is not None and hand.bid == hand.tricks_won and hand.player_id in exact_bids:
                    exact_bids[hand.player_id] += 1
                results.append({
                    "player_id": hand.player_id,
                    "player_name": names.get(hand.player_id),
                    "bid": hand.bid,
                    "tricks_won": hand.tricks_won,
                    "points": hand.section_score,
                })
            history.append({
                "section_number": section.section_number,
                "hand_size": section.hand_size,
                "dealer_position": section.dealer_position,
                "trump_suit": SUIT_NAMES[section.trump_suit],
                "results": results,
            })

        sections_played = len(history)
        ordered = sorted(players, key=lambda p: (-p.total_score, p.position))
        rankings = []
        for i, player in enumerate(ordered):
            if i > 0 and player.total_score == ordered[i - 1].total_score:
                rank = rankings[-1]["rank"]
            else:
                rank = i + 1
            rankings.append({
                "rank": rank,
                "player_id": player.id,
                "player_name": player.name,
                "is_ai": player.is_ai,
                "total_score": player.total_score,
                "exact_bids": exact_bids[player.id],
                "accuracy": exact_bids[player.id] / sections_played if sections_played else 0.0,
            })

        top = ordered[0].total_score if ordered else 0
        return {
            "session_id": session_id,
            "game_type": session.game_type.value,
            "scoring_system": session.scoring_system.value,
            "sections_played": sections_played,
            "rankings": rankings,
            "winners": [p.id for p in ordered if p.total_score == top],
            "sections": history,
        }

    # === Helper Methods ===

    def _get_session(self, session_id: str) -> Session:
        session = self.store.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        return session

    def _get_player(self, player_id: str) -> Player:
        player = self.store.get_player(player_id)
        if player is None:
            raise NotFoundError(f"Player {player_id} not found")
        return player

    def _current_section(self, session: Session) -> SectionState:
        section = self.store.get_section(session.id, session.current_section)
        if section is None:
            raise NotFoundError(f"Section {session.current_section} of session {session.id} not found")
        return section

    def _validate_session_phase(self, session: Session, expected: SessionPhase):
        if session.phase != expected:
            raise InvalidPhaseError(f"Expected session {expected.value}, but it is {session.phase.value}")

    def _require_admin(self, session: Session, player_id: str):
        if player_id != session.admin_player_id:
            raise PermissionDeniedError("Only the session admin can do that")

    def _resequence(self, session_id: str):
        """Close gaps in seat positions after a player leaves the lobby."""
        for i, player in enumerate(self.store.list_players(session_id), start=1):
            if player.position != i:
                player.position = i
                self.store.update_player(player)

    def _reassign_admin(self, session: Session, leaving_id: str) -> Optional[str]:
        candidates = [
            p for p in self.store.list_players(session.id)
            if p.id != leaving_id and p.is_connected
        ]
        if not candidates:
            return None
        humans = [p for p in candidates if p.is_human]
        new_admin = min(humans or candidates, key=lambda p: p.position)

        old_admin = self.store.get_player(leaving_id)
        if old_admin is not None:
            old_admin.is_admin = False
            self.store.update_player(old_admin)
        new_admin.is_admin = True
        self.store.update_player(new_admin)
        session.admin_player_id = new_admin.id
        self.store.update_session(session)
        logger.info(f"{new_admin.name} is now admin of session {session.id}")
        return new_admin.id

    def _new_session_code(self) -> str:
        while True:
            code = "".join(self.rng.choice(SESSION_CODE_ALPHABET) for _ in range(SESSION_CODE_LENGTH))
            if self.store.get_session(code) is None:
                return code

    def _log_step(self, session_id: str, options: str, executed: str):
        if not self.logs_dir:
            return
        if session_id not in self._game_loggers:
            self._game_loggers[session_id] = GameLogger(session_id, self.logs_dir)
        self._game_loggers[session_id].log_step(options, executed)

    @staticmethod
    def _validate_name(name) -> str:
        if not isinstance(name, str) or not name.strip():
            raise InvalidMoveError("Name is required")
        name = name.strip()
        if len(name) > MAX_NAME_LENGTH:
            raise InvalidMoveError(f"Name must be at most {MAX_NAME_LENGTH} characters")
        return name

    @staticmethod
    def _parse_option(enum_cls, value, label: str):
        if isinstance(value, enum_cls):
            return value
        try:
            return enum_cls(value)
        except ValueError:
            raise InvalidMoveError(f"Invalid {label}: {value!r}")

    @staticmethod
    def _coerce_card(value) -> Card:
        if isinstance(value, Card):
            return value
        if not isinstance(value, (str, dict)):
            raise InvalidMoveError(f"Invalid card: {value!r}")
        try:
            if isinstance(value, str):
                return Card.from_id(value)
            return Card.from_dict(value)
        except (ValueError, KeyError, AttributeError) as e:
            raise InvalidMoveError(f"Invalid card: {value!r}") from e
