"""Procedural facade over GameEngine that reports failure by return value."""
import logging
from typing import Optional

from jossing.engine import GameEngine, GameError

logger = logging.getLogger(__name__)


class GameManager:
    """Boolean / optional-result surface for callers that do not handle exceptions.

    The most recent rejection is kept in last_error so a caller can still
    tell a soft rejection (retryable) from a hard one.
    """

    def __init__(self, engine: Optional[GameEngine] = None):
        self.engine = engine or GameEngine()
        self.last_error: Optional[GameError] = None

    def _rejected(self, action: str, error: GameError):
        self.last_error = error
        logger.info(f"{action} rejected ({error.code}): {error}")

    def create_session(self, admin_name: str, game_type: str = "up", scoring_system: str = "classic",
                       max_players: int = 6, dealer_restriction: Optional[bool] = None) -> Optional[dict]:
        try:
            return self.engine.create_session(admin_name, game_type, scoring_system, max_players, dealer_restriction)
        except GameError as e:
            self._rejected("create_session", e)
            return None

    def join_session(self, session_id: str, player_name: str) -> Optional[dict]:
        try:
            return self.engine.join_session(session_id, player_name)
        except GameError as e:
            self._rejected("join_session", e)
            return None

    def leave_session(self, player_id: str) -> bool:
        try:
            self.engine.leave_session(player_id)
            return True
        except GameError as e:
            self._rejected("leave_session", e)
            return False

    def start_game(self, session_id: str, admin_player_id: str) -> bool:
        try:
            self.engine.start_game(session_id, admin_player_id)
            return True
        except GameError as e:
            self._rejected("start_game", e)
            return False

    def place_bid(self, player_id: str, bid: int) -> bool:
        try:
            self.engine.place_bid(player_id, bid)
            return True
        except GameError as e:
            self._rejected("place_bid", e)
            return False

    def play_card(self, player_id: str, card) -> bool:
        try:
            self.engine.play_card(player_id, card)
            return True
        except GameError as e:
            self._rejected("play_card", e)
            return False

    def add_ai_players(self, session_id: str, difficulty: str = "medium", count: int = 1) -> bool:
        try:
            self.engine.add_ai_players(session_id, difficulty, count)
            return True
        except GameError as e:
            self._rejected("add_ai_players", e)
            return False

    def remove_ai_player(self, session_id: str, player_id: str, requester_id: str) -> dict:
        try:
            return self.engine.remove_ai_player(session_id, player_id, requester_id)
        except GameError as e:
            self._rejected("remove_ai_player", e)
            return {"success": False, "error": str(e), "code": e.code, "retryable": e.retryable}

    def get_game_state(self, player_id: str) -> Optional[dict]:
        try:
            return self.engine.get_game_state(player_id)
        except GameError as e:
            self._rejected("get_game_state", e)
            return None

    def get_final_game_stats(self, session_id: str) -> Optional[dict]:
        try:
            return self.engine.get_final_game_stats(session_id)
        except GameError as e:
            self._rejected("get_final_game_stats", e)
            return None
