"""Database connection and queries."""
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

import psycopg2
from psycopg2.extras import RealDictCursor, Json

from jossing.config import DATABASE_CONFIG
from jossing.models import (
    Session, Player, SectionState, Hand, Trick, TrickCard, Bid, Card,
    GameType, ScoringSystem, SessionPhase, SectionPhase, AIDifficulty,
    SUIT_NAMES, RANK_NAMES, parse_suit, parse_rank,
)

SCHEMA = '''
CREATE TABLE IF NOT EXISTS sessions (
    id                  TEXT PRIMARY KEY,
    admin_player_id     TEXT NOT NULL,
    game_type           TEXT NOT NULL,
    scoring_system      TEXT NOT NULL,
    max_players         INTEGER NOT NULL,
    current_section     INTEGER NOT NULL DEFAULT 0,
    phase               TEXT NOT NULL,
    dealer_restriction  BOOLEAN NOT NULL DEFAULT FALSE,
    turn_started_at     DOUBLE PRECISION,
    created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS players (
    id              TEXT PRIMARY KEY,
    session_id      TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
    name            TEXT NOT NULL,
    position        INTEGER NOT NULL,
    is_admin        BOOLEAN NOT NULL DEFAULT FALSE,
    total_score     INTEGER NOT NULL DEFAULT 0,
    is_connected    BOOLEAN NOT NULL DEFAULT TRUE,
    is_ai           BOOLEAN NOT NULL DEFAULT FALSE,
    ai_difficulty   TEXT,
    joined_at       TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS sections (
    id                      TEXT PRIMARY KEY,
    session_id              TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
    section_number          INTEGER NOT NULL,
    hand_size               INTEGER NOT NULL,
    dealer_position         INTEGER NOT NULL,
    trump_suit              TEXT NOT NULL,
    trump_card_rank         TEXT NOT NULL,
    phase                   TEXT NOT NULL,
    current_bidder_position INTEGER,
    lead_player_position    INTEGER,
    bids                    JSONB NOT NULL DEFAULT '[]',
    created_at              TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (session_id, section_number)
);

CREATE TABLE IF NOT EXISTS hands (
    id              TEXT PRIMARY KEY,
    section_id      TEXT NOT NULL REFERENCES sections(id) ON DELETE CASCADE,
    player_id       TEXT NOT NULL,
    cards           JSONB NOT NULL DEFAULT '[]',
    bid             INTEGER,
    tricks_won      INTEGER NOT NULL DEFAULT 0,
    section_score   INTEGER NOT NULL DEFAULT 0,
    UNIQUE (section_id, player_id)
);

CREATE TABLE IF NOT EXISTS tricks (
    id                      TEXT PRIMARY KEY,
    section_id              TEXT NOT NULL REFERENCES sections(id) ON DELETE CASCADE,
    trick_number            INTEGER NOT NULL,
    lead_player_position    INTEGER NOT NULL,
    leading_suit            TEXT,
    winner_position         INTEGER,
    completed_at            TIMESTAMPTZ
);

CREATE TABLE IF NOT EXISTS trick_cards (
    id              SERIAL PRIMARY KEY,
    trick_id        TEXT NOT NULL REFERENCES tricks(id) ON DELETE CASCADE,
    player_id       TEXT NOT NULL,
    player_position INTEGER NOT NULL,
    card_id         TEXT NOT NULL,
    played_at       TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
'''


@contextmanager
def get_db_connection(config: Optional[dict] = None):
    """Get a database connection context manager."""
    conn = psycopg2.connect(**(config or DATABASE_CONFIG))
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def get_db_cursor(commit=False, config: Optional[dict] = None):
    """Get a database cursor context manager. Rolls back if the block raises."""
    with get_db_connection(config) as conn:
        cursor = conn.cursor(cursor_factory=RealDictCursor)
        try:
            yield cursor
            if commit:
                conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()


# Row conversion

def _session_from_row(row) -> Session:
    return Session(
        id=row['id'],
        admin_player_id=row['admin_player_id'],
        game_type=GameType(row['game_type']),
        scoring_system=ScoringSystem(row['scoring_system']),
        max_players=row['max_players'],
        current_section=row['current_section'],
        phase=SessionPhase(row['phase']),
        dealer_restriction=row['dealer_restriction'],
        turn_started_at=row['turn_started_at'],
        created_at=row['created_at'],
    )


def _player_from_row(row) -> Player:
    return Player(
        id=row['id'],
        session_id=row['session_id'],
        name=row['name'],
        position=row['position'],
        is_admin=row['is_admin'],
        total_score=row['total_score'],
        is_connected=row['is_connected'],
        is_ai=row['is_ai'],
        ai_difficulty=AIDifficulty(row['ai_difficulty']) if row['ai_difficulty'] else None,
        joined_at=row['joined_at'],
    )


def _bids_to_json(bids: list[Bid]) -> Json:
    return Json([{
        'player_id': b.player_id,
        'player_name': b.player_name,
        'bid_value': b.bid_value,
        'timestamp': b.timestamp.isoformat(),
    } for b in bids])


def _bids_from_json(data) -> list[Bid]:
    return [Bid(
        player_id=b['player_id'],
        player_name=b['player_name'],
        bid_value=b['bid_value'],
        timestamp=datetime.fromisoformat(b['timestamp']),
    ) for b in data or []]


def _section_from_row(row) -> SectionState:
    return SectionState(
        id=row['id'],
        session_id=row['session_id'],
        section_number=row['section_number'],
        hand_size=row['hand_size'],
        dealer_position=row['dealer_position'],
        trump_suit=parse_suit(row['trump_suit']),
        trump_card_rank=parse_rank(row['trump_card_rank']),
        phase=SectionPhase(row['phase']),
        current_bidder_position=row['current_bidder_position'],
        lead_player_position=row['lead_player_position'],
        bids=_bids_from_json(row['bids']),
        created_at=row['created_at'],
    )


def _hand_from_row(row) -> Hand:
    return Hand(
        id=row['id'],
        section_id=row['section_id'],
        player_id=row['player_id'],
        cards=[Card.from_id(card_id) for card_id in row['cards'] or []],
        bid=row['bid'],
        tricks_won=row['tricks_won'],
        section_score=row['section_score'],
    )


def _trick_from_row(row) -> Trick:
    return Trick(
        id=row['id'],
        section_id=row['section_id'],
        trick_number=row['trick_number'],
        lead_player_position=row['lead_player_position'],
        leading_suit=parse_suit(row['leading_suit']) if row['leading_suit'] else None,
        winner_position=row['winner_position'],
        completed_at=row['completed_at'],
    )


def _trick_card_from_row(row) -> TrickCard:
    return TrickCard(
        trick_id=row['trick_id'],
        player_id=row['player_id'],
        player_position=row['player_position'],
        card=Card.from_id(row['card_id']),
        played_at=row['played_at'],
    )


class PostgresStore:
    """Game store over PostgreSQL. Every call runs in its own transaction."""

    def __init__(self, config: Optional[dict] = None):
        self.config = config or DATABASE_CONFIG

    def _cursor(self, commit=False):
        return get_db_cursor(commit=commit, config=self.config)

    def init_schema(self):
        """Create the tables if they don't exist."""
        with self._cursor(commit=True) as cur:
            cur.execute(SCHEMA)

    # Sessions

    def create_session(self, session: Session) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute('''
                INSERT INTO sessions (id, admin_player_id, game_type, scoring_system, max_players,
                                      current_section, phase, dealer_restriction, turn_started_at, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ''', (session.id, session.admin_player_id, session.game_type.value,
                  session.scoring_system.value, session.max_players, session.current_section,
                  session.phase.value, session.dealer_restriction, session.turn_started_at,
                  session.created_at))

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._cursor() as cur:
            cur.execute('SELECT * FROM sessions WHERE id = %s', (session_id,))
            row = cur.fetchone()
            return _session_from_row(row) if row else None

    def update_session(self, session: Session) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute('''
                UPDATE sessions
                SET admin_player_id = %s, current_section = %s, phase = %s,
                    dealer_restriction = %s, turn_started_at = %s
                WHERE id = %s
            ''', (session.admin_player_id, session.current_section, session.phase.value,
                  session.dealer_restriction, session.turn_started_at, session.id))

    # Players

    def create_player(self, player: Player) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute('''
                INSERT INTO players (id, session_id, name, position, is_admin, total_score,
                                     is_connected, is_ai, ai_difficulty, joined_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ''', (player.id, player.session_id, player.name, player.position, player.is_admin,
                  player.total_score, player.is_connected, player.is_ai,
                  player.ai_difficulty.value if player.ai_difficulty else None, player.joined_at))

    def get_player(self, player_id: str) -> Optional[Player]:
        with self._cursor() as cur:
            cur.execute('SELECT * FROM players WHERE id = %s', (player_id,))
            row = cur.fetchone()
            return _player_from_row(row) if row else None

    def list_players(self, session_id: str) -> list[Player]:
        with self._cursor() as cur:
            cur.execute('SELECT * FROM players WHERE session_id = %s ORDER BY position', (session_id,))
            return [_player_from_row(r) for r in cur.fetchall()]

    def update_player(self, player: Player) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute('''
                UPDATE players
                SET name = %s, position = %s, is_admin = %s, total_score = %s, is_connected = %s
                WHERE id = %s
            ''', (player.name, player.position, player.is_admin, player.total_score,
                  player.is_connected, player.id))

    def delete_player(self, player_id: str) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute('DELETE FROM players WHERE id = %s', (player_id,))

    # Sections

    def create_section(self, section: SectionState) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute('''
                INSERT INTO sections (id, session_id, section_number, hand_size, dealer_position,
                                      trump_suit, trump_card_rank, phase, current_bidder_position,
                                      lead_player_position, bids, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ''', (section.id, section.session_id, section.section_number, section.hand_size,
                  section.dealer_position, SUIT_NAMES[section.trump_suit],
                  RANK_NAMES[section.trump_card_rank], section.phase.value,
                  section.current_bidder_position, section.lead_player_position,
                  _bids_to_json(section.bids), section.created_at))

    def get_section(self, session_id: str, section_number: int) -> Optional[SectionState]:
        with self._cursor() as cur:
            cur.execute(
                'SELECT * FROM sections WHERE session_id = %s AND section_number = %s',
                (session_id, section_number),
            )
            row = cur.fetchone()
            return _section_from_row(row) if row else None

    def list_sections(self, session_id: str) -> list[SectionState]:
        with self._cursor() as cur:
            cur.execute('SELECT * FROM sections WHERE session_id = %s ORDER BY section_number', (session_id,))
            return [_section_from_row(r) for r in cur.fetchall()]

    def update_section(self, section: SectionState) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute('''
                UPDATE sections
                SET phase = %s, current_bidder_position = %s, lead_player_position = %s, bids = %s
                WHERE id = %s
            ''', (section.phase.value, section.current_bidder_position,
                  section.lead_player_position, _bids_to_json(section.bids), section.id))

    # Hands

    def create_hand(self, hand: Hand) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute('''
                INSERT INTO hands (id, section_id, player_id, cards, bid, tricks_won, section_score)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
            ''', (hand.id, hand.section_id, hand.player_id, Json([c.id for c in hand.cards]),
                  hand.bid, hand.tricks_won, hand.section_score))

    def get_hand(self, section_id: str, player_id: str) -> Optional[Hand]:
        with self._cursor() as cur:
            cur.execute('SELECT * FROM hands WHERE section_id = %s AND player_id = %s', (section_id, player_id))
            row = cur.fetchone()
            return _hand_from_row(row) if row else None

    def list_hands(self, section_id: str) -> list[Hand]:
        with self._cursor() as cur:
            cur.execute('SELECT * FROM hands WHERE section_id = %s', (section_id,))
            return [_hand_from_row(r) for r in cur.fetchall()]

    def update_hand(self, hand: Hand) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute('''
                UPDATE hands SET cards = %s, bid = %s, tricks_won = %s, section_score = %s
                WHERE id = %s
            ''', (Json([c.id for c in hand.cards]), hand.bid, hand.tricks_won,
                  hand.section_score, hand.id))

    # Tricks

    def create_trick(self, trick: Trick) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute('''
                INSERT INTO tricks (id, section_id, trick_number, lead_player_position,
                                    leading_suit, winner_position, completed_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
            ''', (trick.id, trick.section_id, trick.trick_number, trick.lead_player_position,
                  SUIT_NAMES[trick.leading_suit] if trick.leading_suit else None,
                  trick.winner_position, trick.completed_at))

    def get_open_trick(self, section_id: str) -> Optional[Trick]:
        with self._cursor() as cur:
            cur.execute('''
                SELECT * FROM tricks WHERE section_id = %s AND completed_at IS NULL
                ORDER BY trick_number LIMIT 1
            ''', (section_id,))
            row = cur.fetchone()
            return _trick_from_row(row) if row else None

    def list_tricks(self, section_id: str) -> list[Trick]:
        with self._cursor() as cur:
            cur.execute('SELECT * FROM tricks WHERE section_id = %s ORDER BY trick_number', (section_id,))
            return [_trick_from_row(r) for r in cur.fetchall()]

    def update_trick(self, trick: Trick) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute('''
                UPDATE tricks SET leading_suit = %s, winner_position = %s, completed_at = %s
                WHERE id = %s
            ''', (SUIT_NAMES[trick.leading_suit] if trick.leading_suit else None,
                  trick.winner_position, trick.completed_at, trick.id))

    def append_trick_card(self, trick_card: TrickCard) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute('''
                INSERT INTO trick_cards (trick_id, player_id, player_position, card_id, played_at)
                VALUES (%s, %s, %s, %s, %s)
            ''', (trick_card.trick_id, trick_card.player_id, trick_card.player_position,
                  trick_card.card.id, trick_card.played_at))

    def list_trick_cards(self, trick_id: str) -> list[TrickCard]:
        with self._cursor() as cur:
            cur.execute('SELECT * FROM trick_cards WHERE trick_id = %s ORDER BY id', (trick_id,))
            return [_trick_card_from_row(r) for r in cur.fetchall()]
