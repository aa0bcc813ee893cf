"""Pytest fixtures for Jøssing tests."""
import random

import pytest

from jossing.app import app as flask_app, set_engine
from jossing.engine import GameEngine
from jossing.events import EventBus
from jossing.models import Card, Suit, Rank
from jossing.store import InMemoryStore


class FakeClock:
    """Manually advanced clock for turn deadline tests."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_engine(seed=7, **kwargs) -> GameEngine:
    kwargs.setdefault('turn_timeout', 0)
    kwargs.setdefault('logs_dir', '')
    kwargs.setdefault('dealer_restriction', False)
    kwargs.setdefault('think_scale', 0)
    return GameEngine(store=InMemoryStore(), events=EventBus(), rng=random.Random(seed), **kwargs)


def setup_table(engine, names=('Alice', 'Bob', 'Charlie', 'Dana'), **options):
    """Create a session, seat the named players and return (session_id, {name: player_id})."""
    created = engine.create_session(names[0], **options)
    session_id = created['session_id']
    ids = {names[0]: created['player_id']}
    for name in names[1:]:
        ids[name] = engine.join_session(session_id, name)['player_id']
    return session_id, ids


def rig_section(engine, session_id, hands_by_position, trump='hearts'):
    """Replace the dealt hands of the current section with known cards."""
    session = engine.store.get_session(session_id)
    section = engine.store.get_section(session_id, session.current_section)
    section.trump_suit = Suit[trump.upper()]
    section.trump_card_rank = Rank.TEN
    engine.store.update_section(section)
    for player in engine.store.list_players(session_id):
        hand = engine.store.get_hand(section.id, player.id)
        hand.cards = [Card.from_id(c) for c in hands_by_position[player.position]]
        engine.store.update_hand(hand)
    return section


@pytest.fixture
def engine():
    return make_engine()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app():
    """Create Flask app for testing."""
    flask_app.config.update({
        'TESTING': True,
    })
    set_engine(make_engine())
    yield flask_app
    set_engine(None)


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()


@pytest.fixture
def new_session(client):
    """Create a session with Alice as admin and return the response data."""
    response = client.post('/api/sessions', json={
        'adminName': 'Alice',
        'gameType': 'up',
        'scoringSystem': 'classic',
        'maxPlayers': 4,
    })
    assert response.status_code == 201
    return response.get_json()
