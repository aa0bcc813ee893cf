from flask import Flask, jsonify, request
from flask_cors import CORS

from jossing import config
from jossing.engine import (
    GameEngine, GameError, InvalidMoveError, InvalidPhaseError,
    NotFoundError, CapacityError, PermissionDeniedError,
)
from jossing.store import InMemoryStore
from jossing.ai.manager import (
    available_difficulties, difficulty_display_name, difficulty_description,
)

app = Flask(__name__)
CORS(app)

# One engine per process; replaced in tests through set_engine
current_engine = None

ERROR_STATUS = {
    InvalidMoveError: 400,
    InvalidPhaseError: 400,
    PermissionDeniedError: 403,
    NotFoundError: 404,
    CapacityError: 409,
}


def build_engine() -> GameEngine:
    """Create an engine backed by the configured store."""
    if config.STORE_BACKEND == 'postgres':
        from jossing.db import PostgresStore
        store = PostgresStore()
        store.init_schema()
    else:
        store = InMemoryStore()
    return GameEngine(store=store)


def get_engine() -> GameEngine:
    global current_engine
    if current_engine is None:
        current_engine = build_engine()
    return current_engine


def set_engine(engine: GameEngine):
    global current_engine
    current_engine = engine


def error_response(error: GameError):
    status = ERROR_STATUS.get(type(error), 400)
    return jsonify({'error': str(error), 'code': error.code, 'retryable': error.retryable}), status


def request_data() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@app.route('/api/health')
def health():
    return {'status': 'ok'}


@app.route('/api/ai/difficulties')
def ai_difficulties():
    """List the AI tiers with their display names and descriptions."""
    return jsonify([{
        'difficulty': d.value,
        'name': difficulty_display_name(d),
        'description': difficulty_description(d),
    } for d in available_difficulties()])


# Sessions API

@app.route('/api/sessions', methods=['POST'])
def create_session():
    """Create a new session; the creator becomes its admin."""
    data = request_data()
    try:
        result = get_engine().create_session(
            data.get('adminName'),
            data.get('gameType', 'up'),
            data.get('scoringSystem', 'classic'),
            data.get('maxPlayers', 6),
            data.get('dealerRestriction'),
        )
    except GameError as e:
        return error_response(e)
    return jsonify({'success': True, **result}), 201


@app.route('/api/sessions/<session_id>/join', methods=['POST'])
def join_session(session_id):
    data = request_data()
    try:
        result = get_engine().join_session(session_id, data.get('playerName'))
    except GameError as e:
        return error_response(e)
    return jsonify({'success': True, **result})


@app.route('/api/sessions/<session_id>/leave', methods=['POST'])
def leave_session(session_id):
    data = request_data()
    engine = get_engine()
    player_id = data.get('playerId')
    try:
        player = engine.store.get_player(player_id) if player_id else None
        if player is None or player.session_id != session_id:
            raise NotFoundError(f"Player {player_id} not found in session {session_id}")
        result = engine.leave_session(player_id)
    except GameError as e:
        return error_response(e)
    return jsonify({'success': True, **result})


@app.route('/api/sessions/<session_id>/start', methods=['POST'])
def start_game(session_id):
    data = request_data()
    try:
        session = get_engine().start_game(session_id, data.get('adminPlayerId'))
    except GameError as e:
        return error_response(e)
    return jsonify({'success': True, 'session': session})


@app.route('/api/sessions/<session_id>/add-ai', methods=['POST'])
def add_ai_players(session_id):
    data = request_data()
    try:
        players = get_engine().add_ai_players(
            session_id,
            data.get('difficulty', 'medium'),
            data.get('count', 1),
            data.get('adminPlayerId'),
        )
    except GameError as e:
        return error_response(e)
    return jsonify({'success': True, 'players': players})


@app.route('/api/sessions/<session_id>/remove-ai', methods=['DELETE'])
def remove_ai_player(session_id):
    data = request_data()
    try:
        result = get_engine().remove_ai_player(session_id, data.get('playerId'), data.get('adminPlayerId'))
    except GameError as e:
        return error_response(e)
    return jsonify(result)


@app.route('/api/sessions/<session_id>/stats')
def session_stats(session_id):
    """Final statistics of a finished game."""
    try:
        stats = get_engine().get_final_game_stats(session_id)
    except GameError as e:
        return error_response(e)
    return jsonify(stats)


@app.route('/api/sessions/<session_id>/events')
def session_events(session_id):
    """Events published after the given sequence number (?since=<seq>)."""
    engine = get_engine()
    since = request.args.get('since', 0, type=int)
    try:
        engine.expire_overdue_turns(session_id)
    except GameError as e:
        return error_response(e)
    return jsonify({
        'events': engine.events.events_since(session_id, since),
        'last_seq': engine.events.last_seq(session_id),
    })


# Game API

@app.route('/api/game/<player_id>')
def game_state(player_id):
    """Game state as seen by one player."""
    try:
        state = get_engine().get_game_state(player_id)
    except GameError as e:
        return error_response(e)
    return jsonify(state)


@app.route('/api/game/<player_id>/bid', methods=['POST'])
def place_bid(player_id):
    data = request_data()
    engine = get_engine()
    try:
        bid = engine.place_bid(player_id, data.get('bid'))
        return jsonify({
            'success': True,
            'bid': bid,
            'state': engine.get_game_state(player_id),
        })
    except GameError as e:
        return error_response(e)


@app.route('/api/game/<player_id>/play', methods=['POST'])
def play_card(player_id):
    data = request_data()
    engine = get_engine()
    card = data.get('card') or data.get('cardId')
    try:
        result = engine.play_card(player_id, card)
        return jsonify({
            'success': True,
            'result': result,
            'state': engine.get_game_state(player_id),
        })
    except GameError as e:
        return error_response(e)


if __name__ == '__main__':
    app.run(debug=config.FLASK_DEBUG, host=config.FLASK_HOST, port=config.FLASK_PORT)
