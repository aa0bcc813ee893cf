"""Tests for the session lifecycle, play flow and turn deadlines of GameEngine."""
import pytest

from conftest import make_engine, setup_table, rig_section
from jossing.engine import (
    InvalidMoveError, InvalidPhaseError, NotFoundError, CapacityError, PermissionDeniedError,
)
from jossing.manager import GameManager
from jossing.models import SessionPhase, SectionPhase, Suit


FOUR_HANDS = {1: ['A_spades'], 2: ['K_hearts'], 3: ['2_hearts'], 4: ['3_clubs']}


@pytest.fixture
def table(engine):
    session_id, ids = setup_table(engine)
    engine.start_game(session_id, ids['Alice'])
    rig_section(engine, session_id, FOUR_HANDS, trump='hearts')
    return session_id, ids


def event_types(engine, session_id):
    return [e['type'] for e in engine.events.events_since(session_id)]


class TestSessionSetup:

    def test_create_session(self, engine):
        created = engine.create_session('Alice', 'up_and_down', 'modern', 5)
        session = engine.store.get_session(created['session_id'])
        assert len(session.id) == 6
        assert session.admin_player_id == created['player_id']
        assert session.phase == SessionPhase.WAITING
        assert session.max_players == 5
        admin = engine.store.get_player(created['player_id'])
        assert admin.position == 1
        assert admin.is_admin

    @pytest.mark.parametrize('kwargs', [
        {'game_type': 'sideways'},
        {'scoring_system': 'golf'},
        {'max_players': 2},
        {'max_players': 7},
        {'max_players': '4'},
    ])
    def test_create_session_rejects_bad_options(self, engine, kwargs):
        with pytest.raises(InvalidMoveError):
            engine.create_session('Alice', **kwargs)

    @pytest.mark.parametrize('name', ['', '   ', None, 'x' * 51])
    def test_create_session_rejects_bad_names(self, engine, name):
        with pytest.raises(InvalidMoveError):
            engine.create_session(name)

    def test_join_assigns_next_position(self, engine):
        session_id, ids = setup_table(engine, ('Alice', 'Bob', 'Charlie'))
        positions = {p.name: p.position for p in engine.store.list_players(session_id)}
        assert positions == {'Alice': 1, 'Bob': 2, 'Charlie': 3}

    def test_set_connected(self, engine):
        session_id, ids = setup_table(engine, ('Alice', 'Bob', 'Charlie'))
        result = engine.set_connected(ids['Bob'], False)
        assert result['is_connected'] is False
        assert not engine.store.get_player(ids['Bob']).is_connected
        engine.set_connected(ids['Bob'], True)
        types = [e['type'] for e in engine.events.events_since(session_id)]
        assert types[-2:] == ['player_disconnected', 'player_connected']

    def test_join_unknown_session(self, engine):
        with pytest.raises(NotFoundError):
            engine.join_session('NOPE00', 'Bob')

    def test_join_full_session(self, engine):
        session_id, _ = setup_table(engine, ('Alice', 'Bob', 'Charlie'), max_players=3)
        with pytest.raises(CapacityError):
            engine.join_session(session_id, 'Dana')

    def test_join_after_start(self, engine, table):
        session_id, _ = table
        with pytest.raises(InvalidPhaseError):
            engine.join_session(session_id, 'Eve')

    def test_leave_before_start_closes_gaps(self, engine):
        session_id, ids = setup_table(engine)
        engine.leave_session(ids['Bob'])
        positions = {p.name: p.position for p in engine.store.list_players(session_id)}
        assert positions == {'Alice': 1, 'Charlie': 2, 'Dana': 3}

    def test_admin_leaving_hands_over_to_lowest_seat(self, engine):
        session_id, ids = setup_table(engine)
        result = engine.leave_session(ids['Alice'])
        assert result['new_admin_id'] == ids['Bob']
        assert engine.store.get_session(session_id).admin_player_id == ids['Bob']
        assert engine.store.get_player(ids['Bob']).is_admin

    def test_last_player_leaving_finishes_session(self, engine):
        created = engine.create_session('Alice')
        engine.leave_session(created['player_id'])
        assert engine.store.get_session(created['session_id']).phase == SessionPhase.FINISHED

    def test_leave_during_game_marks_disconnected(self, engine, table):
        session_id, ids = table
        engine.leave_session(ids['Dana'])
        dana = engine.store.get_player(ids['Dana'])
        assert dana is not None
        assert not dana.is_connected
        assert len(engine.store.list_players(session_id)) == 4


class TestStartGame:

    def test_only_admin_can_start(self, engine):
        session_id, ids = setup_table(engine)
        with pytest.raises(PermissionDeniedError):
            engine.start_game(session_id, ids['Bob'])

    def test_needs_three_players(self, engine):
        session_id, ids = setup_table(engine, ('Alice', 'Bob'))
        with pytest.raises(CapacityError):
            engine.start_game(session_id, ids['Alice'])

    def test_cannot_start_twice(self, engine, table):
        session_id, ids = table
        with pytest.raises(InvalidPhaseError):
            engine.start_game(session_id, ids['Alice'])

    def test_first_section_is_dealt(self, engine):
        session_id, ids = setup_table(engine)
        session = engine.start_game(session_id, ids['Alice'])
        assert session['phase'] == 'playing'
        assert session['current_section'] == 1

        section = engine.store.get_section(session_id, 1)
        assert section.hand_size == 1
        assert section.dealer_position == 1
        assert section.current_bidder_position == 2
        assert section.phase == SectionPhase.BIDDING
        hands = engine.store.list_hands(section.id)
        assert len(hands) == 4
        cards = [card for h in hands for card in h.cards] + [section.trump_card]
        assert len(set(cards)) == 5


class TestSectionFlow:

    def test_full_first_section(self, engine, table):
        session_id, ids = table

        engine.place_bid(ids['Bob'], 1)
        engine.place_bid(ids['Charlie'], 0)
        engine.place_bid(ids['Dana'], 0)
        engine.place_bid(ids['Alice'], 0)

        section = engine.store.get_section(session_id, 1)
        assert section.phase == SectionPhase.PLAYING
        assert section.lead_player_position == 2
        assert [b.bid_value for b in section.bids] == [1, 0, 0, 0]

        engine.play_card(ids['Bob'], 'K_hearts')
        engine.play_card(ids['Charlie'], '2_hearts')
        engine.play_card(ids['Dana'], {'suit': 'clubs', 'rank': '3'})
        result = engine.play_card(ids['Alice'], 'A_spades')

        assert result['trick_complete']
        assert result['trick_winner_position'] == 2
        assert result['trick_winner_id'] == ids['Bob']
        assert result['section_complete']
        assert not result['game_finished']
        assert result['section_scores'] == {
            ids['Alice']: 10, ids['Bob']: 11, ids['Charlie']: 10, ids['Dana']: 10,
        }

        totals = {p.name: p.total_score for p in engine.store.list_players(session_id)}
        assert totals == {'Alice': 10, 'Bob': 11, 'Charlie': 10, 'Dana': 10}

        session = engine.store.get_session(session_id)
        assert session.current_section == 2
        second = engine.store.get_section(session_id, 2)
        assert second.hand_size == 2
        assert second.dealer_position == 2
        assert second.current_bidder_position == 3
        assert engine.store.get_section(session_id, 1).phase == SectionPhase.COMPLETED

    def test_events_follow_the_section(self, engine, table):
        session_id, ids = table
        for name, bid in (('Bob', 1), ('Charlie', 0), ('Dana', 0), ('Alice', 0)):
            engine.place_bid(ids[name], bid)
        for name, card in (('Bob', 'K_hearts'), ('Charlie', '2_hearts'), ('Dana', '3_clubs'), ('Alice', 'A_spades')):
            engine.play_card(ids[name], card)

        assert event_types(engine, session_id) == (
            ['player_joined'] * 4
            + ['game_started', 'section_started']
            + ['bid_placed'] * 4
            + ['bidding_completed']
            + ['card_played'] * 4
            + ['trick_completed', 'section_completed', 'section_started']
        )

    def test_bid_out_of_range_is_rejected(self, engine, table):
        session_id, ids = table
        with pytest.raises(InvalidMoveError) as exc:
            engine.place_bid(ids['Bob'], 2)
        assert exc.value.retryable
        section = engine.store.get_section(session_id, 1)
        assert section.bids == []
        assert section.current_bidder_position == 2
        assert engine.store.get_hand(section.id, ids['Bob']).bid is None

    @pytest.mark.parametrize('bid', [-1, '1', 1.0, True, None])
    def test_bid_must_be_whole_number_in_range(self, engine, table, bid):
        _, ids = table
        with pytest.raises(InvalidMoveError):
            engine.place_bid(ids['Bob'], bid)

    def test_bid_out_of_turn(self, engine, table):
        _, ids = table
        with pytest.raises(InvalidMoveError):
            engine.place_bid(ids['Charlie'], 0)

    def test_card_play_during_bidding(self, engine, table):
        _, ids = table
        with pytest.raises(InvalidPhaseError):
            engine.play_card(ids['Bob'], 'K_hearts')

    def test_card_not_in_hand(self, engine, table):
        session_id, ids = table
        for name, bid in (('Bob', 1), ('Charlie', 0), ('Dana', 0), ('Alice', 0)):
            engine.place_bid(ids[name], bid)

        with pytest.raises(InvalidMoveError):
            engine.play_card(ids['Bob'], 'A_clubs')

        section = engine.store.get_section(session_id, 1)
        assert [c.id for c in engine.store.get_hand(section.id, ids['Bob']).cards] == ['K_hearts']
        trick = engine.store.get_open_trick(section.id)
        assert engine.store.list_trick_cards(trick.id) == []

    def test_malformed_card(self, engine, table):
        _, ids = table
        for name, bid in (('Bob', 1), ('Charlie', 0), ('Dana', 0), ('Alice', 0)):
            engine.place_bid(ids[name], bid)
        for bad in ('K-hearts', 'Z_hearts', 42, {'suit': 'stars', 'rank': 'K'}):
            with pytest.raises(InvalidMoveError):
                engine.play_card(ids['Bob'], bad)

    def test_must_follow_suit(self, engine):
        session_id, ids = setup_table(engine)
        engine.start_game(session_id, ids['Alice'])
        hands = dict(FOUR_HANDS)
        hands[3] = ['2_hearts', 'A_clubs']
        rig_section(engine, session_id, hands, trump='spades')
        for name, bid in (('Bob', 1), ('Charlie', 0), ('Dana', 0), ('Alice', 0)):
            engine.place_bid(ids[name], bid)

        engine.play_card(ids['Bob'], 'K_hearts')
        with pytest.raises(InvalidMoveError):
            engine.play_card(ids['Charlie'], 'A_clubs')
        engine.play_card(ids['Charlie'], '2_hearts')

    def test_card_out_of_turn(self, engine, table):
        _, ids = table
        for name, bid in (('Bob', 1), ('Charlie', 0), ('Dana', 0), ('Alice', 0)):
            engine.place_bid(ids[name], bid)
        with pytest.raises(InvalidMoveError):
            engine.play_card(ids['Alice'], 'A_spades')

    def test_highest_bidder_leads_ties_after_dealer(self, engine, table):
        session_id, ids = table
        engine.place_bid(ids['Bob'], 0)
        engine.place_bid(ids['Charlie'], 1)
        engine.place_bid(ids['Dana'], 0)
        engine.place_bid(ids['Alice'], 1)
        assert engine.store.get_section(session_id, 1).lead_player_position == 3


class TestDealerRestriction:

    def test_dealer_cannot_make_bids_add_up(self, engine):
        session_id, ids = setup_table(engine, ('Alice', 'Bob', 'Charlie'), dealer_restriction=True)
        engine.start_game(session_id, ids['Alice'])
        engine.place_bid(ids['Bob'], 0)
        engine.place_bid(ids['Charlie'], 0)

        state = engine.get_game_state(ids['Alice'])
        assert state['legal_bids'] == [0]
        with pytest.raises(InvalidMoveError):
            engine.place_bid(ids['Alice'], 1)
        engine.place_bid(ids['Alice'], 0)

    def test_unrestricted_by_default(self, engine):
        session_id, ids = setup_table(engine, ('Alice', 'Bob', 'Charlie'))
        engine.start_game(session_id, ids['Alice'])
        engine.place_bid(ids['Bob'], 0)
        engine.place_bid(ids['Charlie'], 0)
        assert engine.get_game_state(ids['Alice'])['legal_bids'] == [0, 1]
        engine.place_bid(ids['Alice'], 1)


class TestGameState:

    def test_only_own_cards_are_visible(self, engine, table):
        _, ids = table
        state = engine.get_game_state(ids['Bob'])
        assert [c['id'] for c in state['hand']] == ['K_hearts']
        assert state['card_counts'] == {pid: 1 for pid in ids.values()}
        assert state['viewer']['position'] == 2
        assert state['section']['trump_suit'] == 'hearts'

    def test_turn_information(self, engine, table):
        _, ids = table
        bob = engine.get_game_state(ids['Bob'])
        assert bob['is_player_turn']
        assert bob['turn']['kind'] == 'bid'
        assert bob['turn']['player_id'] == ids['Bob']
        assert bob['turn']['deadline'] is None
        assert bob['legal_bids'] == [0, 1]

        alice = engine.get_game_state(ids['Alice'])
        assert not alice['is_player_turn']
        assert alice['legal_bids'] == []

    def test_legal_cards_while_playing(self, engine, table):
        _, ids = table
        for name, bid in (('Bob', 1), ('Charlie', 0), ('Dana', 0), ('Alice', 0)):
            engine.place_bid(ids[name], bid)
        engine.play_card(ids['Bob'], 'K_hearts')
        state = engine.get_game_state(ids['Charlie'])
        assert state['turn']['kind'] == 'play'
        assert [c['id'] for c in state['legal_cards']] == ['2_hearts']

    def test_previous_section_is_visible_after_the_next_deal(self, engine, table):
        _, ids = table
        for name, bid in (('Bob', 1), ('Charlie', 0), ('Dana', 0), ('Alice', 0)):
            engine.place_bid(ids[name], bid)
        for name, card in (('Bob', 'K_hearts'), ('Charlie', '2_hearts'), ('Dana', '3_clubs'), ('Alice', 'A_spades')):
            engine.play_card(ids[name], card)

        state = engine.get_game_state(ids['Charlie'])
        assert state['section']['section_number'] == 2
        assert state['section_scores'] == {}
        previous = state['previous_section']
        assert previous['section_number'] == 1
        assert previous['section_scores'] == {
            ids['Alice']: 10, ids['Bob']: 11, ids['Charlie']: 10, ids['Dana']: 10,
        }
        assert previous['tricks_won'][ids['Bob']] == 1
        assert previous['last_trick']['winner_position'] == 2
        assert [tc['card']['id'] for tc in previous['last_trick']['cards']] == [
            'K_hearts', '2_hearts', '3_clubs', 'A_spades',
        ]
        assert state['last_trick'] == previous['last_trick']

    def test_no_previous_section_in_the_first(self, engine, table):
        _, ids = table
        state = engine.get_game_state(ids['Bob'])
        assert state['previous_section'] is None
        assert state['last_trick'] is None
        assert state['current_trick']['leading_suit'] == 'hearts'
        assert len(state['current_trick']['cards']) == 1

    def test_unknown_player(self, engine):
        with pytest.raises(NotFoundError):
            engine.get_game_state('nobody')

    def test_stats_before_finish(self, engine, table):
        session_id, _ = table
        with pytest.raises(InvalidPhaseError):
            engine.get_final_game_stats(session_id)


class TestTurnDeadlines:

    def test_overdue_bid_is_placed_for_the_player(self, clock):
        engine = make_engine(clock=clock, turn_timeout=30)
        session_id, ids = setup_table(engine, ('Alice', 'Bob', 'Charlie'))
        engine.start_game(session_id, ids['Alice'])

        assert engine.get_game_state(ids['Bob'])['turn']['deadline'] == 1030
        assert engine.expire_overdue_turns(session_id) == 0

        clock.advance(31)
        assert engine.expire_overdue_turns(session_id) == 1
        section = engine.store.get_section(session_id, 1)
        assert [(b.player_id, b.bid_value) for b in section.bids] == [(ids['Bob'], 0)]
        assert section.current_bidder_position == 3

        expired = [e for e in engine.events.events_since(session_id) if e['type'] == 'turn_expired']
        assert expired[0]['data'] == {'player_id': ids['Bob'], 'action': 'bid', 'bid': 0}

    def test_overdue_card_prefers_lowest_non_trump(self, clock):
        engine = make_engine(clock=clock, turn_timeout=30)
        session_id, ids = setup_table(engine)
        engine.start_game(session_id, ids['Alice'])
        hands = dict(FOUR_HANDS)
        hands[2] = ['2_hearts', '9_clubs']
        rig_section(engine, session_id, hands, trump='hearts')
        for name, bid in (('Bob', 1), ('Charlie', 0), ('Dana', 0), ('Alice', 0)):
            engine.place_bid(ids[name], bid)

        clock.advance(30)
        engine.expire_overdue_turns(session_id)
        section = engine.store.get_section(session_id, 1)
        trick = engine.store.get_open_trick(section.id)
        played = engine.store.list_trick_cards(trick.id)
        assert [tc.card.id for tc in played] == ['9_clubs']
        assert trick.leading_suit == Suit.CLUBS

    def test_zero_timeout_never_expires(self, clock):
        engine = make_engine(clock=clock, turn_timeout=0)
        session_id, ids = setup_table(engine, ('Alice', 'Bob', 'Charlie'))
        engine.start_game(session_id, ids['Alice'])
        clock.advance(10_000)
        assert engine.expire_overdue_turns(session_id) == 0


class TestAIPlayers:

    def test_add_ai_players(self, engine):
        created = engine.create_session('Alice')
        added = engine.add_ai_players(created['session_id'], 'medium', 2, created['player_id'])
        assert [p['position'] for p in added] == [2, 3]
        for p in added:
            assert p['is_ai']
            assert p['ai_difficulty'] == 'medium'
            assert p['id'].startswith('ai-medium-')
            assert p['name'].endswith(str(p['position']))
            assert engine.ai.is_ai(p['id'])

    def test_add_ai_players_rejects_bad_input(self, engine):
        created = engine.create_session('Alice', max_players=3)
        session_id = created['session_id']
        with pytest.raises(InvalidMoveError):
            engine.add_ai_players(session_id, 'impossible')
        with pytest.raises(InvalidMoveError):
            engine.add_ai_players(session_id, 'easy', 0)
        with pytest.raises(CapacityError):
            engine.add_ai_players(session_id, 'easy', 3)
        bob = engine.join_session(session_id, 'Bob')['player_id']
        with pytest.raises(PermissionDeniedError):
            engine.add_ai_players(session_id, 'easy', 1, bob)

    def test_remove_ai_player(self, engine):
        created = engine.create_session('Alice')
        session_id, admin = created['session_id'], created['player_id']
        first, second = engine.add_ai_players(session_id, 'easy', 2)
        result = engine.remove_ai_player(session_id, first['id'], admin)
        assert result['success']
        assert [p['position'] for p in result['players']] == [1, 2]
        assert result['players'][1]['id'] == second['id']
        assert not engine.ai.is_ai(first['id'])

    def test_remove_ai_player_refuses_humans(self, engine):
        session_id, ids = setup_table(engine, ('Alice', 'Bob'))
        with pytest.raises(InvalidMoveError):
            engine.remove_ai_player(session_id, ids['Bob'], ids['Alice'])
        with pytest.raises(NotFoundError):
            engine.remove_ai_player(session_id, 'ai-easy-missing', ids['Alice'])

    def test_ai_waits_out_its_thinking_time_on_the_clock(self, clock):
        engine = make_engine(clock=clock, think_scale=1.0)
        created = engine.create_session('Alice')
        session_id, admin = created['session_id'], created['player_id']
        engine.add_ai_players(session_id, 'hard', 3)
        engine.start_game(session_id, admin)

        section = engine.store.get_section(session_id, 1)
        assert section.bids == []
        state = engine.get_game_state(admin)
        assert state['turn']['position'] == 2
        assert not state['is_player_turn']

        for expected in (1, 2, 3):
            clock.advance(6)
            engine.get_game_state(admin)
            assert len(engine.store.get_section(session_id, 1).bids) == expected
        assert engine.get_game_state(admin)['is_player_turn']

    def test_ai_bids_until_a_human_is_on_turn(self, engine):
        created = engine.create_session('Alice')
        session_id, admin = created['session_id'], created['player_id']
        engine.add_ai_players(session_id, 'hard', 3)
        engine.start_game(session_id, admin)

        section = engine.store.get_section(session_id, 1)
        assert len(section.bids) == 3
        state = engine.get_game_state(admin)
        assert state['is_player_turn']
        assert state['turn']['kind'] == 'bid'

    @pytest.mark.parametrize('game_type, sections', [('up', 10), ('up_and_down', 20)])
    def test_complete_game_against_ai(self, game_type, sections):
        engine = make_engine(seed=11)
        created = engine.create_session('Alice', game_type=game_type)
        session_id, alice = created['session_id'], created['player_id']
        engine.add_ai_players(session_id, 'easy', 1)
        engine.add_ai_players(session_id, 'medium', 1)
        engine.add_ai_players(session_id, 'hard', 1)
        engine.start_game(session_id, alice)

        state = engine.get_game_state(alice)
        while state['session']['phase'] == 'playing':
            assert state['is_player_turn']
            if state['turn']['kind'] == 'bid':
                engine.place_bid(alice, state['legal_bids'][-1])
            else:
                engine.play_card(alice, state['legal_cards'][0]['id'])
            state = engine.get_game_state(alice)

        assert state['session']['phase'] == 'finished'
        assert state['turn'] is None

        stats = engine.get_final_game_stats(session_id)
        assert stats['sections_played'] == sections
        points = {p.id: 0 for p in engine.store.list_players(session_id)}
        for section in stats['sections']:
            assert sum(r['tricks_won'] for r in section['results']) == section['hand_size']
            for r in section['results']:
                points[r['player_id']] += r['points']
        for ranking in stats['rankings']:
            assert ranking['total_score'] == points[ranking['player_id']]
        best = max(points.values())
        assert set(stats["winners"]) == {pid for pid, score in points.items() if score == best}
        assert stats['rankings'][0]['rank'] == 1
        assert stats['rankings'][0]['total_score'] == best
        assert event_types(engine, session_id)[-1] == 'game_ended'


class TestGameLog:

    def test_moves_are_written_to_session_log(self, tmp_path):
        engine = make_engine(logs_dir=str(tmp_path))
        session_id, ids = setup_table(engine, ('Alice', 'Bob', 'Charlie'))
        engine.start_game(session_id, ids['Alice'])
        engine.place_bid(ids['Bob'], 1)

        lines = (tmp_path / f'session_{session_id}.log').read_text(encoding='utf-8').splitlines()
        assert lines == ['0, 1', 'Bob: bid 1']

    def test_finished_session_releases_its_helpers(self, tmp_path):
        engine = make_engine(seed=3, logs_dir=str(tmp_path))
        created = engine.create_session('Alice')
        session_id, alice = created['session_id'], created['player_id']
        engine.add_ai_players(session_id, 'medium', 2)
        engine.start_game(session_id, alice)
        assert len(engine.ai.player_ids()) == 2

        while engine.store.get_session(session_id).phase == SessionPhase.PLAYING:
            state = engine.get_game_state(alice)
            if state['turn'] is None:
                break
            if state['turn']['kind'] == 'bid':
                engine.place_bid(alice, state['legal_bids'][0])
            else:
                engine.play_card(alice, state['legal_cards'][0]['id'])

        assert engine.ai.player_ids() == []
        assert session_id not in engine._game_loggers
        assert session_id not in engine._locks
        assert event_types(engine, session_id)[-1] == 'game_ended'


class TestGameManager:

    def test_reports_failures_by_return_value(self, engine):
        manager = GameManager(engine)
        assert manager.create_session('') is None
        assert manager.last_error.code == 'invalid_move'

        created = manager.create_session('Alice')
        session_id, admin = created['session_id'], created['player_id']
        assert not manager.start_game(session_id, admin)
        assert manager.last_error.code == 'capacity'

        assert manager.add_ai_players(session_id, 'easy', 2)
        assert manager.start_game(session_id, admin)
        assert manager.get_game_state(admin)['is_player_turn']
        assert not manager.place_bid(admin, 99)
        assert manager.last_error.retryable
        assert manager.get_final_game_stats(session_id) is None

    def test_remove_ai_failure_payload(self, engine):
        manager = GameManager(engine)
        created = manager.create_session('Alice')
        result = manager.remove_ai_player(created['session_id'], 'ai-x', created['player_id'])
        assert result['success'] is False
        assert result['code'] == 'not_found'
