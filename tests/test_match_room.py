import pytest

from dice_duel.game_core import GameRules, PhaseViolation
from dice_duel.game_core import constants as c
from dice_duel.services.match_room import MatchRoom

from conftest import EventRecorder


@pytest.fixture
def finished():
    return []


@pytest.fixture
def stats():
    return []


@pytest.fixture
def room(finished, stats):
    room = MatchRoom(
        match_id='room-1',
        seed='fixed-seed',
        rules=GameRules(),
        log_event=EventRecorder(),
        log_stats=stats.append,
        finalize_game_callback=finished.append,
    )
    room.setup(('sid-a', 'alice'), ('sid-b', 'bob'))
    return room


def names_for(notifications, sid):
    return [n['event'] for n in notifications if n['room'] == sid]


def sessions(room):
    return room.seats['alice'].session, room.seats['bob'].session


def test_setup_seats_both_players(room):
    assert room.get_all_sids() == ['sid-a', 'sid-b']
    assert room.get_all_player_ids() == ['alice', 'bob']
    assert room.seat_for_sid('sid-b').player_id == 'bob'
    assert room.opponent_of('alice').player_id == 'bob'
    alice, bob = sessions(room)
    # Shared seed: same opening roll on both sides
    assert alice.view()['current_dice'] == bob.view()['current_dice']


def test_lock_notifies_opponent_without_revealing(room):
    out = room.lock_bet('sid-a', 10, 'higher')

    assert 'opponent_locked' in names_for(out, 'sid-b')
    locked = [n for n in out if n['event'] == 'opponent_locked'][0]
    assert locked['payload'] == {'round': 1}

    bob_state = [n['payload'] for n in out if n['event'] == 'state_update' and n['room'] == 'sid-b'][-1]
    assert bob_state['opponent_locked'] is True
    assert bob_state['my_bet'] is None


def test_both_locks_reveal_on_both_sides(room):
    room.lock_bet('sid-a', 10, 'higher')
    out = room.lock_bet('sid-b', 5, 'lower')

    alice, bob = sessions(room)
    assert alice.phase == bob.phase == c.PHASE_RESULTS
    assert alice.last_result.dice == bob.last_result.dice
    assert 'phase_changed' in names_for(out, 'sid-a')
    assert 'state_update' in names_for(out, 'sid-b')


def test_lock_with_unknown_sid(room):
    with pytest.raises(KeyError):
        room.lock_bet('sid-x', 1, 'higher')


def test_ticks_keep_both_sides_in_step(room):
    for _ in range(10):
        room.tick()

    alice, bob = sessions(room)
    assert alice.phase == bob.phase == c.PHASE_RESULTS
    assert alice.last_result.dice == bob.last_result.dice
    assert {p: r.points_change for p, r in alice.last_result.player_results.items()} == \
        {p: r.points_change for p, r in bob.last_result.player_results.items()}
    assert alice.last_result.for_player('alice').bet.forced

    for _ in range(3):
        room.tick()
    assert alice.phase == bob.phase == c.PHASE_BETTING
    assert alice.round_number == bob.round_number == 2


def test_ticks_after_one_sided_lock(room):
    room.lock_bet('sid-b', 4, 'lower')
    for _ in range(10):
        room.tick()

    alice, bob = sessions(room)
    assert alice.phase == bob.phase == c.PHASE_RESULTS
    assert alice.state.results_hold == bob.state.results_hold == 3


def test_dismiss_waits_for_both(room):
    room.lock_bet('sid-a', 1, 'higher')
    room.lock_bet('sid-b', 1, 'lower')

    out = room.dismiss_results('sid-a')
    assert names_for(out, 'sid-a') == ['waiting_for_opponent']
    alice, bob = sessions(room)
    assert alice.phase == c.PHASE_RESULTS

    room.dismiss_results('sid-b')
    assert alice.phase == bob.phase == c.PHASE_BETTING
    assert alice.round_number == bob.round_number == 2


def test_dismiss_during_betting_rejected(room):
    with pytest.raises(PhaseViolation):
        room.dismiss_results('sid-a')


def test_leave_ends_match_once(room, finished, stats):
    out = room.leave('sid-a')

    alice, bob = sessions(room)
    assert alice.phase == bob.phase == c.PHASE_ABANDONED

    ended = {n['room']: n['payload'] for n in out if n['event'] == 'match_ended'}
    assert ended['sid-b']['reason'] == c.END_OPPONENT_LEFT
    assert ended['sid-a']['reason'] == c.END_LOCAL_LEFT
    assert finished == ['room-1']
    assert len(stats) == 1
    assert stats[0]['end_reasons'] == {'alice': c.END_LOCAL_LEFT, 'bob': c.END_OPPONENT_LEFT}

    # Leaving again changes nothing
    assert room.leave('sid-a') == []
    room.leave('sid-b')
    assert finished == ['room-1']


def test_summary_has_no_bets(room):
    room.lock_bet('sid-a', 10, 'higher')
    summary = room.summary()
    assert summary['match_id'] == 'room-1'
    assert summary['round'] == 1
    assert summary['phases'] == {'alice': c.PHASE_BETTING, 'bob': c.PHASE_BETTING}
    assert 'bets' not in summary
    assert summary['finished'] is False


def test_both_clocks_running_out_is_not_stale(room):
    for _ in range(10):
        room.tick()

    alice, bob = sessions(room)
    assert alice.snapshot()['stale_events'] == 0
    assert bob.snapshot()['stale_events'] == 0
    assert "LATE_FORCED_LOCK" in room.log_event.types()


def test_dismiss_during_betting_is_counted(room):
    with pytest.raises(PhaseViolation):
        room.dismiss_results('sid-a')
    alice, _ = sessions(room)
    assert alice.snapshot()['phase_violations'] == 1
