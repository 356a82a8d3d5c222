import json

import pytest
from marshmallow import ValidationError

from dice_duel.api.schemas import MatchSnapshotSchema
from dice_duel.game_core import (
    AlreadyLocked, Bet, ForfeitAbandon, GameRules, InvalidWager, PhaseViolation, SeededDiceSource,
)
from dice_duel.game_core import constants as c
from dice_duel.services.match_session import MatchSession

from conftest import RecordingChannel, ScriptedDice, fixed_clock, phase_history

ALLOWED_NEXT = {
    c.PHASE_BETTING: {c.PHASE_REVEALING, c.PHASE_ABANDONED},
    c.PHASE_REVEALING: {c.PHASE_RESULTS, c.PHASE_ABANDONED},
    c.PHASE_RESULTS: {c.PHASE_BETTING, c.PHASE_GAME_OVER, c.PHASE_ABANDONED},
}


def opponent_bet(amount=5, prediction='lower', round_number=1, player='bob'):
    return Bet(player, round_number, amount, prediction, 999.0)


def test_initial_state(session):
    assert session.phase == c.PHASE_BETTING
    assert session.round_number == 1
    assert session.seconds_remaining() == 10
    view = session.view()
    assert view['current_dice'] == 3
    assert view['my_score'] == 100
    assert view['opponent_score'] == 100
    assert view['bet_locked'] is False
    assert view['opponent_locked'] is False
    assert view['total_rounds'] == 20


def test_same_player_twice_rejected(dice):
    with pytest.raises(ValueError):
        MatchSession('m', 'alice', 'alice', RecordingChannel(), dice)


def test_lock_once_per_round(session):
    channel = session.channel
    bet = session.lock_bet(10, 'higher')

    assert bet.amount == 10
    assert channel.locked == [(1, bet)]
    assert session.view()['bet_locked'] is True

    with pytest.raises(AlreadyLocked):
        session.lock_bet(5, 'lower')
    assert len(channel.locked) == 1


def test_wager_above_score_rejected(session):
    with pytest.raises(InvalidWager):
        session.lock_bet(101, 'higher')
    assert session.phase == c.PHASE_BETTING
    assert session.channel.locked == []


def test_both_locked_with_time_left_reveals_immediately(session, recorder):
    phases = phase_history(session)
    for _ in range(3):
        session.tick()
    assert session.seconds_remaining() == 7

    session.lock_bet(10, 'higher')
    assert session.phase == c.PHASE_BETTING
    session.on_opponent_locked(1, opponent_bet(5, 'lower'))

    assert phases == [c.PHASE_BETTING, c.PHASE_REVEALING, c.PHASE_RESULTS]
    # Resolved without waiting for the clock
    assert session.seconds_remaining() == 7
    result = session.last_result
    assert result.dice == 5
    alice, bob = result.for_player('alice'), result.for_player('bob')
    assert alice.result == c.RESULT_WIN and alice.points_change >= 10
    assert bob.result == c.RESULT_LOSE and bob.points_change <= -5

    view = session.view()
    assert view['my_score'] == 110
    assert view['opponent_score'] == 95
    assert view['win_streak'] == 1
    assert "ROUND_RESOLVED" in recorder.types()


def test_expiry_forces_default_lock(session):
    phases = phase_history(session)
    session.on_opponent_locked(1, opponent_bet(5, 'lower'))

    for _ in range(10):
        session.tick()

    assert phases[:3] == [c.PHASE_BETTING, c.PHASE_REVEALING, c.PHASE_RESULTS]
    forced = session.last_result.for_player('alice').bet
    assert forced.forced is True
    assert forced.amount == 0
    assert forced.prediction == c.DEFAULT_PREDICTION
    # The forced lock still goes out to the peer
    assert session.channel.locked[0][1] == forced


def test_expiry_fills_missing_opponent_bet(session):
    for _ in range(10):
        session.tick()
    result = session.last_result
    bob = result.for_player('bob').bet
    assert bob.forced and bob.amount == 0
    assert session.phase == c.PHASE_RESULTS


def test_opponent_left_mid_betting_abandons(session):
    phases = phase_history(session)
    session.lock_bet(10, 'higher')

    session.on_opponent_left()

    assert session.phase == c.PHASE_ABANDONED
    assert session.end_reason == c.END_OPPONENT_LEFT
    assert c.PHASE_REVEALING not in phases
    assert session.last_result is None

    with pytest.raises(ForfeitAbandon):
        session.dismiss_results()

    # The clock is stopped; ticks change nothing
    session.tick()
    assert session.phase == c.PHASE_ABANDONED


def test_resolver_runs_once_per_round(session, dice, recorder):
    ack = opponent_bet()
    session.on_opponent_locked(1, ack)
    session.on_opponent_locked(1, ack)
    assert "DUPLICATE_EVENT" in recorder.types()

    session.lock_bet(10, 'higher')
    # Late duplicates and clock ticks after resolution
    session.on_opponent_locked(1, ack)
    for _ in range(2):
        session.tick()

    assert dice.draws[1] == 1
    assert session.phase == c.PHASE_RESULTS


def test_stale_and_malformed_events_are_dropped(session, recorder):
    session.on_opponent_locked(2, opponent_bet(round_number=2))
    assert session.snapshot()['stale_events'] == 1

    session.on_opponent_locked(1, None)
    session.on_opponent_locked(1, opponent_bet(player='mallory'))
    assert session.view()['opponent_locked'] is False
    assert recorder.types().count("INVALID_ACK") == 2


def test_opponent_bet_hidden_until_resolution(session):
    session.on_opponent_locked(1, opponent_bet(40, 'higher'))
    view = session.view()
    assert view['opponent_locked'] is True
    assert view['my_bet'] is None
    assert 'higher' not in json.dumps({k: v for k, v in view.items() if k != 'last_round_results'})


def test_dismiss_advances_to_next_round(session):
    session.lock_bet(10, 'higher')
    session.on_opponent_locked(1, opponent_bet())

    with pytest.raises(PhaseViolation):
        session.lock_bet(1, 'higher')

    session.dismiss_results()

    assert session.phase == c.PHASE_BETTING
    assert session.round_number == 2
    # New baseline is the die just rolled
    assert session.view()['current_dice'] == 5
    assert session.seconds_remaining() == 10
    assert session.view()['bet_locked'] is False


def test_results_hold_advances_on_ticks(session):
    session.lock_bet(0, 'higher')
    session.on_opponent_locked(1, opponent_bet(0))
    assert session.phase == c.PHASE_RESULTS

    session.tick()
    session.tick()
    assert session.phase == c.PHASE_RESULTS
    session.tick()
    assert session.phase == c.PHASE_BETTING
    assert session.round_number == 2


def test_dismiss_outside_results_is_phase_violation(session, recorder):
    with pytest.raises(PhaseViolation):
        session.dismiss_results()

    assert session.phase == c.PHASE_BETTING
    assert session.snapshot()["phase_violations"] == 1
    assert "STATE_VIOLATION_BLOCKED" in recorder.types()


def test_bust_ends_match(make_session):
    session = make_session(rules_=GameRules(starting_score=10))
    session.lock_bet(10, 'lower')
    session.on_opponent_locked(1, opponent_bet(0))
    session.dismiss_results()

    assert session.phase == c.PHASE_GAME_OVER
    assert session.end_reason == c.END_BUST
    assert session.view()['my_score'] == 0


def test_full_match_follows_phase_order(make_pair):
    alice, bob = make_pair(dice_=ScriptedDice(default=4))
    phases = phase_history(alice)

    for round_number in range(1, 21):
        assert alice.round_number == round_number
        alice.lock_bet(0, 'higher')
        bob.lock_bet(0, 'lower')
        assert alice.phase == bob.phase == c.PHASE_RESULTS
        alice.dismiss_results()
        bob.dismiss_results()

    assert alice.phase == bob.phase == c.PHASE_GAME_OVER
    assert alice.end_reason == c.END_MAX_ROUNDS
    for current, following in zip(phases, phases[1:]):
        assert following in ALLOWED_NEXT[current]
    assert phases.count(c.PHASE_RESULTS) == 20


def test_paired_sessions_agree(make_pair):
    alice, bob = make_pair()
    alice.lock_bet(10, 'higher')
    assert bob.view()['opponent_locked'] is True
    bob.lock_bet(5, 'lower')

    assert alice.last_result.to_dict() == bob.last_result.to_dict()
    assert alice.standings() == bob.standings()
    assert alice.view()['my_score'] == bob.view()['opponent_score'] == 110


def test_leave_notifies_peer_once(make_pair):
    alice, bob = make_pair()
    alice.leave()
    alice.leave()

    assert alice.phase == c.PHASE_ABANDONED
    assert alice.end_reason == c.END_LOCAL_LEFT
    assert bob.phase == c.PHASE_ABANDONED
    assert bob.end_reason == c.END_OPPONENT_LEFT


def test_subscribe_and_unsubscribe(session):
    snaps = []
    unsubscribe = session.subscribe(snaps.append)
    session.lock_bet(3, 'higher')
    assert snaps and snaps[-1]['bets'][0]['amount'] == 3

    unsubscribe()
    count = len(snaps)
    session.tick()
    assert len(snaps) == count


def test_failing_listener_does_not_break_session(session):
    def broken(snap):
        raise RuntimeError("render failed")

    session.subscribe(broken)
    session.lock_bet(3, 'higher')
    assert session.view()['bet_locked'] is True


def test_reset_starts_over(session):
    session.lock_bet(10, 'higher')
    session.on_opponent_locked(1, opponent_bet())
    session.reset()

    assert session.phase == c.PHASE_BETTING
    assert session.round_number == 1
    assert session.view()['my_score'] == 100
    assert session.last_result is None


def _play(session, steps):
    for step in steps:
        name, *args = step
        getattr(session, name)(*args)


def test_snapshot_round_trip_is_deterministic(make_session):
    rolls = {0: 3, 1: 5, 2: 2, 3: 2, 4: 6, 5: 1}
    live = make_session(dice_=ScriptedDice(rolls))

    _play(live, [
        ('lock_bet', 10, 'higher'),
        ('on_opponent_locked', 1, opponent_bet(5, 'lower', 1)),
        ('dismiss_results',),
        ('tick',), ('tick',),
        ('lock_bet', 20, 'lower'),
    ])
    assert live.round_number == 2
    assert live.phase == c.PHASE_BETTING

    wire = json.loads(json.dumps(live.snapshot()))
    loaded = MatchSnapshotSchema().load(wire)
    restored = MatchSession.restore(
        loaded, RecordingChannel(), ScriptedDice(rolls), log_event=None, clock=fixed_clock,
    )
    assert restored.snapshot() == live.snapshot()

    steps = [
        ('tick',),
        ('on_opponent_locked', 2, opponent_bet(7, 'higher', 2)),
        ('tick',), ('dismiss_results',),
        ('lock_bet', 15, 'higher'),
        ('tick',), ('tick',), ('tick',), ('tick',), ('tick',),
        ('tick',), ('tick',), ('tick',), ('tick',), ('tick',),
        ('tick',), ('tick',), ('tick',),
        ('lock_bet', 1, 'lower'),
    ]
    _play(live, steps)
    _play(restored, steps)

    assert restored.snapshot() == live.snapshot()
    assert live.round_number == 4


@pytest.mark.parametrize("ack", [
    {'player_id': 'bob', 'round_number': 1, 'amount': -50, 'prediction': 'lower', 'locked_at': 1.0},
    {'player_id': 'bob', 'round_number': 1, 'amount': 101, 'prediction': 'lower', 'locked_at': 1.0},
    {'player_id': 'bob', 'round_number': 1, 'amount': 10, 'prediction': 'sideways', 'locked_at': 1.0},
    {'player_id': 'bob', 'round_number': 7, 'amount': 10, 'prediction': 'lower', 'locked_at': 1.0},
    Bet('bob', 1, -5, 'lower', 1.0),
])
def test_impossible_opponent_bet_dropped(session, recorder, ack):
    session.on_opponent_locked(1, ack)

    assert session.view()['opponent_locked'] is False
    assert "INVALID_ACK" in recorder.types()

    session.lock_bet(0, 'higher')
    assert session.phase == c.PHASE_BETTING
    assert session.last_result is None


def test_opponent_bet_checked_against_opponent_score(make_session):
    session = make_session()
    session.lock_bet(0, 'higher')
    session.on_opponent_locked(1, opponent_bet(10, 'higher'))
    session.dismiss_results()
    # bob won 10 on round 1 and now holds 110
    session.on_opponent_locked(2, opponent_bet(110, 'lower', 2))
    assert session.view()['opponent_locked'] is True


def _play_rounds(session, rounds):
    dice = [session.view()['current_dice']]
    for n in range(1, rounds + 1):
        session.lock_bet(0, 'higher')
        session.on_opponent_locked(n, opponent_bet(0, 'lower', n))
        dice.append(session.last_result.dice)
        session.dismiss_results()
    return dice


def test_reset_rolls_new_dice(make_session):
    session = make_session(dice_=SeededDiceSource('abc'))
    first = _play_rounds(session, 8)

    session.reset()
    assert session.snapshot()['epoch'] == 1
    second = _play_rounds(session, 8)

    assert first != second


def test_seeded_source_epochs_differ():
    source = SeededDiceSource('abc')
    assert [source.draw(n) for n in range(1, 40)] != [source.draw(n, 1) for n in range(1, 40)]
    assert source.draw(3, 2) == SeededDiceSource('abc').draw(3, 2)


def test_snapshot_in_revealing_is_not_restorable(session):
    wire = json.loads(json.dumps(session.snapshot()))
    wire['phase'] = c.PHASE_REVEALING
    with pytest.raises(ValidationError):
        MatchSnapshotSchema().load(wire)
