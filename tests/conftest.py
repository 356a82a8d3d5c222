import threading
from collections import Counter

import pytest

from dice_duel import create_app, socketio
from dice_duel.extensions import sid_to_player_map, sid_to_player_lock
from dice_duel.game_core import DiceSource, GameRules
from dice_duel.services.match_session import MatchSession
from dice_duel.services.opponent_channel import LocalChannel, OpponentSyncChannel


class ScriptedDice(DiceSource):
    """Returns a fixed value per round and counts every draw."""

    def __init__(self, rolls=None, default=4):
        self.rolls = dict(rolls or {})
        self.default = default
        self.draws = Counter()

    def draw(self, round_number, epoch=0):
        self.draws[round_number] += 1
        return self.rolls.get(round_number, self.default)


class RecordingChannel(OpponentSyncChannel):
    """Stands in for the network: records what the session sends to its peer."""

    def __init__(self):
        super().__init__()
        self.locked = []
        self.left = 0

    def emit_local_locked(self, round_number, bet):
        self.locked.append((round_number, bet))

    def emit_local_left(self):
        self.left += 1


class EventRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, event_type, message, sid=None, game_id=None, extra_data=None):
        self.events.append((event_type, message))

    def types(self):
        return [e for e, _ in self.events]


def fixed_clock():
    return 1000.0


@pytest.fixture
def rules():
    return GameRules()


@pytest.fixture
def dice():
    # Opening roll 3, then a 5 in round 1
    return ScriptedDice({0: 3, 1: 5})


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def make_session(rules, dice, recorder):
    def _make(channel=None, rules_=None, dice_=None):
        return MatchSession(
            'match-1', 'alice', 'bob',
            channel or RecordingChannel(),
            dice_ or dice,
            rules=rules_ or rules,
            log_event=recorder,
            clock=fixed_clock,
        )
    return _make


@pytest.fixture
def session(make_session):
    return make_session()


@pytest.fixture
def make_pair(rules, dice, recorder):
    def _make(rules_=None, dice_=None):
        chan_a, chan_b = LocalChannel.pair()
        lock = threading.RLock()
        common = dict(rules=rules_ or rules, log_event=recorder, clock=fixed_clock, lock=lock)
        alice = MatchSession('match-1', 'alice', 'bob', chan_a, dice_ or dice, **common)
        bob = MatchSession('match-1', 'bob', 'alice', chan_b, dice_ or dice, **common)
        return alice, bob
    return _make


def phase_history(session):
    """Subscribes to a session and returns the list its phases are appended to."""
    phases = [session.phase]

    def listener(snap):
        if snap['phase'] != phases[-1]:
            phases.append(snap['phase'])

    session.subscribe(listener)
    return phases


# --- Flask app / Socket.IO ---

@pytest.fixture
def test_config(tmp_path):
    class TestConfig:
        TESTING = True
        LOG_FILE = str(tmp_path / 'application.log')
        STATS_LOG_FILE = str(tmp_path / 'match_stats.log')
        ROUND_SECONDS = 10
        MAX_ROUNDS = 20
        STARTING_SCORE = 100
        RESULTS_DISPLAY_SEC = 3
        DICE_FACES = (1, 2, 3, 4, 5, 6)
        END_ON_BUST = True
        STREAK_BONUS = 5
        RUSH_MULTIPLIER = 2
        TICK_INTERVAL_SEC = 1.0
        START_BACKGROUND_WORKERS = False
        SOCKETIO_ASYNC_MODE = 'threading'
        RATELIMIT_ENABLED = False
        MATCH_LOOKUP_RATE_LIMIT = "30 per minute"
    return TestConfig


@pytest.fixture
def flask_app(test_config):
    with sid_to_player_lock:
        sid_to_player_map.clear()
    application, _ = create_app(test_config)
    yield application
    with sid_to_player_lock:
        sid_to_player_map.clear()


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture
def connect_player(flask_app):
    clients = []

    def _connect(player_id):
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            auth={'player_id': player_id} if player_id is not None else None,
        )
        clients.append(test_client)
        return test_client

    yield _connect

    for test_client in clients:
        if test_client.is_connected():
            test_client.disconnect()


def received(test_client, name):
    """Payloads of every received event called ``name``."""
    return [pkt['args'][0] for pkt in test_client.get_received() if pkt['name'] == name]


def events_by_name(test_client):
    out = {}
    for pkt in test_client.get_received():
        out.setdefault(pkt['name'], []).append(pkt['args'][0] if pkt['args'] else None)
    return out
