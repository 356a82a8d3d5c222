# dice_duel/services/match_room.py

import threading
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from dice_duel.game_core import GameRules, SeededDiceSource
from dice_duel.game_core import constants as c
from .match_session import MatchSession
from .opponent_channel import LocalChannel

Notification = Dict[str, Any]


class Seat:
    """One player in a room: their socket id and their side of the match."""

    def __init__(self, player_id: str, sid: Optional[str]):
        self.player_id = player_id
        self.sid = sid
        self.session: Optional[MatchSession] = None
        self.dirty = False
        self.last_phase: Optional[str] = None
        self.seen_opponent_lock_round = 0


class MatchRoom:
    """
    Hosts both sides of a match in this process.

    Each player gets a MatchSession; the two are connected by a LocalChannel
    pair and roll the same seeded die. Both sessions share the room lock, are
    ticked together, and leave RESULTS together once both players dismissed
    (or the display time runs out). Session snapshots are turned into
    outgoing notifications that callers collect with ``drain_notifications``.
    """

    def __init__(
        self,
        match_id: str,
        seed: str,
        rules: GameRules,
        log_event: Callable,
        log_stats: Callable,
        finalize_game_callback: Callable[[str], None],
    ):
        self.id = match_id
        self.seed = seed
        self.rules = rules
        self.log_event = log_event
        self.log_stats = log_stats
        self.finalize_game_callback = finalize_game_callback

        self.lock = threading.RLock()
        self.seats: Dict[str, Seat] = {}
        self._order: List[str] = []
        self._outbox: List[Notification] = []
        self._dismissed: Set[Tuple[int, str]] = set()
        self._finished = False

    # --- Setup ---

    def setup(self, first: Tuple[str, str], second: Tuple[str, str]):
        """Seats two players given as (sid, player_id) and wires their sessions."""
        with self.lock:
            (sid_a, pid_a), (sid_b, pid_b) = first, second
            channel_a, channel_b = LocalChannel.pair()
            dice = SeededDiceSource(self.seed, self.rules.dice_faces)

            for (sid, pid, opp, channel) in ((sid_a, pid_a, pid_b, channel_a), (sid_b, pid_b, pid_a, channel_b)):
                seat = Seat(pid, sid)
                seat.session = MatchSession(
                    self.id, pid, opp, channel, dice,
                    rules=self.rules,
                    log_event=self.log_event,
                    lock=self.lock,
                )
                seat.last_phase = seat.session.phase
                seat.session.subscribe(partial(self._on_snapshot, pid))
                self.seats[pid] = seat
                self._order.append(pid)

            self.log_event("ROOM_SETUP", f"Room seated {pid_a} vs {pid_b}.", game_id=self.id)

    # --- Helpers ---

    def get_all_sids(self) -> list:
        return [self.seats[pid].sid for pid in self._order]

    def get_all_player_ids(self) -> list:
        return list(self._order)

    def seat_for_sid(self, sid: str) -> Optional[Seat]:
        with self.lock:
            for seat in self.seats.values():
                if sid and seat.sid == sid:
                    return seat
            return None

    def opponent_of(self, player_id: str) -> Seat:
        other = [pid for pid in self._order if pid != player_id][0]
        return self.seats[other]

    def _notify(self, seat: Seat, event: str, payload: dict):
        if seat.sid:
            self._outbox.append({'event': event, 'payload': payload, 'room': seat.sid})

    # --- Snapshot listener ---

    def _on_snapshot(self, player_id: str, snap: Dict[str, Any]):
        seat = self.seats[player_id]
        seat.dirty = True

        if snap['phase'] != seat.last_phase:
            seat.last_phase = snap['phase']
            self._notify(seat, 'phase_changed', {'phase': snap['phase'], 'round': snap['round_number']})

        opponent_locked = any(b['player_id'] != player_id for b in snap['bets'])
        if opponent_locked and snap['phase'] == c.PHASE_BETTING \
                and seat.seen_opponent_lock_round != snap['round_number']:
            seat.seen_opponent_lock_round = snap['round_number']
            # Lock presence only; the bet itself stays hidden until the reveal
            self._notify(seat, 'opponent_locked', {'round': snap['round_number']})

        if snap['phase'] in c.TERMINAL_PHASES:
            self._finish_if_done()

    def _finish_if_done(self):
        if self._finished:
            return
        sessions = [self.seats[pid].session for pid in self._order]
        # A leaving side notifies its peer before it moves to ABANDONED itself
        if not all(s.phase in c.TERMINAL_PHASES for s in sessions):
            return

        self._finished = True
        first = sessions[0]
        standings = first.standings()
        reasons = {s.player_id: s.end_reason for s in sessions}

        for pid in self._order:
            seat = self.seats[pid]
            self._notify(seat, 'match_ended', {
                'phase': seat.session.phase,
                'reason': seat.session.end_reason,
                'standings': standings,
            })

        self.log_stats({
            'match_id': self.id,
            'players': list(self._order),
            'rounds_played': first.accumulator.rounds_played,
            'standings': standings,
            'end_reasons': reasons,
        })
        self.log_event("MATCH_FINISHED", f"Match over: {reasons}", game_id=self.id)
        self.finalize_game_callback(self.id)

    def drain_notifications(self) -> List[Notification]:
        with self.lock:
            for pid in self._order:
                seat = self.seats[pid]
                if seat.dirty:
                    seat.dirty = False
                    self._notify(seat, 'state_update', seat.session.view())
            out, self._outbox = self._outbox, []
            return out

    # --- Commands ---

    def lock_bet(self, sid: str, amount: int, prediction: str) -> List[Notification]:
        with self.lock:
            seat = self._require_seat(sid)
            seat.session.lock_bet(amount, prediction)
            return self.drain_notifications()

    def dismiss_results(self, sid: str) -> List[Notification]:
        with self.lock:
            seat = self._require_seat(sid)
            session = seat.session
            if session.phase != c.PHASE_RESULTS:
                # Counts and logs the violation, then raises it
                session.dismiss_results()

            self._dismissed.add((session.round_number, seat.player_id))
            other = self.opponent_of(seat.player_id)
            other_waiting = (
                other.session.phase == c.PHASE_RESULTS
                and (other.session.round_number, other.player_id) not in self._dismissed
            )
            if other_waiting and other.sid:
                self._notify(seat, 'waiting_for_opponent', {'round': session.round_number})
                return self.drain_notifications()

            for pid in self._order:
                s = self.seats[pid].session
                if s.phase == c.PHASE_RESULTS:
                    s.dismiss_results()
            return self.drain_notifications()

    def tick(self) -> List[Notification]:
        with self.lock:
            sessions = [self.seats[pid].session for pid in self._order]
            before = [(s.phase, s.round_number) for s in sessions]
            for session, seen in zip(sessions, before):
                # Already moved this cycle by its peer's tick; keeps both sides in step
                if (session.phase, session.round_number) != seen:
                    continue
                session.tick()
            return self.drain_notifications()

    def leave(self, sid: str) -> List[Notification]:
        """The player on ``sid`` leaves; the opponent's side ends as ABANDONED."""
        with self.lock:
            seat = self.seat_for_sid(sid)
            if seat is None:
                return []
            self.log_event("PLAYER_LEFT", "Player left the match.", sid=sid, game_id=self.id)
            seat.session.leave()
            seat.sid = None
            return self.drain_notifications()

    def _require_seat(self, sid: str) -> Seat:
        seat = self.seat_for_sid(sid)
        if seat is None:
            raise KeyError(f"sid {sid} is not seated in match {self.id}")
        return seat

    # --- Read ---

    def summary(self) -> Dict[str, Any]:
        """Public match summary (no bets)."""
        with self.lock:
            first = self.seats[self._order[0]].session
            return {
                'match_id': self.id,
                'players': list(self._order),
                'round': first.round_number,
                'is_rush_round': first.is_rush_round,
                'phases': {pid: self.seats[pid].session.phase for pid in self._order},
                'standings': first.standings(),
                'finished': self._finished,
            }
