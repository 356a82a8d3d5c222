# --- Standard library ---
import threading
import time
import logging
from collections import deque
from typing import Any, Callable, Dict, List, Mapping, Optional

# --- Game core ---
from dice_duel.game_core import (
    Bet,
    BetLedger,
    DiceDuelError,
    DiceSource,
    ForfeitAbandon,
    GameRules,
    PhaseViolation,
    RoundClock,
    RoundResult,
    SessionAccumulator,
    StaleRoundEvent,
    is_rush_round,
    resolve_round,
)
from dice_duel.game_core import constants as c
from dice_duel.game_core.utils import is_valid_wager

# --- Local services ---
from .game_state import MatchState
from .opponent_channel import OpponentSyncChannel

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]


class MatchSession:
    """
    One player's side of a match: the round state machine.

    BETTING -> REVEALING -> RESULTS -> (BETTING | GAME_OVER), with ABANDONED
    reachable from any active phase when the opponent leaves.

    Commands, clock ticks and channel events all go through one inbox and are
    applied one at a time under ``self.lock``. Anything submitted while the
    inbox is being drained (a listener reacting to a snapshot, a peer calling
    back) waits its turn instead of running nested.
    """

    def __init__(
        self,
        match_id: str,
        player_id: str,
        opponent_id: str,
        channel: OpponentSyncChannel,
        dice_source: DiceSource,
        rules: Optional[GameRules] = None,
        log_event: Optional[Callable] = None,
        clock: Callable[[], float] = time.time,
        lock: Optional[threading.RLock] = None,
    ):
        if player_id == opponent_id:
            raise ValueError("A match needs two distinct players")

        self.id = match_id
        self.player_id = player_id
        self.opponent_id = opponent_id
        self.rules = rules or GameRules()
        self.dice_source = dice_source
        self.channel = channel
        self.log_event = log_event or (lambda *args, **kwargs: None)
        self._time = clock

        # Sessions hosted in one process share the room lock
        self.lock = lock or threading.RLock()
        self._inbox: deque = deque()
        self._draining = False
        self._listeners: List[Listener] = []
        self._pending_snapshots: List[Dict[str, Any]] = []
        # Bumped by reset(); keeps a restarted match off the previous dice
        self.epoch = 0

        self._init_match_state()
        self.channel.bind(self)

        self.log_event(
            "SESSION_INIT",
            f"Session for {player_id} vs {opponent_id} created.",
            game_id=self.id
        )

    def _init_match_state(self):
        self.state = MatchState(self.id, self.player_id, self.opponent_id, self.rules)
        self.ledger = BetLedger(
            self.player_id, self.opponent_id,
            on_locked=self._on_local_locked,
            clock=self._time
        )
        self.accumulator = SessionAccumulator([self.player_id, self.opponent_id], self.rules)
        self.clock = RoundClock(self.rules.round_seconds, on_expire=self._on_clock_expired)
        # Round 1 compares against an opening roll
        self.state.baseline = self.dice_source.draw(0, self.epoch)
        self._left = False

    # --- Read-only projections ---

    @property
    def phase(self) -> str:
        return self.state.phase

    @property
    def round_number(self) -> int:
        return self.state.round_number

    @property
    def is_rush_round(self) -> bool:
        return is_rush_round(self.state.round_number)

    @property
    def last_result(self) -> Optional[RoundResult]:
        return self.state.last_result

    @property
    def end_reason(self) -> Optional[str]:
        return self.state.end_reason

    def seconds_remaining(self) -> int:
        return self.clock.seconds_remaining()

    def standings(self) -> Dict[str, Dict[str, int]]:
        return {
            pid: {'score': s.score, 'win_streak': s.win_streak}
            for pid, s in self.accumulator.standings.items()
        }

    def snapshot(self) -> Dict[str, Any]:
        """Full serializable state, including the sealed opponent bet."""
        with self.lock:
            s = self.state
            return {
                'match_id': self.id,
                'player_id': self.player_id,
                'opponent_id': self.opponent_id,
                'epoch': self.epoch,
                'phase': s.phase,
                'round_number': s.round_number,
                'is_rush_round': self.is_rush_round,
                'baseline': s.baseline,
                'seconds_remaining': self.clock.seconds_remaining(),
                'clock_running': self.clock.running,
                'clock_expired': self.clock.expired,
                'results_hold': s.results_hold,
                'standings': self.standings(),
                'rounds_played': self.accumulator.rounds_played,
                'bets': [bet.to_dict() for bet in self.ledger.bets().values()],
                'last_result': s.last_result.to_dict() if s.last_result else None,
                'end_reason': s.end_reason,
                'stale_events': s.stale_events,
                'phase_violations': s.phase_violations,
            }

    def view(self) -> Dict[str, Any]:
        """What the presentation layer may show to the local player."""
        with self.lock:
            s = self.state
            me = self.accumulator.get(self.player_id)
            them = self.accumulator.get(self.opponent_id)
            my_bet = self.ledger.get(self.player_id)
            return {
                'match_id': self.id,
                'phase': s.phase,
                'round': s.round_number,
                'total_rounds': self.rules.max_rounds,
                'is_rush_round': self.is_rush_round,
                'current_dice': s.baseline,
                'time_remaining': self.clock.seconds_remaining(),
                'my_score': me.score,
                'win_streak': me.win_streak,
                'opponent_score': them.score,
                'opponent_win_streak': them.win_streak,
                'my_bet': my_bet.to_dict() if my_bet else None,
                'bet_locked': my_bet is not None,
                'opponent_locked': self.ledger.has_locked(self.opponent_id),
                'last_round_results': s.last_result.to_dict() if s.last_result else None,
                'end_reason': s.end_reason,
            }

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Registers a snapshot listener. Returns the unsubscribe callable."""
        with self.lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self.lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    # --- Commands (presentation layer) ---

    def lock_bet(self, amount: int, prediction: str) -> Optional[Bet]:
        return self._submit(self._lock_local_bet, amount, prediction, False)

    def dismiss_results(self):
        return self._submit(self._dismiss_results)

    def reset(self):
        return self._submit(self._reset)

    def leave(self):
        return self._submit(self._leave)

    def tick(self):
        """One second of the external cadence."""
        return self._submit(self._tick)

    # --- Channel events ---

    def on_opponent_locked(self, round_number: int, ack: Any):
        return self._submit(self._opponent_locked, round_number, ack)

    def on_opponent_left(self):
        return self._submit(self._opponent_left)

    # --- Mutation queue ---

    def _submit(self, action: Callable, *args):
        with self.lock:
            if self._draining:
                self._inbox.append((action, args))
                return None

            self._draining = True
            try:
                return action(*args)
            finally:
                try:
                    self._drain()
                finally:
                    self._draining = False

    def _drain(self):
        while self._inbox or self._pending_snapshots:
            while self._inbox:
                action, args = self._inbox.popleft()
                try:
                    action(*args)
                except DiceDuelError as e:
                    logger.warning(f"[MatchSession {self.id}] Deferred {action.__name__} rejected: {e}")
                    self.log_event(
                        "DEFERRED_REJECTED", str(e),
                        game_id=self.id, extra_data={'player': self.player_id}
                    )

            snapshots, self._pending_snapshots = self._pending_snapshots, []
            for snap in snapshots:
                for listener in list(self._listeners):
                    try:
                        listener(snap)
                    except Exception as e:
                        logger.error(f"[MatchSession {self.id}] Listener failed: {e}", exc_info=True)

    def _changed(self):
        self._pending_snapshots.append(self.snapshot())

    # --- Phase transitions ---

    def _transition(self, target: str):
        current = self.state.phase
        if target not in c.PHASE_TRANSITIONS[current]:
            raise PhaseViolation(current, f"move to {target}")

        self.state.phase = target
        self.log_event(
            "STATE_CHANGE", f"State -> {target} (round {self.state.round_number})",
            game_id=self.id, extra_data={'player': self.player_id}
        )
        self._changed()

    def _try_transition(self, target: str) -> bool:
        """Like _transition, but an illegal move is logged and ignored."""
        try:
            self._transition(target)
            return True
        except PhaseViolation as e:
            self.state.phase_violations += 1
            logger.warning(f"[MatchSession {self.id}] {e}")
            self.log_event(
                "STATE_VIOLATION_BLOCKED", str(e),
                game_id=self.id, extra_data={'player': self.player_id}
            )
            return False

    def _ensure_active(self, attempted: str):
        if self.state.phase == c.PHASE_ABANDONED:
            raise ForfeitAbandon(f"Cannot {attempted}: the match was abandoned ({self.state.end_reason})")

    # --- Betting ---

    def _lock_local_bet(self, amount: int, prediction: str, forced: bool) -> Bet:
        self._ensure_active("lock a bet")
        bet = self.ledger.lock_bet(
            self.player_id,
            amount,
            prediction,
            score=self.accumulator.score_of(self.player_id),
            phase=self.state.phase,
            round_number=self.state.round_number,
            forced=forced,
        )
        self._changed()
        self._reveal_if_both_locked()
        return bet

    def _on_local_locked(self, bet: Bet):
        if bet.player_id != self.player_id:
            return
        self.log_event(
            "BET_LOCKED", f"Round {bet.round_number}: bet locked (forced={bet.forced}).",
            game_id=self.id, extra_data={'player': self.player_id}
        )
        self.channel.emit_local_locked(bet.round_number, bet)

    def _opponent_locked(self, round_number: int, ack: Any):
        state = self.state
        bet = self._sealed_bet(ack)

        # Both clocks ran out: our fill-in already resolved the round the peer's forced lock is for
        if bet is not None and bet.forced and round_number in state.results:
            self.log_event(
                "LATE_FORCED_LOCK", f"Forced lock for resolved round {round_number} ignored.",
                game_id=self.id, extra_data={'player': self.player_id}
            )
            return

        try:
            if state.phase != c.PHASE_BETTING or round_number != state.round_number:
                raise StaleRoundEvent(round_number, state.round_number)
        except StaleRoundEvent as e:
            state.stale_events += 1
            logger.info(f"[MatchSession {self.id}] {e} (phase {state.phase})")
            self.log_event("STALE_EVENT", str(e), game_id=self.id, extra_data={'player': self.player_id})
            self._changed()
            return

        if not self._acceptable_ack(bet, round_number):
            logger.warning(f"[MatchSession {self.id}] Unusable opponent ack dropped: {ack!r}")
            self.log_event("INVALID_ACK", f"Round {round_number}: ack dropped.", game_id=self.id)
            return

        if not self.ledger.record_opponent_lock(bet):
            self.log_event(
                "DUPLICATE_EVENT", f"Opponent lock for round {round_number} delivered again.",
                game_id=self.id, extra_data={'player': self.player_id}
            )
            return

        self._changed()
        self._reveal_if_both_locked()

    def _acceptable_ack(self, bet: Optional[Bet], round_number: int) -> bool:
        """The sealed bet must be one the opponent could have locked this round."""
        if bet is None or bet.player_id != self.opponent_id:
            return False
        if bet.round_number != round_number or bet.prediction not in c.PREDICTIONS:
            return False
        return is_valid_wager(bet.amount, self.accumulator.score_of(self.opponent_id))

    def _sealed_bet(self, ack: Any) -> Optional[Bet]:
        if isinstance(ack, Bet):
            return ack
        if isinstance(ack, Mapping):
            try:
                return Bet.from_dict(ack)
            except (KeyError, TypeError, ValueError):
                return None
        return None

    def _forced_opponent_bet(self) -> Bet:
        return Bet(
            player_id=self.opponent_id,
            round_number=self.state.round_number,
            amount=c.FORCED_WAGER,
            prediction=c.DEFAULT_PREDICTION,
            locked_at=self._time(),
            forced=True,
        )

    def _reveal_if_both_locked(self):
        if self.state.phase == c.PHASE_BETTING and self.ledger.both_locked():
            self._begin_reveal()

    def _on_clock_expired(self):
        if self.state.phase != c.PHASE_BETTING:
            return

        self.log_event(
            "CLOCK_EXPIRED", f"Betting closed for round {self.state.round_number}.",
            game_id=self.id, extra_data={'player': self.player_id}
        )

        if not self.ledger.has_locked(self.player_id):
            self.ledger.lock_bet(
                self.player_id,
                c.FORCED_WAGER,
                c.DEFAULT_PREDICTION,
                score=self.accumulator.score_of(self.player_id),
                phase=self.state.phase,
                round_number=self.state.round_number,
                forced=True,
            )

        # The peer fills our missing bet the same way when its clock runs out
        if not self.ledger.has_locked(self.opponent_id):
            self.ledger.record_opponent_lock(self._forced_opponent_bet())

        self._begin_reveal()

    # --- Reveal / results ---

    def _begin_reveal(self):
        if not self._try_transition(c.PHASE_REVEALING):
            return
        self.clock.cancel()
        self._resolve_current_round()
        if self._try_transition(c.PHASE_RESULTS):
            self.state.results_hold = self.rules.results_display_sec

    def _resolve_current_round(self) -> RoundResult:
        state = self.state
        existing = state.results.get(state.round_number)
        if existing is not None:
            self.log_event(
                "RESOLVE_SKIPPED", f"Round {state.round_number} already resolved.",
                game_id=self.id, extra_data={'player': self.player_id}
            )
            return existing

        result = resolve_round(
            state.round_number,
            state.baseline,
            self.ledger.bets(),
            self.accumulator.standings,
            self.dice_source,
            self.rules,
            epoch=self.epoch,
        )
        self.accumulator.apply(result)
        state.results[state.round_number] = result
        state.last_result = result

        self.log_event(
            "ROUND_RESOLVED",
            f"Round {result.round_number}: {result.baseline} -> {result.dice}",
            game_id=self.id,
            extra_data={
                'player': self.player_id,
                'results': {pid: (r.result, r.points_change) for pid, r in result.player_results.items()},
            }
        )
        return result

    def _dismiss_results(self):
        self._ensure_active("dismiss results")
        if self.state.phase != c.PHASE_RESULTS:
            error = PhaseViolation(self.state.phase, "dismiss results")
            self.state.phase_violations += 1
            self.log_event(
                "STATE_VIOLATION_BLOCKED", str(error),
                game_id=self.id, extra_data={'player': self.player_id}
            )
            self._changed()
            raise error
        self._advance_from_results()

    def _advance_from_results(self):
        state = self.state
        reason = self.accumulator.end_reason(state.round_number)

        if reason is not None:
            if self._try_transition(c.PHASE_GAME_OVER):
                state.end_reason = reason
                self.log_event(
                    "GAME_END", f"Game over after round {state.round_number} ({reason}).",
                    game_id=self.id, extra_data={'player': self.player_id, 'standings': self.standings()}
                )
                self._changed()
            return

        state.round_number += 1
        state.baseline = state.last_result.dice
        self.ledger.clear()
        self.clock.reset(self.rules.round_seconds)
        self._try_transition(c.PHASE_BETTING)

    # --- Clock ---

    def _tick(self):
        phase = self.state.phase
        if phase == c.PHASE_BETTING:
            fired = self.clock.tick()
            if not fired:
                self._changed()
        elif phase == c.PHASE_RESULTS:
            self.state.results_hold -= 1
            if self.state.results_hold <= 0:
                self._advance_from_results()

    # --- Lifecycle ---

    def _opponent_left(self):
        if self.state.phase in c.TERMINAL_PHASES:
            self.log_event(
                "OPPONENT_LEFT", f"Opponent left after the match ended ({self.state.phase}).",
                game_id=self.id, extra_data={'player': self.player_id}
            )
            return

        self.clock.cancel()
        self.state.end_reason = c.END_OPPONENT_LEFT
        self._transition(c.PHASE_ABANDONED)
        self.log_event(
            "GAME_END_FORFEIT", "Opponent left; match abandoned.",
            game_id=self.id, extra_data={'player': self.player_id}
        )

    def _leave(self):
        if self._left:
            return
        self._left = True
        self.channel.emit_local_left()

        if self.state.phase not in c.TERMINAL_PHASES:
            self.clock.cancel()
            self.state.end_reason = c.END_LOCAL_LEFT
            self._transition(c.PHASE_ABANDONED)

    def _reset(self):
        self.log_event(
            "SESSION_RESET", f"Reset from phase {self.state.phase}.",
            game_id=self.id, extra_data={'player': self.player_id}
        )
        self.epoch += 1
        self._init_match_state()
        self._changed()

    # --- Snapshot restore ---

    @classmethod
    def restore(
        cls,
        snapshot: Mapping[str, Any],
        channel: OpponentSyncChannel,
        dice_source: DiceSource,
        rules: Optional[GameRules] = None,
        log_event: Optional[Callable] = None,
        clock: Callable[[], float] = time.time,
    ) -> 'MatchSession':
        session = cls(
            snapshot['match_id'],
            snapshot['player_id'],
            snapshot['opponent_id'],
            channel,
            dice_source,
            rules=rules,
            log_event=log_event,
            clock=clock,
        )
        with session.lock:
            session._apply_snapshot(snapshot)
        return session

    def _apply_snapshot(self, snapshot: Mapping[str, Any]):
        self.epoch = int(snapshot.get('epoch', 0))
        state = self.state
        state.phase = snapshot['phase']
        state.round_number = int(snapshot['round_number'])
        state.baseline = snapshot['baseline']
        state.results_hold = int(snapshot['results_hold'])
        state.end_reason = snapshot.get('end_reason')
        state.stale_events = int(snapshot.get('stale_events', 0))
        state.phase_violations = int(snapshot.get('phase_violations', 0))

        last = snapshot.get('last_result')
        state.last_result = RoundResult.from_dict(last) if last else None
        state.results = {}
        if state.last_result is not None:
            state.results[state.last_result.round_number] = state.last_result

        self.accumulator.restore(snapshot['standings'], snapshot.get('rounds_played', 0))
        self.ledger.restore([Bet.from_dict(b) for b in snapshot.get('bets', [])])
        self.clock.restore(
            snapshot['seconds_remaining'],
            snapshot.get('clock_running', state.phase == c.PHASE_BETTING),
            snapshot.get('clock_expired', False),
        )
