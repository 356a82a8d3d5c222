# dice_duel/game_core/bet_ledger.py

import time
from typing import Callable, Dict, List, Optional

from . import constants as c
from .exceptions import AlreadyLocked, InvalidWager, PhaseViolation
from .models import Bet
from .utils import is_valid_wager


class BetLedger:
    """
    Locked bets of the active round, at most one per player.

    The local player's bet goes through ``lock_bet``, which validates it.
    The opponent's bet arrives sealed from the sync channel and is only
    recorded; its content stays hidden from projections until resolution.
    """

    def __init__(
        self,
        local_player_id: str,
        opponent_id: str,
        on_locked: Optional[Callable[[Bet], None]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.local_player_id = local_player_id
        self.opponent_id = opponent_id
        self.on_locked = on_locked
        self._clock = clock
        self._bets: Dict[str, Bet] = {}

    def lock_bet(
        self,
        player_id: str,
        amount: int,
        prediction: str,
        score: int,
        phase: str,
        round_number: int,
        forced: bool = False,
    ) -> Bet:
        # --- Guard clauses ---
        if phase != c.PHASE_BETTING:
            raise PhaseViolation(phase, "lock a bet")

        if prediction not in c.PREDICTIONS:
            raise InvalidWager(f"Unknown prediction {prediction!r}")

        if not is_valid_wager(amount, score):
            raise InvalidWager(f"Wager {amount!r} must be between 0 and {score}")

        if player_id in self._bets:
            raise AlreadyLocked(player_id, round_number)

        # --- Commit ---
        bet = Bet(
            player_id=player_id,
            round_number=round_number,
            amount=amount,
            prediction=prediction,
            locked_at=self._clock(),
            forced=forced,
        )
        self._bets[player_id] = bet

        if self.on_locked:
            self.on_locked(bet)
        return bet

    def record_opponent_lock(self, bet: Bet) -> bool:
        """Stores the opponent's sealed bet. Returns False for a duplicate delivery."""
        if self.opponent_id in self._bets:
            return False
        self._bets[self.opponent_id] = bet
        return True

    def has_locked(self, player_id: str) -> bool:
        return player_id in self._bets

    def get(self, player_id: str) -> Optional[Bet]:
        return self._bets.get(player_id)

    def both_locked(self) -> bool:
        return self.local_player_id in self._bets and self.opponent_id in self._bets

    def locked_players(self) -> List[str]:
        return sorted(self._bets)

    def bets(self) -> Dict[str, Bet]:
        return dict(self._bets)

    def clear(self):
        self._bets.clear()

    def restore(self, bets: List[Bet]):
        self._bets = {bet.player_id: bet for bet in bets}
