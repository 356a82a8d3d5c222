# dice_duel/services/game_state.py

from typing import Dict, Optional

from dice_duel.game_core import GameRules, RoundResult
from dice_duel.game_core.constants import PHASE_BETTING


class MatchState:
    """
    Plain state holder (DTO) for one player's view of a match.
    No logic; MatchSession owns and mutates it.
    """
    def __init__(self, match_id: str, player_id: str, opponent_id: str, rules: GameRules):
        self.match_id = match_id
        self.player_id = player_id
        self.opponent_id = opponent_id

        self.phase: str = PHASE_BETTING
        self.round_number: int = 1
        # Die shown while betting; predictions are made against it
        self.baseline: Optional[int] = None
        self.last_result: Optional[RoundResult] = None
        # round_number -> result, one entry per resolved round
        self.results: Dict[int, RoundResult] = {}
        self.results_hold: int = rules.results_display_sec
        self.end_reason: Optional[str] = None

        # Diagnostics
        self.stale_events: int = 0
        self.phase_violations: int = 0
