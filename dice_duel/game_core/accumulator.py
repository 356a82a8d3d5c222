# dice_duel/game_core/accumulator.py

from typing import Dict, List, Mapping, Optional

from . import constants as c
from .models import GameRules, PlayerStanding, RoundResult


class SessionAccumulator:
    """
    Running totals for a match: score and win streak per player, plus the
    round counter. Decides when the match is over.
    """

    def __init__(self, player_ids: List[str], rules: GameRules):
        self.rules = rules
        self.standings: Dict[str, PlayerStanding] = {
            pid: PlayerStanding(player_id=pid, score=rules.starting_score)
            for pid in player_ids
        }
        self.rounds_played = 0

    def get(self, player_id: str) -> PlayerStanding:
        return self.standings[player_id]

    def score_of(self, player_id: str) -> int:
        return self.standings[player_id].score

    def apply(self, result: RoundResult):
        for player_id, player_result in result.player_results.items():
            standing = self.standings[player_id]
            standing.score = max(0, standing.score + player_result.points_change)
            if player_result.result == c.RESULT_WIN:
                standing.win_streak += 1
            else:
                standing.win_streak = 0
        self.rounds_played = max(self.rounds_played, result.round_number)

    def end_reason(self, round_number: int) -> Optional[str]:
        """Why the match ends after ``round_number``, or None if it goes on."""
        if self.rules.end_on_bust and any(s.score == 0 for s in self.standings.values()):
            return c.END_BUST
        if round_number >= self.rules.max_rounds:
            return c.END_MAX_ROUNDS
        return None

    def is_game_over(self, round_number: int) -> bool:
        return self.end_reason(round_number) is not None

    def restore(self, standings: Mapping[str, Mapping], rounds_played: int):
        for player_id, data in standings.items():
            self.standings[player_id] = PlayerStanding(
                player_id=player_id,
                score=int(data['score']),
                win_streak=int(data['win_streak']),
            )
        self.rounds_played = int(rounds_played)
