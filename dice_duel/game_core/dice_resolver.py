"""
Round resolution.

The die is the only source of randomness and it lives behind ``DiceSource``.
Everything else here is a pure function of the bets, the baseline, the
players' streaks before the round, and the drawn value. Wagers never reach
the dice source.
"""

import random
from abc import ABC, abstractmethod
from typing import Mapping, Sequence

from . import constants as c
from .models import Bet, GameRules, PlayerResult, PlayerStanding, RoundResult
from .utils import get_direction, is_rush_round, roll_die


class DiceSource(ABC):
    """Seam for the die draw."""

    @abstractmethod
    def draw(self, round_number: int, epoch: int = 0) -> int:
        """
        Die value for ``round_number``. ``epoch`` counts session resets, so a
        restarted match does not replay the previous one.
        """


class SeededDiceSource(DiceSource):
    """
    Deterministic per (seed, round). Both peers of a match share the seed,
    so they see the same die without exchanging it.
    """

    def __init__(self, seed: str, faces: Sequence[int] = c.DICE_FACES):
        self.seed = str(seed)
        self.faces = tuple(faces)

    def draw(self, round_number: int, epoch: int = 0) -> int:
        key = f"{self.seed}:{round_number}" if not epoch else f"{self.seed}:{epoch}:{round_number}"
        rng = random.Random(key)
        return roll_die(self.faces, rng)


def score_bet(
    bet: Bet,
    baseline: int,
    outcome: int,
    pre_round_streak: int,
    rush: bool,
    rules: GameRules,
) -> PlayerResult:
    direction = get_direction(baseline, outcome)

    if direction is None:
        category, base = c.RESULT_PUSH, 0
    elif direction == bet.prediction:
        category, base = c.RESULT_WIN, bet.amount
    else:
        category, base = c.RESULT_LOSE, -bet.amount

    delta = base
    bonuses = []

    if category == c.RESULT_WIN and pre_round_streak > 0 and rules.streak_bonus:
        delta += rules.streak_bonus * pre_round_streak
        bonuses.append(c.BONUS_STREAK)

    if rush and base != 0 and rules.rush_multiplier != 1:
        delta += base * (rules.rush_multiplier - 1)
        bonuses.append(c.BONUS_RUSH)

    return PlayerResult(
        player_id=bet.player_id,
        result=category,
        points_change=delta,
        bonuses=tuple(bonuses),
        bet=bet,
    )


def resolve_round(
    round_number: int,
    baseline: int,
    bets: Mapping[str, Bet],
    standings: Mapping[str, PlayerStanding],
    dice_source: DiceSource,
    rules: GameRules,
    epoch: int = 0,
) -> RoundResult:
    """Draws the round's die once and scores every bet against the baseline."""
    outcome = dice_source.draw(round_number, epoch)
    if outcome not in rules.dice_faces:
        raise ValueError(f"Dice source returned {outcome}, not one of {rules.dice_faces}")

    rush = is_rush_round(round_number)
    player_results = {}
    for player_id, bet in bets.items():
        standing = standings.get(player_id)
        streak = standing.win_streak if standing else 0
        player_results[player_id] = score_bet(bet, baseline, outcome, streak, rush, rules)

    return RoundResult(
        round_number=round_number,
        baseline=baseline,
        dice=outcome,
        is_rush_round=rush,
        player_results=player_results,
    )
