# dice_duel/game_core/utils.py

import random
from typing import Sequence

from . import constants as c


def roll_die(faces: Sequence[int] = c.DICE_FACES, rng: random.Random = None) -> int:
    """Rolls one die."""
    return (rng or random).choice(tuple(faces))


def is_rush_round(round_number: int) -> bool:
    """Every fifth round is a rush round. Round 0 never is."""
    return round_number > 0 and round_number % c.RUSH_ROUND_EVERY == 0


def get_direction(baseline: int, outcome: int):
    """Returns 'higher', 'lower', or None when the die repeats the baseline."""
    if outcome > baseline:
        return c.PREDICTION_HIGHER
    if outcome < baseline:
        return c.PREDICTION_LOWER
    return None


def is_valid_wager(amount, score: int) -> bool:
    # bool is an int subclass; True is not a wager
    if isinstance(amount, bool) or not isinstance(amount, int):
        return False
    return 0 <= amount <= score
