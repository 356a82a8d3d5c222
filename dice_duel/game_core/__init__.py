# dice_duel/game_core/__init__.py

# Public API of the game core
from .constants import (
    PHASE_BETTING, PHASE_REVEALING, PHASE_RESULTS, PHASE_GAME_OVER, PHASE_ABANDONED,
    PREDICTION_HIGHER, PREDICTION_LOWER,
    RESULT_WIN, RESULT_LOSE, RESULT_PUSH,
)

from .exceptions import (
    DiceDuelError,
    InvalidWager,
    AlreadyLocked,
    PhaseViolation,
    StaleRoundEvent,
    ForfeitAbandon,
)

from .models import (
    GameRules,
    Bet,
    PlayerStanding,
    PlayerResult,
    RoundResult,
)

from .round_clock import RoundClock
from .bet_ledger import BetLedger
from .accumulator import SessionAccumulator

from .dice_resolver import (
    DiceSource,
    SeededDiceSource,
    resolve_round,
    score_bet,
)

from .utils import (
    roll_die,
    is_rush_round,
    get_direction,
)
