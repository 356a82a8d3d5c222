# dice_duel/game_core/constants.py

# === Phases ===
PHASE_BETTING = "BETTING"
PHASE_REVEALING = "REVEALING"
PHASE_RESULTS = "RESULTS"
PHASE_GAME_OVER = "GAME_OVER"
# Forfeit end state: the opponent left. Not the same thing as GAME_OVER.
PHASE_ABANDONED = "ABANDONED"

ACTIVE_PHASES = (PHASE_BETTING, PHASE_REVEALING, PHASE_RESULTS)
TERMINAL_PHASES = (PHASE_GAME_OVER, PHASE_ABANDONED)
# Phases a session can be saved in and restored from
RESTORABLE_PHASES = (PHASE_BETTING, PHASE_RESULTS, PHASE_GAME_OVER, PHASE_ABANDONED)

# Allowed phase transitions. Anything else is a PhaseViolation.
PHASE_TRANSITIONS = {
    PHASE_BETTING: (PHASE_REVEALING, PHASE_ABANDONED),
    PHASE_REVEALING: (PHASE_RESULTS, PHASE_ABANDONED),
    PHASE_RESULTS: (PHASE_BETTING, PHASE_GAME_OVER, PHASE_ABANDONED),
    PHASE_GAME_OVER: (),
    PHASE_ABANDONED: (),
}

# === Predictions ===
PREDICTION_HIGHER = "higher"
PREDICTION_LOWER = "lower"
PREDICTIONS = (PREDICTION_HIGHER, PREDICTION_LOWER)

# Used for the automatic lock when the betting clock runs out
DEFAULT_PREDICTION = PREDICTION_HIGHER
FORCED_WAGER = 0

# === Round outcome categories ===
RESULT_WIN = "win"
RESULT_LOSE = "lose"
RESULT_PUSH = "push"

# === Bonus tags ===
BONUS_STREAK = "streak_bonus"
BONUS_RUSH = "rush_round"

# === End reasons ===
END_MAX_ROUNDS = "max_rounds"
END_BUST = "bust"
END_OPPONENT_LEFT = "opponent_left"
END_LOCAL_LEFT = "left"

# === Rule defaults ===
DICE_FACES = (1, 2, 3, 4, 5, 6)
ROUND_SECONDS = 10
MAX_ROUNDS = 20
STARTING_SCORE = 100
STREAK_BONUS = 5
RUSH_MULTIPLIER = 2
RUSH_ROUND_EVERY = 5
RESULTS_DISPLAY_SEC = 3
END_ON_BUST = True
