# dice_duel/config.py

class Config:
    """Base configuration (safe defaults)."""

    LOG_FILE = 'application.log'
    STATS_LOG_FILE = 'match_stats.log'

    # --- Round rules ---
    ROUND_SECONDS = 10
    MAX_ROUNDS = 20
    STARTING_SCORE = 100
    RESULTS_DISPLAY_SEC = 3
    DICE_FACES = (1, 2, 3, 4, 5, 6)
    # A player at 0 points ends the match
    END_ON_BUST = True

    # --- Bonuses ---
    STREAK_BONUS = 5
    RUSH_MULTIPLIER = 2

    # --- Server ---
    TICK_INTERVAL_SEC = 1.0
    START_BACKGROUND_WORKERS = True
    SOCKETIO_ASYNC_MODE = None
    RATELIMIT_ENABLED = True
    MATCH_LOOKUP_RATE_LIMIT = "30 per minute"
