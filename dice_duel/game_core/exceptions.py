"""
Game errors.

Every error is recoverable: a rejected command leaves the match untouched and
the socket layer reports it back to the player as a ``move_rejection``.
"""


class DiceDuelError(Exception):
    """Base class for all game errors."""
    code = "GAME_ERROR"


class InvalidWager(DiceDuelError):
    """Wager is negative, above the player's score, or the prediction is unknown."""
    code = "INVALID_WAGER"


class AlreadyLocked(DiceDuelError):
    """The player already locked a bet this round."""
    code = "ALREADY_LOCKED"

    def __init__(self, player_id, round_number):
        self.player_id = player_id
        self.round_number = round_number
        super().__init__(f"Player {player_id} already locked a bet in round {round_number}")


class PhaseViolation(DiceDuelError):
    """An operation or transition was attempted from the wrong phase."""
    code = "PHASE_VIOLATION"

    def __init__(self, current, attempted):
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot {attempted} while in phase {current}")


class StaleRoundEvent(DiceDuelError):
    """An opponent event for a round that is not open for betting."""
    code = "STALE_ROUND_EVENT"

    def __init__(self, event_round, active_round):
        self.event_round = event_round
        self.active_round = active_round
        super().__init__(f"Event for round {event_round} dropped (active round {active_round})")


class ForfeitAbandon(DiceDuelError):
    """The opponent left; the match is over and no longer accepts commands."""
    code = "FORFEIT_ABANDON"
