# dice_duel/game_core/round_clock.py

from typing import Callable, Optional


class RoundClock:
    """
    Countdown for the betting window.

    Ticks come from outside (the server's ticker or a test). The clock only
    counts; it never schedules anything itself. Expiry fires exactly once per
    arming, and a cancelled clock ignores ticks.
    """

    def __init__(self, seconds: int, on_expire: Optional[Callable[[], None]] = None):
        if seconds <= 0:
            raise ValueError(f"RoundClock needs a positive duration, got {seconds}")
        self.duration = seconds
        self.on_expire = on_expire
        self._remaining = seconds
        self._running = True
        self._expired = False

    def seconds_remaining(self) -> int:
        return self._remaining

    @property
    def running(self) -> bool:
        return self._running

    @property
    def expired(self) -> bool:
        return self._expired

    def tick(self) -> bool:
        """Counts one second down. Returns True if this tick fired the expiry."""
        if not self._running or self._expired:
            return False

        self._remaining = max(0, self._remaining - 1)
        if self._remaining > 0:
            return False

        self._expired = True
        self._running = False
        if self.on_expire:
            self.on_expire()
        return True

    def cancel(self):
        self._running = False

    def reset(self, seconds: Optional[int] = None):
        """Re-arms the clock for a new round."""
        if seconds is not None:
            self.duration = seconds
        self._remaining = self.duration
        self._running = True
        self._expired = False

    def restore(self, remaining: int, running: bool, expired: bool):
        """Puts the clock back into a previously snapshotted state."""
        self._remaining = max(0, int(remaining))
        self._running = bool(running)
        self._expired = bool(expired)
