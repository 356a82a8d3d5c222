"""
Opponent sync channel.

The match core consumes two events from its peer (``on_opponent_locked`` and
``on_opponent_left``) and emits its own lock and leave. How those events cross
the network is not the core's business; ``LocalChannel`` connects two sessions
living in the same process, which is how the server hosts a match.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional, Tuple

if TYPE_CHECKING:
    from dice_duel.game_core import Bet
    from .match_session import MatchSession

logger = logging.getLogger(__name__)


class OpponentSyncChannel(ABC):

    def __init__(self):
        self.session: Optional['MatchSession'] = None

    def bind(self, session: 'MatchSession'):
        """Registers the session that receives the peer's events."""
        self.session = session

    @abstractmethod
    def emit_local_locked(self, round_number: int, bet: 'Bet'):
        """Tells the peer the local player locked. The bet travels sealed."""

    @abstractmethod
    def emit_local_left(self):
        """Tells the peer the local player left the match."""


class LocalChannel(OpponentSyncChannel):
    """In-process channel. Delivery is immediate and in order."""

    def __init__(self):
        super().__init__()
        self.peer: Optional['LocalChannel'] = None
        self.connected = True

    @classmethod
    def pair(cls) -> Tuple['LocalChannel', 'LocalChannel']:
        a, b = cls(), cls()
        a.peer, b.peer = b, a
        return a, b

    def _peer_session(self) -> Optional['MatchSession']:
        if not self.connected or self.peer is None:
            return None
        return self.peer.session

    def emit_local_locked(self, round_number: int, bet: 'Bet'):
        peer = self._peer_session()
        if peer is None:
            logger.info("Lock for round %s not delivered: peer is gone.", round_number)
            return
        peer.on_opponent_locked(round_number, bet)

    def emit_local_left(self):
        peer = self._peer_session()
        self.connected = False
        if self.peer is not None:
            self.peer.connected = False
        if peer is not None:
            peer.on_opponent_left()
