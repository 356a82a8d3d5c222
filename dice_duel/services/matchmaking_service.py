# dice_duel/services/matchmaking_service.py

import threading
from typing import List, Dict, Any

MatchResult = Dict[str, Any]


class MatchmakingService:
    """
    Owns the waiting queue for 1v1 matches.
    Knows nothing about MatchRoom objects.
    """

    def __init__(self, log_event_func):
        self.queue: List[str] = []
        self.queue_lock = threading.Lock()
        self.log_event = log_event_func or (lambda *args, **kwargs: None)

    def find_or_queue_player(self, sid: str) -> MatchResult:
        """
        Queues the player or pairs them with whoever waited longest.

        Returns one of:
        - {'status': 'already_in_queue'}
        - {'status': 'queued'}
        - {'status': 'match_found', 'first_sid': str, 'second_sid': str}
        """
        with self.queue_lock:
            if sid in self.queue:
                return {'status': 'already_in_queue'}

            if self.queue:
                opponent_sid = self.queue.pop(0)
                self.log_event("MATCHMAKING_SUCCESS", "Match found.", sid=sid)
                # The player who waited is seated first
                return {
                    'status': 'match_found',
                    'first_sid': opponent_sid,
                    'second_sid': sid,
                }

            self.queue.append(sid)
            self.log_event("MATCHMAKING_QUEUED", "Player added to queue.", sid=sid)
            return {'status': 'queued'}

    def cancel_search(self, sid: str) -> bool:
        """Removes the player from the queue. True if they were in it."""
        with self.queue_lock:
            if sid not in self.queue:
                return False
            self.queue.remove(sid)

        self.log_event("MATCHMAKING_CANCEL", "Player cancelled matchmaking.", sid=sid)
        return True

    def handle_disconnect(self, sid: str):
        self.cancel_search(sid)
