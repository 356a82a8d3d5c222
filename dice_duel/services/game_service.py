# dice_duel/services/game_service.py

import threading
import logging
from typing import Optional, Dict, Any, List

from .match_room import MatchRoom
from .game_registry import GameRegistry
from .matchmaking_service import MatchmakingService, MatchResult
from .game_factory import GameFactory

logger = logging.getLogger(__name__)

Notification = Dict[str, Any]


def _rejection(sid: str, code: str, message: str) -> Notification:
    return {'event': 'move_rejection', 'payload': {'code': code, 'message': message}, 'room': sid}


class GameService:
    """
    Facade for the socket handlers and workers.
    Owns no match state itself; delegates to the registry, matchmaker and rooms.
    Every method returns the notifications to emit.
    """

    def __init__(self,
                 registry: GameRegistry,
                 matchmaker: MatchmakingService,
                 factory: GameFactory,
                 sid_to_player_map: Dict[str, Dict[str, Any]],
                 sid_to_player_lock: threading.Lock):
        self.registry = registry
        self.matchmaker = matchmaker
        self.factory = factory

        self.sid_to_player = sid_to_player_map
        self.sid_to_player_lock = sid_to_player_lock

    ### Lookups ###

    def get_match_by_sid(self, sid: str) -> Optional[MatchRoom]:
        return self.registry.get_by_sid(sid)

    def get_match_summary(self, match_id: str) -> Optional[Dict[str, Any]]:
        room = self.registry.get_by_match_id(match_id)
        return room.summary() if room else None

    def is_player_online(self, player_id: str) -> bool:
        with self.sid_to_player_lock:
            return any(d.get('player_id') == player_id for d in self.sid_to_player.values())

    ### Matchmaking ###

    def find_match(self, sid: str) -> List[Notification]:
        if self.registry.get_by_sid(sid):
            return [_rejection(sid, 'ALREADY_IN_MATCH', 'You are already in a match.')]

        match_result = self.matchmaker.find_or_queue_player(sid)
        status = match_result.get('status')

        if status == 'match_found':
            return self._handle_match_found(match_result)

        if status == 'queued':
            return [{'event': 'searching_match', 'payload': {'status': 'waiting'}, 'room': sid}]

        return []

    def _handle_match_found(self, match_result: MatchResult) -> List[Notification]:
        first_sid = match_result['first_sid']
        second_sid = match_result['second_sid']

        try:
            room = self.factory.create_match(first_sid, second_sid)
        except LookupError:
            return self._handle_failed_match_creation(first_sid, second_sid)

        self.registry.add_match(room)

        notifications = []
        for pid in room.get_all_player_ids():
            seat = room.seats[pid]
            opponent = room.opponent_of(pid)
            notifications.append({
                'event': 'match_found',
                'payload': {'match_id': room.id, 'player_id': pid, 'opponent_id': opponent.player_id},
                'room': seat.sid,
            })
            seat.dirty = True
        notifications.extend(room.drain_notifications())
        return notifications

    def _handle_failed_match_creation(self, first_sid: str, second_sid: str) -> List[Notification]:
        """One of the two disconnected right before the match was built."""
        with self.sid_to_player_lock:
            remaining = [sid for sid in (first_sid, second_sid) if sid in self.sid_to_player]

        notifications = []
        for sid in remaining:
            self.matchmaker.find_or_queue_player(sid)
            notifications.append({
                'event': 'match_failed_requeued',
                'payload': {'status': 'requeued', 'message': 'Opponent disconnected. Searching again.'},
                'room': sid,
            })
        return notifications

    def cancel_search(self, sid: str) -> List[Notification]:
        if self.matchmaker.cancel_search(sid):
            return [{'event': 'search_cancelled', 'payload': {'status': 'success'}, 'room': sid}]
        return []

    ### Match commands ###

    def lock_bet(self, sid: str, amount: int, prediction: str) -> List[Notification]:
        room = self.registry.get_by_sid(sid)
        if not room:
            return [_rejection(sid, 'NO_MATCH', 'You are not in a match.')]
        return room.lock_bet(sid, amount, prediction)

    def dismiss_results(self, sid: str) -> List[Notification]:
        room = self.registry.get_by_sid(sid)
        if not room:
            return [_rejection(sid, 'NO_MATCH', 'You are not in a match.')]
        return room.dismiss_results(sid)

    def request_state(self, sid: str) -> List[Notification]:
        room = self.registry.get_by_sid(sid)
        if not room:
            return [_rejection(sid, 'NO_MATCH', 'You are not in a match.')]
        seat = room.seat_for_sid(sid)
        return [{'event': 'state_update', 'payload': seat.session.view(), 'room': sid}]

    def leave_match(self, sid: str) -> List[Notification]:
        room = self.registry.get_by_sid(sid)
        if not room:
            return []
        self.registry.disassociate_sid(sid)
        return room.leave(sid)

    ### Connection lifecycle ###

    def handle_disconnect(self, sid: str) -> List[Notification]:
        self.matchmaker.handle_disconnect(sid)
        return self.leave_match(sid)

    ### Clock ###

    def tick_all(self) -> List[Notification]:
        """One second for every active match."""
        notifications = []
        for room in self.registry.all_matches():
            try:
                notifications.extend(room.tick())
            except Exception as e:
                logger.error(f"[GameService] Tick failed for match {room.id}: {e}", exc_info=True)
        return notifications
