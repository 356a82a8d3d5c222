# dice_duel/services/game_registry.py

import threading
from typing import Optional, Dict, List

from .match_room import MatchRoom


class GameRegistry:
    """
    Stores and looks up active match rooms. Nothing else.
    Thread-safe.
    """
    def __init__(self, log_event_func):
        self.matches: Dict[str, MatchRoom] = {}  # match_id -> MatchRoom
        self.sid_to_match_id: Dict[str, str] = {}
        self.player_to_match_id: Dict[str, str] = {}

        self.lock = threading.RLock()
        self.log_event = log_event_func or (lambda *args, **kwargs: None)

    def add_match(self, room: MatchRoom):
        match_id = room.id
        with self.lock:
            if match_id in self.matches:
                self.log_event("REGISTRY_WARN", f"Match {match_id} already registered.", game_id=match_id)
                return

            self.matches[match_id] = room
            for sid in room.get_all_sids():
                if sid:
                    self.sid_to_match_id[sid] = match_id
            for player_id in room.get_all_player_ids():
                self.player_to_match_id[player_id] = match_id

            self.log_event("REGISTRY_ADD", f"Match {match_id} added. Active: {len(self.matches)}", game_id=match_id)

    def remove_match_by_id(self, match_id: str):
        """
        Drops a match from every index.
        Passed to rooms as their finalize callback.
        """
        if not match_id:
            return

        with self.lock:
            room = self.matches.pop(match_id, None)
            if room is None:
                self.log_event("REGISTRY_WARN", f"Tried to remove unknown match {match_id}", game_id=match_id)
                return

            for sid in [sid for sid, mid in self.sid_to_match_id.items() if mid == match_id]:
                del self.sid_to_match_id[sid]
            for player_id in [pid for pid, mid in self.player_to_match_id.items() if mid == match_id]:
                del self.player_to_match_id[player_id]

            self.log_event("REGISTRY_REMOVE", f"Match {match_id} removed. Active: {len(self.matches)}", game_id=match_id)

    def get_by_match_id(self, match_id: str) -> Optional[MatchRoom]:
        with self.lock:
            return self.matches.get(match_id)

    def get_by_sid(self, sid: str) -> Optional[MatchRoom]:
        with self.lock:
            match_id = self.sid_to_match_id.get(sid)
            if not match_id:
                return None
            return self.matches.get(match_id)

    def get_match_id_by_player(self, player_id: str) -> Optional[str]:
        with self.lock:
            return self.player_to_match_id.get(player_id)

    def disassociate_sid(self, sid: str) -> Optional[str]:
        with self.lock:
            match_id = self.sid_to_match_id.pop(sid, None)
            if match_id:
                self.log_event("REGISTRY_DISSOC", f"SID {sid} detached from match {match_id}", game_id=match_id, sid=sid)
            return match_id

    def all_matches(self) -> List[MatchRoom]:
        with self.lock:
            return list(self.matches.values())
