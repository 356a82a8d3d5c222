# dice_duel/services/game_factory.py

import uuid
import threading
from typing import Dict, Any, Callable

from dice_duel.game_core import GameRules
from .match_room import MatchRoom
from .logging_service import log_match_stats


class GameFactory:

    def __init__(
        self,
        config: Dict[str, Any],
        log_event: Callable,
        sid_to_player_map: Dict[str, Any],
        sid_to_player_lock: threading.Lock,
        finalize_game_callback: Callable[[str], None],
        log_stats: Callable = log_match_stats,
    ):
        self.rules = GameRules.from_config(config)
        self.log_event = log_event
        self.sid_to_player_map = sid_to_player_map
        self.sid_to_player_lock = sid_to_player_lock
        self.finalize_game_callback = finalize_game_callback
        self.log_stats = log_stats

    def _get_player_id_by_sid(self, sid: str):
        with self.sid_to_player_lock:
            player_data = self.sid_to_player_map.get(sid)
            if player_data:
                return player_data.get("player_id")
        return None

    def create_match(self, first_sid: str, second_sid: str) -> MatchRoom:
        """
        Builds a seated MatchRoom for two connected players.
        """
        first_id = self._get_player_id_by_sid(first_sid)
        second_id = self._get_player_id_by_sid(second_sid)
        if not first_id or not second_id:
            raise LookupError("Both players must be connected to create a match")

        match_id = str(uuid.uuid4())
        room = MatchRoom(
            match_id=match_id,
            # Shared by both sides so they roll the same die
            seed=uuid.uuid4().hex,
            rules=self.rules,
            log_event=self.log_event,
            log_stats=self.log_stats,
            finalize_game_callback=self.finalize_game_callback,
        )
        room.setup((first_sid, first_id), (second_sid, second_id))

        self.log_event("GAME_CREATED", f"Match {match_id} created: {first_id} vs {second_id}", game_id=match_id)
        return room
