# dice_duel/globals.py

import datetime
from dice_duel.extensions import sid_to_player_map, sid_to_player_lock
from dice_duel.services.logging_service import log_event_to_file


def log_event(event_type, message, sid=None, game_id=None, extra_data=None):
    """
    Writes one event line. Resolves the player id from the sid when given.
    """
    timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    player_id = 'Unknown'
    if sid:
        with sid_to_player_lock:
            player_data = sid_to_player_map.get(sid)
            if player_data:
                player_id = player_data.get("player_id", 'Unknown (SID)')

    log_entry = f"[{timestamp}] [TYPE: {event_type}] [Player: {player_id}]"

    if sid:
        log_entry += f" [SID: {sid}]"
    if game_id:
        log_entry += f" [MatchID: {game_id}]"
    if extra_data:
        log_entry += f" [Data: {extra_data}]"

    log_entry += f" | {message}\n"

    log_event_to_file(log_entry)
