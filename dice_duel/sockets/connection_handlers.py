# dice_duel/sockets/connection_handlers.py
import datetime
from flask import request, current_app
from flask_socketio import emit
from marshmallow import ValidationError
from ..extensions import socketio, sid_to_player_map, sid_to_player_lock
from ..globals import log_event
from ..api.schemas import ConnectSchema

connect_schema = ConnectSchema()


@socketio.on('connect')
def handle_connect(auth=None):
    sid = request.sid

    try:
        data = connect_schema.load(auth or {})
    except ValidationError as err:
        log_event("AUTH_FAILED", f"Rejected handshake: {err.messages}", sid=sid)
        emit('auth_failed', {'message': 'Invalid handshake.', 'errors': err.messages})
        return False

    player_id = data['player_id']
    game_service = current_app.game_service

    if game_service.is_player_online(player_id):
        log_event("AUTH_FAILED", f"Player '{player_id}' is already connected.", sid=sid)
        emit('auth_failed', {'message': 'This player is already connected.'})
        return False

    with sid_to_player_lock:
        sid_to_player_map[sid] = {
            "player_id": player_id,
            "connect_time": datetime.datetime.now(),
        }

    log_event("SESSION_START", f"Player '{player_id}' joined.", sid=sid)
    emit('connected', {'player_id': player_id})


@socketio.on('disconnect')
def handle_disconnect(reason=None):
    game_service = current_app.game_service

    sid = request.sid
    duration_str = "N/A"

    with sid_to_player_lock:
        player_data = sid_to_player_map.get(sid)

    if not player_data:
        log_event("SESSION_END", "Disconnected (pre-auth or already removed).", sid=sid)
        return

    connect_time = player_data.get("connect_time")
    player_id = player_data.get("player_id", "N/A")

    if connect_time:
        duration = datetime.datetime.now() - connect_time
        duration_str = str(datetime.timedelta(seconds=int(duration.total_seconds())))

    log_event("SESSION_END", f"Player '{player_id}' disconnected ({reason}). Session duration: {duration_str}", sid=sid)

    # A dropped connection counts as leaving the match
    notifications = game_service.handle_disconnect(sid)

    with sid_to_player_lock:
        sid_to_player_map.pop(sid, None)

    for msg in notifications:
        if msg['room'] == sid:
            continue
        emit(msg['event'], msg['payload'], room=msg['room'])
