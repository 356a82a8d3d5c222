# dice_duel/sockets/game_handlers.py

import logging
from flask import request, current_app
from flask_socketio import emit
from marshmallow import ValidationError
from ..extensions import socketio, sid_to_player_map, sid_to_player_lock
from ..globals import log_event
from ..api.schemas import LockBetSchema
from ..game_core import DiceDuelError

logger = logging.getLogger(__name__)

lock_bet_schema = LockBetSchema()


def _emit_all(notifications):
    for msg in notifications:
        emit(msg['event'], msg['payload'], room=msg['room'])


def _reject(code, message):
    emit('move_rejection', {'code': code, 'message': message})


def _is_authenticated(sid):
    with sid_to_player_lock:
        return sid in sid_to_player_map


def _run_command(name, command, *args):
    """
    Runs a match command for the calling sid and emits what it produced.
    Rule errors go back to the caller as 'move_rejection'.
    """
    sid = request.sid
    try:
        _emit_all(command(sid, *args))
    except DiceDuelError as e:
        log_event("MOVE_REJECTED", f"'{name}' rejected: {e}", sid=sid, extra_data={'code': e.code})
        _reject(e.code, str(e))
    except KeyError:
        # The match finished between the lookup and the command
        _reject('NO_MATCH', 'You are not in a match.')


@socketio.on('find_match')
def handle_find_match():
    game_service = current_app.game_service
    sid = request.sid

    if not _is_authenticated(sid):
        log_event("INVALID_REQUEST", "find_match received without session.", sid=sid)
        emit('matchmaking_rejected', {'message': 'Server session error.'})
        return

    log_event("MATCHMAKING_START", "Player started searching for a match.", sid=sid)
    _emit_all(game_service.find_match(sid))


@socketio.on('cancel_search')
def handle_cancel_search():
    game_service = current_app.game_service
    _emit_all(game_service.cancel_search(request.sid))


@socketio.on('lock_bet')
def handle_lock_bet(data=None):
    game_service = current_app.game_service

    try:
        bet = lock_bet_schema.load(data or {})
    except ValidationError as err:
        _reject('INVALID_PAYLOAD', str(err.messages))
        return

    _run_command('lock_bet', game_service.lock_bet, bet['amount'], bet['prediction'])


@socketio.on('dismiss_results')
def handle_dismiss_results(data=None):
    game_service = current_app.game_service
    _run_command('dismiss_results', game_service.dismiss_results)


@socketio.on('request_state')
def handle_request_state(data=None):
    game_service = current_app.game_service
    _emit_all(game_service.request_state(request.sid))


@socketio.on('leave_match')
def handle_leave_match(data=None):
    game_service = current_app.game_service
    sid = request.sid

    notifications = game_service.leave_match(sid)
    if not notifications:
        logger.info(f"[SocketHandler] {sid} sent 'leave_match' but is not in a match.")
        _reject('NO_MATCH', 'You are not in a match.')
        return
    _emit_all(notifications)
