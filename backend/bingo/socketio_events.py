from flask import current_app, request
from flask_login import current_user
from flask_socketio import emit
from typing import Any, Dict
import hmac
import logging

from bingo import socketio
from bingo.commands import ADMIN_ACTIONS, PLAYER_COMMANDS

logger = logging.getLogger(__name__)

NAMESPACE = '/ws'

_sid_to_ctx: Dict[str, Dict[str, Any]] = {}


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _game():
    return current_app.extensions['bingo']


def _processor():
    return current_app.extensions['bingo_commands']


def _is_admin_request(auth) -> bool:
    """Shared-secret check for the admin role.

    Accepts ``auth={'admin_key': ...}``, a ``?admin=<key>`` query string, or
    an HTTP session logged in through /api/admin/login.
    """
    key = current_app.config.get('ADMIN_KEY')
    if not key:
        return False
    supplied = auth.get('admin_key') if isinstance(auth, dict) else None
    if supplied is None:
        supplied = request.args.get('admin')
    if supplied is not None:
        return hmac.compare_digest(str(supplied), str(key))
    return bool(getattr(current_user, 'is_authenticated', False))


def handle_connect(auth=None):
    sid = _get_sid()
    game = _game()
    if _is_admin_request(auth):
        _sid_to_ctx[sid] = {'role': 'admin'}
        game.directory.add_admin(sid)
        game.directory.record('Admin connected')
        logger.info(f"[admin-connect] sid={sid}")
        emit('admin_connected', game.admin_snapshot())
        return
    _sid_to_ctx[sid] = {'role': 'player'}
    logger.info(f"[player-connect] sid={sid}")
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    sid = _get_sid()
    ctx = _sid_to_ctx.pop(sid, None) or {}
    game = _game()
    if ctx.get('role') == 'admin':
        game.directory.remove_admin(sid)
        game.directory.record('Admin disconnected')
        logger.info(f"[admin-disconnect] sid={sid}")
        return
    game.disconnect_channel(sid)


def _is_admin_sid(sid: str) -> bool:
    return (_sid_to_ctx.get(sid) or {}).get('role') == 'admin'


def handle_message(data=None):
    """Raw envelope: a JSON string or dict with a ``type`` field."""
    sid = _get_sid()
    _processor().dispatch(sid, data, is_admin=_is_admin_sid(sid))


def _command_handler(kind: str):
    def handler(data=None):
        sid = _get_sid()
        if data is None:
            data = {}
        if isinstance(data, dict):
            data = dict(data, type=kind)
        _processor().dispatch(sid, data, is_admin=_is_admin_sid(sid))
    handler.__name__ = f"handle_{kind}"
    return handler


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'.

    Every command can be sent as its own event (``emit('mark_number', {...})``)
    or through the plain ``message`` event as a typed envelope.
    """
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('message', handle_message, namespace=NAMESPACE)
    for kind in list(PLAYER_COMMANDS) + list(ADMIN_ACTIONS):
        socketio.on_event(kind, _command_handler(kind), namespace=NAMESPACE)
