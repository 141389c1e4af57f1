"""Inbound command decoding and dispatch.

Commands arrive from the socket layer as dicts (or JSON text) carrying a
``type``. Player commands act for the player bound to the sending channel;
admin commands are only accepted from channels the transport authenticated
as admin. Game errors become an ``error`` event for players and an
``admin_action_result`` for admins. Nothing here raises back into the
transport.
"""
import json
import logging
from typing import Any, Dict, Optional

from bingo.errors import BingoError, ValidationError
from bingo.services.games.engine import GameStateMachine

logger = logging.getLogger(__name__)

PLAYER_COMMANDS = (
    'register', 'reconnect', 'mark_number', 'claim_win',
    'chat', 'withdraw', 'get_state', 'ping',
)

ADMIN_ACTIONS = {
    'admin_start_game': 'start_game',
    'admin_stop_game': 'stop_game',
    'admin_reset_game': 'reset_game',
    'admin_call_number': 'call_number',
    'admin_kick_player': 'kick_player',
    'admin_broadcast': 'broadcast',
    'admin_get_stats': 'get_stats',
}


def decode(raw) -> Dict[str, Any]:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode('utf-8', errors='replace')
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except (ValueError, RecursionError):
            raise ValidationError('Invalid message format')
    if not isinstance(raw, dict) or not isinstance(raw.get('type'), str):
        raise ValidationError('Invalid message format')
    return raw


class CommandProcessor:

    def __init__(self, game: GameStateMachine):
        self.game = game
        self.directory = game.directory
        self._player_handlers = {
            'register': self._register,
            'reconnect': self._reconnect,
            'mark_number': self._mark_number,
            'claim_win': self._claim_win,
            'chat': self._chat,
            'withdraw': self._withdraw,
            'get_state': self._get_state,
            'ping': self._ping,
        }

    def error(self, channel: str, message: str) -> None:
        self.directory.send(channel, 'error', {'message': message})

    def dispatch(self, channel: str, raw, is_admin: bool = False) -> None:
        if is_admin:
            # any admin traffic counts as activity
            self.directory.add_admin(channel)
        try:
            data = decode(raw)
        except ValidationError as exc:
            logger.info(f"[bad-message] channel={channel}")
            self.error(channel, exc.message)
            return

        kind = data['type']
        if kind in ADMIN_ACTIONS:
            if not is_admin:
                logger.warning(f"[unauthorized] channel={channel} type={kind}")
                self.error(channel, 'Unauthorized')
                return
            self._admin(channel, kind, data)
            return

        handler = self._player_handlers.get(kind)
        if handler is None:
            self.error(channel, 'Unknown message type')
            return
        try:
            handler(channel, data)
        except BingoError as exc:
            self.error(channel, exc.message)
        except Exception:
            logger.exception(f"[command-failed] channel={channel} type={kind}")
            self.error(channel, 'Internal server error')

    # ---- Players ----

    def _acting_player(self, channel: str, data) -> Optional[str]:
        """The player bound to this channel; a mismatched playerId acts for nobody."""
        bound = self.directory.player_for(channel)
        claimed = data.get('playerId')
        if bound is None or (claimed is not None and claimed != bound):
            return None
        return bound

    def _register(self, channel, data):
        self.game.register(data, channel)

    def _reconnect(self, channel, data):
        self.game.reconnect(data.get('playerId'), channel)

    def _mark_number(self, channel, data):
        self.game.mark_number(self._acting_player(channel, data), data.get('number'))

    def _claim_win(self, channel, data):
        self.game.claim_win(self._acting_player(channel, data), data.get('pattern'))

    def _chat(self, channel, data):
        self.game.chat(self._acting_player(channel, data), data.get('message'))

    def _withdraw(self, channel, data):
        self.game.withdraw(self._acting_player(channel, data), data.get('amount'), data.get('account'))

    def _get_state(self, channel, data):
        self.directory.send(channel, 'game_state', self.game.snapshot())

    def _ping(self, channel, data):
        self.game.touch(self._acting_player(channel, data))
        self.directory.send(channel, 'pong', {})

    # ---- Admins ----

    def _admin(self, channel: str, kind: str, data) -> None:
        action = ADMIN_ACTIONS[kind]
        result: Dict[str, Any] = {'action': action}
        try:
            if kind == 'admin_start_game':
                self.game.start_round()
                result.update(success=True, message='Game started successfully')
            elif kind == 'admin_stop_game':
                self.game.stop_round()
                result.update(success=True, message='Game stopped')
            elif kind == 'admin_reset_game':
                self.game.reset_round()
                result.update(success=True, message='Game reset')
            elif kind == 'admin_call_number':
                called = self.game.call_number()
                result.update(success=True, message=f"Called {called['display']}", **called)
            elif kind == 'admin_kick_player':
                player = self.game.kick(data.get('playerId'))
                result.update(success=True, message=f'Kicked {player.name}', playerId=player.id)
            elif kind == 'admin_broadcast':
                self.game.system_broadcast(data.get('message'))
                result.update(success=True, message='Broadcast sent')
            else:
                self.directory.send(channel, 'admin_stats', {'gameState': self.game.stats()})
                return
        except BingoError as exc:
            logger.info(f"[admin-rejected] action={action} reason={exc.message}")
            result.update(success=False, message=exc.message)
        except Exception:
            logger.exception(f"[admin-failed] action={action}")
            result.update(success=False, message='Internal server error')
        self.directory.send(channel, 'admin_action_result', result)
