"""The authoritative game state and every operation that mutates it.

One GameStateMachine owns one GameSession. Socket handlers, the auto-draw
timer and the inactivity sweep all funnel through the public methods below,
and each of those runs under a single re-entrant lock, so two commands never
interleave (no duplicate draws, no double winners).

Round phases:

    idle --start_round--> active --winner--> won --reset_round--> idle
                            |
                            +--stop_round--> idle

Prize pool accounting: the pool is the sum of the registered players'
stakes. Registration adds to it and removal (kick or inactivity) takes the
stake back out. Paying a winner does not touch the pool; it only moves the
lifetime paid-out total. Lifetime collected/paid-out never go down.
"""
from dataclasses import dataclass
from functools import wraps
from typing import Any, Dict, List, Mapping, Optional
import logging
import re
import threading
import time

from bingo.errors import DrawExhausted, InvalidState, NotFound, ValidationError
from bingo.models import (
    BoardType,
    ChatEntry,
    GameSession,
    Player,
    RoundPhase,
    WinnerRecord,
    generate_id,
    isoformat,
)
from bingo.services.directory import SessionDirectory

from .boards import BoardGenerator
from .draws import DrawEngine, format_number, max_number_for
from .patterns import PatternEvaluator
from .scheduler import PeriodicTask
from .scoring import calculate_prize

logger = logging.getLogger(__name__)


@dataclass
class GameSettings:
    max_players: int = 90
    min_players: int = 2
    min_stake: int = 25
    max_stake: int = 5000
    min_withdrawal: int = 25
    max_board_number: int = 100
    service_fee: float = 0.03
    auto_call_enabled: bool = True
    auto_call_interval: float = 7.0
    inactive_timeout: float = 30 * 60
    inactivity_sweep_interval: float = 60.0
    auto_start_min_players: int = 5
    phone_pattern: str = r'^09\d{8}$'
    strict_marking: bool = False
    board_seed: Optional[str] = None
    timer_heartbeat: float = 0

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> 'GameSettings':
        """Build settings from a Flask config (or any mapping of upper-case keys)."""
        defaults = cls()
        return cls(
            max_players=int(config.get('MAX_PLAYERS', defaults.max_players)),
            min_players=int(config.get('MIN_PLAYERS', defaults.min_players)),
            min_stake=int(config.get('MIN_STAKE', defaults.min_stake)),
            max_stake=int(config.get('MAX_STAKE', defaults.max_stake)),
            min_withdrawal=int(config.get('MIN_WITHDRAWAL', defaults.min_withdrawal)),
            max_board_number=int(config.get('MAX_BOARD_NUMBER', defaults.max_board_number)),
            service_fee=float(config.get('SERVICE_FEE', defaults.service_fee)),
            auto_call_enabled=bool(config.get('AUTO_CALL_ENABLED', defaults.auto_call_enabled)),
            auto_call_interval=float(config.get('AUTO_CALL_INTERVAL_SEC', defaults.auto_call_interval)),
            inactive_timeout=float(config.get('INACTIVE_TIMEOUT_SEC', defaults.inactive_timeout)),
            inactivity_sweep_interval=float(config.get('INACTIVITY_SWEEP_SEC', defaults.inactivity_sweep_interval)),
            auto_start_min_players=int(config.get('AUTO_START_MIN_PLAYERS', defaults.auto_start_min_players)),
            phone_pattern=config.get('PHONE_PATTERN', defaults.phone_pattern),
            strict_marking=bool(config.get('STRICT_MARKING', defaults.strict_marking)),
            board_seed=config.get('BOARD_SEED', defaults.board_seed),
            timer_heartbeat=float(config.get('TIMER_HEARTBEAT_SEC', defaults.timer_heartbeat)),
        )


def serialized(method):
    """Run the wrapped method while holding the machine's lock."""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


def parse_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def _clamp(value: Optional[int], low: int, high: int) -> int:
    if not value:
        return low
    return max(low, min(high, value))


class GameStateMachine:

    def __init__(
        self,
        settings: GameSettings,
        directory: SessionDirectory,
        generator: Optional[BoardGenerator] = None,
        evaluator: Optional[PatternEvaluator] = None,
        draws: Optional[DrawEngine] = None,
        clock=time.time,
        spawn=None,
        sleep=None,
    ):
        self.settings = settings
        self.directory = directory
        self.generator = generator or BoardGenerator(settings.board_seed)
        self.evaluator = evaluator or PatternEvaluator()
        self.draws = draws or DrawEngine()
        self.clock = clock
        self.booted_at = clock()
        self.session = GameSession(id=f"game_{int(clock() * 1000)}")
        self._phone_re = re.compile(settings.phone_pattern)
        self._lock = threading.RLock()
        self.auto_draw = PeriodicTask(
            'auto-draw', settings.auto_call_interval, self._auto_draw_tick,
            spawn=spawn, sleep=sleep, heartbeat=settings.timer_heartbeat,
            guard=self._lock,
        )
        self.sweeper = PeriodicTask(
            'inactivity-sweep', settings.inactivity_sweep_interval, self._sweep_tick,
            spawn=spawn, sleep=sleep, guard=self._lock,
        )

    # ---- Lifecycle of the background tasks ----

    def start_background_tasks(self) -> None:
        self.sweeper.start()

    def shutdown(self) -> None:
        self.auto_draw.cancel()
        self.sweeper.cancel()

    # ---- Helpers ----

    def _log_event(self, message: str) -> None:
        logger.info(message)
        self.directory.record(message)

    def _now(self) -> float:
        return self.clock()

    @property
    def phase(self) -> RoundPhase:
        return self.session.phase

    def get_player(self, player_id) -> Optional[Player]:
        if not player_id:
            return None
        return self.session.players.get(player_id)

    def _session_board_type(self) -> Optional[BoardType]:
        """The board type that fixes this session's draw range, if any."""
        session = self.session
        if session.phase is not RoundPhase.IDLE and session.draw_board_type is not None:
            return session.draw_board_type
        first = next(iter(session.players.values()), None)
        return first.board_type if first else None

    def roster(self) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self.session.players.values()]

    # ---- Registration and presence ----

    @serialized
    def register(self, info: Mapping[str, Any], channel: Optional[str] = None) -> Player:
        settings = self.settings
        players = self.session.players

        name = str(info.get('name') or '').strip()
        if not 2 <= len(name) <= 50:
            raise ValidationError('Invalid name (2-50 characters required)')
        phone = str(info.get('phone') or '').strip()
        if not self._phone_re.match(phone):
            raise ValidationError('Invalid phone number (must be 09xxxxxxxx)')
        board_type = BoardType.parse(info.get('boardType'))
        if board_type is None:
            raise ValidationError('Invalid board type')
        stake = _clamp(parse_int(info.get('stake')), settings.min_stake, settings.max_stake)
        board_number = _clamp(parse_int(info.get('boardNumber')), 1, settings.max_board_number)

        if len(players) >= settings.max_players:
            raise ValidationError(f'Game is full ({settings.max_players} players maximum)')
        if any(p.phone == phone for p in players.values()):
            raise ValidationError('Phone number already registered')
        if any(p.board_type is board_type and p.board_number == board_number for p in players.values()):
            raise ValidationError(f'Board {board_number} for {board_type.value} is already taken')
        established = self._session_board_type()
        if established is not None and established.max_number != board_type.max_number:
            raise ValidationError(
                f'This game draws 1-{established.max_number}, '
                f'{board_type.value} boards cannot join'
            )

        now = self._now()
        player = Player(
            id=generate_id('player'),
            name=name,
            phone=phone,
            board_type=board_type,
            board_number=board_number,
            stake=stake,
            grid=tuple(self.generator.generate(board_type, board_number)),
            joined_at=now,
            last_active=now,
        )
        players[player.id] = player
        self.session.prize_pool += stake
        self.session.total_collected += stake
        if channel:
            self.directory.bind_player(player.id, channel)

        self._log_event(f"Player registered: {player.name} ({player.phone}) board={board_type.value}#{board_number} stake={stake}")

        self.directory.send(channel, 'registered', {
            'playerId': player.id,
            'boardType': board_type.value,
            'boardNumber': board_number,
            'stake': stake,
            'boardNumbers': list(player.grid),
            'gameState': self.session.to_dict(),
            'players': self.roster(),
        })
        self.directory.broadcast_to_players('player_joined', {
            'playerId': player.id,
            'playerName': player.name,
            'boardType': board_type.value,
            'boardNumber': board_number,
            'stake': stake,
            'totalPlayers': len(players),
        }, exclude=player.id)
        self.directory.notify_admins('player_registered_admin', {
            'player': player.to_admin_dict(),
            'totalPlayers': len(players),
            'prizePool': self.session.prize_pool,
        })
        return player

    @serialized
    def reconnect(self, player_id, channel: Optional[str] = None) -> Player:
        player = self.get_player(player_id)
        if player is None:
            raise NotFound(player_id)
        player.is_online = True
        player.last_active = self._now()
        if channel:
            self.directory.bind_player(player.id, channel)

        self.directory.send(channel, 'reconnected', {
            'playerId': player.id,
            'boardType': player.board_type.value,
            'boardNumber': player.board_number,
            'boardNumbers': list(player.grid),
            'markedNumbers': sorted(player.marked_numbers),
            'balance': player.balance,
            'totalWon': player.total_won,
            'gameState': self.session.to_dict(),
            'players': self.roster(),
            'chatHistory': self.directory.recent_chat(50),
        })
        self._log_event(f"Player reconnected: {player.name}")
        self.directory.notify_admins('player_reconnected_admin', {
            'playerId': player.id,
            'playerName': player.name,
        })
        return player

    @serialized
    def disconnect_channel(self, channel: str) -> Optional[Player]:
        """Mark the player bound to ``channel`` offline. They stay registered."""
        return self.disconnect(self.directory.player_for(channel))

    @serialized
    def disconnect(self, player_id) -> Optional[Player]:
        player = self.get_player(player_id)
        if player is None:
            return None
        self.directory.unbind_player(player.id)
        player.is_online = False
        self._log_event(f"Player disconnected: {player.name}")
        self.directory.notify_admins('player_disconnected_admin', {
            'playerId': player.id,
            'playerName': player.name,
            'totalPlayers': len(self.session.players),
        })
        return player

    @serialized
    def touch(self, player_id) -> bool:
        player = self.get_player(player_id)
        if player is None:
            return False
        player.last_active = self._now()
        return True

    # ---- Round lifecycle ----

    @serialized
    def start_round(self) -> Dict[str, Any]:
        session = self.session
        if session.phase is RoundPhase.ACTIVE:
            raise InvalidState('Game already active')
        if session.phase is RoundPhase.WON:
            raise InvalidState('Round already has a winner, reset the game first')
        if len(session.players) < self.settings.min_players:
            raise InvalidState(f'Need at least {self.settings.min_players} players to start')

        session.clear_round()
        session.started_at = self._now()
        # one draw range per round, taken from the first registered player
        session.draw_board_type = next(iter(session.players.values())).board_type
        session.phase = RoundPhase.ACTIVE
        if self.settings.auto_call_enabled:
            self.auto_draw.start()

        self._log_event(f"Game started with {len(session.players)} players board={session.draw_board_type.value}")
        self.directory.broadcast_to_players('game_started', {
            'startedAt': isoformat(session.started_at),
            'totalPlayers': len(session.players),
            'prizePool': session.prize_pool,
            'boardType': session.draw_board_type.value,
        })
        self.directory.notify_admins('game_started_admin', {
            'startedAt': isoformat(session.started_at),
            'totalPlayers': len(session.players),
            'prizePool': session.prize_pool,
            'boardType': session.draw_board_type.value,
            'players': [
                {'id': p.id, 'name': p.name, 'boardType': p.board_type.value, 'stake': p.stake}
                for p in session.players.values()
            ],
        })
        return session.to_dict()

    @serialized
    def stop_round(self) -> Dict[str, Any]:
        if self.session.phase is not RoundPhase.ACTIVE:
            raise InvalidState('Game not active')
        self.auto_draw.cancel()
        self.session.phase = RoundPhase.IDLE

        self._log_event('Game stopped')
        self.directory.broadcast_to_players('game_stopped', {})
        self.directory.notify_admins('game_stopped_admin', {
            'calledNumbers': len(self.session.called_numbers),
        })
        return self.session.to_dict()

    @serialized
    def reset_round(self) -> Dict[str, Any]:
        session = self.session
        if session.phase is RoundPhase.ACTIVE:
            self.stop_round()
        self.auto_draw.cancel()
        session.clear_round()
        session.started_at = None
        session.draw_board_type = None
        session.phase = RoundPhase.IDLE

        self._log_event('Game reset')
        self.directory.broadcast_to_players('game_reset', {})
        self.directory.notify_admins('game_reset_admin', {
            'totalPlayers': len(session.players),
            'prizePool': session.prize_pool,
        })
        return session.to_dict()

    # ---- Drawing and winning ----

    @serialized
    def call_number(self) -> Dict[str, Any]:
        session = self.session
        if session.winner is not None:
            raise InvalidState('Game already has a winner')
        if session.phase is not RoundPhase.ACTIVE:
            raise InvalidState('Game not active')

        board_type = session.draw_board_type
        max_number = max_number_for(board_type)
        number = self.draws.draw_next(set(session.called_numbers), max_number)
        session.called_numbers.append(number)
        session.current_number = number
        session.current_display = format_number(number, board_type)

        self._log_event(f"Number called: {session.current_display}")
        payload = {
            'number': number,
            'display': session.current_display,
            'totalCalled': len(session.called_numbers),
        }
        self.directory.broadcast_to_players('number_called', payload)
        self.directory.notify_admins('number_called_admin', payload)

        winner = self._check_players(number)
        if winner is None and len(session.called_numbers) >= max_number:
            logger.info(f"[draw-complete] all {max_number} numbers called")
            self.auto_draw.cancel()

        result = dict(payload)
        result['winner'] = winner.to_dict() if winner else None
        return result

    def _check_players(self, number: int) -> Optional[WinnerRecord]:
        # registration order decides ties
        for player in list(self.session.players.values()):
            if number in player.grid:
                player.marked_numbers.add(number)
            if self.session.winner is None:
                pattern = self.evaluator.match(player.board_type, player.grid, player.marked_numbers)
                if pattern:
                    self._declare_winner(player, pattern)
        return self.session.winner

    def _declare_winner(self, player: Player, pattern: str) -> WinnerRecord:
        session = self.session
        if session.winner is not None:
            return session.winner

        prize = calculate_prize(player.stake, len(session.players), self.settings.service_fee)
        player.is_winner = True
        player.balance += prize
        player.total_won += prize
        session.total_paid_out += prize
        session.winner = WinnerRecord(player.id, player.name, prize, pattern)
        session.phase = RoundPhase.WON
        self.auto_draw.cancel()

        self._log_event(f"WINNER: {player.name} won {prize} with {pattern} after {len(session.called_numbers)} calls")
        self.directory.broadcast_to_players('winner', {
            'playerId': player.id,
            'playerName': player.name,
            'prize': prize,
            'pattern': pattern,
            'timestamp': isoformat(self._now()),
        })
        self.directory.notify_admins('winner_admin', {
            'player': player.to_admin_dict(),
            'prize': prize,
            'pattern': pattern,
            'calledNumbers': len(session.called_numbers),
            'totalPaidOut': session.total_paid_out,
        })
        return session.winner

    @serialized
    def mark_number(self, player_id, number) -> bool:
        """Mark a number on a player's card. Stray or late marks are ignored."""
        player = self.get_player(player_id)
        session = self.session
        if player is None or session.phase is not RoundPhase.ACTIVE or session.winner is not None:
            return False
        value = parse_int(number)
        if value is None or value not in player.grid:
            return False
        if self.settings.strict_marking and value not in session.called_numbers:
            return False
        player.last_active = self._now()
        if value in player.marked_numbers:
            return False
        player.marked_numbers.add(value)

        pattern = self.evaluator.match(player.board_type, player.grid, player.marked_numbers)
        if pattern:
            self._declare_winner(player, pattern)
        return True

    @serialized
    def claim_win(self, player_id, pattern: Optional[str] = None) -> Optional[WinnerRecord]:
        player = self.get_player(player_id)
        if player is None:
            raise NotFound(player_id)
        session = self.session
        if session.phase is not RoundPhase.ACTIVE or session.winner is not None:
            return None
        player.last_active = self._now()
        matched = self.evaluator.match(player.board_type, player.grid, player.marked_numbers)
        if matched is None:
            logger.info(f"[claim-rejected] player={player.id} claimed={pattern}")
            raise ValidationError("You don't have a winning pattern yet")
        return self._declare_winner(player, matched)

    # ---- Money ----

    @serialized
    def withdraw(self, player_id, amount, account) -> int:
        player = self.get_player(player_id)
        if player is None:
            raise NotFound(player_id)
        value = parse_int(amount) or 0
        account = str(account).strip() if account is not None else ''
        if not account:
            raise ValidationError('Account number is required')
        if value < self.settings.min_withdrawal:
            raise ValidationError(f'Minimum withdrawal is {self.settings.min_withdrawal} Birr')
        if value > player.balance:
            raise ValidationError('Insufficient balance')

        player.balance -= value
        player.last_active = self._now()
        self._log_event(f"Withdrawal processed: {player.name} - {value} to account {account}")
        self.directory.send_to_player(player.id, 'withdrawal_processed', {
            'amount': value,
            'account': account,
            'newBalance': player.balance,
            'timestamp': isoformat(self._now()),
        })
        self.directory.notify_admins('withdrawal_admin', {
            'playerId': player.id,
            'playerName': player.name,
            'phone': player.phone,
            'amount': value,
            'account': account,
            'remainingBalance': player.balance,
        })
        return player.balance

    # ---- Removal ----

    def _remove(self, player: Player, admin_event: str, reason: str) -> None:
        session = self.session
        session.players.pop(player.id, None)
        session.prize_pool -= player.stake
        self.directory.unbind_player(player.id)

        self._log_event(f"Removed player: {player.name} reason={reason}")
        self.directory.broadcast_to_players('player_left', {
            'playerId': player.id,
            'totalPlayers': len(session.players),
        })
        self.directory.notify_admins(admin_event, {
            'playerId': player.id,
            'playerName': player.name,
            'reason': reason,
            'totalPlayers': len(session.players),
            'prizePool': session.prize_pool,
        })

    @serialized
    def kick(self, player_id) -> Player:
        player = self.get_player(player_id)
        if player is None:
            raise NotFound(player_id)
        self._remove(player, 'player_kicked_admin', 'kicked')
        return player

    @serialized
    def sweep_inactive(self, now: Optional[float] = None) -> List[Player]:
        """Drop players idle past the timeout, then auto-start if enough remain."""
        if now is None:
            now = self._now()
        timeout = self.settings.inactive_timeout
        stale = [p for p in self.session.players.values() if now - p.last_active > timeout]
        for player in stale:
            self._remove(player, 'player_inactive_admin', 'inactive')

        threshold = self.settings.auto_start_min_players
        session = self.session
        if (
            threshold
            and session.phase is RoundPhase.IDLE
            and session.winner is None
            and len(session.players) >= max(threshold, self.settings.min_players)
        ):
            logger.info(f"[auto-start] players={len(session.players)} threshold={threshold}")
            self.start_round()
        return stale

    # ---- Chat ----

    @serialized
    def chat(self, player_id, message) -> Optional[ChatEntry]:
        player = self.get_player(player_id)
        text = str(message).strip() if message is not None else ''
        if player is None or not text:
            return None
        player.last_active = self._now()
        entry = ChatEntry(player.id, player.name, text, self._now(), 'chat')
        self.directory.add_chat(entry)
        self.directory.broadcast_to_players('chat_message', entry.to_dict())
        self.directory.notify_admins('chat_message_admin', entry.to_dict())
        return entry

    @serialized
    def system_broadcast(self, message) -> ChatEntry:
        text = str(message).strip() if message is not None else ''
        if not text:
            raise ValidationError('Message is required')
        entry = ChatEntry('system', 'SYSTEM', text, self._now(), 'system')
        self.directory.add_chat(entry)
        self._log_event(f"Admin broadcast: {text}")
        self.directory.broadcast_to_players('chat_message', entry.to_dict())
        self.directory.notify_admins('chat_message_admin', entry.to_dict())
        return entry

    # ---- Read-only views ----

    @serialized
    def snapshot(self) -> Dict[str, Any]:
        return self.session.to_dict()

    @serialized
    def admin_snapshot(self) -> Dict[str, Any]:
        return {
            'gameState': self.session.to_admin_dict(),
            'chatHistory': self.directory.recent_chat(50),
            'gameLog': self.directory.recent_journal(100),
        }

    @serialized
    def stats(self) -> Dict[str, Any]:
        session = self.session
        return {
            'totalPlayers': len(session.players),
            'gameActive': session.is_active,
            'phase': session.phase.value,
            'calledNumbers': len(session.called_numbers),
            'currentNumber': session.current_number,
            'prizePool': session.prize_pool,
            'totalCollected': session.total_collected,
            'totalPaidOut': session.total_paid_out,
            'winner': session.winner.player_name if session.winner else None,
            'startedAt': isoformat(session.started_at),
        }

    # ---- Timer callbacks ----

    @serialized
    def _auto_draw_tick(self) -> None:
        session = self.session
        if session.phase is not RoundPhase.ACTIVE or session.winner is not None:
            self.auto_draw.cancel()
            return
        try:
            self.call_number()
        except DrawExhausted:
            logger.warning(f"[auto-draw] no unique number after {len(session.called_numbers)} calls")

    def _sweep_tick(self) -> None:
        self.sweep_inactive()
